"""
Dependency Injection Containers

아키텍처:
- SettingsContainer: settings.py 싱글톤 주입
- SessionContainer: 연결 관리자 / 레지스트리 / 라우터 / QuerySession 조립

주요 패턴:
- Object Provider: settings.py 싱글톤 주입 (DI)
- Singleton Provider: 프로세스당 하나의 레지스트리와 라우터
- Resource Provider: 세션 connect/close 자동 관리
- Configuration: 엔드포인트 URL 외부화

사용 예시:
    container = ApplicationContainer()
    container.config.url.from_value("ws://localhost:8080/ws")
    session = await container.session.query_session()   # 연결된 세션
    ...
    await container.shutdown_resources()                 # disconnect
"""

from dependency_injector import containers, providers

from sqlstream.application.session import QuerySession
from sqlstream.config.init_session import init_query_session
from sqlstream.config.settings import app_settings, stream_settings, websocket_settings
from sqlstream.core.connection.manager import ConnectionManager
from sqlstream.core.stream.registry import StreamRegistry
from sqlstream.core.stream.router import MessageRouter


# ========================================
# 1. Settings Container (설정 레이어)
# ========================================
class SettingsContainer(containers.DeclarativeContainer):
    """설정 컨테이너

    settings.py 의 싱글톤 인스턴스들을 Object 로 주입합니다.
    """

    app_config = providers.Object(app_settings)
    websocket_config = providers.Object(websocket_settings)
    stream_config = providers.Object(stream_settings)


# ========================================
# 2. Session Container (세션 레이어)
# ========================================
class SessionContainer(containers.DeclarativeContainer):
    """세션 컨테이너

    - stream_registry / message_router: 프로세스당 하나 (Singleton)
    - connection_manager: 엔드포인트 URL 과 웹소켓 설정 주입
    - session: 연결하지 않은 QuerySession (Singleton, 위 구성요소를 공유)
    - query_session: 같은 session 을 연결해 제공 (Resource, shutdown 시 disconnect)
    """

    config = providers.Configuration()
    settings = providers.DependenciesContainer()

    stream_registry = providers.Singleton(StreamRegistry)
    message_router = providers.Singleton(MessageRouter, registry=stream_registry)

    connection_manager = providers.Singleton(
        ConnectionManager,
        url=config.url,
        settings=settings.websocket_config,
    )

    session = providers.Singleton(
        QuerySession,
        manager=connection_manager,
        registry=stream_registry,
        router=message_router,
        buffer_size=settings.stream_config.provided.buffer_size,
    )

    query_session = providers.Resource(init_query_session, session=session)


# ========================================
# 3. Application Container (최상위)
# ========================================
class ApplicationContainer(containers.DeclarativeContainer):
    """최상위 컨테이너"""

    config = providers.Configuration()

    settings = providers.Container(SettingsContainer)
    session = providers.Container(
        SessionContainer,
        config=config,
        settings=settings,
    )
