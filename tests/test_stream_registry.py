from __future__ import annotations

from sqlstream.core.dto.internal.stream import StreamHandlers
from sqlstream.core.stream.registry import StreamRegistry
from sqlstream.core.types import StreamState


def _noop(_frame: object) -> None:
    return None


def test_register_lookup_remove() -> None:
    registry = StreamRegistry()
    handlers = StreamHandlers(data=_noop)

    registry.register("Q1", handlers)

    assert registry.lookup("Q1") is handlers
    assert "Q1" in registry
    assert len(registry) == 1
    assert registry.active_stream_ids() == ["Q1"]

    removed = registry.remove("Q1")
    assert removed is not None and removed.stream_id == "Q1"
    assert registry.lookup("Q1") is None
    assert registry.remove("Q1") is None


def test_register_accepts_mapping_and_ignores_unknown_keys() -> None:
    registry = StreamRegistry()

    registry.register("Q1", {"data": _noop, "progress": _noop})

    handlers = registry.lookup("Q1")
    assert handlers is not None
    assert handlers.data is _noop
    assert handlers.metadata is None


def test_register_twice_overwrites_silently() -> None:
    registry = StreamRegistry()
    first = StreamHandlers(data=_noop)
    second = StreamHandlers(error=_noop)

    registry.register("Q1", first)
    registry.register("Q1", second)

    assert registry.lookup("Q1") is second
    assert len(registry) == 1


def test_deregister_only_removes_own_registration() -> None:
    registry = StreamRegistry()
    stale_deregister = registry.register("Q1", StreamHandlers(data=_noop))
    replacement = StreamHandlers(error=_noop)
    registry.register("Q1", replacement)

    stale_deregister()

    assert registry.lookup("Q1") is replacement


def test_deregister_is_idempotent() -> None:
    registry = StreamRegistry()
    deregister = registry.register("Q1", StreamHandlers())

    deregister()
    deregister()

    assert "Q1" not in registry


def test_clear_abandons_all_and_calls_local_callbacks() -> None:
    registry = StreamRegistry()
    reasons: list[str] = []
    called: list[str] = []

    registry.register("Q1", StreamHandlers(error=lambda f: called.append("error")), on_abandon=reasons.append)
    registry.register("Q2", StreamHandlers())

    abandoned = registry.clear("connection lost")

    assert {s.stream_id for s in abandoned} == {"Q1", "Q2"}
    assert all(s.state is StreamState.ABANDONED for s in abandoned)
    assert reasons == ["connection lost"]
    assert called == []
    assert len(registry) == 0
    assert registry.clear() == []


def test_clear_continues_when_abandon_callback_fails() -> None:
    registry = StreamRegistry()
    reasons: list[str] = []

    def _boom(reason: str) -> None:
        raise RuntimeError(reason)

    registry.register("Q1", StreamHandlers(), on_abandon=_boom)
    registry.register("Q2", StreamHandlers(), on_abandon=reasons.append)

    registry.clear("disconnect")

    assert reasons == ["disconnect"]


def test_awaiting_first_response_filters_by_age() -> None:
    registry = StreamRegistry()
    registry.register("Q1", StreamHandlers())
    registry.register("Q2", StreamHandlers())

    q1 = registry.get_session("Q1")
    q2 = registry.get_session("Q2")
    assert q1 is not None and q2 is not None
    q1.created_at = 100.0
    q2.created_at = 100.0
    q2.mark_received("metadata", now=101.0)

    assert registry.awaiting_first_response(5.0, now=104.0) == []
    assert registry.awaiting_first_response(5.0, now=106.0) == ["Q1"]
    assert q2.state is StreamState.STREAMING
