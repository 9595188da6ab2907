from sqlstream.main import cli

cli()
