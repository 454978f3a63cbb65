from strata.cli.app import app

app()
