"""`veil-sdk` command-line interface. The Typer app and entry point live in `veil_sdk.cli.main`."""
