from __future__ import annotations

import logging
import os

import typer

app = typer.Typer(add_completion=False, help="Alpaca account tracker (time-weighted returns)")
twr_app = typer.Typer(add_completion=False, help="Time-weighted return series per account and in aggregate")
app.add_typer(twr_app, name="twr")

_COMMANDS_REGISTERED = False


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging to stderr"),
):
    level = logging.DEBUG if verbose else getattr(logging, os.getenv("TRACKER_LOG_LEVEL", "WARNING").upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _register_commands() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return
    # Import here to keep `alpaca_tracker.cli` lightweight at import time.
    from alpaca_tracker.cli_commands.twr_cmd import register as register_twr
    from alpaca_tracker.cli_commands.twr_cmd import register_accounts

    register_accounts(app)
    register_twr(twr_app)
    _COMMANDS_REGISTERED = True


def main():
    _register_commands()
    app()

# Register commands when imported as a console-script entrypoint (`pyproject.toml` uses `alpaca_tracker.cli:app`).
_register_commands()


if __name__ == "__main__":
    main()
