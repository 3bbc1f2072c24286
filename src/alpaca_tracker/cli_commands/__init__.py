"""Command registrations for the Typer CLI.

`alpaca_tracker/cli.py` stays the entrypoint module (`pyproject.toml` points
the `tracker` script at `alpaca_tracker.cli:app`); commands live in this
package and are registered from there.
"""
