"""
Root Typer application for the fibretry CLI.
"""

from __future__ import annotations

import sys

import typer
from pydantic import ValidationError
from typer import Typer

from fibretry.cli.utils import err_console
from fibretry.core.logging import configure_logging
from fibretry.core.settings import RetrySettings

app = Typer(
    name="fibretry",
    help="fibretry — Fibonacci-backoff retries with a circuit breaker.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from fibretry import __version__

        typer.echo(f"fibretry {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override FIBRETRY_LOG_LEVEL."),
) -> None:
    """fibretry CLI — inspect delay ladders and exercise the retry engine."""
    try:
        settings = RetrySettings()
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid FIBRETRY_* settings[/bold red]:\n{e}")
        raise typer.Exit(code=2) from e

    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_json,
        service="fibretry-cli",
        stream=sys.stderr,
    )
    ctx.obj = settings


# ── Sub-command registration ─────────────────────────────────────────────

from fibretry.cli.config import app as config_app  # noqa: E402
from fibretry.cli.demo import app as demo_app  # noqa: E402
from fibretry.cli.ladder import app as ladder_app  # noqa: E402

app.add_typer(ladder_app, name="ladder", help="Fibonacci delay ladder.")
app.add_typer(demo_app, name="demo", help="Simulated flaky call and benchmark.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
