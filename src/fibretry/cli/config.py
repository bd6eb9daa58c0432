"""
CLI: ``fibretry config`` — effective settings inspection.
"""

from __future__ import annotations

import typer

from fibretry.cli.utils import build_configuration, console, output_dict

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    ctx: typer.Context,
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show settings resolved from FIBRETRY_* variables and .env."""
    settings = ctx.obj

    if format == "json":
        console.print_json(settings.model_dump_json())
        return

    if format == "env":
        for key, value in sorted(settings.model_dump().items()):
            console.print(f"FIBRETRY_{key.upper()}={'' if value is None else value}")
        return

    output_dict(settings, title="Settings")


@app.command("validate")
def validate_config(ctx: typer.Context) -> None:
    """Build the engine configuration and report whether it is valid."""
    config = build_configuration(ctx.obj)
    breaker = f"threshold {config.failure_threshold}" if config.breaker_enabled else "disabled"
    console.print(
        f"[green]Configuration OK[/green]: {config.max_attempts} attempts, "
        f"{config.initial_delay_ms} ms initial delay, breaker {breaker}"
    )
