"""
CLI: ``fibretry ladder`` — inspect and export the Fibonacci delay ladder.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import typer

from fibretry.cli.utils import build_configuration, console, fail, output_json, output_table
from fibretry.core.errors import FibretryError
from fibretry.execution import DelayLadder, JitterSampler, simple_policy
from fibretry.observability import export_retry_data

app = typer.Typer(no_args_is_help=True)


def _ladder_rows(ladder: DelayLadder, sampler: JitterSampler) -> list[dict[str, object]]:
    rows = []
    cumulative = 0
    for attempt, delay in ladder.as_rows():
        low, high = sampler.bounds(delay)
        cumulative += delay
        rows.append({
            "attempt": attempt,
            "delay_ms": delay,
            "jitter_low_ms": round(low, 3),
            "jitter_high_ms": round(high, 3),
            "cumulative_ms": cumulative,
        })
    return rows


@app.command("show")
def show_ladder(
    ctx: typer.Context,
    max_attempts: int | None = typer.Option(None, "--max-attempts", "-n", help="Attempt budget (1-30)"),
    initial_delay_ms: int | None = typer.Option(None, "--initial-delay-ms", "-d", help="First rung in ms"),
    jitter: float | None = typer.Option(None, "--jitter", "-j", help="Jitter fraction"),
    simple: bool = typer.Option(False, "--simple", help="Plain policy: 1000 ms seed, no jitter"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show base delays and jitter bounds for every attempt."""
    if simple:
        try:
            config = simple_policy(max_attempts if max_attempts is not None else ctx.obj.max_attempts)
        except FibretryError as e:
            fail(e, code=2)
    else:
        config = build_configuration(
            ctx.obj,
            max_attempts=max_attempts,
            initial_delay_ms=initial_delay_ms,
            jitter_factor=jitter,
        )

    ladder = DelayLadder(config.initial_delay_ms, config.max_attempts)
    rows = _ladder_rows(ladder, JitterSampler(config.jitter_factor))

    if json_out:
        output_json({"config": asdict(config), "ladder": rows})
        return

    output_table(rows, title=f"Fibonacci ladder ({config.max_attempts} attempts)")
    console.print(f"\n[dim]Worst-case total delay: {ladder.total_ms} ms[/dim]")


@app.command("export")
def export_ladder(
    ctx: typer.Context,
    destination: Path = typer.Argument(..., help="CSV file to write"),
    max_attempts: int | None = typer.Option(None, "--max-attempts", "-n"),
    initial_delay_ms: int | None = typer.Option(None, "--initial-delay-ms", "-d"),
) -> None:
    """Write the base delay ladder as ``Attempt,Delay(ms)`` CSV."""
    config = build_configuration(ctx.obj, max_attempts=max_attempts, initial_delay_ms=initial_delay_ms)
    ladder = DelayLadder(config.initial_delay_ms, config.max_attempts)
    path = export_retry_data(ladder.as_rows(), destination)
    console.print(f"[green]Wrote {len(ladder)} rows to {path}[/green]")
