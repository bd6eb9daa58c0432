"""
CLI utility helpers — output formatting and engine construction.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from fibretry.core.errors import FibretryError
from fibretry.core.settings import RetrySettings
from fibretry.execution import RetryConfiguration

console = Console()
err_console = Console(stderr=True)


# ── Engine helpers ───────────────────────────────────────────────────────


def build_configuration(
    settings: RetrySettings,
    *,
    max_attempts: int | None = None,
    initial_delay_ms: int | None = None,
    jitter_factor: float | None = None,
    failure_threshold: int | None = None,
    no_breaker: bool = False,
) -> RetryConfiguration:
    """Merge command-line overrides onto ``settings``; exit 2 on invalid values."""
    try:
        return RetryConfiguration(
            max_attempts=max_attempts if max_attempts is not None else settings.max_attempts,
            initial_delay_ms=initial_delay_ms if initial_delay_ms is not None else settings.initial_delay_ms,
            jitter_factor=jitter_factor if jitter_factor is not None else settings.jitter_factor,
            failure_threshold=None if no_breaker else (
                failure_threshold if failure_threshold is not None else settings.failure_threshold
            ),
            circuit_open_ms=settings.circuit_open_ms,
        )
    except FibretryError as e:
        fail(e, code=2)


def fail(error: FibretryError, *, code: int = 1) -> None:
    """Print a fibretry error and exit."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=code)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_table(items: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in items[0]:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(str(v) for v in item.values()))
    console.print(table)


def output_dict(data: Any, *, title: str = "") -> None:
    """Render a single mapping as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in _to_dict(data).items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
