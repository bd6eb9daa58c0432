"""
CLI: ``fibretry demo`` — run a simulated flaky API call through the engine.

``run`` makes one call and shows every delay that was waited; ``bench``
repeats the call with millisecond delays and reports latency and outcomes.
"""

from __future__ import annotations

import random
import time
from pathlib import Path

import typer

from fibretry.cli.utils import build_configuration, console, err_console, output_json, output_table
from fibretry.core.errors import CircuitOpenError, FibretryError, RetryExhaustedError
from fibretry.execution import RecordingListener, RetryExecutor
from fibretry.observability import export_retry_data

app = typer.Typer(no_args_is_help=True)


class FlakyOperation:
    """Simulated API call that times out with probability ``failure_rate``."""

    def __init__(self, failure_rate: float, rng: random.Random | None = None) -> None:
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()
        self.invocations = 0

    def __call__(self) -> str:
        self.invocations += 1
        if self.rng.random() < self.failure_rate:
            raise ConnectionError("API request timeout")
        return "API response payload"


@app.command("run")
def run_demo(
    ctx: typer.Context,
    failure_rate: float = typer.Option(0.7, "--failure-rate", "-f", min=0.0, max=1.0),
    max_attempts: int | None = typer.Option(None, "--max-attempts", "-n"),
    initial_delay_ms: int | None = typer.Option(None, "--initial-delay-ms", "-d"),
    seed: int | None = typer.Option(None, "--seed", help="Seed failures and jitter"),
    use_async: bool = typer.Option(False, "--async", help="Run through submit() on the scheduler loop"),
    export: Path | None = typer.Option(None, "--export", help="Write waited delays as CSV"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Call a flaky operation once, retrying with Fibonacci backoff."""
    config = build_configuration(ctx.obj, max_attempts=max_attempts, initial_delay_ms=initial_delay_ms)
    operation = FlakyOperation(failure_rate, random.Random(seed))
    recorder = RecordingListener()
    rng = random.Random(seed) if seed is not None else None

    outcome: dict[str, object] = {}
    with RetryExecutor(config, name="demo", listener=recorder, rng=rng) as executor:
        try:
            if use_async:
                result = executor.submit(operation).result()
            else:
                result = executor.call(operation)
            outcome = {"status": "success", "result": result}
        except RetryExhaustedError as e:
            outcome = {"status": "exhausted", "error": repr(e.last_error)}
        except FibretryError as e:
            outcome = {"status": e.category.value.lower(), "error": e.message}

    outcome["invocations"] = operation.invocations
    delays = [{"attempt": a, "delay_ms": round(d, 3)} for a, d in recorder.rows]

    if export is not None:
        export_retry_data(recorder.rows, export)

    if json_out:
        output_json({**outcome, "delays": delays})
    else:
        output_table(delays, title="Waited delays")
        colour = "green" if outcome["status"] == "success" else "red"
        console.print(f"[bold {colour}]{outcome['status']}[/bold {colour}] after {operation.invocations} invocation(s)")
        if "result" in outcome:
            console.print(f"Final result: {outcome['result']}")
        else:
            err_console.print(f"Critical failure: {outcome['error']}")

    if outcome["status"] != "success":
        raise typer.Exit(code=1)


@app.command("bench")
def bench(
    ctx: typer.Context,
    runs: int = typer.Option(20, "--runs", "-r", min=1),
    failure_rate: float = typer.Option(0.7, "--failure-rate", "-f", min=0.0, max=1.0),
    max_attempts: int | None = typer.Option(None, "--max-attempts", "-n"),
    initial_delay_ms: int = typer.Option(1, "--initial-delay-ms", "-d", min=1),
    breaker: bool = typer.Option(False, "--breaker/--no-breaker", help="Keep the circuit breaker on"),
    seed: int | None = typer.Option(None, "--seed"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Repeat the flaky call and report average latency per call."""
    config = build_configuration(
        ctx.obj,
        max_attempts=max_attempts,
        initial_delay_ms=initial_delay_ms,
        no_breaker=not breaker,
    )
    operation = FlakyOperation(failure_rate, random.Random(seed))
    counts = {"success": 0, "exhausted": 0, "rejected": 0}
    elapsed: list[float] = []

    with RetryExecutor(config, name="bench") as executor:
        for _ in range(runs):
            started = time.perf_counter()
            try:
                executor.call(operation)
                counts["success"] += 1
            except RetryExhaustedError:
                counts["exhausted"] += 1
            except CircuitOpenError:
                counts["rejected"] += 1
            elapsed.append((time.perf_counter() - started) * 1000.0)
        stats = executor.stats.snapshot()

    report = {
        "runs": runs,
        **counts,
        "avg_ms": round(sum(elapsed) / len(elapsed), 3),
        "max_ms": round(max(elapsed), 3),
        "attempts": stats["attempts"],
        "retries": stats["retries"],
    }
    if json_out:
        output_json(report)
    else:
        output_table([report], title="Benchmark")
