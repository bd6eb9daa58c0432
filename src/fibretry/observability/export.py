"""CSV export of retry delays.

Writes a two-column file, ``Attempt,Delay(ms)``, one row per entry, the
format spreadsheet tooling and the ``fibretry ladder --export`` command
share.

Example:
    >>> from fibretry.execution import DelayLadder
    >>> path = export_retry_data(DelayLadder(100, 5).as_rows(), "ladder.csv")
    >>> read_retry_data(path)
    [(1, 100.0), (2, 100.0), (3, 200.0), (4, 300.0), (5, 500.0)]
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from pathlib import Path

from fibretry.core.logging import get_logger

logger = get_logger(__name__)

HEADER = ("Attempt", "Delay(ms)")


def _format_delay(delay: float) -> str:
    if float(delay).is_integer():
        return str(int(delay))
    return f"{delay:.3f}"


def export_retry_data(rows: Iterable[tuple[int, float]], destination: str | Path) -> Path:
    """Write ``(attempt, delay_ms)`` rows to ``destination`` as CSV.

    Parent directories are created. Returns the written path.

    Raises:
        OSError: If the file cannot be written.
    """
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(HEADER)
        for attempt, delay in rows:
            writer.writerow((attempt, _format_delay(delay)))
            count += 1

    logger.info("export.written", path=str(path), rows=count)
    return path


def read_retry_data(source: str | Path) -> list[tuple[int, float]]:
    """Parse a file written by :func:`export_retry_data`.

    Raises:
        ValueError: If the header is not ``Attempt,Delay(ms)``.
    """
    with Path(source).open(newline="", encoding="utf-8") as fh:
        reader = csv.reader(fh)
        header = next(reader, None)
        if header is None or tuple(header) != HEADER:
            raise ValueError(f"Unexpected header in {source}: {header!r}")
        return [(int(attempt), float(delay)) for attempt, delay in reader if attempt]
