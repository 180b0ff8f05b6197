"""
knight_tours/reporting/report.py
────────────────────────────────
Text report: a fixed heading, then one aligned line per repeat.

            Unique                        Production   Cumm.
          complete     Cumm.      Total   rate         prod.
  Repeat     tours    unique   attempts   this repeat  rate
       1        12        12    1728000   0.0000       0.0000

The colony never formats text; it hands RepeatStats to an on_repeat
callable. ReportPrinter is that callable for the command line.
"""

from __future__ import annotations

import sys
from typing import List, Optional, TextIO

from knight_tours.shared.models import ColonyConfig, RepeatStats

COLUMN_HEADINGS: List[str] = [
    "          Unique                        Production   Cumm.",
    "        complete     Cumm.      Total   rate         prod.",
    "Repeat     tours    unique   attempts   this repeat  rate",
]

ROW_FORMAT: str = "%6d %9d %9d %10d   %6.4f       %6.4f"


def format_heading(config: ColonyConfig) -> List[str]:
    """Board / cycle summary followed by the three column-heading lines."""
    return [
        f"Board size: {config.board_size}",
        f"Cycles per repeat: {config.cycles_per_repeat}",
    ] + COLUMN_HEADINGS


def format_row(stats: RepeatStats) -> str:
    return ROW_FORMAT % (
        stats.repeat_index,
        stats.unique_this_repeat,
        stats.cumulative_unique,
        stats.cumulative_attempts,
        stats.production_rate_this_repeat,
        stats.cumulative_production_rate,
    )


class ReportPrinter:
    """
    on_repeat sink that writes the heading once, then one row per repeat.

    Args:
        config: Used for the heading only.
        stream: Defaults to sys.stdout, looked up at write time so pytest's
                capsys (and any later redirection) is honoured.
    """

    def __init__(self, config: ColonyConfig, stream: Optional[TextIO] = None) -> None:
        self._config = config
        self._stream = stream
        self._heading_written = False

    def write_heading(self) -> None:
        if self._heading_written:
            return
        out = self._out()
        for line in format_heading(self._config):
            print(line, file=out)
        self._heading_written = True

    def __call__(self, stats: RepeatStats) -> None:
        self.write_heading()
        out = self._out()
        print(format_row(stats), file=out)
        out.flush()

    def _out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout
