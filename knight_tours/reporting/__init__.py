"""
knight_tours/reporting — turn colony output into text.

Public API:
    ReportPrinter     — on_repeat sink: heading once, one line per repeat
    format_heading    — heading lines for a ColonyConfig
    format_row        — one report line for a RepeatStats
    tour_grid         — N×N array of a tour's visit order
    format_tour_grid  — printable form of tour_grid
"""

from knight_tours.reporting.report import ReportPrinter, format_heading, format_row
from knight_tours.reporting.visualize import format_tour_grid, tour_grid

__all__ = [
    "ReportPrinter",
    "format_heading",
    "format_row",
    "tour_grid",
    "format_tour_grid",
]
