"""
knight_tours/reporting/visualize.py
───────────────────────────────────
Render one tour as a grid of move-order numbers.

The home square is 1, the square reached by the first move is 2, and so
on. Squares the tour never reached are 0 in the array and blank in the
text form. Pure functions: they read a Tour value and nothing else.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from knight_tours.shared.models import Tour


def tour_grid(tour: Tour) -> NDArray[np.int64]:
    """N×N array of visit order (1-based); 0 = not visited."""
    n = tour.board_size
    seq = np.zeros(n * n, dtype=np.int64)
    for order, square in enumerate(tour.squares, start=1):
        seq[square] = order
    return seq.reshape(n, n)


def format_tour_grid(tour: Tour) -> str:
    """
    "Move sequence:" followed by one line per board row.

    Each cell is four characters wide: " %3d", or four spaces if unvisited.
    """
    lines = ["Move sequence:"]
    for row in tour_grid(tour):
        lines.append("".join(f" {int(m):3d}" if m > 0 else "    " for m in row))
    return "\n".join(lines)
