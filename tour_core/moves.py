"""
tour_core/moves.py
──────────────────
The move table: which edges exist on the board.

An edge is (origin square, offset index k). It is legal when following
offset k from the origin lands on the board. Everything downstream —
the pheromone network's shape, the ant's candidate list, the tour key —
is addressed by these (square, k) pairs.

The table is computed once per colony and never changes, so it is
precomputed into two forms:

  • _dest[s][k]   : destination square index, or -1 if illegal.
                    Used by the ant's inner loop (plain Python lists are
                    faster than numpy indexing for 8-element scans).
  • legal_mask    : numpy bool array of shape (n_squares, n_offsets).
                    Used by the pheromone network to seed / validate edges.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from knight_tours.shared.models import KNIGHT_OFFSETS, Square

Step = Tuple[int, int, int]
"""(origin index, offset index, destination index)."""


class MoveTable:
    """
    Legal destinations from every square for a fixed move pattern.

    Attributes:
        board_size      : N.
        offsets         : (dr, dc) per offset index.
        n_squares       : N².
        n_offsets       : len(offsets) — 8 for the knight.
        complete_length : N² − 1, the length of a complete open tour.
    """

    def __init__(
        self,
        board_size: int,
        offsets: Sequence[Tuple[int, int]] = KNIGHT_OFFSETS,
    ) -> None:
        """
        Raises:
            ValueError: if board_size < 1, or offsets is empty, contains a
                        duplicate, or contains the null move (0, 0).
        """
        if board_size < 1:
            raise ValueError(f"MoveTable requires board_size≥1, got {board_size}")
        offsets = [tuple(o) for o in offsets]
        if not offsets:
            raise ValueError("MoveTable requires at least one move offset.")
        if len(set(offsets)) != len(offsets):
            raise ValueError(f"Move offsets must be distinct, got {offsets}")
        if (0, 0) in offsets:
            raise ValueError("Move offset (0, 0) would revisit the origin square.")

        self.board_size = board_size
        self.offsets: List[Tuple[int, int]] = offsets
        self.n_squares = board_size * board_size
        self.n_offsets = len(offsets)
        self.complete_length = self.n_squares - 1

        self._dest: List[List[int]] = []
        self._moves_from: List[List[Tuple[int, int]]] = []
        for s in range(self.n_squares):
            r, c = divmod(s, board_size)
            row_dest: List[int] = []
            for k in range(self.n_offsets):
                tr, tc, ok = self.destination(r, c, k)
                row_dest.append(tr * board_size + tc if ok else -1)
            self._dest.append(row_dest)
            self._moves_from.append(
                [(k, d) for k, d in enumerate(row_dest) if d >= 0]
            )

        self._legal: NDArray[np.bool_] = np.array(self._dest, dtype=np.int64) >= 0
        self._legal.setflags(write=False)

    # ── Lookups ───────────────────────────────────────────────────────────────

    def destination(self, row: int, col: int, k: int) -> Tuple[int, int, bool]:
        """Square reached by following offset k from (row, col), and whether it is on the board."""
        dr, dc = self.offsets[k]
        row += dr
        col += dc
        n = self.board_size
        return row, col, 0 <= row < n and 0 <= col < n

    def dest_index(self, square: int, k: int) -> int:
        """Destination index of edge (square, k), or -1 if the edge is illegal."""
        return self._dest[square][k]

    def moves_from(self, square: int) -> List[Tuple[int, int]]:
        """
        Legal (offset index, destination index) pairs from a square.

        Returned in offset-index order. The ant's roulette wheel scans
        candidates in this order, which makes tie-breaks deterministic.
        Do not mutate the returned list.
        """
        return self._moves_from[square]

    def is_legal_step(self, origin: int, destination: int) -> bool:
        return destination >= 0 and destination in self._dest[origin]

    def walk(self, home: int, offsets: Sequence[int]) -> List[Step]:
        """
        Follow an offset sequence from home and return the steps taken.

        Raises:
            ValueError: if an offset index is out of range, or any step
                        leaves the board or revisits a square.
        """
        visited = {home}
        current = home
        steps: List[Step] = []
        for k in offsets:
            if not 0 <= k < self.n_offsets:
                raise ValueError(
                    f"Offset index {k} is out of range for {self.n_offsets} move offsets."
                )
            dest = self._dest[current][k]
            if dest < 0:
                raise ValueError(
                    f"Offset {k} from square {current} leaves the "
                    f"{self.board_size}×{self.board_size} board."
                )
            if dest in visited:
                raise ValueError(f"Offset {k} from square {current} revisits square {dest}.")
            visited.add(dest)
            steps.append((current, k, dest))
            current = dest
        return steps

    # ── Index helpers ─────────────────────────────────────────────────────────

    def square_index(self, row: int, col: int) -> int:
        return row * self.board_size + col

    def square(self, index: int) -> Square:
        return Square.from_index(index, self.board_size)

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def legal_mask(self) -> NDArray[np.bool_]:
        """Read-only (n_squares, n_offsets) mask of legal edges."""
        return self._legal

    @property
    def n_legal_edges(self) -> int:
        return int(self._legal.sum())

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.n_squares, self.n_offsets)

    def __repr__(self) -> str:
        return (
            f"MoveTable(board_size={self.board_size}, n_offsets={self.n_offsets}, "
            f"legal_edges={self.n_legal_edges})"
        )
