"""
knight_tours/shared/models.py
─────────────────────────────
The single source of truth for every data structure in the tour search.

Design philosophy
-----------------
Two kinds of data live here:

  • Configuration and statistics (pydantic models).
    Built once per run / once per repeat. Validation matters more than
    speed, so these get Field constraints and descriptions.

  • Board values that flow through the hot path (plain dataclasses).
    A single cycle on an 8×8 board produces 64 tours of up to 63 moves.
    Running every move through pydantic validation would dominate the
    cycle time, so Square / TourMove / Tour are frozen dataclasses.

Reading guide
-------------
Read top-to-bottom. Each section builds on the ones above it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: MOVE PATTERN
# ─────────────────────────────────────────────────────────────────────────────

KNIGHT_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (1, 2), (2, 1), (2, -1), (1, -2),
    (-1, -2), (-2, -1), (-2, 1), (-1, 2),
)
"""(row, col) deltas of the eight knight moves.

The position of a delta in this tuple is its offset index k. Offset
indices are what the pheromone network is addressed by and what the
canonical tour key is made of, so the order is part of the data format.
"""

TourKey = Tuple[int, ...]
"""Canonical tour encoding: (home_row, home_col, k0, k1, ...)."""


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: CONFIGURATION
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_BOARD_SIZE: int = 8
DEFAULT_CYCLES_PER_REPEAT: int = 27000
DEFAULT_EVAPORATION_FACTOR: float = 0.75
DEFAULT_INITIAL_PHEROMONE: float = 1e-6


class ColonyConfig(BaseModel):
    """
    Everything the colony needs to know before its first cycle.

    Fields:
        board_size          → Grid dimension N. The colony runs one ant per
                              square (N² ants). 8 is the classic target.
        cycles_per_repeat   → Pheromone-update rounds between statistics
                              snapshots. The network is reseeded after each
                              block of cycles.
        evaporation_factor  → ρ: every intensity is multiplied by ρ once per
                              cycle. Strictly between 0 and 1.
        initial_pheromone   → Seed intensity written to every legal edge at the
                              start of each repeat.
        move_offsets        → (dr, dc) pattern of the moving piece. Defaults to
                              the knight.
        seed                → Root seed for every ant's random generator.
                              None = fresh OS entropy each run.
        result_timeout_s    → Upper bound on how long the coordinator waits for
                              acknowledgements and tours in one cycle.
                              None = wait forever.

    Schema checks live here (ranges). Board-level checks — e.g. "does this
    board have any legal move at all?" — need the move table and are done
    by tour_core.colony.validate_config().
    """
    board_size: int = Field(
        DEFAULT_BOARD_SIZE, ge=1,
        description="Grid dimension N (board is N×N)"
    )
    cycles_per_repeat: int = Field(
        DEFAULT_CYCLES_PER_REPEAT, ge=1,
        description="Cycles between statistics snapshots"
    )
    evaporation_factor: float = Field(
        DEFAULT_EVAPORATION_FACTOR, gt=0.0, lt=1.0,
        description="Per-cycle multiplicative pheromone decay ρ, 0 < ρ < 1"
    )
    initial_pheromone: float = Field(
        DEFAULT_INITIAL_PHEROMONE, gt=0.0,
        description="Seed intensity for every legal edge at repeat start"
    )
    move_offsets: List[Tuple[int, int]] = Field(
        default_factory=lambda: list(KNIGHT_OFFSETS),
        min_length=1,
        description="(dr, dc) deltas of the moving piece, in offset-index order"
    )
    seed: Optional[int] = Field(
        None, ge=0,
        description="Root seed for the per-ant random generators"
    )
    result_timeout_s: Optional[float] = Field(
        None, gt=0.0,
        description="Seconds to wait for agents in one cycle. None = no limit."
    )

    @property
    def n_squares(self) -> int:
        """N², also the number of ants."""
        return self.board_size * self.board_size

    @property
    def complete_length(self) -> int:
        """Number of moves in a complete open tour (N² − 1)."""
        return self.n_squares - 1


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: STATISTICS
# ─────────────────────────────────────────────────────────────────────────────

class RepeatStats(BaseModel):
    """
    One statistics snapshot, emitted by the colony at the end of a repeat.

    Fields:
        repeat_index                → 1-based repeat counter.
        unique_this_repeat          → Distinct complete tours found during this
                                      repeat.
        cumulative_unique           → Distinct complete tours found since the
                                      colony started. Never decreases.
        cumulative_attempts         → repeat_index × cycles_per_repeat × N².
                                      Every ant makes one attempt per cycle.
        production_rate_this_repeat → unique_this_repeat / attempts this repeat.
        cumulative_production_rate  → cumulative_unique / cumulative_attempts.
    """
    repeat_index: int = Field(..., ge=1)
    unique_this_repeat: int = Field(..., ge=0)
    cumulative_unique: int = Field(..., ge=0)
    cumulative_attempts: int = Field(..., ge=0)
    production_rate_this_repeat: float = Field(..., ge=0.0)
    cumulative_production_rate: float = Field(..., ge=0.0)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 4: BOARD VALUES
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Square:
    """A (row, col) position on an N×N board, 0-indexed."""
    row: int
    col: int

    def index(self, board_size: int) -> int:
        return self.row * board_size + self.col

    @classmethod
    def from_index(cls, index: int, board_size: int) -> Square:
        return cls(index // board_size, index % board_size)


@dataclass(frozen=True)
class TourMove:
    """
    One step of a tour: the edge taken and the pheromone it earned.

    origin / destination are square indices (row * N + col).
    offset is the offset index k of the edge (origin, k).
    """
    origin: int
    offset: int
    destination: int
    deposit: float


@dataclass(frozen=True)
class Tour:
    """
    The path one ant walked in one cycle, starting from its home square.

    A tour shorter than complete_length is a dead end: a normal outcome
    that still deposits pheromone but never counts as a unique tour.
    """
    home: int
    board_size: int
    moves: Tuple[TourMove, ...]

    @property
    def length(self) -> int:
        return len(self.moves)

    @property
    def complete_length(self) -> int:
        return self.board_size * self.board_size - 1

    @property
    def is_complete(self) -> bool:
        return len(self.moves) == self.complete_length

    @property
    def home_square(self) -> Square:
        return Square.from_index(self.home, self.board_size)

    @property
    def offsets(self) -> Tuple[int, ...]:
        return tuple(m.offset for m in self.moves)

    @property
    def squares(self) -> List[int]:
        """Visited square indices in order, home first."""
        return [self.home] + [m.destination for m in self.moves]

    @property
    def total_deposit(self) -> float:
        return sum(m.deposit for m in self.moves)

    def key(self) -> TourKey:
        """
        Canonical encoding used for deduplication.

        Two tours with the same home square and the same offset sequence
        are the same tour, whichever ant produced them and whatever
        deposits they carry.
        """
        home = self.home_square
        return (home.row, home.col) + self.offsets
