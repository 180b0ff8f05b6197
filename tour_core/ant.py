"""
tour_core/ant.py
────────────────
One ant: a long-lived worker bound to one home square that builds one
candidate knight's tour per cycle.

What does an ant do?
─────────────────────
Starting on its home square, the ant repeatedly looks at every legal,
not-yet-visited destination and picks one at random, weighted by the
pheromone on the move that reaches it. It stops at a dead end (no
unvisited destination) or when it has visited every square. Either way
the walk is a valid tour value: a dead end is a normal outcome.

The selection rule
──────────────────
Roulette-wheel over the candidates' intensities, scanned in offset order:

    x       = U[0, 1) × Σ τ_candidates
    chosen  = first candidate whose cumulative τ ≥ x

No heuristic term: on a knight's board every move "costs" the same, so
the pheromone alone carries what the colony has learned.

The deposit rule
────────────────
For the i-th move (0-indexed) of a finished tour of length L on a board
whose complete tour has C = N² − 1 moves:

    deposit(i) = (L − i) / (C − i)

The denominator is how many moves were still structurally possible after
move i; the numerator is how many the ant actually went on to make. A
complete tour (L = C) deposits exactly 1.0 on every move. A dead end
deposits less on every move, and less the later the move came.

Worker lifecycle
────────────────
    Idle → WaitingForRelease → Walking → ReturningTour → WaitingForRelease …

serve() is the thread target. It exits only when the release gate is
closed. Any exception raised while building a tour is logged and sent to
the colony as a failed AntResult, so the colony still receives exactly one
message per ant for the cycle.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

import numpy as np

from knight_tours.shared.models import Tour, TourMove
from tour_core.moves import MoveTable, Step
from tour_core.pheromone import PheromoneNetwork
from tour_core.rendezvous import ReleaseGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AntResult:
    """
    The one message an ant sends the colony per cycle.

    Exactly one of tour / error is set.
    """
    ant_index: int
    generation: int
    tour: Optional[Tour] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ── Pure helpers ──────────────────────────────────────────────────────────────

def roulette_select(weights: np.ndarray, draw: float) -> int:
    """
    Pick an index with probability proportional to its weight.

    Args:
        weights: Nonnegative candidate weights, in scan order.
        draw:    Uniform sample in [0, 1).

    Returns:
        The first index whose cumulative weight is ≥ draw × total.
        All-zero weights select index 0.

    Implementation:
        np.cumsum + np.searchsorted(side="left") finds that first index in
        one vectorised call. The result is clamped to the last index:
        floating-point rounding in cumsum can otherwise push it one past
        the end when draw is close to 1.
    """
    cumsum = np.cumsum(weights)
    x = draw * float(cumsum[-1])
    chosen = int(np.searchsorted(cumsum, x, side="left"))
    return min(chosen, len(weights) - 1)


def deposit_amounts(length: int, complete_length: int) -> List[float]:
    """deposit(i) = (length − i) / (complete_length − i) for i in [0, length)."""
    if length > complete_length:
        raise ValueError(
            f"Tour length {length} exceeds complete length {complete_length}"
        )
    return [(length - i) / (complete_length - i) for i in range(length)]


def tour_from_steps(home: int, board_size: int, steps: Sequence[Step]) -> Tour:
    """Attach deposits to a finished walk and freeze it into a Tour."""
    complete_length = board_size * board_size - 1
    deposits = deposit_amounts(len(steps), complete_length)
    return Tour(
        home=home,
        board_size=board_size,
        moves=tuple(
            TourMove(origin=o, offset=k, destination=d, deposit=t)
            for (o, k, d), t in zip(steps, deposits)
        ),
    )


def tour_from_offsets(move_table: MoveTable, home: int, offsets: Sequence[int]) -> Tour:
    """
    Build the Tour an ant would return after following `offsets` from home.

    Raises:
        ValueError: if the offsets do not describe a simple path on the board.
    """
    steps = move_table.walk(home, offsets)
    return tour_from_steps(home, move_table.board_size, steps)


# ── The ant ───────────────────────────────────────────────────────────────────

class Ant:
    """
    Builds one tour per cycle from a fixed home square.

    The ant only ever READS the pheromone network. Its deposits travel
    back to the colony inside the returned Tour.

    Attributes:
        home : square index this ant starts every tour from.
    """

    def __init__(
        self,
        home: int,
        move_table: MoveTable,
        network: PheromoneNetwork,
        rng: np.random.Generator,
    ) -> None:
        """
        Args:
            home:       Home square index, in [0, N²).
            move_table: Shared, immutable move table.
            network:    Shared pheromone network (read-only for this ant).
            rng:        This ant's own generator. Never shared between ants,
                        so draws neither contend nor correlate.
        """
        if not 0 <= home < move_table.n_squares:
            raise ValueError(f"Home square {home} is not on a {move_table.board_size}² board")
        self.home = home
        self._moves = move_table
        self._network = network
        self._rng = rng

    def construct(self) -> Tour:
        """
        Walk one tour from home using the current pheromone intensities.

        Returns:
            The tour, deposits attached. Length is in [0, N² − 1].
        """
        moves = self._moves
        network = self._network
        complete_length = moves.complete_length

        tabu: Set[int] = {self.home}
        current = self.home
        steps: List[Step] = []

        while len(steps) < complete_length:
            candidates = [(k, d) for k, d in moves.moves_from(current) if d not in tabu]
            if not candidates:
                break  # dead end

            row = network.row(current)
            weights = row[[k for k, _ in candidates]]
            k, dest = candidates[roulette_select(weights, self._rng.random())]

            steps.append((current, k, dest))
            tabu.add(dest)
            current = dest

        return tour_from_steps(self.home, moves.board_size, steps)

    def serve(self, gate: ReleaseGate, results: queue.Queue) -> None:
        """
        Thread target: one tour per release until the gate closes.

        The acknowledgement is sent immediately on waking and before the
        network is read, so the colony knows no ant can still be looking
        at the previous cycle's state.
        """
        generation = 0
        while True:
            released = gate.wait_for_release(generation)
            if released is None:
                logger.debug("Ant %d: gate closed, exiting.", self.home)
                return
            generation = released
            gate.acknowledge()

            try:
                tour = self.construct()
            except Exception as e:
                logger.exception(
                    "Ant %d failed while building its tour for cycle %d",
                    self.home, generation,
                )
                results.put(AntResult(self.home, generation, error=e))
            else:
                results.put(AntResult(self.home, generation, tour=tour))

    def __repr__(self) -> str:
        sq = self._moves.square(self.home)
        return f"Ant(home=({sq.row}, {sq.col}))"
