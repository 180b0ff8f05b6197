"""
tour_core/pheromone.py
──────────────────────
The pheromone network: the colony's shared, per-repeat memory.

What is pheromone here?
───────────────────────
Every legal knight move (square s, offset k) carries an intensity τ[s][k].
An ant standing on s picks among its unvisited destinations with
probability proportional to τ. Moves that appeared early in long tours
get reinforced; everything decays a little every cycle.

Two forces balance each other:
  1. Evaporation  — τ ← τ × ρ on every edge, once per cycle, BEFORE any ant
                    reads the network that cycle.
  2. Deposit      — every ant's per-move deposits are summed into a
                    DepositAccumulator while the cycle runs and merged into
                    the network only after ALL ants have returned.
                    No ant ever sees another ant's same-cycle deposit.

Network layout
──────────────
  Shape : (n_squares, n_offsets), float64.
  τ[s][k]: intensity of the edge "from square s, follow offset k".
  Illegal edges (destination off the board) stay at exactly 0.0 and are
  never offered to an ant.

Concurrency
───────────
The network is read concurrently by every ant thread during a cycle and
written only by the colony between cycles, while no ant is running. The
release/acknowledge barrier (rendezvous.py) enforces that separation, so
no per-edge locking is needed here.

NumPy design choices
────────────────────
  • float64 throughout — intensities start at 1e-6 and are multiplied by
    0.75 thousands of times per repeat; float32 would underflow far sooner.
  • In-place operations (*=, +=) — the network is updated every cycle.
  • .copy() only in snapshot() — the one place we need a safe copy.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from numpy.typing import NDArray

from knight_tours.shared.models import Tour
from tour_core.moves import MoveTable


class PheromoneNetwork:
    """
    A 2D numpy array τ[n_squares][n_offsets] of move intensities.

    Used by:
        Ant.construct()  → reads row() to weight its candidate moves.
        Colony           → calls reset(), evaporate(), merge_deposits().
        Tests            → call snapshot() / total_mass() to inspect state.

    Invariant: every entry is ≥ 0, and every illegal edge is exactly 0.
    """

    def __init__(self, move_table: MoveTable) -> None:
        """
        Create an all-zero network shaped after the move table.

        The network is unusable until reset() seeds the legal edges —
        an all-zero network makes every ant pick its first candidate.
        """
        self._moves = move_table
        self._legal = move_table.legal_mask
        self._tau: NDArray[np.float64] = np.zeros(move_table.shape, dtype=np.float64)

    # ── Core operations ────────────────────────────────────────────────────────

    def reset(self, initial: float) -> None:
        """
        Seed every legal edge with `initial` and every illegal edge with 0.

        Called by the colony at the start of every repeat.

        Raises:
            ValueError: if initial is not positive.
        """
        if initial <= 0.0:
            raise ValueError(f"Initial pheromone must be > 0, got {initial}")
        self._tau.fill(0.0)
        self._tau[self._legal] = initial

    def evaporate(self, factor: float) -> None:
        """
        Multiply every intensity by `factor` in-place.

        Must run before the cycle's release — ants may never read a
        pre-evaporation value.

        Raises:
            ValueError: if factor is not strictly between 0 and 1.
        """
        if not 0.0 < factor < 1.0:
            raise ValueError(f"Evaporation factor must be in (0, 1), got {factor}")
        self._tau *= factor

    def merge_deposits(self, accumulator: DepositAccumulator) -> float:
        """
        Add a cycle's accumulated deposits to the network and clear the batch.

        Returns:
            The deposit mass merged (sum of the batch before clearing).
        """
        if accumulator.shape != self.shape:
            raise ValueError(
                f"Accumulator shape {accumulator.shape} does not match "
                f"network shape {self.shape}"
            )
        merged = accumulator.total()
        self._tau += accumulator.values
        accumulator.clear()
        return merged

    # ── Reads ──────────────────────────────────────────────────────────────────

    def intensity(self, square: int, offset: int) -> float:
        """Current intensity of edge (square, offset)."""
        return float(self._tau[square, offset])

    def row(self, square: int) -> NDArray[np.float64]:
        """
        Intensities of every offset from one square.

        ⚠️ This is a VIEW into the live network. Ants read it; they must
        never write to it.
        """
        return self._tau[square]

    # ── Inspection & testing ───────────────────────────────────────────────────

    def total_mass(self) -> float:
        """Sum of every intensity on the network."""
        return float(self._tau.sum())

    def snapshot(self) -> NDArray[np.float64]:
        """Deep copy of the current network. Mutating it does not affect τ."""
        return self._tau.copy()

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def shape(self) -> Tuple[int, int]:
        return self._tau.shape

    @property
    def move_table(self) -> MoveTable:
        return self._moves

    def __repr__(self) -> str:
        legal = self._tau[self._legal]
        if legal.size == 0:
            return f"PheromoneNetwork(shape={self.shape}, legal_edges=0)"
        return (
            f"PheromoneNetwork(shape={self.shape}, legal_edges={legal.size}, "
            f"min={legal.min():.3e}, max={legal.max():.3e}, mass={legal.sum():.4f})"
        )


class DepositAccumulator:
    """
    Per-cycle scratch buffer for pheromone deposits.

    The colony adds every returned tour here while collecting, then hands
    the whole batch to PheromoneNetwork.merge_deposits(), which clears it.
    Keeping deposits out of the live network until the cycle is over is
    what guarantees synchronous updates.
    """

    def __init__(self, move_table: MoveTable) -> None:
        self._legal = move_table.legal_mask
        self._values: NDArray[np.float64] = np.zeros(move_table.shape, dtype=np.float64)

    def add(self, square: int, offset: int, amount: float) -> None:
        """
        Raises:
            ValueError: if amount is negative or the edge is illegal.
        """
        if amount < 0.0:
            raise ValueError(f"Deposit must be ≥ 0, got {amount} on edge ({square}, {offset})")
        if not self._legal[square, offset]:
            raise ValueError(f"Edge ({square}, {offset}) is not a legal move")
        self._values[square, offset] += amount

    def add_tour(self, tour: Tour) -> None:
        for move in tour.moves:
            self.add(move.origin, move.offset, move.deposit)

    def total(self) -> float:
        return float(self._values.sum())

    def clear(self) -> None:
        self._values.fill(0.0)

    @property
    def values(self) -> NDArray[np.float64]:
        return self._values

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape
