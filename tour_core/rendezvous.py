"""
tour_core/rendezvous.py
───────────────────────
ReleaseGate: the two-phase barrier that separates the colony's write
phase from the ants' read phase.

One cycle, as seen by the gate
──────────────────────────────
  coordinator                          each ant
  ───────────                          ────────
  network.evaporate()
  gate.release()          ───────▶     gate.wait_for_release(last_seen)
                                       gate.acknowledge()
  gate.wait_for_acknowledgements() ◀── (all N acknowledged)
  collect N tours          ◀───────    build tour, put it on the queue
  merge deposits

Why two phases?
  Release alone is not enough. The coordinator must know every ant has
  woken up for THIS cycle before it can treat the gate as re-armed for the
  next one; otherwise a slow ant could sleep through a release, or a fast
  one could consume two.

Generations instead of re-arming
────────────────────────────────
Every release bumps a generation counter. An ant remembers the last
generation it served and waits for a strictly newer one, so it can never
act on the same release twice and re-arming is implicit. All state is
guarded by a single threading.Condition.
"""

from __future__ import annotations

import threading
from typing import Optional


class GateClosedError(RuntimeError):
    """Raised by release() after the gate has been closed."""


class ReleaseGate:
    """
    Reusable release / acknowledge rendezvous for a fixed number of parties.

    Attributes:
        n_parties  : number of ants that must acknowledge each release.
        generation : number of releases so far (0 before the first one).
    """

    def __init__(self, n_parties: int) -> None:
        if n_parties < 1:
            raise ValueError(f"ReleaseGate requires n_parties≥1, got {n_parties}")
        self.n_parties = n_parties
        self._cond = threading.Condition()
        self._generation = 0
        self._pending_acks = 0
        self._closed = False

    # ── Coordinator side ─────────────────────────────────────────────────────

    def release(self) -> int:
        """
        Open the gate for a new cycle and arm the acknowledgement counter.

        Returns:
            The new generation number.

        Raises:
            GateClosedError: if close() was called.
            RuntimeError:    if the previous release is still waiting for
                             acknowledgements (the barrier has no overlap mode).
        """
        with self._cond:
            if self._closed:
                raise GateClosedError("Cannot release a closed gate.")
            if self._pending_acks:
                raise RuntimeError(
                    f"Release {self._generation} still waiting for "
                    f"{self._pending_acks} acknowledgement(s)."
                )
            self._generation += 1
            self._pending_acks = self.n_parties
            self._cond.notify_all()
            return self._generation

    def wait_for_acknowledgements(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every party acknowledged the current release.

        Returns:
            True if all acknowledged, False if the timeout expired first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._pending_acks == 0, timeout)

    def close(self) -> None:
        """Wake every waiting ant with "no more cycles". Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    # ── Ant side ─────────────────────────────────────────────────────────────

    def wait_for_release(self, last_seen: int) -> Optional[int]:
        """
        Block until a release newer than `last_seen` happens.

        Returns:
            The generation to serve, or None once the gate is closed.
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._closed or self._generation > last_seen
            )
            if self._closed:
                return None
            return self._generation

    def acknowledge(self) -> None:
        """
        Tell the coordinator this ant has woken up for the current release.

        Raises:
            RuntimeError: if every party already acknowledged.
        """
        with self._cond:
            if self._pending_acks <= 0:
                raise RuntimeError("acknowledge() called with no release pending.")
            self._pending_acks -= 1
            if self._pending_acks == 0:
                self._cond.notify_all()

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        with self._cond:
            return self._generation

    @property
    def acknowledged(self) -> int:
        """Parties that have acknowledged the current release."""
        with self._cond:
            if self._generation == 0:
                return 0
            return self.n_parties - self._pending_acks

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __repr__(self) -> str:
        return (
            f"ReleaseGate(n_parties={self.n_parties}, generation={self._generation}, "
            f"pending_acks={self._pending_acks}, closed={self._closed})"
        )
