"""
knight_tours/control_plane/service.py
─────────────────────────────────────
TourSearchService: runs a Colony on a background thread and stops it
cleanly at a repeat boundary.

Why a service around the colony?
─────────────────────────────────
Colony.run() blocks its caller for as long as the search runs — forever,
by default. A command line or any other host needs to stay responsive
(Ctrl-C, a shutdown hook) without tearing the cycle barrier down halfway
through a round. The service:

  1. builds the Colony (configuration errors surface here, synchronously),
  2. runs colony.run() on a non-daemon "colony-coordinator" thread,
  3. forwards every RepeatStats to the caller's on_repeat sinks,
  4. exposes request_stop(): sets the stop event the colony checks
     between repeats,
  5. re-raises a fatal colony error from join(), on the caller's thread.

Thread safety
──────────────
history is appended only from the coordinator thread. Readers on other
threads get a copy via the history property.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from knight_tours.shared.models import ColonyConfig, RepeatStats
from tour_core.colony import Colony, RepeatCallback

logger = logging.getLogger(__name__)


class TourSearchService:
    """
    Background runner for one Colony.

    Usage:
        service = TourSearchService(config, on_repeat=printer)
        service.start(max_repeats=None)
        ...
        service.request_stop()      # finishes the repeat in progress
        service.join()              # re-raises a colony failure, if any
    """

    def __init__(
        self,
        config: ColonyConfig,
        on_repeat: Optional[RepeatCallback] = None,
    ) -> None:
        """
        Raises:
            ConfigurationError: if the colony cannot be built.
        """
        self._sinks: List[RepeatCallback] = []
        if on_repeat is not None:
            self._sinks.append(on_repeat)
        self._history: List[RepeatStats] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None
        self.colony = Colony(config, on_repeat=self._publish)

    def add_sink(self, sink: Callable[[RepeatStats], None]) -> None:
        """Register another consumer of RepeatStats. Call before start()."""
        self._sinks.append(sink)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, max_repeats: Optional[int] = None) -> None:
        """Start the coordinator thread. Raises RuntimeError if already started."""
        if self._thread is not None:
            raise RuntimeError("TourSearchService already started.")
        self._thread = threading.Thread(
            target=self._run,
            args=(max_repeats,),
            name="colony-coordinator",
        )
        self._thread.start()
        logger.info("Tour search started (max_repeats=%s).", max_repeats)

    def request_stop(self) -> None:
        """Ask the colony to stop after the repeat in progress."""
        if not self._stop.is_set():
            logger.info("Stop requested; the colony will halt at the next repeat boundary.")
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the coordinator thread.

        Returns:
            True if the thread has finished, False if the timeout expired.

        Raises:
            The colony's fatal error (AgentFailedError, CycleAbortedError, …)
            once the thread has finished with one.
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        if self._thread.is_alive():
            return False
        if self._error is not None:
            raise self._error
        return True

    def run(self, max_repeats: Optional[int] = None) -> List[RepeatStats]:
        """Start, wait, and return the history. Blocks the caller."""
        self.start(max_repeats)
        self.join()
        return self.history

    # ── Internals ─────────────────────────────────────────────────────────────

    def _run(self, max_repeats: Optional[int]) -> None:
        try:
            self.colony.run(max_repeats=max_repeats, stop_event=self._stop)
        except Exception as e:
            logger.exception("Tour search failed")
            self._error = e
        finally:
            self.colony.shutdown()
            logger.info(
                "Tour search finished after %d repeat(s), %d cumulative unique tour(s).",
                self.colony.repeat, len(self.colony.all_unique),
            )

    def _publish(self, stats: RepeatStats) -> None:
        with self._lock:
            self._history.append(stats)
        for sink in self._sinks:
            sink(stats)

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def history(self) -> List[RepeatStats]:
        with self._lock:
            return list(self._history)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()
