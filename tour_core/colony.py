"""
tour_core/colony.py
───────────────────
The Colony: the coordinator that drives every ant through synchronized
cycles and keeps the statistics.

How the colony works
─────────────────────
The colony owns the pheromone network and one long-lived Ant thread per
board square. It runs two nested loops:

  Repeat (outer, unbounded unless limited):
    a. Reseed the network: every legal edge = initial_pheromone.
    b. Forget this repeat's unique tours (the cumulative set is kept).
    c. Run cycles_per_repeat cycles.
    d. Emit a RepeatStats record (log + on_repeat callback).

  Cycle (inner):
    1. Evaporate the network.
    2. Release every ant (ReleaseGate.release).
    3. Wait until every ant acknowledged — no ant is still reading the
       previous cycle's state and none can read pre-evaporation values.
    4. Receive exactly one result per ant from the results queue.
    5. In home-square order: complete tours add their key to both unique
       sets; every tour's deposits go into the cycle's accumulator.
    6. Merge the accumulator into the network and clear it.

Why process results in home-square order?
  Tours arrive in whatever order the threads finish. Floating-point
  addition is not associative, so summing deposits in arrival order would
  make the network differ in the last bits from run to run. Sorting makes
  a seeded run reproducible down to the exact snapshot.

Stopping
────────
run() checks its stop event only between repeats, never mid-cycle, so
the barrier is never torn down while ants are walking. shutdown() closes
the gate; every ant thread then exits on its next wait.

Error handling contract
────────────────────────
  ConfigurationError: invalid configuration, raised in __init__ before any
                      ant thread starts.
  AgentFailedError:   an ant raised while building its tour. The colony
                      still drains every result for the cycle, then raises.
                      Fatal: run() shuts the colony down.
  CycleAbortedError:  acknowledgements or results did not arrive within
                      config.result_timeout_s. Fatal.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, List, Optional, Set

import numpy as np

from knight_tours.shared.models import ColonyConfig, RepeatStats, Tour, TourKey
from tour_core.ant import Ant, AntResult
from tour_core.moves import MoveTable
from tour_core.pheromone import DepositAccumulator, PheromoneNetwork
from tour_core.rendezvous import ReleaseGate

logger = logging.getLogger(__name__)

RepeatCallback = Callable[[RepeatStats], None]


# ── Errors ────────────────────────────────────────────────────────────────────

class ConfigurationError(Exception):
    """
    Raised when the colony cannot start with the given configuration.

    Always raised before any ant thread exists — the simulation never
    begins on an inconsistent network.

    Attributes:
        reason: Human-readable explanation.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class AgentFailedError(Exception):
    """
    Raised when one or more ants failed to build a tour in a cycle.

    Attributes:
        cycle:    Colony-wide cycle number (1-based) that failed.
        failures: The failed AntResults, in home-square order.
    """

    def __init__(self, cycle: int, failures: List[AntResult], message: str = "") -> None:
        self.cycle = cycle
        self.failures = failures
        homes = ", ".join(str(f.ant_index) for f in failures)
        default_msg = (
            f"Cycle {cycle}: {len(failures)} ant(s) failed to return a tour "
            f"(home squares: {homes}). First error: {failures[0].error!r}"
        )
        super().__init__(message or default_msg)


class CycleAbortedError(Exception):
    """
    Raised when a cycle's barrier did not complete within the configured timeout.

    Attributes:
        cycle:    Colony-wide cycle number (1-based).
        phase:    "acknowledge" or "collect".
        received: How many ants had answered when the timeout expired.
        expected: How many ants the colony runs.
    """

    def __init__(self, cycle: int, phase: str, received: int, expected: int) -> None:
        self.cycle = cycle
        self.phase = phase
        self.received = received
        self.expected = expected
        super().__init__(
            f"Cycle {cycle} aborted during {phase}: "
            f"{received}/{expected} ant(s) answered before the timeout."
        )


# ── Validation ────────────────────────────────────────────────────────────────

def validate_config(config: ColonyConfig) -> MoveTable:
    """
    Board-level checks that pydantic's field constraints cannot express.

    Returns:
        The MoveTable for the configuration (callers reuse it).

    Raises:
        ConfigurationError: if the move pattern is malformed, the
                            evaporation factor is out of (0, 1), the initial
                            pheromone is not positive, or the board has no
                            legal move at all.
    """
    if not 0.0 < config.evaporation_factor < 1.0:
        raise ConfigurationError(
            f"evaporation_factor must be strictly between 0 and 1, "
            f"got {config.evaporation_factor}."
        )
    if config.initial_pheromone <= 0.0:
        raise ConfigurationError(
            f"initial_pheromone must be > 0, got {config.initial_pheromone}."
        )
    if config.cycles_per_repeat < 1:
        raise ConfigurationError(
            f"cycles_per_repeat must be ≥ 1, got {config.cycles_per_repeat}."
        )
    try:
        table = MoveTable(config.board_size, config.move_offsets)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    if table.n_legal_edges == 0:
        raise ConfigurationError(
            f"A {config.board_size}×{config.board_size} board has no legal move "
            f"for this piece; use board_size ≥ 3 for the knight."
        )
    return table


# ── The colony ────────────────────────────────────────────────────────────────

class Colony:
    """
    Coordinator for N² ant threads sharing one pheromone network.

    Usage:
        config = ColonyConfig(board_size=5, cycles_per_repeat=100, seed=7)
        with Colony(config, on_repeat=print) as colony:
            colony.run(max_repeats=3)

    Attributes:
        config             : ColonyConfig the colony was built with.
        repeat             : index of the current / last repeat (0 before any).
        cycles_completed   : total cycles completed across all repeats.
        tours_received     : per-ant count of tours returned so far.
        unique_this_repeat : keys of complete tours found this repeat.
        all_unique         : keys of complete tours found since start.
        history            : every RepeatStats emitted, oldest first.
        last_cycle_tours   : tours of the most recent cycle, home-square order.
        last_complete_tour : most recently found complete tour, or None.
    """

    def __init__(
        self,
        config: ColonyConfig,
        on_repeat: Optional[RepeatCallback] = None,
    ) -> None:
        """
        Build the network, the gate and the ants. No thread is started here.

        Raises:
            ConfigurationError: see validate_config().
        """
        self.config = config
        self._moves = validate_config(config)
        self._on_repeat = on_repeat

        self._network = PheromoneNetwork(self._moves)
        self._accumulator = DepositAccumulator(self._moves)
        self._n_ants = self._moves.n_squares
        self._gate = ReleaseGate(self._n_ants)
        self._results: queue.Queue = queue.Queue()

        # One independent generator per ant, all derived from one root seed.
        children = np.random.SeedSequence(config.seed).spawn(self._n_ants)
        self._ants: List[Ant] = [
            Ant(home, self._moves, self._network, np.random.default_rng(child))
            for home, child in enumerate(children)
        ]
        self._threads: List[threading.Thread] = []

        self.repeat: int = 0
        self.cycles_completed: int = 0
        self.tours_received: List[int] = [0] * self._n_ants
        self.unique_this_repeat: Set[TourKey] = set()
        self.all_unique: Set[TourKey] = set()
        self.history: List[RepeatStats] = []
        self.last_cycle_tours: List[Tour] = []
        self.last_complete_tour: Optional[Tour] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start one daemon thread per ant. Idempotent while running."""
        if self._gate.closed:
            raise RuntimeError("Colony has been shut down; build a new one.")
        if self._threads:
            return
        for ant in self._ants:
            sq = self._moves.square(ant.home)
            thread = threading.Thread(
                target=ant.serve,
                args=(self._gate, self._results),
                name=f"ant-{sq.row}-{sq.col}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info(
            "Colony started: %d ants on a %d×%d board, %d cycles per repeat.",
            self._n_ants, self.config.board_size, self.config.board_size,
            self.config.cycles_per_repeat,
        )

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Close the gate and join every ant thread. Idempotent."""
        self._gate.close()
        for thread in self._threads:
            thread.join(timeout)
        alive = sum(1 for t in self._threads if t.is_alive())
        if alive:
            logger.warning("Colony shutdown: %d ant thread(s) still running.", alive)
        else:
            logger.debug("Colony shutdown complete.")

    def __enter__(self) -> Colony:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    # ── Main loops ────────────────────────────────────────────────────────────

    def run(
        self,
        max_repeats: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> List[RepeatStats]:
        """
        Run repeats until max_repeats is reached or stop_event is set.

        Both conditions are checked only between repeats.

        Returns:
            The RepeatStats emitted by this call, oldest first.

        Raises:
            AgentFailedError, CycleAbortedError: fatal; the colony is shut
            down before the exception propagates.
        """
        self.start()
        emitted: List[RepeatStats] = []
        try:
            while max_repeats is None or len(emitted) < max_repeats:
                if stop_event is not None and stop_event.is_set():
                    logger.info("Stop requested; halting after repeat %d.", self.repeat)
                    break
                emitted.append(self.run_repeat())
        except (AgentFailedError, CycleAbortedError):
            logger.error("Colony aborted in repeat %d; shutting down.", self.repeat)
            self.shutdown()
            raise
        return emitted

    def run_repeat(self) -> RepeatStats:
        """Reseed, run cycles_per_repeat cycles, emit statistics."""
        self.begin_repeat()
        for _ in range(self.config.cycles_per_repeat):
            self.run_cycle()
        return self.finish_repeat()

    def begin_repeat(self) -> None:
        """Reseed the network and reset the per-repeat unique set."""
        self.repeat += 1
        self._network.reset(self.config.initial_pheromone)
        self.unique_this_repeat = set()
        logger.debug("Repeat %d: network reseeded at %g.", self.repeat, self.config.initial_pheromone)

    def run_cycle(self) -> List[Tour]:
        """
        One synchronized round: every ant returns exactly one tour.

        Returns:
            The cycle's tours in home-square order.
        """
        self.start()
        cycle = self.cycles_completed + 1
        timeout = self.config.result_timeout_s

        # 1. Evaporate BEFORE release: no ant may read pre-evaporation state.
        self._network.evaporate(self.config.evaporation_factor)

        # 2–3. Release, then wait for every ant to wake up.
        generation = self._gate.release()
        if not self._gate.wait_for_acknowledgements(timeout):
            raise CycleAbortedError(
                cycle, "acknowledge", self._gate.acknowledged, self._n_ants
            )

        # 4. Exactly one result per ant.
        results: List[AntResult] = []
        for _ in range(self._n_ants):
            try:
                results.append(self._results.get(timeout=timeout))
            except queue.Empty:
                raise CycleAbortedError(cycle, "collect", len(results), self._n_ants) from None
        results.sort(key=lambda r: r.ant_index)

        stale = [r for r in results if r.generation != generation]
        if stale:
            raise RuntimeError(
                f"Cycle {cycle}: received {len(stale)} result(s) from an earlier release."
            )
        failures = [r for r in results if not r.ok]
        if failures:
            raise AgentFailedError(cycle, failures)

        # 5. Uniqueness and deposits.
        tours: List[Tour] = []
        for result in results:
            tour = result.tour
            self.tours_received[result.ant_index] += 1
            if tour.is_complete:
                key = tour.key()
                self.unique_this_repeat.add(key)
                self.all_unique.add(key)
                self.last_complete_tour = tour
            self._accumulator.add_tour(tour)
            tours.append(tour)

        # 6. Merge. The only write to the network while ants exist.
        merged = self._network.merge_deposits(self._accumulator)

        self.cycles_completed = cycle
        self.last_cycle_tours = tours
        logger.debug(
            "Cycle %d: merged %.6f pheromone, %d complete tour(s).",
            cycle, merged, sum(1 for t in tours if t.is_complete),
        )
        return tours

    def finish_repeat(self) -> RepeatStats:
        """Build, record, log and publish this repeat's statistics."""
        attempts_per_repeat = self.config.cycles_per_repeat * self._n_ants
        cumulative_attempts = self.repeat * attempts_per_repeat
        stats = RepeatStats(
            repeat_index=self.repeat,
            unique_this_repeat=len(self.unique_this_repeat),
            cumulative_unique=len(self.all_unique),
            cumulative_attempts=cumulative_attempts,
            production_rate_this_repeat=len(self.unique_this_repeat) / attempts_per_repeat,
            cumulative_production_rate=len(self.all_unique) / cumulative_attempts,
        )
        self.history.append(stats)
        logger.info(
            "Repeat %d: %d unique tour(s), %d cumulative over %d attempts.",
            stats.repeat_index, stats.unique_this_repeat,
            stats.cumulative_unique, stats.cumulative_attempts,
        )
        if self._on_repeat is not None:
            self._on_repeat(stats)
        return stats

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def network(self) -> PheromoneNetwork:
        return self._network

    @property
    def move_table(self) -> MoveTable:
        return self._moves

    @property
    def ants(self) -> List[Ant]:
        return self._ants

    @property
    def n_ants(self) -> int:
        return self._n_ants

    @property
    def is_running(self) -> bool:
        return bool(self._threads) and not self._gate.closed

    def __repr__(self) -> str:
        return (
            f"Colony(board_size={self.config.board_size}, repeat={self.repeat}, "
            f"cycles={self.cycles_completed}, unique={len(self.all_unique)})"
        )
