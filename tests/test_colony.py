"""
tests/test_colony.py
────────────────────
Coordinator tests: the Colony driving real ant threads.

Reading guide
─────────────
Group 1 — Configuration
    Invalid configurations are refused before any thread starts.

Group 2 — One cycle
    Exact results on boards small enough to reason about by hand.

Group 3 — Invariants over many cycles
    Conservation, path validity, liveness, uniqueness accumulation.

Group 4 — Reproducibility
    Same seed → same tours and same pheromone snapshot.

Group 5 — Failure and stopping
    AgentFailedError, CycleAbortedError, stop events.

The 2×2 "rook step" board
─────────────────────────
With orthogonal single steps on a 2×2 board, the four squares form a
4-cycle. Every ant walks all the way round, so every tour is complete and
deposits exactly 1.0 per move. That gives exact numbers for the code paths
a knight only exercises on large boards.
"""

from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from knight_tours.shared.models import ColonyConfig
from tour_core.ant import deposit_amounts
from tour_core.colony import (
    AgentFailedError,
    Colony,
    ConfigurationError,
    CycleAbortedError,
    validate_config,
)

ROOK_STEPS = [(0, 1), (1, 0), (0, -1), (-1, 0)]

# Tours from a 5×5 board when every draw is 0.3, one per home square.
GOLDEN_KEYS_5X5 = [
    (0, 0, 0, 1, 3, 5, 0, 3, 6, 1, 4, 6, 0, 3, 0, 5, 4, 7, 0),  # length 17
    (0, 1, 0, 1, 3, 4, 6, 0, 3, 0, 5, 4, 7, 0, 2, 3, 5, 0, 0),  # length 17
    (0, 2, 1, 2, 4, 6, 1, 3, 6, 0, 3, 5, 6, 0, 1, 4, 4, 1, 0, 6, 4, 4),  # length 20
    (0, 3, 1, 2, 4, 5, 0, 2, 5, 0, 3, 6, 1, 4, 6, 0, 1),  # length 15
    (0, 4, 2, 2, 4, 6, 1, 3, 6, 5, 0, 1, 3, 5, 6, 0, 1, 4, 4, 1, 0, 6, 5),  # length 21
    (1, 0, 0, 2, 5, 0, 3, 6, 1, 4, 6, 0, 3, 0, 6, 4, 1, 6, 4),  # length 17
    (1, 1, 1, 3, 6, 1, 4, 7, 2, 5, 6, 0, 1),  # length 11
    (1, 2, 1, 3, 5, 0, 3, 6, 5),  # length 7
    (1, 3, 2, 3, 6, 1, 4, 6, 0, 3, 0, 5, 2, 5, 6),  # length 13
    (1, 4, 2, 3, 5, 0, 3, 6, 5, 0, 0, 2, 4, 5, 0, 3, 0, 6, 4, 7),  # length 18
    (2, 0, 1, 6, 3, 0, 5, 2, 7, 5, 0, 3, 0, 6, 4, 1, 6, 4, 3),  # length 17
    (2, 1, 1, 4, 6, 0, 3, 0, 5, 2, 5, 0, 3),  # length 11
    (2, 2, 2, 5, 0, 3, 6, 1, 4, 6, 0, 3, 0, 6, 4, 1, 6, 4, 3),  # length 17
    (2, 3, 2, 4, 6, 1, 3, 6, 5, 0, 1, 3, 5, 6, 0, 1, 4, 4, 1, 0, 6, 5),  # length 20
    (2, 4, 3, 3, 6, 1, 4, 6, 0, 3, 0, 5, 2, 5, 6, 0, 1),  # length 15
    (3, 0, 0, 5, 2, 7, 4, 1, 6, 1, 4, 5, 7, 0, 2, 5, 0, 5, 3, 0, 1),  # length 19
    (3, 1, 5, 0, 2, 5, 0, 3, 6, 1, 4, 6, 0, 1),  # length 12
    (3, 2, 3, 6, 1, 4, 6, 0, 3, 0, 5, 2, 5, 6, 0, 1),  # length 14
    (3, 3, 4, 2, 7, 4, 1, 6, 3, 0, 6, 3, 0, 6, 4, 4),  # length 14
    (3, 4, 3, 4, 6, 0, 3, 0, 5, 4, 7, 0, 2, 3, 5, 0, 3, 6, 5, 0, 0, 5),  # length 20
    (4, 0, 6, 1, 4, 6, 0, 3, 0, 5, 2, 5, 0, 0),  # length 12
    (4, 1, 5, 0, 3, 6, 1, 4, 6, 0, 3, 0, 5, 4, 7, 0, 2, 5, 0, 5),  # length 18
    (4, 2, 5, 2, 7, 4, 1, 6, 3, 6, 0, 3, 0, 6, 4, 1, 6, 4, 3),  # length 17
    (4, 3, 4, 5, 0, 2, 5, 0, 3, 6, 1, 4, 6, 0, 1),  # length 13
    (4, 4, 4, 4, 1, 6, 3, 0, 5, 2),  # length 8
]


# ─────────────────────────────────────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────────────────────────────────────

def _make_config(**overrides) -> ColonyConfig:
    values = dict(board_size=3, cycles_per_repeat=2, seed=7, result_timeout_s=10.0)
    values.update(overrides)
    return ColonyConfig(**values)


def _rook_config(**overrides) -> ColonyConfig:
    return _make_config(board_size=2, move_offsets=ROOK_STEPS, **overrides)


class _FixedDraw:
    """Stands in for an ant's Generator: every draw returns the same value."""

    def __init__(self, value: float) -> None:
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value


@pytest.fixture
def colony_factory():
    """Build colonies and make sure every one is shut down after the test."""
    built = []

    def _factory(config: ColonyConfig, **kwargs) -> Colony:
        colony = Colony(config, **kwargs)
        built.append(colony)
        return colony

    yield _factory
    for colony in built:
        colony.shutdown()


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 1 — Configuration
# ─────────────────────────────────────────────────────────────────────────────

class TestConfiguration:
    """ConfigurationError before the first thread exists."""

    @pytest.mark.parametrize("n", [1, 2])
    def test_board_without_knight_moves_refused(self, n):
        before = threading.active_count()
        with pytest.raises(ConfigurationError, match="no legal move"):
            Colony(_make_config(board_size=n))
        assert threading.active_count() == before

    @pytest.mark.parametrize("factor", [0.0, 1.0, 1.5])
    def test_evaporation_out_of_range_refused(self, factor):
        # model_copy skips pydantic validation, so the colony's own check runs.
        config = _make_config().model_copy(update={"evaporation_factor": factor})
        with pytest.raises(ConfigurationError, match="evaporation_factor"):
            Colony(config)

    def test_non_positive_initial_pheromone_refused(self):
        config = _make_config().model_copy(update={"initial_pheromone": 0.0})
        with pytest.raises(ConfigurationError, match="initial_pheromone"):
            validate_config(config)

    def test_malformed_offsets_refused(self):
        config = _make_config().model_copy(update={"move_offsets": [(0, 0)]})
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_validate_config_returns_move_table(self):
        table = validate_config(_make_config(board_size=5))
        assert table.n_legal_edges == 96

    def test_construction_does_not_start_threads(self):
        colony = Colony(_make_config())
        assert not colony.is_running
        assert colony.n_ants == 9


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 2 — One cycle
# ─────────────────────────────────────────────────────────────────────────────

class TestSingleCycle:
    """Exact outcomes on hand-checkable boards."""

    def test_3x3_cycle(self, colony_factory):
        """Eight ants walk the ring (7 moves), the centre ant stays home."""
        colony = colony_factory(_make_config())
        colony.begin_repeat()
        tours = colony.run_cycle()

        assert [t.home for t in tours] == list(range(9))
        assert tours[4].length == 0
        assert all(t.length == 7 for i, t in enumerate(tours) if i != 4)
        assert not any(t.is_complete for t in tours)
        assert colony.unique_this_repeat == set()

    def test_3x3_mass_after_one_cycle(self, colony_factory):
        colony = colony_factory(_make_config())
        colony.begin_repeat()
        colony.run_cycle()

        per_tour = sum(deposit_amounts(7, 8))
        expected = 16 * 1e-6 * 0.75 + 8 * per_tour
        assert np.isclose(colony.network.total_mass(), expected)

    def test_rook_cycle_all_complete(self, colony_factory):
        colony = colony_factory(_rook_config())
        colony.begin_repeat()
        tours = colony.run_cycle()

        assert all(t.is_complete for t in tours)
        assert all(m.deposit == 1.0 for t in tours for m in t.moves)
        assert len(colony.unique_this_repeat) == 4
        assert colony.unique_this_repeat == colony.all_unique
        assert colony.last_complete_tour is not None
        assert np.isclose(colony.network.total_mass(), 8 * 1e-6 * 0.75 + 12.0)

    def test_rook_unique_tours_bounded(self, colony_factory):
        """Two directions per home square → at most 8 distinct tours."""
        colony = colony_factory(_rook_config(cycles_per_repeat=20))
        colony.run(max_repeats=1)
        assert 4 <= len(colony.all_unique) <= 8
        assert colony.history[0].cumulative_attempts == 20 * 4

    def test_deposits_invisible_until_merge(self, colony_factory):
        """Every ant in a cycle reads the same post-evaporation snapshot."""
        colony = colony_factory(_make_config(board_size=5))
        colony.begin_repeat()
        seen = []
        for ant in colony.ants:
            original = ant.construct

            def spy(_orig=original):
                seen.append(colony.network.total_mass())
                return _orig()

            ant.construct = spy
        colony.run_cycle()

        assert len(seen) == 25
        assert all(m == pytest.approx(96 * 1e-6 * 0.75) for m in seen)


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 3 — Invariants over many cycles
# ─────────────────────────────────────────────────────────────────────────────

class TestInvariants:

    def test_conservation_every_cycle(self, colony_factory):
        colony = colony_factory(_make_config(board_size=5))
        colony.begin_repeat()
        for _ in range(10):
            before = colony.network.total_mass()
            tours = colony.run_cycle()
            deposits = sum(t.total_deposit for t in tours)
            assert np.isclose(colony.network.total_mass(), before * 0.75 + deposits)

    def test_network_non_negative_and_illegal_edges_zero(self, colony_factory):
        colony = colony_factory(_make_config(board_size=5, cycles_per_repeat=10))
        colony.run(max_repeats=1)
        snap = colony.network.snapshot()
        assert np.all(snap >= 0.0)
        assert np.all(snap[~colony.move_table.legal_mask] == 0.0)

    def test_every_tour_is_a_simple_legal_path(self, colony_factory):
        colony = colony_factory(_make_config(board_size=5))
        table = colony.move_table
        colony.begin_repeat()
        for _ in range(5):
            for tour in colony.run_cycle():
                squares = tour.squares
                assert squares[0] == tour.home
                assert len(set(squares)) == len(squares)
                for m in tour.moves:
                    assert table.dest_index(m.origin, m.offset) == m.destination

    def test_liveness(self, colony_factory):
        """Every ant returns exactly one tour per cycle, every cycle."""
        colony = colony_factory(_make_config(board_size=4, cycles_per_repeat=3))
        history = colony.run(max_repeats=2)

        assert len(history) == 2
        assert colony.cycles_completed == 6
        assert colony.tours_received == [6] * 16

    def test_stats_arithmetic(self, colony_factory):
        colony = colony_factory(_make_config())
        history = colony.run(max_repeats=2)

        assert [s.repeat_index for s in history] == [1, 2]
        assert history[0].cumulative_attempts == 2 * 9
        assert history[1].cumulative_attempts == 2 * 2 * 9
        assert all(s.unique_this_repeat == 0 for s in history)
        assert all(s.cumulative_production_rate == 0.0 for s in history)

    def test_uniqueness_accumulates_across_repeats(self, colony_factory):
        per_repeat = []
        colony = None

        def capture(stats):
            per_repeat.append(set(colony.unique_this_repeat))

        colony = colony_factory(_rook_config(cycles_per_repeat=3), on_repeat=capture)
        history = colony.run(max_repeats=3)

        union = set()
        for stats, found in zip(history, per_repeat):
            union |= found
            assert stats.unique_this_repeat == len(found)
            assert stats.cumulative_unique == len(union)
        assert union == colony.all_unique
        cumulative = [s.cumulative_unique for s in history]
        assert cumulative == sorted(cumulative)

    def test_network_reseeded_each_repeat(self, colony_factory):
        colony = colony_factory(_make_config(board_size=4, cycles_per_repeat=2))
        colony.run(max_repeats=1)
        colony.begin_repeat()
        assert np.isclose(colony.network.total_mass(), 48 * 1e-6)

    def test_history_and_callback_agree(self, colony_factory):
        received = []
        colony = colony_factory(_make_config(), on_repeat=received.append)
        colony.run(max_repeats=2)
        assert received == colony.history


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 4 — Reproducibility
# ─────────────────────────────────────────────────────────────────────────────

class TestReproducibility:
    """Same seed, same board → identical network and tours."""

    def _run_one(self, colony_factory, seed):
        config = _make_config(board_size=5, cycles_per_repeat=1, seed=seed)
        colony = colony_factory(config)
        colony.run(max_repeats=1)
        return colony

    def test_same_seed_same_snapshot(self, colony_factory):
        a = self._run_one(colony_factory, 2024)
        b = self._run_one(colony_factory, 2024)

        assert np.array_equal(a.network.snapshot(), b.network.snapshot())
        assert [t.key() for t in a.last_cycle_tours] == [t.key() for t in b.last_cycle_tours]

    def test_seeded_cycle_conserves_mass(self, colony_factory):
        """5×5, ρ=0.75, τ0=1e-6, one cycle: ρ·τ0 on every legal edge plus deposits."""
        colony = self._run_one(colony_factory, 2024)
        snap = colony.network.snapshot()
        legal = colony.move_table.legal_mask

        assert np.all(snap[legal] >= 0.75e-6 - 1e-18)
        deposits = sum(t.total_deposit for t in colony.last_cycle_tours)
        assert np.isclose(snap.sum(), 96 * 0.75e-6 + deposits)

    def test_ant_generators_follow_seed_sequence(self):
        """Ant i draws from default_rng(SeedSequence(seed).spawn(N²)[i])."""
        colony = Colony(_make_config(board_size=5, seed=2024))
        children = np.random.SeedSequence(2024).spawn(25)
        expected = [np.random.default_rng(child).random(3).tolist() for child in children]
        assert [[ant._rng.random() for _ in range(3)] for ant in colony.ants] == expected

    def test_golden_cycle(self, colony_factory):
        """
        5×5, ρ=0.75, τ0=1e-6, one cycle, every draw fixed at 0.3.

        The network is uniform during the first cycle, so each ant takes
        candidate ceil(0.3 × m) − 1 of its m candidates, one draw per move.
        Tours, draw count and the merged network are pinned.
        """
        colony = colony_factory(_make_config(board_size=5, cycles_per_repeat=1, seed=2024))
        draws = [_FixedDraw(0.3) for _ in colony.ants]
        for ant, draw in zip(colony.ants, draws):
            ant._rng = draw
        history = colony.run(max_repeats=1)

        assert [t.key() for t in colony.last_cycle_tours] == GOLDEN_KEYS_5X5
        assert sum(d.calls for d in draws) == 383
        assert history[0].unique_this_repeat == 0

        snap = colony.network.snapshot()
        assert snap.sum() == pytest.approx(189.49650001934157, rel=1e-12)
        assert snap[0, 0] == pytest.approx(0.75e-6 + 3.3611694677871147, rel=1e-12)
        assert snap[0, 1] == pytest.approx(0.75e-6, rel=1e-12)
        assert snap[12, 1] == pytest.approx(0.75e-6 + 0.70588235294117652, rel=1e-12)
        assert snap[12, 2] == pytest.approx(0.75e-6 + 4.5288710276427331, rel=1e-12)
        assert snap[12, 3] == pytest.approx(0.75e-6 + 2.3919191919191922, rel=1e-12)
        assert snap[12, 4] == pytest.approx(0.75e-6 + 3.9170563097033684, rel=1e-12)
        assert snap[12, 5] == pytest.approx(0.75e-6, rel=1e-12)
        assert snap[24, 4] == pytest.approx(0.75e-6 + 1 / 3, rel=1e-12)
        assert snap[24, 0] == 0.0

    def test_different_seeds_differ(self, colony_factory):
        a = self._run_one(colony_factory, 1)
        b = self._run_one(colony_factory, 2)
        assert [t.key() for t in a.last_cycle_tours] != [t.key() for t in b.last_cycle_tours]


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 5 — Failure and stopping
# ─────────────────────────────────────────────────────────────────────────────

class TestFailureAndStopping:

    def test_agent_failure_raises_after_draining(self, colony_factory):
        colony = colony_factory(_make_config())

        def boom():
            raise RuntimeError("corrupt walk")

        colony.ants[1].construct = boom
        colony.begin_repeat()
        with pytest.raises(AgentFailedError) as exc_info:
            colony.run_cycle()

        err = exc_info.value
        assert err.cycle == 1
        assert [f.ant_index for f in err.failures] == [1]
        assert isinstance(err.failures[0].error, RuntimeError)

    def test_agent_failure_shuts_colony_down(self, colony_factory):
        colony = colony_factory(_make_config())

        def boom():
            raise RuntimeError("corrupt walk")

        colony.ants[0].construct = boom
        with pytest.raises(AgentFailedError):
            colony.run(max_repeats=1)
        assert not colony.is_running
        assert colony.history == []

    def test_slow_ant_aborts_cycle(self, colony_factory):
        colony = colony_factory(_make_config(result_timeout_s=0.25))
        original = colony.ants[2].construct

        def slow():
            time.sleep(1.5)
            return original()

        colony.ants[2].construct = slow
        colony.begin_repeat()
        with pytest.raises(CycleAbortedError) as exc_info:
            colony.run_cycle()

        err = exc_info.value
        assert err.phase == "collect"
        assert err.received == 8
        assert err.expected == 9

    def test_missing_acknowledgement_aborts_cycle(self, colony_factory):
        """One ant wakes but never acknowledges: 8 of 9 answered."""
        colony = colony_factory(_make_config(result_timeout_s=0.25))

        def stall(gate, results):
            gate.wait_for_release(0)

        colony.ants[3].serve = stall
        colony.begin_repeat()
        with pytest.raises(CycleAbortedError) as exc_info:
            colony.run_cycle()

        err = exc_info.value
        assert err.phase == "acknowledge"
        assert err.received == 8
        assert err.expected == 9
        assert "8/9" in str(err)

    def test_stop_event_set_before_run(self, colony_factory):
        colony = colony_factory(_make_config())
        stop = threading.Event()
        stop.set()
        assert colony.run(stop_event=stop) == []
        assert colony.repeat == 0

    def test_stop_event_honoured_at_repeat_boundary(self, colony_factory):
        stop = threading.Event()
        colony = colony_factory(_make_config(), on_repeat=lambda s: stop.set())
        history = colony.run(stop_event=stop)
        assert len(history) == 1
        assert colony.cycles_completed == 2

    def test_shutdown_stops_all_threads(self):
        colony = Colony(_make_config())
        colony.start()
        assert colony.is_running
        colony.shutdown()
        assert not colony.is_running
        assert not any(t.is_alive() for t in colony._threads)

    def test_cannot_restart_after_shutdown(self):
        colony = Colony(_make_config())
        colony.start()
        colony.shutdown()
        with pytest.raises(RuntimeError):
            colony.run(max_repeats=1)

    def test_context_manager(self):
        with Colony(_make_config()) as colony:
            colony.run(max_repeats=1)
            assert colony.is_running
        assert not colony.is_running
