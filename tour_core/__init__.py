"""
tour_core — concurrent Ant Colony engine for knight's-tour search.

Public API:
    Colony             — coordinator: owns the network, drives repeats/cycles
    ConfigurationError — raised before any ant starts on a bad configuration
    AgentFailedError   — an ant raised while building its tour (fatal)
    CycleAbortedError  — a cycle's barrier timed out (fatal)
    validate_config    — board-level configuration checks

Usage:
    from knight_tours.shared.models import ColonyConfig
    from tour_core import Colony

    with Colony(ColonyConfig(board_size=5, cycles_per_repeat=50)) as colony:
        stats = colony.run(max_repeats=2)   # List[RepeatStats]
"""

from tour_core.colony import (
    AgentFailedError,
    Colony,
    ConfigurationError,
    CycleAbortedError,
    validate_config,
)

__all__ = [
    "Colony",
    "ConfigurationError",
    "AgentFailedError",
    "CycleAbortedError",
    "validate_config",
]
