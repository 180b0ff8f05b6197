"""
knight_tours — knight's-tour search by Ant Colony Optimisation.

The engine lives in tour_core. This package holds what surrounds it:

    knight_tours.shared.models   — ColonyConfig, RepeatStats, Square, Tour
    knight_tours.control_plane   — load_config, TourSearchService
    knight_tours.reporting       — report lines and tour grids
    knight_tours.cli             — the `knight-tours` command

Adapted from "Enumerating Knight's Tours using an Ant Colony Algorithm"
by Philip Hingston and Graham Kendall (CEC 2005).
"""

__version__ = "0.1.0"
