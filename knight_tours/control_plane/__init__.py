"""
knight_tours/control_plane — configuration intake and the background runner.

Public API:
    load_config         — raw values → validated ColonyConfig
    ConfigurationError  — raised for any invalid configuration
    TourSearchService   — runs a Colony on a thread, stops at repeat boundaries
"""

from knight_tours.control_plane.configuration import load_config
from knight_tours.control_plane.service import TourSearchService
from tour_core.colony import ConfigurationError

__all__ = [
    "load_config",
    "ConfigurationError",
    "TourSearchService",
]
