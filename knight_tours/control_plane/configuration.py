"""
knight_tours/control_plane/configuration.py
───────────────────────────────────────────
Configuration intake: turn raw startup values into a ColonyConfig, or
fail with one descriptive ConfigurationError.

Two layers of checks
─────────────────────
  1. Pydantic schema (ColonyConfig field constraints):
       board_size ≥ 1, cycles_per_repeat ≥ 1, 0 < evaporation_factor < 1,
       initial_pheromone > 0, seed ≥ 0, result_timeout_s > 0.

  2. Board semantics (tour_core.colony.validate_config):
       the move pattern is well formed and the board has at least one
       legal move. A 1×1 or 2×2 board has none for the knight.

Both run here, so the CLI can report a bad value before a Colony — and
its N² ant threads — is ever built. Colony.__init__ runs layer 2 again
for callers that construct ColonyConfig directly.

What it does NOT check
───────────────────────
  • Whether any complete tour exists on the board. 3×3 and 4×4 have none;
    the colony runs there and simply reports zero unique tours.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from knight_tours.shared.models import ColonyConfig
from tour_core.colony import ConfigurationError, validate_config


def load_config(**values: Any) -> ColonyConfig:
    """
    Build and fully validate a ColonyConfig.

    Args:
        **values: ColonyConfig fields. None values are dropped so callers can
                  pass optional CLI arguments straight through and get the
                  model defaults.

    Returns:
        The validated ColonyConfig.

    Raises:
        ConfigurationError: with every schema problem listed in the message,
                            or the first board-level problem.
    """
    supplied = {k: v for k, v in values.items() if v is not None}
    try:
        config = ColonyConfig(**supplied)
    except ValidationError as e:
        raise ConfigurationError(_describe(e)) from e

    validate_config(config)
    return config


def _describe(error: ValidationError) -> str:
    """One line per invalid field: "field: message (got value)"."""
    lines = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "config"
        lines.append(f"{field}: {item['msg']} (got {item.get('input')!r})")
    return "Invalid configuration: " + "; ".join(lines)
