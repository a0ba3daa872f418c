"""Static scenario presets.

Stress levels map to a fixed interest-rate increase (percentage points).
Rate-change templates are the ready-made what-happens-if-rates-move scenarios
offered alongside a saved calculation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

StressLevelName = Literal["mild", "moderate", "severe"]


@dataclass(frozen=True)
class StressLevel:
    name: str
    rate_increase: float  # percentage points
    description: str


@dataclass(frozen=True)
class RateChangeTemplate:
    change: float  # percentage points, signed
    description: str


STRESS_LEVELS: dict[str, StressLevel] = {
    "mild": StressLevel(
        name="mild",
        rate_increase=1.0,
        description="Mild economic downturn",
    ),
    "moderate": StressLevel(
        name="moderate",
        rate_increase=2.5,
        description="Moderate recession",
    ),
    "severe": StressLevel(
        name="severe",
        rate_increase=5.0,
        description="Severe economic crisis",
    ),
}

RATE_CHANGE_TEMPLATES: tuple[RateChangeTemplate, ...] = (
    RateChangeTemplate(0.5, "Small rate increase (+0.5%)"),
    RateChangeTemplate(1.0, "Moderate rate increase (+1.0%)"),
    RateChangeTemplate(2.0, "Large rate increase (+2.0%)"),
    RateChangeTemplate(-0.5, "Small rate decrease (-0.5%)"),
    RateChangeTemplate(-1.0, "Moderate rate decrease (-1.0%)"),
)

SUPPORTED_STRESS_LEVELS = frozenset(STRESS_LEVELS.keys())


def get_stress_level(name: str) -> StressLevel:
    """Return the preset for *name* (lower-cased).

    Raises ValueError for unknown stress levels.
    """
    key = name.lower()
    if key not in STRESS_LEVELS:
        raise ValueError(
            f"Unsupported stress level '{name}'. "
            f"Supported levels: {', '.join(sorted(SUPPORTED_STRESS_LEVELS))}"
        )
    return STRESS_LEVELS[key]

