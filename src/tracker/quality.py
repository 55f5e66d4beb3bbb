"""Signal quality tiers from reported horizontal accuracy."""

from __future__ import annotations

from enum import Enum

# Upper bound (inclusive) of each tier, meters
HIGH_MAX_M = 5.0
MEDIUM_MAX_M = 15.0
LOW_MAX_M = 50.0


class Quality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    POOR = "poor"


def classify(accuracy_m: float) -> Quality:
    """Map accuracy radius in meters to a quality tier."""
    if accuracy_m <= HIGH_MAX_M:
        return Quality.HIGH
    if accuracy_m <= MEDIUM_MAX_M:
        return Quality.MEDIUM
    if accuracy_m <= LOW_MAX_M:
        return Quality.LOW
    return Quality.POOR
