"""Rejects physically impossible samples before any stateful processing."""

from __future__ import annotations

import logging
import math

from shared.geo import is_valid_coordinate
from tracker.samples import RawSample

logger = logging.getLogger(__name__)


def validate(sample: RawSample) -> bool:
    """True if the sample can enter the fusion pipeline.

    Invalid samples are only reported; the caller drops them.
    """
    if not is_valid_coordinate(sample.latitude, sample.longitude):
        logger.warning(
            "Dropping sample with invalid coordinates: lat=%r lon=%r",
            sample.latitude, sample.longitude,
        )
        return False
    if not math.isfinite(sample.accuracy_m) or sample.accuracy_m < 0:
        logger.warning("Dropping sample with invalid accuracy: %r", sample.accuracy_m)
        return False
    return True
