from __future__ import annotations

import math
from typing import Iterable, Iterator

from darkcycle_align.data_processing.schemas import ClassifiedSample, LightState, SensorSample

# Facility calibration; override per installation via NormalizeConfig.
DEFAULT_THRESHOLD = 5.0


def classify(sample: SensorSample, threshold: float = DEFAULT_THRESHOLD) -> ClassifiedSample:
    if not math.isfinite(threshold):
        raise ValueError(f"illumination threshold must be finite, got {threshold!r}")
    state = LightState.OFF if sample.illumination < threshold else LightState.ON
    return ClassifiedSample(sample=sample, state=state)


def classify_stream(samples: Iterable[SensorSample], threshold: float = DEFAULT_THRESHOLD) -> Iterator[ClassifiedSample]:
    for s in samples:
        yield classify(s, threshold)
