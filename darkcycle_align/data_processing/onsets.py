from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from darkcycle_align.data_processing.schemas import ClassifiedSample, OnsetEvent, PlausibilityWindow

log = logging.getLogger(__name__)

HALF_CYCLE = dt.timedelta(hours=12)


def _transitions(classified: Iterable[ClassifiedSample]) -> Iterator[Tuple[int, ClassifiedSample]]:
    """
    Yields (delta, sample) for every sample whose state differs from the previous one.
    delta < 0 is a dark onset (ON -> OFF), delta > 0 a light onset (OFF -> ON).
    """
    prev: Optional[ClassifiedSample] = None
    for cur in classified:
        if prev is not None:
            delta = cur.state.level - prev.state.level
            if delta != 0:
                yield delta, cur
        prev = cur


def detect_onsets(classified: Iterable[ClassifiedSample]) -> Iterator[OnsetEvent]:
    for delta, s in _transitions(classified):
        if delta < 0:
            yield OnsetEvent(date=s.date, time=s.time)


def detect_light_onsets(classified: Iterable[ClassifiedSample]) -> Iterator[OnsetEvent]:
    for delta, s in _transitions(classified):
        if delta > 0:
            yield OnsetEvent(date=s.date, time=s.time)


def dedupe_onsets(onsets: Iterable[OnsetEvent]) -> List[OnsetEvent]:
    # keep the first onset per instant
    out: List[OnsetEvent] = []
    for o in sorted(onsets, key=lambda x: (x.instant, x.synthetic)):
        if out and out[-1].instant == o.instant:
            continue
        out.append(o)
    return out


def repair_boundary(
    classified: Iterable[ClassifiedSample],
    onsets: Sequence[OnsetEvent],
    half_cycle: dt.timedelta = HALF_CYCLE,
) -> List[OnsetEvent]:
    """
    Prepends a synthetic onset at (first light onset - half_cycle).

    Covers recordings that start inside the dark phase, where the real onset
    predates the observation window. The synthetic onset is only kept when it
    is strictly earlier than the first detected onset; otherwise the detected
    onsets already cover every event and are returned unchanged (deduplicated).
    """
    detected = dedupe_onsets(onsets)
    first_light = next(detect_light_onsets(classified), None)
    if first_light is None:
        log.warning("Boundary repair skipped: no light-onset transition in sensor stream.")
        return detected

    synthetic = OnsetEvent.at(first_light.instant - half_cycle, synthetic=True)
    if detected and synthetic.instant >= detected[0].instant:
        log.debug(
            "Synthetic onset %s dropped: not earlier than first detected onset %s",
            synthetic.instant,
            detected[0].instant,
        )
        return detected

    log.debug("Synthetic onset %s from first light onset %s", synthetic.instant, first_light.instant)
    return [synthetic, *detected]


def filter_outliers(onsets: Iterable[OnsetEvent], window: PlausibilityWindow) -> List[OnsetEvent]:
    kept: List[OnsetEvent] = []
    for o in onsets:
        if window.contains(o.time):
            kept.append(o)
        else:
            log.debug("Dropping implausible onset at %s", o.instant)
    return kept
