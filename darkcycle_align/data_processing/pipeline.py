from __future__ import annotations

import datetime as dt
import logging
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from darkcycle_align.data_processing.asof_join import assign_onsets
from darkcycle_align.data_processing.classify import classify_stream
from darkcycle_align.data_processing.errors import MalformedInputError, NoOnsetDetectedError
from darkcycle_align.data_processing.onsets import (
    dedupe_onsets,
    detect_light_onsets,
    detect_onsets,
    filter_outliers,
    repair_boundary,
)
from darkcycle_align.data_processing.schemas import (
    EventRecord,
    NormalizationResult,
    NormalizeConfig,
    RunReport,
    SensorSample,
)
from darkcycle_align.utils.timer import timed

log = logging.getLogger(__name__)

R = TypeVar("R")


def check_ordered(records: Sequence[R], stream: str) -> Sequence[R]:
    """Fails fast on missing timestamps or a record earlier than its predecessor."""
    prev = None
    for i, r in enumerate(records):
        date = getattr(r, "date", None)
        time = getattr(r, "time", None)
        if not isinstance(date, dt.date) or not isinstance(time, dt.time):
            raise MalformedInputError(stream, i, f"missing or invalid timestamp (date={date!r}, time={time!r})")
        key = (date, time)
        if prev is not None and key < prev:
            raise MalformedInputError(stream, i, f"timestamp {date} {time} precedes {prev[0]} {prev[1]}")
        prev = key
    return records


def check_single_location(samples: Sequence[SensorSample]) -> Optional[str]:
    """A sensor stream covers one cage; interleaved locations would fake transitions."""
    location: Optional[str] = None
    for i, s in enumerate(samples):
        if s.location is None:
            continue
        if location is None:
            location = s.location
        elif s.location != location:
            raise MalformedInputError(
                "sensor", i, f"location {s.location!r} differs from {location!r}; supply one stream per location"
            )
    return location


def _repair_status(cfg: NormalizeConfig, report: RunReport, onsets: Sequence) -> str:
    if not cfg.repair_boundary:
        return "disabled"
    if report.n_light_onsets == 0:
        return "no_light_onset"
    if not any(o.synthetic for o in onsets):
        return "superseded"
    return "applied" if report.boundary_repaired else "filtered"


def normalize(
    events: Iterable[EventRecord],
    sensor_samples: Iterable[SensorSample],
    config: Optional[NormalizeConfig] = None,
    timings: Optional[Dict[str, float]] = None,
) -> NormalizationResult:
    """
    Annotates every event with its dark-cycle onset and offset.

    Stages: classify -> detect onsets -> boundary repair -> outlier filter -> as-of join.
    Raises MalformedInputError / NoOnsetDetectedError; unassigned events stay in the
    output and are listed in the report.
    """
    cfg = config or NormalizeConfig()
    samples: List[SensorSample] = list(check_ordered(list(sensor_samples), "sensor"))
    check_single_location(samples)
    event_list: List[EventRecord] = list(check_ordered(list(events), "events"))

    report = RunReport(n_samples=len(samples), n_events=len(event_list))

    with timed("classify", timings):
        classified = list(classify_stream(samples, cfg.illumination_threshold))

    with timed("detect", timings):
        candidates = list(detect_onsets(classified))
        report.n_candidates = len(candidates)
        report.n_light_onsets = sum(1 for _ in detect_light_onsets(classified))

    if report.n_candidates == 0 and report.n_light_onsets == 0:
        raise NoOnsetDetectedError(
            "no_transitions",
            detail=f"threshold={cfg.illumination_threshold}, n_samples={len(samples)}",
        )

    with timed("repair", timings):
        if cfg.repair_boundary:
            onsets = repair_boundary(classified, candidates, half_cycle=cfg.half_cycle)
        else:
            onsets = dedupe_onsets(candidates)

    if not onsets:
        raise NoOnsetDetectedError(
            "no_dark_onset",
            detail=f"{report.n_light_onsets} light onsets, boundary repair={cfg.repair_boundary}",
        )

    with timed("filter", timings):
        cleaned = filter_outliers(onsets, cfg.plausibility_window)
        report.n_outliers_removed = len(onsets) - len(cleaned)

    if not cleaned:
        raise NoOnsetDetectedError(
            "all_filtered",
            detail=f"{len(onsets)} candidates outside "
            f"[{cfg.plausibility_window_start}, {cfg.plausibility_window_end})",
        )
    report.boundary_repaired = any(o.synthetic for o in cleaned)
    report.boundary_repair = _repair_status(cfg, report, onsets)

    with timed("join", timings):
        records = list(assign_onsets(event_list, cleaned, normalize=cfg.normalize_to_positive_cycle))

    report.unassigned = [i for i, r in enumerate(records) if r.unassigned]

    log.info(
        "Onsets: %d candidates, %d kept (%d outliers, boundary repaired=%s)",
        report.n_candidates,
        len(cleaned),
        report.n_outliers_removed,
        report.boundary_repaired,
    )
    if report.unassigned:
        log.warning(
            "%d of %d events precede every known onset and are unassigned",
            len(report.unassigned),
            report.n_events,
        )

    return NormalizationResult(records=records, onsets=cleaned, report=report)
