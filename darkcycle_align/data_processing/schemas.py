from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional


class LightState(Enum):
    ON = 10
    OFF = 0

    @property
    def level(self) -> int:
        return self.value


@dataclass(frozen=True)
class SensorSample:
    date: dt.date
    time: dt.time
    illumination: float
    location: Optional[str] = None

    @property
    def instant(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.time)


@dataclass(frozen=True)
class ClassifiedSample:
    sample: SensorSample
    state: LightState

    @property
    def date(self) -> dt.date:
        return self.sample.date

    @property
    def time(self) -> dt.time:
        return self.sample.time

    @property
    def instant(self) -> dt.datetime:
        return self.sample.instant


@dataclass(frozen=True)
class OnsetEvent:
    """Start of a dark phase. `synthetic` marks onsets inferred by boundary repair."""

    date: dt.date
    time: dt.time
    synthetic: bool = False

    @property
    def instant(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.time)

    @classmethod
    def at(cls, instant: dt.datetime, synthetic: bool = False) -> "OnsetEvent":
        return cls(date=instant.date(), time=instant.time(), synthetic=synthetic)


@dataclass(frozen=True)
class EventRecord:
    date: dt.date
    time: dt.time
    payload: Mapping[str, Any] = field(default_factory=dict)
    key: Optional[str] = None

    @property
    def instant(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.time)


@dataclass(frozen=True)
class AnnotatedEventRecord:
    event: EventRecord
    assigned_onset: Optional[OnsetEvent]
    offset: Optional[dt.timedelta]
    cycle_date: Optional[dt.date]

    @property
    def unassigned(self) -> bool:
        return self.assigned_onset is None

    @property
    def date(self) -> dt.date:
        return self.event.date

    @property
    def time(self) -> dt.time:
        return self.event.time


@dataclass(frozen=True)
class PlausibilityWindow:
    """Half-open [start, end) on time of day. start > end wraps past midnight."""

    start: Optional[dt.time] = None
    end: Optional[dt.time] = None

    def contains(self, t: dt.time) -> bool:
        if self.start is None and self.end is None:
            return True
        if self.start is None:
            return t < self.end  # type: ignore[operator]
        if self.end is None:
            return t >= self.start
        if self.start <= self.end:
            return self.start <= t < self.end
        return t >= self.start or t < self.end


@dataclass(frozen=True)
class NormalizeConfig:
    illumination_threshold: float = 5.0
    plausibility_window_start: Optional[dt.time] = None
    plausibility_window_end: Optional[dt.time] = None
    normalize_to_positive_cycle: bool = False
    half_cycle: dt.timedelta = dt.timedelta(hours=12)
    repair_boundary: bool = True

    @property
    def plausibility_window(self) -> PlausibilityWindow:
        return PlausibilityWindow(self.plausibility_window_start, self.plausibility_window_end)


@dataclass
class RunReport:
    n_samples: int = 0
    n_events: int = 0
    n_candidates: int = 0
    n_light_onsets: int = 0
    n_outliers_removed: int = 0
    boundary_repaired: bool = False
    # applied | superseded | filtered | no_light_onset | disabled
    boundary_repair: str = "disabled"
    unassigned: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "n_samples": self.n_samples,
            "n_events": self.n_events,
            "n_candidates": self.n_candidates,
            "n_light_onsets": self.n_light_onsets,
            "n_outliers_removed": self.n_outliers_removed,
            "boundary_repaired": self.boundary_repaired,
            "boundary_repair": self.boundary_repair,
            "n_unassigned": len(self.unassigned),
            "unassigned": list(self.unassigned),
        }


@dataclass
class NormalizationResult:
    records: List[AnnotatedEventRecord]
    onsets: List[OnsetEvent]
    report: RunReport
