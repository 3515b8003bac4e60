from __future__ import annotations

import datetime as dt
from typing import Optional, Tuple

from darkcycle_align.data_processing.schemas import AnnotatedEventRecord, EventRecord, OnsetEvent

DAY = dt.timedelta(hours=24)


def _time_of_day(t: dt.time) -> dt.timedelta:
    return dt.timedelta(hours=t.hour, minutes=t.minute, seconds=t.second, microseconds=t.microsecond)


def compute_offset(event: EventRecord, onset: OnsetEvent) -> dt.timedelta:
    """Clock-time difference event.time - onset.time. Dates are ignored on purpose."""
    return _time_of_day(event.time) - _time_of_day(onset.time)


def normalize_offset(offset: dt.timedelta, date: dt.date) -> Tuple[dt.timedelta, dt.date]:
    """Wraps a negative offset into [0, 24h) and moves the date back one day."""
    if offset < dt.timedelta(0):
        return offset + DAY, date - dt.timedelta(days=1)
    return offset, date


def annotate(event: EventRecord, onset: Optional[OnsetEvent], normalize: bool = False) -> AnnotatedEventRecord:
    if onset is None:
        return AnnotatedEventRecord(event=event, assigned_onset=None, offset=None, cycle_date=None)

    offset = compute_offset(event, onset)
    cycle_date = event.date
    if normalize:
        offset, cycle_date = normalize_offset(offset, cycle_date)
    return AnnotatedEventRecord(event=event, assigned_onset=onset, offset=offset, cycle_date=cycle_date)
