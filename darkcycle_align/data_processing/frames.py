from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from darkcycle_align.data_processing.errors import MalformedInputError
from darkcycle_align.data_processing.schemas import AnnotatedEventRecord, EventRecord, SensorSample

log = logging.getLogger(__name__)


def _parse_instants(df: pd.DataFrame, date_col: str, time_col: Optional[str], stream: str) -> pd.Series:
    """
    Combines a date column and a time column into datetimes.
    When time_col is None, date_col is expected to hold full timestamps.
    """
    for c in (date_col, time_col):
        if c is not None and c not in df.columns:
            raise KeyError(f"{stream}: column {c!r} not found (have {list(df.columns)})")

    if time_col is None:
        raw = df[date_col].astype(str).str.strip()
    else:
        raw = df[date_col].astype(str).str.strip() + " " + df[time_col].astype(str).str.strip()
    ts = pd.to_datetime(raw, errors="coerce")

    bad = ts.isna().to_numpy()
    if bad.any():
        i = int(np.flatnonzero(bad)[0])
        raise MalformedInputError(stream, i, f"unparseable timestamp {raw.iloc[i]!r}")
    return ts


def samples_from_frame(
    df: pd.DataFrame,
    *,
    date_col: str = "date",
    time_col: Optional[str] = "time",
    value_col: str = "illumination",
    location_col: Optional[str] = None,
) -> List[SensorSample]:
    ts = _parse_instants(df, date_col, time_col, "sensor")
    values = pd.to_numeric(df[value_col], errors="coerce").to_numpy(dtype=float)
    bad = ~np.isfinite(values)
    if bad.any():
        i = int(np.flatnonzero(bad)[0])
        raise MalformedInputError("sensor", i, f"non-finite illumination {df[value_col].iloc[i]!r}")

    locations = df[location_col].astype(str).tolist() if location_col else [None] * len(df)
    return [
        SensorSample(date=t.date(), time=t.time(), illumination=float(v), location=loc)
        for t, v, loc in zip(ts, values, locations)
    ]


def events_from_frame(
    df: pd.DataFrame,
    *,
    date_col: str = "date",
    time_col: Optional[str] = "time",
    key_col: Optional[str] = None,
) -> List[EventRecord]:
    """Every column other than the timestamp columns is kept as payload."""
    ts = _parse_instants(df, date_col, time_col, "events")
    payload_cols = [c for c in df.columns if c not in (date_col, time_col)]
    payloads = df[payload_cols].to_dict(orient="records")
    keys = df[key_col].astype(str).tolist() if key_col else [None] * len(df)
    return [
        EventRecord(date=t.date(), time=t.time(), payload=p, key=k)
        for t, p, k in zip(ts, payloads, keys)
    ]


def annotated_to_frame(records: Iterable[AnnotatedEventRecord]) -> pd.DataFrame:
    rows = []
    for r in records:
        row = dict(r.event.payload)
        row.update(
            {
                "date": r.event.date,
                "time": r.event.time,
                "onset_date": r.assigned_onset.date if r.assigned_onset else None,
                "onset_time": r.assigned_onset.time if r.assigned_onset else None,
                "onset_synthetic": r.assigned_onset.synthetic if r.assigned_onset else None,
                "offset_hours": r.offset.total_seconds() / 3600.0 if r.offset is not None else np.nan,
                "cycle_date": r.cycle_date,
                "unassigned": r.unassigned,
            }
        )
        rows.append(row)
    return pd.DataFrame(rows)


def offset_histogram(frame: pd.DataFrame, bin_hours: float = 1.0, offset_col: str = "offset_hours") -> pd.DataFrame:
    """
    Counts assigned events per offset bin over [0, 24) hours.
    Negative offsets are wrapped so the histogram is independent of normalization.
    """
    n_bins = 24.0 / bin_hours if bin_hours > 0 else 0.0
    if n_bins < 1 or not np.isclose(n_bins, round(n_bins)):
        raise ValueError(f"bin_hours must divide 24, got {bin_hours}")

    edges = np.linspace(0.0, 24.0, int(round(n_bins)) + 1)
    if frame.empty or offset_col not in frame.columns:
        counts = np.zeros(len(edges) - 1, dtype=int)
    else:
        offsets = frame[offset_col].dropna().to_numpy(dtype=float)
        offsets = np.mod(offsets, 24.0)
        counts, _ = np.histogram(offsets, bins=edges)

    return pd.DataFrame({"bin_start_hours": edges[:-1], "bin_end_hours": edges[1:], "n_events": counts.astype(int)})
