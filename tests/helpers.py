from __future__ import annotations

import datetime as dt
from typing import List, Sequence, Tuple

from darkcycle_align.data_processing.schemas import EventRecord, OnsetEvent, SensorSample


def ts(text: str) -> dt.datetime:
    return dt.datetime.strptime(text, "%Y-%m-%d %H:%M:%S" if text.count(":") == 2 else "%Y-%m-%d %H:%M")


def make_samples(rows: Sequence[Tuple[str, float]]) -> List[SensorSample]:
    out = []
    for text, lux in rows:
        t = ts(text)
        out.append(SensorSample(date=t.date(), time=t.time(), illumination=lux))
    return out


def make_events(stamps: Sequence[str]) -> List[EventRecord]:
    out = []
    for i, text in enumerate(stamps):
        t = ts(text)
        out.append(EventRecord(date=t.date(), time=t.time(), payload={"visit_id": i}, key=f"animal{i % 2}"))
    return out


def onset(text: str, synthetic: bool = False) -> OnsetEvent:
    return OnsetEvent.at(ts(text), synthetic=synthetic)


def hours(h: float) -> dt.timedelta:
    return dt.timedelta(hours=h)
