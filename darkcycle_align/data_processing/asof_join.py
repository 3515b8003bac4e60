from __future__ import annotations

import heapq
from typing import Iterable, Iterator, Optional

from darkcycle_align.data_processing.offsets import annotate
from darkcycle_align.data_processing.schemas import AnnotatedEventRecord, EventRecord, OnsetEvent

# Markers sort ahead of data records at the same instant.
_MARKER = 0
_DATA = 1


def _tagged(records: Iterable, rank: int):
    for seq, r in enumerate(records):
        yield (r.date, r.time, rank, seq), r


def assign_onsets(
    events: Iterable[EventRecord],
    onsets: Iterable[OnsetEvent],
    normalize: bool = False,
) -> Iterator[AnnotatedEventRecord]:
    """
    Backward-fill join: each event gets the latest onset at or before its instant.

    Both inputs must already be sorted by (date, time). The merge is a single
    linear sweep; events preceding every onset come out unassigned.
    """
    merged = heapq.merge(_tagged(onsets, _MARKER), _tagged(events, _DATA), key=lambda item: item[0])

    current: Optional[OnsetEvent] = None
    for (_, _, rank, _), record in merged:
        if rank == _MARKER:
            current = record
        else:
            yield annotate(record, current, normalize=normalize)
