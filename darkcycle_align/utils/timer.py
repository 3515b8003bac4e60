from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

log = logging.getLogger(__name__)


@contextmanager
def timed(section: str, timings: Optional[Dict[str, float]] = None) -> Iterator[None]:
    """Records wall time of a pipeline stage into `timings` (seconds)."""
    start = time.perf_counter()
    try:
        yield
    finally:
        dur = time.perf_counter() - start
        if timings is not None:
            timings[section] = timings.get(section, 0.0) + dur
        log.debug("stage %s took %.4fs", section, dur)
