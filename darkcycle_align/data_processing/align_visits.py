from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from tqdm import tqdm

from darkcycle_align.data_processing.frames import (
    annotated_to_frame,
    events_from_frame,
    offset_histogram,
    samples_from_frame,
)
from darkcycle_align.data_processing.pipeline import normalize
from darkcycle_align.data_processing.schemas import EventRecord, SensorSample
from darkcycle_align.utils.config import config_from_mapping
from darkcycle_align.utils.timer import timed

log = logging.getLogger(__name__)


def _find_files(root: Path, globs: List[str]) -> List[Path]:
    files: List[Path] = []
    for g in globs:
        files.extend(root.glob(g))
    return sorted(set([f for f in files if f.is_file()]))


def _read_table(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def _write_table(df: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".parquet":
        # time/date objects are not parquet-native
        out = df.copy()
        for c in ("date", "time", "onset_date", "onset_time", "cycle_date"):
            if c in out.columns:
                out[c] = out[c].astype(str)
        out.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)


def _time_or_none(t: Optional[dt.time]) -> Optional[str]:
    return t.isoformat() if t is not None else None


def load_sensor_samples(cfg: Dict) -> List[SensorSample]:
    inputs = cfg["inputs"]
    path = Path(inputs["sensor_file"])
    if not path.exists():
        raise FileNotFoundError(f"Sensor file not found: {path}")

    cols = inputs.get("sensor_columns", {}) or {}
    df = _read_table(path)

    # a shared environment file can hold several cages; keep the selected one
    selected = inputs.get("sensor_location")
    location_col = cols.get("location")
    if selected is not None:
        if not location_col:
            raise ValueError("inputs.sensor_location requires inputs.sensor_columns.location")
        df = df[df[location_col].astype(str) == str(selected)].reset_index(drop=True)
        if df.empty:
            raise RuntimeError(f"No sensor rows for location {selected!r} in {path}")

    return samples_from_frame(
        df,
        date_col=cols.get("date", "date"),
        time_col=cols.get("time", "time"),
        value_col=cols.get("value", "illumination"),
        location_col=cols.get("location"),
    )


def load_visit_events(cfg: Dict) -> List[EventRecord]:
    """
    Reads every visit table under inputs.visits_dir, tags rows with their
    source file and returns one stream stably sorted by timestamp.
    """
    inputs = cfg["inputs"]
    root = Path(inputs["visits_dir"])
    files = _find_files(root, inputs.get("visit_globs", ["*.csv"]))
    if not files:
        raise FileNotFoundError(f"No visit files found under: {root}")

    cols = inputs.get("visit_columns", {}) or {}
    date_col = cols.get("date", "date")
    time_col = cols.get("time", "time")

    parts: List[pd.DataFrame] = []
    for fp in tqdm(files, desc="Loading visit files"):
        df = _read_table(fp)
        if df.empty:
            continue
        df["source_file"] = fp.name
        parts.append(df)

    if not parts:
        raise RuntimeError(f"All visit files under {root} are empty.")
    visits = pd.concat(parts, ignore_index=True)

    events = events_from_frame(visits, date_col=date_col, time_col=time_col, key_col=cols.get("key"))
    # files are concatenated, so restore time order; sort is stable
    return sorted(events, key=lambda e: (e.date, e.time))


def align_visits(cfg: Dict) -> Dict[str, object]:
    out = cfg.get("output", {}) or {}
    out_annotated = Path(out["annotated"])
    out_meta = Path(out["meta"])
    out_hist = Path(out["histogram"]) if out.get("histogram") else None
    bin_hours = float((cfg.get("report", {}) or {}).get("histogram_bin_hours", 1))

    align_cfg = config_from_mapping(cfg)

    timings: Dict[str, float] = {}
    with timed("load", timings):
        samples = load_sensor_samples(cfg)
        events = load_visit_events(cfg)

    result = normalize(events, samples, align_cfg, timings=timings)

    with timed("persist", timings):
        frame = annotated_to_frame(result.records)
        _write_table(frame, out_annotated)

        if out_hist is not None:
            out_hist.parent.mkdir(parents=True, exist_ok=True)
            offset_histogram(frame, bin_hours=bin_hours).to_csv(out_hist, index=False)

        meta = {
            "n_samples": len(samples),
            "n_events": len(events),
            "onsets": [
                {"date": str(o.date), "time": str(o.time), "synthetic": o.synthetic} for o in result.onsets
            ],
            "config": {
                "illumination_threshold": align_cfg.illumination_threshold,
                "plausibility_window_start": _time_or_none(align_cfg.plausibility_window_start),
                "plausibility_window_end": _time_or_none(align_cfg.plausibility_window_end),
                "normalize_to_positive_cycle": align_cfg.normalize_to_positive_cycle,
                "half_cycle_hours": align_cfg.half_cycle.total_seconds() / 3600.0,
                "repair_boundary": align_cfg.repair_boundary,
            },
            "report": result.report.as_dict(),
            "config_source": cfg.get("_meta", {}),
            "timings_sec": timings,
        }
        out_meta.parent.mkdir(parents=True, exist_ok=True)
        out_meta.write_text(json.dumps(meta, indent=2), encoding="utf-8")

    log.info("Visit alignment complete: %s", out_annotated.as_posix())
    return {
        "annotated_path": str(out_annotated),
        "meta_path": str(out_meta),
        "histogram_path": str(out_hist) if out_hist else None,
        "n_unassigned": len(result.report.unassigned),
        "timings": timings,
    }
