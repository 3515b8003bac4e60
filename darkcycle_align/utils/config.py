from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from darkcycle_align.data_processing.schemas import NormalizeConfig

ALIGNMENT_KEYS = {
    "illumination_threshold",
    "plausibility_window",
    "normalize_to_positive_cycle",
    "half_cycle_hours",
    "repair_boundary",
}
REQUIRED_OUTPUTS = ("annotated", "meta")


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML root must be a mapping/dict: {path}")
    return data


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Nested sections merge key by key; scalars and lists from override replace."""
    out = dict(base)
    for k, v in override.items():
        if isinstance(out.get(k), dict) and isinstance(v, Mapping):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _parents(cfg: Mapping[str, Any], path: Path) -> List[Path]:
    extends = cfg.get("extends")
    if not extends:
        return []
    if isinstance(extends, (str, Path)):
        extends = [extends]
    if not isinstance(extends, list):
        raise ValueError(f"{path}: 'extends' must be a string or a list of strings.")
    out = []
    for parent in extends:
        p = Path(parent)
        out.append(p if p.is_absolute() else (path.parent / p).resolve())
    return out


def _extends_chain(path: Path, stack: List[Path], chain: List[Path]) -> None:
    # depth-first, parents before children, each file once
    if path in stack:
        cycle = " -> ".join(p.name for p in [*stack, path])
        raise ValueError(f"Circular 'extends' in config files: {cycle}")
    if path in chain:
        return
    cfg = load_yaml(path)
    for parent in _parents(cfg, path):
        _extends_chain(parent, [*stack, path], chain)
    chain.append(path)


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Loads a facility config, following 'extends' (a file name or a list, resolved
    relative to the including file). Files later in the chain win.

    _meta.config_path and _meta.extends_chain record where the settings came from,
    and end up in the alignment meta JSON.
    """
    path = Path(path).resolve()
    chain: List[Path] = []
    _extends_chain(path, [], chain)

    merged: Dict[str, Any] = {}
    for p in chain:
        layer = dict(load_yaml(p))
        layer.pop("extends", None)
        merged = _merge(merged, layer)

    merged["_meta"] = {"config_path": str(path), "extends_chain": [str(p) for p in chain]}
    return merged


def parse_time_of_day(value: Any) -> Optional[dt.time]:
    """Accepts None, datetime.time, "HH:MM" or "HH:MM:SS"."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.time):
        return value
    # YAML 1.1 reads unquoted 18:30 as sexagesimal int (minutes * 60 + seconds)
    if isinstance(value, int):
        raise ValueError(f"Ambiguous time-of-day {value!r}; quote it in YAML, e.g. \"18:30\".")
    text = str(value).strip()
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return dt.datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time-of-day: {value!r}")


def config_from_mapping(cfg: Mapping[str, Any]) -> NormalizeConfig:
    """
    Builds a NormalizeConfig from the 'alignment' section:

      alignment:
        illumination_threshold: 5
        plausibility_window: {start: "17:00", end: "19:00"}
        normalize_to_positive_cycle: false
        half_cycle_hours: 12
        repair_boundary: true
    """
    section = cfg.get("alignment", {}) or {}
    unknown = sorted(set(section) - ALIGNMENT_KEYS)
    if unknown:
        raise ValueError(f"Unknown alignment settings: {unknown} (allowed: {sorted(ALIGNMENT_KEYS)})")
    window = section.get("plausibility_window", {}) or {}
    defaults = NormalizeConfig()
    return NormalizeConfig(
        illumination_threshold=float(section.get("illumination_threshold", defaults.illumination_threshold)),
        plausibility_window_start=parse_time_of_day(window.get("start")),
        plausibility_window_end=parse_time_of_day(window.get("end")),
        normalize_to_positive_cycle=bool(section.get("normalize_to_positive_cycle", defaults.normalize_to_positive_cycle)),
        half_cycle=dt.timedelta(hours=float(section.get("half_cycle_hours", 12))),
        repair_boundary=bool(section.get("repair_boundary", defaults.repair_boundary)),
    )


def ensure_dirs(cfg: Dict[str, Any]) -> None:
    """
    Checks the run has somewhere to write its results and creates the parent
    directories. Paths without a suffix are treated as directories.

    Expected config layout:
      output:
        annotated: data/processed/visits_aligned.csv
        histogram: data/processed/offset_histogram.csv
        meta: data/processed/alignment_meta.json
    """
    output = cfg.get("output", {}) or {}
    missing = [k for k in REQUIRED_OUTPUTS if not output.get(k)]
    if missing:
        raise KeyError(f"Config section 'output' is missing: {missing}")
    for p in output.values():
        if isinstance(p, (str, Path)) and str(p).strip():
            pp = Path(p)
            parent = pp if pp.suffix == "" else pp.parent
            parent.mkdir(parents=True, exist_ok=True)
