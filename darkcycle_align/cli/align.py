from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from darkcycle_align.data_processing.align_visits import align_visits
from darkcycle_align.data_processing.errors import AlignmentError
from darkcycle_align.utils.config import ensure_dirs, load_config
from darkcycle_align.utils.logging import setup_logging

log = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Align cage visits to the onset of the facility dark cycle.")
    p.add_argument("--config", required=True, help="Path to YAML config (supports extends).")
    p.add_argument("--sensor", default=None, help="Override inputs.sensor_file.")
    p.add_argument("--visits-dir", default=None, help="Override inputs.visits_dir.")
    p.add_argument("--location", default=None, help="Override inputs.sensor_location (cage in a shared sensor file).")
    p.add_argument("--out", default=None, help="Override output.annotated (.csv or .parquet).")
    p.add_argument("--threshold", type=float, default=None, help="Override alignment.illumination_threshold.")
    p.add_argument("--normalize", action="store_true", help="Wrap negative offsets into [0, 24h).")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)

    cfg.setdefault("inputs", {})
    cfg.setdefault("output", {})
    cfg.setdefault("alignment", {})
    if args.sensor:
        cfg["inputs"]["sensor_file"] = args.sensor
    if args.visits_dir:
        cfg["inputs"]["visits_dir"] = args.visits_dir
    if args.location:
        cfg["inputs"]["sensor_location"] = args.location
    if args.out:
        cfg["output"]["annotated"] = args.out
    if args.threshold is not None:
        cfg["alignment"]["illumination_threshold"] = args.threshold
    if args.normalize:
        cfg["alignment"]["normalize_to_positive_cycle"] = True

    ensure_dirs(cfg)
    setup_logging(level=cfg.get("logging", {}).get("level", "INFO"))

    try:
        summary = align_visits(cfg)
    except AlignmentError as e:
        log.error("Alignment failed: %s", e)
        return 2

    if summary["n_unassigned"]:
        log.warning("%d visits could not be assigned an onset; see %s", summary["n_unassigned"], summary["meta_path"])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
