"""Runner script for the colony example trip pipeline."""

import argparse
import logging
import shutil
from pathlib import Path

from pipeline.pipeline import Pipeline
from processing import (
    build_trip_summaries,
    final_check,
    get_trips,
    interpolate_trips,
    load_data,
    prepare_tracks,
    write_data,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.yaml"

processing_steps = [
    load_data,
    prepare_tracks,
    get_trips,
    interpolate_trips,
    build_trip_summaries,
    final_check,
    write_data,
]


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Colony example trip pipeline")
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Clear the pipeline cache before running",
    )
    args = parser.parse_args()

    cache_dir = Path(".cache")
    if args.clear_cache and cache_dir.exists():
        shutil.rmtree(cache_dir)

    pipeline = Pipeline(
        config_path=CONFIG_PATH,
        steps=processing_steps,
        caching=True,
    )
    result = pipeline.run()

    logger.info("Trips:\n%s", result.trips)
    logger.info("Pipeline finished successfully.")
