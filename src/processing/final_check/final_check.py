"""Final validation step for the trip outputs."""

import logging

import polars as pl

from pipeline import step

logger = logging.getLogger(__name__)


@step(validate_input=True)
def final_check(
    trip_fixes: pl.DataFrame,
    trips: pl.DataFrame,
    interpolated_fixes: pl.DataFrame | None = None,
    interpolated_trips: pl.DataFrame | None = None,
    issues: pl.DataFrame | None = None,
) -> dict[str, pl.DataFrame]:
    """Validate every output table and log a run summary.

    Validation happens in the step decorator on the inputs; tables that were
    never produced (e.g. no interpolation step) are skipped.

    Returns:
        The validated tables

    Raises:
        DataValidationError: If any table fails validation
    """
    logger.info("Starting final validation checks")

    by_type = trips.group_by("complete").len().sort("complete")
    for trip_type, n in by_type.iter_rows():
        logger.info("  %-10s %d", trip_type, n)

    if issues is not None and len(issues) > 0:
        by_error = issues.group_by("stage", "error").len().sort("stage", "error")
        for stage, error, n in by_error.iter_rows():
            logger.warning("  %s: %d %s", stage, n, error)

    logger.info("Final validation checks completed successfully")
    tables = {
        "trip_fixes": trip_fixes,
        "trips": trips,
        "interpolated_fixes": interpolated_fixes,
        "interpolated_trips": interpolated_trips,
        "issues": issues,
    }
    return {name: df for name, df in tables.items() if df is not None}
