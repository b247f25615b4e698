"""Collection of per-individual and per-trip processing issues.

Steps that can partially fail record each failure here and keep going; the
collected issues are returned alongside the best-effort output as the
canonical ``issues`` table.
"""

import logging

import polars as pl

from .exceptions import TripProcessingError

logger = logging.getLogger(__name__)

ISSUE_SCHEMA = {
    "stage": pl.Utf8,
    "error": pl.Utf8,
    "individual_id": pl.Utf8,
    "trip_id": pl.Int64,
    "message": pl.Utf8,
}


class IssueLog:
    """Accumulates TripProcessingError instances raised during a stage."""

    def __init__(self, stage: str) -> None:
        self.stage = stage
        self._rows: list[dict] = []

    def __len__(self) -> int:
        return len(self._rows)

    def record(self, error: TripProcessingError) -> None:
        """Record an error and log it as a warning."""
        logger.warning("[%s] %s", self.stage, error)
        self._rows.append(error.to_issue(self.stage))

    def to_frame(self) -> pl.DataFrame:
        """Return collected issues as a DataFrame."""
        return pl.DataFrame(self._rows, schema=ISSUE_SCHEMA)


def append_issues(
    existing: pl.DataFrame | None,
    new: pl.DataFrame,
) -> pl.DataFrame:
    """Concatenate a stage's issues onto issues from earlier steps."""
    if existing is None or existing.is_empty():
        return new
    return pl.concat([existing.select(list(ISSUE_SCHEMA)), new], how="vertical_relaxed")