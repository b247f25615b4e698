"""Exceptions for canonical tracking data and trip processing."""

from dataclasses import dataclass


@dataclass
class DataValidationError(Exception):
    """Structured validation error with context.

    Attributes:
        table: Name of the table being validated
        rule: Name of the validation rule that failed
        message: Human-readable error description
        row_id: Optional row identifier for row-level errors
        column: Optional column name for column-level errors
    """

    table: str
    rule: str
    message: str
    row_id: int | None = None
    column: str | None = None

    def __str__(self) -> str:
        """Format error message."""
        parts = [f"Table '{self.table}'"]
        if self.row_id is not None:
            parts.append(f"row {self.row_id}")
        if self.column:
            parts.append(f"column '{self.column}'")
        parts.append(f"- {self.rule}:")
        parts.append(self.message)
        return " ".join(parts)


@dataclass
class TripProcessingError(Exception):
    """Failure scoped to one individual or one trip.

    These are collected into the issues table instead of aborting the run.

    Attributes:
        message: Human-readable error description
        individual_id: Individual the failure belongs to
        trip_id: Trip the failure belongs to, if trip-scoped
    """

    message: str
    individual_id: str | None = None
    trip_id: int | None = None

    def __str__(self) -> str:
        """Format error message."""
        scope = []
        if self.individual_id is not None:
            scope.append(f"individual '{self.individual_id}'")
        if self.trip_id is not None:
            scope.append(f"trip {self.trip_id}")
        prefix = f"{' '.join(scope)}: " if scope else ""
        return f"{type(self).__name__}: {prefix}{self.message}"

    def to_issue(self, stage: str) -> dict[str, str | int | None]:
        """Build an issues-table row for this error."""
        return {
            "stage": stage,
            "error": type(self).__name__,
            "individual_id": self.individual_id,
            "trip_id": self.trip_id,
            "message": self.message,
        }


class UnresolvedOriginError(TripProcessingError):
    """Individual has no usable origin in a multi-origin dataset."""


class InsufficientDataError(TripProcessingError):
    """Individual has no fixes to process."""


class HeterogeneousTripTypeError(TripProcessingError):
    """A trip carries more than one trip type."""


class MissingRawCountError(TripProcessingError):
    """Interpolated trip has no matching raw trip."""


__all__ = [
    "DataValidationError",
    "HeterogeneousTripTypeError",
    "InsufficientDataError",
    "MissingRawCountError",
    "TripProcessingError",
    "UnresolvedOriginError",
]
