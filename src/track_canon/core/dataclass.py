"""Canonical container for tracking tables, validated with Pydantic models."""

import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import polars as pl
from pydantic import BaseModel

from track_canon.models import tracking as tracking_models
from track_canon.validation.column import (
    check_unique_constraints,
    get_unique_fields,
)
from track_canon.validation.custom import CUSTOM_VALIDATORS
from track_canon.validation.row import validate_dataframe_rows

from .exceptions import DataValidationError

logger = logging.getLogger(__name__)


@dataclass
class CanonicalData:
    """Canonical data structure for animal tracking data with validation.

    Tables, in pipeline order:
        fixes: raw fixes (one row per GPS observation)
        origins: one reference point per individual
        trip_fixes: fixes with trip ids, sections, gaps and trip types
        interpolated_fixes: regularly spaced fixes from an interpolation engine
        trips: one summary row per (individual, trip) from trip_fixes
        interpolated_trips: one summary row per interpolated trip
        issues: per-individual / per-trip failures collected along the way

    Use the validate() method to validate specific tables.
    """

    fixes: pl.DataFrame | None = None
    origins: pl.DataFrame | None = None
    trip_fixes: pl.DataFrame | None = None
    interpolated_fixes: pl.DataFrame | None = None
    trips: pl.DataFrame | None = None
    interpolated_trips: pl.DataFrame | None = None
    issues: pl.DataFrame | None = None

    # Model mapping for validation
    _models: dict[str, type[BaseModel]] = field(
        default_factory=lambda: {
            "fixes": tracking_models.FixModel,
            "origins": tracking_models.OriginModel,
            "trip_fixes": tracking_models.TripFixModel,
            "interpolated_fixes": tracking_models.InterpolatedFixModel,
            "trips": tracking_models.TripSummaryModel,
            "interpolated_trips": tracking_models.InterpolatedTripSummaryModel,
            "issues": tracking_models.IssueModel,
        }
    )

    # Custom validators: table_name -> list of validator functions
    _custom_validators: dict[str, list[Callable]] = field(
        default_factory=lambda: {
            table: list(validators) for table, validators in CUSTOM_VALIDATORS.items()
        }
    )

    def validate(self, table_name: str, step: str | None = None) -> None:
        """Validate a table through all validation layers.

        Runs validation in this order:
        1. Column constraints (uniqueness)
        2. Row-level Pydantic validation (step-aware if step provided)
        3. Custom multi-row validators

        Args:
            table_name: Name of the table to validate
            step: Pipeline step name for step-aware validation.
                 If None, validates all fields strictly.

        Raises:
            ValueError: If the table name is unknown
            DataValidationError: If any validation check fails
        """
        if table_name not in self._models:
            valid_tables = ", ".join(self._models.keys())
            msg = f"Invalid table name: {table_name}. Valid tables: {valid_tables}"
            raise ValueError(msg)

        df = getattr(self, table_name)
        if df is None:
            logger.warning("Table '%s' is None - skipping validation", table_name)
            return

        start_time = time.time()
        step_info = f" for step '{step}'" if step else ""
        logger.info(
            "Validating table '%s'%s (%s rows)",
            table_name,
            step_info,
            f"{len(df):,}",
        )

        unique_fields = get_unique_fields(self._models[table_name])
        if unique_fields:
            check_unique_constraints(table_name, df, unique_fields)

        validate_dataframe_rows(table_name, df, self._models[table_name], step)

        self._run_custom_validators(table_name)

        logger.info(
            "✓ Table '%s'%s validated successfully in %.2fs",
            table_name,
            step_info,
            time.time() - start_time,
        )

    def _run_custom_validators(self, table_name: str) -> None:
        """Run registered multi-row validators for a table.

        Validator parameters are resolved by name against the tables held on
        this instance; a validator whose tables are not loaded yet is skipped.
        """
        for validator_func in self._custom_validators.get(table_name, []):
            kwargs = {}
            for param_name in inspect.signature(validator_func).parameters:
                if param_name not in self._models:
                    msg = (
                        f"Validator {validator_func.__name__} requires "
                        f"unknown table: {param_name}"
                    )
                    raise ValueError(msg)
                kwargs[param_name] = getattr(self, param_name)

            if any(v is None for v in kwargs.values()):
                logger.warning(
                    "Skipping validator %s: required table not loaded",
                    validator_func.__name__,
                )
                continue

            errors = validator_func(**kwargs)
            if errors:
                raise DataValidationError(
                    table=table_name,
                    rule=validator_func.__name__,
                    message="; ".join(errors),
                )

    def register_validator(self, *table_names: str) -> Callable:
        """Register a custom validator on one or more tables.

        Example:
            >>> @data.register_validator("trips")
            >>> def no_multi_day_trips(trips: pl.DataFrame) -> list[str]:
            >>>     long = trips.filter(pl.col("duration") > 24)
            >>>     return [f"{len(long)} trips longer than a day"] if len(long) else []
        """
        if not table_names:
            msg = "Must specify at least one table name"
            raise ValueError(msg)

        def decorator(func: Callable) -> Callable:
            for table_name in table_names:
                if table_name not in self._models:
                    msg = f"Unknown table: {table_name}"
                    raise ValueError(msg)
                self._custom_validators.setdefault(table_name, []).append(func)
            return func

        return decorator
