"""Column-level validation functions for canonical tracking data.

This module provides validation for column constraints such as uniqueness,
both on single columns (origins.individual_id) and on composite keys
((individual_id, trip_id) in trip summaries).
"""

import polars as pl
from pydantic import BaseModel

from track_canon.core.exceptions import DataValidationError

MAX_DISPLAY = 10


def get_unique_fields(model: type[BaseModel]) -> list[str]:
    """Get list of fields marked as unique in the model."""
    return [
        field_name
        for field_name, field_info in model.model_fields.items()
        if (field_info.json_schema_extra or {}).get("unique", False)
    ]


def check_required_columns(
    table_name: str,
    df: pl.DataFrame,
    columns: list[str],
) -> None:
    """Fail fast when a table is missing columns the caller relies on.

    Raises:
        DataValidationError: If any column is absent
    """
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataValidationError(
            table=table_name,
            rule="required_columns",
            message=f"Missing columns {missing}; found {df.columns}",
        )


def check_unique_constraints(
    table_name: str,
    df: pl.DataFrame,
    unique_columns: list[str],
) -> None:
    """Check that each listed column is unique on its own.

    Raises:
        DataValidationError: If uniqueness constraint is violated
    """
    for col in unique_columns:
        check_unique_key(table_name, df, [col])


def check_unique_key(
    table_name: str,
    df: pl.DataFrame,
    key_columns: list[str],
) -> None:
    """Check that the combination of key_columns is unique.

    Rows with a null in any key column are ignored.

    Raises:
        DataValidationError: If the key is missing or duplicated
    """
    for col in key_columns:
        if col not in df.columns:
            raise DataValidationError(
                table=table_name,
                rule="unique_constraint",
                column=col,
                message=f"Column '{col}' not found in table",
            )

    non_null = df.drop_nulls(subset=key_columns)
    if len(non_null) == 0:
        return

    duplicates = (
        non_null.group_by(key_columns)
        .agg(pl.len().alias("count"))
        .filter(pl.col("count") > 1)
        .sort(key_columns)
    )

    if len(duplicates) > 0:
        dup_values = duplicates.select(key_columns).rows()
        if len(key_columns) == 1:
            dup_values = [v[0] for v in dup_values]
        raise DataValidationError(
            table=table_name,
            rule="unique_constraint",
            column=", ".join(key_columns),
            message=(
                f"Duplicate values found: {dup_values[:MAX_DISPLAY]}"
                f"{' ...' if len(dup_values) > MAX_DISPLAY else ''}"
            ),
        )


__all__ = [
    "check_required_columns",
    "check_unique_constraints",
    "check_unique_key",
    "get_unique_fields",
]
