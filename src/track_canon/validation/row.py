"""Row-level validation for canonical tracking tables.

Validation is step-aware: a column such as trip_type only exists after trip
classification, so it is required from that step on and merely type-checked
(when present) before it.

Tracking tables hold thousands of fixes per individual and a bad column
usually breaks every one of them, so failures are grouped by column and
problem and reported with the individuals they affect.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import polars as pl
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from track_canon.core.exceptions import DataValidationError

logger = logging.getLogger(__name__)

BATCH_SIZE = 100_000
MAX_ERROR_GROUPS = 10
MAX_EXAMPLES = 3
PROGRESS_SECONDS = 2


def get_required_fields_for_step(
    model: type[BaseModel],
    step_name: str,
) -> set[str]:
    """Field names of model that must be present as columns in step_name."""
    required = set()
    for name, info in model.model_fields.items():
        extra = info.json_schema_extra or {}
        if extra.get("required_in_all_steps") or step_name in extra.get(
            "required_in_steps", []
        ):
            required.add(name)
    return required


def validate_row_for_step(
    row_dict: dict[str, Any],
    model: type[BaseModel],
    step_name: str | None = None,
) -> None:
    """Validate one fix, origin, trip or issue row for a pipeline step.

    Fields required for the step must be present as keys; a present key may
    still hold None when the field type allows it (e.g. diff_dist on the
    first fix of a trip). Fields not required for this step are type-checked
    only if present.

    Args:
        row_dict: One row as a dict
        model: Row model of the table
        step_name: Pipeline step. If None, every model field is required.

    Raises:
        PydanticValidationError: If a present value is invalid
        ValueError: If a column required for the step is missing
    """
    if step_name is None:
        model.model_validate(row_dict, strict=False)
        return

    missing = sorted(get_required_fields_for_step(model, step_name) - set(row_dict))
    if missing:
        msg = f"Missing required fields for step '{step_name}': {', '.join(missing)}"
        raise ValueError(msg)

    try:
        model.model_validate(row_dict, strict=False)
    except PydanticValidationError as e:
        # Absent columns are only errors in the steps that require them
        relevant = [
            err for err in e.errors() if not err.get("loc") or err["loc"][0] in row_dict
        ]
        if relevant:
            raise PydanticValidationError.from_exception_data(model.__name__, relevant) from e


@dataclass
class _ErrorGroup:
    """Rows sharing one column/problem pair."""

    rows: list[int] = field(default_factory=list)
    individuals: set[str] = field(default_factory=set)

    def add(self, row_index: int, individual_id: str | None) -> None:
        self.rows.append(row_index)
        if individual_id is not None:
            self.individuals.add(str(individual_id))

    def describe(self, problem: str) -> str:
        shown = ", ".join(map(str, self.rows[:MAX_EXAMPLES]))
        if len(self.rows) <= MAX_EXAMPLES:
            where = f"Row(s) {shown}"
        else:
            where = f"{len(self.rows)} rows (e.g., {shown})"
        if self.individuals:
            examples = ", ".join(sorted(self.individuals)[:MAX_EXAMPLES])
            where += f" of {len(self.individuals)} individual(s) ({examples})"
        return f"  {where}: {problem}"


def _problems(error: PydanticValidationError | ValueError) -> list[str]:
    """Row-independent descriptions of a row's failures.

    Pydantic messages embed the offending value, so grouping on them would
    give every fix its own group. Column and message are enough.
    """
    if isinstance(error, PydanticValidationError):
        return [
            f"{'.'.join(map(str, err['loc'])) or '<row>'}: {err['msg']}"
            for err in error.errors()
        ]
    return [str(error)]


def validate_dataframe_rows(
    table_name: str,
    df: pl.DataFrame,
    model: type[BaseModel],
    step: str | None = None,
) -> None:
    """Validate every row of a tracking table against its row model.

    Stops collecting once MAX_ERROR_GROUPS distinct problems are found.

    Raises:
        DataValidationError: If any row fails validation
    """
    if df.is_empty():
        return

    total_rows = len(df)
    started = time.time()
    groups: dict[str, _ErrorGroup] = {}

    for batch_start in range(0, total_rows, BATCH_SIZE):
        for offset, row in enumerate(df.slice(batch_start, BATCH_SIZE).iter_rows(named=True)):
            try:
                validate_row_for_step(row, model, step)
            except (PydanticValidationError, ValueError) as e:
                for problem in _problems(e):
                    groups.setdefault(problem, _ErrorGroup()).add(
                        batch_start + offset, row.get("individual_id")
                    )
            if len(groups) >= MAX_ERROR_GROUPS:
                break
        if len(groups) >= MAX_ERROR_GROUPS:
            break

        done = min(batch_start + BATCH_SIZE, total_rows)
        if total_rows > BATCH_SIZE and time.time() - started >= PROGRESS_SECONDS:
            logger.info(
                "Row validation progress for '%s': %.1f%% (%s/%s rows)",
                table_name,
                done / total_rows * 100,
                done,
                total_rows,
            )

    if groups:
        _raise_grouped(table_name, groups)


def _raise_grouped(table_name: str, groups: dict[str, _ErrorGroup]) -> None:
    n_rows = len({i for group in groups.values() for i in group.rows})
    message = (
        f"Found {len(groups)} unique error type{'s' if len(groups) > 1 else ''} "
        f"affecting {n_rows} row{'s' if n_rows > 1 else ''}:\n"
        + "\n".join(group.describe(problem) for problem, group in groups.items())
    )
    raise DataValidationError(table=table_name, rule="row_validation", message=message)


__all__ = [
    "get_required_fields_for_step",
    "validate_dataframe_rows",
    "validate_row_for_step",
]
