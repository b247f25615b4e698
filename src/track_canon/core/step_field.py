"""Module for creating fields with step metadata."""

from typing import Any

from pydantic import Field


def step_field(
    *,
    required_in_steps: list[str] | str | None = None,
    unique: bool = False,
    **field_kwargs: Any,  # noqa: ANN401
) -> Any:  # noqa: ANN401
    """Create a Field with pipeline step metadata.

    Tracking tables gain columns as they move through the pipeline (trip ids
    after segmentation, trip types after classification), so a column can be
    optional in early steps and required later.

    Args:
        required_in_steps: Step names where this field is required, or the
            string "all" to require it everywhere. If None/empty, the field
            is only type-checked when present.
        unique: Whether values must be unique across the table.
        **field_kwargs: All other Field parameters (ge, le, default, etc.)

    Returns:
        Field instance with step metadata attached

    Example:
        >>> individual_id: str = step_field(unique=True, required_in_steps="all")
        >>> trip_type: str | None = step_field(
        ...     required_in_steps=["build_trip_summaries"], default=None
        ... )
    """
    if "json_schema_extra" not in field_kwargs:
        field_kwargs["json_schema_extra"] = {}

    if isinstance(required_in_steps, str):
        required_in_steps = [required_in_steps]

    if required_in_steps is None:
        required_in_steps = []

    if unique:
        field_kwargs["json_schema_extra"]["unique"] = True

    if required_in_steps == ["all"]:
        field_kwargs["json_schema_extra"]["required_in_all_steps"] = True
    elif required_in_steps:
        field_kwargs["json_schema_extra"]["required_in_steps"] = required_in_steps

    return Field(**field_kwargs)
