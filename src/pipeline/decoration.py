"""Decorators for pipeline steps with automatic validation and caching."""

import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any

import polars as pl

from track_canon.core.dataclass import CanonicalData

logger = logging.getLogger(__name__)

# Canonical table names that can be validated
CANONICAL_TABLES = {
    name for name in CanonicalData.__annotations__ if not name.startswith("_")
}


def step(
    *,
    validate_input: bool = False,
    validate_output: bool = False,
    cache: bool = False,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for pipeline steps with automatic validation and caching.

    Parameters and returned dict keys named after a canonical table (fixes,
    origins, trip_fixes, interpolated_fixes, trips, interpolated_trips,
    issues) are validated against the Pydantic models in
    track_canon.models. Other arguments are passed through untouched.

    When a CanonicalData instance is passed as 'canonical_data', step outputs
    are stored on it, and validation uses it so multi-table validators can
    see every loaded table.

    When caching is enabled, the step's outputs are looked up in the
    pipeline cache first, keyed on the step name, the canonical input
    tables and the remaining parameters. On a miss the step runs and its
    outputs are cached after validation.

    Pipeline.run() overrides these defaults per step from the YAML config
    (validate_input defaults to True there).

    Args:
        validate_input: Whether to validate inputs. Defaults to False.
        validate_output: Whether to validate outputs. Defaults to False.
        cache: Whether to enable caching for this step. Defaults to False.

    Example:
        >>> @step(validate_input=True)
        ... def get_trips(
        ...     fixes: pl.DataFrame,
        ...     origins: pl.DataFrame,
        ...     inner_buffer: float = 1000.0,
        ... ) -> dict[str, pl.DataFrame]:
        ...     return {"trip_fixes": trip_fixes}

    Returns:
        Decorated function with validation
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
            # Save a copy of original kwargs to restore after validation
            kwargs_copy = kwargs.copy()

            should_validate_input = kwargs.pop("validate_input", validate_input)
            should_validate_output = kwargs.pop("validate_output", validate_output)
            should_cache = kwargs.pop("cache", cache)
            pipeline_cache = kwargs.pop("pipeline_cache", None)

            # Only pop canonical_data if function doesn't expect it
            sig = inspect.signature(func)
            if "canonical_data" in sig.parameters:
                canonical_data = kwargs.get("canonical_data")
            else:
                canonical_data = kwargs.pop("canonical_data", None)

            cache_key = None
            if should_cache and pipeline_cache:
                cache_key = _cache_key(func, pipeline_cache, args, kwargs)
                cached_result = pipeline_cache.load(func.__name__, cache_key)
                if cached_result is not None:
                    if canonical_data:
                        for key, value in cached_result.items():
                            setattr(canonical_data, key, value)
                    return cached_result

            # Add back in any popped flags if requested by the function
            kwargs.update(
                {key: value for key, value in kwargs_copy.items() if key in sig.parameters}
            )

            if should_validate_input:
                _validate_inputs(func, args, kwargs, canonical_data)

            result = func(*args, **kwargs)

            if canonical_data and isinstance(result, dict):
                _update_canonical_data(canonical_data, result)

            if should_validate_output and isinstance(result, dict):
                _validate_outputs(result, func.__name__, canonical_data)

            if cache_key is not None and isinstance(result, dict) and result:
                pipeline_cache.save(func.__name__, cache_key, result)

            return result

        return wrapper  # type: ignore[return-value]

    return decorator


def _cache_key(
    func: Callable,
    pipeline_cache: Any,  # noqa: ANN401
    args: tuple,
    kwargs: dict,
) -> str:
    """Build the cache key from canonical inputs and remaining parameters."""
    bound = inspect.signature(func).bind(*args, **kwargs)
    bound.apply_defaults()

    input_dfs = {
        name: value
        for name, value in bound.arguments.items()
        if _is_canonical_dataframe(name, value)
    }
    params = {
        name: value
        for name, value in bound.arguments.items()
        if name != "canonical_data" and not _is_canonical_dataframe(name, value)
    }
    return pipeline_cache.get_cache_key(
        func.__name__,
        input_dfs or None,
        params or None,
    )


def _update_canonical_data(
    canonical_data: CanonicalData,
    result: dict[str, pl.DataFrame],
) -> None:
    """Store step outputs on the canonical_data instance."""
    for key, value in result.items():
        if _is_canonical_dataframe(key, value):
            logger.info("Updating canonical_data with output '%s'", key)
        else:
            logger.warning(
                "Output '%s' is not a canonical table. This cannot be validated automatically.",
                key,
            )
        setattr(canonical_data, key, value)


def _validate_inputs(
    func: Callable,
    args: tuple,
    kwargs: dict,
    canonical_data: CanonicalData | None = None,
) -> None:
    """Validate input parameters that are canonical DataFrames."""
    bound = inspect.signature(func).bind(*args, **kwargs)
    bound.apply_defaults()

    validator = canonical_data
    if validator is None:
        validator = bound.arguments.get("canonical_data") or CanonicalData()

    for param_name, param_value in bound.arguments.items():
        if not _is_canonical_dataframe(param_name, param_value):
            continue

        logger.info("Validating input '%s' for step '%s'", param_name, func.__name__)
        setattr(validator, param_name, param_value)
        validator.validate(param_name, step=func.__name__)


def _validate_outputs(
    result: dict,
    func_name: str,
    canonical_data: CanonicalData | None = None,
) -> None:
    """Validate canonical tables in a step's output dict."""
    validator = canonical_data or CanonicalData()
    for key, value in result.items():
        if not _is_canonical_dataframe(key, value):
            logger.warning(
                "Output '%s' from step '%s' is not a canonical "
                "table. This cannot be validated automatically.",
                key,
                func_name,
            )
            continue

        logger.info("Validating output '%s' from step '%s'", key, func_name)
        # canonical_data already holds the outputs; a fresh instance needs them set
        setattr(validator, key, value)
        validator.validate(key, step=func_name)


def _is_canonical_dataframe(name: str, value: Any) -> bool:  # noqa: ANN401
    """Check if a value is a DataFrame for a canonical table."""
    return name in CANONICAL_TABLES and isinstance(value, pl.DataFrame)
