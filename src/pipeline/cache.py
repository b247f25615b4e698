"""Pipeline caching system using Parquet for fast checkpointing.

Tracking datasets can hold millions of fixes, so re-running trip extraction
for every tweak to a later step is slow. Step outputs are cached as parquet
files keyed by a hash of the step's inputs and parameters.
"""

import hashlib
import json
import logging
import shutil
from pathlib import Path
from typing import Any

import polars as pl
from pydantic import BaseModel

logger = logging.getLogger(__name__)


def _hashable_param(value: Any) -> Any:  # noqa: ANN401
    """Return a JSON-serialisable form of a step parameter, or None to skip."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return None
    return value


class PipelineCache:
    """Manages parquet-based caching for pipeline steps.

    Cache structure:
        .cache/
            {step_name}/
                {cache_key}/
                    metadata.json
                    {table_name}.parquet
                    ...

    The cache key is a hash of:
    - Step name
    - Input tables (schema + row count + content hash of all rows)
    - Step parameters

    Callables (e.g. an injected projector or interpolation engine) cannot be
    hashed and are left out of the key.
    """

    def __init__(self, cache_dir: Path | str = Path(".cache")) -> None:
        """Initialize pipeline cache.

        Args:
            cache_dir: Root directory for cache storage
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.reset_stats()

    def get_cache_key(
        self,
        step_name: str,
        inputs: dict[str, pl.DataFrame] | None,
        params: dict[str, Any] | None,
    ) -> str:
        """Generate cache key from step name, inputs, and parameters.

        Args:
            step_name: Name of the pipeline step
            inputs: Input DataFrames (or None for first step)
            params: Step parameters from config

        Returns:
            16-character hex hash string
        """
        hash_parts = [step_name]

        for table_name in sorted(inputs or {}):
            df = inputs[table_name]
            if df is None:
                continue
            data_hash = str(df.hash_rows().sum()) if len(df) > 0 else ""
            hash_parts.append(f"{table_name}:{df.schema}:{len(df)}:{data_hash}")

        if params:
            serializable_params = {}
            for k, v in params.items():
                hashable = _hashable_param(v)
                if hashable is None and v is not None:
                    logger.debug("Skipping non-serializable param: %s", k)
                    continue
                serializable_params[k] = hashable
            hash_parts.append(json.dumps(serializable_params, sort_keys=True))

        combined = "|".join(hash_parts)
        return hashlib.sha256(combined.encode()).hexdigest()[:16]

    def load(
        self,
        step_name: str,
        cache_key: str,
    ) -> dict[str, pl.DataFrame] | None:
        """Load cached step outputs from parquet.

        Returns:
            Dictionary of table name -> DataFrame, or None if cache miss
        """
        cache_path = self.cache_dir / step_name / cache_key

        if not cache_path.exists():
            self._stats["missing"] += 1
            logger.debug("Cache not found for %s (key: %s)", step_name, cache_key)
            return None

        metadata = self._read_metadata(cache_path)
        if metadata is None:
            self._stats["stale"] += 1
            return None

        outputs = {}
        load_info = []
        for table_name in metadata.get("tables", []):
            file_path = cache_path / f"{table_name}.parquet"
            try:
                df = pl.read_parquet(file_path)
            except FileNotFoundError:
                logger.warning("Cache corrupted: missing %s", file_path.name)
                self._stats["stale"] += 1
                return None
            except (OSError, pl.exceptions.ComputeError) as e:
                logger.warning("Failed to load %s: %s", table_name, e)
                self._stats["stale"] += 1
                return None

            outputs[table_name] = df
            size_mb = file_path.stat().st_size / (1024 * 1024)
            load_info.append(
                f"  ← {table_name}: parquet ({len(df)}x{len(df.columns)}) [{size_mb:.2f} MB]"
            )

        self._stats["loaded"] += 1
        logger.info(
            "Loaded from cache: %s (key: %s)\n%s",
            step_name,
            cache_key,
            "\n".join(load_info),
        )
        return outputs

    def save(
        self,
        step_name: str,
        cache_key: str,
        outputs: dict[str, pl.DataFrame],
    ) -> None:
        """Save step outputs to parquet cache.

        Outputs that are not Polars DataFrames are not cached.
        """
        cache_path = self.cache_dir / step_name / cache_key
        cache_path.mkdir(parents=True, exist_ok=True)

        tables = {name: df for name, df in outputs.items() if isinstance(df, pl.DataFrame)}
        skipped = sorted(set(outputs) - set(tables))
        if skipped:
            logger.warning("Not caching non-DataFrame outputs of %s: %s", step_name, skipped)

        try:
            save_info = []
            for table_name, df in tables.items():
                file_path = cache_path / f"{table_name}.parquet"
                df.write_parquet(file_path)
                size_mb = file_path.stat().st_size / (1024 * 1024)
                save_info.append(
                    f"  → {table_name}: parquet ({len(df)}x{len(df.columns)}) [{size_mb:.2f} MB]"
                )

            metadata = {
                "step_name": step_name,
                "cache_key": cache_key,
                "tables": list(tables),
                "row_counts": {name: len(df) for name, df in tables.items()},
            }
            with (cache_path / "metadata.json").open("w") as f:
                json.dump(metadata, f, indent=2)

            logger.info(
                "Cached step: %s (key: %s)\n%s",
                step_name,
                cache_key,
                "\n".join(save_info),
            )

        except Exception:
            logger.exception("Failed to save cache for %s", step_name)
            if cache_path.exists():
                shutil.rmtree(cache_path)

    def _read_metadata(self, cache_path: Path) -> dict[str, Any] | None:
        metadata_path = cache_path / "metadata.json"
        if not metadata_path.exists():
            logger.warning("Cache corrupted: missing metadata in %s", cache_path)
            return None
        try:
            with metadata_path.open() as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read metadata in %s: %s", cache_path, e)
            return None

    def invalidate(self, step_name: str | None = None) -> None:
        """Invalidate cache for a step or all steps.

        Args:
            step_name: Name of step to invalidate, or None for all steps
        """
        if step_name:
            step_path = self.cache_dir / step_name
            if step_path.exists():
                shutil.rmtree(step_path)
                logger.info("Invalidated cache for %s", step_name)
        elif self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Invalidated all caches")

    def list_cached_steps(self) -> list[dict[str, Any]]:
        """List all cached steps with metadata.

        Returns:
            List of dicts with step info (name, cache_key, tables, sizes)
        """
        cached_steps = []
        if not self.cache_dir.exists():
            return cached_steps

        for step_dir in sorted(p for p in self.cache_dir.iterdir() if p.is_dir()):
            for key_dir in sorted(p for p in step_dir.iterdir() if p.is_dir()):
                metadata = self._read_metadata(key_dir)
                if metadata is None:
                    continue
                total_size = sum(p.stat().st_size for p in key_dir.glob("*.parquet"))
                cached_steps.append(
                    {
                        "step_name": step_dir.name,
                        "cache_key": key_dir.name,
                        "tables": metadata.get("tables", []),
                        "row_counts": metadata.get("row_counts", {}),
                        "size_mb": total_size / (1024 * 1024),
                        "path": str(key_dir),
                    }
                )

        return cached_steps

    def get_stats(self) -> dict[str, int | float]:
        """Get cache statistics.

        Returns:
            Dict with 'loaded', 'missing', 'stale', 'total',
            and 'load_rate' keys
        """
        total = sum(self._stats.values())
        return {
            **self._stats,
            "total": total,
            "load_rate": self._stats["loaded"] / total if total > 0 else 0.0,
        }

    def reset_stats(self) -> None:
        """Reset cache statistics."""
        self._stats = {"loaded": 0, "missing": 0, "stale": 0}
