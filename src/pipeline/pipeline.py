"""Pipeline execution module for running trip processing steps."""

import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from pipeline.cache import PipelineCache
from pipeline.logger import setup_logging
from track_canon.core.dataclass import CanonicalData

logger = logging.getLogger(__name__)

# Step arguments filled in by Pipeline.run() rather than from the config
RESERVED_ARGS = {
    "canonical_data",
    "validate_input",
    "validate_output",
    "cache",
    "pipeline_cache",
    "kwargs",
}

DEFAULT_CACHE_DIR = Path(".cache")


@dataclass
class StepStatus:
    """Cache state of one configured step."""

    cache_enabled: bool = False
    cache_key: str | None = None
    tables: list[str] = field(default_factory=list)

    @property
    def has_cache(self) -> bool:
        return self.cache_key is not None

    @property
    def label(self) -> str:
        if self.has_cache:
            return "✓ CACHED" + (f" ({', '.join(self.tables)})" if self.tables else "")
        if self.cache_enabled:
            return "✗ NO CACHE"
        return "∅ NO CACHE (disabled)"


def render_template(obj: Any, variables: dict[str, str]) -> Any:  # noqa: ANN401
    """Substitute {{ name }} placeholders in every string of a config tree."""
    if isinstance(obj, str):
        for name, value in variables.items():
            obj = obj.replace(f"{{{{ {name} }}}}", value)
        return obj
    if isinstance(obj, dict):
        return {key: render_template(value, variables) for key, value in obj.items()}
    if isinstance(obj, list):
        return [render_template(item, variables) for item in obj]
    return obj


def newest_cache_entry(step_dir: Path) -> tuple[str, list[str]] | None:
    """Return (cache key, tables) of the most recently written entry."""
    if not step_dir.is_dir():
        return None
    entries = [d for d in step_dir.iterdir() if d.is_dir()]
    if not entries:
        return None

    newest = max(entries, key=lambda p: p.stat().st_mtime)
    tables: list[str] = []
    metadata_path = newest / "metadata.json"
    if metadata_path.exists():
        try:
            tables = json.loads(metadata_path.read_text()).get("tables", [])
        except (OSError, json.JSONDecodeError):
            logger.exception("Unreadable cache metadata in %s", newest)
    return newest.name, tables


class Pipeline:
    """Run a sequence of @step functions described by a YAML configuration.

    Example config::

        data_dir: data/colony
        log_file: pipeline.log
        steps:
          - name: load_data
            params:
              input_paths:
                fixes: "{{ data_dir }}/fixes.csv"
          - name: get_trips
            cache: true
            params:
              inner_buffer: 1000
              return_buffer: 10000
    """

    data: CanonicalData
    steps: dict[str, Callable]
    cache: PipelineCache | None

    def __init__(
        self,
        config_path: str | Path,
        steps: list[Callable] | None = None,
        caching: bool | Path | str = False,
    ) -> None:
        """Load the config, set up logging and scan the step cache.

        Args:
            config_path: Path to the YAML configuration.
            steps: Step functions; config entries refer to them by name.
            caching: False disables caching, True caches under ".cache",
                a path caches there.
        """
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self.data = CanonicalData()
        self.steps = {func.__name__: func for func in steps or []}

        log_file = self.config.get("log_file")
        if log_file and not Path(log_file).is_absolute():
            log_file = DEFAULT_CACHE_DIR / log_file
        setup_logging(log_file=log_file)
        logger.info("Log file: %s", log_file or "none (console only)")

        if caching is False:
            self.cache = None
            logger.info("Pipeline caching disabled")
        else:
            self.cache = PipelineCache(
                cache_dir=DEFAULT_CACHE_DIR if caching is True else Path(caching)
            )

        self.step_status: dict[str, StepStatus] = {}
        self._scan_cache()
        self.report_status()

    @property
    def step_configs(self) -> list[dict[str, Any]]:
        """Step entries from the config, in run order."""
        return self.config.get("steps", [])

    def _load_config(self) -> dict[str, Any]:
        """Read the YAML config and fill {{ var }} from top-level strings."""
        with self.config_path.open() as f:
            config = yaml.safe_load(f) or {}
        variables = {key: value for key, value in config.items() if isinstance(value, str)}
        return render_template(config, variables)

    def _scan_cache(self) -> None:
        """Refresh the cache state of every configured step."""
        for step_cfg in self.step_configs:
            status = StepStatus(cache_enabled=bool(self.cache) and step_cfg.get("cache", False))
            if status.cache_enabled:
                entry = newest_cache_entry(self.cache.cache_dir / step_cfg["name"])
                if entry is not None:
                    status.cache_key, status.tables = entry
            self.step_status[step_cfg["name"]] = status

    def report_status(self) -> None:
        """Log the step sequence with the cache state of each step."""
        width = max((len(s["name"]) for s in self.step_configs), default=0)
        rows = [
            f"[{s['name'].ljust(width)}] {self.step_status[s['name']].label}"
            for s in self.step_configs
        ]
        rule = "=" * 70
        logger.info("\n".join(["", rule, "Pipeline Status", rule, "\n     ↓\n".join(rows), rule]))

    def parse_step_args(self, step_name: str, step_obj: Callable) -> dict[str, Any]:
        """Build keyword arguments for a step.

        Arguments named after a canonical table come from self.data, the
        rest from the step's "params" in the config.

        Raises:
            ValueError: If a required parameter is neither a table nor in
                the config.
        """
        signature = inspect.signature(step_obj).parameters
        params = next(
            (s.get("params") or {} for s in self.step_configs if s["name"] == step_name),
            {},
        )

        kwargs: dict[str, Any] = {}
        for arg_name, param in signature.items():
            if arg_name == "canonical_data":
                kwargs[arg_name] = self.data
            elif hasattr(self.data, arg_name):
                kwargs[arg_name] = getattr(self.data, arg_name)
            elif arg_name in params:
                kwargs[arg_name] = params[arg_name]
            elif param.default is inspect.Parameter.empty and arg_name not in RESERVED_ARGS:
                expected = '", "'.join(a for a in signature if a not in RESERVED_ARGS)
                msg = (
                    f"Missing required parameter '{arg_name}' for step '{step_name}'. "
                    f'Function expects "{expected}".'
                )
                raise ValueError(msg)
        return kwargs

    def run(self) -> CanonicalData:
        """Run every configured step in order and return the canonical data."""
        n_steps = len(self.step_configs)
        for i, step_cfg in enumerate(self.step_configs, start=1):
            step_name = step_cfg["name"]
            step_obj = self.steps.get(step_name)
            if step_obj is None:
                msg = f"Step '{step_name}' not found in pipeline steps."
                raise ValueError(msg)

            logger.info("")
            logger.info("=" * 70)
            logger.info("Step %d/%d: %s", i, n_steps, step_name)
            logger.info("=" * 70)

            kwargs = self.parse_step_args(step_name, step_obj)
            kwargs.update(
                canonical_data=self.data,
                validate_input=step_cfg.get("validate_input", True),
                validate_output=step_cfg.get("validate_output", False),
            )
            if self.cache:
                kwargs.update(cache=step_cfg.get("cache", False), pipeline_cache=self.cache)

            step_obj(**kwargs)

        if self.cache:
            self._log_cache_summary()
        self._scan_cache()
        logger.info("Pipeline completed.")
        return self.data

    def _log_cache_summary(self) -> None:
        stats = self.cache.get_stats()
        if stats["total"] == 0:
            return
        counts = [
            (stats["loaded"], "loaded from cache"),
            (stats["missing"], "re-run (no cache)"),
            (stats["stale"], "re-run (stale/corrupted)"),
        ]
        logger.info(
            "Cache summary: %s (%.1f%% cache hit rate)",
            ", ".join(f"{n} {what}" for n, what in counts if n > 0),
            stats["load_rate"] * 100,
        )

    def _cached_tables(self) -> dict[str, list[str]]:
        """Cached table names per step, for steps that have a cache."""
        return {name: s.tables for name, s in self.step_status.items() if s.has_cache}

    def _load_from_step(self, table_name: str, step_name: str) -> Any:  # noqa: ANN401
        """Load one table from a step's newest cache entry into self.data.

        Raises:
            ValueError: If the step has no cache or did not cache the table.
        """
        status = self.step_status.get(step_name)
        if status is None or not status.has_cache:
            msg = f"Step '{step_name}' has no cached data."
            raise ValueError(msg)
        if table_name not in status.tables:
            msg = (
                f"Table '{table_name}' not found in step '{step_name}'. "
                f"Available tables: {', '.join(status.tables)}"
            )
            raise ValueError(msg)

        cached = self.cache.load(step_name, status.cache_key) or {}
        if table_name not in cached:
            msg = f"Failed to load '{table_name}' from cache for step '{step_name}'."
            raise ValueError(msg)

        setattr(self.data, table_name, cached[table_name])
        logger.info(
            "Loaded '%s' from step '%s' (cache key: %s...)",
            table_name,
            step_name,
            status.cache_key[:8],
        )
        return cached[table_name]

    def get_data(
        self,
        table_name: str,
        step: str | None = None,
    ) -> Any:  # noqa: ANN401
        """Fetch a table, from the step cache when caching is enabled.

        Args:
            table_name: Name of the table to fetch (e.g., 'trip_fixes', 'trips')
            step: Step to load from. If None, the last configured step whose
                cache holds the table is used.

        Returns:
            The requested DataFrame

        Raises:
            ValueError: If no cached step (or, without caching, the in-memory
                data) holds the table.

        Example:
            >>> pipeline = Pipeline(config_path, steps, caching=True)
            >>> trips = pipeline.get_data("trips")
            >>> trip_fixes = pipeline.get_data("trip_fixes", step="get_trips")
        """
        if not self.cache:
            data = getattr(self.data, table_name, None)
            if data is None:
                msg = f"Table '{table_name}' not found in canonical data."
                raise ValueError(msg)
            logger.info("Caching is disabled. Just returning latest data.")
            return data

        if step:
            return self._load_from_step(table_name, step)

        cached = self._cached_tables()
        for step_cfg in reversed(self.step_configs):
            if table_name in cached.get(step_cfg["name"], []):
                return self._load_from_step(table_name, step_cfg["name"])

        available = sorted({t for tables in cached.values() for t in tables})
        if not available:
            msg = "No cached data found. Run the pipeline first."
            raise ValueError(msg)
        msg = (
            f"Table '{table_name}' not found in any cached step. "
            f"Available tables: {', '.join(available)}"
        )
        raise ValueError(msg)
