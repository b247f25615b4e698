"""Origin resolution for single-colony and per-nest deployments.

An origin is the point trips are measured from: the colony for birds
tracked from one site, or each bird's own nest when deployments span
several sites. The two cases are modelled as a small tagged variant so that
downstream code calls ``resolver.resolve(individual_id)`` without caring
which one it has:

- SharedOrigin(point): every individual resolves to the same point.
- PerIndividualOrigin(mapping): lookup by individual; unknown individuals
  raise UnresolvedOriginError.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

import polars as pl

from track_canon.core.exceptions import UnresolvedOriginError
from utils.helpers import Point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SharedOrigin:
    """One origin shared by the whole dataset."""

    point: Point
    kind: Literal["shared"] = field(default="shared", init=False)

    def resolve(self, individual_id: str) -> Point:  # noqa: ARG002
        """Return the shared origin regardless of individual."""
        return self.point


@dataclass(frozen=True)
class PerIndividualOrigin:
    """One origin per individual (e.g. per nest)."""

    mapping: dict[str, Point]
    # Individuals with conflicting origin rows; they never resolve
    ambiguous: frozenset[str] = frozenset()
    kind: Literal["per_individual"] = field(default="per_individual", init=False)

    def resolve(self, individual_id: str) -> Point:
        """Return the individual's origin.

        Raises:
            UnresolvedOriginError: If the individual has no single origin
        """
        if individual_id in self.ambiguous:
            msg = "More than one distinct origin recorded for this individual"
            raise UnresolvedOriginError(message=msg, individual_id=individual_id)
        try:
            return self.mapping[individual_id]
        except KeyError:
            msg = "No origin recorded and the dataset has more than one origin"
            raise UnresolvedOriginError(message=msg, individual_id=individual_id) from None


OriginResolver = SharedOrigin | PerIndividualOrigin


def build_origin_resolver(
    origins: pl.DataFrame,
    multi_origin: bool | None = None,
    ambiguous_ids: Iterable[str] = (),
) -> OriginResolver:
    """Build a resolver from an origins table.

    Args:
        origins: DataFrame with individual_id, longitude, latitude. May hold
            several rows per individual; identical rows collapse.
        multi_origin: Force per-individual resolution (True) or shared
            resolution (False). None decides from the data: exactly one
            distinct point means a shared colony.
        ambiguous_ids: Individuals already known to have conflicting
            origins (and so dropped from origins). Their conflict means the
            dataset has more than one distinct origin.

    Returns:
        SharedOrigin or PerIndividualOrigin

    Raises:
        ValueError: If origins is empty, or multi_origin=False is requested
            for a dataset with more than one distinct origin
    """
    if origins.is_empty():
        msg = "Cannot resolve origins from an empty origins table"
        raise ValueError(msg)

    known_ambiguous = frozenset(str(i) for i in ambiguous_ids)
    distinct_points = origins.select("longitude", "latitude").unique()
    several_points = len(distinct_points) > 1 or bool(known_ambiguous)

    if multi_origin is None:
        multi_origin = several_points

    if not multi_origin:
        if several_points:
            msg = (
                f"multi_origin=False but the dataset has {len(distinct_points)} "
                f"distinct origins and {len(known_ambiguous)} individual(s) with "
                "conflicting origins"
            )
            raise ValueError(msg)
        lon, lat = distinct_points.row(0)
        logger.info("Single shared origin at (%.5f, %.5f)", lon, lat)
        return SharedOrigin(point=(lon, lat))

    per_individual = origins.select(
        pl.col("individual_id").cast(pl.Utf8), "longitude", "latitude"
    ).unique()
    counts = per_individual.group_by("individual_id").len()
    ambiguous = known_ambiguous | frozenset(
        counts.filter(pl.col("len") > 1)["individual_id"].to_list()
    )

    mapping = {
        ind: (lon, lat)
        for ind, lon, lat in per_individual.filter(
            ~pl.col("individual_id").is_in(list(ambiguous))
        ).iter_rows()
    }
    logger.info(
        "Per-individual origins for %d individuals (%d distinct points)",
        len(mapping) + len(ambiguous),
        len(distinct_points),
    )
    return PerIndividualOrigin(mapping=mapping, ambiguous=ambiguous)


def origin_table(
    resolver: OriginResolver,
    individual_ids: list[str],
) -> tuple[pl.DataFrame, list[UnresolvedOriginError]]:
    """Materialise origins for the given individuals as a joinable table.

    Returns:
        Tuple of (DataFrame with individual_id, origin_longitude,
        origin_latitude for resolvable individuals, list of errors for the
        rest)
    """
    rows = []
    errors = []
    for individual_id in individual_ids:
        try:
            lon, lat = resolver.resolve(individual_id)
        except UnresolvedOriginError as e:
            errors.append(e)
            continue
        rows.append((individual_id, lon, lat))

    table = pl.DataFrame(
        rows,
        schema={
            "individual_id": pl.Utf8,
            "origin_longitude": pl.Float64,
            "origin_latitude": pl.Float64,
        },
        orient="row",
    )
    return table, errors
