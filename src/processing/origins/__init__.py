"""Origin handling: track preparation, resolution and projection."""

from .preparation import prepare_tracks
from .projection import Projector, origin_crs, project
from .resolver import (
    OriginResolver,
    PerIndividualOrigin,
    SharedOrigin,
    build_origin_resolver,
    origin_table,
)

__all__ = [
    "OriginResolver",
    "PerIndividualOrigin",
    "Projector",
    "SharedOrigin",
    "build_origin_resolver",
    "origin_crs",
    "origin_table",
    "prepare_tracks",
    "project",
]
