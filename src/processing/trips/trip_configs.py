"""Configuration model for trip segmentation and classification.

ALGORITHM DESIGN NOTES:
========================

1. UNITS:
   All buffers and gap distances are metres; gap_time and min_duration are
   hours; gap_limit is days. Distances are great-circle (haversine) when
   lonlat=True, planar when coordinates are projected (lonlat=False or crs
   set).

2. TRACKING SESSIONS:
   Consecutive fixes more than gap_limit days apart belong to different
   tracking sessions (e.g. a logger redeployed on the same bird next
   season). A trip never spans two sessions.

3. GAPS VS SESSIONS:
   Inside a trip, a gap is a pair of consecutive fixes that is both longer
   than gap_time AND further apart than gap_dist. Gaps split trips into
   sections but do not end them.

4. RETURN BUFFER:
   A trip whose first or last fix lies beyond return_buffer from the origin
   did not start or finish at the origin and is Incomplete. The return
   buffer is at least as wide as the inner buffer.
"""

from pydantic import BaseModel, Field, model_validator


class TripConfig(BaseModel):
    """Configuration for trip extraction.

    Defaults follow common seabird practice: 1 km inner buffer, 10 km return
    buffer, and a gap of 12 hours / 5 km.
    """

    inner_buffer: float = Field(
        default=1000.0,
        ge=0,
        description=(
            "Distance in metres from the origin within which fixes are "
            "considered at the origin (not on a trip)"
        ),
    )

    return_buffer: float = Field(
        default=10000.0,
        ge=0,
        description=(
            "Distance in metres from the origin the first and last fix of a "
            "trip must fall within for the trip to be Complete"
        ),
    )

    gap_time: float = Field(
        default=12.0,
        ge=0,
        description="Minimum time in hours between consecutive fixes to flag a gap",
    )

    gap_dist: float = Field(
        default=5000.0,
        ge=0,
        description="Minimum distance in metres between consecutive fixes to flag a gap",
    )

    gap_limit: float | None = Field(
        default=100.0,
        gt=0,
        description=(
            "Time in days between consecutive fixes that starts a new "
            "tracking session. None disables session splitting."
        ),
    )

    min_duration: float = Field(
        default=0.0,
        ge=0,
        description=(
            "Minimum trip duration in hours. Shorter runs away from the "
            "origin are demoted to non-trip fixes. 0 keeps every run."
        ),
    )

    lonlat: bool = Field(
        default=True,
        description=(
            "True if coordinates are longitude/latitude degrees (haversine "
            "distance), False if already projected in metres"
        ),
    )

    crs: str | None = Field(
        default=None,
        description=(
            "Project fixes and origins into this CRS before segmentation. "
            "Use 'auto' for a Lambert azimuthal equal-area CRS centred on the "
            "mean origin. Implies planar distances."
        ),
    )

    multi_origin: bool | None = Field(
        default=None,
        description=(
            "Force per-individual origins (True) or a single shared origin "
            "(False). None decides from the number of distinct origins."
        ),
    )

    max_workers: int = Field(
        default=1,
        ge=1,
        description="Threads used to process individuals. 1 runs sequentially.",
    )

    @model_validator(mode="after")
    def validate_buffers(self) -> "TripConfig":
        """Return buffer must not be narrower than the inner buffer."""
        if self.return_buffer < self.inner_buffer:
            msg = (
                f"return_buffer ({self.return_buffer}) must be >= "
                f"inner_buffer ({self.inner_buffer})"
            )
            raise ValueError(msg)
        return self

    @property
    def planar(self) -> bool:
        """Whether distances are computed on projected coordinates."""
        return self.crs is not None or not self.lonlat
