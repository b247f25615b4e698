"""Codebook values for trip segmentation and classification."""

from track_canon.core.labeled_enum import LabeledEnum

# trip_id assigned to fixes that are not part of any trip
NON_TRIP_ID = -1


class TripType(LabeledEnum):
    """Trip quality classification.

    Mutually exclusive; assigned by an ordered rule list where the first
    matching rule wins (see processing.trips.classification).
    """

    field_description = "Completeness/quality classification of a trip"

    NON_TRIP = (0, "Non-trip")
    GAPPY = (1, "Gappy")
    INCOMPLETE = (2, "Incomplete")
    COMPLETE = (3, "Complete")

