"""Base class for labeled enumerations with codes and human-readable labels.

Trip classifications are stored in tables by their label (e.g. "Complete"),
which is what downstream plotting and reporting consumers expect, while code
paths compare enum members. LabeledEnum keeps both sides in one place.
"""

from enum import Enum, EnumType
from typing import Optional


class LabeledEnumMeta(EnumType):
    """Metaclass for LabeledEnum that reserves field_description."""

    @classmethod
    def __prepare__(metacls, cls, bases, **kwds):  # noqa: ANN001, ANN003, ANN206, N804
        """Prepare the class namespace, ignoring reserved fields."""
        namespace = super().__prepare__(cls, bases, **kwds)
        namespace["_ignore_"] = ["field_description"]
        return namespace

    def __new__(metacls, cls, bases, classdict, **kwds):  # noqa: ANN001, ANN003, ANN204
        """Create the enum class and preserve reserved fields."""
        field_desc = classdict.get("field_description")

        enum_class = super().__new__(metacls, cls, bases, classdict, **kwds)

        if field_desc is not None:
            enum_class.field_description = field_desc

        return enum_class


class LabeledEnum(Enum, metaclass=LabeledEnumMeta):
    """Base class for enumerations with integer codes and labels.

    Each enum member is defined as a tuple of (value, label):
        MEMBER_NAME = (1, "Descriptive Label")

    Example:
        class TripType(LabeledEnum):
            field_description = "Trip quality classification"

            COMPLETE = (3, "Complete")

        TripType.COMPLETE.label  # "Complete"
        TripType.from_label("Complete")  # TripType.COMPLETE
    """

    def __new__(cls, value: int, label: str) -> "LabeledEnum":
        """Create a new enum member with value and label."""
        obj = object.__new__(cls)
        obj._value_ = value
        obj._label_ = label
        return obj

    @property
    def label(self) -> str:
        """Get the human-readable label for this enum member."""
        return self._label_

    @classmethod
    def from_label(cls, label: str) -> Optional["LabeledEnum"]:
        """Look up an enum member by its label (case-sensitive)."""
        for member in cls:
            if member.label == label:
                return member
        return None

    @classmethod
    def labels(cls) -> list[str]:
        """All labels in definition order."""
        return [member.label for member in cls]

