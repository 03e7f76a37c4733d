"""
Enum Utilities for VARCHAR-based Status Fields

Status columns are stored as VARCHAR(50), never as database ENUM types.
Python `str, Enum` classes validate input at the API layer and the
stored UPPERCASE string is returned as-is on output.

USAGE PATTERNS:
━━━━━━━━━━━━━━━
1. In SQLAlchemy Models:
   status: Mapped[str] = mapped_column(String(50), comment=enum_comment(ShipmentStatus))

2. In Pydantic Schemas (with case normalization):
   @field_validator("status", mode="before")
   def _upper(cls, v): return normalize_to_uppercase(v, VALID_SHIPMENT_STATUSES)

3. Writing to the database from either an enum or a string:
   shipment.status = get_enum_value(data.status)
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type, Set


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> str:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(ShipmentStatus.PENDING)
        'PENDING'
        >>> get_enum_value("PENDING")
        'PENDING'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a string value to an enum instance, or None if it is not a member.

    Examples:
        >>> to_enum("PENDING", ShipmentStatus)
        ShipmentStatus.PENDING
        >>> to_enum("Arrived at yard", ShipmentStatus)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except (ValueError, KeyError):
        return None


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """
    Generate a comment string for VARCHAR column.

    Examples:
        >>> enum_comment(PaymentStatus)
        'PENDING, COMPLETED, FAILED, REFUNDED, CANCELLED'
    """
    return ", ".join(enum_values(enum_class))


# =============================================================================
# CASE NORMALIZATION FOR PYDANTIC SCHEMAS
# =============================================================================

def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Examples:
        >>> normalize_to_uppercase('in_transit', {'PENDING', 'IN_TRANSIT'})
        'IN_TRANSIT'
        >>> normalize_to_uppercase('invalid', {'PENDING', 'IN_TRANSIT'})
        'invalid'  # Returns as-is for Pydantic to raise validation error
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.upper()
        if upper_v in valid_values:
            return upper_v
    return value

