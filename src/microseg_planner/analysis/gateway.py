"""
Gateway addressing.

Maps the configured gateway mode to the host offset the backend uses to
derive gw-* alias addresses. The same offset must be used for an analysis
and for every generation call that analysis justifies.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from ..errors import ValidationError

MIN_OFFSET = 1
MAX_OFFSET = 254


class GatewayMode(str, Enum):
    FIRST = "first"  # .1
    LAST = "last"  # .254
    CUSTOM = "custom"


def validate_offset(value: Any) -> int:
    """Return ``value`` as a host offset, or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid gateway offset: {value!r}")
    try:
        offset = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid gateway offset: {value!r}") from None
    if offset != value and not isinstance(value, str):
        raise ValidationError(f"Invalid gateway offset: {value!r}")
    if not MIN_OFFSET <= offset <= MAX_OFFSET:
        raise ValidationError(
            f"Gateway offset {offset} out of range [{MIN_OFFSET}, {MAX_OFFSET}]"
        )
    return offset


def gateway_offset(mode: GatewayMode | str, custom_offset: Any = MAX_OFFSET) -> int:
    """Resolve a gateway mode to a host offset in [1, 254]."""
    try:
        mode = GatewayMode(mode)
    except ValueError:
        raise ValidationError(f"Unknown gateway mode: {mode!r}") from None

    if mode is GatewayMode.FIRST:
        return MIN_OFFSET
    if mode is GatewayMode.LAST:
        return MAX_OFFSET
    return validate_offset(custom_offset)


def offset_label(offset: int) -> str:
    """Short display form of an offset, e.g. ``.254``."""
    return f".{offset}"
