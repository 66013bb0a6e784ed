"""
Centralized parsing helpers for command line values.

The CLI must import these helpers rather than re-implement them. All helpers
raise ValidationError (a ValueError) so they never reach the serial line.
"""

from typing import Optional, Tuple

from w80x_flasher.errors import ValidationError
from w80x_flasher.protocol.fields import encode_erase_param, validate_gain, validate_mac


def parse_int(value: Optional[str], label: str = "value") -> Optional[int]:
    """
    Parse an integer, accepting the C ``strtoul(..., 0)`` spellings.

    Accepts:
        - Decimal: "4096"
        - Hex with 0x prefix: "0x1000" or "0X1000"
        - Octal with a leading zero: "010" (C style) or "0o10"
        - None or blank for "not given"

    Raises:
        ValidationError: If value cannot be parsed.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        if len(value) > 1 and value[0] == "0" and value[1].isdigit():
            return int(value, 8)
        return int(value, 0)
    except ValueError:
        raise ValidationError(
            f"Invalid {label} '{value}'. Use decimal (4096) or hex (0x1000)."
        )


def parse_erase_spec(value: str) -> Tuple[int, int]:
    """
    Parse an ``offset:size`` erase request.

    Returns:
        Tuple of (offset, size)

    Raises:
        ValidationError: Missing colon, bad numbers or out of range values
    """
    offset_text, sep, size_text = value.partition(":")
    if not sep or not offset_text.strip() or not size_text.strip():
        raise ValidationError(f"Invalid erase range '{value}'. Use offset:size, e.g. 0:0x100000.")

    offset = parse_int(offset_text, "erase offset")
    size = parse_int(size_text, "erase size")
    encode_erase_param(offset, size)
    return offset, size


def parse_mac(value: str) -> str:
    """Validate a ``XX:XX:XX:XX:XX:XX`` MAC string."""
    return validate_mac(value.strip())


def parse_gain(value: str) -> str:
    """Validate a 168 hex character RF gain string."""
    return validate_gain(value.strip())


def parse_speed(value: int) -> int:
    """Validate a baud rate."""
    if value <= 0:
        raise ValidationError(f"Invalid speed {value}")
    return value
