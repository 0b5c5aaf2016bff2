"""
* Duration shorthand parser ('30s', '1m', '2h', '1d') returning milliseconds
"""
import re

from ratewatch.errors import InvalidDurationError

_UNITS = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)


def parse_ms(value: int | str) -> int:
    """
    * Convert a duration into milliseconds
    Args:
        value (int | str): Milliseconds, or an integer followed by one of ms/s/m/h/d
    Returns:
        int: Duration in milliseconds
    Raises:
        InvalidDurationError: If the value is not a recognised duration
    """
    # ! bool is an int subclass; True must not become a 1ms window
    if isinstance(value, bool):
        raise InvalidDurationError(value)
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise InvalidDurationError(value)

    match = _DURATION_RE.match(value)
    if not match:
        raise InvalidDurationError(value)
    amount, unit = match.groups()
    return int(amount) * _UNITS[(unit or "ms").lower()]
