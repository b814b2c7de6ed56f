"""
Coordinate parsing for FAA-style airport records.

The provider publishes every coordinate twice:

- ``latitude_sec`` / ``longitude_sec``: total arc-seconds with a trailing
  hemisphere letter, e.g. ``146303.7400N``
- ``latitude`` / ``longitude``: dashed degrees-minutes-seconds with the
  hemisphere letter glued to the seconds, e.g. ``40-38-23.7400N``

Both parsers return signed decimal degrees and raise ``CoordinateParseError``
on anything they cannot read. Only ``.`` is accepted as decimal separator.
"""

import re
from typing import Optional

NEGATIVE_DIRECTIONS = frozenset("SW")

# Max magnitude per hemisphere letter
_LIMITS = {"N": 90.0, "S": 90.0, "E": 180.0, "W": 180.0}

_SECONDS_RE = re.compile(r"^(\d+(?:\.\d+)?)([NSEW])$")
_DMS_RE = re.compile(r"^(\d{1,3})-(\d{1,2})-(\d{1,2}(?:\.\d+)?)([NSEW])$")


class CoordinateParseError(ValueError):
    """Raised when a coordinate string is not in the expected encoding."""

    def __init__(self, value: Optional[str], reason: str):
        super().__init__(f"Cannot parse coordinate {value!r}: {reason}")
        self.value = value


def _clean(value: Optional[str]) -> str:
    if value is None:
        raise CoordinateParseError(value, "value is missing")
    if not isinstance(value, str):
        raise CoordinateParseError(value, "value is not a string")
    cleaned = value.strip().upper()
    if not cleaned:
        raise CoordinateParseError(value, "value is blank")
    return cleaned


def _signed(value: str, magnitude: float, direction: str) -> float:
    if magnitude > _LIMITS[direction]:
        raise CoordinateParseError(
            value, f"{magnitude:.6f} degrees is out of range for direction {direction}"
        )
    return -magnitude if direction in NEGATIVE_DIRECTIONS else magnitude


def parse_from_seconds(value: str) -> float:
    """Parse ``<arc-seconds><N|S|E|W>`` into decimal degrees.

    >>> round(parse_from_seconds("146303.7400N"), 4)
    40.6399
    """
    cleaned = _clean(value)
    match = _SECONDS_RE.match(cleaned)
    if not match:
        raise CoordinateParseError(value, "expected arc-seconds followed by N, S, E or W")

    seconds, direction = match.groups()
    return _signed(value, float(seconds) / 3600.0, direction)


def parse_dms(value: str) -> float:
    """Parse ``DD-MM-SS.SSSS<N|S|E|W>`` into decimal degrees.

    >>> round(parse_dms("40-38-23.7400N"), 4)
    40.6399
    """
    cleaned = _clean(value)
    match = _DMS_RE.match(cleaned)
    if not match:
        raise CoordinateParseError(value, "expected DD-MM-SS.SSSS followed by N, S, E or W")

    degrees, minutes, seconds, direction = match.groups()
    minutes_value = int(minutes)
    seconds_value = float(seconds)
    if minutes_value >= 60:
        raise CoordinateParseError(value, "minutes must be below 60")
    if seconds_value >= 60:
        raise CoordinateParseError(value, "seconds must be below 60")

    magnitude = int(degrees) + minutes_value / 60.0 + seconds_value / 3600.0
    return _signed(value, magnitude, direction)
