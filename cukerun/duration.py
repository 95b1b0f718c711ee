"""Human-readable durations such as ``12min5s`` or ``3s``."""

from __future__ import annotations

import re
from datetime import timedelta

_NANOS_PER_SECOND = 1_000_000_000

_UNITS: dict[str, int] = {}
for _names, _nanos in (
    (("nanos", "nsec", "ns"), 1),
    (("usec", "us"), 1_000),
    (("millis", "msec", "ms"), 1_000_000),
    (("seconds", "second", "secs", "sec", "s"), _NANOS_PER_SECOND),
    (("minutes", "minute", "mins", "min", "m"), 60 * _NANOS_PER_SECOND),
    (("hours", "hour", "hrs", "hr", "h"), 3_600 * _NANOS_PER_SECOND),
    (("days", "day", "d"), 86_400 * _NANOS_PER_SECOND),
    (("weeks", "week", "w"), 604_800 * _NANOS_PER_SECOND),
    (("months", "month", "M"), 2_630_016 * _NANOS_PER_SECOND),
    (("years", "year", "y"), 31_557_600 * _NANOS_PER_SECOND),
):
    for _name in _names:
        _UNITS[_name] = _nanos

_COMPONENT = re.compile(r"\s*(\d+)\s*([A-Za-z]*)\s*")


class DurationError(ValueError):
    """Raised for a duration string that cannot be parsed."""


def parse_duration(text: str) -> timedelta:
    """Parses a duration made of ``<number><unit>`` parts.

    Sub-microsecond precision is truncated, as `timedelta` cannot hold it.
    """
    if not text.strip():
        raise DurationError("value was empty")
    total_nanos = 0
    position = 0
    while position < len(text):
        match = _COMPONENT.match(text, position)
        if match is None:
            raise DurationError(f"expected number at {position} in {text!r}")
        number, unit = match.groups()
        if not unit:
            raise DurationError(f"time unit needed, for example {number}sec or {number}ms")
        if unit not in _UNITS:
            raise DurationError(f"unknown time unit {unit!r} in {text!r}")
        total_nanos += int(number) * _UNITS[unit]
        position = match.end()
    try:
        return timedelta(microseconds=total_nanos // 1_000)
    except OverflowError as exc:
        raise DurationError(f"number is too large in {text!r}") from exc