"""
auth/durations.py -- Relative duration parsing for cookie and token lifetimes.

Cookie lifetimes are usually configured as short human strings ("+2 weeks",
"14 days", "+1 hour"). parse_duration() normalizes those, plain integer
seconds, and timedelta objects into a single timedelta so the rest of the
package only ever compares timedeltas.

Months and years are approximated (30 and 365 days). Remember-me windows are
tolerances, not calendar arithmetic.
"""

from __future__ import annotations

import re
from datetime import timedelta

from auth.errors import ConfigurationError

# One or more "<amount> <unit>" terms, optionally signed: "+2 weeks 3 days".
_TERM_RE = re.compile(r"([+-]?\d+)\s*([a-z]+)")

_UNIT_SECONDS: dict[str, int] = {
    "second": 1,
    "sec": 1,
    "s": 1,
    "minute": 60,
    "min": 60,
    "m": 60,
    "hour": 3600,
    "h": 3600,
    "day": 86400,
    "d": 86400,
    "week": 7 * 86400,
    "w": 7 * 86400,
    "fortnight": 14 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
    "y": 365 * 86400,
}


def _unit_seconds(unit: str) -> int | None:
    if unit in _UNIT_SECONDS:
        return _UNIT_SECONDS[unit]
    # Plurals of word units only ("weeks", "mins"); "ms" is not minutes.
    if unit.endswith("s") and len(unit) > 2 and unit[:-1] in _UNIT_SECONDS:
        return _UNIT_SECONDS[unit[:-1]]
    return None


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Return value as a positive timedelta.

    Accepts a timedelta (returned as-is), a number of seconds, a numeric
    string ("3600"), or a relative expression such as "+2 weeks".

    Raises ConfigurationError for anything else, including zero or negative
    durations -- a non-positive lifetime can only be a configuration mistake.
    """
    if isinstance(value, timedelta):
        result = value
    elif isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    elif isinstance(value, (int, float)):
        result = timedelta(seconds=value)
    elif isinstance(value, str):
        result = _parse_expression(value)
    else:
        raise ConfigurationError(f"Invalid duration: {value!r}")

    if result <= timedelta(0):
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return result


def _parse_expression(text: str) -> timedelta:
    normalized = text.strip().lower()
    if not normalized:
        raise ConfigurationError("Duration must not be empty.")
    if normalized.lstrip("+").isdigit():
        return timedelta(seconds=int(normalized.lstrip("+")))

    total = 0
    consumed = 0
    for match in _TERM_RE.finditer(normalized):
        # Only whitespace may separate terms; anything else is garbage input.
        if normalized[consumed : match.start()].strip():
            raise ConfigurationError(f"Invalid duration: {text!r}")
        seconds = _unit_seconds(match.group(2))
        if seconds is None:
            raise ConfigurationError(f"Unknown duration unit {match.group(2)!r} in {text!r}")
        total += int(match.group(1)) * seconds
        consumed = match.end()

    if consumed == 0 or normalized[consumed:].strip():
        raise ConfigurationError(f"Invalid duration: {text!r}")
    return timedelta(seconds=total)
