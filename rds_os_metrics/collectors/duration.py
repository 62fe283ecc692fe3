"""Human readable duration parsing ("1 minute", "5 mins", "1h 30m", "90", "1:30").

Accepted grammar:

- one or more ``<number><unit>`` terms, optionally separated by whitespace,
  commas or the word ``and``. Units are case-insensitive and run from seconds
  to years; a month is 30 days and a year 365.25 days. ``m`` is minutes.
- a lone number without a unit, read as seconds.
- a clock form on its own: ``mm:ss``, ``h:mm:ss`` or ``d:hh:mm:ss``. Only the
  leading field may exceed two digits and only the last may carry a fraction.

Anything else (other units, clock forms mixed with unit terms) is rejected.
"""
from __future__ import annotations
import re
from typing import Dict

UNIT_SECONDS: Dict[str, int] = {}
for _names, _secs in (
    (('s', 'sec', 'secs', 'second', 'seconds'), 1),
    (('m', 'min', 'mins', 'minute', 'minutes'), 60),
    (('h', 'hr', 'hrs', 'hour', 'hours'), 3600),
    (('d', 'day', 'days'), 86400),
    (('w', 'wk', 'wks', 'week', 'weeks'), 604800),
    (('mo', 'mos', 'mon', 'mons', 'month', 'months'), 2592000),
    (('y', 'yr', 'yrs', 'year', 'years'), 31557600),
):
    for _n in _names:
        UNIT_SECONDS[_n] = _secs

TERM_RE = re.compile(r"\s*(?:,|and\b)?\s*(\d+(?:\.\d+)?|\.\d+)\s*([a-z]*)\s*", re.IGNORECASE)
BARE_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*$")
CLOCK_RE = re.compile(r"^\s*(\d+(?::\d{1,2}){0,2}:\d{1,2}(?:\.\d+)?)\s*$")
CLOCK_WEIGHTS = (1, 60, 3600, 86400)


class DurationParseError(ValueError):
    pass


def parse_duration(text: str) -> float:
    """Return the number of seconds described by ``text``."""
    if not isinstance(text, str) or not text.strip():
        raise DurationParseError(f'empty duration: {text!r}')
    m = BARE_NUMBER_RE.match(text)
    if m:
        return float(m.group(1))
    m = CLOCK_RE.match(text)
    if m:
        fields = m.group(1).split(':')
        return sum(float(v) * w for v, w in zip(reversed(fields), CLOCK_WEIGHTS))
    total = 0.0
    pos = 0
    terms = 0
    while pos < len(text):
        m = TERM_RE.match(text, pos)
        if not m or m.end() == pos:
            raise DurationParseError(f'unparseable duration: {text!r}')
        unit = m.group(2).lower()
        if unit not in UNIT_SECONDS:
            raise DurationParseError(f'unknown duration unit {m.group(2)!r} in {text!r}')
        total += float(m.group(1)) * UNIT_SECONDS[unit]
        terms += 1
        pos = m.end()
    if not terms:
        raise DurationParseError(f'unparseable duration: {text!r}')
    return total


__all__ = ["parse_duration", "DurationParseError"]
