"""FHIR date search semantics.

A date search value such as ``ge2019-05`` is a prefix plus a FHIR date or
dateTime. Both the search value and the resource value are expanded to the
implicit range their precision covers, then compared according to the prefix.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

DATE_PREFIXES = ("eq", "ne", "gt", "lt", "ge", "le", "sa", "eb", "ap")

_YEAR = re.compile(r"^\d{4}$")
_YEAR_MONTH = re.compile(r"^\d{4}-\d{2}$")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_OPEN_START = datetime.min.replace(tzinfo=timezone.utc)
_OPEN_END = datetime.max.replace(tzinfo=timezone.utc)
_TICK = timedelta(microseconds=1)


@dataclass(frozen=True)
class DateRange:
    """Inclusive instant range covered by a FHIR date value."""

    start: datetime
    end: datetime


def split_prefix(search_value: str) -> Tuple[str, str]:
    """Split ``ge2020-01-01`` into ``("ge", "2020-01-01")``; default prefix is eq."""
    if len(search_value) > 2 and search_value[:2] in DATE_PREFIXES:
        return search_value[:2], search_value[2:]
    return "eq", search_value


def parse_date_range(value: str) -> Optional[DateRange]:
    """Expand a FHIR date/dateTime to the range its precision covers.

    Returns None when the value cannot be parsed.
    """
    if not isinstance(value, str):
        return None
    value = value.strip()
    try:
        if _YEAR.match(value):
            start = datetime(int(value), 1, 1, tzinfo=timezone.utc)
            return DateRange(start, start + relativedelta(years=1) - _TICK)
        if _YEAR_MONTH.match(value):
            year, month = value.split("-")
            start = datetime(int(year), int(month), 1, tzinfo=timezone.utc)
            return DateRange(start, start + relativedelta(months=1) - _TICK)
        if _DATE.match(value):
            year, month, day = value.split("-")
            start = datetime(int(year), int(month), int(day), tzinfo=timezone.utc)
            return DateRange(start, start + relativedelta(days=1) - _TICK)

        instant = dateutil_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return DateRange(instant, instant)


def target_range(target: Any) -> Optional[DateRange]:
    """Range of a resource value: a date string or a Period mapping."""
    if isinstance(target, str):
        return parse_date_range(target)
    if not isinstance(target, dict):
        return None

    start, end = _OPEN_START, _OPEN_END
    if target.get("start"):
        start_range = parse_date_range(target["start"])
        if start_range is None:
            return None
        start = start_range.start
    if target.get("end"):
        end_range = parse_date_range(target["end"])
        if end_range is None:
            return None
        end = end_range.end
    return DateRange(start, end)


def validate_date_search(search_value: str, target: Any) -> bool:
    """Whether ``target`` satisfies the prefixed date search value."""
    prefix, raw = split_prefix(search_value)
    search = parse_date_range(raw)
    found = target_range(target)
    if search is None or found is None:
        return False

    # A Period matches when any part of it satisfies the comparison
    overlaps = found.start <= search.end and found.end >= search.start
    if prefix in ("eq", "ap"):
        return overlaps
    if prefix == "ne":
        return not overlaps
    if prefix == "gt":
        return found.end > search.end
    if prefix == "lt":
        return found.start < search.start
    if prefix == "ge":
        return found.end >= search.start
    if prefix == "le":
        return found.start <= search.end
    if prefix == "sa":
        return found.start > search.end
    if prefix == "eb":
        return found.end < search.start
    return False
