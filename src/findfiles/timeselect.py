from __future__ import annotations

import calendar
import os
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, datetime
from enum import Enum

from .timevalue import NS_PER_SECOND, Ordering, TimeValue, compare

DEFAULT_TIME_FORMAT = "%Y%m%d_%H%M%S"

UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "D": 24 * 60 * 60,
    "W": 7 * 24 * 60 * 60,
}
# Calendar units are applied to the civil date, so they are counted in months.
CALENDAR_MONTHS = {"M": 1, "Y": 12}

_RELATIVE_RE = re.compile(r"([+-]?)(\d*)(?:\.(\d*))?([A-Za-z])")

_FORMAT_NAMES = {
    "%Y": "YYYY",
    "%m": "MM",
    "%d": "DD",
    "%H": "HH",
    "%M": "MM",
    "%S": "SS",
    "%f": "FFFFFF",
    "%%": "%",
}


class TimeSpecError(ValueError):
    pass


class Direction(Enum):
    NEWER_OR_EQUAL = "newer"
    OLDER_OR_EQUAL = "older"


@dataclass(frozen=True)
class TimeCriterion:
    use_access_time: bool = False
    target: TimeValue | None = None
    direction: Direction = Direction.OLDER_OR_EQUAL

    @property
    def active(self) -> bool:
        return self.target is not None

    def object_time(self, st: os.stat_result) -> TimeValue:
        return TimeValue.of_atime(st) if self.use_access_time else TimeValue.of_mtime(st)

    def accepts(self, when: TimeValue) -> bool:
        if self.target is None:
            return True
        order = compare(when, self.target)
        if self.direction is Direction.NEWER_OR_EQUAL:
            return order is not Ordering.LESS
        return order is not Ordering.GREATER


def describe_format(fmt: str) -> str:
    out = fmt
    for directive, name in _FORMAT_NAMES.items():
        out = out.replace(directive, name)
    return out


def _scaled_ns(whole: str, frac: str, scale: int) -> int:
    # Integer and fractional digits are scaled separately to stay exact.
    total = int(whole or "0") * scale * NS_PER_SECOND
    if frac:
        total += int(frac) * scale * NS_PER_SECOND // 10 ** len(frac)
    return total


def subtract_months(start: TimeValue, months: int) -> TimeValue:
    local = datetime.fromtimestamp(start.seconds)
    year, month0 = divmod(local.year * 12 + local.month - 1 - months, 12)
    if not MINYEAR <= year <= MAXYEAR:
        raise TimeSpecError(f"age of {months} months is out of range")
    day = min(local.day, calendar.monthrange(year, month0 + 1)[1])
    shifted = local.replace(year=year, month=month0 + 1, day=day)
    try:
        seconds = int(shifted.timestamp())
    except (OverflowError, OSError, ValueError) as e:
        raise TimeSpecError(f"age of {months} months is out of range") from e
    return TimeValue(seconds, start.nanoseconds)


def is_relative_age(expr: str) -> bool:
    return _RELATIVE_RE.fullmatch(expr) is not None


def relative_age(
    expr: str,
    start: TimeValue,
    use_access_time: bool = False,
    advise: Callable[[str], None] | None = None,
) -> TimeCriterion:
    m = _RELATIVE_RE.fullmatch(expr)
    if m is None or not (m.group(2) or m.group(3)):
        raise TimeSpecError(f"invalid relative age '{expr}'")
    sign, whole, frac, unit = m.group(1), m.group(2), m.group(3) or "", m.group(4)
    direction = Direction.NEWER_OR_EQUAL if sign == "-" else Direction.OLDER_OR_EQUAL

    if unit in CALENDAR_MONTHS:
        if frac.strip("0") and advise is not None:
            advise(f"non-integral age '{expr}': months and years are truncated to {whole or 0}{unit}")
        months = int(whole or "0") * CALENDAR_MONTHS[unit]
        target = subtract_months(start, months) if months else None
    elif unit in UNIT_SECONDS:
        ns = _scaled_ns(whole, frac, UNIT_SECONDS[unit])
        target = start.minus(nanoseconds=ns) if ns else None
    else:
        raise TimeSpecError(f"illegal time unit '{unit}' in '{expr}'")
    return TimeCriterion(use_access_time, target, direction)


def parse_timestamp(text: str, time_format: str = DEFAULT_TIME_FORMAT) -> TimeValue:
    ns = 0
    try:
        parsed = datetime.strptime(text, time_format)
    except ValueError:
        head, dot, frac = text.rpartition(".")
        if not dot or not frac.isdigit():
            raise TimeSpecError(
                f"invalid timestamp '{text}': expected {describe_format(time_format)}[.fraction]"
            ) from None
        try:
            parsed = datetime.strptime(head, time_format)
        except ValueError:
            raise TimeSpecError(
                f"invalid timestamp '{text}': expected {describe_format(time_format)}[.fraction]"
            ) from None
        ns = int(frac[:9].ljust(9, "0"))
    if not ns:
        ns = parsed.microsecond * 1000
    try:
        seconds = int(parsed.replace(microsecond=0).timestamp())
    except (OverflowError, OSError, ValueError) as e:
        raise TimeSpecError(f"timestamp '{text}' is out of range") from e
    return TimeValue(seconds, ns)


def absolute_timestamp(
    expr: str,
    use_access_time: bool = False,
    time_format: str = DEFAULT_TIME_FORMAT,
) -> TimeCriterion:
    body = expr
    direction = Direction.NEWER_OR_EQUAL
    if body[:1] in ("-", "+"):
        if body[0] == "-":
            direction = Direction.OLDER_OR_EQUAL
        body = body[1:]
    return TimeCriterion(use_access_time, parse_timestamp(body, time_format), direction)


def reference_time(
    expr: str,
    use_access_time: bool = False,
    lstat: Callable[[str], os.stat_result] = os.lstat,
) -> TimeCriterion:
    path = expr
    older = False
    if path[:1] in ("-", "+"):
        older = path[0] == "-"
        path = path[1:]
    if not path:
        raise TimeSpecError(f"missing reference object in '{expr}'")
    try:
        st = lstat(path)
    except OSError as e:
        raise TimeSpecError(f"cannot access reference object '{path}': {e.strerror}") from e

    when = TimeValue.of_atime(st) if use_access_time else TimeValue.of_mtime(st)
    if older:
        return TimeCriterion(use_access_time, when.minus(nanoseconds=1), Direction.OLDER_OR_EQUAL)
    return TimeCriterion(use_access_time, when.plus(nanoseconds=1), Direction.NEWER_OR_EQUAL)


def decode(
    expr: str,
    start: TimeValue,
    use_access_time: bool = False,
    time_format: str = DEFAULT_TIME_FORMAT,
    advise: Callable[[str], None] | None = None,
) -> TimeCriterion:
    if not expr:
        raise TimeSpecError("empty time expression")
    if is_relative_age(expr):
        return relative_age(expr, start, use_access_time, advise)
    return absolute_timestamp(expr, use_access_time, time_format)
