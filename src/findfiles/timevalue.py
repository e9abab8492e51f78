from __future__ import annotations

import os
import time
from dataclasses import dataclass
from enum import IntEnum

NS_PER_SECOND = 1_000_000_000


class Ordering(IntEnum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


@dataclass(frozen=True, order=True)
class TimeValue:
    seconds: int = 0
    nanoseconds: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.nanoseconds < NS_PER_SECOND:
            raise ValueError(f"nanoseconds out of range: {self.nanoseconds}")

    @classmethod
    def normalize(cls, seconds: int, nanoseconds: int) -> TimeValue:
        carry, ns = divmod(nanoseconds, NS_PER_SECOND)
        return cls(seconds + carry, ns)

    @classmethod
    def from_ns(cls, total_ns: int) -> TimeValue:
        return cls.normalize(0, total_ns)

    @classmethod
    def now(cls) -> TimeValue:
        return cls.from_ns(time.time_ns())

    @classmethod
    def of_mtime(cls, st: os.stat_result) -> TimeValue:
        return cls.from_ns(st.st_mtime_ns)

    @classmethod
    def of_atime(cls, st: os.stat_result) -> TimeValue:
        return cls.from_ns(st.st_atime_ns)

    def to_ns(self) -> int:
        return self.seconds * NS_PER_SECOND + self.nanoseconds

    def plus(self, seconds: int = 0, nanoseconds: int = 0) -> TimeValue:
        return TimeValue.normalize(self.seconds + seconds, self.nanoseconds + nanoseconds)

    def minus(self, seconds: int = 0, nanoseconds: int = 0) -> TimeValue:
        return TimeValue.normalize(self.seconds - seconds, self.nanoseconds - nanoseconds)

    def __str__(self) -> str:
        return f"{self.seconds}.{self.nanoseconds:09d}"


def compare(a: TimeValue, b: TimeValue) -> Ordering:
    if a.seconds != b.seconds:
        return Ordering.LESS if a.seconds < b.seconds else Ordering.GREATER
    if a.nanoseconds != b.nanoseconds:
        return Ordering.LESS if a.nanoseconds < b.nanoseconds else Ordering.GREATER
    return Ordering.EQUAL


def difference(a: TimeValue, b: TimeValue) -> tuple[TimeValue, bool]:
    """
    Return ``(|a - b|, a < b)``.

    The magnitude is built by subtracting the smaller instant from the larger
    one field by field, borrowing one second when the nanosecond field would go
    negative, so it never carries a negative sub-second part.
    """
    negative = compare(a, b) is Ordering.LESS
    big, small = (b, a) if negative else (a, b)

    seconds = big.seconds - small.seconds
    nanoseconds = big.nanoseconds - small.nanoseconds
    if nanoseconds < 0:
        seconds -= 1
        nanoseconds += NS_PER_SECOND
    return TimeValue(seconds, nanoseconds), negative


def parse_time_value(text: str) -> TimeValue:
    """Parse ``[-]SECONDS[.FRACTION]``; fraction digits past nanoseconds are ignored."""
    raw = text.strip()
    sign = 1
    if raw[:1] in ("+", "-"):
        sign = -1 if raw[0] == "-" else 1
        raw = raw[1:]
    whole, _, frac = raw.partition(".")
    if not whole.isdigit() or (frac and not frac.isdigit()):
        raise ValueError(f"invalid time value: {text!r}")
    total_ns = int(whole) * NS_PER_SECOND + int(frac[:9].ljust(9, "0") or "0")
    return TimeValue.from_ns(sign * total_ns)
