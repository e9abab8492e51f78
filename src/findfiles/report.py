from __future__ import annotations

import contextlib
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TextIO

from .core import ObjectRecord
from .timeselect import DEFAULT_TIME_FORMAT
from .timevalue import TimeValue, difference

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR

SIZE_SUFFIXES = "KMGTPE"


@dataclass(frozen=True)
class DisplayOptions:
    verbosity: int = 0
    reverse: bool = False
    seconds_only: bool = False
    nanoseconds: bool = False
    units: bool = False
    human: int = 0  # 0 (raw bytes), 1000 or 1024
    time_format: str = DEFAULT_TIME_FORMAT


def sort_records(records: Iterable[ObjectRecord], reverse: bool = False) -> list[ObjectRecord]:
    # Plain str ordering compares code points, independent of locale.
    return sorted(records, key=lambda r: (r.time_s, r.time_ns, r.path), reverse=reverse)


def format_time(when: TimeValue, display: DisplayOptions) -> str:
    try:
        text = datetime.fromtimestamp(when.seconds).strftime(display.time_format)
    except (OverflowError, OSError, ValueError):
        # outside the platform's localtime range
        text = str(when.seconds)
    if display.nanoseconds:
        text += f".{when.nanoseconds:09d}"
    return text


def format_age(start: TimeValue, when: TimeValue, display: DisplayOptions) -> str:
    age, future = difference(start, when)
    sign = "-" if future else ""
    fraction = f".{age.nanoseconds:09d}" if display.nanoseconds else ""
    unit = "s" if display.units else " "

    if display.seconds_only:
        return f"{sign}{age.seconds}{fraction}".rjust(15 + len(fraction)) + unit

    days, rest = divmod(age.seconds, SECONDS_PER_DAY)
    hours, rest = divmod(rest, SECONDS_PER_HOUR)
    minutes, seconds = divmod(rest, SECONDS_PER_MINUTE)
    text = f"{sign}{days}D_{hours:02d}:{minutes:02d}:{seconds:02d}{fraction}"
    return text.rjust(16 + len(fraction)) + unit


def format_size(size: int, display: DisplayOptions) -> str:
    unit = "B" if display.units else " "
    if not display.human:
        return f"{size:14d}{unit}"
    if size < display.human:
        return f"{size:7d}{unit}"

    value = float(size)
    suffix = ""
    for suffix in SIZE_SUFFIXES:
        value /= display.human
        if value < display.human:
            break
    return f"{value:6.1f}{suffix}{unit}"


def format_record(record: ObjectRecord, start: TimeValue, display: DisplayOptions) -> str:
    if display.verbosity < 1:
        return record.path
    when = record.time
    return "  ".join(
        (
            format_time(when, display),
            format_age(start, when, display),
            format_size(record.size, display),
            record.path,
        )
    )


def write_report(
    records: Iterable[ObjectRecord],
    start: TimeValue,
    display: DisplayOptions,
    out: TextIO | None = None,
) -> None:
    stream = out if out is not None else sys.stdout
    try:
        for record in sort_records(records, display.reverse):
            stream.write(format_record(record, start, display))
            stream.write("\n")
        stream.flush()
    except BrokenPipeError:
        with contextlib.suppress(Exception):
            stream.close()
