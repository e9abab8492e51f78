from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import pytest

from findfiles.timeselect import (
    Direction,
    TimeCriterion,
    TimeSpecError,
    absolute_timestamp,
    decode,
    parse_timestamp,
    reference_time,
    relative_age,
    subtract_months,
)
from findfiles.timevalue import NS_PER_SECOND, TimeValue

START = TimeValue(1_700_000_000, 500)
DAY = 24 * 60 * 60


def local(*args: int) -> TimeValue:
    return TimeValue(int(datetime(*args).timestamp()), 0)


def test_relative_age_boundary_is_inclusive():
    crit = relative_age("3D", START)
    assert crit.direction is Direction.OLDER_OR_EQUAL
    assert crit.use_access_time is False
    boundary = START.minus(seconds=3 * DAY)
    assert crit.target == boundary
    assert crit.accepts(boundary)
    assert crit.accepts(boundary.minus(seconds=100))
    assert not crit.accepts(boundary.plus(nanoseconds=1))


def test_relative_age_minus_selects_newer():
    crit = relative_age("-3h", START, use_access_time=True)
    assert crit.direction is Direction.NEWER_OR_EQUAL
    assert crit.use_access_time is True
    boundary = START.minus(seconds=3 * 60 * 60)
    assert crit.accepts(boundary)
    assert crit.accepts(START.plus(seconds=60))
    assert not crit.accepts(boundary.minus(nanoseconds=1))


def test_relative_age_plus_sign_is_older():
    assert relative_age("+2m", START).direction is Direction.OLDER_OR_EQUAL


def test_fractional_ages_are_exact():
    assert relative_age("1.5h", START).target == START.minus(seconds=5400)
    assert relative_age(".25s", START).target == START.minus(nanoseconds=NS_PER_SECOND // 4)
    crit = relative_age("2147483648.123456789s", START)
    assert crit.target == START.minus(seconds=2_147_483_648, nanoseconds=123_456_789)
    crit = relative_age("0.000000001s", START)
    assert crit.target == START.minus(nanoseconds=1)


def test_zero_age_matches_any_time():
    crit = relative_age("0s", START, use_access_time=True)
    assert not crit.active
    assert crit.use_access_time is True
    assert crit.accepts(START.plus(seconds=10**9))
    assert crit.accepts(TimeValue(-(10**9), 0))


def test_illegal_unit_and_malformed_age():
    with pytest.raises(TimeSpecError, match="illegal time unit"):
        relative_age("3q", START)
    with pytest.raises(TimeSpecError):
        relative_age("-.h", START)


def test_month_subtraction_clamps_to_month_end():
    start = local(2023, 3, 31, 12, 0, 0)
    assert datetime.fromtimestamp(subtract_months(start, 1).seconds) == datetime(2023, 2, 28, 12, 0, 0)
    start = local(2024, 3, 31, 12, 0, 0)
    assert datetime.fromtimestamp(subtract_months(start, 1).seconds) == datetime(2024, 2, 29, 12, 0, 0)
    start = local(2024, 1, 15, 8, 30, 0)
    assert datetime.fromtimestamp(subtract_months(start, 13).seconds) == datetime(2022, 12, 15, 8, 30, 0)


def test_year_age_uses_calendar():
    start = local(2024, 2, 29, 0, 0, 0).plus(nanoseconds=7)
    crit = relative_age("1Y", start)
    assert datetime.fromtimestamp(crit.target.seconds) == datetime(2023, 2, 28, 0, 0, 0)
    assert crit.target.nanoseconds == 7


def test_fractional_month_warns_and_truncates():
    start = local(2023, 6, 10, 0, 0, 0)
    notes: list[str] = []
    crit = relative_age("2.5M", start, advise=notes.append)
    assert len(notes) == 1
    assert "2.5M" in notes[0]
    assert datetime.fromtimestamp(crit.target.seconds) == datetime(2023, 4, 10, 0, 0, 0)

    notes.clear()
    relative_age("2.0Y", start, advise=notes.append)
    assert notes == []


def test_parse_timestamp_with_fraction():
    base = local(2024, 1, 2, 3, 4, 5)
    assert parse_timestamp("20240102_030405") == base
    assert parse_timestamp("20240102_030405.5") == TimeValue(base.seconds, 500_000_000)
    assert parse_timestamp("20240102_030405.1234567891") == TimeValue(base.seconds, 123_456_789)
    assert parse_timestamp("2024-01-02 03:04:05", "%Y-%m-%d %H:%M:%S") == base


def test_parse_timestamp_error_names_template():
    with pytest.raises(TimeSpecError, match="YYYYMMDD_HHMMSS"):
        parse_timestamp("yesterday")
    with pytest.raises(TimeSpecError):
        parse_timestamp("20240102_030405.x")


def test_absolute_timestamp_sign_convention():
    base = local(2024, 1, 2, 3, 4, 5)
    newer = absolute_timestamp("20240102_030405")
    assert newer.direction is Direction.NEWER_OR_EQUAL
    assert newer.accepts(base)
    assert not newer.accepts(base.minus(nanoseconds=1))

    assert absolute_timestamp("+20240102_030405").direction is Direction.NEWER_OR_EQUAL

    older = absolute_timestamp("-20240102_030405", use_access_time=True)
    assert older.direction is Direction.OLDER_OR_EQUAL
    assert older.use_access_time is True
    assert older.accepts(base)
    assert not older.accepts(base.plus(nanoseconds=1))


def test_decode_picks_form():
    assert decode("5m", START).target == START.minus(seconds=300)
    assert decode("-20240102_030405", START).direction is Direction.OLDER_OR_EQUAL
    with pytest.raises(TimeSpecError):
        decode("", START)
    with pytest.raises(TimeSpecError):
        decode("5 minutes", START)


def test_reference_newer_is_strict(tmp_path: Path):
    ref = tmp_path / "ref"
    ref.write_bytes(b"")
    t_ns = 1_600_000_000 * NS_PER_SECOND + 42
    os.utime(ref, ns=(t_ns, t_ns))
    when = TimeValue.from_ns(t_ns)

    for expr in (str(ref), "+" + str(ref)):
        crit = reference_time(expr)
        assert not crit.accepts(when)
        assert crit.accepts(when.plus(nanoseconds=1))


def test_reference_older_is_strict(tmp_path: Path):
    ref = tmp_path / "ref"
    ref.write_bytes(b"")
    m_ns = 1_600_000_000 * NS_PER_SECOND
    a_ns = m_ns + 5 * NS_PER_SECOND
    os.utime(ref, ns=(a_ns, m_ns))

    crit = reference_time("-" + str(ref))
    assert crit.direction is Direction.OLDER_OR_EQUAL
    assert not crit.accepts(TimeValue.from_ns(m_ns))
    assert crit.accepts(TimeValue.from_ns(m_ns - 1))

    acc = reference_time("-" + str(ref), use_access_time=True)
    assert acc.target == TimeValue.from_ns(a_ns - 1)


def test_reference_missing_is_fatal(tmp_path: Path):
    with pytest.raises(TimeSpecError, match="cannot access"):
        reference_time(str(tmp_path / "nope"))
    with pytest.raises(TimeSpecError):
        reference_time("-")


def test_default_criterion_is_inactive():
    crit = TimeCriterion()
    assert not crit.active
    assert crit.accepts(TimeValue(0, 0))
