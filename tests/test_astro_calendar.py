import os
import sys
from datetime import date, datetime, timedelta, timezone

import pytest

# Allow importing the divination package from the project root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from divination.astro_calendar import (
    FIRST_YEAR, LAST_YEAR, LunarDate, calendar_date, chinese_hour, day_of_week, leap_days,
    leap_month, lunar_date_string, lunar_date_string_without_year, lunar_to_solar, month_days,
    solar_to_lunar, year_days,
)
from divination.errors import (
    DivinationError, InvalidInputError, LunarDateNotFoundError, UnsupportedRangeError,
)


@pytest.mark.parametrize(
    "gregorian, expected",
    [
        (date(1900, 1, 31), LunarDate(1900, 1, 1)),
        (date(2000, 2, 5), LunarDate(2000, 1, 1)),
        (date(2024, 2, 10), LunarDate(2024, 1, 1)),
        (date(2024, 3, 5), LunarDate(2024, 1, 25)),
        (date(2023, 3, 22), LunarDate(2023, 2, 1, True)),
        (date(2023, 2, 20), LunarDate(2023, 2, 1)),
        (date(1990, 3, 15), LunarDate(1990, 2, 19)),
    ],
)
def test_solar_to_lunar_known_dates(gregorian, expected):
    assert solar_to_lunar(gregorian) == expected


def test_solar_to_lunar_accepts_datetime_and_string():
    assert solar_to_lunar(datetime(2024, 2, 10, 23, 59)) == LunarDate(2024, 1, 1)
    assert solar_to_lunar("2024-02-10") == LunarDate(2024, 1, 1)


def test_leap_month_decoding():
    assert leap_month(2023) == 2
    assert leap_days(2023) == 29
    assert leap_month(2024) == 0
    assert leap_days(2024) == 0
    assert month_days(2024, 1) == 29


def test_year_days_matches_new_year_gap():
    assert year_days(2023) == (date(2024, 2, 10) - date(2023, 1, 22)).days


def test_month_days_rejects_bad_month():
    with pytest.raises(InvalidInputError):
        month_days(2024, 13)


@pytest.mark.parametrize(
    "lunar, expected",
    [
        ((2023, 2, 1, True), date(2023, 3, 22)),
        ((2023, 2, 1, False), date(2023, 2, 20)),
        ((2024, 1, 1, False), date(2024, 2, 10)),
        ((1900, 1, 1, False), date(1900, 1, 31)),
    ],
)
def test_lunar_to_solar_known_dates(lunar, expected):
    assert lunar_to_solar(*lunar) == expected


@pytest.mark.parametrize(
    "gregorian",
    [date(1901, 6, 1), date(1950, 12, 31), date(1999, 12, 31),
     date(2033, 11, 22), date(2057, 9, 28), date(2099, 6, 30)],
)
def test_reverse_conversion_returns_original_date(gregorian):
    lunar = solar_to_lunar(gregorian)
    assert lunar_to_solar(lunar.year, lunar.month, lunar.day, lunar.is_leap_month) == gregorian


def _months_of(year):
    for month in range(1, 13):
        yield month, False, month_days(year, month)
        if month == leap_month(year):
            yield month, True, leap_days(year)


def test_every_month_boundary_round_trips():
    expected_first = date(1900, 1, 31)
    for year in range(FIRST_YEAR, LAST_YEAR + 1):
        for month, is_leap, length in _months_of(year):
            first = lunar_to_solar(year, month, 1, is_leap)
            last = lunar_to_solar(year, month, length, is_leap)
            assert first == expected_first, (year, month, is_leap)
            assert (last - first).days == length - 1, (year, month, is_leap)
            assert solar_to_lunar(first) == LunarDate(year, month, 1, is_leap)
            assert solar_to_lunar(last) == LunarDate(year, month, length, is_leap)
            expected_first = last + timedelta(days=1)


def test_aware_moments_read_in_china_standard_time():
    # 20:00 UTC on 2024-02-09 is 04:00 on 2024-02-10 in Beijing, lunar new year
    moment = datetime(2024, 2, 9, 20, 0, tzinfo=timezone.utc)
    assert solar_to_lunar(moment) == LunarDate(2024, 1, 1)
    assert day_of_week(moment)["date"] == "2024-02-10"
    assert lunar_date_string(moment) == "2024年正月初一 寅时"

    converted = calendar_date(moment)
    assert converted.gregorian == datetime(2024, 2, 10, 4, 0)
    assert converted.lunar == LunarDate(2024, 1, 1)

    # naive moments are already wall-clock
    assert solar_to_lunar(datetime(2024, 2, 9, 20, 0)) == LunarDate(2023, 12, 30)


def test_out_of_range_dates_raise():
    with pytest.raises(UnsupportedRangeError):
        solar_to_lunar(date(1900, 1, 30))
    with pytest.raises(UnsupportedRangeError):
        solar_to_lunar(date(2100, 6, 1))
    with pytest.raises(UnsupportedRangeError):
        lunar_to_solar(2100, 1, 1)


def test_missing_lunar_dates_raise_not_found():
    # 2024 正月 has 29 days and 2024 has no leap month
    with pytest.raises(LunarDateNotFoundError):
        lunar_to_solar(2024, 1, 30)
    with pytest.raises(LunarDateNotFoundError):
        lunar_to_solar(2024, 3, 1, True)


def test_errors_keep_builtin_contracts():
    assert issubclass(UnsupportedRangeError, ValueError)
    assert issubclass(LunarDateNotFoundError, LookupError)
    assert issubclass(InvalidInputError, DivinationError)


def test_lunar_date_string():
    moment = datetime(2024, 3, 5, 15, 30)
    assert lunar_date_string(moment) == "2024年正月廿五 申时"
    assert lunar_date_string(moment, hour_branch="xu") == "2024年正月廿五 戌时"
    assert lunar_date_string_without_year(moment) == "正月廿五 申时"


def test_leap_month_name():
    assert str(solar_to_lunar(date(2023, 3, 22))) == "2023年闰二月初一"


@pytest.mark.parametrize(
    "hour, branch",
    [(23, "子"), (0, "子"), (1, "丑"), (12, "午"), (15, "申"), (22, "亥")],
)
def test_chinese_hour(hour, branch):
    assert chinese_hour(hour) == branch


def test_day_of_week():
    info = day_of_week("2026-02-15")
    assert info["day_name"] == "Sunday"
    assert info["day_name_cn"] == "星期日"
    assert info["day_number"] == 6
