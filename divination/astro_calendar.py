"""
Gregorian ↔ Chinese lunar calendar conversion.

Handles:
- Decoding the packed 1900-2099 lunar year table
- Gregorian → lunar conversion (leap months included)
- Lunar → Gregorian conversion by bounded search
- Lunar date strings (正月初一, 闰四月廿三 ...) and two-hour (时辰) names
- Day-of-week helpers for LLM context

Day arithmetic runs on Julian Day numbers from Swiss Ephemeris so that
every module counts days the same way.
"""

import bisect
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional, Union

import swisseph as swe

from divination.errors import InvalidInputError, LunarDateNotFoundError, UnsupportedRangeError
from divination.ganzhi import EARTHLY_BRANCHES, parse_branch

logger = logging.getLogger(__name__)

FIRST_YEAR = 1900
LAST_YEAR = 2099

# Lunar new year 1900 (正月初一) fell on 1900-01-31.
EPOCH = date(1900, 1, 31)
EPOCH_JD = swe.julday(EPOCH.year, EPOCH.month, EPOCH.day, 0.0)

# Reverse search looks this many days either side of the nominal date,
# nearest the usual lunar lag first. 正月初一 falls between Jan 21 and Feb 20.
SEARCH_WINDOW_DAYS = 366
LUNAR_LAG_DAYS = 35

CHINA_STANDARD_TIME = timezone(timedelta(hours=8), "CST")


# ============================================================
# PACKED LUNAR TABLE
# ============================================================
#
# One 17-bit word per lunar year, 1900-2099:
#   bits 0-3   leap month number (0 = no leap month)
#   bits 4-15  month lengths, bit 15 = month 1 ... bit 4 = month 12
#              (1 = 30 days, 0 = 29 days)
#   bit 16     leap month length (1 = 30 days, 0 = 29 days)

LUNAR_INFO = (
    0x04bd8, 0x04ae0, 0x0a570, 0x054d5, 0x0d260, 0x0d950, 0x16554, 0x056a0, 0x09ad0, 0x055d2,  # 1900
    0x04ae0, 0x0a5b6, 0x0a4d0, 0x0d250, 0x1d255, 0x0b540, 0x0d6a0, 0x0ada2, 0x095b0, 0x14977,  # 1910
    0x04970, 0x0a4b0, 0x0b4b5, 0x06a50, 0x06d40, 0x1ab54, 0x02b60, 0x09570, 0x052f2, 0x04970,  # 1920
    0x06566, 0x0d4a0, 0x0ea50, 0x16a95, 0x05ad0, 0x02b60, 0x186e3, 0x092e0, 0x1c8d7, 0x0c950,  # 1930
    0x0d4a0, 0x1d8a6, 0x0b550, 0x056a0, 0x1a5b4, 0x025d0, 0x092d0, 0x0d2b2, 0x0a950, 0x0b557,  # 1940
    0x06ca0, 0x0b550, 0x15355, 0x04da0, 0x0a5b0, 0x14573, 0x052b0, 0x0a9a8, 0x0e950, 0x06aa0,  # 1950
    0x0aea6, 0x0ab50, 0x04b60, 0x0aae4, 0x0a570, 0x05260, 0x0f263, 0x0d950, 0x05b57, 0x056a0,  # 1960
    0x096d0, 0x04dd5, 0x04ad0, 0x0a4d0, 0x0d4d4, 0x0d250, 0x0d558, 0x0b540, 0x0b6a0, 0x195a6,  # 1970
    0x095b0, 0x049b0, 0x0a974, 0x0a4b0, 0x0b27a, 0x06a50, 0x06d40, 0x0af46, 0x0ab60, 0x09570,  # 1980
    0x04af5, 0x04970, 0x064b0, 0x074a3, 0x0ea50, 0x06b58, 0x05ac0, 0x0ab60, 0x096d5, 0x092e0,  # 1990
    0x0c960, 0x0d954, 0x0d4a0, 0x0da50, 0x07552, 0x056a0, 0x0abb7, 0x025d0, 0x092d0, 0x0cab5,  # 2000
    0x0a950, 0x0b4a0, 0x0baa4, 0x0ad50, 0x055d9, 0x04ba0, 0x0a5b0, 0x15176, 0x052b0, 0x0a930,  # 2010
    0x07954, 0x06aa0, 0x0ad50, 0x05b52, 0x04b60, 0x0a6e6, 0x0a4e0, 0x0d260, 0x0ea65, 0x0d530,  # 2020
    0x05aa0, 0x076a3, 0x096d0, 0x04afb, 0x04ad0, 0x0a4d0, 0x1d0b6, 0x0d250, 0x0d520, 0x0dd45,  # 2030
    0x0b5a0, 0x056d0, 0x055b2, 0x049b0, 0x0a577, 0x0a4b0, 0x0aa50, 0x1b255, 0x06d20, 0x0ada0,  # 2040
    0x14b63, 0x09370, 0x049f8, 0x04970, 0x064b0, 0x168a6, 0x0ea50, 0x06b20, 0x1a6c4, 0x0aae0,  # 2050
    0x092e0, 0x0d2e3, 0x0c960, 0x0d557, 0x0d4a0, 0x0da50, 0x05d55, 0x056a0, 0x0a6d0, 0x055d4,  # 2060
    0x052d0, 0x0a9b8, 0x0a950, 0x0b4a0, 0x0b6a6, 0x0ad50, 0x055a0, 0x0aba4, 0x0a5b0, 0x052b0,  # 2070
    0x0b273, 0x06930, 0x07337, 0x06aa0, 0x0ad50, 0x14b55, 0x04b60, 0x0a570, 0x054e4, 0x0d160,  # 2080
    0x0e968, 0x0d520, 0x0daa0, 0x16aa6, 0x056d0, 0x04ae0, 0x0a9d4, 0x0a2d0, 0x0d150, 0x0f252,  # 2090
)

LUNAR_MONTH_NAMES = (
    "正月", "二月", "三月", "四月", "五月", "六月",
    "七月", "八月", "九月", "十月", "冬月", "腊月",
)

LUNAR_DAY_NAMES = (
    "初一", "初二", "初三", "初四", "初五", "初六", "初七", "初八", "初九", "初十",
    "十一", "十二", "十三", "十四", "十五", "十六", "十七", "十八", "十九", "二十",
    "廿一", "廿二", "廿三", "廿四", "廿五", "廿六", "廿七", "廿八", "廿九", "三十",
)

WEEKDAY_NAMES_CN = ("星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日")


def _info(year: int) -> int:
    if not FIRST_YEAR <= year <= LAST_YEAR:
        raise UnsupportedRangeError(f"Lunar year {year} outside supported range {FIRST_YEAR}-{LAST_YEAR}")
    return LUNAR_INFO[year - FIRST_YEAR]


def leap_month(year: int) -> int:
    """Number of the month followed by a leap month, or 0."""
    return _info(year) & 0xF


def leap_days(year: int) -> int:
    """Length of the leap month (0 when the year has none)."""
    if leap_month(year) == 0:
        return 0
    return 30 if _info(year) & 0x10000 else 29


def month_days(year: int, month: int) -> int:
    """Length of regular month 1-12."""
    if not 1 <= month <= 12:
        raise InvalidInputError(f"Lunar month must be 1-12, got {month}")
    return 30 if _info(year) & (0x10000 >> month) else 29


def year_days(year: int) -> int:
    """Total days in a lunar year: 12 × 29 plus long months plus the leap month."""
    info = _info(year)
    total = 348
    bit = 0x8000
    while bit > 0x8:
        if info & bit:
            total += 1
        bit >>= 1
    return total + leap_days(year)


def _build_year_starts() -> list[int]:
    starts = [0]
    for year in range(FIRST_YEAR, LAST_YEAR + 1):
        starts.append(starts[-1] + year_days(year))
    return starts


# _YEAR_STARTS[i] = day offset of 正月初一 of year FIRST_YEAR + i; the last
# entry is the exclusive end of the table.
_YEAR_STARTS = _build_year_starts()


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class LunarDate:
    year: int
    month: int
    day: int
    is_leap_month: bool = False

    @property
    def month_name(self) -> str:
        return ("闰" if self.is_leap_month else "") + LUNAR_MONTH_NAMES[self.month - 1]

    @property
    def day_name(self) -> str:
        return LUNAR_DAY_NAMES[self.day - 1]

    def __str__(self):
        return f"{self.year}年{self.month_name}{self.day_name}"

    def to_dict(self):
        return {
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "is_leap_month": self.is_leap_month,
            "text": str(self),
        }


@dataclass(frozen=True)
class CalendarDate:
    gregorian: datetime
    lunar: LunarDate

    def to_dict(self):
        return {
            "gregorian": self.gregorian.isoformat(),
            "lunar": self.lunar.to_dict(),
        }


# ============================================================
# DAY ARITHMETIC
# ============================================================

def to_wall_clock(moment: datetime) -> datetime:
    """Naive China Standard Time for an aware datetime; naive input passes through."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(CHINA_STANDARD_TIME).replace(tzinfo=None)


def _as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return to_wall_clock(value).date()
    return value


def day_offset(value: Union[date, datetime, str]) -> int:
    """Whole days from 1900-01-31 to the given calendar date."""
    d = _as_date(value)
    return round(swe.julday(d.year, d.month, d.day, 0.0) - EPOCH_JD)


def date_from_offset(offset: int) -> date:
    year, month, day, _ = swe.revjul(EPOCH_JD + offset)
    return date(year, month, day)


# ============================================================
# GREGORIAN → LUNAR
# ============================================================

def _lunar_from_offset(offset: int) -> LunarDate:
    if offset < 0 or offset >= _YEAR_STARTS[-1]:
        raise UnsupportedRangeError(
            f"{date_from_offset(offset)} is outside lunar years {FIRST_YEAR}-{LAST_YEAR}")

    year_slot = bisect.bisect_right(_YEAR_STARTS, offset) - 1
    year = FIRST_YEAR + year_slot
    remaining = offset - _YEAR_STARTS[year_slot]

    leap = leap_month(year)
    for month in range(1, 13):
        days = month_days(year, month)
        if remaining < days:
            return LunarDate(year, month, remaining + 1, False)
        remaining -= days
        if month == leap:
            days = leap_days(year)
            if remaining < days:
                return LunarDate(year, month, remaining + 1, True)
            remaining -= days

    # year_days() covers every month above, so the walk always lands
    raise AssertionError(f"Lunar month walk overran year {year}")


def solar_to_lunar(value: Union[date, datetime, str]) -> LunarDate:
    """
    Convert a Gregorian date to its lunar date.

    Args:
        value: date, datetime (time ignored) or ISO string

    Returns:
        LunarDate with is_leap_month set inside a leap month

    Raises:
        UnsupportedRangeError: before 1900-01-31 or after lunar year 2099
    """
    return _lunar_from_offset(day_offset(value))


def calendar_date(moment: datetime) -> CalendarDate:
    moment = to_wall_clock(moment)
    return CalendarDate(gregorian=moment, lunar=solar_to_lunar(moment))


# ============================================================
# LUNAR → GREGORIAN
# ============================================================

@lru_cache(maxsize=4096)
def lunar_to_solar(year: int, month: int, day: int, is_leap: bool = False) -> date:
    """
    Convert a lunar date back to its Gregorian date.

    There is no closed form, so every day within SEARCH_WINDOW_DAYS of the
    nominal Gregorian date is forward-converted and compared, starting
    LUNAR_LAG_DAYS after it and working outwards.

    Raises:
        UnsupportedRangeError: lunar year outside 1900-2099
        LunarDateNotFoundError: the lunar date does not exist
    """
    _info(year)
    if not 1 <= month <= 12 or not 1 <= day <= 30:
        raise LunarDateNotFoundError(f"No such lunar date: {year}-{month}-{day}")

    target = LunarDate(year, month, day, bool(is_leap))
    nominal = day_offset(date(year, month, min(day, 28)))
    low = max(0, nominal - SEARCH_WINDOW_DAYS)
    high = min(_YEAR_STARTS[-1] - 1, nominal + SEARCH_WINDOW_DAYS)
    logger.debug("Searching %s over offsets %d-%d", target, low, high)

    likely = nominal + LUNAR_LAG_DAYS
    for offset in sorted(range(low, high + 1), key=lambda o: abs(o - likely)):
        if _lunar_from_offset(offset) == target:
            return date_from_offset(offset)

    raise LunarDateNotFoundError(f"No Gregorian date for lunar {target}")


# ============================================================
# DISPLAY HELPERS
# ============================================================

def chinese_hour_index(hour: int) -> int:
    """Branch index of the two-hour period (时辰) containing a clock hour."""
    return ((hour + 1) // 2) % 12


def chinese_hour(hour: int) -> str:
    return EARTHLY_BRANCHES[chinese_hour_index(hour)].chinese


def _hour_text(moment: datetime, hour_branch: Optional[str]) -> str:
    if hour_branch is not None:
        return parse_branch(hour_branch).chinese + "时"
    return chinese_hour(to_wall_clock(moment).hour) + "时"


def lunar_date_string(moment: datetime, hour_branch: Optional[str] = None) -> str:
    """
    Lunar date with the two-hour period, e.g. '2024年正月廿五 申时'.

    Args:
        moment: the Gregorian timestamp
        hour_branch: explicit 时辰 token ('申', 'shen'); overrides the clock hour
    """
    return f"{solar_to_lunar(moment)} {_hour_text(moment, hour_branch)}"


def lunar_date_string_without_year(moment: datetime, hour_branch: Optional[str] = None) -> str:
    lunar = solar_to_lunar(moment)
    return f"{lunar.month_name}{lunar.day_name} {_hour_text(moment, hour_branch)}"


def day_of_week(value: Union[date, datetime, str]) -> dict:
    """
    Day of week info for a given date, so the LLM never has to guess it.

    Returns:
        dict with 'date', 'day_name', 'day_name_cn', 'day_number' (0=Monday)
    """
    d = _as_date(value)
    return {
        "date": d.strftime("%Y-%m-%d"),
        "day_name": d.strftime("%A"),
        "day_name_cn": WEEKDAY_NAMES_CN[d.weekday()],
        "day_number": d.weekday(),
    }


# Quick verification
if __name__ == "__main__":
    for sample in ("1900-01-31", "2000-02-05", "2023-03-22", "2024-02-10"):
        print(f"{sample} → {solar_to_lunar(sample)}")

    print(f"\n2023 leap month: {leap_month(2023)} ({leap_days(2023)} days)")
    print(f"闰二月初一 2023 → {lunar_to_solar(2023, 2, 1, True)}")
    print(lunar_date_string(datetime(2024, 3, 5, 15, 30)))
