"""
The 24 solar terms (二十四节气) by the mean-period approximation.

Handles:
- Term moments for any year in the supported range
- The current (most recent) term for a moment
- The terms surrounding a moment, optionally restricted to Jie (节)
- Display text such as '立春2024.02.04 14:39 ~ 雨水2024.02.19 10:48'
- Drift of the table against the Swiss Ephemeris crossing

Each term is the epoch plus a whole number of mean tropical years plus a
fixed minute offset. This is not an ephemeris: results drift from the true
solar longitude crossing by up to a few hours.

Even-indexed terms (小寒, 立春, 惊蛰 ...) are the Jie that open BaZi months
and anchor the luck-pillar onset; odd-indexed terms are the Qi.

All moments are naive wall-clock datetimes on the same clock as the
caller's input. Aware inputs are converted to China Standard Time first.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import swisseph as swe

from divination.astro_calendar import FIRST_YEAR, LAST_YEAR, to_wall_clock
from divination.errors import UnsupportedRangeError

# 小寒 of 1900
TERM_EPOCH = datetime(1900, 1, 6, 2, 5)
TROPICAL_YEAR_MS = 31556925974.7

# Minutes after the year's 小寒
TERM_OFFSETS_MINUTES = (
    0, 21208, 42467, 63836, 85337, 107014, 128867, 150921,
    173149, 195551, 218072, 240693, 263343, 285989, 308563, 331033,
    353350, 375494, 397447, 419210, 440795, 462224, 483532, 504758,
)

SOLAR_TERM_NAMES = (
    "小寒", "大寒", "立春", "雨水", "惊蛰", "春分", "清明", "谷雨",
    "立夏", "小满", "芒种", "夏至", "小暑", "大暑", "立秋", "处暑",
    "白露", "秋分", "寒露", "霜降", "立冬", "小雪", "大雪", "冬至",
)

LI_CHUN = 2  # 立春, start of the BaZi year

# Terms are computed one year either side of the requested year during
# boundary searches, so the table is usable slightly beyond the lunar range.
_TERM_YEARS = (FIRST_YEAR - 1, LAST_YEAR + 1)


@dataclass(frozen=True)
class SolarTerm:
    name: str
    index: int  # 0-23, 0 = 小寒
    moment: datetime

    @property
    def is_jie(self) -> bool:
        return self.index % 2 == 0

    @property
    def month_branch_index(self) -> int:
        """Branch of the BaZi month a Jie opens (小寒 → 丑, 立春 → 寅 ...)."""
        return (self.index // 2 + 1) % 12

    def to_dict(self):
        return {
            "name": self.name,
            "index": self.index,
            "is_jie": self.is_jie,
            "moment": self.moment.isoformat(timespec="minutes"),
        }


@dataclass(frozen=True)
class SurroundingTerms:
    prev: SolarTerm
    next: SolarTerm

    def to_dict(self):
        return {"prev": self.prev.to_dict(), "next": self.next.to_dict()}


def term_moment(year: int, index: int) -> datetime:
    """Moment of solar term `index` (0-23) in Gregorian `year`."""
    if not _TERM_YEARS[0] <= year <= _TERM_YEARS[1]:
        raise UnsupportedRangeError(f"Solar terms unavailable for {year}")
    millis = TROPICAL_YEAR_MS * (year - 1900) + TERM_OFFSETS_MINUTES[index] * 60000
    return TERM_EPOCH + timedelta(milliseconds=millis)


def terms_for_year(year: int) -> list[SolarTerm]:
    """All 24 terms of a Gregorian year in order, 小寒 first."""
    return [SolarTerm(name, idx, term_moment(year, idx))
            for idx, name in enumerate(SOLAR_TERM_NAMES)]


def current_term(moment: datetime) -> SolarTerm:
    """
    The most recent term at or before `moment`.

    Before the year's 小寒 this is the previous year's 冬至.
    """
    moment = to_wall_clock(moment)
    terms = terms_for_year(moment.year)
    if moment < terms[0].moment:
        return terms_for_year(moment.year - 1)[23]

    current = terms[0]
    for term in terms:
        if moment >= term.moment:
            current = term
        else:
            break
    return current


def _candidate_terms(year: int, jie_only: bool) -> list[SolarTerm]:
    terms = []
    for y in (year - 1, year, year + 1):
        terms.extend(terms_for_year(y))
    if jie_only:
        terms = [t for t in terms if t.is_jie]
    return terms


def surrounding_terms(moment: datetime, jie_only: bool = False) -> SurroundingTerms:
    """
    The terms bracketing a moment: prev <= moment < next.

    Args:
        moment: timestamp to locate
        jie_only: restrict to the even-indexed Jie (month boundaries)

    Returns:
        SurroundingTerms; either side may fall in the adjacent year
    """
    moment = to_wall_clock(moment)
    terms = _candidate_terms(moment.year, jie_only)

    prev: Optional[SolarTerm] = None
    for term in terms:
        if term.moment <= moment:
            prev = term
        else:
            # terms is chronological and spans a full year either side
            return SurroundingTerms(prev=prev, next=term)

    raise UnsupportedRangeError(f"No solar term after {moment}")


def format_term_date(moment: datetime) -> str:
    return moment.strftime("%Y.%m.%d %H:%M")


def solar_term_text(moment: datetime) -> str:
    """Display text for the term period containing `moment`."""
    around = surrounding_terms(moment)
    return (f"{around.prev.name}{format_term_date(around.prev.moment)} ~ "
            f"{around.next.name}{format_term_date(around.next.moment)}")


# ============================================================
# EPHEMERIS REFERENCE
# ============================================================
#
# Each term is the Sun reaching a multiple of 15° of ecliptic longitude,
# 小寒 at 285°. Swiss Ephemeris swe.solcross_ut() finds the exact crossing;
# the Moshier ephemeris needs no data files.

def term_longitude(index: int) -> float:
    return float((285 + 15 * index) % 360)


def ephemeris_term_moment(year: int, index: int) -> datetime:
    """
    True crossing moment of a term, as naive China Standard Time.

    Used to measure the drift of the mean-period table, not by the pillars.
    """
    jd_year_start = swe.julday(year, 1, 1, 0.0)
    jd_cross = swe.solcross_ut(term_longitude(index), jd_year_start, swe.FLG_MOSEPH)
    y, m, d, h = swe.revjul(jd_cross)
    utc = datetime(y, m, d, tzinfo=timezone.utc) + timedelta(hours=h)
    return to_wall_clock(utc)


def term_drift(year: int, index: int) -> timedelta:
    """Mean-period moment minus the ephemeris moment."""
    return term_moment(year, index) - ephemeris_term_moment(year, index)


# Quick verification
if __name__ == "__main__":
    print("2024 Jie Solar Terms:")
    for term in terms_for_year(2024):
        if term.is_jie:
            print(f"  {term.name} → month branch {term.month_branch_index}: {format_term_date(term.moment)}")

    print(f"\n{solar_term_text(datetime(2024, 2, 10, 12, 0))}")
    print(f"立春 2024 drift vs ephemeris: {term_drift(2024, LI_CHUN)}")
