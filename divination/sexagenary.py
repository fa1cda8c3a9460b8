"""
Sexagenary clock: timestamp → Year/Month/Day/Hour pillars.

Handles:
- Year pillar switching at 立春 (Start of Spring)
- Month pillar from the preceding Jie term plus the Five Tigers rule
- Day pillar from the day count since 1900-01-31 (a 甲辰 day)
- Hour pillar by the Five Rats rule, with early-Zi (早子时) handling
- Explicit two-hour (时辰) input for births known only to the 时辰
- Flowing (流年/流月/流日/流时) pillars for an injected "now"

The input timestamp is assumed to be already corrected to local solar
time if the caller wants that; this module reads the wall clock as given.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from divination.astro_calendar import FIRST_YEAR, LAST_YEAR, chinese_hour_index, day_offset
from divination.errors import UnsupportedRangeError
from divination.ganzhi import EARTHLY_BRANCHES, HEAVENLY_STEMS, FourPillars, Pillar, parse_branch
from divination.solar_terms import (
    LI_CHUN, SolarTerm, surrounding_terms, term_moment, terms_for_year, to_wall_clock,
)

logger = logging.getLogger(__name__)

# 1900-01-31 is cycle index 40 (甲辰)
EPOCH_CYCLE_INDEX = 40

# Five Tigers Escape (五虎遁): year stem → stem of the 寅 month
TIGER_START_STEMS = {
    0: 2, 5: 2,   # Jia/Ji year → Bing Tiger
    1: 4, 6: 4,   # Yi/Geng year → Wu Tiger
    2: 6, 7: 6,   # Bing/Xin year → Geng Tiger
    3: 8, 8: 8,   # Ding/Ren year → Ren Tiger
    4: 0, 9: 0,   # Wu/Gui year → Jia Tiger
}

# Five Rats Escape (五鼠遁): day stem → stem of the 子 hour
RAT_START_STEMS = {
    0: 0, 5: 0,   # Jia/Ji day → Jia Zi hour
    1: 2, 6: 2,   # Yi/Geng day → Bing Zi hour
    2: 4, 7: 4,   # Bing/Xin day → Wu Zi hour
    3: 6, 8: 6,   # Ding/Ren day → Geng Zi hour
    4: 8, 9: 8,   # Wu/Gui day → Ren Zi hour
}


def _check_range(moment: datetime):
    if not FIRST_YEAR <= moment.year <= LAST_YEAR:
        raise UnsupportedRangeError(
            f"{moment:%Y-%m-%d} outside supported range {FIRST_YEAR}-{LAST_YEAR}")


# ============================================================
# PILLAR COMPUTATION
# ============================================================

def bazi_year(moment: datetime) -> int:
    """Gregorian year number of the BaZi year containing `moment`."""
    moment = to_wall_clock(moment)
    if moment < term_moment(moment.year, LI_CHUN):
        return moment.year - 1
    return moment.year


def year_pillar(moment: datetime) -> Pillar:
    """
    Compute the Year Pillar.

    The BaZi year starts at 立春, usually Feb 3-5. Before it, the
    previous year's pillar applies.
    """
    moment = to_wall_clock(moment)
    _check_range(moment)
    effective_year = bazi_year(moment)

    # (year - 4) because 4 CE was a 甲子 year
    return Pillar(
        stem=HEAVENLY_STEMS[(effective_year - 4) % 10],
        branch=EARTHLY_BRANCHES[(effective_year - 4) % 12],
        position="year",
    )


def month_stem_index(year_stem_index: int, month_branch_index: int) -> int:
    """Five Tigers: month stem for a branch, counted from the 寅 month."""
    start_stem = TIGER_START_STEMS[year_stem_index]
    months_from_tiger = (month_branch_index - 2) % 12
    return (start_stem + months_from_tiger) % 10


def month_jie(moment: datetime) -> SolarTerm:
    """The Jie term that opened the BaZi month containing `moment`."""
    return surrounding_terms(moment, jie_only=True).prev


def month_pillar(moment: datetime, year_stem_index: int) -> Pillar:
    """
    Compute the Month Pillar.

    The branch comes from the most recent Jie term, read from the same
    term table that decides the year boundary, so 立春 moves the year and
    the month together. The stem follows the Five Tigers rule.
    """
    branch_index = month_jie(moment).month_branch_index
    return Pillar(
        stem=HEAVENLY_STEMS[month_stem_index(year_stem_index, branch_index)],
        branch=EARTHLY_BRANCHES[branch_index],
        position="month",
    )


def early_zi_shift(moment: datetime, early_zi_hour: bool) -> int:
    """
    Days to add before the day pillar is counted.

    With early-Zi handling on, 23:00-23:59 already belongs to the next
    day. 00:00-00:59 is on the next calendar date anyway, so both halves
    of the Zi hour share one day pillar.
    """
    if early_zi_hour and moment.hour == 23:
        return 1
    return 0


def day_cycle_index(moment: datetime, shift: int = 0) -> int:
    return (day_offset(moment) + shift + EPOCH_CYCLE_INDEX) % 60


def day_pillar(moment: datetime, early_zi_hour: bool = False) -> Pillar:
    """Compute the Day Pillar from the day count since 1900-01-31."""
    moment = to_wall_clock(moment)
    _check_range(moment)
    index = day_cycle_index(moment, early_zi_shift(moment, early_zi_hour))
    return Pillar(
        stem=HEAVENLY_STEMS[index % 10],
        branch=EARTHLY_BRANCHES[index % 12],
        position="day",
    )


def hour_pillar(day_stem_index: int, hour_branch_index: int) -> Pillar:
    """
    Compute the Hour Pillar using the Five Rats Escape formula.

    Chinese hours (时辰) are 2-hour blocks starting 23:00 = 子.

    Args:
        day_stem_index: stem of the day the hour is counted in (after any
            early-Zi shift)
        hour_branch_index: 0-11
    """
    start_stem = RAT_START_STEMS[day_stem_index]
    return Pillar(
        stem=HEAVENLY_STEMS[(start_stem + hour_branch_index) % 10],
        branch=EARTHLY_BRANCHES[hour_branch_index],
        position="hour",
    )


def four_pillars(moment: datetime, early_zi_hour: bool = False,
                 hour_branch: Optional[str] = None) -> FourPillars:
    """
    Compute all four pillars for a moment.

    Args:
        moment: wall-clock timestamp (aware datetimes are converted to CST)
        early_zi_hour: treat 23:00-23:59 as the next day
        hour_branch: explicit 时辰 token ('戌', 'xu', '戌时'); replaces the
            clock hour and disables the early-Zi shift

    Raises:
        UnsupportedRangeError: year outside 1900-2099
        InvalidInputError: unknown hour token
    """
    moment = to_wall_clock(moment)
    yp = year_pillar(moment)
    mp = month_pillar(moment, yp.stem.index)

    if hour_branch is not None:
        shift = 0
        hour_index = parse_branch(hour_branch).index
    else:
        shift = early_zi_shift(moment, early_zi_hour)
        hour_index = chinese_hour_index(moment.hour)

    if shift:
        logger.debug("Early Zi hour at %s: counting day and hour from the next day", moment)

    dp = day_pillar(moment, early_zi_hour=bool(shift))
    hp = hour_pillar(dp.stem.index, hour_index)
    return FourPillars(year=yp, month=mp, day=dp, hour=hp)


# ============================================================
# FLOWING PILLARS
# ============================================================

def flowing_pillars(now: datetime) -> FourPillars:
    """流年 / 流月 / 流日 / 流时 for the injected current moment."""
    current = four_pillars(now)
    return FourPillars(
        year=Pillar(current.year.stem, current.year.branch, "flowing_year"),
        month=Pillar(current.month.stem, current.month.branch, "flowing_month"),
        day=Pillar(current.day.stem, current.day.branch, "flowing_day"),
        hour=Pillar(current.hour.stem, current.hour.branch, "flowing_hour"),
    )


@dataclass(frozen=True)
class MonthTerm:
    term: SolarTerm
    pillar: Pillar

    def to_dict(self):
        return {
            "term": self.term.to_dict(),
            "pillar": self.pillar.chinese,
        }


def month_term_pillars(now: datetime) -> list[MonthTerm]:
    """
    The twelve Jie of the BaZi year containing `now`, each with the month
    pillar it opens: 立春 through 大雪, then the following year's 小寒.
    """
    year = bazi_year(now)
    jie = [t for t in terms_for_year(year) if t.is_jie and t.index >= LI_CHUN]
    jie.append(terms_for_year(year + 1)[0])

    # every one of these months, the final 丑 month included, sits in `year`
    year_stem_index = (year - 4) % 10
    items = []
    for term in jie:
        inside = term.moment + timedelta(minutes=1)
        items.append(MonthTerm(term=term, pillar=month_pillar(inside, year_stem_index)))
    return items


if __name__ == "__main__":
    samples = [
        datetime(2024, 2, 4, 16, 0),   # after 立春 → 甲辰 year
        datetime(2000, 1, 1, 12, 0),   # 戊午 day
        datetime(1949, 10, 1, 15, 0),  # 甲子 day
    ]
    for moment in samples:
        fp = four_pillars(moment)
        print(f"{moment:%Y-%m-%d %H:%M}: " + " ".join(p.chinese for p in fp))

    late = datetime(2024, 5, 1, 23, 30)
    print(f"\n23:30 late Zi : {' '.join(p.chinese for p in four_pillars(late))}")
    print(f"23:30 early Zi: {' '.join(p.chinese for p in four_pillars(late, early_zi_hour=True))}")
