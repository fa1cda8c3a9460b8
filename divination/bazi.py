"""
BaZi (Four Pillars of Destiny) attribute engine.

Handles:
- Ten Gods (十神) for visible and hidden stems
- NaYin (纳音) sound elements
- Twelve life stages (十二长生): star fortune and self seat
- Emptiness (空亡) per pillar
- Auxiliary stars (神煞) attached to pillars by rule
- Auxiliary points: 胎元, 命宫, 身宫, 胎息, 命卦
- Luck pillars (大运) with the 起运 onset
- Full chart assembly, including relationships and flowing pillars

Design principle: This module COMPUTES and FLAGS. It does not interpret.
Interpretation is the LLM's job.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from divination.astro_calendar import lunar_date_string, to_wall_clock
from divination.errors import InvalidInputError
from divination.ganzhi import (
    HEAVENLY_STEMS, STEM_BY_CHINESE, EarthlyBranch, FourPillars, HeavenlyStem, Pillar,
    branch_rule_table, branch_set, element_relationship, hidden_stems_of, kong_wang,
    kong_wang_branches, make_pillar, parse_branch, parse_stem, stem_rule_table,
)
from divination.relationships import detect_relationships, layout_tracks
from divination.sexagenary import (
    flowing_pillars, four_pillars, month_stem_index, month_term_pillars,
)
from divination.solar_terms import SolarTerm, solar_term_text, surrounding_terms

logger = logging.getLogger(__name__)

GENDERS = ("male", "female")
GENDER_LABELS = {"male": "乾造", "female": "坤造"}
DAY_MASTER_LABELS = {"male": "元男", "female": "元女"}

DEFAULT_LUCK_PILLARS = 8
DAYS_PER_LUCK_YEAR = 3  # 3 days to the Jie = 1 year of age; 1 day = 4 months
DAYS_PER_YEAR = 365.2425


def normalize_gender(gender: str) -> str:
    key = str(gender).strip().lower()
    aliases = {"m": "male", "f": "female", "男": "male", "女": "female",
               "乾造": "male", "坤造": "female"}
    key = aliases.get(key, key)
    if key not in GENDERS:
        raise InvalidInputError(f"Gender must be 'male' or 'female', got {gender!r}")
    return key


# ============================================================
# TEN GODS (十神)
# ============================================================

# The Ten Gods describe the relationship between any stem and the Day Master.
# They are determined by element relationship + polarity match.
TEN_GODS = {
    # (relationship, same_polarity): god_name
    ("same", True): "比肩",          # Companion
    ("same", False): "劫财",         # Rob Wealth
    ("produces_me", True): "偏印",   # Indirect Resource
    ("produces_me", False): "正印",  # Direct Resource
    ("i_produce", True): "食神",     # Eating God
    ("i_produce", False): "伤官",    # Hurting Officer
    ("i_control", True): "偏财",     # Indirect Wealth
    ("i_control", False): "正财",    # Direct Wealth
    ("controls_me", True): "七杀",   # 7 Killings
    ("controls_me", False): "正官",  # Direct Officer
}


def _derive_ten_god(day_master: HeavenlyStem, other: HeavenlyStem) -> str:
    relationship = element_relationship(day_master.element, other.element)
    same_polarity = (day_master.polarity == other.polarity)
    return TEN_GODS[(relationship, same_polarity)]


# TEN_GOD_TABLE[day_stem_index][other_stem_index]
TEN_GOD_TABLE = tuple(
    tuple(_derive_ten_god(dm, other) for other in HEAVENLY_STEMS)
    for dm in HEAVENLY_STEMS
)


def ten_god(day_master: HeavenlyStem, other: HeavenlyStem) -> str:
    """
    Ten God of `other` relative to the Day Master.

    Args:
        day_master: the Day Master stem
        other: the stem being evaluated
    """
    return TEN_GOD_TABLE[day_master.index][other.index]


def branch_ten_god(day_master: HeavenlyStem, branch: EarthlyBranch) -> str:
    """Ten God of a branch, read through its main hidden stem."""
    return ten_god(day_master, STEM_BY_CHINESE[branch.hidden_stems[0]])


# ============================================================
# NAYIN (纳音)
# ============================================================

# One name per consecutive pair of the 60-cycle, starting 甲子/乙丑.
NAYIN_NAMES = (
    "海中金", "炉中火", "大林木", "路旁土", "剑锋金", "山头火",
    "涧下水", "城头土", "白蜡金", "杨柳木", "泉中水", "屋上土",
    "霹雳火", "松柏木", "长流水", "沙中金", "山下火", "平地木",
    "壁上土", "金箔金", "覆灯火", "天河水", "大驿土", "钗钏金",
    "桑柘木", "大溪水", "沙中土", "天上火", "石榴木", "大海水",
)


def nayin(pillar: Pillar) -> str:
    return NAYIN_NAMES[pillar.cycle_index // 2]


# ============================================================
# TWELVE LIFE STAGES (十二长生)
# ============================================================

LIFE_STAGES = ("长生", "沐浴", "冠带", "临官", "帝旺", "衰", "病", "死", "墓", "绝", "胎", "养")

# Stem index → branch index of its 长生. Yang stems count forward from
# there, yin stems backward.
LIFE_STAGE_START = {
    0: 11,  # 甲 → 亥
    1: 6,   # 乙 → 午
    2: 2,   # 丙 → 寅
    3: 9,   # 丁 → 酉
    4: 2,   # 戊 → 寅
    5: 9,   # 己 → 酉
    6: 5,   # 庚 → 巳
    7: 0,   # 辛 → 子
    8: 8,   # 壬 → 申
    9: 3,   # 癸 → 卯
}


def life_stage(stem: HeavenlyStem, branch: EarthlyBranch) -> str:
    start = LIFE_STAGE_START[stem.index]
    if stem.is_yang:
        step = (branch.index - start) % 12
    else:
        step = (start - branch.index) % 12
    return LIFE_STAGES[step]


# ============================================================
# AUXILIARY STARS (神煞)
# ============================================================

def _token(c: str):
    """A rule target is either a stem or a branch character."""
    if c in STEM_BY_CHINESE:
        return STEM_BY_CHINESE[c]
    return parse_branch(c)


def _pillar_set(*names: str) -> frozenset:
    return frozenset((parse_stem(n[0]).index, parse_branch(n[1]).index) for n in names)


def _month_stems(table: dict) -> dict:
    """{'寅午戌': '丙丁'} → {month_branch_index: stem index set}"""
    return {parse_branch(c).index: frozenset(parse_stem(s).index for s in stems)
            for months, stems in table.items() for c in months}


TIAN_YI = stem_rule_table({
    "甲戊庚": "丑未",
    "乙己": "子申",
    "丙丁": "亥酉",
    "壬癸": "巳卯",
    "辛": "午寅",
})

TAI_JI = stem_rule_table({
    "甲乙": "子午",
    "丙丁": "卯酉",
    "戊己": "辰戌",
    "庚辛": "丑未",
    "壬癸": "寅申",
})

# Month branch → a stem or, in four months, a branch
TIAN_DE = {parse_branch(k).index: _token(v) for k, v in {
    "寅": "丁", "卯": "申", "辰": "壬", "巳": "辛", "午": "亥", "未": "甲",
    "申": "癸", "酉": "寅", "戌": "丙", "亥": "乙", "子": "巳", "丑": "庚",
}.items()}

YUE_DE = _month_stems({"寅午戌": "丙", "亥卯未": "甲", "申子辰": "壬", "巳酉丑": "庚"})

# Simplified 德秀: month frame → the stems of its own element
DE_XIU = _month_stems({"寅午戌": "丙丁", "申子辰": "壬癸", "巳酉丑": "庚辛", "亥卯未": "甲乙"})

YI_MA = branch_rule_table({"申子辰": "寅", "寅午戌": "申", "巳酉丑": "亥", "亥卯未": "巳"})
TAO_HUA = branch_rule_table({"申子辰": "酉", "寅午戌": "卯", "巳酉丑": "午", "亥卯未": "子"})
HUA_GAI = branch_rule_table({"申子辰": "辰", "寅午戌": "戌", "巳酉丑": "丑", "亥卯未": "未"})

HONG_YAN = stem_rule_table({
    "甲": "午", "乙": "申", "丙": "寅", "丁": "未", "戊": "辰",
    "己": "辰", "庚": "戌", "辛": "酉", "壬": "子", "癸": "申",
})

JIN_YU = stem_rule_table({
    "甲": "辰", "乙": "巳", "丙": "未", "丁": "申", "戊": "未",
    "己": "申", "庚": "戌", "辛": "亥", "壬": "丑", "癸": "寅",
})

# 飞刃 sits opposite the 羊刃
FEI_REN = stem_rule_table({
    "甲": "酉", "乙": "申", "丙": "子", "丁": "亥", "戊": "子",
    "己": "亥", "庚": "卯", "辛": "寅", "壬": "午", "癸": "巳",
})

TONG_ZI = branch_rule_table({
    "子": "寅", "丑": "卯", "寅": "子", "卯": "未", "辰": "未", "巳": "辰",
    "午": "卯", "未": "辰", "申": "酉", "酉": "戌", "戌": "酉", "亥": "子",
})

TIAN_LUO_BRANCHES = branch_set("辰戌")
KUI_GANG_DAYS = _pillar_set("庚辰", "庚戌", "壬辰", "戊戌")
SHI_LING_DAYS = _pillar_set("甲辰", "乙亥", "丙辰", "丁酉", "戊午", "庚戌", "庚寅", "辛亥", "壬寅", "癸未")
BA_ZHUAN_DAYS = _pillar_set("甲寅", "乙卯", "丁未", "己未", "庚申", "辛酉", "戊戌", "癸丑")


@dataclass(frozen=True)
class StarContext:
    """The chart-wide inputs every star predicate may consult."""
    year: Pillar
    month: Pillar
    day: Pillar

    @classmethod
    def from_pillars(cls, pillars: FourPillars) -> "StarContext":
        return cls(year=pillars.year, month=pillars.month, day=pillars.day)


def _matches_target(target, pillar: Pillar) -> bool:
    if isinstance(target, HeavenlyStem):
        return pillar.stem == target
    return pillar.branch == target


def _day_combo(table: frozenset) -> Callable:
    def rule(ctx: StarContext, pillar: Pillar) -> bool:
        return pillar.position == "day" and (ctx.day.stem.index, ctx.day.branch.index) in table
    return rule


def _kong_wang_star(ctx: StarContext, pillar: Pillar) -> bool:
    # The day's decade checks the year branch; the year's decade checks the rest.
    if pillar.position == "year":
        return ctx.year.branch.index in kong_wang_branches(ctx.day.stem, ctx.day.branch)
    return pillar.branch.index in kong_wang_branches(ctx.year.stem, ctx.year.branch)


# (name, predicate(context, pillar)) in display order
SHEN_SHA_RULES = (
    ("天乙贵人", lambda ctx, p: p.branch.index in TIAN_YI[ctx.day.stem.index]),
    ("太极贵人", lambda ctx, p: p.branch.index in TAI_JI[ctx.day.stem.index]),
    ("天德贵人", lambda ctx, p: _matches_target(TIAN_DE[ctx.month.branch.index], p)),
    ("月德贵人", lambda ctx, p: p.stem.index in YUE_DE[ctx.month.branch.index]),
    ("德秀贵人", lambda ctx, p: p.stem.index in DE_XIU[ctx.month.branch.index]),
    ("驿马", lambda ctx, p: p.branch.index in YI_MA[ctx.day.branch.index]),
    ("桃花", lambda ctx, p: p.branch.index in TAO_HUA[ctx.day.branch.index]),
    ("红艳煞", lambda ctx, p: p.branch.index in HONG_YAN[ctx.day.stem.index]),
    ("华盖", lambda ctx, p: p.branch.index in HUA_GAI[ctx.day.branch.index]),
    ("金舆", lambda ctx, p: p.branch.index in JIN_YU[ctx.day.stem.index]),
    ("飞刃", lambda ctx, p: p.branch.index in FEI_REN[ctx.day.stem.index]),
    ("天罗", lambda ctx, p: p.position == "day" and ctx.day.branch.index in TIAN_LUO_BRANCHES),
    ("魁罡日", _day_combo(KUI_GANG_DAYS)),
    ("十灵日", _day_combo(SHI_LING_DAYS)),
    ("童子煞", lambda ctx, p: p.branch.index in TONG_ZI[ctx.year.branch.index]
                             or p.branch.index in TONG_ZI[ctx.day.branch.index]),
    ("丧门", lambda ctx, p: p.branch.index == (ctx.year.branch.index + 2) % 12),
    ("八专日", _day_combo(BA_ZHUAN_DAYS)),
    ("空亡", _kong_wang_star),
)


def shen_sha_for_pillar(ctx: StarContext, pillar: Pillar) -> list[str]:
    """Names of every star whose rule matches this pillar. A miss adds nothing."""
    return [name for name, rule in SHEN_SHA_RULES if rule(ctx, pillar)]


# ============================================================
# AUXILIARY POINTS
# ============================================================

@dataclass(frozen=True)
class AuxiliaryPoint:
    name: str
    pillar: Pillar

    @property
    def nayin(self) -> str:
        return nayin(self.pillar)

    def to_dict(self):
        return {"name": self.name, "ganzhi": self.pillar.chinese, "nayin": self.nayin}


@dataclass(frozen=True)
class MingGua:
    code: int
    gua: str
    group: str  # 东四命 / 西四命

    def to_dict(self):
        return {"code": self.code, "gua": self.gua, "group": self.group}


MING_GUA_TABLE = {
    1: ("坎卦", "东四命"),
    2: ("坤卦", "西四命"),
    3: ("震卦", "东四命"),
    4: ("巽卦", "东四命"),
    6: ("乾卦", "西四命"),
    7: ("兑卦", "西四命"),
    8: ("艮卦", "西四命"),
    9: ("离卦", "东四命"),
}


def tai_yuan(month: Pillar) -> AuxiliaryPoint:
    """胎元: month stem forward one, month branch forward three."""
    return AuxiliaryPoint("胎元", make_pillar(month.stem.index + 1, month.branch.index + 3, "tai_yuan"))


def ming_gong(year_stem: HeavenlyStem, month_branch: EarthlyBranch,
              hour_branch: EarthlyBranch) -> AuxiliaryPoint:
    """命宫: branch (11 - month - hour) mod 12, stem by Five Tigers from the year stem."""
    branch_index = (11 - month_branch.index - hour_branch.index) % 12
    stem_index = month_stem_index(year_stem.index, branch_index)
    return AuxiliaryPoint("命宫", make_pillar(stem_index, branch_index, "ming_gong"))


def shen_gong(year_stem: HeavenlyStem, month_branch: EarthlyBranch,
              hour_branch: EarthlyBranch) -> AuxiliaryPoint:
    """身宫: branch (month + hour) mod 12, stem by Five Tigers from the year stem."""
    branch_index = (month_branch.index + hour_branch.index) % 12
    stem_index = month_stem_index(year_stem.index, branch_index)
    return AuxiliaryPoint("身宫", make_pillar(stem_index, branch_index, "shen_gong"))


def tai_xi(day: Pillar) -> AuxiliaryPoint:
    """胎息: the day stem's five-combination partner over the day branch's six-combination partner."""
    b = day.branch.index
    partner = 1 - b if b <= 1 else 13 - b
    return AuxiliaryPoint("胎息", make_pillar(day.stem.index + 5, partner, "tai_xi"))


def ming_gua(birth_year: int, gender: str) -> MingGua:
    """
    命卦 (life trigram) from the digit sum of the birth year.

    5 has no trigram: men borrow 坤 (2), women borrow 艮 (8).
    """
    gender = normalize_gender(gender)
    digit_sum = sum(int(c) for c in str(birth_year))
    if gender == "male":
        code = (11 - digit_sum % 9) % 9
        code = code or 9
        if code == 5:
            code = 2
    else:
        code = (digit_sum + 4) % 9
        code = code or 9
        if code == 5:
            code = 8
    gua, group = MING_GUA_TABLE[code]
    return MingGua(code=code, gua=gua, group=group)


# ============================================================
# LUCK PILLAR COMPUTATION (大运)
# ============================================================

@dataclass(frozen=True)
class QiYun:
    """Onset of the luck pillars (起运)."""
    forward: bool
    years: int
    months: int
    days: int
    hours: int
    start_age: float  # fractional years
    start_date: datetime
    prev_jie: SolarTerm
    next_jie: SolarTerm

    @property
    def anchor_term(self) -> SolarTerm:
        return self.next_jie if self.forward else self.prev_jie

    def to_dict(self):
        return {
            "direction": "顺排" if self.forward else "逆排",
            "breakdown": {"years": self.years, "months": self.months,
                          "days": self.days, "hours": self.hours},
            "description": f"出生后{self.years}年{self.months}月{self.days}天{self.hours}时起运",
            "start_age": round(self.start_age, 4),
            "start_date": self.start_date.isoformat(timespec="minutes"),
            "anchor_term": self.anchor_term.to_dict(),
        }


@dataclass(frozen=True)
class DaYunPillar:
    sequence_index: int
    direction: str  # "forward" / "backward"
    pillar: Pillar
    ten_god: str
    start_age: int
    end_age: int
    start_year: int
    end_year: int
    start_date: datetime
    end_date: datetime
    is_current: bool

    def to_dict(self):
        return {
            "number": self.sequence_index + 1,
            "direction": self.direction,
            "ganzhi": self.pillar.chinese,
            "stem": self.pillar.stem.to_dict(),
            "branch": self.pillar.branch.to_dict(),
            "ten_god": self.ten_god,
            "nayin": nayin(self.pillar),
            "start_age": self.start_age,
            "end_age": self.end_age,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "start_date": self.start_date.isoformat(timespec="minutes"),
            "end_date": self.end_date.isoformat(timespec="minutes"),
            "is_current": self.is_current,
            "description": f"{self.pillar.chinese} {self.start_age}~{self.end_age}岁 ({self.start_year}-{self.end_year})",
        }


def _add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # 29 February in a non-leap target year rolls to 1 March
        return moment.replace(year=moment.year + years, month=3, day=1)


def is_forward(year_stem: HeavenlyStem, gender: str) -> bool:
    """Yang year + male or yin year + female counts forward."""
    return year_stem.is_yang == (normalize_gender(gender) == "male")


def compute_qi_yun(birth: datetime, year_stem: HeavenlyStem, gender: str) -> QiYun:
    """
    Compute the luck-pillar onset.

    The distance to the next Jie (forward) or from the previous Jie
    (backward) converts at 3 days = 1 year, so 1 day = 4 months. The
    remainder breaks down into months, 30-day "days" and hours.
    """
    birth = to_wall_clock(birth)
    forward = is_forward(year_stem, gender)
    around = surrounding_terms(birth, jie_only=True)

    if forward:
        delta = around.next.moment - birth
    else:
        delta = birth - around.prev.moment
    diff_days = max(0.0, delta.total_seconds() / 86400)

    total_months = diff_days * 12 / DAYS_PER_LUCK_YEAR
    years = int(total_months // 12)
    months = int(total_months - years * 12)
    days_float = (total_months - years * 12 - months) * 30
    days = int(days_float)
    hours = round((days_float - days) * 24)

    start_age = years + months / 12 + days / 360 + hours / (360 * 24)
    start_date = birth + timedelta(days=start_age * DAYS_PER_YEAR)

    return QiYun(
        forward=forward, years=years, months=months, days=days, hours=hours,
        start_age=start_age, start_date=start_date,
        prev_jie=around.prev, next_jie=around.next,
    )


def compute_luck_pillars(pillars: FourPillars, gender: str, birth: datetime,
                         now: datetime, num_pillars: int = DEFAULT_LUCK_PILLARS) -> tuple:
    """
    Compute Luck Pillars (大运 Da Yun).

    Direction of count depends on gender + year stem polarity:
    - Yang stem year + Male OR Yin stem year + Female → count FORWARD
    - Yang stem year + Female OR Yin stem year + Male → count BACKWARD

    Each pillar steps one place from the month pillar and covers exactly
    ten years from the onset date.

    Args:
        pillars: natal four pillars
        gender: "male" or "female"
        birth: birth moment
        now: moment deciding which pillar is current
        num_pillars: how many luck pillars to compute

    Returns:
        (QiYun, list of DaYunPillar)
    """
    birth = to_wall_clock(birth)
    now = to_wall_clock(now)
    qi_yun = compute_qi_yun(birth, pillars.year.stem, gender)
    step = 1 if qi_yun.forward else -1
    day_master = pillars.day_master

    luck = []
    for i in range(num_pillars):
        pillar = pillars.month.shifted(step * (i + 1), position="da_yun")
        start_age = qi_yun.start_age + i * 10
        end_age = start_age + 9.999
        start_date = _add_years(qi_yun.start_date, i * 10)
        end_date = _add_years(qi_yun.start_date, (i + 1) * 10)
        luck.append(DaYunPillar(
            sequence_index=i,
            direction="forward" if qi_yun.forward else "backward",
            pillar=pillar,
            ten_god=ten_god(day_master, pillar.stem),
            start_age=int(start_age),
            end_age=int(end_age),
            start_year=int(birth.year + start_age),
            end_year=int(birth.year + end_age),
            start_date=start_date,
            end_date=end_date,
            is_current=start_date <= now < end_date,
        ))
    return qi_yun, luck


# ============================================================
# PILLAR DETAILS
# ============================================================

@dataclass(frozen=True)
class HiddenStem:
    stem: HeavenlyStem
    ten_god: str

    def to_dict(self):
        return {"stem": self.stem.chinese, "element": self.stem.element.value, "ten_god": self.ten_god}


@dataclass(frozen=True)
class PillarDetail:
    pillar: Pillar
    main_star: str  # Ten God of the stem; 元男/元女 on the day pillar
    hidden_stems: tuple
    nayin: str
    shen_sha: tuple
    star_fortune: str  # Day Master's life stage on this branch (星运)
    self_seat: str  # this pillar's stem on its own branch (自坐)
    kong_wang: str

    def to_dict(self):
        return {
            **self.pillar.to_dict(),
            "main_star": self.main_star,
            "hidden_stems": [h.to_dict() for h in self.hidden_stems],
            "nayin": self.nayin,
            "shen_sha": list(self.shen_sha),
            "star_fortune": self.star_fortune,
            "self_seat": self.self_seat,
            "kong_wang": self.kong_wang,
        }


def pillar_details(pillars: FourPillars, gender: str) -> list[PillarDetail]:
    """Derive every per-pillar attribute relative to the Day Master."""
    gender = normalize_gender(gender)
    day_master = pillars.day_master
    ctx = StarContext.from_pillars(pillars)

    details = []
    for pillar in pillars:
        if pillar.position == "day":
            main_star = DAY_MASTER_LABELS[gender]
        else:
            main_star = ten_god(day_master, pillar.stem)
        hidden = tuple(HiddenStem(s, ten_god(day_master, s)) for s in hidden_stems_of(pillar.branch))
        details.append(PillarDetail(
            pillar=pillar,
            main_star=main_star,
            hidden_stems=hidden,
            nayin=nayin(pillar),
            shen_sha=tuple(shen_sha_for_pillar(ctx, pillar)),
            star_fortune=life_stage(day_master, pillar.branch),
            self_seat=life_stage(pillar.stem, pillar.branch),
            kong_wang=kong_wang(pillar.stem, pillar.branch),
        ))
    return details


# ============================================================
# FULL CHART COMPUTATION
# ============================================================

@dataclass(frozen=True)
class BasicInfo:
    name: Optional[str]
    gender: str
    solar_date: str
    lunar_date: str
    solar_term: str
    zodiac: str
    ming_gong: AuxiliaryPoint
    shen_gong: AuxiliaryPoint
    tai_yuan: AuxiliaryPoint
    tai_xi: AuxiliaryPoint
    ming_gua: MingGua

    def to_dict(self):
        return {
            "name": self.name,
            "gender": self.gender,
            "solar_date": self.solar_date,
            "lunar_date": self.lunar_date,
            "solar_term": self.solar_term,
            "zodiac": self.zodiac,
            "ming_gong": self.ming_gong.to_dict(),
            "shen_gong": self.shen_gong.to_dict(),
            "tai_yuan": self.tai_yuan.to_dict(),
            "tai_xi": self.tai_xi.to_dict(),
            "ming_gua": self.ming_gua.to_dict(),
        }


@dataclass(frozen=True)
class BaziChart:
    basic: BasicInfo
    pillars: FourPillars
    details: tuple
    qi_yun: QiYun
    luck_pillars: tuple
    relationships: tuple
    flowing: dict

    @property
    def current_luck_pillar(self) -> Optional[DaYunPillar]:
        return next((lp for lp in self.luck_pillars if lp.is_current), None)

    def to_dict(self):
        current = self.current_luck_pillar
        return {
            "basic": self.basic.to_dict(),
            "day_master": {
                **self.pillars.day_master.to_dict(),
                "description": str(self.pillars.day_master),
            },
            "pillars": {d.pillar.position: d.to_dict() for d in self.details},
            "qi_yun": self.qi_yun.to_dict(),
            "luck_pillars": [lp.to_dict() for lp in self.luck_pillars],
            "current_luck_pillar": current.to_dict() if current else None,
            "relationships": [r.to_dict() for r in self.relationships],
            "relationship_tracks": [g.to_dict() for g in layout_tracks(list(self.relationships))],
            "flowing": self.flowing,
        }


def flowing_context(day_master: HeavenlyStem, now: datetime) -> dict:
    """流年/流月/流日/流时 and the month-term pillars of the current year, with Ten Gods."""
    current = flowing_pillars(now)
    return {
        "now": to_wall_clock(now).isoformat(timespec="minutes"),
        "pillars": {
            p.position: {
                "ganzhi": p.chinese,
                "stem_ten_god": ten_god(day_master, p.stem),
                "branch_ten_god": branch_ten_god(day_master, p.branch),
            }
            for p in current
        },
        "month_terms": [
            {
                **item.to_dict(),
                "stem_ten_god": ten_god(day_master, item.pillar.stem),
                "branch_ten_god": branch_ten_god(day_master, item.pillar.branch),
            }
            for item in month_term_pillars(now)
        ],
    }


def compute_chart(birth: datetime, gender: str, *, early_zi_hour: bool = False,
                  hour_branch: Optional[str] = None, now: Optional[datetime] = None,
                  num_luck_pillars: int = DEFAULT_LUCK_PILLARS,
                  name: Optional[str] = None) -> BaziChart:
    """
    Compute a full BaZi chart from birth data.

    Args:
        birth: birth moment (already solar-time corrected if desired)
        gender: "male" or "female"
        early_zi_hour: count 23:00-23:59 as the next day
        hour_branch: explicit 时辰 token when only the two-hour period is known
        now: moment for 大运 is_current and the flowing pillars; defaults to
            the birth moment so the result never depends on the system clock
        num_luck_pillars: how many luck pillars to compute
        name: optional label carried into the basic info

    Returns:
        BaziChart; call .to_dict() for a JSON-ready payload
    """
    gender = normalize_gender(gender)
    birth = to_wall_clock(birth)
    now = to_wall_clock(now) if now is not None else birth

    pillars = four_pillars(birth, early_zi_hour=early_zi_hour, hour_branch=hour_branch)
    logger.debug("Pillars for %s: %s", birth, " ".join(p.chinese for p in pillars))

    details = pillar_details(pillars, gender)
    qi_yun, luck = compute_luck_pillars(pillars, gender, birth, now, num_luck_pillars)

    basic = BasicInfo(
        name=name,
        gender=GENDER_LABELS[gender],
        solar_date=birth.strftime("%Y年%m月%d日 %H:%M:%S"),
        lunar_date=lunar_date_string(birth, hour_branch),
        solar_term=solar_term_text(birth),
        zodiac=pillars.year.branch.zodiac,
        ming_gong=ming_gong(pillars.year.stem, pillars.month.branch, pillars.hour.branch),
        shen_gong=shen_gong(pillars.year.stem, pillars.month.branch, pillars.hour.branch),
        tai_yuan=tai_yuan(pillars.month),
        tai_xi=tai_xi(pillars.day),
        ming_gua=ming_gua(birth.year, gender),
    )

    return BaziChart(
        basic=basic,
        pillars=pillars,
        details=tuple(details),
        qi_yun=qi_yun,
        luck_pillars=tuple(luck),
        relationships=tuple(detect_relationships(pillars.as_list())),
        flowing=flowing_context(pillars.day_master, now),
    )


# ============================================================
# TEST / VERIFICATION
# ============================================================

if __name__ == "__main__":
    print("=" * 60)
    print("BaZi Computation Test: 1990-03-15 10:30, male")
    print("=" * 60)

    chart = compute_chart(datetime(1990, 3, 15, 10, 30), "male", now=datetime(2026, 2, 15, 12, 0))

    print(f"\nDay Master: {chart.pillars.day_master}")
    print(f"Lunar: {chart.basic.lunar_date}   Term: {chart.basic.solar_term}")
    print("\nFour Pillars:")
    for d in chart.details:
        hidden = " ".join(f"{h.stem.chinese}{h.ten_god}" for h in d.hidden_stems)
        print(f"  {d.pillar.position:6s}: {d.pillar.chinese} {d.main_star:4s} {d.nayin} "
              f"[{hidden}] {d.star_fortune}/{d.self_seat} 空亡{d.kong_wang} {' '.join(d.shen_sha)}")

    print(f"\n{chart.qi_yun.to_dict()['description']}")
    for lp in chart.luck_pillars:
        marker = " ←" if lp.is_current else ""
        print(f"  {lp.to_dict()['description']}{marker}")

    print("\nRelationships:")
    for rel in chart.relationships:
        print(f"  {rel.label} ({rel.pillar_from}→{rel.pillar_to})")
