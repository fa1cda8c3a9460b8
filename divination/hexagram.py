"""
Liuyao (六爻) hexagram engine.

Handles:
- Parsing cast line values (numbers, coin labels, line glyphs)
- The 64 hexagrams generated from the eight palaces (八宫)
- Najia (纳甲) stem/branch per line
- Six Relations (六亲) against the palace element
- Six Spirits (六神) from the day stem
- Self/Response (世应), Hidden Spirits (伏神), Hexagram Body (卦身)
- The changed hexagram (变卦) from moving lines
- Divination context: pillars, emptiness and extra stars of the cast moment

Lines are always numbered 1-6 from the bottom. A hexagram key is six
'1'/'0' characters in that order, '1' for a yang line.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from divination.astro_calendar import lunar_date_string, to_wall_clock
from divination.errors import InvalidInputError
from divination.ganzhi import (
    EarthlyBranch, Element, FourPillars, HeavenlyStem, branch_rule_table, element_relationship,
    kong_wang, parse_branch, parse_stem, stem_rule_table,
)
from divination.sexagenary import four_pillars
from divination.solar_terms import solar_term_text

logger = logging.getLogger(__name__)

OLD_YIN, YOUNG_YANG, YOUNG_YIN, OLD_YANG = 6, 7, 8, 9
LINE_VALUES = (OLD_YIN, YOUNG_YANG, YOUNG_YIN, OLD_YANG)

# Moving lines change into their opposite; young lines never move
CHANGED_VALUE = {OLD_YIN: YOUNG_YANG, OLD_YANG: YOUNG_YIN, YOUNG_YANG: YOUNG_YANG, YOUNG_YIN: YOUNG_YIN}
# A moving line that is held still settles into its young form
SETTLED_VALUE = {OLD_YIN: YOUNG_YIN, OLD_YANG: YOUNG_YANG, YOUNG_YANG: YOUNG_YANG, YOUNG_YIN: YOUNG_YIN}

LINE_LABELS = {OLD_YIN: "老阴", YOUNG_YANG: "少阳", YOUNG_YIN: "少阴", OLD_YANG: "老阳"}


# ============================================================
# LINE PARSING
# ============================================================

LINE_TOKENS = {
    # old yin: three backs
    "x": OLD_YIN, "老阴": OLD_YIN, "交": OLD_YIN, "---x---": OLD_YIN,
    # old yang: three faces
    "o": OLD_YANG, "老阳": OLD_YANG, "重": OLD_YANG, "---o---": OLD_YANG,
    # young yang: one back, solid glyph
    "少阳": YOUNG_YANG, "单": YOUNG_YANG, "-----": YOUNG_YANG, "———": YOUNG_YANG,
    # young yin: two backs, broken glyph
    "少阴": YOUNG_YIN, "拆": YOUNG_YIN, "-- --": YOUNG_YIN, "— —": YOUNG_YIN,
}


def parse_line_value(token) -> int:
    """
    Resolve one cast line to 6, 7, 8 or 9.

    Accepts the number itself, a digit string, a coin label (老阳 重 单 ...)
    or a line glyph ('---O---', '---X---', '-----', '-- --').

    Raises:
        InvalidInputError: anything else
    """
    if isinstance(token, bool):
        raise InvalidInputError(f"Unrecognized line value: {token!r}")
    if isinstance(token, int):
        if token in LINE_VALUES:
            return token
        raise InvalidInputError(f"Line value must be 6, 7, 8 or 9, got {token}")

    text = str(token).strip()
    if text.isdigit():
        return parse_line_value(int(text))
    value = LINE_TOKENS.get(text.lower())
    if value is None:
        raise InvalidInputError(f"Unrecognized line value: {token!r}")
    return value


def parse_lines(lines: Sequence) -> list[int]:
    """Parse exactly six cast lines, bottom first."""
    if isinstance(lines, str):
        lines = lines.replace(",", " ").split() if len(lines) != 6 else list(lines)
    values = [parse_line_value(t) for t in lines]
    if len(values) != 6:
        raise InvalidInputError(f"A hexagram needs exactly 6 lines, got {len(values)}")
    return values


def is_yang_value(value: int) -> bool:
    return value in (YOUNG_YANG, OLD_YANG)


def is_moving_value(value: int) -> bool:
    return value in (OLD_YIN, OLD_YANG)


def hexagram_key(values: Sequence[int]) -> str:
    return "".join("1" if is_yang_value(v) else "0" for v in values)


# ============================================================
# TRIGRAMS AND NAJIA (纳甲)
# ============================================================

@dataclass(frozen=True)
class Trigram:
    name: str
    image: str  # natural image: 天 泽 火 ...
    element: Element
    bits: str  # bottom to top
    inner_stem: str  # najia as the lower trigram
    inner_branches: str
    outer_stem: str  # najia as the upper trigram
    outer_branches: str


TRIGRAMS = (
    Trigram("乾", "天", Element.METAL, "111", "甲", "子寅辰", "壬", "午申戌"),
    Trigram("兑", "泽", Element.METAL, "110", "丁", "巳卯丑", "丁", "亥酉未"),
    Trigram("离", "火", Element.FIRE, "101", "己", "卯丑亥", "己", "酉未巳"),
    Trigram("震", "雷", Element.WOOD, "100", "庚", "子寅辰", "庚", "午申戌"),
    Trigram("巽", "风", Element.WOOD, "011", "辛", "丑亥酉", "辛", "未巳卯"),
    Trigram("坎", "水", Element.WATER, "010", "戊", "寅辰午", "戊", "申戌子"),
    Trigram("艮", "山", Element.EARTH, "001", "丙", "辰午申", "丙", "戌子寅"),
    Trigram("坤", "地", Element.EARTH, "000", "乙", "未巳卯", "癸", "丑亥酉"),
)

TRIGRAM_BY_BITS = {t.bits: t for t in TRIGRAMS}
TRIGRAM_BY_NAME = {t.name: t for t in TRIGRAMS}


def najia(key: str) -> list[tuple]:
    """(stem, branch) for each of the six lines of a hexagram key."""
    lower = TRIGRAM_BY_BITS[key[:3]]
    upper = TRIGRAM_BY_BITS[key[3:]]
    assigned = []
    for c in lower.inner_branches:
        assigned.append((parse_stem(lower.inner_stem), parse_branch(c)))
    for c in upper.outer_branches:
        assigned.append((parse_stem(upper.outer_stem), parse_branch(c)))
    return assigned


# ============================================================
# THE 64 HEXAGRAMS
# ============================================================

# (upper, lower) → name
HEXAGRAM_NAMES = {
    ("乾", "乾"): "乾为天",   ("乾", "兑"): "天泽履",   ("乾", "离"): "天火同人", ("乾", "震"): "天雷无妄",
    ("乾", "巽"): "天风姤",   ("乾", "坎"): "天水讼",   ("乾", "艮"): "天山遁",   ("乾", "坤"): "天地否",
    ("兑", "乾"): "泽天夬",   ("兑", "兑"): "兑为泽",   ("兑", "离"): "泽火革",   ("兑", "震"): "泽雷随",
    ("兑", "巽"): "泽风大过", ("兑", "坎"): "泽水困",   ("兑", "艮"): "泽山咸",   ("兑", "坤"): "泽地萃",
    ("离", "乾"): "火天大有", ("离", "兑"): "火泽睽",   ("离", "离"): "离为火",   ("离", "震"): "火雷噬嗑",
    ("离", "巽"): "火风鼎",   ("离", "坎"): "火水未济", ("离", "艮"): "火山旅",   ("离", "坤"): "火地晋",
    ("震", "乾"): "雷天大壮", ("震", "兑"): "雷泽归妹", ("震", "离"): "雷火丰",   ("震", "震"): "震为雷",
    ("震", "巽"): "雷风恒",   ("震", "坎"): "雷水解",   ("震", "艮"): "雷山小过", ("震", "坤"): "雷地豫",
    ("巽", "乾"): "风天小畜", ("巽", "兑"): "风泽中孚", ("巽", "离"): "风火家人", ("巽", "震"): "风雷益",
    ("巽", "巽"): "巽为风",   ("巽", "坎"): "风水涣",   ("巽", "艮"): "风山渐",   ("巽", "坤"): "风地观",
    ("坎", "乾"): "水天需",   ("坎", "兑"): "水泽节",   ("坎", "离"): "水火既济", ("坎", "震"): "水雷屯",
    ("坎", "巽"): "水风井",   ("坎", "坎"): "坎为水",   ("坎", "艮"): "水山蹇",   ("坎", "坤"): "水地比",
    ("艮", "乾"): "山天大畜", ("艮", "兑"): "山泽损",   ("艮", "离"): "山火贲",   ("艮", "震"): "山雷颐",
    ("艮", "巽"): "山风蛊",   ("艮", "坎"): "山水蒙",   ("艮", "艮"): "艮为山",   ("艮", "坤"): "山地剥",
    ("坤", "乾"): "地天泰",   ("坤", "兑"): "地泽临",   ("坤", "离"): "地火明夷", ("坤", "震"): "地雷复",
    ("坤", "巽"): "地风升",   ("坤", "坎"): "地水师",   ("坤", "艮"): "地山谦",   ("坤", "坤"): "坤为地",
}

PALACE_ORDER = ("乾", "坎", "艮", "震", "巽", "离", "坤", "兑")
GENERATION_NAMES = ("八纯", "一世", "二世", "三世", "四世", "五世")
WANDERING_SOUL = "游魂"
RETURNING_SOUL = "归魂"


@dataclass(frozen=True)
class HexagramInfo:
    key: str
    name: str
    upper: str
    lower: str
    palace: str
    house_element: Element
    self_line: int  # 1-6
    soul_type: str  # 八纯, 一世 ... 五世, 游魂, 归魂

    @property
    def image(self) -> str:
        """Upper over lower natural image, e.g. '天风' for 姤."""
        return TRIGRAM_BY_NAME[self.upper].image + TRIGRAM_BY_NAME[self.lower].image

    @property
    def response_line(self) -> int:
        return (self.self_line + 2) % 6 + 1

    def to_dict(self):
        return {
            "key": self.key,
            "name": self.name,
            "upper": self.upper,
            "lower": self.lower,
            "image": self.image,
            "palace": self.palace,
            "house_element": self.house_element.chinese,
            "self_line": self.self_line,
            "response_line": self.response_line,
            "soul_type": self.soul_type,
        }


def _flip(key: str, position: int) -> str:
    """Flip the line at 0-based `position`."""
    bit = "0" if key[position] == "1" else "1"
    return key[:position] + bit + key[position + 1:]


def _palace_members(palace: Trigram) -> list[tuple]:
    """
    The eight hexagrams of a palace as (key, self_line, soul_type).

    Starting from the doubled trigram, lines 1-5 flip one after another.
    The wandering soul flips line 4 back; the returning soul then restores
    the palace trigram below.
    """
    key = palace.bits * 2
    members = [(key, 6, GENERATION_NAMES[0])]
    for generation in range(1, 6):
        key = _flip(key, generation - 1)
        members.append((key, generation, GENERATION_NAMES[generation]))
    wandering = _flip(key, 3)
    members.append((wandering, 4, WANDERING_SOUL))
    members.append((palace.bits + wandering[3:], 3, RETURNING_SOUL))
    return members


def _build_hexagram_table() -> dict:
    table = {}
    for palace_name in PALACE_ORDER:
        palace = TRIGRAM_BY_NAME[palace_name]
        for key, self_line, soul_type in _palace_members(palace):
            upper = TRIGRAM_BY_BITS[key[3:]].name
            lower = TRIGRAM_BY_BITS[key[:3]].name
            table[key] = HexagramInfo(
                key=key,
                name=HEXAGRAM_NAMES[(upper, lower)],
                upper=upper,
                lower=lower,
                palace=palace_name,
                house_element=palace.element,
                self_line=self_line,
                soul_type=soul_type,
            )
    return table


HEXAGRAMS = _build_hexagram_table()


def lookup_hexagram(key: str) -> HexagramInfo:
    info = HEXAGRAMS.get(key)
    if info is None:
        raise InvalidInputError(f"Not a hexagram key: {key!r}")
    return info


# ============================================================
# SIX RELATIONS (六亲) AND SIX SPIRITS (六神)
# ============================================================

# From the palace element's perspective
SIX_RELATIONS = {
    "same": "兄弟",
    "i_produce": "子孙",     # palace produces the line
    "produces_me": "父母",   # line produces the palace
    "i_control": "妻财",     # palace controls the line
    "controls_me": "官鬼",   # line controls the palace
}

RELATION_ORDER = ("父母", "兄弟", "子孙", "妻财", "官鬼")
RELATION_SHORT = {"父母": "父", "兄弟": "兄", "子孙": "孙", "妻财": "财", "官鬼": "官"}

SIX_SPIRITS = ("青龙", "朱雀", "勾陈", "螣蛇", "白虎", "玄武")
SPIRIT_SHORT = {"青龙": "龙", "朱雀": "雀", "勾陈": "勾", "螣蛇": "蛇", "白虎": "虎", "玄武": "玄"}

# Day stem → spirit on line 1
SPIRIT_START = {
    0: 0, 1: 0,   # 甲乙 → 青龙
    2: 1, 3: 1,   # 丙丁 → 朱雀
    4: 2,         # 戊 → 勾陈
    5: 3,         # 己 → 螣蛇
    6: 4, 7: 4,   # 庚辛 → 白虎
    8: 5, 9: 5,   # 壬癸 → 玄武
}

# Hexagram body: self line yang counts from 子, yin from 午
GUA_SHEN_YANG = "子丑寅卯辰巳"
GUA_SHEN_YIN = "午未申酉戌亥"


def six_relation(house_element: Element, line_element: Element) -> str:
    return SIX_RELATIONS[element_relationship(house_element, line_element)]


def six_spirits(day_stem: HeavenlyStem) -> list[str]:
    """Spirits for lines 1-6, bottom first."""
    start = SPIRIT_START[day_stem.index]
    return [SIX_SPIRITS[(start + i) % 6] for i in range(6)]


def gua_shen_branch(self_line: int, self_is_yang: bool):
    sequence = GUA_SHEN_YANG if self_is_yang else GUA_SHEN_YIN
    return parse_branch(sequence[self_line - 1])


# ============================================================
# HEXAGRAM CHART
# ============================================================

@dataclass(frozen=True)
class FuShen:
    """A relation missing from the cast lines, found in the palace's pure hexagram."""
    relation: str
    stem: HeavenlyStem
    branch: EarthlyBranch

    @property
    def label(self) -> str:
        return f"{RELATION_SHORT[self.relation]} {self.branch.chinese}{self.branch.element.chinese}"

    def to_dict(self):
        return {
            "relation": self.relation,
            "stem": self.stem.chinese,
            "branch": self.branch.chinese,
            "element": self.branch.element.chinese,
            "label": self.label,
        }


@dataclass(frozen=True)
class LineReading:
    position: int  # 1-6 from the bottom
    raw_value: int
    stem: HeavenlyStem
    branch: EarthlyBranch
    relation: str
    spirit: Optional[str] = None
    is_self: bool = False
    is_response: bool = False
    fu_shen: Optional[FuShen] = None
    is_gua_shen: bool = False

    @property
    def is_yang(self) -> bool:
        return is_yang_value(self.raw_value)

    @property
    def is_moving(self) -> bool:
        return is_moving_value(self.raw_value)

    @property
    def element(self) -> Element:
        return self.branch.element

    def to_dict(self):
        return {
            "position": self.position,
            "value": self.raw_value,
            "label": LINE_LABELS[self.raw_value],
            "yang": self.is_yang,
            "moving": self.is_moving,
            "stem": self.stem.chinese,
            "branch": self.branch.chinese,
            "element": self.element.chinese,
            "najia": f"{self.stem.chinese}{self.branch.chinese}{self.element.chinese}",
            "relation": self.relation,
            "spirit": self.spirit,
            "is_self": self.is_self,
            "is_response": self.is_response,
            "fu_shen": self.fu_shen.to_dict() if self.fu_shen else None,
            "is_gua_shen": self.is_gua_shen,
        }


@dataclass(frozen=True)
class ChangedHexagram:
    info: HexagramInfo
    lines: tuple  # LineReading without spirits or self/response

    def to_dict(self):
        return {**self.info.to_dict(), "lines": [line.to_dict() for line in self.lines]}


@dataclass(frozen=True)
class HexagramChart:
    info: HexagramInfo
    day_stem: HeavenlyStem
    lines: tuple  # LineReading, bottom first
    gua_shen: EarthlyBranch
    gua_shen_present: bool
    changed: Optional[ChangedHexagram]

    @property
    def moving_lines(self) -> list[int]:
        return [line.position for line in self.lines if line.is_moving]

    def to_dict(self):
        return {
            **self.info.to_dict(),
            "day_stem": self.day_stem.chinese,
            "lines": [line.to_dict() for line in self.lines],
            "moving_lines": self.moving_lines,
            "gua_shen": {"branch": self.gua_shen.chinese, "present": self.gua_shen_present},
            "changed": self.changed.to_dict() if self.changed else None,
        }


def fu_shen_for(info: HexagramInfo, present_relations: set) -> dict:
    """
    Hidden spirits by line position.

    Each relation absent from the cast lines is looked up in the palace's
    pure hexagram; its first occurrence there marks the line it hides under.
    """
    pure_key = TRIGRAM_BY_NAME[info.palace].bits * 2
    hidden = {}
    for relation in RELATION_ORDER:
        if relation in present_relations:
            continue
        for position, (stem, branch) in enumerate(najia(pure_key), start=1):
            if six_relation(info.house_element, branch.element) == relation:
                hidden.setdefault(position, FuShen(relation, stem, branch))
                break
    return hidden


def _changed_values(values: list[int], changing_flags: Optional[Sequence[bool]]) -> list[int]:
    if changing_flags is None:
        return [CHANGED_VALUE[v] for v in values]
    if len(changing_flags) != 6:
        raise InvalidInputError(f"changing_flags needs 6 entries, got {len(changing_flags)}")
    return [CHANGED_VALUE[v] if flag else SETTLED_VALUE[v]
            for v, flag in zip(values, changing_flags)]


def build_hexagram(lines: Sequence, day_stem, changing_flags: Optional[Sequence[bool]] = None) -> HexagramChart:
    """
    Build the full line-by-line chart for a cast.

    Args:
        lines: six line values, bottom first (see parse_line_value)
        day_stem: stem of the divination day; decides the Six Spirits
        changing_flags: optional per-line booleans; a moving line whose flag
            is False is held still (6 → 8, 9 → 7) in the changed hexagram

    Returns:
        HexagramChart; `changed` is None when no line moves

    Raises:
        InvalidInputError: not exactly six valid lines, or an unknown day stem
    """
    values = parse_lines(lines)
    day_stem = parse_stem(day_stem)
    info = lookup_hexagram(hexagram_key(values))
    assigned = najia(info.key)
    spirits = six_spirits(day_stem)

    relations = [six_relation(info.house_element, branch.element) for _, branch in assigned]
    hidden = fu_shen_for(info, set(relations))

    body = gua_shen_branch(info.self_line, is_yang_value(values[info.self_line - 1]))
    body_line = next((i + 1 for i, (_, b) in enumerate(assigned) if b == body), None)

    readings = tuple(
        LineReading(
            position=i + 1,
            raw_value=values[i],
            stem=stem,
            branch=branch,
            relation=relations[i],
            spirit=spirits[i],
            is_self=(i + 1 == info.self_line),
            is_response=(i + 1 == info.response_line),
            fu_shen=hidden.get(i + 1),
            is_gua_shen=(i + 1 == body_line),
        )
        for i, (stem, branch) in enumerate(assigned)
    )

    changed = None
    changed_values = _changed_values(values, changing_flags)
    if any(is_yang_value(c) != is_yang_value(v) for c, v in zip(changed_values, values)):
        changed_info = lookup_hexagram(hexagram_key(changed_values))
        # relations stay measured against the original palace element
        changed = ChangedHexagram(
            info=changed_info,
            lines=tuple(
                LineReading(
                    position=i + 1,
                    raw_value=changed_values[i],
                    stem=stem,
                    branch=branch,
                    relation=six_relation(info.house_element, branch.element),
                )
                for i, (stem, branch) in enumerate(najia(changed_info.key))
            ),
        )
        logger.debug("%s changes to %s", info.name, changed_info.name)

    return HexagramChart(
        info=info,
        day_stem=day_stem,
        lines=readings,
        gua_shen=body,
        gua_shen_present=body_line is not None,
        changed=changed,
    )


# ============================================================
# DIVINATION CONTEXT
# ============================================================

YI_MA = branch_rule_table({"申子辰": "寅", "寅午戌": "申", "巳酉丑": "亥", "亥卯未": "巳"})
TAO_HUA = branch_rule_table({"申子辰": "酉", "寅午戌": "卯", "巳酉丑": "午", "亥卯未": "子"})
JIANG_XING = branch_rule_table({"申子辰": "子", "寅午戌": "午", "巳酉丑": "酉", "亥卯未": "卯"})
HUA_GAI = branch_rule_table({"申子辰": "辰", "寅午戌": "戌", "巳酉丑": "丑", "亥卯未": "未"})
JIE_SHA = branch_rule_table({"申子辰": "巳", "寅午戌": "亥", "巳酉丑": "寅", "亥卯未": "申"})
ZAI_SHA = branch_rule_table({"申子辰": "午", "寅午戌": "子", "巳酉丑": "卯", "亥卯未": "酉"})
WANG_SHEN = branch_rule_table({"申子辰": "亥", "寅午戌": "巳", "巳酉丑": "申", "亥卯未": "寅"})
GU_CHEN = branch_rule_table({"亥子丑": "寅", "寅卯辰": "巳", "巳午未": "申", "申酉戌": "亥"})
GUA_SU = branch_rule_table({"亥子丑": "戌", "寅卯辰": "丑", "巳午未": "辰", "申酉戌": "未"})

RI_LU = stem_rule_table({
    "甲": "寅", "乙": "卯", "丙戊": "巳", "丁己": "午",
    "庚": "申", "辛": "酉", "壬": "亥", "癸": "子",
})
GUI_REN = stem_rule_table({"甲戊庚": "丑未", "乙己": "子申", "丙丁": "亥酉", "壬癸": "巳卯", "辛": "午寅"})
WEN_CHANG = stem_rule_table({
    "甲": "巳", "乙": "午", "丙戊": "申", "丁己": "酉",
    "庚": "亥", "辛": "子", "壬": "寅", "癸": "卯",
})
YANG_REN = stem_rule_table({
    "甲": "卯", "乙": "辰", "丙戊": "午", "丁己": "未",
    "庚": "酉", "辛": "戌", "壬": "子", "癸": "丑",
})


def _chars(indices) -> str:
    return "".join(parse_branch(i).chinese for i in sorted(indices))


def extended_shen_sha(day_stem, day_branch, month_branch, year_branch) -> dict:
    """
    Stars of the divination moment, each with the branch(es) it falls on.

    Day-branch frames give 驿马 桃花 将星 华盖 劫煞 灾煞 亡神; the day stem
    gives 日禄 贵人 文昌 羊刃; the year branch gives 孤辰 寡宿; 天医 is the
    branch before the month branch.
    """
    ds = parse_stem(day_stem).index
    db = parse_branch(day_branch).index
    mb = parse_branch(month_branch).index
    yb = parse_branch(year_branch).index
    return {
        "驿马": _chars(YI_MA[db]),
        "桃花": _chars(TAO_HUA[db]),
        "日禄": _chars(RI_LU[ds]),
        "贵人": _chars(GUI_REN[ds]),
        "文昌": _chars(WEN_CHANG[ds]),
        "将星": _chars(JIANG_XING[db]),
        "华盖": _chars(HUA_GAI[db]),
        "羊刃": _chars(YANG_REN[ds]),
        "劫煞": _chars(JIE_SHA[db]),
        "灾煞": _chars(ZAI_SHA[db]),
        "亡神": _chars(WANG_SHEN[db]),
        "孤辰": _chars(GU_CHEN[yb]),
        "寡宿": _chars(GUA_SU[yb]),
        "天医": parse_branch((mb - 1) % 12).chinese,
    }


@dataclass(frozen=True)
class Divination:
    moment: datetime
    pillars: FourPillars
    chart: HexagramChart
    kong_wang: str  # emptiness of the day's decade
    solar_term: str
    lunar_date: str
    shen_sha: dict
    question: Optional[str] = None

    def to_dict(self):
        return {
            "question": self.question,
            "moment": self.moment.isoformat(timespec="minutes"),
            "lunar_date": self.lunar_date,
            "solar_term": self.solar_term,
            "pillars": {p.position: p.chinese for p in self.pillars},
            "kong_wang": self.kong_wang,
            "shen_sha": self.shen_sha,
            "hexagram": self.chart.to_dict(),
        }


def cast_hexagram(lines: Sequence, moment: datetime, *,
                  changing_flags: Optional[Sequence[bool]] = None,
                  early_zi_hour: bool = False,
                  question: Optional[str] = None) -> Divination:
    """
    Read a cast at a given moment: the hexagram chart plus the calendar
    context a reading needs (pillars, day emptiness, term, lunar date, stars).
    """
    moment = to_wall_clock(moment)
    pillars = four_pillars(moment, early_zi_hour=early_zi_hour)
    chart = build_hexagram(lines, pillars.day.stem, changing_flags)
    return Divination(
        moment=moment,
        pillars=pillars,
        chart=chart,
        kong_wang=kong_wang(pillars.day.stem, pillars.day.branch),
        solar_term=solar_term_text(moment),
        lunar_date=lunar_date_string(moment),
        shen_sha=extended_shen_sha(pillars.day.stem, pillars.day.branch,
                                   pillars.month.branch, pillars.year.branch),
        question=question,
    )


if __name__ == "__main__":
    print(f"{len(HEXAGRAMS)} hexagrams")
    reading = cast_hexagram([6, 7, 8, 9, 7, 8], datetime(2024, 5, 1, 10, 0))
    chart = reading.chart
    print(f"{chart.info.name} ({chart.info.palace}宫 {chart.info.soul_type}) 空亡{reading.kong_wang}")
    for line in reversed(chart.lines):
        marks = "世" if line.is_self else ("应" if line.is_response else "  ")
        hidden = f" 伏{line.fu_shen.label}" if line.fu_shen else ""
        print(f"  {SPIRIT_SHORT[line.spirit]} {RELATION_SHORT[line.relation]} "
              f"{line.stem.chinese}{line.branch.chinese}{line.element.chinese} {marks}{hidden}")
    if chart.changed:
        print(f"→ {chart.changed.info.name}")
