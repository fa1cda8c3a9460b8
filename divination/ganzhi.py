"""
Stem-branch (干支) data model shared by every engine module.

Handles:
- Heavenly Stems and Earthly Branches with fixed element/polarity
- Hidden stems (藏干) carried by each branch
- Five-element production and control cycles
- Sexagenary cycle arithmetic and pillar construction
- Parsing of stem/branch tokens (Chinese characters or pinyin)

Every stem and branch is one of a fixed set of frozen instances; lookups
elsewhere are keyed by their index, never by free-form strings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from divination.errors import InvalidInputError


# ============================================================
# FUNDAMENTAL DATA STRUCTURES
# ============================================================

class Polarity(Enum):
    YANG = "yang"
    YIN = "yin"


class Element(Enum):
    WOOD = "wood"
    FIRE = "fire"
    EARTH = "earth"
    METAL = "metal"
    WATER = "water"

    @property
    def chinese(self) -> str:
        return ELEMENT_CHINESE[self]


ELEMENT_CHINESE = {
    Element.WOOD: "木",
    Element.FIRE: "火",
    Element.EARTH: "土",
    Element.METAL: "金",
    Element.WATER: "水",
}


@dataclass(frozen=True)
class HeavenlyStem:
    chinese: str
    pinyin: str
    element: Element
    polarity: Polarity
    index: int  # 0-9 in the cycle

    @property
    def is_yang(self) -> bool:
        return self.polarity is Polarity.YANG

    def __str__(self):
        return f"{self.chinese} {self.pinyin} ({self.polarity.value} {self.element.value})"

    def to_dict(self):
        return {
            "chinese": self.chinese,
            "pinyin": self.pinyin,
            "element": self.element.value,
            "polarity": self.polarity.value,
        }


@dataclass(frozen=True)
class EarthlyBranch:
    chinese: str
    pinyin: str
    animal: str
    zodiac: str  # Chinese zodiac animal name
    element: Element  # primary/season element
    polarity: Polarity
    index: int  # 0-11 in the cycle
    hidden_stems: tuple[str, ...]  # [main_qi, middle_qi, residual_qi]

    @property
    def hour_code(self) -> str:
        """Lower-case pinyin token used for two-hour (时辰) input, e.g. 'xu'."""
        return self.pinyin.lower()

    def __str__(self):
        return f"{self.chinese} {self.pinyin} ({self.animal})"

    def to_dict(self):
        return {
            "chinese": self.chinese,
            "pinyin": self.pinyin,
            "animal": self.animal,
            "element": self.element.value,
            "polarity": self.polarity.value,
            "hidden_stems": list(self.hidden_stems),
        }


# ============================================================
# STEM AND BRANCH DEFINITIONS
# ============================================================

HEAVENLY_STEMS = (
    HeavenlyStem("甲", "Jia", Element.WOOD, Polarity.YANG, 0),
    HeavenlyStem("乙", "Yi", Element.WOOD, Polarity.YIN, 1),
    HeavenlyStem("丙", "Bing", Element.FIRE, Polarity.YANG, 2),
    HeavenlyStem("丁", "Ding", Element.FIRE, Polarity.YIN, 3),
    HeavenlyStem("戊", "Wu", Element.EARTH, Polarity.YANG, 4),
    HeavenlyStem("己", "Ji", Element.EARTH, Polarity.YIN, 5),
    HeavenlyStem("庚", "Geng", Element.METAL, Polarity.YANG, 6),
    HeavenlyStem("辛", "Xin", Element.METAL, Polarity.YIN, 7),
    HeavenlyStem("壬", "Ren", Element.WATER, Polarity.YANG, 8),
    HeavenlyStem("癸", "Gui", Element.WATER, Polarity.YIN, 9),
)

EARTHLY_BRANCHES = (
    EarthlyBranch("子", "Zi", "Rat", "鼠", Element.WATER, Polarity.YANG, 0,
                  ("癸",)),  # main: Gui Water
    EarthlyBranch("丑", "Chou", "Ox", "牛", Element.EARTH, Polarity.YIN, 1,
                  ("己", "癸", "辛")),  # main: Ji Earth, mid: Gui Water, res: Xin Metal
    EarthlyBranch("寅", "Yin", "Tiger", "虎", Element.WOOD, Polarity.YANG, 2,
                  ("甲", "丙", "戊")),  # main: Jia Wood, mid: Bing Fire, res: Wu Earth
    EarthlyBranch("卯", "Mao", "Rabbit", "兔", Element.WOOD, Polarity.YIN, 3,
                  ("乙",)),  # main: Yi Wood
    EarthlyBranch("辰", "Chen", "Dragon", "龙", Element.EARTH, Polarity.YANG, 4,
                  ("戊", "乙", "癸")),  # main: Wu Earth, mid: Yi Wood, res: Gui Water
    EarthlyBranch("巳", "Si", "Snake", "蛇", Element.FIRE, Polarity.YIN, 5,
                  ("丙", "戊", "庚")),  # main: Bing Fire, mid: Wu Earth, res: Geng Metal
    EarthlyBranch("午", "Wu", "Horse", "马", Element.FIRE, Polarity.YANG, 6,
                  ("丁", "己")),  # main: Ding Fire, mid: Ji Earth
    EarthlyBranch("未", "Wei", "Goat", "羊", Element.EARTH, Polarity.YIN, 7,
                  ("己", "丁", "乙")),  # main: Ji Earth, mid: Ding Fire, res: Yi Wood
    EarthlyBranch("申", "Shen", "Monkey", "猴", Element.METAL, Polarity.YANG, 8,
                  ("庚", "壬", "戊")),  # main: Geng Metal, mid: Ren Water, res: Wu Earth
    EarthlyBranch("酉", "You", "Rooster", "鸡", Element.METAL, Polarity.YIN, 9,
                  ("辛",)),  # main: Xin Metal
    EarthlyBranch("戌", "Xu", "Dog", "狗", Element.EARTH, Polarity.YANG, 10,
                  ("戊", "辛", "丁")),  # main: Wu Earth, mid: Xin Metal, res: Ding Fire
    EarthlyBranch("亥", "Hai", "Pig", "猪", Element.WATER, Polarity.YIN, 11,
                  ("壬", "甲")),  # main: Ren Water, mid: Jia Wood
)

# Lookup helpers
STEM_BY_CHINESE = {s.chinese: s for s in HEAVENLY_STEMS}
STEM_BY_PINYIN = {s.pinyin.lower(): s for s in HEAVENLY_STEMS}
BRANCH_BY_CHINESE = {b.chinese: b for b in EARTHLY_BRANCHES}
BRANCH_BY_PINYIN = {b.hour_code: b for b in EARTHLY_BRANCHES}


# ============================================================
# FIVE ELEMENT CYCLES
# ============================================================

# Production cycle: Wood → Fire → Earth → Metal → Water → Wood
PRODUCTION_CYCLE = {
    Element.WOOD: Element.FIRE,
    Element.FIRE: Element.EARTH,
    Element.EARTH: Element.METAL,
    Element.METAL: Element.WATER,
    Element.WATER: Element.WOOD,
}

# Control cycle: Wood → Earth → Water → Fire → Metal → Wood
CONTROL_CYCLE = {
    Element.WOOD: Element.EARTH,
    Element.EARTH: Element.WATER,
    Element.WATER: Element.FIRE,
    Element.FIRE: Element.METAL,
    Element.METAL: Element.WOOD,
}


def element_relationship(reference: Element, other: Element) -> str:
    """Determine the elemental relationship from the reference element's perspective."""
    if reference == other:
        return "same"
    elif PRODUCTION_CYCLE[other] == reference:
        return "produces_me"  # other produces reference
    elif PRODUCTION_CYCLE[reference] == other:
        return "i_produce"  # reference produces other
    elif CONTROL_CYCLE[reference] == other:
        return "i_control"  # reference controls other
    elif CONTROL_CYCLE[other] == reference:
        return "controls_me"  # other controls reference
    else:
        raise ValueError(f"No valid relationship between {reference} and {other}")


# ============================================================
# PILLARS
# ============================================================

@dataclass(frozen=True)
class Pillar:
    stem: HeavenlyStem
    branch: EarthlyBranch
    position: str  # "year", "month", "day", "hour", or a derived label

    @property
    def cycle_index(self) -> int:
        """Position 0-59 in the sexagenary cycle (甲子 = 0)."""
        return cycle_index(self.stem.index, self.branch.index)

    @property
    def chinese(self) -> str:
        return self.stem.chinese + self.branch.chinese

    def shifted(self, steps: int, position: Optional[str] = None) -> "Pillar":
        """The pillar `steps` places further along the 60-cycle (negative = backwards)."""
        return pillar_from_cycle(self.cycle_index + steps, position or self.position)

    def __str__(self):
        return f"{self.chinese} {self.stem.pinyin} {self.branch.pinyin} ({self.stem.polarity.value} {self.stem.element.value} {self.branch.animal})"

    def to_dict(self):
        return {
            "position": self.position,
            "stem": self.stem.to_dict(),
            "branch": self.branch.to_dict(),
            "combined": self.chinese,
            "description": str(self),
        }


@dataclass(frozen=True)
class FourPillars:
    year: Pillar
    month: Pillar
    day: Pillar
    hour: Pillar

    @property
    def day_master(self) -> HeavenlyStem:
        return self.day.stem

    def as_list(self) -> list[Pillar]:
        return [self.year, self.month, self.day, self.hour]

    def __iter__(self):
        return iter(self.as_list())

    def to_dict(self):
        return {p.position: p.to_dict() for p in self.as_list()}


def cycle_index(stem_index: int, branch_index: int) -> int:
    """
    Index of a stem/branch pair in the 60-cycle.

    Only pairs of equal parity exist; the formula solves
    i ≡ stem (mod 10), i ≡ branch (mod 12).
    """
    if stem_index % 2 != branch_index % 2:
        raise InvalidInputError(
            f"{HEAVENLY_STEMS[stem_index % 10].chinese}{EARTHLY_BRANCHES[branch_index % 12].chinese} "
            "is not a sexagenary pair")
    return (6 * stem_index - 5 * branch_index) % 60


def pillar_from_cycle(index: int, position: str) -> Pillar:
    return Pillar(
        stem=HEAVENLY_STEMS[index % 10],
        branch=EARTHLY_BRANCHES[index % 12],
        position=position,
    )


def make_pillar(stem_index: int, branch_index: int, position: str) -> Pillar:
    return Pillar(
        stem=HEAVENLY_STEMS[stem_index % 10],
        branch=EARTHLY_BRANCHES[branch_index % 12],
        position=position,
    )


# ============================================================
# TOKEN PARSING
# ============================================================

def parse_stem(token) -> HeavenlyStem:
    """Resolve a stem from an instance, index, Chinese character or pinyin."""
    if isinstance(token, HeavenlyStem):
        return token
    if isinstance(token, int):
        if 0 <= token < 10:
            return HEAVENLY_STEMS[token]
        raise InvalidInputError(f"Stem index out of range: {token}")
    key = str(token).strip()
    stem = STEM_BY_CHINESE.get(key) or STEM_BY_PINYIN.get(key.lower())
    if stem is None:
        raise InvalidInputError(f"Unknown heavenly stem: {token!r}")
    return stem


def parse_branch(token) -> EarthlyBranch:
    """Resolve a branch from an instance, index, Chinese character or pinyin hour code."""
    if isinstance(token, EarthlyBranch):
        return token
    if isinstance(token, int):
        if 0 <= token < 12:
            return EARTHLY_BRANCHES[token]
        raise InvalidInputError(f"Branch index out of range: {token}")
    key = str(token).strip()
    if key.endswith("时") and len(key) == 2:
        key = key[0]
    branch = BRANCH_BY_CHINESE.get(key) or BRANCH_BY_PINYIN.get(key.lower())
    if branch is None:
        raise InvalidInputError(f"Unknown earthly branch: {token!r}")
    return branch


def parse_pillar(token: str, position: str = "") -> Pillar:
    """Parse a two-character pillar such as '甲子'."""
    text = str(token).strip()
    if len(text) != 2:
        raise InvalidInputError(f"Pillar must be two characters, got {token!r}")
    stem = parse_stem(text[0])
    branch = parse_branch(text[1])
    cycle_index(stem.index, branch.index)  # rejects mixed-parity pairs
    return Pillar(stem=stem, branch=branch, position=position)


def hidden_stems_of(branch: EarthlyBranch) -> list[HeavenlyStem]:
    return [STEM_BY_CHINESE[c] for c in branch.hidden_stems]


# ============================================================
# RULE TABLES
# ============================================================
#
# Star and rule tables are written with Chinese characters for auditing
# against almanacs, then resolved to indices once at import. A typo fails
# loudly at import instead of silently never matching.

def branch_set(text: str) -> frozenset:
    """'丑未' → frozenset({1, 7})"""
    return frozenset(parse_branch(c).index for c in text)


def stem_rule_table(table: dict) -> dict:
    """{'甲戊庚': '丑未'} → {stem_index: branch index set} for every stem in each key."""
    return {parse_stem(c).index: branch_set(target)
            for stems, target in table.items() for c in stems}


def branch_rule_table(table: dict) -> dict:
    """{'申子辰': '寅'} → {branch_index: branch index set} for every branch in each key."""
    return {parse_branch(c).index: branch_set(target)
            for branches, target in table.items() for c in branches}


# ============================================================
# EMPTINESS (空亡)
# ============================================================

# Branch that opens the pillar's decade (旬) → the two branches it leaves out
KONG_WANG_BY_XUN = {
    0: "戌亥",   # 甲子旬
    10: "申酉",  # 甲戌旬
    8: "午未",   # 甲申旬
    6: "辰巳",   # 甲午旬
    4: "寅卯",   # 甲辰旬
    2: "子丑",   # 甲寅旬
}


def xun_start(stem: HeavenlyStem, branch: EarthlyBranch) -> int:
    return (branch.index - stem.index) % 12


def kong_wang(stem: HeavenlyStem, branch: EarthlyBranch) -> str:
    """The empty branch pair of a stem/branch's decade, e.g. 甲子 → '戌亥'."""
    return KONG_WANG_BY_XUN[xun_start(stem, branch)]


def kong_wang_branches(stem: HeavenlyStem, branch: EarthlyBranch) -> frozenset:
    return branch_set(kong_wang(stem, branch))


if __name__ == "__main__":
    for p in (parse_pillar("甲子", "day"), parse_pillar("戊午", "day")):
        print(f"{p}  cycle={p.cycle_index}  next={p.shifted(1).chinese}")
    print(f"寅 hidden stems: {[s.chinese for s in hidden_stems_of(parse_branch('寅'))]}")
