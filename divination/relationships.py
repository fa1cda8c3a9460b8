"""
Pillar relationship detection (刑冲会合).

Handles:
- Stem Five Combinations (天干五合)
- Branch Six Combinations, Clashes, Harms, Destructions, Punishments, Hidden Combinations
- Three Harmony (三合) and Directional (三会) frames, full and half
- Earth concentration (土局), arching gatherings (拱会), contested combinations (争合)
- Deduplication and layout-track assignment for display

Stems are only compared with stems and branches with branches. Pillars are
identified by their position 0-3 (year, month, day, hour).
"""

from dataclasses import dataclass
from enum import Enum
from itertools import combinations

from divination.ganzhi import Pillar

PILLAR_NAMES = ("year", "month", "day", "hour")


class RelationType(Enum):
    STEM_COMBINATION = "gan_he"
    SIX_COMBINATION = "zhi_he"
    CONTESTED_COMBINATION = "zheng_he"
    EARTH_CONCENTRATION = "tu_ju"
    ARCHING_GATHERING = "gong_hui"
    THREE_HARMONY = "san_he"
    DIRECTIONAL_FRAME = "san_hui"
    HALF_HARMONY = "ban_he"
    HALF_GATHERING = "ban_hui"
    CLASH = "zhi_chong"
    HARM = "zhi_hai"
    DESTRUCTION = "zhi_po"
    PUNISHMENT = "zhi_xing"
    HIDDEN_COMBINATION = "zhi_an_he"

    @property
    def chinese(self) -> str:
        return RELATION_NAMES[self]

    @property
    def kind(self) -> str:
        return "stem" if self is RelationType.STEM_COMBINATION else "branch"


RELATION_NAMES = {
    RelationType.STEM_COMBINATION: "天干合",
    RelationType.SIX_COMBINATION: "地支六合",
    RelationType.CONTESTED_COMBINATION: "争合",
    RelationType.EARTH_CONCENTRATION: "土局旺势",
    RelationType.ARCHING_GATHERING: "拱会",
    RelationType.THREE_HARMONY: "三合局",
    RelationType.DIRECTIONAL_FRAME: "三会局",
    RelationType.HALF_HARMONY: "半合",
    RelationType.HALF_GATHERING: "半会",
    RelationType.CLASH: "地支六冲",
    RelationType.HARM: "地支六害",
    RelationType.DESTRUCTION: "地支相破",
    RelationType.PUNISHMENT: "地支相刑",
    RelationType.HIDDEN_COMBINATION: "地支暗合",
}

# Stems group first, then branches
DISPLAY_ORDER = (
    RelationType.STEM_COMBINATION,
    RelationType.SIX_COMBINATION,
    RelationType.CONTESTED_COMBINATION,
    RelationType.EARTH_CONCENTRATION,
    RelationType.ARCHING_GATHERING,
    RelationType.THREE_HARMONY,
    RelationType.DIRECTIONAL_FRAME,
    RelationType.HALF_HARMONY,
    RelationType.HALF_GATHERING,
    RelationType.CLASH,
    RelationType.HARM,
    RelationType.DESTRUCTION,
    RelationType.PUNISHMENT,
    RelationType.HIDDEN_COMBINATION,
)


# ============================================================
# INTERACTION TABLES
# ============================================================

def _pairs(*pairs) -> frozenset:
    # frozenset((4, 4)) == {4}, so self-punishments match the same way
    return frozenset(frozenset(p) for p in pairs)


# Stem Five Combinations (天干五合)
STEM_COMBINATIONS = _pairs(
    (0, 5),   # Jia-Ji
    (1, 6),   # Yi-Geng
    (2, 7),   # Bing-Xin
    (3, 8),   # Ding-Ren
    (4, 9),   # Wu-Gui
)

# Six Combinations (六合)
SIX_COMBINATIONS = _pairs(
    (0, 1),   # Zi-Chou
    (2, 11),  # Yin-Hai
    (3, 10),  # Mao-Xu
    (4, 9),   # Chen-You
    (5, 8),   # Si-Shen
    (6, 7),   # Wu-Wei
)

# Six Clashes (六冲)
SIX_CLASHES = _pairs(
    (0, 6),   # Zi-Wu (Rat-Horse)
    (1, 7),   # Chou-Wei (Ox-Goat)
    (2, 8),   # Yin-Shen (Tiger-Monkey)
    (3, 9),   # Mao-You (Rabbit-Rooster)
    (4, 10),  # Chen-Xu (Dragon-Dog)
    (5, 11),  # Si-Hai (Snake-Pig)
)

# Six Harms (六害)
SIX_HARMS = _pairs(
    (0, 7),   # Zi-Wei (Rat-Goat)
    (1, 6),   # Chou-Wu (Ox-Horse)
    (2, 5),   # Yin-Si (Tiger-Snake)
    (3, 4),   # Mao-Chen (Rabbit-Dragon)
    (8, 11),  # Shen-Hai (Monkey-Pig)
    (9, 10),  # You-Xu (Rooster-Dog)
)

# Destructions (相破)
DESTRUCTIONS = _pairs(
    (0, 9),   # Zi-You
    (1, 4),   # Chou-Chen
    (2, 11),  # Yin-Hai
    (3, 6),   # Mao-Wu
    (5, 8),   # Si-Shen
    (7, 10),  # Wei-Xu
)

# Punishments (刑)
PUNISHMENTS = {
    "ungrateful": (2, 5, 8),     # Yin-Si-Shen, each punishes the other two
    "uncivilized": (1, 10, 7),   # Chou-Xu-Wei, each punishes the other two
    "rude": (0, 3),              # Zi-Mao
    "self": (4, 6, 9, 11),       # Chen, Wu, You, Hai (self with self)
}

PUNISHMENT_PAIRS = _pairs(
    *[pair for group in ("ungrateful", "uncivilized", "rude")
      for pair in combinations(PUNISHMENTS[group], 2)],
    *[(b, b) for b in PUNISHMENTS["self"]],
)

# Hidden Combinations (暗合): main hidden stems combine
HIDDEN_COMBINATIONS = _pairs(
    (0, 5),   # Zi-Si
    (2, 6),   # Yin-Wu
    (3, 8),   # Mao-Shen
    (4, 9),   # Chen-You
    (10, 11), # Xu-Hai
    (1, 7),   # Chou-Wei
)

# Three Harmony (三合) frames, in display order
THREE_HARMONY = (
    ((8, 0, 4), "申子辰"),    # Water frame
    ((11, 3, 7), "亥卯未"),   # Wood frame
    ((2, 6, 10), "寅午戌"),   # Fire frame
    ((5, 9, 1), "巳酉丑"),    # Metal frame
)

# Directional (三会) frames
DIRECTIONAL_FRAMES = (
    ((2, 3, 4), "寅卯辰"),    # East, Wood
    ((5, 6, 7), "巳午未"),    # South, Fire
    ((8, 9, 10), "申酉戌"),   # West, Metal
    ((11, 0, 1), "亥子丑"),   # North, Water
)

EARTH_BRANCHES = frozenset((4, 10, 1, 7))  # Chen, Xu, Chou, Wei

# Two branches bracketing the middle of a directional frame
ARCHING_PAIRS = {
    frozenset((11, 1)): "拱会水",  # Hai _ Chou
    frozenset((2, 4)): "拱会木",   # Yin _ Chen
    frozenset((5, 7)): "拱会火",   # Si _ Wei
    frozenset((8, 10)): "拱会金",  # Shen _ Xu
}

PAIR_RULES = (
    # (type, table, label suffix) checked over every unordered pillar pair
    (RelationType.SIX_COMBINATION, SIX_COMBINATIONS, "合"),
    (RelationType.CLASH, SIX_CLASHES, "沖"),
    (RelationType.HARM, SIX_HARMS, "害"),
    (RelationType.DESTRUCTION, DESTRUCTIONS, "破"),
    (RelationType.PUNISHMENT, PUNISHMENT_PAIRS, "刑"),
    (RelationType.HIDDEN_COMBINATION, HIDDEN_COMBINATIONS, "暗合"),
)


# ============================================================
# RELATIONSHIP RECORDS
# ============================================================

@dataclass(frozen=True)
class Relationship:
    type: RelationType
    pillar_from: int
    pillar_to: int
    char_from: str
    char_to: str
    label: str

    @property
    def kind(self) -> str:
        return self.type.kind

    @property
    def start(self) -> int:
        return min(self.pillar_from, self.pillar_to)

    @property
    def end(self) -> int:
        return max(self.pillar_from, self.pillar_to)

    @property
    def span(self) -> int:
        return self.end - self.start

    def key(self) -> tuple:
        """Identity for deduplication: type plus the unordered pillar pair."""
        return (self.type, frozenset((self.pillar_from, self.pillar_to)))

    def to_dict(self):
        return {
            "type": self.type.value,
            "name": self.type.chinese,
            "kind": self.kind,
            "label": self.label,
            "from": {"position": PILLAR_NAMES[self.pillar_from], "char": self.char_from},
            "to": {"position": PILLAR_NAMES[self.pillar_to], "char": self.char_to},
        }


def _frame_relationships(branches, frames, full_type, half_type,
                         full_suffix, half_suffix) -> list[Relationship]:
    """Full frame when all three branches are present, half frame for two."""
    found = []
    for members, name in frames:
        positions = [i for i, b in enumerate(branches) if b.index in members]
        distinct = {branches[i].index for i in positions}
        if len(distinct) < 2:
            continue
        full = len(distinct) == 3
        for i, j in combinations(positions, 2):
            a, b = branches[i], branches[j]
            if a == b:
                continue  # identical branches never combine
            found.append(Relationship(
                type=full_type if full else half_type,
                pillar_from=i, pillar_to=j,
                char_from=a.chinese, char_to=b.chinese,
                label=f"{name}{full_suffix}" if full else f"{a.chinese}{b.chinese}{half_suffix}",
            ))
    return found


def detect_relationships(pillars: list[Pillar]) -> list[Relationship]:
    """
    Find every stem and branch relationship between the pillars.

    Args:
        pillars: pillars in year, month, day, hour order

    Returns:
        Deduplicated relationships; within a type and pillar pair the
        first record found wins
    """
    stems = [p.stem for p in pillars]
    branches = [p.branch for p in pillars]
    pairs = list(combinations(range(len(pillars)), 2))
    found = []

    for i, j in pairs:
        if frozenset((stems[i].index, stems[j].index)) in STEM_COMBINATIONS:
            found.append(Relationship(RelationType.STEM_COMBINATION, i, j,
                                      stems[i].chinese, stems[j].chinese,
                                      f"{stems[i].chinese}{stems[j].chinese}合"))

    for rel_type, table, suffix in PAIR_RULES:
        for i, j in pairs:
            a, b = branches[i], branches[j]
            if frozenset((a.index, b.index)) in table:
                found.append(Relationship(rel_type, i, j, a.chinese, b.chinese,
                                          f"{a.chinese}{b.chinese}{suffix}"))

    found.extend(_frame_relationships(branches, THREE_HARMONY,
                                      RelationType.THREE_HARMONY, RelationType.HALF_HARMONY,
                                      "三合", "半合"))
    found.extend(_frame_relationships(branches, DIRECTIONAL_FRAMES,
                                      RelationType.DIRECTIONAL_FRAME, RelationType.HALF_GATHERING,
                                      "三会", "会"))

    earth = [i for i, b in enumerate(branches) if b.index in EARTH_BRANCHES]
    if len(earth) >= 3:
        first, last = earth[0], earth[-1]
        found.append(Relationship(RelationType.EARTH_CONCENTRATION, first, last,
                                  branches[first].chinese, branches[last].chinese,
                                  RELATION_NAMES[RelationType.EARTH_CONCENTRATION]))

    for i, j in pairs:
        label = ARCHING_PAIRS.get(frozenset((branches[i].index, branches[j].index)))
        if label:
            found.append(Relationship(RelationType.ARCHING_GATHERING, i, j,
                                      branches[i].chinese, branches[j].chinese, label))

    found = _mark_contested(found)

    unique = {}
    for rel in found:
        unique.setdefault(rel.key(), rel)
    return list(unique.values())


def _mark_contested(found: list[Relationship]) -> list[Relationship]:
    """A pillar in more than one six-combination makes each of its combinations contested."""
    counts = {}
    for rel in found:
        if rel.type is RelationType.SIX_COMBINATION:
            counts[rel.pillar_from] = counts.get(rel.pillar_from, 0) + 1
            counts[rel.pillar_to] = counts.get(rel.pillar_to, 0) + 1

    marked = []
    for rel in found:
        if rel.type is RelationType.SIX_COMBINATION and (
                counts[rel.pillar_from] > 1 or counts[rel.pillar_to] > 1):
            rel = Relationship(RelationType.CONTESTED_COMBINATION, rel.pillar_from, rel.pillar_to,
                               rel.char_from, rel.char_to,
                               RELATION_NAMES[RelationType.CONTESTED_COMBINATION])
        marked.append(rel)
    return marked


# ============================================================
# LAYOUT TRACKS
# ============================================================

@dataclass(frozen=True)
class TrackGroup:
    type: RelationType
    placements: tuple  # (Relationship, track) pairs
    total_tracks: int

    def to_dict(self):
        return {
            "type": self.type.value,
            "name": self.type.chinese,
            "kind": self.type.kind,
            "total_tracks": self.total_tracks,
            "placements": [{**rel.to_dict(), "track": track} for rel, track in self.placements],
        }


def assign_tracks(relationships: list[Relationship]) -> tuple[list, int]:
    """
    Interval scheduling: shortest spans first, each onto the first track
    whose last interval ends before this one starts.

    Returns:
        ([(relationship, track), ...], number_of_tracks)
    """
    ends = []
    placements = []
    for rel in sorted(relationships, key=lambda r: r.span):
        for track, end in enumerate(ends):
            if end < rel.start:
                ends[track] = rel.end
                break
        else:
            track = len(ends)
            ends.append(rel.end)
        placements.append((rel, track))
    return placements, len(ends)


def layout_tracks(relationships: list[Relationship]) -> list[TrackGroup]:
    """Group by type in display order and assign non-overlapping tracks per group."""
    groups = []
    for rel_type in DISPLAY_ORDER:
        members = [r for r in relationships if r.type is rel_type]
        if not members:
            continue
        placements, total = assign_tracks(members)
        groups.append(TrackGroup(type=rel_type, placements=tuple(placements), total_tracks=total))
    return groups


if __name__ == "__main__":
    from divination.ganzhi import parse_pillar

    chart = [parse_pillar(t, n) for t, n in zip(("甲子", "丙寅", "己丑", "甲戌"), PILLAR_NAMES)]
    for rel in detect_relationships(chart):
        print(f"{rel.type.chinese:6s} {rel.label:8s} {PILLAR_NAMES[rel.pillar_from]}→{PILLAR_NAMES[rel.pillar_to]}")
    print()
    for group in layout_tracks(detect_relationships(chart)):
        print(f"{group.type.chinese}: {group.total_tracks} track(s)")
