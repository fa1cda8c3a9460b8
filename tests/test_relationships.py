import os
import sys
from collections import Counter

# Allow importing the divination package from the project root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from divination.ganzhi import parse_pillar
from divination.relationships import (
    PILLAR_NAMES, RelationType, assign_tracks, detect_relationships, layout_tracks,
)


def chart(*tokens):
    return [parse_pillar(t, n) for t, n in zip(tokens, PILLAR_NAMES)]


def signature(relationships):
    return Counter((r.type, frozenset((r.char_from, r.char_to))) for r in relationships)


def test_pairwise_relationships():
    found = detect_relationships(chart("甲子", "己丑", "丙午", "丁未"))
    labels = {r.label for r in found}
    assert labels == {"甲己合", "子丑合", "午未合", "子午沖", "丑未沖",
                      "子未害", "丑午害", "丑未刑", "丑未暗合", "子丑会", "午未会"}

    stem = [r for r in found if r.type is RelationType.STEM_COMBINATION]
    assert len(stem) == 1
    assert stem[0].kind == "stem"
    assert (stem[0].pillar_from, stem[0].pillar_to) == (0, 1)


def test_each_pair_reported_once_regardless_of_order():
    pillars = chart("甲子", "己丑", "丙午", "丁未")
    forward = detect_relationships(pillars)
    backward = detect_relationships(list(reversed(pillars)))
    assert len({r.key() for r in forward}) == len(forward)
    assert signature(forward) == signature(backward)


def test_full_three_harmony_skips_identical_branches():
    found = detect_relationships(chart("甲戌", "甲戌", "丙寅", "丙午"))
    harmony = [r for r in found if r.type is RelationType.THREE_HARMONY]
    assert len(harmony) == 5
    assert {r.label for r in harmony} == {"寅午戌三合"}
    assert not any(r.start == 0 and r.end == 1 for r in found)
    assert not any(r.type is RelationType.HALF_HARMONY for r in found)


def test_half_harmony():
    found = detect_relationships(chart("甲子", "丙辰", "戊午", "庚午"))
    half = [r for r in found if r.type is RelationType.HALF_HARMONY]
    assert [(r.pillar_from, r.pillar_to, r.label) for r in half] == [(0, 1, "子辰半合")]
    # 午午 is a self-punishment
    assert any(r.type is RelationType.PUNISHMENT and r.label == "午午刑" for r in found)


def test_earth_concentration_spans_first_to_last_earth_branch():
    found = detect_relationships(chart("甲辰", "丙戌", "己丑", "辛卯"))
    earth = [r for r in found if r.type is RelationType.EARTH_CONCENTRATION]
    assert len(earth) == 1
    assert (earth[0].pillar_from, earth[0].pillar_to) == (0, 2)
    assert earth[0].label == "土局旺势"


def test_arching_gathering():
    found = detect_relationships(chart("甲寅", "丙辰", "戊午", "庚申"))
    arching = [r for r in found if r.type is RelationType.ARCHING_GATHERING]
    assert [(r.pillar_from, r.pillar_to, r.label) for r in arching] == [(0, 1, "拱会木")]


def test_contested_combination_replaces_six_combination():
    found = detect_relationships(chart("甲子", "乙丑", "丙子", "丁卯"))
    assert not any(r.type is RelationType.SIX_COMBINATION for r in found)
    contested = [r for r in found if r.type is RelationType.CONTESTED_COMBINATION]
    assert {(r.start, r.end) for r in contested} == {(0, 1), (1, 2)}
    assert all(r.label == "争合" for r in contested)


def test_assign_tracks_places_short_spans_first():
    found = detect_relationships(chart("甲子", "丙午", "戊子", "庚午"))
    clashes = [r for r in found if r.type is RelationType.CLASH]
    placements, total = assign_tracks(clashes)

    assert total == 3
    assert [((r.start, r.end), track) for r, track in placements] == [
        ((0, 1), 0), ((1, 2), 1), ((2, 3), 0), ((0, 3), 2),
    ]


def test_layout_tracks_follow_display_order():
    groups = layout_tracks(detect_relationships(chart("甲子", "己丑", "丙午", "丁未")))
    assert [g.type for g in groups] == [
        RelationType.STEM_COMBINATION, RelationType.SIX_COMBINATION, RelationType.HALF_GATHERING,
        RelationType.CLASH, RelationType.HARM, RelationType.PUNISHMENT,
        RelationType.HIDDEN_COMBINATION,
    ]
    payload = groups[0].to_dict()
    assert payload["kind"] == "stem"
    assert payload["placements"][0]["track"] == 0
