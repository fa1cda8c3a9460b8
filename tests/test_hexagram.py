import json
import os
import sys
from collections import Counter
from datetime import datetime

import pytest

# Allow importing the divination package from the project root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from divination.errors import InvalidInputError
from divination.hexagram import (
    HEXAGRAMS, build_hexagram, cast_hexagram, extended_shen_sha, lookup_hexagram,
    parse_line_value, parse_lines, six_spirits,
)
from divination.ganzhi import parse_stem


def branches(chart):
    return "".join(line.branch.chinese for line in chart.lines)


def relations(lines):
    return [line.relation for line in lines]


# ============================================================
# HEXAGRAM TABLE
# ============================================================

def test_sixty_four_hexagrams_eight_per_palace():
    assert len(HEXAGRAMS) == 64
    assert len({info.name for info in HEXAGRAMS.values()}) == 64
    assert set(Counter(info.palace for info in HEXAGRAMS.values()).values()) == {8}


@pytest.mark.parametrize(
    "key, name, palace, self_line, soul_type",
    [
        ("111111", "乾为天", "乾", 6, "八纯"),
        ("011111", "天风姤", "乾", 1, "一世"),
        ("001111", "天山遁", "乾", 2, "二世"),
        ("000111", "天地否", "乾", 3, "三世"),
        ("000011", "风地观", "乾", 4, "四世"),
        ("000001", "山地剥", "乾", 5, "五世"),
        ("000101", "火地晋", "乾", 4, "游魂"),
        ("111101", "火天大有", "乾", 3, "归魂"),
        ("000000", "坤为地", "坤", 6, "八纯"),
        ("111000", "地天泰", "坤", 3, "三世"),
        ("111110", "泽天夬", "坤", 5, "五世"),
        ("110010", "水泽节", "坎", 1, "一世"),
    ],
)
def test_palace_generation(key, name, palace, self_line, soul_type):
    info = lookup_hexagram(key)
    assert (info.name, info.palace, info.self_line, info.soul_type) == (name, palace, self_line, soul_type)


@pytest.mark.parametrize("self_line, response_line", [(1, 4), (2, 5), (3, 6), (4, 1), (5, 2), (6, 3)])
def test_response_is_three_lines_from_self(self_line, response_line):
    info = next(i for i in HEXAGRAMS.values() if i.self_line == self_line)
    assert info.response_line == response_line


def test_image_reads_upper_over_lower():
    gou = lookup_hexagram("011111")
    assert gou.image == "天风"
    assert gou.to_dict()["image"] == "天风"
    assert lookup_hexagram("110010").image == "水泽"

    for info in HEXAGRAMS.values():
        if info.upper == info.lower:
            assert info.name.endswith(info.image[0])
        else:
            assert info.name.startswith(info.image)


def test_unknown_key():
    with pytest.raises(InvalidInputError):
        lookup_hexagram("11111")


# ============================================================
# LINE PARSING
# ============================================================

@pytest.mark.parametrize(
    "token, value",
    [(6, 6), ("9", 9), ("O", 9), ("x", 6), ("老阴", 6), ("重", 9), ("交", 6),
     ("单", 7), ("拆", 8), ("少阳", 7), ("-----", 7), ("-- --", 8), ("---O---", 9), ("---X---", 6)],
)
def test_parse_line_value(token, value):
    assert parse_line_value(token) == value


@pytest.mark.parametrize("token", [5, 10, "10", "abc", "", True, None])
def test_parse_line_value_rejects(token):
    with pytest.raises(InvalidInputError):
        parse_line_value(token)


def test_parse_lines_accepts_compact_and_separated_strings():
    assert parse_lines("678977") == [6, 7, 8, 9, 7, 7]
    assert parse_lines("6, 7, 8, 9, 7, 7") == [6, 7, 8, 9, 7, 7]


@pytest.mark.parametrize("lines", [[7, 7, 7, 7, 7], [7] * 7, "7,7,7"])
def test_hexagram_needs_six_lines(lines):
    with pytest.raises(InvalidInputError):
        build_hexagram(lines, "甲")


# ============================================================
# CHART
# ============================================================

def test_pure_qian():
    chart = build_hexagram([7] * 6, "甲")
    assert chart.info.name == "乾为天"
    assert branches(chart) == "子寅辰午申戌"
    assert [line.stem.chinese for line in chart.lines] == ["甲"] * 3 + ["壬"] * 3
    assert relations(chart.lines) == ["子孙", "妻财", "父母", "官鬼", "兄弟", "父母"]
    assert chart.lines[5].is_self and chart.lines[2].is_response
    assert chart.changed is None
    assert chart.moving_lines == []
    assert not any(line.fu_shen for line in chart.lines)
    # self line 6 is yang: 巳, which no line carries
    assert chart.gua_shen.chinese == "巳"
    assert not chart.gua_shen_present


def test_moving_bottom_line_changes_gou_into_qian():
    chart = build_hexagram([6, 7, 7, 7, 7, 7], "甲")
    assert chart.info.name == "天风姤"
    assert chart.info.house_element.chinese == "金"
    assert chart.changed.info.key == "111111"
    assert chart.changed.info.name == "乾为天"


def test_moving_lines_produce_the_changed_hexagram():
    chart = build_hexagram([6, 9, 7, 8, 6, 9], "甲")
    assert chart.moving_lines == [1, 2, 5, 6]
    assert chart.changed.info.name == "水火既济"
    assert chart.changed.info.key == "101010"


def test_changed_relations_use_the_original_palace():
    chart = build_hexagram([7, 7, 7, 7, 7, 6], "丙")
    assert chart.info.name == "泽天夬"
    assert chart.info.palace == "坤"
    changed = chart.changed
    assert changed.info.name == "乾为天"
    assert relations(changed.lines) == ["妻财", "官鬼", "兄弟", "父母", "子孙", "兄弟"]
    assert all(line.spirit is None and not line.is_self for line in changed.lines)


def test_held_line_does_not_change():
    chart = build_hexagram([6, 7, 7, 7, 7, 7], "甲", changing_flags=[False] * 6)
    assert chart.changed is None
    assert chart.moving_lines == [1]

    chart = build_hexagram([9, 7, 7, 7, 7, 7], "甲", changing_flags=[True] + [False] * 5)
    assert chart.changed.info.key == "011111"

    with pytest.raises(InvalidInputError):
        build_hexagram([9, 7, 7, 7, 7, 7], "甲", changing_flags=[True])


def test_hidden_spirit_fills_missing_relation():
    chart = build_hexagram([8, 7, 7, 7, 7, 7], "甲")
    assert chart.info.name == "天风姤"
    assert "妻财" not in relations(chart.lines)
    hidden = chart.lines[1].fu_shen
    assert hidden.relation == "妻财"
    assert (hidden.stem.chinese, hidden.branch.chinese) == ("甲", "寅")
    assert hidden.label == "财 寅木"
    assert [i for i, line in enumerate(chart.lines, 1) if line.fu_shen] == [2]


def test_gua_shen_on_a_yin_self_line():
    chart = build_hexagram([8, 7, 7, 7, 7, 7], "甲")
    assert chart.gua_shen.chinese == "午"
    assert chart.gua_shen_present
    assert [line.position for line in chart.lines if line.is_gua_shen] == [4]


@pytest.mark.parametrize(
    "stem, first",
    [("甲", "青龙"), ("乙", "青龙"), ("丙", "朱雀"), ("丁", "朱雀"), ("戊", "勾陈"),
     ("己", "螣蛇"), ("庚", "白虎"), ("辛", "白虎"), ("壬", "玄武"), ("癸", "玄武")],
)
def test_six_spirits_start_by_day_stem(stem, first):
    spirits = six_spirits(parse_stem(stem))
    assert spirits[0] == first
    assert len(set(spirits)) == 6


def test_six_spirits_sequence():
    assert six_spirits(parse_stem("戊")) == ["勾陈", "螣蛇", "白虎", "玄武", "青龙", "朱雀"]


# ============================================================
# DIVINATION CONTEXT
# ============================================================

def test_extended_stars():
    stars = extended_shen_sha("甲", "子", "寅", "辰")
    assert stars["驿马"] == "寅"
    assert stars["桃花"] == "酉"
    assert stars["日禄"] == "寅"
    assert stars["贵人"] == "丑未"
    assert stars["文昌"] == "巳"
    assert stars["将星"] == "子"
    assert stars["华盖"] == "辰"
    assert stars["羊刃"] == "卯"
    assert stars["劫煞"] == "巳"
    assert stars["灾煞"] == "午"
    assert stars["亡神"] == "亥"
    assert stars["孤辰"] == "巳"
    assert stars["寡宿"] == "丑"
    assert stars["天医"] == "丑"


def test_cast_hexagram():
    reading = cast_hexagram("7,7,7,7,7,7", datetime(2024, 2, 10, 12, 0), question="career")
    assert reading.pillars.day.chinese == "甲辰"
    assert reading.kong_wang == "寅卯"
    assert reading.lunar_date == "2024年正月初一 午时"
    assert reading.solar_term.startswith("立春2024.02.04")
    assert [line.spirit for line in reading.chart.lines][0] == "青龙"

    data = reading.to_dict()
    assert data["question"] == "career"
    assert data["pillars"] == {"year": "甲辰", "month": "丙寅", "day": "甲辰", "hour": "庚午"}
    assert data["hexagram"]["name"] == "乾为天"
    json.dumps(data, ensure_ascii=False)
