import json
import os
import sys
from datetime import datetime

import pytest

# Allow importing the divination package from the project root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from divination.bazi import (
    StarContext, compute_chart, compute_luck_pillars, life_stage, ming_gong, ming_gua, nayin,
    normalize_gender, pillar_details, shen_gong, shen_sha_for_pillar, tai_xi, tai_yuan, ten_god,
)
from divination.errors import InvalidInputError
from divination.ganzhi import FourPillars, kong_wang, parse_branch, parse_pillar, parse_stem
from divination.sexagenary import four_pillars
from divination.solar_terms import surrounding_terms

BIRTH = datetime(1990, 3, 15, 10, 30)
NOW = datetime(2026, 2, 15, 12, 0)


def make_chart(year, month, day, hour):
    return FourPillars(
        year=parse_pillar(year, "year"),
        month=parse_pillar(month, "month"),
        day=parse_pillar(day, "day"),
        hour=parse_pillar(hour, "hour"),
    )


# ============================================================
# TEN GODS / NAYIN / LIFE STAGES / EMPTINESS
# ============================================================

@pytest.mark.parametrize(
    "other, god",
    [("甲", "比肩"), ("乙", "劫财"), ("丙", "食神"), ("丁", "伤官"), ("戊", "偏财"),
     ("己", "正财"), ("庚", "七杀"), ("辛", "正官"), ("壬", "偏印"), ("癸", "正印")],
)
def test_ten_gods_for_jia(other, god):
    assert ten_god(parse_stem("甲"), parse_stem(other)) == god


def test_ten_gods_for_yin_day_master():
    assert ten_god(parse_stem("辛"), parse_stem("丙")) == "正官"
    assert ten_god(parse_stem("己"), parse_stem("庚")) == "伤官"
    assert ten_god(parse_stem("癸"), parse_stem("庚")) == "正印"


@pytest.mark.parametrize(
    "pillar, name",
    [("甲子", "海中金"), ("乙丑", "海中金"), ("丙寅", "炉中火"), ("戊午", "天上火"), ("癸亥", "大海水")],
)
def test_nayin(pillar, name):
    assert nayin(parse_pillar(pillar)) == name


@pytest.mark.parametrize(
    "pillar, empty",
    [("甲子", "戌亥"), ("甲戌", "申酉"), ("癸亥", "子丑"), ("甲辰", "寅卯"), ("己卯", "申酉")],
)
def test_kong_wang(pillar, empty):
    p = parse_pillar(pillar)
    assert kong_wang(p.stem, p.branch) == empty


@pytest.mark.parametrize(
    "stem, branch, stage",
    [("甲", "亥", "长生"), ("甲", "卯", "帝旺"), ("甲", "午", "死"),
     ("乙", "午", "长生"), ("乙", "寅", "帝旺"), ("庚", "酉", "帝旺"), ("癸", "卯", "长生")],
)
def test_life_stage(stem, branch, stage):
    assert life_stage(parse_stem(stem), parse_branch(branch)) == stage


# ============================================================
# AUXILIARY STARS
# ============================================================

def test_heavenly_noble_marks_matching_branches():
    details = pillar_details(make_chart("辛丑", "庚寅", "甲子", "辛未"), "male")
    assert "天乙贵人" in details[0].shen_sha
    assert "天乙贵人" not in details[1].shen_sha
    assert "天乙贵人" in details[3].shen_sha


def test_month_virtue_stars():
    ctx = StarContext(year=parse_pillar("辛丑", "year"), month=parse_pillar("庚寅", "month"),
                      day=parse_pillar("甲子", "day"))
    assert "月德贵人" in shen_sha_for_pillar(ctx, parse_pillar("丙午", "hour"))
    assert "天德贵人" in shen_sha_for_pillar(ctx, parse_pillar("丁卯", "hour"))

    # 卯 month's heavenly virtue is a branch
    ctx = StarContext(year=parse_pillar("辛丑", "year"), month=parse_pillar("辛卯", "month"),
                      day=parse_pillar("甲子", "day"))
    assert "天德贵人" in shen_sha_for_pillar(ctx, parse_pillar("壬申", "hour"))


def test_day_only_stars():
    details = pillar_details(make_chart("庚辰", "庚辰", "庚辰", "庚辰"), "female")
    assert "魁罡日" in details[2].shen_sha
    assert "天罗" in details[2].shen_sha
    for i in (0, 1, 3):
        assert "魁罡日" not in details[i].shen_sha
        assert "天罗" not in details[i].shen_sha


def test_emptiness_star():
    # day 甲子 empties 戌亥 (year checked); year 辛亥 empties 寅卯 (others checked)
    details = pillar_details(make_chart("辛亥", "庚寅", "甲子", "甲子"), "male")
    assert "空亡" in details[0].shen_sha
    assert "空亡" in details[1].shen_sha
    assert "空亡" not in details[2].shen_sha
    assert "空亡" not in details[3].shen_sha


def test_pillar_details():
    details = pillar_details(four_pillars(BIRTH), "male")
    year, month, day, hour = details
    assert day.main_star == "元男"
    assert year.main_star == "伤官"
    assert month.main_star == "比肩"
    assert [h.stem.chinese for h in year.hidden_stems] == ["丁", "己"]
    assert [h.ten_god for h in year.hidden_stems] == ["偏印", "比肩"]
    assert day.kong_wang == "申酉"
    assert year.nayin == "路旁土"


# ============================================================
# AUXILIARY POINTS
# ============================================================

def test_auxiliary_points():
    assert tai_yuan(parse_pillar("丙寅")).pillar.chinese == "丁巳"
    assert tai_xi(parse_pillar("甲子")).pillar.chinese == "己丑"
    assert tai_xi(parse_pillar("丙寅")).pillar.chinese == "辛亥"
    jia, yin, wu = parse_stem("甲"), parse_branch("寅"), parse_branch("午")
    assert ming_gong(jia, yin, wu).pillar.chinese == "丁卯"
    assert shen_gong(jia, yin, wu).pillar.chinese == "壬申"
    assert tai_yuan(parse_pillar("丙寅")).to_dict()["nayin"] == "沙中土"


@pytest.mark.parametrize(
    "year, gender, code, group",
    [(1990, "male", 1, "东四命"), (1990, "female", 8, "西四命"), (1984, "male", 7, "西四命"),
     (2000, "male", 9, "东四命"), (1995, "male", 2, "西四命"), (1985, "female", 9, "东四命")],
)
def test_ming_gua(year, gender, code, group):
    result = ming_gua(year, gender)
    assert result.code == code
    assert result.group == group


@pytest.mark.parametrize("alias, expected", [("M", "male"), ("女", "female"), ("坤造", "female")])
def test_gender_aliases(alias, expected):
    assert normalize_gender(alias) == expected


def test_gender_is_validated():
    with pytest.raises(InvalidInputError):
        compute_chart(BIRTH, "other")


# ============================================================
# LUCK PILLARS
# ============================================================

def test_qi_yun_counts_to_next_jie_for_yang_male():
    pillars = four_pillars(BIRTH)
    qi_yun, luck = compute_luck_pillars(pillars, "male", BIRTH, NOW)

    assert qi_yun.forward
    assert qi_yun.anchor_term.name == "清明"
    diff_days = (surrounding_terms(BIRTH, jie_only=True).next.moment - BIRTH).total_seconds() / 86400
    assert qi_yun.years == int(diff_days * 4 // 12)
    assert 0 <= qi_yun.months < 12
    assert 0 <= qi_yun.days < 30
    assert 0 <= qi_yun.hours <= 24
    assert 6 < qi_yun.start_age < 8


def test_luck_pillars_step_from_the_month_pillar():
    pillars = four_pillars(BIRTH)
    _, luck = compute_luck_pillars(pillars, "male", BIRTH, NOW)
    assert len(luck) == 8
    assert [lp.pillar.chinese for lp in luck[:3]] == ["庚辰", "辛巳", "壬午"]
    assert luck[0].ten_god == "伤官"
    assert all(a.end_date == b.start_date for a, b in zip(luck, luck[1:]))
    assert [lp.start_age for lp in luck[:3]] == [luck[0].start_age + 10 * i for i in range(3)]

    current = [lp for lp in luck if lp.is_current]
    assert len(current) == 1
    assert current[0].pillar.chinese == "壬午"


def test_luck_pillars_run_backward_for_yang_female():
    pillars = four_pillars(BIRTH)
    qi_yun, luck = compute_luck_pillars(pillars, "female", BIRTH, NOW, num_pillars=3)
    assert not qi_yun.forward
    assert qi_yun.anchor_term.name == "惊蛰"
    assert [lp.pillar.chinese for lp in luck] == ["戊寅", "丁丑", "丙子"]
    assert luck[0].direction == "backward"


# ============================================================
# FULL CHART
# ============================================================

def test_compute_chart():
    chart = compute_chart(BIRTH, "male", now=NOW, name="sample")
    data = chart.to_dict()

    assert set(data) == {"basic", "day_master", "pillars", "qi_yun", "luck_pillars",
                         "current_luck_pillar", "relationships", "relationship_tracks", "flowing"}
    assert [data["pillars"][k]["combined"] for k in ("year", "month", "day", "hour")] == \
        ["庚午", "己卯", "己卯", "己巳"]
    assert data["basic"]["gender"] == "乾造"
    assert data["basic"]["zodiac"] == "马"
    assert data["basic"]["solar_date"] == "1990年03月15日 10:30:00"
    assert data["basic"]["lunar_date"] == "1990年二月十九 巳时"
    assert data["basic"]["ming_gua"]["gua"] == "坎卦"
    assert data["current_luck_pillar"]["ganzhi"] == "壬午"
    assert data["flowing"]["pillars"]["flowing_year"]["ganzhi"] == "丙午"
    assert len(data["flowing"]["month_terms"]) == 12
    assert data["qi_yun"]["direction"] == "顺排"

    # the payload is plain JSON
    json.dumps(data, ensure_ascii=False)


def test_chart_without_now_uses_birth():
    chart = compute_chart(BIRTH, "female")
    assert chart.current_luck_pillar is None
    assert chart.to_dict()["flowing"]["now"] == "1990-03-15T10:30"


def test_chart_relationships_include_repeated_day_and_month():
    chart = compute_chart(BIRTH, "male", now=NOW)
    labels = {r.label for r in chart.relationships}
    # 午 year and 卯 month/day destroy each other
    assert "午卯破" in labels
    # identical 卯 branches on month and day never relate
    assert not any(r.start == 1 and r.end == 2 for r in chart.relationships)
