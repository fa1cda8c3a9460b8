import json
import os
import sys
from datetime import datetime, timezone

import pytest

# Allow importing the divination package from the project root
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from divination.errors import InvalidInputError
from divination.generate_context import generate_liuyao_context, load_profile
from divination.run import build_parser, main


def run_json(capsys, argv):
    assert main(argv) == 0
    return json.loads(capsys.readouterr().out)


def test_bazi_command(capsys):
    data = run_json(capsys, ["bazi", "--birth", "1990-03-15T10:30", "--gender", "male",
                             "--now", "2026-02-15T12:00", "--luck-pillars", "4"])
    assert data["pillars"]["year"]["combined"] == "庚午"
    assert len(data["luck_pillars"]) == 4
    assert data["current_luck_pillar"]["ganzhi"] == "壬午"


def test_bazi_context_command(capsys):
    data = run_json(capsys, ["bazi", "--birth", "1990-03-15T10:30", "--gender", "female",
                             "--now", "2026-02-15T12:00", "--context", "--luck-pillars", "3"])
    assert data["reading_type"] == "bazi"
    assert data["target_date"] == "2026-02-15T12:00"
    assert data["calendar"]["today"]["day_name_cn"] == "星期日"
    assert data["bazi"]["basic"]["gender"] == "坤造"
    assert len(data["bazi"]["luck_pillars"]) == 3


def test_liuyao_command(capsys):
    data = run_json(capsys, ["liuyao", "--lines", "8,7,7,7,7,7", "--moment", "2024-02-10T12:00"])
    assert data["hexagram"]["name"] == "天风姤"
    assert data["hexagram"]["changed"] is None


def test_liuyao_hold(capsys):
    data = run_json(capsys, ["liuyao", "--lines", "6,9,7,7,7,7", "--moment", "2024-02-10T12:00",
                             "--hold", "1"])
    assert data["hexagram"]["moving_lines"] == [1, 2]
    assert data["hexagram"]["changed"]["key"] == "001111"


def test_output_file(tmp_path, capsys):
    out = tmp_path / "reading.json"
    assert main(["liuyao", "--lines", "7,7,7,7,7,7", "--moment", "2024-02-10T12:00",
                 "--context", "--output", str(out)]) == 0
    assert capsys.readouterr().out.strip() == str(out)
    context = json.loads(out.read_text(encoding="utf-8"))
    assert context["reading_type"] == "liuyao"
    assert context["calendar"]["lunar"]["lunar"]["text"] == "2024年正月初一"


def test_context_calendar_agrees_with_reading_for_aware_moment(capsys):
    context = generate_liuyao_context([7] * 6, datetime(2024, 2, 9, 20, 0, tzinfo=timezone.utc))
    assert context["liuyao"]["lunar_date"] == "2024年正月初一 寅时"
    assert context["calendar"]["lunar"]["lunar"]["text"] == "2024年正月初一"
    assert context["calendar"]["today"]["day_name_cn"] == "星期六"

    data = run_json(capsys, ["liuyao", "--lines", "7,7,7,7,7,7", "--moment", "2024-02-09T20:00+00:00",
                             "--context"])
    assert data["calendar"]["lunar"]["lunar"] == context["calendar"]["lunar"]["lunar"]
    assert data["liuyao"]["lunar_date"].startswith(data["calendar"]["lunar"]["lunar"]["text"])


@pytest.mark.parametrize(
    "argv",
    [
        ["liuyao", "--lines", "7,7,7", "--moment", "2024-02-10T12:00"],
        ["liuyao", "--lines", "7,7,7,7,7,7", "--moment", "2024-02-10T12:00", "--hold", "7"],
        ["bazi", "--gender", "male"],
        ["bazi", "--birth", "1850-01-01T00:00", "--gender", "male"],
        ["bazi", "--birth", "1990-03-15T10:30", "--gender", "male", "--hour-branch", "noon"],
    ],
)
def test_invalid_input_exits_with_error(capsys, argv):
    assert main(argv) == 2
    assert capsys.readouterr().err.startswith("error:")


def test_bad_timestamp_is_a_usage_error():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["bazi", "--birth", "yesterday", "--gender", "male"])


def test_profile(tmp_path, capsys, monkeypatch):
    (tmp_path / "sample.json").write_text(
        json.dumps({"name": "Sample", "birth": "1990-03-15T10:30:00", "gender": "male"}),
        encoding="utf-8")
    profile = load_profile("sample", profile_dir=tmp_path)
    assert profile["birth"].hour == 10

    monkeypatch.setattr("divination.run.load_profile",
                        lambda user: load_profile(user, profile_dir=tmp_path))
    data = run_json(capsys, ["bazi", "--user", "sample", "--now", "2026-02-15T12:00"])
    assert data["basic"]["name"] == "Sample"

    assert main(["bazi", "--user", "missing"]) == 2


def test_profile_requires_birth_and_gender(tmp_path):
    (tmp_path / "partial.json").write_text(json.dumps({"name": "x"}), encoding="utf-8")
    with pytest.raises(InvalidInputError):
        load_profile("partial", profile_dir=tmp_path)
