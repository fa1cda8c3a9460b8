"""
Generate reading context for a BaZi chart or a Liuyao cast.

This orchestrates the computation modules and produces a single JSON
payload for the LLM interpretation layer.

Usage from Python:
    from divination.generate_context import generate_bazi_context
    context = generate_bazi_context(datetime(1990, 3, 15, 10, 30), "male",
                                    target_date=datetime(2026, 2, 15, 12, 0))
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from divination.astro_calendar import calendar_date, day_of_week
from divination.bazi import DEFAULT_LUCK_PILLARS, compute_chart
from divination.errors import InvalidInputError
from divination.hexagram import cast_hexagram

logger = logging.getLogger(__name__)

PROFILE_DIR = Path(__file__).parent.parent / "chart_data"


def load_profile(user_name: str, profile_dir: Path = PROFILE_DIR) -> dict:
    """
    Load a user's birth profile from chart_data/<user>.json.

    The file holds {"name", "birth", "gender"} and optionally
    "early_zi_hour" and "hour_branch"; "birth" is an ISO timestamp.
    """
    path = Path(profile_dir) / f"{user_name}.json"
    if not path.exists():
        raise FileNotFoundError(f"No profile found for user '{user_name}' at {path}")

    with open(path, encoding="utf-8") as f:
        profile = json.load(f)

    missing = [k for k in ("birth", "gender") if k not in profile]
    if missing:
        raise InvalidInputError(f"Profile {path} is missing {', '.join(missing)}")
    profile["birth"] = datetime.fromisoformat(profile["birth"])
    return profile


def generate_bazi_context(birth: datetime, gender: str, target_date: datetime, *,
                          name: Optional[str] = None, early_zi_hour: bool = False,
                          hour_branch: Optional[str] = None,
                          num_luck_pillars: int = DEFAULT_LUCK_PILLARS) -> dict:
    """
    Generate the complete context payload for a BaZi reading.

    `target_date` is the "now" of the reading: it picks the current luck
    pillar and the flowing year/month/day/hour.
    """
    chart = compute_chart(birth, gender, early_zi_hour=early_zi_hour,
                          hour_branch=hour_branch, now=target_date,
                          num_luck_pillars=num_luck_pillars, name=name)
    logger.info("BaZi context for %s at %s", name or birth.isoformat(), target_date.isoformat())

    return {
        "generated_at": datetime.now().isoformat(),
        "target_date": target_date.isoformat(timespec="minutes"),
        "reading_type": "bazi",
        "user": {
            "name": name,
            "birth_date": birth.isoformat(timespec="minutes"),
            "gender": gender,
        },
        "calendar": {"today": day_of_week(target_date), "lunar": calendar_date(target_date).to_dict()},
        "bazi": chart.to_dict(),
    }


def generate_liuyao_context(lines: Sequence, moment: datetime, *,
                            question: Optional[str] = None,
                            changing_flags: Optional[Sequence[bool]] = None,
                            early_zi_hour: bool = False) -> dict:
    """Generate the complete context payload for a Liuyao reading."""
    reading = cast_hexagram(lines, moment, changing_flags=changing_flags,
                            early_zi_hour=early_zi_hour, question=question)
    logger.info("Liuyao context: %s at %s", reading.chart.info.name, moment.isoformat())

    return {
        "generated_at": datetime.now().isoformat(),
        "target_date": moment.isoformat(timespec="minutes"),
        "reading_type": "liuyao",
        "calendar": {"today": day_of_week(moment), "lunar": calendar_date(moment).to_dict()},
        "liuyao": reading.to_dict(),
    }


def write_context(context: dict, out_path: Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(json.dumps(context, indent=2, ensure_ascii=False))
    return out_path


if __name__ == "__main__":
    context = generate_bazi_context(datetime(1990, 3, 15, 10, 30), "male",
                                    datetime(2026, 2, 15, 12, 0), name="sample")
    print(json.dumps(context["bazi"]["basic"], indent=2, ensure_ascii=False))
