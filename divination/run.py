"""
CLI wrapper for the BaZi chart and Liuyao cast computations.

Usage:
    python -m divination.run bazi --birth 1990-03-15T10:30 --gender male \
        [--now 2026-02-15T12:00] [--early-zi] [--hour-branch 戌] [--name NAME]
    python -m divination.run bazi --user sample --now 2026-02-15T12:00 --context
    python -m divination.run liuyao --lines 6,7,8,9,7,8 --moment 2024-05-01T10:00 \
        [--hold 4] [--question TEXT] [--context]
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from divination.bazi import DEFAULT_LUCK_PILLARS, compute_chart
from divination.errors import DivinationError, InvalidInputError
from divination.generate_context import (
    generate_bazi_context, generate_liuyao_context, load_profile, write_context,
)
from divination.hexagram import cast_hexagram

logger = logging.getLogger(__name__)


def _timestamp(text: str) -> datetime:
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO timestamp: {text!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute BaZi charts and Liuyao hexagrams as JSON.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    bazi = sub.add_parser("bazi", help="Four Pillars chart")
    bazi.add_argument("--birth", type=_timestamp, help="Birth moment, e.g. 1990-03-15T10:30")
    bazi.add_argument("--gender", choices=["male", "female"])
    bazi.add_argument("--user", help="Load birth data from chart_data/<user>.json")
    bazi.add_argument("--name")
    bazi.add_argument("--now", type=_timestamp, help="Reference moment for current luck and flowing pillars")
    bazi.add_argument("--early-zi", dest="early_zi", action="store_true",
                      help="Count 23:00-23:59 as the next day")
    bazi.add_argument("--hour-branch", dest="hour_branch",
                      help="Two-hour period when the clock time is unknown (子..亥 or zi..hai)")
    bazi.add_argument("--luck-pillars", dest="luck_pillars", type=int, default=DEFAULT_LUCK_PILLARS)
    bazi.add_argument("--context", action="store_true", help="Wrap the chart in the LLM context payload")
    bazi.add_argument("--output", help="Write JSON to this path instead of stdout")

    liuyao = sub.add_parser("liuyao", help="Hexagram cast")
    liuyao.add_argument("--lines", required=True,
                        help="Six line values bottom first, comma separated (6/7/8/9 or 老阳/少阴 ...)")
    liuyao.add_argument("--moment", required=True, type=_timestamp, help="Moment of the cast")
    liuyao.add_argument("--hold", type=int, action="append", default=[],
                        help="Line position (1-6) of a moving line to hold still; repeatable")
    liuyao.add_argument("--question")
    liuyao.add_argument("--early-zi", dest="early_zi", action="store_true")
    liuyao.add_argument("--context", action="store_true", help="Wrap the cast in the LLM context payload")
    liuyao.add_argument("--output", help="Write JSON to this path instead of stdout")
    return parser


def run_bazi(args) -> dict:
    if args.user:
        profile = load_profile(args.user)
        birth = profile["birth"]
        gender = profile["gender"]
        name = args.name or profile.get("name")
        early_zi = args.early_zi or profile.get("early_zi_hour", False)
        hour_branch = args.hour_branch or profile.get("hour_branch")
    else:
        if args.birth is None or args.gender is None:
            raise InvalidInputError("bazi needs --birth and --gender, or --user")
        birth, gender, name = args.birth, args.gender, args.name
        early_zi, hour_branch = args.early_zi, args.hour_branch

    if args.context:
        return generate_bazi_context(birth, gender, args.now or birth, name=name,
                                     early_zi_hour=early_zi, hour_branch=hour_branch,
                                     num_luck_pillars=args.luck_pillars)
    chart = compute_chart(birth, gender, early_zi_hour=early_zi, hour_branch=hour_branch,
                          now=args.now, num_luck_pillars=args.luck_pillars, name=name)
    return chart.to_dict()


def run_liuyao(args) -> dict:
    lines = [t for t in args.lines.replace("，", ",").split(",") if t.strip()]
    flags = None
    if args.hold:
        bad = [p for p in args.hold if not 1 <= p <= 6]
        if bad:
            raise InvalidInputError(f"--hold positions must be 1-6, got {bad}")
        flags = [i + 1 not in args.hold for i in range(6)]

    if args.context:
        return generate_liuyao_context(lines, args.moment, question=args.question,
                                       changing_flags=flags, early_zi_hour=args.early_zi)
    reading = cast_hexagram(lines, args.moment, changing_flags=flags,
                            early_zi_hour=args.early_zi, question=args.question)
    return reading.to_dict()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        result = run_bazi(args) if args.command == "bazi" else run_liuyao(args)
    except (DivinationError, FileNotFoundError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.output:
        print(write_context(result, Path(args.output)))
    else:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
