#!/usr/bin/env python3
"""Operator CLI: report score drift and optionally rebuild team totals from the log.

    python backend/scripts/recalculate_scores.py            # drift report only
    python backend/scripts/recalculate_scores.py --apply    # rewrite scores
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from itweek.db import async_session_factory, engine  # noqa: E402
from itweek.logging_config import setup_logging  # noqa: E402
from itweek.score_service import recalculate_all_totals, score_drift  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--apply", action="store_true", help="Rewrite team scores from the score log")
    parser.add_argument("--actor", default="cli", help="Actor recorded in the audit log")
    return parser.parse_args()


async def run(apply: bool, actor: str, *, session_factory=None) -> dict[str, Any]:
    factory = session_factory or async_session_factory
    try:
        async with factory() as session:
            report = await score_drift(session)
            result: dict[str, Any] = {"drift": report}
            if apply:
                result["totals"] = await recalculate_all_totals(session, actor=actor)
            return result
    finally:
        if session_factory is None:
            await engine.dispose()


def main() -> int:
    args = parse_args()
    setup_logging()
    result = asyncio.run(run(args.apply, args.actor))
    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    drifted = [row for row in result["drift"] if row["drift"] != 0]
    # Non-zero exit in report mode lets cron alert on drift.
    return 1 if drifted and not args.apply else 0


if __name__ == "__main__":
    raise SystemExit(main())
