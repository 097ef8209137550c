"""Generate a team plan from the command line and print or store it."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from periodizer.config import get_settings
from periodizer.database import SessionLocal, run_migrations
from periodizer.exceptions import PlanInputError
from periodizer.logging_config import configure_logging
from periodizer.models.schemas import GenerationMode, LoadAssignmentMode, PlanOptions, Variability
from periodizer.services.plan_assembler import build_plan_assembler
from periodizer.services.plan_repository import PlanRepository
from periodizer.services.team_directory import TeamDirectory


logger = logging.getLogger("scripts.generate_plan")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a periodization plan for a team",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Five-week plan from today, high-level only
  python scripts/generate_plan.py first_team

  # Fixed window with drills for every session, stored in the database
  python scripts/generate_plan.py first_team --start 2025-03-03 --end 2025-04-06 --drills --save

  # Reproducible plan with custom focus principles
  python scripts/generate_plan.py u23 --weeks 4 --seed 7 --principle Width --principle Pressure
        """,
    )
    parser.add_argument("team_id", help="Team id from the team directory")
    parser.add_argument("--weeks", type=int, help="Plan length in weeks (max 6)")
    parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD). Defaults to today.")
    parser.add_argument("--end", type=str, help="End date (YYYY-MM-DD), inclusive")
    parser.add_argument("--objective", type=str, default="", help="Coaching objective for the block")
    parser.add_argument(
        "--principle",
        action="append",
        default=[],
        help="Focus principle name (repeatable, max 6)",
    )
    parser.add_argument("--variability", choices=[v.value for v in Variability])
    parser.add_argument("--mode", choices=[m.value for m in GenerationMode], help="Drill generation mode")
    parser.add_argument(
        "--load-assignment",
        choices=[m.value for m in LoadAssignmentMode],
        help="Load assignment strategy",
    )
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    parser.add_argument("--drills", action="store_true", help="Populate drills for every session")
    parser.add_argument("--save", action="store_true", help="Store the plan in the database")
    parser.add_argument("--title", type=str, help="Title used when saving")
    parser.add_argument("--output", type=str, help="Write JSON to this file instead of stdout")
    return parser.parse_args(argv)


def _parse_date(value: str | None, flag: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise PlanInputError(f"Invalid {flag} date: {value}. Use YYYY-MM-DD") from None


async def run(args: argparse.Namespace) -> dict:
    settings = get_settings()
    teams = TeamDirectory.load(settings.data_dir / "teams.yaml")
    team = teams.get(args.team_id)

    options = PlanOptions(
        weeks=args.weeks,
        start_date=_parse_date(args.start, "--start"),
        end_date=_parse_date(args.end, "--end"),
        objective=args.objective,
        selected_principles=args.principle,
        variability=args.variability,
        generation_mode=args.mode,
        load_assignment=args.load_assignment,
        seed=args.seed,
    )

    assembler = build_plan_assembler(settings)
    plan = await assembler.generate_high_level_plan(team, options)
    if args.drills:
        await assembler.generate_all_session_drills(plan)

    for warning in plan.warnings:
        logger.warning("%s", warning)

    result = plan.model_dump(mode="json")
    if args.save:
        run_migrations()
        db = SessionLocal()
        try:
            plan_id = PlanRepository(db).create(plan, args.title)
        finally:
            db.close()
        logger.info("Saved plan %d", plan_id)
        result = {"id": plan_id, "plan": result}
    return result


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging()

    try:
        result = asyncio.run(run(args))
    except PlanInputError as e:
        logger.error("Cannot generate plan: %s", e)
        sys.exit(1)

    payload = json.dumps(result, indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        logger.info("Wrote plan to %s", args.output)
    else:
        print(payload)


if __name__ == "__main__":
    main()
