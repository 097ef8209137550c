"""Tests for the plan generation command-line script."""
from __future__ import annotations

import json

import pytest

from scripts import generate_plan


def test_writes_plan_with_drills(tmp_path):
    output = tmp_path / "plan.json"

    generate_plan.main(
        ["academy", "--weeks", "1", "--start", "2025-03-03", "--seed", "3", "--drills", "--output", str(output)]
    )

    plan = json.loads(output.read_text(encoding="utf-8"))
    assert plan["team_id"] == "academy"
    assert plan["total_days"] == 7
    assert all(s["drills_generated"] for s in plan["sessions"])
    assert plan["settings"]["seed"] == 3


def test_principles_are_passed_through(tmp_path):
    output = tmp_path / "plan.json"

    generate_plan.main(
        ["u23", "--weeks", "1", "--start", "2025-03-03", "--principle", "Width", "--principle", "Pressure",
         "--output", str(output)]
    )

    plan = json.loads(output.read_text(encoding="utf-8"))
    assert plan["focus_principles"]["attacking"] == ["Width"]
    assert plan["focus_principles"]["defending"] == ["Pressure"]


@pytest.mark.parametrize(
    "argv",
    [
        ["reserves", "--weeks", "1"],
        ["academy", "--start", "03/03/2025"],
        ["academy", "--start", "2025-03-10", "--end", "2025-03-01"],
    ],
)
def test_bad_input_exits_with_error(argv):
    with pytest.raises(SystemExit) as excinfo:
        generate_plan.main(argv)

    assert excinfo.value.code == 1
