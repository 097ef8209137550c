"""Tests for the YAML-backed team directory."""
from __future__ import annotations

import pytest
import yaml

from periodizer.exceptions import TeamNotFoundError
from periodizer.services.team_directory import TeamDirectory


def test_bundled_teams():
    teams = TeamDirectory.load()

    assert "first_team" in teams
    assert teams.get("first_team").name == "Riverside FC"
    assert [t.id for t in teams.list()] == ["first_team", "u23", "academy"]


def test_unknown_team_raises():
    with pytest.raises(TeamNotFoundError) as excinfo:
        TeamDirectory.load().get("reserves")

    assert excinfo.value.team_id == "reserves"


def test_missing_file_gives_empty_directory(tmp_path):
    teams = TeamDirectory.load(tmp_path / "teams.yaml")

    assert teams.list() == []
    assert "first_team" not in teams


def test_custom_file(tmp_path):
    path = tmp_path / "teams.yaml"
    path.write_text(
        yaml.safe_dump({"teams": [{"id": "women", "name": "Riverside Women", "fixtures": [{"date": "2025-04-01"}]}]}),
        encoding="utf-8",
    )

    teams = TeamDirectory.load(path)

    assert teams.get("women").fixtures == [{"date": "2025-04-01"}]
