"""Pytest configuration for global fixtures and logging setup."""
from __future__ import annotations

import datetime as dt
import os
import random
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest
from fastapi.testclient import TestClient

_TMP_DIR = Path(tempfile.mkdtemp(prefix="periodizer-tests-"))

os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["LOG_DIR"] = str(_TMP_DIR / "logs")
# Never reach the real API from tests; generators are injected explicitly.
os.environ["ANTHROPIC_API_KEY"] = ""

from periodizer.logging_config import configure_logging

configure_logging()

from periodizer.database import init_db
from periodizer.main import app
from periodizer.models.drill_library import DrillLibrary
from periodizer.models.principles import PrinciplesCatalog
from periodizer.models.schemas import Fixture, TimelineDay

init_db()


class ScriptedGenerator:
    """Text generator double returning queued responses (or raising queued errors)."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.prompts: list[str] = []

    async def generate(self, prompt: str, *, max_tokens: int, temperature=None, system=None) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(scope="session")
def test_client() -> TestClient:
    """Provide a FastAPI test client."""

    return TestClient(app)


@pytest.fixture(scope="session")
def library() -> DrillLibrary:
    """The bundled drill library."""

    return DrillLibrary.load()


@pytest.fixture(scope="session")
def catalog() -> PrinciplesCatalog:
    return PrinciplesCatalog.load()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def scripted_generator() -> Callable[..., ScriptedGenerator]:
    return lambda *responses: ScriptedGenerator(list(responses))


@pytest.fixture
def make_days() -> Callable[..., list[TimelineDay]]:
    """Build a bare timeline of ``count`` days with fixtures on the given indexes."""

    def _make(
        count: int,
        fixture_indexes: tuple[int, ...] = (),
        start: dt.date = dt.date(2025, 3, 3),
        importance: float = 1.0,
    ) -> list[TimelineDay]:
        days = []
        for index in range(count):
            current = start + dt.timedelta(days=index)
            fixture = None
            if index in fixture_indexes:
                fixture = Fixture(date=current, opponent=f"Opponent {index}", importance_weight=importance)
            days.append(
                TimelineDay(
                    date=current,
                    day_index=index,
                    week_index=index // 7,
                    is_fixture=fixture is not None,
                    fixture=fixture,
                )
            )
        return days

    return _make
