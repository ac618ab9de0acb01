"""Shared fakes and fixtures."""

from __future__ import annotations

import pytest

from spotdiff.cards import CardRegistry
from spotdiff.config import GameConfig
from spotdiff.errors import TransportError
from spotdiff.models import Attributes, CardAttributes, Result, SkillScore


class FakeServerClient:
    """Records every call; statuses and failures are set per test."""

    def __init__(self, *, submit_status: int = 201, register_status: int = 200) -> None:
        self.submit_status = submit_status
        self.register_status = register_status
        self.fail_submit = False
        self.fail_register = False
        self.attributes: dict[str, CardAttributes] = {}
        self.calls: list[tuple[str, object]] = []

    def register(self, card_id: str) -> int:
        self.calls.append(("register", card_id))
        if self.fail_register:
            raise TransportError("connection refused")
        return self.register_status

    def submit_score(self, payload) -> int:
        self.calls.append(("submit", payload))
        if self.fail_submit:
            raise TransportError("connection refused")
        return self.submit_status

    def fetch_attributes(self, card_id: str) -> CardAttributes | None:
        self.calls.append(("fetch", card_id))
        return self.attributes.get(card_id)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)


def make_result(errors_found: int = 7, end_cause: str = "completed", session_id: int = 1) -> Result:
    return Result(
        session_id=session_id,
        errors_found=errors_found,
        wrong_attempts=0,
        time_remaining=30.0,
        end_cause=end_cause,
        score=SkillScore(empathy=8, creativity=7, problem_solving=6),
    )


def make_attributes(card_id: str, empathy: int = 20) -> CardAttributes:
    return CardAttributes(nfcId=card_id, attributes=Attributes(empathy=empathy, creativity=15, problem_solving=12))


@pytest.fixture
def config() -> GameConfig:
    return GameConfig(
        game_time_s=120,
        total_errors=7,
        max_wrong_attempts=3,
        high_threshold=5,
        medium_threshold=2,
        high_score=SkillScore(empathy=8, creativity=7, problem_solving=6),
        medium_score=SkillScore(empathy=7, creativity=6, problem_solving=5),
        low_score=SkillScore(empathy=6, creativity=5, problem_solving=4),
    )


@pytest.fixture
def registry() -> CardRegistry:
    return CardRegistry()


@pytest.fixture
def client() -> FakeServerClient:
    return FakeServerClient()
