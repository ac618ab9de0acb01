from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from spotdiff.types import EndCause


class SkillScore(BaseModel):
    """Skill points credited to a card. Sent as skill1/skill2/skill3."""

    model_config = ConfigDict(frozen=True)

    empathy: int = Field(ge=0)
    creativity: int = Field(ge=0)
    problem_solving: int = Field(ge=0)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.empathy, self.creativity, self.problem_solving)


class Result(BaseModel):
    """Outcome of one finished session. Created once, never mutated."""

    model_config = ConfigDict(frozen=True)

    session_id: int = Field(ge=0)
    errors_found: int = Field(ge=0)
    wrong_attempts: int = Field(ge=0)
    time_remaining: float = Field(ge=0)
    end_cause: EndCause
    score: SkillScore
    ended_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def completed_all_errors(self) -> bool:
        return self.end_cause == "completed"

    @property
    def max_wrong_attempts_reached(self) -> bool:
        return self.end_cause == "too_many_wrong_attempts"


class ScorePayload(BaseModel):
    """POST /users/{nfcId} body for a score submission."""

    nfcId: str = Field(min_length=1)  # noqa: N815
    gameId: int  # noqa: N815
    skill1: int
    skill2: int
    skill3: int

    @classmethod
    def from_result(cls, card_id: str, game_id: int, result: Result) -> ScorePayload:
        score = result.score
        return cls(
            nfcId=card_id,
            gameId=game_id,
            skill1=score.empathy,
            skill2=score.creativity,
            skill3=score.problem_solving,
        )


class Attributes(BaseModel):
    model_config = ConfigDict(extra="ignore")

    empathy: int = 0
    creativity: int = 0
    problem_solving: int = 0


class CardAttributes(BaseModel):
    """Latest skill totals the server holds for a card (GET /users/{id})."""

    model_config = ConfigDict(extra="ignore")  # Server may add fields without breaking us.

    nfcId: str  # noqa: N815
    attributes: Attributes = Field(default_factory=Attributes)
