"""Skill scoring.

Scoring bands (defaults):
    - 5-7 errors found: high   (8, 7, 6)
    - 2-4 errors found: medium (7, 6, 5)
    - 0-1 errors found: low    (6, 5, 4)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spotdiff.config import GameConfig
    from spotdiff.models import SkillScore


def calculate_score(errors_found: int, config: GameConfig) -> SkillScore:
    """Map the number of errors found to a skill score band."""
    if errors_found >= config.high_threshold:
        return config.high_score
    if errors_found >= config.medium_threshold:
        return config.medium_score
    return config.low_score
