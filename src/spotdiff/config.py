"""Game and server configuration.

Both documents are plain JSON read once at startup. The server document is
optional: a missing or unreadable file leaves the kiosk on its defaults so a
misconfigured reader station can still be played offline.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from spotdiff.errors import ConfigError
from spotdiff.models import SkillScore

SEVEN_ERRORS_GAME_ID: Final = 3

_log = logging.getLogger("Config")


class GameConfig(BaseModel):
    """Immutable rules for a session.

    `high_threshold >= medium_threshold >= 0` is expected but not enforced.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    game_time_s: float = Field(default=120.0, gt=0)
    total_errors: int = Field(default=7, ge=1)
    max_wrong_attempts: int = Field(default=3, ge=1)

    high_threshold: int = Field(default=5, ge=0)
    medium_threshold: int = Field(default=2, ge=0)
    high_score: SkillScore = SkillScore(empathy=8, creativity=7, problem_solving=6)
    medium_score: SkillScore = SkillScore(empathy=7, creativity=6, problem_solving=5)
    low_score: SkillScore = SkillScore(empathy=6, creativity=5, problem_solving=4)

    # Ignore a second "found" signal for an index already counted.
    dedupe_error_indices: bool = True

    game_id: int = SEVEN_ERRORS_GAME_ID
    # Re-buffer results whose submission ended "incomplete" so the next card connect retries them.
    retry_unexpected_on_connect: bool = False
    fetch_on_connect: bool = True


class ServerConfig(BaseModel):
    """Where the identity server lives (`serverconfig.json`)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ip: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    timeout_s: float = Field(default=5.0, gt=0)

    @property
    def base_url(self) -> str:
        return f"http://{self.ip}:{self.port}"


def load_server_config(path: Path | str) -> ServerConfig:
    """Read the server config, falling back to defaults on any problem."""
    path = Path(path)
    if not path.is_file():
        _log.warning("Server config not found at [cyan]%s[/], using defaults", path)
        return ServerConfig()

    try:
        conf = ServerConfig.model_validate(json.loads(path.read_text()))
    except (OSError, ValueError, ValidationError) as e:
        _log.error("Failed to read server config %s: %s (using defaults)", path, e)
        return ServerConfig()

    _log.info("Server config loaded: [bright_magenta]%s:%d[/]", conf.ip, conf.port)
    return conf


def load_game_config(path: Path | str | None) -> GameConfig:
    """Read the game rules. No path or a missing file means built-in defaults.

    Raises:
        ConfigError: File exists but is not valid JSON or violates the schema
    """
    if path is None:
        return GameConfig()

    path = Path(path)
    if not path.is_file():
        _log.warning("Game config not found at [cyan]%s[/], using defaults", path)
        return GameConfig()

    try:
        return GameConfig.model_validate(json.loads(path.read_text()))
    except (OSError, ValueError, ValidationError) as e:
        msg = f"invalid game config {path}: {e}"
        raise ConfigError(msg) from e
