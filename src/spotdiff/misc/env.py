import os
import sys
from pathlib import Path
from typing import Final, NamedTuple

from dotenv import load_dotenv

from spotdiff import __prog__

from .utils import cerr

_SERVER_CONF_DEFAULT: Final = "serverconfig.json"


class _EnvConf(NamedTuple):
    server_config: Path
    game_config: Path | None


def _validate_file_path(name: str, default: str | None) -> Path | None:
    val = os.getenv(name, default or "")
    if not val.strip():
        return None

    path = Path(val)
    if path.exists() and not path.is_file():
        msg = f"[cyan]{name}[/] is not a file: {val}"
        raise ValueError(msg)

    return path


def get_env_conf() -> _EnvConf:
    """Load `.env` and return the config file locations.

    Missing files are allowed here (the loaders fall back to defaults); only
    paths that exist but are not regular files are setup errors.
    """
    load_dotenv()

    errs: list[str] = []
    server_conf: Path | None = None
    game_conf: Path | None = None

    try:
        server_conf = _validate_file_path("SPOTDIFF_SERVER_CONFIG", _SERVER_CONF_DEFAULT)
    except ValueError as e:
        errs.append(str(e))

    try:
        game_conf = _validate_file_path("SPOTDIFF_GAME_CONFIG", None)
    except ValueError as e:
        errs.append(str(e))

    if errs:
        cerr.print("".join(f"[bold bright_red]{__prog__}: env-error:[/] {e}\n" for e in errs), end="")
        sys.exit(1)

    return _EnvConf(server_config=server_conf or Path(_SERVER_CONF_DEFAULT), game_config=game_conf)
