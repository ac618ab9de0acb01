from typing import Final

from .argparser import get_cli_args
from .env import get_env_conf
from .logging_conf import init_logging
from .utils import cerr, cout

__all__: Final = ["cerr", "cout", "get_cli_args", "get_env_conf", "init_logging"]
