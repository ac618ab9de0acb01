from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, ClassVar, Final, Literal, cast, override

from rich.errors import MarkupError
from rich.markup import escape
from rich.traceback import Traceback

from .utils import cerr, cout

if TYPE_CHECKING:
    type LogLvl = Literal[10, 20, 30, 40, 50]


LOG_ABBREV_2_LVL: Final[dict[str, LogLvl]] = {
    "DBG": logging.DEBUG,
    "INF": logging.INFO,
    "WRN": logging.WARNING,
    "ERR": logging.ERROR,
    "CRT": logging.CRITICAL,
}


LOG_LVL_2_COLOR: Final = {
    logging.DEBUG: "green",
    logging.INFO: "cyan",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}


# Anything not listed (third-party loggers) is shown dim
COMPONENT_2_COLOR: Final = {
    "GameSession": "bright_green",
    "CardRegistry": "bright_magenta",
    "ResultSync": "bright_blue",
    "ServerClient": "blue",
    "ReaderBridge": "magenta",
    "Kiosk": "bright_cyan",
    "Dispatcher": "bright_black",
    "Config": "bright_black",
}

_COMPONENT_WIDTH: Final = max(map(len, COMPONENT_2_COLOR))


class RichStyleHandler(logging.Handler):
    """Logging handler with Rich markup support. Each line is tagged with the logger (component) name.

    WARNING and above go to stderr. A message that is not valid markup is
    printed literally. Tracebacks from `Logger.exception()` are
    rendered with Rich instead of being run through the markup parser.
    """

    LVL_2_ABBREV: ClassVar = {v: k for k, v in LOG_ABBREV_2_LVL.items()}

    @override
    def __init__(self) -> None:
        super().__init__()
        self._stdout = cout
        self._stderr = cerr

    @override
    def emit(self, record: logging.LogRecord) -> None:
        lvlno = cast("LogLvl", record.levelno)
        msg = record.getMessage()
        fmted = RichStyleHandler.fmt_msg(msg, lvlno, record.name)
        if fmted is None:
            self.handleError(record)
            return

        cons = self._stderr if record.levelno >= logging.WARNING else self._stdout
        try:
            cons.print(fmted, highlight=False)
        except MarkupError:
            # Message carried text that is not valid markup (e.g. raw reader input)
            cons.print(RichStyleHandler.fmt_msg(escape(msg), lvlno, record.name), highlight=False)

        if record.exc_info is not None and record.exc_info[1] is not None:
            exc_type, exc, tb = record.exc_info
            cons.print(Traceback.from_exception(exc_type, exc, tb))  # type: ignore[arg-type]

    @classmethod
    def fmt_msg(cls, msg: str, lvlno: LogLvl, component: str) -> str | None:
        try:
            color = LOG_LVL_2_COLOR[lvlno]
            lvl_abbrev = RichStyleHandler.LVL_2_ABBREV[lvlno]
        except KeyError:
            return None

        time_str = time.strftime("%X")
        comp_color = COMPONENT_2_COLOR.get(component, "dim")
        msg = f"[{color}]{msg}[/]" if lvlno >= logging.WARNING else msg
        return (
            f"[dim][{color}][{lvl_abbrev}][/] [white]({time_str})[/][/] "
            f"[{comp_color}]{component:<{_COMPONENT_WIDTH}}[/] [dim]::[/] {msg}"
        )


def init_logging(lvl: LogLvl) -> None:
    """Route every logger through `RichStyleHandler`.

    Args:
        lvl: Logging level
    """
    logging.basicConfig(level=lvl, handlers=[RichStyleHandler()], force=True)
