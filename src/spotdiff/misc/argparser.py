from __future__ import annotations

from argparse import ArgumentParser
from typing import TYPE_CHECKING, NamedTuple, cast

from rich_argparse import RichHelpFormatter

from .logging_conf import LOG_ABBREV_2_LVL, LOG_LVL_2_COLOR

if TYPE_CHECKING:
    from .logging_conf import LogLvl

_FPS_DEFAULT = 30


def _mk_parser() -> ArgumentParser:
    RichHelpFormatter.usage_markup = True
    RichHelpFormatter.styles.update(
        {
            "argparse.args": "cyan",
            "argparse.groups": "green bold",
            "argparse.metavar": "dim cyan",
            "argparse.usage": "dim cyan",
            "argparse.prog": "cyan bold",
        },
    )

    parser = ArgumentParser(
        description="Spot-the-differences kiosk with NFC score sync",
        formatter_class=RichHelpFormatter,
        usage="%(prog)s [cyan]\\[-s [dim]P[/]] \\[options][/]",
    )

    arg = parser.add_argument

    arg(
        "-s",
        "--serial-port",
        default=None,
        help="NFC reader serial port (e.g. [cyan]/dev/ttyUSB0[/]); omit to play without a reader",
        metavar="P",
    )
    arg(
        "-b",
        "--baud",
        type=int,
        default=115200,
        help="reader baud rate (default: [yellow]115200[/])",
        dest="baud_rate",
        metavar="RATE",
    )
    arg(
        "--fps",
        type=int,
        default=_FPS_DEFAULT,
        help=f"game loop frames per second (default: [yellow]{_FPS_DEFAULT}[/])",
        metavar="N",
    )

    log_lvl_choices = ", ".join(
        f"[{clr}]{abbr}[/]" for abbr, clr in zip(LOG_ABBREV_2_LVL, LOG_LVL_2_COLOR.values(), strict=True)
    )

    arg(
        "-l",
        "--log-level",
        type=str,
        default="INF",
        help=f"base logging level (default: [yellow]INF[/])\t[{log_lvl_choices}]",
        choices=LOG_ABBREV_2_LVL,
        dest="log_level",
        metavar="L",
    )
    return parser


class _Args(NamedTuple):
    serial_port: str | None
    baud_rate: int
    fps: int
    log_level: LogLvl


def get_cli_args(argv: list[str] | None = None) -> _Args:
    """Create & return parsed arguments."""

    parser = _mk_parser()
    args = parser.parse_args(argv)

    if args.fps <= 0:
        parser.error("--fps must be positive")

    return _Args(
        serial_port=args.serial_port,
        baud_rate=args.baud_rate,
        fps=args.fps,
        log_level=LOG_ABBREV_2_LVL[cast("str", args.log_level)],
    )
