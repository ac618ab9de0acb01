import contextlib
import sys

from spotdiff import __prog__
from spotdiff.config import load_game_config, load_server_config
from spotdiff.errors import ConfigError
from spotdiff.kiosk import Kiosk
from spotdiff.reader import ReaderBridge

from .misc import cerr, get_cli_args, get_env_conf, init_logging


def main() -> None:
    args = get_cli_args()
    init_logging(args.log_level)
    env = get_env_conf()

    try:
        game_config = load_game_config(env.game_config)
    except ConfigError as e:
        cerr.print(f"[bold bright_red]{__prog__}: setup-error:[/] {e}")
        sys.exit(1)

    kiosk = Kiosk(game_config=game_config, server_config=load_server_config(env.server_config))
    bridge = None
    if args.serial_port is not None:
        bridge = ReaderBridge(
            serial_port=args.serial_port,
            baud_rate=args.baud_rate,
            dispatcher=kiosk.dispatcher,
            registry=kiosk.registry,
        )

    try:
        with contextlib.suppress(KeyboardInterrupt):
            if bridge is not None:
                bridge.start()
            kiosk.run(fps=args.fps)
    finally:
        if bridge is not None:
            bridge.stop()
        kiosk.close()


if __name__ == "__main__":
    main()
