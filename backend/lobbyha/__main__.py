"""CLI entry point: python -m lobbyha"""

from __future__ import annotations

import argparse
import logging


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"port must be between 1 and 65535, got {port}")
    return port


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="lobbyha",
        description="LobbyHA: guest-facing Home Assistant proxy with PIN gate and entity allow-list",
    )
    parser.add_argument(
        "--port", "-p", type=_port, default=None,
        help="Port to listen on (overrides saved and environment settings)",
    )
    parser.add_argument(
        "--data-dir", "-d", default=None,
        help="Directory for settings.json and admin_auth.json (default: /data or ./data)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    import uvicorn

    from . import config, store
    from .settings import resolve_data_dir, settings

    settings.data_dir = resolve_data_dir(args.data_dir or settings.data_dir)
    store.migrate_file_config()
    config.set_cli_port(args.port)
    cfg = config.load_config()
    config.apply_log_level(cfg.log_level)

    from .main import app

    uvicorn.run(app, host="0.0.0.0", port=cfg.port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
