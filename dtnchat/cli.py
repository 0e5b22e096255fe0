from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace

from . import __version__
from .config import ChatRuntimeConfig, apply_config_data, apply_environment, load_toml
from .errors import FatalStartup, InvalidDuration
from .logging_config import configure_logging
from .paths import default_config_path


def _build_arg_parser(prog: str, description: str) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=prog, description=description)

    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "--config",
        default=None,
        help=f"Path to a TOML config file (default: {default_config_path()} if it exists)",
    )
    p.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="Local web port (default = 3000, or $DTN_WEB_PORT)",
    )
    p.add_argument("-6", "--ipv6", action="store_true", help="Use IPv6")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    p.add_argument(
        "--mode",
        choices=("bundle", "data"),
        default=None,
        help="Daemon transmission mode (default: bundle)",
    )
    p.add_argument(
        "--node-id",
        default=None,
        help="Local node id (skips asking the daemon), e.g. dtn://node1/ or ipn:23.0",
    )
    p.add_argument(
        "--lifetime", default=None, help="Bundle lifetime, e.g. 1h or '30m 10s'"
    )
    p.add_argument(
        "--no-compress",
        action="store_true",
        help="Send message bodies uncompressed",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )
    return p


def build_config(args: argparse.Namespace) -> ChatRuntimeConfig:
    cfg = ChatRuntimeConfig()

    config_path = args.config
    if config_path is None and default_config_path().exists():
        config_path = str(default_config_path())
    if config_path:
        if not os.path.exists(os.path.expanduser(config_path)):
            raise FatalStartup(f"config file not found: {config_path}")
        cfg = apply_config_data(cfg, load_toml(config_path))
        cfg = replace(cfg, config_path=config_path)

    cfg = apply_environment(cfg)

    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.ipv6:
        cfg = replace(cfg, ipv6=True, host=None)
    if args.verbose:
        cfg = replace(cfg, verbose=True)
    if args.mode is not None:
        cfg = replace(cfg, mode=args.mode)
    if args.node_id is not None:
        cfg = replace(cfg, node_id=args.node_id or None)
    if args.lifetime is not None:
        cfg = apply_config_data(cfg, {"lifetime_s": args.lifetime})
    if args.no_compress:
        cfg = replace(cfg, compress=False)

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def _prepare(prog: str, description: str, argv: list[str] | None) -> ChatRuntimeConfig:
    args = _build_arg_parser(prog, description).parse_args(
        sys.argv[1:] if argv is None else argv
    )
    try:
        cfg = build_config(args)
    except (FatalStartup, InvalidDuration, ValueError, OSError) as e:
        print(f"[!] {e}", file=sys.stderr)
        raise SystemExit(2)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)
    return cfg


def main(argv: list[str] | None = None) -> None:
    from .client import ChatClient

    cfg = _prepare(
        "dtnchat", "A simple Bundle Protocol 7 Delay Tolerant Networking SMS Chat", argv
    )
    chat = ChatClient(cfg)
    try:
        chat.connect()
        status = chat.run()
    except FatalStartup as e:
        logging.getLogger("dtnchat").debug("Startup failed", exc_info=True)
        print(f"[!] {e}", file=sys.stderr)
        status = 1
    finally:
        chat.close()
    raise SystemExit(status)


def eliza_main(argv: list[str] | None = None) -> None:
    from .bot import ElizaBot

    cfg = _prepare("dtneliza", "Eliza Bot for dtnchat / SMS", argv)
    bot = ElizaBot(cfg)
    try:
        bot.connect()
        status = bot.run_forever()
    except FatalStartup as e:
        logging.getLogger("dtnchat").debug("Startup failed", exc_info=True)
        print(f"[!] {e}", file=sys.stderr)
        status = 1
    finally:
        bot.close()
    raise SystemExit(status)


if __name__ == "__main__":
    main()
