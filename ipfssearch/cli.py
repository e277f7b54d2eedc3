"""Command line interface."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import config
from .config import ConfigError


def _load(args: argparse.Namespace) -> config.Config:
    cfg = config.get(args.config)
    cfg.check()
    return cfg


def _check(args: argparse.Namespace) -> None:
    _load(args)
    print("Configuration checked.")


def _generate(args: argparse.Namespace) -> None:
    if not args.config:
        raise ConfigError("a configuration file path must be given with -c")
    print(f"Generating default configuration to: {args.config}")
    config.default().write(args.config)


def _dump(args: argparse.Namespace) -> None:
    _load(args).dump()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ipfs-search", description="IPFS search engine.")
    parser.add_argument("-c", "--config", metavar="FILE", default="", help="load configuration from FILE")
    commands = parser.add_subparsers(dest="command")

    cfg = commands.add_parser("config", help="configuration")
    actions = cfg.add_subparsers(dest="action")
    actions.add_parser("generate", help="generate default configuration").set_defaults(func=_generate)
    actions.add_parser("check", help="check configuration").set_defaults(func=_check)
    actions.add_parser("dump", help="dump current configuration to stdout").set_defaults(func=_dump)
    cfg.set_defaults(help_parser=cfg)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line; return the exit status."""
    logging.basicConfig(format="%(message)s", level=logging.INFO)
    parser = _build_parser()
    args = parser.parse_args(argv)

    func = getattr(args, "func", None)
    if func is None:
        getattr(args, "help_parser", parser).print_help()
        return 0

    try:
        func(args)
    except (ConfigError, OSError) as err:
        print(err, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())