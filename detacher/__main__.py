"""Entry point for the detacher package.

Usage::

    python -m detacher [--config FILE]                  # milter: stdin → stdout
    python -m detacher --mode server [--config FILE]    # serve detached files
"""

from __future__ import annotations

import argparse
import sys

import structlog

from .config import load_config
from .errors import DetacherError
from .hashing import resolve_algorithm
from .logging import setup_logging

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="detacher",
        description=(
            "Remove large attachments from email messages and make them "
            "available via a web server."
        ),
    )
    parser.add_argument(
        "--mode",
        choices=("milter", "server"),
        default="milter",
        help="milter: filter a message from stdin to stdout (default); server: serve detached files",
    )
    parser.add_argument("--config", help="JSON configuration file")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        config = load_config(args.config)
        setup_logging(json=config.log_json, level=config.log_level)
        resolve_algorithm(config.common.alg)

        if args.mode == "server":
            from .server import serve

            serve(config)
        else:
            from .milter import run_milter

            run_milter(config, sys.stdin.buffer, sys.stdout.buffer)
    except (DetacherError, OSError) as exc:
        logger.error(f"{args.mode}_failed", error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
