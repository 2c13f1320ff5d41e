from __future__ import annotations

import argparse
import sys
from typing import Sequence

from promtopo.cli.discover import (
    discover_command,
    register_discover_parsers,
    validate_command,
)
from promtopo.config import get_settings
from promtopo.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promtopo",
        description="Map Prometheus metrics to a stitchable topology",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: PROMTOPO_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command")
    register_discover_parsers(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or get_settings().log_level)

    if args.command == "validate":
        sys.exit(validate_command(
            config_file=args.config_file,
            prometheus_url=args.prometheus_url,
        ))

    if args.command == "discover":
        sys.exit(discover_command(
            config_file=args.config_file,
            output_format=args.output_format,
            output_file=args.output_file,
            scope=args.scope,
            prometheus_url=args.prometheus_url,
        ))

    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
