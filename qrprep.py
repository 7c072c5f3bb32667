#!/usr/bin/env python3
"""
Command line front end for the barcode image preprocessor.

Usage:
    qrprep inspect <files...>                 # Header-only size and memory estimates
    qrprep inspect <files...> --json          # Same, as JSON on stdout
    qrprep process <files...> -o out/         # Resize, denoise and enhance into out/
    qrprep process <files...> -o out/ --report run.json
"""

import argparse
import logging
import sys

from logging_utils import configure_logging, add_logging_args
from cli.inspect import add_inspect_subparser
from cli.process import add_process_subparser

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qrprep",
        description="Condition images for barcode and QR code detection",
    )
    add_logging_args(parser)
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_inspect_subparser(subparsers)
    add_process_subparser(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.verbose, args.quiet)

    cmd = getattr(args, "_cmd", None)
    if args.command is None or cmd is None:
        parser.print_help()
        return 1
    return cmd(args)


if __name__ == "__main__":
    sys.exit(main())
