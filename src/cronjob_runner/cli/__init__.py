"""CLI module - Command-line interface components."""

from cronjob_runner.cli.main import main
from cronjob_runner.cli.parser import build_parser, parse_arguments

__all__ = [
    "build_parser",
    "main",
    "parse_arguments",
]
