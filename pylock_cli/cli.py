"""Command line surface for pylock."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Sequence

from pylock_core.config import SettingsResolver
from pylock_core.errors import PylockError
from pylock_core.paths import UserDirs
from pylock_core.pipeline import LockResult, lock_environment

CLI_VERSION = "0.1.0"
LOG_FORMAT = "%(levelname)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pylock",
        description="Write a deterministic pylock.toml for the active virtual environment.",
    )
    parser.add_argument("--version", action="version", version=f"pylock v{CLI_VERSION}")
    parser.add_argument(
        "output",
        nargs="?",
        help="lock file to write (default: pylock.toml, or the configured output)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="do not write; fail if the lock file differs from the environment",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="NAME",
        help="leave a package out of the lock file (repeatable)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="count", default=0, help="more logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="only log errors")
    return parser


def _log_level_override(args: argparse.Namespace) -> str | None:
    if args.quiet:
        return "ERROR"
    if args.verbose >= 2:
        return "DEBUG"
    if args.verbose == 1:
        return "INFO"
    return None


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("pylock_core").setLevel(level)


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    start_dir: Path | str | None = None,
    user_dirs: UserDirs | None = None,
) -> int:
    """Resolve settings, lock the active environment and report the outcome."""

    parser = build_parser()
    args = parser.parse_args(argv)
    environ = os.environ if environ is None else environ
    start = Path(start_dir) if start_dir is not None else None

    resolver = SettingsResolver(
        user_dirs=user_dirs,
        cli_overrides={
            "output": args.output,
            "exclude": list(args.exclude),
            "log_level": _log_level_override(args),
        },
        env=environ,
    )
    settings = resolver.resolve(start)
    _configure_logging(settings.log_level)

    output = Path(settings.output)
    if start is not None and not output.is_absolute():
        output = start / output

    try:
        result = lock_environment(
            environ,
            output,
            exclude=settings.exclude,
            check=args.check,
        )
    except PylockError as exc:
        print(f"[pylock] error: {exc}", file=sys.stderr)
        return 1

    if args.check:
        return _report_check(result)
    _report_written(result)
    return 0


def _report_written(result: LockResult) -> None:
    count = len(result.document.packages)
    noun = "package" if count == 1 else "packages"
    print(f"[pylock] wrote {result.path} ({count} {noun})")
    if result.inventory.skipped:
        origins = ", ".join(entry.origin for entry in result.inventory.skipped)
        print(f"[pylock] skipped unreadable metadata: {origins}", file=sys.stderr)


def _report_check(result: LockResult) -> int:
    check = result.check
    if check is None or check.ok:
        print(f"[pylock] {result.path} is up to date")
        return 0
    if check.missing:
        print(f"[pylock] {result.path} does not exist", file=sys.stderr)
        return 1
    print(f"[pylock] {result.path} is out of date", file=sys.stderr)
    sys.stderr.write("".join(check.diff))
    return 1
