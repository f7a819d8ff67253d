#!/usr/bin/env python3
"""awaitguard/main.py — command-line entry point.

Usage examples
--------------
    # Check a source tree (``check`` is the default command)
    awaitguard src/
    awaitguard check src/ tests/ --format gcc

    # Treat more callables as blocking, run on four threads
    awaitguard check src/ --blocking-path requests.get --jobs 4

    # SARIF for code-scanning upload
    awaitguard check src/ --format sarif -o awaitguard.sarif

    # Show what the type checker keeps alive across awaits
    awaitguard dump-interior app/handlers.py

    # List the available lints, or explain one
    awaitguard list-lints
    awaitguard list-lints --explain may-block

Exit codes
----------
    0   No diagnostics with severity ERROR.
    1   One or more diagnostics with severity ERROR were emitted.
    2   Infrastructure failure (bad configuration, missing path, ...).

``python -m awaitguard`` calls :func:`main` through ``awaitguard/__main__.py``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import tokenize
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from awaitguard import __version__
from awaitguard.config import FORMATS, AwaitGuardConfig, find_config, load_config
from awaitguard.driver import LintRunner, default_store, discover_files
from awaitguard.errors import AwaitGuardError, ConfigError, SourceError
from awaitguard.hir import lower_module
from awaitguard.reporter import Reporter
from awaitguard.trace import write_interior_types

_log = logging.getLogger("awaitguard")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2

COMMANDS = ("check", "dump-interior", "list-lints")
_GLOBAL_FLAGS = ("-v", "-vv", "-vvv", "--verbose")


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``awaitguard`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("awaitguard")
    root.setLevel(level)
    root.handlers[:] = [handler]


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _load_config(args: argparse.Namespace) -> AwaitGuardConfig:
    """Configuration file (explicit or discovered) with CLI flags folded in."""
    path = args.config or find_config()
    config = load_config(path) if path else AwaitGuardConfig()
    return config.with_overrides(
        blocking_paths=args.blocking_path or (),
        disabled=getattr(args, "disable", None) or (),
        suppress=getattr(args, "suppress", None) or (),
        exclude=args.exclude or (),
        format=getattr(args, "format", None),
        jobs=getattr(args, "jobs", None),
    )


def _with_default_command(argv: Sequence[str]) -> List[str]:
    """Insert ``check`` when no command is named."""
    argv = list(argv)
    i = 0
    while i < len(argv) and argv[i] in _GLOBAL_FLAGS:
        i += 1
    if i < len(argv) and argv[i] not in COMMANDS and argv[i] not in ("-h", "--help", "--version"):
        argv.insert(i, "check")
    return argv


# ===========================================================================
# Commands
# ===========================================================================

def cmd_check(args: argparse.Namespace) -> int:
    """Run every enabled lint over the given paths."""
    try:
        config = _load_config(args)
        store = default_store()
        config.apply(store)
        runner = LintRunner(store, config.suppressions(), config.registry())
        results = runner.run_paths(args.paths, jobs=config.jobs, exclude=config.exclude)
    except ConfigError as exc:
        _log.error("configuration error: %s", exc)
        return EXIT_INFRA
    except SourceError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    _log.info("%s", results.summary())
    out = _open_output(args.output)
    try:
        reporter = Reporter(
            fmt=config.format,
            stream=out,
            color=args.color,
            lints=store.lints(),
            tool_version=__version__,
        )
        for filename, text in results.sources.items():
            reporter.add_source(filename, text)
        for diag in results.diagnostics:
            reporter.report(diag)
        stats = reporter.finish()
    finally:
        if out is not sys.stdout:
            out.close()

    return EXIT_ERROR if stats.error else EXIT_OK


def cmd_dump_interior(args: argparse.Namespace) -> int:
    """Print the interior trace of every asynchronous body."""
    try:
        config = _load_config(args)
        files = discover_files(args.paths, config.exclude)
    except AwaitGuardError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    status = EXIT_OK
    modules = []
    for filename in files:
        try:
            with tokenize.open(filename) as fh:
                source = fh.read()
            modules.append(lower_module(source, filename))
        except (OSError, SyntaxError, UnicodeDecodeError, SourceError) as exc:
            _log.error("cannot analyse %s: %s", filename, exc)
            status = EXIT_INFRA

    out = _open_output(args.output)
    try:
        count = write_interior_types(modules, out, config.registry())
    finally:
        if out is not sys.stdout:
            out.close()
    _log.info("%d asynchronous bodies traced", count)
    return status


def cmd_list_lints(args: argparse.Namespace) -> int:
    """List the registered lints, or explain one of them."""
    store = default_store()
    if args.explain:
        lint = store.get_lint(args.explain)
        if lint is None:
            _log.error("unknown lint: %s", args.explain)
            return EXIT_ERROR
        sys.stdout.write(f"{lint.name} ({lint.category.label}, "
                         f"default {lint.default_severity.label})\n\n")
        sys.stdout.write(textwrap.dedent(lint.explanation).strip() + "\n")
        return EXIT_OK

    lints = store.lints()
    width = max((len(lint.name) for lint in lints), default=0)
    for lint in lints:
        sys.stdout.write(f"  {lint.name.ljust(width)}  {lint.category.label:<12} "
                         f"{lint.default_severity.label:<8} {lint.description}\n")
    sys.stdout.write(f"\n{len(lints)} lint(s) available.\n")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="awaitguard",
        description=(
            "awaitguard — find values of blocking types held across\n"
            "suspension points of asynchronous Python code."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              awaitguard src/
              awaitguard check src/ --format gcc --jobs 4
              awaitguard dump-interior app/handlers.py
              awaitguard list-lints --explain may-block
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_source_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "paths",
            nargs="*",
            default=["."],
            metavar="PATH",
            help="Files or directories to check (default: current directory).",
        )
        p.add_argument(
            "-c", "--config",
            default=None,
            metavar="FILE",
            help="Configuration file (default: nearest .awaitguard.sexp).",
        )
        p.add_argument(
            "--blocking-path",
            action="append",
            metavar="DOTTED",
            help="Treat DOTTED (e.g. requests.get) as blocking. Repeatable.",
        )
        p.add_argument(
            "--exclude",
            action="append",
            metavar="GLOB",
            help="Skip files matching GLOB. Repeatable.",
        )
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Check Python sources (default command).",
        description="Run every enabled lint over the given files and directories.",
    )
    _add_source_args(p_check)
    p_check.add_argument(
        "-f", "--format",
        choices=FORMATS,
        default=None,
        help="Output format (default: human).",
    )
    p_check.add_argument(
        "--disable",
        action="append",
        metavar="LINT",
        help="Disable LINT. Repeatable.",
    )
    p_check.add_argument(
        "--suppress",
        action="append",
        metavar="LINT",
        help="Suppress LINT everywhere. Repeatable.",
    )
    p_check.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        metavar="N",
        help="Analyse files on N threads (default: 1).",
    )
    color = p_check.add_mutually_exclusive_group()
    color.add_argument(
        "--color",
        dest="color",
        action="store_true",
        default=None,
        help="Always colour human output.",
    )
    color.add_argument(
        "--no-color",
        dest="color",
        action="store_false",
        help="Never colour human output.",
    )
    p_check.set_defaults(func=cmd_check)

    # --- dump-interior -----------------------------------------------------
    p_dump = subparsers.add_parser(
        "dump-interior",
        help="Dump the values held across suspension points.",
        description=(
            "Print one S-expression per asynchronous body listing every "
            "value the type checker records as held across a suspension point."
        ),
    )
    _add_source_args(p_dump)
    p_dump.set_defaults(func=cmd_dump_interior)

    # --- list-lints --------------------------------------------------------
    p_list = subparsers.add_parser(
        "list-lints",
        help="List available lints.",
    )
    p_list.add_argument(
        "--explain",
        metavar="LINT",
        default=None,
        help="Print the documentation of LINT.",
    )
    p_list.set_defaults(func=cmd_list_lints)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the awaitguard CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(_with_default_command(sys.argv[1:] if argv is None else argv))

    _configure_logging(args.verbose)

    # No command given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
