"""CLI/bootstrap helpers for the journal search application."""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from journal_search.action_messages import build_actionable_error
from journal_search.config import get_journals_path, load_config
from journal_search.journals import derive_issns, filter_journals, load_journals, unique_fields
from journal_search.models import ABS_RANKS, CONFIG_APP_NAME, FilterState, Journal, UserConfig

logger = logging.getLogger(__name__)


def _build_filter(args: argparse.Namespace) -> FilterState:
    """Translate filter flags into the initial journal filter."""
    return FilterState(
        fields=set(args.field or ()),
        ranks=set(args.rank or ()),
        ft50=bool(args.ft50),
        utd24=bool(args.utd24),
    )


def _resolve_journals(args: argparse.Namespace, config: UserConfig) -> list[Journal] | int:
    """Load the journal dataset from --journals, config, or the bundled file."""
    if args.journals is not None:
        path = args.journals.expanduser().resolve()
        if not path.exists():
            print(f"Error: {path} not found", file=sys.stderr)
            return 1
        if path.is_dir():
            print(f"Error: {path} is a directory, not a file", file=sys.stderr)
            return 1
    else:
        path = get_journals_path(config)

    journals = load_journals(path)
    if not journals:
        print(
            build_actionable_error(
                "load the journal list",
                why=f"{path or 'the bundled dataset'} contained no readable journals",
                next_step="pass --journals with a JSON array of journal objects",
            ),
            file=sys.stderr,
        )
        return 1
    return journals


def _print_fields(journals: list[Journal]) -> None:
    for name in unique_fields(journals):
        print(name)


def _print_issns(journals: list[Journal], state: FilterState) -> int:
    issns = derive_issns(filter_journals(journals, state))
    if not issns:
        print(
            build_actionable_error(
                "list ISSNs",
                why="no journals match the selected filters",
                next_step="relax --field/--rank/--ft50/--utd24",
            ),
            file=sys.stderr,
        )
        return 1
    for issn in issns:
        print(issn)
    return 0


def _configure_logging(debug: bool) -> None:
    """Configure logging. When debug=True, logs to file at DEBUG level."""
    if not debug:
        # Default: suppress all logging (TUI captures stderr)
        logging.disable(logging.CRITICAL)
        return

    log_dir = Path(user_config_dir(CONFIG_APP_NAME))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "debug.log"

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG)


def _configure_color_mode(color_mode: str) -> None:
    """Configure environment hints for terminal color behavior."""
    if color_mode == "never":
        os.environ["NO_COLOR"] = "1"
        os.environ.pop("FORCE_COLOR", None)
        return
    if color_mode == "always":
        os.environ["FORCE_COLOR"] = "1"
        os.environ.pop("NO_COLOR", None)
        return
    os.environ.pop("FORCE_COLOR", None)


def _validate_interactive_tty() -> bool:
    """Return True when stdin/stdout are interactive terminals."""
    return bool(sys.stdin.isatty() and sys.stdout.isatty())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search OpenAlex within FT50, UTD24 and ABS-ranked journals"
    )
    parser.add_argument(
        "--journals",
        type=Path,
        default=None,
        help="Journal list JSON file (overrides journals_path in config)",
    )
    parser.add_argument(
        "--field",
        action="append",
        metavar="LABEL",
        help="Preselect a research field; repeat for several",
    )
    parser.add_argument(
        "--rank",
        action="append",
        choices=ABS_RANKS,
        help="Preselect an ABS rank tier; repeat for several",
    )
    parser.add_argument("--ft50", action="store_true", help="Preselect FT50 journals")
    parser.add_argument("--utd24", action="store_true", help="Preselect UTD24 journals")
    parser.add_argument(
        "--list-fields",
        action="store_true",
        help="Print the research fields in the journal list and exit",
    )
    parser.add_argument(
        "--list-issns",
        action="store_true",
        help="Print the ISSNs matching the filter flags and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to file (~/.config/openalex-journal-search/debug.log)",
    )
    parser.add_argument(
        "--color",
        choices=["auto", "always", "never"],
        default="auto",
        help="Color output mode for terminal UI (default: auto)",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable terminal colors (equivalent to --color never)",
    )
    return parser


def main(
    argv: list[str] | None = None,
    *,
    load_config_fn: Callable[[], UserConfig] = load_config,
    resolve_journals_fn: Callable[
        [argparse.Namespace, UserConfig], list[Journal] | int
    ] = _resolve_journals,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    configure_color_mode_fn: Callable[[str], None] = _configure_color_mode,
    validate_interactive_tty_fn: Callable[[], bool] = _validate_interactive_tty,
    app_factory: Callable[..., Any] | None = None,
) -> int:
    """Main entry point. Returns exit code."""
    args = build_parser().parse_args(argv)
    if args.list_fields and args.list_issns:
        print("Error: --list-fields cannot be combined with --list-issns", file=sys.stderr)
        return 1

    color_mode = "never" if args.no_color else args.color
    configure_color_mode_fn(color_mode)
    configure_logging_fn(args.debug)
    logger.debug("journal-search starting, cwd=%s", Path.cwd())

    config = load_config_fn()

    result = resolve_journals_fn(args, config)
    if isinstance(result, int):
        return result
    journals = result
    initial_filter = _build_filter(args)

    if args.list_fields:
        _print_fields(journals)
        return 0
    if args.list_issns:
        return _print_issns(journals, initial_filter)

    if not validate_interactive_tty_fn():
        print(
            "Error: journal-search requires an interactive TTY for the full UI.",
            file=sys.stderr,
        )
        print("Next steps:", file=sys.stderr)
        print("  - Run journal-search directly in a terminal session", file=sys.stderr)
        print("  - Use --list-fields or --list-issns for non-interactive output", file=sys.stderr)
        print("  - Use --help for command documentation", file=sys.stderr)
        return 2

    if app_factory is None:
        from journal_search.app import JournalSearchApp as _JournalSearchApp

        app_factory = _JournalSearchApp

    app = app_factory(journals, config=config, initial_filter=initial_filter)
    app.run()
    return 0


__all__ = [
    "_build_filter",
    "_configure_color_mode",
    "_configure_logging",
    "_print_issns",
    "_resolve_journals",
    "_validate_interactive_tty",
    "build_parser",
    "main",
]
