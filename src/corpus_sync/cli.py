"""Command line front end: ``corpus-sync sync|status|diff|update``."""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from corpus_sync import __version__
from corpus_sync.config import Config, load_config
from corpus_sync.config_loader import load_hierarchical_config
from corpus_sync.config_schema import build_config, to_fallbacks
from corpus_sync.errors import CorpusSyncError, TargetError
from corpus_sync.file_handler import validate_target_directory
from corpus_sync.logger import setup_logging
from corpus_sync.sync import reporter
from corpus_sync.sync.workflow import CorpusWorkflow

logger = logging.getLogger(__name__)

_EPILOG = """
Examples:
  # Sync the core corpus plus the python category into ./docs/corpus
  corpus-sync sync -c python --remote https://github.com/org/corpus.git

  # Show local edits since the last sync (no network access)
  corpus-sync status

  # Preview upstream changes with text diffs
  corpus-sync diff --verbose

  # Apply upstream changes, previewing first
  corpus-sync update --dry-run
  corpus-sync update

Configuration is read from CLI flags, CORPUS_SYNC_* environment variables
(a .env file is loaded first), .corpus_sync/config.yml in the project and
~/.config/corpus_sync/config.yml, in that order of precedence.
"""


def _split_categories(values: list[str] | None) -> list[str] | None:
    if not values:
        return None
    names: list[str] = []
    for value in values:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names or None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per command."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-d",
        "--directory",
        default=".",
        help="Project directory (default: current directory)",
    )
    common.add_argument(
        "-c",
        "--categories",
        action="append",
        metavar="NAMES",
        help="Comma-separated categories; may be repeated (core is always included)",
    )
    common.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON on stdout",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output and DEBUG logging",
    )
    common.add_argument(
        "--cache-dir",
        help="Override cache root (takes precedence over CORPUS_SYNC_CACHE_DIR)",
    )
    common.add_argument(
        "--remote",
        help="Override upstream URL (takes precedence over CORPUS_SYNC_REMOTE_URL)",
    )
    common.add_argument(
        "--ref",
        help="Branch, tag or commit to sync (takes precedence over CORPUS_SYNC_VERSION)",
    )
    common.add_argument("--log-file", help="Also append log records to this file")
    common.add_argument(
        "--debug-format",
        choices=("text", "json"),
        default="text",
        help="Log record format (default: text)",
    )

    parser = argparse.ArgumentParser(
        prog="corpus-sync",
        description="corpus-sync - distribute a version-controlled document corpus into projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"corpus-sync version {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser(
        "sync", parents=[common], help="Materialise the corpus into the project"
    )
    sync_p.add_argument(
        "--force-fetch",
        "--force",
        dest="force",
        action="store_true",
        help="Fetch even when the cache covers every file",
    )
    sync_p.add_argument(
        "--no-cache", action="store_true", help="Run without the content cache"
    )
    sync_p.add_argument(
        "--stats", action="store_true", help="Show cache statistics"
    )

    sub.add_parser(
        "status", parents=[common], help="Show local changes since the last sync"
    )
    sub.add_parser(
        "diff", parents=[common], help="Show upstream changes since the last sync"
    )

    update_p = sub.add_parser(
        "update", parents=[common], help="Apply upstream changes"
    )
    update_p.add_argument(
        "--dry-run", action="store_true", help="Show the plan without writing"
    )
    update_p.add_argument(
        "--force",
        action="store_true",
        help="Overwrite conflicting local changes with the upstream version",
    )
    return parser


def resolve_config(args: argparse.Namespace, target: Path) -> Config:
    """Merge YAML files, environment and CLI flags into a ``Config``."""
    raw = load_hierarchical_config(target)
    unified = build_config(raw)
    return load_config(
        cache_dir=args.cache_dir,
        remote_url=args.remote,
        version_ref=args.ref,
        categories=_split_categories(args.categories),
        verbose=args.verbose,
        log_file=args.log_file,
        yaml_fallbacks=to_fallbacks(unified),
    )


def _emit(args: argparse.Namespace, data: dict, text: str) -> None:
    if args.json:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def _dispatch(args: argparse.Namespace, config: Config, target: Path) -> int:
    use_cache = not getattr(args, "no_cache", False)
    workflow = CorpusWorkflow.from_config(config, target, use_cache=use_cache)
    categories = _split_categories(args.categories)
    verbose = config.verbose

    match args.command:
        case "sync":
            result = workflow.sync(
                categories or config.categories, force=args.force
            )
            stats = workflow.stats if args.stats else None
            cache_stats = None
            if args.stats and workflow.cache is not None:
                cache_stats = workflow.cache.directory_stats()
            _emit(
                args,
                reporter.sync_result_to_json(result, stats, cache_stats),
                reporter.format_sync_result(
                    result, stats, cache_stats, verbose=verbose
                ),
            )
            return 0 if result.success else 1

        case "status":
            report = workflow.status(categories)
            _emit(
                args,
                reporter.status_to_json(report),
                reporter.format_status(report, verbose=verbose),
            )
            return 0

        case "diff":
            report = workflow.diff(
                categories, with_text=verbose and not args.json
            )
            _emit(
                args,
                reporter.diff_to_json(report),
                reporter.format_diff(report, verbose=verbose),
            )
            return 0

        case "update":
            report = workflow.update(
                categories, dry_run=args.dry_run, force=args.force
            )
            _emit(
                args,
                reporter.update_to_json(report),
                reporter.format_update(report),
            )
            return 1 if report.errors else 0

    raise AssertionError(f"unhandled command {args.command!r}")


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run one command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # .env first, so YAML ${VAR} interpolation can use its values
    load_dotenv()
    setup_logging(args.verbose, args.log_file, args.debug_format)

    try:
        try:
            target = validate_target_directory(args.directory)
        except ValueError as exc:
            raise TargetError(args.directory, str(exc)) from exc

        config = resolve_config(args, target)
        if (
            (config.verbose and not args.verbose)
            or (config.log_file and not args.log_file)
            or config.log_level
        ):
            args.verbose = args.verbose or config.verbose
            setup_logging(
                args.verbose,
                args.log_file or config.log_file,
                args.debug_format,
                level=config.log_level,
            )

        return _dispatch(args, config, target)

    except CorpusSyncError as exc:
        logger.debug("%s failed", args.command, exc_info=True)
        if args.json:
            print(json.dumps(reporter.error_to_json(exc), indent=2, default=str))
        else:
            print(reporter.format_error(exc, verbose=args.verbose), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
