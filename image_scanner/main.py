import argparse
import logging
import shlex
import signal
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional

from . import config
from .cancellation import CancellationToken
from .config import ScanSettings, load_settings
from .core import ImageScannerApp
from .database.ops import CatalogStore
from .database.schema import init_schema
from .exceptions import ConfigurationError
from .reporting import CatalogReport, format_summary

def setup_logging(log_file: Optional[Path], verbose: bool):
    """Sets up logging to the console and, when given, a log file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)

def parse_args(argv: Optional[List[str]] = None):
    # Shared by every subcommand, so they can follow it: "scan FOLDER --db x"
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--settings", type=Path, default=Path(config.SETTINGS_FILENAME),
                        help=f"JSON settings file (default: ./{config.SETTINGS_FILENAME} if present)")
    common.add_argument("--db", type=Path, default=None, help="Path to the SQLite catalog (overrides settings)")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    p = argparse.ArgumentParser(
        prog="image-scanner",
        description="Image Scanner: incrementally catalog a folder of images. "
                    "Run without arguments for an interactive prompt.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", parents=[common], help="Scan a folder and update the catalog")
    scan.add_argument("folder", type=Path, help="Folder to scan")
    scan.add_argument("-e", "--extensions", default=None,
                      help="Comma-separated extensions to scan (e.g. .png,.jpg)")
    scan.add_argument("--min-size", type=int, default=None, help="Skip files smaller than this (bytes)")
    scan.add_argument("--max-size", type=int, default=None, help="Skip files larger than this (bytes, 0 = no limit)")
    scan.add_argument("--no-subdirs", action="store_true", help="Do not descend into subdirectories")
    scan.add_argument("--batch-size", type=int, default=None, help="Records per database transaction")
    scan.add_argument("--workers", type=int, default=None, help="Parallel hashing/metadata workers")
    scan.add_argument("--summary", action="store_true", help="Print a summary table when done")
    scan.add_argument("--no-progress", action="store_true", help="Disable the progress bar")

    export = sub.add_parser("export", parents=[common], help="Export the catalog to CSV")
    export.add_argument("csv", type=Path, help="Output CSV path")
    export.add_argument("--include-stale", action="store_true", help="Include records displaced from their path")

    sub.add_parser("exit", help="Leave the interactive prompt")

    return p.parse_args(argv)

def build_scan_settings(args, app_settings: config.AppSettings) -> ScanSettings:
    folder = args.folder.resolve()
    if not folder.is_dir():
        raise ConfigurationError(f"The specified folder does not exist: {args.folder}")

    if args.extensions:
        extensions = [e for e in args.extensions.split(",") if e.strip()]
    else:
        extensions = app_settings.extensions
    if not extensions:
        raise ConfigurationError("At least one extension is required.")

    settings = ScanSettings(
        root=folder,
        extensions=extensions,
        recursive=not args.no_subdirs,
        min_size=args.min_size if args.min_size is not None else app_settings.min_size,
        max_size=args.max_size if args.max_size is not None else app_settings.max_size,
        batch_size=args.batch_size if args.batch_size is not None else app_settings.batch_size,
        metadata_fields=app_settings.metadata_fields,
        max_workers=args.workers if args.workers is not None else app_settings.max_workers,
    )

    if settings.min_size < 0 or settings.max_size < 0:
        raise ConfigurationError("Size limits must not be negative.")
    if settings.max_size and settings.max_size < settings.min_size:
        raise ConfigurationError("--max-size must be greater than or equal to --min-size.")
    if settings.batch_size < 1:
        raise ConfigurationError("--batch-size must be at least 1.")
    if settings.max_workers < 1:
        raise ConfigurationError("--workers must be at least 1.")
    return settings

def run_scan(args, app_settings: config.AppSettings, db_path: Path) -> int:
    settings = build_scan_settings(args, app_settings)

    token = CancellationToken()

    def _on_sigint(signum, frame):
        logging.warning("Cancellation request received. Attempting to stop gracefully...")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        app = ImageScannerApp(db_path)
        result = app.scan(settings, token, progress=not args.no_progress)
    finally:
        signal.signal(signal.SIGINT, previous)

    if args.summary or not result.succeeded:
        print(format_summary(result))
    return result.exit_code

def run_export(args, db_path: Path) -> int:
    if not db_path.exists():
        logging.error(f"Database not found at {db_path}. Nothing to export.")
        return 1

    conn = sqlite3.connect(db_path)
    try:
        init_schema(conn)
        CatalogReport(CatalogStore(conn)).export_csv(args.csv, include_stale=args.include_stale)
    finally:
        conn.close()
    return 0

def interactive() -> int:
    """
    Prompt loop used when no arguments are given. Each line is run as if it
    had been passed on the command line; "exit" (or EOF) leaves.
    """
    print("Welcome to Image Scanner!")
    print("Type 'help' for a list of commands or '<command> --help' for command-specific help.")
    print("Type 'exit' to close the application.")
    while True:
        try:
            line = input("> ")
        except EOFError:
            break

        try:
            words = shlex.split(line)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            continue
        if not words:
            continue

        if words[0].lower() == "exit":
            break
        if words[0].lower() == "help":
            words = [words[1], "--help"] if len(words) > 1 else ["--help"]

        try:
            main(words)
        except SystemExit:
            # argparse exits on --help and on usage errors
            pass

    print("Exiting application...")
    return 0

def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        return interactive()

    args = parse_args(argv)
    if args.command == "exit":
        print("Exiting application...")
        return 0

    try:
        app_settings = load_settings(args.settings)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    db_path = (args.db or app_settings.db_path).resolve()
    setup_logging(app_settings.log_path, args.verbose)
    logging.info("=== Image Scanner Started ===")

    try:
        if args.command == "scan":
            return run_scan(args, app_settings, db_path)
        return run_export(args, db_path)
    except ConfigurationError as e:
        logging.error(str(e))
        return 2
    except Exception:
        logging.exception("Fatal error.")
        return 1

if __name__ == "__main__":
    sys.exit(main())
