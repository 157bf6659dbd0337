"""CLI entry point for ledgerlink.

Commands:
    ledgerlink detect FILE                         Print the statement dialect
    ledgerlink preview FILE [--user USER]          Parse stats, skipped rows, duplicates
    ledgerlink import FILE --user USER [--account NAME]   Import a statement
    ledgerlink undo BATCH_ID --user USER           Remove an import, restore balances
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ledgerlink.config import (
    config_dir_from_env,
    db_path_from_env,
    log_level_from_env,
    migrations_dir_from_env,
)

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on LEDGERLINK_LOG_LEVEL env var."""
    level = log_level_from_env()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from config directory."""
    from ledgerlink.config import Config

    return Config(config_dir=config_dir_from_env())


def _get_repo():
    """Create a migrated Repository connected to the configured database."""
    from ledgerlink.database.repository import Repository

    repo = Repository(db_path=db_path_from_env())
    repo.apply_migrations(migrations_dir_from_env())
    return repo


def _read_file(path: Path) -> str | None:
    from ledgerlink.parsers.base import read_statement

    path = path.resolve()
    if not path.exists():
        print(f"Error: File not found: {path}")
        return None
    return read_statement(path)


def cmd_detect(args: argparse.Namespace) -> int:
    """Print the detected dialect of a statement."""
    from ledgerlink.parsers.detect import UNKNOWN, detect_format

    text = _read_file(args.file)
    if text is None:
        return 1
    dialect = detect_format(text)
    print(dialect)
    return 0 if dialect != UNKNOWN else 1


async def _preview(args: argparse.Namespace) -> int:
    from ledgerlink.categorize.categorizer import RuleCategorizer
    from ledgerlink.database.store import RepositoryStore
    from ledgerlink.importer.pipeline import ImportPipeline
    from ledgerlink.importer.session import prepare_import

    text = _read_file(args.file)
    if text is None:
        return 1
    config = _get_config()
    categorizer = RuleCategorizer(config)
    session = await prepare_import(text, categorizer, account=args.account)

    print(f"Format: {session.dialect}")
    print(
        f"Rows: {session.total_rows} total, {session.parsed_rows} parsed,"
        f" {session.skipped_rows} skipped"
    )
    for skipped in session.skipped_details:
        print(f"  line {skipped.line}: {skipped.reason}")
    if session.final_balance is not None:
        print(f"Closing balance: {session.final_balance / 100:.2f} {session.currency}")

    if args.user:
        repo = _get_repo()
        try:
            pipeline = ImportPipeline(RepositoryStore(repo), categorizer, config)
            check = await pipeline.precheck(args.user, session.transactions)
        finally:
            repo.close()
        print(
            f"New: {check.unique_count}, duplicates: {check.duplicate_count},"
            f" zero-amount: {check.zero_amount_count}"
        )
    return 0


async def _import(args: argparse.Namespace) -> int:
    from ledgerlink.categorize.categorizer import RuleCategorizer
    from ledgerlink.database.store import RepositoryStore
    from ledgerlink.importer.pipeline import ImportPipeline
    from ledgerlink.importer.session import prepare_import

    text = _read_file(args.file)
    if text is None:
        return 1
    config = _get_config()
    categorizer = RuleCategorizer(config)
    session = await prepare_import(text, categorizer, account=args.account)

    repo = _get_repo()
    try:
        pipeline = ImportPipeline(RepositoryStore(repo), categorizer, config)
        summary = await pipeline.run_import(
            args.user, session.transactions, session.source,
            account=args.account,
            final_balance=session.final_balance,
            currency=session.currency,
        )
    finally:
        repo.close()

    print(
        f"{args.file.name}: imported={summary.imported_count},"
        f" skipped={summary.skipped_count + session.skipped_rows},"
        f" transfers={summary.linked_pair_count}"
    )
    if summary.batch_id:
        print(f"Batch: {summary.batch_id}")
    if summary.failed_links:
        print(f"Warning: {summary.failed_links} transfer link(s) failed")
    return 0


async def _undo(args: argparse.Namespace) -> int:
    from ledgerlink.categorize.categorizer import RuleCategorizer
    from ledgerlink.database.store import RepositoryStore
    from ledgerlink.importer.pipeline import ImportPipeline

    config = _get_config()
    repo = _get_repo()
    try:
        pipeline = ImportPipeline(RepositoryStore(repo), RuleCategorizer(config), config)
        deleted = await pipeline.undo_import(args.user, args.batch_id)
    finally:
        repo.close()
    print(f"Removed {deleted} transactions from batch {args.batch_id}")
    return 0


def _run(coro_fn):
    """Wrap an async command: one-line error message and exit code 1 on failure.

    CsvFormatError is a ValueError, so malformed statements land here too.
    """

    def handler(args: argparse.Namespace) -> int:
        try:
            return asyncio.run(coro_fn(args))
        except (FileNotFoundError, LookupError, ValueError) as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error: {e}")
            return 1

    handler.__doc__ = coro_fn.__doc__
    return handler


cmd_preview = _run(_preview)
cmd_import = _run(_import)
cmd_undo = _run(_undo)


_COMMANDS = {
    "detect": cmd_detect,
    "preview": cmd_preview,
    "import": cmd_import,
    "undo": cmd_undo,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="ledgerlink",
        description="Bank statement import and reconciliation",
    )
    subparsers = parser.add_subparsers(dest="command")

    # detect
    detect_p = subparsers.add_parser("detect", help="Print the statement format")
    detect_p.add_argument("file", type=Path, help="Statement CSV file")

    # preview
    preview_p = subparsers.add_parser("preview", help="Parse a statement without importing")
    preview_p.add_argument("file", type=Path, help="Statement CSV file")
    preview_p.add_argument("--user", help="Also count duplicates against this user's history")
    preview_p.add_argument("--account", help="Account label for the statement")

    # import
    import_p = subparsers.add_parser("import", help="Import a statement")
    import_p.add_argument("file", type=Path, help="Statement CSV file")
    import_p.add_argument("--user", required=True, help="User ID to import for")
    import_p.add_argument("--account", help="Account label (AIB statements)")

    # undo
    undo_p = subparsers.add_parser("undo", help="Undo an import batch")
    undo_p.add_argument("batch_id", help="Batch ID printed by import")
    undo_p.add_argument("--user", required=True, help="User ID the batch belongs to")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
