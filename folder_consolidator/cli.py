"""Command-line interface for folder consolidator."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from tqdm import tqdm

from .access import FolderAccessManager
from .exceptions import ConsolidationError
from .history import HistoryStore
from .merger import format_size, is_within
from .models import MergeResult, RunState, RunStatus
from .session import (
    DEFAULT_ARCHIVE_NAME,
    DEFAULT_FOLDER_NAME,
    ConsolidationRunner,
    ConsolidationSession,
)

DEFAULT_HISTORY_DB = Path("consolidation_history.db")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="folder-consolidator",
        description="Merge or compress several folders in one go.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s merge photos1 photos2 --dest /backup --name "All Photos"
  %(prog)s compress project docs --dest /archives --name project.zip
  %(prog)s history --limit 5
        """
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    merge = subparsers.add_parser("merge", help="Merge folders into one destination folder")
    merge.add_argument("sources", type=Path, nargs="+", help="Source folders")
    merge.add_argument("--dest", type=Path, required=True, help="Destination folder")
    merge.add_argument(
        "--name",
        default=DEFAULT_FOLDER_NAME,
        help=f"Name of the merged folder inside --dest (default: {DEFAULT_FOLDER_NAME})"
    )
    merge.add_argument(
        "--delete-originals",
        action="store_true",
        help="Delete the source folders after a successful merge"
    )
    merge.add_argument(
        "--replace",
        action="store_true",
        help="Remove an existing merged folder before merging"
    )
    merge.add_argument(
        "--verify",
        action="store_true",
        help="Compare xxhash digests of every copied file"
    )
    merge.add_argument(
        "--history",
        type=Path,
        default=DEFAULT_HISTORY_DB,
        help=f"Path to the history database (default: {DEFAULT_HISTORY_DB})"
    )

    compress = subparsers.add_parser("compress", help="Compress folders into one zip archive")
    compress.add_argument("sources", type=Path, nargs="+", help="Source folders")
    compress.add_argument("--dest", type=Path, required=True, help="Folder that receives the archive")
    compress.add_argument(
        "--name",
        default=DEFAULT_ARCHIVE_NAME,
        help=f"Archive file name (default: {DEFAULT_ARCHIVE_NAME})"
    )
    compress.add_argument(
        "--delete-originals",
        action="store_true",
        help="Delete the source folders after a successful compress"
    )

    history = subparsers.add_parser("history", help="Show past merges, most recent first")
    history.add_argument(
        "--history",
        type=Path,
        default=DEFAULT_HISTORY_DB,
        help=f"Path to the history database (default: {DEFAULT_HISTORY_DB})"
    )
    history.add_argument("--limit", "-n", type=int, default=None, help="Show at most N entries")

    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments."""
    for source in args.sources:
        if not source.exists():
            print(f"Error: Source folder does not exist: {source}", file=sys.stderr)
            sys.exit(1)
        if not source.is_dir():
            print(f"Error: Source is not a directory: {source}", file=sys.stderr)
            sys.exit(1)
    if args.dest.exists() and not args.dest.is_dir():
        print(f"Error: Destination is not a directory: {args.dest}", file=sys.stderr)
        sys.exit(1)
    output = args.dest / args.name
    for source in args.sources:
        if is_within(output, source) or is_within(source, output):
            print(f"Error: Source and destination overlap: {source}", file=sys.stderr)
            sys.exit(1)


def build_session(args: argparse.Namespace) -> tuple[ConsolidationSession, FolderAccessManager]:
    """Select the folders named on the command line and grant access to them."""
    session = ConsolidationSession(
        destination=args.dest,
        output_name=args.name,
        delete_originals=args.delete_originals,
    )
    access = FolderAccessManager()
    access.grant(args.dest, writable=True)
    for source in args.sources:
        access.grant(source, writable=args.delete_originals)
        info = session.add_folder(source)
        print(f"  {info.path}  ({info.file_count} files, {format_size(info.size)})")
    print(f"Total: {format_size(session.total_source_size)}")
    return session, access


def run_with_progress(
    runner: ConsolidationRunner,
    start: Callable[[], object],
    desc: str
) -> RunStatus:
    """Start a run and mirror its status on a tqdm progress bar until it ends."""
    with tqdm(total=None, desc=desc, unit="file") as pbar:
        def on_status(status: RunStatus) -> None:
            if status.total and pbar.total != status.total:
                pbar.total = status.total
            if status.processed > pbar.n:
                pbar.update(status.processed - pbar.n)

        runner.on_status = on_status
        start()
        return runner.wait()


def report(runner: ConsolidationRunner, status: RunStatus) -> None:
    """Print the outcome of a run and exit with 1 if it failed."""
    if status.state != RunState.COMPLETED:
        print(status.message or "Error: run did not complete", file=sys.stderr)
        sys.exit(1)

    print(status.message)
    result = runner.result
    for folder, error in result.failed_deletions:
        print(f"  Warning: Could not delete {folder}: {error}")
    output = result.destination if isinstance(result, MergeResult) else result.archive_path
    print(f"Output: {output}")
    print(f"Size:   {format_size(result.total_size)}")


def cmd_merge(args: argparse.Namespace) -> None:
    validate_args(args)
    print("=" * 60)
    print("MERGE")
    print("=" * 60)
    session, access = build_session(args)
    print(f"Output:   {session.destination / args.name}")

    with HistoryStore(args.history) as history:
        runner = ConsolidationRunner(
            session,
            history=history,
            access=access,
            verify=args.verify,
            replace_existing=args.replace,
        )
        status = run_with_progress(runner, runner.start_merge, "Merging")
        report(runner, status)


def cmd_compress(args: argparse.Namespace) -> None:
    validate_args(args)
    print("=" * 60)
    print("COMPRESS")
    print("=" * 60)
    session, access = build_session(args)
    print(f"Archive:  {session.destination / args.name}")

    runner = ConsolidationRunner(session, access=access)
    status = run_with_progress(runner, runner.start_compress, "Compressing")
    report(runner, status)


def cmd_history(args: argparse.Namespace) -> None:
    if not args.history.exists():
        print("No consolidation history yet.")
        return
    with HistoryStore(args.history) as history:
        operations = history.recent(args.limit)
    if not operations:
        print("No consolidation history yet.")
        return
    for op in operations:
        print(f"{op.timestamp:%Y-%m-%d %H:%M:%S}  {op.destination_folder}")
        print(f"  {op.item_count} items, {format_size(op.total_size)}")
        for source in op.source_folders:
            print(f"  <- {source}")


COMMANDS = {
    "merge": cmd_merge,
    "compress": cmd_compress,
    "history": cmd_history,
}


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        COMMANDS[args.command](args)
    except ConsolidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
