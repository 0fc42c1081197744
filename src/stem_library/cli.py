"""
Stem Library CLI - Entry point

Submit links or uploads for stem separation, browse the library, play and
download the extracted stems.
"""

import argparse
import shutil
import subprocess
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from stem_library.core.config import Config, ensure_directories, load_config
from stem_library.core.console import get_console
from stem_library.core.output import get_log_file_path, log, setup_loguru
from stem_library.domain.library.exceptions import (
    ArchiveMemberNotFoundError,
    BackendError,
    DownloadCancelled,
    LibraryError,
    NetworkError,
    ValidationError,
)
from stem_library.domain.library.models import LibraryEntry
from stem_library.domain.library.sources import is_valid_youtube_url, validate_upload
from stem_library.domain.library.store import LibraryStore
from stem_library.session import LibrarySession

EXIT_CANCELLED = 130


def describe_error(error: LibraryError) -> str:
    """Turn a library error into a message that says what the user can do."""
    if isinstance(error, NetworkError):
        return f"Backend unreachable, try again later: {error}"
    if isinstance(error, BackendError):
        return f"{error}. Check the input and resubmit."
    if isinstance(error, ArchiveMemberNotFoundError):
        return f"{error}. The result is missing an expected file; please report this."
    return str(error)


def _format_date(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _source_label(entry: LibraryEntry) -> str:
    return "link" if entry.is_remote else "upload"


def cmd_add(store: LibraryStore, args: argparse.Namespace) -> int:
    if not is_valid_youtube_url(args.url):
        raise ValidationError(f"Not a valid YouTube URL: {args.url}")

    with get_console().status("Analyzing music..."):
        entry = store.add_from_link(args.url)

    log(f"✓ Added {entry.title} [{entry.id}] with {len(entry.extracted_files)} files", "success")
    return 0


def cmd_upload(store: LibraryStore, args: argparse.Namespace, config: Config) -> int:
    path = validate_upload(
        Path(args.path), max_bytes=config.library.max_upload_mb * 1024 * 1024
    )

    with get_console().status(f"Uploading {path.name}..."):
        entry = store.add_from_file(path)

    log(f"✓ Added {entry.title} [{entry.id}] with {len(entry.extracted_files)} files", "success")
    return 0


def cmd_list(store: LibraryStore, args: argparse.Namespace) -> int:
    entries = store.entries
    console = get_console()

    if not entries:
        console.print("Library is empty.")
        return 0

    table = Table(title=f"{len(entries)} tracks analyzed")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Source")
    table.add_column("Added")
    table.add_column("Files", justify="right")

    for entry in entries:
        table.add_row(
            entry.id,
            escape(entry.title),
            _source_label(entry),
            _format_date(entry.added_at),
            str(len(entry.extracted_files)),
        )

    console.print(table)
    return 0


def cmd_show(store: LibraryStore, args: argparse.Namespace) -> int:
    if args.refresh_title:
        new_title = store.refresh_title(args.entry_id)
        if new_title:
            log(f"Title updated to {new_title}")

    entry = store.get(args.entry_id)
    console = get_console()

    console.print(f"[bold]{escape(entry.title)}[/bold]  ({_source_label(entry)}, added {_format_date(entry.added_at)})")
    console.print(f"Source: {entry.source_ref}", markup=False)
    if entry.thumbnail_ref:
        console.print(f"Thumbnail: {entry.thumbnail_ref}", markup=False)

    layers = Table(title="Layers", show_header=False, box=None)
    for layer in entry.layers:
        bar = "█" * (layer.volume // 5)
        layers.add_row(layer.name, f"{layer.volume:>3}%", bar)
    console.print(layers)

    files = Table(title="Extracted Files")
    files.add_column("Filename")
    files.add_column("Ready", justify="center")
    for extracted in entry.extracted_files:
        files.add_row(escape(extracted.filename), "✓" if extracted.is_available else "")
    console.print(files)
    return 0


def cmd_rename(store: LibraryStore, args: argparse.Namespace) -> int:
    entry = store.update_title(args.entry_id, " ".join(args.title))
    log(f"✓ Renamed {entry.id} to {entry.title}", "success")
    return 0


def cmd_remove(store: LibraryStore, args: argparse.Namespace) -> int:
    if not args.undoable:
        store.remove(args.entry_id)
        log(f"✓ Removed {args.entry_id}", "success")
        return 0

    entry = store.schedule_remove(args.entry_id)
    log(f"Item deleted: {entry.title}")
    if Confirm.ask(f"Undo? (within {store.grace_seconds:.0f}s)", default=False):
        if store.undo_remove(entry.id):
            log(f"✓ Restored {entry.title}", "success")
        else:
            log("Too late to undo, the item is gone.", "warning")
    return 0


def cmd_clear(store: LibraryStore, args: argparse.Namespace) -> int:
    if not args.undoable:
        count = len(store.entries)
        for entry in store.entries:
            store.remove(entry.id)
        log(f"✓ Cleared {count} items", "success")
        return 0

    count = store.schedule_clear()
    log(f"Library cleared ({count} items)")
    if count and Confirm.ask(f"Undo? (within {store.grace_seconds:.0f}s)", default=False):
        if store.undo_clear():
            log(f"✓ Restored {count} items", "success")
        else:
            log("Too late to undo, the items are gone.", "warning")
    return 0


def cmd_play(store: LibraryStore, args: argparse.Namespace) -> int:
    with get_console().status(f"Preparing {args.filename}..."):
        blob = store.retrieve_playable_file(args.entry_id, args.filename)

    player = shutil.which("mpv")
    if player is None:
        logger.warning("mpv not found - cannot play in terminal")
        get_console().print(f"Playable file: {blob.path}", markup=False)
        get_console().input("Press Enter when done...")
        return 0

    log(f"▶ Playing {args.filename}")
    completed = subprocess.run([player, "--no-video", str(blob.path)], check=False)
    return 0 if completed.returncode == 0 else 1


def cmd_download(store: LibraryStore, args: argparse.Namespace) -> int:
    cancel_event = threading.Event()
    outcome: dict = {}

    def worker() -> None:
        try:
            outcome["path"] = store.download_file(
                args.entry_id, args.filename, Path(args.dest), cancel_event
            )
        except (LibraryError, DownloadCancelled, OSError) as e:
            outcome["error"] = e

    thread = threading.Thread(target=worker, name="download", daemon=True)
    with get_console().status(f"Downloading {args.filename}... (Ctrl+C to stop)"):
        thread.start()
        try:
            while thread.is_alive():
                thread.join(0.2)
        except KeyboardInterrupt:
            cancel_event.set()
            thread.join()

    error = outcome.get("error")
    if isinstance(error, DownloadCancelled):
        log("Download cancelled: the download was stopped.", "warning")
        return EXIT_CANCELLED
    if error is not None:
        raise error

    log(f"✓ Saved {outcome['path']}", "success")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the stem-library command."""
    parser = argparse.ArgumentParser(
        description="Stem Library - separate music into stems and manage the results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Also write log records to stderr"
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    add_parser = subparsers.add_parser("add", help="Analyze a YouTube link")
    add_parser.add_argument("url", help="YouTube video URL")

    upload_parser = subparsers.add_parser("upload", help="Analyze a local audio file")
    upload_parser.add_argument("path", help="Audio file to upload")

    subparsers.add_parser("list", help="List analyzed tracks")

    show_parser = subparsers.add_parser("show", help="Show layers and files of a track")
    show_parser.add_argument("entry_id", help="Track ID")
    show_parser.add_argument(
        "--refresh-title",
        action="store_true",
        help="Ask the backend for a better title first",
    )

    rename_parser = subparsers.add_parser("rename", help="Rename a track")
    rename_parser.add_argument("entry_id", help="Track ID")
    rename_parser.add_argument("title", nargs="+", help="New title")

    remove_parser = subparsers.add_parser("remove", help="Delete a track")
    remove_parser.add_argument("entry_id", help="Track ID")
    remove_parser.add_argument(
        "--undoable", action="store_true", help="Offer undo during the grace window"
    )

    clear_parser = subparsers.add_parser("clear", help="Delete every track")
    clear_parser.add_argument(
        "--undoable", action="store_true", help="Offer undo during the grace window"
    )

    play_parser = subparsers.add_parser("play", help="Play an extracted file")
    play_parser.add_argument("entry_id", help="Track ID")
    play_parser.add_argument("filename", help="File name within the result")

    download_parser = subparsers.add_parser("download", help="Save an extracted file")
    download_parser.add_argument("entry_id", help="Track ID")
    download_parser.add_argument("filename", help="File name within the result")
    download_parser.add_argument(
        "--dest", default=".", help="Target directory or file (default: current directory)"
    )

    return parser


def setup_logging(config: Config, verbose: bool = False) -> None:
    """Configure loguru from the logging section of the config."""
    log_file = Path(config.logging.log_file) if config.logging.log_file else get_log_file_path()
    setup_loguru(
        log_file,
        level=config.logging.level,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
        console_output=config.logging.console_output or verbose,
    )


def run(argv: Optional[list[str]] = None) -> int:
    """Parse arguments and run one command.

    Returns:
        Exit code (0 for success, 1 for failure, 130 for a cancelled download)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.subcommand:
        parser.print_help()
        return 1

    ensure_directories()
    config = load_config()
    setup_logging(config, verbose=args.verbose)

    with LibrarySession.open(config) as session:
        store = session.store
        try:
            if args.subcommand == "add":
                return cmd_add(store, args)
            elif args.subcommand == "upload":
                return cmd_upload(store, args, config)
            elif args.subcommand == "list":
                return cmd_list(store, args)
            elif args.subcommand == "show":
                return cmd_show(store, args)
            elif args.subcommand == "rename":
                return cmd_rename(store, args)
            elif args.subcommand == "remove":
                return cmd_remove(store, args)
            elif args.subcommand == "clear":
                return cmd_clear(store, args)
            elif args.subcommand == "play":
                return cmd_play(store, args)
            elif args.subcommand == "download":
                return cmd_download(store, args)
        except LibraryError as e:
            log(f"✗ {describe_error(e)}", "error")
            return 1
        except OSError as e:
            log(f"✗ {e}", "error")
            return 1

    parser.print_help()
    return 1


def main() -> None:
    """Main entry point for the stem-library command."""
    sys.exit(run())


if __name__ == "__main__":
    main()
