"""
Library store: the user's processed entries, their archives and undo-able deletes.

The store is an explicitly constructed object owned by a session (see
stem_library.session); nothing here is a module-level singleton.

Entries are kept newest-first. Every mutation is persisted best-effort to
LocalStorage under a single key; only scalar fields and filenames are
written, never blob handles.
"""

import json
import random
import shutil
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from stem_library.core.storage import LocalStorage

from .archive import extract_archive, extract_member
from .client import ProcessingClient
from .deferred import DeferredDeletions, TimerFactory, default_timer_factory
from .exceptions import (
    DownloadCancelled,
    EntryNotFoundError,
    LibraryError,
    SourceUnavailableError,
    ValidationError,
)
from .layers import generate_layers
from .models import BlobHandle, ExtractedFile, LibraryEntry, local_source_ref
from .sources import thumbnail_for

DEFAULT_GRACE_SECONDS = 5.0

UNTITLED = "Untitled track"

# Development-only demo titles (library.dev_placeholder_titles)
PLACEHOLDER_TITLES = (
    "Amazing Song - Artist Name",
    "Epic Music Video - Band Name",
    "Beautiful Melody - Composer",
    "Hit Single - Popular Artist",
    "Indie Track - Emerging Artist",
)

_CLEAR_KEY = "__library__"


class LibraryStore:
    """CRUD and archive lifecycle for library entries.

    Args:
        client: Backend client used for submissions and re-fetches
        storage: Keyed local storage for persistence
        storage_key: Key the entry list is stored under
        blob_dir: Directory for extracted blobs (process-scoped)
        grace_seconds: Default undo window for scheduled deletes
        dev_placeholder_titles: Use random demo titles as the last title fallback
        rng: Random source for layers and placeholder titles
        timer_factory: Builds grace-window timers
        clock: Wall clock used for entry ids
    """

    def __init__(
        self,
        client: ProcessingClient,
        storage: LocalStorage,
        storage_key: str,
        blob_dir: Path,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        dev_placeholder_titles: bool = False,
        rng: Optional[random.Random] = None,
        timer_factory: TimerFactory = default_timer_factory,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._storage = storage
        self._storage_key = storage_key
        self._blob_dir = Path(blob_dir)
        self.grace_seconds = grace_seconds
        self._dev_placeholder_titles = dev_placeholder_titles
        self._rng = rng or random.Random()
        self._clock = clock

        self._entries: list[LibraryEntry] = []
        self._lock = threading.RLock()
        self._pending_removals: DeferredDeletions[LibraryEntry] = DeferredDeletions(
            timer_factory
        )
        self._pending_clear: DeferredDeletions[list[LibraryEntry]] = DeferredDeletions(
            timer_factory
        )
        # Blobs re-fetched for entries that are no longer live
        self._loose_blobs: list[BlobHandle] = []

    # Reads

    @property
    def entries(self) -> list[LibraryEntry]:
        """Live entries, newest first (a copy of the list)."""
        with self._lock:
            return list(self._entries)

    @property
    def pending_ids(self) -> list[str]:
        """Ids of entries waiting out their undo window."""
        return self._pending_removals.pending_keys()

    @property
    def clear_pending(self) -> bool:
        return self._pending_clear.is_pending(_CLEAR_KEY)

    def get(self, entry_id: str) -> LibraryEntry:
        """Return the live entry with entry_id.

        Raises:
            EntryNotFoundError: If no live entry has that id
        """
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
        raise EntryNotFoundError(entry_id)

    # Persistence

    def load(self) -> list[LibraryEntry]:
        """Replace in-memory entries with the persisted list.

        A missing or unreadable record yields an empty library. Loaded
        entries carry filenames only; blobs are re-derived on demand.
        """
        try:
            raw = self._storage.get_item(self._storage_key)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read library storage: {e}")
            raw = None

        entries: list[LibraryEntry] = []
        if raw:
            try:
                records = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring corrupt library record: {e}")
                records = []

            seen_ids: set[str] = set()
            for record in records if isinstance(records, list) else []:
                try:
                    entry = LibraryEntry.from_dict(record)
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning(f"Skipping malformed library entry: {e}")
                    continue
                if entry.id in seen_ids:
                    logger.warning(f"Skipping duplicate library entry id {entry.id}")
                    continue
                seen_ids.add(entry.id)
                entries.append(entry)

        with self._lock:
            for entry in self._entries:
                entry.release_blobs()
            self._entries = entries

        logger.info(f"Loaded {len(entries)} library entries")
        return list(entries)

    def _persist(self) -> None:
        """Write the live list to storage. Must be called with _lock held.

        Failures are logged and swallowed; in-memory state stays authoritative.
        """
        try:
            if self._entries:
                payload = json.dumps([entry.to_dict() for entry in self._entries])
                self._storage.set_item(self._storage_key, payload)
            else:
                self._storage.remove_item(self._storage_key)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to persist library ({len(self._entries)} entries): {e}")

    # Creation

    def _reserved_ids(self) -> set[str]:
        ids = {entry.id for entry in self._entries}
        ids.update(self._pending_removals.pending_keys())
        cleared = self._pending_clear.peek(_CLEAR_KEY) or []
        ids.update(entry.id for entry in cleared)
        return ids

    def _new_id(self) -> str:
        """Time-derived id, bumped until unique. Must be called with _lock held."""
        reserved = self._reserved_ids()
        candidate = int(self._clock() * 1000)
        while str(candidate) in reserved:
            candidate += 1
        return str(candidate)

    def _lookup_title(self, source_link: str) -> Optional[str]:
        """Best-effort title lookup; failures are ignored."""
        try:
            return self._client.lookup_extracted(source_link).title
        except LibraryError as e:
            logger.debug(f"Title lookup failed for {source_link}: {e}")
            return None

    def _placeholder_title(self) -> str:
        if self._dev_placeholder_titles:
            return self._rng.choice(PLACEHOLDER_TITLES)
        return UNTITLED

    def _insert_new(self, entry: LibraryEntry) -> LibraryEntry:
        with self._lock:
            entry.id = self._new_id()
            self._entries.insert(0, entry)
            self._persist()
        return entry

    def _discard(self, entry: Optional[LibraryEntry]) -> None:
        """Drop a half-added entry so a failed add leaves no trace."""
        if entry is None:
            return
        with self._lock:
            if self._is_live(entry):
                self._entries = [live for live in self._entries if live is not entry]
                self._persist()

    def add_from_link(self, source_link: str) -> LibraryEntry:
        """Submit a video link and add the separated result to the library.

        Title preference: backend title header, then the extracted-listing
        lookup, then a placeholder.

        Raises:
            NetworkError: Backend unreachable
            BackendError: Backend rejected the link (status + detail)
            InvalidArchiveError: Backend answered with something other than a ZIP
        """
        source_link = source_link.strip()
        logger.info(f"Submitting link: {source_link}")

        archive = self._client.submit_link(source_link)
        files = extract_archive(archive.content, self._blob_dir)

        entry = None
        try:
            title = archive.title or self._lookup_title(source_link) or self._placeholder_title()
            entry = LibraryEntry(
                id="",
                source_ref=source_link,
                title=title,
                thumbnail_ref=thumbnail_for(source_link),
                layers=generate_layers(self._rng),
                extracted_files=files,
                processed=True,
            )
            self._insert_new(entry)
        except Exception:
            self._discard(entry)
            for f in files:
                f.release()
            raise

        logger.info(f"Added entry {entry.id}: {entry.title} ({len(files)} files)")
        return entry

    def add_from_file(self, path: Path) -> LibraryEntry:
        """Upload a local audio file and add the separated result.

        The size ceiling is enforced by the caller (see sources.validate_upload).

        Raises:
            NetworkError: Backend unreachable
            BackendError: Backend rejected the upload (status + detail)
            InvalidArchiveError: Backend answered with something other than a ZIP
        """
        path = Path(path)
        logger.info(f"Uploading file: {path}")

        archive = self._client.upload_file(path)
        files = extract_archive(archive.content, self._blob_dir)

        entry = None
        try:
            entry = LibraryEntry(
                id="",
                source_ref=local_source_ref(path.name),
                title=path.name,
                thumbnail_ref=None,
                layers=generate_layers(self._rng),
                extracted_files=files,
                cache_key=archive.cache_key,
                processed=True,
            )
            self._insert_new(entry)
        except Exception:
            self._discard(entry)
            for f in files:
                f.release()
            raise

        logger.info(f"Added entry {entry.id}: {entry.title} ({len(files)} files)")
        return entry

    # Mutation

    def _pop(self, entry_id: str) -> LibraryEntry:
        """Remove and return a live entry. Must be called with _lock held."""
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return self._entries.pop(index)
        raise EntryNotFoundError(entry_id)

    def remove(self, entry_id: str) -> None:
        """Delete an entry immediately and release its blobs.

        Raises:
            EntryNotFoundError: If no live entry has that id
        """
        with self._lock:
            entry = self._pop(entry_id)
            self._persist()
        entry.release_blobs()
        logger.info(f"Removed entry {entry_id}")

    def schedule_remove(
        self, entry_id: str, grace_seconds: Optional[float] = None
    ) -> LibraryEntry:
        """Hide an entry now and release it once the grace window passes.

        Raises:
            EntryNotFoundError: If no live entry has that id
        """
        grace = self.grace_seconds if grace_seconds is None else grace_seconds
        # Pop and schedule under one lock so the id stays reserved throughout
        with self._lock:
            entry = self._pop(entry_id)
            self._persist()
            self._pending_removals.schedule(
                entry_id, entry, grace, on_release=lambda e: e.release_blobs()
            )
        logger.info(f"Scheduled removal of entry {entry_id} ({grace:.1f}s to undo)")
        return entry

    def undo_remove(self, entry_id: str) -> bool:
        """Restore an entry whose removal is still pending.

        Returns:
            True if restored, False if the window elapsed or nothing was pending
        """
        entry = self._pending_removals.cancel(entry_id)
        if entry is None:
            return False

        with self._lock:
            self._entries.insert(0, entry)
            self._persist()
        logger.info(f"Restored entry {entry_id}")
        return True

    def schedule_clear(self, grace_seconds: Optional[float] = None) -> int:
        """Empty the library now and release everything after the grace window.

        Returns:
            Number of entries cleared
        """
        grace = self.grace_seconds if grace_seconds is None else grace_seconds
        with self._lock:
            snapshot = self._entries
            self._entries = []
            self._persist()
            self._pending_clear.schedule(
                _CLEAR_KEY, snapshot, grace, on_release=_release_all
            )
        logger.info(f"Scheduled clear of {len(snapshot)} entries ({grace:.1f}s to undo)")
        return len(snapshot)

    def undo_clear(self) -> bool:
        """Restore the list emptied by schedule_clear().

        Entries added after the clear stay in front of the restored ones.

        Returns:
            True if restored, False if the window elapsed or nothing was pending
        """
        snapshot = self._pending_clear.cancel(_CLEAR_KEY)
        if snapshot is None:
            return False

        with self._lock:
            self._entries = self._entries + snapshot
            self._persist()
        logger.info(f"Restored {len(snapshot)} cleared entries")
        return True

    def update_title(self, entry_id: str, new_title: str) -> LibraryEntry:
        """Rename an entry.

        Raises:
            EntryNotFoundError: If no live entry has that id
            ValidationError: If the new title is blank
        """
        new_title = new_title.strip()
        if not new_title:
            raise ValidationError("Title must not be empty")

        with self._lock:
            entry = self.get(entry_id)
            entry.title = new_title
            self._persist()
        logger.info(f"Renamed entry {entry_id} to {new_title!r}")
        return entry

    def refresh_title(self, entry_id: str) -> Optional[str]:
        """Ask the backend for a better title for a link entry.

        Best-effort: lookup failures are ignored.

        Returns:
            The new title if it changed, else None
        """
        entry = self.get(entry_id)
        if not entry.is_remote:
            return None

        title = self._lookup_title(entry.source_ref)
        if not title or title == entry.title:
            return None

        try:
            self.update_title(entry_id, title)
        except EntryNotFoundError:
            # Removed while the lookup was in flight
            return None
        return title

    # Retrieval

    def _fetch_archive(
        self, entry: LibraryEntry, cancel_event: Optional[threading.Event]
    ) -> bytes:
        if entry.cache_key:
            return self._client.fetch_cached(entry.cache_key, cancel_event)
        if entry.is_remote:
            return self._client.submit_link(entry.source_ref, cancel_event).content
        raise SourceUnavailableError(
            "Original uploaded file not available for re-download in this session"
        )

    def _is_live(self, entry: LibraryEntry) -> bool:
        return any(live is entry for live in self._entries)

    def resolve_file(
        self,
        entry: LibraryEntry,
        filename: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> BlobHandle:
        """Return a blob for filename, re-fetching the archive when needed.

        Raises:
            SourceUnavailableError: No cache key and no link to re-fetch from
            ArchiveMemberNotFoundError: The archive has no such file
            NetworkError: Backend unreachable
            BackendError: Backend rejected the re-fetch
            DownloadCancelled: cancel_event was set mid-transfer
        """
        extracted = entry.find_file(filename)
        if extracted is not None and extracted.is_available:
            return extracted.blob

        logger.debug(f"Re-fetching archive for entry {entry.id} to get {filename}")
        data = self._fetch_archive(entry, cancel_event)
        blob = extract_member(data, filename, self._blob_dir)

        with self._lock:
            if not self._is_live(entry):
                self._loose_blobs.append(blob)
                return blob

            if extracted is None:
                extracted = ExtractedFile(filename=filename)
                entry.extracted_files.append(extracted)
                self._persist()
            if extracted.is_available:
                # Resolved concurrently; keep the first blob
                blob.revoke()
                return extracted.blob
            extracted.blob = blob
        return blob

    def retrieve_playable_file(self, entry_id: str, filename: str) -> BlobHandle:
        """Return a locally playable blob for one of an entry's files.

        Raises:
            EntryNotFoundError: If no live entry has that id
            plus everything resolve_file() raises
        """
        return self.resolve_file(self.get(entry_id), filename)

    def download_file(
        self,
        entry_id: str,
        filename: str,
        destination: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """Save a copy of one of an entry's files.

        Args:
            entry_id: Entry to download from
            filename: File path within the archive
            destination: Target directory (file keeps its base name) or file path
            cancel_event: Set it to abort an in-flight re-fetch

        Returns:
            Path of the saved file

        Raises:
            DownloadCancelled: cancel_event was set
            plus everything retrieve_playable_file() raises
        """
        blob = self.resolve_file(self.get(entry_id), filename, cancel_event)

        if cancel_event is not None and cancel_event.is_set():
            raise DownloadCancelled("Download cancelled")

        destination = Path(destination).expanduser()
        target = destination / Path(filename).name if destination.is_dir() else destination
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(blob.path, target)

        logger.info(f"Downloaded {filename} from entry {entry_id} -> {target}")
        return target

    # Lifecycle

    def close(self) -> None:
        """Finalize pending deletions and release every blob this store owns.

        The persisted list is left untouched.
        """
        released = self._pending_removals.flush() + self._pending_clear.flush()
        with self._lock:
            for entry in self._entries:
                entry.release_blobs()
            for blob in self._loose_blobs:
                blob.revoke()
            self._loose_blobs = []
        logger.debug(f"Library store closed ({released} pending deletions finalized)")


def _release_all(entries: list[LibraryEntry]) -> None:
    for entry in entries:
        entry.release_blobs()
