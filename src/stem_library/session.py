"""Session lifecycle for the library store.

A LibrarySession owns exactly one LibraryStore for the lifetime of a
signed-in identity: it is opened at sign-in and closed at sign-out, and
consumers receive the store from it instead of importing a shared instance.
"""

import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from stem_library.core.config import Config, get_blob_dir, get_storage_path
from stem_library.core.storage import LocalStorage
from stem_library.domain.library.archive import cleanup_blob_directory
from stem_library.domain.library.client import ProcessingClient
from stem_library.domain.library.deferred import TimerFactory, default_timer_factory
from stem_library.domain.library.store import LibraryStore


def clear_library_for_new_account(storage: LocalStorage, storage_key: str) -> None:
    """Wipe the persisted library when a brand-new identity signs in.

    The storage key is shared by every identity on this machine, so a new
    account must not inherit the previous user's entries.
    """
    try:
        storage.remove_item(storage_key)
        logger.info("Cleared persisted library for new account")
    except OSError as e:
        logger.warning(f"Could not clear persisted library for new account: {e}")


@dataclass
class LibrarySession:
    """A signed-in session and the store it owns.

    Attributes:
        config: Application configuration
        storage: Keyed local storage (shared with sign-in cleanup)
        store: The session's library store
        blob_dir: Directory holding this session's extracted files
    """

    config: Config
    storage: LocalStorage
    store: LibraryStore
    blob_dir: Path
    closed: bool = False

    @classmethod
    def open(
        cls,
        config: Config,
        is_new_account: bool = False,
        client: Optional[ProcessingClient] = None,
        storage: Optional[LocalStorage] = None,
        blob_dir: Optional[Path] = None,
        timer_factory: TimerFactory = default_timer_factory,
        rng: Optional[random.Random] = None,
    ) -> "LibrarySession":
        """Create the session's store and load the persisted library.

        Args:
            config: Application configuration
            is_new_account: True for a new account or an identity's first sign-in
            client: Backend client (built from config when omitted)
            storage: Local storage (data directory file when omitted)
            blob_dir: Blob directory (data directory when omitted)
            timer_factory: Grace-window timer factory
            rng: Random source for advisory layers

        Returns:
            Open session with a loaded store
        """
        storage = storage or LocalStorage(get_storage_path())
        blob_dir = blob_dir or get_blob_dir()
        client = client or ProcessingClient(
            config.backend.api_base_url, timeout=config.backend.timeout_seconds
        )

        if is_new_account:
            clear_library_for_new_account(storage, config.library.storage_key)

        # Blobs never outlive the process that created them
        cleanup_blob_directory(blob_dir)

        store = LibraryStore(
            client=client,
            storage=storage,
            storage_key=config.library.storage_key,
            blob_dir=blob_dir,
            grace_seconds=config.library.undo_grace_seconds,
            dev_placeholder_titles=config.library.dev_placeholder_titles,
            rng=rng,
            timer_factory=timer_factory,
        )
        store.load()

        logger.info(f"Library session opened ({len(store.entries)} entries)")
        return cls(config=config, storage=storage, store=store, blob_dir=blob_dir)

    def close(self) -> None:
        """Tear down the store (sign-out). Safe to call more than once."""
        if self.closed:
            return
        self.store.close()
        self.closed = True
        logger.info("Library session closed")

    def __enter__(self) -> "LibrarySession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
