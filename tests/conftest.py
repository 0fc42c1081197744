"""Shared fixtures for stem library tests."""

import io
import random
import zipfile
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest

from stem_library.core.storage import LocalStorage
from stem_library.domain.library.client import (
    ArchiveResponse,
    ExtractedListing,
    ProcessingClient,
)
from stem_library.domain.library.store import LibraryStore

STORAGE_KEY = "music-analyzer-library"

STEMS = {
    "stems/job1/bass.wav": b"bass-bytes",
    "stems/job1/drums.wav": b"drums-bytes",
    "stems/job1/vocals.wav": b"vocals-bytes",
}


def build_zip(files: dict[str, bytes], dirs: Optional[list[str]] = None) -> bytes:
    """Build an in-memory ZIP with the given directory and file members."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for directory in dirs or []:
            archive.writestr(directory, b"")
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


class FakeTimer:
    """Timer stand-in that only fires when a test says so."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class FakeTimerFactory:
    """Records every timer the code under test creates."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """Factory for ZIP archive bytes."""
    return build_zip


@pytest.fixture
def stems() -> dict[str, bytes]:
    """Member names and contents of the standard result archive."""
    return dict(STEMS)


@pytest.fixture
def storage_key() -> str:
    return STORAGE_KEY


@pytest.fixture
def timers() -> FakeTimerFactory:
    """Fake timer factory for grace-window tests."""
    return FakeTimerFactory()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    """Local storage backed by a temp file."""
    return LocalStorage(tmp_path / "local-storage.json")


@pytest.fixture
def blob_dir(tmp_path: Path) -> Path:
    """Directory for extracted blobs."""
    return tmp_path / "blobs"


@pytest.fixture
def client() -> MagicMock:
    """Backend client mock answering every request with the standard stems."""
    mock = MagicMock(spec=ProcessingClient)
    mock.submit_link.return_value = ArchiveResponse(
        content=build_zip(STEMS, dirs=["stems/", "stems/job1/"]), title="Backend Title"
    )
    mock.upload_file.return_value = ArchiveResponse(
        content=build_zip(STEMS), cache_key="cache-123"
    )
    mock.fetch_cached.return_value = build_zip(STEMS)
    mock.lookup_extracted.return_value = ExtractedListing(filenames=list(STEMS))
    return mock


@pytest.fixture
def store(
    client: MagicMock,
    storage: LocalStorage,
    blob_dir: Path,
    timers: FakeTimerFactory,
) -> LibraryStore:
    """Library store wired to the mock client and fake timers."""
    return LibraryStore(
        client=client,
        storage=storage,
        storage_key=STORAGE_KEY,
        blob_dir=blob_dir,
        rng=random.Random(7),
        timer_factory=timers,
    )
