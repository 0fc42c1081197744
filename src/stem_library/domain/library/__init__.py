"""Library domain - processed stems, archives and the library store.

This domain handles:
- Entry, layer and extracted-file models
- Backend client for submissions and archive re-fetches
- ZIP extraction into session-scoped blobs
- The library store with undo-able deletes
"""

# Models
from .models import BlobHandle, ExtractedFile, LayerInfo, LibraryEntry

# Exceptions
from .exceptions import (
    ArchiveMemberNotFoundError,
    BackendError,
    DownloadCancelled,
    EntryNotFoundError,
    FileTooLargeError,
    InvalidArchiveError,
    LibraryError,
    NetworkError,
    NotFoundError,
    SourceUnavailableError,
    ValidationError,
)

# Backend client
from .client import ArchiveResponse, ExtractedListing, ProcessingClient

# Source helpers
from .sources import (
    extract_video_id,
    is_valid_youtube_url,
    thumbnail_for,
    validate_upload,
)

# Store
from .store import LibraryStore

__all__ = [
    # Models
    "BlobHandle",
    "ExtractedFile",
    "LayerInfo",
    "LibraryEntry",
    # Exceptions
    "ArchiveMemberNotFoundError",
    "BackendError",
    "DownloadCancelled",
    "EntryNotFoundError",
    "FileTooLargeError",
    "InvalidArchiveError",
    "LibraryError",
    "NetworkError",
    "NotFoundError",
    "SourceUnavailableError",
    "ValidationError",
    # Client
    "ArchiveResponse",
    "ExtractedListing",
    "ProcessingClient",
    # Sources
    "extract_video_id",
    "is_valid_youtube_url",
    "thumbnail_for",
    "validate_upload",
    # Store
    "LibraryStore",
]
