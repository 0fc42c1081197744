"""Library-specific exceptions for error handling."""

from typing import Optional


class LibraryError(Exception):
    """Base exception for library operations."""

    pass


class NetworkError(LibraryError):
    """Raised when the processing backend cannot be reached."""

    pass


class BackendError(LibraryError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(
        self,
        status_code: Optional[int],
        detail: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.detail = detail
        if message is None:
            message = f"Backend rejected the request (HTTP {status_code})"
            if detail:
                message = f"{message}: {detail}"
        super().__init__(message)


class InvalidArchiveError(BackendError):
    """Raised when the backend response is not a readable ZIP archive."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=None,
            detail=detail,
            message=f"Backend returned an invalid archive: {detail}"
            if detail
            else "Backend returned an invalid archive",
        )


class NotFoundError(LibraryError):
    """Base exception for lookups that found nothing."""

    pass


class EntryNotFoundError(NotFoundError):
    """Raised when no library entry has the requested id."""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"No library entry with id {entry_id}")


class ArchiveMemberNotFoundError(NotFoundError):
    """Raised when an archive does not contain the requested file."""

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"File not found inside archive: {filename}")


class SourceUnavailableError(NotFoundError):
    """Raised when an entry has neither a cache key nor a link to re-fetch from."""

    pass


class ValidationError(LibraryError):
    """Raised when caller input is rejected before contacting the backend."""

    pass


class FileTooLargeError(ValidationError):
    """Raised when an upload exceeds the size ceiling."""

    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            f"File is {size_bytes / (1024**2):.1f}MB, limit is {max_bytes / (1024**2):.0f}MB"
        )


class DownloadCancelled(Exception):
    """Raised when the caller aborts a download.

    Not a LibraryError; callers handle it separately from failures.
    """

    pass
