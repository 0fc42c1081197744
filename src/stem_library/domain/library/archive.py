"""ZIP archive extraction into session-scoped blob files."""

import io
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from .exceptions import ArchiveMemberNotFoundError, InvalidArchiveError
from .models import BlobHandle, ExtractedFile

BLOB_PREFIX = "blob-"

# zipfile raises RuntimeError for encrypted members and NotImplementedError
# for unsupported compression methods
_UNREADABLE = (zipfile.BadZipFile, RuntimeError, NotImplementedError)


def _is_directory(name: str) -> bool:
    return name.endswith("/")


def create_blob(data: bytes, filename: str, blob_dir: Path) -> BlobHandle:
    """Write data to a new temp file in blob_dir and return its handle.

    Args:
        data: File contents
        filename: Archive path the data came from (used for the suffix)
        blob_dir: Session blob directory

    Returns:
        BlobHandle owning the new file
    """
    blob_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(filename).suffix
    fd, temp_name = tempfile.mkstemp(prefix=BLOB_PREFIX, suffix=suffix, dir=blob_dir)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return BlobHandle(Path(temp_name), filename)


def _open_archive(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise InvalidArchiveError(str(e)) from e


def find_member(names: Iterable[str], filename: str) -> Optional[str]:
    """Locate filename among archive member names.

    Lookup order:
    1. Exact path match.
    2. First member (archive order) ending with "/" + filename, so a bare
       filename finds the file nested under a common prefix.
    3. First member (archive order) ending with filename.

    Directory members and a blank filename never match.

    Args:
        names: Archive member names in archive order
        filename: Requested path

    Returns:
        Matching member name, or None
    """
    if not filename.strip():
        return None

    candidates = [name for name in names if not _is_directory(name)]
    if filename in candidates:
        return filename

    nested_suffix = "/" + filename.lstrip("/")
    for name in candidates:
        if name.endswith(nested_suffix):
            return name

    for name in candidates:
        if name.endswith(filename):
            return name

    return None


def extract_archive(data: bytes, blob_dir: Path) -> list[ExtractedFile]:
    """Extract every non-directory member of a ZIP archive into blobs.

    Blobs created before a failure are revoked, so either every file is
    extracted or none remain.

    Raises:
        InvalidArchiveError: If data is not a readable ZIP archive
    """
    extracted: list[ExtractedFile] = []
    try:
        with _open_archive(data) as archive:
            for info in archive.infolist():
                if info.is_dir() or _is_directory(info.filename):
                    continue
                blob = create_blob(archive.read(info), info.filename, blob_dir)
                extracted.append(ExtractedFile(filename=info.filename, blob=blob))
    except _UNREADABLE as e:
        for f in extracted:
            f.release()
        raise InvalidArchiveError(str(e)) from e
    except Exception:
        for f in extracted:
            f.release()
        raise

    logger.debug(f"Extracted {len(extracted)} file(s) into {blob_dir}")
    return extracted


def extract_member(data: bytes, filename: str, blob_dir: Path) -> BlobHandle:
    """Extract a single file from a ZIP archive into a blob.

    Raises:
        InvalidArchiveError: If data is not a readable ZIP archive
        ArchiveMemberNotFoundError: If the archive has no matching member
    """
    try:
        with _open_archive(data) as archive:
            member = find_member(archive.namelist(), filename)
            if member is None:
                raise ArchiveMemberNotFoundError(filename)
            return create_blob(archive.read(member), member, blob_dir)
    except _UNREADABLE as e:
        raise InvalidArchiveError(str(e)) from e


def cleanup_blob_directory(blob_dir: Path) -> None:
    """Clean up orphaned blobs left behind by a previous session."""
    if not blob_dir.exists():
        return

    for f in blob_dir.iterdir():
        if not f.name.startswith(BLOB_PREFIX):
            continue
        logger.debug(f"Cleaning up orphaned blob: {f}")
        try:
            f.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete blob {f}: {e}")
