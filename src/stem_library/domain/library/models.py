"""
Library domain models.

Contains data structures for processed sources, their advisory layers and
the stem files extracted from their archives.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

LOCAL_FILE_PREFIX = "local:"


class BlobHandle:
    """A locally addressable copy of one extracted file.

    Backed by a temp file in the session blob directory. Handles are only
    valid for the lifetime of the process that created them and are never
    persisted.
    """

    def __init__(self, path: Path, filename: str):
        self.path = Path(path)
        self.filename = filename
        self._revoked = False

    @property
    def revoked(self) -> bool:
        return self._revoked or not self.path.exists()

    def read_bytes(self) -> bytes:
        if self._revoked:
            raise ValueError(f"Blob handle for {self.filename} was revoked")
        return self.path.read_bytes()

    def revoke(self) -> None:
        """Delete the backing file. Safe to call more than once."""
        if self._revoked:
            return
        self._revoked = True
        self.path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        state = "revoked" if self._revoked else str(self.path)
        return f"BlobHandle({self.filename!r}, {state})"


@dataclass
class LayerInfo:
    """One advisory instrument layer shown for an entry."""

    id: str
    name: str
    icon: str  # Glyph tag, e.g. "Drum", "Mic"
    volume: int  # 0-100, normalized across the entry

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "icon": self.icon, "volume": self.volume}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LayerInfo":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            icon=str(data.get("icon", "Music")),
            volume=int(data.get("volume", 0)),
        )


@dataclass
class ExtractedFile:
    """A file from the result archive; blob is None until extracted in this process."""

    filename: str
    blob: Optional[BlobHandle] = None

    @property
    def is_available(self) -> bool:
        """True when the file can be served without re-fetching the archive."""
        return self.blob is not None and not self.blob.revoked

    def release(self) -> None:
        if self.blob is not None:
            self.blob.revoke()
            self.blob = None


@dataclass
class LibraryEntry:
    """One processed source (remote link or uploaded file).

    source_ref holds either an http(s) link or a ``local:<filename>`` marker.
    """

    id: str
    source_ref: str
    title: str
    thumbnail_ref: Optional[str] = None
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    layers: list[LayerInfo] = field(default_factory=list)
    extracted_files: list[ExtractedFile] = field(default_factory=list)
    cache_key: Optional[str] = None
    processed: bool = False

    @property
    def is_remote(self) -> bool:
        return self.source_ref.startswith(("http://", "https://"))

    @property
    def is_local_file(self) -> bool:
        return self.source_ref.startswith(LOCAL_FILE_PREFIX)

    @property
    def filenames(self) -> list[str]:
        return [f.filename for f in self.extracted_files]

    def find_file(self, filename: str) -> Optional[ExtractedFile]:
        for extracted in self.extracted_files:
            if extracted.filename == filename:
                return extracted
        return None

    def release_blobs(self) -> None:
        """Revoke every blob handle this entry owns."""
        for extracted in self.extracted_files:
            extracted.release()

    def to_dict(self) -> dict[str, Any]:
        """Serialize scalar fields for persistence (blob handles are dropped)."""
        return {
            "id": self.id,
            "url": self.source_ref,
            "title": self.title,
            "thumbnail": self.thumbnail_ref,
            "addedAt": self.added_at.isoformat(),
            "layers": [layer.to_dict() for layer in self.layers],
            "files": [{"filename": f.filename} for f in self.extracted_files],
            "cacheKey": self.cache_key,
            "processed": self.processed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LibraryEntry":
        """Rebuild an entry from its persisted form. Blob handles start empty."""
        added_at = datetime.fromisoformat(str(data["addedAt"]).replace("Z", "+00:00"))
        if added_at.tzinfo is None:
            added_at = added_at.replace(tzinfo=timezone.utc)

        return cls(
            id=str(data["id"]),
            source_ref=str(data["url"]),
            title=str(data.get("title") or ""),
            thumbnail_ref=data.get("thumbnail"),
            added_at=added_at,
            layers=[LayerInfo.from_dict(layer) for layer in data.get("layers", [])],
            extracted_files=[
                ExtractedFile(filename=str(f["filename"]))
                for f in data.get("files", [])
                if f and f.get("filename")
            ],
            cache_key=data.get("cacheKey"),
            processed=bool(data.get("processed", False)),
        )


def local_source_ref(filename: str) -> str:
    """Build the source marker for an uploaded file."""
    return f"{LOCAL_FILE_PREFIX}{filename}"
