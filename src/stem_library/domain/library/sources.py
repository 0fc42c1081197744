"""Source reference helpers: link validation, video ids, thumbnails and upload checks."""

import re
from pathlib import Path

from .exceptions import FileTooLargeError, ValidationError

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB

# Shown when a link carries no recognizable video id
PLACEHOLDER_VIDEO_ID = "dQw4w9WgXcQ"

THUMBNAIL_URL_TEMPLATE = "https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"

_YOUTUBE_URL_RE = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+")
_VIDEO_ID_RE = re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([^&\n?#]+)")


def is_valid_youtube_url(url: str) -> bool:
    """Check whether url looks like a YouTube link.

    Example:
        "https://youtu.be/abc123" -> True
        "https://vimeo.com/1" -> False
    """
    return bool(_YOUTUBE_URL_RE.match(url.strip()))


def extract_video_id(url: str) -> str:
    """Extract the YouTube video id from a link.

    Handles youtube.com/watch?v=ID and youtu.be/ID. Unlike a full resolver
    this never touches the network, so the result is deterministic.

    Returns:
        The video id, or PLACEHOLDER_VIDEO_ID if none is found
    """
    match = _VIDEO_ID_RE.search(url)
    return match.group(1) if match else PLACEHOLDER_VIDEO_ID


def thumbnail_for(url: str) -> str:
    """Return the preview image URL for a video link."""
    return THUMBNAIL_URL_TEMPLATE.format(video_id=extract_video_id(url))


def validate_upload(path: Path, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> Path:
    """Check a local file before uploading it.

    Args:
        path: File to upload
        max_bytes: Size ceiling

    Returns:
        The path, resolved

    Raises:
        ValidationError: If the path is missing or not a file
        FileTooLargeError: If the file exceeds max_bytes
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ValidationError(f"Not a file: {path}")

    size = path.stat().st_size
    if size > max_bytes:
        raise FileTooLargeError(size, max_bytes)

    return path.resolve()
