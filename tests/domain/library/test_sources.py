"""Tests for source reference helpers."""

import pytest

from stem_library.domain.library.exceptions import FileTooLargeError, ValidationError
from stem_library.domain.library.sources import (
    PLACEHOLDER_VIDEO_ID,
    extract_video_id,
    is_valid_youtube_url,
    thumbnail_for,
    validate_upload,
)


class TestYouTubeLinks:
    """Tests for link validation and video ids."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "http://youtube.com/watch?v=abc",
            "youtu.be/abc123",
            "  https://youtu.be/abc123  ",
        ],
    )
    def test_valid_urls(self, url: str) -> None:
        assert is_valid_youtube_url(url)

    @pytest.mark.parametrize(
        "url", ["https://vimeo.com/1", "not a url", "https://youtube.com/", ""]
    )
    def test_invalid_urls(self, url: str) -> None:
        assert not is_valid_youtube_url(url)

    def test_extract_video_id(self) -> None:
        """Both link shapes yield the id without query noise."""
        assert extract_video_id("https://www.youtube.com/watch?v=abc123&t=42") == "abc123"
        assert extract_video_id("https://youtu.be/xyz789?si=share") == "xyz789"

    def test_extract_video_id_fallback(self) -> None:
        """Links without an id fall back to the placeholder."""
        assert extract_video_id("https://youtube.com/@channel") == PLACEHOLDER_VIDEO_ID

    def test_thumbnail_for(self) -> None:
        assert thumbnail_for("https://youtu.be/abc123") == (
            "https://img.youtube.com/vi/abc123/maxresdefault.jpg"
        )


class TestValidateUpload:
    """Tests for validate_upload."""

    def test_accepts_small_file(self, tmp_path) -> None:
        path = tmp_path / "song.mp3"
        path.write_bytes(b"x" * 100)

        assert validate_upload(path, max_bytes=1000) == path.resolve()

    def test_rejects_large_file(self, tmp_path) -> None:
        """Files over the ceiling are rejected before upload."""
        path = tmp_path / "song.mp3"
        path.write_bytes(b"x" * 2048)

        with pytest.raises(FileTooLargeError) as exc_info:
            validate_upload(path, max_bytes=1024)

        assert exc_info.value.size_bytes == 2048
        assert isinstance(exc_info.value, ValidationError)

    def test_rejects_missing_file(self, tmp_path) -> None:
        with pytest.raises(ValidationError):
            validate_upload(tmp_path / "missing.mp3")

    def test_rejects_directory(self, tmp_path) -> None:
        with pytest.raises(ValidationError):
            validate_upload(tmp_path)
