"""Tests for library domain models."""

from datetime import datetime, timezone

from stem_library.domain.library.models import (
    BlobHandle,
    ExtractedFile,
    LayerInfo,
    LibraryEntry,
    local_source_ref,
)


def make_entry(**overrides) -> LibraryEntry:
    fields = {
        "id": "1700000000000",
        "source_ref": "https://youtu.be/abc123",
        "title": "Song",
        "thumbnail_ref": "https://img.youtube.com/vi/abc123/maxresdefault.jpg",
        "added_at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        "layers": [LayerInfo(id="bass", name="Bass", icon="Volume2", volume=40)],
        "extracted_files": [ExtractedFile(filename="stems/bass.wav")],
        "processed": True,
    }
    fields.update(overrides)
    return LibraryEntry(**fields)


class TestLibraryEntry:
    """Tests for LibraryEntry."""

    def test_source_kind(self) -> None:
        """Links are remote; local markers are uploads."""
        assert make_entry().is_remote
        upload = make_entry(source_ref=local_source_ref("song.mp3"))
        assert upload.is_local_file
        assert not upload.is_remote
        assert upload.source_ref == "local:song.mp3"

    def test_to_dict_uses_persisted_keys(self) -> None:
        """Serialization uses the camelCase record keys and drops blobs."""
        entry = make_entry(cache_key="k1")
        entry.extracted_files[0].blob = BlobHandle("/tmp/blob-x.wav", "stems/bass.wav")

        data = entry.to_dict()

        assert data == {
            "id": "1700000000000",
            "url": "https://youtu.be/abc123",
            "title": "Song",
            "thumbnail": "https://img.youtube.com/vi/abc123/maxresdefault.jpg",
            "addedAt": "2024-01-02T03:04:05+00:00",
            "layers": [{"id": "bass", "name": "Bass", "icon": "Volume2", "volume": 40}],
            "files": [{"filename": "stems/bass.wav"}],
            "cacheKey": "k1",
            "processed": True,
        }

    def test_from_dict_accepts_z_suffix(self) -> None:
        """Timestamps written with a Z suffix load as UTC."""
        entry = LibraryEntry.from_dict(
            {
                "id": "1",
                "url": "local:song.mp3",
                "title": "song.mp3",
                "addedAt": "2024-01-02T03:04:05.000Z",
                "files": [{"filename": "bass.wav"}, {}],
            }
        )

        assert entry.added_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert entry.filenames == ["bass.wav"]
        assert entry.extracted_files[0].blob is None
        assert entry.cache_key is None
        assert entry.processed is False

    def test_from_dict_naive_timestamp(self) -> None:
        """Naive timestamps are assumed to be UTC."""
        entry = LibraryEntry.from_dict(
            {"id": "1", "url": "https://youtu.be/x", "addedAt": "2024-01-02T03:04:05"}
        )

        assert entry.added_at.tzinfo == timezone.utc

    def test_find_file(self) -> None:
        """find_file matches exact filenames only."""
        entry = make_entry()

        assert entry.find_file("stems/bass.wav") is entry.extracted_files[0]
        assert entry.find_file("bass.wav") is None


class TestExtractedFile:
    """Tests for ExtractedFile."""

    def test_release_revokes_blob(self, tmp_path) -> None:
        """Releasing deletes the blob and forgets it."""
        path = tmp_path / "blob-1.wav"
        path.write_bytes(b"x")
        extracted = ExtractedFile(filename="bass.wav", blob=BlobHandle(path, "bass.wav"))
        assert extracted.is_available

        extracted.release()

        assert extracted.blob is None
        assert not extracted.is_available
        assert not path.exists()

    def test_missing_backing_file_not_available(self, tmp_path) -> None:
        """A blob whose file vanished counts as unavailable."""
        extracted = ExtractedFile(
            filename="bass.wav", blob=BlobHandle(tmp_path / "gone.wav", "bass.wav")
        )

        assert not extracted.is_available
