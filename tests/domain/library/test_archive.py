"""Tests for archive extraction and blob files."""

import pytest

from stem_library.domain.library.archive import (
    BLOB_PREFIX,
    cleanup_blob_directory,
    create_blob,
    extract_archive,
    extract_member,
    find_member,
)
from stem_library.domain.library.exceptions import (
    ArchiveMemberNotFoundError,
    InvalidArchiveError,
    NotFoundError,
)


def patch_central_header(data: bytes, offset: int, value: int) -> bytes:
    """Overwrite a 2-byte field of the first member in both ZIP headers.

    offset is relative to the central directory header; the local header
    holds the same field two bytes earlier.
    """
    patched = bytearray(data)
    field = value.to_bytes(2, "little")
    local = patched.index(b"PK\x03\x04")
    patched[local + offset - 2 : local + offset] = field
    central = patched.index(b"PK\x01\x02")
    patched[central + offset : central + offset + 2] = field
    return bytes(patched)


def with_compression(data: bytes, method: int) -> bytes:
    """Rewrite the compression method of the first member."""
    return patch_central_header(data, 10, method)


def with_encryption_flag(data: bytes) -> bytes:
    """Mark the first member as encrypted."""
    return patch_central_header(data, 8, 0x1)


class TestFindMember:
    """Tests for find_member lookup order."""

    def test_exact_match_first(self) -> None:
        """An exact path beats a nested one."""
        assert find_member(["x/b.wav", "b.wav"], "b.wav") == "b.wav"

    def test_nested_match(self) -> None:
        """A bare filename finds the file under a common prefix."""
        assert find_member(["out/job/bass.wav"], "bass.wav") == "out/job/bass.wav"

    def test_path_boundary_preferred(self) -> None:
        """A match at a path boundary wins over a plain suffix match."""
        assert find_member(["x/ab.wav", "y/b.wav"], "b.wav") == "y/b.wav"

    def test_plain_suffix_fallback(self) -> None:
        """Without a boundary match the first suffix match is used."""
        assert find_member(["x/ab.wav", "z/cb.wav"], "b.wav") == "x/ab.wav"

    def test_directories_never_match(self) -> None:
        """Directory members are ignored."""
        assert find_member(["a/"], "a/") is None

    def test_no_match(self) -> None:
        """Unknown names return None."""
        assert find_member(["a.wav"], "b.wav") is None

    def test_blank_filename_never_matches(self) -> None:
        """An empty request does not pick the first member."""
        assert find_member(["a.wav", "b.wav"], "") is None
        assert find_member(["a.wav"], "   ") is None


class TestExtractArchive:
    """Tests for extract_archive."""

    def test_directory_entries_skipped(self, make_zip, tmp_path) -> None:
        """An archive with a directory and one file yields one file."""
        data = make_zip({"a/b.wav": b"stem"}, dirs=["a/"])

        files = extract_archive(data, tmp_path)

        assert [f.filename for f in files] == ["a/b.wav"]
        assert files[0].blob.read_bytes() == b"stem"
        assert files[0].blob.path.parent == tmp_path
        assert files[0].blob.path.name.startswith(BLOB_PREFIX)
        assert files[0].blob.path.suffix == ".wav"

    def test_archive_order_kept(self, make_zip, tmp_path) -> None:
        """Files come back in archive order."""
        data = make_zip({"z.wav": b"1", "a.wav": b"2"})

        assert [f.filename for f in extract_archive(data, tmp_path)] == ["z.wav", "a.wav"]

    def test_invalid_archive(self, tmp_path) -> None:
        """Non-ZIP data raises InvalidArchiveError."""
        with pytest.raises(InvalidArchiveError):
            extract_archive(b"not a zip", tmp_path)

    def test_unsupported_compression(self, make_zip, tmp_path) -> None:
        """An unknown compression method is an invalid archive, not a crash."""
        data = with_compression(make_zip({"bass.wav": b"bass"}), 99)

        with pytest.raises(InvalidArchiveError):
            extract_archive(data, tmp_path)

        assert list(tmp_path.iterdir()) == []

    def test_encrypted_member(self, make_zip, tmp_path) -> None:
        """Password-protected members are an invalid archive."""
        data = with_encryption_flag(make_zip({"bass.wav": b"bass"}))

        with pytest.raises(InvalidArchiveError):
            extract_archive(data, tmp_path)

    def test_later_failure_releases_earlier_blobs(self, make_zip, tmp_path) -> None:
        """Files written before an unreadable member are removed again."""
        data = bytearray(make_zip({"a.wav": b"a", "b.wav": b"b"}))
        first = data.index(b"PK\x01\x02")
        second = data.index(b"PK\x01\x02", first + 1)
        data[second + 10 : second + 12] = (99).to_bytes(2, "little")

        with pytest.raises(InvalidArchiveError):
            extract_archive(bytes(data), tmp_path)

        assert list(tmp_path.iterdir()) == []


class TestExtractMember:
    """Tests for extract_member."""

    def test_extracts_single_member(self, make_zip, tmp_path) -> None:
        """Only the requested file is written."""
        data = make_zip({"out/bass.wav": b"bass", "out/drums.wav": b"drums"})

        blob = extract_member(data, "drums.wav", tmp_path)

        assert blob.read_bytes() == b"drums"
        assert blob.filename == "out/drums.wav"
        assert len(list(tmp_path.iterdir())) == 1

    def test_missing_member(self, make_zip, tmp_path) -> None:
        """A missing member is a NotFound error."""
        data = make_zip({"bass.wav": b"bass"})

        with pytest.raises(ArchiveMemberNotFoundError) as exc_info:
            extract_member(data, "vocals.wav", tmp_path)

        assert isinstance(exc_info.value, NotFoundError)
        assert "vocals.wav" in str(exc_info.value)

    def test_invalid_archive(self, tmp_path) -> None:
        """Non-ZIP data raises InvalidArchiveError."""
        with pytest.raises(InvalidArchiveError):
            extract_member(b"garbage", "bass.wav", tmp_path)

    def test_unsupported_compression(self, make_zip, tmp_path) -> None:
        data = with_compression(make_zip({"bass.wav": b"bass"}), 99)

        with pytest.raises(InvalidArchiveError):
            extract_member(data, "bass.wav", tmp_path)


class TestBlobs:
    """Tests for blob handles and cleanup."""

    def test_revoke_deletes_file(self, tmp_path) -> None:
        """Revoking removes the backing file and is idempotent."""
        blob = create_blob(b"data", "bass.wav", tmp_path)
        assert not blob.revoked

        blob.revoke()
        blob.revoke()

        assert blob.revoked
        assert not blob.path.exists()
        with pytest.raises(ValueError):
            blob.read_bytes()

    def test_cleanup_removes_only_blobs(self, tmp_path) -> None:
        """Orphaned blobs are deleted; other files stay."""
        create_blob(b"data", "bass.wav", tmp_path)
        keep = tmp_path / "notes.txt"
        keep.write_text("keep me")

        cleanup_blob_directory(tmp_path)

        assert list(tmp_path.iterdir()) == [keep]

    def test_cleanup_missing_directory(self, tmp_path) -> None:
        """A missing directory is not an error."""
        cleanup_blob_directory(tmp_path / "missing")
