"""Test cases for the local file store."""

import io

import pytest

from gradebook.errors import ValidationError
from gradebook.services.storage import FileStorageError, FileUpload, LocalFileStore


@pytest.fixture
def store(tmp_path):
    return LocalFileStore(str(tmp_path / "files"), max_file_size=64)


class TestSafeFilename:
    """Test cases for filename sanitizing."""

    def test_special_characters(self):
        """Test separators and punctuation become underscores."""
        assert LocalFileStore.safe_filename("My Answer (v2).pdf") == "My_Answer__v2_.pdf"

    def test_path_traversal(self):
        """Test directory parts cannot escape the store."""
        assert "/" not in LocalFileStore.safe_filename("../../etc/passwd")

    def test_empty(self):
        """Test empty or unusable names get a placeholder."""
        assert LocalFileStore.safe_filename("") == "unnamed_file"
        assert LocalFileStore.safe_filename("???") == "unnamed_file"

    def test_long_name_keeps_extension(self):
        """Test long names are cut to 255 characters keeping the extension."""
        name = LocalFileStore.safe_filename("a" * 300 + ".txt")
        assert len(name) <= 255
        assert name.endswith(".txt")


class TestSave:
    """Test cases for saving uploads."""

    def test_save_returns_metadata(self, store):
        """Test saved files report name, relative path, size and type."""
        stored = store.save(FileUpload("answer.txt", b"forty-two"), folder="assignment_7")

        assert stored["name"] == "answer.txt"
        assert stored["path"] == "assignment_7/answer.txt"
        assert stored["size"] == 9
        assert stored["mime_type"] == "text/plain"
        assert (store.root_dir / stored["path"]).read_bytes() == b"forty-two"

    def test_stream_content(self, store):
        """Test file-like content is accepted."""
        stored = store.save(FileUpload("data.bin", io.BytesIO(b"\x00\x01"), "application/x-custom"))
        assert stored["size"] == 2
        assert stored["mime_type"] == "application/x-custom"

    def test_names_do_not_collide(self, store):
        """Test a second file with the same name gets a numbered name."""
        first = store.save(FileUpload("a.txt", b"1"))
        second = store.save(FileUpload("a.txt", b"2"))
        assert first["path"] == "a.txt"
        assert second["path"] == "a_1.txt"

    def test_too_large(self, store):
        """Test files above the limit are refused."""
        with pytest.raises(ValidationError):
            store.save(FileUpload("big.txt", b"x" * 65))


class TestDelete:
    """Test cases for removing files."""

    def test_delete(self, store):
        """Test a stored file can be removed once."""
        stored = store.save(FileUpload("a.txt", b"1"))
        assert store.delete(stored["path"]) is True
        assert store.delete(stored["path"]) is False

    def test_delete_outside_root(self, store):
        """Test paths escaping the root are refused."""
        with pytest.raises(FileStorageError):
            store.delete("../outside.txt")
