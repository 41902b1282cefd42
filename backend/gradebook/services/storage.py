"""
File storage for file-type answers.

The recorder only talks to the ``FileStore`` contract (save / delete); the
local-disk implementation below writes uploads under a root directory with
sanitized, collision-free names.

Example:
    >>> store = LocalFileStore("uploads")
    >>> stored = store.save(FileUpload("essay.pdf", io.BytesIO(data), "application/pdf"))
    >>> store.delete(stored["path"])
"""

import io
import logging
import mimetypes
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Union

from .. import config
from ..errors import ValidationError

logger = logging.getLogger(__name__)


class FileStorageError(Exception):
    """Raised when the store cannot write or remove a file."""
    pass


@dataclass
class FileUpload:
    """A file answer as received from the caller."""
    filename: str
    content: Union[bytes, BinaryIO]
    mime_type: Optional[str] = None

    def stream(self) -> BinaryIO:
        if isinstance(self.content, (bytes, bytearray)):
            return io.BytesIO(self.content)
        self.content.seek(0)
        return self.content


class FileStore(ABC):
    """Abstract storage contract for uploaded answer files."""

    @abstractmethod
    def save(self, upload: FileUpload, folder: str = "") -> Dict:
        """Persist the upload and return its metadata (name, path, size, mime)."""
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove a stored file; return False when it was already gone."""
        pass


class LocalFileStore(FileStore):
    """
    Store answer files on the local filesystem.

    Args:
        root_dir: Directory under which files are stored.
        max_file_size: Maximum allowed file size in bytes.
    """

    def __init__(self, root_dir: Optional[str] = None, max_file_size: Optional[int] = None):
        self.root_dir = Path(root_dir or config.UPLOAD_DIR).resolve()
        self.max_file_size = max_file_size if max_file_size is not None else config.MAX_UPLOAD_SIZE
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalFileStore initialized with root directory: {self.root_dir}")

    def _file_size(self, file: BinaryIO) -> int:
        current_pos = file.tell()
        file.seek(0, 2)  # Seek to end
        size = file.tell()
        file.seek(current_pos)
        return size

    def save(self, upload: FileUpload, folder: str = "") -> Dict:
        file = upload.stream()
        size = self._file_size(file)
        if size > self.max_file_size:
            raise ValidationError(
                f"File size {size} exceeds maximum allowed size of {self.max_file_size} bytes"
            )

        target_dir = self.root_dir / folder if folder else self.root_dir
        file_path = self._unique_path(target_dir, upload.filename)

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file.seek(0)
            with open(file_path, "wb") as f:
                while chunk := file.read(8192):  # 8KB chunks
                    f.write(chunk)
        except OSError as e:
            error_msg = f"Failed to save file {upload.filename}: {str(e)}"
            logger.error(error_msg)
            raise FileStorageError(error_msg) from e

        logger.debug(f"Saved file to {file_path}")
        return {
            "name": upload.filename,
            "path": str(file_path.relative_to(self.root_dir)),
            "size": size,
            "mime_type": upload.mime_type
            or mimetypes.guess_type(upload.filename)[0]
            or "application/octet-stream",
        }

    def delete(self, path: str) -> bool:
        file_path = (self.root_dir / path).resolve()
        if self.root_dir not in file_path.parents:
            raise FileStorageError(f"Refusing to delete outside of the store: {path}")
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FileStorageError(f"Failed to delete file {path}: {str(e)}") from e
        logger.debug(f"Deleted file {file_path}")
        return True

    def _unique_path(self, directory: Path, filename: str) -> Path:
        safe_name = self.safe_filename(filename)
        file_path = directory / safe_name
        if not file_path.exists():
            return file_path

        name, ext = os.path.splitext(safe_name)
        counter = 1
        while True:
            new_path = directory / f"{name}_{counter}{ext}"
            if not new_path.exists():
                return new_path
            counter += 1

    @staticmethod
    def safe_filename(filename: str) -> str:
        """
        Return a safe version of the filename.

        Example:
            >>> LocalFileStore.safe_filename("My Answer (v2).pdf")
            'My_Answer__v2_.pdf'
        """
        if not filename or not isinstance(filename, str):
            return "unnamed_file"

        keep_chars = (".", "_", "-")
        safe_chars = []
        for c in filename:
            if c.isalnum() or c in keep_chars:
                safe_chars.append(c)
            elif c.isspace() or c in "*/\\:!@#$%^&()+=[]{};',~`|\"<>?":
                safe_chars.append("_")

        safe_name = "".join(safe_chars).strip("_.- ")
        if not safe_name:
            return "unnamed_file"

        max_length = 255
        if len(safe_name) > max_length:
            name, ext = os.path.splitext(safe_name)
            safe_name = f"{name[:max_length - len(ext) - 1]}{ext}"
        return safe_name
