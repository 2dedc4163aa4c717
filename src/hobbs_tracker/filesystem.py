"""
FileSystem abstraction for Hobbs Tracker.

PURPOSE: Injectable file system interface for testability.
AI CONTEXT: Allows the JSON gateway to run against memory in unit tests.

DESIGN:
- Protocol defines the interface
- RealFileSystem uses actual os operations
- MockFileSystem in tests/conftest.py stores data in memory for tests

ATOMIC WRITES:
The storage layer writes to '<file>.tmp' and then calls replace(), so a
crashed or failed write never leaves a half-written data file behind.

USAGE:
    # Production
    storage = StorageManager(filesystem=RealFileSystem())

    # Tests (MockFileSystem from conftest.py)
    storage = StorageManager(storage_dir="/test", filesystem=mock_fs)
"""

from __future__ import annotations

import os
from typing import Protocol

__all__ = ["FileSystem", "RealFileSystem"]


class FileSystem(Protocol):
    """
    Protocol for file system operations.

    All paths are strings. Implementations include RealFileSystem for
    production and MockFileSystem for testing.

    Business context: Plane, device and session registries live in JSON
    files. Routing every file touch through this protocol lets tests
    exercise the persistence gateway, including its failure paths,
    without a disk.
    """

    def exists(self, path: str) -> bool:
        """
        Check if path exists (file or directory).

        Args:
            path: Path to check.

        Returns:
            True if the path exists. Never raises.

        Example:
            >>> fs.exists('/data/devices.json')
            True
        """
        ...

    def makedirs(self, path: str, exist_ok: bool = False) -> None:
        """
        Create directory and all parent directories.

        Args:
            path: Directory to create.
            exist_ok: If True, don't raise if directory exists.

        Raises:
            OSError: If directory exists and exist_ok is False.

        Example:
            >>> fs.makedirs('/data', exist_ok=True)
        """
        ...

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        """
        Read file contents as text.

        Args:
            path: File to read.
            encoding: Text encoding (default utf-8).

        Returns:
            File contents as a string.

        Raises:
            FileNotFoundError: If file doesn't exist.
            OSError: On any other read failure.
        """
        ...

    def write_text(self, path: str, content: str, encoding: str = "utf-8") -> None:
        """
        Write text to file, overwriting existing content.

        Args:
            path: File to write.
            content: String content.
            encoding: Text encoding (default utf-8).

        Raises:
            PermissionError: If file is read-only.
            OSError: On any other write failure.
        """
        ...

    def replace(self, src: str, dst: str) -> None:
        """
        Atomically move src over dst.

        Business context: Final step of every gateway write. Either the
        old file or the complete new one is visible, never a mix.

        Args:
            src: Path of the freshly written temporary file.
            dst: Path of the data file to replace.

        Raises:
            FileNotFoundError: If src doesn't exist.
            OSError: If the move fails.

        Example:
            >>> fs.replace('/data/devices.json.tmp', '/data/devices.json')
        """
        ...


class RealFileSystem:
    """
    Real file system implementation using the os module.

    Business context: Used in production to keep the fleet registries on
    disk. Each method delegates directly to the corresponding os or
    built-in function.
    """

    def exists(self, path: str) -> bool:  # pragma: no cover
        """Delegate to os.path.exists()."""
        return os.path.exists(path)

    def makedirs(self, path: str, exist_ok: bool = False) -> None:  # pragma: no cover
        """Delegate to os.makedirs()."""
        os.makedirs(path, exist_ok=exist_ok)

    def read_text(self, path: str, encoding: str = "utf-8") -> str:  # pragma: no cover
        """
        Read file contents from disk as text.

        Args:
            path: File to read.
            encoding: Text encoding (default utf-8).

        Returns:
            File contents as a string.

        Raises:
            FileNotFoundError: If file doesn't exist.
        """
        with open(path, encoding=encoding) as f:
            return f.read()

    def write_text(
        self, path: str, content: str, encoding: str = "utf-8"
    ) -> None:  # pragma: no cover
        """
        Write text content to a file on disk.

        Args:
            path: File to write.
            content: String content.
            encoding: Text encoding (default utf-8).

        Raises:
            PermissionError: If file or directory is not writable.
        """
        with open(path, "w", encoding=encoding) as f:
            f.write(content)

    def replace(self, src: str, dst: str) -> None:  # pragma: no cover
        """
        Atomically replace dst with src.

        Delegates to os.replace(), which is atomic when both paths are on
        the same filesystem (always true for '<file>.tmp' siblings).
        """
        os.replace(src, dst)
