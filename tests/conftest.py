"""
Pytest configuration and shared fixtures for Hobbs Tracker tests.

This module contains:
- MockFileSystem: In-memory filesystem for testing without actual I/O
- Shared fixtures: storage, service, actors and a seeded fleet
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import pytest

from hobbs_tracker.config import Config
from hobbs_tracker.fleet_service import FleetService
from hobbs_tracker.models import Actor, Device, Plane, Session, SessionStatus
from hobbs_tracker.storage import StorageManager

STORAGE_DIR = "/test/storage"


class MockFileSystem:
    """
    In-memory file system for testing.

    Simulates a file system using dictionaries:
    - _files: dict mapping path -> content (str)
    - _dirs: set of directory paths
    - _fail_reads / _fail_writes: paths whose next I/O raises OSError

    FEATURES:
    - No actual I/O operations
    - Easy to inspect state
    - Failure injection for gateway error paths
    """

    def __init__(self) -> None:
        """
        Initialize empty mock file system.

        Business context: Mock filesystem enables testing storage
        operations, including failed writes, without disk I/O.

        Example:
            >>> fs = MockFileSystem()
            >>> fs.list_files()
            []
        """
        self._files: dict[str, str] = {}
        self._dirs: set[str] = set()
        self._fail_reads: set[str] = set()
        self._fail_writes: set[str] = set()
        self.replace_calls: list[tuple[str, str]] = []

    def exists(self, path: str) -> bool:
        """True if path is a mock file or directory."""
        return path in self._files or path in self._dirs

    def makedirs(self, path: str, exist_ok: bool = False) -> None:
        """
        Create mock directory and parent directories.

        Raises:
            OSError: If directory exists and exist_ok is False,
                or if path is an existing file.
        """
        if path in self._dirs:
            if not exist_ok:
                raise OSError(f"Directory exists: {path}")
            return

        if path in self._files:
            raise OSError(f"Path is a file, not directory: {path}")

        parts = path.rstrip("/").split("/")
        for i in range(1, len(parts) + 1):
            parent = "/".join(parts[:i])
            if parent:
                self._dirs.add(parent)

    def read_text(self, path: str, _encoding: str = "utf-8") -> str:
        """
        Read mock file contents.

        Raises:
            OSError: If reads of path were set to fail.
            FileNotFoundError: If path not in _files.
        """
        if path in self._fail_reads:
            raise OSError(f"Simulated read failure: {path}")
        if path not in self._files:
            raise FileNotFoundError(f"No such file: {path}")
        return self._files[path]

    def write_text(self, path: str, content: str, _encoding: str = "utf-8") -> None:
        """
        Write content to mock file.

        A write of '<file>.tmp' fails when writes of '<file>' were set to
        fail, matching how the storage layer writes atomically.

        Raises:
            OSError: If writes of path (or its target) were set to fail.
        """
        target = path[: -len(".tmp")] if path.endswith(".tmp") else path
        if path in self._fail_writes or target in self._fail_writes:
            raise OSError(f"Simulated write failure: {path}")
        self._files[path] = content

    def replace(self, src: str, dst: str) -> None:
        """
        Move src over dst.

        Raises:
            FileNotFoundError: If src doesn't exist.
        """
        if src not in self._files:
            raise FileNotFoundError(f"No such file: {src}")
        self.replace_calls.append((src, dst))
        self._files[dst] = self._files.pop(src)

    # Test helpers

    def get_file(self, path: str) -> str | None:
        """Get file content, or None if the file does not exist."""
        return self._files.get(path)

    def set_file(self, path: str, content: str) -> None:
        """Create or overwrite a file directly."""
        self._files[path] = content

    def list_files(self) -> list[str]:
        """All file paths, sorted."""
        return sorted(self._files)

    def is_dir(self, path: str) -> bool:
        return path in self._dirs

    def fail_reads(self, path: str) -> None:
        """Make every read of path raise OSError."""
        self._fail_reads.add(path)

    def fail_writes(self, path: str) -> None:
        """Make every write of path raise OSError."""
        self._fail_writes.add(path)

    def heal(self) -> None:
        """Stop injecting failures."""
        self._fail_reads.clear()
        self._fail_writes.clear()


@dataclass
class SeededFleet:
    """
    Two owners with one plane each plus an orphan device.

    alice: plane N123AB with devices dev-a1 (assigned) and dev-a2 (owned)
    bob: plane N999ZZ with device dev-b1 (assigned)
    orphan: dev-orphan, never claimed
    """

    alice_plane: Plane
    bob_plane: Plane
    dev_a1: Device
    dev_a2: Device
    dev_b1: Device
    orphan: Device


@pytest.fixture(autouse=True)
def _reset_config() -> Iterator[None]:
    """Keep Config overrides from leaking between tests."""
    yield
    Config.reset_test_overrides()


@pytest.fixture
def mock_fs() -> MockFileSystem:
    """
    Provide a fresh in-memory filesystem.

    Returns:
        Empty MockFileSystem instance.

    Example:
        >>> def test_storage(mock_fs):
        ...     storage = StorageManager(storage_dir='/test', filesystem=mock_fs)
    """
    return MockFileSystem()


@pytest.fixture
def storage(mock_fs: MockFileSystem) -> StorageManager:
    """StorageManager over the mock filesystem rooted at /test/storage."""
    return StorageManager(storage_dir=STORAGE_DIR, filesystem=mock_fs)


@pytest.fixture
def service(storage: StorageManager) -> FleetService:
    """FleetService wired to the mock-backed storage."""
    return FleetService(storage=storage)


@pytest.fixture
def alice() -> Actor:
    return Actor(user_id="alice", email="alice@example.com")


@pytest.fixture
def bob() -> Actor:
    return Actor(user_id="bob", email="bob@example.com")


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="root", email="ops@example.com", is_admin=True)


def make_device(
    token: str,
    user_id: str | None = None,
    plane_id: str | None = None,
    name: str | None = None,
    created_at: str = "2026-01-01T00:00:00+00:00",
) -> Device:
    """Device row with fixed timestamps."""
    return Device(
        device_uuid=token,
        user_id=user_id,
        plane_id=plane_id,
        name=name,
        created_at=created_at,
        updated_at=created_at,
        last_seen=created_at,
    )


def make_session(
    session_id: str,
    token: str,
    start: str,
    run_seconds: int,
    status: SessionStatus = SessionStatus.CLOSED,
    msg_id: str | None = None,
    last_update: str | None = None,
) -> Session:
    """Session row with an explicit id and status."""
    return Session(
        id=session_id,
        device_uuid=token,
        session_start=start,
        run_seconds=run_seconds,
        last_update=last_update,
        status=status,
        msg_id=msg_id or f"msg-{session_id}",
        created_at=start,
        updated_at=start,
    )


@pytest.fixture
def seeded(storage: StorageManager) -> SeededFleet:
    """
    Populate storage with two owners' fleets and sessions.

    Sessions:
        dev-a1: closed 3600, closed 7200, open 1800
        dev-a2: closed 600
        dev-b1: closed 900
    """
    alice_plane = Plane(
        id="plane-a",
        user_id="alice",
        tail_number="N123AB",
        model="172S",
        manufacturer="Cessna",
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
    )
    bob_plane = Plane(
        id="plane-b",
        user_id="bob",
        tail_number="N999ZZ",
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
    )
    storage.create_plane(alice_plane)
    storage.create_plane(bob_plane)

    dev_a1 = make_device(
        "dev-a1-0000-0000", "alice", "plane-a", name="Panel unit", created_at="2026-01-02T00:00:00+00:00"
    )
    dev_a2 = make_device("dev-a2-0000-0000", "alice", created_at="2026-01-03T00:00:00+00:00")
    dev_b1 = make_device("dev-b1-0000-0000", "bob", "plane-b")
    orphan = make_device("dev-orphan-00000")
    for device in (dev_a1, dev_a2, dev_b1, orphan):
        storage.save_device(device)

    for session in (
        make_session("s1", dev_a1.device_uuid, "2026-02-01T10:00:00+00:00", 3600),
        make_session("s2", dev_a1.device_uuid, "2026-02-02T10:00:00+00:00", 7200),
        make_session(
            "s3",
            dev_a1.device_uuid,
            "2026-02-03T10:00:00+00:00",
            1800,
            status=SessionStatus.OPEN,
            last_update="2026-02-03T10:30:00+00:00",
        ),
        make_session("s4", dev_a2.device_uuid, "2026-01-15T08:00:00+00:00", 600),
        make_session("s5", dev_b1.device_uuid, "2026-02-01T09:00:00+00:00", 900),
    ):
        storage.save_session(session)

    return SeededFleet(
        alice_plane=alice_plane,
        bob_plane=bob_plane,
        dev_a1=dev_a1,
        dev_a2=dev_a2,
        dev_b1=dev_b1,
        orphan=orphan,
    )
