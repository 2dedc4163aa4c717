"""Tests for policy module."""

from __future__ import annotations

import pytest

from hobbs_tracker.errors import AccessDeniedError, NotFoundError, UnauthenticatedError
from hobbs_tracker.models import Actor
from hobbs_tracker.policy import AccessPolicy, HeaderIdentityOracle, StaticIdentityOracle
from hobbs_tracker.storage import StorageManager


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy()


class TestResolve:
    """Test suite for turning an identity oracle into an Actor."""

    def test_resolve_static_identity(self, policy: AccessPolicy) -> None:
        actor = policy.resolve(StaticIdentityOracle("alice", email="alice@example.com"))
        assert actor == Actor(user_id="alice", email="alice@example.com", is_admin=False)

    def test_resolve_admin_flag(self, policy: AccessPolicy) -> None:
        assert policy.resolve(StaticIdentityOracle("root", is_admin=True)).is_admin

    @pytest.mark.parametrize("user_id", [None, ""])
    def test_missing_identity_is_unauthenticated(
        self, policy: AccessPolicy, user_id: str | None
    ) -> None:
        """Verifies requests without an identity never reach the data.

        Business context:
        An anonymous caller must get 401, not an empty fleet that looks
        like a real (empty) account.
        """
        with pytest.raises(UnauthenticatedError):
            policy.resolve(StaticIdentityOracle(user_id))

    def test_admin_status_from_user_directory(
        self, policy: AccessPolicy, storage: StorageManager
    ) -> None:
        storage.save_user("root", is_admin=True)
        actor = policy.resolve(StaticIdentityOracle("root", storage=storage, is_admin=False))
        assert actor.is_admin

    def test_directory_overrides_static_flag(
        self, policy: AccessPolicy, storage: StorageManager
    ) -> None:
        actor = policy.resolve(StaticIdentityOracle("alice", storage=storage, is_admin=True))
        assert actor.is_admin is False


class TestHeaderIdentityOracle:
    """Test suite for reverse-proxy header identity."""

    def test_reads_user_and_email(self, storage: StorageManager) -> None:
        oracle = HeaderIdentityOracle(
            {"X-User-Id": "alice", "X-User-Email": "alice@example.com"}, storage
        )
        assert oracle.current_user() == {"id": "alice", "email": "alice@example.com"}

    def test_blank_header_is_no_user(self, storage: StorageManager) -> None:
        assert HeaderIdentityOracle({"X-User-Id": "  "}, storage).current_user() is None

    def test_missing_email_is_none(self, storage: StorageManager) -> None:
        assert HeaderIdentityOracle({"X-User-Id": "alice"}, storage).current_user() == {
            "id": "alice",
            "email": None,
        }

    def test_custom_header_name(
        self, storage: StorageManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HOBBS_USER_HEADER", "X-Forwarded-User")
        oracle = HeaderIdentityOracle({"X-Forwarded-User": "alice"}, storage)
        assert oracle.current_user() == {"id": "alice", "email": None}

    def test_admin_lookup(self, storage: StorageManager) -> None:
        storage.save_user("root", is_admin=True)
        oracle = HeaderIdentityOracle({"X-User-Id": "root"}, storage)
        assert oracle.is_admin("root")
        assert not oracle.is_admin("alice")


class TestVisibility:
    """Test suite for ownership checks."""

    def test_owner_sees_own(self, policy: AccessPolicy, alice: Actor) -> None:
        assert policy.can_see(alice, "alice")

    def test_owner_cannot_see_foreign(self, policy: AccessPolicy, alice: Actor) -> None:
        assert not policy.can_see(alice, "bob")

    def test_owner_cannot_see_orphans(self, policy: AccessPolicy, alice: Actor) -> None:
        assert not policy.can_see(alice, None)

    def test_admin_sees_everything(self, policy: AccessPolicy, admin: Actor) -> None:
        assert policy.can_see(admin, "bob")
        assert policy.can_see(admin, None)

    def test_ensure_visible_raises_not_found(self, policy: AccessPolicy, alice: Actor) -> None:
        """Verifies foreign records look exactly like missing ones.

        Business context:
        Answering 403 would confirm to a curious owner that a device token
        exists and belongs to somebody else.
        """
        with pytest.raises(NotFoundError, match="Device not found"):
            policy.ensure_visible(alice, "bob", "Device not found")

    def test_require_admin(self, policy: AccessPolicy, alice: Actor, admin: Actor) -> None:
        policy.require_admin(admin)
        with pytest.raises(AccessDeniedError):
            policy.require_admin(alice)
