"""
Access policy gate for Hobbs Tracker.

PURPOSE: Turn an identity oracle into an Actor and answer "may this actor do that?".
AI CONTEXT: The only place that decides owner vs administrator access.

CAPABILITY LEVELS:
- owner: sees and mutates only records whose user_id equals theirs
- administrator: sees everything, may claim/transfer/release devices

ERROR SEMANTICS:
- No identity at all -> UnauthenticatedError
- Record owned by someone else -> NotFoundError (existence is not leaked)
- Admin-only operation by a non-admin -> AccessDeniedError

IDENTITY ORACLES:
Authentication itself lives outside this package. An oracle only reports who
is calling and whether that user is an administrator:
- HeaderIdentityOracle: trusted reverse-proxy headers + the user directory
- StaticIdentityOracle: fixed identity, used by the CLI's --user option

USAGE:
    policy = AccessPolicy()
    actor = policy.resolve(HeaderIdentityOracle(request.headers, storage))
    policy.ensure_visible(actor, plane.user_id, "Plane not found")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

from .config import Config
from .errors import AccessDeniedError, NotFoundError, UnauthenticatedError
from .models import Actor

if TYPE_CHECKING:
    from .storage import StorageManager

__all__ = [
    "AccessPolicy",
    "HeaderIdentityOracle",
    "IdentityOracle",
    "StaticIdentityOracle",
]

logger = logging.getLogger(__name__)


class IdentityOracle(Protocol):
    """
    Protocol for the external identity provider.

    Business context: Sign-in and token handling belong to the hosting
    platform. The tracker only needs the current user and one boolean.
    """

    def current_user(self) -> dict[str, Any] | None:
        """
        Get the authenticated user.

        Returns:
            Dict with 'id' and optional 'email', or None when nobody is
            signed in.
        """
        ...

    def is_admin(self, user_id: str) -> bool:
        """
        Check administrator status for a user.

        Returns:
            True if the user is listed as an administrator.
        """
        ...


class AccessPolicy:
    """
    Stateless ownership and administrator checks.

    Business context: Owners must never see another owner's planes, devices
    or sessions, and must not learn that those records exist. Administrators
    need the whole fleet to hand devices out.
    """

    def resolve(self, oracle: IdentityOracle) -> Actor:
        """
        Build the request's Actor from an identity oracle.

        Administrator status is looked up exactly once here; every later
        check reads it from the Actor.

        Raises:
            UnauthenticatedError: If the oracle reports no user.
        """
        user = oracle.current_user()
        if not user or not user.get("id"):
            raise UnauthenticatedError("Authentication required")
        user_id = str(user["id"])
        return Actor(user_id=user_id, email=user.get("email"), is_admin=oracle.is_admin(user_id))

    def can_see(self, actor: Actor, owner_id: str | None) -> bool:
        """True if actor is an administrator or owns the record."""
        return actor.is_admin or (owner_id is not None and owner_id == actor.user_id)

    def ensure_visible(self, actor: Actor, owner_id: str | None, message: str = "Not found") -> None:
        """
        Raise NotFoundError unless actor may see a record owned by owner_id.

        Args:
            actor: Acting identity.
            owner_id: The record's user_id (None for orphan devices).
            message: Message for the NotFoundError.
        """
        if not self.can_see(actor, owner_id):
            raise NotFoundError(message)

    def require_admin(self, actor: Actor) -> None:
        """
        Raise AccessDeniedError unless actor is an administrator.

        Business context: Bulk enumeration and ownership changes are
        operator tasks.
        """
        if not actor.is_admin:
            logger.warning(f"Admin-only operation refused for {actor.user_id}")
            raise AccessDeniedError("Administrator access required")


class HeaderIdentityOracle:
    """
    Identity from trusted reverse-proxy headers.

    The proxy in front of the dashboard authenticates the user and forwards
    the id (and optionally the email). Administrator status comes from the
    user directory in storage.
    """

    def __init__(self, headers: Mapping[str, str], storage: StorageManager) -> None:
        self._headers = headers
        self._storage = storage

    def current_user(self) -> dict[str, Any] | None:
        user_id = (self._headers.get(Config.get_user_header()) or "").strip()
        if not user_id:
            return None
        email = (self._headers.get(Config.get_email_header()) or "").strip() or None
        return {"id": user_id, "email": email}

    def is_admin(self, user_id: str) -> bool:
        return self._storage.is_admin(user_id)


class StaticIdentityOracle:
    """
    Fixed identity for command-line use.

    If storage is given, administrator status is read from the user
    directory; otherwise the constructor's is_admin flag is used.
    """

    def __init__(
        self,
        user_id: str | None,
        email: str | None = None,
        storage: StorageManager | None = None,
        is_admin: bool = False,
    ) -> None:
        self._user_id = user_id
        self._email = email
        self._storage = storage
        self._is_admin = is_admin

    def current_user(self) -> dict[str, Any] | None:
        if not self._user_id:
            return None
        return {"id": self._user_id, "email": self._email}

    def is_admin(self, user_id: str) -> bool:
        if self._storage is not None:
            return self._storage.is_admin(user_id)
        return self._is_admin
