"""
Device assignment state machine for Hobbs Tracker.

PURPOSE: Legal moves between orphan, owned and assigned device states.
AI CONTEXT: Every ownership or plane change on a Device goes through here.

STATES (see DeviceState):
    ORPHAN ──claim──▶ OWNED ──assign_plane──▶ ASSIGNED
       ▲                │ ▲                       │
       └─release_owner──┘ └─────unassign_plane────┘

    transfer_owner: any state ──▶ OWNED (new owner, plane cleared)
    rename: any state ──▶ same state

PURITY:
Transitions never mutate their input. They return a new Device built with
dataclasses.replace(), so a rejected transition leaves the caller's object
(and the stored row) exactly as it was.

AUTHORIZATION:
- claim, transfer_owner, release_owner: administrators only
- assign_plane, unassign_plane, rename: device owner or administrator
- A non-owner non-admin gets NotFoundError, never a hint the device exists
"""

from __future__ import annotations

import logging
from dataclasses import replace

from .errors import OwnershipMismatchError, ValidationFailureError
from .models import Actor, Device, DeviceState, Plane, now_iso
from .policy import AccessPolicy

__all__ = ["DeviceAssignmentMachine"]

logger = logging.getLogger(__name__)


class DeviceAssignmentMachine:
    """
    Pure transition functions over Device.

    Business context: Devices appear as orphans the first time they phone
    home. An administrator hands them to an owner, and the owner then mounts
    them on one of their own planes. Keeping plane and owner consistent is
    what lets per-plane flight time be trusted.

    The machine holds no state of its own; one instance can be shared.
    """

    def __init__(self, policy: AccessPolicy | None = None) -> None:
        self._policy = policy or AccessPolicy()

    def claim(self, actor: Actor, device: Device, user_id: str) -> Device:
        """
        Give an orphan device its first owner.

        Args:
            actor: Must be an administrator.
            device: Device currently in ORPHAN state.
            user_id: New owner.

        Returns:
            New Device in OWNED state.

        Raises:
            AccessDeniedError: If actor is not an administrator.
            ValidationFailureError: If the device already has an owner or
                user_id is blank.
        """
        self._policy.require_admin(actor)
        owner = _require_user_id(user_id)
        if device.state is not DeviceState.ORPHAN:
            raise ValidationFailureError(
                f"Device {device.short_token} is already owned; transfer it instead"
            )
        return self._apply(device, user_id=owner, plane_id=None)

    def transfer_owner(self, actor: Actor, device: Device, user_id: str) -> Device:
        """
        Move a device to a different owner.

        The plane reference is cleared because the old plane belongs to the
        old owner.

        Raises:
            AccessDeniedError: If actor is not an administrator.
            ValidationFailureError: If user_id is blank.
        """
        self._policy.require_admin(actor)
        owner = _require_user_id(user_id)
        return self._apply(device, user_id=owner, plane_id=None)

    def assign_plane(self, actor: Actor, device: Device, plane: Plane) -> Device:
        """
        Mount a device on a plane.

        Args:
            actor: Device owner or administrator.
            device: Device in OWNED or ASSIGNED state.
            plane: Target plane; must belong to the device's owner.

        Returns:
            New Device in ASSIGNED state.

        Raises:
            NotFoundError: If actor may not see the device or the plane.
            ValidationFailureError: If the device is an orphan.
            OwnershipMismatchError: If plane and device owners differ.
        """
        self._policy.ensure_visible(actor, device.user_id, f"Device not found: {device.device_uuid}")
        self._policy.ensure_visible(actor, plane.user_id, f"Plane not found: {plane.id}")
        if device.state is DeviceState.ORPHAN:
            raise ValidationFailureError(
                f"Device {device.short_token} has no owner and cannot be assigned to a plane"
            )
        if plane.user_id != device.user_id:
            raise OwnershipMismatchError(
                f"Plane {plane.tail_number} and device {device.short_token} belong to different owners"
            )
        updated = self._apply(device, plane_id=plane.id)
        updated.plane = plane
        return updated

    def unassign_plane(self, actor: Actor, device: Device) -> Device:
        """
        Take a device off its plane, keeping the owner.

        Unassigning a device that has no plane is a no-op transition.

        Raises:
            NotFoundError: If actor may not see the device.
        """
        self._policy.ensure_visible(actor, device.user_id, f"Device not found: {device.device_uuid}")
        return self._apply(device, plane_id=None)

    def release_owner(self, actor: Actor, device: Device) -> Device:
        """
        Return a device to the orphan pool.

        Raises:
            AccessDeniedError: If actor is not an administrator.
        """
        self._policy.require_admin(actor)
        return self._apply(device, user_id=None, plane_id=None)

    def rename(self, actor: Actor, device: Device, name: str | None) -> Device:
        """
        Set or clear the display name. Blank names are stored as None.

        Raises:
            NotFoundError: If actor may not see the device.
        """
        self._policy.ensure_visible(actor, device.user_id, f"Device not found: {device.device_uuid}")
        cleaned = name.strip() if name else ""
        return self._apply(device, name=cleaned or None)

    def _apply(self, device: Device, **changes: str | None) -> Device:
        updated = replace(device, updated_at=now_iso(), **changes)
        if "plane_id" in changes:
            updated.plane = None
        if device.state is not updated.state:
            logger.info(
                f"Device {device.short_token}: {device.state.value} -> {updated.state.value}"
            )
        return updated


def _require_user_id(user_id: str) -> str:
    owner = (user_id or "").strip()
    if not owner:
        raise ValidationFailureError("Owner user id is required")
    return owner
