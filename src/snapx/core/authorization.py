"""Owner/guest capability checks.

A principal is just the identity string resolved by the authentication
layer. Its capability on a collection follows from comparing that string
with the collection's stored owner.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from snapx.errors import Forbidden

if TYPE_CHECKING:
    from snapx.storage.models import Collection

logger = logging.getLogger(__name__)


class Capability(StrEnum):
    OWNER = "owner"
    GUEST = "guest"


def capability_for(collection: Collection, principal_id: str | None) -> Capability:
    """Return what ``principal_id`` may do with ``collection``."""
    if principal_id is not None and principal_id == collection.owner_id:
        return Capability.OWNER
    return Capability.GUEST


def ensure_owner(collection: Collection, principal_id: str | None, action: str) -> None:
    """Raise Forbidden unless ``principal_id`` owns ``collection``."""
    if capability_for(collection, principal_id) is not Capability.OWNER:
        logger.warning("Rejected %s on collection %s by non-owner %s", action, collection.id, principal_id)
        raise Forbidden(f"Unauthorized: only the organizer can {action}")
