"""Supervisor applications: list pending/approved supervisors and set the approval flag."""
import logging
from typing import List

from .errors import ProfileMissing
from .schemas import Profile
from .store import RecordStore

logger = logging.getLogger(__name__)


async def list_applications(store: RecordStore) -> List[Profile]:
    """Non-super supervisor profiles, newest first. Pull on demand; nothing polls."""
    return await store.list(Profile, {"is_admin": True, "is_super_admin": False}, order="created_at", desc=True)


async def set_approval(store: RecordStore, profile_id: str, approved: bool) -> Profile:
    rows = await store.update(Profile, {"id": profile_id, "is_admin": True}, {"admin_approved": approved})
    if not rows:
        raise ProfileMissing(f"No supervisor profile with id {profile_id}.")
    logger.info("Supervisor %s %s", profile_id, "approved" if approved else "revoked")
    return rows[0]
