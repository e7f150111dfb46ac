"""
Access gate: login-time admission decision.

Participants are admitted only from the network address most recently
recorded by any approved supervisor (global latest, not per supervisor).
Supervisors need the approval flag; super-supervisors are always admitted.
Every admitted supervisor login appends a fresh reference point.

Any denial or failure after the identity session exists signs out before
the error reaches the caller, so no half-authenticated session is left.
"""
import logging

from .address import AddressResolver
from .errors import (
    ApprovalPending,
    NetworkError,
    NetworkMismatch,
    NoReferencePoint,
    ProfileMissing,
    StoreError,
)
from .identity import IdentityProvider
from .schemas import Identity, Principal, Profile, ReferencePoint, Role
from .store import RecordStore

logger = logging.getLogger(__name__)


class AccessGate:
    def __init__(self, store: RecordStore, identity: IdentityProvider, resolver: AddressResolver):
        self.store = store
        self.identity = identity
        self.resolver = resolver

    async def authenticate(self, email: str, password: str) -> Principal:
        identity = await self.identity.sign_in(email, password)
        try:
            principal = await self._admit(identity)
        except BaseException as e:
            # includes cancellation: a timed-out login must not keep the session
            logger.warning("Login denied for %s: %s", email, getattr(e, "message", None) or type(e).__name__)
            await self._rollback()
            raise
        if principal.role is not Role.PARTICIPANT:
            await self._record_reference_point(principal.profile)
        logger.info("Login admitted: %s as %s", email, principal.role.value)
        return principal

    async def _admit(self, identity: Identity) -> Principal:
        profile = await self.store.get(Profile, {"user_id": identity.user_id})
        if profile is None:
            raise ProfileMissing()
        role = profile.role
        if role is None:
            raise ProfileMissing("User profile has no role. Please contact the administrator.")
        if role is Role.PARTICIPANT:
            await self._check_participant_network()
        elif role is Role.SUPERVISOR and not profile.admin_approved:
            raise ApprovalPending()
        return Principal(identity=identity, profile=profile, role=role)

    async def latest_reference_point(self) -> ReferencePoint | None:
        points = await self.store.list(ReferencePoint, order="created_at", desc=True, limit=1)
        return points[0] if points else None

    async def _check_participant_network(self) -> None:
        reference = await self.latest_reference_point()
        if reference is None:
            raise NoReferencePoint()
        current = await self.resolver.resolve_public_address()
        if current != reference.ip_address:
            logger.info("Participant address %s does not match reference %s", current, reference.ip_address)
            raise NetworkMismatch()

    async def _record_reference_point(self, profile: Profile) -> None:
        """Best effort: a failure here is logged, never fails the login."""
        try:
            ip = await self.resolver.resolve_public_address()
            await self.store.insert(ReferencePoint, {"admin_id": profile.id, "ip_address": ip})
        except (NetworkError, StoreError) as e:
            logger.error("Could not record reference point for supervisor %s: %s", profile.id, e.message)
            return
        logger.info("Reference point %s recorded for supervisor %s", ip, profile.id)

    async def _rollback(self) -> None:
        try:
            await self.identity.sign_out()
        except Exception as e:
            logger.error("Sign-out after denied login failed: %s", e)

    async def sign_out(self) -> None:
        await self.identity.sign_out()


async def register(identity: IdentityProvider, email: str, password: str, full_name: str,
                   as_supervisor: bool = False) -> Identity:
    """Create an account. Supervisor accounts cannot log in until approved."""
    created = await identity.sign_up(email, password, full_name, as_supervisor)
    logger.info("Registered %s (%s)", email, "supervisor, pending approval" if as_supervisor else "participant")
    return created
