"""Identity provider: Supabase Auth behind a small async interface."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from supabase import AuthApiError, AuthError as ProviderAuthError, Client

from .errors import AuthError, InvalidCredentials
from .schemas import Identity

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Identity:
        """Create an identity session or raise InvalidCredentials."""

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def current_session(self) -> Optional[Identity]:
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str, full_name: str, is_supervisor: bool) -> Identity:
        pass


class SupabaseIdentity(IdentityProvider):
    def __init__(self, client: Client):
        self.client = client

    async def sign_in(self, email: str, password: str) -> Identity:
        try:
            response = await asyncio.to_thread(
                self.client.auth.sign_in_with_password, {"email": email, "password": password}
            )
        except AuthApiError as e:
            logger.info("Sign-in rejected for %s: %s", email, e.message)
            raise InvalidCredentials() from e
        except ProviderAuthError as e:
            logger.error("Auth provider error for %s: %s", email, e.message)
            raise AuthError(f"Login failed: {e.message}") from e
        if not response.user:
            raise InvalidCredentials()
        return Identity(user_id=str(response.user.id), email=response.user.email)

    async def sign_out(self) -> None:
        await asyncio.to_thread(self.client.auth.sign_out)

    async def current_session(self) -> Optional[Identity]:
        session = await asyncio.to_thread(self.client.auth.get_session)
        if session is None or session.user is None:
            return None
        return Identity(user_id=str(session.user.id), email=session.user.email)

    async def sign_up(self, email: str, password: str, full_name: str, is_supervisor: bool) -> Identity:
        # profile row is created by a database trigger from this metadata
        credentials = {
            "email": email,
            "password": password,
            "options": {
                "data": {"full_name": full_name, "is_admin": is_supervisor, "is_student": not is_supervisor}
            },
        }
        try:
            response = await asyncio.to_thread(self.client.auth.sign_up, credentials)
        except ProviderAuthError as e:
            logger.error("Sign-up failed for %s: %s", email, e.message)
            raise AuthError(f"Registration failed: {e.message}") from e
        if not response.user:
            raise AuthError("Registration failed.")
        return Identity(user_id=str(response.user.id), email=response.user.email)
