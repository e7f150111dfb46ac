"""Public network address lookup (ipify-style JSON endpoint)."""
import asyncio
import logging
from abc import ABC, abstractmethod

import requests

from .config import DEFAULT_IP_LOOKUP_TIMEOUT, DEFAULT_IP_LOOKUP_URL
from .errors import NetworkError

logger = logging.getLogger(__name__)


class AddressResolver(ABC):
    @abstractmethod
    async def resolve_public_address(self) -> str:
        """Return the caller's public address or raise NetworkError."""


class HttpAddressResolver(AddressResolver):
    def __init__(self, url: str = DEFAULT_IP_LOOKUP_URL, timeout: float = DEFAULT_IP_LOOKUP_TIMEOUT,
                 session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _fetch(self) -> str:
        r = self.session.get(self.url, timeout=self.timeout)
        r.raise_for_status()
        ip = r.json()["ip"]
        if not isinstance(ip, str) or not ip.strip():
            raise ValueError(f"Bad address in lookup response: {ip!r}")
        return ip.strip()

    async def resolve_public_address(self) -> str:
        try:
            ip = await asyncio.to_thread(self._fetch)
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error("Address lookup via %s failed: %s", self.url, e)
            raise NetworkError() from e
        logger.debug("Resolved public address %s", ip)
        return ip
