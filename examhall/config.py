"""Environment-driven settings. Values come from .env (python-dotenv) or the process environment."""
import logging
import os
from dataclasses import dataclass
from enum import Enum

from dotenv import load_dotenv

load_dotenv()

DEFAULT_IP_LOOKUP_URL = "https://api.ipify.org?format=json"
DEFAULT_IP_LOOKUP_TIMEOUT = 10.0


class EligibilityPolicy(str, Enum):
    """Which existing attempt records block a second start."""

    BLOCK_ON_ANY_RESULT = "block_on_any_result"
    BLOCK_ON_COMPLETED_ONLY = "block_on_completed_only"


@dataclass(frozen=True)
class Settings:
    supabase_url: str | None
    supabase_key: str | None
    ip_lookup_url: str = DEFAULT_IP_LOOKUP_URL
    ip_lookup_timeout: float = DEFAULT_IP_LOOKUP_TIMEOUT
    eligibility_policy: EligibilityPolicy = EligibilityPolicy.BLOCK_ON_ANY_RESULT
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls) -> "Settings":
        policy = os.environ.get("ELIGIBILITY_POLICY", EligibilityPolicy.BLOCK_ON_ANY_RESULT.value)
        try:
            eligibility_policy = EligibilityPolicy(policy.strip().lower())
        except ValueError:
            raise ValueError(
                f"ELIGIBILITY_POLICY must be one of {[p.value for p in EligibilityPolicy]}, got {policy!r}"
            ) from None
        level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
        return cls(
            supabase_url=os.environ.get("SUPABASE_URL"),
            supabase_key=os.environ.get("SUPABASE_KEY"),
            ip_lookup_url=os.environ.get("IP_LOOKUP_URL", DEFAULT_IP_LOOKUP_URL),
            ip_lookup_timeout=float(os.environ.get("IP_LOOKUP_TIMEOUT", DEFAULT_IP_LOOKUP_TIMEOUT)),
            eligibility_policy=eligibility_policy,
            log_level=getattr(logging, level_name, logging.INFO),
        )
