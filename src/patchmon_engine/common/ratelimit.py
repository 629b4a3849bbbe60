"""Request rate limiting (slowapi), keyed on client IP."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from patchmon_engine.common.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[lambda: get_settings().rate_limit_default],
)


def auth_limit() -> str:
    return get_settings().rate_limit_auth


def agent_limit() -> str:
    return get_settings().rate_limit_agent
