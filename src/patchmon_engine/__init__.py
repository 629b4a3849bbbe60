"""PatchMon-Engine: patch-management backend for fleets of Linux hosts."""

from patchmon_engine.common.security import (
    generate_api_credentials,
    generate_enrollment_token,
    hash_password,
    verify_password,
)

__all__ = [
    "generate_api_credentials",
    "generate_enrollment_token",
    "hash_password",
    "verify_password",
]
__version__ = "1.2.8"
