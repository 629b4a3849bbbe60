"""TOTP and one-time backup codes for two-factor authentication."""

import json
import secrets
import string

import pyotp
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.auth.models import UserModel

TOTP_VALID_WINDOW = 2
BACKUP_CODE_COUNT = 10
BACKUP_CODE_LENGTH = 6
ISSUER_NAME = "PatchMon"

_BACKUP_ALPHABET = string.ascii_uppercase + string.digits


def generate_tfa_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, username: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=username, issuer_name=ISSUER_NAME)


def verify_totp(secret: str | None, token: str) -> bool:
    """Accept the current 30s step and two steps either side for clock skew."""
    if not secret or not token:
        return False
    return pyotp.TOTP(secret).verify(token, valid_window=TOTP_VALID_WINDOW)


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    return [
        "".join(secrets.choice(_BACKUP_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
        for _ in range(count)
    ]


def encode_backup_codes(codes: list[str]) -> str:
    return json.dumps(codes)


def decode_backup_codes(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        codes = json.loads(raw)
    except ValueError:
        return []
    return [c for c in codes if isinstance(c, str)]


async def consume_backup_code(session: AsyncSession, user: UserModel, code: str) -> bool:
    """Remove ``code`` from the user's backup codes if present.

    The removal is a conditional UPDATE on the exact stored value, so of two
    racing requests presenting the same code only one sees a row updated.
    """
    stored = user.tfa_backup_codes
    codes = decode_backup_codes(stored)
    normalized = code.strip().upper()
    if normalized not in codes:
        return False

    remaining = [c for c in codes if c != normalized]
    new_value = encode_backup_codes(remaining)
    result = await session.execute(
        update(UserModel)
        .where(UserModel.id == user.id, UserModel.tfa_backup_codes == stored)
        .values(tfa_backup_codes=new_value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    user.tfa_backup_codes = new_value
    return True


async def verify_second_factor(session: AsyncSession, user: UserModel, token: str) -> bool:
    """Backup code first, then TOTP."""
    if await consume_backup_code(session, user, token):
        return True
    return verify_totp(user.tfa_secret, token)
