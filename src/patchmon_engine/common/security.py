"""Credential primitives: password hashing, host API credentials, enrollment tokens."""

import asyncio
import base64
import hashlib
import hmac
import secrets

import bcrypt
from fastapi import Request

API_ID_PREFIX = "patchmon_"
ENROLLMENT_KEY_PREFIX = "patchmon_ae_"

PASSWORD_ROUNDS = 12
TOKEN_SECRET_ROUNDS = 10

# bcrypt refuses input longer than this many bytes.
BCRYPT_MAX_BYTES = 72


def _bcrypt_input(plain: str) -> bytes:
    """Bytes handed to bcrypt. Over-long input is digested to a fixed 44 bytes."""
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return base64.b64encode(hashlib.sha256(encoded).digest())
    return encoded


def _hash(plain: str, rounds: int) -> str:
    return bcrypt.hashpw(_bcrypt_input(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _check(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_bcrypt_input(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def hash_password(plain: str, rounds: int = PASSWORD_ROUNDS) -> str:
    return _hash(plain, rounds)


def verify_password(plain: str, hashed: str | None) -> bool:
    return _check(plain, hashed)


async def hash_password_async(plain: str, rounds: int = PASSWORD_ROUNDS) -> str:
    """bcrypt is CPU-bound; run it off the event loop."""
    return await asyncio.to_thread(_hash, plain, rounds)


async def verify_password_async(plain: str, hashed: str | None) -> bool:
    return await asyncio.to_thread(_check, plain, hashed)


def generate_api_credentials() -> tuple[str, str]:
    """Return a fresh (api_id, api_key) pair for a host."""
    api_id = f"{API_ID_PREFIX}{secrets.token_hex(8)}"
    api_key = secrets.token_hex(32)
    return api_id, api_key


def verify_api_key(presented: str, stored: str) -> bool:
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


def generate_enrollment_token() -> tuple[str, str]:
    """Return a fresh (token_key, token_secret) pair for auto-enrollment."""
    token_key = f"{ENROLLMENT_KEY_PREFIX}{secrets.token_hex(16)}"
    token_secret = secrets.token_hex(48)
    return token_key, token_secret


async def hash_token_secret(secret: str, rounds: int = TOKEN_SECRET_ROUNDS) -> str:
    return await asyncio.to_thread(_hash, secret, rounds)


async def verify_token_secret(secret: str, hashed: str) -> bool:
    return await asyncio.to_thread(_check, secret, hashed)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used for session access/refresh tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def get_client_ip(request: Request, trust_proxy: bool = False) -> str:
    """Client address; the first X-Forwarded-For hop only behind a trusted proxy."""
    forwarded = request.headers.get("x-forwarded-for") if trust_proxy else None
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return ""
