"""Auto-enrollment tokens: scoped, rate-limited credentials for self-registering hosts."""

import ipaddress
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from patchmon_engine.common.config import PatchmonSettings
from patchmon_engine.common.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PatchmonError,
    PermissionDeniedError,
    RateLimitError,
    ValidationFailedError,
)
from patchmon_engine.common.models import as_utc, utcnow
from patchmon_engine.common.security import (
    generate_enrollment_token,
    hash_token_secret,
    verify_token_secret,
)
from patchmon_engine.enrollment.models import AutoEnrollmentTokenModel
from patchmon_engine.hosts.models import HostGroupModel, HostModel
from patchmon_engine.hosts.service import HostService

logger = logging.getLogger(__name__)

MAX_BULK_HOSTS = 50
INTEGRATION_TYPE = "proxmox-lxc"


def ip_allowed(client_ip: str, allowed_ranges: list[str]) -> bool:
    """CIDR containment; a bare address is a single-host network."""
    if not allowed_ranges:
        return True
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    for entry in allowed_ranges:
        try:
            network = ipaddress.ip_network(entry.strip(), strict=False)
        except ValueError:
            logger.warning("Ignoring malformed allowed IP range %r", entry)
            continue
        if address.version == network.version and address in network:
            return True
    return False


def today_utc() -> str:
    return utcnow().date().isoformat()


class EnrollmentService:
    """Token administration and the enrollment operations those tokens authorise."""

    def __init__(self, settings: PatchmonSettings, hosts: HostService):
        self.settings = settings
        self.hosts = hosts

    # ── Admin ──

    async def _validate_group(self, session: AsyncSession, group_id: str | None) -> HostGroupModel | None:
        if not group_id:
            return None
        group = await session.get(HostGroupModel, group_id)
        if group is None:
            raise ValidationFailedError("Host group not found")
        return group

    async def create_token(
        self,
        session: AsyncSession,
        token_name: str,
        created_by_user_id: str | None = None,
        max_hosts_per_day: int = 100,
        allowed_ip_ranges: list[str] | None = None,
        default_host_group_id: str | None = None,
        expires_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[AutoEnrollmentTokenModel, str]:
        """Create a token. Returns (token, plaintext_secret); the secret is not stored."""
        await self._validate_group(session, default_host_group_id)
        token_key, token_secret = generate_enrollment_token()
        token = AutoEnrollmentTokenModel(
            token_name=token_name,
            token_key=token_key,
            token_secret=await hash_token_secret(token_secret, self.settings.bcrypt_token_rounds),
            created_by_user_id=created_by_user_id,
            max_hosts_per_day=max_hosts_per_day,
            allowed_ip_ranges=list(allowed_ip_ranges or []),
            default_host_group_id=default_host_group_id,
            expires_at=expires_at,
            hosts_created_today=0,
            last_reset_date=today_utc(),
            metadata_={"integration_type": INTEGRATION_TYPE, **(metadata or {})},
        )
        session.add(token)
        await session.flush()
        logger.info("Created auto-enrollment token %r (%s)", token_name, token.id)
        return token, token_secret

    async def list_tokens(self, session: AsyncSession) -> list[AutoEnrollmentTokenModel]:
        result = await session.execute(
            select(AutoEnrollmentTokenModel).order_by(AutoEnrollmentTokenModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_token(self, session: AsyncSession, token_id: str) -> AutoEnrollmentTokenModel:
        token = await session.get(AutoEnrollmentTokenModel, token_id)
        if token is None:
            raise NotFoundError("Token not found")
        return token

    async def update_token(
        self, session: AsyncSession, token_id: str, changes: dict[str, Any]
    ) -> AutoEnrollmentTokenModel:
        token = await self.get_token(session, token_id)
        if "default_host_group_id" in changes:
            await self._validate_group(session, changes["default_host_group_id"])
        for key in ("is_active", "max_hosts_per_day", "allowed_ip_ranges", "expires_at", "default_host_group_id"):
            if key in changes:
                setattr(token, key, changes[key])
        await session.flush()
        return token

    async def delete_token(self, session: AsyncSession, token_id: str) -> AutoEnrollmentTokenModel:
        token = await self.get_token(session, token_id)
        await session.delete(token)
        await session.flush()
        logger.info("Deleted auto-enrollment token %r (%s)", token.token_name, token.id)
        return token

    # ── Authentication ──

    async def verify_credentials(
        self, session: AsyncSession, token_key: str | None, token_secret: str | None
    ) -> AutoEnrollmentTokenModel:
        """Key lookup, secret check, active flag and expiry."""
        if not token_key or not token_secret:
            raise AuthenticationError("Auto-enrollment credentials required")
        result = await session.execute(
            select(AutoEnrollmentTokenModel).where(AutoEnrollmentTokenModel.token_key == token_key)
        )
        token = result.scalar_one_or_none()
        if token is None or not token.is_active:
            raise AuthenticationError("Invalid or inactive token")
        if not await verify_token_secret(token_secret, token.token_secret):
            raise AuthenticationError("Invalid token secret")
        if token.expires_at is not None and utcnow() > as_utc(token.expires_at):
            raise AuthenticationError("Token expired")
        return token

    async def authenticate(
        self,
        session: AsyncSession,
        token_key: str | None,
        token_secret: str | None,
        client_ip: str,
    ) -> AutoEnrollmentTokenModel:
        """Full per-request check: credentials, IP allowlist, daily quota."""
        token = await self.verify_credentials(session, token_key, token_secret)

        if token.allowed_ip_ranges and not ip_allowed(client_ip, token.allowed_ip_ranges):
            logger.warning(
                "Auto-enrollment attempt from unauthorized IP %s for token %s",
                client_ip, token.token_key,
                extra={"client_ip": client_ip, "token_key": token.token_key},
            )
            raise PermissionDeniedError("IP address not authorized for this token")

        today = today_utc()
        if token.last_reset_date != today:
            token.hosts_created_today = 0
            token.last_reset_date = today
            await session.flush()

        if token.hosts_created_today >= token.max_hosts_per_day:
            raise RateLimitError(
                "Rate limit exceeded",
                extra={"message": f"Maximum {token.max_hosts_per_day} hosts per day allowed for this token"},
            )
        return token

    async def _record_usage(
        self, session: AsyncSession, token: AutoEnrollmentTokenModel, created: int
    ) -> None:
        await session.execute(
            update(AutoEnrollmentTokenModel)
            .where(AutoEnrollmentTokenModel.id == token.id)
            .values(
                hosts_created_today=AutoEnrollmentTokenModel.hosts_created_today + created,
                last_used_at=utcnow(),
            )
        )
        await session.refresh(token)

    # ── Enrollment ──

    def _notes(self, token: AutoEnrollmentTokenModel) -> str:
        return f"Auto-enrolled via {token.token_name} on {utcnow().isoformat()}"

    async def _create_enrolled_host(
        self,
        session: AsyncSession,
        token: AutoEnrollmentTokenModel,
        friendly_name: str,
        machine_id: str,
    ) -> tuple[HostModel, str]:
        return await self.hosts.create_host(
            session,
            friendly_name,
            host_group_id=token.default_host_group_id,
            machine_id=machine_id,
            os_type="unknown",
            os_version="unknown",
            notes=self._notes(token),
        )

    async def enroll(
        self,
        session: AsyncSession,
        token: AutoEnrollmentTokenModel,
        friendly_name: str,
        machine_id: str,
    ) -> tuple[HostModel, str]:
        existing = await self.hosts.find_by_machine_id(session, machine_id)
        if existing is not None:
            raise ConflictError(
                "Host already exists",
                extra={
                    "host_id": existing.id,
                    "api_id": existing.api_id,
                    "machine_id": existing.machine_id,
                    "friendly_name": existing.friendly_name,
                    "message": "This machine is already enrolled in PatchMon (matched by machine ID)",
                },
            )
        host, api_key = await self._create_enrolled_host(session, token, friendly_name, machine_id)
        await self._record_usage(session, token, 1)
        logger.info(
            "Auto-enrolled host %s (%s) via token %s", friendly_name, host.id, token.token_name
        )
        return host, api_key

    async def enroll_bulk(
        self,
        session: AsyncSession,
        token: AutoEnrollmentTokenModel,
        hosts: list[dict[str, Any]],
    ) -> dict[str, list[dict[str, Any]]]:
        if not hosts or len(hosts) > MAX_BULK_HOSTS:
            raise ValidationFailedError(f"Hosts array required (max {MAX_BULK_HOSTS})")

        remaining = token.max_hosts_per_day - token.hosts_created_today
        if len(hosts) > remaining:
            raise RateLimitError(
                "Rate limit exceeded",
                extra={"message": f"Only {remaining} hosts remaining in daily quota"},
            )

        results: dict[str, list[dict[str, Any]]] = {"success": [], "failed": [], "skipped": []}
        for entry in hosts:
            friendly_name = entry.get("friendly_name")
            machine_id = entry.get("machine_id")
            if not machine_id:
                results["failed"].append({"friendly_name": friendly_name, "error": "Machine ID is required"})
                continue

            existing = await self.hosts.find_by_machine_id(session, machine_id)
            if existing is not None:
                results["skipped"].append({
                    "friendly_name": friendly_name,
                    "machine_id": machine_id,
                    "reason": "Machine already enrolled",
                    "api_id": existing.api_id,
                })
                continue

            try:
                # One host failing must not undo the others.
                async with session.begin_nested():
                    host, api_key = await self._create_enrolled_host(
                        session, token, friendly_name, machine_id
                    )
            except (PatchmonError, SQLAlchemyError) as exc:
                message = exc.message if isinstance(exc, PatchmonError) else str(exc)
                results["failed"].append({"friendly_name": friendly_name, "error": message})
                continue

            results["success"].append({
                "id": host.id,
                "friendly_name": host.friendly_name,
                "api_id": host.api_id,
                "api_key": api_key,
            })

        if results["success"]:
            await self._record_usage(session, token, len(results["success"]))
        logger.info(
            "Bulk enrollment via token %s: %d succeeded, %d failed, %d skipped",
            token.token_name, len(results["success"]), len(results["failed"]), len(results["skipped"]),
        )
        return results
