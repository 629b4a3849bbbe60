#!/usr/bin/env python3
"""Seed the database with the default roles and the server settings row.

Usage:
    python -m scripts.seed_defaults
    # or from project root:
    python scripts/seed_defaults.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from patchmon_engine.auth.permissions import DEFAULT_ROLE_PERMISSIONS, PermissionService
from patchmon_engine.common.config import get_settings
from patchmon_engine.common.database import DatabaseManager
from patchmon_engine.server_settings.service import SettingsService


async def seed_defaults() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    permissions = PermissionService()
    settings_service = SettingsService(settings)

    async with db.get_session() as session:
        for role in DEFAULT_ROLE_PERMISSIONS:
            existing = await permissions.get_role(session, role)
            print(f"  [{'skip' if existing else 'created'}] role {role}")
        await permissions.ensure_default_roles(session)

        current = await settings_service.get(session)
        print(f"  [ok] server settings ({current.server_url})")

    await db.close()
    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(seed_defaults())
