"""Shared Pydantic schemas for PatchMon-Engine."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.2.8"
    service: str = "patchmon-engine"
    database: str = "connected"
