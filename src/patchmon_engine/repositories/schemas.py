"""Pydantic schemas for repository administration."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RepositoryUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    priority: Optional[int] = Field(default=None, ge=0)


class HostRepositoryToggle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_enabled: bool = Field(..., alias="isEnabled")
