"""Household directory models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Household(BaseModel):
    """Tenant boundary shared by a group of users."""

    id: int
    name: str
    created_by: str
    created_at: datetime

    model_config = ConfigDict(frozen=True)


class HouseholdMember(BaseModel):
    user_id: str
    household_id: int
    is_creator: bool = Field(default=False)
    joined_at: datetime

    model_config = ConfigDict(frozen=True)


class HouseholdInvite(BaseModel):
    household_id: int
    invite_code: str
    expires_at: Optional[datetime] = Field(default=None)

    model_config = ConfigDict(frozen=True)


class Category(BaseModel):
    id: int
    household_id: int
    name: str
    icon: Optional[str] = Field(default=None)
    color: Optional[str] = Field(default=None)

    model_config = ConfigDict(frozen=True)


__all__ = ["Household", "HouseholdMember", "HouseholdInvite", "Category"]
