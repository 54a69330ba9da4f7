"""Household directory: membership lookup, household creation and invites."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from homestock.config import get_settings
from homestock.errors import (
    Conflict,
    NoHousehold,
    NotAuthorized,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from homestock.models.household import Household, HouseholdInvite, HouseholdMember

from .models import HouseholdInviteORM, HouseholdMemberORM, HouseholdORM
from .repository import session_scope, utcnow

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8


def _to_model(row: HouseholdORM) -> Household:
    return Household.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "created_by": row.created_by,
            "created_at": row.created_at,
        }
    )


def require_caller(caller: Optional[str]) -> str:
    """Return the caller id or raise :class:`Unauthenticated`."""

    if caller is None or not str(caller).strip():
        raise Unauthenticated()
    return str(caller).strip()


def household_id_for_user(session: Session, user_id: str) -> Optional[int]:
    return session.execute(
        select(HouseholdMemberORM.household_id).where(HouseholdMemberORM.user_id == user_id)
    ).scalar_one_or_none()


def require_household_id(session: Session, caller: Optional[str]) -> tuple[str, int]:
    """Resolve ``(user_id, household_id)`` for a caller that must belong somewhere."""

    user_id = require_caller(caller)
    household_id = household_id_for_user(session, user_id)
    if household_id is None:
        raise NoHousehold()
    return user_id, household_id


def authorize_household(session: Session, caller: Optional[str], household_id: int) -> str:
    """Ensure the caller belongs to ``household_id`` and return the caller id."""

    user_id = require_caller(caller)
    if household_id_for_user(session, user_id) != household_id:
        raise NotAuthorized()
    return user_id


def resolve_household_for_caller(caller: Optional[str]) -> Optional[Household]:
    """Return the caller's household, or ``None`` when unresolved."""

    if caller is None:
        return None
    with session_scope() as session:
        household_id = household_id_for_user(session, str(caller))
        if household_id is None:
            return None
        row = session.get(HouseholdORM, household_id)
        return _to_model(row) if row is not None else None


get_current_household = resolve_household_for_caller


def create_household(name: str, caller: Optional[str]) -> Household:
    """Create a household and register the caller as its first member."""

    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Household name is required")

    with session_scope() as session:
        user_id = require_caller(caller)
        if household_id_for_user(session, user_id) is not None:
            raise Conflict("User already belongs to a household")

        household = HouseholdORM(name=cleaned, created_by=user_id)
        session.add(household)
        session.flush()
        session.add(HouseholdMemberORM(household_id=household.id, user_id=user_id))
        session.flush()
        session.refresh(household)
        logger.info(
            "Created household %s for user %s",
            household.id,
            user_id,
            extra={"household_id": household.id, "user_id": user_id},
        )
        return _to_model(household)


def list_members(caller: Optional[str]) -> List[HouseholdMember]:
    with session_scope() as session:
        user_id = require_caller(caller)
        household_id = household_id_for_user(session, user_id)
        if household_id is None:
            return []
        household = session.get(HouseholdORM, household_id)
        rows = (
            session.execute(
                select(HouseholdMemberORM)
                .where(HouseholdMemberORM.household_id == household_id)
                .order_by(HouseholdMemberORM.id.asc())
            )
            .scalars()
            .all()
        )
        return [
            HouseholdMember(
                user_id=row.user_id,
                household_id=row.household_id,
                is_creator=household is not None and household.created_by == row.user_id,
                joined_at=row.joined_at,
            )
            for row in rows
        ]


def remove_member(member_user_id: str, caller: Optional[str]) -> None:
    """Remove a member; only the household creator may do so, and not for themselves."""

    with session_scope() as session:
        user_id, household_id = require_household_id(session, caller)
        membership = session.execute(
            select(HouseholdMemberORM).where(
                HouseholdMemberORM.user_id == member_user_id,
                HouseholdMemberORM.household_id == household_id,
            )
        ).scalar_one_or_none()
        if membership is None:
            raise NotFound(f"Member {member_user_id} not found")

        household = session.get(HouseholdORM, household_id)
        if household is None or household.created_by != user_id:
            raise NotAuthorized("Only the household creator can remove members")
        if member_user_id == user_id:
            raise Conflict("Cannot remove yourself from the household")

        session.delete(membership)


def _generate_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def generate_invite_code(caller: Optional[str]) -> HouseholdInvite:
    """Return an unexpired invite code for the caller's household, creating one if needed."""

    settings = get_settings()
    with session_scope() as session:
        user_id, household_id = require_household_id(session, caller)
        now = utcnow()

        invites = (
            session.execute(
                select(HouseholdInviteORM)
                .where(HouseholdInviteORM.household_id == household_id)
                .order_by(HouseholdInviteORM.id.asc())
            )
            .scalars()
            .all()
        )
        for invite in invites:
            if invite.expires_at is None or invite.expires_at > now:
                return HouseholdInvite(
                    household_id=household_id,
                    invite_code=invite.invite_code,
                    expires_at=invite.expires_at,
                )

        code = _generate_code()
        while session.execute(
            select(HouseholdInviteORM.id).where(HouseholdInviteORM.invite_code == code)
        ).first():
            code = _generate_code()

        invite = HouseholdInviteORM(
            household_id=household_id,
            invite_code=code,
            created_by=user_id,
            expires_at=now + timedelta(days=settings.invite_code_ttl_days),
        )
        session.add(invite)
        session.flush()
        logger.info("Issued invite code for household %s", household_id, extra={"household_id": household_id})
        return HouseholdInvite(
            household_id=household_id,
            invite_code=invite.invite_code,
            expires_at=invite.expires_at,
        )


def join_household(invite_code: str, caller: Optional[str]) -> Household:
    """Add the caller to the household owning ``invite_code``."""

    normalized = (invite_code or "").strip().upper()
    with session_scope() as session:
        user_id = require_caller(caller)
        if household_id_for_user(session, user_id) is not None:
            raise Conflict("User already belongs to a household")

        invite = session.execute(
            select(HouseholdInviteORM).where(HouseholdInviteORM.invite_code == normalized)
        ).scalar_one_or_none()
        if invite is None:
            raise ValidationError("Invalid invite code")
        if invite.expires_at is not None and invite.expires_at < utcnow():
            raise ValidationError("Invite code has expired")

        household = session.get(HouseholdORM, invite.household_id)
        if household is None:
            raise NotFound("Household not found")

        session.add(HouseholdMemberORM(household_id=household.id, user_id=user_id))
        session.flush()
        logger.info(
            "User %s joined household %s",
            user_id,
            household.id,
            extra={"household_id": household.id, "user_id": user_id},
        )
        return _to_model(household)


__all__ = [
    "require_caller",
    "household_id_for_user",
    "require_household_id",
    "authorize_household",
    "resolve_household_for_caller",
    "get_current_household",
    "create_household",
    "list_members",
    "remove_member",
    "generate_invite_code",
    "join_household",
]
