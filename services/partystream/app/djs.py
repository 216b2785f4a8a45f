"""DJ profile management, discovery and availability."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from infra import Booking, DJProfile

from . import repository
from .errors import ConflictError, NotFoundError, ValidationError
from .identity import Caller
from .schemas import DJProfileCreate, DJProfileUpdate
from .timeutils import as_utc

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProfileFilters:
    genres: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    min_rate: Optional[float] = None
    max_rate: Optional[float] = None


def _clean(values: Sequence[str]) -> list[str]:
    return [value.strip() for value in values if value and value.strip()]


def _contains_all(haystack: Sequence[str], needles: Sequence[str]) -> bool:
    available = {value.casefold() for value in haystack}
    return all(needle.casefold() in available for needle in needles)


def create_profile(db: Session, caller: Caller, payload: DJProfileCreate) -> DJProfile:
    if repository.get_dj_profile_for_user(db, caller.id) is not None:
        raise ConflictError("DJ profile already exists", caller_id=caller.id)
    languages = _clean(payload.languages)
    if not languages:
        raise ValidationError("At least one language is required", caller_id=caller.id)
    profile = DJProfile(
        user_id=caller.id,
        stage_name=payload.stage_name.strip(),
        hourly_rate=payload.hourly_rate,
        genres=_clean(payload.genres),
        bio=payload.bio,
        experience=payload.experience,
        equipment=payload.equipment,
        video_links=_clean(payload.video_links),
        languages=languages,
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("DJ profile already exists", caller_id=caller.id) from exc
    logger.info("dj profile created", extra={"dj_profile_id": profile.id, "caller_id": caller.id})
    return profile


def get_my_profile(db: Session, caller: Caller) -> DJProfile:
    profile = repository.get_dj_profile_for_user(db, caller.id)
    if profile is None:
        raise NotFoundError("DJ profile not found", caller_id=caller.id)
    return profile


def update_profile(db: Session, caller: Caller, patch: DJProfileUpdate) -> DJProfile:
    profile = get_my_profile(db, caller)
    changes = patch.model_dump(exclude_unset=True)
    for key in ("genres", "video_links", "languages"):
        if changes.get(key) is not None:
            changes[key] = _clean(changes[key])
    if "languages" in changes and not changes["languages"]:
        raise ValidationError("At least one language is required", dj_profile_id=profile.id)
    for key, value in changes.items():
        if value is None:
            continue
        setattr(profile, key, value.strip() if key == "stage_name" else value)
    db.commit()
    db.refresh(profile)
    return profile


def search_profiles(db: Session, filters: ProfileFilters) -> list[DJProfile]:
    if (
        filters.min_rate is not None
        and filters.max_rate is not None
        and filters.min_rate > filters.max_rate
    ):
        raise ValidationError("min_rate cannot exceed max_rate")
    genres = _clean(filters.genres)
    languages = _clean(filters.languages)
    profiles = repository.list_dj_profiles(db, min_rate=filters.min_rate, max_rate=filters.max_rate)
    return [
        profile
        for profile in profiles
        if _contains_all(profile.genres or [], genres)
        and _contains_all(profile.languages or [], languages)
    ]


def get_availability(
    db: Session, profile_id: str, *, start_date: datetime, end_date: datetime
) -> list[Booking]:
    """Bookings holding the DJ between ``start_date`` and ``end_date``."""

    repository.require_dj_profile(db, profile_id)
    start, end = as_utc(start_date), as_utc(end_date)
    if end < start:
        raise ValidationError("end_date must not be before start_date", dj_profile_id=profile_id)
    return list(repository.bookings_in_range(db, dj_profile_id=profile_id, start=start, end=end))


__all__ = [
    "ProfileFilters",
    "create_profile",
    "get_availability",
    "get_my_profile",
    "search_profiles",
    "update_profile",
]
