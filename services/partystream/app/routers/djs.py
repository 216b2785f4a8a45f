from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from libs.db.db import get_db

from .. import repository
from ..dependencies import require_roles
from ..djs import (
    ProfileFilters,
    create_profile,
    get_availability,
    get_my_profile,
    search_profiles,
    update_profile,
)
from ..identity import Caller, Role
from ..schemas import AvailabilityOut, BookedWindow, DJProfileCreate, DJProfileOut, DJProfileUpdate

router = APIRouter(prefix="/djs", tags=["djs"])

require_dj = require_roles(Role.DJ)


def _filters(
    genres: Optional[List[str]] = Query(default=None),
    languages: Optional[List[str]] = Query(default=None),
    min_rate: Optional[float] = Query(default=None, ge=0),
    max_rate: Optional[float] = Query(default=None, ge=0),
) -> ProfileFilters:
    def split(values: Optional[List[str]]) -> list[str]:
        # Accept both ?genres=a&genres=b and ?genres=a,b
        return [part for value in values or [] for part in value.split(",")]

    return ProfileFilters(
        genres=split(genres),
        languages=split(languages),
        min_rate=min_rate,
        max_rate=max_rate,
    )


@router.get("", response_model=list[DJProfileOut])
def list_profiles(db: Session = Depends(get_db), filters: ProfileFilters = Depends(_filters)):
    return [DJProfileOut.model_validate(profile) for profile in search_profiles(db, filters)]


@router.get("/search", response_model=list[DJProfileOut])
def search(db: Session = Depends(get_db), filters: ProfileFilters = Depends(_filters)):
    return [DJProfileOut.model_validate(profile) for profile in search_profiles(db, filters)]


@router.get("/profile/me", response_model=DJProfileOut)
def my_profile(db: Session = Depends(get_db), caller: Caller = Depends(require_dj)):
    return DJProfileOut.model_validate(get_my_profile(db, caller))


@router.post("/profile", response_model=DJProfileOut, status_code=status.HTTP_201_CREATED)
def create(
    payload: DJProfileCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_dj),
):
    return DJProfileOut.model_validate(create_profile(db, caller, payload))


@router.put("/profile", response_model=DJProfileOut)
def update(
    payload: DJProfileUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_dj),
):
    return DJProfileOut.model_validate(update_profile(db, caller, payload))


@router.get("/{profile_id}", response_model=DJProfileOut)
def get_profile(profile_id: str, db: Session = Depends(get_db)):
    return DJProfileOut.model_validate(repository.require_dj_profile(db, profile_id))


@router.get("/{profile_id}/availability", response_model=AvailabilityOut)
def availability(
    profile_id: str,
    start_date: datetime,
    end_date: datetime,
    db: Session = Depends(get_db),
):
    bookings = get_availability(db, profile_id, start_date=start_date, end_date=end_date)
    return AvailabilityOut(
        dj_profile_id=profile_id,
        start_date=start_date,
        end_date=end_date,
        booked=[BookedWindow.model_validate(booking) for booking in bookings],
    )
