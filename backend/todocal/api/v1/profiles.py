from __future__ import annotations

from fastapi import APIRouter

from todocal.api.deps import CurrentProfileDep
from todocal.db import SessionDep
from todocal.models import Profile
from todocal.schemas import ProfileRead, ProfileUpdate
from todocal.services.profiles import rename_profile

router = APIRouter()


@router.get("/me", response_model=ProfileRead, summary="Current user's profile")
def read_my_profile(profile: CurrentProfileDep) -> Profile:
    return profile


@router.patch("/me", response_model=ProfileRead, summary="Change username")
def update_my_profile(
    payload: ProfileUpdate,
    session: SessionDep,
    profile: CurrentProfileDep,
) -> Profile:
    return rename_profile(session, profile.user_id, payload.username)
