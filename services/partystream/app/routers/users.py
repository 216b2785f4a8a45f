from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from libs.db.db import get_db

from ..config import Settings
from ..dependencies import get_app_settings, get_current_caller
from ..identity import Caller
from ..schemas import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UserOut,
    UserProfileUpdate,
)
from ..users import (
    InvalidCredentialsError,
    authenticate,
    change_password,
    get_me,
    register_user,
    update_profile,
)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, token = register_user(db, settings, payload)
    return AuthResponse(user=UserOut.model_validate(user), token=token)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    try:
        user, token = authenticate(db, settings, email=payload.email, password=payload.password)
    except InvalidCredentialsError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return AuthResponse(user=UserOut.model_validate(user), token=token)


@router.get("/me", response_model=UserOut)
def me(db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return UserOut.model_validate(get_me(db, caller))


@router.put("/profile", response_model=UserOut)
def update_my_profile(
    payload: UserProfileUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return UserOut.model_validate(update_profile(db, caller, payload))


@router.put("/change-password", status_code=status.HTTP_204_NO_CONTENT)
def update_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    change_password(
        db, caller, current_password=payload.current_password, new_password=payload.new_password
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
