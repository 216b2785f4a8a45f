"""Account registration, login and self-service profile changes."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from infra import User
from libs.audit import record_audit

from . import repository
from .config import Settings
from .errors import ConflictError, ValidationError
from .identity import Caller
from .schemas import RegisterRequest, UserProfileUpdate
from .security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


class InvalidCredentialsError(Exception):
    pass


def issue_token(settings: Settings, user: User) -> str:
    return create_access_token(settings, user_id=user.id, email=user.email, role=user.role)


def register_user(db: Session, settings: Settings, payload: RegisterRequest) -> tuple[User, str]:
    email = payload.email.strip().lower()
    if repository.get_user_by_email(db, email) is not None:
        raise ConflictError("A user with this email already exists", operation="register")
    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("A user with this email already exists", operation="register") from exc
    logger.info("user registered", extra={"user_id": user.id, "role": user.role})
    return user, issue_token(settings, user)


def authenticate(db: Session, settings: Settings, *, email: str, password: str) -> tuple[User, str]:
    user = repository.get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login rejected", extra={"email": email.strip().lower()})
        raise InvalidCredentialsError()
    return user, issue_token(settings, user)


def get_me(db: Session, caller: Caller) -> User:
    return repository.require_user(db, caller.id)


def update_profile(db: Session, caller: Caller, patch: UserProfileUpdate) -> User:
    user = repository.require_user(db, caller.id)
    changes = {
        key: value.strip()
        for key, value in patch.model_dump(exclude_unset=True).items()
        if value is not None
    }
    for key, value in changes.items():
        setattr(user, key, value)
    if changes:
        record_audit(
            db,
            entity="user",
            entity_id=user.id,
            action="user.profile_updated",
            actor_id=caller.id,
            details={"fields": sorted(changes)},
        )
    db.commit()
    db.refresh(user)
    logger.info("profile updated", extra={"user_id": user.id, "fields": sorted(changes)})
    return user


def change_password(
    db: Session, caller: Caller, *, current_password: str, new_password: str
) -> None:
    user = repository.require_user(db, caller.id)
    if not verify_password(current_password, user.password_hash):
        logger.info("password change rejected", extra={"user_id": user.id})
        raise ValidationError("Current password is incorrect", caller_id=caller.id)
    user.password_hash = hash_password(new_password)
    record_audit(
        db,
        entity="user",
        entity_id=user.id,
        action="user.password_changed",
        actor_id=caller.id,
    )
    db.commit()
    logger.info("password changed", extra={"user_id": user.id})


__all__ = [
    "InvalidCredentialsError",
    "authenticate",
    "change_password",
    "get_me",
    "issue_token",
    "register_user",
    "update_profile",
]
