"""FastAPI dependencies resolving the caller and the injected collaborators."""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from libs.observability.logging import bind_caller_id

from .chat import ChatHub
from .config import Settings
from .errors import AuthorizationError
from .identity import Caller, Role
from .payments import PaymentGateway
from .security import InvalidTokenError, verify_token
from .streaming_provider import StreamingProvider

bearer = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_streaming_provider(request: Request) -> StreamingProvider:
    return request.app.state.streaming_provider


def get_chat_hub(request: Request) -> ChatHub:
    return request.app.state.chat_hub


def caller_from_token(settings: Settings, token: str) -> Caller:
    payload = verify_token(settings, token)
    try:
        role = Role(payload["role"])
    except ValueError as exc:
        raise InvalidTokenError("Unknown role") from exc
    return Caller(id=str(payload["sub"]), role=role, email=payload.get("email"))


async def get_current_caller(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    settings: Settings = Depends(get_app_settings),
) -> Caller:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        caller = caller_from_token(settings, creds.credentials)
    except InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    bind_caller_id(caller.id)
    return caller


def require_roles(*required: Role):
    async def checker(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in required:
            allowed = ", ".join(role.value for role in required)
            raise AuthorizationError(
                f"This action requires one of the roles: {allowed}", caller_id=caller.id
            )
        return caller

    return checker


__all__ = [
    "bearer",
    "caller_from_token",
    "get_app_settings",
    "get_chat_hub",
    "get_current_caller",
    "get_payment_gateway",
    "get_streaming_provider",
    "require_roles",
]
