"""FastAPI application exposing the PartyStream marketplace."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from infra import AuditBase, PartyStreamBase
from libs.db import db as db_module
from libs.observability.logging import RequestContextMiddleware, configure_logging
from libs.observability.metrics import setup_metrics

from .chat import ChatHub
from .config import Settings, get_settings
from .errors import install_error_handlers
from .payments import PaymentGateway, StripePaymentGateway
from .rate_limit import RateLimiter, rate_limit_middleware
from .routers import bookings, chat, djs, payments, streams, users
from .streaming_provider import IvsStreamingProvider, StreamingProvider

configure_logging("partystream")


@asynccontextmanager
async def lifespan(app: FastAPI):
    PartyStreamBase.metadata.create_all(bind=db_module.engine)
    AuditBase.metadata.create_all(bind=db_module.engine)
    yield


def create_app(
    settings: Optional[Settings] = None,
    *,
    payment_gateway: Optional[PaymentGateway] = None,
    streaming_provider: Optional[StreamingProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="PartyStream", version="0.1.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.payment_gateway = payment_gateway or StripePaymentGateway(settings)
    app.state.streaming_provider = streaming_provider or IvsStreamingProvider(settings)
    app.state.chat_hub = ChatHub()
    app.state.rate_limiter = RateLimiter(
        settings.rate_limit_max_calls, settings.rate_limit_window_seconds
    )

    install_error_handlers(app)
    app.middleware("http")(rate_limit_middleware)
    app.add_middleware(RequestContextMiddleware, service_name=settings.app_name)
    setup_metrics(app, service_name=settings.app_name)

    app.include_router(users.router)
    app.include_router(djs.router)
    app.include_router(bookings.router)
    app.include_router(streams.router)
    app.include_router(payments.router)
    app.include_router(chat.router)

    @app.get("/health")
    def healthcheck():
        return {"status": "ok"}

    return app


app = create_app()


__all__ = ["app", "create_app", "lifespan"]
