"""Logging and metrics helpers shared by the PartyStream service."""

from .logging import (
    RequestContextMiddleware,
    bind_caller_id,
    configure_logging,
    get_correlation_id,
    get_request_id,
)
from .metrics import setup_metrics

__all__ = [
    "RequestContextMiddleware",
    "bind_caller_id",
    "configure_logging",
    "get_correlation_id",
    "get_request_id",
    "setup_metrics",
]
