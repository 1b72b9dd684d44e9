"""Structured logging setup.

The store itself only calls ``structlog.get_logger``; the host process decides
where logs go. ``configure_structured_logging`` applies the JSON configuration
used in production.
"""

import logging
from typing import Optional

import structlog

from src.conversation_store.config import settings


def configure_structured_logging(level: Optional[str] = None) -> None:
    """Configure stdlib logging and structlog with contextvars support."""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # tenant_id, conversation_id from context
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )


def bind_conversation_context(tenant_id: Optional[str] = None, conversation_id: Optional[str] = None) -> None:
    """Bind tenant/conversation ids so every log line in this task carries them."""
    context = {}
    if tenant_id:
        context["tenant_id"] = tenant_id
    if conversation_id:
        context["conversation_id"] = conversation_id
    if context:
        structlog.contextvars.bind_contextvars(**context)


def clear_conversation_context() -> None:
    structlog.contextvars.unbind_contextvars("tenant_id", "conversation_id")
