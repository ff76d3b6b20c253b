"""
=============================================================================
Tracing - Langfuse v3
=============================================================================

One trace per workflow run, one span per node, and a LangChain callback on
every model call so token usage lands on the span that made the call.

Trace attributes:
- session_id = conversation_id (groups the turns of one conversation)
- user_id    = caller id
- tags       = ["agentflow", <chat_mode>]

The callback handler reads LANGFUSE_* from the process environment, so the
keys from Settings are exported before the first handler is created. With no
keys configured every span is a no-op and runs behave the same.
=============================================================================
"""

import logging
import os
from functools import lru_cache

from langfuse import Langfuse, observe, propagate_attributes
from langfuse.langchain import CallbackHandler

from agentflow.config.settings import get_settings

logger = logging.getLogger(__name__)

TRACE_TAG = "agentflow"


def _export_credentials() -> None:
    settings = get_settings()
    exported = {
        "LANGFUSE_PUBLIC_KEY": settings.langfuse_public_key,
        "LANGFUSE_SECRET_KEY": settings.langfuse_secret_key,
        "LANGFUSE_HOST": settings.langfuse_base_url,
        "LANGFUSE_BASE_URL": settings.langfuse_base_url,
    }
    for name, value in exported.items():
        if value:
            os.environ.setdefault(name, value)


def langfuse_enabled() -> bool:
    settings = get_settings()
    return bool(settings.langfuse_public_key and settings.langfuse_secret_key)


@lru_cache
def get_langfuse_client() -> Langfuse:
    settings = get_settings()
    if not langfuse_enabled():
        logger.warning("[LANGFUSE] No credentials configured, traces will not be exported")

    return Langfuse(
        public_key=settings.langfuse_public_key,
        secret_key=settings.langfuse_secret_key,
        host=settings.langfuse_base_url,
    )


def get_langfuse_handler() -> CallbackHandler:
    """LangChain callback for one model call; attaches to the current span."""
    _export_credentials()
    return CallbackHandler()


def run_attributes(conversation_id: str, user_id: str, chat_mode: str):
    """Trace attributes for a whole workflow run."""
    return propagate_attributes(
        session_id=conversation_id,
        user_id=user_id,
        tags=[TRACE_TAG, chat_mode],
        metadata={"chat_mode": chat_mode},
    )


def node_attributes(conversation_id: str, node: str):
    return propagate_attributes(session_id=conversation_id, metadata={"node": node})


def flush_traces() -> None:
    """Push buffered spans before the process exits."""
    if not langfuse_enabled():
        return
    logger.info("[LANGFUSE] Flushing traces")
    get_langfuse_client().flush()


__all__ = [
    "flush_traces",
    "get_langfuse_client",
    "get_langfuse_handler",
    "langfuse_enabled",
    "node_attributes",
    "observe",
    "run_attributes",
]
