# src/vantage/context.py
"""
Per-request context slot.

Holds whatever the host application considers the current unit of work
(e.g. the request handler), from which experiments read the participant
identity (`vantage_identity` attribute). Backed by a ContextVar, so every
thread and every asyncio task sees its own value.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Any, Iterator, Optional

IDENTITY_ATTRIBUTE = "vantage_identity"

_CONTEXT: contextvars.ContextVar[Any] = contextvars.ContextVar("vantage_context", default=None)


def get_context() -> Any:
    return _CONTEXT.get()


def set_context(context: Any) -> contextvars.Token:
    return _CONTEXT.set(context)


def reset_context(token: contextvars.Token) -> None:
    _CONTEXT.reset(token)


@contextmanager
def use_context(context: Any) -> Iterator[Any]:
    token = _CONTEXT.set(context)
    try:
        yield context
    finally:
        _CONTEXT.reset(token)


def current_identity() -> Optional[str]:
    """Participant identity exposed by the current context, if any."""
    identity = getattr(get_context(), IDENTITY_ATTRIBUTE, None)
    return None if identity is None else str(identity)
