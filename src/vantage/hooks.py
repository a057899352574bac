# src/vantage/hooks.py
"""
Default failure hooks.

Datastore-error hook
    Callable `(error, component, method, arguments) -> None`. Only invoked
    when failover on datastore errors is enabled; the return value is
    ignored. The default writes one line to the playground logger.

Request filter
    Callable `(request) -> bool`, true when the request should be ignored.
    The default flags user agents carrying a URL in parentheses, which is how
    well-behaved bots identify themselves (e.g. "Googlebot/2.1
    (+http://www.google.com/bot.html)").
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

DatastoreErrorHook = Callable[[BaseException, str, str, Sequence[Any]], None]
RequestFilter = Callable[[Any], bool]

BOT_USER_AGENT = re.compile(r"\(.*https?://.*\)")
USER_AGENT_KEY = "HTTP_USER_AGENT"


def default_on_datastore_error(logger: Callable[[], logging.Logger]) -> DatastoreErrorHook:
    """Hook logging through the logger returned by `logger()` at call time."""

    def _on_datastore_error(
        error: BaseException,
        component: str,
        method: str,
        arguments: Sequence[Any],
    ) -> None:
        line = (
            f"[{datetime.now(timezone.utc).isoformat()}]"
            f" [vantage {component} {method}]"
            f" [{error}]"
            f" [{' '.join(str(a) for a in arguments)}]"
        )
        logger().error(line)
        return None

    return _on_datastore_error


def request_environ(request: Any) -> Mapping[str, Any] | None:
    """WSGI environ of a request object (werkzeug `environ`, Django `META`)."""
    if request is None:
        return None
    for attr in ("environ", "META"):
        environ = getattr(request, attr, None)
        if isinstance(environ, Mapping):
            return environ
    return None


def default_request_filter(request: Any) -> bool:
    environ = request_environ(request)
    if not environ:
        return False
    user_agent = environ.get(USER_AGENT_KEY)
    if not isinstance(user_agent, str):
        return False
    return BOT_USER_AGENT.search(user_agent) is not None
