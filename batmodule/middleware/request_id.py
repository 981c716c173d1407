"""Correlation ids: one per request, carried into log lines and the response."""
import re
from uuid import uuid4

from starlette.datastructures import Headers, MutableHeaders

from batmodule.utils.logging import current_request_id

REQUEST_ID_HEADER = "x-request-id"

# Client-supplied ids end up in JSON logs; anything else is replaced
_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._-]{1,64}")


def _incoming_request_id(scope) -> str | None:
    value = Headers(scope=scope).get(REQUEST_ID_HEADER)
    if value and _VALID_REQUEST_ID.fullmatch(value):
        return value
    return None


class RequestIdMiddleware:
    """Propagates a well-formed X-Request-ID or mints a new one."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or uuid4().hex[:12]
        scope.setdefault("state", {})["request_id"] = request_id
        token = current_request_id.set(request_id)

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                MutableHeaders(scope=message).append(REQUEST_ID_HEADER, request_id)
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            current_request_id.reset(token)
