from __future__ import annotations

import json
import logging
from urllib.parse import parse_qs

from starlette.datastructures import Headers
from starlette.responses import JSONResponse

from batmodule.middleware.identity import resolve_request_identity
from batmodule.services.csrf_protection import CSRFProtection
from batmodule.utils.metrics import CSRF_REJECTIONS

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Prefix match; login/register have no session yet, RGPD export is a download link
CSRF_EXEMPT_PATHS = (
    "/api/auth/login",
    "/api/auth/register",
    "/api/rgpd/export",
)

CSRF_HEADER = "x-csrf-token"
CSRF_FORM_FIELD = "_csrf"
# Larger bodies are not searched for a token
MAX_BODY_TOKEN_BYTES = 1024 * 1024

MISSING_TOKEN_BODY = {
    "error": "Token CSRF manquant",
    "message": "Un token CSRF est requis pour cette opération",
}
INVALID_TOKEN_BODY = {
    "error": "Token CSRF invalide",
    "message": "Le token CSRF est invalide ou expiré",
}


def _token_from_body(body: bytes | None, content_type: str) -> str | None:
    if not body:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == "application/json":
        try:
            data = json.loads(body)
        except ValueError:
            return None
        value = data.get(CSRF_FORM_FIELD) if isinstance(data, dict) else None
        return value if isinstance(value, str) else None
    if media_type == "application/x-www-form-urlencoded":
        values = parse_qs(body.decode("latin-1"), keep_blank_values=False).get(CSRF_FORM_FIELD)
        return values[0] if values else None
    return None


class CSRFMiddleware:
    """
    Guards state-changing requests with a session-bound CSRF token.
    - safe methods and exempt prefixes pass through
    - token: x-csrf-token header, else `_csrf` in a JSON/urlencoded body
    - 403 "manquant" when token or identity is missing, 403 "invalide" otherwise
    """

    def __init__(self, app, csrf: CSRFProtection, exempt_paths: tuple[str, ...] = CSRF_EXEMPT_PATHS):
        self.app = app
        self._csrf = csrf
        self._exempt_paths = tuple(exempt_paths)

    def _is_exempt(self, method: str, path: str) -> bool:
        return method in SAFE_METHODS or any(path.startswith(p) for p in self._exempt_paths)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or self._is_exempt(scope["method"], scope["path"]):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        token = headers.get(CSRF_HEADER)
        if not token:
            body, receive = await self._buffer_body(receive)
            token = _token_from_body(body, headers.get("content-type", ""))

        identity = resolve_request_identity(scope)

        if not token or not identity:
            await self._reject(scope, receive, send, "missing", MISSING_TOKEN_BODY)
            return

        if not self._csrf.verify_token(token, identity):
            await self._reject(scope, receive, send, "invalid", INVALID_TOKEN_BODY)
            return

        await self.app(scope, receive, send)

    @staticmethod
    async def _buffer_body(receive, limit: int = MAX_BODY_TOKEN_BYTES):
        """
        Read the body (up to `limit` bytes), then hand downstream a receive
        that replays it. Returns None as the body when the limit was hit.
        """
        chunks = []
        size = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            chunk = message.get("body", b"")
            chunks.append(chunk)
            size += len(chunk)
            more_body = message.get("more_body", False)
            if size > limit:
                break
        body = b"".join(chunks)
        replayed = False

        async def replay():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": more_body}
            return await receive()

        return (None if size > limit else body), replay

    @staticmethod
    async def _reject(scope, receive, send, reason: str, content: dict):
        CSRF_REJECTIONS.labels(reason=reason).inc()
        logger.warning("CSRF %s token: %s %s", reason, scope["method"], scope["path"])
        response = JSONResponse(content, status_code=403)
        await response(scope, receive, send)
