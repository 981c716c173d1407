from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import time
from typing import Callable

DEFAULT_MAX_AGE_MS = 3_600_000  # 1 hour
_SEPARATOR = ":"
_MAX_TIMESTAMP_DIGITS = 15  # ms, good until year 33658


def _now_ms() -> int:
    return int(time.time() * 1000)


class CSRFProtection:
    """
    Stateless CSRF tokens bound to a session id.

    token = base64("<session_id>:<issued_at_ms>:<hex hmac-sha256>")
    - nothing is stored server-side, tokens expire after max_age_ms
    - the signature covers "<session_id>:<issued_at_ms>"
    """

    def __init__(self, secret: str, clock: Callable[[], int] | None = None):
        self._secret = secret.encode("utf-8")
        self._clock = clock or _now_ms

    def _sign(self, data: str) -> str:
        return hmac.new(self._secret, data.encode("utf-8"), hashlib.sha256).hexdigest()

    def generate_token(self, session_id: str) -> str:
        data = f"{session_id}{_SEPARATOR}{self._clock()}"
        raw = f"{data}{_SEPARATOR}{self._sign(data)}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def verify_token(
        self, token: str, session_id: str, max_age_ms: int = DEFAULT_MAX_AGE_MS
    ) -> bool:
        """True only for an unexpired token signed by us for this session."""
        if not isinstance(token, str) or not isinstance(session_id, str):
            return False
        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, ValueError):
            return False

        parts = decoded.split(_SEPARATOR)
        if len(parts) != 3:
            return False
        token_session_id, timestamp_text, signature = parts

        # Unparseable timestamps fail closed
        if not (timestamp_text.isascii() and timestamp_text.isdigit()):
            return False
        if len(timestamp_text) > _MAX_TIMESTAMP_DIGITS:
            return False
        if self._clock() - int(timestamp_text) > max_age_ms:
            return False

        if token_session_id != session_id:
            return False

        try:
            given = bytes.fromhex(signature)
        except ValueError:
            return False
        expected = bytes.fromhex(
            self._sign(f"{token_session_id}{_SEPARATOR}{timestamp_text}")
        )
        return hmac.compare_digest(given, expected)
