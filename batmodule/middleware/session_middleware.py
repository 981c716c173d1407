from __future__ import annotations

import logging

from starlette.requests import HTTPConnection

from batmodule.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


class SessionMiddleware:
    """
    Store-backed session per browser.
    1. Resolve the signed cookie into scope["session"] (request.session)
    2. Run the app
    3. On response start: persist per policy and emit Set-Cookie (rolling)
    """

    def __init__(self, app, session_manager: SessionManager):
        self.app = app
        self._session_manager = session_manager

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        cookie_value = connection.cookies.get(self._session_manager.cookie_name)
        session = await self._session_manager.load(cookie_value)
        scope["session"] = session

        async def send_with_session(message):
            if message["type"] == "http.response.start":
                set_cookie = await self._session_manager.commit(session)
                if set_cookie:
                    headers = list(message.get("headers", []))
                    headers.append((b"set-cookie", set_cookie.encode("latin-1")))
                    message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_session)
