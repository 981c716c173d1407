from __future__ import annotations

import logging
from http.cookies import SimpleCookie

from itsdangerous import BadSignature, Signer

from batmodule.services.session_store import RedisSessionStore, SessionStoreError

logger = logging.getLogger(__name__)

COOKIE_NAME = "batmodule.sid"
DEFAULT_MAX_AGE = 24 * 3600  # 24h, seconds
REMEMBER_ME_MAX_AGE = 30 * 24 * 3600

# Keys persisted next to handler data
_META_ID = "id"
_META_COOKIE = "cookie"


class Session(dict):
    """
    Per-request session data.
    Mutations flip `modified`; regenerate()/destroy() are applied on commit.
    """

    def __init__(self, session_id: str, data: dict | None = None, *, is_new: bool = True,
                 cookie_max_age: int = DEFAULT_MAX_AGE):
        super().__init__(data or {})
        self.id = session_id
        self.is_new = is_new
        self.modified = False
        self.destroyed = False
        self.cookie_max_age = cookie_max_age
        self.previous_id: str | None = None

    @property
    def user_id(self):
        return self.get("userId")

    def mark_modified(self) -> None:
        self.modified = True

    def set_max_age(self, seconds: int) -> None:
        self.cookie_max_age = seconds
        self.modified = True

    def regenerate(self, new_id: str) -> None:
        """Move the data under a fresh id (login/register)."""
        if self.previous_id is None and not self.is_new:
            self.previous_id = self.id
        self.id = new_id
        self.modified = True

    def destroy(self) -> None:
        super().clear()
        self.destroyed = True

    def __setitem__(self, key, value):
        super().__setitem__(key, value)
        self.modified = True

    def __delitem__(self, key):
        super().__delitem__(key)
        self.modified = True

    def update(self, *args, **kwargs):
        super().update(*args, **kwargs)
        self.modified = True

    def pop(self, *args):
        self.modified = True
        return super().pop(*args)

    def setdefault(self, key, default=None):
        if key not in self:
            self.modified = True
        return super().setdefault(key, default)

    def clear(self):
        super().clear()
        self.modified = True


class SessionManager:
    """
    Cookie <-> store session handling.
    - cookie carries only the signed session id (itsdangerous Signer)
    - httponly=True, samesite="lax", secure=True in production
    - resave=False, saveUninitialized=False, rolling=True
    - max_age = 24h (30 days with rememberMe)
    """

    def __init__(
        self,
        secret_key: str,
        store: RedisSessionStore,
        secure: bool = False,
        cookie_name: str = COOKIE_NAME,
        max_age: int = DEFAULT_MAX_AGE,
    ):
        self._signer = Signer(secret_key, salt="batmodule.session")
        self.store = store
        self.secure = secure
        self.cookie_name = cookie_name
        self.max_age = max_age

    def sign(self, session_id: str) -> str:
        return self._signer.sign(session_id).decode("utf-8")

    def unsign(self, cookie_value: str) -> str | None:
        try:
            return self._signer.unsign(cookie_value).decode("utf-8")
        except BadSignature:
            return None

    def new_session(self) -> Session:
        return Session(self.store.generate_id(), cookie_max_age=self.max_age)

    def regenerate(self, session: Session) -> None:
        session.regenerate(self.store.generate_id())

    async def load(self, cookie_value: str | None) -> Session:
        """Resolve the cookie into a stored session, else a fresh unsaved one."""
        if not cookie_value:
            return self.new_session()
        session_id = self.unsign(cookie_value)
        if not session_id:
            logger.info("Rejected session cookie with a bad signature")
            return self.new_session()
        try:
            data = await self.store.get(session_id)
        except SessionStoreError:
            # Store down: treat as anonymous
            return self.new_session()
        if data is None:
            return self.new_session()

        cookie_meta = data.pop(_META_COOKIE, None) or {}
        data.pop(_META_ID, None)
        max_age = cookie_meta.get("max_age", self.max_age)
        return Session(session_id, data, is_new=False, cookie_max_age=int(max_age))

    async def commit(self, session: Session) -> str | None:
        """Persist per policy; returns the Set-Cookie value to emit, if any."""
        try:
            if session.destroyed:
                if not session.is_new:
                    await self.store.destroy(session.id)
                if session.previous_id:
                    await self.store.destroy(session.previous_id)
                return self.expired_cookie()

            if session.previous_id:
                await self.store.destroy(session.previous_id)

            if session.modified:
                payload = dict(session)
                payload[_META_ID] = session.id
                payload[_META_COOKIE] = {"max_age": session.cookie_max_age}
                await self.store.set(session.id, payload, ttl_seconds=session.cookie_max_age)
            elif session.is_new:
                return None
            else:
                await self.store.touch(session.id, ttl_seconds=session.cookie_max_age)
        except SessionStoreError:
            logger.error("Session not persisted, cookie withheld")
            return None

        return self.cookie_header(self.sign(session.id), session.cookie_max_age)

    def cookie_header(self, value: str, max_age: int) -> str:
        cookie = SimpleCookie()
        cookie[self.cookie_name] = value
        morsel = cookie[self.cookie_name]
        morsel["path"] = "/"
        morsel["max-age"] = max_age
        morsel["httponly"] = True
        morsel["samesite"] = "lax"
        if self.secure:
            morsel["secure"] = True
        return morsel.OutputString()

    def expired_cookie(self) -> str:
        return self.cookie_header("", 0)
