from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import Any, Awaitable, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from batmodule.utils.metrics import SESSION_STORE_ERRORS

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "batmodule:session:"
DEFAULT_TTL_SECONDS = 24 * 3600


class SessionStoreError(Exception):
    """Session store unreachable, timed out or returned an error."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        super().__init__(f"session store {operation} failed: {cause!r}")
        self.operation = operation
        self.cause = cause


class RedisSessionStore:
    """
    Redis-backed session persistence.
    - one JSON value per session under "<prefix><session_id>"
    - TTL follows the cookie max age (rolling refresh via touch)
    - every call is bounded by timeout_seconds; failures raise SessionStoreError
    - connect() never raises: the app boots even if Redis is down
    """

    def __init__(
        self,
        redis_url: str | None = None,
        client: Redis | None = None,
        prefix: str = DEFAULT_PREFIX,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        timeout_seconds: float = 2.0,
        on_error: Callable[[SessionStoreError], None] | None = None,
    ):
        if client is None and not redis_url:
            raise ValueError("redis_url or client is required")
        self._redis_url = redis_url
        self._client = client
        self._owns_client = client is None
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._on_error = on_error or self._log_error

    @staticmethod
    def _log_error(error: SessionStoreError) -> None:
        logger.error("Session store error (%s): %s", error.operation, error.cause)

    @staticmethod
    def generate_id() -> str:
        return secrets.token_urlsafe(24)

    def key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    async def connect(self) -> None:
        if self._client is None:
            self._client = Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_timeout=self.timeout_seconds,
                socket_connect_timeout=self.timeout_seconds,
            )
        try:
            await self._call("connect", self._client.ping())
            logger.info("Session store connected")
        except SessionStoreError:
            # Already reported; sessions degrade per request
            pass

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> Redis:
        if self._client is None:
            raise SessionStoreError("connect", RuntimeError("session store not connected"))
        return self._client

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            error = SessionStoreError(operation, e)
            SESSION_STORE_ERRORS.labels(operation=operation).inc()
            self._on_error(error)
            raise error from e

    async def get(self, session_id: str) -> dict | None:
        raw = await self._call("get", self._require_client().get(self.key(session_id)))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable session payload")
            return None
        return data if isinstance(data, dict) else None

    async def set(self, session_id: str, data: dict, ttl_seconds: int | None = None) -> None:
        payload = json.dumps(data, default=str)
        await self._call(
            "set",
            self._require_client().set(
                self.key(session_id), payload, ex=ttl_seconds or self.ttl_seconds
            ),
        )

    async def touch(self, session_id: str, ttl_seconds: int | None = None) -> bool:
        result = await self._call(
            "touch",
            self._require_client().expire(self.key(session_id), ttl_seconds or self.ttl_seconds),
        )
        return bool(result)

    async def destroy(self, session_id: str) -> None:
        await self._call("destroy", self._require_client().delete(self.key(session_id)))

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", self._require_client().ping()))
        except SessionStoreError:
            return False
