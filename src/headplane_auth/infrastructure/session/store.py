"""Cookie Session Store

Server-side sessions keyed by an opaque cookie. The cookie carries only a
random session id; the session body is stored as JSON in Redis.

Storage Schema:
- {key_prefix}{session_id} -> {json session data} (TTL = max_age)
"""

import json
import logging
import secrets
from typing import Any, Optional

from fastapi import Response
from redis.asyncio import Redis
from starlette.requests import cookie_parser

from headplane_auth.config.settings import Settings

logger = logging.getLogger(__name__)


class Session:
    """Request-scoped view of one user's session

    Attributes:
        id: Session id (None until first commit)
        data: Session values
    """

    def __init__(self, session_id: Optional[str] = None, data: Optional[dict[str, Any]] = None):
        self.id = session_id
        self.data: dict[str, Any] = dict(data or {})
        self.previous_id: Optional[str] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def has(self, key: str) -> bool:
        return key in self.data

    def unset(self, key: str) -> None:
        self.data.pop(key, None)

    def regenerate(self) -> None:
        """Issue a new session id on next commit, discarding the old one"""
        if self.id is not None:
            self.previous_id = self.id
        self.id = None


class SessionStore:
    """Redis-backed cookie session store"""

    def __init__(
        self,
        redis_client: Redis,
        cookie_name: str = "hp_sess",
        max_age_seconds: int = 86400,
        secure: bool = False,
        samesite: str = "lax",
        key_prefix: str = "headplane:session:",
    ):
        """Initialize session store

        Args:
            redis_client: Redis connection for session storage
            cookie_name: Name of the session cookie
            max_age_seconds: Session lifetime (cookie max-age and Redis TTL)
            secure: Set the Secure flag on the cookie
            samesite: SameSite policy of the cookie
            key_prefix: Redis key prefix for session bodies
        """
        self.redis = redis_client
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        self.secure = secure
        self.samesite = samesite
        self.key_prefix = key_prefix

    @classmethod
    def from_settings(cls, redis_client: Redis, settings: Settings) -> "SessionStore":
        return cls(
            redis_client,
            cookie_name=settings.session_cookie_name,
            max_age_seconds=settings.session_max_age_seconds,
            secure=settings.session_cookie_secure,
            samesite=settings.session_cookie_samesite,
            key_prefix=settings.session_key_prefix,
        )

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def get_session(self, cookie_header: Optional[str]) -> Session:
        """Load the session referenced by a Cookie header

        Args:
            cookie_header: Raw Cookie request header (may be None)

        Returns:
            Stored session, or a fresh empty session if none is found
        """
        if not cookie_header:
            return Session()

        session_id = cookie_parser(cookie_header).get(self.cookie_name)
        if not session_id:
            return Session()

        raw = await self.redis.get(self._key(session_id))
        if raw is None:
            return Session()

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding corrupt session {session_id[:8]}...")
            return Session()

        if not isinstance(data, dict):
            return Session()
        return Session(session_id, data)

    async def commit_session(self, session: Session, response: Response) -> None:
        """Persist the session and attach its cookie to a response"""
        if session.previous_id is not None:
            await self.redis.delete(self._key(session.previous_id))
            session.previous_id = None

        if session.id is None:
            session.id = secrets.token_urlsafe(32)

        await self.redis.setex(self._key(session.id), self.max_age_seconds, json.dumps(session.data))
        response.set_cookie(
            self.cookie_name,
            session.id,
            max_age=self.max_age_seconds,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    async def destroy_session(self, session: Session, response: Response) -> None:
        """Delete the session and expire its cookie"""
        for session_id in (session.id, session.previous_id):
            if session_id is not None:
                await self.redis.delete(self._key(session_id))

        session.id = None
        session.previous_id = None
        session.data.clear()
        response.delete_cookie(
            self.cookie_name,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )
