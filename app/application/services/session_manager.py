from __future__ import annotations

import hmac
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from app.application.dto.auth import CreatedSession, RotatedTokens
from app.application.ports.auth_port import AuthPort
from app.application.ports.session_store_port import SessionStorePort
from app.application.ports.token_port import TokenPort
from app.domain.entities.session import AuthSession, DeviceInfo
from app.domain.exceptions import (
    NotFoundError,
    RefreshTokenReuseError,
    SessionRevokedError,
    UnauthorizedError,
)


logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(days=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Owns the session lifecycle: creation, refresh rotation and revocation.

    Each session holds the hash of exactly one live refresh token. Rotation swaps
    that hash with a compare-and-swap in the store; presenting any older token of
    the same family revokes the whole family.
    """

    def __init__(
        self,
        *,
        session_store: SessionStorePort,
        auth_port: AuthPort,
        token_port: TokenPort,
        session_ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_store = session_store
        self._auth_port = auth_port
        self._token_port = token_port
        self._session_ttl = session_ttl
        self._clock = clock

    def create_session(self, *, user_id: str, device: DeviceInfo) -> CreatedSession:
        now = self._clock()
        session_id = str(uuid4())
        family_id = str(uuid4())
        refresh = self._token_port.issue_refresh_token(
            user_id=user_id,
            session_id=session_id,
            device_id=device.device_id,
            family_id=family_id,
            now=now,
        )
        session = self._session_store.create_session(
            session_id=session_id,
            user_id=user_id,
            device=device,
            refresh_token_hash=self._token_port.hash_refresh_token(refresh_token=refresh.token),
            family_id=family_id,
            expires_at=now + self._session_ttl,
            created_at=now,
        )
        logger.info(
            "session_manager: session_created session_id=%s user_id=%s device_id=%s",
            session.id,
            user_id,
            device.device_id,
        )
        return CreatedSession(
            session=session,
            refresh_token=refresh.token,
            refresh_expires_at=refresh.expires_at,
        )

    def rotate(self, *, refresh_token: str) -> RotatedTokens:
        claims = self._token_port.verify_refresh_token(token=refresh_token)
        now = self._clock()

        session = self._session_store.get_session_by_id(session_id=claims.session_id)
        if session is None:
            raise NotFoundError("Session")
        if claims.device_id != session.device_id:
            logger.warning(
                "session_manager: device_mismatch session_id=%s",
                session.id,
            )
            raise UnauthorizedError("Device mismatch.")
        if session.is_revoked:
            raise SessionRevokedError()
        if session.is_expired(now):
            self._session_store.revoke_session(session_id=session.id, revoked_at=now)
            raise SessionRevokedError("Session has expired.")

        presented_hash = self._token_port.hash_refresh_token(refresh_token=refresh_token)
        if not hmac.compare_digest(presented_hash, session.refresh_token_hash):
            self._reject_reuse(session=session, now=now)

        user = self._auth_port.get_user_by_id(user_id=session.user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User")

        refresh = self._token_port.issue_refresh_token(
            user_id=user.id,
            session_id=session.id,
            device_id=session.device_id,
            family_id=session.family_id,
            now=now,
        )
        access = self._token_port.issue_access_token(
            user_id=user.id,
            email=user.email,
            tier=user.subscription_tier,
            now=now,
        )
        new_hash = self._token_port.hash_refresh_token(refresh_token=refresh.token)
        expires_at = now + self._session_ttl
        swapped = self._session_store.rotate_refresh_token_hash(
            session_id=session.id,
            expected_hash=presented_hash,
            new_hash=new_hash,
            expires_at=expires_at,
            last_active_at=now,
        )
        if not swapped:
            current = self._session_store.get_session_by_id(session_id=session.id)
            if current is None or current.is_revoked:
                raise SessionRevokedError()
            # Another request rotated this token first.
            self._reject_reuse(session=session, now=now)

        return RotatedTokens(
            session=replace(session, refresh_token_hash=new_hash, expires_at=expires_at, last_active_at=now),
            access_token=access.token,
            expires_in=access.expires_in,
            refresh_token=refresh.token,
            refresh_expires_at=refresh.expires_at,
        )

    def revoke(self, *, session_id: str) -> int:
        return self._session_store.revoke_session(session_id=session_id, revoked_at=self._clock())

    def revoke_all_for_user(self, *, user_id: str) -> int:
        return self._session_store.revoke_sessions_for_user(user_id=user_id, revoked_at=self._clock())

    def revoke_all_for_device(self, *, user_id: str, device_id: str) -> int:
        return self._session_store.revoke_sessions_for_device(
            user_id=user_id,
            device_id=device_id,
            revoked_at=self._clock(),
        )

    def revoke_family(self, *, family_id: str) -> int:
        return self._session_store.revoke_family(family_id=family_id, revoked_at=self._clock())

    def list_active_sessions(self, *, user_id: str) -> list[AuthSession]:
        return self._session_store.list_active_sessions(user_id=user_id, now=self._clock())

    def _reject_reuse(self, *, session: AuthSession, now: datetime) -> None:
        revoked = self._session_store.revoke_family(family_id=session.family_id, revoked_at=now)
        logger.warning(
            "session_manager: refresh_token_reuse session_id=%s family_id=%s revoked=%s",
            session.id,
            session.family_id,
            revoked,
        )
        raise RefreshTokenReuseError("Token has already been used.")
