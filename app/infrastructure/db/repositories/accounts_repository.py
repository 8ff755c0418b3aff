from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Mapping, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from app.application.ports.auth_port import AuthPort
from app.application.ports.session_store_port import SessionStorePort
from app.domain.entities.session import AuthSession, DeviceInfo
from app.domain.entities.user import PROFILE_FIELDS, AuthProvider, IdentityLink, User
from app.domain.exceptions import ConflictError
from app.infrastructure.db.mappers.accounts_mapper import (
    map_row_to_auth_session,
    map_row_to_identity_link,
    map_row_to_user,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

_USER_COLUMNS = """
    id, email, email_verified, full_name, avatar_url, timezone, locale,
    subscription_tier, subscription_status, trial_ends_at, created_at, updated_at, deleted_at, phone_number
"""

_IDENTITY_COLUMNS = """
    id, user_id, provider, provider_subject, provider_email,
    access_token_encrypted, refresh_token_encrypted, token_expires_at, created_at
"""

_SESSION_COLUMNS = """
    id, user_id, device_id, device_name, device_model, os_version, app_version,
    push_token, ip_address, user_agent, refresh_token_hash, family_id,
    expires_at, revoked_at, last_active_at, created_at
"""


class SqlAccountsRepository(AuthPort, SessionStorePort):
    def __init__(self, engine, *, connection: Connection | None = None):
        self._engine = engine
        self._connection = connection

    @contextmanager
    def _read(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def _write(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.begin() as conn:
            yield conn

    def execute_in_transaction(self, fn: Callable[[SqlAccountsRepository], T]) -> T:
        if self._connection is not None:
            return fn(self)
        with self._engine.begin() as conn:
            return fn(SqlAccountsRepository(self._engine, connection=conn))

    # Users

    def get_user_by_id(self, *, user_id: str) -> User | None:
        sql = f"""
            SELECT {_USER_COLUMNS}
            FROM public.users
            WHERE id = :user_id
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_email(self, *, email: str) -> User | None:
        sql = f"""
            SELECT {_USER_COLUMNS}
            FROM public.users
            WHERE lower(email) = :email
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"email": email.lower()}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        email_verified: bool,
        full_name: str,
        avatar_url: str | None,
        trial_ends_at: datetime | None,
        created_at: datetime,
    ) -> User:
        sql = f"""
            INSERT INTO public.users (
                id, email, email_verified, full_name, avatar_url, trial_ends_at, created_at, updated_at
            ) VALUES (
                :id, :email, :email_verified, :full_name, :avatar_url, :trial_ends_at, :created_at, :created_at
            )
            RETURNING {_USER_COLUMNS}
        """
        params = {
            "id": user_id,
            "email": email,
            "email_verified": email_verified,
            "full_name": full_name,
            "avatar_url": avatar_url,
            "trial_ends_at": trial_ends_at,
            "created_at": created_at,
        }
        try:
            with self._write() as conn:
                row = conn.execute(text(sql), params).mappings().one()
        except IntegrityError as exc:
            raise ConflictError("A user with this email already exists.") from exc
        return map_row_to_user(row)

    def create_default_settings(self, *, user_id: str, created_at: datetime) -> None:
        sql = """
            INSERT INTO public.user_settings (user_id, created_at, updated_at)
            VALUES (:user_id, :created_at, :created_at)
            ON CONFLICT (user_id) DO NOTHING
        """
        with self._write() as conn:
            conn.execute(text(sql), {"user_id": user_id, "created_at": created_at})

    def mark_user_deleted(self, *, user_id: str, deleted_at: datetime) -> None:
        sql = """
            UPDATE public.users
            SET deleted_at = :deleted_at,
                updated_at = :deleted_at
            WHERE id = :user_id
              AND deleted_at IS NULL
        """
        with self._write() as conn:
            conn.execute(text(sql), {"user_id": user_id, "deleted_at": deleted_at})

    def update_user_profile(
        self,
        *,
        user_id: str,
        changes: Mapping[str, str | None],
        updated_at: datetime,
    ) -> User | None:
        columns = [name for name in PROFILE_FIELDS if name in changes]
        assignments = "".join(f"{name} = :{name},\n                " for name in columns)
        sql = f"""
            UPDATE public.users
            SET {assignments}updated_at = :updated_at
            WHERE id = :user_id
              AND deleted_at IS NULL
            RETURNING {_USER_COLUMNS}
        """
        params = {name: changes[name] for name in columns}
        params.update({"user_id": user_id, "updated_at": updated_at})
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    # Identity links

    def create_identity_link(
        self,
        *,
        link_id: str,
        user_id: str,
        provider: AuthProvider,
        provider_subject: str,
        provider_email: str | None,
        created_at: datetime,
    ) -> IdentityLink:
        sql = f"""
            INSERT INTO public.auth_identities (
                id, user_id, provider, provider_subject, provider_email, created_at
            ) VALUES (
                :id, :user_id, :provider, :provider_subject, :provider_email, :created_at
            )
            RETURNING {_IDENTITY_COLUMNS}
        """
        params = {
            "id": link_id,
            "user_id": user_id,
            "provider": provider,
            "provider_subject": provider_subject,
            "provider_email": provider_email,
            "created_at": created_at,
        }
        try:
            with self._write() as conn:
                row = conn.execute(text(sql), params).mappings().one()
        except IntegrityError as exc:
            raise ConflictError("Identity is already linked.") from exc
        return map_row_to_identity_link(row)

    def get_identity_link(
        self,
        *,
        provider: AuthProvider,
        provider_subject: str,
    ) -> IdentityLink | None:
        sql = f"""
            SELECT {_IDENTITY_COLUMNS}
            FROM public.auth_identities
            WHERE provider = :provider
              AND provider_subject = :provider_subject
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(
                text(sql),
                {"provider": provider, "provider_subject": provider_subject},
            ).mappings().first()
        if row is None:
            return None
        return map_row_to_identity_link(row)

    def get_identity_link_for_user_provider(
        self,
        *,
        user_id: str,
        provider: AuthProvider,
    ) -> IdentityLink | None:
        sql = f"""
            SELECT {_IDENTITY_COLUMNS}
            FROM public.auth_identities
            WHERE user_id = :user_id
              AND provider = :provider
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(
                text(sql),
                {"user_id": user_id, "provider": provider},
            ).mappings().first()
        if row is None:
            return None
        return map_row_to_identity_link(row)

    def list_identity_links_for_user(self, *, user_id: str) -> list[IdentityLink]:
        sql = f"""
            SELECT {_IDENTITY_COLUMNS}
            FROM public.auth_identities
            WHERE user_id = :user_id
            ORDER BY created_at ASC
        """
        with self._read() as conn:
            rows = conn.execute(text(sql), {"user_id": user_id}).mappings().all()
        return [map_row_to_identity_link(row) for row in rows]

    def store_provider_tokens(
        self,
        *,
        provider: AuthProvider,
        provider_subject: str,
        access_token_encrypted: bytes,
        refresh_token_encrypted: bytes | None,
        token_expires_at: datetime,
    ) -> None:
        sql = """
            UPDATE public.auth_identities
            SET access_token_encrypted = :access_token_encrypted,
                refresh_token_encrypted = COALESCE(:refresh_token_encrypted, refresh_token_encrypted),
                token_expires_at = :token_expires_at
            WHERE provider = :provider
              AND provider_subject = :provider_subject
        """
        with self._write() as conn:
            conn.execute(
                text(sql),
                {
                    "provider": provider,
                    "provider_subject": provider_subject,
                    "access_token_encrypted": access_token_encrypted,
                    "refresh_token_encrypted": refresh_token_encrypted,
                    "token_expires_at": token_expires_at,
                },
            )

    # Sessions

    def create_session(
        self,
        *,
        session_id: str,
        user_id: str,
        device: DeviceInfo,
        refresh_token_hash: str,
        family_id: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> AuthSession:
        sql = f"""
            INSERT INTO public.auth_sessions (
                id, user_id, device_id, device_name, device_model, os_version, app_version,
                push_token, ip_address, user_agent, refresh_token_hash, family_id,
                expires_at, revoked_at, last_active_at, created_at
            ) VALUES (
                :id, :user_id, :device_id, :device_name, :device_model, :os_version, :app_version,
                :push_token, :ip_address, :user_agent, :refresh_token_hash, :family_id,
                :expires_at, NULL, :created_at, :created_at
            )
            RETURNING {_SESSION_COLUMNS}
        """
        params = {
            "id": session_id,
            "user_id": user_id,
            "device_id": device.device_id,
            "device_name": device.device_name,
            "device_model": device.device_model,
            "os_version": device.os_version,
            "app_version": device.app_version,
            "push_token": device.push_token,
            "ip_address": device.ip_address,
            "user_agent": device.user_agent,
            "refresh_token_hash": refresh_token_hash,
            "family_id": family_id,
            "expires_at": expires_at,
            "created_at": created_at,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return map_row_to_auth_session(row)

    def get_session_by_id(self, *, session_id: str) -> AuthSession | None:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.auth_sessions
            WHERE id = :session_id
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"session_id": session_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_auth_session(row)

    def get_session_for_user(self, *, session_id: str, user_id: str) -> AuthSession | None:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.auth_sessions
            WHERE id = :session_id
              AND user_id = :user_id
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(
                text(sql),
                {"session_id": session_id, "user_id": user_id},
            ).mappings().first()
        if row is None:
            return None
        return map_row_to_auth_session(row)

    def list_active_sessions(self, *, user_id: str, now: datetime) -> list[AuthSession]:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.auth_sessions
            WHERE user_id = :user_id
              AND revoked_at IS NULL
              AND expires_at > :now
            ORDER BY last_active_at DESC
        """
        with self._read() as conn:
            rows = conn.execute(text(sql), {"user_id": user_id, "now": now}).mappings().all()
        return [map_row_to_auth_session(row) for row in rows]

    def rotate_refresh_token_hash(
        self,
        *,
        session_id: str,
        expected_hash: str,
        new_hash: str,
        expires_at: datetime,
        last_active_at: datetime,
    ) -> bool:
        sql = """
            UPDATE public.auth_sessions
            SET refresh_token_hash = :new_hash,
                expires_at = :expires_at,
                last_active_at = :last_active_at
            WHERE id = :session_id
              AND refresh_token_hash = :expected_hash
              AND revoked_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(
                text(sql),
                {
                    "session_id": session_id,
                    "expected_hash": expected_hash,
                    "new_hash": new_hash,
                    "expires_at": expires_at,
                    "last_active_at": last_active_at,
                },
            )
        swapped = result.rowcount == 1
        if not swapped:
            logger.info("accounts_repo: rotate_cas_lost session_id=%s", session_id)
        return swapped

    def revoke_session(self, *, session_id: str, revoked_at: datetime) -> int:
        sql = """
            UPDATE public.auth_sessions
            SET revoked_at = :revoked_at
            WHERE id = :session_id
              AND revoked_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(text(sql), {"session_id": session_id, "revoked_at": revoked_at})
        return result.rowcount

    def revoke_sessions_for_user(self, *, user_id: str, revoked_at: datetime) -> int:
        sql = """
            UPDATE public.auth_sessions
            SET revoked_at = :revoked_at
            WHERE user_id = :user_id
              AND revoked_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(text(sql), {"user_id": user_id, "revoked_at": revoked_at})
        return result.rowcount

    def revoke_sessions_for_device(self, *, user_id: str, device_id: str, revoked_at: datetime) -> int:
        sql = """
            UPDATE public.auth_sessions
            SET revoked_at = :revoked_at
            WHERE user_id = :user_id
              AND device_id = :device_id
              AND revoked_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(
                text(sql),
                {"user_id": user_id, "device_id": device_id, "revoked_at": revoked_at},
            )
        return result.rowcount

    def revoke_family(self, *, family_id: str, revoked_at: datetime) -> int:
        sql = """
            UPDATE public.auth_sessions
            SET revoked_at = :revoked_at
            WHERE family_id = :family_id
              AND revoked_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(text(sql), {"family_id": family_id, "revoked_at": revoked_at})
        return result.rowcount
