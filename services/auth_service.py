#!/usr/bin/env python3
"""
SessionService - Supabase 認証セッション管理

Wraps the supabase auth client, keeps the current session in the local cache
under ``supabase-session`` and publishes ``AuthStateChange`` events on its
``EventBus`` so the sync engine can follow sign-in and sign-out.
"""

import time
from typing import Any, Callable, Optional

from supabase import Client, create_client

from config.constants import (
    SESSION_CACHE_KEY,
    SESSION_REFRESH_MARGIN_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
)
from config.loggers import GenericLogger
from core.event_bus import AuthEvent, AuthStateChange, EventBus
from core.exceptions import AuthenticationError, ConfigurationMissingError
from models import AuthSession, SessionUser
from .local_cache import LocalCache


def session_from_supabase(session: Any) -> AuthSession:
    """supabase の Session オブジェクトを AuthSession に変換"""
    user = session.user
    metadata = getattr(user, "user_metadata", None) or {}
    return AuthSession(
        access_token=session.access_token,
        refresh_token=getattr(session, "refresh_token", None),
        expires_at=getattr(session, "expires_at", None),
        token_type=getattr(session, "token_type", None),
        user=SessionUser(
            id=str(user.id),
            email=user.email or "",
            has_completed_onboarding=bool(metadata.get("has_completed_onboarding", False)),
        ),
    )


class SessionService:
    """認証状態の保持とイベント通知"""

    def __init__(
        self,
        client: Optional[Client] = None,
        cache: Optional[LocalCache] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self.cache = cache or LocalCache()
        self.events: EventBus[AuthStateChange] = bus or EventBus("auth")
        self.clock = clock
        self.session: Optional[AuthSession] = None
        self.logger = GenericLogger("service", "auth")

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(SUPABASE_URL and SUPABASE_ANON_KEY)

    @property
    def client(self) -> Client:
        if self._client is None:
            if not (SUPABASE_URL and SUPABASE_ANON_KEY):
                raise ConfigurationMissingError("SUPABASE_URL と SUPABASE_ANON_KEY が設定されていません")
            self._client = create_client(SUPABASE_URL, SUPABASE_ANON_KEY)
        return self._client

    @property
    def current_user(self) -> Optional[SessionUser]:
        return self.session.user if self.session else None

    # ============================================================================
    # サインイン・サインアウト
    # ============================================================================

    def sign_in(self, email: str, password: str) -> AuthSession:
        """
        メールアドレスとパスワードでサインイン

        Raises:
            ConfigurationMissingError: Supabase is not configured
            AuthenticationError: credentials rejected
        """
        client = self.client
        try:
            response = client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            self.logger.warning(f"⚠️ [AUTH] Sign-in rejected for {email}: {e}")
            raise AuthenticationError(f"Sign-in failed: {e}") from e

        if response.session is None:
            raise AuthenticationError("Sign-in failed: no session returned")

        self._set_session(session_from_supabase(response.session), AuthEvent.SIGNED_IN)
        self.logger.info(f"✅ [AUTH] Signed in: {self.session.user.id}")
        return self.session

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """
        新規登録

        Returns:
            The new session, or None when email confirmation is pending
        """
        client = self.client
        try:
            response = client.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            self.logger.warning(f"⚠️ [AUTH] Sign-up rejected for {email}: {e}")
            raise AuthenticationError(f"Sign-up failed: {e}") from e

        if response.session is None:
            self.logger.info(f"📧 [AUTH] Sign-up for {email} awaiting email confirmation")
            return None

        self._set_session(session_from_supabase(response.session), AuthEvent.SIGNED_IN)
        return self.session

    def sign_out(self) -> None:
        """サインアウト（リモートの失敗はログのみ、ローカル状態は必ず破棄）"""
        if self.session is None:
            return
        if self._client is not None:
            try:
                self._client.auth.sign_out()
            except Exception as e:
                self.logger.warning(f"⚠️ [AUTH] Remote sign-out failed: {e}")
        self._clear_session()

    # ============================================================================
    # セッションの復元・更新
    # ============================================================================

    def restore_session(self) -> Optional[AuthSession]:
        """キャッシュからセッションを復元し、必要なら更新してから SIGNED_IN を通知"""
        cached = self.cache.load(SESSION_CACHE_KEY, lambda: None, AuthSession.from_dict)
        if cached is None:
            return None

        self.session = cached
        try:
            self.ensure_valid_session(publish=False)
        except AuthenticationError:
            return None

        self.events.publish(AuthStateChange(AuthEvent.SIGNED_IN, self.session))
        self.logger.info(f"🔐 [AUTH] Session restored for {self.session.user.id}")
        return self.session

    def needs_refresh(self) -> bool:
        if self.session is None or self.session.expires_at is None:
            return False
        return self.session.expires_at - self.clock() <= SESSION_REFRESH_MARGIN_SECONDS

    def ensure_valid_session(self, publish: bool = True) -> Optional[AuthSession]:
        """
        期限切れ間近（60秒以内）ならトークンを更新

        A failed refresh ends the session and raises ``AuthenticationError``.
        """
        if not self.needs_refresh():
            return self.session

        refresh_token = self.session.refresh_token
        try:
            if not refresh_token:
                raise AuthenticationError("Session expired and no refresh token is available")
            response = self.client.auth.refresh_session(refresh_token)
            if response.session is None:
                raise AuthenticationError("Token refresh returned no session")
        except ConfigurationMissingError:
            raise
        except Exception as e:
            self.logger.warning(f"⚠️ [AUTH] Token refresh failed: {e}")
            self._clear_session()
            if isinstance(e, AuthenticationError):
                raise
            raise AuthenticationError(f"Token refresh failed: {e}") from e

        refreshed = session_from_supabase(response.session)
        # onboarding フラグはローカルの値を優先
        refreshed.user.has_completed_onboarding = (
            refreshed.user.has_completed_onboarding or self.session.user.has_completed_onboarding
        )
        if publish:
            self._set_session(refreshed, AuthEvent.TOKEN_REFRESHED)
        else:
            self.session = refreshed
            self.cache.save(SESSION_CACHE_KEY, refreshed.to_dict())
        self.logger.debug("🔄 [AUTH] Access token refreshed")
        return self.session

    def _set_session(self, session: AuthSession, event: AuthEvent) -> None:
        self.session = session
        self.cache.save(SESSION_CACHE_KEY, session.to_dict())
        self.events.publish(AuthStateChange(event, session))

    def _clear_session(self) -> None:
        self.session = None
        self.cache.remove(SESSION_CACHE_KEY)
        self.events.publish(AuthStateChange(AuthEvent.SIGNED_OUT))
