"""
Goal: Keep a valid Spotify bearer credential across restarts.

- Restores the refresh token from host storage and persists every new one immediately.
- ensure_authenticated() detects expiry and re-grants (silent refresh first, browser second).
- Refresh waits at most REFRESH_WAIT_SECONDS; interactive grants are limited to one per
  GRANT_COOLDOWN_SECONDS.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import TimeoutError as FutureTimeout
from enum import Enum
from typing import Any, Callable, Dict, Optional

from loguru import logger

from spotify_bridge.adapters.host import Storage
from spotify_bridge.auth.oauth import AuthorizationCodeFlow, Stage, Status
from spotify_bridge.settings import GRANT_COOLDOWN_SECONDS, REFRESH_TOKEN_KEY, REFRESH_WAIT_SECONDS


class CredentialState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING_VERIFICATION = "pending_verification"
    GRANTING = "granting"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class CredentialManager:
    def __init__(
        self,
        storage: Storage,
        flow: AuthorizationCodeFlow,
        client_id: str = "",
        client_secret: str = "",
        *,
        scheduler: Optional[Callable[[float, Callable[[], Any]], Any]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if storage is None:
            raise ValueError("storage collaborator is required")

        self._storage = storage
        self._flow = flow
        self._schedule = scheduler or flow.loop.call_later
        self._clock = clock
        self._lock = threading.Lock()

        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = storage.get_string(REFRESH_TOKEN_KEY) or ""
        self.authenticated = False
        self.granting = False
        self.expired = False

        flow.client_id = client_id
        flow.client_secret = client_secret
        if self.refresh_token:
            flow.refresh_token = self.refresh_token

        flow.status_changed = self._on_status_changed
        flow.expiration_changed = self._on_expiration_changed
        flow.refresh_token_changed = self._on_refresh_token_changed
        flow.modify_parameters = self._modify_parameters

    @property
    def state(self) -> CredentialState:
        if self.authenticated and not self.expired:
            return CredentialState.AUTHENTICATED
        if self.granting:
            return CredentialState.GRANTING
        if self.authenticated or self.expired:
            return CredentialState.EXPIRED
        if self.refresh_token:
            # restored from storage, not yet refreshed
            return CredentialState.PENDING_VERIFICATION
        return CredentialState.UNAUTHENTICATED

    # ---------- flow hooks ----------

    def _on_status_changed(self, status: Status) -> None:
        if status is Status.GRANTED:
            logger.info("Authenticated with Spotify.")
            self.authenticated = True
            with self._lock:
                self.granting = False

    def _on_expiration_changed(self, expiration_at: float) -> None:
        self.expired = self._clock() > expiration_at

    def _on_refresh_token_changed(self, refresh_token: str) -> None:
        self.refresh_token = refresh_token
        try:
            self._storage.set_string(REFRESH_TOKEN_KEY, refresh_token)
        except Exception:  # noqa: BLE001
            # the new token still applies for this session; a restart falls back to a browser grant
            logger.exception("Could not persist the refresh token")

    def _modify_parameters(self, stage: Stage, params: Dict[str, str]) -> None:
        # Some providers want the client in the body, others read the Basic header; send both
        if stage is Stage.REFRESHING_ACCESS_TOKEN:
            params["client_id"] = self.client_id
            params["client_secret"] = self.client_secret

    def _clear_granting(self) -> None:
        with self._lock:
            self.granting = False

    # ---------- operations ----------

    def set_client_ids(self, client_id: str, client_secret: str) -> None:
        if self.client_id != client_id:
            self.client_id = client_id
            self._flow.client_id = client_id
        if self.client_secret != client_secret:
            self.client_secret = client_secret
            self._flow.client_secret = client_secret

    def ensure_authenticated(self) -> bool:
        expiration_at = self._flow.expiration_at
        if expiration_at is None or self._clock() > expiration_at:
            self.expired = True
            self.grant()
        return self.authenticated and not self.expired

    def grant(self) -> None:
        if not self.client_id:
            logger.warning("Client ID not set for authentication.")
            return

        if self.refresh_token and self.client_secret:
            loop = getattr(self._flow, "loop", None)
            if loop is not None and loop.in_loop_thread():
                # waiting here would block the loop the refresh runs on
                raise RuntimeError("execute() must not be called from the event loop thread")
            if self._refresh():
                return

        with self._lock:
            if self.granting:
                return
            self.granting = True

        logger.info("Obtaining authorization grant.")
        try:
            self._schedule(GRANT_COOLDOWN_SECONDS, self._clear_granting)
            self._flow.grant()
        except RuntimeError as e:
            # event loop already shut down
            logger.error("Could not start authorization grant: {}", e)
            self._clear_granting()

    def _refresh(self) -> bool:
        logger.info("Refreshing authorization tokens.")
        try:
            self._flow.refresh_access_token().result(timeout=REFRESH_WAIT_SECONDS)
        except FutureTimeout:
            logger.warning("Token refresh did not finish within {}s", REFRESH_WAIT_SECONDS)
            return False
        except Exception as e:  # noqa: BLE001
            logger.warning("Token refresh failed: {}", e.__class__.__name__)
            return False
        return self.authenticated and not self.expired
