"""
Goal: OAuth2 Authorization Code flow against Spotify, driven from a background event loop.

- grant(): start the local redirect listener and hand the consent URL to the browser hook.
- Redirect listener: FastAPI route served by uvicorn on REDIRECT_HOST:REDIRECT_PORT.
- refresh_access_token(): silent refresh with the stored refresh token.
- request(): authenticated Web API calls (Bearer) returning concurrent futures.
- Hooks (set by the credential manager) report status, expiry and refresh-token changes.
SECURITY: tokens are never logged.
"""

from __future__ import annotations

import asyncio
import base64
import secrets
import time
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from loguru import logger
from pydantic import ValidationError

from spotify_bridge.models.schemas import TokenResponse
from spotify_bridge.services.loop import EventLoopThread
from spotify_bridge.settings import (
    AUTH_URL,
    CALLBACK_PATH,
    HTTP_TIMEOUT_SECONDS,
    REDIRECT_HOST,
    REDIRECT_PORT,
    SCOPES,
    TOKEN_URL,
)


class Stage(Enum):
    REQUESTING_AUTHORIZATION = "requesting_authorization"
    REQUESTING_ACCESS_TOKEN = "requesting_access_token"
    REFRESHING_ACCESS_TOKEN = "refreshing_access_token"


class Status(Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    GRANTED = "granted"


class AuthorizationCodeFlow:
    def __init__(
        self,
        loop: EventLoopThread,
        *,
        authorization_url: str = AUTH_URL,
        token_url: str = TOKEN_URL,
        scope: str = SCOPES,
        redirect_host: str = REDIRECT_HOST,
        redirect_port: int = REDIRECT_PORT,
        callback_path: str = CALLBACK_PATH,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.loop = loop
        self.authorization_url = authorization_url
        self.token_url = token_url
        self.scope = scope
        self.redirect_host = redirect_host
        self.redirect_port = redirect_port
        self.callback_path = callback_path.strip("/")
        self._clock = clock

        self.client_id = ""
        self.client_secret = ""
        self.refresh_token = ""
        self.access_token = ""
        self.expiration_at: Optional[float] = None
        self.status = Status.NOT_AUTHENTICATED

        # Hooks
        self.status_changed: Optional[Callable[[Status], None]] = None
        self.expiration_changed: Optional[Callable[[float], None]] = None
        self.refresh_token_changed: Optional[Callable[[str], None]] = None
        self.authorize_with_browser: Optional[Callable[[str], Any]] = None
        self.modify_parameters: Optional[Callable[[Stage, Dict[str, str]], None]] = None

        self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=transport)
        self._state: Optional[str] = None
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self.redirect_app = self._build_redirect_app()

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.redirect_port}/{self.callback_path}"

    # ---------- hooks ----------

    def _modify(self, stage: Stage, params: Dict[str, str]) -> Dict[str, str]:
        if self.modify_parameters:
            self.modify_parameters(stage, params)
        return params

    def _set_status(self, status: Status) -> None:
        self.status = status
        if self.status_changed:
            self.status_changed(status)

    # ---------- authorization ----------

    def authorize_url(self, state: str) -> str:
        params = self._modify(
            Stage.REQUESTING_AUTHORIZATION,
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": self.scope,
                "state": state,
            },
        )
        return f"{self.authorization_url}?{urlencode(params)}"

    def grant(self) -> "Future[str]":
        """Start the interactive consent step; resolves to the URL handed to the browser."""
        return self.loop.submit(self._grant())

    async def _grant(self) -> str:
        self._state = secrets.token_urlsafe(16)
        await self._ensure_listener()
        url = self.authorize_url(self._state)
        if self.authorize_with_browser:
            self.authorize_with_browser(url)
        else:
            logger.warning("No browser hook set; open this URL to authorize: {}", url)
        return url

    def _build_redirect_app(self) -> FastAPI:
        app = FastAPI(title="Spotify Bridge redirect listener", docs_url=None, redoc_url=None)

        @app.get(f"/{self.callback_path}", response_class=HTMLResponse)
        async def callback(request: Request):
            ok = await self.handle_callback(dict(request.query_params))
            if not ok:
                return HTMLResponse(
                    "<h3>Spotify authorization failed. Try again from the app.</h3>",
                    status_code=400,
                )
            if self._server is not None:
                self._server.should_exit = True
            return HTMLResponse("<h3>Spotify linked. You can close this tab.</h3>")

        return app

    async def _ensure_listener(self) -> None:
        if self._server_task is not None and not self._server_task.done():
            return
        config = uvicorn.Config(
            self.redirect_app,
            host=self.redirect_host,
            port=self.redirect_port,
            log_config=None,  # loguru handles our logs
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._serve(self._server))

    async def _serve(self, server: uvicorn.Server) -> None:
        logger.info("Redirect listener on {}", self.redirect_uri)
        try:
            await server.serve()
        except SystemExit:
            # uvicorn exits the process when it cannot bind; keep the loop alive instead
            logger.error("Redirect listener could not start on port {}", self.redirect_port)
        logger.debug("Redirect listener stopped")

    async def handle_callback(self, params: Mapping[str, str]) -> bool:
        """
        Verify the redirect (error / code / state) and exchange the code for tokens.
        """
        if params.get("error"):
            logger.warning("Authorization denied: {}", params.get("error"))
            return False
        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            logger.warning("Authorization callback without code or state")
            return False
        if self._state is None or state != self._state:
            logger.warning("Authorization callback state mismatch")
            return False
        self._state = None

        data = self._modify(
            Stage.REQUESTING_ACCESS_TOKEN,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
            },
        )
        if self.client_secret:
            data.setdefault("client_secret", self.client_secret)
        return await self._request_token(data)

    # ---------- tokens ----------

    def refresh_access_token(self) -> "Future[bool]":
        return self.loop.submit(self._refresh())

    async def _refresh(self) -> bool:
        if not self.refresh_token:
            logger.warning("No refresh token available")
            return False
        data = self._modify(
            Stage.REFRESHING_ACCESS_TOKEN,
            {"grant_type": "refresh_token", "refresh_token": self.refresh_token},
        )
        return await self._request_token(data)

    def _basic_auth(self) -> Dict[str, str]:
        if not self.client_secret:
            return {}
        raw = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        return {"Authorization": "Basic " + base64.b64encode(raw).decode("ascii")}

    async def _request_token(self, data: Dict[str, str]) -> bool:
        try:
            r = await self._client.post(self.token_url, data=data, headers=self._basic_auth())
        except httpx.HTTPError as e:
            logger.warning("Token request failed: {}", e.__class__.__name__)
            return False
        if r.status_code != 200:
            logger.warning("Token endpoint answered HTTP {}", r.status_code)
            return False
        try:
            tok = TokenResponse.model_validate(r.json())
        except (ValueError, ValidationError):
            logger.warning("Token endpoint returned an unexpected body")
            return False
        self._apply_tokens(tok)
        return True

    def _apply_tokens(self, tok: TokenResponse) -> None:
        self.access_token = tok.access_token
        self.expiration_at = self._clock() + tok.expires_in
        if self.expiration_changed:
            self.expiration_changed(self.expiration_at)
        if tok.refresh_token and tok.refresh_token != self.refresh_token:
            self.refresh_token = tok.refresh_token
            if self.refresh_token_changed:
                self.refresh_token_changed(self.refresh_token)
        self._set_status(Status.GRANTED)

    # ---------- Web API ----------

    def request(self, method: str, url: str, *, json: Optional[Any] = None) -> "Future[httpx.Response]":
        return self.loop.submit(self._request(method, url, json))

    async def _request(self, method: str, url: str, json: Optional[Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        return await self._client.request(method, url, headers=headers, json=json)

    # ---------- lifecycle ----------

    def close(self, timeout: float = 5.0) -> None:
        if not self.loop.running:
            return
        self.loop.submit(self._aclose()).result(timeout)

    async def _aclose(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._server_task is not None:
            await self._server_task
        await self._client.aclose()
