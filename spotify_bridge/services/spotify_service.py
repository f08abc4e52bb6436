"""
Goal: Thin facade so a host (or the CLI) gets one stable surface regardless of the wiring.

SpotifyBridge owns the event loop thread, the OAuth flow, the credential manager and the
command dispatcher. Close it (or use it as a context manager) to stop the loop.
"""

from __future__ import annotations

from typing import Callable, Optional, Union

import httpx
from loguru import logger

from spotify_bridge.adapters.host import DataSink, LogNotifier, Notifier, Storage
from spotify_bridge.auth.credentials import CredentialManager
from spotify_bridge.auth.oauth import AuthorizationCodeFlow
from spotify_bridge.models.commands import Command
from spotify_bridge.services import browser_service
from spotify_bridge.services.dispatcher import CommandDispatcher
from spotify_bridge.services.loop import EventLoopThread


class SpotifyBridge:
    def __init__(
        self,
        storage: Storage,
        notifier: Optional[Notifier] = None,
        client_id: str = "",
        client_secret: str = "",
        *,
        open_url: Callable[[str], object] = browser_service.open_url,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.closed = False
        self._loop = EventLoopThread()
        self.flow = AuthorizationCodeFlow(self._loop, transport=transport)
        self.flow.authorize_with_browser = open_url
        self.credentials = CredentialManager(storage, self.flow, client_id, client_secret)
        self.dispatcher = CommandDispatcher(
            self.credentials, self.flow, notifier if notifier is not None else LogNotifier()
        )

    def execute(self, command: Union[Command, str], sink: DataSink, args: Optional[str] = None) -> bool:
        if self.closed:
            logger.warning("Bridge is closed; ignoring '{}'", command)
            return False
        return self.dispatcher.execute(command, sink, args)

    def set_client_ids(self, client_id: str, client_secret: str) -> None:
        self.credentials.set_client_ids(client_id, client_secret)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.flow.close()
        self._loop.stop()

    def __enter__(self) -> "SpotifyBridge":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
