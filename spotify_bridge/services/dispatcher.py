"""
Goal: Per-command request queue for the player endpoints.

Each command owns one slot: idle -> processing -> data ready -> (drained) idle.
execute() never waits on the network; a completed request fills its slot and tells the
host, and the next execute() for that command hands the buffered result over.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Optional, Protocol, Union

import httpx
from httpx import QueryParams
from loguru import logger

from spotify_bridge.adapters.host import DataSink, Notifier
from spotify_bridge.auth.credentials import CredentialManager
from spotify_bridge.models.commands import (
    COMMANDS,
    Command,
    CommandDescriptor,
    Verb,
    check_args_for_key,
    convert_arg_to_query,
    merge_into_query,
    parse_args,
    resolve_command,
)
from spotify_bridge.settings import API_BASE


class Transport(Protocol):
    def request(self, method: str, url: str, *, json: Optional[Any] = None) -> "Future[httpx.Response]": ...


@dataclass
class CommandSlot:
    processing: bool = False
    data_ready: bool = False
    payload: bytes = b""
    errors: List[str] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def reset(self) -> None:
        self.payload = b""
        self.errors.clear()
        self.data_ready = False
        self.processing = False


class CommandDispatcher:
    def __init__(
        self,
        credentials: CredentialManager,
        transport: Transport,
        notifier: Notifier,
        api_base: str = API_BASE,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._notifier = notifier
        self._api_base = api_base.rstrip("/")
        self._slots: Dict[Command, CommandSlot] = {}
        self._slots_lock = threading.Lock()

    def slot(self, command: Command) -> CommandSlot:
        with self._slots_lock:
            return self._slots.setdefault(command, CommandSlot())

    def build_url(self, descriptor: CommandDescriptor, query: Dict[str, str]) -> str:
        url = self._api_base + descriptor.path
        if query:
            url += "?" + str(QueryParams(query))
        return url

    def execute(self, command: Union[Command, str], sink: DataSink, args: Optional[str] = None) -> bool:
        command = resolve_command(command)
        if not self._credentials.ensure_authenticated():
            logger.warning("Unauthenticated or expired access token")
            return False

        descriptor = COMMANDS[command]
        slot = self.slot(command)

        with slot.lock:
            if slot.data_ready:
                self._drain(slot, sink)
                return True
            if slot.processing:
                # still processing
                return True
            slot.processing = True

        params = parse_args(args)
        query: Dict[str, str] = {}
        convert_arg_to_query(params, query, "device_id")

        if descriptor.required and not check_args_for_key(params, descriptor.required, descriptor.source, sink):
            # Release the slot; no request was issued so no completion will ever free it
            with slot.lock:
                slot.processing = False
            return False

        for key in descriptor.query_keys:
            convert_arg_to_query(params, query, key)

        body = None
        if descriptor.verb is Verb.GET:
            merge_into_query(params, query)
        elif params:
            body = params

        url = self.build_url(descriptor, query)
        logger.debug("{} {}", descriptor.verb.value, url)
        try:
            future = self._transport.request(descriptor.verb.value, url, json=body)
        except RuntimeError as e:
            # event loop already shut down
            logger.error("Could not issue '{}': {}", descriptor.source, e)
            with slot.lock:
                slot.processing = False
            sink.append_error(str(e))
            return False
        future.add_done_callback(partial(self._finished, command))
        return True

    def _drain(self, slot: CommandSlot, sink: DataSink) -> None:
        if not slot.payload:
            sink.set_null()
        else:
            sink.set_json(slot.payload)
        for err in slot.errors:
            sink.append_error(err)
        slot.reset()

    def _finished(self, command: Command, future: "Future[httpx.Response]") -> None:
        descriptor = COMMANDS[command]
        slot = self.slot(command)

        with slot.lock:
            slot.data_ready = True
            slot.processing = False

            if future.cancelled():
                slot.errors.append("Request cancelled")
            elif future.exception() is not None:
                exc = future.exception()
                message = str(exc) or exc.__class__.__name__
                logger.warning("Request for '{}' failed: {}", descriptor.source, message)
                slot.errors.append(message)
            else:
                response = future.result()
                if response.status_code != 204:
                    if descriptor.verb is Verb.GET:
                        slot.payload = response.content
                    else:
                        slot.errors.append(str(response.status_code))

        self._notifier.signal_data_ready(descriptor.source)
