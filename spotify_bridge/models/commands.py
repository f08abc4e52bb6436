"""
Goal: Static command table for the player endpoints plus the argument-to-query helpers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from loguru import logger

from spotify_bridge.adapters.host import DataSink


class Verb(Enum):
    GET = "GET"
    PUT = "PUT"
    POST = "POST"


class Command(Enum):
    PLAYBACK_STATE = "playback_state"
    CURRENTLY_PLAYING = "currently_playing"
    DEVICES = "devices"
    RECENTLY_PLAYED = "recently_played"
    PLAY = "play"
    PAUSE = "pause"
    NEXT = "next"
    PREVIOUS = "previous"
    SEEK = "seek"
    REPEAT = "repeat"
    VOLUME = "volume"
    SHUFFLE = "shuffle"


@dataclass(frozen=True)
class CommandDescriptor:
    path: str
    verb: Verb
    source: str
    required: Optional[str] = None
    query_keys: Tuple[str, ...] = ()


COMMANDS: Mapping[Command, CommandDescriptor] = {
    Command.PLAYBACK_STATE: CommandDescriptor("", Verb.GET, "playbackstate", query_keys=("additional_types",)),
    Command.CURRENTLY_PLAYING: CommandDescriptor(
        "/currently-playing", Verb.GET, "currentlyplaying", query_keys=("additional_types",)
    ),
    Command.DEVICES: CommandDescriptor("/devices", Verb.GET, "devices"),
    Command.RECENTLY_PLAYED: CommandDescriptor(
        "/recently-played", Verb.GET, "recentlyplayed", query_keys=("limit", "after", "before")
    ),
    Command.PLAY: CommandDescriptor("/play", Verb.PUT, "play"),
    Command.PAUSE: CommandDescriptor("/pause", Verb.PUT, "pause"),
    Command.NEXT: CommandDescriptor("/next", Verb.POST, "next"),
    Command.PREVIOUS: CommandDescriptor("/previous", Verb.POST, "previous"),
    Command.SEEK: CommandDescriptor("/seek", Verb.PUT, "seek", "position_ms", ("position_ms",)),
    Command.REPEAT: CommandDescriptor("/repeat", Verb.PUT, "repeat", "state", ("state",)),
    Command.VOLUME: CommandDescriptor("/volume", Verb.PUT, "volume", "volume_percent", ("volume_percent",)),
    Command.SHUFFLE: CommandDescriptor("/shuffle", Verb.PUT, "shuffle", "state", ("state",)),
}


def resolve_command(value: Union[Command, str]) -> Command:
    """Accept an enum member or a case-insensitive name ("volume", "RECENTLY_PLAYED", "recently-played")."""
    if isinstance(value, Command):
        return value
    key = str(value).strip().lower().replace("-", "_")
    for cmd in Command:
        if cmd.value == key:
            return cmd
    raise ValueError(f"Unknown command '{value}'")


def parse_args(args: Optional[str]) -> Dict[str, Any]:
    if not args:
        return {}
    try:
        parsed = json.loads(args)
    except ValueError:
        logger.warning("Ignoring arguments that are not valid JSON")
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Ignoring arguments that are not a JSON object")
        return {}
    return parsed


def _query_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def check_args_for_key(args: Mapping[str, Any], key: str, source: str, sink: DataSink) -> bool:
    if key not in args:
        logger.warning("Argument '{}' required for the '{}' endpoint.", key, source)
        sink.append_error(f"Argument '{key}' required.")
        return False
    return True


def convert_arg_to_query(args: Dict[str, Any], query: Dict[str, str], key: str) -> None:
    """Move `key` out of the parsed args and into the query parameters."""
    if key in args:
        query[key] = _query_value(args.pop(key))


def merge_into_query(args: Dict[str, Any], query: Dict[str, str]) -> None:
    for key in list(args):
        convert_arg_to_query(args, query, key)
