"""
Goal: Command table shape and the argument helpers.
"""
import pytest

from spotify_bridge.adapters.host import BufferedSink
from spotify_bridge.models.commands import (
    COMMANDS,
    Command,
    Verb,
    check_args_for_key,
    convert_arg_to_query,
    parse_args,
    resolve_command,
)


def test_every_command_has_a_descriptor():
    assert set(COMMANDS) == set(Command)
    sources = [info.source for info in COMMANDS.values()]
    assert len(sources) == len(set(sources))


def test_required_arguments():
    required = {cmd: info.required for cmd, info in COMMANDS.items() if info.required}
    assert required == {
        Command.VOLUME: "volume_percent",
        Command.REPEAT: "state",
        Command.SEEK: "position_ms",
        Command.SHUFFLE: "state",
    }
    assert COMMANDS[Command.RECENTLY_PLAYED].verb is Verb.GET
    assert COMMANDS[Command.RECENTLY_PLAYED].query_keys == ("limit", "after", "before")


def test_resolve_command():
    assert resolve_command(Command.SEEK) is Command.SEEK
    assert resolve_command("VOLUME") is Command.VOLUME
    assert resolve_command("recently-played") is Command.RECENTLY_PLAYED
    with pytest.raises(ValueError):
        resolve_command("rewind")


def test_parse_args():
    assert parse_args("") == {}
    assert parse_args(None) == {}
    assert parse_args('{"a": 1}') == {"a": 1}
    assert parse_args("{broken") == {}
    assert parse_args('"text"') == {}


def test_convert_arg_to_query_moves_key():
    args = {"device_id": "d", "volume_percent": 50, "state": False}
    query = {}
    convert_arg_to_query(args, query, "volume_percent")
    convert_arg_to_query(args, query, "state")
    convert_arg_to_query(args, query, "absent")
    assert query == {"volume_percent": "50", "state": "false"}
    assert args == {"device_id": "d"}


def test_check_args_for_key():
    sink = BufferedSink()
    assert check_args_for_key({"state": "off"}, "state", "repeat", sink) is True
    assert sink.errors == []
    assert check_args_for_key({}, "state", "repeat", sink) is False
    assert sink.errors == ["Argument 'state' required."]
