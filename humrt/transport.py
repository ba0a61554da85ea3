"""Transport control protocol: newline-delimited JSON over a Unix socket."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

log = logging.getLogger(__name__)

SOCKET_PATH = "/tmp/hum.sock"

_Converter = Callable[[str, Any], Any]


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"invalid type for `{name}`: expected a number")
    return float(value)


def _as_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"invalid type for `{name}`: expected a string")
    return value


def _as_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"invalid type for `{name}`: expected a boolean")
    return value


def _as_str_list(name: str, value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"invalid type for `{name}`: expected a list of strings")
    return list(value)


def _as_float_map(name: str, value: Any) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        raise ValueError(f"invalid type for `{name}`: expected a mapping")
    result = {}
    for key, amount in value.items():
        if not isinstance(key, str):
            raise ValueError(f"invalid key in `{name}`: expected a string")
        result[key] = _as_float(name, amount)
    return result


_Spec = Tuple[Tuple[str, _Converter, bool], ...]


def _normalise(obj: Any, spec: _Spec) -> None:
    allowed = {name: (convert, required) for name, convert, required in spec}
    for f in fields(obj):
        if f.name == "kind":
            continue
        value = getattr(obj, f.name)
        if f.name not in allowed:
            if value is not None:
                raise ValueError(f"`{f.name}` is not a field of `{obj.kind.value}`")
            continue
        convert, required = allowed[f.name]
        if value is None:
            if required:
                raise ValueError(f"missing field `{f.name}`")
            continue
        setattr(obj, f.name, convert(f.name, value))


def _dump(tag: str, obj: Any, spec: _Spec) -> str:
    payload: Dict[str, Any] = {tag: obj.kind.value}
    for name, _, _ in spec:
        payload[name] = getattr(obj, name)
    return json.dumps(payload, separators=(",", ":"))


def _load(tag: str, text: str) -> Tuple[str, Dict[str, Any]]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("invalid type: expected a JSON object")
    if tag not in data:
        raise ValueError(f"missing field `{tag}`")
    kind = data[tag]
    if not isinstance(kind, str):
        raise ValueError(f"invalid type for `{tag}`: expected a string")
    return kind, data


class CmdKind(str, enum.Enum):
    """Commands the daemon accepts."""

    PLAY = "play"
    STOP = "stop"
    STATUS = "status"
    SEEK = "seek"
    PLAY_FROM = "play_from"
    LOOP = "loop"
    SOLO = "solo"
    MUTE = "mute"
    DICT_LIST = "dict_list"
    DICT_SHOW = "dict_show"
    DICT_ADD = "dict_add"


_CMD_SPEC: Dict[CmdKind, _Spec] = {
    CmdKind.PLAY: (),
    CmdKind.STOP: (),
    CmdKind.STATUS: (),
    CmdKind.SEEK: (("pos", _as_float, True),),
    CmdKind.PLAY_FROM: (("pos", _as_float, True),),
    CmdKind.LOOP: (("start", _as_float, True), ("end", _as_float, True)),
    CmdKind.SOLO: (("thing", _as_str, True),),
    CmdKind.MUTE: (("thing", _as_str, True),),
    CmdKind.DICT_LIST: (),
    CmdKind.DICT_SHOW: (("term", _as_str, True),),
    CmdKind.DICT_ADD: (("thing", _as_str, True), ("term", _as_str, True)),
}


@dataclass
class TransportCmd:
    """A command sent from a client to the daemon."""

    kind: CmdKind
    pos: Optional[float] = None
    start: Optional[float] = None
    end: Optional[float] = None
    thing: Optional[str] = None
    term: Optional[str] = None

    def __post_init__(self) -> None:
        self.kind = CmdKind(self.kind)
        _normalise(self, _CMD_SPEC[self.kind])

    def to_json(self) -> str:
        """Serialise as a JSON object tagged with ``cmd``."""
        return _dump("cmd", self, _CMD_SPEC[self.kind])

    @classmethod
    def from_json(cls, text: str) -> "TransportCmd":
        """Parse a JSON command; raises ``ValueError`` on malformed input."""
        tag, data = _load("cmd", text)
        try:
            kind = CmdKind(tag)
        except ValueError:
            raise ValueError(f"unknown variant `{tag}`") from None
        return cls(kind, **{name: data.get(name) for name, _, _ in _CMD_SPEC[kind]})


class ReplyKind(str, enum.Enum):
    """Replies the daemon sends."""

    ACK = "ack"
    STATUS = "status"
    ERROR = "error"
    DICT_VOCAB = "dict_vocab"
    DICT_ENTRY = "dict_entry"
    DICT_ADDED = "dict_added"


_REPLY_SPEC: Dict[ReplyKind, _Spec] = {
    ReplyKind.ACK: (),
    ReplyKind.STATUS: (
        ("playing", _as_bool, True),
        ("pos", _as_float, True),
        ("active", _as_str_list, True),
        ("solo", _as_str_list, True),
        ("mute", _as_str_list, True),
        ("amplitudes", _as_float_map, True),
    ),
    ReplyKind.ERROR: (("message", _as_str, True),),
    ReplyKind.DICT_VOCAB: (("terms", _as_str_list, True),),
    ReplyKind.DICT_ENTRY: (
        ("term", _as_str, True),
        ("synth", _as_str, True),
        ("context", _as_str, False),
    ),
    ReplyKind.DICT_ADDED: (("term", _as_str, True),),
}


@dataclass
class TransportReply:
    """A reply sent from the daemon to a client."""

    kind: ReplyKind
    playing: Optional[bool] = None
    pos: Optional[float] = None
    active: Optional[List[str]] = None
    solo: Optional[List[str]] = None
    mute: Optional[List[str]] = None
    amplitudes: Optional[Dict[str, float]] = None
    message: Optional[str] = None
    terms: Optional[List[str]] = None
    term: Optional[str] = None
    synth: Optional[str] = None
    context: Optional[str] = None

    def __post_init__(self) -> None:
        self.kind = ReplyKind(self.kind)
        _normalise(self, _REPLY_SPEC[self.kind])

    def to_json(self) -> str:
        """Serialise as a JSON object tagged with ``ok``."""
        return _dump("ok", self, _REPLY_SPEC[self.kind])

    @classmethod
    def from_json(cls, text: str) -> "TransportReply":
        """Parse a JSON reply; raises ``ValueError`` on malformed input."""
        tag, data = _load("ok", text)
        try:
            kind = ReplyKind(tag)
        except ValueError:
            raise ValueError(f"unknown variant `{tag}`") from None
        return cls(kind, **{name: data.get(name) for name, _, _ in _REPLY_SPEC[kind]})


@dataclass
class TransportRequest:
    """A command handed to the event loop, with the future its reply goes into."""

    cmd: TransportCmd
    reply: "asyncio.Future[TransportReply]"


async def _handle_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    queue: "asyncio.Queue[TransportRequest]",
) -> None:
    line = (await reader.readline()).decode().strip()
    if not line:
        return
    cmd = TransportCmd.from_json(line)
    reply_future: asyncio.Future = asyncio.get_running_loop().create_future()
    await queue.put(TransportRequest(cmd, reply_future))
    await asyncio.wait({reply_future})
    if reply_future.cancelled() or reply_future.exception() is not None:
        reply = TransportReply(ReplyKind.ERROR, message="event loop dropped reply channel")
    else:
        reply = reply_future.result()
    writer.write(reply.to_json().encode() + b"\n")
    await writer.drain()


async def start_socket_server(
    queue: "asyncio.Queue[TransportRequest]", path: str = SOCKET_PATH
) -> Optional[asyncio.AbstractServer]:
    """Bind the control socket, replacing a stale one, and serve requests.

    Each connection carries one command, which is put on ``queue`` as a
    :class:`TransportRequest`; the reply set on its future is written back.
    Returns the server, or ``None`` if the socket could not be bound.
    """
    with contextlib.suppress(FileNotFoundError):
        os.remove(path)

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await _handle_connection(reader, writer, queue)
        except Exception as exc:  # a bad client must not take down the server
            log.warning("transport connection error: %s", exc)
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()

    try:
        server = await asyncio.start_unix_server(handle, path=path)
    except OSError as exc:
        log.error("failed to bind unix socket at %s: %s", path, exc)
        return None
    log.info("transport: listening on %s", path)
    return server


async def send_cmd(cmd: TransportCmd, path: str = SOCKET_PATH) -> TransportReply:
    """Send one command to the daemon and return its reply.

    Raises ``ConnectionError`` if the daemon is not running.
    """
    try:
        reader, writer = await asyncio.open_unix_connection(path)
    except OSError as exc:
        raise ConnectionError("hum-rt is not running") from exc
    try:
        writer.write(cmd.to_json().encode() + b"\n")
        await writer.drain()
        line = await reader.readline()
    finally:
        writer.close()
        with contextlib.suppress(Exception):
            await writer.wait_closed()
    return TransportReply.from_json(line.decode().strip())