"""Client for the SuperCollider synthesis server over OSC/UDP."""

from __future__ import annotations

import asyncio
import logging
import struct
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

log = logging.getLogger(__name__)

FIRST_NODE_ID = 1000  # 0 and 1 are the server's reserved groups
DEFAULT_GROUP = 1
ADD_TO_HEAD = 0
ADD_TO_TAIL = 1

OscArg = Union[int, float, str, bytes, bool, None]


class OscBridgeError(Exception):
    """Base error for talking to the synthesis server."""


class SyncTimeout(OscBridgeError):
    """No ``/synced`` reply arrived for a ``/sync`` request in time."""

    def __init__(self, sync_id: int) -> None:
        super().__init__(f"sync timeout waiting for /synced {sync_id}")
        self.sync_id = sync_id


class Unreachable(OscBridgeError):
    """The server did not answer a ``/status`` request."""

    def __init__(self, message: str = "scsynth unreachable at configured host (timeout 2s)") -> None:
        super().__init__(message)


class UnknownThing(OscBridgeError):
    """No synth node is registered for the named thing."""

    def __init__(self, thing_name: str) -> None:
        super().__init__(f"no node registered for thing: {thing_name}")
        self.thing_name = thing_name


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------

_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1


def _pad(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % 4)


def _osc_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    if b"\x00" in raw:
        raise OscBridgeError("OSC encode error: string contains a NUL byte")
    return _pad(raw + b"\x00")


def _encode_arg(arg: Any) -> Tuple[str, bytes]:
    if isinstance(arg, bool):
        return ("T" if arg else "F"), b""
    if arg is None:
        return "N", b""
    if isinstance(arg, int):
        if _INT32_MIN <= arg <= _INT32_MAX:
            return "i", struct.pack(">i", arg)
        try:
            return "h", struct.pack(">q", arg)
        except struct.error:
            raise OscBridgeError(f"OSC encode error: integer out of range: {arg}") from None
    if isinstance(arg, float):
        try:
            return "f", struct.pack(">f", arg)
        except (OverflowError, struct.error):
            raise OscBridgeError(f"OSC encode error: float out of range: {arg}") from None
    if isinstance(arg, str):
        return "s", _osc_string(arg)
    if isinstance(arg, (bytes, bytearray, memoryview)):
        blob = bytes(arg)
        return "b", struct.pack(">i", len(blob)) + _pad(blob)
    raise OscBridgeError(f"OSC encode error: unsupported argument type {type(arg).__name__}")


def encode_message(address: str, args: Iterable[OscArg] = ()) -> bytes:
    """Encode an OSC message with the given address and arguments."""
    if not isinstance(address, str):
        raise OscBridgeError("OSC encode error: address must be a string")
    tags = [","]
    payload = []
    for arg in args:
        tag, data = _encode_arg(arg)
        tags.append(tag)
        payload.append(data)
    return _osc_string(address) + _osc_string("".join(tags)) + b"".join(payload)


def _take(data: bytes, offset: int, size: int) -> Tuple[bytes, int]:
    end = offset + size
    if size < 0 or end > len(data):
        raise OscBridgeError("OSC decode error: message is truncated")
    return data[offset:end], end


def _read_string(data: bytes, offset: int) -> Tuple[str, int]:
    end = data.find(b"\x00", offset)
    if end < 0:
        raise OscBridgeError("OSC decode error: unterminated string")
    try:
        text = data[offset:end].decode("utf-8")
    except UnicodeDecodeError:
        raise OscBridgeError("OSC decode error: string is not valid UTF-8") from None
    following = offset + ((end - offset) // 4 + 1) * 4
    if following > len(data):
        raise OscBridgeError("OSC decode error: string padding is truncated")
    return text, following


def decode_message(data: bytes) -> Tuple[str, List[Any]]:
    """Decode one OSC message into ``(address, args)``; raises on anything else."""
    data = bytes(data)
    if data.startswith(b"#bundle"):
        raise OscBridgeError("OSC decode error: bundles are not supported")
    address, offset = _read_string(data, 0)
    if not address.startswith("/"):
        raise OscBridgeError(f"OSC decode error: bad address '{address}'")
    if offset == len(data):
        return address, []
    tags, offset = _read_string(data, offset)
    if not tags.startswith(","):
        raise OscBridgeError("OSC decode error: missing type tag string")
    args: List[Any] = []
    for tag in tags[1:]:
        if tag == "i":
            raw, offset = _take(data, offset, 4)
            args.append(struct.unpack(">i", raw)[0])
        elif tag == "f":
            raw, offset = _take(data, offset, 4)
            args.append(struct.unpack(">f", raw)[0])
        elif tag == "h":
            raw, offset = _take(data, offset, 8)
            args.append(struct.unpack(">q", raw)[0])
        elif tag == "d":
            raw, offset = _take(data, offset, 8)
            args.append(struct.unpack(">d", raw)[0])
        elif tag == "s":
            text, offset = _read_string(data, offset)
            args.append(text)
        elif tag == "b":
            raw, offset = _take(data, offset, 4)
            size = struct.unpack(">i", raw)[0]
            blob, offset = _take(data, offset, size)
            _, offset = _take(data, offset, -size % 4)
            args.append(blob)
        elif tag == "T":
            args.append(True)
        elif tag == "F":
            args.append(False)
        elif tag == "N":
            args.append(None)
        else:
            raise OscBridgeError(f"OSC decode error: unsupported type tag '{tag}'")
    return address, args


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class _Receiver(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.queue: "asyncio.Queue[Union[bytes, Exception]]" = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)


def _split_address(addr: str) -> Tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"invalid server address: '{addr}' (expected host:port)")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class ScsynthClient:
    """Sends commands to a synthesis server and tracks the nodes it started."""

    def __init__(self, transport: asyncio.DatagramTransport, receiver: _Receiver) -> None:
        self._transport = transport
        self._receiver = receiver
        self.nodes: Dict[str, int] = {}
        self._next_node_id = FIRST_NODE_ID
        self._next_sync_id = 1
        self.alive_timeout = 2.0
        self.sync_timeout = 5.0

    @classmethod
    async def connect(cls, addr: str) -> "ScsynthClient":
        """Open a UDP socket on an ephemeral port aimed at ``host:port``."""
        host, port = _split_address(addr)
        loop = asyncio.get_running_loop()
        transport, receiver = await loop.create_datagram_endpoint(
            _Receiver, remote_addr=(host, port)
        )
        return cls(transport, receiver)

    def close(self) -> None:
        """Close the socket."""
        self._transport.close()

    async def __aenter__(self) -> "ScsynthClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    # -- low level --

    def _send(self, address: str, args: Sequence[OscArg] = ()) -> None:
        packet = encode_message(address, args)
        if self._transport.is_closing():
            raise OscBridgeError("socket error: client is closed")
        self._transport.sendto(packet)
        log.debug("osc send: %s (%d bytes)", address, len(packet))

    async def _recv(self, timeout: float) -> bytes:
        item = await asyncio.wait_for(self._receiver.queue.get(), timeout)
        if isinstance(item, Exception):
            raise OscBridgeError(f"socket error: {item}") from item
        return item

    def _alloc_node_id(self) -> int:
        node_id = self._next_node_id
        self._next_node_id += 1
        return node_id

    def _alloc_sync_id(self) -> int:
        sync_id = self._next_sync_id
        self._next_sync_id += 1
        return sync_id

    async def _free_node_by_id(self, node_id: int) -> None:
        self._send("/n_free", [node_id])

    async def _await_synced(self, expected_id: int, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        end = loop.time() + deadline
        while True:
            remaining = end - loop.time()
            if remaining <= 0:
                raise SyncTimeout(expected_id)
            try:
                data = await self._recv(remaining)
            except asyncio.TimeoutError:
                raise SyncTimeout(expected_id) from None
            try:
                address, args = decode_message(data)
            except OscBridgeError:
                continue
            if (
                address == "/synced"
                and args
                and isinstance(args[0], int)
                and not isinstance(args[0], bool)
                and args[0] == expected_id
            ):
                log.debug("received /synced %d", expected_id)
                return
            log.debug("osc recv (awaiting /synced %d): %s %r", expected_id, address, args)

    async def _sync(self) -> None:
        sync_id = self._alloc_sync_id()
        self._send("/sync", [sync_id])
        await self._await_synced(sync_id, self.sync_timeout)

    async def _spawn(
        self,
        thing_name: str,
        synthdef_name: str,
        add_action: int,
        target: int,
        extra: Sequence[OscArg] = (),
    ) -> int:
        old_id = self.nodes.get(thing_name)
        if old_id is not None:
            await self._free_node_by_id(old_id)
        node_id = self._alloc_node_id()
        self._send("/s_new", [synthdef_name, node_id, add_action, target, *extra])
        self.nodes[thing_name] = node_id
        log.info("s_new: %s -> node %d (target %d)", thing_name, node_id, target)
        return node_id

    # -- commands --

    async def check_alive(self) -> None:
        """Send ``/status`` and require a ``/status.reply``; raises :class:`Unreachable`."""
        self._send("/status")
        try:
            data = await self._recv(self.alive_timeout)
        except asyncio.TimeoutError:
            raise Unreachable() from None
        try:
            address, args = decode_message(data)
        except OscBridgeError:
            raise Unreachable() from None
        if address != "/status.reply":
            raise Unreachable()
        log.info("scsynth alive: %r", args)

    async def ensure_default_group(self) -> None:
        """Create the default group (node 1) under the root node."""
        self._send("/g_new", [DEFAULT_GROUP, ADD_TO_HEAD, 0])
        log.debug("ensured default group (node 1)")

    async def load_synthdef(self, synthdef_bytes: bytes) -> None:
        """Send a SynthDef and wait for the server to confirm it via ``/synced``."""
        self._send("/d_recv", [bytes(synthdef_bytes)])
        await self._sync()

    async def new_synth(self, thing_name: str, synthdef_name: str) -> int:
        """Start a synth at the head of the default group, replacing the thing's old node."""
        return await self._spawn(thing_name, synthdef_name, ADD_TO_HEAD, DEFAULT_GROUP)

    async def new_synth_with_args(
        self,
        thing_name: str,
        synthdef_name: str,
        args: Iterable[Tuple[str, float]],
    ) -> int:
        """Like :meth:`new_synth`, passing ``(control, value)`` pairs at creation."""
        extra: List[OscArg] = []
        for key, value in args:
            extra.extend([str(key), float(value)])
        return await self._spawn(thing_name, synthdef_name, ADD_TO_HEAD, DEFAULT_GROUP, extra)

    async def set_param(self, thing_name: str, param: str, value: float) -> None:
        """Set a control on a thing's running synth."""
        node_id = self.nodes.get(thing_name)
        if node_id is None:
            raise UnknownThing(thing_name)
        self._send("/n_set", [node_id, param, float(value)])
        log.debug("n_set: %s %s=%s", thing_name, param, value)

    async def free_node(self, thing_name: str) -> None:
        """Free a thing's synth, if it has one, and forget it."""
        node_id = self.nodes.pop(thing_name, None)
        if node_id is not None:
            await self._free_node_by_id(node_id)
            log.info("n_free: %s (node %d)", thing_name, node_id)

    async def free_all_nodes(self) -> None:
        """Free every tracked synth."""
        entries = list(self.nodes.items())
        self.nodes.clear()
        for name, node_id in entries:
            await self._free_node_by_id(node_id)
            log.info("n_free: %s (node %d)", name, node_id)

    def get_node_amplitude(self, node_id: int) -> Optional[float]:
        """Amplitude of a node; the server is not metered, so this is always 0.0."""
        return 0.0

    async def create_group(self) -> int:
        """Create a group at the head of the default group and return its id."""
        group_id = self._alloc_node_id()
        self._send("/g_new", [group_id, ADD_TO_HEAD, DEFAULT_GROUP])
        log.info("g_new: group node %d", group_id)
        return group_id

    async def start_synth_in_group(
        self, thing_name: str, synthdef_name: str, group_id: int
    ) -> int:
        """Start a thing's synth at the head of the given group."""
        return await self._spawn(thing_name, synthdef_name, ADD_TO_HEAD, group_id)

    async def start_effect_at_tail(
        self, effect_name: str, synthdef_name: str, group_id: int
    ) -> int:
        """Start an effect synth at the tail of a group; it is not tracked by name."""
        node_id = self._alloc_node_id()
        self._send("/s_new", [synthdef_name, node_id, ADD_TO_TAIL, group_id])
        log.info(
            "s_new (effect at tail of group %d): %s -> node %d", group_id, effect_name, node_id
        )
        return node_id

    async def load_buffer(self, buf_id: int, path: str) -> None:
        """Read a whole sound file into a buffer and wait for confirmation."""
        self._send("/b_allocRead", [buf_id, path, 0, 0])
        await self._sync()
        log.info("b_allocRead: buf %d <- %s", buf_id, path)

    async def free_buffer(self, buf_id: int) -> None:
        """Free a buffer."""
        self._send("/b_free", [buf_id])
        log.info("b_free: buf %d", buf_id)