import asyncio
import contextlib

import pytest

from humrt.osc import (
    OscBridgeError,
    ScsynthClient,
    SyncTimeout,
    Unreachable,
    UnknownThing,
    decode_message,
    encode_message,
)


class _FakeServer(asyncio.DatagramProtocol):
    def __init__(self, reply=True, sync_offset=0):
        self.reply = reply
        self.sync_offset = sync_offset
        self.messages = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        address, args = decode_message(data)
        self.messages.append((address, args))
        if not self.reply:
            return
        if address == "/status":
            self.transport.sendto(encode_message("/status.reply", [1, 0, 0]), addr)
        elif address == "/sync":
            self.transport.sendto(encode_message("/done", ["/d_recv"]), addr)
            self.transport.sendto(
                encode_message("/synced", [args[0] + self.sync_offset]), addr
            )


@contextlib.asynccontextmanager
async def _session(**kwargs):
    loop = asyncio.get_running_loop()
    transport, server = await loop.create_datagram_endpoint(
        lambda: _FakeServer(**kwargs), local_addr=("127.0.0.1", 0)
    )
    host, port = transport.get_extra_info("sockname")[:2]
    client = await ScsynthClient.connect(f"{host}:{port}")
    client.alive_timeout = 0.3
    client.sync_timeout = 0.3
    try:
        yield server, client
    finally:
        client.close()
        transport.close()


async def _wait_messages(server, count):
    for _ in range(300):
        if len(server.messages) >= count:
            break
        await asyncio.sleep(0.01)
    return server.messages


# --- wire format ---


def test_encode_status_without_args_wire_bytes():
    assert encode_message("/status") == b"/status\x00,\x00\x00\x00"


@pytest.mark.parametrize(
    "args",
    [
        [],
        [1000],
        [-5, 0.5, "freq", b"SCgf"],
        ["abc", "abcd", b"12345"],
        [True, False, None],
        [2**40],
    ],
)
def test_encode_decode_roundtrip(args):
    data = encode_message("/s_new", args)
    assert len(data) % 4 == 0
    assert decode_message(data) == ("/s_new", args)


def test_decode_rejects_truncated_message():
    data = encode_message("/n_free", [1000])
    with pytest.raises(OscBridgeError):
        decode_message(data[:-2])


def test_decode_rejects_bundle():
    with pytest.raises(OscBridgeError):
        decode_message(b"#bundle\x00" + b"\x00" * 8)


def test_encode_rejects_unsupported_type():
    with pytest.raises(OscBridgeError):
        encode_message("/n_set", [object()])


@pytest.mark.asyncio
async def test_connect_rejects_bad_address():
    async with _session() as (_, client):
        assert client.nodes == {}
    with pytest.raises(ValueError):
        await ScsynthClient.connect("no-port-here")


# --- error messages ---


def test_error_messages():
    assert str(SyncTimeout(7)) == "sync timeout waiting for /synced 7"
    assert str(UnknownThing("ghost")) == "no node registered for thing: ghost"
    assert "unreachable" in str(Unreachable())
    assert isinstance(SyncTimeout(1), OscBridgeError)


# --- client against a fake server ---


@pytest.mark.asyncio
async def test_check_alive_succeeds():
    async with _session() as (server, client):
        await client.check_alive()
        assert server.messages[0] == ("/status", [])


@pytest.mark.asyncio
async def test_check_alive_silent_server_is_unreachable():
    async with _session(reply=False) as (_, client):
        with pytest.raises(Unreachable):
            await client.check_alive()


@pytest.mark.asyncio
async def test_load_synthdef_sends_blob_then_sync():
    async with _session() as (server, client):
        await client.load_synthdef(b"SCgf-fake")
        assert server.messages[0] == ("/d_recv", [b"SCgf-fake"])
        assert server.messages[1] == ("/sync", [1])
        await client.load_synthdef(b"SCgf-fake")
        assert server.messages[3] == ("/sync", [2])


@pytest.mark.asyncio
async def test_load_synthdef_times_out_without_synced():
    async with _session(reply=False) as (_, client):
        with pytest.raises(SyncTimeout) as info:
            await client.load_synthdef(b"SCgf")
        assert info.value.sync_id == 1


@pytest.mark.asyncio
async def test_synced_with_wrong_id_is_ignored():
    async with _session(sync_offset=1) as (_, client):
        with pytest.raises(SyncTimeout):
            await client.load_synthdef(b"SCgf")


@pytest.mark.asyncio
async def test_new_synth_allocates_and_replaces_node():
    async with _session() as (server, client):
        first = await client.new_synth("drone", "drone")
        second = await client.new_synth("drone", "drone")
        assert first == 1000
        assert second == first + 1
        assert client.nodes == {"drone": second}
        messages = await _wait_messages(server, 3)
        assert messages[0] == ("/s_new", ["drone", first, 0, 1])
        assert messages[1] == ("/n_free", [first])
        assert messages[2] == ("/s_new", ["drone", second, 0, 1])


@pytest.mark.asyncio
async def test_new_synth_with_args_passes_pairs():
    async with _session() as (server, client):
        node = await client.new_synth_with_args("kick", "kick", [("bufnum", 3)])
        messages = await _wait_messages(server, 1)
        assert messages[0] == ("/s_new", ["kick", node, 0, 1, "bufnum", 3.0])


@pytest.mark.asyncio
async def test_set_param_unknown_thing_raises():
    async with _session() as (_, client):
        with pytest.raises(UnknownThing):
            await client.set_param("nobody", "freq", 440.0)


@pytest.mark.asyncio
async def test_set_param_sends_n_set():
    async with _session() as (server, client):
        node = await client.new_synth("lead", "lead")
        await client.set_param("lead", "freq", 440.0)
        messages = await _wait_messages(server, 2)
        assert messages[1] == ("/n_set", [node, "freq", 440.0])


@pytest.mark.asyncio
async def test_free_node_and_free_all():
    async with _session() as (server, client):
        a = await client.new_synth("a", "a")
        b = await client.new_synth("b", "b")
        c = await client.new_synth("c", "c")
        await client.free_node("a")
        await client.free_node("missing")
        assert "a" not in client.nodes
        await client.free_all_nodes()
        assert client.nodes == {}
        messages = await _wait_messages(server, 6)
        frees = [args[0] for address, args in messages if address == "/n_free"]
        assert frees == [a, b, c]


@pytest.mark.asyncio
async def test_groups_and_effects():
    async with _session() as (server, client):
        await client.ensure_default_group()
        group = await client.create_group()
        synth = await client.start_synth_in_group("ghost", "ghost", group)
        effect = await client.start_effect_at_tail("stage-x", "stage-x", group)
        assert client.nodes == {"ghost": synth}
        messages = await _wait_messages(server, 4)
        assert messages[0] == ("/g_new", [1, 0, 0])
        assert messages[1] == ("/g_new", [group, 0, 1])
        assert messages[2] == ("/s_new", ["ghost", synth, 0, group])
        assert messages[3] == ("/s_new", ["stage-x", effect, 1, group])


@pytest.mark.asyncio
async def test_buffers():
    async with _session() as (server, client):
        await client.load_buffer(5, "/samples/kick.wav")
        await client.free_buffer(5)
        messages = await _wait_messages(server, 3)
        assert messages[0] == ("/b_allocRead", [5, "/samples/kick.wav", 0, 0])
        assert messages[1] == ("/sync", [1])
        assert messages[2] == ("/b_free", [5])


@pytest.mark.asyncio
async def test_get_node_amplitude_reports_zero():
    async with _session() as (_, client):
        node = await client.new_synth("pad", "pad")
        assert client.get_node_amplitude(node) == 0.0


@pytest.mark.asyncio
async def test_send_after_close_raises():
    async with _session() as (_, client):
        client.close()
        with pytest.raises(OscBridgeError):
            await client.free_buffer(1)