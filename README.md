# humrt

`humrt` is a library for working with `.hum` pieces. A `.hum` file is a
YAML document of named *things*: sounds with an entry time, an optional
exit time, a synth description and, optionally, a `pipe:` expression that
derives several voices from another thing. `humrt` reads those files,
expands pipes into voices, works out which things should be sounding at a
given moment, and offers an asyncio client for sending commands to an
scsynth server over OSC.

Install with `pip install .` (add `.[test]` for the test tools). The only
runtime dependency is PyYAML.

## Modules

| Module | Purpose |
| --- | --- |
| `humrt.parser` | `parse_hum` turns `.hum` text into a piece: an insertion-ordered `dict` of thing names to `ThingDef`. Unknown fields raise `HumParseError`. |
| `humrt.pipe_parser` | `parse_pipe_block` turns a `pipe:` block into a `PipeExpr`: a `PipeSource` plus transforms `Replicate`, `Shift`, `Spread`, `Tempo`, `Take`, `Repeat`, `Each` and `Map`. Bad input raises `PipeParseError`. |
| `humrt.pipe_executor` | `expand_pipe` expands a `PipeExpr` into named voices (`<thing>-pipe-0`, `<thing>-pipe-1`, ...). `shift_note`, `note_to_midi` and `midi_to_note_name` do note arithmetic. Failures raise `PipeError`. |
| `humrt.state` | `StateStore` holds the desired piece, the running nodes (`ActualState`), playback position, loop range, solo and mute sets. `parse_seconds` and `is_active` decide timing. |
| `humrt.reconciler` | `diff` compares the active things with running nodes and returns `AddOp` and `RemoveOp` operations. `SwapOp` exists for callers that replace a running synth themselves. |
| `humrt.scd` | `ScdStore.load_dir` reads every `.scd` file in a directory, keyed by file stem. |
| `humrt.stage` | `StageStore` maps stage names to `StageConfig` (things covered, group id, effect) and answers `group_for_thing`. |
| `humrt.timeline` | `run_ticker` puts `Tick` positions on an asyncio queue at a steady interval (50 ms by default). |
| `humrt.transport` | Newline-delimited JSON protocol (`TransportCmd`, `TransportReply`) over a Unix socket, with `start_socket_server` and `send_cmd`. |
| `humrt.osc` | `ScsynthClient`, an asyncio OSC/UDP client for scsynth, plus `encode_message` and `decode_message`. |

## Parsing a piece

```python
from humrt.parser import parse_hum

text = """
glass:
  at: "0s"
  until: "30s"
  like: bright glassy bell
  synth:
    osc: sine
    amp: 0.3
    notes: [D4, Eb4]
"""

piece = parse_hum(text)
glass = piece["glass"]
print(glass.at, glass.until, glass.like)   # 0s 30s bright glassy bell
print(glass.synth["notes"])                # ['D4', 'Eb4']
```

Every field of a thing is optional; an absent field is `None`. The document
keys `where`, `ref`, `type` and `applies-to` become the attributes
`location`, `reference`, `thing_type` (a `ThingType`) and `applies_to`.
`does:` may be a single string or a list; `DoesField.as_vec()` always
returns a list. `has:` holds nested things. The `synth:` block is kept as a
plain mapping, and `fx:` as either call text such as `reverb(mix: 0.7)` or a
mapping.

## Expanding a pipe

```python
from humrt.pipe_parser import parse_pipe_block
from humrt.pipe_executor import expand_pipe

expr = parse_pipe_block("""
glass
|> replicate(3)
|> each(i => shift(semitones: i * 4))
|> spread(pan: -0.8~0.8)
""")

for name, voice in expand_pipe("glass-swarm", expr, piece):
    print(name, voice["notes"], voice["pan"])
```

This gives `glass-swarm-pipe-0` with `D4, Eb4`, `glass-swarm-pipe-1` with
`F#4, G4` and `glass-swarm-pipe-2` with `A#4, B4`, panned at -0.8, 0.0 and
0.8. A source written `thing.notes` takes only the notes of that thing.
Shifted notes are spelled with sharps and clamped to MIDI 0–127; rests
(`-`) pass through. `each` understands `i => shift(semitones: i * N)`;
other `each` bodies and all `map` bodies are logged and skipped.

## Deciding what plays

```python
from humrt.state import StateStore
from humrt.reconciler import diff

store = StateStore(desired=piece)
store.mute_set.add("pad")

active = store.active_things_filtered(12.0)
for op in diff(active, store.actual):
    print(op)          # AddOp(thing_name='glass', synthdef_name='glass')
```

Times are written as seconds with an `s` suffix (`"10s"`, `"1.5s"`). A
thing is active from its `at:` time (zero when absent) until, but not
including, its `until:` time. Things of type `stage` never play on their
own. Muted things are always left out; when anything is soloed, only
soloed things play. `diff` lists additions first, then removals, and uses
the thing name as the SynthDef name.

## Talking to scsynth

```python
import asyncio
from humrt.osc import ScsynthClient

async def play(synthdef: bytes) -> None:
    async with await ScsynthClient.connect("127.0.0.1:57110") as client:
        await client.check_alive()
        await client.ensure_default_group()
        await client.load_synthdef(synthdef)
        await client.new_synth("glass", "glass")
        await asyncio.sleep(2)
        await client.free_all_nodes()
```

`load_synthdef` and `load_buffer` wait for scsynth's `/synced` reply before
returning. Starting a synth for a thing that already has one frees the old
node first. Other commands: `new_synth_with_args`, `set_param`,
`free_node`, `create_group`, `start_synth_in_group`, `start_effect_at_tail`
and `free_buffer`. Failures raise subclasses of `OscBridgeError`:
`Unreachable`, `SyncTimeout` and `UnknownThing`. `get_node_amplitude`
always returns `0.0`; no metering is done.

## Transport protocol

Commands and replies are single JSON objects, one per line. A command is
tagged by `"cmd"` (`{"cmd":"play_from","pos":10.0}`) and a reply by `"ok"`
(`{"ok":"ack"}`).

```python
import asyncio
from humrt.transport import (
    CmdKind, ReplyKind, TransportCmd, TransportReply,
    start_socket_server, send_cmd,
)

async def main() -> None:
    queue = asyncio.Queue()
    server = await start_socket_server(queue, "/tmp/example.sock")

    async def answer() -> None:
        request = await queue.get()
        request.reply.set_result(TransportReply(ReplyKind.ACK))

    asyncio.create_task(answer())
    reply = await send_cmd(TransportCmd(CmdKind.PLAY), "/tmp/example.sock")
    print(reply.kind)        # ReplyKind.ACK
    server.close()

asyncio.run(main())
```

The server puts each command on the queue as a `TransportRequest`; whoever
owns the queue sets the reply on its future. `send_cmd` raises
`ConnectionError` when nothing is listening. The default socket path is
`/tmp/hum.sock`.

## What this package does not do

`humrt` is a set of building blocks, not a finished player. It has no
command-line program and no daemon event loop tying the modules together,
does not watch files for changes, and does not compile `synth:` blocks or
stage effects into SynthDefs: it only loads SynthDefs you already have, as
bytes or `.scd` files. There is no instrument library, dictionary of named
styles, note sequencer or sample-buffer bookkeeping; the transport protocol
defines `dict_*` commands and replies but nothing here answers them.