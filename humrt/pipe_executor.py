"""Expansion of pipe expressions into independent, named synth blocks."""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from humrt.parser import ThingDef
from humrt.pipe_parser import (
    Each,
    Map,
    PipeExpr,
    PipeSource,
    Repeat,
    Replicate,
    Shift,
    Spread,
    Take,
    Tempo,
    Transform,
)

log = logging.getLogger(__name__)

SynthBlock = Dict[str, Any]

PITCH_CLASSES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

_NATURALS = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_NOTE = re.compile(r"([A-Ga-g])([#b]*)(-?[0-9]+)")
_INT = re.compile(r"[+-]?[0-9]+")


class PipeError(ValueError):
    """Raised when a pipe expression cannot be expanded."""


def note_to_midi(note: str) -> Optional[int]:
    """Return the MIDI number of a note name such as ``C4`` or ``Eb3``, or ``None``."""
    match = _NOTE.fullmatch(note.strip())
    if match is None:
        return None
    letter, accidentals, octave = match.groups()
    offset = accidentals.count("#") - accidentals.count("b")
    midi = (int(octave) + 1) * 12 + _NATURALS[letter.upper()] + offset
    if not 0 <= midi <= 127:
        return None
    return midi


def midi_to_note_name(midi: int) -> str:
    """Return the sharp-spelled note name of a MIDI number (60 is ``C4``)."""
    return f"{PITCH_CLASSES[midi % 12]}{midi // 12 - 1}"


def shift_note(note: str, semitones: int) -> str:
    """Shift a note by semitones; rests and unrecognised notes pass through."""
    if note == "-" or semitones == 0:
        return note
    midi = note_to_midi(note)
    if midi is None:
        log.warning("shift_note: unrecognized note format '%s', passing through", note)
        return note
    return midi_to_note_name(min(max(midi + semitones, 0), 127))


def _shift_notes(notes: List[Any], semitones: int) -> List[Any]:
    return [shift_note(n, semitones) if isinstance(n, str) else n for n in notes]


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _source_synth(name: str, piece: Mapping[str, ThingDef]) -> SynthBlock:
    thing = piece.get(name)
    if thing is None:
        raise PipeError(f"pipe source thing '{name}' not found")
    if thing.synth is None:
        raise PipeError(f"pipe source thing '{name}' has no synth: block")
    return thing.synth


def _resolve_source(source: PipeSource, piece: Mapping[str, ThingDef]) -> SynthBlock:
    synth = _source_synth(source.thing, piece)
    if source.field is None:
        return copy.deepcopy(synth)
    if source.field == "notes":
        notes = synth.get("notes")
        if notes is None:
            raise PipeError(f"pipe source '{source.thing}.notes': thing has no notes")
        return {"notes": list(notes)}
    raise PipeError(f"pipe field accessor '.{source.field}' not yet supported")


def _apply_each(voices: List[SynthBlock], expr: str) -> None:
    parts = expr.split("=>", 1)
    if len(parts) != 2:
        log.warning("each() expression not recognized: '%s', skipping", expr)
        return
    body = parts[1].strip()
    prefix = "shift(semitones:"
    if body.startswith(prefix):
        inner = body[len(prefix):].strip().rstrip(")").strip()
        for lead in ("i *", "i*"):
            if inner.startswith(lead):
                multiplier = inner[len(lead):].strip()
                if not _INT.fullmatch(multiplier):
                    raise PipeError(
                        f"each() shift: could not parse multiplier from '{inner}'"
                    )
                step = int(multiplier)
                for index, voice in enumerate(voices):
                    if voice.get("notes") is not None:
                        voice["notes"] = _shift_notes(voice["notes"], index * step)
                return
    log.warning("each() expression not yet supported: '%s', skipping", expr)


def _apply_transform(voices: List[SynthBlock], transform: Transform) -> List[SynthBlock]:
    if isinstance(transform, Replicate):
        if len(voices) != 1:
            raise PipeError(
                f"replicate() must be applied to a single voice (got {len(voices)})"
            )
        return [copy.deepcopy(voices[0]) for _ in range(transform.n)]
    if isinstance(transform, Shift):
        for voice in voices:
            if voice.get("notes") is not None:
                voice["notes"] = _shift_notes(voice["notes"], transform.semitones)
    elif isinstance(transform, Spread):
        count = len(voices)
        lo, hi = transform.lo, transform.hi
        for index, voice in enumerate(voices):
            if count == 1:
                voice["pan"] = (lo + hi) / 2.0
            else:
                voice["pan"] = lo + (hi - lo) * index / (count - 1)
    elif isinstance(transform, Tempo):
        for voice in voices:
            voice["tempo"] = f"{_format_seconds(transform.seconds_per_note)}s/note"
    elif isinstance(transform, Take):
        for voice in voices:
            if voice.get("notes") is not None:
                voice["notes"] = list(voice["notes"])[: transform.n]
    elif isinstance(transform, Repeat):
        for voice in voices:
            if voice.get("notes") is not None and transform.n > 1:
                voice["notes"] = list(voice["notes"]) * transform.n
    elif isinstance(transform, Each):
        _apply_each(voices, transform.expr)
    elif isinstance(transform, Map):
        log.warning("map(%s) not yet implemented, skipping", transform.expr)
    else:
        raise PipeError(f"unsupported transform: {transform!r}")
    return voices


def expand_pipe(
    thing_name: str, expr: PipeExpr, piece: Mapping[str, ThingDef]
) -> List[Tuple[str, SynthBlock]]:
    """Expand a pipe into ``(name, synth block)`` pairs named ``<thing>-pipe-<i>``."""
    voices = [_resolve_source(expr.source, piece)]
    for transform in expr.transforms:
        voices = _apply_transform(voices, transform)
    return [(f"{thing_name}-pipe-{i}", block) for i, block in enumerate(voices)]