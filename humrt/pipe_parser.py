"""Pipe expressions: a source thing followed by a chain of transforms."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


class PipeParseError(ValueError):
    """Raised when a pipe block cannot be parsed."""


@dataclass(frozen=True)
class PipeSource:
    """A source thing, optionally narrowed to one of its fields (``thing.field``)."""

    thing: str
    field: Optional[str] = None


@dataclass(frozen=True)
class Replicate:
    """Clone into ``n`` parallel voices."""

    n: int


@dataclass(frozen=True)
class Each:
    """Apply an expression per voice with its index."""

    expr: str


@dataclass(frozen=True)
class Map:
    """Transform each note or event."""

    expr: str


@dataclass(frozen=True)
class Shift:
    """Pitch shift by semitones."""

    semitones: int


@dataclass(frozen=True)
class Spread:
    """Distribute voices across the stereo field from ``lo`` to ``hi``."""

    lo: float
    hi: float


@dataclass(frozen=True)
class Tempo:
    """Set playback speed in seconds per note."""

    seconds_per_note: float


@dataclass(frozen=True)
class Take:
    """Keep the first ``n`` notes."""

    n: int


@dataclass(frozen=True)
class Repeat:
    """Loop the notes ``n`` times."""

    n: int


Transform = Union[Replicate, Each, Map, Shift, Spread, Tempo, Take, Repeat]


@dataclass(frozen=True)
class PipeExpr:
    """A parsed pipe block."""

    source: PipeSource
    transforms: Tuple[Transform, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.transforms, tuple):
            object.__setattr__(self, "transforms", tuple(self.transforms))


_UNSIGNED = re.compile(r"\+?[0-9]+")
_SIGNED = re.compile(r"[+-]?[0-9]+")


def _parse_count(value: str, what: str) -> int:
    if not _UNSIGNED.fullmatch(value):
        raise PipeParseError(f"{what} expects a number, got: '{value}'")
    return int(value)


def _parse_float(value: str) -> float:
    if value != value.strip() or "_" in value:
        raise ValueError(value)
    return float(value)


def _parse_kv_str(text: str, key: str) -> str:
    prefix = f"{key}:"
    if not text.startswith(prefix):
        raise PipeParseError(f"expected '{key}:' in '{text}'")
    return text[len(prefix):].strip()


def _parse_kv_int(text: str, key: str) -> int:
    value = _parse_kv_str(text, key)
    if not _SIGNED.fullmatch(value) or not -(2**31) <= int(value) < 2**31:
        raise PipeParseError(f"expected integer for '{key}', got: '{value}'")
    return int(value)


def _parse_range(text: str) -> Tuple[float, float]:
    parts = text.split("~")
    if len(parts) != 2:
        raise PipeParseError(f"invalid range syntax: '{text}' (expected 'lo~hi')")
    bounds = []
    for label, part in zip(("lo", "hi"), parts):
        try:
            bounds.append(_parse_float(part))
        except ValueError:
            raise PipeParseError(f"invalid range {label}: '{part}'") from None
    return bounds[0], bounds[1]


def _parse_tempo_arg(text: str) -> float:
    value = text.strip()
    while value.endswith("s/note"):
        value = value[: -len("s/note")]
    while value.endswith("s"):
        value = value[:-1]
    try:
        return _parse_float(value)
    except ValueError:
        raise PipeParseError(f"invalid tempo value: '{text}'") from None


def _parse_source(text: str) -> PipeSource:
    thing, dot, member = text.partition(".")
    if dot:
        if not thing or not member:
            raise PipeParseError(f"invalid pipe source: '{text}'")
        return PipeSource(thing, member)
    if not text:
        raise PipeParseError("pipe source is empty")
    return PipeSource(text)


def _parse_transform(text: str) -> Transform:
    name, paren, rest = text.partition("(")
    if paren:
        name = name.strip()
        args = rest.rstrip(")").strip()
    else:
        args = ""

    if name == "replicate":
        return Replicate(_parse_count(args, "replicate"))
    if name == "shift":
        return Shift(_parse_kv_int(args, "semitones"))
    if name == "spread":
        lo, hi = _parse_range(_parse_kv_str(args, "pan"))
        return Spread(lo, hi)
    if name == "tempo":
        return Tempo(_parse_tempo_arg(args))
    if name == "take":
        return Take(_parse_count(args, "take"))
    if name == "repeat":
        return Repeat(_parse_count(args, "repeat"))
    if name == "each":
        return Each(args)
    if name == "map":
        return Map(args)
    raise PipeParseError(f"unknown pipe transform: '{name}'")


def parse_pipe_block(text: str) -> PipeExpr:
    """Parse a multi-line pipe block: a source line, then ``|>`` transform lines."""
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]
    if not lines:
        raise PipeParseError("pipe block is empty")

    source = _parse_source(lines[0])
    transforms = []
    for line in lines[1:]:
        if not line.startswith("|>"):
            raise PipeParseError(f"pipe transform line must start with '|>': {line}")
        transforms.append(_parse_transform(line[2:].strip()))
    return PipeExpr(source, tuple(transforms))