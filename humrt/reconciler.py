"""Diffing desired active things against running synth nodes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Union

from humrt.parser import ThingDef
from humrt.state import ActualState


@dataclass(frozen=True)
class AddOp:
    """Start a new synth for a thing (its SynthDef must already be loaded)."""

    thing_name: str
    synthdef_name: str


@dataclass(frozen=True)
class RemoveOp:
    """Free the running synth for a thing."""

    thing_name: str


@dataclass(frozen=True)
class SwapOp:
    """Replace a running thing's synth with a new SynthDef; issued outside ``diff``."""

    thing_name: str
    new_synthdef_name: str


ReconcileOp = Union[AddOp, RemoveOp, SwapOp]


def diff(active: Mapping[str, ThingDef], actual: ActualState) -> List[ReconcileOp]:
    """Return the adds, then removes, that bring ``actual`` in line with ``active``.

    A thing's name doubles as its SynthDef name.
    """
    adds: List[ReconcileOp] = [
        AddOp(name, name) for name in active if name not in actual.nodes
    ]
    removes: List[ReconcileOp] = [
        RemoveOp(name) for name in actual.nodes if name not in active
    ]
    return adds + removes