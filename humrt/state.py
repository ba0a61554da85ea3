"""Daemon state: the desired piece, what is running, and playback position."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple

from humrt.parser import ThingDef, ThingType

_FLOAT = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.IGNORECASE,
)


def parse_seconds(text: str) -> Optional[float]:
    """Parse ``"10s"`` to ``10.0``; anything without the ``s`` suffix gives ``None``."""
    if not text.endswith("s"):
        return None
    number = text[:-1]
    if not _FLOAT.fullmatch(number):
        return None
    return float(number)


def is_active(thing: ThingDef, pos: float) -> bool:
    """True when ``at <= pos`` and, if ``until`` is set, ``pos < until``."""
    at = parse_seconds(thing.at) if thing.at is not None else None
    if pos < (at if at is not None else 0.0):
        return False
    if thing.until is not None:
        until = parse_seconds(thing.until)
        if until is not None and pos >= until:
            return False
    return True


@dataclass
class ActualState:
    """What is currently running: thing name to synth node id, in insertion order."""

    nodes: Dict[str, int] = field(default_factory=dict)


@dataclass
class StateStore:
    """Full daemon state, owned by the event loop."""

    desired: Optional[Dict[str, ThingDef]] = None
    actual: ActualState = field(default_factory=ActualState)
    playback_pos: float = 0.0
    playing: bool = False
    loop_range: Optional[Tuple[float, float]] = None
    solo_set: Set[str] = field(default_factory=set)
    mute_set: Set[str] = field(default_factory=set)

    def active_things(self, pos: float) -> Dict[str, ThingDef]:
        """Desired things active at ``pos`` seconds, excluding stage things."""
        if self.desired is None:
            return {}
        return {
            name: thing
            for name, thing in self.desired.items()
            if thing.thing_type is not ThingType.STAGE and is_active(thing, pos)
        }

    def active_things_filtered(self, pos: float) -> Dict[str, ThingDef]:
        """Active things after mute (always excludes) and solo (if any, only those)."""
        return {
            name: thing
            for name, thing in self.active_things(pos).items()
            if name not in self.mute_set
            and (not self.solo_set or name in self.solo_set)
        }