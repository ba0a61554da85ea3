"""Stages: groups of things routed through a shared effect chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple


@dataclass
class StageConfig:
    """Routing for one stage: the things it covers and its synth group."""

    applies_to: List[str]
    group_id: int
    fx: Any = None
    effect_node_id: Optional[int] = None


@dataclass
class StageStore:
    """Maps stage names to their configuration."""

    stages: Dict[str, StageConfig] = field(default_factory=dict)

    def group_for_thing(self, thing_name: str) -> Optional[int]:
        """Group id a thing should be spawned into, or ``None`` for the default group."""
        for config in self.stages.values():
            if thing_name in config.applies_to:
                return config.group_id
        return None

    def insert(self, name: str, config: StageConfig) -> None:
        """Add or replace a stage."""
        self.stages[name] = config

    def __iter__(self) -> Iterator[Tuple[str, StageConfig]]:
        """Yield ``(stage_name, config)`` pairs."""
        return iter(self.stages.items())

    def __len__(self) -> int:
        return len(self.stages)