"""Store of precompiled SynthDef files keyed by thing name."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union


@dataclass
class ScdStore:
    """Maps thing names (file stems) to SynthDef bytes read from ``.scd`` files."""

    defs: Dict[str, bytes] = field(default_factory=dict)

    @classmethod
    def load_dir(cls, directory: Union[str, Path]) -> "ScdStore":
        """Read every ``.scd`` file in ``directory``; a missing directory gives an empty store."""
        path = Path(directory)
        if not path.exists():
            return cls()
        return cls(
            {
                entry.stem: entry.read_bytes()
                for entry in path.iterdir()
                if entry.suffix == ".scd"
            }
        )

    def get(self, thing_name: str) -> Optional[bytes]:
        """SynthDef bytes for a thing, or ``None`` if not loaded."""
        return self.defs.get(thing_name)

    def thing_names(self) -> Iterator[str]:
        """Names of all loaded things."""
        return iter(self.defs)

    def items(self) -> Iterator[Tuple[str, bytes]]:
        """All ``(thing_name, bytes)`` pairs."""
        return iter(self.defs.items())

    def __len__(self) -> int:
        return len(self.defs)