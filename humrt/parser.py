"""Parsing of .hum piece files into ordered thing definitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import yaml


class HumParseError(ValueError):
    """Raised when a .hum document does not match the piece schema."""

    def __init__(self, message: str) -> None:
        super().__init__(f"parse error in .hum file: {message}")
        self.message = message


class ThingType(enum.Enum):
    """Kind of a thing definition."""

    INSTRUMENT = "instrument"
    STAGE = "stage"


@dataclass(frozen=True)
class DoesField:
    """The ``does:`` field: a single trajectory or a list of them."""

    value: Union[str, Tuple[str, ...]]

    def __post_init__(self) -> None:
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    @property
    def is_multi(self) -> bool:
        return isinstance(self.value, tuple)

    def as_vec(self) -> list[str]:
        """Return the trajectories as a list regardless of form."""
        if isinstance(self.value, tuple):
            return list(self.value)
        return [self.value]


def _describe(value: Any) -> str:
    return type(value).__name__ if value is not None else "null"


def _string(key: str, value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise HumParseError(f"invalid type for `{key}`: expected a string, got {_describe(value)}")


def _string_list(key: str, value: Any) -> Optional[list[str]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise HumParseError(f"invalid type for `{key}`: expected a list of strings")
    return list(value)


def _does(key: str, value: Any) -> Optional[DoesField]:
    if value is None:
        return None
    if isinstance(value, str):
        return DoesField(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return DoesField(tuple(value))
    raise HumParseError(
        f"invalid type for `{key}`: expected a string or a list of strings"
    )


def _thing_type(key: str, value: Any) -> Optional[ThingType]:
    if value is None:
        return None
    try:
        return ThingType(value)
    except ValueError:
        allowed = ", ".join(f"`{t.value}`" for t in ThingType)
        raise HumParseError(
            f"unknown variant `{value}` for `{key}`, expected one of {allowed}"
        ) from None


def _has(key: str, value: Any) -> Optional[Dict[str, "ThingDef"]]:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise HumParseError(f"invalid type for `{key}`: expected a mapping of things")
    return _things(value)


def _synth(key: str, value: Any) -> Optional[dict]:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise HumParseError(f"invalid type for `{key}`: expected a mapping")
    return dict(value)


def _fx(key: str, value: Any) -> Union[None, str, dict]:
    """Accept an effect given as call text (``reverb(mix: 0.7)``) or as a mapping."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    raise HumParseError(
        f"invalid type for `{key}`: expected a string or a mapping, got {_describe(value)}"
    )


# Document key -> (attribute name, converter)
_SCHEMA: Dict[str, Tuple[str, Callable[[str, Any], Any]]] = {
    "at": ("at", _string),
    "until": ("until", _string),
    "does": ("does", _does),
    "where": ("location", _string),
    "has": ("has", _has),
    "within": ("within", _string),
    "every": ("every", _string),
    "like": ("like", _string),
    "ref": ("reference", _string),
    "mood": ("mood", _string),
    "synth": ("synth", _synth),
    "type": ("thing_type", _thing_type),
    "instrument": ("instrument", _string),
    "style": ("style", _string),
    "applies-to": ("applies_to", _string_list),
    "fx": ("fx", _fx),
    "pipe": ("pipe", _string),
}


@dataclass
class ThingDef:
    """One named thing in a piece. Absent fields are ``None``."""

    at: Optional[str] = None
    until: Optional[str] = None
    does: Optional[DoesField] = None
    location: Optional[str] = None
    has: Optional[Dict[str, "ThingDef"]] = None
    within: Optional[str] = None
    every: Optional[str] = None
    like: Optional[str] = None
    reference: Optional[str] = None
    mood: Optional[str] = None
    synth: Optional[dict] = None
    thing_type: Optional[ThingType] = None
    instrument: Optional[str] = None
    style: Optional[str] = None
    applies_to: Optional[list[str]] = None
    fx: Union[None, str, dict] = None
    pipe: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ThingDef":
        """Build a thing from a document mapping, rejecting unknown fields."""
        if not isinstance(data, Mapping):
            raise HumParseError(f"invalid type: expected a mapping, got {_describe(data)}")
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in _SCHEMA:
                expected = ", ".join(f"`{k}`" for k in _SCHEMA)
                raise HumParseError(f"unknown field `{key}`, expected one of {expected}")
            attr, convert = _SCHEMA[key]
            values[attr] = convert(key, value)
        return cls(**values)


assert {f.name for f in fields(ThingDef)} == {attr for attr, _ in _SCHEMA.values()}


def _things(data: Mapping[Any, Any]) -> Dict[str, ThingDef]:
    piece: Dict[str, ThingDef] = {}
    for name, body in data.items():
        if not isinstance(name, str):
            raise HumParseError(f"thing name must be a string, got {_describe(name)}")
        piece[name] = ThingDef.from_mapping(body)
    return piece


def parse_hum(content: str) -> Dict[str, ThingDef]:
    """Parse .hum text into an insertion-ordered mapping of thing names to things."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise HumParseError(str(exc)) from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise HumParseError(f"invalid type: expected a mapping, got {_describe(data)}")
    return _things(data)