"""Data models for a parsed score."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Dynamic(Enum):
    """The eight dynamics levels, ordered from softest to loudest."""

    PPP = "ppp"
    PP = "pp"
    P = "p"
    MP = "mp"
    MF = "mf"
    F = "f"
    FF = "ff"
    FFF = "fff"

    @property
    def level(self) -> int:
        """Position on the loudness scale (0 = ppp, 7 = fff)."""
        return _DYNAMIC_ORDER.index(self)

    @classmethod
    def from_tag(cls, tag: str) -> Dynamic | None:
        """Return the dynamic for a MusicXML dynamics tag such as ``mf``."""
        try:
            return cls(tag)
        except ValueError:
            return None


_DYNAMIC_ORDER: list[Dynamic] = list(Dynamic)


@dataclass(frozen=True)
class Signature:
    """A time signature, e.g. 3/4."""

    beats: int
    beat_type: int

    def __str__(self) -> str:
        return f"{self.beats}/{self.beat_type}"


# ── Note variants ──────────────────────────────────────────────────────────────
# ``duration`` is always counted in MusicXML divisions, never in milliseconds.

@dataclass(frozen=True)
class Rest:
    dynamic: Dynamic
    duration: int


@dataclass(frozen=True)
class Hold:
    """A silent placeholder (x-shaped notehead): keep whatever is happening."""

    duration: int


@dataclass(frozen=True)
class Actuate:
    dynamic: Dynamic
    duration: int


@dataclass(frozen=True)
class Trill:
    """Soft ornament: alternates inflating with holding."""

    dynamic: Dynamic
    duration: int


@dataclass(frozen=True)
class HardTrill:
    """Full trill: alternates inflating with releasing."""

    dynamic: Dynamic
    duration: int


Note = Union[Rest, Hold, Actuate, Trill, HardTrill]


@dataclass(frozen=True)
class Measure:
    """
    One measure with its signature and divisions already resolved.

    Attributes:
        number:                 Measure number from the score.
        signature:              Time signature in effect for this measure.
        divisions_per_quarter:  MusicXML divisions per quarter note.
        notes:                  Notes in reading order.
    """

    number: int
    signature: Signature
    divisions_per_quarter: int
    notes: tuple[Note, ...]


@dataclass(frozen=True)
class Part:
    """A named instrumental part."""

    name: str
    measures: tuple[Measure, ...]


#: A parsed score, keyed by MusicXML part id (e.g. "P1").
Score = dict[str, Part]
