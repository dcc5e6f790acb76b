"""Exception hierarchy for score-to-schedule conversion."""

from __future__ import annotations

from dataclasses import dataclass


class ConversionError(Exception):
    """Base class for every failure raised while compiling a schedule."""


# ── Parse failures ─────────────────────────────────────────────────────────────

class ParseError(ConversionError):
    """The score text could not be turned into a typed Score."""

    def __init__(
        self,
        message: str,
        part_id: str | None = None,
        measure_number: int | None = None,
    ) -> None:
        super().__init__(message)
        self.part_id = part_id
        self.measure_number = measure_number


class DocumentError(ParseError):
    """Malformed XML, or a score-part without a part (or vice versa)."""


class SemanticError(ParseError):
    """Well-formed XML that violates the score subset's rules."""


# ── Role mapping failures ──────────────────────────────────────────────────────

class MappingError(ConversionError):
    """
    The role/port mapping cannot be resolved.

    Attributes:
        role:     Role the problem was found in (None for unknown parts).
        part_ids: Parts involved in the problem.
        port:     Port index involved, for duplicate assignments.
    """

    def __init__(
        self,
        message: str,
        role: str | None = None,
        part_ids: tuple[str, ...] = (),
        port: int | None = None,
    ) -> None:
        super().__init__(message)
        self.role = role
        self.part_ids = part_ids
        self.port = port


# ── Conflict failures ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ConflictSite:
    """Where in the score one side of a conflict comes from."""

    port: int
    part_id: str
    measure_number: int
    note_index: int | None
    action: str

    def describe(self) -> str:
        note = "end" if self.note_index is None else f"note {self.note_index + 1}"
        return (
            f"port {self.port} ({self.part_id}, measure {self.measure_number}, "
            f"{note}) wants {self.action}"
        )


class ConflictError(ConversionError):
    """Two ports of one role ask the single pump for contradictory actions."""

    def __init__(self, role: str, time_ms: float, sites: tuple[ConflictSite, ...]) -> None:
        self.role = role
        self.time_ms = time_ms
        self.sites = sites
        details = "; ".join(site.describe() for site in sites)
        super().__init__(f"Conflict in role '{role}' at {time_ms:.1f} ms: {details}")

    @property
    def measure_numbers(self) -> list[int]:
        return sorted({site.measure_number for site in self.sites})

    @property
    def ports(self) -> list[int]:
        return [site.port for site in self.sites]


# ── Aggregate ──────────────────────────────────────────────────────────────────

class ScheduleError(ConversionError):
    """One or more roles failed; carries every per-role failure."""

    def __init__(self, errors: list[ConversionError]) -> None:
        self.errors = errors
        lines = "\n".join(f"  - {error}" for error in errors)
        super().__init__(f"{len(errors)} role(s) failed:\n{lines}")


class ScheduleFormatError(ValueError):
    """A serialized schedule does not satisfy the schedule format."""
