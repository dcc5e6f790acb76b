"""RoleAggregator: groups score parts by role and builds one timeline per port."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Final, Mapping

from flowscore.errors import MappingError
from flowscore.score_models import Dynamic, Score
from flowscore.timeline_builder import (
    DEFAULT_TRILL_INTERVAL_MS,
    IntermediateEvent,
    TimelineBuilder,
)

logger = logging.getLogger(__name__)

PORT_COUNT: Final[int] = 5
MAX_INTENSITY: Final[int] = 255

#: Default dynamics curve, ppp → fff.
DEFAULT_INTENSITIES: Final[tuple[int, ...]] = (40, 70, 100, 130, 160, 190, 220, 255)


@dataclass(frozen=True)
class DynamicsCurve:
    """Maps each of the eight dynamics to a pump intensity (0-255)."""

    values: tuple[int, ...] = DEFAULT_INTENSITIES

    def __post_init__(self) -> None:
        if len(self.values) != len(Dynamic):
            raise ValueError(
                f"dynamics curve needs {len(Dynamic)} values, got {len(self.values)}"
            )
        for dynamic, value in zip(Dynamic, self.values):
            is_int = isinstance(value, int) and not isinstance(value, bool)
            if not is_int or not 0 <= value <= MAX_INTENSITY:
                raise ValueError(
                    f"intensity for {dynamic.value} must be an integer 0-{MAX_INTENSITY}, "
                    f"got {value!r}"
                )

    def intensity(self, dynamic: Dynamic) -> int:
        return self.values[dynamic.level]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, int]) -> DynamicsCurve:
        """Build a curve from ``{"ppp": 40, ...}``; absent levels keep their default."""
        unknown = set(mapping) - {dynamic.value for dynamic in Dynamic}
        if unknown:
            raise ValueError(f"unknown dynamics level(s): {', '.join(sorted(unknown))}")
        return cls(
            tuple(
                mapping.get(dynamic.value, default)
                for dynamic, default in zip(Dynamic, DEFAULT_INTENSITIES)
            )
        )


@dataclass(frozen=True)
class RoleAssignment:
    """The role a part plays and the device port (1-5) it drives."""

    role: str
    port: int

    def __post_init__(self) -> None:
        if not self.role:
            raise ValueError("role name must not be empty")
        if not 1 <= self.port <= PORT_COUNT:
            raise ValueError(f"port must be between 1 and {PORT_COUNT}, got {self.port}")


@dataclass(frozen=True)
class ConversionParameters:
    """
    User-supplied settings for one conversion.

    Attributes:
        bpm:               Tempo in quarter notes per minute.
        role_mapping:      Part id → RoleAssignment. Unmapped parts are ignored.
        dynamics:          Dynamics-to-intensity curve.
        trill_interval_ms: Length of each ornament sub-event.
    """

    bpm: int
    role_mapping: Mapping[str, RoleAssignment] = field(default_factory=dict)
    dynamics: DynamicsCurve = field(default_factory=DynamicsCurve)
    trill_interval_ms: float = DEFAULT_TRILL_INTERVAL_MS

    def __post_init__(self) -> None:
        if not isinstance(self.bpm, int) or isinstance(self.bpm, bool) or self.bpm <= 0:
            raise ValueError(f"bpm must be a positive integer, got {self.bpm!r}")
        if self.trill_interval_ms <= 0:
            raise ValueError(f"trill interval must be positive, got {self.trill_interval_ms!r}")


@dataclass(frozen=True)
class PortTimeline:
    """Events of the single part driving one port."""

    port: int
    part_id: str
    events: list[IntermediateEvent]


@dataclass(frozen=True)
class RoleTimelines:
    """All port timelines of one role, ordered by port index."""

    role: str
    ports: tuple[PortTimeline, ...]

    def part_for_port(self, port: int) -> str | None:
        for timeline in self.ports:
            if timeline.port == port:
                return timeline.part_id
        return None


class RoleAggregator:
    """
    Turn a score plus a role mapping into per-role, per-port timelines.

    A role is valid when it has between 1 and 5 parts, every part exists in
    the score, and no two parts share a port. Anything else is a MappingError,
    raised for the offending role only.
    """

    def __init__(self, parameters: ConversionParameters) -> None:
        self.parameters = parameters
        self.builder = TimelineBuilder(parameters.bpm, parameters.trill_interval_ms)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _validate(self, role: str, members: list[tuple[str, int]], score: Score) -> None:
        if not members:
            raise MappingError(f"Role '{role}' has no parts assigned", role=role)

        part_ids = tuple(part_id for part_id, _ in members)
        if len(members) > PORT_COUNT:
            raise MappingError(
                f"Role '{role}' has too many parts ({len(members)}, at most {PORT_COUNT})",
                role=role,
                part_ids=part_ids,
            )

        missing = tuple(part_id for part_id in part_ids if part_id not in score)
        if missing:
            raise MappingError(
                f"Role '{role}' refers to part(s) not in the score: {', '.join(missing)}",
                role=role,
                part_ids=missing,
            )

        port_counts = Counter(port for _, port in members)
        for port, count in sorted(port_counts.items()):
            if count > 1:
                sharing = tuple(part_id for part_id, p in members if p == port)
                raise MappingError(
                    f"Role '{role}' assigns port {port} to more than one part: "
                    f"{', '.join(sharing)}",
                    role=role,
                    part_ids=sharing,
                    port=port,
                )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def group(self) -> dict[str, list[tuple[str, int]]]:
        """Return role → [(part id, port), ...] in mapping order."""
        roles: dict[str, list[tuple[str, int]]] = {}
        for part_id, assignment in self.parameters.role_mapping.items():
            roles.setdefault(assignment.role, []).append((part_id, assignment.port))
        return roles

    def build_role(self, score: Score, role: str, members: list[tuple[str, int]]) -> RoleTimelines:
        """
        Validate one role and build a timeline for each of its ports.

        Raises:
            MappingError: If the role's assignment is not resolvable.
        """
        try:
            self._validate(role, members, score)
        except MappingError as exc:
            logger.warning("%s", exc)
            raise

        ports = tuple(
            PortTimeline(
                port=port,
                part_id=part_id,
                events=self.builder.build(score[part_id].measures),
            )
            for part_id, port in sorted(members, key=lambda member: member[1])
        )
        logger.debug("Role %s: %d port timeline(s)", role, len(ports))
        return RoleTimelines(role=role, ports=ports)
