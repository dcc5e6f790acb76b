"""TimelineMerger: aligns port timelines on a common time axis and resolves each tick."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Final, Iterable, Sequence

import numpy as np

from flowscore.conflict_resolver import ConflictResolver, PortRequest, PrecedenceResolver
from flowscore.role_aggregator import PORT_COUNT, RoleTimelines
from flowscore.schedule_models import Command
from flowscore.score_models import Dynamic
from flowscore.timeline_builder import IntermediateAction, IntermediateEvent

logger = logging.getLogger(__name__)

#: Event times closer than this (ms) land on the same tick.
TIME_TOLERANCE_MS: Final[float] = 1.0

IDLE_EVENT: Final[IntermediateEvent] = IntermediateEvent(
    start_time=0.0,
    action=IntermediateAction.NO_CHANGE,
    dynamic=Dynamic.PPP,
    measure_number=0,
    note_index=None,
)


def build_common_timeline(
    event_lists: Iterable[Sequence[IntermediateEvent]],
    tolerance: float = TIME_TOLERANCE_MS,
) -> list[float]:
    """
    Union of all event start times, sorted, with near-duplicates collapsed.

    Sorted times are split into runs where consecutive gaps are within
    *tolerance*; each run is represented by its earliest time. Consecutive
    ticks of the result are therefore more than *tolerance* apart.
    """
    times = np.fromiter(
        (event.start_time for events in event_lists for event in events), dtype=float
    )
    if times.size == 0:
        return []
    times = np.sort(times)
    keep = np.concatenate(([True], np.diff(times) > tolerance))
    return [float(tick) for tick in times[keep]]


def resample(
    events: Sequence[IntermediateEvent], timeline: Sequence[float]
) -> list[IntermediateEvent]:
    """
    Put a port's events onto *timeline*, one event per tick.

    Each event lands on the latest tick at or before its start time (the head
    of its tolerance run); when several land on the same tick the last one
    wins. Ticks without an event repeat the previous event, and ticks before
    the port's first event get an idle NO_CHANGE.
    """
    ticks = np.asarray(timeline, dtype=float)
    slots: list[IntermediateEvent | None] = [None] * len(ticks)
    if events and ticks.size:
        starts = np.fromiter((event.start_time for event in events), dtype=float)
        indices = np.clip(np.searchsorted(ticks, starts, side="right") - 1, 0, None)
        for event, index in zip(events, indices):
            slots[int(index)] = event

    resampled: list[IntermediateEvent] = []
    current = IDLE_EVENT
    for tick, slot in zip(ticks, slots):
        if slot is not None:
            current = slot
        resampled.append(replace(current, start_time=float(tick)))
    return resampled


class TimelineMerger:
    """
    Merge a role's port timelines into one Command per tick.

    The per-tick decision is delegated to a ConflictResolver strategy so the
    precedence policy can be swapped without touching the alignment logic.
    """

    def __init__(
        self,
        resolver: ConflictResolver | None = None,
        tolerance: float = TIME_TOLERANCE_MS,
    ) -> None:
        self.resolver = resolver if resolver is not None else PrecedenceResolver()
        self.tolerance = tolerance

    def common_timeline(self, roles: Iterable[RoleTimelines]) -> list[float]:
        """Build one axis covering every port of every given role."""
        return build_common_timeline(
            (timeline.events for role in roles for timeline in role.ports),
            self.tolerance,
        )

    def merge(self, role: RoleTimelines, timeline: Sequence[float]) -> list[Command]:
        """
        Resolve *role* on *timeline*.

        Returns:
            One Command per tick.

        Raises:
            ConflictError: At the first tick where the ports cannot be reconciled.
        """
        aligned = {port.port: resample(port.events, timeline) for port in role.ports}
        idle = [replace(IDLE_EVENT, start_time=float(tick)) for tick in timeline]

        commands: list[Command] = []
        for tick_index, tick in enumerate(timeline):
            requests = tuple(
                PortRequest(
                    port=port,
                    part_id=role.part_for_port(port),
                    event=aligned.get(port, idle)[tick_index],
                )
                for port in range(1, PORT_COUNT + 1)
            )
            commands.append(self.resolver.resolve(role.role, tick, requests))

        logger.debug("Role %s resolved over %d tick(s)", role.role, len(commands))
        return commands
