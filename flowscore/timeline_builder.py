"""TimelineBuilder: converts a part's measures into timed actuation events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Final, Sequence

from flowscore.score_models import (
    Actuate,
    Dynamic,
    HardTrill,
    Hold,
    Measure,
    Note,
    Rest,
    Trill,
)

logger = logging.getLogger(__name__)

MS_PER_MINUTE: Final[int] = 60_000
DEFAULT_TRILL_INTERVAL_MS: Final[float] = 20.0


class IntermediateAction(Enum):
    """What a single port asks the pump to do from an event onwards."""

    INFLATE = "inflate"
    RELEASE = "release"
    NO_CHANGE = "no-change"
    TRILL_INFLATE = "trill-inflate"
    TRILL_RELEASE = "trill-release"


# (active phase, passive phase) for each ornament kind
_TRILL_PHASES: Final[dict[type, tuple[IntermediateAction, IntermediateAction]]] = {
    Trill: (IntermediateAction.INFLATE, IntermediateAction.NO_CHANGE),
    HardTrill: (IntermediateAction.TRILL_INFLATE, IntermediateAction.TRILL_RELEASE),
}


@dataclass(frozen=True)
class IntermediateEvent:
    """
    A port action starting at an absolute time.

    Attributes:
        start_time:     Milliseconds from the start of the score.
        action:         Requested action.
        dynamic:        Dynamic in effect for the note.
        measure_number: Measure the originating note belongs to.
        note_index:     Zero-based note index within the measure, or None for
                        synthetic events (end-of-part pin, resampling filler).
    """

    start_time: float
    action: IntermediateAction
    dynamic: Dynamic
    measure_number: int
    note_index: int | None


def _note_dynamic(note: Note) -> Dynamic:
    # Holds carry no marking of their own and sit at the bottom of the scale.
    if isinstance(note, Hold):
        return Dynamic.PPP
    return note.dynamic


class TimelineBuilder:
    """
    Lay a part's notes end to end on an absolute millisecond axis.

    Timing
    ------
    One division lasts ``60000 / (bpm × divisions_per_quarter)`` ms, where the
    divisions come from the measure holding the note. Times are accumulated as
    exact fractions and only rounded (to 1 µs) when an event is emitted, so long
    scores do not drift.

    Ornaments
    ---------
    A Trill or HardTrill lasting D ms becomes ``floor(D / trill_interval)``
    sub-events alternating active/passive, starting active. An ornament
    shorter than one interval still gets a single active sub-event.
    """

    def __init__(self, bpm: int, trill_interval_ms: float = DEFAULT_TRILL_INTERVAL_MS) -> None:
        if bpm <= 0:
            raise ValueError(f"bpm must be positive, got {bpm}")
        if trill_interval_ms <= 0:
            raise ValueError(f"trill interval must be positive, got {trill_interval_ms}")
        self.bpm = bpm
        self.trill_interval_ms = trill_interval_ms
        self._trill_interval = Fraction(str(trill_interval_ms))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _division_ms(self, divisions_per_quarter: int) -> Fraction:
        return Fraction(MS_PER_MINUTE, self.bpm * divisions_per_quarter)

    def _emit(
        self,
        start: Fraction,
        action: IntermediateAction,
        dynamic: Dynamic,
        measure_number: int,
        note_index: int | None,
    ) -> IntermediateEvent:
        return IntermediateEvent(
            start_time=round(float(start), 3),
            action=action,
            dynamic=dynamic,
            measure_number=measure_number,
            note_index=note_index,
        )

    def _note_events(
        self,
        note: Note,
        start: Fraction,
        length: Fraction,
        measure_number: int,
        note_index: int,
    ) -> list[IntermediateEvent]:
        dynamic = _note_dynamic(note)

        if isinstance(note, (Trill, HardTrill)):
            active, passive = _TRILL_PHASES[type(note)]
            count = max(1, int(length // self._trill_interval))
            return [
                self._emit(
                    start + i * self._trill_interval,
                    active if i % 2 == 0 else passive,
                    dynamic,
                    measure_number,
                    note_index,
                )
                for i in range(count)
            ]

        if isinstance(note, Rest):
            action = IntermediateAction.RELEASE
        elif isinstance(note, Actuate):
            action = IntermediateAction.INFLATE
        else:
            action = IntermediateAction.NO_CHANGE
        return [self._emit(start, action, dynamic, measure_number, note_index)]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, measures: Sequence[Measure]) -> list[IntermediateEvent]:
        """
        Build the event list for one part.

        Args:
            measures: The part's measures, signature/divisions already resolved.

        Returns:
            Events in strictly increasing start-time order, the first at 0 ms,
            closed by a NO_CHANGE event at the part's end time.
        """
        events: list[IntermediateEvent] = []
        cursor = Fraction(0)
        last_dynamic = Dynamic.PPP
        last_measure = measures[-1].number if measures else 0

        for measure in measures:
            division_ms = self._division_ms(measure.divisions_per_quarter)
            for note_index, note in enumerate(measure.notes):
                length = note.duration * division_ms
                # Zero-length notes occupy no time and would collide with the next note.
                if length == 0:
                    continue
                events.extend(
                    self._note_events(note, cursor, length, measure.number, note_index)
                )
                last_dynamic = _note_dynamic(note)
                cursor += length

        events.append(
            self._emit(cursor, IntermediateAction.NO_CHANGE, last_dynamic, last_measure, None)
        )
        logger.debug("Built %d event(s) over %.1f ms", len(events), float(cursor))
        return events
