"""Unit tests for the common timeline, resampling and TimelineMerger."""

import pytest

from flowscore.errors import ConflictError
from flowscore.role_aggregator import PortTimeline, RoleTimelines
from flowscore.schedule_models import PortState, PumpAction
from flowscore.score_models import Dynamic
from flowscore.timeline_builder import IntermediateAction, IntermediateEvent
from flowscore.timeline_merger import (
    TIME_TOLERANCE_MS,
    TimelineMerger,
    build_common_timeline,
    resample,
)

A = IntermediateAction


def _event(start: float, action: IntermediateAction, measure: int = 1, index: int | None = 0) -> IntermediateEvent:
    return IntermediateEvent(
        start_time=start,
        action=action,
        dynamic=Dynamic.F,
        measure_number=measure,
        note_index=index,
    )


def _role(*port_events: tuple[int, list[IntermediateEvent]]) -> RoleTimelines:
    return RoleTimelines(
        role="arm",
        ports=tuple(
            PortTimeline(port=port, part_id=f"P{port}", events=events)
            for port, events in port_events
        ),
    )


# ---------------------------------------------------------------------------
# Common timeline
# ---------------------------------------------------------------------------

def test_common_timeline_is_sorted_union() -> None:
    timeline = build_common_timeline(
        [[_event(0, A.INFLATE), _event(500, A.RELEASE)], [_event(250, A.INFLATE), _event(500, A.RELEASE)]]
    )
    assert timeline == [0.0, 250.0, 500.0]


def test_common_timeline_merges_times_within_tolerance() -> None:
    timeline = build_common_timeline(
        [[_event(100.0, A.INFLATE)], [_event(100.4, A.INFLATE)], [_event(103.0, A.INFLATE)]],
        tolerance=1.0,
    )
    assert timeline == [100.0, 103.0]


def test_common_timeline_ticks_are_further_apart_than_tolerance() -> None:
    starts = [0.0, 0.3, 0.9, 1.7, 2.2, 5.0, 5.05, 9.99, 10.0]
    timeline = build_common_timeline([[_event(t, A.INFLATE) for t in starts]])
    assert all(later - earlier > TIME_TOLERANCE_MS for earlier, later in zip(timeline, timeline[1:]))


def test_common_timeline_of_nothing_is_empty() -> None:
    assert build_common_timeline([]) == []


# ---------------------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------------------

def test_resample_carries_last_event_forward() -> None:
    events = [_event(0, A.INFLATE, index=0), _event(500, A.RELEASE, index=1)]
    resampled = resample(events, [0.0, 250.0, 500.0, 750.0])
    assert [e.action for e in resampled] == [A.INFLATE, A.INFLATE, A.RELEASE, A.RELEASE]
    assert [e.start_time for e in resampled] == [0.0, 250.0, 500.0, 750.0]
    assert resampled[1].note_index == 0


def test_resample_before_first_event_is_idle() -> None:
    resampled = resample([_event(500, A.INFLATE, measure=3)], [0.0, 500.0])
    assert resampled[0].action is A.NO_CHANGE
    assert resampled[0].note_index is None
    assert resampled[1].measure_number == 3


def test_resample_snaps_event_to_tolerance_run_head() -> None:
    resampled = resample([_event(0, A.INFLATE), _event(250.6, A.RELEASE)], [0.0, 250.0])
    assert [e.action for e in resampled] == [A.INFLATE, A.RELEASE]


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def test_merge_single_port() -> None:
    role = _role((1, [_event(0, A.INFLATE), _event(250, A.RELEASE), _event(1000, A.NO_CHANGE, index=None)]))
    merger = TimelineMerger()
    timeline = merger.common_timeline([role])
    commands = merger.merge(role, timeline)
    assert [c.action for c in commands] == [PumpAction.ACTUATE, PumpAction.RELEASE, PumpAction.STOP]
    assert commands[0].ports[0] is PortState.OPEN
    assert commands[2].ports == (PortState.CLOSED,) * 5


def test_merge_holding_port_stays_closed() -> None:
    role = _role(
        (1, [_event(0, A.NO_CHANGE), _event(1000, A.NO_CHANGE, index=None)]),
        (2, [_event(0, A.INFLATE), _event(1000, A.NO_CHANGE, index=None)]),
    )
    merger = TimelineMerger()
    commands = merger.merge(role, merger.common_timeline([role]))
    assert commands[0].action is PumpAction.ACTUATE
    assert commands[0].ports[:2] == (PortState.CLOSED, PortState.OPEN)


def test_merge_detects_conflict_from_carried_forward_note() -> None:
    # Port 1 is still inflating at 500 ms when port 2 starts releasing.
    role = _role(
        (1, [_event(0, A.INFLATE, measure=1), _event(1000, A.NO_CHANGE, index=None)]),
        (2, [_event(0, A.NO_CHANGE), _event(500, A.RELEASE, measure=2), _event(1000, A.NO_CHANGE, index=None)]),
    )
    merger = TimelineMerger()
    with pytest.raises(ConflictError) as excinfo:
        merger.merge(role, merger.common_timeline([role]))
    assert excinfo.value.time_ms == 500.0
    assert excinfo.value.measure_numbers == [1, 2]


def test_merge_on_shared_axis_repeats_commands() -> None:
    role = _role((1, [_event(0, A.INFLATE), _event(1000, A.NO_CHANGE, index=None)]))
    commands = TimelineMerger().merge(role, [0.0, 400.0, 1000.0])
    assert len(commands) == 3
    assert commands[0] == commands[1]
