"""Unit tests for the precedence-based ConflictResolver, one per decision-table cell."""

from itertools import combinations

import pytest

from flowscore.conflict_resolver import PortRequest, PrecedenceResolver
from flowscore.errors import ConflictError
from flowscore.role_aggregator import DynamicsCurve
from flowscore.schedule_models import PortState, PumpAction
from flowscore.score_models import Dynamic
from flowscore.timeline_builder import IntermediateAction, IntermediateEvent

A = IntermediateAction
OPEN = PortState.OPEN
CLOSED = PortState.CLOSED

CURVE = DynamicsCurve((10, 20, 30, 40, 50, 60, 70, 80))

ACTIVE = (A.RELEASE, A.INFLATE, A.TRILL_RELEASE, A.TRILL_INFLATE)


def _requests(*actions: IntermediateAction, dynamics: list[Dynamic] | None = None) -> list[PortRequest]:
    """Build five requests; ports beyond *actions* are idle."""
    dynamics = dynamics or [Dynamic.F] * len(actions)
    requests = []
    for port in range(1, 6):
        if port <= len(actions):
            action, dynamic, part_id = actions[port - 1], dynamics[port - 1], f"P{port}"
        else:
            action, dynamic, part_id = A.NO_CHANGE, Dynamic.PPP, None
        event = IntermediateEvent(
            start_time=0.0,
            action=action,
            dynamic=dynamic,
            measure_number=port + 10,
            note_index=0,
        )
        requests.append(PortRequest(port=port, part_id=part_id, event=event))
    return requests


def _expected(present: frozenset[IntermediateAction]) -> IntermediateAction | None:
    """Reference decision table: None means a conflict."""
    if A.TRILL_INFLATE in present and A.TRILL_RELEASE in present:
        return None
    if A.TRILL_INFLATE in present:
        return A.TRILL_INFLATE
    if A.TRILL_RELEASE in present:
        return A.TRILL_RELEASE
    if A.INFLATE in present and A.RELEASE in present:
        return None
    if A.INFLATE in present:
        return A.INFLATE
    if A.RELEASE in present:
        return A.RELEASE
    return A.NO_CHANGE


ALL_CELLS = [
    frozenset(subset) for size in range(len(ACTIVE) + 1) for subset in combinations(ACTIVE, size)
]


@pytest.mark.parametrize("present", ALL_CELLS, ids=lambda s: "+".join(a.value for a in s) or "idle")
def test_decision_table_cell(present: frozenset[IntermediateAction]) -> None:
    resolver = PrecedenceResolver(CURVE)
    actions = [a for a in ACTIVE if a in present]
    requests = _requests(*actions)
    expected = _expected(present)

    if expected is None:
        with pytest.raises(ConflictError):
            resolver.settle("arm", 0.0, requests)
        return

    assert resolver.settle("arm", 0.0, requests) is expected
    command = resolver.resolve("arm", 0.0, requests)
    for request, state in zip(requests, command.ports):
        should_open = expected is not A.NO_CHANGE and request.action is expected
        assert state is (OPEN if should_open else CLOSED)
    inflating = present & {A.INFLATE, A.TRILL_INFLATE}
    assert command.intensity == (CURVE.intensity(Dynamic.F) if inflating else 0)


def test_all_idle_is_stop_with_closed_ports() -> None:
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, _requests())
    assert command.action is PumpAction.STOP
    assert command.intensity == 0
    assert command.ports == (CLOSED,) * 5


def test_single_inflate_opens_its_port() -> None:
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, _requests(A.INFLATE))
    assert command.action is PumpAction.ACTUATE
    assert command.intensity == CURVE.intensity(Dynamic.F)
    assert command.ports == (OPEN, CLOSED, CLOSED, CLOSED, CLOSED)


def test_idle_port_stays_closed_while_other_inflates() -> None:
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, _requests(A.NO_CHANGE, A.INFLATE))
    assert command.action is PumpAction.ACTUATE
    assert command.ports[:2] == (CLOSED, OPEN)


def test_release_has_zero_intensity() -> None:
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, _requests(A.RELEASE, A.RELEASE))
    assert command.action is PumpAction.RELEASE
    assert command.intensity == 0
    assert command.ports[:2] == (OPEN, OPEN)


def test_intensity_is_loudest_open_port() -> None:
    requests = _requests(A.INFLATE, A.INFLATE, A.INFLATE, dynamics=[Dynamic.P, Dynamic.FF, Dynamic.MF])
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, requests)
    assert command.intensity == CURVE.intensity(Dynamic.FF)


def test_trill_wins_but_louder_plain_inflate_sets_intensity() -> None:
    requests = _requests(A.INFLATE, A.TRILL_INFLATE, dynamics=[Dynamic.FFF, Dynamic.PP])
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, requests)
    assert command.action is PumpAction.ACTUATE
    assert command.ports[:2] == (CLOSED, OPEN)
    assert command.intensity == CURVE.intensity(Dynamic.FFF)


def test_trill_release_wins_over_plain_inflate() -> None:
    requests = _requests(A.INFLATE, A.TRILL_RELEASE, dynamics=[Dynamic.MP, Dynamic.FF])
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, requests)
    assert command.action is PumpAction.RELEASE
    assert command.intensity == CURVE.intensity(Dynamic.MP)
    assert command.ports[:2] == (CLOSED, OPEN)


def test_inflate_release_conflict_reports_both_sites() -> None:
    requests = _requests(A.NO_CHANGE, A.INFLATE, A.RELEASE)
    with pytest.raises(ConflictError) as excinfo:
        PrecedenceResolver(CURVE).resolve("arm", 1250.0, requests)
    error = excinfo.value
    assert error.role == "arm"
    assert error.time_ms == 1250.0
    assert error.ports == [2, 3]
    assert error.measure_numbers == [12, 13]
    assert {site.part_id for site in error.sites} == {"P2", "P3"}
    assert "arm" in str(error)
    assert "1250.0 ms" in str(error)


def test_trill_conflict_reports_trill_ports_only() -> None:
    requests = _requests(A.INFLATE, A.TRILL_INFLATE, A.TRILL_RELEASE)
    with pytest.raises(ConflictError) as excinfo:
        PrecedenceResolver(CURVE).resolve("arm", 0.0, requests)
    assert excinfo.value.ports == [2, 3]


def test_trill_inflate_louder_than_plain_inflate() -> None:
    requests = _requests(A.INFLATE, A.TRILL_INFLATE, dynamics=[Dynamic.P, Dynamic.FF])
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, requests)
    assert command.intensity == CURVE.intensity(Dynamic.FF)


def test_trill_release_alone_has_zero_intensity() -> None:
    command = PrecedenceResolver(CURVE).resolve("arm", 0.0, _requests(A.TRILL_RELEASE, A.NO_CHANGE))
    assert command.action is PumpAction.RELEASE
    assert command.intensity == 0
