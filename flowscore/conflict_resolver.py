"""ConflictResolver: Strategy pattern for settling a role's port requests into one Command."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Final, Sequence

from flowscore.errors import ConflictError, ConflictSite
from flowscore.role_aggregator import DynamicsCurve
from flowscore.schedule_models import Command, PortState, PumpAction
from flowscore.timeline_builder import IntermediateAction, IntermediateEvent

logger = logging.getLogger(__name__)

_PUMP_ACTIONS: Final[dict[IntermediateAction, PumpAction]] = {
    IntermediateAction.INFLATE: PumpAction.ACTUATE,
    IntermediateAction.TRILL_INFLATE: PumpAction.ACTUATE,
    IntermediateAction.RELEASE: PumpAction.RELEASE,
    IntermediateAction.TRILL_RELEASE: PumpAction.RELEASE,
    IntermediateAction.NO_CHANGE: PumpAction.STOP,
}

INFLATING: Final[frozenset[IntermediateAction]] = frozenset(
    {IntermediateAction.INFLATE, IntermediateAction.TRILL_INFLATE}
)


@dataclass(frozen=True)
class PortRequest:
    """
    What one port asks for at one tick.

    Attributes:
        port:    Port index 1-5.
        part_id: Part driving the port, None if the port is unused.
        event:   The (possibly carried-forward) event in effect at the tick.
    """

    port: int
    part_id: str | None
    event: IntermediateEvent

    @property
    def action(self) -> IntermediateAction:
        return self.event.action


# ── Abstract base ────────────────────────────────────────────────────────────

class ConflictResolver(ABC):
    """
    Abstract Strategy for combining up to five port requests into one Command.

    The pump can only do one thing at a time, so a role's ports must agree on
    a single settled action; the strategy decides how, and when to give up.
    """

    @abstractmethod
    def resolve(self, role: str, time_ms: float, requests: Sequence[PortRequest]) -> Command:
        """
        Settle the requests of one tick.

        Args:
            role:     Role being resolved (for error context).
            time_ms:  Tick time (for error context).
            requests: One request per port, ports 1-5 in order.

        Returns:
            The Command to send at this tick.

        Raises:
            ConflictError: If the requests cannot be reconciled.
        """


# ── Concrete strategy ────────────────────────────────────────────────────────

@dataclass
class PrecedenceResolver(ConflictResolver):
    """
    Fixed-precedence resolution.

    Decision table
    --------------
    ===========================================  ==========================
    Actions present among the ports              Settled action
    ===========================================  ==========================
    TRILL_INFLATE and TRILL_RELEASE              ConflictError
    TRILL_INFLATE (plain actions ignored)        TRILL_INFLATE
    TRILL_RELEASE (plain actions ignored)        TRILL_RELEASE
    INFLATE and RELEASE, no trill                ConflictError
    INFLATE only                                 INFLATE
    RELEASE only                                 RELEASE
    nothing but NO_CHANGE                        NO_CHANGE
    ===========================================  ==========================

    A port is Open only when its own action equals the settled action and the
    settled action is not NO_CHANGE. Intensity is the loudest curve value among
    the ports asking to inflate (plain or trill), whether or not their valve
    opens; 0 when no port inflates.
    """

    dynamics: DynamicsCurve = field(default_factory=DynamicsCurve)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _conflict(
        self,
        role: str,
        time_ms: float,
        requests: Sequence[PortRequest],
        first: IntermediateAction,
        second: IntermediateAction,
    ) -> ConflictError:
        sites = tuple(
            ConflictSite(
                port=request.port,
                part_id=request.part_id or "-",
                measure_number=request.event.measure_number,
                note_index=request.event.note_index,
                action=request.action.value,
            )
            for request in requests
            if request.action in (first, second)
        )
        error = ConflictError(role, time_ms, sites)
        logger.warning("%s", error)
        return error

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def settle(
        self, role: str, time_ms: float, requests: Sequence[PortRequest]
    ) -> IntermediateAction:
        """Apply the decision table and return the settled action."""
        present = {request.action for request in requests}

        trill_inflate = IntermediateAction.TRILL_INFLATE in present
        trill_release = IntermediateAction.TRILL_RELEASE in present
        if trill_inflate and trill_release:
            raise self._conflict(
                role,
                time_ms,
                requests,
                IntermediateAction.TRILL_INFLATE,
                IntermediateAction.TRILL_RELEASE,
            )
        if trill_inflate:
            return IntermediateAction.TRILL_INFLATE
        if trill_release:
            return IntermediateAction.TRILL_RELEASE

        inflate = IntermediateAction.INFLATE in present
        release = IntermediateAction.RELEASE in present
        if inflate and release:
            raise self._conflict(
                role, time_ms, requests, IntermediateAction.INFLATE, IntermediateAction.RELEASE
            )
        if inflate:
            return IntermediateAction.INFLATE
        if release:
            return IntermediateAction.RELEASE
        return IntermediateAction.NO_CHANGE

    def resolve(self, role: str, time_ms: float, requests: Sequence[PortRequest]) -> Command:
        settled = self.settle(role, time_ms, requests)

        is_open = [
            settled is not IntermediateAction.NO_CHANGE and request.action is settled
            for request in requests
        ]
        intensity = max(
            (
                self.dynamics.intensity(request.event.dynamic)
                for request in requests
                if request.action in INFLATING
            ),
            default=0,
        )

        return Command(
            action=_PUMP_ACTIONS[settled],
            intensity=intensity,
            ports=tuple(PortState.OPEN if opened else PortState.CLOSED for opened in is_open),
        )
