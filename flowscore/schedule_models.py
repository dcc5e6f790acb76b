"""Data models for the compiled actuation schedule."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PumpAction(Enum):
    STOP = "stop"
    ACTUATE = "actuate"
    RELEASE = "release"


class PortState(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Command:
    """
    The single hardware instruction for one role at one tick.

    Attributes:
        action:    Pump action.
        intensity: Pump PWM value, 0-255.
        ports:     Valve state of ports 1-5, in port order.
    """

    action: PumpAction
    intensity: int
    ports: tuple[PortState, ...]

    @property
    def open_ports(self) -> list[int]:
        """1-based indices of the open ports."""
        return [i for i, state in enumerate(self.ports, start=1) if state is PortState.OPEN]

    @property
    def ports_byte(self) -> int:
        """Open ports as a bit mask: port1 = 0x01 … port5 = 0x10."""
        mask = 0
        for port in self.open_ports:
            mask |= 1 << (port - 1)
        return mask


@dataclass(frozen=True)
class Schedule:
    """
    A time axis shared by every role and one Command per tick per role.

    Attributes:
        time:         Tick times in ms, strictly increasing.
        instructions: Role name → Commands, each list as long as ``time``.
    """

    time: list[float]
    instructions: dict[str, list[Command]] = field(default_factory=dict)
