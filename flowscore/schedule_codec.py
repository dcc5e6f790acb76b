"""Serialization of schedules: JSON documents, device packets and scheduler rows."""

from __future__ import annotations

import json
import math
from typing import Any, Final, Mapping, Sequence

from flowscore.errors import ScheduleFormatError
from flowscore.role_aggregator import MAX_INTENSITY, PORT_COUNT
from flowscore.schedule_models import Command, PortState, PumpAction, Schedule

PORT_KEYS: Final[tuple[str, ...]] = tuple(f"port{i}" for i in range(1, PORT_COUNT + 1))
MAX_PORTS_BYTE: Final[int] = (1 << PORT_COUNT) - 1

# FlowIO control characteristic opcodes
ACTION_CODES: Final[dict[PumpAction, str]] = {
    PumpAction.ACTUATE: "+",
    PumpAction.RELEASE: "^",
    PumpAction.STOP: "!",
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ── JSON ──────────────────────────────────────────────────────────────────────

def command_to_dict(command: Command) -> dict[str, Any]:
    return {
        "action": command.action.value,
        "pumpPwm": command.intensity,
        "ports": {key: state.value for key, state in zip(PORT_KEYS, command.ports)},
    }


def command_from_dict(data: Any) -> Command:
    """
    Raises:
        ScheduleFormatError: If *data* is not a valid command object.
    """
    if not isinstance(data, Mapping):
        raise ScheduleFormatError(f"command must be an object, got {data!r}")
    try:
        action = PumpAction(data.get("action"))
    except ValueError:
        raise ScheduleFormatError(f"unknown action {data.get('action')!r}") from None

    pwm = data.get("pumpPwm")
    if not _is_int(pwm) or not 0 <= pwm <= MAX_INTENSITY:
        raise ScheduleFormatError(f"pumpPwm must be an integer 0-{MAX_INTENSITY}, got {pwm!r}")

    ports = data.get("ports")
    if not isinstance(ports, Mapping) or set(ports) != set(PORT_KEYS):
        raise ScheduleFormatError(f"ports must have exactly the keys {', '.join(PORT_KEYS)}")
    try:
        states = tuple(PortState(ports[key]) for key in PORT_KEYS)
    except ValueError as exc:
        raise ScheduleFormatError(f"invalid port state: {exc}") from None

    return Command(action=action, intensity=pwm, ports=states)


def schedule_to_dict(schedule: Schedule) -> dict[str, Any]:
    return {
        "time": list(schedule.time),
        "instructions": {
            role: [command_to_dict(command) for command in commands]
            for role, commands in schedule.instructions.items()
        },
    }


def schedule_from_dict(data: Any) -> Schedule:
    """
    Validate and decode a schedule document.

    Raises:
        ScheduleFormatError: If times are not numeric and strictly increasing,
            a role's command list length differs from the time axis, or any
            command is invalid.
    """
    if not isinstance(data, Mapping):
        raise ScheduleFormatError("schedule must be an object")

    time = data.get("time")
    if not isinstance(time, list) or not all(_is_number(t) for t in time):
        raise ScheduleFormatError("time must be an array of numbers")
    if any(t < 0 for t in time):
        raise ScheduleFormatError("time values must not be negative")
    if any(later <= earlier for earlier, later in zip(time, time[1:])):
        raise ScheduleFormatError("time values must be strictly increasing")

    instructions = data.get("instructions")
    if not isinstance(instructions, Mapping):
        raise ScheduleFormatError("instructions must be an object keyed by role")

    decoded: dict[str, list[Command]] = {}
    for role, commands in instructions.items():
        if not isinstance(commands, list) or len(commands) != len(time):
            raise ScheduleFormatError(
                f"role '{role}' must have exactly {len(time)} command(s)"
            )
        decoded[role] = [command_from_dict(command) for command in commands]

    return Schedule(time=[float(t) for t in time], instructions=decoded)


def dumps(schedule: Schedule, indent: int | None = 2) -> str:
    """Encode a schedule as JSON text."""
    return json.dumps(schedule_to_dict(schedule), indent=indent)


def loads(text: str) -> Schedule:
    """
    Decode and validate JSON schedule text.

    Raises:
        ScheduleFormatError: If the text is not JSON or not a valid schedule.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ScheduleFormatError(f"schedule is not valid JSON: {exc}") from None
    return schedule_from_dict(data)


# ── Device packets ────────────────────────────────────────────────────────────

def command_to_bytes(command: Command) -> bytes:
    """Encode a Command as the 3-byte control packet ``[opcode, ports, pwm]``."""
    return bytes([ord(ACTION_CODES[command.action]), command.ports_byte, command.intensity])


def ports_from_byte(ports_byte: int) -> tuple[PortState, ...]:
    """Decode a port bit mask (port1 = 0x01 … port5 = 0x10)."""
    if not 0 <= ports_byte <= MAX_PORTS_BYTE:
        raise ValueError(f"ports byte must be 0x00-0x{MAX_PORTS_BYTE:02X}, got {ports_byte:#x}")
    return tuple(
        PortState.OPEN if ports_byte & (1 << i) else PortState.CLOSED for i in range(PORT_COUNT)
    )


# ── Scheduler table rows ──────────────────────────────────────────────────────

def schedule_to_rows(schedule: Schedule, role: str) -> list[dict[str, Any]]:
    """
    Export one role as rows of the manual per-device scheduler table.

    Raises:
        KeyError: If *role* is not in the schedule.
    """
    commands = schedule.instructions[role]
    return [
        {
            # Ticks are > 1 ms apart, so half-up rounding keeps them increasing.
            "startTime": math.floor(time + 0.5),
            "portByte": command.ports_byte,
            "action": ACTION_CODES[command.action],
            "pwmVal": command.intensity,
        }
        for time, command in zip(schedule.time, commands)
    ]


def validate_rows(rows: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """
    Check scheduler rows: non-negative integer start times in strictly
    increasing order, pwm 0-255, a port byte within the five-port mask and an
    action on every row.

    Raises:
        ScheduleFormatError: On the first invalid row.
    """
    for number, row in enumerate(rows, start=1):
        start = row.get("startTime")
        pwm = row.get("pwmVal")
        ports_byte = row.get("portByte")
        valid = (
            _is_int(start)
            and start >= 0
            and _is_int(pwm)
            and 0 <= pwm <= MAX_INTENSITY
            and _is_int(ports_byte)
            and 0 <= ports_byte <= MAX_PORTS_BYTE
            and row.get("action") is not None
        )
        if not valid:
            raise ScheduleFormatError(f"invalid row {number}: {dict(row)!r}")

    starts = [row["startTime"] for row in rows]
    if any(later <= earlier for earlier, later in zip(starts, starts[1:])):
        raise ScheduleFormatError("start times must be strictly increasing")
    return list(rows)
