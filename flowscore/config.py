"""Loading conversion parameters from YAML files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Final, Mapping

import yaml

from flowscore.role_aggregator import ConversionParameters, DynamicsCurve, RoleAssignment
from flowscore.timeline_builder import DEFAULT_TRILL_INTERVAL_MS

DEFAULT_BPM: Final[int] = 120


class ConfigError(ValueError):
    """A parameters file is malformed."""


def _role_mapping(roles: Any) -> dict[str, RoleAssignment]:
    if not isinstance(roles, Mapping):
        raise ConfigError("'roles' must map role names to {part id: port}")
    mapping: dict[str, RoleAssignment] = {}
    for role, parts in roles.items():
        if not isinstance(parts, Mapping):
            raise ConfigError(f"role '{role}' must map part ids to port numbers")
        for part_id, port in parts.items():
            part_id = str(part_id)
            if part_id in mapping:
                raise ConfigError(
                    f"part '{part_id}' is assigned to both '{mapping[part_id].role}' and '{role}'"
                )
            if not isinstance(port, int) or isinstance(port, bool):
                raise ConfigError(f"port for part '{part_id}' in role '{role}' must be an integer")
            mapping[part_id] = RoleAssignment(role=str(role), port=port)
    return mapping


def parameters_from_dict(
    data: Mapping[str, Any],
    bpm: int | None = None,
    trill_interval_ms: float | None = None,
) -> ConversionParameters:
    """
    Build ConversionParameters from a parsed document.

    Explicit *bpm* / *trill_interval_ms* arguments win over the document.

    Raises:
        ConfigError: If any section is malformed or out of range.
    """
    dynamics = data.get("dynamics") or {}
    if not isinstance(dynamics, Mapping):
        raise ConfigError("'dynamics' must map levels (ppp..fff) to intensities")
    try:
        return ConversionParameters(
            bpm=bpm if bpm is not None else data.get("bpm", DEFAULT_BPM),
            role_mapping=_role_mapping(data.get("roles") or {}),
            dynamics=DynamicsCurve.from_mapping(dynamics),
            trill_interval_ms=(
                trill_interval_ms
                if trill_interval_ms is not None
                else data.get("trill_interval_ms", DEFAULT_TRILL_INTERVAL_MS)
            ),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc


def load_parameters(
    path: str | Path,
    bpm: int | None = None,
    trill_interval_ms: float | None = None,
) -> ConversionParameters:
    """Read a YAML parameters file (see ``parameters_from_dict``)."""
    with Path(path).open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: parameters file must contain a mapping")
    return parameters_from_dict(data, bpm=bpm, trill_interval_ms=trill_interval_ms)
