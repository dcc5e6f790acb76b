"""Unit tests for YAML conversion-parameter files."""

import pytest

from flowscore.config import DEFAULT_BPM, ConfigError, load_parameters, parameters_from_dict
from flowscore.role_aggregator import DynamicsCurve, RoleAssignment
from flowscore.score_models import Dynamic

SAMPLE_YAML = """\
bpm: 96
trill_interval_ms: 25
dynamics:
  ppp: 10
  fff: 250
roles:
  left-arm:
    P1: 1
    P2: 2
  right-arm:
    P3: 1
"""


def test_load_parameters_reads_every_section(tmp_path) -> None:
    path = tmp_path / "params.yaml"
    path.write_text(SAMPLE_YAML, encoding="utf-8")
    parameters = load_parameters(path)

    assert parameters.bpm == 96
    assert parameters.trill_interval_ms == 25
    assert parameters.dynamics.intensity(Dynamic.PPP) == 10
    assert parameters.dynamics.intensity(Dynamic.FFF) == 250
    assert parameters.dynamics.intensity(Dynamic.MF) == DynamicsCurve().intensity(Dynamic.MF)
    assert parameters.role_mapping == {
        "P1": RoleAssignment("left-arm", 1),
        "P2": RoleAssignment("left-arm", 2),
        "P3": RoleAssignment("right-arm", 1),
    }


def test_explicit_arguments_override_file(tmp_path) -> None:
    path = tmp_path / "params.yaml"
    path.write_text(SAMPLE_YAML, encoding="utf-8")
    parameters = load_parameters(path, bpm=60, trill_interval_ms=40.0)
    assert parameters.bpm == 60
    assert parameters.trill_interval_ms == 40.0


def test_defaults_when_sections_missing() -> None:
    parameters = parameters_from_dict({"roles": {"arm": {"P1": 1}}})
    assert parameters.bpm == DEFAULT_BPM
    assert parameters.dynamics == DynamicsCurve()


def test_part_in_two_roles_rejected() -> None:
    with pytest.raises(ConfigError, match="P1"):
        parameters_from_dict({"roles": {"arm": {"P1": 1}, "leg": {"P1": 2}}})


def test_port_out_of_range_becomes_config_error() -> None:
    with pytest.raises(ConfigError, match="port"):
        parameters_from_dict({"roles": {"arm": {"P1": 7}}})


def test_non_integer_port_rejected() -> None:
    with pytest.raises(ConfigError, match="integer"):
        parameters_from_dict({"roles": {"arm": {"P1": "one"}}})


def test_bad_bpm_becomes_config_error() -> None:
    with pytest.raises(ConfigError, match="bpm"):
        parameters_from_dict({"bpm": -5})


def test_roles_must_be_mapping() -> None:
    with pytest.raises(ConfigError, match="roles"):
        parameters_from_dict({"roles": ["P1", "P2"]})


def test_non_mapping_file_rejected(tmp_path) -> None:
    path = tmp_path / "params.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_parameters(path)


def test_invalid_yaml_rejected(tmp_path) -> None:
    path = tmp_path / "params.yaml"
    path.write_text("bpm: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="YAML"):
        load_parameters(path)


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)


@pytest.mark.parametrize("port", [True, False])
def test_boolean_port_rejected(port: bool) -> None:
    with pytest.raises(ConfigError, match="integer"):
        parameters_from_dict({"roles": {"arm": {"P1": port}}})


def test_yaml_true_is_not_a_port(tmp_path) -> None:
    path = tmp_path / "params.yaml"
    path.write_text("roles:\n  arm:\n    P1: true\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="integer"):
        load_parameters(path)


def test_boolean_bpm_rejected() -> None:
    with pytest.raises(ConfigError, match="bpm"):
        parameters_from_dict({"bpm": True, "roles": {"arm": {"P1": 1}}})
