import pytest

from swerve_core.component_modes import (
    RUNTIME_ENV_VAR,
    ComponentMode,
    RuntimeMode,
    parse_component_flags,
)
from swerve_core.config import SECOND_ORDER_KINEMATICS


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    monkeypatch.delenv(RUNTIME_ENV_VAR, raising=False)


def test_defaults():
    mode, remaining = parse_component_flags([])
    assert mode == ComponentMode()
    assert mode.runtime is RuntimeMode.SIMULATION
    assert mode.use_vision
    assert mode.use_second_order is SECOND_ORDER_KINEMATICS
    assert remaining == []


def test_runtime_flags():
    assert parse_component_flags(["--stub"])[0].runtime is RuntimeMode.STUB
    assert parse_component_flags(["--sim"])[0].runtime is RuntimeMode.SIMULATION
    assert parse_component_flags(["--hardware"])[0].runtime is RuntimeMode.HARDWARE


def test_runtime_flags_are_exclusive():
    with pytest.raises(SystemExit):
        parse_component_flags(["--stub", "--hardware"])


def test_layer_flags_and_passthrough():
    mode, remaining = parse_component_flags(["--no-vision", "--second-order", "--cycles", "10"])
    assert not mode.use_vision
    assert mode.use_second_order
    assert remaining == ["--cycles", "10"]

    mode, _ = parse_component_flags(["--second-order", "--no-second-order"])
    assert not mode.use_second_order


def test_runtime_from_environment(monkeypatch):
    monkeypatch.setenv(RUNTIME_ENV_VAR, "Stub")
    assert parse_component_flags([])[0].runtime is RuntimeMode.STUB
    # Flags win over the environment
    assert parse_component_flags(["--sim"])[0].runtime is RuntimeMode.SIMULATION


def test_invalid_runtime_environment(monkeypatch):
    monkeypatch.setenv(RUNTIME_ENV_VAR, "robot")
    with pytest.raises(ValueError, match=RUNTIME_ENV_VAR):
        RuntimeMode.from_environment()


def test_description_and_dict():
    mode = ComponentMode(runtime=RuntimeMode.STUB, use_vision=False, use_second_order=True)
    assert str(mode) == "Modules(stub) → Kinematics(2nd order) → Estimator(odometry)"
    assert mode.to_dict() == {"runtime": "stub", "use_vision": False, "use_second_order": True}
