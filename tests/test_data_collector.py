import csv

import pytest

from swerve_core.data_collector import (
    ESTIMATOR_COLUMNS,
    MODULE_COLUMNS,
    POSE_COLUMNS,
    TIMING_COLUMNS,
    VISION_COLUMNS,
    DataCollector,
)
from swerve_core.estimator import VisionObservation
from swerve_core.geometry import Pose2D, Rotation2D


def read_rows(path):
    with open(path, newline="") as f:
        return list(csv.reader(f))


def test_creates_timestamped_run_directory(tmp_path, monkeypatch):
    monkeypatch.delenv("RUN_DIR", raising=False)
    collector = DataCollector(output_dir=str(tmp_path))
    assert collector.run_dir.parent == tmp_path / "results"
    assert collector.run_dir.name.startswith("run_")
    assert collector.run_dir.is_dir()


def test_run_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("RUN_DIR", str(tmp_path / "from_env"))
    collector = DataCollector(output_dir=str(tmp_path))
    assert collector.run_dir == tmp_path / "from_env"


def test_rejects_file_as_output_dir(tmp_path):
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x")
    with pytest.raises(ValueError):
        DataCollector(output_dir=str(not_a_dir))


def test_headers_written_on_setup(tmp_path):
    with DataCollector(run_dir=str(tmp_path)):
        pass
    assert read_rows(tmp_path / "pose_data.csv") == [POSE_COLUMNS]
    assert read_rows(tmp_path / "module_data.csv") == [MODULE_COLUMNS]
    assert read_rows(tmp_path / "estimator_diagnostics.csv") == [ESTIMATOR_COLUMNS]
    assert read_rows(tmp_path / "loop_timing.csv") == [TIMING_COLUMNS]
    assert read_rows(tmp_path / "vision_data.csv") == [VISION_COLUMNS]


def test_log_telemetry_rows(tmp_path, sim_drivetrain):
    with DataCollector(run_dir=str(tmp_path)) as collector:
        collector.log_telemetry(0.5, sim_drivetrain.get_telemetry())

    pose_rows = read_rows(tmp_path / "pose_data.csv")
    assert len(pose_rows) == 2
    assert float(pose_rows[1][0]) == 0.5

    module_rows = read_rows(tmp_path / "module_data.csv")
    assert [row[1] for row in module_rows[1:]] == ["0", "1", "2", "3"]
    assert module_rows[1][-1] == "ok"

    estimator_rows = read_rows(tmp_path / "estimator_diagnostics.csv")
    assert len(estimator_rows) == 2
    assert len(estimator_rows[1]) == len(ESTIMATOR_COLUMNS)


def test_log_vision_and_timing(tmp_path):
    observation = VisionObservation(Pose2D(1.0, 2.0, Rotation2D.from_degrees(90.0)), 0.9, (0.1, 0.2, 0.3))
    with DataCollector(run_dir=str(tmp_path)) as collector:
        collector.log_vision(1.0, observation)
        collector.log_loop_timing(1.0, 7, 0.025, 0.02, True)

    vision = read_rows(tmp_path / "vision_data.csv")[1]
    assert [float(v) for v in vision] == pytest.approx([1.0, 0.9, 1.0, 2.0, 90.0, 0.1, 0.2, 0.3])

    timing = read_rows(tmp_path / "loop_timing.csv")[1]
    assert timing == ["1.0", "7", "0.025", "0.02", "1"]
