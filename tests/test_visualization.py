import logging

import matplotlib.pyplot as plt
import pytest

from swerve_core import plot_results
from swerve_core.control_loop import ControlLoop, DriveCommand
from swerve_core.data_collector import DataCollector
from swerve_core.estimator import VisionObservation
from swerve_core.geometry import ChassisVelocity, Pose2D
from swerve_core.plot_styles import load_csv_to_dict
from swerve_core.visualization import plot_run_summary, plot_trajectory


@pytest.fixture
def run_dir(tmp_path, sim_drivetrain, clock):
    def command():
        clock.advance(0.01)
        return DriveCommand(ChassisVelocity(1.0, 0.5, 0.2))

    directory = tmp_path / "results" / "run_20260101_000000"
    with DataCollector(run_dir=str(directory)) as collector:
        loop = ControlLoop(sim_drivetrain, command, period=0.02, collector=collector, clock=clock)
        loop.mailbox.post(VisionObservation(Pose2D(0.0, 0.0), 0.0))
        loop.run(max_cycles=10)
    return directory


def test_load_csv_to_dict(run_dir):
    data = load_csv_to_dict(run_dir / "module_data.csv")
    assert data["module"].shape == (40,)
    # Health is text, loaded as NaN
    assert all(value != value for value in data["health"])


def test_load_missing_csv(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_csv_to_dict(tmp_path / "missing.csv")


def test_plot_trajectory_returns_figure(run_dir):
    fig = plot_trajectory(load_csv_to_dict(run_dir / "pose_data.csv"))
    assert fig.axes
    plt.close(fig)


def test_plot_run_summary_saves_pngs(run_dir):
    plot_run_summary(run_dir, save_plots=True, show_plots=False)
    for name in ("trajectory.png", "modules.png", "loop_timing.png"):
        assert (run_dir / name).exists()


def test_plot_results_cli(run_dir, caplog):
    results_dir = run_dir.parent
    assert plot_results.find_latest_run(results_dir) == run_dir

    with caplog.at_level(logging.INFO):
        plot_results.main(["--results-dir", str(results_dir), "--list"])
    assert any(run_dir.name in r.getMessage() for r in caplog.records)

    plot_results.main(["--results-dir", str(results_dir), "--save", "--no-show"])
    assert (run_dir / "trajectory.png").exists()


def test_plot_results_missing_run(tmp_path):
    with pytest.raises(SystemExit):
        plot_results.main(["--results-dir", str(tmp_path), "--no-show"])
