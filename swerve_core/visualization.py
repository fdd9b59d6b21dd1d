"""
Visualization utilities for drivetrain telemetry.

This module loads the CSV files written by DataCollector and plots the
estimated trajectory against odometry and external pose fixes, per-module
commanded vs measured states, and control loop timing.
"""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .kinematics import MODULE_COUNT
from .plot_styles import (
    MODULE_COLORS,
    PLOT_BLUE,
    PLOT_ORANGE,
    PLOT_TAUPE,
    PLOT_YELLOW_ORANGE,
    TIME_CMAP,
    add_legend,
    figure_grid,
    load_csv_to_dict,
    save_figure,
    style_axis,
)


def plot_trajectory(
    pose_data: Dict[str, np.ndarray],
    vision_data: Optional[Dict[str, np.ndarray]] = None,
    title: str = "Trajectory",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot estimated pose, odometry-only pose and external fixes (x vs y).

    Args:
        pose_data: Arrays from pose_data.csv.
        vision_data: Arrays from vision_data.csv (optional).
        title: Plot title.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, ax = plt.subplots(figsize=(10, 8))

    x = pose_data["x"]
    y = pose_data["y"]
    timestamps = pose_data["timestamp"]
    valid_mask = ~(np.isnan(x) | np.isnan(y))
    x, y, timestamps = x[valid_mask], y[valid_mask], timestamps[valid_mask]

    if len(timestamps) > 0:
        ax.plot(
            pose_data["odometry_x"],
            pose_data["odometry_y"],
            "--",
            color=PLOT_BLUE,
            linewidth=1.5,
            alpha=0.8,
            label="Odometry only",
            zorder=1,
        )
        ax.plot(x, y, "-", color=PLOT_ORANGE, linewidth=1.5, alpha=0.6, label="Estimate", zorder=2)

        scatter = ax.scatter(
            x,
            y,
            c=timestamps - timestamps[0],
            cmap=TIME_CMAP,
            s=12,
            alpha=0.8,
            zorder=3,
        )
        plt.colorbar(scatter, ax=ax, label="Time (s)")

        ax.plot(x[0], y[0], "o", color=PLOT_BLUE, markersize=8, label="Start", zorder=5,
                markeredgecolor="black", markeredgewidth=1.0)
        ax.plot(x[-1], y[-1], "o", color=PLOT_ORANGE, markersize=8, label="End", zorder=5,
                markeredgecolor="black", markeredgewidth=1.0)

    if vision_data is not None and len(vision_data.get("x", [])) > 0:
        ax.scatter(
            vision_data["x"],
            vision_data["y"],
            marker="x",
            color=PLOT_YELLOW_ORANGE,
            s=40,
            label="External fixes",
            zorder=4,
        )

    style_axis(ax, title=title, xlabel="X Position (m)", ylabel="Y Position (m)")
    ax.set_aspect("equal", adjustable="datalim")
    add_legend(ax)
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path)

    return fig


def plot_module_data(
    module_data: Dict[str, np.ndarray], title: str = "Modules", save_path: Optional[Path] = None
) -> Figure:
    """Plot desired vs measured speed and angle for each module.

    Args:
        module_data: Arrays from module_data.csv.
        title: Figure title.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, axes = figure_grid(2, 1, figsize=(12, 8), title=title)
    speed_ax, angle_ax = axes[0][0], axes[1][0]

    timestamps = module_data["timestamp"]
    t0 = np.nanmin(timestamps) if len(timestamps) > 0 else 0.0

    for i in range(MODULE_COUNT):
        mask = module_data["module"] == i
        if not np.any(mask):
            continue
        t = timestamps[mask] - t0
        color = MODULE_COLORS[i]
        speed_ax.plot(t, module_data["velocity"][mask], color=color, label=f"Module {i}")
        speed_ax.plot(t, module_data["desired_speed"][mask], "--", color=color, alpha=0.6)
        angle_ax.plot(t, module_data["integrated_deg"][mask], color=color, label=f"Module {i}")
        angle_ax.plot(t, module_data["desired_deg"][mask], "--", color=color, alpha=0.6)

    style_axis(speed_ax, title="Wheel speed (dashed: desired)", xlabel="Time (s)", ylabel="Speed (m/s)")
    style_axis(angle_ax, title="Steering angle (dashed: desired)", xlabel="Time (s)", ylabel="Angle (°)")
    add_legend(speed_ax, loc="upper right")
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path)

    return fig


def plot_loop_timing(
    timing_data: Dict[str, np.ndarray], title: str = "Loop Timing", save_path: Optional[Path] = None
) -> Figure:
    """Plot per-cycle duration against the scheduled period.

    Args:
        timing_data: Arrays from loop_timing.csv.
        title: Plot title.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, ax = plt.subplots(figsize=(12, 4))

    cycles = timing_data["cycle"]
    durations_ms = timing_data["duration"] * 1000.0
    period_ms = timing_data["period"] * 1000.0
    overruns = timing_data["overrun"] > 0

    ax.plot(cycles, durations_ms, color=PLOT_ORANGE, linewidth=1.0, label="Cycle duration")
    if len(period_ms) > 0:
        ax.axhline(period_ms[0], color=PLOT_TAUPE, linestyle="--", label="Period")
    if np.any(overruns):
        ax.scatter(cycles[overruns], durations_ms[overruns], color=PLOT_YELLOW_ORANGE,
                   zorder=3, label=f"Overruns ({int(np.sum(overruns))})")

    style_axis(ax, title=title, xlabel="Cycle", ylabel="Duration (ms)")
    add_legend(ax, loc="upper right")
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path)

    return fig


def plot_run_summary(run_dir: Path, save_plots: bool = False, show_plots: bool = True) -> None:
    """Generate summary plots for a complete run.

    Args:
        run_dir: Directory containing the DataCollector CSV files.
        save_plots: If True, save plots to run directory.
        show_plots: If True, display plots interactively.

    Raises:
        FileNotFoundError: If pose_data.csv is not found.
    """
    pose_data = load_csv_to_dict(run_dir / "pose_data.csv")

    vision_path = run_dir / "vision_data.csv"
    vision_data = load_csv_to_dict(vision_path) if vision_path.exists() else None

    run_name = run_dir.name
    figures = [
        plot_trajectory(
            pose_data,
            vision_data,
            title=f"Trajectory - {run_name}",
            save_path=run_dir / "trajectory.png" if save_plots else None,
        )
    ]

    module_path = run_dir / "module_data.csv"
    if module_path.exists():
        figures.append(
            plot_module_data(
                load_csv_to_dict(module_path),
                title=f"Modules - {run_name}",
                save_path=run_dir / "modules.png" if save_plots else None,
            )
        )

    timing_path = run_dir / "loop_timing.csv"
    if timing_path.exists():
        figures.append(
            plot_loop_timing(
                load_csv_to_dict(timing_path),
                title=f"Loop Timing - {run_name}",
                save_path=run_dir / "loop_timing.png" if save_plots else None,
            )
        )

    if show_plots:
        plt.show()
    else:
        for fig in figures:
            plt.close(fig)
