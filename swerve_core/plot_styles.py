"""Shared plotting utilities and styles for drivetrain telemetry plots.

This module provides:
- Color scheme and colormap
- CSV data loading
- Common plot styling functions

All visualization modules should import from this module to ensure consistency.
"""

import csv
from pathlib import Path
from typing import Dict, List, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap

from .config import PLOT_BLUE, PLOT_ORANGE, PLOT_TAUPE, PLOT_YELLOW_ORANGE

# ============================================================================
# Color Scheme and Colormaps
# ============================================================================

__all__ = [
    "PLOT_ORANGE",
    "PLOT_BLUE",
    "PLOT_TAUPE",
    "PLOT_YELLOW_ORANGE",
    "MODULE_COLORS",
    "TIME_CMAP",
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
    "save_figure",
]

TIME_CMAP = LinearSegmentedColormap.from_list("swerve_time", [PLOT_ORANGE, PLOT_BLUE])
"""Colormap for time-coloured trajectories (start orange, end blue)."""

MODULE_COLORS = (PLOT_ORANGE, PLOT_BLUE, PLOT_YELLOW_ORANGE, PLOT_TAUPE)
"""One color per module, front left to rear right."""


# ============================================================================
# CSV Data Loading
# ============================================================================


def load_csv_to_dict(csv_path: Path) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Automatically converts numeric values to floats. Non-numeric values
    become NaN.

    Args:
        csv_path: Path to CSV file.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.

    Example:
        >>> data = load_csv_to_dict(Path("pose_data.csv"))
        >>> print(data['x'].shape)
        (500,)
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        data: Dict[str, List[float]] = {name: [] for name in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {key: np.array(values) for key, values in data.items()}


# ============================================================================
# Plot Styling Functions
# ============================================================================


def style_axis(ax: Axes, title: str = "", xlabel: str = "", ylabel: str = "", grid: bool = True) -> None:
    """Apply consistent styling to a matplotlib axis.

    Args:
        ax: Matplotlib axis to style.
        title: Plot title (optional).
        xlabel: X-axis label (optional).
        ylabel: Y-axis label (optional).
        grid: Whether to show grid lines (default: True).
    """
    if title:
        ax.set_title(title, fontweight="bold")
    if xlabel:
        ax.set_xlabel(xlabel)
    if ylabel:
        ax.set_ylabel(ylabel)
    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)
    for spine in ax.spines.values():
        spine.set_edgecolor(PLOT_TAUPE)


def add_legend(ax: Axes, loc: str = "best", **kwargs) -> None:
    """Add a legend with the shared frame styling.

    Args:
        ax: Matplotlib axis to add legend to.
        loc: Legend location (default: "best").
        **kwargs: Additional keyword arguments passed to ax.legend().
    """
    legend_kwargs = {
        "loc": loc,
        "framealpha": 0.9,
        "edgecolor": PLOT_TAUPE,
    }
    legend_kwargs.update(kwargs)
    ax.legend(**legend_kwargs)


def save_figure(
    fig: plt.Figure, filepath: Path, dpi: int = 150, bbox_inches: str = "tight"
) -> None:
    """Save figure with consistent settings.

    Args:
        fig: Matplotlib figure to save.
        filepath: Path where to save the figure.
        dpi: Resolution in dots per inch (default: 150).
        bbox_inches: Bounding box setting (default: "tight").
    """
    fig.savefig(filepath, dpi=dpi, bbox_inches=bbox_inches)
    print(f"Saved figure to {filepath}")


def figure_grid(rows: int, cols: int, figsize: Tuple[float, float] = (12, 8), title: str = ""):
    """Create a figure with a grid of axes and an optional bold suptitle."""
    fig, axes = plt.subplots(rows, cols, figsize=figsize, squeeze=False)
    if title:
        fig.suptitle(title, fontsize=14, fontweight="bold")
    return fig, axes
