"""Data collection and CSV logging for drivetrain telemetry.

This module provides CSV data logging for:
- Pose data (estimated pose, odometry-only pose, gyro yaw, field offset)
- Module data (desired and measured state, absolute angle, distance, health)
- Estimator diagnostics (history length, accepted/discarded fixes, corrections)
- Loop timing (cycle durations and overruns)
- External pose fixes (vision or other absolute sources)
"""

import csv
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from .config import TERM_BLUE, TERM_RESET
from .estimator import VisionObservation
from .kinematics import MODULE_COUNT

POSE_COLUMNS = [
    "timestamp",
    "x",
    "y",
    "heading_deg",
    "odometry_x",
    "odometry_y",
    "gyro_yaw_deg",
    "field_offset_deg",
]
MODULE_COLUMNS = [
    "timestamp",
    "module",
    "desired_speed",
    "desired_deg",
    "velocity",
    "integrated_deg",
    "absolute_deg",
    "position",
    "health",
]
ESTIMATOR_COLUMNS = [
    "timestamp",
    "history_length",
    "pending_observations",
    "observations_accepted",
    "observations_discarded",
    "odometry_dropped",
    "last_correction",
    "drift",
]
TIMING_COLUMNS = ["timestamp", "cycle", "duration", "period", "overrun"]
VISION_COLUMNS = ["timestamp", "capture_timestamp", "x", "y", "heading_deg", "std_x", "std_y", "std_heading"]


class DataCollector:
    """Manages CSV file creation and logging for drivetrain telemetry.

    This class handles all data logging responsibilities:
    - Creates timestamped output directories
    - Initializes CSV files with headers
    - Writes pose, module, estimator and timing data
    - Ensures proper cleanup on shutdown

    Attributes:
        run_dir: Directory path for this run's output files.
        pose_csv_file: File handle for pose data CSV.
        module_csv_file: File handle for per-module data CSV.
        estimator_csv_file: File handle for estimator diagnostics CSV.
        timing_csv_file: File handle for loop timing CSV.
        vision_csv_file: File handle for external pose fixes CSV.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        # CSV file handles
        self.pose_csv_file: Optional[TextIO] = None
        self.pose_csv_writer: Any = None
        self.module_csv_file: Optional[TextIO] = None
        self.module_csv_writer: Any = None
        self.estimator_csv_file: Optional[TextIO] = None
        self.estimator_csv_writer: Any = None
        self.timing_csv_file: Optional[TextIO] = None
        self.timing_csv_writer: Any = None
        self.vision_csv_file: Optional[TextIO] = None
        self.vision_csv_writer: Any = None

        # Determine run directory
        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # Create timestamped directory: results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            results_dir = output_path / "results"
            self.run_dir = results_dir / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        # Define output file paths
        self.pose_output_path: Path = self.run_dir / "pose_data.csv"
        self.module_output_path: Path = self.run_dir / "module_data.csv"
        self.estimator_output_path: Path = self.run_dir / "estimator_diagnostics.csv"
        self.timing_output_path: Path = self.run_dir / "loop_timing.csv"
        self.vision_output_path: Path = self.run_dir / "vision_data.csv"

    def setup(self) -> None:
        """Initialize CSV files with headers.

        Creates and opens all CSV files with appropriate column headers.
        Must be called before writing data.
        """
        self.pose_csv_file, self.pose_csv_writer = self._open(self.pose_output_path, POSE_COLUMNS)
        self.module_csv_file, self.module_csv_writer = self._open(
            self.module_output_path, MODULE_COLUMNS
        )
        self.estimator_csv_file, self.estimator_csv_writer = self._open(
            self.estimator_output_path, ESTIMATOR_COLUMNS
        )
        self.timing_csv_file, self.timing_csv_writer = self._open(
            self.timing_output_path, TIMING_COLUMNS
        )
        self.vision_csv_file, self.vision_csv_writer = self._open(
            self.vision_output_path, VISION_COLUMNS
        )

        print(
            f"{TERM_BLUE}✓ Initialized data collection to results/{self.run_dir.name}/{TERM_RESET}"
        )

    @staticmethod
    def _open(path: Path, columns: list) -> Any:
        handle = open(path, "w", newline="")
        writer = csv.writer(handle)
        writer.writerow(columns)
        handle.flush()
        return handle, writer

    def log_telemetry(self, timestamp: float, telemetry: Dict[str, Any]) -> None:
        """Log one drivetrain telemetry snapshot to the pose, module and estimator CSVs.

        Args:
            timestamp: Current time (seconds).
            telemetry: Dictionary from Drivetrain.get_telemetry().
        """
        self.pose_csv_writer.writerow([timestamp] + [telemetry[key] for key in POSE_COLUMNS[1:]])
        if self.pose_csv_file:
            self.pose_csv_file.flush()

        for i in range(MODULE_COUNT):
            self.module_csv_writer.writerow(
                [
                    timestamp,
                    i,
                    telemetry[f"mod{i}_desired_speed"],
                    telemetry[f"mod{i}_desired_deg"],
                    telemetry[f"mod{i}_velocity"],
                    telemetry[f"mod{i}_integrated_deg"],
                    telemetry[f"mod{i}_absolute_deg"],
                    telemetry[f"mod{i}_position"],
                    telemetry[f"mod{i}_health"],
                ]
            )
        if self.module_csv_file:
            self.module_csv_file.flush()

        self.log_estimator_diagnostics(timestamp, telemetry)

    def log_estimator_diagnostics(self, timestamp: float, diagnostics: Dict[str, Any]) -> None:
        """Log estimator diagnostics to CSV.

        Args:
            timestamp: Current time (seconds).
            diagnostics: Dictionary containing PoseEstimator.get_diagnostics() keys.
        """
        self.estimator_csv_writer.writerow(
            [timestamp] + [diagnostics[key] for key in ESTIMATOR_COLUMNS[1:]]
        )
        if self.estimator_csv_file:
            self.estimator_csv_file.flush()

    def log_loop_timing(
        self, timestamp: float, cycle: int, duration: float, period: float, overrun: bool
    ) -> None:
        """Log one control loop cycle's timing.

        Args:
            timestamp: Cycle start time (seconds).
            cycle: Cycle counter.
            duration: Time the cycle's work took (seconds).
            period: Scheduled period (seconds).
            overrun: Whether the cycle missed its deadline.
        """
        self.timing_csv_writer.writerow([timestamp, cycle, duration, period, int(overrun)])
        if self.timing_csv_file:
            self.timing_csv_file.flush()

    def log_vision(self, timestamp: float, observation: VisionObservation) -> None:
        """Log an external pose fix as it was handed to the estimator.

        Args:
            timestamp: Processing time (seconds).
            observation: The fix, including its capture timestamp.
        """
        self.vision_csv_writer.writerow(
            [
                timestamp,
                observation.timestamp,
                observation.pose.x,
                observation.pose.y,
                observation.pose.heading_degrees,
                *observation.std_devs,
            ]
        )
        if self.vision_csv_file:
            self.vision_csv_file.flush()

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        for handle in (
            self.pose_csv_file,
            self.module_csv_file,
            self.estimator_csv_file,
            self.timing_csv_file,
            self.vision_csv_file,
        ):
            if handle:
                handle.close()

        print(f"{TERM_BLUE}✓ Saved telemetry to results/{self.run_dir.name}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        """Context manager entry point.

        Returns:
            Self reference for use in with statement.
        """
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit point - ensures cleanup is called."""
        self.cleanup()
