"""Configuration parameters for the swerve drivetrain core.

This module centralizes all configuration parameters including:
- Physical drivetrain geometry and actuator limits
- Module motor control gains and simulation model constants
- Pose estimator trust parameters
- Control loop timing
- Network feed and telemetry settings

All parameters are documented with their purpose, units and valid ranges.
"""

from .geometry import Rotation2D, Translation2D

# ============================================================================
# Physical Drivetrain Parameters
# ============================================================================

WHEEL_BASE = 0.5
"""Distance between front and rear module axles (meters)."""

TRACK_WIDTH = 0.5
"""Distance between left and right module contact points (meters)."""

MODULE_OFFSETS = (
    Translation2D(WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),  # 0: front left
    Translation2D(WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),  # 1: front right
    Translation2D(-WHEEL_BASE / 2.0, TRACK_WIDTH / 2.0),  # 2: rear left
    Translation2D(-WHEEL_BASE / 2.0, -TRACK_WIDTH / 2.0),  # 3: rear right
)
"""Module positions relative to the robot's center of rotation (meters).

Ordering is fixed: front left, front right, rear left, rear right. Every
wheel list in the system (states, positions, health) uses this ordering.
"""

MODULE_NAMES = ("front_left", "front_right", "rear_left", "rear_right")
"""Human-readable module names, same ordering as MODULE_OFFSETS."""

ABSOLUTE_ANGLE_OFFSETS = (
    Rotation2D.from_degrees(0.0),
    Rotation2D.from_degrees(0.0),
    Rotation2D.from_degrees(0.0),
    Rotation2D.from_degrees(0.0),
)
"""Absolute steering sensor reading when each wheel points straight forward.

Measured per robot by aligning the wheels and reading the sensors.
"""

ROTATION_CENTER_TOLERANCE = 1e-3
"""Maximum allowed distance between the module centroid and the origin (meters).

Module offsets are measured from the center of rotation; a centroid far from
the origin means the offsets were measured from some other point.
"""

MAX_SPEED = 4.5
"""Maximum attainable wheel speed (m/s). Desaturation target."""

WHEEL_SPEED_EPSILON = 1e-6
"""Wheel speed below which the previous wheel angle is retained (m/s).

Prevents the steering from chattering when the commanded vector vanishes.
"""

INVERT_GYRO = False
"""Flip the sign of the gyro yaw reading.

Set when the IMU is mounted upside down (yaw increases clockwise).
"""

LOCK_WHEEL_SPEED = 0.0
"""Drive speed applied while the wheels are held in the X stance (m/s)."""


# ============================================================================
# Module Motor Control (Drive Velocity + Steer Angle)
# ============================================================================

NOMINAL_VOLTAGE = 12.0
"""Battery voltage the gains and open-loop scaling assume (volts)."""

DRIVE_KP = 0.8
"""Drive velocity proportional gain (V per m/s of error)."""

DRIVE_KI = 0.0
"""Drive velocity integral gain (V per m of accumulated error)."""

DRIVE_KD = 0.0
"""Drive velocity derivative gain (V per m/s²)."""

DRIVE_KS = 0.15
"""Drive static friction feedforward (volts)."""

DRIVE_KV = 2.5
"""Drive velocity feedforward (V per m/s).

NOMINAL_VOLTAGE / DRIVE_KV should exceed MAX_SPEED, otherwise the closed
loop cannot reach the desaturation limit.
"""

DRIVE_KA = 0.3
"""Drive acceleration feedforward (V per m/s²)."""

STEER_KP = 6.0
"""Steering angle proportional gain (V per rad of error)."""

STEER_KI = 0.0
"""Steering angle integral gain (V per rad·s)."""

STEER_KD = 0.05
"""Steering angle derivative gain (V per rad/s)."""

STEER_KV = 0.5
"""Steering motor back-EMF constant used by the simulation (V per rad/s)."""

STEER_KA = 0.01
"""Steering motor inertia constant used by the simulation (V per rad/s²)."""

INTEGRAL_LIMIT = 0.5
"""Anti-windup clamp for the PID integral terms (controller units)."""


# ============================================================================
# Pose Estimator Parameters
# ============================================================================

POSE_HISTORY_SECONDS = 2.0
"""Retention window of the odometry history buffer (seconds).

External pose fixes timestamped earlier than the newest odometry sample minus
this window cannot be reconciled and are discarded.
"""

ODOMETRY_STD_DEVS = (0.1, 0.1, 0.1)
"""Odometry trust as standard deviations (x meters, y meters, heading radians).

Together with the per-observation standard deviations this sets the blend
gain k = q / (q + r) for each position axis.
"""

VISION_STD_DEVS = (0.9, 0.9, 0.9)
"""Default external pose trust when a fix arrives without its own (x, y, heading)."""


# ============================================================================
# Control Loop
# ============================================================================

LOOP_PERIOD_SECONDS = 0.02
"""Fixed control loop period (seconds). 50 Hz."""

SECOND_ORDER_KINEMATICS = False
"""Apply the second-order (discretized) correction before desaturation."""

COMMAND_TIMEOUT_SECONDS = 0.5
"""Age after which the last received drive command is replaced by a stop."""


# ============================================================================
# Terminal Colors
# ============================================================================

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for status messages."""

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for warnings shown to the operator."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# Plot Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary color - estimated pose and measured values."""

PLOT_BLUE = "#2374f7"
"""Secondary color - odometry-only pose and commanded values."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides, grids, and secondary elements."""

PLOT_YELLOW_ORANGE = "#ffa726"
"""Accent color for external pose fixes and warnings."""


# ============================================================================
# WebSocket Feed Configuration
# ============================================================================

WS_URI = "ws://localhost:8765"
"""WebSocket URI of the driver station / vision feed."""

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""
