"""
Swerve drive kinematic model.

This module provides the forward and inverse kinematics for a four-module
swerve drive, converting a desired chassis velocity into individual wheel
(speed, angle) states and back.

For a module mounted at (x_i, y_i) relative to the center of rotation, the
wheel velocity vector is:
    v_ix = vx - omega * y_i
    v_iy = vy + omega * x_i

Stacking the four modules gives an 8x3 linear system; the inverse mapping
(used by odometry) is its least-squares solution.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .config import ROTATION_CENTER_TOLERANCE, WHEEL_SPEED_EPSILON
from .geometry import ChassisVelocity, Rotation2D, Translation2D, Twist2D

MODULE_COUNT = 4


class ConfigurationError(ValueError):
    """Drivetrain configuration is inconsistent and the robot must not start."""


@dataclass(frozen=True)
class WheelState:
    """Commanded or measured state of one swerve module.

    Attributes:
        speed: Signed wheel speed (m/s). Negative drives against `angle`.
        angle: Steering angle relative to robot forward.
    """

    speed: float = 0.0
    angle: Rotation2D = field(default_factory=Rotation2D)

    def optimize(self, current_angle: Rotation2D) -> "WheelState":
        """Equivalent state that never steers more than 90° from `current_angle`.

        Reversing the drive direction and flipping the angle by 180° reaches
        the same wheel velocity vector with at most a quarter turn.
        """
        delta = self.angle - current_angle
        if abs(delta.radians) > np.pi / 2.0:
            return WheelState(-self.speed, self.angle + Rotation2D(np.pi))
        return self


@dataclass(frozen=True)
class WheelPosition:
    """Cumulative odometry reading of one swerve module.

    Attributes:
        distance: Signed distance driven since the last recalibration (meters).
        angle: Steering angle at the time of the reading.
    """

    distance: float = 0.0
    angle: Rotation2D = field(default_factory=Rotation2D)


def validate_module_offsets(offsets: Sequence[Translation2D]) -> None:
    """Check that module offsets describe a usable four-module drivetrain.

    Args:
        offsets: Module positions relative to the center of rotation (meters).

    Raises:
        ConfigurationError: If there are not exactly four offsets, any offset
            sits on the rotation center, two modules coincide, or the
            offsets' centroid is away from the origin.
    """
    if len(offsets) != MODULE_COUNT:
        raise ConfigurationError(
            f"Expected {MODULE_COUNT} module offsets, got {len(offsets)}"
        )

    for i, offset in enumerate(offsets):
        if offset.norm < ROTATION_CENTER_TOLERANCE:
            raise ConfigurationError(f"Module {i} sits on the rotation center: {offset}")
        for j in range(i + 1, len(offsets)):
            if offset.distance(offsets[j]) < ROTATION_CENTER_TOLERANCE:
                raise ConfigurationError(f"Modules {i} and {j} share the same offset: {offset}")

    centroid_x = sum(o.x for o in offsets) / len(offsets)
    centroid_y = sum(o.y for o in offsets) / len(offsets)
    if np.hypot(centroid_x, centroid_y) > ROTATION_CENTER_TOLERANCE:
        raise ConfigurationError(
            f"Module offsets are not centered on the rotation center "
            f"(centroid at {centroid_x:.4f}, {centroid_y:.4f} m)"
        )


class SwerveKinematics:
    """Bidirectional mapping between chassis velocity and wheel states.

    The instance remembers the last commanded angle of every module so that
    a zero-speed command keeps the wheels pointed where they were.

    Attributes:
        module_offsets: Module positions relative to the rotation center.
    """

    def __init__(self, module_offsets: Sequence[Translation2D]):
        """Initialize the kinematics model.

        Args:
            module_offsets: Four module positions (front left, front right,
                rear left, rear right) relative to the rotation center.

        Raises:
            ConfigurationError: If the offsets fail validation.
        """
        validate_module_offsets(module_offsets)
        self.module_offsets: List[Translation2D] = list(module_offsets)

        rows = []
        for offset in self.module_offsets:
            rows.append([1.0, 0.0, -offset.y])
            rows.append([0.0, 1.0, offset.x])
        self._forward_matrix = np.array(rows)
        self._inverse_matrix = np.linalg.pinv(self._forward_matrix)

        self._last_angles: List[Rotation2D] = [Rotation2D()] * len(self.module_offsets)

    def reset_headings(self, angles: Sequence[Rotation2D]) -> None:
        """Set the angles reported for zero-speed commands."""
        if len(angles) != len(self.module_offsets):
            raise ValueError(f"Expected {len(self.module_offsets)} angles, got {len(angles)}")
        self._last_angles = list(angles)

    def to_wheel_states(
        self, chassis: ChassisVelocity, second_order_dt: Optional[float] = None
    ) -> List[WheelState]:
        """Compute wheel states from a robot-relative chassis velocity.

        Args:
            chassis: Desired robot-relative velocity.
            second_order_dt: Control period (seconds). When given, the
                chassis velocity is discretized over this period before the
                first-order mapping, anticipating the heading change.

        Returns:
            List of four WheelStates, module order as `module_offsets`.
        """
        if second_order_dt is not None:
            chassis = chassis.discretize(second_order_dt)

        wheel_vectors = self._forward_matrix @ np.array([chassis.vx, chassis.vy, chassis.omega])

        states = []
        for i in range(len(self.module_offsets)):
            vx = float(wheel_vectors[2 * i])
            vy = float(wheel_vectors[2 * i + 1])
            speed = float(np.hypot(vx, vy))

            if speed < WHEEL_SPEED_EPSILON:
                # Hold the last angle instead of snapping to atan2(0, 0)
                states.append(WheelState(0.0, self._last_angles[i]))
            else:
                angle = Rotation2D.from_vector(vx, vy)
                self._last_angles[i] = angle
                states.append(WheelState(speed, angle))

        return states

    def to_chassis_velocity(self, states: Sequence[WheelState]) -> ChassisVelocity:
        """Least-squares chassis velocity that best explains the wheel states."""
        self._check_count(states)
        wheel_vectors = []
        for state in states:
            wheel_vectors.append(state.speed * state.angle.cos)
            wheel_vectors.append(state.speed * state.angle.sin)

        vx, vy, omega = self._inverse_matrix @ np.array(wheel_vectors)
        return ChassisVelocity(float(vx), float(vy), float(omega))

    def to_twist(
        self, start: Sequence[WheelPosition], end: Sequence[WheelPosition]
    ) -> Twist2D:
        """Chassis motion between two sets of wheel positions.

        Each module's distance delta is taken along its end angle; the four
        delta vectors are then solved the same way as velocities.

        Args:
            start: Wheel positions at the beginning of the interval.
            end: Wheel positions at the end of the interval.

        Returns:
            Twist2D in the robot frame at the start of the interval.
        """
        self._check_count(start)
        self._check_count(end)
        deltas = []
        for before, after in zip(start, end):
            distance = after.distance - before.distance
            deltas.append(distance * after.angle.cos)
            deltas.append(distance * after.angle.sin)

        dx, dy, dtheta = self._inverse_matrix @ np.array(deltas)
        return Twist2D(float(dx), float(dy), float(dtheta))

    def _check_count(self, items: Sequence) -> None:
        if len(items) != len(self.module_offsets):
            raise ValueError(f"Expected {len(self.module_offsets)} modules, got {len(items)}")


def desaturate(states: Sequence[WheelState], max_speed: float) -> List[WheelState]:
    """Scale wheel speeds so none exceeds the attainable maximum.

    All speeds are scaled by the same factor, which keeps the commanded
    motion's shape; angles are never modified.

    Args:
        states: Wheel states to limit.
        max_speed: Maximum attainable wheel speed (m/s), must be positive.

    Returns:
        New list of wheel states. Unchanged values if the fastest wheel is
        already within `max_speed` or every wheel is stopped.

    Raises:
        ValueError: If max_speed is not positive.

    Example:
        >>> limited = desaturate(states, max_speed=4.0)
        >>> # speeds [6, 3, 2, 1] become [4, 2, 1.333, 0.667]
    """
    if max_speed <= 0.0:
        raise ValueError(f"max_speed must be positive, got {max_speed}")

    fastest = max((abs(state.speed) for state in states), default=0.0)
    if fastest <= max_speed or fastest == 0.0:
        return list(states)

    scale = max_speed / fastest
    return [WheelState(state.speed * scale, state.angle) for state in states]
