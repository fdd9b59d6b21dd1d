"""Planar geometry primitives for the swerve drivetrain.

This module provides the immutable value types every other layer speaks:
- Rotation2D: heading / wheel angle, normalized to (-180°, 180°]
- Translation2D: 2D vector in meters (field or robot frame)
- Pose2D: position + heading on the field
- Twist2D: constant-curvature motion increment (dx, dy, dtheta)
- ChassisVelocity: robot velocity (vx, vy, omega)

Frame convention: +x forward, +y left, angles counter-clockwise positive.
"""

import math
from dataclasses import dataclass, field

TWO_PI = 2.0 * math.pi


def normalize_radians(angle: float) -> float:
    """Wrap an angle in radians into the half-open interval (-pi, pi]."""
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped <= -math.pi:
        wrapped += TWO_PI
    elif wrapped > math.pi:
        wrapped -= TWO_PI
    return wrapped


@dataclass(frozen=True)
class Rotation2D:
    """Planar rotation stored in radians.

    The stored value is always normalized to (-pi, pi], so two rotations
    describing the same heading compare equal.

    Attributes:
        radians: Angle in radians, counter-clockwise positive.
    """

    radians: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "radians", normalize_radians(float(self.radians)))

    @classmethod
    def from_degrees(cls, degrees: float) -> "Rotation2D":
        return cls(math.radians(degrees))

    @classmethod
    def from_vector(cls, x: float, y: float) -> "Rotation2D":
        """Direction of the vector (x, y). The zero vector maps to 0 rad."""
        return cls(math.atan2(y, x))

    @property
    def degrees(self) -> float:
        return math.degrees(self.radians)

    @property
    def cos(self) -> float:
        return math.cos(self.radians)

    @property
    def sin(self) -> float:
        return math.sin(self.radians)

    def rotate_by(self, other: "Rotation2D") -> "Rotation2D":
        return Rotation2D(self.radians + other.radians)

    def __add__(self, other: "Rotation2D") -> "Rotation2D":
        return self.rotate_by(other)

    def __sub__(self, other: "Rotation2D") -> "Rotation2D":
        return Rotation2D(self.radians - other.radians)

    def __neg__(self) -> "Rotation2D":
        return Rotation2D(-self.radians)

    def __mul__(self, scalar: float) -> "Rotation2D":
        return Rotation2D(self.radians * scalar)


@dataclass(frozen=True)
class Translation2D:
    """Planar vector in meters.

    Attributes:
        x: Component along +x (meters).
        y: Component along +y (meters).
    """

    x: float = 0.0
    y: float = 0.0

    @property
    def norm(self) -> float:
        return math.hypot(self.x, self.y)

    @property
    def angle(self) -> Rotation2D:
        return Rotation2D.from_vector(self.x, self.y)

    def rotate_by(self, rotation: Rotation2D) -> "Translation2D":
        """Rotate this vector counter-clockwise about the origin."""
        c, s = rotation.cos, rotation.sin
        return Translation2D(self.x * c - self.y * s, self.x * s + self.y * c)

    def distance(self, other: "Translation2D") -> float:
        return (self - other).norm

    def __add__(self, other: "Translation2D") -> "Translation2D":
        return Translation2D(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Translation2D") -> "Translation2D":
        return Translation2D(self.x - other.x, self.y - other.y)

    def __neg__(self) -> "Translation2D":
        return Translation2D(-self.x, -self.y)

    def __mul__(self, scalar: float) -> "Translation2D":
        return Translation2D(self.x * scalar, self.y * scalar)

    def __truediv__(self, scalar: float) -> "Translation2D":
        return Translation2D(self.x / scalar, self.y / scalar)


@dataclass(frozen=True)
class Twist2D:
    """Motion increment along a constant-curvature arc.

    Attributes:
        dx: Forward displacement in the starting pose's frame (meters).
        dy: Leftward displacement in the starting pose's frame (meters).
        dtheta: Heading change (radians, not normalized).
    """

    dx: float = 0.0
    dy: float = 0.0
    dtheta: float = 0.0

    def __mul__(self, scalar: float) -> "Twist2D":
        return Twist2D(self.dx * scalar, self.dy * scalar, self.dtheta * scalar)


@dataclass(frozen=True)
class Pose2D:
    """Robot position and heading on the field.

    A Pose2D also serves as a rigid transform between two frames, which is
    how `relative_to` and `transform_by` use it.

    Attributes:
        x: Field x position (meters).
        y: Field y position (meters).
        rotation: Heading, normalized to (-180°, 180°].
    """

    x: float = 0.0
    y: float = 0.0
    rotation: Rotation2D = field(default_factory=Rotation2D)

    @classmethod
    def from_translation(cls, translation: Translation2D, rotation: Rotation2D) -> "Pose2D":
        return cls(translation.x, translation.y, rotation)

    @property
    def translation(self) -> Translation2D:
        return Translation2D(self.x, self.y)

    @property
    def heading_degrees(self) -> float:
        return self.rotation.degrees

    def transform_by(self, transform: "Pose2D") -> "Pose2D":
        """Apply a transform expressed in this pose's own frame."""
        moved = self.translation + transform.translation.rotate_by(self.rotation)
        return Pose2D.from_translation(moved, self.rotation + transform.rotation)

    def relative_to(self, other: "Pose2D") -> "Pose2D":
        """Express this pose in the frame of `other`."""
        offset = (self.translation - other.translation).rotate_by(-other.rotation)
        return Pose2D.from_translation(offset, self.rotation - other.rotation)

    def exp(self, twist: Twist2D) -> "Pose2D":
        """Integrate a twist starting from this pose.

        Args:
            twist: Arc increment expressed in this pose's frame.

        Returns:
            The pose reached by following the arc.
        """
        dtheta = twist.dtheta
        sin_theta = math.sin(dtheta)
        cos_theta = math.cos(dtheta)

        # Series expansion near zero keeps the straight-line case exact
        if abs(dtheta) < 1e-9:
            s = 1.0 - dtheta * dtheta / 6.0
            c = 0.5 * dtheta
        else:
            s = sin_theta / dtheta
            c = (1.0 - cos_theta) / dtheta

        step = Pose2D(
            twist.dx * s - twist.dy * c,
            twist.dx * c + twist.dy * s,
            Rotation2D(dtheta),
        )
        return self.transform_by(step)

    def log(self, end: "Pose2D") -> Twist2D:
        """Twist that carries this pose onto `end` along a single arc."""
        transform = end.relative_to(self)
        dtheta = transform.rotation.radians
        half_dtheta = dtheta / 2.0
        cos_minus_one = math.cos(dtheta) - 1.0

        if abs(cos_minus_one) < 1e-9:
            half_theta_by_tan = 1.0 - dtheta * dtheta / 12.0
        else:
            half_theta_by_tan = -(half_dtheta * math.sin(dtheta)) / cos_minus_one

        translation_part = transform.translation.rotate_by(
            Rotation2D.from_vector(half_theta_by_tan, -half_dtheta)
        ) * math.hypot(half_theta_by_tan, half_dtheta)

        return Twist2D(translation_part.x, translation_part.y, dtheta)

    def interpolate(self, end: "Pose2D", fraction: float) -> "Pose2D":
        """Pose a `fraction` of the way along the arc from this pose to `end`.

        Args:
            end: Pose at fraction 1.0.
            fraction: Position along the arc, clamped to [0, 1].
        """
        if fraction <= 0.0:
            return self
        if fraction >= 1.0:
            return end
        return self.exp(self.log(end) * fraction)


@dataclass(frozen=True)
class ChassisVelocity:
    """Velocity of the robot chassis.

    Robot-relative unless constructed through `from_field_relative`, which
    converts a field-frame request into the robot frame.

    Attributes:
        vx: Forward velocity (m/s).
        vy: Leftward velocity (m/s).
        omega: Angular velocity (rad/s), counter-clockwise positive.
    """

    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0

    @classmethod
    def from_field_relative(
        cls, vx: float, vy: float, omega: float, robot_heading: Rotation2D
    ) -> "ChassisVelocity":
        """Convert field-frame velocities into robot-relative velocities.

        Args:
            vx: Velocity along the field +x axis (m/s).
            vy: Velocity along the field +y axis (m/s).
            omega: Angular velocity (rad/s).
            robot_heading: Heading of the robot relative to the field's
                forward reference.

        Returns:
            ChassisVelocity in the robot frame.
        """
        robot_frame = Translation2D(vx, vy).rotate_by(-robot_heading)
        return cls(robot_frame.x, robot_frame.y, omega)

    def discretize(self, dt: float) -> "ChassisVelocity":
        """Second-order correction for a control period of `dt` seconds.

        Returns the velocity whose arc over `dt` lands on the pose that the
        constant (vx, vy, omega) command is meant to reach, which rotates the
        translation ahead of the heading change.
        """
        if dt <= 0.0:
            return self
        target = Pose2D(self.vx * dt, self.vy * dt, Rotation2D(self.omega * dt))
        twist = Pose2D().log(target)
        return ChassisVelocity(twist.dx / dt, twist.dy / dt, twist.dtheta / dt)

    @property
    def linear_speed(self) -> float:
        return math.hypot(self.vx, self.vy)
