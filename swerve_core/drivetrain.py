"""
Drivetrain facade.

The Drivetrain owns the four modules, the gyro and exactly one pose
estimator. Each control tick runs one straight-line pipeline:

    modules/gyro periodic → wheel positions + yaw → estimator
    command → kinematics → desaturation → module targets

Commands are only recorded on the modules; they take effect on the next
`periodic` call, which is the same for every module backend.
"""

import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from .component_modes import ComponentMode
from .config import (
    LOCK_WHEEL_SPEED,
    LOOP_PERIOD_SECONDS,
    MAX_SPEED,
    MODULE_NAMES,
    MODULE_OFFSETS,
    ODOMETRY_STD_DEVS,
    POSE_HISTORY_SECONDS,
    TERM_ORANGE,
    TERM_RESET,
)
from .estimator import OdometryObservation, PoseEstimator, VisionObservation
from .geometry import ChassisVelocity, Pose2D, Rotation2D
from .gyro import Gyro, ImuIO, create_gyro
from .kinematics import (
    MODULE_COUNT,
    ConfigurationError,
    SwerveKinematics,
    WheelPosition,
    WheelState,
    desaturate,
)
from .module import ModuleHealth, ModuleIO, SwerveModule, create_modules

# Wheels-in stance: each wheel perpendicular to its diagonal so the robot resists pushing
LOCK_ANGLES = (
    Rotation2D.from_degrees(45.0),
    Rotation2D.from_degrees(135.0),
    Rotation2D.from_degrees(-45.0),
    Rotation2D.from_degrees(-135.0),
)


class Drivetrain:
    """Swerve drivetrain: command dispatch, odometry and pose estimation.

    Attributes:
        modules: The four modules, front left, front right, rear left, rear right.
        gyro: Yaw sensor, ground truth for heading.
        kinematics: Chassis/wheel mapping built from the module offsets.
        estimator: The drivetrain's pose estimator.
        max_speed: Desaturation limit (m/s).
        field_offset: Gyro yaw treated as "forward" for field-relative driving.
        second_order_period: Discretization period for the second-order
            correction, or None for first-order kinematics.
        use_vision: Whether external pose fixes are fused.
    """

    def __init__(
        self,
        modules: Sequence[SwerveModule],
        gyro: Gyro,
        kinematics: Optional[SwerveKinematics] = None,
        max_speed: float = MAX_SPEED,
        clock: Callable[[], float] = time.monotonic,
        second_order_period: Optional[float] = None,
        use_vision: bool = True,
        initial_pose: Pose2D = Pose2D(),
        odometry_std_devs: Sequence[float] = ODOMETRY_STD_DEVS,
        history_seconds: float = POSE_HISTORY_SECONDS,
    ) -> None:
        """Initialize the drivetrain.

        Args:
            modules: Four modules in front left, front right, rear left, rear right order.
            gyro: Yaw sensor.
            kinematics: Kinematics model, default built from config.MODULE_OFFSETS.
            max_speed: Maximum attainable wheel speed (m/s).
            clock: Time source for odometry timestamps (seconds).
            second_order_period: Control period used by the second-order
                correction; None disables it.
            use_vision: Fuse external pose fixes (False: odometry only).
            initial_pose: Starting field pose.
            odometry_std_devs: Odometry trust for the estimator.
            history_seconds: Estimator retention window (seconds).

        Raises:
            ConfigurationError: If the module count, offsets or max speed are invalid.
        """
        if len(modules) != MODULE_COUNT:
            raise ConfigurationError(f"Expected {MODULE_COUNT} modules, got {len(modules)}")
        if max_speed <= 0.0:
            raise ConfigurationError(f"max_speed must be positive, got {max_speed}")

        self.modules: List[SwerveModule] = list(modules)
        self.gyro = gyro
        self.kinematics = kinematics if kinematics is not None else SwerveKinematics(MODULE_OFFSETS)
        self.max_speed = max_speed
        self.clock = clock
        self.second_order_period = second_order_period
        self.use_vision = use_vision

        self.field_offset = gyro.get_yaw()

        self.estimator = PoseEstimator(
            self.kinematics,
            gyro.get_yaw(),
            self.get_wheel_positions(),
            initial_pose=initial_pose,
            timestamp=self.clock(),
            odometry_std_devs=odometry_std_devs,
            history_seconds=history_seconds,
        )

        self._module_health: List[ModuleHealth] = [module.health for module in self.modules]
        self._gyro_health = gyro.health

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def drive(
        self,
        chassis: ChassisVelocity,
        field_relative: bool = True,
        open_loop: bool = False,
    ) -> List[WheelState]:
        """Command a chassis velocity.

        Args:
            chassis: Desired velocity. With `field_relative`, vx/vy are along
                the field axes defined by the field offset.
            field_relative: Interpret vx/vy in the field frame.
            open_loop: Drive motors proportionally instead of velocity-controlled.

        A velocity with a NaN or infinite component is treated as a stop.

        Returns:
            The desaturated wheel states sent to the modules.
        """
        if not all(math.isfinite(v) for v in (chassis.vx, chassis.vy, chassis.omega)):
            logging.warning(f"{TERM_ORANGE}Non-finite chassis velocity {chassis}, stopping{TERM_RESET}")
            chassis = ChassisVelocity()
            field_relative = False
            open_loop = False

        if field_relative:
            chassis = ChassisVelocity.from_field_relative(
                chassis.vx, chassis.vy, chassis.omega, self.get_field_heading()
            )

        states = self.kinematics.to_wheel_states(chassis, self.second_order_period)
        states = desaturate(states, self.max_speed)
        self._dispatch(states, open_loop)
        return states

    def set_module_states(self, states: Sequence[WheelState]) -> List[WheelState]:
        """Command wheel states directly, bypassing kinematics (closed loop).

        A state with a NaN or infinite speed or angle stops the drivetrain instead.

        Raises:
            ValueError: If not exactly four states are given.
        """
        if len(states) != MODULE_COUNT:
            raise ValueError(f"Expected {MODULE_COUNT} wheel states, got {len(states)}")
        if not all(math.isfinite(s.speed) and math.isfinite(s.angle.radians) for s in states):
            logging.warning(f"{TERM_ORANGE}Non-finite wheel states {list(states)}, stopping{TERM_RESET}")
            return self.drive(ChassisVelocity(), field_relative=False)
        limited = desaturate(states, self.max_speed)
        self._dispatch(limited, open_loop=False)
        return limited

    def stop(self) -> None:
        """Zero every wheel speed, keeping the wheels where they point."""
        self.drive(ChassisVelocity(), field_relative=False, open_loop=False)

    def lock_wheels(self) -> None:
        """Turn the wheels into an X so the robot resists being pushed."""
        states = [WheelState(LOCK_WHEEL_SPEED, angle) for angle in LOCK_ANGLES]
        self.kinematics.reset_headings(LOCK_ANGLES)
        self._dispatch(states, open_loop=False)

    def _dispatch(self, states: Sequence[WheelState], open_loop: bool) -> None:
        for module, state in zip(self.modules, states):
            module.set_desired_state(state, open_loop)

    # ------------------------------------------------------------------
    # Periodic update
    # ------------------------------------------------------------------

    def periodic(self, dt: float = LOOP_PERIOD_SECONDS) -> Pose2D:
        """Run one tick: refresh modules and gyro, then update odometry.

        Args:
            dt: Time since the previous tick (seconds).

        Returns:
            The updated estimated pose.
        """
        for module in self.modules:
            module.periodic(dt)
        self.gyro.periodic(dt)

        self._log_health_changes()

        observation = OdometryObservation(
            tuple(self.get_wheel_positions()),
            self.gyro.get_yaw(),
            self.clock(),
        )
        return self.estimator.add_odometry_observation(observation)

    def _log_health_changes(self) -> None:
        for i, module in enumerate(self.modules):
            if module.health is not self._module_health[i]:
                message = (
                    f"Module {i} ({MODULE_NAMES[i]}): health "
                    f"{self._module_health[i].value} → {module.health.value}"
                )
                if module.health is ModuleHealth.OK:
                    logging.info(message)
                else:
                    logging.warning(f"{TERM_ORANGE}{message}{TERM_RESET}")
                self._module_health[i] = module.health

        if self.gyro.health is not self._gyro_health:
            message = f"Gyro: health {self._gyro_health.value} → {self.gyro.health.value}"
            if self.gyro.health is ModuleHealth.OK:
                logging.info(message)
            else:
                logging.warning(f"{TERM_ORANGE}{message}{TERM_RESET}")
            self._gyro_health = self.gyro.health

    # ------------------------------------------------------------------
    # Pose and recalibration
    # ------------------------------------------------------------------

    def get_pose(self) -> Pose2D:
        return self.estimator.get_estimated_pose()

    def reset_pose(self, pose: Pose2D) -> None:
        """Declare the robot to be at `pose`; estimator history is discarded."""
        self.estimator.reset_pose(pose, self.gyro.get_yaw(), self.get_wheel_positions(), self.clock())
        logging.info(f"Pose reset to x={pose.x:.3f}, y={pose.y:.3f}, heading={pose.heading_degrees:.1f}°")

    def add_vision_observation(self, observation: VisionObservation) -> Pose2D:
        """Fuse an external pose fix (ignored when vision is disabled)."""
        if not self.use_vision:
            return self.get_pose()
        return self.estimator.add_vision_observation(observation)

    def reset_heading_offset(self) -> None:
        """Make the robot's current heading "forward" for field-relative driving.

        Does not touch the estimator.
        """
        self.field_offset = self.gyro.get_yaw()
        logging.info(f"Field offset set to {self.field_offset.degrees:.1f}°")

    def zero_heading(self) -> None:
        """Re-zero the gyro and the field offset.

        The estimator is reseeded at the same position with zero heading so
        its heading stays consistent with the new gyro reference.
        """
        pose = self.get_pose()
        self.gyro.zero_yaw()
        self.field_offset = Rotation2D()
        self.estimator.reset_pose(
            Pose2D(pose.x, pose.y, Rotation2D()),
            self.gyro.get_yaw(),
            self.get_wheel_positions(),
            self.clock(),
        )
        logging.info("Gyro heading zeroed")

    def reset_wheel_distances(self) -> None:
        """Zero every module's drive distance.

        The estimator adopts the zeroed distances as its new odometry
        baseline, so the pose does not jump.
        """
        for module in self.modules:
            module.reset_position()
        self.estimator.reset_wheel_positions(self.get_wheel_positions())
        logging.info("Wheel distances reset")

    def get_yaw(self) -> Rotation2D:
        return self.gyro.get_yaw()

    def get_field_heading(self) -> Rotation2D:
        """Gyro yaw minus the field offset, the frame of field-relative commands."""
        return self.gyro.get_yaw() - self.field_offset

    # ------------------------------------------------------------------
    # Module readings
    # ------------------------------------------------------------------

    def get_wheel_states(self) -> List[WheelState]:
        return [module.get_measured_state() for module in self.modules]

    def get_wheel_positions(self) -> List[WheelPosition]:
        return [module.get_measured_position() for module in self.modules]

    def get_module_health(self) -> List[ModuleHealth]:
        return [module.health for module in self.modules]

    def get_telemetry(self) -> Dict[str, Any]:
        """Flat snapshot of pose, heading, modules and estimator for dashboards/logging.

        Returns:
            Dictionary with pose (x, y, heading_deg), gyro yaw, field offset,
            yaw minus offset, per-module absolute angle, integrated angle,
            velocity, position and health, plus estimator diagnostics.
        """
        pose = self.get_pose()
        odometry = self.estimator.get_odometry_pose()
        yaw = self.get_yaw()

        telemetry: Dict[str, Any] = {
            "x": pose.x,
            "y": pose.y,
            "heading_deg": pose.heading_degrees,
            "odometry_x": odometry.x,
            "odometry_y": odometry.y,
            "gyro_yaw_deg": yaw.degrees,
            "gyro_rate": self.gyro.get_rate(),
            "field_offset_deg": self.field_offset.degrees,
            "yaw_minus_offset_deg": (yaw - self.field_offset).degrees,
        }

        for i, module in enumerate(self.modules):
            state = module.get_measured_state()
            position = module.get_measured_position()
            telemetry[f"mod{i}_absolute_deg"] = module.get_absolute_angle().degrees
            telemetry[f"mod{i}_integrated_deg"] = state.angle.degrees
            telemetry[f"mod{i}_velocity"] = state.speed
            telemetry[f"mod{i}_position"] = position.distance
            telemetry[f"mod{i}_desired_speed"] = module.desired_state.speed
            telemetry[f"mod{i}_desired_deg"] = module.desired_state.angle.degrees
            telemetry[f"mod{i}_health"] = module.health.value

        telemetry.update(self.estimator.get_diagnostics())
        return telemetry


def build_drivetrain(
    component_mode: ComponentMode,
    module_ios: Optional[Sequence[ModuleIO]] = None,
    imu_io: Optional[ImuIO] = None,
    clock: Callable[[], float] = time.monotonic,
    loop_period: float = LOOP_PERIOD_SECONDS,
) -> Drivetrain:
    """Assemble a drivetrain for the selected runtime.

    The backend is chosen here, once; the Drivetrain never inspects it.

    Args:
        component_mode: Runtime and optional layers.
        module_ios: Four module drivers (hardware runtime only).
        imu_io: IMU driver (hardware runtime only).
        clock: Time source for odometry timestamps.
        loop_period: Control period, used by the second-order correction.

    Raises:
        ConfigurationError: If the configuration is invalid or hardware
            drivers are missing.
    """
    kinematics = SwerveKinematics(MODULE_OFFSETS)
    modules = create_modules(component_mode.runtime, module_ios)
    gyro = create_gyro(component_mode.runtime, modules, kinematics, imu_io)

    logging.info(f"Drivetrain: {component_mode}")
    return Drivetrain(
        modules,
        gyro,
        kinematics=kinematics,
        clock=clock,
        second_order_period=loop_period if component_mode.use_second_order else None,
        use_vision=component_mode.use_vision,
    )
