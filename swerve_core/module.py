"""Swerve module backends.

One abstract capability, three interchangeable implementations:
- HardwareSwerveModule: drives real motors through a ModuleIO driver object
- SimulatedSwerveModule: integrates a DC motor model instead of reading hardware
- NullSwerveModule: zeroed readings for running without a drivetrain

All three follow the same timing contract. `set_desired_state` only records
the target; `periodic(dt)` refreshes measurements and runs the module's
control law once per control loop tick. The rest of the system never needs
to know which backend is active.
"""

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .component_modes import RuntimeMode
from .config import (
    ABSOLUTE_ANGLE_OFFSETS,
    DRIVE_KA,
    DRIVE_KS,
    DRIVE_KV,
    MAX_SPEED,
    STEER_KA,
    STEER_KV,
)
from .geometry import Rotation2D, normalize_radians
from .kinematics import MODULE_COUNT, ConfigurationError, WheelPosition, WheelState
from .motor_controller import MotorController


class ModuleHealth(Enum):
    """Per-module sensor health reported every cycle."""

    OK = "ok"
    DEGRADED = "degraded"  # absolute angle sensor lost, relative sensors still valid
    FAULT = "fault"  # drive or steer feedback lost, outputs held at zero


class HardwareIOError(OSError):
    """Raised by a driver object when a device cannot be read or written."""


class SensorReadError(HardwareIOError):
    """Raised by a driver object when a sensor reading is unavailable."""


class ModuleIO(ABC):
    """Driver interface for one physical swerve module.

    Implementations wrap the vendor motor controller and encoder APIs. Any
    method may raise HardwareIOError; the module turns that into a health
    signal instead of letting it escape the control loop.
    """

    @abstractmethod
    def set_drive_voltage(self, volts: float) -> None:
        """Apply a voltage to the drive motor."""

    @abstractmethod
    def set_steer_voltage(self, volts: float) -> None:
        """Apply a voltage to the steering motor."""

    @abstractmethod
    def read_drive_distance(self) -> float:
        """Cumulative wheel distance in meters."""

    @abstractmethod
    def read_drive_velocity(self) -> float:
        """Wheel surface speed in m/s."""

    @abstractmethod
    def read_steer_angle(self) -> float:
        """Steering angle from the motor's relative encoder, radians."""

    @abstractmethod
    def read_absolute_angle(self) -> float:
        """Raw steering angle from the absolute sensor, radians."""

    @abstractmethod
    def seed_steer_angle(self, radians: float) -> None:
        """Overwrite the relative steering encoder's position."""

    @abstractmethod
    def reset_drive_distance(self) -> None:
        """Zero the drive distance accumulator."""


class SwerveModule(ABC):
    """Common interface for one swerve module.

    Attributes:
        number: Module index (0 front left ... 3 rear right).
        max_speed: Wheel speed corresponding to full open-loop output (m/s).
        controller: Drive/steer feedback controller.
        health: Sensor health as of the last `periodic` call.
    """

    def __init__(
        self,
        number: int,
        max_speed: float = MAX_SPEED,
        controller: Optional[MotorController] = None,
    ) -> None:
        self.number = number
        self.max_speed = max_speed
        self.controller = controller if controller is not None else MotorController()
        self.health = ModuleHealth.OK
        self.desired_state = WheelState()
        self.open_loop = False

    def set_desired_state(self, state: WheelState, open_loop: bool = False) -> None:
        """Record the state the module should track from the next tick on.

        Args:
            state: Desired wheel speed and angle.
            open_loop: Command drive output proportional to speed instead of
                running the velocity loop.
        """
        self.desired_state = state
        self.open_loop = open_loop

    @abstractmethod
    def get_measured_state(self) -> WheelState:
        """Measured wheel speed and steering angle."""

    @abstractmethod
    def get_measured_position(self) -> WheelPosition:
        """Measured cumulative distance and steering angle."""

    @abstractmethod
    def get_absolute_angle(self) -> Rotation2D:
        """Steering angle reported by the absolute sensor."""

    @abstractmethod
    def periodic(self, dt: float) -> None:
        """Refresh measurements and run the control law for one tick."""

    @abstractmethod
    def reset_position(self) -> None:
        """Zero the distance accumulator (recalibration only)."""

    def _compute_outputs(self, measured: WheelState, dt: float) -> Tuple[float, float]:
        """Drive and steer voltages toward the desired state.

        Returns:
            Tuple of (drive_volts, steer_volts).
        """
        target = self.desired_state.optimize(measured.angle)
        if self.open_loop:
            drive_volts = self.controller.compute_open_loop(target.speed, self.max_speed)
        else:
            drive_volts = self.controller.compute_drive(target.speed, measured.speed, dt)
        steer_volts = self.controller.compute_steer(
            target.angle.radians, measured.angle.radians, dt
        )
        return drive_volts, steer_volts


class HardwareSwerveModule(SwerveModule):
    """Swerve module backed by physical motors and encoders."""

    def __init__(
        self,
        number: int,
        io: ModuleIO,
        angle_offset: Rotation2D = Rotation2D(),
        max_speed: float = MAX_SPEED,
        controller: Optional[MotorController] = None,
    ) -> None:
        """Initialize the module and align the steering encoder.

        Args:
            number: Module index.
            io: Driver object for this module's devices.
            angle_offset: Absolute sensor reading when the wheel points forward.
            max_speed: Wheel speed at full open-loop output (m/s).
            controller: Feedback controller, default gains from config.
        """
        super().__init__(number, max_speed, controller)
        self.io = io
        self.angle_offset = angle_offset

        self._distance = 0.0
        self._velocity = 0.0
        self._steer_angle = Rotation2D()
        self._absolute_angle = Rotation2D()

        self.reset_to_absolute()

    def reset_to_absolute(self) -> None:
        """Seed the relative steering encoder from the absolute sensor."""
        try:
            absolute = Rotation2D(self.io.read_absolute_angle()) - self.angle_offset
            self.io.seed_steer_angle(absolute.radians)
        except HardwareIOError as e:
            self.health = ModuleHealth.DEGRADED
            logging.warning(f"Module {self.number}: could not seed steering from absolute sensor: {e}")
            return
        self._absolute_angle = absolute
        self._steer_angle = absolute

    def get_measured_state(self) -> WheelState:
        return WheelState(self._velocity, self._steer_angle)

    def get_measured_position(self) -> WheelPosition:
        return WheelPosition(self._distance, self._steer_angle)

    def get_absolute_angle(self) -> Rotation2D:
        return self._absolute_angle

    def periodic(self, dt: float) -> None:
        try:
            distance = self.io.read_drive_distance()
            velocity = self.io.read_drive_velocity()
            steer_angle = Rotation2D(self.io.read_steer_angle())
        except HardwareIOError as e:
            if self.health is not ModuleHealth.FAULT:
                logging.debug(f"Module {self.number}: feedback read failed: {e}")
            self.health = ModuleHealth.FAULT
            self._velocity = 0.0
            self._hold_outputs()
            return

        recovered = self.health is ModuleHealth.FAULT
        self._distance = distance
        self._velocity = velocity
        self._steer_angle = steer_angle

        try:
            self._absolute_angle = Rotation2D(self.io.read_absolute_angle()) - self.angle_offset
            self.health = ModuleHealth.OK
        except HardwareIOError:
            self.health = ModuleHealth.DEGRADED

        if recovered:
            self.controller.reset()

        drive_volts, steer_volts = self._compute_outputs(self.get_measured_state(), dt)
        try:
            self.io.set_drive_voltage(drive_volts)
            self.io.set_steer_voltage(steer_volts)
        except HardwareIOError as e:
            logging.debug(f"Module {self.number}: output write failed: {e}")
            self.health = ModuleHealth.FAULT

    def reset_position(self) -> None:
        try:
            self.io.reset_drive_distance()
        except HardwareIOError as e:
            self.health = ModuleHealth.FAULT
            logging.warning(f"Module {self.number}: could not reset drive distance: {e}")
            return
        self._distance = 0.0

    def _hold_outputs(self) -> None:
        # Best effort: the output bus may be the thing that failed
        try:
            self.io.set_drive_voltage(0.0)
            self.io.set_steer_voltage(0.0)
        except HardwareIOError:
            pass


class SimulatedSwerveModule(SwerveModule):
    """Swerve module whose motors are a first-order DC motor model.

    Each motor follows kA * dv/dt = V - kS * sign(v) - kV * v, solved exactly
    over each tick so stiff steering constants stay stable at 50 Hz.
    """

    def __init__(
        self,
        number: int,
        max_speed: float = MAX_SPEED,
        controller: Optional[MotorController] = None,
        drive_constants: Sequence[float] = (DRIVE_KS, DRIVE_KV, DRIVE_KA),
        steer_constants: Sequence[float] = (0.0, STEER_KV, STEER_KA),
    ) -> None:
        super().__init__(number, max_speed, controller)
        self.drive_constants = tuple(drive_constants)
        self.steer_constants = tuple(steer_constants)

        self.drive_velocity = 0.0
        self.drive_distance = 0.0
        self.steer_rate = 0.0
        self.steer_angle = 0.0

        self.drive_voltage = 0.0
        self.steer_voltage = 0.0

    def get_measured_state(self) -> WheelState:
        return WheelState(self.drive_velocity, Rotation2D(self.steer_angle))

    def get_measured_position(self) -> WheelPosition:
        return WheelPosition(self.drive_distance, Rotation2D(self.steer_angle))

    def get_absolute_angle(self) -> Rotation2D:
        return Rotation2D(self.steer_angle)

    def periodic(self, dt: float) -> None:
        if dt > 0:
            new_velocity = _step_motor(self.drive_velocity, self.drive_voltage, self.drive_constants, dt)
            self.drive_distance += 0.5 * (self.drive_velocity + new_velocity) * dt
            self.drive_velocity = new_velocity

            new_rate = _step_motor(self.steer_rate, self.steer_voltage, self.steer_constants, dt)
            self.steer_angle = normalize_radians(
                self.steer_angle + 0.5 * (self.steer_rate + new_rate) * dt
            )
            self.steer_rate = new_rate

        self.drive_voltage, self.steer_voltage = self._compute_outputs(self.get_measured_state(), dt)

    def reset_position(self) -> None:
        self.drive_distance = 0.0


class NullSwerveModule(SwerveModule):
    """Stand-in module for running without a drivetrain attached."""

    def get_measured_state(self) -> WheelState:
        return WheelState()

    def get_measured_position(self) -> WheelPosition:
        return WheelPosition()

    def get_absolute_angle(self) -> Rotation2D:
        return Rotation2D()

    def periodic(self, dt: float) -> None:
        pass

    def reset_position(self) -> None:
        pass


def _step_motor(velocity: float, voltage: float, constants: Sequence[float], dt: float) -> float:
    """Exact solution of the first-order motor model over one tick."""
    k_s, k_v, k_a = constants
    # Static friction only opposes motion once the applied voltage overcomes it
    if velocity == 0.0 and abs(voltage) <= k_s:
        return 0.0
    direction = velocity if velocity != 0.0 else voltage
    steady_state = (voltage - math.copysign(k_s, direction)) / k_v
    decay = math.exp(-k_v / k_a * dt)
    new_velocity = steady_state + (velocity - steady_state) * decay
    if new_velocity * velocity < 0.0 and abs(voltage) <= k_s:
        return 0.0
    return new_velocity


def create_modules(
    mode: RuntimeMode,
    ios: Optional[Sequence[ModuleIO]] = None,
    max_speed: float = MAX_SPEED,
) -> List[SwerveModule]:
    """Build the four modules for the selected runtime.

    Args:
        mode: Runtime environment, chosen once at startup.
        ios: Driver objects, one per module, required for hardware mode.
        max_speed: Wheel speed at full open-loop output (m/s).

    Returns:
        List of four modules in front left, front right, rear left, rear right order.

    Raises:
        ConfigurationError: If hardware mode is requested without four driver objects.
    """
    if mode is RuntimeMode.HARDWARE:
        if ios is None or len(ios) != MODULE_COUNT:
            raise ConfigurationError(
                f"Hardware runtime needs {MODULE_COUNT} module drivers, got "
                f"{0 if ios is None else len(ios)}"
            )
        return [
            HardwareSwerveModule(i, io, ABSOLUTE_ANGLE_OFFSETS[i], max_speed=max_speed)
            for i, io in enumerate(ios)
        ]
    if mode is RuntimeMode.SIMULATION:
        return [SimulatedSwerveModule(i, max_speed=max_speed) for i in range(MODULE_COUNT)]
    return [NullSwerveModule(i, max_speed=max_speed) for i in range(MODULE_COUNT)]
