"""Orientation sensor backends.

The gyro yaw is the ground truth for heading in the pose estimator and the
reference for field-relative driving. Like the modules, it comes in
hardware, simulated and no-op flavours chosen once at startup.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from .component_modes import RuntimeMode
from .config import INVERT_GYRO
from .geometry import Rotation2D
from .kinematics import ConfigurationError, SwerveKinematics
from .module import HardwareIOError, ModuleHealth, SwerveModule


class ImuIO(ABC):
    """Driver interface for the physical IMU. Methods may raise HardwareIOError."""

    @abstractmethod
    def read_yaw_degrees(self) -> float:
        """Accumulated yaw in degrees, counter-clockwise positive unless inverted."""

    @abstractmethod
    def read_yaw_rate(self) -> float:
        """Yaw rate in degrees per second."""

    @abstractmethod
    def zero_yaw(self) -> None:
        """Make the current orientation read as zero yaw."""


class Gyro(ABC):
    """Common interface for the robot's yaw sensor."""

    def __init__(self) -> None:
        self.health = ModuleHealth.OK

    @abstractmethod
    def get_yaw(self) -> Rotation2D:
        """Current yaw."""

    @abstractmethod
    def get_rate(self) -> float:
        """Current yaw rate in rad/s."""

    @abstractmethod
    def zero_yaw(self) -> None:
        """Re-zero the yaw at the current orientation."""

    def periodic(self, dt: float) -> None:
        """Refresh the reading for one tick."""


class HardwareGyro(Gyro):
    """Yaw from a physical IMU, holding the last good reading on failure."""

    def __init__(self, io: ImuIO, inverted: bool = INVERT_GYRO) -> None:
        super().__init__()
        self.io = io
        self.inverted = inverted
        self._yaw = Rotation2D()
        self._rate = 0.0
        self.periodic(0.0)

    def get_yaw(self) -> Rotation2D:
        return self._yaw

    def get_rate(self) -> float:
        return self._rate

    def zero_yaw(self) -> None:
        try:
            self.io.zero_yaw()
        except HardwareIOError as e:
            self.health = ModuleHealth.FAULT
            logging.warning(f"Gyro: zero request failed: {e}")
            return
        self._yaw = Rotation2D()

    def periodic(self, dt: float) -> None:
        try:
            yaw = self.io.read_yaw_degrees()
            rate = self.io.read_yaw_rate()
        except HardwareIOError as e:
            if self.health is not ModuleHealth.FAULT:
                logging.debug(f"Gyro: read failed: {e}")
            self.health = ModuleHealth.FAULT
            return

        sign = -1.0 if self.inverted else 1.0
        self._yaw = Rotation2D.from_degrees(sign * yaw)
        self._rate = math.radians(sign * rate)
        self.health = ModuleHealth.OK


class SimulatedGyro(Gyro):
    """Yaw integrated from the simulated modules' measured states.

    Uses the same least-squares inverse kinematics as odometry, so a
    simulated robot's heading follows whatever its wheels actually do.
    """

    def __init__(self, modules: Sequence[SwerveModule], kinematics: SwerveKinematics) -> None:
        super().__init__()
        self.modules = modules
        self.kinematics = kinematics
        self._yaw_radians = 0.0
        self._rate = 0.0

    def get_yaw(self) -> Rotation2D:
        return Rotation2D(self._yaw_radians)

    def get_rate(self) -> float:
        return self._rate

    def zero_yaw(self) -> None:
        self._yaw_radians = 0.0

    def periodic(self, dt: float) -> None:
        states = [module.get_measured_state() for module in self.modules]
        self._rate = self.kinematics.to_chassis_velocity(states).omega
        self._yaw_radians += self._rate * dt


class NullGyro(Gyro):
    """Always reports zero yaw."""

    def get_yaw(self) -> Rotation2D:
        return Rotation2D()

    def get_rate(self) -> float:
        return 0.0

    def zero_yaw(self) -> None:
        pass


def create_gyro(
    mode: RuntimeMode,
    modules: Sequence[SwerveModule],
    kinematics: SwerveKinematics,
    io: Optional[ImuIO] = None,
) -> Gyro:
    """Build the gyro matching the selected runtime.

    Raises:
        ConfigurationError: If hardware mode is requested without an IMU driver.
    """
    if mode is RuntimeMode.HARDWARE:
        if io is None:
            raise ConfigurationError("Hardware runtime needs an IMU driver")
        return HardwareGyro(io)
    if mode is RuntimeMode.SIMULATION:
        return SimulatedGyro(modules, kinematics)
    return NullGyro()
