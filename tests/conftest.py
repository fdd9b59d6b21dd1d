"""Shared fixtures for the swerve_core test suite."""

import math

import matplotlib
import pytest

matplotlib.use("Agg")

from swerve_core.geometry import Rotation2D, Translation2D  # noqa: E402
from swerve_core.gyro import ImuIO, SimulatedGyro  # noqa: E402
from swerve_core.kinematics import SwerveKinematics, WheelPosition  # noqa: E402
from swerve_core.module import ModuleIO, SensorReadError, SimulatedSwerveModule  # noqa: E402
from swerve_core.drivetrain import Drivetrain  # noqa: E402


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> float:
        self.now += dt
        return self.now


class FakeModuleIO(ModuleIO):
    """In-memory module driver with switchable failures."""

    def __init__(self, absolute: float = 0.0):
        self.distance = 0.0
        self.velocity = 0.0
        self.steer = 0.0
        self.absolute = absolute
        self.drive_volts = None
        self.steer_volts = None
        self.seeded = None
        self.fail_reads = False
        self.fail_absolute = False
        self.fail_writes = False

    def set_drive_voltage(self, volts):
        if self.fail_writes:
            raise SensorReadError("drive bus down")
        self.drive_volts = volts

    def set_steer_voltage(self, volts):
        if self.fail_writes:
            raise SensorReadError("steer bus down")
        self.steer_volts = volts

    def read_drive_distance(self):
        if self.fail_reads:
            raise SensorReadError("drive encoder unplugged")
        return self.distance

    def read_drive_velocity(self):
        if self.fail_reads:
            raise SensorReadError("drive encoder unplugged")
        return self.velocity

    def read_steer_angle(self):
        if self.fail_reads:
            raise SensorReadError("steer encoder unplugged")
        return self.steer

    def read_absolute_angle(self):
        if self.fail_absolute:
            raise SensorReadError("absolute sensor unplugged")
        return self.absolute

    def seed_steer_angle(self, radians):
        self.seeded = radians
        self.steer = radians

    def reset_drive_distance(self):
        if self.fail_reads:
            raise SensorReadError("drive encoder unplugged")
        self.distance = 0.0


class FakeImuIO(ImuIO):
    def __init__(self):
        self.yaw = 0.0
        self.rate = 0.0
        self.fail = False

    def read_yaw_degrees(self):
        if self.fail:
            raise SensorReadError("imu offline")
        return self.yaw

    def read_yaw_rate(self):
        if self.fail:
            raise SensorReadError("imu offline")
        return self.rate

    def zero_yaw(self):
        self.yaw = 0.0


def wheel_positions(distance: float = 0.0, degrees: float = 0.0):
    """Four identical wheel positions."""
    return [WheelPosition(distance, Rotation2D.from_degrees(degrees)) for _ in range(4)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kinematics():
    return SwerveKinematics(
        [
            Translation2D(0.25, 0.25),
            Translation2D(0.25, -0.25),
            Translation2D(-0.25, 0.25),
            Translation2D(-0.25, -0.25),
        ]
    )


@pytest.fixture
def half_meter_kinematics():
    """Modules 0.5 m from the rotation center."""
    a = 0.5 / math.sqrt(2.0)
    return SwerveKinematics(
        [
            Translation2D(a, a),
            Translation2D(a, -a),
            Translation2D(-a, a),
            Translation2D(-a, -a),
        ]
    )


@pytest.fixture
def sim_drivetrain(kinematics, clock):
    modules = [SimulatedSwerveModule(i) for i in range(4)]
    gyro = SimulatedGyro(modules, kinematics)
    return Drivetrain(modules, gyro, kinematics=kinematics, clock=clock)
