"""Motor controller for swerve module drive velocity and steering angle.

This module provides the feedback + feedforward law that sits between a
module's desired WheelState and its motor voltages. Hardware and simulated
modules share it, so both backends respond to commands the same way.
"""

import math
from typing import Dict

from .config import (
    DRIVE_KA,
    DRIVE_KD,
    DRIVE_KI,
    DRIVE_KP,
    DRIVE_KS,
    DRIVE_KV,
    INTEGRAL_LIMIT,
    NOMINAL_VOLTAGE,
    STEER_KD,
    STEER_KI,
    STEER_KP,
)
from .geometry import normalize_radians


class MotorController:
    """PID feedback with feedforward for one swerve module.

    Drive control law (closed loop):
        V_drive = kS * sign(v_ref) + kV * v_ref + kA * a_ref
                  + K_p * e_v + K_i * integral(e_v) + K_d * d(e_v)/dt

    Steering control law:
        V_steer = K_p * e_theta + K_i * integral(e_theta) + K_d * d(e_theta)/dt
    where e_theta is wrapped to (-pi, pi] so the wheel takes the short way round.

    Both outputs are clamped to +/- nominal voltage.

    Attributes:
        k_p_drive: Proportional gain for drive velocity (V per m/s)
        k_i_drive: Integral gain for drive velocity
        k_d_drive: Derivative gain for drive velocity
        k_s: Static friction feedforward (V)
        k_v: Velocity feedforward (V per m/s)
        k_a: Acceleration feedforward (V per m/s²)
        k_p_steer: Proportional gain for steering angle (V per rad)
        k_i_steer: Integral gain for steering angle
        k_d_steer: Derivative gain for steering angle
    """

    def __init__(
        self,
        k_p_drive: float = DRIVE_KP,
        k_i_drive: float = DRIVE_KI,
        k_d_drive: float = DRIVE_KD,
        k_s: float = DRIVE_KS,
        k_v: float = DRIVE_KV,
        k_a: float = DRIVE_KA,
        k_p_steer: float = STEER_KP,
        k_i_steer: float = STEER_KI,
        k_d_steer: float = STEER_KD,
        max_voltage: float = NOMINAL_VOLTAGE,
    ):
        """Initialize the motor controller.

        Args:
            k_p_drive: Proportional gain for drive velocity correction.
            k_i_drive: Integral gain for drive velocity correction.
            k_d_drive: Derivative gain for drive velocity correction.
            k_s: Static friction feedforward voltage.
            k_v: Velocity feedforward gain.
            k_a: Acceleration feedforward gain.
            k_p_steer: Proportional gain for steering angle correction.
            k_i_steer: Integral gain for steering angle correction.
            k_d_steer: Derivative gain for steering angle correction.
            max_voltage: Output clamp, also the open-loop full-scale voltage.
        """
        # Drive gains
        self.k_p_drive = k_p_drive
        self.k_i_drive = k_i_drive
        self.k_d_drive = k_d_drive

        # Drive feedforward
        self.k_s = k_s
        self.k_v = k_v
        self.k_a = k_a

        # Steering gains
        self.k_p_steer = k_p_steer
        self.k_i_steer = k_i_steer
        self.k_d_steer = k_d_steer

        self.max_voltage = max_voltage

        # Integral state (accumulated error)
        self.integral_drive: float = 0.0
        self.integral_steer: float = 0.0

        # Previous error for derivative computation
        self.prev_drive_err: float = 0.0
        self.prev_steer_err: float = 0.0

        # Anti-windup limit
        self.integral_limit: float = INTEGRAL_LIMIT

        # Last outputs, for diagnostics
        self.last_drive_voltage: float = 0.0
        self.last_steer_voltage: float = 0.0

    def feedforward(self, v_ref: float, a_ref: float = 0.0) -> float:
        """Voltage needed to hold `v_ref` while accelerating at `a_ref`."""
        if v_ref == 0.0:
            static = 0.0
        else:
            static = math.copysign(self.k_s, v_ref)
        return static + self.k_v * v_ref + self.k_a * a_ref

    def compute_drive(
        self, v_ref: float, v_measured: float, dt: float, a_ref: float = 0.0
    ) -> float:
        """Closed-loop drive voltage.

        Args:
            v_ref: Desired wheel speed (m/s)
            v_measured: Measured wheel speed (m/s)
            dt: Time step since last control update (seconds)
            a_ref: Desired wheel acceleration for feedforward (m/s²). Default: 0.0

        Returns:
            Drive motor voltage, clamped to +/- max_voltage.
        """
        error = v_ref - v_measured

        if dt > 0:
            derivative = (error - self.prev_drive_err) / dt
        else:
            derivative = 0.0
        self.prev_drive_err = error

        # Accumulate integral of error with anti-windup
        self.integral_drive += error * dt
        self.integral_drive = max(
            -self.integral_limit, min(self.integral_limit, self.integral_drive)
        )

        voltage = (
            self.feedforward(v_ref, a_ref)
            + self.k_p_drive * error
            + self.k_i_drive * self.integral_drive
            + self.k_d_drive * derivative
        )
        self.last_drive_voltage = self._clamp(voltage)
        return self.last_drive_voltage

    def compute_open_loop(self, v_ref: float, max_speed: float) -> float:
        """Open-loop drive voltage proportional to the requested fraction of max speed."""
        fraction = v_ref / max_speed if max_speed > 0 else 0.0
        self.last_drive_voltage = self._clamp(fraction * self.max_voltage)
        return self.last_drive_voltage

    def compute_steer(self, angle_ref: float, angle_measured: float, dt: float) -> float:
        """Steering voltage toward `angle_ref`.

        Args:
            angle_ref: Desired steering angle (radians)
            angle_measured: Measured steering angle (radians)
            dt: Time step since last control update (seconds)

        Returns:
            Steering motor voltage, clamped to +/- max_voltage.
        """
        error = normalize_radians(angle_ref - angle_measured)

        if dt > 0:
            derivative = normalize_radians(error - self.prev_steer_err) / dt
        else:
            derivative = 0.0
        self.prev_steer_err = error

        self.integral_steer += error * dt
        self.integral_steer = max(
            -self.integral_limit, min(self.integral_limit, self.integral_steer)
        )

        voltage = (
            self.k_p_steer * error
            + self.k_i_steer * self.integral_steer
            + self.k_d_steer * derivative
        )
        self.last_steer_voltage = self._clamp(voltage)
        return self.last_steer_voltage

    def reset(self) -> None:
        """Reset integral and derivative states to zero.

        Call this when a module is re-enabled or recovers from a fault, so
        error accumulated while it was not tracking does not kick the output.
        """
        self.integral_drive = 0.0
        self.integral_steer = 0.0
        self.prev_drive_err = 0.0
        self.prev_steer_err = 0.0

    def get_diagnostics(self) -> Dict[str, float]:
        """Get diagnostic information for logging and debugging."""
        return {
            "drive_voltage": self.last_drive_voltage,
            "steer_voltage": self.last_steer_voltage,
            "drive_err": self.prev_drive_err,
            "steer_err": self.prev_steer_err,
            "integral_drive": self.integral_drive,
            "integral_steer": self.integral_steer,
        }

    def _clamp(self, voltage: float) -> float:
        # min/max let NaN through as +max_voltage
        if math.isnan(voltage):
            return 0.0
        return max(-self.max_voltage, min(self.max_voltage, voltage))
