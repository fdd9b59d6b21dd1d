"""
Runtime environment and component selection.

This module decides, once at startup, which module backend the drivetrain
uses and which optional layers (external pose fusion, second-order
kinematics) are active. Nothing downstream re-checks the backend type.
"""

import argparse
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import SECOND_ORDER_KINEMATICS

RUNTIME_ENV_VAR = "SWERVE_RUNTIME"


class RuntimeMode(Enum):
    """Which module backend drives the robot."""

    HARDWARE = "hardware"
    SIMULATION = "simulation"
    STUB = "stub"

    @classmethod
    def from_environment(cls, default: Optional["RuntimeMode"] = None) -> "RuntimeMode":
        """Read the runtime from SWERVE_RUNTIME, falling back to `default` or simulation.

        Raises:
            ValueError: If the variable holds an unknown runtime name.
        """
        value = os.environ.get(RUNTIME_ENV_VAR)
        if not value:
            return default if default is not None else cls.SIMULATION
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Invalid {RUNTIME_ENV_VAR}={value!r}, expected one of: {valid}")


@dataclass(frozen=True)
class ComponentMode:
    """Configuration for which drivetrain components are active."""

    runtime: RuntimeMode = RuntimeMode.SIMULATION

    # Pose Estimation Layer
    use_vision: bool = True  # If False, external pose fixes are ignored (odometry only)

    # Kinematics Layer
    use_second_order: bool = SECOND_ORDER_KINEMATICS  # If True, discretize before desaturation

    def __str__(self):
        """Human-readable description of active components."""
        components = [f"Modules({self.runtime.value})"]

        if self.use_second_order:
            components.append("Kinematics(2nd order)")
        else:
            components.append("Kinematics(1st order)")

        if self.use_vision:
            components.append("Estimator(odometry + vision)")
        else:
            components.append("Estimator(odometry)")

        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            'runtime': self.runtime.value,
            'use_vision': self.use_vision,
            'use_second_order': self.use_second_order,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine the runtime and active components.

    The runtime defaults to the SWERVE_RUNTIME environment variable, then to
    simulation. `--hardware`, `--sim` and `--stub` override it.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (ComponentMode, remaining_args)
            - ComponentMode with appropriate settings
            - List of remaining arguments not consumed
    """
    parser = argparse.ArgumentParser(add_help=False)

    runtime_group = parser.add_mutually_exclusive_group()
    runtime_group.add_argument('--hardware', dest='runtime', action='store_const',
                               const=RuntimeMode.HARDWARE,
                               help='Drive physical modules (requires module drivers)')
    runtime_group.add_argument('--sim', dest='runtime', action='store_const',
                               const=RuntimeMode.SIMULATION,
                               help='Use simulated modules and gyro')
    runtime_group.add_argument('--stub', dest='runtime', action='store_const',
                               const=RuntimeMode.STUB,
                               help='Use no-op modules (no drivetrain attached)')

    parser.add_argument('--no-vision', action='store_true',
                        help='Ignore external pose observations (odometry only)')
    parser.add_argument('--second-order', action='store_true',
                        help='Enable second-order kinematics correction')
    parser.add_argument('--no-second-order', action='store_true',
                        help='Disable second-order kinematics correction')

    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    runtime = known_args.runtime or RuntimeMode.from_environment()

    use_second_order = SECOND_ORDER_KINEMATICS
    if known_args.second_order:
        use_second_order = True
    if known_args.no_second_order:
        use_second_order = False

    mode = ComponentMode(
        runtime=runtime,
        use_vision=not known_args.no_vision,
        use_second_order=use_second_order,
    )

    return mode, remaining_args
