"""Swerve Core - Motion Core for Four-Module Swerve Drive Robots

Converts chassis velocity commands into four independent wheel commands and
fuses wheel odometry, gyro heading and sparse external pose fixes into a
continuously updated pose estimate.

## Architecture Overview

One fixed-rate control loop drives a straight-line pipeline each tick:

### Kinematics (kinematics.py)
Chassis velocity ⇄ four (speed, angle) wheel states.
- Robot-relative or field-relative commands (heading minus field offset)
- Optional second-order correction for combined translate + rotate
- Least-squares inverse mapping for odometry

### Desaturation (kinematics.py)
Uniformly scales wheel speeds so none exceeds the attainable maximum.

### Modules (module.py, gyro.py)
Hardware, simulated and no-op backends behind one interface, chosen once at
startup. Sensor failures become per-module health, never exceptions.

### Pose Estimation (estimator.py)
Odometry from wheel deltas with gyro heading, plus latency-compensated
external pose fixes replayed through a two-second history buffer.

### Drivetrain (drivetrain.py) and Control Loop (control_loop.py)
The drivetrain owns modules, gyro and estimator; the loop schedules it and
receives commands and pose fixes through thread-safe handoffs.

## Modules

### Core
- `geometry.py` - Pose, rotation, translation, twist and velocity types
- `kinematics.py` - Swerve kinematics and desaturation
- `motor_controller.py` - Drive velocity and steering angle control
- `module.py` - Module backends and health reporting
- `gyro.py` - Yaw sensor backends
- `estimator.py` - Buffered-replay pose estimator
- `drivetrain.py` - Drivetrain facade
- `control_loop.py` - Fixed-rate loop, command slot and observation mailbox
- `config.py` - Centralized configuration parameters
- `component_modes.py` - Runtime selection and optional layers

### Communication & Data
- `client.py` - WebSocket feed client and main entry point
- `data_collector.py` - CSV telemetry logging

### Visualization
- `plot_styles.py` - Shared plotting utilities and color scheme
- `visualization.py` - Post-run telemetry plots
- `plot_results.py` - CLI for visualization tools

## Quick Start

```python
from swerve_core import ChassisVelocity, ComponentMode, build_drivetrain

drivetrain = build_drivetrain(ComponentMode())
drivetrain.drive(ChassisVelocity(1.0, 0.0, 0.0), field_relative=True)
drivetrain.periodic(0.02)
print(drivetrain.get_pose())
```

Or use the command-line interface:
```bash
python -m swerve_core --sim --cycles 500
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

# Export key classes for convenience
from .component_modes import ComponentMode, RuntimeMode
from .control_loop import CommandSlot, ControlLoop, DriveCommand, ObservationMailbox
from .data_collector import DataCollector
from .drivetrain import Drivetrain, build_drivetrain
from .estimator import OdometryObservation, PoseEstimator, VisionObservation
from .geometry import ChassisVelocity, Pose2D, Rotation2D, Translation2D, Twist2D
from .kinematics import ConfigurationError, SwerveKinematics, WheelPosition, WheelState, desaturate
from .module import ModuleHealth

__all__ = [
    "ChassisVelocity",
    "CommandSlot",
    "ComponentMode",
    "ConfigurationError",
    "ControlLoop",
    "DataCollector",
    "DriveCommand",
    "Drivetrain",
    "ModuleHealth",
    "ObservationMailbox",
    "OdometryObservation",
    "Pose2D",
    "PoseEstimator",
    "Rotation2D",
    "RuntimeMode",
    "SwerveKinematics",
    "Translation2D",
    "Twist2D",
    "VisionObservation",
    "WheelPosition",
    "WheelState",
    "build_drivetrain",
    "desaturate",
]
