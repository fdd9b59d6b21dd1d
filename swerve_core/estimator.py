"""Pose estimation module for the swerve drivetrain.

This module fuses high-rate wheel odometry with sparse external pose fixes:
- Odometry at the control loop rate: wheel distance deltas through the
  inverse kinematics, heading taken directly from the gyro
- External pose fixes (vision or any absolute source) at a low, irregular
  rate, timestamped when they were captured rather than when they arrive
- A time-buffered history so late fixes are applied at the moment they
  describe, then replayed forward through the motion recorded since
"""

import bisect
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .config import (
    ODOMETRY_STD_DEVS,
    POSE_HISTORY_SECONDS,
    TERM_ORANGE,
    TERM_RESET,
    VISION_STD_DEVS,
)
from .geometry import Pose2D, Rotation2D, Twist2D
from .kinematics import SwerveKinematics, WheelPosition


@dataclass(frozen=True)
class OdometryObservation:
    """One odometry sample.

    Attributes:
        wheel_positions: Cumulative positions of the four modules.
        gyro_angle: Raw gyro yaw at the time of the sample.
        timestamp: Sample time (seconds), strictly increasing per stream.
    """

    wheel_positions: Tuple[WheelPosition, ...]
    gyro_angle: Rotation2D
    timestamp: float


@dataclass(frozen=True)
class VisionObservation:
    """One external pose fix.

    Attributes:
        pose: Field pose reported by the external source.
        timestamp: Capture time (seconds), may precede the newest odometry sample.
        std_devs: Trust as standard deviations (x meters, y meters, heading radians).
            Lower values pull the estimate harder toward `pose`.
    """

    pose: Pose2D
    timestamp: float
    std_devs: Tuple[float, float, float] = VISION_STD_DEVS


@dataclass
class PoseRecord:
    """History entry: odometry-only pose and best estimate at one odometry sample.

    `estimate` includes every external fix timestamped strictly before
    `timestamp`.
    """

    timestamp: float
    odometry: Pose2D
    estimate: Pose2D


class PoseEstimator:
    """Odometry + external fix estimator with buffered replay.

    State:
        - odometry pose: integrated from wheels and gyro only, never corrected
        - estimated pose: odometry motion plus accumulated external corrections
        - history: PoseRecords covering the last `history_seconds`
        - observations: accepted external fixes still inside the history window

    Heading is always the gyro heading (plus the offset fixed at reset); only
    position is blended. For each position axis the correction gain is

        k = q / (q + r)

    with q the odometry variance and r the observation variance, so an
    observation with much smaller variance than odometry moves the estimate
    almost all the way onto it.

    One estimator belongs to one drivetrain; it is not thread-safe and is
    only mutated by the control loop thread.
    """

    def __init__(
        self,
        kinematics: SwerveKinematics,
        gyro_angle: Rotation2D,
        wheel_positions: Sequence[WheelPosition],
        initial_pose: Pose2D = Pose2D(),
        timestamp: float = 0.0,
        odometry_std_devs: Sequence[float] = ODOMETRY_STD_DEVS,
        history_seconds: float = POSE_HISTORY_SECONDS,
    ):
        """Initialize the estimator.

        Args:
            kinematics: Drivetrain kinematics used to turn wheel deltas into motion.
            gyro_angle: Raw gyro yaw at `timestamp`.
            wheel_positions: Module positions at `timestamp`.
            initial_pose: Field pose at `timestamp`.
            timestamp: Time of the seed sample (seconds).
            odometry_std_devs: Odometry trust (x, y, heading) as standard deviations.
            history_seconds: Retention window for late external fixes (seconds).

        Raises:
            ValueError: If history_seconds is not positive.
        """
        if history_seconds <= 0:
            raise ValueError(f"history_seconds must be positive, got {history_seconds}")

        self.kinematics = kinematics
        self.history_seconds = history_seconds
        self.q = tuple(s * s for s in odometry_std_devs)

        # Diagnostics (for logging/tuning)
        self.observations_accepted = 0
        self.observations_discarded = 0
        self.odometry_dropped = 0
        self.last_correction = 0.0

        self.reset_pose(initial_pose, gyro_angle, wheel_positions, timestamp)

    def reset_pose(
        self,
        pose: Pose2D,
        gyro_angle: Rotation2D,
        wheel_positions: Sequence[WheelPosition],
        timestamp: float,
    ) -> None:
        """Reseed the estimator at a known pose.

        Clears the history and pending fixes; `pose` becomes the sole record.
        Wheel distances are not zeroed, they are remembered as the new baseline.

        Args:
            pose: Field pose to adopt.
            gyro_angle: Raw gyro yaw at this moment; its offset to `pose`'s
                heading is kept for every later sample.
            wheel_positions: Module positions at this moment.
            timestamp: Time of the reset (seconds).
        """
        self._gyro_offset = pose.rotation - gyro_angle
        self._wheel_positions: List[WheelPosition] = list(wheel_positions)
        self._odometry_pose = pose
        self._estimate = pose
        self._history: List[PoseRecord] = [PoseRecord(timestamp, pose, pose)]
        self._observations: List[VisionObservation] = []
        self.last_correction = 0.0

    def add_odometry_observation(self, observation: OdometryObservation) -> Pose2D:
        """Integrate one odometry sample.

        Args:
            observation: Wheel positions, gyro yaw and timestamp.

        Returns:
            The updated estimated pose.
        """
        newest = self._history[-1].timestamp
        # A sample at the seed time (same clock tick as a reset) replaces the seed
        refines_seed = (
            observation.timestamp == newest
            and len(self._history) == 1
            and not self._observations
        )
        if observation.timestamp <= newest and not refines_seed:
            self.odometry_dropped += 1
            logging.warning(
                f"Odometry sample at t={observation.timestamp:.4f}s is not after "
                f"t={newest:.4f}s, dropped"
            )
            return self._estimate

        heading = observation.gyro_angle + self._gyro_offset

        # Wheels give the path shape, the gyro gives the heading change
        wheel_twist = self.kinematics.to_twist(self._wheel_positions, observation.wheel_positions)
        twist = Twist2D(
            wheel_twist.dx,
            wheel_twist.dy,
            (heading - self._odometry_pose.rotation).radians,
        )
        moved = self._odometry_pose.exp(twist)
        odometry = Pose2D(moved.x, moved.y, heading)

        self._estimate = _carry(self._odometry_pose, self._estimate, odometry)
        self._odometry_pose = odometry
        self._wheel_positions = list(observation.wheel_positions)

        record = PoseRecord(observation.timestamp, odometry, self._estimate)
        if refines_seed:
            self._history[0] = record
        else:
            self._history.append(record)
        self._prune(observation.timestamp)
        return self._estimate

    def add_vision_observation(self, observation: VisionObservation) -> Pose2D:
        """Fold an external pose fix into the estimate.

        The fix is applied at its own timestamp: odometry and estimate are
        sampled there (interpolated between the bracketing records), the
        estimate is pulled toward the fix, and everything recorded after
        that moment is replayed on top of the corrected pose. Fixes older
        than the history window cannot be reconciled and are discarded, as
        are fixes with non-finite values or negative standard deviations.

        Args:
            observation: External pose, capture timestamp and trust.

        Returns:
            The updated estimated pose.
        """
        if not _is_valid_fix(observation):
            self.observations_discarded += 1
            logging.warning(
                f"{TERM_ORANGE}External pose with non-finite values or negative "
                f"std devs discarded: {observation}{TERM_RESET}"
            )
            return self._estimate

        oldest = self._history[0].timestamp
        newest = self._history[-1].timestamp
        if observation.timestamp < oldest or observation.timestamp < newest - self.history_seconds:
            self.observations_discarded += 1
            logging.debug(
                f"External pose at t={observation.timestamp:.4f}s is outside the "
                f"history window [{max(oldest, newest - self.history_seconds):.4f}, "
                f"{newest:.4f}]s, discarded"
            )
            return self._estimate

        times = [o.timestamp for o in self._observations]
        self._observations.insert(bisect.bisect_right(times, observation.timestamp), observation)
        self.observations_accepted += 1

        self._replay_from(observation.timestamp)
        return self._estimate

    def reset_wheel_positions(self, wheel_positions: Sequence[WheelPosition]) -> None:
        """Adopt new module distances as the odometry baseline.

        Used after the wheel encoders are zeroed. Poses, history and pending
        fixes are kept, so the next sample integrates only the motion since
        this call.
        """
        self._wheel_positions = list(wheel_positions)

    def add_external_pose_observation(
        self,
        pose: Pose2D,
        timestamp: float,
        std_devs: Tuple[float, float, float] = VISION_STD_DEVS,
    ) -> Pose2D:
        """Keyword form of `add_vision_observation`."""
        return self.add_vision_observation(VisionObservation(pose, timestamp, tuple(std_devs)))

    def get_estimated_pose(self) -> Pose2D:
        return self._estimate

    def get_odometry_pose(self) -> Pose2D:
        """Pose from wheels and gyro alone, without external corrections."""
        return self._odometry_pose

    def sample_odometry(self, timestamp: float) -> Pose2D:
        """Odometry-only pose at `timestamp`.

        Interpolates between the two bracketing records; clamps to the oldest
        and newest records outside the retained range.
        """
        times = [r.timestamp for r in self._history]
        if timestamp >= times[-1]:
            return self._history[-1].odometry
        if timestamp <= times[0]:
            return self._history[0].odometry

        index = bisect.bisect_right(times, timestamp)
        before = self._history[index - 1]
        after = self._history[index]
        if before.timestamp == timestamp:
            return before.odometry
        fraction = (timestamp - before.timestamp) / (after.timestamp - before.timestamp)
        return before.odometry.interpolate(after.odometry, fraction)

    def get_diagnostics(self) -> Dict[str, float]:
        """Get estimator diagnostic information for tuning and monitoring.

        Returns:
            Dictionary containing:
                - history_length: Number of retained odometry records
                - pending_observations: External fixes still inside the window
                - observations_accepted: Total fixes folded into the estimate
                - observations_discarded: Total fixes rejected as too old or invalid
                - odometry_dropped: Total odometry samples rejected as out of order
                - last_correction: Position shift of the last applied fix (m)
                - drift: Distance between estimate and odometry-only pose (m)
        """
        drift = self._estimate.translation.distance(self._odometry_pose.translation)
        return {
            "history_length": len(self._history),
            "pending_observations": len(self._observations),
            "observations_accepted": self.observations_accepted,
            "observations_discarded": self.observations_discarded,
            "odometry_dropped": self.odometry_dropped,
            "last_correction": float(self.last_correction),
            "drift": float(drift),
        }

    def _replay_from(self, timestamp: float) -> None:
        """Recompute every estimate after `timestamp`, reapplying retained fixes in time order."""
        times = [r.timestamp for r in self._history]
        index = bisect.bisect_right(times, timestamp) - 1
        anchor = self._history[index]
        anchor_odometry, anchor_estimate = anchor.odometry, anchor.estimate

        next_record = index + 1
        for observation in self._observations:
            if observation.timestamp < anchor.timestamp:
                continue

            # Records up to and including the fix time do not see the fix
            while (
                next_record < len(self._history)
                and self._history[next_record].timestamp <= observation.timestamp
            ):
                record = self._history[next_record]
                record.estimate = _carry(anchor_odometry, anchor_estimate, record.odometry)
                next_record += 1

            odometry_at_fix = self.sample_odometry(observation.timestamp)
            estimate_at_fix = _carry(anchor_odometry, anchor_estimate, odometry_at_fix)
            anchor_odometry = odometry_at_fix
            anchor_estimate = self._blend(estimate_at_fix, observation)

        for record in self._history[next_record:]:
            record.estimate = _carry(anchor_odometry, anchor_estimate, record.odometry)

        self._estimate = _carry(anchor_odometry, anchor_estimate, self._odometry_pose)

    def _blend(self, estimate: Pose2D, observation: VisionObservation) -> Pose2D:
        """Pull `estimate`'s position toward the observation by the per-axis gain."""
        gain_x = _gain(self.q[0], observation.std_devs[0] ** 2)
        gain_y = _gain(self.q[1], observation.std_devs[1] ** 2)

        shift_x = gain_x * (observation.pose.x - estimate.x)
        shift_y = gain_y * (observation.pose.y - estimate.y)
        self.last_correction = math.hypot(shift_x, shift_y)

        return Pose2D(estimate.x + shift_x, estimate.y + shift_y, estimate.rotation)

    def _prune(self, newest: float) -> None:
        cutoff = newest - self.history_seconds
        times = [r.timestamp for r in self._history]
        # Keep the newest record at or before the cutoff as the interpolation floor
        first = max(0, bisect.bisect_right(times, cutoff) - 1)
        if first > 0:
            del self._history[:first]

        oldest = self._history[0].timestamp
        self._observations = [o for o in self._observations if o.timestamp >= oldest]


def _is_valid_fix(observation: VisionObservation) -> bool:
    values = (
        observation.pose.x,
        observation.pose.y,
        observation.pose.rotation.radians,
        observation.timestamp,
    ) + tuple(observation.std_devs)
    if not all(math.isfinite(v) for v in values):
        return False
    return all(s >= 0.0 for s in observation.std_devs)


def _gain(odometry_variance: float, observation_variance: float) -> float:
    total = odometry_variance + observation_variance
    if total <= 0.0:
        return 1.0
    return odometry_variance / total


def _carry(anchor_odometry: Pose2D, anchor_estimate: Pose2D, odometry: Pose2D) -> Pose2D:
    """Apply the odometry motion since `anchor_odometry` to `anchor_estimate`."""
    moved = anchor_estimate.transform_by(odometry.relative_to(anchor_odometry))
    return Pose2D(moved.x, moved.y, odometry.rotation)
