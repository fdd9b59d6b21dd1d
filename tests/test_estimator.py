import math

import pytest

from conftest import wheel_positions
from swerve_core.estimator import OdometryObservation, PoseEstimator, VisionObservation
from swerve_core.geometry import Pose2D, Rotation2D

HIGH_TRUST = (0.001, 0.001, 0.001)


def make_estimator(kinematics, **kwargs):
    return PoseEstimator(kinematics, Rotation2D(), wheel_positions(0.0), Pose2D(), 0.0, **kwargs)


def odometry(distance, timestamp, yaw_degrees=0.0, wheel_degrees=0.0):
    return OdometryObservation(
        tuple(wheel_positions(distance, wheel_degrees)),
        Rotation2D.from_degrees(yaw_degrees),
        timestamp,
    )


def test_zero_delta_is_idempotent(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(0.4, 0.1))
    before = estimator.get_estimated_pose()

    after = estimator.add_odometry_observation(odometry(0.4, 0.2))
    assert after.x == pytest.approx(before.x)
    assert after.y == pytest.approx(before.y)
    assert after.rotation == before.rotation


def test_straight_odometry(kinematics):
    estimator = make_estimator(kinematics)
    pose = estimator.add_odometry_observation(odometry(1.0, 0.1))
    assert (pose.x, pose.y) == pytest.approx((1.0, 0.0), abs=1e-12)

    pose = estimator.add_odometry_observation(odometry(1.5, 0.2, wheel_degrees=90.0))
    assert (pose.x, pose.y) == pytest.approx((1.0, 0.5), abs=1e-12)


def test_gyro_is_ground_truth_for_heading(kinematics):
    estimator = make_estimator(kinematics)
    pose = estimator.add_odometry_observation(odometry(0.0, 0.1, yaw_degrees=90.0))
    assert pose.heading_degrees == pytest.approx(90.0)
    assert (pose.x, pose.y) == pytest.approx((0.0, 0.0), abs=1e-12)

    # Driving "forward" now moves along field +y
    pose = estimator.add_odometry_observation(odometry(1.0, 0.2, yaw_degrees=90.0))
    assert pose.x == pytest.approx(0.0, abs=1e-9)
    assert pose.y == pytest.approx(1.0)


def test_initial_pose_heading_offsets_gyro(kinematics):
    start = Pose2D(2.0, 3.0, Rotation2D.from_degrees(180.0))
    estimator = PoseEstimator(kinematics, Rotation2D.from_degrees(30.0), wheel_positions(5.0), start, 0.0)
    pose = estimator.add_odometry_observation(odometry(6.0, 0.1, yaw_degrees=30.0))
    assert pose.heading_degrees == pytest.approx(180.0)
    assert (pose.x, pose.y) == pytest.approx((1.0, 3.0))


def test_non_increasing_odometry_is_dropped(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    pose = estimator.add_odometry_observation(odometry(2.0, 1.0))
    assert pose.x == pytest.approx(1.0)
    assert estimator.get_diagnostics()["odometry_dropped"] == 1


def test_sample_at_reset_time_replaces_seed(kinematics):
    estimator = make_estimator(kinematics)
    estimator.reset_pose(Pose2D(1.0, 0.0), Rotation2D(), wheel_positions(0.0), 0.5)

    pose = estimator.add_odometry_observation(odometry(0.0, 0.5, yaw_degrees=10.0))
    assert pose.heading_degrees == pytest.approx(10.0)
    diagnostics = estimator.get_diagnostics()
    assert diagnostics["odometry_dropped"] == 0
    assert diagnostics["history_length"] == 1

    # Only the seed can be refined; a repeat after real motion is still dropped
    estimator.add_odometry_observation(odometry(0.2, 0.52, yaw_degrees=10.0))
    estimator.add_odometry_observation(odometry(0.4, 0.52, yaw_degrees=10.0))
    assert estimator.get_diagnostics()["odometry_dropped"] == 1


def test_replay_carries_correction_forward(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    estimator.add_odometry_observation(odometry(1.3, 1.3))

    pose = estimator.add_vision_observation(VisionObservation(Pose2D(1.2, 0.0), 1.0, HIGH_TRUST))

    assert pose.x == pytest.approx(1.5, abs=1e-3)
    assert pose.y == pytest.approx(0.0, abs=1e-9)
    assert estimator.get_odometry_pose().x == pytest.approx(1.3)


def test_correction_survives_later_odometry(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    estimator.add_vision_observation(VisionObservation(Pose2D(1.2, 0.0), 1.0, HIGH_TRUST))
    pose = estimator.add_odometry_observation(odometry(1.3, 1.3))
    assert pose.x == pytest.approx(1.5, abs=1e-3)


def test_observation_between_samples_is_interpolated(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    # Odometry at t=0.5 is x=0.5; the fix says 0.7
    pose = estimator.add_vision_observation(VisionObservation(Pose2D(0.7, 0.0), 0.5, HIGH_TRUST))
    assert pose.x == pytest.approx(1.2, abs=1e-3)


def test_low_trust_observation_moves_estimate_partially(kinematics):
    estimator = make_estimator(kinematics, odometry_std_devs=(0.1, 0.1, 0.1))
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    pose = estimator.add_vision_observation(VisionObservation(Pose2D(2.0, 0.0), 1.0, (0.1, 0.1, 0.1)))
    # Equal variances: half way
    assert pose.x == pytest.approx(1.5)
    assert estimator.get_diagnostics()["last_correction"] == pytest.approx(0.5)


def test_heading_is_not_blended(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    pose = estimator.add_vision_observation(
        VisionObservation(Pose2D(1.0, 0.0, Rotation2D.from_degrees(45.0)), 1.0, HIGH_TRUST)
    )
    assert pose.heading_degrees == pytest.approx(0.0)


def test_stale_observation_is_discarded(kinematics):
    estimator = make_estimator(kinematics, history_seconds=2.0)
    for i in range(1, 31):
        estimator.add_odometry_observation(odometry(0.1 * i, 0.1 * i))
    before = estimator.get_estimated_pose()

    pose = estimator.add_vision_observation(VisionObservation(Pose2D(10.0, 10.0), 0.5, HIGH_TRUST))

    assert pose == before
    diagnostics = estimator.get_diagnostics()
    assert diagnostics["observations_discarded"] == 1
    assert diagnostics["observations_accepted"] == 0


@pytest.mark.parametrize(
    "observation",
    [
        VisionObservation(Pose2D(float("nan"), 0.0), 1.0, HIGH_TRUST),
        VisionObservation(Pose2D(0.0, float("inf")), 1.0, HIGH_TRUST),
        VisionObservation(Pose2D(1.0, 0.0), float("nan"), HIGH_TRUST),
        VisionObservation(Pose2D(1.0, 0.0), 1.0, (float("nan"), 0.001, 0.001)),
        VisionObservation(Pose2D(1.0, 0.0), 1.0, (-0.001, 0.001, 0.001)),
    ],
)
def test_invalid_observation_is_discarded(kinematics, observation):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    before = estimator.get_estimated_pose()

    pose = estimator.add_vision_observation(observation)
    assert pose == before
    diagnostics = estimator.get_diagnostics()
    assert diagnostics["observations_discarded"] == 1
    assert diagnostics["observations_accepted"] == 0
    assert diagnostics["pending_observations"] == 0

    pose = estimator.add_odometry_observation(odometry(1.5, 1.5))
    assert math.isfinite(pose.x) and math.isfinite(pose.y)
    assert pose.x == pytest.approx(1.5)


def test_history_is_bounded(kinematics):
    estimator = make_estimator(kinematics, history_seconds=1.0)
    for i in range(1, 201):
        estimator.add_odometry_observation(odometry(0.01 * i, 0.02 * i))
    # 1 s at 50 Hz plus the interpolation floor
    assert estimator.get_diagnostics()["history_length"] <= 52


def test_out_of_order_observations_are_resequenced(kinematics):
    in_order = make_estimator(kinematics)
    reversed_order = make_estimator(kinematics)
    first = VisionObservation(Pose2D(1.2, 0.1), 1.0, (0.05, 0.05, 0.05))
    second = VisionObservation(Pose2D(2.3, -0.1), 2.0, (0.05, 0.05, 0.05))

    for estimator in (in_order, reversed_order):
        for t in (1.0, 2.0, 3.0):
            estimator.add_odometry_observation(odometry(t, t))

    in_order.add_vision_observation(first)
    in_order.add_vision_observation(second)
    reversed_order.add_vision_observation(second)
    reversed_order.add_vision_observation(first)

    a = in_order.get_estimated_pose()
    b = reversed_order.get_estimated_pose()
    assert a.x == pytest.approx(b.x)
    assert a.y == pytest.approx(b.y)


def test_observation_newer_than_odometry_applies_at_latest_sample(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    estimator.add_vision_observation(VisionObservation(Pose2D(1.5, 0.0), 1.1, HIGH_TRUST))
    pose = estimator.add_odometry_observation(odometry(1.2, 1.2))
    assert pose.x == pytest.approx(1.7, abs=1e-3)


def test_replay_follows_curved_motion(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    # Turn left 90° and drive 1 m along field +y
    estimator.add_odometry_observation(odometry(1.0, 1.1, yaw_degrees=90.0))
    estimator.add_odometry_observation(odometry(2.0, 1.2, yaw_degrees=90.0))

    pose = estimator.add_vision_observation(VisionObservation(Pose2D(1.0, 0.3), 1.0, HIGH_TRUST))
    assert pose.x == pytest.approx(1.0, abs=1e-3)
    assert pose.y == pytest.approx(1.3, abs=1e-3)
    assert pose.heading_degrees == pytest.approx(90.0)


def test_reset_pose_clears_history(kinematics):
    estimator = make_estimator(kinematics)
    for i in range(1, 5):
        estimator.add_odometry_observation(odometry(0.1 * i, 0.1 * i))
    estimator.add_vision_observation(VisionObservation(Pose2D(0.3, 0.0), 0.3, HIGH_TRUST))

    estimator.reset_pose(Pose2D(5.0, 5.0, Rotation2D.from_degrees(90.0)), Rotation2D(), wheel_positions(0.4), 0.5)
    diagnostics = estimator.get_diagnostics()
    assert diagnostics["history_length"] == 1
    assert diagnostics["pending_observations"] == 0
    assert estimator.get_estimated_pose() == Pose2D(5.0, 5.0, Rotation2D.from_degrees(90.0))

    pose = estimator.add_odometry_observation(odometry(1.4, 0.6))
    assert pose.x == pytest.approx(5.0, abs=1e-9)
    assert pose.y == pytest.approx(6.0)


def test_reset_wheel_positions_keeps_pose(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    estimator.add_vision_observation(VisionObservation(Pose2D(1.2, 0.0), 1.0, HIGH_TRUST))
    before = estimator.get_estimated_pose()

    # Encoders zeroed: the distance drop is not motion
    estimator.reset_wheel_positions(wheel_positions(0.0))
    assert estimator.get_estimated_pose() == before
    assert estimator.get_diagnostics()["pending_observations"] == 1

    pose = estimator.add_odometry_observation(odometry(0.3, 1.3))
    assert pose.x == pytest.approx(before.x + 0.3)
    assert estimator.get_odometry_pose().x == pytest.approx(1.3)


def test_external_pose_keyword_form(kinematics):
    estimator = make_estimator(kinematics)
    estimator.add_odometry_observation(odometry(1.0, 1.0))
    pose = estimator.add_external_pose_observation(Pose2D(1.2, 0.0), 1.0, std_devs=HIGH_TRUST)
    assert pose.x == pytest.approx(1.2, abs=1e-3)


def test_rejects_non_positive_history(kinematics):
    with pytest.raises(ValueError):
        make_estimator(kinematics, history_seconds=0.0)


def test_multiple_estimators_are_independent(kinematics):
    a = make_estimator(kinematics)
    b = make_estimator(kinematics)
    a.add_odometry_observation(odometry(1.0, 1.0))
    assert b.get_estimated_pose() == Pose2D()
    assert math.isclose(a.get_estimated_pose().x, 1.0)
