import logging
import threading

import pytest

from swerve_core.control_loop import (
    STOP_COMMAND,
    CommandSlot,
    ControlLoop,
    DriveCommand,
    ObservationMailbox,
    RecalibrationEvent,
)
from swerve_core.data_collector import DataCollector
from swerve_core.drivetrain import LOCK_ANGLES
from swerve_core.estimator import VisionObservation
from swerve_core.geometry import ChassisVelocity, Pose2D

FORWARD = DriveCommand(ChassisVelocity(1.0, 0.0, 0.0), field_relative=False)


def test_command_slot_returns_latest(clock):
    slot = CommandSlot(timeout=0.5, clock=clock)
    assert slot.get() is STOP_COMMAND

    slot.put(FORWARD)
    clock.advance(0.1)
    assert slot() is FORWARD

    newer = DriveCommand(ChassisVelocity(0.0, 1.0, 0.0))
    slot.put(newer)
    assert slot.get() is newer


def test_command_slot_times_out_to_stop(clock):
    slot = CommandSlot(timeout=0.5, clock=clock)
    slot.put(FORWARD)
    clock.advance(0.6)
    assert slot.get() is STOP_COMMAND


def test_mailbox_drains_everything_once():
    mailbox = ObservationMailbox()
    first = VisionObservation(Pose2D(1.0, 0.0), 0.1)
    second = VisionObservation(Pose2D(2.0, 0.0), 0.2)
    mailbox.post(first)
    mailbox.post(second)
    assert mailbox.drain() == [first, second]
    assert mailbox.drain() == []


def test_mailbox_accepts_posts_from_other_threads():
    mailbox = ObservationMailbox()
    threads = [
        threading.Thread(target=mailbox.post, args=(VisionObservation(Pose2D(float(i), 0.0), 0.1 * i),))
        for i in range(10)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(mailbox.drain()) == 10


def test_rejects_non_positive_period(sim_drivetrain):
    with pytest.raises(ValueError):
        ControlLoop(sim_drivetrain, lambda: STOP_COMMAND, period=0.0)


def test_step_dispatches_command(sim_drivetrain, clock):
    loop = ControlLoop(sim_drivetrain, lambda: FORWARD, clock=clock)
    loop.step()
    assert loop.cycles == 1
    assert all(m.desired_state.speed == pytest.approx(1.0) for m in sim_drivetrain.modules)


def test_step_lock_command(sim_drivetrain, clock):
    loop = ControlLoop(sim_drivetrain, lambda: DriveCommand(lock_wheels=True), clock=clock)
    loop.step()
    assert [m.desired_state.angle for m in sim_drivetrain.modules] == list(LOCK_ANGLES)


def test_step_fuses_queued_observations_before_odometry(sim_drivetrain, clock):
    mailbox = ObservationMailbox()
    loop = ControlLoop(sim_drivetrain, lambda: STOP_COMMAND, mailbox=mailbox, clock=clock)
    for _ in range(3):
        clock.advance(0.02)
        loop.step()

    mailbox.post(VisionObservation(Pose2D(0.5, 0.25), clock(), (0.001, 0.001, 0.001)))
    clock.advance(0.02)
    pose = loop.step()

    assert pose.x == pytest.approx(0.5, abs=1e-3)
    assert pose.y == pytest.approx(0.25, abs=1e-3)
    assert sim_drivetrain.estimator.get_diagnostics()["observations_accepted"] == 1


def test_recalibration_events_apply_on_next_tick(sim_drivetrain, clock):
    sim_drivetrain.gyro._yaw_radians = 0.5
    loop = ControlLoop(sim_drivetrain, lambda: STOP_COMMAND, clock=clock)

    loop.request(RecalibrationEvent.RESET_HEADING_OFFSET)
    assert sim_drivetrain.field_offset.radians == 0.0
    loop.step()
    assert sim_drivetrain.field_offset.radians == pytest.approx(0.5)

    loop.request(RecalibrationEvent.ZERO_HEADING)
    loop.step()
    assert sim_drivetrain.get_yaw().radians == pytest.approx(0.0)
    assert sim_drivetrain.field_offset.radians == 0.0
    # The frozen clock stamps the reseed and the tick's sample alike
    assert sim_drivetrain.estimator.get_diagnostics()["odometry_dropped"] == 0


def test_reset_wheel_distances_event(sim_drivetrain, clock):
    loop = ControlLoop(sim_drivetrain, lambda: FORWARD, clock=clock)
    for _ in range(10):
        clock.advance(0.02)
        loop.step()
    assert all(p.distance > 0.0 for p in sim_drivetrain.get_wheel_positions())
    before = sim_drivetrain.get_pose()

    loop.request(RecalibrationEvent.RESET_WHEEL_DISTANCES)
    clock.advance(0.02)
    pose = loop.step()
    assert all(p.distance < 0.05 for p in sim_drivetrain.get_wheel_positions())
    assert before.x <= pose.x < before.x + 0.05


def test_run_stops_after_max_cycles(sim_drivetrain, clock):
    def command():
        clock.advance(0.01)
        return FORWARD

    loop = ControlLoop(sim_drivetrain, command, period=0.02, clock=clock)
    loop.run(max_cycles=5)

    assert loop.cycles == 5
    assert loop.overruns == 0
    # Drivetrain is stopped on exit
    assert all(m.desired_state.speed == 0.0 for m in sim_drivetrain.modules)


def test_run_counts_and_logs_overruns(sim_drivetrain, clock, caplog):
    def slow_command():
        clock.advance(0.05)
        return STOP_COMMAND

    loop = ControlLoop(sim_drivetrain, slow_command, period=0.02, clock=clock)
    with caplog.at_level(logging.WARNING):
        loop.run(max_cycles=3)

    assert loop.cycles == 3
    assert loop.overruns == 3
    assert loop.last_duration == pytest.approx(0.05)
    assert sum("Loop overrun" in r.getMessage() for r in caplog.records) == 3


def test_stop_from_command_source(sim_drivetrain, clock):
    calls = []

    def command():
        calls.append(1)
        clock.advance(0.01)
        if len(calls) == 3:
            loop.stop()
        return FORWARD

    loop = ControlLoop(sim_drivetrain, command, period=0.02, clock=clock)
    loop.run()
    assert loop.cycles == 3


def test_run_logs_telemetry_and_timing(sim_drivetrain, clock, tmp_path):
    def command():
        clock.advance(0.01)
        return FORWARD

    with DataCollector(run_dir=str(tmp_path)) as collector:
        loop = ControlLoop(sim_drivetrain, command, period=0.02, collector=collector, clock=clock)
        loop.mailbox.post(VisionObservation(Pose2D(0.0, 0.0), 0.0))
        loop.run(max_cycles=4)

    pose_lines = (tmp_path / "pose_data.csv").read_text().splitlines()
    module_lines = (tmp_path / "module_data.csv").read_text().splitlines()
    timing_lines = (tmp_path / "loop_timing.csv").read_text().splitlines()
    vision_lines = (tmp_path / "vision_data.csv").read_text().splitlines()
    assert len(pose_lines) == 1 + 4
    assert len(module_lines) == 1 + 4 * 4
    assert len(timing_lines) == 1 + 4
    assert len(vision_lines) == 1 + 1
