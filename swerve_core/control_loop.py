"""
Fixed-rate control loop and the thread-safe handoffs that feed it.

The loop is the only thread that touches the drivetrain and its estimator.
Other threads talk to it through three non-blocking channels:
- CommandSlot: latest drive command, overwritten by the input source
- ObservationMailbox: queue of external pose fixes from the acquisition side
- recalibration events, queued with `ControlLoop.request`
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .config import COMMAND_TIMEOUT_SECONDS, LOOP_PERIOD_SECONDS, TERM_ORANGE, TERM_RESET
from .data_collector import DataCollector
from .drivetrain import Drivetrain
from .estimator import VisionObservation
from .geometry import ChassisVelocity, Pose2D


@dataclass(frozen=True)
class DriveCommand:
    """One operator or autonomous command.

    Attributes:
        chassis: Desired chassis velocity.
        field_relative: Interpret vx/vy in the field frame.
        open_loop: Drive motors proportionally instead of velocity-controlled.
        lock_wheels: Hold the X stance instead of driving.
    """

    chassis: ChassisVelocity = field(default_factory=ChassisVelocity)
    field_relative: bool = True
    open_loop: bool = False
    lock_wheels: bool = False


STOP_COMMAND = DriveCommand(field_relative=False)


class RecalibrationEvent(Enum):
    """Discrete operator recalibration requests."""

    RESET_HEADING_OFFSET = "reset_heading_offset"
    ZERO_HEADING = "zero_heading"
    RESET_WHEEL_DISTANCES = "reset_wheel_distances"


class CommandSlot:
    """Latest-value slot for drive commands.

    Written by the input thread, read once per tick by the control loop.
    A command older than `timeout` reads back as a stop, so a dead input
    source cannot leave the robot driving.
    """

    def __init__(
        self,
        timeout: float = COMMAND_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self.clock = clock
        self._lock = threading.Lock()
        self._command: Optional[DriveCommand] = None
        self._received_at = 0.0

    def put(self, command: DriveCommand) -> None:
        with self._lock:
            self._command = command
            self._received_at = self.clock()

    def get(self) -> DriveCommand:
        with self._lock:
            if self._command is None or self.clock() - self._received_at > self.timeout:
                return STOP_COMMAND
            return self._command

    __call__ = get


class ObservationMailbox:
    """Non-blocking handoff of external pose fixes to the control loop."""

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[VisionObservation]" = queue.SimpleQueue()

    def post(self, observation: VisionObservation) -> None:
        """Enqueue a fix (any thread)."""
        self._queue.put(observation)

    def drain(self) -> List[VisionObservation]:
        """Take every queued fix without blocking (control loop thread)."""
        observations = []
        while True:
            try:
                observations.append(self._queue.get_nowait())
            except queue.Empty:
                return observations


class ControlLoop:
    """Fixed-period scheduler for the drivetrain pipeline.

    Each tick:
        1. Apply queued recalibration events
        2. Hand queued external pose fixes to the estimator
        3. drivetrain.periodic(dt): module/gyro update and odometry
        4. Fetch the current command and dispatch it
        5. Record telemetry and timing

    A tick whose work exceeds the period is counted in `overruns` and
    logged; the schedule then restarts from the late tick instead of
    bursting to catch up.

    Attributes:
        drivetrain: The drivetrain being driven.
        command_source: Callable returning the DriveCommand for this tick.
        period: Loop period (seconds).
        collector: Optional CSV telemetry sink.
        mailbox: Incoming external pose fixes.
        cycles: Completed ticks.
        overruns: Ticks that missed their deadline.
    """

    def __init__(
        self,
        drivetrain: Drivetrain,
        command_source: Callable[[], DriveCommand],
        period: float = LOOP_PERIOD_SECONDS,
        collector: Optional[DataCollector] = None,
        mailbox: Optional[ObservationMailbox] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the control loop.

        Raises:
            ValueError: If period is not positive.
        """
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")

        self.drivetrain = drivetrain
        self.command_source = command_source
        self.period = period
        self.collector = collector
        self.mailbox = mailbox if mailbox is not None else ObservationMailbox()
        self.clock = clock

        self.cycles = 0
        self.overruns = 0
        self.last_duration = 0.0

        self._events: "queue.SimpleQueue[RecalibrationEvent]" = queue.SimpleQueue()
        self._stop_event = threading.Event()

    def request(self, event: RecalibrationEvent) -> None:
        """Queue a recalibration event for the next tick (any thread)."""
        self._events.put(event)

    def step(self, dt: Optional[float] = None) -> Pose2D:
        """Run exactly one tick of the pipeline.

        Args:
            dt: Time since the previous tick; defaults to the period.

        Returns:
            The estimated pose after this tick's odometry update.
        """
        now = self.clock()

        self._apply_events()

        for observation in self.mailbox.drain():
            self.drivetrain.add_vision_observation(observation)
            if self.collector:
                self.collector.log_vision(now, observation)

        pose = self.drivetrain.periodic(self.period if dt is None else dt)

        command = self.command_source()
        if command.lock_wheels:
            self.drivetrain.lock_wheels()
        else:
            self.drivetrain.drive(command.chassis, command.field_relative, command.open_loop)

        if self.collector:
            self.collector.log_telemetry(now, self.drivetrain.get_telemetry())

        self.cycles += 1
        return pose

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Run ticks at the fixed period until stopped or `max_cycles` is reached."""
        self._stop_event.clear()
        logging.info(f"Control loop running at {1.0 / self.period:.0f} Hz")

        next_tick = self.clock()
        previous_start: Optional[float] = None

        while not self._stop_event.is_set():
            if max_cycles is not None and self.cycles >= max_cycles:
                break

            start = self.clock()
            dt = self.period if previous_start is None else start - previous_start
            previous_start = start

            self.step(dt)

            self.last_duration = self.clock() - start
            overrun = self.last_duration > self.period
            if overrun:
                self.overruns += 1
                logging.warning(
                    f"{TERM_ORANGE}Loop overrun: cycle {self.cycles} took "
                    f"{self.last_duration * 1000:.1f} ms (period {self.period * 1000:.1f} ms){TERM_RESET}"
                )
            if self.collector:
                self.collector.log_loop_timing(start, self.cycles, self.last_duration, self.period, overrun)

            next_tick += self.period
            if overrun:
                next_tick = self.clock()
            self._stop_event.wait(max(0.0, next_tick - self.clock()))

        self.drivetrain.stop()
        logging.info(f"Control loop stopped after {self.cycles} cycles ({self.overruns} overruns)")

    def stop(self) -> None:
        """Ask `run` to return after the current tick (any thread)."""
        self._stop_event.set()

    def _apply_events(self) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            if event is RecalibrationEvent.RESET_HEADING_OFFSET:
                self.drivetrain.reset_heading_offset()
            elif event is RecalibrationEvent.ZERO_HEADING:
                self.drivetrain.zero_heading()
            elif event is RecalibrationEvent.RESET_WHEEL_DISTANCES:
                self.drivetrain.reset_wheel_distances()
