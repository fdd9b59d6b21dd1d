#!/usr/bin/env python3
"""
WebSocket Feed Client for Drive Commands and External Pose Fixes

This module connects to a driver station / vision feed over WebSocket and
turns its JSON messages into inputs for the control loop: drive commands
into the CommandSlot, external pose fixes into the ObservationMailbox and
recalibration requests into the loop's event queue. The feed runs on its
own thread with its own asyncio event loop, so the control loop never
waits on the network.
"""

import argparse
import asyncio
import json
import logging
import math
import signal
import sys
import threading
import time
from typing import Any, Callable, Dict, Optional, Union

import websockets

from swerve_core.component_modes import ComponentMode, parse_component_flags
from swerve_core.config import (
    LOOP_PERIOD_SECONDS,
    TERM_BLUE,
    TERM_RESET,
    VISION_STD_DEVS,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
    WS_URI,
)
from swerve_core.control_loop import (
    CommandSlot,
    ControlLoop,
    DriveCommand,
    ObservationMailbox,
    RecalibrationEvent,
)
from swerve_core.data_collector import DataCollector
from swerve_core.drivetrain import build_drivetrain
from swerve_core.estimator import VisionObservation
from swerve_core.geometry import ChassisVelocity, Pose2D, Rotation2D


def _finite(name: str, value: Any) -> float:
    """Convert a message field to float, rejecting NaN and infinities.

    Raises:
        ValueError: If the value is not a finite number.
    """
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record based on its level.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        if record.levelno == logging.INFO:
            return record.getMessage()
        else:
            return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class FeedClient:
    """WebSocket feed of drive commands, pose fixes and recalibration requests.

    Message formats (JSON objects keyed by "message_type"):
        drive: {"vx", "vy", "omega", "field_relative"?, "open_loop"?, "lock"?}
        pose: {"x", "y", "heading_deg"?, "timestamp"? | "latency"?, "std_devs"?}
        reset_heading_offset, zero_heading, reset_wheel_distances: no payload

    Pose fix timestamps must be on the control loop's clock. Without one,
    the fix is stamped at receipt minus the optional "latency" (seconds).

    Attributes:
        uri: WebSocket URI to connect to.
        commands: Slot receiving drive commands.
        mailbox: Mailbox receiving external pose fixes.
        on_event: Callback receiving recalibration events.
        should_stop: Flag indicating whether to stop the feed.
        messages_received: Count of successfully routed messages.
    """

    def __init__(
        self,
        uri: str,
        commands: CommandSlot,
        mailbox: ObservationMailbox,
        on_event: Callable[[RecalibrationEvent], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the feed client.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).
            commands: Slot receiving drive commands.
            mailbox: Mailbox receiving external pose fixes.
            on_event: Callback receiving recalibration events.
            clock: Clock shared with the control loop, for stamping fixes.

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.commands = commands
        self.mailbox = mailbox
        self.on_event = on_event
        self.clock = clock
        self.should_stop: bool = False
        self.messages_received: int = 0

        self._thread: Optional[threading.Thread] = None

    def process_drive_message(self, data: Dict[str, Any]) -> None:
        """Store a drive command in the command slot.

        Args:
            data: Parsed JSON message with vx, vy and omega.

        Raises:
            ValueError: If a velocity component is not a finite number.
        """
        command = DriveCommand(
            chassis=ChassisVelocity(
                _finite("vx", data.get("vx", 0.0)),
                _finite("vy", data.get("vy", 0.0)),
                _finite("omega", data.get("omega", 0.0)),
            ),
            field_relative=bool(data.get("field_relative", True)),
            open_loop=bool(data.get("open_loop", False)),
            lock_wheels=bool(data.get("lock", False)),
        )
        self.commands.put(command)

    def process_pose_message(self, data: Dict[str, Any]) -> None:
        """Post an external pose fix to the mailbox.

        Args:
            data: Parsed JSON message with x, y and optional heading, timestamp,
                latency and std_devs.

        Raises:
            ValueError: If a value is not a finite number, or std_devs does
                not hold three non-negative values.
        """
        pose = Pose2D(
            _finite("x", data["x"]),
            _finite("y", data["y"]),
            Rotation2D.from_degrees(_finite("heading_deg", data.get("heading_deg", 0.0))),
        )

        if "timestamp" in data:
            timestamp = _finite("timestamp", data["timestamp"])
        else:
            timestamp = self.clock() - _finite("latency", data.get("latency", 0.0))

        std_devs = tuple(_finite("std_devs", s) for s in data.get("std_devs", VISION_STD_DEVS))
        if len(std_devs) != 3:
            raise ValueError(f"std_devs must hold 3 values, got {len(std_devs)}")
        if any(s < 0.0 for s in std_devs):
            raise ValueError(f"std_devs must be non-negative, got {std_devs}")

        self.mailbox.post(VisionObservation(pose, timestamp, std_devs))

    def parse_and_route_message(self, message: Union[str, bytes]) -> None:
        """Parse incoming message and route to appropriate handler.

        Malformed messages are logged and skipped.

        Args:
            message: Raw JSON message string or bytes from WebSocket.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)

            message_type = data.get("message_type")

            if message_type == "drive":
                self.process_drive_message(data)
            elif message_type == "pose":
                self.process_pose_message(data)
            elif message_type == RecalibrationEvent.RESET_HEADING_OFFSET.value:
                self.on_event(RecalibrationEvent.RESET_HEADING_OFFSET)
            elif message_type == RecalibrationEvent.ZERO_HEADING.value:
                self.on_event(RecalibrationEvent.ZERO_HEADING)
            elif message_type == RecalibrationEvent.RESET_WHEEL_DISTANCES.value:
                self.on_event(RecalibrationEvent.RESET_WHEEL_DISTANCES)
            else:
                logging.debug(f"Received unknown message: {json.dumps(data)}")
                return

            self.messages_received += 1

        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing message data: {e}")

    async def run_feed(self) -> None:
        """Connect to the feed and route messages until stopped.

        Maintains a connection to the WebSocket server with automatic retry logic
        and exponential backoff.
        """
        retry_delay = WS_RETRY_DELAY_SECONDS
        max_retry_delay = WS_MAX_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to feed{TERM_RESET}")
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(
                                websocket.recv(), timeout=WS_TIMEOUT_SECONDS
                            )
                        except asyncio.TimeoutError:
                            continue
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Connection closed by server")
                            break

                        self.parse_and_route_message(message)

            except (OSError, websockets.exceptions.WebSocketException) as e:
                if self.should_stop:
                    break
                logging.error(f"Connection error: {e}")
                logging.info(f"Retrying in {retry_delay} seconds...")
                await self._sleep(retry_delay)
                retry_delay = min(retry_delay * 2, max_retry_delay)

    async def _sleep(self, seconds: float) -> None:
        # Sleep in short slices so stop() is honoured promptly
        deadline = time.monotonic() + seconds
        while not self.should_stop and time.monotonic() < deadline:
            await asyncio.sleep(min(0.1, deadline - time.monotonic()))

    def start(self) -> None:
        """Run the feed on a background thread with its own event loop."""
        self.should_stop = False
        self._thread = threading.Thread(
            target=lambda: asyncio.run(self.run_feed()), name="feed-client", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the feed to stop and wait for its thread."""
        self.should_stop = True
        if self._thread is not None:
            self._thread.join(timeout if timeout is not None else WS_TIMEOUT_SECONDS + 1.0)
            self._thread = None


def main(
    component_mode: Optional[ComponentMode] = None,
    cycles: Optional[int] = None,
    uri: str = WS_URI,
    use_feed: bool = True,
    output_dir: str = ".",
) -> None:
    """Main entry point: build the drivetrain and run the control loop.

    Creates the drivetrain for the selected runtime, starts the feed client,
    sets up signal handlers for graceful shutdown, and runs the fixed-rate
    loop with CSV telemetry until stopped or `cycles` ticks have run.

    Args:
        component_mode: Runtime and optional layers.
        cycles: Number of ticks to run, or None to run until interrupted.
        uri: Feed WebSocket URI.
        use_feed: Start the WebSocket feed client.
        output_dir: Base directory for the results/ folder.

    Raises:
        ConfigurationError: If the drivetrain configuration is invalid.
    """
    if component_mode is None:
        component_mode = ComponentMode()

    logging.info(f"{TERM_BLUE}Component Configuration: {component_mode}{TERM_RESET}")

    drivetrain = build_drivetrain(component_mode, loop_period=LOOP_PERIOD_SECONDS)
    commands = CommandSlot()
    mailbox = ObservationMailbox()

    with DataCollector(output_dir=output_dir) as collector:
        loop = ControlLoop(
            drivetrain,
            commands,
            period=LOOP_PERIOD_SECONDS,
            collector=collector,
            mailbox=mailbox,
        )

        def signal_handler(signum: int, frame: Any) -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            loop.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, signal_handler)

        feed = FeedClient(uri, commands, mailbox, loop.request) if use_feed else None
        if feed:
            feed.start()

        try:
            loop.run(max_cycles=cycles)
        finally:
            if feed:
                feed.stop()

        pose = drivetrain.get_pose()
        logging.info(
            f"{TERM_BLUE}\033[1m→ Final pose: x={pose.x:.3f} m  y={pose.y:.3f} m  "
            f"heading={pose.heading_degrees:.1f}°{TERM_RESET}"
        )


def build_arg_parser() -> argparse.ArgumentParser:
    """Arguments not covered by the component flags."""
    parser = argparse.ArgumentParser(
        description="Swerve drivetrain control loop with WebSocket command/pose feed"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument(
        "--cycles", type=int, default=None, help="Stop after N control loop cycles"
    )
    parser.add_argument("--uri", default=WS_URI, help=f"Feed WebSocket URI (default: {WS_URI})")
    parser.add_argument(
        "--no-feed", action="store_true", help="Run without connecting to the WebSocket feed"
    )
    return parser


if __name__ == "__main__":
    component_mode, remaining_args = parse_component_flags()
    args = build_arg_parser().parse_args(remaining_args)

    setup_logging(args.verbose)

    try:
        main(component_mode=component_mode, cycles=args.cycles, uri=args.uri, use_feed=not args.no_feed)
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
