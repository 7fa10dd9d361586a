"""
Device controller: translates desired state into serial commands.

Classes:
    DeviceController: Owns the link, command queue and device state, and
        runs the serial receive and transmit threads
"""

import logging
import threading

from device.base import Link
from device.command_queue import CommandQueue
from utils.device_state import DeviceState, Mode, StateSnapshot, clamp_speed
from utils.events import EventSink
from utils.protocol import FEEDBACK_EFFECTS, Command, LineBuffer

logger = logging.getLogger(__name__)
wire_logger = logging.getLogger("wire_debug")


class DeviceController:
    """
    Drives the device from a desired state.

    The mutation API (set_is_on, set_speed, set_mode) updates the target
    fields of DeviceState and enqueues the commands needed to get there.
    The device only understands relative speed steps, so a speed change of
    N units enqueues N HIGHER or LOWER commands.

    Two background threads do the serial I/O:
    - TX: pops one command per poll and writes it, dropping it on failure
    - RX: assembles feedback lines and moves actual_speed accordingly

    Both loops stop when the shared shutdown event is set.
    """

    def __init__(
        self,
        link: Link,
        shutdown_event: threading.Event | None = None,
        command_queue: CommandQueue | None = None,
        event_sink: EventSink | None = None,
        poll_interval: float = 0.001,
    ):
        """
        Initialize the controller.

        Args:
            link: Opened link to the device
            shutdown_event: Shared shutdown signal (a private one if omitted)
            command_queue: Queue for outgoing commands (default: 128 deep)
            event_sink: Receives device log lines and UI hints
            poll_interval: Seconds between RX/TX polls
        """
        self._link = link
        self._shutdown = shutdown_event or threading.Event()
        self._command_queue = command_queue or CommandQueue()
        self._events = event_sink or EventSink()
        self._poll_interval = poll_interval
        self._state = DeviceState()
        self._line_buffer = LineBuffer()
        self._mutation_lock = threading.RLock()
        self._rx_thread: threading.Thread | None = None
        self._tx_thread: threading.Thread | None = None

    # ─── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the RX and TX threads."""
        if self._rx_thread is not None:
            return
        self._rx_thread = threading.Thread(
            target=self._rx_loop, daemon=True, name="SerialRX"
        )
        self._tx_thread = threading.Thread(
            target=self._tx_loop, daemon=True, name="SerialTX"
        )
        self._rx_thread.start()
        self._tx_thread.start()

    def request_shutdown(self) -> None:
        """Signal every loop sharing the shutdown event to stop."""
        self._shutdown.set()

    def wait_for_shutdown(self, timeout: float | None = None) -> bool:
        """Block until shutdown is requested. Returns True if it was."""
        return self._shutdown.wait(timeout)

    def close(self, join_timeout: float = 2.0) -> None:
        """Stop the threads, wait for them to exit and close the link."""
        self._shutdown.set()
        for thread in (self._tx_thread, self._rx_thread):
            if thread and thread.is_alive():
                thread.join(timeout=join_timeout)
        self._link.close()

    def shutdown_gracefully(self, drain_timeout: float = 1.0) -> None:
        """
        Power the device off if needed, let the TX thread flush, then shut down.

        Args:
            drain_timeout: Maximum seconds to wait for queued commands to go out
        """
        logger.info("Shutting down gracefully")
        if self._state.is_on:
            self.set_is_on(False)

        self._events.close_requested()

        if self._tx_thread and self._tx_thread.is_alive():
            if not self._command_queue.wait_empty(drain_timeout):
                logger.warning(
                    f"{self._command_queue.pending_count()} command(s) not sent before shutdown"
                )

        self._shutdown.set()

    # ─── Mutation API ───────────────────────────────────────────────────────

    def set_is_on(self, is_on: bool) -> None:
        """Switch power. No-op if already in the requested state."""
        with self._mutation_lock:
            if self._state.is_on == is_on:
                return

            self._enqueue(Command.ON if is_on else Command.OFF)
            self._state.is_on = is_on
            new_speed = 1 if is_on else 0
            self._state.target_speed = new_speed

        self._events.speed_changed(new_speed)

    def set_speed(self, speed: int) -> None:
        """
        Move the target speed to speed, one step command per unit.

        Turns the device on first when it is off and speed > 0.
        Turns it off, without step commands, when it is on and speed == 0.
        """
        speed = clamp_speed(speed)

        with self._mutation_lock:
            if not self._state.is_on and speed > 0:
                self.set_is_on(True)
            elif self._state.is_on and speed == 0:
                self.set_is_on(False)
                return

            diff = speed - self._state.target_speed
            step = Command.HIGHER if diff > 0 else Command.LOWER
            for _ in range(abs(diff)):
                self._enqueue(step)

            self._state.target_speed = speed

        self._events.speed_changed(speed)

    def set_mode(self, mode: Mode) -> None:
        """Set the mode. Ignored while the device is off."""
        with self._mutation_lock:
            if not self._state.is_on:
                return
            self._state.mode = mode

    def _enqueue(self, command: Command) -> None:
        if not self._command_queue.push(command):
            logger.warning(f"Dropped '{command.name}' command, queue is full")

    # ─── Accessors ──────────────────────────────────────────────────────────

    def accepts_commands(self) -> bool:
        """True when actual_speed has caught up with target_speed."""
        return self._state.accepts_commands()

    def is_on(self) -> bool:
        return self._state.is_on

    def get_mode(self) -> Mode:
        return self._state.mode

    def get_target_speed(self) -> int:
        return self._state.target_speed

    def get_actual_speed(self) -> int:
        return self._state.actual_speed

    def is_busy(self) -> bool:
        """True while commands are waiting to be sent."""
        return not self._command_queue.is_empty()

    def is_running(self) -> bool:
        return not self._shutdown.is_set()

    def snapshot(self) -> StateSnapshot:
        return self._state.snapshot()

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def command_queue(self) -> CommandQueue:
        return self._command_queue

    @property
    def link(self) -> Link:
        return self._link

    # ─── Serial I/O ─────────────────────────────────────────────────────────

    def handle_feedback(self, feedback: str) -> bool:
        """
        Apply one feedback line to actual_speed.

        Returns:
            True if the token was recognized
        """
        effect = FEEDBACK_EFFECTS.get(feedback)
        if effect is None:
            logger.warning(f"Unrecognized feedback from {self._link.name}: {feedback!r}")
            return False

        if effect.absolute:
            self._state.actual_speed = effect.value
        else:
            self._state.adjust_actual_speed(effect.value)
        return True

    def poll_receive(self) -> int:
        """
        Read whatever the device has sent and process complete lines.

        Returns:
            Number of complete lines processed
        """
        lines: list[str] = []
        while not lines:
            data = self._link.try_read()
            if data is None:
                break
            lines = self._line_buffer.feed(data)

        for feedback in lines:
            log_message = f"[{self._link.name} -> Host] {feedback}"
            logger.debug(log_message)
            wire_logger.debug("RX line=%s", feedback)
            self._events.log_device(log_message)
            self.handle_feedback(feedback)

        return len(lines)

    def poll_transmit(self) -> bool:
        """
        Send at most one queued command.

        Returns:
            True if a command was popped (whether or not the write succeeded)
        """
        command = self._command_queue.pop()
        if command is None:
            return False

        if not self._link.write(command.value):
            logger.warning(f"Dropped '{command.name}' while sending to {self._link.name}, ignoring")

        log_message = f"[Host -> {self._link.name}] {command}"
        logger.debug(log_message)
        wire_logger.debug("TX cmd=%s byte=%s", command.name, command)
        self._events.log_device(log_message)
        return True

    def _rx_loop(self) -> None:
        logger.info("Starting serial RX thread")
        while not self._shutdown.is_set():
            try:
                self.poll_receive()
            except Exception as e:
                logger.error(f"Serial RX error: {e}")
            self._shutdown.wait(self._poll_interval)
        logger.info("Serial RX thread stopped")

    def _tx_loop(self) -> None:
        logger.info("Starting serial TX thread")
        while not self._shutdown.is_set():
            try:
                self.poll_transmit()
            except Exception as e:
                logger.error(f"Serial TX error: {e}")
            self._shutdown.wait(self._poll_interval)
        logger.info("Serial TX thread stopped")


