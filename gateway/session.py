"""
Session-authenticated synchronization with the remote gateway.

Classes:
    GatewaySession: Background thread that polls the gateway for tasks,
        applies them to the device controller and reports device state
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from gateway.client import GatewayClient, HttpResponse
from utils.events import EventSink
from utils.protocol import (
    ModeTask,
    PowerTask,
    Recognized,
    SpeedTask,
    Task,
    build_request,
    decode_error_body,
    decode_task,
    encode_state,
    parse_json_body,
)
from utils.rw_lock import ReadWriteLock

if TYPE_CHECKING:
    from device.controller import DeviceController

logger = logging.getLogger(__name__)


class GatewaySession(threading.Thread):
    """
    Background thread that keeps the remote gateway and the device in sync.

    Startup (connect): announce online status, then exchange the shared
    password for a rotating session password.

    Each poll cycle:
    1. POST /fetch and read the pending task list
    2. Apply each task to the controller (power, speed, mode)
    3. POST /setstate with a snapshot of the device state
    4. Wait update_interval_ms

    A failed cycle (bad status, undecodable body, malformed task list)
    applies nothing, reports nothing and waits error_retry_ms instead,
    which defaults to 0: the next fetch is attempted immediately.

    Offline status is announced once when the session shuts down.
    """

    def __init__(
        self,
        controller: DeviceController,
        client: GatewayClient,
        password: str,
        update_interval_ms: int = 500,
        error_retry_ms: int = 0,
        shutdown_event: threading.Event | None = None,
        event_sink: EventSink | None = None,
    ):
        """
        Initialize the gateway session.

        Args:
            controller: Device controller that tasks are applied to
            client: HTTPS client pointed at the gateway
            password: Shared password sent with every request
            update_interval_ms: Wait after a successful poll cycle
            error_retry_ms: Wait after a failed poll cycle (0 = retry at once)
            shutdown_event: Shared shutdown signal (a private one if omitted)
            event_sink: Receives gateway log lines
        """
        super().__init__(daemon=True, name="GatewaySession")
        self._controller = controller
        self._client = client
        self._password = password
        self._update_interval_ms = update_interval_ms
        self._error_retry_ms = error_retry_ms
        self._shutdown = shutdown_event or threading.Event()
        self._events = event_sink or EventSink()

        self._session_password = ""
        self._session_lock = ReadWriteLock()

        self._online_lock = threading.Lock()
        self._announced_online = False

    # ─── Accessors ──────────────────────────────────────────────────────────

    def get_session_password(self) -> str:
        with self._session_lock.read_locked():
            return self._session_password

    @property
    def client(self) -> GatewayClient:
        return self._client

    @property
    def update_interval_ms(self) -> int:
        return self._update_interval_ms

    @property
    def error_retry_ms(self) -> int:
        return self._error_retry_ms

    def is_running(self) -> bool:
        return self.is_alive() and not self._shutdown.is_set()

    # ─── Requests ───────────────────────────────────────────────────────────

    def check_status(self, response: HttpResponse | None, action: str) -> bool:
        """
        Check a response for HTTP 200, logging exactly one line otherwise.

        Args:
            response: Response from the client, or None if none was received
            action: What the request was for, used in the log line

        Returns:
            True if the response has status 200
        """
        if response is None:
            logger.error(f"Could not {action}: invalid response")
            return False

        if response.status == 200:
            return True

        decoded = decode_error_body(response.body)
        if isinstance(decoded, Recognized):
            message = f"Could not {action}: code {response.status}/{decoded.error}"
        else:
            message = f"Could not {action}: code {response.status}/{decoded.reason}"
        logger.error(message)
        self._events.log_gateway(message)
        return False

    def broadcast_is_online(self, is_online: bool) -> bool:
        """Report connectivity to the gateway."""
        response = self._client.post(
            "/setonline", build_request(self._password, is_online=is_online)
        )
        return self.check_status(response, "broadcast online status")

    def broadcast_state(self) -> bool:
        """Report a snapshot of the device state to the gateway."""
        state = encode_state(self._controller.snapshot())
        response = self._client.post(
            "/setstate", build_request(self._password, state=state)
        )
        return self.check_status(response, "broadcast state")

    def create_session(self) -> bool:
        """
        Exchange the shared password for a session password.

        Returns:
            True if a session password was received and stored
        """
        response = self._client.post("/newsession", build_request(self._password))
        if not self.check_status(response, "create session"):
            return False

        body = parse_json_body(response.body)
        if not isinstance(body, dict) or not isinstance(body.get("password"), str):
            logger.warning("Received invalid new session response")
            return False

        with self._session_lock.write_locked():
            self._session_password = body["password"]
        logger.info("Created new gateway session")
        self._events.log_gateway("Created new gateway session")
        return True

    # ─── Session lifecycle ──────────────────────────────────────────────────

    def connect(self) -> bool:
        """
        Announce online status and create the first session.

        Returns:
            False if no session could be created; the poll loop must not start
        """
        logger.info(f"Connecting to {self._client.address}:{self._client.port}")
        with self._online_lock:
            self._announced_online = True
        self.broadcast_is_online(True)
        return self.create_session()

    def reset_session(self) -> bool:
        """
        Drop the current session and request a new one.

        Not coordinated with the poll loop: a cycle running concurrently may
        observe the empty password while the new session is requested.
        """
        with self._session_lock.write_locked():
            self._session_password = ""

        logger.info("Resetting gateway session")
        self.broadcast_is_online(False)
        self.broadcast_is_online(True)
        return self.create_session()

    def _go_offline(self) -> None:
        with self._online_lock:
            if not self._announced_online:
                return
            self._announced_online = False
        self.broadcast_is_online(False)
        logger.info("Gateway session offline")

    # ─── Poll loop ──────────────────────────────────────────────────────────

    def apply_task(self, task: Task) -> None:
        """Dispatch one task to the controller."""
        if isinstance(task, PowerTask):
            self._controller.set_is_on(task.is_on)
        elif isinstance(task, SpeedTask):
            self._controller.set_speed(task.speed)
        elif isinstance(task, ModeTask):
            self._controller.set_mode(task.mode)

    def poll_once(self) -> bool:
        """
        Run one fetch/apply/report cycle.

        Returns:
            True if tasks were fetched and state was reported, False if the
            cycle was skipped
        """
        response = self._client.post("/fetch", build_request(self._password))
        if not self.check_status(response, "fetch tasks"):
            return False

        body = parse_json_body(response.body)
        if not isinstance(body, dict) or "tasks" not in body:
            logger.warning("Malformed response body")
            return False

        tasks = body["tasks"]
        if not isinstance(tasks, list):
            logger.warning("Tasks list must be an array")
            return False

        message = f"Fetched {len(tasks)} tasks from endpoint"
        logger.debug(message)
        self._events.log_gateway(message)

        for raw_task in tasks:
            task = decode_task(raw_task)
            if task is None:
                logger.warning(f"Skipping malformed task: {raw_task!r}")
                continue
            self.apply_task(task)

        self.broadcast_state()
        return True

    def next_delay(self, cycle_ok: bool) -> float:
        """Seconds to wait before the next cycle."""
        delay_ms = self._update_interval_ms if cycle_ok else self._error_retry_ms
        return max(0, delay_ms) / 1000

    def run(self) -> None:
        logger.info("Starting gateway client")
        try:
            while not self._shutdown.is_set():
                try:
                    cycle_ok = self.poll_once()
                except Exception as e:
                    logger.error(f"Gateway poll error: {e}")
                    cycle_ok = False

                delay = self.next_delay(cycle_ok)
                if delay > 0:
                    self._shutdown.wait(delay)
        finally:
            self._go_offline()

    def close(self, join_timeout: float = 15.0) -> None:
        """Stop the poll loop and announce offline status."""
        self._shutdown.set()
        if self.ident is not None:
            if self.is_alive():
                self.join(timeout=join_timeout)
        else:
            self._go_offline()
