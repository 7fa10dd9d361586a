#!/usr/bin/env python3
"""
FoxControl bridge - drives a serial fan device from a remote HTTPS gateway.

Polls the gateway for power/speed/mode tasks, translates them into serial
commands for the device, and reports the device state back on every cycle.

Configuration is loaded from config/bridge_config.json (optional) and
overridden by command-line flags:
{
    "serial": {
        "device": "/dev/ttyUSB0",
        "baud_rate": 19200
    },
    "gateway": {
        "address": "control.example.com",
        "port": 443,
        "update_interval_ms": 500,
        "certificate": "./certificate.crt",
        "password": "secret"
    },
    "console": {"enabled": true},
    "led": {"red_bcm": 17, "green_bcm": 27, "blue_bcm": 22}
}

Usage:
    python3 -m gateway.server [config_file] [-d DEVICE] [-a ADDRESS] [-P PASSWORD]
"""

import argparse
import copy
import json
import logging
import signal
import sys
import threading
from pathlib import Path

from device.command_queue import CommandQueue
from device.console import ConsoleCommands, ConsoleThread
from device.controller import DeviceController
from device.serial_link import SerialLink, SerialLinkError
from gateway.client import GatewayClient
from gateway.session import GatewaySession
from utils.events import EventLog, EventSink, LedEventSink, MultiEventSink
from utils.led import RgbLed, parse_color
from utils.process_lock import DeviceBusyError, DeviceLock

__version__ = "1.5.0"

DEFAULT_CONFIG_PATH = "config/bridge_config.json"

DEFAULT_CONFIG = {
    "serial": {
        "device": None,
        "baud_rate": 19200,
        "read_timeout_sec": 0.1,
        "poll_interval_ms": 1,
        "max_queue_size": 128,
    },
    "gateway": {
        "address": None,
        "port": 443,
        "update_interval_ms": 500,
        "error_retry_ms": 0,
        "certificate": "./certificate.crt",
        "password": None,
        "timeout_sec": 10.0,
    },
    "console": {
        "enabled": True,
    },
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)
wire_logger = logging.getLogger("wire_debug")


# =============================================================================
# Configuration
# =============================================================================


def load_config(config_path: str) -> dict:
    """Load bridge configuration from JSON file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        return json.load(f)


def merge_config(base: dict, overrides: dict) -> dict:
    """Recursively merge overrides into a copy of base. None values are skipped."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def config_from_args(args: argparse.Namespace) -> dict:
    """Config overrides taken from command-line flags."""
    return {
        "serial": {
            "device": args.device,
            "baud_rate": args.rate,
        },
        "gateway": {
            "address": args.address,
            "port": args.port,
            "update_interval_ms": args.updaterate,
            "certificate": args.certificate,
            "password": args.password,
        },
        "console": {
            "enabled": False if args.no_console else None,
        },
    }


def missing_settings(config: dict) -> list[str]:
    """Names of required settings that are not configured."""
    required = [
        ("serial", "device"),
        ("gateway", "address"),
        ("gateway", "password"),
    ]
    return [
        f"{section}.{key}"
        for section, key in required
        if not config.get(section, {}).get(key)
    ]


# =============================================================================
# Event sinks
# =============================================================================


def build_event_sink(config: dict) -> tuple[EventSink, RgbLed | None]:
    """Build the event sink: an in-memory log, plus a status LED if configured."""
    sinks: list[EventSink] = [EventLog()]
    led = None
    led_config = config.get("led", {})

    if led_config:
        try:
            led = RgbLed(
                red_bcm=led_config.get("red_bcm", 17),
                green_bcm=led_config.get("green_bcm", 27),
                blue_bcm=led_config.get("blue_bcm", 22),
                common_anode=led_config.get("common_anode", True),
            )
            flash_color = parse_color(led_config.get("flash_color", "blue")) or (0, 0, 255)
            power_color = parse_color(led_config.get("power_color", [0, 32, 0])) or (0, 32, 0)
            sinks.append(
                LedEventSink(
                    led,
                    flash_color=flash_color,
                    flash_duration=led_config.get("flash_duration_sec", 0.05),
                    power_color=power_color,
                )
            )
            logger.info("LED initialized for flash-on-traffic")
        except Exception as e:
            logger.warning(f"Failed to initialize LED: {e}")
            led = None

    return MultiEventSink(sinks), led


# =============================================================================
# Main
# =============================================================================


def run_bridge(config: dict, wire_debug: bool = False) -> int:
    """
    Run the bridge until shutdown.

    Returns:
        Process exit status
    """
    if wire_debug:
        # Focused serial traffic logger with millisecond timestamps
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s.%(msecs)03d [WIRE] %(message)s", datefmt="%H:%M:%S"
            )
        )
        wire_logger.addHandler(handler)
        wire_logger.setLevel(logging.DEBUG)
        wire_logger.propagate = False
        wire_logger.debug("Wire debug mode active")

    serial_config = config.get("serial", {})
    gateway_config = config.get("gateway", {})
    console_config = config.get("console", {})

    shutdown = threading.Event()
    event_sink, led = build_event_sink(config)

    # Open the serial device; the bridge is useless without it
    link = SerialLink(
        serial_config["device"],
        baud_rate=serial_config.get("baud_rate", 19200),
        read_timeout=serial_config.get("read_timeout_sec", 0.1),
    )
    try:
        link.open()
    except SerialLinkError as e:
        logger.error(str(e))
        if led:
            led.close()
        return 1

    controller = DeviceController(
        link,
        shutdown_event=shutdown,
        command_queue=CommandQueue(max_size=serial_config.get("max_queue_size", 128)),
        event_sink=event_sink,
        poll_interval=serial_config.get("poll_interval_ms", 1) / 1000,
    )
    controller.start()

    console = None
    if console_config.get("enabled", True):
        console = ConsoleThread(ConsoleCommands(controller), shutdown)
        console.start()

    client = GatewayClient(
        gateway_config["address"],
        port=gateway_config.get("port", 443),
        certificate_path=gateway_config.get("certificate"),
        timeout=gateway_config.get("timeout_sec", 10.0),
    )
    session = GatewaySession(
        controller,
        client,
        password=gateway_config["password"],
        update_interval_ms=gateway_config.get("update_interval_ms", 500),
        error_retry_ms=gateway_config.get("error_retry_ms", 0),
        shutdown_event=shutdown,
        event_sink=event_sink,
    )

    if not session.connect():
        logger.error("Could not create gateway session, exiting")
        session.close()
        controller.close()
        if led:
            led.close()
        return 1

    session.start()

    def request_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        shutdown.set()

    signal.signal(signal.SIGTERM, request_shutdown)

    def reset_session(signum, frame):
        logger.info("Received SIGHUP signal - resetting gateway session")
        threading.Thread(target=session.reset_session, daemon=True, name="SessionReset").start()

    signal.signal(signal.SIGHUP, reset_session)
    logger.info("Signal handlers registered (SIGTERM=shutdown, SIGHUP=reset session)")

    try:
        while not controller.wait_for_shutdown(timeout=1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down...")
        shutdown.set()
        session.close()
        controller.close()
        if led:
            led.close()

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="FoxControl serial-to-gateway bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "config",
        nargs="?",
        default=None,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH} if present)",
    )
    parser.add_argument("-d", "--device", help="Serial device to connect to")
    parser.add_argument("-r", "--rate", type=int, help="Serial baud rate (default: 19200)")
    parser.add_argument("-a", "--address", help="Address of the HTTPS gateway")
    parser.add_argument("-p", "--port", type=int, help="Port of the HTTPS gateway (default: 443)")
    parser.add_argument(
        "-u", "--updaterate", type=int,
        help="Gateway fetch interval in milliseconds (default: 500)",
    )
    parser.add_argument(
        "-c", "--certificate",
        help="CA certificate for gateway requests (default: ./certificate.crt)",
    )
    parser.add_argument("-P", "--password", help="Password to authenticate against the gateway")
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-v", "--version", action="store_true", help="Show version information")
    parser.add_argument(
        "--wire-debug",
        action="store_true",
        help="Log every serial byte sent and line received with ms timestamps",
    )
    parser.add_argument(
        "--no-console",
        action="store_true",
        help="Do not read operator commands from stdin",
    )
    args = parser.parse_args()

    if args.version:
        logger.info(f"FoxControl Serial Server Version {__version__}")
        return

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    # Load configuration
    config_path = args.config
    if config_path is None and Path(DEFAULT_CONFIG_PATH).exists():
        config_path = DEFAULT_CONFIG_PATH

    file_config = {}
    if config_path is not None:
        try:
            file_config = load_config(config_path)
        except FileNotFoundError as e:
            logger.error(str(e))
            sys.exit(1)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid config file {config_path}: {e}")
            sys.exit(1)

    config = merge_config(merge_config(DEFAULT_CONFIG, file_config), config_from_args(args))

    missing = missing_settings(config)
    if missing:
        logger.error(f"Missing required settings: {', '.join(missing)}")
        sys.exit(1)

    device_lock = DeviceLock(config["serial"]["device"])
    try:
        device_lock.acquire()
    except DeviceBusyError as e:
        logger.error(f"{e}. Exiting.")
        sys.exit(1)

    sys.exit(run_bridge(config, wire_debug=args.wire_debug))


if __name__ == "__main__":
    main()
