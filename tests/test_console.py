"""Tests for the operator console."""

import io
import logging
import threading

import pytest

from device.console import ConsoleCommands, ConsoleThread
from device.controller import DeviceController
from utils.device_state import MAX_SPEED
from utils.protocol import Command


@pytest.fixture
def commands(controller):
    return ConsoleCommands(controller, drain_timeout=0.1)


class TestConsoleCommands:
    """Command dispatch table."""

    def test_names(self, commands):
        assert commands.names() == ["help", "exit", "power", "mode", "lower", "higher"]

    def test_power_toggles(self, commands, controller, drain):
        assert commands.dispatch("power\n") is True
        assert controller.is_on() is True
        commands.dispatch("power")
        assert controller.is_on() is False
        assert drain(controller) == [Command.ON, Command.OFF]

    def test_higher_requires_power(self, commands, controller, drain):
        commands.dispatch("higher")
        assert drain(controller) == []
        assert controller.get_target_speed() == 0

    def test_higher_and_lower(self, commands, controller, drain):
        commands.dispatch("power")
        commands.dispatch("higher")
        commands.dispatch("higher")
        commands.dispatch("lower")
        assert drain(controller) == [Command.ON, Command.HIGHER, Command.HIGHER, Command.LOWER]
        assert controller.get_target_speed() == 2

    def test_higher_stops_at_max(self, commands, controller, drain):
        controller.set_speed(MAX_SPEED)
        drain(controller)
        commands.dispatch("higher")
        assert drain(controller) == []
        assert controller.get_target_speed() == MAX_SPEED

    def test_lower_to_zero_turns_off(self, commands, controller, drain):
        commands.dispatch("power")
        commands.dispatch("lower")
        assert drain(controller) == [Command.ON, Command.OFF]
        assert controller.is_on() is False

    def test_lower_at_zero_ignored(self, commands, controller, drain):
        commands.dispatch("lower")
        assert drain(controller) == []

    def test_mode_requires_power(self, commands, controller, caplog):
        with caplog.at_level(logging.INFO, logger="device.console"):
            commands.dispatch("mode")
        assert "only works if the machine is on" in caplog.records[0].getMessage()

    def test_exit_powers_off_and_shuts_down(self, commands, controller, drain):
        commands.dispatch("power")
        drain(controller)
        commands.dispatch("exit")
        assert drain(controller) == [Command.OFF]
        assert controller.is_running() is False

    def test_unknown_command(self, commands, caplog):
        with caplog.at_level(logging.INFO, logger="device.console"):
            assert commands.dispatch("warp") is False
        assert "Unrecognized command, try help" in caplog.text

    def test_blank_line_ignored(self, commands, caplog):
        with caplog.at_level(logging.DEBUG, logger="device.console"):
            assert commands.dispatch("   \n") is False
        assert caplog.records == []

    def test_help_lists_every_command(self, commands, caplog):
        with caplog.at_level(logging.INFO, logger="device.console"):
            commands.dispatch("help")
        assert len(caplog.records) == len(commands.names())


class TestConsoleThread:
    """Reading commands from a stream."""

    def test_reads_until_exit(self, fake_link, drain):
        shutdown = threading.Event()
        controller = DeviceController(fake_link, shutdown_event=shutdown)
        commands = ConsoleCommands(controller, drain_timeout=0.1)
        stream = io.StringIO("power\nhigher\nexit\npower\n")
        ConsoleThread(commands, shutdown, stream=stream).run()
        # The trailing "power" is never read: exit set the shutdown event
        assert drain(controller) == [Command.ON, Command.HIGHER, Command.OFF]
        assert shutdown.is_set()

    def test_end_of_input_keeps_bridge_running(self, commands, controller):
        shutdown = threading.Event()
        thread = ConsoleThread(commands, shutdown, stream=io.StringIO("power\n"))
        thread.run()
        assert controller.is_on() is True
        assert not shutdown.is_set()
        assert controller.is_running() is True
