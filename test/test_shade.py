"""Tests for the Hunter Douglas PowerView Shade node module.

(C) 2025 Stephen Jenkins
"""

import pytest
from unittest.mock import Mock
from threading import Event

from nodes.Shade import Shade
from utils.shade_state import BatteryStatus, Capabilities, WindowShadeState


def make_shade(saved=None, open_top=False):
    """Create a Shade with mocked Polyglot and controller."""
    poly = Mock()
    poly.subscribe = Mock()
    poly.START = "START"
    poly.POLL = "POLL"
    poly.db_getNodeDrivers = Mock(return_value=[])

    controller = Mock()
    controller.ready_event = Event()
    controller.ready_event.set()
    controller.open_top_by_default = open_top
    controller.get_shade_snapshot = Mock(return_value=saved)
    poly.getNode = Mock(return_value=controller)

    shade = Shade(poly, "hdctrl", "shade12345", "Test Shade", "12345")
    shade.setDriver = Mock()
    shade.reportCmd = Mock()
    shade.reportDrivers = Mock()
    return shade


def driver_values(shade):
    """Returns the {driver: value} set on the shade (last value wins)."""
    return {c.args[0]: c.args[1] for c in shade.setDriver.call_args_list}


class TestShadeInit:
    """Tests for Shade initialization."""

    def test_init_creates_shade_node(self):
        """Test that Shade node initializes with correct attributes."""
        shade = make_shade()

        assert shade.primary == "hdctrl"
        assert shade.address == "shade12345"
        assert shade.name == "Test Shade"
        assert shade.sid == "12345"
        assert shade.lpfx == "shade12345:Test Shade"
        assert shade.snapshot.capabilities is None
        assert shade.router.parent is shade.controller
        assert shade.router.device is shade

    def test_init_subscribes_to_start(self):
        """Test that Shade subscribes to its START event."""
        shade = make_shade()

        shade.poly.subscribe.assert_called_once_with("START", shade.start, "shade12345")


class TestShadeStart:
    """Tests for Shade start method."""

    def test_start_restores_snapshot(self):
        """Test that start restores the saved snapshot and reports it."""
        shade = make_shade(saved={"capabilities": 6, "shadeType": 8, "batteryStatus": 2})

        shade.start()

        assert shade.snapshot.capabilities is Capabilities.TOP_DOWN
        drivers = driver_values(shade)
        assert drivers["GV0"] == "12345"
        assert drivers["GV5"] == 6
        assert drivers["GV6"] == 2
        assert drivers["GV7"] == 8

    def test_start_requests_first_poll(self):
        """Test that start asks the controller for a non-forced poll."""
        shade = make_shade()

        shade.start()

        shade.controller.pollShade.assert_called_once_with(shade, refresh=False)


class TestShadeHandleEvent:
    """Tests for applying shade payloads."""

    def test_positions_set_drivers(self):
        """Test that a payload with positions sets the position drivers."""
        shade = make_shade()

        shade.handleEvent({
            "capabilities": 7,
            "batteryStatus": 3,
            "batteryStrength": 255,
            "positions": {"posKind1": 1, "position1": 65535, "posKind2": 2, "position2": 0},
        })

        drivers = driver_values(shade)
        assert drivers["GV2"] == 100
        assert drivers["GV3"] == 0
        assert drivers["ST"] == 0
        assert drivers["GV4"] == WindowShadeState.CLOSED.index
        assert drivers["BATLVL"] == 100
        assert drivers["GV5"] == 7
        assert drivers["GV6"] == 3
        assert shade.snapshot.battery_status is BatteryStatus.HIGH

    def test_saves_snapshot(self):
        """Test that each payload saves the snapshot through the controller."""
        shade = make_shade()

        shade.handleEvent({"capabilities": 0, "positions": {"posKind1": 1, "position1": 0}})

        sid, saved = shade.controller.save_shade_snapshot.call_args.args
        assert sid == "12345"
        assert saved["capabilities"] == 0

    def test_missing_positions_forces_repoll_once(self):
        """Test that payloads without positions force at most one re-poll."""
        shade = make_shade()

        shade.handleEvent({"capabilities": 0})
        shade.handleEvent({"capabilities": 0})

        shade.controller.pollShade.assert_called_once_with(shade, refresh=True)
        assert shade.snapshot.last_poll_retry_at is not None

    def test_unknown_event_name_is_ignored(self):
        """Test that an event without a driver is not set."""
        shade = make_shade()

        shade.sendEvent("tilt", 5)

        shade.setDriver.assert_not_called()


class TestShadeCommands:
    """Tests for Shade command handlers."""

    def test_open_top_down(self):
        """Test that Open on a Top-Down shade drives the rail to 0."""
        shade = make_shade()
        shade.snapshot.set_capabilities(6)

        shade.cmdOpen({"cmd": "OPEN"})

        shade.controller.setPosition.assert_called_once_with(shade, {"position": 0})
        shade.reportCmd.assert_called_once_with("OPEN", 2)

    def test_open_uses_open_top_parameter(self):
        """Test that Open follows the controller's openTopByDefault."""
        shade = make_shade(open_top=True)
        shade.snapshot.set_capabilities(7)

        shade.cmdOpen()

        shade.controller.setPosition.assert_called_once_with(
            shade, {"bottomPosition": 0, "topPosition": 100})

    def test_close_standard(self):
        """Test that Close on a standard shade drives the rail to 0."""
        shade = make_shade()
        shade.snapshot.set_capabilities(0)

        shade.cmdClose()

        shade.controller.setPosition.assert_called_once_with(shade, {"position": 0})
        shade.reportCmd.assert_called_once_with("CLOSE", 2)

    def test_set_bottom_clamps(self):
        """Test that SETBOT clamps its value."""
        shade = make_shade()

        shade.cmdSetBottom({"cmd": "SETBOT", "value": "150", "uom": "100"})

        shade.controller.setPosition.assert_called_once_with(shade, {"bottomPosition": 100})

    def test_set_top(self):
        shade = make_shade()

        shade.cmdSetTop({"cmd": "SETTOP", "value": "-5"})

        shade.controller.setPosition.assert_called_once_with(shade, {"topPosition": 0})

    def test_setpos(self):
        shade = make_shade()

        shade.cmdSetpos({"cmd": "SETPOS", "value": "42"})

        shade.controller.setPosition.assert_called_once_with(shade, {"position": 42})

    @pytest.mark.parametrize("value,expected", [("inf", 100), ("1e999", 100), ("-inf", 0)])
    def test_setpos_infinite_value_is_clamped(self, value, expected):
        """Test that an infinite value is clamped like any other out-of-range value."""
        shade = make_shade()

        shade.cmdSetpos({"cmd": "SETPOS", "value": value})

        shade.controller.setPosition.assert_called_once_with(shade, {"position": expected})

    @pytest.mark.parametrize("command", [None, {}, {"cmd": "SETPOS"}, {"cmd": "SETPOS", "value": "abc"}, {"cmd": "SETPOS", "value": "nan"}])
    def test_setpos_bad_command_sends_nothing(self, command):
        """Test that a missing or non-numeric value is logged and dropped."""
        shade = make_shade()

        shade.cmdSetpos(command)

        shade.controller.setPosition.assert_not_called()

    def test_jog_and_calibrate(self):
        shade = make_shade()

        shade.cmdJog()
        shade.cmdCalibrate()

        shade.controller.jogShade.assert_called_once_with(shade)
        shade.controller.calibrateShade.assert_called_once_with(shade)
        shade.reportCmd.assert_called_once_with("JOG", 2)

    def test_preset_does_nothing(self):
        shade = make_shade()

        shade.cmdPreset()

        shade.controller.setPosition.assert_not_called()

    def test_query_forces_refresh(self):
        """Test that Query forces a physical refresh and reports drivers."""
        shade = make_shade()

        shade.query()

        shade.controller.pollShade.assert_called_once_with(shade, refresh=True)
        shade.reportDrivers.assert_called_once()

    def test_commands_map(self):
        assert set(Shade.commands) == {
            'OPEN', 'CLOSE', 'SETPOS', 'SETBOT', 'SETTOP', 'PRESET', 'CALIBRATE', 'JOG', 'QUERY'}
