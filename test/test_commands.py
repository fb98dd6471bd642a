"""Tests for the shade command router.

(C) 2025 Stephen Jenkins
"""

import pytest
from unittest.mock import Mock

from utils.commands import CommandRouter
from utils.shade_state import ShadeSnapshot


def snapshot_with(capabilities):
    snapshot = ShadeSnapshot()
    snapshot.set_capabilities(capabilities)
    return snapshot


@pytest.fixture
def parent():
    """Create a mock parent (controller)."""
    return Mock()


@pytest.fixture
def device():
    return Mock(sid="12345")


class TestOpenClose:
    """Tests for capability-aware open and close."""

    @pytest.mark.parametrize("caps,top_default,expected", [
        (0, False, {'position': 100}),
        (6, False, {'position': 0}),
        (7, False, {'bottomPosition': 100, 'topPosition': 0}),
        (7, True, {'bottomPosition': 0, 'topPosition': 100}),
        (3, False, {'bottomPosition': 100, 'topPosition': 0}),
        (None, True, {'bottomPosition': 0, 'topPosition': 100}),
    ])
    def test_open(self, parent, device, caps, top_default, expected):
        router = CommandRouter(parent, device, open_top_by_default=top_default)

        router.open(snapshot_with(caps))

        parent.setPosition.assert_called_once_with(device, expected)

    @pytest.mark.parametrize("caps,expected", [
        (0, {'position': 0}),
        (6, {'position': 100}),
        (7, {'bottomPosition': 0, 'topPosition': 0}),
        (42, {'bottomPosition': 0, 'topPosition': 0}),
    ])
    def test_close(self, parent, device, caps, expected):
        router = CommandRouter(parent, device)

        router.close(snapshot_with(caps))

        parent.setPosition.assert_called_once_with(device, expected)

    def test_close_ignores_open_top_flag(self, parent, device):
        router = CommandRouter(parent, device, open_top_by_default=True)

        router.close(snapshot_with(7))

        parent.setPosition.assert_called_once_with(device, {'bottomPosition': 0, 'topPosition': 0})

    def test_open_without_snapshot(self, parent, device):
        router = CommandRouter(parent, device)

        fields = router.open(None)

        assert fields == {'bottomPosition': 100, 'topPosition': 0}


class TestSetPositions:
    """Tests for the single-field position commands."""

    @pytest.mark.parametrize("value,expected", [(-5, 0), (150, 100), (42, 42)])
    def test_set_bottom_position_clamps(self, parent, device, value, expected):
        CommandRouter(parent, device).set_bottom_position(value)

        parent.setPosition.assert_called_once_with(device, {'bottomPosition': expected})

    def test_set_top_position(self, parent, device):
        CommandRouter(parent, device).set_top_position("101")

        parent.setPosition.assert_called_once_with(device, {'topPosition': 100})

    def test_set_position(self, parent, device):
        CommandRouter(parent, device).set_position(33.7)

        parent.setPosition.assert_called_once_with(device, {'position': 33})

    def test_bad_value_raises_without_sending(self, parent, device):
        with pytest.raises(ValueError):
            CommandRouter(parent, device).set_position("up")

        parent.setPosition.assert_not_called()


class TestPassThrough:
    """Tests for calibrate, jog and preset."""

    def test_calibrate(self, parent, device):
        CommandRouter(parent, device).calibrate()

        parent.calibrateShade.assert_called_once_with(device)

    def test_jog(self, parent, device):
        CommandRouter(parent, device).jog()

        parent.jogShade.assert_called_once_with(device)

    def test_preset_does_nothing(self, parent, device):
        CommandRouter(parent, device).preset_position()

        parent.setPosition.assert_not_called()
        parent.calibrateShade.assert_not_called()
        parent.jogShade.assert_not_called()
