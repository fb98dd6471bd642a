"""Routes shade commands to the parent's set-position primitive.

(C) 2025 Stephen Jenkins
"""

# external libraries
import udi_interface

# personal libraries
from utils.shade_state import Capabilities, clamp_percent

LOGGER = udi_interface.LOGGER


class CommandRouter:
    """Capability-aware open/close plus clamped single-field positioning.

    Args:
        parent: object providing setPosition(device, fields),
            calibrateShade(device) and jogShade(device).
        device: the shade reference handed back to the parent.
        open_top_by_default (bool): on Top-Down/Bottom-Up shades, open by
            raising the top rail instead of the bottom rail.
    """

    def __init__(self, parent, device, open_top_by_default=False):
        self.parent = parent
        self.device = device
        self.open_top_by_default = open_top_by_default


    def _capabilities(self, snapshot):
        if snapshot is None or snapshot.capabilities is None:
            return Capabilities.UNKNOWN
        return snapshot.capabilities


    def open(self, snapshot):
        caps = self._capabilities(snapshot)
        if caps == Capabilities.STANDARD:
            fields = {'position': 100}
        elif caps == Capabilities.TOP_DOWN:
            fields = {'position': 0}
        elif self.open_top_by_default:
            fields = {'bottomPosition': 0, 'topPosition': 100}
        else:
            fields = {'bottomPosition': 100, 'topPosition': 0}
        LOGGER.info(f"open capabilities={caps.name} {fields}")
        self.parent.setPosition(self.device, fields)
        return fields


    def close(self, snapshot):
        caps = self._capabilities(snapshot)
        if caps == Capabilities.STANDARD:
            fields = {'position': 0}
        elif caps == Capabilities.TOP_DOWN:
            fields = {'position': 100}
        else:
            fields = {'bottomPosition': 0, 'topPosition': 0}
        LOGGER.info(f"close capabilities={caps.name} {fields}")
        self.parent.setPosition(self.device, fields)
        return fields


    def _set_field(self, name, value):
        fields = {name: clamp_percent(value)}
        LOGGER.info(f"set {fields}")
        self.parent.setPosition(self.device, fields)
        return fields


    def set_position(self, value):
        return self._set_field('position', value)


    def set_bottom_position(self, value):
        return self._set_field('bottomPosition', value)


    def set_top_position(self, value):
        return self._set_field('topPosition', value)


    def preset_position(self):
        LOGGER.info("presetPosition is not supported, ignored")


    def calibrate(self):
        self.parent.calibrateShade(self.device)


    def jog(self):
        self.parent.jogShade(self.device)
