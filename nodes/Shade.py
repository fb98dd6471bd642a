"""Module for the Hunter Douglas PowerView Shade node in a Polyglot v3 NodeServer.

The Shade node is the device side of a PowerView shade: it turns the hub's
shade payloads into node drivers and turns ISY commands into position
requests for the Controller (the parent that talks to the hub).

(C) 2025 Stephen Jenkins
"""

# std libraries
from threading import RLock

# external libraries
import udi_interface

# personal libraries
from utils.commands import CommandRouter
from utils.shade_state import ShadeSnapshot, WindowShadeState
from utils.telemetry import TelemetryNormalizer

LOGGER = udi_interface.LOGGER


class Shade(udi_interface.Node):
    """Polyglot v3 NodeServer node for a Hunter Douglas PowerView Shade.

    Attributes:
        id (str): The Polyglot node ID for this shade type.

    Shade Capabilities (as reported by the Gen 2 hub):
        Type 0 - Standard (Bottom Up): open raises the single rail to 100.
        Type 6 - Top Down: the rail is inverted, open drives it to 0.
        Type 7 - Top-Down/Bottom-Up: two independent rails, the
            'openTopByDefault' parameter decides which rail opens.
        Any other value is treated as Top-Down/Bottom-Up.
    """
    id = 'shadeid'

    def __init__(self, poly, primary, address, name, sid):
        """Initializes the Shade node.

        Args:
            poly: The Polyglot interface object.
            primary: The address of the primary controller node.
            address: The address of this shade node.
            name: The name of this shade node.
            sid (str): The unique ID of the Hunter Douglas PowerView shade.
        """
        super().__init__(poly, primary, address, name)
        self.poly = poly
        self.primary = primary
        self.controller = poly.getNode(self.primary)
        self.address = address
        self.name = name
        self.sid = sid

        self.lpfx = f'{address}:{name}'
        self.snapshot = ShadeSnapshot()
        self._lock = RLock()
        self.normalizer = TelemetryNormalizer(self.sendEvent, self.refresh, self.lpfx)
        self.router = CommandRouter(self.controller, self)

        self.poly.subscribe(self.poly.START, self.start, address)


    def start(self):
        """Handles the startup sequence for the shade node.

        Restores the persisted snapshot, waits for the controller and asks
        for a first (non-forced) poll of the shade.
        """
        self.setDriver('GV0', self.sid, report=True, force=True)

        with self._lock:
            self.snapshot = ShadeSnapshot.from_dict(self.controller.get_shade_snapshot(self.sid))
            self._report_snapshot()

        # wait for controller start ready
        self.controller.ready_event.wait()
        self.refresh(False)


    def handleEvent(self, shade_json):
        """Applies a shade payload delivered by the controller.

        Args:
            shade_json (dict): The `shade` object from the hub.
        """
        with self._lock:
            self.snapshot = self.normalizer.handle_telemetry(shade_json, self.snapshot)
            self._report_snapshot()
            self.controller.save_shade_snapshot(self.sid, self.snapshot.to_dict())


    # normalized attribute -> driver
    _DRIVER_MAP = {
        'level': 'ST',
        'bottomPosition': 'GV2',
        'topPosition': 'GV3',
        'windowShadeState': 'GV4',
        'battery': 'BATLVL',
    }


    def sendEvent(self, name, value, unit=None):
        """Sets the driver backing a normalized attribute."""
        driver = self._DRIVER_MAP.get(name)
        if driver is None:
            LOGGER.error(f"shade {self.sid} no driver for event {name}")
            return
        if isinstance(value, WindowShadeState):
            LOGGER.debug(f"shade {self.sid} windowShade {value.label}")
            value = value.index
        self.setDriver(driver, value)


    def _report_snapshot(self):
        snapshot = self.snapshot
        if snapshot.raw_capabilities is not None:
            self.setDriver('GV5', snapshot.raw_capabilities)
        self.setDriver('GV6', int(snapshot.battery_status))
        if snapshot.shade_type is not None:
            self.setDriver('GV7', snapshot.shade_type)


    def refresh(self, force=True):
        """Asks the controller to poll this shade, physically when forced."""
        self.controller.pollShade(self, refresh=force)


    def cmdOpen(self, command = None):
        """Handles the 'Open' command from the ISY.

        Args:
            command (dict): The command payload from Polyglot.
        """
        LOGGER.info(f'cmd Shade Open {self.lpfx}, {command}')
        with self._lock:
            self.router.open_top_by_default = self.controller.open_top_by_default
            self.router.open(self.snapshot)
        self.reportCmd("OPEN", 2)
        LOGGER.debug(f"Exit {self.lpfx}")


    def cmdClose(self, command = None):
        """Handles the 'Close' command from the ISY.

        Args:
            command (dict): The command payload from Polyglot.
        """
        LOGGER.info(f'cmd Shade Close {self.lpfx}, {command}')
        with self._lock:
            self.router.close(self.snapshot)
        self.reportCmd("CLOSE", 2)
        LOGGER.debug(f"Exit {self.lpfx}")


    def _cmd_value(self, label, setter, command):
        LOGGER.info(f'cmd Shade {label} {self.lpfx}, {command}')
        if not command or command.get('value') is None:
            LOGGER.error(f"Shade {label} no value given")
            return False
        try:
            with self._lock:
                setter(command['value'])
            return True
        except (ValueError, TypeError, OverflowError) as ex:
            LOGGER.error(f"Shade {label} failed {self.lpfx}: {ex}", exc_info=True)
            return False


    def cmdSetpos(self, command = None):
        """Sets the shade level (single position) from the ISY."""
        self._cmd_value('Setpos', self.router.set_position, command)


    def cmdSetBottom(self, command = None):
        """Sets the bottom rail position from the ISY."""
        self._cmd_value('SetBottom', self.router.set_bottom_position, command)


    def cmdSetTop(self, command = None):
        """Sets the top rail position from the ISY."""
        self._cmd_value('SetTop', self.router.set_top_position, command)


    def cmdPreset(self, command = None):
        LOGGER.info(f'cmd Shade Preset {self.lpfx}, {command}')
        self.router.preset_position()


    def cmdJog(self, command = None):
        """Handles the 'Jog' command from the ISY."""
        LOGGER.info(f'cmd Shade Jog {self.lpfx}, {command}')
        self.router.jog()
        self.reportCmd("JOG", 2)


    def cmdCalibrate(self, command = None):
        """Handles the 'Calibrate' command from the ISY."""
        LOGGER.info(f'cmd Shade CALIBRATE {self.lpfx}, {command}')
        self.router.calibrate()


    def query(self, command = None):
        """Forces a physical refresh of the shade and reports all drivers.

        Args:
            command (dict, optional): The command payload from Polyglot.
                                      Defaults to None.
        """
        LOGGER.info(f'cmd Query {self.lpfx}, {command}')
        self.refresh(True)
        self.reportDrivers()
        LOGGER.debug(f"Exit {self.lpfx}")


    # UOMs:
    # 25: index
    # 51: percent
    # 100: A Level from 0-255 e.g. brightness of a dimmable lamp
    # 107: Raw 1-byte unsigned value
    #
    # Driver controls:
    # GV0: Custom Control 0 (Shade Id)
    # ST: Status (Level)
    # GV2: Custom Control 2 (Bottom Position)
    # GV3: Custom Control 3 (Top Position)
    # GV4: Custom Control 4 (Shade State: 0 closed, 1 open, 2 partially open)
    # GV5: Custom Control 5 (Capabilities)
    # GV6: Custom Control 6 (Battery Status)
    # GV7: Custom Control 7 (Shade Type)
    # BATLVL: Battery Level
    drivers = [
        {'driver': 'GV0', 'value': 0, 'uom': 107, 'name': "Shade Id"},
        {'driver': 'ST', 'value': None, 'uom': 100, 'name': "Level"},
        {'driver': 'GV2', 'value': None, 'uom': 100, 'name': "Bottom Position"},
        {'driver': 'GV3', 'value': None, 'uom': 100, 'name': "Top Position"},
        {'driver': 'GV4', 'value': 0, 'uom': 25, 'name': "Shade State"},
        {'driver': 'GV5', 'value': 0, 'uom': 25, 'name': "Capabilities"},
        {'driver': 'GV6', 'value': 0, 'uom': 25, 'name': "Battery Status"},
        {'driver': 'GV7', 'value': 0, 'uom': 107, 'name': "Shade Type"},
        {'driver': 'BATLVL', 'value': None, 'uom': 51, 'name': "Battery"},
        ]


    """
    Commands that this node can handle.
    Should match the 'accepts' section of the nodedef file.
    """
    commands = {
        'OPEN': cmdOpen,
        'CLOSE': cmdClose,
        'SETPOS': cmdSetpos,
        'SETBOT': cmdSetBottom,
        'SETTOP': cmdSetTop,
        'PRESET': cmdPreset,
        'CALIBRATE': cmdCalibrate,
        'JOG': cmdJog,
        'QUERY': query,
    }
