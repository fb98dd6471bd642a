#!/usr/bin/env python3
"""
This is a Plugin/NodeServer for Polyglot v3 written in Python3
modified from v3 template version by (Bob Paauwe) bpaauwe@yahoo.com
It is an interface between HunterDouglas PowerView Gen 2 Shades and
Polyglot for EISY/Polisy

udi-HunterDouglas-Shade-pg3 NodeServer/Plugin for EISY/Polisy

(C) 2025 Stephen Jenkins

main loop
"""

# std libraries
import sys

# external libraries
from udi_interface import Interface, LOGGER
from nodes import Controller


VERSION = '1.1.0'
"""
1.1.0
DONE refresh requests always ask the hub for a physical refresh
DONE battery percent for rechargeable battery wands (max strength 170)
DONE poll retry when a result has no positions, at most once per 10 minutes
DONE debug logging turns off after 15 minutes

1.0.0
DONE initial release: open / close / level / bottom & top position, calibrate, jog
"""


def main():
    polyglot = None
    try:
        """
        Instantiates the Interface to Polyglot.
        """
        polyglot = Interface([])
        """
        Starts MQTT and connects to Polyglot.
        """
        polyglot.start(VERSION)

        """
        Creates the Controller Node and passes in the Interface, the node's
        parent address, node's address, and name/title
        """
        control = Controller(polyglot, 'hdctrl', 'hdctrl', 'HunterDouglas Shades')
        LOGGER.debug(f'Controller:{control}')

        """
        Sits around and does nothing forever, keeping your program running.
        """
        polyglot.runForever()
    except (KeyboardInterrupt, SystemExit):
        LOGGER.warning("Received interrupt or exit...")
        """
        Catch SIGTERM or Control-C and exit cleanly.
        """
        if polyglot is not None:
            polyglot.stop()
        sys.exit(0)
    except Exception as err:
        LOGGER.error(f'Excption: {err}', exc_info=True)
        sys.exit(0)


if __name__ == "__main__":
    main()
