"""Normalizes Gen 2 shade telemetry into shade attributes.

(C) 2025 Stephen Jenkins
"""

# std libraries
import math
from datetime import datetime, timezone

# external libraries
import udi_interface

# personal libraries
from utils.shade_state import (
    BatteryKind,
    BatteryStatus,
    ShadeSnapshot,
    ShadeTelemetry,
    WindowShadeState,
    POSKIND_BOTTOM,
    raw_to_percent,
)
from utils.time import check_timedelta_iso, get_iso_utc_now

LOGGER = udi_interface.LOGGER

# a missing-position poll result is re-polled at most once per window
POLL_RETRY_MINUTES = 10

BATTERY_STRENGTH_MAX = 255
# rechargeable wands plateau well below 255
BATTERY_STRENGTH_MAX_RECHARGEABLE = 170


def battery_percent(strength, kind=None):
    """Converts raw battery strength to a 0-100 percentage for the battery kind."""
    ceiling = BATTERY_STRENGTH_MAX
    if kind == BatteryKind.RECHARGEABLE_WAND:
        ceiling = BATTERY_STRENGTH_MAX_RECHARGEABLE
    return max(min(math.floor(strength * 100 / ceiling), 100), 0)


class TelemetryNormalizer:
    """Turns a shade payload into attribute events and snapshot updates.

    Args:
        send_event (callable): called as send_event(name, value, unit=None)
            for every normalized attribute.
        refresh (callable): called as refresh(force) to ask the parent for
            a physical re-poll of the shade.
        name (str): label used in log lines.
    """

    def __init__(self, send_event, refresh, name=''):
        self.send_event = send_event
        self.refresh = refresh
        self.name = name


    def handle_telemetry(self, payload, snapshot=None, now=None):
        """Applies one telemetry payload.

        Args:
            payload (dict or ShadeTelemetry): the hub `shade` object.
            snapshot (ShadeSnapshot, optional): state from the previous pass;
                a new one is created on the first event.
            now (datetime, optional): aware UTC time used for retry suppression.

        Returns:
            ShadeSnapshot: the updated snapshot.
        """
        if snapshot is None:
            snapshot = ShadeSnapshot()
        if not isinstance(payload, ShadeTelemetry):
            LOGGER.debug(f"{self.name}: handleEvent shadeJson = {payload}")
            payload = ShadeTelemetry.from_json(payload)

        if payload.has_positions:
            for pos_kind, position in payload.positions.slots():
                self.update_position(position, pos_kind)
        else:
            self._retry_poll(snapshot, now)

        if payload.batteryStrength is not None:
            pct = battery_percent(payload.batteryStrength, payload.batteryKind)
            self.send_event('battery', pct, unit='%')

        if payload.batteryStatus is not None:
            snapshot.battery_status = BatteryStatus(payload.batteryStatus)
        if payload.type is not None:
            snapshot.shade_type = payload.type
        if payload.capabilities is not None:
            snapshot.set_capabilities(payload.capabilities)

        return snapshot


    def update_position(self, position, pos_kind):
        """Emits the position attribute for one slot, plus level and shade state."""
        if position is None:
            LOGGER.error(f"{self.name}: posKind {pos_kind} without a position, skipped")
            return None

        pct = raw_to_percent(position)
        event_name = 'bottomPosition' if pos_kind == POSKIND_BOTTOM else 'topPosition'
        LOGGER.debug(f"{self.name}: sending event {event_name} with value {pct}")

        self.send_event(event_name, pct)
        self.send_event('level', pct)

        shade_state = WindowShadeState.from_position(pct)
        self.send_event('windowShadeState', shade_state)
        return pct


    def _retry_poll(self, snapshot, now=None):
        """Re-polls the shade unless a retry happened within the window."""
        if now is None:
            now = datetime.now(timezone.utc)
        if not check_timedelta_iso(snapshot.last_poll_retry_at, POLL_RETRY_MINUTES, now):
            LOGGER.debug(f"{self.name}: event without position, retried at {snapshot.last_poll_retry_at}")
            return False

        LOGGER.debug(f"{self.name}: event didn't contain position, retrying poll")
        snapshot.last_poll_retry_at = get_iso_utc_now(now)
        self.refresh(True)
        return True
