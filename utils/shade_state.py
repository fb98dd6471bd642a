"""Shared state and payload types for a single PowerView shade.

Holds the per-device snapshot kept between telemetry passes, the closed
enumerations for the numeric codes the hub reports, and the typed view
of a Gen 2 shade payload.

(C) 2025 Stephen Jenkins
"""

# std libraries
import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum

G2_DIVR = 65535
POSITION_MIN = 0
POSITION_MAX = 100
POSKIND_BOTTOM = 1
POSKIND_TOP = 2


class Capabilities(IntEnum):
    """Rail configuration reported by the hub.

    Any value the hub reports outside of 0, 6 and 7 maps to UNKNOWN, which
    is routed like a Top-Down/Bottom-Up shade.
    """
    STANDARD = 0
    TOP_DOWN = 6
    TOP_DOWN_BOTTOM_UP = 7
    UNKNOWN = -1

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class BatteryStatus(IntEnum):
    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    PLUGGED_IN = 4

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class BatteryKind(IntEnum):
    UNKNOWN = 0
    HARDWIRED = 1
    BATTERY_WAND = 2
    RECHARGEABLE_WAND = 3


class WindowShadeState(Enum):
    """Tri-state shade classification; `index` is the PG3 driver value."""
    CLOSED = ('closed', 0)
    OPEN = ('open', 1)
    PARTIALLY_OPEN = ('partiallyOpen', 2)

    def __init__(self, label, index):
        self.label = label
        self.index = index

    @classmethod
    def from_position(cls, position):
        if position >= 99:
            return cls.OPEN
        if position > 0:
            return cls.PARTIALLY_OPEN
        return cls.CLOSED


def _to_int(value):
    """Best-effort int conversion of a telemetry field, None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def clamp_percent(value):
    """Truncates `value` to an int and clamps it into 0..100.

    Raises ValueError (also for NaN) or TypeError if `value` is not numeric.
    """
    pct = float(value)
    if math.isnan(pct):
        raise ValueError(f"not a number: {value}")
    return int(min(max(pct, POSITION_MIN), POSITION_MAX))


def raw_to_percent(raw, divr=G2_DIVR):
    """Converts a raw hub position (0..divr) to a rounded percentage."""
    pct = math.trunc((float(raw) * 100.0 / divr) + 0.5)
    return min(max(pct, POSITION_MIN), POSITION_MAX)


def percent_to_raw(pct, divr=G2_DIVR):
    return math.trunc((float(pct) / 100.0) * divr)


@dataclass
class ShadePositions:
    posKind1: int | None = None
    position1: int | None = None
    posKind2: int | None = None
    position2: int | None = None

    @classmethod
    def from_json(cls, positions):
        if not isinstance(positions, dict):
            return None
        return cls(
            posKind1=_to_int(positions.get('posKind1')),
            position1=_to_int(positions.get('position1')),
            posKind2=_to_int(positions.get('posKind2')),
            position2=_to_int(positions.get('position2')),
        )

    def slots(self):
        """Yields (posKind, position) for each slot that carries a kind."""
        for kind, position in ((self.posKind1, self.position1),
                               (self.posKind2, self.position2)):
            if kind:
                yield kind, position

    def is_empty(self):
        return all(v is None for v in
                   (self.posKind1, self.position1, self.posKind2, self.position2))


@dataclass
class ShadeTelemetry:
    """Typed view of a Gen 2 `shade` object, decoded once from JSON."""
    positions: ShadePositions | None = None
    batteryStrength: int | None = None
    batteryKind: int | None = None
    batteryStatus: int | None = None
    type: int | None = None
    capabilities: int | None = None

    @classmethod
    def from_json(cls, shade_json):
        if not isinstance(shade_json, dict):
            return cls()
        return cls(
            positions=ShadePositions.from_json(shade_json.get('positions')),
            batteryStrength=_to_int(shade_json.get('batteryStrength')),
            batteryKind=_to_int(shade_json.get('batteryKind')),
            batteryStatus=_to_int(shade_json.get('batteryStatus')),
            type=_to_int(shade_json.get('type')),
            capabilities=_to_int(shade_json.get('capabilities')),
        )

    @property
    def has_positions(self):
        return self.positions is not None and not self.positions.is_empty()


@dataclass
class ShadeSnapshot:
    """Per-shade record kept between telemetry passes."""
    capabilities: Capabilities | None = None
    shade_type: int | None = None
    battery_status: BatteryStatus = BatteryStatus.UNKNOWN
    last_poll_retry_at: str | None = None
    raw_capabilities: int | None = field(default=None, repr=False)

    def to_dict(self):
        return {
            'capabilities': self.raw_capabilities,
            'shadeType': self.shade_type,
            'batteryStatus': int(self.battery_status),
            'lastPollRetryAt': self.last_poll_retry_at,
        }

    @classmethod
    def from_dict(cls, data):
        snapshot = cls()
        if not data:
            return snapshot
        snapshot.set_capabilities(_to_int(data.get('capabilities')))
        snapshot.shade_type = _to_int(data.get('shadeType'))
        status = _to_int(data.get('batteryStatus'))
        if status is not None:
            snapshot.battery_status = BatteryStatus(status)
        snapshot.last_poll_retry_at = data.get('lastPollRetryAt')
        return snapshot

    def set_capabilities(self, value):
        self.raw_capabilities = value
        self.capabilities = None if value is None else Capabilities(value)
