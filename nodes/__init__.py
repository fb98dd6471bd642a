"""Node classes used by the HunterDouglas Shade Node Server."""

from .Shade import Shade
from .Controller import Controller

__all__ = [
    "Shade",
    "Controller",
]
