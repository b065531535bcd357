"""
Control deck access: gateway, discovery, rendering and icons
"""

from .gateway import KNOB_IDS, ButtonDown, DeviceGateway, Disconnected, Rotate, StreamDeckGateway, TouchStart
from .icons import IconCache, IconResolver
from .manager import DeviceManager
from .renderer import ButtonRenderer

__all__ = [
    "KNOB_IDS",
    "ButtonDown",
    "ButtonRenderer",
    "DeviceGateway",
    "DeviceManager",
    "Disconnected",
    "IconCache",
    "IconResolver",
    "Rotate",
    "StreamDeckGateway",
    "TouchStart",
]
