"""
Stream Deck device discovery.

Enumerates the attached Stream Deck devices and opens the first one as a
:class:`~deckmap.device.gateway.StreamDeckGateway`.
"""

import logging
from typing import Any, Optional

from StreamDeck.DeviceManager import DeviceManager as StreamDeckManager

from ..config.schema import KEY_COUNT
from .gateway import StreamDeckGateway

logger = logging.getLogger(__name__)


class DeviceManager:
    """
    Finds and opens control decks.

    Enumeration runs on every ``discover()`` call so that a device plugged
    in after startup is found on the next attempt.
    """

    def __init__(self, key_count: int = KEY_COUNT):
        self.key_count = key_count
        self._stream_deck_manager = StreamDeckManager()

    def discover(self) -> Optional[Any]:
        """
        Find the first attached device.

        Returns:
            The raw device handle, or None if nothing is attached
        """
        try:
            available_decks = self._stream_deck_manager.enumerate()
        except OSError as e:
            logger.error(f"USB enumeration failed: {e}")
            return None

        if not available_decks:
            logger.debug("No Stream Deck devices detected during enumeration")
            return None
        return available_decks[0]

    def connect(self, deck) -> StreamDeckGateway:
        """
        Open a discovered device and wrap it in a gateway.

        Args:
            deck: Handle returned by ``discover()``

        Returns:
            Connected gateway

        Raises:
            OSError: On USB/HID communication errors
        """
        deck.open()
        # Clear whatever the previous owner left on the keys
        deck.reset()

        gateway = StreamDeckGateway(deck, key_count=self.key_count)
        logger.info(f"Connected to Stream Deck: {deck.deck_type()} ({deck.key_count()} keys)")
        return gateway
