"""
deckmap - shortcut keymap service for rotary/touch control decks
"""

__version__ = "0.1.0"

from .controller import DeckmapController

__all__ = ["DeckmapController"]
