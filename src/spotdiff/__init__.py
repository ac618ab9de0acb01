"""Spot-the-differences kiosk game with NFC card score synchronization."""

from typing import Final

__prog__: Final = "spotdiff"
__version__: Final = "0.1.0"
