"""
Models package

One module per table:
- platform.py
- game.py
- image.py
- metadata.py
"""

from .platform import Platform
from .game import Game
from .image import Image
from .metadata import MetadataRecord

__all__ = [
    "Platform",
    "Game",
    "Image",
    "MetadataRecord",
]
