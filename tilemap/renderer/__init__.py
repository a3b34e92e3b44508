# ============================================
# tilemap/renderer/__init__.py
# ============================================
"""Atlas handles consumed by the map core"""

from .texture import (
    ImageAtlas,
    NormalizedRect,
    PlaceholderAtlas,
    TextureRegion,
    pillow_loader,
    placeholder_loader,
)

__all__ = [
    "ImageAtlas",
    "NormalizedRect",
    "PlaceholderAtlas",
    "TextureRegion",
    "pillow_loader",
    "placeholder_loader",
]
