"""
Atlas handles and texture regions (uses PIL)

=============================================================================
WHAT IS AN ATLAS?
=============================================================================

An atlas is a single image holding many tile graphics in a regular grid.
The map core never decodes images itself. It only asks an atlas handle
for a sub-region described by a NORMALIZED rectangle:

    (0,0) -----------------> x (fraction of atlas width)
      |   +----+----+----+
      |   | 0  | 1  | 2  |
      |   +----+----+----+
      |   | 3  |[4] | 5  |     tile 4 = (1/3, 1/2, 1/3, 1/2)
      v   +----+----+----+
      y (fraction of atlas height)

Origin is the TOP-LEFT corner of the image, like PIL and most image
formats. A renderer with a bottom-left origin (OpenGL) flips V itself.

=============================================================================
IMAGE LOADERS
=============================================================================

An image loader is any callable taking a Tileset and returning an atlas
handle with a sub_region(rect) method. Two are provided:

- placeholder_loader: no I/O at all. Regions carry only geometry, which
  is enough for game logic and for tests.
- pillow_loader(base_dir): opens the atlas with PIL relative to
  base_dir and crops real region images.

=============================================================================
"""

import logging
from collections import namedtuple
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from PIL import Image

from tilemap_manager import Size, Tileset

logger = logging.getLogger(__name__)

NormalizedRect = namedtuple("NormalizedRect", ["x", "y", "width", "height"])


@dataclass(frozen=True)
class TextureRegion:
    """
    One tile's slice of an atlas.

    Parameters:
    -----------
    atlas : PlaceholderAtlas | ImageAtlas
        Handle the region was cut from
    rect : NormalizedRect
        Region in [0, 1] fractions of the atlas size
    size : Size
        Region size in pixels
    image : PIL.Image.Image, optional
        Cropped pixels (only for image-backed atlases)
    """
    atlas: Any
    rect: NormalizedRect
    size: Size
    image: Optional[Image.Image] = None

    @property
    def width(self) -> float:
        return self.size.width

    @property
    def height(self) -> float:
        return self.size.height


class PlaceholderAtlas:
    """
    Atlas handle that knows its name and size but holds no pixels.

    Suitable for loading a map without the images.
    """

    def __init__(self, image_name: str, size: Size):
        self.image_name = image_name
        self.size = Size(float(size.width), float(size.height))

    def sub_region(self, rect: NormalizedRect) -> TextureRegion:
        return TextureRegion(
            atlas=self,
            rect=rect,
            size=Size(rect.width * self.size.width, rect.height * self.size.height),
        )

    def __repr__(self):
        return f"<PlaceholderAtlas {self.image_name!r} {self.size.width:g}x{self.size.height:g}>"


class ImageAtlas:
    """
    Atlas handle backed by a PIL image.

    ==========================================================================
    CROPPING
    ==========================================================================

    The normalized rectangle is scaled back to pixels and cropped:

        left   = round(rect.x * width)
        top    = round(rect.y * height)
        right  = left + round(rect.width * width)
        bottom = top  + round(rect.height * height)

    PIL crop() takes (left, top, right, bottom) and returns a new image.
    ==========================================================================
    """

    def __init__(self, image: Image.Image, image_name: str = ""):
        # Ensure RGBA so every region has an alpha channel
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        self.image = image
        self.image_name = image_name
        self.size = Size(float(image.width), float(image.height))

    @classmethod
    def from_file(cls, filepath: Union[str, Path]) -> 'ImageAtlas':
        """
        Load an atlas from an image file.

        Supports any format PIL can read: PNG, JPEG, BMP, GIF, etc.
        """
        image = Image.open(str(filepath))
        return cls(image, Path(filepath).name)

    def sub_region(self, rect: NormalizedRect) -> TextureRegion:
        left = round(rect.x * self.size.width)
        top = round(rect.y * self.size.height)
        right = left + round(rect.width * self.size.width)
        bottom = top + round(rect.height * self.size.height)

        return TextureRegion(
            atlas=self,
            rect=rect,
            size=Size(rect.width * self.size.width, rect.height * self.size.height),
            image=self.image.crop((left, top, right, bottom)),
        )

    def __repr__(self):
        return f"<ImageAtlas {self.image_name!r} {self.size.width:g}x{self.size.height:g}>"


ImageLoader = Callable[[Tileset], Any]


def placeholder_loader(tileset: Tileset) -> PlaceholderAtlas:
    """Default image loader: geometry only, no file access."""
    return PlaceholderAtlas(tileset.image_name, tileset.image_size)


def pillow_loader(base_dir: Union[str, Path]) -> ImageLoader:
    """
    Build an image loader that opens atlases with PIL.

    Parameters:
    -----------
    base_dir : str or Path
        Directory that tileset image names are relative to. Usually the
        directory holding the map file.

    Example:
    --------
    ```python
    tilemap = TileMap.from_file("maps/level1.json",
                                image_loader=pillow_loader("maps"))
    ```
    """
    base_dir = Path(base_dir)

    def load(tileset: Tileset) -> ImageAtlas:
        atlas = ImageAtlas.from_file(base_dir / tileset.image_name)
        declared = (tileset.image_size.width, tileset.image_size.height)
        if (atlas.size.width, atlas.size.height) != declared:
            logger.warning("Atlas %s is %gx%g, tileset declares %dx%d",
                           tileset.image_name, atlas.size.width, atlas.size.height,
                           *declared)
        return atlas

    return load
