"""
JSON tile map loader

Requisitos:
    pip install numpy pillow
"""

from tilemap_manager import (
    MapObject, ObjectLayer, Orientation, Point, Property, Size, TileLayer, Tileset,
)
from .map.structure import MapState, PlacedLayer, Tile, TileMap
from .map.tileset_atlas import GIDResolver, TextureRegionCache
from .map.collision import CollisionMap
from .renderer.texture import (
    ImageAtlas, NormalizedRect, PlaceholderAtlas, TextureRegion,
    pillow_loader, placeholder_loader,
)
from .errors import (
    TileMapError,
    MalformedDocumentError,
    SchemaViolationError,
    UnknownOrientationError,
    DegenerateTilesetGeometryError,
    LayerNotFoundError,
    UnknownGIDError,
    TileDataMismatchError,
    MapNotLoadedError,
    MapAlreadyLoadedError,
)

__version__ = "1.0.0"
__all__ = [
    "TileMap",
    "MapState",
    "PlacedLayer",
    "Tile",
    "GIDResolver",
    "TextureRegionCache",
    "CollisionMap",
    "ImageAtlas",
    "NormalizedRect",
    "PlaceholderAtlas",
    "TextureRegion",
    "pillow_loader",
    "placeholder_loader",
    "MapObject",
    "ObjectLayer",
    "Orientation",
    "Point",
    "Property",
    "Size",
    "TileLayer",
    "Tileset",
    "TileMapError",
    "MalformedDocumentError",
    "SchemaViolationError",
    "UnknownOrientationError",
    "DegenerateTilesetGeometryError",
    "LayerNotFoundError",
    "UnknownGIDError",
    "TileDataMismatchError",
    "MapNotLoadedError",
    "MapAlreadyLoadedError",
]
