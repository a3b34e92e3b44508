"""Map model, GID resolution and collision grids"""

from .structure import MapState, PlacedLayer, Tile, TileMap
from .tileset_atlas import GIDResolver, TextureRegionCache
from .collision import CollisionMap

__all__ = [
    "MapState",
    "PlacedLayer",
    "Tile",
    "TileMap",
    "GIDResolver",
    "TextureRegionCache",
    "CollisionMap",
]
