"""
Query-time errors of the tilemap package

Document-level failures (MalformedDocumentError, SchemaViolationError,
UnknownOrientationError, DegenerateTilesetGeometryError) are defined next
to the decoder in tilemap_manager and re-exported here, so callers can
catch everything from one place.

Query failures are local. The soft query API (get_tile_layer,
get_object_layer) catches LayerNotFoundError, logs it and returns an
empty result; the map stays usable.
"""

from tilemap_manager import (
    TileMapError,
    MalformedDocumentError,
    SchemaViolationError,
    UnknownOrientationError,
    DegenerateTilesetGeometryError,
)


class LayerNotFoundError(TileMapError, KeyError):
    """No layer with the requested name exists in that namespace."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"no {kind} with name {name!r}")

    def __str__(self):
        # KeyError would otherwise quote the whole message
        return self.args[0]


class UnknownGIDError(TileMapError, LookupError):
    """GID cannot be resolved against any registered tileset."""


class TileDataMismatchError(TileMapError, IndexError):
    """Tile layer holds fewer GIDs than width * height."""


class MapNotLoadedError(TileMapError, RuntimeError):
    """Query issued against a map that has not been loaded."""


class MapAlreadyLoadedError(TileMapError, RuntimeError):
    """load() called on a map that already holds a document."""


__all__ = [
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
