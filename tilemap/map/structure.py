"""
Tile map model: loading, GID resolution and tile placement

=============================================================================
CONCEPTUAL OVERVIEW
=============================================================================

TileMap is the object game code talks to. It is built in one step from a
raw JSON document and then answers queries:

    raw bytes
        |  decode_document()          (tilemap_manager)
        v
    JSON tree
        |  parse_map_document()       (tilemap_manager)
        v
    MapDocument: layers, tilesets, properties
        |  image_loader(tileset)      (one atlas handle per tileset)
        v
    TileMap (LOADED)
        |  get_tile_layer("ground")
        v
    PlacedLayer: [Tile, Tile, ...] in row-major order

=============================================================================
LIFECYCLE
=============================================================================

A TileMap has exactly two states:

    UNLOADED  - constructed, nothing parsed
    LOADED    - document parsed, layers and tilesets published

load() builds everything in local variables first and only then assigns
it to the map. A failing document therefore leaves the map UNLOADED and
empty - never half populated. The model is read-only once LOADED; the
texture region cache is the only thing that still fills up.

=============================================================================
COORDINATE SYSTEM
=============================================================================

The source grid has row 0 at the TOP (y grows downward). Placements use
a y-UP screen space, and each tile is centered on its position:

    x = column * tilewidth - region_width / 2
    y = tileheight * map_height - row * tileheight - region_height / 2

Example: 10 rows of 32x32 tiles, cell (column=0, row=0):
    x = 0 - 16 = -16
    y = 320 - 0 - 16 = 304

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from tilemap_manager import (
    MalformedDocumentError,
    MapObject,
    ObjectLayer,
    Orientation,
    Point,
    Property,
    Size,
    TileLayer,
    Tileset,
    decode_document,
    parse_map_document,
)
from ..errors import (
    LayerNotFoundError,
    MapAlreadyLoadedError,
    MapNotLoadedError,
    TileDataMismatchError,
)
from ..renderer.texture import ImageLoader, TextureRegion, placeholder_loader
from .tileset_atlas import GIDResolver, TextureRegionCache

logger = logging.getLogger(__name__)


class MapState(Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"


@dataclass
class Tile:
    """
    A materialized tile: texture region plus placement.

    column/row are the grid cell the tile came from (None when the tile
    was built straight from a GID with tile_for_gid()).
    """
    gid: int
    region: TextureRegion
    position: Point = Point(0.0, 0.0)
    properties: Dict[str, Property] = field(default_factory=dict)
    column: Optional[int] = None
    row: Optional[int] = None


class PlacedLayer(list):
    """
    Ordered tile placements of one tile layer.

    A plain list of Tile in row-major scan order (the draw order), that
    also carries the layer's name, visibility and opacity.
    """

    def __init__(self, name: str = "", visible: bool = True, opacity: float = 1.0,
                 tiles=()):
        super().__init__(tiles)
        self.name = name
        self.visible = visible
        self.opacity = opacity

    def __repr__(self):
        return f"<PlacedLayer {self.name!r}: {len(self)} tiles>"


class TileMap:
    """
    Tile map built from a JSON map document.

    ==========================================================================
    USAGE EXAMPLE
    ==========================================================================

    ```python
    tilemap = TileMap.from_file("level.json")

    # Row-major placements for a renderer
    for tile in tilemap.get_tile_layer("Background"):
        draw(tile.region, tile.position)

    # Collision / event markers
    for obj in tilemap.get_object_layer("triggers"):
        if obj.is_marker:
            spawn_at(obj.position)
    ```

    ==========================================================================
    OPTIONS
    ==========================================================================

    image_loader : callable(Tileset) -> atlas
        Produces the atlas handle of each tileset. Defaults to
        placeholder_loader (no image files touched).
    strict_gids : bool
        Raise UnknownGIDError for GIDs below every firstgid instead of
        falling back to the first tileset.
    default_layer : str, optional
        Tile layer used by tile_at_grid()/tile_at_pixel() when no layer
        is given. Defaults to the first tile layer in the document.
    local_tile_properties : bool
        Look tile properties up by local index (gid - firstgid), the way
        Tiled writes "tileproperties", instead of by GID.

    ==========================================================================
    """

    def __init__(self, image_loader: ImageLoader = placeholder_loader,
                 strict_gids: bool = False, default_layer: Optional[str] = None,
                 local_tile_properties: bool = False):
        self.image_loader = image_loader
        self.strict_gids = strict_gids
        self.default_layer = default_layer.lower() if default_layer else None
        self.local_tile_properties = local_tile_properties

        self.state = MapState.UNLOADED

        # Map dimensions
        self.map_size = Size(0.0, 0.0)       # Width/height in tiles
        self.tile_size = Size(0.0, 0.0)      # Tile width/height in pixels
        self.orientation: Optional[Orientation] = None

        # Layers, keyed by lower-cased name. Separate namespaces.
        self.tile_layers: Dict[str, TileLayer] = {}
        self.object_layers: Dict[str, ObjectLayer] = {}
        self.tilesets: List[Tileset] = []
        self.properties: Dict[str, Property] = {}

        # First tile layer in document order
        self._first_tile_layer: Optional[str] = None

        self.resolver: Optional[GIDResolver] = None
        self.region_cache: Optional[TextureRegionCache] = None

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_bytes(cls, raw: Union[bytes, str], **options) -> 'TileMap':
        """Create and load a map in one step."""
        tilemap = cls(**options)
        tilemap.load(raw)
        return tilemap

    @classmethod
    def from_file(cls, filepath: Union[str, Path], **options) -> 'TileMap':
        """
        Read a .json map file and load it.

        Raises:
        -------
        MalformedDocumentError : If the file extension is not .json
        FileNotFoundError : If the file doesn't exist
        """
        filepath = Path(filepath)
        if filepath.suffix.lower() != '.json':
            raise MalformedDocumentError(
                f"tilemap is invalid data type: {filepath.suffix or '<none>'}")
        return cls.from_bytes(filepath.read_bytes(), **options)

    def load(self, raw: Union[bytes, str]):
        """
        Decode a document and publish its layers and tilesets.

        Parameters:
        -----------
        raw : bytes or str
            The JSON map document

        Raises:
        -------
        MalformedDocumentError, SchemaViolationError, UnknownOrientationError,
        DegenerateTilesetGeometryError : The map stays UNLOADED
        MapAlreadyLoadedError : The map already holds a document
        """
        if self.state is MapState.LOADED:
            raise MapAlreadyLoadedError("map is read-only once loaded")

        # -----------------------------------------------------------------
        # BUILD (nothing is assigned to self until this block succeeds)
        # -----------------------------------------------------------------
        map_doc = parse_map_document(decode_document(raw))

        for tileset in map_doc.tilesets:
            tileset.atlas = self.image_loader(tileset)
            logger.debug("Registered tileset %r firstgid=%d (%dx%d tiles)",
                         tileset.image_name, tileset.firstgid,
                         tileset.tiles_per_row, tileset.tiles_per_col)

        resolver = GIDResolver(map_doc.tilesets, strict=self.strict_gids)

        # -----------------------------------------------------------------
        # PUBLISH
        # -----------------------------------------------------------------
        self.map_size = Size(float(map_doc.width), float(map_doc.height))
        self.tile_size = Size(float(map_doc.tilewidth), float(map_doc.tileheight))
        self.orientation = map_doc.orientation
        self.properties = map_doc.properties
        self.tile_layers = map_doc.tile_layers
        self.object_layers = map_doc.object_layers
        self.tilesets = map_doc.tilesets
        self._first_tile_layer = next(iter(map_doc.tile_layers), None)
        self.resolver = resolver
        self.region_cache = TextureRegionCache(resolver)
        self.state = MapState.LOADED

        logger.info("Loaded %s map %dx%d: %d tile layers, %d object layers, %d tilesets",
                    self.orientation.value, map_doc.width, map_doc.height,
                    len(self.tile_layers), len(self.object_layers), len(self.tilesets))

    @property
    def is_loaded(self) -> bool:
        return self.state is MapState.LOADED

    def _require_loaded(self):
        if self.state is not MapState.LOADED:
            raise MapNotLoadedError("map has not been loaded")

    # =========================================================================
    # LAYER RECORDS
    # =========================================================================

    def tile_layer(self, name: str) -> TileLayer:
        """Tile layer record by (case-insensitive) name; raises LayerNotFoundError."""
        self._require_loaded()
        try:
            return self.tile_layers[name.lower()]
        except KeyError:
            raise LayerNotFoundError("tilelayer", name) from None

    def object_layer(self, name: str) -> ObjectLayer:
        """Object layer record by (case-insensitive) name; raises LayerNotFoundError."""
        self._require_loaded()
        try:
            return self.object_layers[name.lower()]
        except KeyError:
            raise LayerNotFoundError("objectlayer", name) from None

    # =========================================================================
    # GID RESOLUTION
    # =========================================================================

    def tileset_for_gid(self, gid: int) -> Tileset:
        self._require_loaded()
        return self.resolver.tileset_for_gid(gid)

    def region_for_gid(self, gid: int) -> TextureRegion:
        """Texture region of a GID, memoized in the map's region cache."""
        self._require_loaded()
        return self.region_cache.region_for_gid(gid)

    def tile_for_gid(self, gid: int) -> Tile:
        """
        Build an unplaced Tile for a GID.

        Properties come from the owning tileset's entry for the GID (or
        for its local index with local_tile_properties); tiles without an
        entry get {}.
        """
        region = self.region_for_gid(gid)
        tileset = self.resolver.tileset_for_gid(gid)
        properties = tileset.tile_properties.get(self.property_key(tileset, gid), {})
        return Tile(gid=gid, region=region, properties=dict(properties))

    def property_key(self, tileset: Tileset, gid: int) -> int:
        """Key of a GID in its tileset's tile_properties."""
        return gid - tileset.firstgid if self.local_tile_properties else gid

    def gid_for_property_key(self, tileset: Tileset, key: int) -> int:
        """Inverse of property_key()."""
        return key + tileset.firstgid if self.local_tile_properties else key

    # =========================================================================
    # MATERIALIZATION
    # =========================================================================

    def _place(self, gid: int, column: int, row: int) -> Tile:
        tile = self.tile_for_gid(gid)
        tile.column = column
        tile.row = row
        tile.position = Point(
            column * self.tile_size.width - tile.region.width / 2,
            self.tile_size.height * self.map_size.height
            - row * self.tile_size.height - tile.region.height / 2,
        )
        return tile

    def get_tile_layer(self, name: str) -> PlacedLayer:
        """
        Materialize a tile layer into positioned tiles.

        Walks the layer grid in row-major order (index = column + row * width)
        and emits one Tile per cell with GID >= 1. Empty cells are skipped.

        Parameters:
        -----------
        name : str
            Layer name (case-insensitive)

        Returns:
        --------
        PlacedLayer : Tiles in scan order. Empty if the layer doesn't exist
                      or the map is not loaded (a warning is logged, the
                      map is not touched).

        Raises:
        -------
        TileDataMismatchError : Layer data shorter than width * height
        """
        try:
            layer = self.tile_layer(name)
        except (LayerNotFoundError, MapNotLoadedError) as exc:
            logger.warning("Tilemap error: %s", exc)
            return PlacedLayer(name=name.lower())

        width, height = layer.width, layer.height
        expected = width * height
        if len(layer.tiles) < expected:
            raise TileDataMismatchError(
                f"tile layer {layer.name!r} has {len(layer.tiles)} GIDs, "
                f"{width}x{height} grid needs {expected}")
        if len(layer.tiles) > expected:
            logger.warning("Tile layer %r has %d GIDs beyond its %dx%d grid, ignoring them",
                           layer.name, len(layer.tiles) - expected, width, height)

        placed = PlacedLayer(name=layer.name, visible=layer.visible, opacity=layer.opacity)
        for row in range(height):
            for column in range(width):
                gid = layer.tiles[column + row * width]
                if gid < 1:
                    continue
                placed.append(self._place(gid, column, row))
        return placed

    def get_object_layer(self, name: str) -> List[MapObject]:
        """
        Objects of an object layer, in document order.

        Returns an empty list (and logs a warning) if the layer doesn't
        exist or the map is not loaded.
        """
        try:
            return list(self.object_layer(name).objects)
        except (LayerNotFoundError, MapNotLoadedError) as exc:
            logger.warning("Tilemap error: %s", exc)
            return []

    # =========================================================================
    # POINT QUERIES
    # =========================================================================

    def _query_layer(self, layer: Optional[str]) -> Optional[TileLayer]:
        name = layer or self.default_layer or self._first_tile_layer
        if name is None:
            return None
        return self.tile_layer(name)

    def tile_at_grid(self, column: int, row: int, layer: Optional[str] = None) -> Optional[Tile]:
        """
        Tile at a grid position.

        Parameters:
        -----------
        column, row : int
            Grid cell, row 0 at the top of the map
        layer : str, optional
            Tile layer to query (default: default_layer, else the first
            tile layer of the document)

        Returns:
        --------
        Tile or None : None for empty cells and positions outside the layer

        Raises:
        -------
        LayerNotFoundError : If an explicitly named layer doesn't exist
        """
        self._require_loaded()
        tile_layer = self._query_layer(layer)
        if tile_layer is None:
            return None

        gid = tile_layer.get_tile_gid(column, row)
        if gid < 1:
            return None
        return self._place(gid, column, row)

    def tile_at_pixel(self, x: float, y: float, layer: Optional[str] = None) -> Optional[Tile]:
        """
        Tile covering a point in placement (y-up) pixel space.

        This is the inverse of the placement formula: a tile placed at
        (column, row) with a region the size of the map's tiles covers

            x in [(column - 1) * tilewidth, column * tilewidth)
            y in [(map_height - row - 1) * tileheight, (map_height - row) * tileheight)

        so tile_at_pixel(*tile.position) returns the same cell.
        """
        self._require_loaded()
        column = int(x // self.tile_size.width) + 1
        row = int(self.map_size.height) - 1 - int(y // self.tile_size.height)
        return self.tile_at_grid(column, row, layer)
