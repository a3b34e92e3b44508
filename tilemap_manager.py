#!/usr/bin/env python3

"""
Module for decoding JSON tile maps (Tiled JSON map format)

=============================================================================
WHAT IS IN A JSON MAP?
=============================================================================

Tiled can export maps as JSON instead of TMX/XML. A JSON map describes:

- Map dimensions and tile sizes
- Tilesets (tile atlases plus per-tile custom properties)
- Layers (tile layers and object layers)

This module turns the raw document into typed records. It performs only
structural validation: a required field must be present and have the
expected type. Higher level behaviour (GID resolution, texture regions,
tile placement) lives in the tilemap package.

=============================================================================
JSON MAP STRUCTURE
=============================================================================

    {
        "width": 20, "height": 10,
        "tilewidth": 32, "tileheight": 32,
        "orientation": "orthogonal",
        "layers": [
            {"type": "tilelayer", "name": "Background",
             "width": 20, "height": 10, "x": 0, "y": 0,
             "opacity": 1, "visible": true,
             "data": [1, 2, 3, 0, 0, ...]},
            {"type": "objectgroup", "name": "Triggers",
             "width": 20, "height": 10, "x": 0, "y": 0,
             "opacity": 1, "visible": true,
             "objects": [{"name": "door", "x": 64, "y": 96,
                          "width": 32, "height": 32, "visible": true}]}
        ],
        "tilesets": [
            {"firstgid": 1, "image": "terrain.png",
             "imagewidth": 256, "imageheight": 256,
             "tilewidth": 32, "tileheight": 32,
             "margin": 0, "spacing": 0,
             "tileproperties": {"4": {"solid": "true"}},
             "tilepropertytypes": {"4": {"solid": "bool"}}}
        ]
    }

=============================================================================
GLOBAL TILE IDs (GIDs)
=============================================================================

Tiles are referenced by Global IDs (GIDs) across all tilesets:

    Tileset A (firstgid=1):   tiles 1-100
    Tileset B (firstgid=101): tiles 101-200

    GID 0 = empty tile (no graphic)
    GID 150 = tile 49 of tileset B (150 - 101 = 49)

Local tile index within tileset = GID - tileset.firstgid

=============================================================================
"""

import json
import logging
from collections import namedtuple
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)

Point = namedtuple("Point", ["x", "y"])
Size = namedtuple("Size", ["width", "height"])

TILE_LAYER = "tilelayer"
OBJECT_LAYER = "objectgroup"


# =============================================================================
# ERRORS
# =============================================================================
# All of these are structural: any of them aborts the whole map load.

class TileMapError(Exception):
    """Base class for every tile map error."""


class MalformedDocumentError(TileMapError, ValueError):
    """Raw input could not be decoded as a JSON map document."""


class SchemaViolationError(TileMapError, ValueError):
    """
    A required field is absent or has the wrong type.

    Attributes:
    -----------
    owner : str
        What was being read: "map", "layer 'ground'", "tileset #0", ...
    key : str
        The offending field name
    reason : str
        "missing", "not an integer", ...
    """

    def __init__(self, owner: str, key: str, reason: str = "missing"):
        self.owner = owner
        self.key = key
        self.reason = reason
        super().__init__(f"{owner}: field '{key}' is {reason}")


class UnknownOrientationError(TileMapError, ValueError):
    """Map orientation is not one of the supported values."""

    def __init__(self, orientation):
        self.orientation = orientation
        super().__init__(f"invalid tilemap orientation: {orientation!r}")


class DegenerateTilesetGeometryError(TileMapError, ValueError):
    """Tileset layout yields no usable tile cells."""


class Orientation(Enum):
    """Map projection. Only these two values are accepted."""
    ORTHOGONAL = "orthogonal"
    ISOMETRIC = "isometric"

    @classmethod
    def parse(cls, value: str) -> 'Orientation':
        try:
            return cls(value)
        except ValueError:
            raise UnknownOrientationError(value) from None


# =============================================================================
# FIELD ACCESS
# =============================================================================
# Every required field goes through these helpers so that a missing or
# mistyped value is always reported as SchemaViolationError naming the
# owner and the key.

def _require(node: dict, key: str, owner: str):
    if not isinstance(node, dict):
        raise SchemaViolationError(owner, key, "unreadable (node is not an object)")
    if key not in node or node[key] is None:
        raise SchemaViolationError(owner, key)
    return node[key]


def _require_int(node: dict, key: str, owner: str) -> int:
    value = _require(node, key, owner)
    # bool is a subclass of int, but "true" is never a size
    if isinstance(value, bool):
        raise SchemaViolationError(owner, key, "not an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise SchemaViolationError(owner, key, "not an integer")
    return value


def _require_number(node: dict, key: str, owner: str) -> float:
    value = _require(node, key, owner)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaViolationError(owner, key, "not a number")
    return float(value)


def _require_bool(node: dict, key: str, owner: str) -> bool:
    value = _require(node, key, owner)
    if not isinstance(value, bool):
        raise SchemaViolationError(owner, key, "not a boolean")
    return value


def _require_str(node: dict, key: str, owner: str) -> str:
    value = _require(node, key, owner)
    if not isinstance(value, str):
        raise SchemaViolationError(owner, key, "not a string")
    return value


def _require_list(node: dict, key: str, owner: str) -> list:
    value = _require(node, key, owner)
    if not isinstance(value, list):
        raise SchemaViolationError(owner, key, "not an array")
    return value


# =============================================================================
# PROPERTY CLASS
# =============================================================================

@dataclass
class Property:
    """
    Custom property attached to a map, layer, tile or object.

    The value is tagged with its type instead of being kept in an untyped
    container, so game code can dispatch on `type`:

    - string: Text value (default)
    - int: Integer number
    - float: Decimal number
    - bool: True/False
    - color: Color in #AARRGGBB format (kept as string)
    - file: File path reference (kept as string)
    - map: Nested attribute set, value is Dict[str, Property]

    ==========================================================================
    TYPE INFERENCE
    ==========================================================================

    Old Tiled JSON stores tile properties as plain JSON values, with the
    declared Tiled type kept separately in "tilepropertytypes". When a
    declared type is known, string values are converted like TMX does:

        {"solid": "true"} + {"solid": "bool"}  ->  Property("solid", "bool", True)

    Without a declared type the JSON value type decides.
    ==========================================================================
    """
    name: str                    # Property name (key)
    type: str = "string"         # Value type
    value: Any = None            # The actual value

    @classmethod
    def from_json(cls, name: str, value: Any, declared_type: Optional[str] = None,
                  owner: str = "properties") -> 'Property':
        """
        Build a property from a JSON value.

        Parameters:
        -----------
        name : str
            Property name
        value : Any
            Decoded JSON value
        declared_type : str, optional
            Tiled type name from a "*propertytypes" table
        owner : str
            Used in error messages
        """
        if declared_type is not None and isinstance(value, str):
            return cls(name=name, type=declared_type,
                       value=cls._convert(value, declared_type, owner, name))
        if declared_type in ('int', 'float', 'bool') and not isinstance(value, dict):
            return cls(name=name, type=declared_type,
                       value=cls._coerce(value, declared_type, owner, name))

        if isinstance(value, bool):
            return cls(name=name, type="bool", value=value)
        if isinstance(value, int):
            return cls(name=name, type="int", value=value)
        if isinstance(value, float):
            return cls(name=name, type="float", value=value)
        if isinstance(value, str):
            return cls(name=name, type=declared_type or "string", value=value)
        if isinstance(value, dict):
            nested = {key: cls.from_json(key, item, owner=f"{owner}.{name}")
                      for key, item in value.items()}
            return cls(name=name, type="map", value=nested)
        raise SchemaViolationError(owner, name, f"of unsupported type {type(value).__name__}")

    @staticmethod
    def _convert(value: str, declared_type: str, owner: str, name: str):
        try:
            if declared_type == 'int':
                return int(value)
            elif declared_type == 'float':
                return float(value)
            elif declared_type == 'bool':
                return value.lower() == 'true'
        except ValueError:
            raise SchemaViolationError(owner, name, f"not a valid {declared_type}") from None
        # string, color, file: keep as text
        return value

    @staticmethod
    def _coerce(value: Any, declared_type: str, owner: str, name: str):
        """Match a non-string JSON value to its declared numeric/bool type."""
        if declared_type == 'bool':
            if isinstance(value, bool):
                return value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            if declared_type == 'float':
                return float(value)
            if float(value).is_integer():
                return int(value)
        raise SchemaViolationError(owner, name, f"not a valid {declared_type}")

    def as_bool(self) -> bool:
        """Truth value, accepting "true"/"false" strings from untyped maps."""
        if isinstance(self.value, bool):
            return self.value
        return str(self.value).lower() == 'true'


def parse_properties(node: Union[dict, list, None], types: Optional[dict] = None,
                     owner: str = "properties") -> Dict[str, Property]:
    """
    Parse a property set.

    Accepts both encodings Tiled has used for JSON:
        {"solid": true, "damage": 10}                 (with optional types dict)
        [{"name": "solid", "type": "bool", "value": true}, ...]
    """
    properties: Dict[str, Property] = {}
    if types is not None and not isinstance(types, dict):
        raise SchemaViolationError(owner, "propertytypes", "not an object")
    if node is None:
        return properties

    if isinstance(node, dict):
        types = types or {}
        for name, value in node.items():
            properties[name] = Property.from_json(name, value, types.get(name), owner)
    elif isinstance(node, list):
        for entry in node:
            name = _require_str(entry, 'name', owner)
            properties[name] = Property.from_json(
                name, entry.get('value'), entry.get('type'), owner)
    else:
        raise SchemaViolationError(owner, "properties", "not an object")
    return properties


# =============================================================================
# LAYER CLASSES
# =============================================================================

@dataclass
class Layer:
    """
    Attributes shared by tile layers and object layers.

    size is in tiles, position is a pixel offset from the map origin.
    Names are lower-cased on ingestion so lookups are case-insensitive.
    """
    name: str = ""
    size: Size = Size(0.0, 0.0)
    position: Point = Point(0.0, 0.0)
    opacity: float = 1.0
    visible: bool = True
    properties: Dict[str, Property] = field(default_factory=dict)

    @staticmethod
    def _common_fields(node: dict) -> dict:
        """Read the fields every layer kind must carry."""
        name = _require_str(node, 'name', "layer").lower()
        owner = f"layer '{name}'"
        return dict(
            name=name,
            opacity=_require_number(node, 'opacity', owner),
            visible=_require_bool(node, 'visible', owner),
            size=Size(_require_number(node, 'width', owner),
                      _require_number(node, 'height', owner)),
            position=Point(_require_number(node, 'x', owner),
                           _require_number(node, 'y', owner)),
            properties=parse_properties(node.get('properties'),
                                        node.get('propertytypes'), owner),
        )

    @property
    def width(self) -> int:
        return int(self.size.width)

    @property
    def height(self) -> int:
        return int(self.size.height)


@dataclass
class TileLayer(Layer):
    """
    Tile layer - a grid of tile references.

    ==========================================================================
    TILE STORAGE
    ==========================================================================

    tiles is the flat GID list exactly as found in the document, row-major:

        index = column + row * width

    GID 0 = empty (no tile)
    GID > 0 = reference to a tileset tile

    The length is NOT checked here. A layer whose data is shorter than
    width * height is reported when it is materialized.
    ==========================================================================
    """
    tiles: List[int] = field(default_factory=list)

    @classmethod
    def from_json(cls, node: dict) -> 'TileLayer':
        """Parse tile layer from a JSON node."""
        layer = cls(**cls._common_fields(node))
        owner = f"layer '{layer.name}'"

        data = _require_list(node, 'data', owner)
        for gid in data:
            if isinstance(gid, bool) or not isinstance(gid, int):
                raise SchemaViolationError(owner, 'data', "not an array of integers")
        layer.tiles = list(data)
        return layer

    def get_tile_gid(self, column: int, row: int) -> int:
        """
        Get the GID of the tile at grid position (column, row).

        Returns 0 for positions outside the layer or beyond the stored data.
        """
        if 0 <= column < self.width and 0 <= row < self.height:
            index = column + row * self.width
            if index < len(self.tiles):
                return self.tiles[index]
        return 0

    def grid(self) -> np.ndarray:
        """
        GIDs as a 2D array indexed [row, column].

        Missing trailing cells are padded with 0, extra GIDs are dropped.
        """
        count = self.width * self.height
        flat = np.zeros(count, dtype=np.uint32)
        values = [max(gid, 0) for gid in self.tiles[:count]]
        flat[:len(values)] = values
        return flat.reshape((self.height, self.width))


@dataclass
class MapObject:
    """
    Object of an object layer.

    Objects describe collision areas, spawn points and event triggers.
    A size of (0, 0) marks a reference point rather than an area.

    Object properties are not read from the document; they start empty
    and can be filled in by game code.
    """
    name: str = ""
    size: Size = Size(0.0, 0.0)
    position: Point = Point(0.0, 0.0)
    visible: bool = True
    properties: Dict[str, Property] = field(default_factory=dict)

    @classmethod
    def from_json(cls, node: dict, owner: str) -> 'MapObject':
        return cls(
            name=_require_str(node, 'name', owner),
            size=Size(_require_number(node, 'width', owner),
                      _require_number(node, 'height', owner)),
            position=Point(_require_number(node, 'x', owner),
                           _require_number(node, 'y', owner)),
            visible=_require_bool(node, 'visible', owner),
        )

    @property
    def is_marker(self) -> bool:
        return self.size.width == 0 and self.size.height == 0


@dataclass
class ObjectLayer(Layer):
    """Object layer - free positioned markers and areas, in file order."""
    objects: List[MapObject] = field(default_factory=list)

    @classmethod
    def from_json(cls, node: dict) -> 'ObjectLayer':
        """Parse object layer from a JSON node."""
        layer = cls(**cls._common_fields(node))
        owner = f"layer '{layer.name}'"

        for index, obj_node in enumerate(_require_list(node, 'objects', owner)):
            layer.objects.append(MapObject.from_json(obj_node, f"{owner} object #{index}"))
        return layer


def build_layer(node: dict) -> Optional[Union[TileLayer, ObjectLayer]]:
    """
    Classify a raw layer node and build the matching record.

    Returns None for layer types other than "tilelayer" and
    "objectgroup" (image layers, groups, ...). Those are skipped, not
    treated as errors.
    """
    layer_type = _require(node, 'type', "layer")

    if layer_type == TILE_LAYER:
        return TileLayer.from_json(node)
    elif layer_type == OBJECT_LAYER:
        return ObjectLayer.from_json(node)

    logger.debug("Skipping layer %r of unsupported type %r", node.get('name'), layer_type)
    return None


# =============================================================================
# TILESET CLASS
# =============================================================================

@dataclass
class Tileset:
    """
    Tileset - one atlas image divided into a uniform grid of tiles.

    ==========================================================================
    SPACING AND MARGIN
    ==========================================================================

    margin = pixels around the EDGE of the entire image
    spacing = pixels BETWEEN tiles

    +--+===+===+===+--+
    |  | 0 | 1 | 2 |  |  <- margin
    +--+===+===+===+--+
    |  | 3 | 4 | 5 |  |
    +--+===+===+===+--+
         ^
         spacing between tiles

    Tiles per row/column follow from the image size:

        tiles_per_row = (imagewidth  - 2*margin + spacing) // (tilewidth  + spacing)
        tiles_per_col = (imageheight - 2*margin + spacing) // (tileheight + spacing)

    A layout that yields zero (or fewer) cells is rejected when the
    tileset is built, so no GID is ever resolved against it.

    ==========================================================================
    TILE PROPERTIES
    ==========================================================================

    tile_properties keeps the integer keys of "tileproperties" as they
    appear in the document. TileMap looks a tile up by its GID by default,
    or by its local index (gid - firstgid) with local_tile_properties=True.

    ==========================================================================
    """
    firstgid: int                                    # First Global ID
    image_name: str                                  # Atlas resource identifier
    image_size: Size                                 # Atlas size in pixels
    tile_size: Size                                  # Tile size in pixels
    margin: int = 0                                  # Pixels around edge
    spacing: int = 0                                 # Pixels between tiles
    name: str = ""                                   # Tileset name (optional)
    tile_properties: Dict[int, Dict[str, Property]] = field(default_factory=dict)
    atlas: Any = None                                # Set by the image loader

    @classmethod
    def from_json(cls, node: dict, index: int = 0) -> 'Tileset':
        """
        Parse a tileset from a JSON node.

        Parameters:
        -----------
        node : dict
            One entry of the "tilesets" array
        index : int
            Position in that array, for error messages
        """
        owner = f"tileset #{index}"
        tileset = cls(
            firstgid=_require_int(node, 'firstgid', owner),
            image_name=_require_str(node, 'image', owner),
            image_size=Size(_require_int(node, 'imagewidth', owner),
                            _require_int(node, 'imageheight', owner)),
            tile_size=Size(_require_int(node, 'tilewidth', owner),
                           _require_int(node, 'tileheight', owner)),
            margin=_require_int(node, 'margin', owner),
            spacing=_require_int(node, 'spacing', owner),
            name=node.get('name') or "",
        )
        tileset.validate_geometry()

        # -----------------------------------------------------------------
        # PER-TILE PROPERTIES
        # -----------------------------------------------------------------
        # Keys are integers encoded as strings: {"4": {...}}
        raw_properties = node.get('tileproperties') or {}
        raw_types = node.get('tilepropertytypes') or {}
        if not isinstance(raw_properties, dict):
            raise SchemaViolationError(owner, 'tileproperties', "not an object")
        if not isinstance(raw_types, dict):
            raise SchemaViolationError(owner, 'tilepropertytypes', "not an object")

        for key, props in raw_properties.items():
            try:
                tile_key = int(key)
            except ValueError:
                raise SchemaViolationError(
                    owner, 'tileproperties', f"keyed by non-integer {key!r}") from None
            if not isinstance(props, dict):
                raise SchemaViolationError(owner, 'tileproperties', "not an object of objects")
            types = raw_types.get(key)
            if types is not None and not isinstance(types, dict):
                raise SchemaViolationError(owner, 'tilepropertytypes', "not an object of objects")
            tileset.tile_properties[tile_key] = parse_properties(
                props, types, f"{owner} tile {tile_key}")

        return tileset

    def validate_geometry(self):
        """Raise DegenerateTilesetGeometryError if the atlas grid is unusable."""
        cell_w = self.tile_size.width + self.spacing
        cell_h = self.tile_size.height + self.spacing
        if cell_w <= 0 or cell_h <= 0:
            raise DegenerateTilesetGeometryError(
                f"tileset {self.image_name!r}: tile size plus spacing must be positive "
                f"(got {cell_w}x{cell_h})")
        if self.tiles_per_row <= 0 or self.tiles_per_col <= 0:
            raise DegenerateTilesetGeometryError(
                f"tileset {self.image_name!r}: layout has "
                f"{self.tiles_per_row}x{self.tiles_per_col} tiles "
                f"(image {self.image_size.width}x{self.image_size.height}, "
                f"margin {self.margin}, spacing {self.spacing})")

    @property
    def tiles_per_row(self) -> int:
        return ((self.image_size.width - self.margin * 2 + self.spacing)
                // (self.tile_size.width + self.spacing))

    @property
    def tiles_per_col(self) -> int:
        return ((self.image_size.height - self.margin * 2 + self.spacing)
                // (self.tile_size.height + self.spacing))

    def row_for_index(self, index: int) -> int:
        """Atlas row of a local tile index."""
        return index // self.tiles_per_row

    def col_for_index(self, index: int) -> int:
        """Atlas column of a local tile index."""
        return index % self.tiles_per_row


# =============================================================================
# DOCUMENT DECODING
# =============================================================================

def decode_document(raw: Union[bytes, bytearray, str]) -> Any:
    """
    Decode raw input into a JSON tree.

    Parameters:
    -----------
    raw : bytes, bytearray or str
        UTF-8 encoded JSON (a leading BOM is accepted)

    Returns:
    --------
    The decoded JSON value (normally a dict). No semantic checks.

    Raises:
    -------
    MalformedDocumentError : If the input is not valid UTF-8 JSON
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode('utf-8-sig')
        except UnicodeDecodeError as exc:
            raise MalformedDocumentError(f"map document is not UTF-8: {exc}") from exc
    elif isinstance(raw, str):
        text = raw
    else:
        raise MalformedDocumentError(f"cannot decode a map from {type(raw).__name__}")

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedDocumentError(f"map document is not valid JSON: {exc}") from exc


@dataclass
class MapDocument:
    """
    Fully parsed map - everything the document says, nothing derived.

    Produced by parse_map_document(); consumed by tilemap.TileMap which
    adds atlases, GID resolution and tile placement on top.
    """
    width: int                                       # Map width in tiles
    height: int                                      # Map height in tiles
    tilewidth: int                                   # Tile width in pixels
    tileheight: int                                  # Tile height in pixels
    orientation: Orientation = Orientation.ORTHOGONAL
    properties: Dict[str, Property] = field(default_factory=dict)
    tile_layers: Dict[str, TileLayer] = field(default_factory=dict)
    object_layers: Dict[str, ObjectLayer] = field(default_factory=dict)
    tilesets: List[Tileset] = field(default_factory=list)


def parse_map_document(document: Any) -> MapDocument:
    """
    Build a MapDocument from a decoded JSON tree.

    Any structural problem raises before a MapDocument exists, so callers
    never see a partially parsed map.
    """
    if not isinstance(document, dict):
        raise SchemaViolationError("map", "<root>", "not an object")

    # -----------------------------------------------------------------
    # MAP ATTRIBUTES
    # -----------------------------------------------------------------
    map_doc = MapDocument(
        width=_require_int(document, 'width', "map"),
        height=_require_int(document, 'height', "map"),
        tilewidth=_require_int(document, 'tilewidth', "map"),
        tileheight=_require_int(document, 'tileheight', "map"),
        orientation=Orientation.parse(_require(document, 'orientation', "map")),
        properties=parse_properties(document.get('properties'),
                                    document.get('propertytypes'), "map"),
    )
    # Pixel queries divide by the tile size
    for key in ('tilewidth', 'tileheight'):
        if getattr(map_doc, key) <= 0:
            raise SchemaViolationError("map", key, "not positive")

    # -----------------------------------------------------------------
    # LAYERS
    # -----------------------------------------------------------------
    # Tile layers and object layers live in separate namespaces.
    for node in _require_list(document, 'layers', "map"):
        layer = build_layer(node)
        if layer is None:
            continue

        namespace = (map_doc.tile_layers if isinstance(layer, TileLayer)
                     else map_doc.object_layers)
        if layer.name in namespace:
            logger.warning("Duplicate layer name %r, later layer replaces earlier one",
                           layer.name)
        namespace[layer.name] = layer

    # -----------------------------------------------------------------
    # TILESETS (file order is kept)
    # -----------------------------------------------------------------
    for index, node in enumerate(_require_list(document, 'tilesets', "map")):
        map_doc.tilesets.append(Tileset.from_json(node, index))

    return map_doc
