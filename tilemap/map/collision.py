"""
Collision grid built from tile properties and object layers

=============================================================================
COLLISION DETECTION OVERVIEW
=============================================================================

Instead of checking entities against individual shapes, collision data
is stored in a 2D grid that mirrors the tile grid. Each cell holds a
uint16 flag word:

    Bit 0: Solid (blocks movement)
    Bit 1: Event (an object-layer area covers this cell)
    Bit 2-15: Reserved

Sources of flags:
- Tiles whose tileset properties contain solid=true
- Areas of an object layer (collision or event zones)

Point markers (objects of size 0x0) never mark cells; they are positions,
not areas.

=============================================================================
COORDINATES
=============================================================================

The grid uses SOURCE grid coordinates, like the document: data[row, column]
with row 0 at the top. Pixel conversions here are in the same y-down
space as object positions, not in the y-up placement space of TileMap.

=============================================================================
"""

import logging
import math
from typing import Dict, Set, Tuple

import numpy as np

from tilemap_manager import ObjectLayer
from ..errors import UnknownGIDError

logger = logging.getLogger(__name__)

SOLID = 1
EVENT = 2


class CollisionMap:
    """
    Collision flags parallel to a tile layer.

    ==========================================================================
    USAGE EXAMPLE
    ==========================================================================

    ```python
    collision = CollisionMap.from_tile_layer(tilemap, "walls")
    collision.mark_objects(tilemap.object_layer("triggers"),
                           tilemap.tile_size.width, tilemap.tile_size.height,
                           flags=EVENT)

    if collision.is_walkable(column, row):
        player.move(...)
    ```
    ==========================================================================
    """

    def __init__(self, width: int, height: int):
        """
        Parameters:
        -----------
        width : int
            Grid width in tiles (columns)
        height : int
            Grid height in tiles (rows)
        """
        self.W = width
        self.H = height

        # Shape: [rows, columns]; zeros = everything walkable
        self.data = np.zeros((self.H, self.W), dtype=np.uint16)

    @classmethod
    def from_tile_layer(cls, tilemap, layer_name: str,
                        property_name: str = 'solid') -> 'CollisionMap':
        """
        Build a collision map from a tile layer and tile properties.

        A cell is SOLID when its GID's tile has `property_name` set to
        true (a bool property or a "true" string).

        =======================================================================
        TWO-PHASE APPROACH
        =======================================================================

        Phase 1: Build the set of solid GIDs from every tileset.
            gid = key (or firstgid + key with local_tile_properties)

        Phase 2: Test the whole layer grid against that set at once
            with numpy (np.isin), instead of a Python loop per cell.

        =======================================================================
        """
        layer = tilemap.tile_layer(layer_name)
        collision = cls(layer.width, layer.height)

        # -----------------------------------------------------------------
        # PHASE 1: SOLID GIDS
        # -----------------------------------------------------------------
        solid_gids: Set[int] = set()
        for tileset in tilemap.tilesets:
            for key, properties in tileset.tile_properties.items():
                prop = properties.get(property_name)
                if prop is None or not prop.as_bool():
                    continue
                gid = tilemap.gid_for_property_key(tileset, key)
                if gid < 1:
                    continue
                try:
                    owner = tilemap.tileset_for_gid(gid)
                except UnknownGIDError:
                    continue
                # Entries outside the tileset's own GID range are never looked up
                if owner is tileset:
                    solid_gids.add(gid)

        # -----------------------------------------------------------------
        # PHASE 2: MARK CELLS
        # -----------------------------------------------------------------
        if solid_gids:
            grid = layer.grid()
            mask = np.isin(grid, np.fromiter(solid_gids, dtype=np.uint32))
            collision.data[mask] |= SOLID

        stats = collision.get_stats()
        logger.debug("Collision map for %r: %d solid of %d cells",
                     layer.name, stats['solid_tiles'], stats['total_tiles'])
        return collision

    def mark_objects(self, object_layer: ObjectLayer, tile_width: float,
                     tile_height: float, flags: int = SOLID) -> int:
        """
        Set flags on every cell covered by an area object.

        Object positions are relative to the layer, so the layer offset
        is added first. Invisible objects and point markers are skipped.

        Returns:
        --------
        int : Number of objects that marked at least one cell
        """
        marked = 0
        offset_x, offset_y = object_layer.position
        for obj in object_layer.objects:
            if obj.is_marker or not obj.visible:
                continue

            left = obj.position.x + offset_x
            top = obj.position.y + offset_y
            x0 = max(int(left // tile_width), 0)
            y0 = max(int(top // tile_height), 0)
            x1 = min(math.ceil((left + obj.size.width) / tile_width), self.W)
            y1 = min(math.ceil((top + obj.size.height) / tile_height), self.H)

            if x0 < x1 and y0 < y1:
                self.data[y0:y1, x0:x1] |= flags
                marked += 1
        return marked

    # =========================================================================
    # BASIC FLAG OPERATIONS
    # =========================================================================

    def set_flags(self, x: int, y: int, flags: int):
        """Set collision flags at a cell. Out-of-bounds writes are ignored."""
        if self._in_bounds(x, y):
            self.data[y, x] = flags

    def get_flags(self, x: int, y: int) -> int:
        """
        Get collision flags at a cell.

        Returns SOLID for out-of-bounds cells: the void around the map
        is never walkable.
        """
        if self._in_bounds(x, y):
            return int(self.data[y, x])
        return SOLID

    def is_solid(self, x: int, y: int) -> bool:
        return bool(self.get_flags(x, y) & SOLID)

    def is_walkable(self, x: int, y: int) -> bool:
        return not self.is_solid(x, y)

    def has_event(self, x: int, y: int) -> bool:
        return bool(self.get_flags(x, y) & EVENT)

    def _in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.W and 0 <= y < self.H

    # =========================================================================
    # COORDINATE CONVERSION
    # =========================================================================

    @staticmethod
    def pixel_to_tile(px: float, py: float,
                      tile_width: float, tile_height: float) -> Tuple[int, int]:
        """
        Convert y-down pixel coordinates to a grid cell.

        Floor division keeps negative positions off the map:
        -1 // 32 = -1 (not 0!)
        """
        return int(px // tile_width), int(py // tile_height)

    def can_move_to(self, px: float, py: float,
                    tile_width: float, tile_height: float) -> bool:
        """Point collision check in y-down pixel space."""
        return self.is_walkable(*self.pixel_to_tile(px, py, tile_width, tile_height))

    def get_stats(self) -> Dict[str, float]:
        total = self.W * self.H
        solid = int(np.count_nonzero(self.data & SOLID))
        return {
            'total_tiles': total,
            'solid_tiles': solid,
            'empty_tiles': total - solid,
            'solid_percent': (solid / total * 100) if total else 0.0,
        }
