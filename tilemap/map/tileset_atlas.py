"""
GID resolution and texture region caching

=============================================================================
FROM GID TO ATLAS REGION
=============================================================================

A GID (Global tile ID) identifies one tile across ALL tilesets of a map:

    Tileset A: firstgid=1   -> GIDs 1..49
    Tileset B: firstgid=50  -> GIDs 50..119
    Tileset C: firstgid=120 -> GIDs 120..

Resolving a GID takes three steps:

1. OWNER: the tileset with the largest firstgid that is <= gid
2. CELL:  local_index = gid - firstgid
          row = local_index // tiles_per_row
          col = local_index %  tiles_per_row
3. RECT:  normalized rectangle of that cell inside the atlas image

    x = ((spacing + tilewidth)  * col + margin) / imagewidth
    y = ((spacing + tileheight) * row + margin) / imageheight
    w = tilewidth  / imagewidth
    h = tileheight / imageheight

=============================================================================
CACHING STRATEGY
=============================================================================

Regions are resolved ON DEMAND and memoized per GID. The map's tilesets
never change after loading, so a cached region never goes stale and the
cache is never invalidated.

Only tiles that are actually used get a region, which keeps huge atlases
cheap when a map touches a handful of their tiles.

=============================================================================
"""

import logging
import threading
from typing import Dict, List, Tuple

from tilemap_manager import Tileset
from ..errors import UnknownGIDError
from ..renderer.texture import NormalizedRect, TextureRegion

logger = logging.getLogger(__name__)


class GIDResolver:
    """
    Maps global tile IDs to their tileset and atlas cell.

    ==========================================================================
    FALLBACK FOR UNOWNED GIDS
    ==========================================================================

    If no tileset has firstgid <= gid, the FIRST registered tileset is
    used. This permissive rule keeps maps with sloppy tileset ordering
    loading; pass strict=True to get UnknownGIDError instead.

    GID 0 (and anything below) never resolves: it means "no tile".
    ==========================================================================
    """

    def __init__(self, tilesets: List[Tileset], strict: bool = False):
        self.tilesets = tilesets
        self.strict = strict

    def tileset_for_gid(self, gid: int) -> Tileset:
        """
        Find which tileset owns a given GID.

        Parameters:
        -----------
        gid : int
            Global tile ID (must be >= 1)

        Returns:
        --------
        Tileset : The tileset with the tightest firstgid lower bound
        """
        if gid < 1:
            raise UnknownGIDError(f"GID {gid} denotes an empty cell and has no tileset")
        if not self.tilesets:
            raise UnknownGIDError(f"GID {gid}: map has no tilesets")

        owner = None
        for tileset in self.tilesets:
            if tileset.firstgid <= gid and (owner is None or tileset.firstgid > owner.firstgid):
                owner = tileset

        if owner is None:
            if self.strict:
                raise UnknownGIDError(f"GID {gid} is below every tileset's firstgid")
            owner = self.tilesets[0]
            logger.debug("GID %d is below every firstgid, using first tileset %r",
                         gid, owner.image_name)
        return owner

    def cell_for_gid(self, gid: int) -> Tuple[Tileset, int, int]:
        """Return (tileset, row, col) of the GID's cell in its atlas."""
        tileset = self.tileset_for_gid(gid)
        index = gid - tileset.firstgid
        return tileset, tileset.row_for_index(index), tileset.col_for_index(index)

    def rect_for_gid(self, gid: int) -> Tuple[Tileset, NormalizedRect]:
        """Return the owning tileset and the GID's normalized atlas rectangle."""
        tileset, row, col = self.cell_for_gid(gid)

        tw, th = tileset.tile_size
        iw, ih = tileset.image_size
        spacing = tileset.spacing
        margin = tileset.margin

        rect = NormalizedRect(
            x=((spacing + tw) * col + margin) / iw,
            y=((spacing + th) * row + margin) / ih,
            width=tw / iw,
            height=th / ih,
        )
        return tileset, rect


class TextureRegionCache:
    """
    Memoizes GID -> TextureRegion lookups.

    ==========================================================================
    CONCURRENT MATERIALIZATION
    ==========================================================================

    Two threads materializing different layers may miss on the same GID
    at once. Both compute the region (same inputs, same result); the
    store is serialized by a lock and the FIRST stored region wins, so
    every caller ends up holding the identical object.

    Lookups and both counters go through the same lock, so hits + misses
    always equals the number of successful calls.
    ==========================================================================
    """

    def __init__(self, resolver: GIDResolver):
        self.resolver = resolver
        self._regions: Dict[int, TextureRegion] = {}
        self._lock = threading.Lock()

        # Statistics, mostly for tests and profiling
        self.hits = 0
        self.misses = 0

    def region_for_gid(self, gid: int) -> TextureRegion:
        """
        Get the texture region for a GID, resolving it on first use.

        Raises:
        -------
        UnknownGIDError : For GID < 1, or unowned GIDs in strict mode
        """
        with self._lock:
            region = self._regions.get(gid)
            if region is not None:
                self.hits += 1
                return region

        # Resolved outside the lock; a concurrent miss may store first
        tileset, rect = self.resolver.rect_for_gid(gid)
        region = tileset.atlas.sub_region(rect)

        with self._lock:
            self.misses += 1
            region = self._regions.setdefault(gid, region)

        logger.debug("Resolved GID %d -> %s %s", gid, tileset.image_name, rect)
        return region

    def __contains__(self, gid: int) -> bool:
        return gid in self._regions

    def __len__(self) -> int:
        return len(self._regions)
