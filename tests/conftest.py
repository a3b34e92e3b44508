import copy
import json
import pathlib
import sys

import pytest

# Ensure project root is in sys.path
repo_root = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from tilemap import TileMap  # noqa: E402


# Background layer (4x3), row-major:
#   row 0:  1   2   0   5
#   row 1:  0  66  11   0
#   row 2:  5   0  70   3
BACKGROUND = [1, 2, 0, 5,
              0, 66, 11, 0,
              5, 0, 70, 3]

BASE_DOCUMENT = {
    "width": 4,
    "height": 3,
    "tilewidth": 32,
    "tileheight": 32,
    "orientation": "orthogonal",
    "properties": {"music": "theme.ogg"},
    "layers": [
        {
            "type": "tilelayer", "name": "Background",
            "width": 4, "height": 3, "x": 0, "y": 0,
            "opacity": 1, "visible": True,
            "data": BACKGROUND,
        },
        {
            "type": "imagelayer", "name": "Sky", "image": "sky.png",
            "x": 0, "y": 0, "opacity": 1, "visible": True,
        },
        {
            "type": "tilelayer", "name": "Foreground",
            "width": 4, "height": 3, "x": 0, "y": 0,
            "opacity": 0.5, "visible": False,
            "data": [0, 0, 0, 0,
                     0, 12, 0, 0,
                     0, 0, 0, 0],
        },
        {
            "type": "objectgroup", "name": "Triggers",
            "width": 4, "height": 3, "x": 0, "y": 0,
            "opacity": 1, "visible": True,
            "objects": [
                {"name": "spawn", "x": 48, "y": 16, "width": 0, "height": 0, "visible": True},
                {"name": "door", "x": 64, "y": 32, "width": 32, "height": 32, "visible": True},
                {"name": "hidden", "x": 0, "y": 0, "width": 32, "height": 32, "visible": False},
            ],
        },
        {
            "type": "objectgroup", "name": "BACKGROUND",
            "width": 4, "height": 3, "x": 0, "y": 0,
            "opacity": 1, "visible": True,
            "objects": [],
        },
    ],
    "tilesets": [
        {
            # 8x8 grid of 32px tiles, GIDs 1..64; tileproperties keyed by GID
            "firstgid": 1, "name": "terrain", "image": "terrain.png",
            "imagewidth": 256, "imageheight": 256,
            "tilewidth": 32, "tileheight": 32,
            "margin": 0, "spacing": 0,
            "tileproperties": {
                "5": {"solid": "true", "kind": "wall"},
                "11": {"damage": 5},
            },
            "tilepropertytypes": {
                "5": {"solid": "bool", "kind": "string"},
            },
        },
        {
            # margin 1, spacing 2: 4x2 grid, GIDs 65..72
            "firstgid": 65, "name": "items", "image": "items.png",
            "imagewidth": 136, "imageheight": 70,
            "tilewidth": 32, "tileheight": 32,
            "margin": 1, "spacing": 2,
        },
    ],
}


@pytest.fixture
def document():
    """
    Provides a fresh, mutable copy of the sample map document.
    """
    return copy.deepcopy(BASE_DOCUMENT)


@pytest.fixture
def encode():
    """
    Serializes a document dict to raw UTF-8 bytes.
    """
    def _encode(doc):
        return json.dumps(doc).encode('utf-8')
    return _encode


@pytest.fixture
def tilemap(document, encode):
    """
    Provides a loaded TileMap built from the sample document.
    """
    return TileMap.from_bytes(encode(document))
