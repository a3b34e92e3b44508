import json
import logging

import pytest

from tilemap import (
    LayerNotFoundError,
    MalformedDocumentError,
    MapAlreadyLoadedError,
    MapNotLoadedError,
    MapState,
    Orientation,
    Point,
    SchemaViolationError,
    Size,
    TileDataMismatchError,
    TileMap,
    UnknownGIDError,
    UnknownOrientationError,
)

BACKGROUND_GIDS = [1, 2, 5, 66, 11, 5, 70, 3]


# --- Loading ---


def test_loaded_map_attributes(tilemap):
    assert tilemap.state is MapState.LOADED
    assert tilemap.is_loaded
    assert tilemap.map_size == Size(4.0, 3.0)
    assert tilemap.tile_size == Size(32.0, 32.0)
    assert tilemap.orientation is Orientation.ORTHOGONAL
    assert tilemap.properties["music"].value == "theme.ogg"
    assert [t.firstgid for t in tilemap.tilesets] == [1, 65]


def test_tile_size_keeps_width_and_height_apart(document, encode):
    document["tilewidth"] = 16
    document["tileheight"] = 24
    tilemap = TileMap.from_bytes(encode(document))
    assert tilemap.tile_size == Size(16.0, 24.0)


def test_load_logs_summary(document, encode, caplog):
    with caplog.at_level(logging.INFO, logger="tilemap.map.structure"):
        TileMap.from_bytes(encode(document))
    assert "2 tile layers, 2 object layers, 2 tilesets" in caplog.text


def test_failed_load_leaves_map_unloaded(document, encode):
    document["orientation"] = "staggered"
    tilemap = TileMap()

    with pytest.raises(UnknownOrientationError):
        tilemap.load(encode(document))

    assert tilemap.state is MapState.UNLOADED
    assert tilemap.tile_layers == {}
    assert tilemap.object_layers == {}
    assert tilemap.tilesets == []
    assert tilemap.region_cache is None


def test_map_can_load_after_a_failed_attempt(document, encode):
    tilemap = TileMap()
    with pytest.raises(MalformedDocumentError):
        tilemap.load(b'{"width": ')

    tilemap.load(encode(document))
    assert tilemap.is_loaded


def test_loaded_map_rejects_second_load(tilemap, document, encode):
    with pytest.raises(MapAlreadyLoadedError):
        tilemap.load(encode(document))


def test_strict_queries_on_unloaded_map_raise():
    tilemap = TileMap()
    with pytest.raises(MapNotLoadedError):
        tilemap.tile_layer("background")
    with pytest.raises(MapNotLoadedError):
        tilemap.object_layer("triggers")
    with pytest.raises(MapNotLoadedError):
        tilemap.tile_at_grid(0, 0)
    with pytest.raises(MapNotLoadedError):
        tilemap.region_for_gid(1)


def test_layer_getters_on_unloaded_map_are_soft(caplog):
    tilemap = TileMap()
    with caplog.at_level(logging.WARNING, logger="tilemap.map.structure"):
        placed = tilemap.get_tile_layer("background")
        objects = tilemap.get_object_layer("triggers")

    assert placed == []
    assert placed.name == "background"
    assert objects == []
    assert "Tilemap error: map has not been loaded" in caplog.text


def test_layer_getters_after_failed_load_are_soft(document, encode, caplog):
    document["orientation"] = "hexagonal"
    tilemap = TileMap()
    with pytest.raises(UnknownOrientationError):
        tilemap.load(encode(document))

    with caplog.at_level(logging.WARNING, logger="tilemap.map.structure"):
        assert tilemap.get_tile_layer("background") == []
        assert tilemap.get_object_layer("triggers") == []
    assert tilemap.state is MapState.UNLOADED
    assert "Tilemap error" in caplog.text


def test_from_str(document):
    assert TileMap.from_bytes(json.dumps(document)).is_loaded


def test_from_file(document, encode, tmp_path):
    path = tmp_path / "level.JSON"
    path.write_bytes(encode(document))
    assert TileMap.from_file(path).is_loaded
    assert TileMap.from_file(str(path)).is_loaded


def test_from_file_rejects_other_extensions(tmp_path):
    path = tmp_path / "level.tmx"
    path.write_text("<map/>")
    with pytest.raises(MalformedDocumentError):
        TileMap.from_file(path)


def test_from_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        TileMap.from_file(tmp_path / "missing.json")


# --- Tile layer materialization ---


def test_layer_emits_one_tile_per_non_empty_cell(tilemap):
    placed = tilemap.get_tile_layer("Background")

    assert len(placed) == 8
    assert [tile.gid for tile in placed] == BACKGROUND_GIDS


def test_tiles_come_out_in_row_major_order(tilemap):
    cells = [(tile.row, tile.column) for tile in tilemap.get_tile_layer("background")]
    assert cells == sorted(cells)
    assert cells[0] == (0, 0)
    assert cells[-1] == (2, 3)


def test_layer_lookup_is_case_insensitive(tilemap):
    assert len(tilemap.get_tile_layer("BACKGROUND")) == 8


def test_placed_layer_carries_layer_attributes(tilemap):
    placed = tilemap.get_tile_layer("foreground")

    assert placed.name == "foreground"
    assert placed.visible is False
    assert placed.opacity == 0.5
    assert [(t.gid, t.column, t.row) for t in placed] == [(12, 1, 1)]


def test_placement_is_centered_and_y_up(tilemap):
    first = tilemap.get_tile_layer("background")[0]
    # 3 rows of 32px: y = 96 - 0 - 16
    assert first.position == Point(-16.0, 80.0)
    assert first.region.size == Size(32.0, 32.0)


def test_placement_of_top_left_cell_in_tall_map(document, encode):
    document["height"] = 10
    document["layers"] = [{
        "type": "tilelayer", "name": "tall", "width": 1, "height": 10,
        "x": 0, "y": 0, "opacity": 1, "visible": True,
        "data": [1] + [0] * 9,
    }]
    placed = TileMap.from_bytes(encode(document)).get_tile_layer("tall")

    assert len(placed) == 1
    assert placed[0].position == Point(-16.0, 304.0)


def test_placement_uses_region_size_of_other_tilesets(tilemap):
    placed = tilemap.get_tile_layer("background")
    item = next(tile for tile in placed if tile.gid == 66)

    assert item.region.width == pytest.approx(32.0)
    assert item.position.x == pytest.approx(32 * 1 - 16)
    assert item.position.y == pytest.approx(96 - 32 * 1 - 16)


def test_empty_and_negative_cells_are_skipped(document, encode):
    document["layers"][0]["data"] = [0, -1, 0, 0,
                                     0, 0, 7, 0,
                                     -5, 0, 0, 0]
    placed = TileMap.from_bytes(encode(document)).get_tile_layer("background")
    assert [(t.gid, t.column, t.row) for t in placed] == [(7, 2, 1)]


def test_tile_properties_are_looked_up_by_gid(tilemap):
    placed = tilemap.get_tile_layer("background")
    by_gid = {tile.gid: tile for tile in placed}

    assert by_gid[5].properties["solid"].value is True
    assert by_gid[5].properties["kind"].value == "wall"
    assert by_gid[11].properties["damage"].value == 5
    assert by_gid[1].properties == {}
    assert by_gid[66].properties == {}


def two_tile_document(document):
    document["width"], document["height"] = 2, 1
    document["layers"] = [{
        "type": "tilelayer", "name": "row", "width": 2, "height": 1,
        "x": 0, "y": 0, "opacity": 1, "visible": True, "data": [1, 2],
    }]
    document["tilesets"] = [dict(document["tilesets"][0],
                                 tileproperties={"1": {"solid": True}},
                                 tilepropertytypes={})]
    return document


def test_property_key_is_the_gid_itself(document, encode):
    placed = TileMap.from_bytes(encode(two_tile_document(document))).get_tile_layer("row")

    first, second = placed
    assert first.properties["solid"].value is True
    assert second.properties == {}


def test_local_tile_properties_option(document, encode):
    raw = encode(two_tile_document(document))
    placed = TileMap.from_bytes(raw, local_tile_properties=True).get_tile_layer("row")

    first, second = placed
    assert first.properties == {}
    assert second.properties["solid"].value is True


def test_local_tile_properties_with_later_firstgid(document, encode):
    # items tileset: firstgid 65, local index 1 is GID 66
    document["tilesets"][1]["tileproperties"] = {"1": {"shiny": True}}
    tilemap = TileMap.from_bytes(encode(document), local_tile_properties=True)

    assert tilemap.tile_for_gid(66).properties["shiny"].value is True
    assert tilemap.tile_for_gid(65).properties == {}
    assert tilemap.tile_for_gid(6).properties["solid"].value is True


def test_missing_layer_is_soft(tilemap, caplog):
    with caplog.at_level(logging.WARNING, logger="tilemap.map.structure"):
        placed = tilemap.get_tile_layer("nothing")

    assert placed == []
    assert placed.name == "nothing"
    assert "Tilemap error" in caplog.text
    assert "nothing" in caplog.text
    # The map is still usable afterwards
    assert len(tilemap.get_tile_layer("background")) == 8


def test_object_layer_name_is_not_a_tile_layer(tilemap):
    assert tilemap.get_tile_layer("triggers") == []


def test_short_layer_data_is_a_mismatch(document, encode):
    document["layers"][0]["data"] = [1] * 11
    tilemap = TileMap.from_bytes(encode(document))
    with pytest.raises(TileDataMismatchError):
        tilemap.get_tile_layer("background")


def test_long_layer_data_is_truncated_with_warning(document, encode, caplog):
    document["layers"][0]["data"] = document["layers"][0]["data"] + [9, 9]
    tilemap = TileMap.from_bytes(encode(document))

    with caplog.at_level(logging.WARNING, logger="tilemap.map.structure"):
        placed = tilemap.get_tile_layer("background")

    assert [tile.gid for tile in placed] == BACKGROUND_GIDS
    assert "beyond its 4x3 grid" in caplog.text


def test_repeated_materialization_reuses_regions(tilemap):
    first = tilemap.get_tile_layer("background")
    second = tilemap.get_tile_layer("background")

    assert all(a.region is b.region for a, b in zip(first, second))
    assert len(tilemap.region_cache) == len(set(BACKGROUND_GIDS))
    assert tilemap.region_cache.misses == 7
    assert tilemap.region_cache.hits == 9


def test_layers_share_the_region_cache(tilemap):
    background = tilemap.get_tile_layer("background")
    foreground = tilemap.get_tile_layer("foreground")
    assert 12 in tilemap.region_cache
    assert background[0].region is tilemap.region_for_gid(1)
    assert foreground[0].region is tilemap.region_for_gid(12)


def test_unowned_gid_falls_back_unless_strict(document, encode):
    document["tilesets"][0]["firstgid"] = 10
    raw = encode(document)

    placed = TileMap.from_bytes(raw).get_tile_layer("background")
    assert len(placed) == 8

    strict = TileMap.from_bytes(raw, strict_gids=True)
    with pytest.raises(UnknownGIDError):
        strict.get_tile_layer("background")


# --- Object layers ---


def test_get_object_layer(tilemap):
    objects = tilemap.get_object_layer("Triggers")
    assert [obj.name for obj in objects] == ["spawn", "door", "hidden"]


def test_object_namespace_is_separate(tilemap):
    assert tilemap.get_object_layer("background") == []
    assert tilemap.object_layer("background").objects == []


def test_missing_object_layer_is_soft(tilemap, caplog):
    with caplog.at_level(logging.WARNING, logger="tilemap.map.structure"):
        assert tilemap.get_object_layer("nothing") == []
    assert "Tilemap error" in caplog.text


def test_strict_layer_lookup_raises(tilemap):
    with pytest.raises(LayerNotFoundError) as excinfo:
        tilemap.tile_layer("nothing")
    assert excinfo.value.kind == "tilelayer"
    assert str(excinfo.value) == "no tilelayer with name 'nothing'"

    with pytest.raises(KeyError):
        tilemap.object_layer("nothing")


# --- Point queries ---


def test_tile_at_grid_uses_first_tile_layer(tilemap):
    tile = tilemap.tile_at_grid(1, 1)
    assert tile.gid == 66
    assert (tile.column, tile.row) == (1, 1)


def test_tile_at_grid_empty_and_outside(tilemap):
    assert tilemap.tile_at_grid(2, 0) is None
    assert tilemap.tile_at_grid(4, 0) is None
    assert tilemap.tile_at_grid(0, -1) is None


def test_tile_at_grid_with_named_layer(tilemap):
    assert tilemap.tile_at_grid(1, 1, layer="Foreground").gid == 12
    with pytest.raises(LayerNotFoundError):
        tilemap.tile_at_grid(0, 0, layer="nothing")


def test_default_layer_option(document, encode):
    tilemap = TileMap.from_bytes(encode(document), default_layer="Foreground")
    assert tilemap.tile_at_grid(1, 1).gid == 12
    assert tilemap.tile_at_grid(0, 0) is None


def test_tile_at_grid_without_tile_layers(document, encode):
    document["layers"] = [layer for layer in document["layers"]
                          if layer["type"] != "tilelayer"]
    assert TileMap.from_bytes(encode(document)).tile_at_grid(0, 0) is None


def test_tile_at_pixel_inverts_placement(tilemap):
    for tile in tilemap.get_tile_layer("background"):
        found = tilemap.tile_at_pixel(*tile.position)
        assert (found.gid, found.column, found.row) == (tile.gid, tile.column, tile.row)


def test_tile_for_gid_is_unplaced(tilemap):
    tile = tilemap.tile_for_gid(5)
    assert tile.column is None and tile.row is None
    assert tile.properties["solid"].value is True


def test_zero_tile_width_is_rejected_before_pixel_queries(document, encode):
    document["tilewidth"] = 0
    tilemap = TileMap()

    with pytest.raises(SchemaViolationError):
        tilemap.load(encode(document))

    assert tilemap.state is MapState.UNLOADED
    with pytest.raises(MapNotLoadedError):
        tilemap.tile_at_pixel(10.0, 10.0)
