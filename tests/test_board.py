import pytest

from geocrawler.sim.board import (
    DEFAULT_ORIGIN,
    NULL_ISLAND,
    TILE_DEGREES,
    Board,
    Cell,
    LatLng,
    cell_at,
    cell_bounds,
    cell_southwest,
)


def test_cell_at_floors_toward_negative_infinity() -> None:
    assert cell_at(LatLng(0.5, 0.5), 1.0) == Cell(0, 0)
    assert cell_at(LatLng(-0.5, 0.5), 1.0) == Cell(-1, 0)
    assert cell_at(LatLng(-0.5, -1.5), 1.0) == Cell(-1, -2)
    assert cell_at(LatLng(2.0, 3.0), 1.0) == Cell(2, 3)


def test_cell_at_is_relative_to_origin() -> None:
    assert cell_at(DEFAULT_ORIGIN, TILE_DEGREES, DEFAULT_ORIGIN) == Cell(0, 0)
    north = LatLng(DEFAULT_ORIGIN.lat + TILE_DEGREES, DEFAULT_ORIGIN.lng)
    assert cell_at(north, TILE_DEGREES, DEFAULT_ORIGIN) == Cell(1, 0)
    west = LatLng(DEFAULT_ORIGIN.lat, DEFAULT_ORIGIN.lng - TILE_DEGREES / 2)
    assert cell_at(west, TILE_DEGREES, DEFAULT_ORIGIN) == Cell(0, -1)


def test_repeated_tile_steps_land_in_consecutive_cells() -> None:
    lat = DEFAULT_ORIGIN.lat
    for expected_row in range(1, 11):
        lat += TILE_DEGREES
        assert cell_at(LatLng(lat, DEFAULT_ORIGIN.lng), TILE_DEGREES, DEFAULT_ORIGIN).i == expected_row


def test_cell_key_round_trip_and_rejects_garbage() -> None:
    cell = Cell(-3, 7)
    assert cell.key() == "-3:7"
    assert Cell.from_key("-3:7") == cell
    for bad in ("", "1", "1:2:3", "a:b", "1.5:2"):
        with pytest.raises(ValueError):
            Cell.from_key(bad)


def test_southwest_and_bounds_span_one_tile() -> None:
    cell = Cell(2, -1)
    assert cell_southwest(cell, 1.0) == LatLng(2.0, -1.0)
    southwest, northeast = cell_bounds(cell, 1.0)
    assert southwest == LatLng(2.0, -1.0)
    assert northeast == LatLng(3.0, 0.0)


def test_board_returns_one_instance_per_cell() -> None:
    board = Board(1.0, 1, NULL_ISLAND)

    from_key = board.cell_for_key("1:2")
    from_point = board.cell_for_point(LatLng(1.5, 2.5))
    from_neighbourhood = [cell for cell in board.cells_near_point(LatLng(1.5, 2.5)) if cell.key() == "1:2"][0]

    assert from_key is from_point
    assert from_point is from_neighbourhood


def test_cells_near_point_covers_square_in_row_major_order() -> None:
    board = Board(1.0, 8, NULL_ISLAND)
    cells = board.cells_near_point(LatLng(0.5, 0.5))

    assert len(cells) == 17 * 17
    assert len({cell.key() for cell in cells}) == 17 * 17
    assert cells[0] == Cell(-8, -8)
    assert cells[1] == Cell(-8, -7)
    assert cells[-1] == Cell(8, 8)
    assert len(board.cells_near_point(LatLng(0.5, 0.5), radius=0)) == 1


def test_board_rejects_bad_geometry() -> None:
    with pytest.raises(ValueError):
        Board(0.0)
    with pytest.raises(ValueError):
        Board(1.0, -1)
    with pytest.raises(ValueError):
        Board(1.0).cells_near_point(NULL_ISLAND, radius=-1)


def test_latlng_from_dict_validates_fields() -> None:
    assert LatLng.from_dict({"lat": 1, "lng": 2.5}) == LatLng(1.0, 2.5)
    with pytest.raises(ValueError, match="position.lat"):
        LatLng.from_dict({"lat": "1", "lng": 2})
    with pytest.raises(ValueError, match="finite"):
        LatLng.from_dict({"lat": float("nan"), "lng": 2})
    with pytest.raises(ValueError):
        LatLng.from_dict([1, 2])
