"""
Shared pytest fixtures for pipeline tests.

Provides the small in-memory layers most pipeline tests run against.
"""

import pytest

from geopipes.layer import SpatialDatabase


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def database():
    """Empty spatial database with default precision and CRS."""
    return SpatialDatabase()


# =============================================================================
# Polygon Layer Fixtures
# =============================================================================

@pytest.fixture
def boxes_layer(database):
    """Two named boxes: A (area 1) far from the origin, B (area 8) close to it."""
    layer = database.get_or_create_editable_layer("boxes")
    factory = layer.geometry_factory
    layer.add(factory.from_wkt("POLYGON ((12 56, 12 57, 13 57, 13 56, 12 56))"), ["name"], ["A"])
    layer.add(factory.from_wkt("POLYGON ((2 3, 2 5, 6 5, 6 3, 2 3))"), ["name"], ["B"])
    return layer


@pytest.fixture
def concave_layer(database):
    """One concave polygon whose convex hull is the 10x10 square."""
    layer = database.get_or_create_editable_layer("concave")
    layer.add(layer.geometry_factory.from_wkt("POLYGON ((0 0, 2 5, 0 10, 10 10, 10 0, 0 0))"))
    return layer


@pytest.fixture
def intersection_layer(database):
    """Three overlapping squares sharing the cell (4 4, 5 5)."""
    layer = database.get_or_create_editable_layer("intersection")
    factory = layer.geometry_factory
    layer.add(factory.from_wkt("POLYGON ((0 0, 0 5, 5 5, 5 0, 0 0))"))
    layer.add(factory.from_wkt("POLYGON ((4 4, 4 10, 10 10, 10 4, 4 4))"))
    layer.add(factory.from_wkt("POLYGON ((2 2, 2 6, 6 6, 6 2, 2 2))"))
    return layer


@pytest.fixture
def reference_square():
    """WKT of the square every equal-layer record is compared against."""
    return "POLYGON ((0 0, 0 5, 5 5, 5 0, 0 0))"


@pytest.fixture
def equal_layer(database, reference_square):
    """Four variants of the reference square with id/name attributes."""
    layer = database.get_or_create_editable_layer("equal")
    factory = layer.geometry_factory
    rows = [
        (reference_square, 1, "equal"),
        ("POLYGON ((0 0, 0.1 5, 5 5, 5 0, 0 0))", 2, "tolerance"),
        ("POLYGON ((0 5, 5 5, 5 0, 0 0, 0 5))", 3, "different order"),
        ("POLYGON ((0 0, 0 2, 0 4, 0 5, 5 5, 5 3, 5 2, 5 0, 0 0))", 4, "topo equal"),
    ]
    for wkt, record_id, name in rows:
        layer.add(factory.from_wkt(wkt), ["id", "name"], [record_id, name])
    return layer


# =============================================================================
# OSM Layer Fixtures
# =============================================================================

def _street_nodes(first_node_id, x, y, count=12, step=0.0005):
    return [(first_node_id + i, x + i * step, y + i * step / 2) for i in range(count)]


@pytest.fixture
def osm_layer(database):
    """
    Two streets of twelve nodes each.

    Storgatan lies inside the window (10, 40, 20, 56.0583531); Kungsgatan lies
    just north of it.
    """
    layer = database.create_osm_layer("two-street.osm")
    layer.add_way(
        1001,
        _street_nodes(1, 13.15, 56.050),
        {"name": "Storgatan", "highway": "residential"},
    )
    layer.add_way(
        1002,
        _street_nodes(101, 13.15, 56.060),
        {"name": "Kungsgatan", "highway": "primary"},
    )
    return layer
