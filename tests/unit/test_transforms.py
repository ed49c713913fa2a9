"""Unit tests for geometry transform stages and point extraction."""

import math

import pytest
from shapely import from_wkt
from shapely.geometry import Point

from geopipes.pipeline.core import GeoPipeline
from geopipes.types import AffineTransformation, GeometryOperationError


def _wkt(pipeline):
    return [flow.properties["WellKnownText"] for flow in pipeline]


# =============================================================================
# Affine Transform Tests
# =============================================================================

class TestAffineTransform:
    """Test affine transform stages."""

    def test_translate_geometries(self, osm_layer):
        """Every vertex moves by exactly the translation."""
        original = GeoPipeline.start(osm_layer).copy_record_properties().sort("name")
        translated = (
            GeoPipeline.start(osm_layer)
            .apply_affine_transform(AffineTransformation.translation(10, 25))
            .copy_record_properties()
            .sort("name")
        )
        for _ in range(2):
            coords = list(original.next().geometry.coords)
            new_coords = list(translated.next().geometry.coords)
            assert len(coords) == len(new_coords)
            for (x, y), (nx, ny) in zip(coords, new_coords):
                assert nx == x + 10
                assert ny == y + 25

    def test_composed_transformation(self):
        """then() applies the left transformation first."""
        scale_then_move = AffineTransformation.scaling(2, 2).then(AffineTransformation.translation(1, 0))
        assert scale_then_move.apply(Point(1, 1)).equals(Point(3, 2))

    def test_inverse_round_trip(self):
        """A transformation composed with its inverse is the identity."""
        rotation = AffineTransformation.rotation(math.pi / 2)
        moved = rotation.apply(Point(1, 0))
        assert moved.distance(Point(0, 1)) < 1e-12
        assert rotation.inverse().apply(moved).distance(Point(1, 0)) < 1e-12

    def test_singular_transformation_has_no_inverse(self):
        """Collapsing transformations cannot be inverted."""
        with pytest.raises(ValueError):
            AffineTransformation.scaling(0, 1).inverse()


# =============================================================================
# Shape Transform Tests
# =============================================================================

class TestShapeTransforms:
    """Test boundary, buffer, centroid, hull and related stages."""

    def test_get_boundary_length(self, boxes_layer):
        """Hole-free polygon boundaries are linear rings."""
        pipeline = GeoPipeline.start(boxes_layer).to_boundary().create_well_known_text().calculate_length().sort("Length")
        first, second = pipeline.next(), pipeline.next()
        assert first.properties["WellKnownText"] == "LINEARRING (12 56, 12 57, 13 57, 13 56, 12 56)"
        assert second.properties["WellKnownText"] == "LINEARRING (2 3, 2 5, 6 5, 6 3, 2 3)"
        assert first.properties["Length"] == 4.0
        assert second.properties["Length"] == 12.0

    def test_boundary_with_hole(self, database):
        """Polygons with holes keep a multi-part boundary."""
        layer = database.get_or_create_editable_layer("holes")
        layer.add(layer.geometry_factory.from_wkt(
            "POLYGON ((0 0, 0 10, 10 10, 10 0, 0 0), (2 2, 2 4, 4 4, 4 2, 2 2))"
        ))
        flow = GeoPipeline.start(layer).to_boundary().next()
        assert flow.geometry.geom_type == "MultiLineString"

    def test_get_buffer(self, boxes_layer):
        """Buffering grows each box."""
        pipeline = GeoPipeline.start(boxes_layer).to_buffer(0.1).create_well_known_text().calculate_area().sort("Area")
        assert pipeline.next().properties["Area"] > 1
        assert pipeline.next().properties["Area"] > 8

    def test_buffer_rejects_invalid_geometry(self, database):
        """Self-intersecting input fails with the flow id."""
        layer = database.get_or_create_editable_layer("bowtie")
        layer.add(layer.geometry_factory.from_wkt("POLYGON ((0 0, 10 10, 10 0, 0 10, 0 0))"))
        with pytest.raises(GeometryOperationError) as exc_info:
            GeoPipeline.start(layer).to_buffer(1).next()
        assert exc_info.value.operation == "buffer"
        assert exc_info.value.flow_id == "1"

    def test_get_centroid(self, boxes_layer):
        """Centroids of the two boxes."""
        pipeline = GeoPipeline.start(boxes_layer).to_centroid().create_well_known_text().copy_record_properties().sort("name")
        assert _wkt(pipeline) == ["POINT (12.5 56.5)", "POINT (4 4)"]

    def test_get_convex_hull(self, concave_layer):
        """The concave notch disappears."""
        pipeline = GeoPipeline.start(concave_layer).to_convex_hull().create_well_known_text()
        assert _wkt(pipeline) == ["POLYGON ((0 0, 0 10, 10 10, 10 0, 0 0))"]

    def test_densify(self, concave_layer):
        """Segments as long as the tolerance are halved."""
        pipeline = GeoPipeline.start(concave_layer).to_convex_hull().densify(10).create_well_known_text()
        assert _wkt(pipeline) == ["POLYGON ((0 0, 0 5, 0 10, 5 10, 10 10, 10 5, 10 0, 5 0, 0 0))"]

    def test_densify_requires_positive_tolerance(self, concave_layer):
        """A zero tolerance is rejected when the stage is built."""
        with pytest.raises(ValueError):
            GeoPipeline.start(concave_layer).densify(0)

    def test_envelope_and_interior_point(self, concave_layer):
        """Envelopes bound the shape; interior points lie inside it."""
        envelope = GeoPipeline.start(concave_layer).to_envelope().next().geometry
        assert envelope.bounds == (0.0, 0.0, 10.0, 10.0)
        flow = GeoPipeline.start(concave_layer).to_interior_point().next()
        assert flow.geometry.within(concave_layer.get(1).geometry)

    def test_intersect_and_difference(self, intersection_layer):
        """Clipping against a fixed geometry."""
        clip = from_wkt("POLYGON ((0 0, 0 1, 1 1, 1 0, 0 0))")
        areas = [f.properties["Area"] for f in GeoPipeline.start(intersection_layer).intersect(clip).calculate_area()]
        assert areas == [1.0, 0.0, 0.0]
        remaining = GeoPipeline.start(intersection_layer).difference(clip).calculate_area().next()
        assert remaining.properties["Area"] == 24.0

    def test_transform_keeps_properties(self, boxes_layer):
        """Geometry transforms do not touch properties."""
        flow = GeoPipeline.start(boxes_layer).copy_record_properties().calculate_area().to_centroid().next()
        assert flow.properties == {"name": "A", "Area": 1.0}


# =============================================================================
# Point Extraction Tests
# =============================================================================

class TestPointExtraction:
    """Test vertex and OSM node fan-out."""

    def test_extract_points(self, boxes_layer):
        """Each box yields five vertices, the closing one included."""
        flows = GeoPipeline.start(boxes_layer).extract_points().create_well_known_text().to_list()
        assert len(flows) == 10
        for flow in flows:
            assert len(flow.properties) == 1
            assert flow.properties["WellKnownText"].startswith("POINT")
        assert flows[0].id == "1-0"
        assert flows[0].records == flows[4].records

    def test_extract_osm_points(self, osm_layer):
        """Each stored way node becomes a point flow."""
        flows = GeoPipeline.start(osm_layer).extract_osm_points().create_well_known_text().to_list()
        assert len(flows) == 24
        for flow in flows:
            assert len(flow.properties) == 1
            assert flow.properties["WellKnownText"].startswith("POINT")

    def test_extract_osm_points_uses_stored_nodes(self, osm_layer):
        """Points come from the way nodes even after the geometry changed."""
        flows = GeoPipeline.start(osm_layer).to_centroid().extract_osm_points().to_list()
        assert len(flows) == 24
        assert flows[0].id == "1-1001-1"
        assert flows[0].geometry.equals(Point(13.15, 56.050))

    def test_extract_osm_points_drops_plain_records(self, boxes_layer):
        """Flows without OSM ways produce nothing."""
        assert GeoPipeline.start(boxes_layer).extract_osm_points().count() == 0

    def test_density_islands_pipeline(self, osm_layer):
        """Both streets form one island, hulled and buffered into one flow."""
        count = (
            GeoPipeline.start(osm_layer)
            .extract_osm_points()
            .group_by_density_islands(0.1)
            .to_convex_hull()
            .to_buffer(10)
            .count()
        )
        assert count == 1
