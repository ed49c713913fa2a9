"""Unit tests for GeoPipeline iteration, sources and terminals."""

import geopandas as gpd
import pytest
from shapely.geometry import Point

from geopipes.pipeline.core import GeoPipeline
from geopipes.pipeline.flow import Flow
from geopipes.types import AffineTransformation, Envelope, PipelineExhausted


# =============================================================================
# Iteration Tests
# =============================================================================

class TestIteration:
    """Test lookahead and exhaustion behaviour."""

    def test_has_next_is_idempotent(self, boxes_layer):
        """Repeated has_next calls do not consume flows."""
        pipeline = GeoPipeline.start(boxes_layer)
        assert pipeline.has_next()
        assert pipeline.has_next()
        assert pipeline.next().id == "1"
        assert pipeline.next().id == "2"
        assert not pipeline.has_next()

    def test_next_past_end_raises(self, boxes_layer):
        """Reading past the end raises PipelineExhausted."""
        pipeline = GeoPipeline.start(boxes_layer)
        pipeline.next()
        pipeline.next()
        with pytest.raises(PipelineExhausted):
            pipeline.next()

    def test_exhaustion_ends_for_loops(self, boxes_layer):
        """PipelineExhausted is a StopIteration, so iteration ends normally."""
        assert issubclass(PipelineExhausted, StopIteration)
        assert [flow.id for flow in GeoPipeline.start(boxes_layer)] == ["1", "2"]

    def test_nothing_runs_before_first_pull(self):
        """Building a pipeline does not touch its source."""
        pulled = []

        def source():
            pulled.append(True)
            yield Flow("x", Point(0, 0))

        pipeline = GeoPipeline(source()).calculate_area().sort("Area")
        assert pulled == []
        assert pipeline.next().id == "x"
        assert pulled == [True]

    def test_lookahead_reads_one_flow(self):
        """has_next pulls at most one flow from upstream."""
        pulled = []

        def source():
            for i in range(3):
                pulled.append(i)
                yield Flow(str(i), Point(i, i))

        pipeline = GeoPipeline(source())
        pipeline.has_next()
        assert pulled == [0]

    def test_add_stage_keeps_layer(self, boxes_layer):
        """Chained pipelines remember the source layer."""
        pipeline = GeoPipeline.start(boxes_layer).calculate_area().to_centroid()
        assert pipeline.layer is boxes_layer


# =============================================================================
# Source Tests
# =============================================================================

class TestSources:
    """Test pipeline start constructors."""

    def test_find_all(self, osm_layer):
        """A full search yields one flow per way, serialized as LINESTRING."""
        flows = GeoPipeline.start(osm_layer).create_well_known_text().to_list()
        assert len(flows) == 2
        for flow in flows:
            assert len(flow.properties) == 1
            assert flow.properties["WellKnownText"].startswith("LINESTRING")

    def test_flows_start_without_properties(self, boxes_layer):
        """Record attributes are not copied implicitly."""
        flow = GeoPipeline.start(boxes_layer).next()
        assert flow.properties == {}
        assert flow.record_attribute("name") == "A"

    def test_intersect_window_search_accepts_envelope(self, intersection_layer):
        """Window searches take an Envelope or four bounds."""
        by_envelope = GeoPipeline.start_intersect_window_search(
            intersection_layer, Envelope(-10, -10, 50, 50)
        ).count()
        by_bounds = GeoPipeline.start_intersect_window_search(intersection_layer, 7, 7, 8, 8).count()
        assert by_envelope == 3
        assert by_bounds == 1

    def test_intersect_search(self, intersection_layer):
        """Only records intersecting the geometry are found."""
        flows = GeoPipeline.start_intersect_search(intersection_layer, Point(1, 1)).to_list()
        assert [flow.id for flow in flows] == ["1"]

    def test_within_search(self, intersection_layer):
        """Records lying inside the query geometry are found."""
        area = intersection_layer.geometry_factory.from_wkt(
            "POLYGON ((-1 -1, -1 7, 7 7, 7 -1, -1 -1))"
        )
        flows = GeoPipeline.start_within_search(intersection_layer, area).to_list()
        assert [flow.id for flow in flows] == ["1", "3"]

    def test_contain_search(self, intersection_layer):
        """Records containing the query geometry are found."""
        flows = GeoPipeline.start_contain_search(intersection_layer, Point(4.5, 4.5)).to_list()
        assert [flow.id for flow in flows] == ["1", "2", "3"]

    def test_nearest_neighbor_search(self, boxes_layer):
        """Neighbours within range come nearest first with their distance."""
        flows = GeoPipeline.start_nearest_neighbor_search(boxes_layer, Point(0, 0), 100).to_list()
        assert [flow.record_attribute("name") for flow in flows] == ["B", "A"]
        assert round(flows[0].properties["Distance"]) == 4

    def test_nearest_neighbor_search_respects_distance(self, boxes_layer):
        """Records farther than max_distance are excluded."""
        assert GeoPipeline.start_nearest_neighbor_search(boxes_layer, Point(0, 0), 10).count() == 1


# =============================================================================
# Terminal Tests
# =============================================================================

class TestTerminals:
    """Test count, to_list and to_feature_collection."""

    def test_count_consumes_pipeline(self, boxes_layer):
        """count drains the pipeline."""
        pipeline = GeoPipeline.start(boxes_layer)
        assert pipeline.count() == 2
        assert not pipeline.has_next()

    def test_to_feature_collection(self, boxes_layer):
        """Flows become GeoDataFrame rows carrying properties and the layer CRS."""
        gdf = GeoPipeline.start(boxes_layer).copy_record_properties().calculate_area().to_feature_collection()
        assert isinstance(gdf, gpd.GeoDataFrame)
        assert len(gdf) == 2
        assert list(gdf["name"]) == ["A", "B"]
        assert list(gdf["Area"]) == [1.0, 8.0]
        assert gdf.crs.to_string() == "EPSG:4326"

    def test_copy_record_properties_subset(self, equal_layer):
        """Only the named attributes are copied when names are given."""
        flow = GeoPipeline.start(equal_layer).copy_record_properties(["name"]).next()
        assert flow.properties == {"name": "equal"}


# =============================================================================
# Pipeline Property Tests
# =============================================================================

class TestPipelineProperties:
    """Test properties that hold for any pipeline."""

    def test_count_matches_iteration(self, osm_layer):
        """count() equals the number of iterated flows."""
        assert GeoPipeline.start(osm_layer).extract_osm_points().count() == len(
            list(GeoPipeline.start(osm_layer).extract_osm_points())
        )

    def test_single_pass(self, boxes_layer):
        """Iterating again after exhaustion yields nothing."""
        pipeline = GeoPipeline.start(boxes_layer)
        assert len(list(pipeline)) == 2
        assert list(pipeline) == []

    def test_materialized_list_is_reusable(self, boxes_layer):
        """to_list() can be read repeatedly."""
        flows = GeoPipeline.start(boxes_layer).to_list()
        assert [f.id for f in flows] == [f.id for f in flows] == ["1", "2"]

    def test_translation_round_trip(self, boxes_layer):
        """Translating there and back restores the coordinates exactly."""
        there = AffineTransformation.translation(10, 25)
        back = AffineTransformation.translation(-10, -25)
        flows = GeoPipeline.start(boxes_layer).apply_affine_transform(there).apply_affine_transform(back).to_list()
        for flow in flows:
            original = boxes_layer.get(int(flow.id)).geometry
            assert list(flow.geometry.exterior.coords) == list(original.exterior.coords)

    def test_sorted_values_do_not_decrease(self, intersection_layer):
        """Sorted metric values are non-decreasing and stable across runs."""
        runs = [
            [f.id for f in GeoPipeline.start(intersection_layer).calculate_area().sort("Area")]
            for _ in range(2)
        ]
        assert runs[0] == runs[1] == ["3", "1", "2"]
