import pytest

from conftest import BASE_LAT, BASE_LON, make_photo
from intake.clusters.spatial import SpatialClusterer
from intake.clusters.splitter import ClusterSplitter, chronological_chunks
from intake.models.photo import GeoPoint
from intake.services.pipeline import GroupingPipeline
from intake.utils.geo import haversine_distance_m

# 0.0004 degrees of latitude is about 44.5 m
STEP = 0.0004


class TestHaversine:
    def test_symmetric(self):
        a = GeoPoint(6.9271, 79.8612)
        b = GeoPoint(7.2906, 80.6337)
        assert haversine_distance_m(a, b) == pytest.approx(haversine_distance_m(b, a))

    def test_zero_for_same_point(self):
        a = GeoPoint(6.9271, 79.8612)
        assert haversine_distance_m(a, a) == 0.0

    def test_positive_for_different_points(self):
        assert haversine_distance_m(GeoPoint(6.9, 79.8), GeoPoint(6.9, 79.8000001)) > 0.0

    def test_known_distance(self):
        # 0.0002 degrees of latitude
        d = haversine_distance_m(GeoPoint(6.9000, 79.8000), GeoPoint(6.9002, 79.8000))
        assert d == pytest.approx(22.24, abs=0.05)


class TestSpatialClusterer:
    def test_groups_nearby_and_separates_far(self):
        photos = [
            make_photo("a", 6.9000, 79.8000),
            make_photo("b", 6.9002, 79.8000),
            make_photo("c", 6.9100, 79.8000),
        ]
        clusters = SpatialClusterer().cluster(photos)
        assert [[p.id for p in c] for c in clusters] == [["a", "b"], ["c"]]

    def test_ignores_photos_without_gps(self):
        photos = [make_photo("a", 6.9, 79.8), make_photo("nogps")]
        clusters = SpatialClusterer().cluster(photos)
        assert [[p.id for p in c] for c in clusters] == [["a"]]

    def test_radius_is_inclusive(self):
        a = make_photo("a", BASE_LAT, BASE_LON)
        b = make_photo("b", BASE_LAT + 0.0002, BASE_LON)
        exact = haversine_distance_m(a.gps, b.gps)
        assert len(SpatialClusterer(radius_m=exact).cluster([a, b])) == 1
        assert len(SpatialClusterer(radius_m=exact - 0.01).cluster([a, b])) == 2

    def test_members_are_within_radius_of_seed(self):
        photos = [
            make_photo(f"p{i}", BASE_LAT + (i % 7) * 0.00013, BASE_LON + (i % 5) * 0.00017)
            for i in range(40)
        ]
        for cluster in SpatialClusterer().build_clusters(photos):
            assert cluster.photos[0] is cluster.seed
            for member in cluster.photos[1:]:
                assert haversine_distance_m(cluster.seed.gps, member.gps) <= 50.0

    def test_deterministic_for_fixed_order(self):
        photos = [
            make_photo(f"p{i}", BASE_LAT + (i % 4) * STEP, BASE_LON + (i % 3) * STEP)
            for i in range(25)
        ]
        first = [[p.id for p in c] for c in SpatialClusterer().cluster(photos)]
        second = [[p.id for p in c] for c in SpatialClusterer().cluster(list(photos))]
        assert first == second

    def test_membership_is_measured_from_seed_only(self):
        # a-b and b-c are ~44 m apart, a-c is ~89 m apart
        a = make_photo("a", BASE_LAT, BASE_LON)
        b = make_photo("b", BASE_LAT + STEP, BASE_LON)
        c = make_photo("c", BASE_LAT + 2 * STEP, BASE_LON)

        hub_first = SpatialClusterer().cluster([b, a, c])
        assert [[p.id for p in cl] for cl in hub_first] == [["b", "a", "c"]]

        edge_first = SpatialClusterer().cluster([a, b, c])
        assert [[p.id for p in cl] for cl in edge_first] == [["a", "b"], ["c"]]

    def test_cluster_centroid(self):
        clusters = SpatialClusterer().build_clusters([
            make_photo("a", 6.9000, 79.8000),
            make_photo("b", 6.9002, 79.8002),
        ])
        assert clusters[0].centroid.lat == pytest.approx(6.9001)
        assert clusters[0].centroid.lon == pytest.approx(79.8001)


class TestClusterSplitter:
    def test_twelve_photos_split_five_five_two(self):
        photos = [make_photo(f"p{i:02d}", BASE_LAT, BASE_LON, timestamp=1000.0 + i) for i in range(12)]
        shuffled = photos[7:] + photos[:7]

        incidents = ClusterSplitter(cap=5).split(shuffled)

        assert [len(inc.photos) for inc in incidents] == [5, 5, 2]
        flat = [p.id for inc in incidents for p in inc.photos]
        assert flat == [p.id for p in photos]
        for inc in incidents:
            stamps = [p.timestamp for p in inc.photos]
            assert stamps == sorted(stamps)
            assert inc.incident_date == stamps[0]

    def test_missing_timestamps_sort_first(self):
        photos = [
            make_photo("late", BASE_LAT, BASE_LON, timestamp=200.0),
            make_photo("none", BASE_LAT, BASE_LON),
            make_photo("early", BASE_LAT, BASE_LON, timestamp=100.0),
        ]
        chunks = chronological_chunks(photos, cap=5)
        assert [p.id for p in chunks[0]] == ["none", "early", "late"]

    def test_sort_is_stable_for_equal_timestamps(self):
        photos = [make_photo(f"p{i}", BASE_LAT, BASE_LON) for i in range(4)]
        assert [p.id for p in chronological_chunks(photos)[0]] == ["p0", "p1", "p2", "p3"]

    def test_fresh_ids_and_centroid(self):
        photos = [
            make_photo("a", 6.9000, 79.8000, 1.0),
            make_photo("b", 6.9002, 79.8000, 2.0),
        ]
        incidents = ClusterSplitter().split(photos) + ClusterSplitter().split(photos)
        assert len({inc.id for inc in incidents}) == 2
        assert incidents[0].centroid.lat == pytest.approx(6.9001)
        assert incidents[0].centroid.lon == pytest.approx(79.8)

    def test_centroid_is_none_without_gps(self):
        incidents = ClusterSplitter().split([make_photo("x")])
        assert incidents[0].centroid is None

    def test_rejects_non_positive_cap(self):
        with pytest.raises(ValueError):
            chronological_chunks([make_photo("a")], cap=0)


class TestGroupingPipeline:
    def test_scenario_two_clusters_and_an_orphan(self):
        photos = [
            make_photo("near1", 6.9000, 79.8000),
            make_photo("near2", 6.9002, 79.8000),
            make_photo("far", 6.9100, 79.8000),
            make_photo("nogps"),
        ]
        result = GroupingPipeline().run(photos)

        assert [[p.id for p in inc.photos] for inc in result.incidents] == [["near1", "near2"], ["far"]]
        assert [p.id for p in result.orphans] == ["nogps"]

    def test_no_photo_lost_or_duplicated(self):
        photos = []
        for i in range(37):
            if i % 6 == 0:
                photos.append(make_photo(f"p{i}", timestamp=float(i)))
            else:
                photos.append(make_photo(
                    f"p{i}", BASE_LAT + (i % 3) * 0.0001, BASE_LON + (i % 2) * 0.01, timestamp=float(37 - i)
                ))

        result = GroupingPipeline().run(photos)

        grouped = [p.id for inc in result.incidents for p in inc.photos]
        orphaned = [p.id for p in result.orphans]
        everything = grouped + orphaned
        assert len(everything) == len(set(everything))
        assert set(everything) == {p.id for p in photos}
        for inc in result.incidents:
            assert 1 <= len(inc.photos) <= 5
            stamps = [p.sort_timestamp for p in inc.photos]
            assert stamps == sorted(stamps)

    def test_only_orphans(self):
        result = GroupingPipeline().run([make_photo("a"), make_photo("b")])
        assert result.incidents == []
        assert len(result.orphans) == 2
