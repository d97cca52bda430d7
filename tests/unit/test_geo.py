import math
import unittest

from match_service.geo import EARTH_RADIUS_KM, bounding_box, distance_between, haversine
from match_service.records import GeoPoint


def _destination(lat, lon, bearing_deg, distance_km):
    """Point reached from (lat, lon) after distance_km along bearing_deg."""
    d = distance_km / EARTH_RADIUS_KM
    b = math.radians(bearing_deg)
    lat1 = math.radians(lat)
    lon1 = math.radians(lon)
    lat2 = math.asin(math.sin(lat1) * math.cos(d) + math.cos(lat1) * math.sin(d) * math.cos(b))
    lon2 = lon1 + math.atan2(
        math.sin(b) * math.sin(d) * math.cos(lat1),
        math.cos(d) - math.sin(lat1) * math.sin(lat2),
    )
    lon2 = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return math.degrees(lat2), lon2


class TestHaversine(unittest.TestCase):

    def test_same_point_is_zero(self):
        self.assertEqual(haversine(12.5, -3.25, 12.5, -3.25), 0.0)

    def test_one_degree_on_equator(self):
        self.assertAlmostEqual(haversine(0, 0, 0, 1), 111.195, places=2)

    def test_half_degree_of_latitude(self):
        self.assertAlmostEqual(haversine(0, 0, 0.5, 0), 55.5, delta=0.555)

    def test_symmetric(self):
        self.assertAlmostEqual(
            haversine(40.7128, -74.0060, 51.5074, -0.1278),
            haversine(51.5074, -0.1278, 40.7128, -74.0060),
        )

    def test_antipodal_points_are_half_circumference(self):
        self.assertAlmostEqual(haversine(0, 0, 0, 180), math.pi * EARTH_RADIUS_KM, places=6)

    def test_nan_propagates(self):
        self.assertTrue(math.isnan(haversine(float("nan"), 0, 0, 0)))

    def test_distance_between_geo_points(self):
        a = GeoPoint(latitude=0, longitude=0)
        b = GeoPoint(latitude=0, longitude=0.01)
        self.assertAlmostEqual(distance_between(a, b), 1.112, places=3)


class TestBoundingBox(unittest.TestCase):

    def assert_covers_circle(self, lat, lon, radius_km):
        box = bounding_box(lat, lon, radius_km)
        for bearing in range(0, 360, 15):
            for fraction in (0.5, 0.99):
                p_lat, p_lon = _destination(lat, lon, bearing, radius_km * fraction)
                self.assertTrue(
                    box.contains(p_lat, p_lon),
                    f"({p_lat:.4f}, {p_lon:.4f}) at bearing {bearing} outside box around ({lat}, {lon})",
                )

    def test_covers_circle_mid_latitudes(self):
        self.assert_covers_circle(40.4168, -3.7038, 50)
        self.assert_covers_circle(-33.8688, 151.2093, 50)

    def test_covers_circle_across_antimeridian(self):
        self.assert_covers_circle(0.0, 179.9, 50)
        self.assert_covers_circle(-17.7, -179.8, 50)

    def test_covers_circle_near_pole(self):
        self.assert_covers_circle(89.8, 10.0, 50)
        self.assert_covers_circle(-70.0, 0.0, 50)

    def test_single_range_away_from_antimeridian(self):
        box = bounding_box(0, 0, 50)
        self.assertEqual(len(box.lon_ranges), 1)
        self.assertFalse(box.contains(0, 1.0))
        self.assertFalse(box.contains(1.0, 0))

    def test_splits_at_antimeridian(self):
        box = bounding_box(0, 179.9, 50)
        self.assertEqual(len(box.lon_ranges), 2)
        self.assertTrue(box.contains(0, -179.9))
        self.assertFalse(box.contains(0, 0))

    def test_box_reaching_pole_spans_all_longitudes(self):
        box = bounding_box(89.9, 0, 50)
        self.assertEqual(box.lon_ranges, ((-180.0, 180.0),))
        self.assertEqual(box.max_lat, 90.0)
