import unittest

from app.city.buildings import billboard_max_slots, building_dimensions, dimensions_for
from app.models import Developer


class BuildingDimensionTests(unittest.TestCase):
    def test_empty_profile_gets_minimum_building(self):
        self.assertEqual(building_dimensions(0, 0), (19, 22, 30.0))

    def test_repo_factor_caps_at_one_hundred_repos(self):
        width_100, _, _ = building_dimensions(0, 100)
        width_500, _, _ = building_dimensions(0, 500)
        self.assertEqual(width_100, 35)
        self.assertEqual(width_500, 35)

    def test_height_grows_with_square_root_of_contributions(self):
        _, _, height = building_dimensions(10_000, 0)
        self.assertEqual(height, 312.0)


class BillboardSlotTests(unittest.TestCase):
    def test_slot_counts(self):
        self.assertEqual(billboard_max_slots(0, 0), 5)
        self.assertEqual(billboard_max_slots(400, 50), 14)
        self.assertEqual(billboard_max_slots(10_000, 100), 74)

    def test_always_at_least_one_slot(self):
        self.assertGreaterEqual(billboard_max_slots(-5, -5), 1)

    def test_dimensions_for_developer(self):
        dims = dimensions_for(Developer(github_login="octo", contributions=400, public_repos=50))
        self.assertEqual(dims.width, 27)
        self.assertEqual(dims.depth, 22)
        self.assertEqual(dims.height, 72.0)
        self.assertEqual(dims.billboard_slots, 14)
