# -*- coding: utf-8 -*-
import math
import unittest

import numpy as np

from fractal_engine.core.landscape import (
    CITY_SPACING, Biome, RoadClass, WATER_THRESHOLD, building_mask, city_center, classify_biome,
    classify_road, fract, hash21, landscape_color, road_network, sample_landscape,
    terrain_height, tree_density, urban_density
)


coords = [(0.0, 0.0), (1.25, -3.5), (-7.1, 2.2), (12.0, 9.75), (0.33, 0.66)]


def nearest_city_distance(x, y):
    gx = math.floor(x / CITY_SPACING)
    gy = math.floor(y / CITY_SPACING)
    nearest = 999.0
    for dx in range(-2, 3):
        for dy in range(-2, 3):
            tx, ty = gx + dx, gy + dy
            if hash21(tx * 123.456, ty * 123.456) > 0.65:
                cx, cy = city_center(tx, ty)
                nearest = min(nearest, math.hypot(x - cx * CITY_SPACING, y - cy * CITY_SPACING))
    return nearest


class Test_landscape(unittest.TestCase):

    def test_deterministic(self):
        for x, y in coords:
            with self.subTest(x=x, y=y):
                a = sample_landscape(x, y)
                b = sample_landscape(x, y)
                self.assertEqual(a, b)
                self.assertEqual(a.biome, b.biome)
                self.assertEqual(a.water, b.water)
                self.assertEqual(a.road_class, b.road_class)
                self.assertEqual(landscape_color(x, y), landscape_color(x, y))

    def test_colour_range(self):
        for x, y in coords:
            rgba = np.array(landscape_color(x, y))
            self.assertTrue(np.all((rgba >= 0.0) & (rgba <= 1.0)))
            self.assertEqual(rgba[3], 1.0)

    def test_biome_from_height(self):
        for x, y in coords:
            s = sample_landscape(x, y)
            self.assertEqual(s.height, terrain_height(x, y))
            self.assertIs(s.biome, Biome(classify_biome(s.height)))

    def test_biome_order(self):
        heights = np.linspace(-0.5, 2.0, 200)
        biomes = [classify_biome(h) for h in heights]
        self.assertTrue(all(b >= a for a, b in zip(biomes, biomes[1:])))
        self.assertEqual(biomes[0], Biome.DEEP_WATER)
        self.assertEqual(biomes[-1], Biome.SNOW)

    def test_road_priority(self):
        self.assertEqual(classify_road(1.0, 1.0, 1.0, 0.0), RoadClass.HIGHWAY)
        self.assertEqual(classify_road(0.0, 1.0, 1.0, 0.0), RoadClass.ARTERIAL)
        self.assertEqual(classify_road(0.0, 0.0, 1.0, 0.0), RoadClass.LOCAL)
        self.assertEqual(classify_road(0.0, 0.0, 0.0, 0.0), RoadClass.NONE)

    def test_no_roads_on_water(self):
        self.assertEqual(classify_road(1.0, 1.0, 1.0, WATER_THRESHOLD), RoadClass.NONE)
        for x in np.linspace(-20.0, 20.0, 41):
            for y in np.linspace(-20.0, 20.0, 41):
                s = sample_landscape(x, y)
                if s.water >= WATER_THRESHOLD:
                    self.assertIs(s.road_class, RoadClass.NONE)


    def test_water_suppresses_layers(self):
        self.assertEqual(tree_density(0.5, 0.5, 0.7, 1.0, WATER_THRESHOLD + 0.01), 0.0)
        self.assertEqual(urban_density(0.5, 0.5, WATER_THRESHOLD + 0.01), 0.0)
        self.assertEqual(building_mask(0.5, 0.5, 0.7, 1.0, WATER_THRESHOLD + 0.01, 1.0), 0.0)
        self.assertEqual(road_network(0.5, 0.5, WATER_THRESHOLD + 0.01, 0.0), (0.0, 0.0, 0.0))
        for x in np.linspace(-20.0, 20.0, 41):
            for y in np.linspace(-20.0, 20.0, 41):
                s = sample_landscape(x, y)
                if s.water > WATER_THRESHOLD:
                    self.assertEqual((s.trees, s.urban, s.building), (0.0, 0.0, 0.0))

    def test_building_height_band(self):
        for height in (0.1, 0.19, 1.51, 2.0):
            for x in np.linspace(0.0, 1.0, 11):
                self.assertEqual(building_mask(x, x, height, 1.0, 0.0, 1.0), 0.0)
        for x in np.linspace(-20.0, 20.0, 81):
            for y in np.linspace(-20.0, 20.0, 81):
                s = sample_landscape(x, y)
                if s.building > 0.0:
                    self.assertGreaterEqual(s.height, 0.2)
                    self.assertLessEqual(s.height, 1.5)
                    self.assertLessEqual(s.water, WATER_THRESHOLD)
                    self.assertGreater(s.urban, 0.0)

    def test_local_roads_near_cities(self):
        for x in np.linspace(-24.0, 24.0, 97):
            for y in np.linspace(-24.0, 24.0, 97):
                _highway, _arterial, local = road_network(x, y, 0.0, 0.0)
                if local > 0.0:
                    self.assertLess(nearest_city_distance(x, y), 0.8)
                    self.assertTrue(fract(x * 8.0) < 0.08 or fract(y * 8.0) < 0.08)


if __name__ == "__main__":
    unittest.main()
