# -*- coding: utf-8 -*-
import unittest

import numpy as np

from fractal_engine.core.precision import (
    ExtendedScalar, add, detect_precision_need, multiply, split, split_accurate, subtract
)
from fractal_engine.core.fractal_types import Viewport2D


values = [0.1, -1.7, 1. / 3., 1e-5, -0.743643887037151, 0.131825904205330, 2.0]


class Test_split(unittest.TestCase):

    def test_reconstruct(self):
        for x in values:
            with self.subTest(x=x):
                s = split(x)
                self.assertIsInstance(s, ExtendedScalar)
                self.assertEqual(s.high, np.float32(x))
                self.assertLessEqual(abs(s.to_float() - x), abs(x) * 1e-13)

    def test_accurate_split(self):
        for x in values:
            with self.subTest(x=x):
                s = split_accurate(x)
                self.assertLessEqual(abs(s.to_float() - x), abs(x) * 1e-13)

    def test_low_word_small(self):
        for x in values:
            s = split(x)
            # low word below half an ulp of the high word
            self.assertLessEqual(abs(float(s.low)), np.spacing(np.float32(abs(s.high))))

    def test_negation(self):
        s = split(-0.743643887037151)
        n = -s
        self.assertEqual(n.high, -s.high)
        self.assertEqual(n.low, -s.low)


class Test_arithmetic(unittest.TestCase):

    def test_add_commutative(self):
        for a in values:
            for b in values:
                np.testing.assert_allclose(add(a, b).to_float(), add(b, a).to_float(),
                                           rtol=1e-12, atol=1e-18)

    def test_add_associative(self):
        a, b, c = split(0.1), split(1. / 3.), split(-1.7)
        left = add(add(a, b), c).to_float()
        right = add(a, add(b, c)).to_float()
        np.testing.assert_allclose(left, right, rtol=1e-12)
        np.testing.assert_allclose(left, 0.1 + 1. / 3. - 1.7, rtol=1e-12)

    def test_multiply(self):
        np.testing.assert_allclose(multiply(1. / 3., 3.0).to_float(), 1.0, atol=1e-12)
        for a in values:
            for b in values:
                np.testing.assert_allclose(multiply(a, b).to_float(), a * b,
                                           rtol=1e-12, atol=1e-20)

    def test_subtract(self):
        x = -0.743643887037151
        d = subtract(x, x + 1e-10)
        np.testing.assert_allclose(d.to_float(), -1e-10, rtol=1e-4)

    def test_repeated_accumulation(self):
        acc = split(0.0)
        acc32 = np.float32(0.0)
        step = split(0.1)
        for _ in range(1000):
            acc = add(acc, step)
            acc32 = np.float32(acc32 + np.float32(0.1))
        err = abs(acc.to_float() - 100.0)
        self.assertLess(err, 1e-9)
        self.assertLess(err, abs(float(acc32) - 100.0))


class Test_deep_zoom(unittest.TestCase):

    def test_adjacent_pixels_resolved(self):
        viewport = Viewport2D.from_center(-0.743643887037151, 0.131825904205330,
                                          zoom=1e9, width=100, height=100)
        re0, _ = viewport.pixel_coordinate(50, 50)
        re1, _ = viewport.pixel_coordinate(51, 50)
        # pixel pitch far below the float32 spacing at this centre
        self.assertLess(4e-11, np.spacing(np.float32(0.74)))
        np.testing.assert_allclose(re1.to_float() - re0.to_float(), 4e-11, rtol=1e-3)

    def test_precision_need(self):
        self.assertEqual(detect_precision_need(1.0, 1920), 'single')
        self.assertEqual(detect_precision_need(1e9, 1920), 'extended')
        self.assertEqual(detect_precision_need(1e14, 1920), 'exhausted')


if __name__ == "__main__":
    unittest.main()
