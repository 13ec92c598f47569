"""
Unit tests for correlated observation noise.
"""

import unittest
import tensorflow as tf
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble_da.exceptions import CholeskyFactorizationError
from ensemble_da.filters.noise import NoiseGenerator, cholesky_factor


class TestCholeskyFactor(unittest.TestCase):
    """Test cases for the Cholesky step."""

    def test_reconstructs_matrix(self):
        R = tf.constant([[4.0, 1.0], [1.0, 3.0]], dtype=tf.float64)
        L = cholesky_factor(R)

        tf.debugging.assert_near(tf.matmul(L, L, transpose_b=True), R, atol=1e-12)
        tf.debugging.assert_near(L, tf.linalg.band_part(L, -1, 0))

    def test_indefinite_matrix_raises(self):
        R = tf.constant([[1.0, 2.0], [2.0, 1.0]], dtype=tf.float64)
        with self.assertRaises(CholeskyFactorizationError):
            cholesky_factor(R)

    def test_singular_matrix_raises(self):
        R = tf.zeros([3, 3], dtype=tf.float64)
        with self.assertRaises(CholeskyFactorizationError):
            cholesky_factor(R)


class TestNoiseGenerator(unittest.TestCase):
    """Test cases for NoiseGenerator."""

    def setUp(self):
        """Set up test fixtures."""
        tf.random.set_seed(42)
        self.R = tf.constant([[1.0, 0.5, 0.0],
                              [0.5, 2.0, 0.3],
                              [0.0, 0.3, 0.5]], dtype=tf.float64)

    def test_sample_shape(self):
        noise = NoiseGenerator(seed=0)
        self.assertEqual(noise.sample(self.R).shape, (3,))
        self.assertEqual(noise.sample_members(self.R, 5).shape, (5, 3))

    def test_reproducible_with_seed(self):
        """Same seed, same sequence of draws."""
        a = NoiseGenerator(seed=123)
        b = NoiseGenerator(seed=123)

        tf.debugging.assert_equal(a.sample_members(self.R, 4), b.sample_members(self.R, 4))
        tf.debugging.assert_equal(a.sample_members(self.R, 4), b.sample_members(self.R, 4))

    def test_stream_advances(self):
        """Consecutive cycles draw different perturbations."""
        noise = NoiseGenerator(seed=5)
        first = noise.sample_members(self.R, 3)
        second = noise.sample_members(self.R, 3)

        self.assertGreater(float(tf.reduce_max(tf.abs(first - second))), 0.0)

    def test_members_independent(self):
        """Each member gets its own sub-stream."""
        draws = NoiseGenerator(seed=9).sample_members(self.R, 3)
        self.assertGreater(float(tf.reduce_max(tf.abs(draws[0] - draws[1]))), 0.0)

    def test_sample_covariance(self):
        """Draws have covariance close to R."""
        draws = NoiseGenerator(seed=1).sample_members(self.R, 2000)
        centered = draws - tf.reduce_mean(draws, axis=0)
        sample_cov = tf.matmul(centered, centered, transpose_a=True) / 1999.0

        tf.debugging.assert_near(sample_cov, self.R, atol=0.2)
        tf.debugging.assert_near(tf.reduce_mean(draws, axis=0),
                                 tf.zeros([3], dtype=tf.float64), atol=0.1)

    def test_non_spd_raises(self):
        R = tf.constant([[1.0, 2.0], [2.0, 1.0]], dtype=tf.float64)
        with self.assertRaises(CholeskyFactorizationError):
            NoiseGenerator(seed=0).sample_members(R, 3)

    def test_zero_members(self):
        draws = NoiseGenerator(seed=0).sample_members(self.R, 0)
        self.assertEqual(draws.shape, (0, 3))

    def test_member_seeds(self):
        seeds = NoiseGenerator(seed=0).member_seeds(4)
        self.assertEqual(seeds.shape, (4, 2))
        self.assertEqual(seeds.dtype, tf.int32)

    def test_external_generator(self):
        generator = tf.random.Generator.from_seed(77)
        noise = NoiseGenerator(generator=generator)
        self.assertIs(noise.generator, generator)


if __name__ == '__main__':
    unittest.main()
