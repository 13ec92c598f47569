"""
Unit tests for metrics (accuracy and stability).
"""

import math
import unittest
import tensorflow as tf
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble_da.metrics.accuracy import (
    compute_rmse, compute_ensemble_mean_rmse, compute_ensemble_spread
)
from ensemble_da.metrics.stability import (
    check_symmetry, check_positive_definite, compute_condition_number, compute_trace
)


class TestAccuracyMetrics(unittest.TestCase):
    """Test cases for accuracy metrics."""

    def test_compute_rmse(self):
        estimate = tf.constant([1.0, 2.0, 3.0, 4.0], dtype=tf.float64)
        truth = tf.constant([1.1, 2.1, 2.9, 4.1], dtype=tf.float64)

        self.assertAlmostEqual(compute_rmse(estimate, truth), 0.1, places=6)

    def test_ensemble_mean_rmse(self):
        ensemble = [[0.0, 2.0], [2.0, 4.0]]
        truth = [1.0, 3.0]
        self.assertAlmostEqual(compute_ensemble_mean_rmse(ensemble, truth), 0.0)

    def test_ensemble_spread(self):
        # Per-component variance 2.0 with N - 1 normalization
        ensemble = [[0.0, 0.0], [2.0, 2.0]]
        self.assertAlmostEqual(compute_ensemble_spread(ensemble), math.sqrt(2.0))


class TestStabilityMetrics(unittest.TestCase):
    """Test cases for stability metrics."""

    def test_check_symmetry(self):
        P = tf.constant([[1.0, 0.5], [0.4, 1.0]], dtype=tf.float64)
        self.assertAlmostEqual(check_symmetry(P), 0.1)
        self.assertEqual(check_symmetry(tf.eye(3, dtype=tf.float64)), 0.0)

    def test_check_symmetry_empty(self):
        self.assertEqual(check_symmetry(tf.zeros([0, 0], dtype=tf.float64)), 0.0)

    def test_check_positive_definite(self):
        min_eig, is_pd = check_positive_definite(tf.constant([[2.0, 0.0], [0.0, 3.0]],
                                                             dtype=tf.float64))
        self.assertAlmostEqual(min_eig, 2.0)
        self.assertTrue(is_pd)

        min_eig, is_pd = check_positive_definite(tf.constant([[1.0, 2.0], [2.0, 1.0]],
                                                             dtype=tf.float64))
        self.assertAlmostEqual(min_eig, -1.0)
        self.assertFalse(is_pd)

    def test_condition_number(self):
        D = tf.linalg.diag(tf.constant([1.0, 2.0, 4.0], dtype=tf.float64))
        self.assertAlmostEqual(compute_condition_number(D), 4.0)

    def test_condition_number_singular(self):
        self.assertTrue(math.isinf(compute_condition_number(tf.zeros([2, 2], dtype=tf.float64))))

    def test_trace(self):
        self.assertAlmostEqual(compute_trace(tf.eye(4, dtype=tf.float64)), 4.0)


if __name__ == '__main__':
    unittest.main()
