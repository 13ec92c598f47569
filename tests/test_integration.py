"""
Integration tests: full assimilation cycles on a synthetic twin experiment.
"""

import unittest
import numpy as np
import tensorflow as tf
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble_da.config import AssimilationConfig
from ensemble_da.data.generators import (
    generate_twin_experiment,
    make_grid_support_points,
    nearest_neighbor_csr,
)
from ensemble_da.filters.enkf import EnsembleKalmanFilter
from ensemble_da.metrics.accuracy import compute_ensemble_mean_rmse, compute_ensemble_spread
from ensemble_da.operators.observation import ObservationMapping, ObservationOperator


class TestGenerators(unittest.TestCase):
    """Test cases for the synthetic problem helpers."""

    def test_grid_support_points(self):
        points = make_grid_support_points(5, length=2.0)
        self.assertEqual(sorted(points), [0, 1, 2, 3, 4])
        self.assertEqual(points[4], (0.0,))
        self.assertEqual(points[0], (2.0,))

    def test_nearest_neighbor_csr(self):
        points = make_grid_support_points(5, length=1.0)  # dof 4 at 0.0 ... dof 0 at 1.0
        neighbors, offsets = nearest_neighbor_csr(points, [[0.01], [0.74]], k=2)

        np.testing.assert_array_equal(offsets, [0, 2, 4])
        # Positions index the ascending DoF enumeration, so position == DoF here
        np.testing.assert_array_equal(neighbors, [4, 3, 1, 2])

    def test_twin_experiment_shapes(self):
        exp = generate_twin_experiment(num_points=21, num_members=5, num_observations=4)
        self.assertEqual(len(exp.ensemble), 5)
        self.assertEqual(exp.truth.shape, (21,))
        self.assertEqual(exp.observations.shape, (4,))
        self.assertEqual(exp.R.shape, (4, 4))
        self.assertEqual(exp.offsets.shape, (5,))


class TestTwinExperiment(unittest.TestCase):
    """End-to-end assimilation cycles."""

    def setUp(self):
        """Set up test fixtures."""
        tf.random.set_seed(42)
        self.exp = generate_twin_experiment(num_points=41, num_members=25,
                                            num_observations=8, seed=3)

    def test_cycle_reduces_error(self):
        """The analysis mean is closer to the truth than the forecast mean."""
        enkf = EnsembleKalmanFilter(AssimilationConfig(seed=0))
        enkf.update_dof_mapping(self.exp.support_points, self.exp.neighbor_indices,
                                self.exp.offsets)

        rmse_f = compute_ensemble_mean_rmse(self.exp.ensemble, self.exp.truth)
        spread_f = compute_ensemble_spread(self.exp.ensemble)
        enkf.update_ensemble(self.exp.ensemble, self.exp.observations, self.exp.R)
        rmse_a = compute_ensemble_mean_rmse(self.exp.ensemble, self.exp.truth)
        spread_a = compute_ensemble_spread(self.exp.ensemble)

        self.assertLess(rmse_a, rmse_f)
        self.assertLess(spread_a, spread_f)

    def test_observed_components_move_toward_observations(self):
        enkf = EnsembleKalmanFilter(AssimilationConfig(seed=0))
        mapping = enkf.update_dof_mapping(self.exp.support_points, self.exp.neighbor_indices,
                                          self.exp.offsets)
        H = ObservationOperator(mapping, int(self.exp.truth.shape[0]))

        def misfit():
            mean = tf.reduce_mean(tf.stack([m.value() for m in self.exp.ensemble]), axis=0)
            return float(tf.norm(H.apply(mean) - self.exp.observations))

        before = misfit()
        enkf.update_ensemble(self.exp.ensemble, self.exp.observations, self.exp.R)
        self.assertLess(misfit(), before)

    def test_repeated_cycles_with_reused_mapping(self):
        """The mapping is built once and reused across cycles."""
        enkf = EnsembleKalmanFilter(AssimilationConfig(seed=1))
        mapping = enkf.update_dof_mapping(self.exp.support_points, self.exp.neighbor_indices,
                                          self.exp.offsets)
        errors = []
        for _ in range(3):
            enkf.update_ensemble(self.exp.ensemble, self.exp.observations, self.exp.R)
            errors.append(compute_ensemble_mean_rmse(self.exp.ensemble, self.exp.truth))

        self.assertIs(enkf.mapping, mapping)
        self.assertTrue(all(np.isfinite(errors)))

    def test_multiple_neighbors_per_observation(self):
        """Two neighbours per sensor: the last one defines the observed DoF."""
        exp = generate_twin_experiment(num_points=41, num_members=20, num_observations=6,
                                       neighbors_per_observation=2, seed=5)
        enkf = EnsembleKalmanFilter(AssimilationConfig(seed=2))
        mapping = enkf.update_dof_mapping(exp.support_points, exp.neighbor_indices, exp.offsets)

        self.assertEqual(len(mapping), 12)
        effective = mapping.effective_pairs()
        for obs in range(6):
            self.assertEqual(effective[obs], int(exp.neighbor_indices[2 * obs + 1]))

        result = enkf.update_ensemble(exp.ensemble, exp.observations, exp.R)
        self.assertFalse(result.skipped)

    def test_remap_after_mesh_change(self):
        """A new mesh gives a new mapping without rebuilding the filter."""
        enkf = EnsembleKalmanFilter(AssimilationConfig(seed=4))
        enkf.update_dof_mapping(self.exp.support_points, self.exp.neighbor_indices,
                                self.exp.offsets)
        enkf.update_ensemble(self.exp.ensemble, self.exp.observations, self.exp.R)

        fine = generate_twin_experiment(num_points=81, num_members=10, num_observations=8, seed=3)
        mapping = enkf.update_dof_mapping(fine.support_points, fine.neighbor_indices, fine.offsets)
        result = enkf.update_ensemble(fine.ensemble, fine.observations, fine.R)

        self.assertIsInstance(mapping, ObservationMapping)
        self.assertEqual(result.sim_size, 81)


if __name__ == '__main__':
    unittest.main()
