"""
Unit tests for saving and loading preintegrated measurements.
"""

import pickle

import numpy as np
import pytest
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from imu_preint import ConstantBias, InvalidInputError, PreintegratedImuMeasurements
from imu_preint.utils.io import load_preintegration, save_preintegration


class TestPersistence:
    """Test pickle persistence of the preintegrator state."""

    def test_roundtrip(self, tmp_path):
        pim = PreintegratedImuMeasurements(bias=ConstantBias([0.1, 0.0, 0.0], [0.0, 0.01, 0.0]),
                                           measured_acc_covariance=0.05)
        for _ in range(10):
            pim.integrate_measurement(np.array([0.1, 0.2, 9.8]), np.array([0.1, 0.0, 0.2]), 0.01)

        path = save_preintegration(str(tmp_path / "pim"), pim)
        assert path.endswith(".p")

        loaded = load_preintegration(path)
        assert loaded.equals(pim, tol=0.0)
        np.testing.assert_array_equal(loaded.measurement_covariance, pim.measurement_covariance)

    def test_creates_directory(self, tmp_path):
        path = save_preintegration(str(tmp_path / "a" / "b" / "pim.p"),
                                   PreintegratedImuMeasurements())
        assert os.path.isfile(path)

    def test_bad_content(self, tmp_path):
        path = tmp_path / "bad.p"
        with open(path, "wb") as f:
            pickle.dump([1, 2, 3], f)
        with pytest.raises(InvalidInputError):
            load_preintegration(str(path))

    def test_incomplete_state(self, tmp_path):
        path = tmp_path / "partial.p"
        with open(path, "wb") as f:
            pickle.dump({"type": "PreintegratedImuMeasurements",
                         "state": {"delta_t_ij": 1.0}}, f)
        with pytest.raises(InvalidInputError):
            load_preintegration(str(path))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
