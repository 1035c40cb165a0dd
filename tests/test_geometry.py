"""
Unit tests for geometry utilities.
"""

import numpy as np
import pytest
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from imu_preint.utils.geometry import (
    so3_exp, so3_log, so3_left_jacobian, so3_right_jacobian,
    so3_right_jacobian_inverse, normalize_rot, from_rpy, to_rpy,
    rotx, roty, rotz, skew_symmetric, vee, Rot3, Pose3
)
from imu_preint.utils.numerical import numerical_derivative


class TestSO3Operations:
    """Tests for SO(3) operations"""

    def test_so3_exp_identity(self):
        """Test that exp(0) = Identity"""
        R = so3_exp(np.zeros(3))
        np.testing.assert_array_almost_equal(R, np.eye(3))

    def test_so3_exp_small_angle(self):
        """Test SO(3) exp for small angles (Taylor expansion branch)"""
        phi = np.array([1e-9, 2e-9, 3e-9])
        R = so3_exp(phi)
        assert np.linalg.det(R) > 0.99
        assert np.allclose(R @ R.T, np.eye(3))

    def test_so3_exp_properties(self):
        """Test that exp produces valid rotation matrices"""
        R = so3_exp(np.array([0.1, 0.2, 0.3]))
        np.testing.assert_array_almost_equal(R @ R.T, np.eye(3), decimal=10)
        np.testing.assert_almost_equal(np.linalg.det(R), 1.0, decimal=10)

    def test_so3_exp_matches_elementary_rotation(self):
        """Exp of a z-axis rotation vector is rotz"""
        np.testing.assert_array_almost_equal(so3_exp(np.array([0, 0, 0.7])), rotz(0.7))

    @pytest.mark.parametrize("phi", [
        np.array([0.1, 0.2, 0.3]),
        np.array([-1.2, 0.4, 2.0]),
        np.array([1e-6, -2e-6, 5e-7]),
        np.array([0.0, 0.0, 0.0]),
    ])
    def test_so3_log_inverts_exp(self, phi):
        """Log(Exp(phi)) = phi for |phi| < pi"""
        np.testing.assert_allclose(so3_log(so3_exp(phi)), phi, atol=1e-12)

    def test_so3_log_near_pi(self):
        """Log close to a half turn uses the symmetric-part branch"""
        axis = np.array([1.0, 2.0, -2.0]) / 3.0
        phi = (np.pi - 1e-6) * axis
        np.testing.assert_allclose(so3_log(so3_exp(phi)), phi, atol=1e-8)

    def test_so3_log_half_turn(self):
        """Log of an exact half turn round-trips through Exp"""
        R = rotx(np.pi)
        phi = so3_log(R)
        np.testing.assert_almost_equal(np.linalg.norm(phi), np.pi)
        np.testing.assert_array_almost_equal(so3_exp(phi), R)

    def test_so3_left_jacobian_identity(self):
        """Test left Jacobian at identity"""
        np.testing.assert_array_almost_equal(so3_left_jacobian(np.zeros(3)), np.eye(3))

    @pytest.mark.parametrize("phi", [
        np.array([0.3, -0.2, 0.9]),
        np.array([1e-4, 2e-4, -1e-4]),
    ])
    def test_left_jacobian_numerical(self, phi):
        """Exp(phi + d) ~= Exp(Jl(phi) d) Exp(phi)"""
        R = so3_exp(phi)

        def f(d):
            return so3_log(so3_exp(phi + d) @ R.T)

        J_num = numerical_derivative(f, np.zeros(3))
        np.testing.assert_allclose(so3_left_jacobian(phi), J_num, atol=1e-8)

    @pytest.mark.parametrize("phi", [
        np.array([0.3, -0.2, 0.9]),
        np.array([1e-10, 0.0, -1e-10]),
    ])
    def test_right_jacobian_numerical(self, phi):
        """Exp(phi + d) ~= Exp(phi) Exp(Jr(phi) d)"""
        R = so3_exp(phi)

        def f(d):
            return so3_log(R.T @ so3_exp(phi + d))

        J_num = numerical_derivative(f, np.zeros(3))
        np.testing.assert_allclose(so3_right_jacobian(phi), J_num, atol=1e-8)

    def test_right_jacobian_inverse_numerical(self):
        """Log(Exp(phi) Exp(d)) ~= phi + Jr^-1(phi) d"""
        phi = np.array([0.5, 1.1, -0.4])
        R = so3_exp(phi)

        def f(d):
            return so3_log(R @ so3_exp(d))

        J_num = numerical_derivative(f, np.zeros(3))
        np.testing.assert_allclose(so3_right_jacobian_inverse(phi), J_num, atol=1e-8)

    @pytest.mark.parametrize("phi", [
        np.array([0.5, 1.1, -0.4]),
        np.array([1e-9, 0.0, 0.0]),
    ])
    def test_right_jacobian_inverse_product(self, phi):
        """Jr(phi) Jr^-1(phi) = I"""
        np.testing.assert_allclose(
            so3_right_jacobian(phi) @ so3_right_jacobian_inverse(phi), np.eye(3), atol=1e-10)

    def test_skew_symmetric(self):
        """Test skew-symmetric matrix properties"""
        v = np.array([1, 2, 3])
        S = skew_symmetric(v)

        np.testing.assert_array_almost_equal(S.T, -S)
        np.testing.assert_almost_equal(np.trace(S), 0.0)

        w = np.array([4, 5, 6])
        np.testing.assert_array_almost_equal(S @ w, np.cross(v, w))
        np.testing.assert_array_equal(vee(S), v)


class TestRot3:
    """Tests for the Rot3 value type"""

    def test_compose_and_inverse(self):
        """R * R^-1 = I and between matches R1^-1 R2"""
        R1 = Rot3.from_rpy(0.1, 0.2, 0.3)
        R2 = Rot3.expmap(np.array([0.4, -0.1, 0.2]))

        assert (R1 * R1.inverse()).equals(Rot3.identity())
        np.testing.assert_array_almost_equal(R1.between(R2).matrix(),
                                             R1.matrix().T @ R2.matrix())

    def test_retract_local(self):
        """local(retract(v)) = v"""
        R = Rot3.from_rpy(0.5, -0.3, 1.2)
        v = np.array([0.01, -0.02, 0.03])
        np.testing.assert_allclose(R.local(R.retract(v)), v, atol=1e-12)

    def test_immutable(self):
        """The stored matrix cannot be modified in place"""
        R = Rot3.identity()
        with pytest.raises(ValueError):
            R.matrix()[0, 0] = 2.0

    def test_rotate_unrotate(self):
        R = Rot3.from_rpy(0.3, 0.2, 0.1)
        p = np.array([1.0, 2.0, 3.0])
        np.testing.assert_array_almost_equal(R.unrotate(R.rotate(p)), p)


class TestPose3:
    """Tests for the Pose3 value type"""

    def test_identity(self):
        pose = Pose3.identity()
        np.testing.assert_array_equal(pose.matrix(), np.eye(4))

    def test_retract_body_frame_translation(self):
        """Translation part of the tangent vector is rotated by R"""
        pose = Pose3(Rot3(rotz(np.pi / 2)), np.array([1.0, 0.0, 0.0]))
        moved = pose.retract(np.array([0, 0, 0, 1.0, 0, 0]))
        np.testing.assert_array_almost_equal(moved.translation(), [1.0, 1.0, 0.0])
        assert moved.rotation().equals(pose.rotation())

    def test_compose_inverse(self):
        pose = Pose3(Rot3.from_rpy(0.1, -0.4, 0.8), np.array([3.0, -1.0, 2.0]))
        assert (pose * pose.inverse()).equals(Pose3.identity())

    def test_transform_from(self):
        pose = Pose3(Rot3(rotz(np.pi / 2)), np.array([1.0, 0.0, 0.0]))
        np.testing.assert_array_almost_equal(pose.transform_from(np.array([1.0, 0, 0])),
                                             [1.0, 1.0, 0.0])

    def test_bad_translation_shape(self):
        with pytest.raises(ValueError):
            Pose3(Rot3.identity(), np.zeros(4))


class TestRotationConversions:
    """Tests for rotation matrix conversions"""

    def test_elementary_rotations_orthogonal(self):
        """Test that elementary rotations are orthogonal"""
        angle = np.pi / 4
        for rot_func in [rotx, roty, rotz]:
            R = rot_func(angle)
            np.testing.assert_array_almost_equal(R @ R.T, np.eye(3))
            np.testing.assert_almost_equal(np.linalg.det(R), 1.0)

    def test_from_rpy_identity(self):
        """Test RPY to rotation matrix for zero angles"""
        np.testing.assert_array_almost_equal(from_rpy(0, 0, 0), np.eye(3))

    def test_rpy_roundtrip(self):
        """Test conversion: angles -> matrix -> angles"""
        roll, pitch, yaw = to_rpy(from_rpy(0.1, 0.2, 0.3))
        np.testing.assert_almost_equal([roll, pitch, yaw], [0.1, 0.2, 0.3])


class TestNormalization:
    """Tests for rotation matrix normalization"""

    def test_normalize_valid_rotation(self):
        """Test normalizing already-valid rotation"""
        R_in = from_rpy(0.1, 0.2, 0.3)
        np.testing.assert_array_almost_equal(R_in, normalize_rot(R_in), decimal=10)

    def test_normalize_corrupted_rotation(self):
        """Test normalizing numerically drifted rotation matrix"""
        rng = np.random.default_rng(0)
        R_corrupt = from_rpy(0.1, 0.2, 0.3) + 1e-5 * rng.standard_normal((3, 3))

        R_normalized = normalize_rot(R_corrupt)

        np.testing.assert_array_almost_equal(
            R_normalized @ R_normalized.T, np.eye(3), decimal=10
        )
        np.testing.assert_almost_equal(np.linalg.det(R_normalized), 1.0, decimal=10)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
