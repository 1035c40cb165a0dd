"""
IMU factor: the preintegrated measurement as a nonlinear least-squares term.

The factor connects five variables (pose_i, vel_i, pose_j, vel_j, bias_i)
and evaluates the 9D residual of ``PreintegrationBase`` against them. It
holds a private copy of the preintegrated measurements, so integrating
more samples afterwards never changes an already built factor.
"""

import copy

import numpy as np

from imu_preint.core.base_preintegration import (
    POS, ROT, VEL, Linearization, PreintegrationBase
)
from imu_preint.core.errors import InvalidInputError
from imu_preint.core.noise_model import GaussianNoiseModel
from imu_preint.core.types import as_vector3

__all__ = ["ImuFactor", "POS", "VEL", "ROT"]


class ImuFactor:
    """
    Five-way factor between two navigation states and the bias.

    Args:
        pose_i, vel_i, pose_j, vel_j, bias: Keys of the variables (any hashable)
        preintegrated_measurements: Preintegration over [t_i, t_j]
        gravity: Navigation-frame gravity (3,), e.g. [0, 0, -9.81]
        omega_coriolis: Rotation rate of the navigation frame (3,),
            default zero
        use_2nd_order_coriolis: Add the centripetal terms of the rotating
            frame (requires ``omega_coriolis``)
    """

    def __init__(self, pose_i, vel_i, pose_j, vel_j, bias,
                 preintegrated_measurements, gravity, omega_coriolis=None,
                 use_2nd_order_coriolis=False):
        if not isinstance(preintegrated_measurements, PreintegrationBase):
            raise InvalidInputError(
                "preintegrated_measurements must be a PreintegrationBase, "
                f"got {type(preintegrated_measurements).__name__}")
        if use_2nd_order_coriolis and omega_coriolis is None:
            raise InvalidInputError(
                "use_2nd_order_coriolis requires an omega_coriolis vector")

        self._keys = (pose_i, vel_i, pose_j, vel_j, bias)
        self._pim = copy.deepcopy(preintegrated_measurements)
        self.gravity = as_vector3(gravity, "gravity")
        self.omega_coriolis = np.zeros(3) if omega_coriolis is None \
            else as_vector3(omega_coriolis, "omega_coriolis")
        self.gravity.setflags(write=False)
        self.omega_coriolis.setflags(write=False)
        self.use_2nd_order_coriolis = bool(use_2nd_order_coriolis)

    def keys(self):
        return self._keys

    @property
    def preintegrated_measurements(self):
        """Copy of the preintegrated measurements held by the factor."""
        return copy.deepcopy(self._pim)

    def noise_covariance(self):
        """Raw 9x9 covariance of the residual, (position, velocity, rotation)."""
        return self._pim.preint_meas_cov

    def noise_model(self, factory=GaussianNoiseModel.from_covariance):
        return factory(self.noise_covariance())

    def evaluate_error(self, pose_i, vel_i, pose_j, vel_j, bias_i,
                       H1=False, H2=False, H3=False, H4=False, H5=False) -> Linearization:
        """
        Residual and requested Jacobians at the given estimates.

        Args:
            pose_i: Pose3 at t_i
            vel_i: Velocity at t_i (3,)
            pose_j: Pose3 at t_j
            vel_j: Velocity at t_j (3,)
            bias_i: ConstantBias estimate
            H1..H5: Request d(error)/d(pose_i) (9x6), d/d(vel_i) (9x3),
                d/d(pose_j) (9x6), d/d(vel_j) (9x3), d/d(bias_i) (9x6)

        Returns:
            Linearization(error (9,), [H1, H2, H3, H4, H5]) with None for
            the blocks that were not requested
        """
        return self._pim.compute_error_and_jacobians(
            pose_i, vel_i, pose_j, vel_j, bias_i,
            self.gravity, self.omega_coriolis, self.use_2nd_order_coriolis,
            H1, H2, H3, H4, H5)

    def _values(self, values):
        try:
            return [values[k] for k in self._keys]
        except KeyError as e:
            raise InvalidInputError(f"no value for key {e.args[0]!r}") from e

    def unwhitened_error(self, values):
        """Residual for a ``{key: value}`` mapping of the five variables."""
        return self.evaluate_error(*self._values(values)).error

    def whitened_error(self, values, noise_model=None):
        if noise_model is None:
            noise_model = self.noise_model()
        return noise_model.whiten(self.unwhitened_error(values))

    def error(self, values, noise_model=None):
        """0.5 * squared Mahalanobis norm of the residual."""
        w = self.whitened_error(values, noise_model)
        return 0.5 * float(w.dot(w))

    def linearize(self, values, noise_model=None):
        """
        Whitened linear system ``A dx = b`` around ``values``.

        Returns:
            Tuple of ({key: A_k}, b) with b = -whitened error
        """
        if noise_model is None:
            noise_model = self.noise_model()
        error, jacobians = self.evaluate_error(
            *self._values(values), H1=True, H2=True, H3=True, H4=True, H5=True)
        A_list, b = noise_model.whiten_system(jacobians, error)
        return dict(zip(self._keys, A_list)), -b

    def equals(self, other, tol=1e-9):
        return isinstance(other, ImuFactor) \
            and self._keys == other.keys() \
            and self.use_2nd_order_coriolis == other.use_2nd_order_coriolis \
            and np.allclose(self.gravity, other.gravity, rtol=0.0, atol=tol) \
            and np.allclose(self.omega_coriolis, other.omega_coriolis, rtol=0.0, atol=tol) \
            and self._pim.equals(other._pim, tol)

    def __repr__(self):
        keys = ",".join(str(k) for k in self._keys)
        return (f"ImuFactor({keys}, gravity={np.array2string(self.gravity, precision=4)}, "
                f"omega_coriolis={np.array2string(self.omega_coriolis, precision=4)}, "
                f"use_2nd_order_coriolis={self.use_2nd_order_coriolis}, {self._pim!r})")
