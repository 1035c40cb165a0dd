"""
Preintegrated IMU measurements with first-order covariance propagation.

This module turns a stream of raw accelerometer/gyroscope samples into the
(delta_R, delta_V, delta_P) summary of ``PreintegrationBase`` and tracks the
9x9 covariance of those deltas, propagated EKF-style at every sample.
"""

import logging

import numpy as np

from imu_preint.core.base_preintegration import PreintegrationBase
from imu_preint.core.errors import InvalidInputError
from imu_preint.core.types import ConstantBias
from imu_preint.utils.geometry import (
    Rot3, skew_symmetric, so3_right_jacobian, so3_right_jacobian_inverse
)

logger = logging.getLogger(__name__)


class PreintegratedImuMeasurements(PreintegrationBase):
    """
    Preintegrator for the constant-bias IMU model.

    Covariance ordering is (position, velocity, rotation) error, the same
    as the factor residual. The process noise is block diagonal
    (integration error, accelerometer, gyroscope) and given as
    continuous-time spectral densities; it is scaled by dt at every step.
    """

    Id3 = np.eye(3)
    Z3 = np.zeros((3, 3))

    class Parameters(PreintegrationBase.Parameters):
        """Default noise parameters (continuous time)."""

        cov_acc = 1e-2
        """Accelerometer noise density squared ((m/s^2)^2 / Hz)"""
        cov_omega = 1e-3
        """Gyro noise density squared ((rad/s)^2 / Hz)"""
        cov_integration = 1e-8
        """Integration error covariance (m^2 / s)"""

    def __init__(self, bias=None, measured_acc_covariance=None,
                 measured_omega_covariance=None, integration_error_covariance=None,
                 parameter_class=None, **kwargs):
        """
        Initialize the preintegrator.

        Args:
            bias: Bias used to correct the samples (default: zero)
            measured_acc_covariance: 3x3 accelerometer covariance
                (default: cov_acc * I)
            measured_omega_covariance: 3x3 gyro covariance (default: cov_omega * I)
            integration_error_covariance: 3x3 integration covariance
                (default: cov_integration * I)
            parameter_class: Parameter class
                (default: PreintegratedImuMeasurements.Parameters)
            **kwargs: Parameter overrides
        """
        super().__init__(bias, parameter_class, **kwargs)
        self._build_Q(measured_acc_covariance, measured_omega_covariance,
                      integration_error_covariance)

    @classmethod
    def build_from_cfg(cls, cfg, bias=None):
        """
        Build a preintegrator from a plain config dict.

        Args:
            cfg: Dict of Parameters overrides, optionally with a ``bias``
                entry ``{"accelerometer": [...], "gyroscope": [...]}``
            bias: ConstantBias overriding the one in ``cfg``

        Returns:
            Configured PreintegratedImuMeasurements
        """
        cfg = dict(cfg or {})
        bias_cfg = cfg.pop("bias", None)
        if bias is None and bias_cfg:
            bias = ConstantBias(bias_cfg.get("accelerometer"),
                                bias_cfg.get("gyroscope"))

        known = cls.Parameters().as_dict()
        unknown = sorted(k for k in cfg if k not in known)
        if unknown:
            logger.warning("ignoring unknown preintegration parameter(s): %s", unknown)
            for key in unknown:
                cfg.pop(key)

        return cls(bias=bias, **cfg)

    def _build_Q(self, acc_cov, omega_cov, integration_cov):
        """Build the 9x9 continuous-time process noise from parameters."""
        blocks = []
        for name, value, default in (
                ("integration_error_covariance", integration_cov, self.cov_integration),
                ("measured_acc_covariance", acc_cov, self.cov_acc),
                ("measured_omega_covariance", omega_cov, self.cov_omega)):
            block = default * self.Id3 if value is None else np.asarray(value, dtype=float)
            if block.ndim == 0:
                block = float(block) * self.Id3
            if block.shape != (3, 3):
                raise InvalidInputError(f"{name} must be 3x3, got {block.shape}")
            if not np.allclose(block, block.T) or np.any(np.linalg.eigvalsh(block) < 0):
                raise InvalidInputError(f"{name} must be symmetric PSD")
            blocks.append(block)

        self.Q = np.zeros((9, 9))
        self.Q[0:3, 0:3] = blocks[0]
        self.Q[3:6, 3:6] = blocks[1]
        self.Q[6:9, 6:9] = blocks[2]

    def reset_integration(self, bias=None):
        super().reset_integration(bias)
        self._preint_meas_cov = np.zeros((9, 9))

    @property
    def preint_meas_cov(self):
        """Covariance of the (position, velocity, rotation) deltas (9, 9)."""
        return self._preint_meas_cov.copy()

    @property
    def measurement_covariance(self):
        """Continuous-time process noise (9, 9)."""
        return self.Q.copy()

    def integrate_measurement(self, measured_acc, measured_omega, dt,
                              body_P_sensor=None, omega_dot=None, return_F_G=False):
        """
        Add one IMU sample to the deltas and propagate their covariance.

        Args:
            measured_acc: Accelerometer reading (3,), sensor frame (m/s^2)
            measured_omega: Gyroscope reading (3,), sensor frame (rad/s)
            dt: Sample interval (s), strictly positive
            body_P_sensor: Optional sensor pose in the body frame (Pose3)
            omega_dot: Optional sensor-frame angular acceleration (3,)
            return_F_G: Also return the error transition F and noise map G

        Returns:
            None, or (F, G) both 9x9 when ``return_F_G`` is set

        Raises:
            InvalidInputError: on a malformed sample; nothing is modified
        """
        measured_acc, measured_omega, dt = self.validate_measurement(
            measured_acc, measured_omega, dt, body_P_sensor, omega_dot)

        # NOTE: order matters, the Jacobians and the covariance are
        # linearized at the rotation delta before this sample.
        corrected_acc, corrected_omega = self.correct_measurements_by_bias_and_sensor_pose(
            measured_acc, measured_omega, body_P_sensor, omega_dot)

        theta_incr = corrected_omega * dt
        R_incr = Rot3.expmap(theta_incr)
        Jr_theta_incr = so3_right_jacobian(theta_incr)

        self.update_preintegrated_jacobians(corrected_acc, Jr_theta_incr, R_incr, dt)

        theta_i = self.theta_R_ij
        R_i = self._delta_R_ij.matrix()
        Jr_theta_i = so3_right_jacobian(theta_i)

        self.update_preintegrated_measurements(corrected_acc, R_incr, dt)

        theta_j = self.theta_R_ij
        Jrinv_theta_j = so3_right_jacobian_inverse(theta_j)

        F = self._transition_matrix(corrected_acc, R_i, Jr_theta_i, R_incr,
                                    Jrinv_theta_j, dt)

        # Continuous to discrete noise: G Q_d G^T ~= Q_c * dt
        P = F.dot(self._preint_meas_cov).dot(F.T) + self.Q * dt
        self._preint_meas_cov = 0.5 * (P + P.T)

        if self.verbose:
            logger.info("dt=%.4f delta_t_ij=%.4f trace(cov)=%.3e",
                        dt, self._delta_t_ij, np.trace(self._preint_meas_cov))

        if return_F_G:
            G = np.zeros((9, 9))
            G[0:3, 0:3] = self.Id3 * dt
            G[3:6, 3:6] = R_i * dt
            G[6:9, 6:9] = Jrinv_theta_j.dot(Jr_theta_incr) * dt
            return F, G
        return None

    def _transition_matrix(self, corrected_acc, R_i, Jr_theta_i, R_incr,
                           Jrinv_theta_j, dt):
        """
        First-order error transition F of one integration step.

        Rows/columns are (position, velocity, rotation) error, the rotation
        error being expressed on the rotation vector of delta_R_ij.
        """
        H_vel_angles = -R_i.dot(skew_symmetric(corrected_acc)).dot(Jr_theta_i) * dt
        if self.use_2nd_order_integration:
            H_pos_angles = 0.5 * H_vel_angles * dt
        else:
            H_pos_angles = H_vel_angles * dt
        H_angles_angles = Jrinv_theta_j.dot(R_incr.transpose()).dot(Jr_theta_i)

        return np.block([
            [self.Id3, self.Id3 * dt, H_pos_angles],
            [self.Z3, self.Id3, H_vel_angles],
            [self.Z3, self.Z3, H_angles_angles],
        ])

    def integrate_measurements(self, measured_accs, measured_omegas, dts,
                               body_P_sensor=None):
        """
        Integrate a batch of samples in order.

        The whole batch is validated first, so a bad sample leaves the
        preintegrator untouched.

        Args:
            measured_accs: Accelerometer readings (N, 3)
            measured_omegas: Gyroscope readings (N, 3)
            dts: Sample intervals (N,) or a single float
            body_P_sensor: Optional sensor pose in the body frame
        """
        accs = np.atleast_2d(np.asarray(measured_accs, dtype=float))
        omegas = np.atleast_2d(np.asarray(measured_omegas, dtype=float))
        N = accs.shape[0]
        dts = np.broadcast_to(np.asarray(dts, dtype=float), (N,)) \
            if np.ndim(dts) == 0 else np.asarray(dts, dtype=float)
        if omegas.shape[0] != N or dts.shape != (N,):
            raise InvalidInputError(
                f"batch sizes differ: acc {accs.shape}, omega {omegas.shape}, dt {dts.shape}")

        for i in range(N):
            self.validate_measurement(accs[i], omegas[i], dts[i], body_P_sensor)
        for i in range(N):
            self.integrate_measurement(accs[i], omegas[i], dts[i], body_P_sensor)

    def equals(self, other, tol=1e-9):
        return isinstance(other, PreintegratedImuMeasurements) \
            and np.allclose(self.Q, other.Q, rtol=0.0, atol=tol) \
            and np.allclose(self._preint_meas_cov, other.preint_meas_cov, rtol=0.0, atol=tol) \
            and super().equals(other, tol)

    def get_state_dict(self):
        state = super().get_state_dict()
        state["measurement_covariance"] = self.Q.copy()
        state["preint_meas_cov"] = self._preint_meas_cov.copy()
        return state

    def load_state_dict(self, state_dict):
        if not isinstance(state_dict, dict):
            raise InvalidInputError(f"state dict must be a dict, got {type(state_dict).__name__}")
        covs = {}
        for key in ("measurement_covariance", "preint_meas_cov"):
            if key not in state_dict:
                raise InvalidInputError(f"state dict is missing key: {key}")
            covs[key] = self._state_array(state_dict, key, (9, 9))
            if not np.allclose(covs[key], covs[key].T):
                raise InvalidInputError(f"{key} must be symmetric")
        # the base class validates its entries before assigning any of them
        super().load_state_dict(state_dict)
        self.Q = covs["measurement_covariance"]
        self._preint_meas_cov = covs["preint_meas_cov"]

    def __repr__(self):
        return (super().__repr__()[:-1]
                + f", trace(preint_meas_cov)={np.trace(self._preint_meas_cov):.3e})")

