"""
Base preintegration abstraction.

This module defines the interface every IMU preintegration model follows:
the running rotation/velocity/position deltas, their first-order
sensitivity to the bias, and the model-independent math built on top of
them (bias re-linearization, state prediction, residual and Jacobians).
Concrete models only decide how a measurement is integrated and how the
uncertainty of the deltas is tracked.

References:
    Forster, Carlone, Dellaert, Scaramuzza, "On-Manifold Preintegration for
    Real-Time Visual-Inertial Odometry", IEEE T-RO, 2017.
"""

import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from typing import Any, Dict, Optional, Tuple

import numpy as np

from imu_preint.core.errors import InvalidInputError
from imu_preint.core.types import ConstantBias, PoseVelocityBias, as_vector3
from imu_preint.utils.geometry import (
    Id3, Pose3, Rot3, skew_symmetric,
    so3_right_jacobian, so3_right_jacobian_inverse
)

logger = logging.getLogger(__name__)

Z3 = np.zeros((3, 3))

# Residual layout, shared with the 9x9 covariance of the deltas
POS = slice(0, 3)
VEL = slice(3, 6)
ROT = slice(6, 9)

Linearization = namedtuple("Linearization", ["error", "jacobians"])
"""Residual (9,) and the list [H1..H5]; unrequested blocks are None."""


class PreintegrationBase(ABC):
    """
    Abstract accumulator of preintegrated IMU deltas.

    State (all expressed in the body frame at the start of the interval):
    - delta_R_ij: rotation delta (Rot3)
    - delta_V_ij: velocity delta (3,), gravity excluded
    - delta_P_ij: position delta (3,), gravity excluded
    - delta_t_ij: integrated time (s)
    - del{P,V}_delBias{Acc,Omega}, delR_delBiasOmega: 3x3 bias Jacobians

    The bias used to correct the raw samples (``bias_hat``) is fixed for the
    whole interval; a different bias at optimization time is accounted for
    to first order through the bias Jacobians.
    """

    class Parameters:
        """Default preintegration parameters."""

        use_2nd_order_integration = False
        """Add the 0.5 * a * dt^2 term to the position delta"""

        n_normalize_rot = 100
        """Integration steps between re-orthonormalizations of delta_R_ij"""

        max_dt = 1.0
        """Steps longer than this (s) are integrated but logged as suspicious"""

        verbose = False
        """Log every integration step"""

        def __init__(self, **kwargs):
            self.set(**kwargs)

        def set(self, **kwargs):
            for key, value in kwargs.items():
                setattr(self, key, value)

        def as_dict(self):
            return {a: getattr(self, a) for a in dir(self)
                    if not a.startswith('_') and not callable(getattr(self, a))}

    def __init__(self, bias: Optional[ConstantBias] = None,
                 parameter_class=None, **kwargs):
        """
        Args:
            bias: Bias used to correct the raw samples (default: zero)
            parameter_class: Parameter class (default: ``type(self).Parameters``)
            **kwargs: Parameter overrides applied on top of the class defaults
        """
        if parameter_class is None:
            parameter_class = type(self).Parameters
        self.parameters = parameter_class(**kwargs)
        self.set_param_attr()

        self._bias_hat = ConstantBias() if bias is None else bias
        self.reset_integration()

    def set_param_attr(self):
        """Copy all non-callable parameter attributes to the instance."""
        for attr, value in self.parameters.as_dict().items():
            setattr(self, attr, value)

    # ------------------------------------------------------------------
    # Accumulated state
    # ------------------------------------------------------------------

    def reset_integration(self, bias: Optional[ConstantBias] = None):
        """
        Clear the deltas and bias Jacobians.

        Args:
            bias: Optional new bias for the next interval (default: keep)
        """
        if bias is not None:
            self._bias_hat = bias
        self._delta_R_ij = Rot3.identity()
        self._delta_V_ij = np.zeros(3)
        self._delta_P_ij = np.zeros(3)
        self._delta_t_ij = 0.0
        self._delP_delBiasAcc = np.zeros((3, 3))
        self._delP_delBiasOmega = np.zeros((3, 3))
        self._delV_delBiasAcc = np.zeros((3, 3))
        self._delV_delBiasOmega = np.zeros((3, 3))
        self._delR_delBiasOmega = np.zeros((3, 3))
        self._n_integrated = 0
        logger.debug("preintegration reset, bias_hat=%s", self._bias_hat)

    def reset(self):
        self.reset_integration()

    @abstractmethod
    def integrate_measurement(self, measured_acc, measured_omega, dt,
                              body_P_sensor=None, omega_dot=None):
        """
        Add one IMU sample to the preintegrated deltas.

        Args:
            measured_acc: Accelerometer reading (3,), sensor frame (m/s^2)
            measured_omega: Gyroscope reading (3,), sensor frame (rad/s)
            dt: Sample interval (s), strictly positive
            body_P_sensor: Optional sensor pose in the body frame (Pose3)
            omega_dot: Optional angular acceleration (3,), sensor frame,
                used for the tangential lever-arm term
        """
        pass

    @property
    @abstractmethod
    def preint_meas_cov(self) -> np.ndarray:
        """Covariance of the (position, velocity, rotation) deltas (9, 9)."""
        pass

    @property
    def bias_hat(self) -> ConstantBias:
        return self._bias_hat

    @property
    def delta_R_ij(self) -> Rot3:
        return self._delta_R_ij

    @property
    def theta_R_ij(self) -> np.ndarray:
        return self._delta_R_ij.log()

    @property
    def delta_V_ij(self) -> np.ndarray:
        return self._delta_V_ij.copy()

    @property
    def delta_P_ij(self) -> np.ndarray:
        return self._delta_P_ij.copy()

    @property
    def delta_t_ij(self) -> float:
        return self._delta_t_ij

    @property
    def delP_delBiasAcc(self) -> np.ndarray:
        return self._delP_delBiasAcc.copy()

    @property
    def delP_delBiasOmega(self) -> np.ndarray:
        return self._delP_delBiasOmega.copy()

    @property
    def delV_delBiasAcc(self) -> np.ndarray:
        return self._delV_delBiasAcc.copy()

    @property
    def delV_delBiasOmega(self) -> np.ndarray:
        return self._delV_delBiasOmega.copy()

    @property
    def delR_delBiasOmega(self) -> np.ndarray:
        return self._delR_delBiasOmega.copy()

    # ------------------------------------------------------------------
    # Integration building blocks
    # ------------------------------------------------------------------

    def validate_measurement(self, measured_acc, measured_omega, dt,
                             body_P_sensor=None, omega_dot=None):
        """Check a sample before anything is mutated. Returns (acc, omega, dt)."""
        acc = as_vector3(measured_acc, "measured_acc")
        omega = as_vector3(measured_omega, "measured_omega")
        try:
            dt = float(dt)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"dt must be a number, got {dt!r}") from e
        if not np.isfinite(dt) or dt <= 0.0:
            raise InvalidInputError(f"dt must be finite and > 0, got {dt}")
        if body_P_sensor is not None and not isinstance(body_P_sensor, Pose3):
            raise InvalidInputError("body_P_sensor must be a Pose3")
        if omega_dot is not None:
            if body_P_sensor is None:
                raise InvalidInputError("omega_dot requires body_P_sensor")
            as_vector3(omega_dot, "omega_dot")
        if dt > self.max_dt:
            logger.warning("integrating a long IMU step: dt=%.3f s > %.3f s",
                           dt, self.max_dt)
        return acc, omega, dt

    def correct_measurements_by_bias_and_sensor_pose(self, measured_acc, measured_omega,
                                                     body_P_sensor=None, omega_dot=None):
        """
        Remove the bias and express the sample in the body frame.

        With a sensor pose, the angular rate is rotated into the body frame and
        the lever-arm accelerations of the sensor offset are removed:
        ``a_b = R_bs a_s - [w]x [w]x t_bs - [w_dot]x t_bs``.

        Returns:
            Tuple of (corrected_acc, corrected_omega)
        """
        corrected_acc = self._bias_hat.correct_accelerometer(measured_acc)
        corrected_omega = self._bias_hat.correct_gyroscope(measured_omega)

        if body_P_sensor is not None:
            body_R_sensor = body_P_sensor.rotation().matrix()
            lever_arm = body_P_sensor.translation()

            corrected_omega = body_R_sensor.dot(corrected_omega)
            omega_skew = skew_symmetric(corrected_omega)
            corrected_acc = body_R_sensor.dot(corrected_acc) \
                - omega_skew.dot(omega_skew).dot(lever_arm)
            if omega_dot is not None:
                body_omega_dot = body_R_sensor.dot(np.asarray(omega_dot, dtype=float))
                corrected_acc = corrected_acc - np.cross(body_omega_dot, lever_arm)

        return corrected_acc, corrected_omega

    def update_preintegrated_jacobians(self, corrected_acc, Jr_theta_incr, R_incr, dt):
        """
        Propagate the bias Jacobians by one step.

        Must run before ``update_preintegrated_measurements``: every recursion
        below is linearized at the current (pre-step) rotation delta.
        """
        dRij = self._delta_R_ij.matrix()
        # d(delta_V)/d(bias_omega) increment of this step
        temp = -dRij.dot(skew_symmetric(corrected_acc)).dot(self._delR_delBiasOmega) * dt

        if self.use_2nd_order_integration:
            self._delP_delBiasAcc += self._delV_delBiasAcc * dt - 0.5 * dRij * dt * dt
            self._delP_delBiasOmega += dt * (self._delV_delBiasOmega + 0.5 * temp)
            self._delV_delBiasAcc += -dRij * dt
            self._delV_delBiasOmega += temp
        else:
            # position uses the velocity after this step
            self._delV_delBiasAcc += -dRij * dt
            self._delV_delBiasOmega += temp
            self._delP_delBiasAcc += self._delV_delBiasAcc * dt
            self._delP_delBiasOmega += self._delV_delBiasOmega * dt

        self._delR_delBiasOmega = R_incr.transpose().dot(self._delR_delBiasOmega) \
            - Jr_theta_incr * dt

    def update_preintegrated_measurements(self, corrected_acc, R_incr, dt):
        """Advance delta_P_ij, delta_V_ij, delta_R_ij and delta_t_ij by one step."""
        dRij = self._delta_R_ij.matrix()
        temp = dRij.dot(corrected_acc) * dt

        if self.use_2nd_order_integration:
            self._delta_P_ij += self._delta_V_ij * dt + 0.5 * temp * dt
            self._delta_V_ij += temp
        else:
            self._delta_V_ij += temp
            self._delta_P_ij += self._delta_V_ij * dt

        self._delta_R_ij = self._delta_R_ij * R_incr
        self._delta_t_ij += dt
        self._n_integrated += 1

        if self.n_normalize_rot and self._n_integrated % self.n_normalize_rot == 0:
            self._delta_R_ij = self._delta_R_ij.normalized()
            logger.debug("delta_R_ij re-orthonormalized after %d steps",
                         self._n_integrated)

    # ------------------------------------------------------------------
    # First-order bias correction
    # ------------------------------------------------------------------

    def bias_corrected_delta_R(self, bias_omega_incr) -> Rot3:
        """delta_R_ij * Exp(delR_delBiasOmega * bias_omega_incr)"""
        return self._delta_R_ij.retract(self._delR_delBiasOmega.dot(bias_omega_incr))

    def bias_corrected_theta(self, bias_omega_incr) -> np.ndarray:
        return self.bias_corrected_delta_R(bias_omega_incr).log()

    def bias_corrected_delta_V(self, bias_incr: ConstantBias) -> np.ndarray:
        return self._delta_V_ij \
            + self._delV_delBiasAcc.dot(bias_incr.accelerometer()) \
            + self._delV_delBiasOmega.dot(bias_incr.gyroscope())

    def bias_corrected_delta_P(self, bias_incr: ConstantBias) -> np.ndarray:
        return self._delta_P_ij \
            + self._delP_delBiasAcc.dot(bias_incr.accelerometer()) \
            + self._delP_delBiasOmega.dot(bias_incr.gyroscope())

    # ------------------------------------------------------------------
    # Prediction and residual
    # ------------------------------------------------------------------

    def _predict_position_velocity(self, pose_i, vel_i, bias_incr, gravity,
                                   omega_coriolis, use_2nd_order_coriolis):
        """Predicted (pos_j, vel_j, delta_P corrected, delta_V corrected)."""
        dt = self._delta_t_ij
        R_i = pose_i.rotation().matrix()
        pos_i = pose_i.translation()

        delta_P = self.bias_corrected_delta_P(bias_incr)
        delta_V = self.bias_corrected_delta_V(bias_incr)
        coriolis_vel = np.cross(omega_coriolis, vel_i)

        pos_j = pos_i + R_i.dot(delta_P) + vel_i * dt \
            - coriolis_vel * dt * dt \
            + 0.5 * gravity * dt * dt
        vel_j = vel_i + R_i.dot(delta_V) \
            - 2.0 * coriolis_vel * dt \
            + gravity * dt

        if use_2nd_order_coriolis:
            centripetal = np.cross(omega_coriolis, np.cross(omega_coriolis, pos_i))
            pos_j = pos_j - 0.5 * centripetal * dt * dt
            vel_j = vel_j - centripetal * dt

        return pos_j, vel_j, delta_P, delta_V

    def _corrected_rotation(self, R_i, bias_omega_incr, omega_coriolis):
        """Bias and Coriolis corrected rotation delta and its parametrizations."""
        theta_biascorrected = self.bias_corrected_theta(bias_omega_incr)
        theta_corrected = theta_biascorrected \
            - R_i.T.dot(omega_coriolis) * self._delta_t_ij
        return theta_biascorrected, theta_corrected, Rot3.expmap(theta_corrected)

    def predict(self, pose_i: Pose3, vel_i, bias_i: ConstantBias, gravity,
                omega_coriolis=None, use_2nd_order_coriolis=False) -> PoseVelocityBias:
        """
        Predict the navigation state at the end of the interval.

        Args:
            pose_i: Pose at the start of the interval
            vel_i: Navigation-frame velocity at the start (3,)
            bias_i: Current bias estimate (predicted constant)
            gravity: Navigation-frame gravity (3,)
            omega_coriolis: Navigation-frame rotation rate (3,), default zero
            use_2nd_order_coriolis: Include the centripetal terms

        Returns:
            PoseVelocityBias at the end of the interval
        """
        vel_i = np.asarray(vel_i, dtype=float)
        gravity = np.asarray(gravity, dtype=float)
        omega_coriolis = np.zeros(3) if omega_coriolis is None \
            else np.asarray(omega_coriolis, dtype=float)
        bias_incr = bias_i - self._bias_hat

        pos_j, vel_j, _, _ = self._predict_position_velocity(
            pose_i, vel_i, bias_incr, gravity, omega_coriolis, use_2nd_order_coriolis)
        _, _, delta_R_corrected = self._corrected_rotation(
            pose_i.rotation().matrix(), bias_incr.gyroscope(), omega_coriolis)
        Rot_j = pose_i.rotation() * delta_R_corrected

        return PoseVelocityBias(Pose3(Rot_j, pos_j), vel_j, bias_i)

    def compute_error_and_jacobians(self, pose_i: Pose3, vel_i, pose_j: Pose3, vel_j,
                                    bias_i: ConstantBias, gravity, omega_coriolis=None,
                                    use_2nd_order_coriolis=False,
                                    H1=False, H2=False, H3=False, H4=False,
                                    H5=False) -> Linearization:
        """
        Residual of the preintegrated measurement and its Jacobians.

        The residual is ``[fp, fv, fR]`` (see POS, VEL, ROT):
            fp = R_i^T (p_j - p_j_pred)
            fv = R_i^T (v_j - v_j_pred)
            fR = Log(dR_corrected^T R_i^T R_j)

        Jacobians are taken with respect to right perturbations of each
        variable: poses use ``Pose3.retract`` (9x6, rotation columns first),
        velocities are additive (9x3), the bias is additive ``[acc, gyro]``
        (9x6). Only the blocks whose flag is set are computed.

        Returns:
            Linearization(error (9,), [H1, H2, H3, H4, H5])
        """
        dt = self._delta_t_ij
        vel_i = np.asarray(vel_i, dtype=float)
        vel_j = np.asarray(vel_j, dtype=float)
        gravity = np.asarray(gravity, dtype=float)
        omega_coriolis = np.zeros(3) if omega_coriolis is None \
            else np.asarray(omega_coriolis, dtype=float)

        bias_incr = bias_i - self._bias_hat
        bias_omega_incr = bias_incr.gyroscope()

        Rot_i = pose_i.rotation()
        Rot_j = pose_j.rotation()
        R_i = Rot_i.matrix()

        pos_j_pred, vel_j_pred, delta_P, delta_V = self._predict_position_velocity(
            pose_i, vel_i, bias_incr, gravity, omega_coriolis, use_2nd_order_coriolis)
        theta_bc, theta_bcc, delta_R_bcc = self._corrected_rotation(
            R_i, bias_omega_incr, omega_coriolis)

        fp = R_i.T.dot(pose_j.translation() - pos_j_pred)
        fv = R_i.T.dot(vel_j - vel_j_pred)
        fRhat = delta_R_bcc.between(Rot_i.between(Rot_j))
        fR = fRhat.log()
        error = np.concatenate([fp, fv, fR])

        if not (H1 or H2 or H3 or H4 or H5):
            return Linearization(error, [None] * 5)

        Jrinv_fR = so3_right_jacobian_inverse(fR)
        Jr_theta_bcc = so3_right_jacobian(theta_bcc)
        fRhat_T = fRhat.transpose()
        omega_skew = skew_symmetric(omega_coriolis)

        H_pose_i = H_vel_i = H_pose_j = H_vel_j = H_bias = None

        if H1:
            if use_2nd_order_coriolis:
                omega_skew2 = R_i.T.dot(omega_skew).dot(omega_skew).dot(R_i)
                dfP_dPi = -Id3 + 0.5 * omega_skew2 * dt * dt
                dfV_dPi = omega_skew2 * dt
            else:
                dfP_dPi = -Id3
                dfV_dPi = Z3
            # theta_bcc depends on R_i through the Coriolis rotation term
            coriolis_skew = skew_symmetric(R_i.T.dot(omega_coriolis) * dt)
            dfR_dRi = Jrinv_fR.dot(
                -Rot_j.between(Rot_i).matrix()
                + fRhat_T.dot(Jr_theta_bcc).dot(coriolis_skew))

            H_pose_i = np.block([
                [skew_symmetric(fp + delta_P), dfP_dPi],
                [skew_symmetric(fv + delta_V), dfV_dPi],
                [dfR_dRi, Z3],
            ])

        if H2:
            H_vel_i = np.vstack([
                R_i.T.dot(-Id3 * dt + omega_skew * dt * dt),
                R_i.T.dot(-Id3 + 2.0 * omega_skew * dt),
                Z3,
            ])

        if H3:
            H_pose_j = np.block([
                [Z3, Rot_i.between(Rot_j).matrix()],
                [Z3, Z3],
                [Jrinv_fR, Z3],
            ])

        if H4:
            H_vel_j = np.vstack([Z3, R_i.T, Z3])

        if H5:
            Jrinv_theta_bc = so3_right_jacobian_inverse(theta_bc)
            Jr_bias_omega = so3_right_jacobian(self._delR_delBiasOmega.dot(bias_omega_incr))
            dfR_dBiasOmega = -Jrinv_fR.dot(fRhat_T).dot(Jr_theta_bcc) \
                .dot(Jrinv_theta_bc).dot(Jr_bias_omega).dot(self._delR_delBiasOmega)

            H_bias = np.block([
                [-self._delP_delBiasAcc, -self._delP_delBiasOmega],
                [-self._delV_delBiasAcc, -self._delV_delBiasOmega],
                [Z3, dfR_dBiasOmega],
            ])

        return Linearization(error, [H_pose_i, H_vel_i, H_pose_j, H_vel_j, H_bias])

    # ------------------------------------------------------------------
    # Comparison and persistence
    # ------------------------------------------------------------------

    def equals(self, other, tol=1e-9) -> bool:
        """Approximate equality of the accumulated state."""
        def close(a, b):
            return np.allclose(a, b, rtol=0.0, atol=tol)

        return isinstance(other, PreintegrationBase) \
            and self._bias_hat.equals(other.bias_hat, tol) \
            and self.use_2nd_order_integration == other.use_2nd_order_integration \
            and abs(self._delta_t_ij - other.delta_t_ij) <= tol \
            and self._delta_R_ij.equals(other.delta_R_ij, tol) \
            and close(self._delta_V_ij, other.delta_V_ij) \
            and close(self._delta_P_ij, other.delta_P_ij) \
            and close(self._delP_delBiasAcc, other.delP_delBiasAcc) \
            and close(self._delP_delBiasOmega, other.delP_delBiasOmega) \
            and close(self._delV_delBiasAcc, other.delV_delBiasAcc) \
            and close(self._delV_delBiasOmega, other.delV_delBiasOmega) \
            and close(self._delR_delBiasOmega, other.delR_delBiasOmega)

    _STATE_KEYS = (
        "delta_R_ij", "delta_V_ij", "delta_P_ij", "delta_t_ij",
        "delP_delBiasAcc", "delP_delBiasOmega",
        "delV_delBiasAcc", "delV_delBiasOmega", "delR_delBiasOmega",
        "bias_hat",
    )

    def get_state_dict(self) -> Dict[str, Any]:
        """
        Get the accumulated state as a dictionary of plain arrays.

        Returns:
            Dictionary containing deltas, bias Jacobians, bias and parameters
        """
        return {
            "parameters": self.parameters.as_dict(),
            "delta_R_ij": self._delta_R_ij.matrix().copy(),
            "delta_V_ij": self._delta_V_ij.copy(),
            "delta_P_ij": self._delta_P_ij.copy(),
            "delta_t_ij": self._delta_t_ij,
            "delP_delBiasAcc": self._delP_delBiasAcc.copy(),
            "delP_delBiasOmega": self._delP_delBiasOmega.copy(),
            "delV_delBiasAcc": self._delV_delBiasAcc.copy(),
            "delV_delBiasOmega": self._delV_delBiasOmega.copy(),
            "delR_delBiasOmega": self._delR_delBiasOmega.copy(),
            "bias_hat": self._bias_hat.vector(),
            "n_integrated": self._n_integrated,
        }

    def load_state_dict(self, state_dict: Dict[str, Any]):
        """
        Load the accumulated state from a dictionary.

        Args:
            state_dict: Dictionary produced by ``get_state_dict``

        Raises:
            InvalidInputError: on a missing or malformed entry; nothing is
                modified in that case
        """
        if not isinstance(state_dict, dict):
            raise InvalidInputError(f"state dict must be a dict, got {type(state_dict).__name__}")
        missing = [k for k in self._STATE_KEYS if k not in state_dict]
        if missing:
            raise InvalidInputError(f"state dict is missing key(s): {missing}")

        # Validate everything before touching the instance
        bias_hat = ConstantBias.from_vector(self._state_array(state_dict, "bias_hat", (6,)))
        R = self._state_array(state_dict, "delta_R_ij", (3, 3))
        if not np.allclose(R.dot(R.T), Id3, atol=1e-6) or np.linalg.det(R) <= 0.0:
            raise InvalidInputError("delta_R_ij is not a rotation matrix")
        delta_V = self._state_array(state_dict, "delta_V_ij", (3,))
        delta_P = self._state_array(state_dict, "delta_P_ij", (3,))
        delta_t = self._state_array(state_dict, "delta_t_ij", ())
        if delta_t < 0.0:
            raise InvalidInputError(f"delta_t_ij must be >= 0, got {delta_t}")
        jacobians = {key: self._state_array(state_dict, key, (3, 3))
                     for key in ("delP_delBiasAcc", "delP_delBiasOmega", "delV_delBiasAcc",
                                 "delV_delBiasOmega", "delR_delBiasOmega")}
        try:
            n_integrated = int(state_dict.get("n_integrated", 0))
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"n_integrated must be an integer: {e}") from e
        parameters = state_dict.get("parameters", {})
        if not isinstance(parameters, dict):
            raise InvalidInputError("parameters must be a dict")

        self._bias_hat = bias_hat
        self._delta_R_ij = Rot3(R)
        self._delta_V_ij = delta_V
        self._delta_P_ij = delta_P
        self._delta_t_ij = float(delta_t)
        for key, value in jacobians.items():
            setattr(self, "_" + key, value)
        self._n_integrated = n_integrated

        self.parameters.set(**parameters)
        self.set_param_attr()

    @staticmethod
    def _state_array(state_dict, key, shape):
        """Finite float array of the given shape from a state dict entry."""
        try:
            value = np.array(state_dict[key], dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"{key} is not numeric: {e}") from e
        if value.shape != shape:
            raise InvalidInputError(f"{key} must have shape {shape}, got {value.shape}")
        if not np.all(np.isfinite(value)):
            raise InvalidInputError(f"{key} must be finite")
        return value

    def __repr__(self):
        return (f"{type(self).__name__}(delta_t_ij={self._delta_t_ij:.4f}, "
                f"delta_R_ij={self._delta_R_ij!r}, "
                f"delta_V_ij={np.array2string(self._delta_V_ij, precision=4)}, "
                f"delta_P_ij={np.array2string(self._delta_P_ij, precision=4)}, "
                f"bias_hat={self._bias_hat!r})")
