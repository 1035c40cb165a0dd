"""
Value types exchanged between the preintegrator, the factor and the caller.
"""

import numpy as np

from imu_preint.core.errors import InvalidInputError
from imu_preint.utils.geometry import Pose3


def as_vector3(v, name="vector"):
    """Return ``v`` as a finite float array of shape (3,)."""
    out = np.asarray(v, dtype=float)
    if out.shape != (3,):
        raise InvalidInputError(f"{name} must have shape (3,), got {out.shape}")
    if not np.all(np.isfinite(out)):
        raise InvalidInputError(f"{name} must be finite, got {out}")
    return out


class ConstantBias:
    """
    Accelerometer and gyroscope bias, constant over one preintegration interval.

    The 6D vector form is ``[acc (3), gyro (3)]``, which is also the column
    order of the bias Jacobian returned by the factor.
    """

    __slots__ = ("_acc", "_gyro")

    def __init__(self, accelerometer=None, gyroscope=None):
        acc = np.zeros(3) if accelerometer is None else accelerometer
        gyro = np.zeros(3) if gyroscope is None else gyroscope
        self._acc = as_vector3(acc, "accelerometer bias")
        self._gyro = as_vector3(gyro, "gyroscope bias")
        self._acc.setflags(write=False)
        self._gyro.setflags(write=False)

    @classmethod
    def from_vector(cls, v):
        v = np.asarray(v, dtype=float)
        if v.shape != (6,):
            raise InvalidInputError(f"bias vector must have shape (6,), got {v.shape}")
        return cls(v[:3], v[3:])

    def accelerometer(self):
        return self._acc

    def gyroscope(self):
        return self._gyro

    def vector(self):
        return np.concatenate([self._acc, self._gyro])

    def correct_accelerometer(self, measured_acc):
        return measured_acc - self._acc

    def correct_gyroscope(self, measured_omega):
        return measured_omega - self._gyro

    def retract(self, delta):
        return ConstantBias.from_vector(self.vector() + np.asarray(delta, dtype=float))

    def __sub__(self, other):
        return ConstantBias(self._acc - other.accelerometer(),
                            self._gyro - other.gyroscope())

    def __add__(self, other):
        return ConstantBias(self._acc + other.accelerometer(),
                            self._gyro + other.gyroscope())

    def equals(self, other, tol=1e-9):
        return np.allclose(self.vector(), other.vector(), rtol=0.0, atol=tol)

    def __repr__(self):
        return (f"ConstantBias(acc={np.array2string(self._acc, precision=4)}, "
                f"gyro={np.array2string(self._gyro, precision=4)})")


class PoseVelocityBias:
    """Navigation state predicted at the end of a preintegration interval."""

    __slots__ = ("pose", "velocity", "bias")

    def __init__(self, pose: Pose3, velocity, bias: ConstantBias):
        self.pose = pose
        self.velocity = np.asarray(velocity, dtype=float)
        self.bias = bias

    def __iter__(self):
        return iter((self.pose, self.velocity, self.bias))

    def __repr__(self):
        return (f"PoseVelocityBias(pose={self.pose!r}, "
                f"velocity={np.array2string(self.velocity, precision=4)}, "
                f"bias={self.bias!r})")
