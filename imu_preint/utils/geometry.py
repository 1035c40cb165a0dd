"""
Geometry utilities for SO(3) and SE(3) operations.

This module contains functions for:
- SO(3) exponential and logarithm maps
- SO(3) left/right Jacobians and the inverse right Jacobian
- Rotation matrix conversions (roll-pitch-yaw <-> rotation matrix)
- Rotation matrix normalization

and the two value types used by the preintegration code, ``Rot3`` and
``Pose3``. Both are immutable: every operation returns a new object.
"""

import numpy as np


# Identity matrices for common dimensions
Id3 = np.eye(3)

# Below this angle the closed-form expressions divide by ~0 and the
# Taylor expansions are used instead.
SMALL_ANGLE = 1e-8

# Distance from pi below which the logarithm extracts the axis from the
# symmetric part of the rotation instead of the skew part.
NEAR_PI = 1e-3


def skew_symmetric(v):
    """
    Convert 3D vector to its skew-symmetric matrix representation.

    Args:
        v: 3D vector [v0, v1, v2]

    Returns:
        3x3 skew-symmetric matrix
    """
    return np.array([[0, -v[2], v[1]],
                     [v[2], 0, -v[0]],
                     [-v[1], v[0], 0]])


def vee(S):
    """Inverse of ``skew_symmetric``: extract the vector of a 3x3 skew matrix."""
    return np.array([S[2, 1], S[0, 2], S[1, 0]])


def so3_exp(phi):
    """
    SO(3) exponential map: converts rotation vector to rotation matrix.

    Args:
        phi: 3D rotation vector (axis-angle representation)

    Returns:
        3x3 rotation matrix
    """
    angle = np.linalg.norm(phi)

    # Near phi==0, use first order Taylor expansion
    if angle < SMALL_ANGLE:
        return Id3 + skew_symmetric(phi)

    axis = phi / angle
    skew_axis = skew_symmetric(axis)
    s = np.sin(angle)
    c = np.cos(angle)

    return c * Id3 + (1 - c) * np.outer(axis, axis) + s * skew_axis


def so3_log(Rot):
    """
    SO(3) logarithm map: converts rotation matrix to rotation vector.

    The angle is recovered with atan2 so that it stays accurate close to
    the identity, where arccos of the trace loses half the digits.

    Args:
        Rot: 3x3 rotation matrix

    Returns:
        3D rotation vector with norm in [0, pi]
    """
    # w = sin(angle) * axis
    w = 0.5 * vee(Rot - Rot.T)
    sin_angle = np.linalg.norm(w)
    cos_angle = 0.5 * (np.trace(Rot) - 1.0)
    angle = np.arctan2(sin_angle, cos_angle)

    if angle < SMALL_ANGLE:
        return w

    if np.pi - angle < NEAR_PI:
        # (R + R^T) / 2 = cos(angle) I + (1 - cos(angle)) axis axis^T
        M = (0.5 * (Rot + Rot.T) - cos_angle * Id3) / (1.0 - cos_angle)
        i = int(np.argmax(np.diag(M)))
        axis = M[:, i] / np.sqrt(M[i, i])
        axis = axis / np.linalg.norm(axis)
        if np.dot(axis, w) < 0:
            axis = -axis
        return angle * axis

    return (angle / sin_angle) * w


def so3_left_jacobian(phi):
    """
    Left Jacobian of SO(3) for use in Lie algebra operations.

    Args:
        phi: 3D rotation vector

    Returns:
        3x3 left Jacobian matrix
    """
    angle = np.linalg.norm(phi)

    # Near |phi|==0, use first order Taylor expansion
    if angle < SMALL_ANGLE:
        skew_phi = skew_symmetric(phi)
        return Id3 + 0.5 * skew_phi

    axis = phi / angle
    skew_axis = skew_symmetric(axis)
    s = np.sin(angle)
    c = np.cos(angle)

    return (s / angle) * Id3 \
           + (1 - s / angle) * np.outer(axis, axis) \
           + ((1 - c) / angle) * skew_axis


def so3_right_jacobian(phi):
    """
    Right Jacobian of SO(3).

    Relates a perturbation of the exponential map argument to a
    perturbation on the right of the result:
    ``Exp(phi + dphi) ~= Exp(phi) Exp(Jr(phi) dphi)``.

    Args:
        phi: 3D rotation vector

    Returns:
        3x3 right Jacobian matrix
    """
    # Jr(phi) = Jl(-phi)
    return so3_left_jacobian(-np.asarray(phi, dtype=float))


def so3_right_jacobian_inverse(phi):
    """
    Inverse of the SO(3) right Jacobian.

    ``Log(Exp(phi) Exp(dphi)) ~= phi + Jr^-1(phi) dphi``.

    Args:
        phi: 3D rotation vector

    Returns:
        3x3 inverse right Jacobian matrix
    """
    angle = np.linalg.norm(phi)
    skew_phi = skew_symmetric(phi)

    if angle < SMALL_ANGLE:
        return Id3 + 0.5 * skew_phi

    s = np.sin(angle)
    c = np.cos(angle)

    return Id3 \
        + 0.5 * skew_phi \
        + (1.0 / (angle * angle) - (1 + c) / (2 * angle * s)) \
        * skew_phi.dot(skew_phi)


def normalize_rot(Rot):
    """
    Normalize a rotation matrix using SVD to correct numerical drift.

    Ensures the matrix remains in SO(3) by projecting onto the nearest
    proper orthogonal matrix.

    Args:
        Rot: 3x3 rotation matrix (possibly with numerical errors)

    Returns:
        3x3 normalized rotation matrix
    """
    # The SVD is commonly written as a = U S V.H.
    # The v returned by this function is V.H and u = U.
    U, _, V = np.linalg.svd(Rot, full_matrices=False)

    S = np.eye(3)
    S[2, 2] = np.linalg.det(U) * np.linalg.det(V)
    return U.dot(S).dot(V)


def from_rpy(roll, pitch, yaw):
    """
    Convert roll-pitch-yaw angles to rotation matrix.

    Uses ZYX Euler angle convention (yaw -> pitch -> roll).

    Args:
        roll: Rotation around x-axis (radians)
        pitch: Rotation around y-axis (radians)
        yaw: Rotation around z-axis (radians)

    Returns:
        3x3 rotation matrix
    """
    return rotz(yaw).dot(roty(pitch).dot(rotx(roll)))


def rotx(t):
    """Elementary rotation matrix around x-axis."""
    c = np.cos(t)
    s = np.sin(t)
    return np.array([[1,  0,  0],
                     [0,  c, -s],
                     [0,  s,  c]])


def roty(t):
    """Elementary rotation matrix around y-axis."""
    c = np.cos(t)
    s = np.sin(t)
    return np.array([[c,  0,  s],
                     [0,  1,  0],
                     [-s, 0,  c]])


def rotz(t):
    """Elementary rotation matrix around z-axis."""
    c = np.cos(t)
    s = np.sin(t)
    return np.array([[c, -s,  0],
                     [s,  c,  0],
                     [0,  0,  1]])


def to_rpy(Rot):
    """
    Convert rotation matrix to roll-pitch-yaw angles.

    Uses ZYX Euler angle convention.

    Args:
        Rot: 3x3 rotation matrix

    Returns:
        Tuple of (roll, pitch, yaw) in radians
    """
    pitch = np.arctan2(-Rot[2, 0], np.sqrt(Rot[0, 0]**2 + Rot[1, 0]**2))

    if np.isclose(pitch, np.pi / 2.):
        yaw = 0.
        roll = np.arctan2(Rot[0, 1], Rot[1, 1])
    elif np.isclose(pitch, -np.pi / 2.):
        yaw = 0.
        roll = -np.arctan2(Rot[0, 1], Rot[1, 1])
    else:
        sec_pitch = 1. / np.cos(pitch)
        yaw = np.arctan2(Rot[1, 0] * sec_pitch,
                         Rot[0, 0] * sec_pitch)
        roll = np.arctan2(Rot[2, 1] * sec_pitch,
                          Rot[2, 2] * sec_pitch)

    return roll, pitch, yaw


def _frozen(array, shape):
    out = np.array(array, dtype=float)
    if out.shape != shape:
        raise ValueError(f"Expected array of shape {shape}, got {out.shape}")
    out.setflags(write=False)
    return out


class Rot3:
    """
    Element of SO(3) stored as a read-only 3x3 rotation matrix.

    Composition is matrix multiplication (``R1 * R2``); tangent-space
    operations use the right-perturbation convention
    ``retract(v) = R Exp(v)``.
    """

    __slots__ = ("_R",)

    def __init__(self, R=None):
        self._R = _frozen(Id3 if R is None else R, (3, 3))

    @classmethod
    def identity(cls):
        return cls(Id3)

    @classmethod
    def expmap(cls, phi):
        """Rotation of angle ``|phi|`` around ``phi / |phi|``."""
        return cls(so3_exp(np.asarray(phi, dtype=float)))

    @classmethod
    def from_rpy(cls, roll, pitch, yaw):
        return cls(from_rpy(roll, pitch, yaw))

    @staticmethod
    def logmap(rot):
        return so3_log(rot.matrix())

    def log(self):
        return so3_log(self._R)

    def matrix(self):
        return self._R

    def transpose(self):
        return self._R.T

    def compose(self, other):
        return Rot3(self._R.dot(other.matrix()))

    def __mul__(self, other):
        return self.compose(other)

    def inverse(self):
        return Rot3(self._R.T)

    def between(self, other):
        """Relative rotation ``self^-1 * other``."""
        return Rot3(self._R.T.dot(other.matrix()))

    def retract(self, v):
        return Rot3(self._R.dot(so3_exp(np.asarray(v, dtype=float))))

    def local(self, other):
        return so3_log(self._R.T.dot(other.matrix()))

    def rotate(self, p):
        return self._R.dot(p)

    def unrotate(self, p):
        return self._R.T.dot(p)

    def normalized(self):
        return Rot3(normalize_rot(self._R))

    def rpy(self):
        return np.array(to_rpy(self._R))

    def equals(self, other, tol=1e-9):
        return np.allclose(self._R, other.matrix(), rtol=0.0, atol=tol)

    def __repr__(self):
        return f"Rot3(rpy={np.array2string(self.rpy(), precision=4)})"


class Pose3:
    """
    Rigid transform (rotation + translation).

    The tangent vector is ordered ``[rotation (3), translation (3)]`` and
    both parts are perturbed in the body frame:
    ``retract(xi) = (R Exp(xi[:3]), t + R xi[3:])``.
    """

    __slots__ = ("_rot", "_t")

    def __init__(self, rotation=None, translation=None):
        if rotation is None:
            rotation = Rot3.identity()
        elif not isinstance(rotation, Rot3):
            rotation = Rot3(rotation)
        self._rot = rotation
        self._t = _frozen(np.zeros(3) if translation is None else translation, (3,))

    @classmethod
    def identity(cls):
        return cls()

    def rotation(self):
        return self._rot

    def translation(self):
        return self._t

    def matrix(self):
        T = np.eye(4)
        T[:3, :3] = self._rot.matrix()
        T[:3, 3] = self._t
        return T

    def compose(self, other):
        return Pose3(self._rot * other.rotation(),
                     self._t + self._rot.rotate(other.translation()))

    def __mul__(self, other):
        return self.compose(other)

    def inverse(self):
        Rt = self._rot.inverse()
        return Pose3(Rt, -Rt.rotate(self._t))

    def transform_from(self, p):
        return self._rot.rotate(p) + self._t

    def retract(self, xi):
        xi = np.asarray(xi, dtype=float)
        return Pose3(self._rot.retract(xi[:3]),
                     self._t + self._rot.rotate(xi[3:]))

    def equals(self, other, tol=1e-9):
        return self._rot.equals(other.rotation(), tol) and \
            np.allclose(self._t, other.translation(), rtol=0.0, atol=tol)

    def __repr__(self):
        return (f"Pose3(rot={self._rot!r}, "
                f"t={np.array2string(self._t, precision=4)})")
