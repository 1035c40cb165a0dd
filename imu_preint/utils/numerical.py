"""
Central finite-difference Jacobians on manifolds.

Used to check the analytic Jacobians of the factor and of the covariance
propagation. Not used on the estimation path.
"""

import numpy as np

from imu_preint.core.types import ConstantBias
from imu_preint.utils.geometry import Pose3, Rot3


def tangent_dim(x):
    """Dimension of the tangent space of ``x``."""
    if isinstance(x, Pose3) or isinstance(x, ConstantBias):
        return 6
    if isinstance(x, Rot3):
        return 3
    return np.asarray(x).size


def retract(x, v):
    """Move ``x`` along tangent vector ``v`` with the convention of its type."""
    if isinstance(x, (Pose3, Rot3, ConstantBias)):
        return x.retract(v)
    return np.asarray(x, dtype=float) + v.reshape(np.shape(x))


def numerical_derivative(f, x, delta=1e-5):
    """
    Central difference Jacobian of a vector-valued ``f`` at ``x``.

    Args:
        f: Callable taking one argument of the type of ``x``
        x: Linearization point (Pose3, Rot3, ConstantBias or array)
        delta: Step along each tangent direction

    Returns:
        (m, n) Jacobian with n = tangent_dim(x)
    """
    n = tangent_dim(x)
    columns = []
    for i in range(n):
        d = np.zeros(n)
        d[i] = delta
        f_plus = np.asarray(f(retract(x, d)), dtype=float).ravel()
        f_minus = np.asarray(f(retract(x, -d)), dtype=float).ravel()
        columns.append((f_plus - f_minus) / (2.0 * delta))
    return np.stack(columns, axis=1)


def numerical_jacobians(f, args, delta=1e-5):
    """
    Jacobians of ``f(*args)`` with respect to each argument.

    Returns:
        List of Jacobians, one per argument
    """
    args = list(args)
    jacobians = []
    for k in range(len(args)):
        def f_k(x, k=k):
            perturbed = args[:k] + [x] + args[k + 1:]
            return f(*perturbed)
        jacobians.append(numerical_derivative(f_k, args[k], delta))
    return jacobians
