"""
Noise model interface consumed by the factor.

The optimizer owns how a covariance becomes a weighting. The factor only
hands out its raw 9x9 covariance and, on request, builds a model through
whatever factory the caller provides. ``GaussianNoiseModel`` is the
reference implementation: a full-covariance Gaussian whitened by its
square-root information matrix.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple

import numpy as np

from imu_preint.core.errors import InvalidInputError


class NoiseModel(ABC):
    """Maps an unwhitened residual to a unit-covariance residual."""

    @property
    @abstractmethod
    def dim(self) -> int:
        pass

    @abstractmethod
    def whiten(self, v: np.ndarray) -> np.ndarray:
        """Whitened residual (dim,)."""
        pass

    @abstractmethod
    def covariance(self) -> np.ndarray:
        pass

    def whiten_system(self, A_list: List[np.ndarray],
                      b: np.ndarray) -> Tuple[List[np.ndarray], np.ndarray]:
        """Whiten the Jacobian blocks and right-hand side of a linear system."""
        return [None if A is None else self.whiten(A) for A in A_list], self.whiten(b)

    def distance(self, v: np.ndarray) -> float:
        """Squared Mahalanobis norm of ``v``."""
        w = self.whiten(v)
        return float(w.dot(w))


class GaussianNoiseModel(NoiseModel):
    """
    Gaussian noise with full covariance.

    Args:
        sqrt_information: Square-root information R with R^T R = covariance^-1
    """

    def __init__(self, sqrt_information):
        self.R = np.asarray(sqrt_information, dtype=float)

    @classmethod
    def from_covariance(cls, covariance):
        """
        Build the model from a covariance matrix.

        Raises:
            InvalidInputError: if the covariance is not positive definite,
                e.g. the zero covariance of an empty preintegration
        """
        cov = np.asarray(covariance, dtype=float)
        if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
            raise InvalidInputError(f"covariance must be square, got {cov.shape}")
        cov = 0.5 * (cov + cov.T)
        try:
            L = np.linalg.cholesky(cov)
        except np.linalg.LinAlgError as e:
            raise InvalidInputError(f"covariance is not positive definite: {e}") from e
        # cov = L L^T  =>  cov^-1 = L^-T L^-1
        return cls(np.linalg.solve(L, np.eye(cov.shape[0])))

    @property
    def dim(self):
        return self.R.shape[0]

    def whiten(self, v):
        return self.R.dot(v)

    def covariance(self):
        R_inv = np.linalg.inv(self.R)
        return R_inv.dot(R_inv.T)

    def __repr__(self):
        return f"GaussianNoiseModel(dim={self.dim})"
