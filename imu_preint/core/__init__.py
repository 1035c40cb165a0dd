"""
Preintegration core: accumulator, covariance propagation and factor.

Usage:
    from imu_preint.core import PreintegratedImuMeasurements, ImuFactor
"""

from imu_preint.core.errors import InvalidInputError
from imu_preint.core.types import ConstantBias, PoseVelocityBias
from imu_preint.core.base_preintegration import PreintegrationBase, POS, VEL, ROT
from imu_preint.core.imu_preintegrator import PreintegratedImuMeasurements
from imu_preint.core.noise_model import NoiseModel, GaussianNoiseModel
from imu_preint.core.imu_factor import ImuFactor
