"""
On-manifold IMU preintegration and the preintegrated IMU factor.

Usage:
    from imu_preint import PreintegratedImuMeasurements, ImuFactor, ConstantBias

    pim = PreintegratedImuMeasurements(bias=ConstantBias())
    pim.integrate_measurement(acc, omega, dt)
    factor = ImuFactor("x0", "v0", "x1", "v1", "b0", pim, gravity=[0, 0, -9.81])
    error, H = factor.evaluate_error(pose_i, vel_i, pose_j, vel_j, bias_i, H1=True)
"""

from imu_preint.core import (
    ConstantBias, GaussianNoiseModel, ImuFactor, InvalidInputError, NoiseModel,
    PoseVelocityBias, PreintegratedImuMeasurements, PreintegrationBase
)
from imu_preint.utils.geometry import Pose3, Rot3

__version__ = "0.1.0"
