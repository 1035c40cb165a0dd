"""
Manifold math, finite differences, persistence and plotting helpers.

Usage:
    from imu_preint.utils.geometry import Rot3, Pose3, so3_exp, so3_log
    from imu_preint.utils.numerical import numerical_jacobians
    from imu_preint.utils.io import save_preintegration, load_preintegration
"""
