"""
Synthetic IMU sequences with exact ground truth.

The ground truth is propagated with the same discrete-time kinematics the
preintegrator uses in second-order mode, so a noise-free sequence gives a
zero factor residual at the true states (no Coriolis).
"""

import numpy as np

from imu_preint.utils.geometry import Pose3, Rot3, so3_exp


class AddIMUNoise:
    """
    Add random noise to IMU measurements.

    Adds both per-sample white noise and a constant bias perturbation.

    Args:
        sigma_gyro: Gyroscope noise standard deviation.
        sigma_acc: Accelerometer noise standard deviation.
        sigma_b_gyro: Gyroscope bias noise standard deviation.
        sigma_b_acc: Accelerometer bias noise standard deviation.
        seed: Seed of the random generator.
    """

    def __init__(self, sigma_gyro=1e-4, sigma_acc=1e-4,
                 sigma_b_gyro=0.0, sigma_b_acc=0.0, seed=None):
        self.sigma_gyro = sigma_gyro
        self.sigma_acc = sigma_acc
        self.sigma_b_gyro = sigma_b_gyro
        self.sigma_b_acc = sigma_b_acc
        self.rng = np.random.default_rng(seed)

    def __call__(self, data):
        N = data['acc'].shape[0]
        data['omega'] = data['omega'] \
            + self.sigma_gyro * self.rng.standard_normal((N, 3)) \
            + self.sigma_b_gyro * self.rng.standard_normal(3)
        data['acc'] = data['acc'] \
            + self.sigma_acc * self.rng.standard_normal((N, 3)) \
            + self.sigma_b_acc * self.rng.standard_normal(3)
        return data


def simulate_constant_rate(n_steps, dt, omega_body, specific_force_body,
                           gravity=(0.0, 0.0, -9.81), pose0=None, vel0=None,
                           bias=None):
    """
    Simulate a body with constant angular rate and constant specific force.

    Args:
        n_steps: Number of IMU samples
        dt: Sample interval (s)
        omega_body: True body angular rate (3,)
        specific_force_body: True body specific force (3,), what an ideal
            accelerometer reads, e.g. [0, 0, 9.81] at rest
        gravity: Navigation-frame gravity (3,)
        pose0: Initial Pose3 (default: identity)
        vel0: Initial velocity (3,) (default: zero)
        bias: Optional ConstantBias added to the readings

    Returns:
        Dict with 'acc' (N, 3), 'omega' (N, 3), 'dt' (N,), 't' (N + 1,),
        'poses' (list of N + 1 Pose3) and 'vels' (N + 1, 3)
    """
    omega_body = np.asarray(omega_body, dtype=float)
    f_body = np.asarray(specific_force_body, dtype=float)
    gravity = np.asarray(gravity, dtype=float)
    pose0 = Pose3.identity() if pose0 is None else pose0
    vel0 = np.zeros(3) if vel0 is None else np.asarray(vel0, dtype=float)

    R_incr = so3_exp(omega_body * dt)
    Rot = pose0.rotation().matrix()
    p = pose0.translation().copy()
    v = vel0.copy()

    poses = [pose0]
    vels = np.zeros((n_steps + 1, 3))
    vels[0] = v
    for i in range(n_steps):
        acc = Rot.dot(f_body) + gravity
        p = p + v * dt + 0.5 * acc * dt * dt
        v = v + acc * dt
        Rot = Rot.dot(R_incr)
        poses.append(Pose3(Rot3(Rot), p))
        vels[i + 1] = v

    acc_meas = np.tile(f_body, (n_steps, 1))
    omega_meas = np.tile(omega_body, (n_steps, 1))
    if bias is not None:
        acc_meas = acc_meas + bias.accelerometer()
        omega_meas = omega_meas + bias.gyroscope()

    return {
        'acc': acc_meas,
        'omega': omega_meas,
        'dt': np.full(n_steps, float(dt)),
        't': dt * np.arange(n_steps + 1),
        'poses': poses,
        'vels': vels,
    }
