"""
Persistence of preintegrated measurements.

The state is stored as a pickle of plain numpy arrays and floats (the
output of ``get_state_dict``), the same format used for processed IMU data.
"""

import logging
import os
import pickle

from imu_preint.core.errors import InvalidInputError
from imu_preint.core.imu_preintegrator import PreintegratedImuMeasurements

logger = logging.getLogger(__name__)

pickle_extension = ".p"


def save_preintegration(path, pim):
    """
    Save a preintegrator state to ``path``.

    Args:
        path: Output file; ``.p`` is appended when there is no extension
        pim: PreintegrationBase instance

    Returns:
        The path written
    """
    if not os.path.splitext(path)[1]:
        path = path + pickle_extension
    dirname = os.path.dirname(path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    with open(path, "wb") as f:
        pickle.dump({"type": type(pim).__name__,
                     "state": pim.get_state_dict()}, f)
    logger.debug("saved %s to %s", type(pim).__name__, path)
    return path


def load_preintegration(path, cls=PreintegratedImuMeasurements):
    """
    Load a preintegrator saved with ``save_preintegration``.

    Args:
        path: Pickle file
        cls: Class to instantiate

    Returns:
        Instance of ``cls`` holding the saved state
    """
    with open(path, "rb") as f:
        mondict = pickle.load(f)
    if not isinstance(mondict, dict) or "state" not in mondict:
        raise InvalidInputError(f"{path} does not contain a preintegration state")
    if mondict.get("type") != cls.__name__:
        logger.warning("loading a %s state into %s", mondict.get("type"), cls.__name__)
    pim = cls()
    pim.load_state_dict(mondict["state"])
    return pim
