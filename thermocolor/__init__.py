"""Thermal colorization of terrestrial laser scanning point clouds."""

__version__ = "0.1.0"

from . import calibration
from . import sensors
from . import data
from . import fusion
from . import utils
