# hilgp: human-in-the-loop Gaussian-process field estimation

from .data import (
    FieldSnapshot,
    HumanPrior,
    Hyperparameters,
    Observation,
    ObservationSource,
    Prediction,
    TestGrid,
    TrainingSet,
)
from .exceptions import (
    BusyError,
    FieldEstimationError,
    FormatError,
    InvalidInputError,
    NumericalInstabilityError,
    PreconditionViolationError,
)
from .capture import PriorCapture
from .config import load_config
from .estimator import FieldEstimator
from .fusion import ObservationFusion
from .gp_model import GaussianProcessModel
from .prior_store import PriorStore

__version__ = "0.1.0"

__all__ = [
    'FieldEstimator',
    'GaussianProcessModel',
    'ObservationFusion',
    'PriorStore',
    'PriorCapture',
    'load_config',
    'FieldSnapshot',
    'HumanPrior',
    'Hyperparameters',
    'Observation',
    'ObservationSource',
    'Prediction',
    'TestGrid',
    'TrainingSet',
    'FieldEstimationError',
    'InvalidInputError',
    'FormatError',
    'NumericalInstabilityError',
    'PreconditionViolationError',
    'BusyError',
]
