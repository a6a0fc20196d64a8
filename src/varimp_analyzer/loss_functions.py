"""
Loss functions used to score a predictor on actual/predicted pairs
"""
import numpy as np
from sklearn.metrics import (
    accuracy_score,
    mean_absolute_error,
    mean_squared_error,
    roc_auc_score,
)
from typing import Callable, Dict
import logging

from .exceptions import InvalidInput

logger = logging.getLogger(__name__)

LossFunction = Callable[[np.ndarray, np.ndarray], float]


def loss_root_mean_square(actual, predicted) -> float:
    """Root mean squared error"""
    return float(np.sqrt(mean_squared_error(actual, predicted)))


def loss_mean_absolute_error(actual, predicted) -> float:
    return float(mean_absolute_error(actual, predicted))


def loss_sum_of_squares(actual, predicted) -> float:
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.shape != predicted.shape:
        raise ValueError(f"Shape mismatch: {actual.shape} vs {predicted.shape}")
    return float(np.sum((actual - predicted) ** 2))


def loss_one_minus_auc(actual, predicted) -> float:
    """
    1 - ROC AUC for binary classifiers

    Args:
        actual: Binary labels
        predicted: Scores or probabilities of the positive class
    """
    return float(1.0 - roc_auc_score(actual, predicted))


def loss_accuracy(actual, predicted) -> float:
    """1 - accuracy, so that lower is better like every other loss"""
    return float(1.0 - accuracy_score(actual, predicted))


LOSS_FUNCTIONS: Dict[str, LossFunction] = {
    'rmse': loss_root_mean_square,
    'mae': loss_mean_absolute_error,
    'sse': loss_sum_of_squares,
    '1-auc': loss_one_minus_auc,
    '1-accuracy': loss_accuracy,
}


def get_loss_function(name: str) -> LossFunction:
    """
    Resolve a loss function by alias or by its full function name

    Raises:
        InvalidInput: if the name is unknown
    """
    if name in LOSS_FUNCTIONS:
        return LOSS_FUNCTIONS[name]
    for func in LOSS_FUNCTIONS.values():
        if func.__name__ == name:
            return func
    raise InvalidInput(
        f"Unknown loss function: {name}; choose one of {sorted(LOSS_FUNCTIONS)}"
    )


def loss_name(loss_function: LossFunction) -> str:
    """Readable name of a loss callable, used to tag reports"""
    return getattr(loss_function, '__name__', type(loss_function).__name__)
