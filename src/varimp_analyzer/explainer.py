"""
Explainer: a fitted model bundled with its validation data
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import logging

import numpy as np
import pandas as pd

from .data_loader import Records, as_frame
from .exceptions import InvalidInput
from .feature_importance import ImportanceReport, compute, resolve_predict_function
from .loss_functions import LossFunction, loss_root_mean_square
from .performance import PerformanceSummary, model_performance

logger = logging.getLogger(__name__)


@dataclass
class Explainer:
    """
    Bundle of a predictor, its validation data and the response column

    The model itself is never inspected; only ``predict_function`` is called,
    so linear models, ensembles and plain functions are handled alike.
    """
    model: object
    data: Records
    response_column: str
    label: Optional[str] = None
    predict_function: Optional[Callable] = None
    frame: pd.DataFrame = field(init=False, repr=False)

    def __post_init__(self):
        self.frame = as_frame(self.data)
        if self.frame.empty:
            raise InvalidInput("Explainer data is empty")
        if self.response_column not in self.frame.columns:
            raise InvalidInput(f"Response column '{self.response_column}' not found in data")
        if self.predict_function is None:
            self.predict_function = resolve_predict_function(self.model)
        if self.label is None:
            self.label = getattr(self.model, '__name__', type(self.model).__name__)

        logger.info(f"Explainer '{self.label}' created for {len(self.frame)} records, "
                    f"{len(self.predictor_columns)} predictors")

    @property
    def predictor_columns(self) -> List[str]:
        return [col for col in self.frame.columns if col != self.response_column]

    @property
    def X(self) -> pd.DataFrame:
        return self.frame[self.predictor_columns]

    @property
    def y(self) -> np.ndarray:
        return self.frame[self.response_column].to_numpy()

    def predict(self, X: Optional[pd.DataFrame] = None) -> np.ndarray:
        """Predictions for X, or for the explainer's own data"""
        return np.asarray(self.predict_function(self.X if X is None else X))

    def residuals(self) -> np.ndarray:
        return self.y - self.predict()

    def model_parts(self, loss_function: LossFunction = loss_root_mean_square,
                    variables=None, mode: str = 'raw', **kwargs) -> ImportanceReport:
        """Permutation importance of this explainer's variables"""
        return compute(self.predict_function, self.frame, self.response_column,
                       loss_function, variables=variables, mode=mode,
                       label=self.label, **kwargs)

    def model_performance(self) -> PerformanceSummary:
        return model_performance(self)
