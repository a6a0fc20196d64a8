"""
Residual based model performance summary
"""
from dataclasses import dataclass
from typing import Dict
import logging

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error, r2_score

from .exceptions import InvalidInput

logger = logging.getLogger(__name__)

QUANTILES = np.linspace(0, 1, 11)


@dataclass
class PerformanceSummary:
    label: str
    metrics: Dict[str, float]
    residual_quantiles: pd.Series

    def to_frame(self) -> pd.DataFrame:
        """Metrics followed by residual quantiles in a single column"""
        quantiles = self.residual_quantiles.rename(lambda q: f'residual_q{int(round(q * 100))}')
        values = pd.concat([pd.Series(self.metrics), quantiles])
        return values.to_frame(name=self.label)


def model_performance(explainer) -> PerformanceSummary:
    """
    Evaluate a regression explainer on its own validation data

    Args:
        explainer: Explainer with numeric response

    Returns:
        PerformanceSummary with MSE, RMSE, R2, MAD and residual quantiles
    """
    response = explainer.frame[explainer.response_column]
    if not pd.api.types.is_numeric_dtype(response):
        raise InvalidInput(f"Residual metrics need a numeric response; "
                           f"'{response.name}' is {response.dtype}")

    y_true = explainer.y.astype(float)
    y_pred = explainer.predict().astype(float)
    residuals = y_true - y_pred

    mse = mean_squared_error(y_true, y_pred)
    metrics = {
        'mse': float(mse),
        'rmse': float(np.sqrt(mse)),
        # R2 is undefined for a single record
        'r2': float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float('nan'),
        'mad': float(np.median(np.abs(residuals - np.median(residuals)))),
    }
    quantiles = pd.Series(np.quantile(residuals, QUANTILES), index=QUANTILES, name='residual')

    logger.info(f"Model Performance ({explainer.label}):")
    logger.info(f"RMSE={metrics['rmse']:.3f}, R2={metrics['r2']:.3f}, MAD={metrics['mad']:.3f}")

    return PerformanceSummary(label=explainer.label, metrics=metrics,
                              residual_quantiles=quantiles)
