"""
Varimp Analyzer - Permutation variable importance for fitted models
"""

from .data_loader import DatasetLoader
from .explainer import Explainer
from .exceptions import VarImpError, InvalidInput, IncompatibleLoss, Cancelled
from .feature_importance import ImportanceReport, compute, compare_reports
from .loss_functions import get_loss_function
from .performance import PerformanceSummary, model_performance

__all__ = [
    "DatasetLoader",
    "Explainer",
    "VarImpError",
    "InvalidInput",
    "IncompatibleLoss",
    "Cancelled",
    "ImportanceReport",
    "compute",
    "compare_reports",
    "get_loss_function",
    "PerformanceSummary",
    "model_performance"
]
