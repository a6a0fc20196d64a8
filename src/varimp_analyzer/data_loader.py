"""
Data loading and preparation module for variable importance analysis
"""
import pandas as pd
import numpy as np
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from .exceptions import InvalidInput

logger = logging.getLogger(__name__)

Records = Union[pd.DataFrame, Sequence[Mapping]]


def as_frame(dataset: Records) -> pd.DataFrame:
    """
    Convert a dataset into a DataFrame without touching the caller's object

    Args:
        dataset: DataFrame or sequence of record mappings

    Returns:
        A copy of the data as a DataFrame with a fresh positional index
    """
    if isinstance(dataset, pd.DataFrame):
        frame = dataset.copy()
    else:
        frame = pd.DataFrame(list(dataset))
    return frame.reset_index(drop=True)


class DatasetLoader:
    """Handles loading and splitting of validation data"""

    def __init__(self, response_column: str, id_columns: Optional[Iterable[str]] = None):
        self.response_column = response_column
        self.id_columns = list(id_columns or [])
        self.feature_columns = None

    def load_data(self, filepath: str) -> pd.DataFrame:
        """
        Load validation data from CSV file

        Args:
            filepath: Path to CSV file

        Returns:
            DataFrame with the raw data
        """
        try:
            df = pd.read_csv(filepath)
            logger.info(f"Loaded {len(df)} records from {filepath}")
        except Exception as e:
            logger.error(f"Error loading data: {e}")
            raise

        if df.empty:
            raise InvalidInput(f"No records found in {filepath}")
        return df

    def prepare_dataset(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
        """
        Drop identification columns and locate the predictor columns

        Args:
            df: Raw DataFrame

        Returns:
            Tuple of (dataset with response and predictors, predictor names)
        """
        if self.response_column not in df.columns:
            raise InvalidInput(
                f"Response column '{self.response_column}' not found; "
                f"available columns: {list(df.columns)}"
            )

        dataset = df.drop(columns=[c for c in self.id_columns if c in df.columns])
        self.feature_columns = [col for col in dataset.columns if col != self.response_column]

        logger.info(f"Prepared {len(dataset)} records with {len(self.feature_columns)} predictors")
        logger.info(f"Response: {self.response_column}")

        return dataset, self.feature_columns

    def get_feature_statistics(self, dataset: pd.DataFrame) -> pd.DataFrame:
        """
        Calculate basic statistics for predictor columns

        Numeric columns get the usual moments; categorical columns only
        report their number of distinct levels.
        """
        columns = self.feature_columns
        if columns is None:
            columns = [col for col in dataset.columns if col != self.response_column]
        df_features = dataset[columns]

        numeric = df_features.select_dtypes(include=[np.number])
        stats = pd.DataFrame({
            'dtype': df_features.dtypes.astype(str),
            'n_unique': df_features.nunique(),
            'missing_pct': df_features.isna().mean() * 100,
            'mean': numeric.mean(),
            'std': numeric.std(),
            'min': numeric.min(),
            'max': numeric.max(),
        }, index=columns)

        return stats.round(3)
