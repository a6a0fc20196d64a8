"""
Permutation-based variable importance module
"""
import hashlib
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence
import logging

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .data_loader import Records, as_frame
from .exceptions import Cancelled, IncompatibleLoss, InvalidInput
from .loss_functions import LossFunction, loss_name

logger = logging.getLogger(__name__)

FULL_MODEL = '_full_model_'
BASELINE = '_baseline_'
MODES = ('raw', 'difference', 'ratio')


@dataclass
class ImportanceReport:
    """
    Ordered mapping from label to (transformed) loss for one model

    Entries are always ``_full_model_``, ``_baseline_`` and then the scored
    variables in the order they were requested.
    """
    scores: pd.Series
    permutations: pd.DataFrame
    label: str
    loss_name: str
    mode: str
    n_repeats: int
    random_seed: Optional[int] = None
    dataset_fingerprint: str = ''
    metadata: Dict = field(default_factory=dict)

    def __getitem__(self, key: str) -> float:
        return float(self.scores[key])

    def __iter__(self):
        return iter(self.scores.index)

    def __len__(self) -> int:
        return len(self.scores)

    def as_dict(self) -> Dict[str, float]:
        return {name: float(value) for name, value in self.scores.items()}

    @property
    def full_model_loss(self) -> float:
        return self[FULL_MODEL]

    @property
    def baseline_loss(self) -> float:
        return self[BASELINE]

    @property
    def variables(self) -> List[str]:
        return [name for name in self.scores.index if name not in (FULL_MODEL, BASELINE)]

    def ranked(self, top_n: Optional[int] = None) -> pd.Series:
        """Variable scores only, most important first"""
        ranked = self.scores[self.variables].sort_values(ascending=False, kind='mergesort')
        return ranked if top_n is None else ranked.head(top_n)

    def to_frame(self) -> pd.DataFrame:
        """Long format table with one row per entry, in report order"""
        frame = pd.DataFrame({
            'variable': self.scores.index,
            'dropout_loss': self.scores.to_numpy(),
        })
        frame['label'] = self.label
        return frame


def resolve_predict_function(predictor) -> Callable:
    """Accept either a fitted estimator with ``predict`` or a bare callable"""
    if hasattr(predictor, 'predict'):
        return predictor.predict
    if callable(predictor):
        return predictor
    raise InvalidInput(f"Predictor of type {type(predictor).__name__} is neither callable nor has predict()")


def dataset_fingerprint(frame: pd.DataFrame) -> str:
    """Content hash of a dataset, used to check that reports are comparable"""
    hashed = pd.util.hash_pandas_object(frame, index=False).to_numpy()
    digest = hashlib.sha1(hashed.tobytes())
    digest.update(','.join(map(str, frame.columns)).encode())
    return digest.hexdigest()


def _resolve_groups(frame: pd.DataFrame, response_column: str,
                    variables: Optional[Sequence[str]],
                    variable_groups: Optional[Mapping[str, Sequence[str]]]) -> Dict[str, List[str]]:
    """Map every report label to the columns permuted under it"""
    predictor_columns = [col for col in frame.columns if col != response_column]

    if variable_groups:
        groups = {}
        for name, columns in variable_groups.items():
            columns = list(columns)
            if not columns:
                raise InvalidInput(f"Variable group '{name}' is empty")
            groups[str(name)] = columns
    elif variables:
        variables = list(variables)
        if len(set(variables)) != len(variables):
            raise InvalidInput(f"Duplicate names in variables: {variables}")
        groups = {name: [name] for name in variables}
    else:
        groups = {name: [name] for name in predictor_columns}

    for name, columns in groups.items():
        if name in (FULL_MODEL, BASELINE):
            raise InvalidInput(f"'{name}' is a reserved report label")
        missing = [col for col in columns if col not in frame.columns]
        if missing:
            raise InvalidInput(f"Variables not found in dataset: {missing}")
        if response_column in columns:
            raise InvalidInput(f"Response column '{response_column}' cannot be scored as a variable")

    return groups


def _is_integer(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _check_cancelled(cancel_event: Optional[threading.Event]):
    if cancel_event is not None and cancel_event.is_set():
        raise Cancelled("Permutation importance computation was cancelled")


def _evaluate_loss(loss_function: LossFunction, actual, predicted) -> float:
    try:
        return float(loss_function(actual, predicted))
    except Exception as e:
        raise IncompatibleLoss(
            f"Loss function {loss_name(loss_function)} failed on actual/predicted pair: {e}"
        ) from e


def _predict(predict_function: Callable, X: pd.DataFrame) -> np.ndarray:
    return np.asarray(predict_function(X))


def permute_columns(X: pd.DataFrame, columns: Sequence[str],
                    rng: np.random.Generator) -> pd.DataFrame:
    """
    Copy of X where the given columns share one random row permutation

    All other columns are left untouched; the input frame is not modified.
    """
    permuted = X.copy()
    order = rng.permutation(len(X))
    for col in columns:
        permuted[col] = X[col].iloc[order].set_axis(X.index)
    return permuted


def _score_variable(predict_function: Callable, X: pd.DataFrame, y: np.ndarray,
                    columns: List[str], loss_function: LossFunction,
                    seed: np.random.SeedSequence, n_repeats: int,
                    cancel_event: Optional[threading.Event]) -> List[float]:
    """Raw losses of every repetition with the given columns permuted"""
    rng = np.random.default_rng(seed)
    losses = []
    for _ in range(n_repeats):
        _check_cancelled(cancel_event)
        permuted = permute_columns(X, columns, rng)
        losses.append(_evaluate_loss(loss_function, y, _predict(predict_function, permuted)))
    return losses


def _transform(values: np.ndarray, full_loss: float, mode: str) -> np.ndarray:
    if mode == 'difference':
        return values - full_loss
    if mode == 'ratio':
        with np.errstate(divide='ignore', invalid='ignore'):
            return values / full_loss
    return values


def compute(predictor, dataset: Records, response_column: str,
            loss_function: LossFunction,
            variables: Optional[Sequence[str]] = None,
            mode: str = 'raw',
            random_seed: Optional[int] = None,
            n_repeats: int = 1,
            variable_groups: Optional[Mapping[str, Sequence[str]]] = None,
            n_jobs: Optional[int] = 1,
            cancel_event: Optional[threading.Event] = None,
            label: Optional[str] = None,
            progress: bool = False) -> ImportanceReport:
    """
    Calculate permutation importance of variables for one predictor

    Args:
        predictor: Fitted model with ``predict`` or a callable on a DataFrame
        dataset: Validation data including the response column
        response_column: Name of the response column
        loss_function: Callable ``loss(actual, predicted) -> float``
        variables: Columns to score; all predictor columns if empty
        mode: 'raw', 'difference' (minus full model loss) or 'ratio'
        random_seed: Seed for reproducible permutations. Without one, fresh
            OS entropy is drawn and results are not reproducible.
        n_repeats: Independent permutation draws averaged per variable
        variable_groups: Label to columns permuted jointly; replaces variables
        n_jobs: Parallel workers for per-variable scoring (joblib semantics)
        cancel_event: When set, abandons the computation with Cancelled
        label: Model label stored in the report
        progress: Show a tqdm progress bar over variables

    Returns:
        ImportanceReport with entries in a fixed order

    Raises:
        InvalidInput: malformed arguments, checked before any loss evaluation
        IncompatibleLoss: the loss function raised on an actual/predicted pair
        Cancelled: cancel_event was set while computing
    """
    frame = as_frame(dataset)
    if frame.empty:
        raise InvalidInput("Dataset is empty")
    if response_column not in frame.columns:
        raise InvalidInput(f"Response column '{response_column}' not found in dataset")
    if mode not in MODES:
        raise InvalidInput(f"Unknown mode: {mode}; choose one of {MODES}")
    if not _is_integer(n_repeats) or n_repeats < 1:
        raise InvalidInput(f"n_repeats must be an integer of at least 1, got {n_repeats!r}")
    if random_seed is not None and (not _is_integer(random_seed) or random_seed < 0):
        raise InvalidInput(f"random_seed must be a non-negative integer, got {random_seed!r}")
    groups = _resolve_groups(frame, response_column, variables, variable_groups)
    predict_function = resolve_predict_function(predictor)
    n_repeats = int(n_repeats)
    if label is None:
        label = getattr(predictor, '__name__', type(predictor).__name__)

    X = frame.drop(columns=[response_column])
    y = frame[response_column].to_numpy()

    # One child stream for the baseline, then one per label in report order
    baseline_seed, *group_seeds = np.random.SeedSequence(random_seed).spawn(len(groups) + 1)

    logger.info(f"Calculating permutation importance for {label} "
                f"({len(groups)} variables, {n_repeats} repeats)...")

    _check_cancelled(cancel_event)
    predicted = _predict(predict_function, X)
    full_loss = _evaluate_loss(loss_function, y, predicted)

    baseline_rng = np.random.default_rng(baseline_seed)
    baseline_losses = []
    for _ in range(n_repeats):
        baseline_losses.append(
            _evaluate_loss(loss_function, baseline_rng.permutation(y), predicted)
        )

    tasks = list(zip(groups.items(), group_seeds))
    results = Parallel(n_jobs=n_jobs, prefer='threads')(
        delayed(_score_variable)(predict_function, X, y, columns, loss_function,
                                 seed, n_repeats, cancel_event)
        for (name, columns), seed in tqdm(tasks, desc="Permutation importance",
                                          disable=not progress)
    )
    _check_cancelled(cancel_event)
    variable_losses = {name: losses for ((name, _), _), losses in zip(tasks, results)}

    raw = pd.DataFrame({FULL_MODEL: [full_loss] * n_repeats, BASELINE: baseline_losses})
    for name in groups:
        raw[name] = variable_losses[name]
    raw.index.name = 'permutation'

    permutations = pd.DataFrame(_transform(raw.to_numpy(dtype=float), full_loss, mode),
                                index=raw.index, columns=raw.columns)
    means = raw.mean()
    # keep the full model loss exact so difference mode yields exactly 0
    means[FULL_MODEL] = full_loss
    scores = pd.Series(_transform(means.to_numpy(dtype=float), full_loss, mode),
                       index=raw.columns, name=label)

    logger.info(f"{label}: full model loss = {full_loss:.4f}, "
                f"baseline loss = {np.mean(baseline_losses):.4f}")

    return ImportanceReport(
        scores=scores,
        permutations=permutations,
        label=label,
        loss_name=loss_name(loss_function),
        mode=mode,
        n_repeats=n_repeats,
        random_seed=random_seed,
        dataset_fingerprint=dataset_fingerprint(frame),
        metadata={'variable_groups': groups, 'response_column': response_column},
    )


def compare_reports(*reports: ImportanceReport) -> pd.DataFrame:
    """
    Side by side table of several reports, one column per model label

    Raises:
        InvalidInput: if the reports used different losses, modes or datasets
    """
    if not reports:
        raise InvalidInput("No reports to compare")

    first = reports[0]
    for report in reports[1:]:
        if report.loss_name != first.loss_name:
            raise InvalidInput(f"Reports use different loss functions: "
                               f"{first.loss_name} vs {report.loss_name}")
        if report.mode != first.mode:
            raise InvalidInput(f"Reports use different modes: {first.mode} vs {report.mode}")
        if report.dataset_fingerprint != first.dataset_fingerprint:
            raise InvalidInput(f"Reports {first.label} and {report.label} "
                               f"were computed on different datasets")

    labels = list(first.scores.index)
    for report in reports[1:]:
        labels += [name for name in report.scores.index if name not in labels]

    comparison = pd.DataFrame({report.label: report.scores for report in reports})
    return comparison.reindex(labels)
