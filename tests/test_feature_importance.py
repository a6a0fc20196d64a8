import threading

import numpy as np
import pandas as pd
import pytest

from varimp_analyzer.exceptions import Cancelled, IncompatibleLoss, InvalidInput
from varimp_analyzer.feature_importance import (
    BASELINE,
    FULL_MODEL,
    compare_reports,
    compute,
    permute_columns,
)
from varimp_analyzer.loss_functions import (
    loss_mean_absolute_error,
    loss_root_mean_square,
)

from conftest import constant_predictor


class RecordingModel:
    """Remembers every frame it was asked to predict"""

    def __init__(self):
        self.frames = []

    def predict(self, X):
        self.frames.append(X.copy())
        return np.zeros(len(X))


class CountingLoss:

    def __init__(self):
        self.calls = 0

    def __call__(self, actual, predicted):
        self.calls += 1
        return loss_mean_absolute_error(actual, predicted)


def test_constant_predictor_raw(toy_dataset):
    report = compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error,
                     random_seed=1)

    assert report[FULL_MODEL] == 10.0
    assert report['x1'] == report[FULL_MODEL]
    assert report['x2'] == report[FULL_MODEL]


def test_constant_predictor_difference(toy_dataset):
    report = compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error,
                     mode='difference', random_seed=1)

    assert report[FULL_MODEL] == 0.0
    assert report['x1'] == 0.0
    assert report['x2'] == 0.0


def test_report_order(toy_dataset):
    report = compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error,
                     variables=['x2', 'x1'])
    assert list(report) == [FULL_MODEL, BASELINE, 'x2', 'x1']

    defaulted = compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error)
    assert list(defaulted) == [FULL_MODEL, BASELINE, 'x1', 'x2']


def test_full_model_difference_is_zero(regression_dataset, linear_model):
    report = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                     mode='difference', n_repeats=3, random_seed=7)

    assert report[FULL_MODEL] == 0.0
    assert (report.permutations[FULL_MODEL] == 0.0).all()


def test_ratio_mode(regression_dataset, linear_model):
    report = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                     mode='ratio', random_seed=7)

    assert report[FULL_MODEL] == 1.0
    assert report['signal'] > 1.0


def test_informative_variable_ranks_first(regression_dataset, linear_model):
    report = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                     mode='difference', n_repeats=5, random_seed=3)

    assert list(report.ranked().index) == ['signal', 'weak', 'noise']
    assert report['noise'] == pytest.approx(0.0, abs=0.05)
    assert report[BASELINE] > report['weak']


def test_seed_reproducible(regression_dataset, forest_model):
    kwargs = dict(n_repeats=4, random_seed=123)
    first = compute(forest_model, regression_dataset, 'y', loss_root_mean_square, **kwargs)
    second = compute(forest_model, regression_dataset, 'y', loss_root_mean_square, **kwargs)

    pd.testing.assert_series_equal(first.scores, second.scores, check_exact=True)
    pd.testing.assert_frame_equal(first.permutations, second.permutations, check_exact=True)


def test_different_seeds_draw_differently(regression_dataset, linear_model):
    first = compute(linear_model, regression_dataset, 'y', loss_root_mean_square, random_seed=1)
    second = compute(linear_model, regression_dataset, 'y', loss_root_mean_square, random_seed=2)

    assert first['signal'] != second['signal']


def test_parallel_matches_sequential(regression_dataset, linear_model):
    sequential = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                         n_repeats=2, random_seed=11, n_jobs=1)
    parallel = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                       n_repeats=2, random_seed=11, n_jobs=3)

    pd.testing.assert_series_equal(sequential.scores, parallel.scores, check_exact=True)
    assert list(parallel) == list(sequential)


def test_repeats_are_averaged(regression_dataset, linear_model):
    report = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                     n_repeats=6, random_seed=5)

    assert len(report.permutations) == 6
    assert report['signal'] == pytest.approx(report.permutations['signal'].mean())
    assert report.permutations['signal'].nunique() > 1


def test_permutation_leaves_other_columns_untouched(toy_dataset):
    model = RecordingModel()
    compute(model, toy_dataset, 'y', loss_mean_absolute_error, variables=['x1'], random_seed=0)

    original, permuted = model.frames
    assert len(permuted) == len(toy_dataset)
    assert 'y' not in permuted.columns
    pd.testing.assert_series_equal(permuted['x2'], original['x2'])
    assert sorted(permuted['x1']) == sorted(original['x1'])


def test_permute_columns_does_not_modify_input(toy_dataset):
    before = toy_dataset.copy()
    permuted = permute_columns(toy_dataset, ['x1'], np.random.default_rng(0))

    pd.testing.assert_frame_equal(toy_dataset, before)
    pd.testing.assert_series_equal(permuted['x2'], before['x2'])
    pd.testing.assert_series_equal(permuted['y'], before['y'])
    assert set(permuted['x1']) == set(before['x1'])


def test_permute_columns_with_custom_index():
    X = pd.DataFrame({'a': [1, 2, 3], 'b': [4, 5, 6]}, index=[10, 11, 12])
    permuted = permute_columns(X, ['a'], np.random.default_rng(0))

    assert list(permuted.index) == [10, 11, 12]
    assert permuted['a'].notna().all()
    assert sorted(permuted['a']) == [1, 2, 3]
    pd.testing.assert_series_equal(permuted['b'], X['b'])


def test_variable_groups_permute_jointly(toy_dataset):
    model = RecordingModel()
    report = compute(model, toy_dataset, 'y', loss_mean_absolute_error,
                     variable_groups={'both': ['x1', 'x2']}, random_seed=4)

    assert list(report) == [FULL_MODEL, BASELINE, 'both']
    original, permuted = model.frames
    pairs = set(zip(original['x1'], original['x2']))
    assert set(zip(permuted['x1'], permuted['x2'])) == pairs


def test_dataset_not_mutated(toy_dataset):
    before = toy_dataset.copy()
    compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error, random_seed=0)
    pd.testing.assert_frame_equal(toy_dataset, before)


def test_accepts_records(toy_dataset):
    records = toy_dataset.to_dict('records')
    report = compute(constant_predictor, records, 'y', loss_mean_absolute_error)
    assert report[FULL_MODEL] == 10.0


def test_unknown_variable_fails_before_scoring(toy_dataset):
    model = RecordingModel()
    loss = CountingLoss()

    with pytest.raises(InvalidInput):
        compute(model, toy_dataset, 'y', loss, variables=['x1', 'missing'])

    assert loss.calls == 0
    assert model.frames == []


def test_empty_dataset_fails():
    empty = pd.DataFrame({'x1': [], 'y': []})
    with pytest.raises(InvalidInput):
        compute(constant_predictor, empty, 'y', loss_mean_absolute_error)


def test_missing_response_fails(toy_dataset):
    with pytest.raises(InvalidInput):
        compute(constant_predictor, toy_dataset, 'target', loss_mean_absolute_error)


@pytest.mark.parametrize('kwargs', [
    {'mode': 'percent'},
    {'n_repeats': 0},
    {'variables': ['y']},
    {'variable_groups': {'empty': []}},
    {'n_repeats': 2.5},
    {'random_seed': 1.5},
    {'random_seed': -1},
])
def test_invalid_options(toy_dataset, kwargs):
    with pytest.raises(InvalidInput):
        compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error, **kwargs)


def test_incompatible_loss_on_length_mismatch(toy_dataset):
    def short_predictor(X):
        return np.zeros(len(X) - 1)

    with pytest.raises(IncompatibleLoss):
        compute(short_predictor, toy_dataset, 'y', loss_mean_absolute_error)


def test_incompatible_loss_is_not_retried(toy_dataset):
    calls = []

    def broken_loss(actual, predicted):
        calls.append(1)
        raise TypeError("unsupported")

    with pytest.raises(IncompatibleLoss):
        compute(constant_predictor, toy_dataset, 'y', broken_loss)
    assert len(calls) == 1


def test_cancel_before_start(toy_dataset):
    event = threading.Event()
    event.set()
    with pytest.raises(Cancelled):
        compute(constant_predictor, toy_dataset, 'y', loss_mean_absolute_error,
                cancel_event=event)


def test_cancel_while_running(toy_dataset):
    event = threading.Event()

    def cancelling_predictor(X):
        event.set()
        return np.full(len(X), 25.0)

    with pytest.raises(Cancelled):
        compute(cancelling_predictor, toy_dataset, 'y', loss_mean_absolute_error,
                cancel_event=event)


def test_compare_reports(regression_dataset, linear_model, forest_model):
    lm = compute(linear_model, regression_dataset, 'y', loss_root_mean_square,
                 random_seed=0, label='lm')
    rf = compute(forest_model, regression_dataset, 'y', loss_root_mean_square,
                 random_seed=0, label='rf')

    comparison = compare_reports(lm, rf)
    assert list(comparison.columns) == ['lm', 'rf']
    assert list(comparison.index) == [FULL_MODEL, BASELINE, 'signal', 'weak', 'noise']
    assert comparison.loc['signal', 'lm'] == lm['signal']


def test_compare_reports_rejects_mismatched_losses(regression_dataset, linear_model):
    rmse = compute(linear_model, regression_dataset, 'y', loss_root_mean_square, label='a')
    mae = compute(linear_model, regression_dataset, 'y', loss_mean_absolute_error, label='b')

    with pytest.raises(InvalidInput):
        compare_reports(rmse, mae)


def test_compare_reports_rejects_different_datasets(regression_dataset, linear_model):
    full = compute(linear_model, regression_dataset, 'y', loss_root_mean_square, label='a')
    half = compute(linear_model, regression_dataset.head(100), 'y', loss_root_mean_square,
                   label='b')

    with pytest.raises(InvalidInput):
        compare_reports(full, half)


def test_cancel_while_running_in_parallel(regression_dataset, linear_model):
    event = threading.Event()
    calls = []

    def cancelling_predictor(X):
        calls.append(1)
        if len(calls) > 1:
            event.set()
        return linear_model.predict(X)

    report = None
    with pytest.raises(Cancelled):
        report = compute(cancelling_predictor, regression_dataset, 'y', loss_root_mean_square,
                         n_repeats=3, random_seed=0, n_jobs=3, cancel_event=event)
    assert report is None
    assert event.is_set()
