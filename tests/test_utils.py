import numpy as np
import pytest

import dotblast
from dotblast import config, utils
from dotblast.utils import exceptions


def test_eval_param():
    utils.eval_param('a', name='x', allowed_values=('a', 'b'))
    utils.eval_param(1, name='x', allowed_types=(int, ))

    with pytest.raises(ValueError):
        utils.eval_param('c', name='x', allowed_values=('a', 'b'))
    with pytest.raises(ValueError):
        utils.eval_param('1', name='x', allowed_types=(int, ))

    # Warn only
    utils.eval_param('c', name='x', allowed_values=('a', 'b'), on_error='warn')


def test_eval_max_items():
    utils.eval_max_items(10, 10)
    utils.eval_max_items(10 ** 6, None)

    with pytest.raises(exceptions.TooManyItems):
        utils.eval_max_items(11, 10)
    with pytest.raises(ValueError):
        utils.eval_max_items(1, 0)


def test_iterables():
    assert utils.make_iterable(1).tolist() == [1]
    assert utils.make_iterable('ab').tolist() == ['ab']
    assert utils.make_iterable({'a': 1}).tolist() == ['a']
    assert utils.make_iterable(np.int64(3)).tolist() == [3]

    assert utils.is_iterable([1])
    assert not utils.is_iterable('a')
    assert not utils.is_iterable(1)


@pytest.mark.parametrize("exc", [exceptions.InvalidTable,
                                 exceptions.EmptyPointSet,
                                 exceptions.DimensionMismatch,
                                 exceptions.TooManyItems,
                                 exceptions.NegativeDistance])
def test_exceptions(exc):
    assert issubclass(exc, exceptions.DotblastError)
    # Existing code catching ValueError keeps working
    assert issubclass(exc, ValueError)
    # Also exposed at top level
    assert getattr(dotblast, exc.__name__) is exc


def test_set_pbars(monkeypatch):
    monkeypatch.setattr(config, 'pbar_hide', False)
    monkeypatch.setattr(config, 'pbar_leave', False)
    monkeypatch.setattr(config, 'tqdm', config.tqdm)

    utils.set_pbars(hide=True, leave=True)
    assert config.pbar_hide
    assert config.pbar_leave

    utils.set_pbars(jupyter=False)
    assert config.tqdm is config.tqdm_classic


def test_set_loggers():
    lvl = config.logger.level
    try:
        utils.set_loggers('ERROR')
        assert config.logger.level == 40
    finally:
        utils.set_loggers(lvl)


def test_version():
    assert isinstance(dotblast.__version__, str)
    assert dotblast.__version_vector__[0] >= 0
