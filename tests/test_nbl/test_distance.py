import logging

import numpy as np
import pandas as pd
import pytest

from dotblast import config
from dotblast.nbl import scores_to_dist, sub_dist_mat, sub_score_mat
from dotblast.utils.exceptions import NegativeDistance, TooManyItems


def test_scores_to_dist_similarity():
    scores = pd.DataFrame([[1, .5], [.5, 1]], index=['a', 'b'], columns=['a', 'b'])
    dist = scores_to_dist(scores)
    assert dist.loc['a', 'b'] == pytest.approx(.5)
    assert dist.loc['a', 'a'] == 0
    assert np.array_equal(dist.values, dist.values.T)


def test_scores_to_dist_asymmetric(score_matrix, caplog):
    with caplog.at_level(logging.WARNING):
        dist = scores_to_dist(score_matrix)
    assert 'Symmetrizing' in caplog.text

    assert np.array_equal(dist.values, dist.values.T)
    # Max of the symmetrized matrix is 12
    assert dist.loc['a', 'b'] == pytest.approx(12 - 7.5)
    assert dist.loc['c', 'c'] == 0
    assert (dist.values >= 0).all()


def test_scores_to_dist_reorders(score_matrix):
    shuffled = score_matrix.loc[:, ['d', 'b', 'a', 'c']]
    dist1 = scores_to_dist(score_matrix)
    dist2 = scores_to_dist(shuffled)
    assert dist2.columns.tolist() == ['a', 'b', 'c', 'd']
    assert np.array_equal(dist1.values, dist2.values)


def test_scores_to_dist_array():
    dist = scores_to_dist(np.array([[0, 2.], [2, 0]]), kind='distance')
    assert isinstance(dist, pd.DataFrame)
    assert dist.values.tolist() == [[0, 2], [2, 0]]


def test_scores_to_dist_errors(score_matrix):
    with pytest.raises(ValueError):
        scores_to_dist(score_matrix.iloc[:3])

    other = score_matrix.copy()
    other.columns = ['a', 'b', 'c', 'x']
    with pytest.raises(ValueError):
        scores_to_dist(other)

    with pytest.raises(ValueError):
        scores_to_dist(score_matrix, kind='dissimilarity')

    with pytest.raises(TypeError):
        scores_to_dist(score_matrix.values.tolist())

    neg = pd.DataFrame([[0, -1.], [-1, 0]], index=['a', 'b'], columns=['a', 'b'])
    with pytest.raises(NegativeDistance):
        scores_to_dist(neg, kind='distance')
    # Skip the check
    assert scores_to_dist(neg, kind='distance', check=False).loc['a', 'b'] == -1

    nan = pd.DataFrame([[0, np.nan], [np.nan, 0]], index=['a', 'b'], columns=['a', 'b'])
    with pytest.raises(NegativeDistance):
        scores_to_dist(nan, kind='distance')


def test_sub_score_mat(score_matrix):
    raw = sub_score_mat(score_matrix, ids=['b', 'a'])
    assert raw.index.tolist() == ['b', 'a']
    assert raw.columns.tolist() == ['b', 'a']
    assert raw.loc['a', 'b'] == 8

    norm = sub_score_mat(score_matrix, normalisation='normalised')
    assert np.allclose(np.diag(norm.values), 1)
    assert norm.loc['a', 'b'] == pytest.approx(.8)
    assert norm.loc['b', 'a'] == pytest.approx(7 / 9)

    mean = sub_score_mat(score_matrix, ids=['a', 'b'], normalisation='mean')
    assert mean.loc['a', 'b'] == pytest.approx((.8 + 7 / 9) / 2)
    assert np.array_equal(mean.values, mean.values.T)

    # Input is not modified
    assert score_matrix.loc['a', 'b'] == 8


def test_sub_score_mat_errors(score_matrix):
    with pytest.raises(KeyError):
        sub_score_mat(score_matrix, ids=['a', 'x'])

    with pytest.raises(ValueError):
        sub_score_mat(score_matrix, normalisation='min')


def test_sub_dist_mat(score_matrix):
    dist = sub_dist_mat(score_matrix, ids=['a', 'b', 'c'])
    assert dist.shape == (3, 3)
    assert np.allclose(np.diag(dist.values), 0)
    assert dist.loc['a', 'b'] == pytest.approx(1 - (.8 + 7 / 9) / 2)
    assert np.array_equal(dist.values, dist.values.T)

    # Similar neurons are closer than dissimilar ones
    assert dist.loc['a', 'b'] < dist.loc['a', 'c']


def test_sub_dist_mat_max_items(score_matrix, monkeypatch):
    with pytest.raises(TooManyItems):
        sub_dist_mat(score_matrix, max_items=3)

    assert sub_dist_mat(score_matrix, ids=['a', 'b'], max_items=3).shape == (2, 2)

    monkeypatch.setattr(config, 'max_items', 2)
    with pytest.raises(TooManyItems):
        sub_dist_mat(score_matrix)
    assert sub_dist_mat(score_matrix, max_items=None).shape == (4, 4)
