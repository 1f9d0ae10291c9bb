#    This script is part of dotblast.
#    Copyright (C) 2018 Philipp Schlegel
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, either version 3 of the License, or
#    (at your option) any later version.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.

"""Module containing utility functions for BLASTING."""

import numpy as np
import pandas as pd

from typing import Optional, Sequence, Union
from typing_extensions import Literal

from .. import config, utils
from ..utils.exceptions import NegativeDistance

__all__ = ['scores_to_dist', 'sub_score_mat', 'sub_dist_mat',
           'extract_matches', 'update_scores', 'compress_scores']

logger = config.get_logger(__name__)


def scores_to_dist(scores: Union[pd.DataFrame, np.ndarray],
                   kind: Union[Literal['similarity'], Literal['distance']] = 'similarity',
                   check: bool = True) -> pd.DataFrame:
    """Turn a score matrix into a distance matrix.

    Parameters
    ----------
    scores :    (N, N) pandas.DataFrame | numpy array
                Square score matrix (e.g. from :func:`dotblast.nblast_allbyall`)
                with the same IDs as rows and columns. Columns will be
                reordered to match the rows. Asymmetric matrices are
                symmetrized by averaging with the transpose.
    kind :      "similarity" | "distance"
                What ``scores`` represent:
                 - "similarity" (e.g. normalized NBLAST scores) are inverted
                   via ``max(scores) - scores``: for normalized scores where
                   the diagonal is 1 this is the same as ``1 - scores``
                 - "distance" (e.g. non-normalized legacy NBLAST scores) are
                   only symmetrized
    check :     bool
                If True, will raise ``NegativeDistance`` if the resulting
                matrix has negative or NaN entries.

    Returns
    -------
    pandas.DataFrame
                Symmetric distance matrix.

    Examples
    --------
    >>> import pandas as pd
    >>> from dotblast.nbl import scores_to_dist
    >>> scores = pd.DataFrame([[1, .5], [.3, 1]], index=['a', 'b'], columns=['a', 'b'])
    >>> scores_to_dist(scores)
         a    b
    a  0.0  0.6
    b  0.6  0.0

    """
    utils.eval_param(kind, name='kind', allowed_values=('similarity', 'distance'))

    if isinstance(scores, np.ndarray):
        scores = pd.DataFrame(scores)
    elif not isinstance(scores, pd.DataFrame):
        raise TypeError(f'Expected numpy array or pandas DataFrame, got "{type(scores)}"')

    if scores.shape[0] != scores.shape[1]:
        raise ValueError(f'Score matrix must be square, got shape {scores.shape}')

    if not scores.index.is_unique or set(scores.index) != set(scores.columns):
        raise ValueError('Score matrix must have the same unique IDs as rows '
                         'and columns')

    # Make sure columns are in the same order as rows
    scores = scores.loc[:, scores.index]
    values = scores.values.astype(np.float64)

    if not np.array_equal(values, values.T, equal_nan=True):
        logger.warning('Symmetrizing scores because they are not symmetric')
        values = (values + values.T) / 2

    if kind == 'similarity':
        values = values.max() - values

    dist = pd.DataFrame(values, index=scores.index, columns=scores.index)

    if check:
        check_distances(dist)

    return dist


def check_distances(dist: pd.DataFrame):
    """Raise ``NegativeDistance`` if any distance is negative or NaN."""
    bad = np.isnan(dist.values) | (dist.values < 0)
    if np.any(bad):
        rows, cols = np.where(bad)
        pairs = list(zip(dist.index[rows], dist.columns[cols]))
        raise NegativeDistance(f'{bad.sum()} negative or NaN distances, e.g. '
                               f'between {pairs[:5]}')


def sub_score_mat(scores: pd.DataFrame,
                  ids: Optional[Sequence] = None,
                  normalisation: Union[Literal['raw'],
                                       Literal['normalised'],
                                       Literal['mean']] = 'raw') -> pd.DataFrame:
    """Subset a score matrix to given IDs and optionally normalise.

    Parameters
    ----------
    scores :        pandas.DataFrame
                    Non-normalized score matrix with queries as rows and
                    targets as columns. Must contain the self-scores of
                    ``ids``.
    ids :           list, optional
                    IDs to subset to. If None will use all IDs in ``scores``.
    normalisation : "raw" | "normalised" | "mean"
                     - "raw" returns scores as they are
                     - "normalised" divides each row by the query's self-score
                     - "mean" averages normalised forward and reverse scores

    Returns
    -------
    pandas.DataFrame

    """
    utils.eval_param(normalisation, name='normalisation',
                     allowed_values=('raw', 'normalised', 'mean'))

    if ids is None:
        ids = scores.index.values
    ids = list(utils.make_iterable(ids))

    miss = [i for i in ids if i not in scores.index or i not in scores.columns]
    if miss:
        raise KeyError(f'{len(miss)} IDs not found in both rows and columns '
                       f'of the score matrix: {miss[:5]}')

    sub = scores.loc[ids, ids].astype(np.float64)

    if normalisation == 'raw':
        return sub

    self_scores = np.diag(sub.values)
    sub = sub / self_scores.reshape(-1, 1)

    if normalisation == 'mean':
        sub.loc[:, :] = (sub.values + sub.values.T) / 2

    return sub


def sub_dist_mat(scores: pd.DataFrame,
                 ids: Optional[Sequence] = None,
                 max_items: Optional[int] = 'config') -> pd.DataFrame:
    """Get distance matrix for given IDs.

    Distances are ``1 - mean normalised scores``.

    Parameters
    ----------
    scores :        pandas.DataFrame
                    Non-normalized score matrix. See :func:`sub_score_mat`.
    ids :           list, optional
                    IDs to subset to. If None will use all IDs in ``scores``.
    max_items :     int | None
                    Raise ``TooManyItems`` if there are more IDs than this.
                    Defaults to ``config.max_items``.

    Returns
    -------
    pandas.DataFrame

    """
    if max_items == 'config':
        max_items = config.max_items

    n = len(scores) if ids is None else len(utils.make_iterable(ids))
    utils.eval_max_items(n, max_items, what='neurons')

    return 1 - sub_score_mat(scores, ids=ids, normalisation='mean')


def extract_matches(scores, N=None, threshold=None, percentage=None,
                    axis=0, distances='auto'):
    """Extract top matches from score matrix.

    See `N`, `threshold` or `percentage` for the criterion.

    Parameters
    ----------
    scores :        pd.DataFrame
                    Score matrix (e.g. from :func:`dotblast.nblast`).
    N :             int
                    Number of matches to extract.
    threshold :     float
                    Extract all matches above a given threshold.
    percentage :    float [0-1]
                    Extract all matches within a given range of the top match.
                    E.g. `percentage=0.05` will return all matches within
                    5% of the top match.
    axis :          0 | 1
                    For which axis to produce matches.
    distances :     "auto" | bool
                    Whether `scores` is distances or similarities (i.e. whether
                    we need to look for the lowest instead of the highest values).
                    "auto" (default) will infer based on the diagonal of the
                    `scores` matrix. Use boolean to override.

    Returns
    -------
    pd.DataFrame
                    Note that the format is slightly different depending on
                    the criterion.

    """
    utils.eval_param(axis, name='axis', allowed_values=(0, 1))

    n_crit = sum(c is not None for c in (N, threshold, percentage))
    if n_crit == 0:
        raise ValueError('Must provide either `N` or `threshold` or '
                         '`percentage` as criterion for match extraction.')
    elif n_crit > 1:
        raise ValueError('Please provide either `N`, `threshold` or '
                         '`percentage` as criterion for match extraction.')

    if distances == 'auto':
        distances = True if most(np.diag(scores.values).round(2) == 0) else False

    # Transposing is easier than dealing with the different axes further down
    if axis == 1:
        scores = scores.T

    if N is not None:
        return _extract_matches_n(scores,
                                  N=N,
                                  distances=distances)
    elif threshold is not None:
        return _extract_matches_threshold(scores,
                                          threshold=threshold,
                                          distances=distances)
    return _extract_matches_perc(scores,
                                 perc=percentage,
                                 distances=distances)


def _extract_matches_n(scores, N=None, distances=False):
    """Return top N matches."""
    N = min(N, scores.shape[1])

    # Stable sort so that ties are returned in column order
    if not distances:
        top_n = np.argsort(-scores.values, axis=-1, kind='stable')[:, :N]
    else:
        top_n = np.argsort(scores.values, axis=-1, kind='stable')[:, :N]

    top_scores = scores.values[np.arange(len(scores)).reshape(-1, 1), top_n]

    # Now collate matches
    matches = pd.DataFrame()
    matches['id'] = scores.index.values
    for i in range(N):
        matches[f'match_{i + 1}'] = scores.columns[top_n[:, i]]
        matches[f'score_{i + 1}'] = top_scores[:, i]

    return matches


def _extract_matches_threshold(scores, threshold=.3, distances=False):
    """Extract all matches above a given threshold from score matrix."""
    if not distances:
        ind, cols = np.where(scores.values >= threshold)
    else:
        ind, cols = np.where(scores.values <= threshold)

    matches = pd.DataFrame()
    matches['query'] = scores.index[ind]
    matches['match'] = scores.columns[cols]
    matches['score'] = scores.values[ind, cols]
    matches = matches.sort_values(['query', 'match', 'score']).set_index(['query', 'match'])

    return matches


def _extract_matches_perc(scores, perc=.05, distances=False):
    """Extract all matches within a given percentage of the top match."""
    if not distances:
        thresh = np.max(scores.values, axis=1)
        thresh = thresh - np.abs(thresh * perc)
        ind, cols = np.where(scores.values >= thresh.reshape(-1, 1))
    else:
        thresh = np.min(scores.values, axis=1)
        thresh = thresh + np.abs(thresh * perc)
        ind, cols = np.where(scores.values <= thresh.reshape(-1, 1))

    matches = pd.DataFrame(index=scores.index)

    match_str = []
    scores_str = []
    for i in range(len(matches)):
        this = cols[ind == i]
        sc = scores.values[i, this]
        srt = np.argsort(sc)
        if not distances:
            srt = srt[::-1]
        m = scores.columns[this][srt]
        sc = sc[srt]

        match_str.append(','.join(m.astype(str)))
        scores_str.append(','.join(sc.round(3).astype(str)))

    matches['matches'] = match_str
    matches['scores'] = scores_str

    return matches


def update_scores(queries, targets, scores_ex, nblast_func, **kwargs):
    """Update score matrix by running only new query->target pairs.

    Parameters
    ----------
    queries :       list of Dotprops
    targets :       list of Dotprops
    scores_ex :     pandas.DataFrame
                    DataFrame with existing scores.
    nblast_func :   callable
                    The NBLAST to use. For example: ``dotblast.nblast``.
    **kwargs
                    Argument passed to ``nblast_func``.

    Returns
    -------
    pandas.DataFrame
                    Updated scores.

    """
    if not callable(nblast_func):
        raise TypeError('`nblast_func` must be callable.')

    q_ids = np.array([q.id for q in queries])
    t_ids = np.array([t.id for t in targets])

    # The np.isin query is much faster if we force any strings to <U18 by
    # converting to arrays
    is_new_q = ~np.isin(q_ids, np.array(scores_ex.index))
    is_new_t = ~np.isin(t_ids, np.array(scores_ex.columns))

    logger.info(f'Found {is_new_q.sum()} new queries and '
                f'{is_new_t.sum()} new targets.')

    # Reindex old scores
    scores = scores_ex.reindex(index=q_ids, columns=t_ids).copy()
    scores.index.name = 'query'
    scores.columns.name = 'target'

    # NBLAST new queries against all targets
    if 'precision' not in kwargs:
        kwargs['precision'] = scores.values.dtype

    if any(is_new_q):
        logger.info('Updating new queries -> targets scores')
        qt = nblast_func([q for q, new in zip(queries, is_new_q) if new],
                         list(targets), **kwargs)
        scores.loc[qt.index, qt.columns] = qt.values

    # NBLAST all old queries against new targets
    if any(is_new_t) and not all(is_new_q):
        logger.info('Updating old queries -> new targets scores')
        tq = nblast_func([q for q, new in zip(queries, is_new_q) if not new],
                         [t for t, new in zip(targets, is_new_t) if new],
                         **kwargs)
        scores.loc[tq.index, tq.columns] = tq.values

    return scores


def compress_scores(scores, threshold=None, digits=None):
    """Compress scores.

    This will not necessarily reduce the in-memory footprint but will lead to
    much smaller file sizes when saved to disk.

    Parameters
    ----------
    scores :        pandas.DataFrame
    threshold :     float, optional
                    Scores lower than this will be capped at `threshold`.
    digits :        int, optional
                    Round scores to the Nth digit.

    Returns
    -------
    scores_comp :   pandas.DataFrame
                    Copy of the original dataframe with the data cast to 32bit
                    floats and the optional filters (see `threshold` and
                    `digits`) applied.

    """
    scores = scores.astype(np.float32)
    if digits is not None:
        scores = scores.round(digits)
    if threshold is not None:
        scores = scores.clip(lower=threshold)
    return scores


def most(x, f=.9):
    """Check if most (as opposed to all) entries are True."""
    if x.sum() >= (x.shape[0] * f):
        return True
    return False
