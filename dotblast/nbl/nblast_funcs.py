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

"""Module contains functions implementing NBLAST."""

import enum
import numbers
import os

import numpy as np
import pandas as pd

from typing import Callable, Optional, Sequence, Union, List
from typing_extensions import Literal

from .. import utils, config
from ..core import Dotprops
from ..utils.exceptions import EmptyPointSet
from .base import Blaster
from .matching import match_points
from .smat import parse_score_fn, nblast_v1_scoring

__all__ = ['ScoreMode', 'NBlaster', 'nblast', 'nblast_pair', 'nblast_allbyall']

logger = config.get_logger(__name__)

ALLOWED_SCORES = ('forward', 'mean', 'min', 'max', 'both')

#: Default number of threads for batch NBLASTs
DEFAULT_N_CORES = max(1, (os.cpu_count() or 2) // 2)


class ScoreMode(enum.Enum):
    """NBLAST flavours."""

    #: NBLAST v2: sum of score matrix lookups (Costa et al., 2016)
    RAW = 'raw'
    #: NBLAST v1: ``1 - mean(sqrt(exp(-d^2 / 2 sigma^2) * dot))``
    #: (Jefferis et al., 2007)
    LEGACY = 'legacy'


class NBlaster(Blaster):
    """Implements the NBLAST algorithm.

    Please note that some properties are computed on initialization and
    changing parameters (e.g. ``use_alpha``) at a later stage will mess things
    up!

    Parameters
    ----------
    mode :          "raw" | "legacy" | ScoreMode
                    Which flavour of NBLAST to use:
                     - "raw" (default) is NBLAST v2 where each point match is
                       converted into a score via ``smat`` and summed up
                     - "legacy" is NBLAST v1 which produces a dissimilarity
                       where 0 means identical (unless ``normalized=True``)
    use_alpha :     bool
                    Whether or not to use alpha values for the scoring.
                    If True, the dotproduct of nearest neighbor vectors will
                    be scaled by ``sqrt(alpha1 * alpha2)``.
    normalized :    bool
                    If True, will normalize scores by the best possible score
                    (i.e. self-self) of the query neuron. For "legacy" mode,
                    this also turns the dissimilarity into a similarity.
    smat :          Lookup2d | pd.DataFrame | str | Callable | None
                    Only relevant for "raw" mode. How to convert the point
                    match pairs into an NBLAST score, usually by a lookup
                    table (see :func:`dotblast.nbl.smat.parse_score_fn`):
                     - if 'auto' (default), will use the default score matrix
                       (see ``config.default_smat``)
                     - other strings are names of registered score matrices
                       or paths to CSV files
                     - DataFrames will be used to build a ``Lookup2d``
                     - if ``Callable`` given, it passes distance and dot products as
                       first and second argument respectively
                     - if ``smat=None`` the scores will be generated as the
                       product of the distances and the dotproduct of the vectors
                       of nearest-neighbor pairs
    sigma :         float
                    Only relevant for "legacy" mode: determines how fast the
                    score decays with distance. Defaults to 3 (microns).
    limit_dist :    float | "auto" | None
                    Sets the max distance for the nearest neighbor search
                    (`distance_upper_bound`). Typically this should be the
                    highest distance considered by the scoring function. If
                    "auto", will extract that value from the first axis of the
                    scoring matrix.
    dtype :         int | str | numpy.dtype
                    Precision of the scores.
    progress :      bool
                    If True, will show a progress bar.

    """

    def __init__(self, mode='raw', use_alpha=False, normalized=True,
                 smat='auto', sigma=3, limit_dist=None, dtype=np.float64,
                 progress=True):
        """Initialize class."""
        super().__init__(normalized=normalized, progress=progress, dtype=dtype)
        self.mode = ScoreMode(mode)
        self.use_alpha = use_alpha
        self.sigma = sigma
        self.desc = "NBlasting"

        if not isinstance(sigma, numbers.Number) or sigma <= 0:
            raise ValueError(f'`sigma` must be a positive number, got {sigma}')

        if self.mode == ScoreMode.RAW:
            self.score_fn = parse_score_fn(smat, alpha=use_alpha)
        else:
            self.score_fn = None

        if limit_dist == "auto":
            try:
                if self.score_fn.axes[0].boundaries[-1] != np.inf:
                    self.distance_upper_bound = self.score_fn.axes[0].boundaries[-1]
                else:
                    # If the right boundary is open (i.e. infinity), we will use
                    # the second highest boundary plus a 5% offset
                    self.distance_upper_bound = self.score_fn.axes[0].boundaries[-2] * 1.05
            except AttributeError:
                logger.warning("Could not infer distance upper bound from scoring function")
                self.distance_upper_bound = None
        elif limit_dist is None or (isinstance(limit_dist, numbers.Number) and limit_dist > 0):
            self.distance_upper_bound = limit_dist
        else:
            raise ValueError('`limit_dist` must be "auto", None or a positive '
                             f'number, got {limit_dist}')

    def __repr__(self):
        return (f'<NBlaster mode={self.mode.value} use_alpha={self.use_alpha} '
                f'normalized={self.normalized}>')

    def prepare(self, neurons: Sequence[Dotprops]):
        """Build KD trees for all neurons."""
        for n in neurons:
            n.kdtree

    def _terms(self, dists, dots):
        """Per-point scores."""
        if self.mode == ScoreMode.RAW:
            return self.score_fn(dists, dots)
        return nblast_v1_scoring(dists, dots, sigma_scoring=self.sigma)

    def _summarize(self, terms):
        """Combine per-point scores into a single score."""
        if self.mode == ScoreMode.RAW:
            return np.sum(terms)
        return 1 - np.mean(terms)

    def calc_self_hit(self, dotprops: Dotprops) -> float:
        """Non-normalized value for self hit."""
        if not len(dotprops):
            raise EmptyPointSet(f'Dotprops {dotprops.id} has no points')

        n = len(dotprops.points)
        if not self.use_alpha:
            dots = np.ones(n)
        else:
            if dotprops.alpha is None:
                raise ValueError(f'Dotprops {dotprops.id} has no alpha values')
            dots = np.ones(n) * np.sqrt(dotprops.alpha * dotprops.alpha)

        # Same per-point summation as for any other target
        return self._summarize(self._terms(np.zeros(n), dots))

    def normalize(self, score, self_hit):
        """Normalize score against the query's self hit."""
        # Legacy scores are distances: turn them into a similarity first
        if self.mode == ScoreMode.RAW:
            num, denom = score, self_hit
        else:
            num, denom = 1 - score, 1 - self_hit

        if denom == 0:
            raise ValueError('Unable to normalize scores: the best possible '
                             'score is zero for this scoring function. Use '
                             '`normalized=False` or a different `smat`.')
        return num / denom

    def score_pair(self, query: Dotprops, target: Dotprops) -> float:
        """Non-normalized score for query against target."""
        matches = match_points(query, target,
                               use_alpha=self.use_alpha,
                               limit_dist=self.distance_upper_bound)
        return self._summarize(self._terms(matches.dist, matches.dot))

    def score(self, query: Dotprops, target: Dotprops) -> float:
        """Score query against target.

        Returns
        -------
        float
                Normalized if ``self.normalized`` is True.

        """
        for x in (query, target):
            if not isinstance(x, Dotprops):
                raise TypeError(f'Expected Dotprops, got "{type(x)}"')
            if not len(x):
                raise EmptyPointSet(f'Dotprops {x.id} has no points')

        return float(self.single_query_target(query, target, scores='forward'))


def nblast_pair(query: Dotprops,
                target: Dotprops,
                mode: Union[Literal['raw'], Literal['legacy'], ScoreMode] = 'raw',
                use_alpha: bool = False,
                normalized: bool = False,
                smat: Optional[Union[str, pd.DataFrame, Callable]] = 'auto',
                sigma: float = 3,
                limit_dist: Optional[Union[Literal['auto'], int, float]] = None) -> float:
    """NBLAST a single query against a single target.

    Parameters
    ----------
    query,target :  Dotprops
    mode :          "raw" | "legacy"
                    See :class:`~dotblast.nbl.nblast_funcs.NBlaster`.
    use_alpha :     bool
                    Whether to scale dot products by ``sqrt(alpha1 * alpha2)``.
    normalized :    bool
                    Whether to normalize against the query's self hit.
    smat :          str | pd.DataFrame | Callable
                    Score matrix for "raw" mode.
    sigma :         float
                    Distance decay for "legacy" mode.
    limit_dist :    float | "auto" | None
                    Max distance for the nearest neighbor search.

    Returns
    -------
    float

    Examples
    --------
    >>> import numpy as np
    >>> from dotblast import Dotprops, nblast_pair
    >>> pts = np.array([[0, 0, 0], [1, 0, 0], [2, 0, 0]])
    >>> vec = np.array([[1, 0, 0], [1, 0, 0], [1, 0, 0]])
    >>> a = Dotprops(pts, vec)
    >>> nblast_pair(a, a, mode='legacy')
    0.0

    """
    nb = NBlaster(mode=mode,
                  use_alpha=use_alpha,
                  normalized=normalized,
                  smat=smat,
                  sigma=sigma,
                  limit_dist=limit_dist,
                  progress=False)
    return nb.score(query, target)


def nblast(query: Union[Dotprops, Sequence[Dotprops]],
           target: Optional[Union[Dotprops, Sequence[Dotprops]]] = None,
           scores: Union[Literal['forward'],
                         Literal['mean'],
                         Literal['min'],
                         Literal['max'],
                         Literal['both']] = 'forward',
           mode: Union[Literal['raw'], Literal['legacy'], ScoreMode] = 'raw',
           normalized: bool = True,
           use_alpha: bool = False,
           smat: Optional[Union[str, pd.DataFrame, Callable]] = 'auto',
           sigma: float = 3,
           limit_dist: Optional[Union[Literal['auto'], int, float]] = None,
           max_items: Optional[int] = 'config',
           precision: Union[int, str, np.dtype] = 64,
           n_cores: int = DEFAULT_N_CORES,
           progress: bool = True) -> pd.DataFrame:
    """NBLAST query against target neurons.

    This implements the NBLAST algorithm from Costa et al. (2016) (see
    references) and mirrors the implementation in R's ``nat.nblast``
    (https://github.com/natverse/nat.nblast).

    Parameters
    ----------
    query :         Dotprops | list thereof
                    Query neuron(s) to NBLAST against the targets. Neurons
                    should be in microns as NBLAST is optimized for that and
                    have similar sampling resolutions.
    target :        Dotprops | list thereof, optional
                    Target neuron(s) to NBLAST against. Neurons should be in
                    microns as NBLAST is optimized for that and have
                    similar sampling resolutions. If not provided, will NBLAST
                    queries against themselves.
    scores :        'forward' | 'mean' | 'min' | 'max' | 'both'
                    Determines the final scores:

                      - 'forward' (default) returns query->target scores
                      - 'mean' returns the mean of query->target and
                        target->query scores
                      - 'min' returns the minium between query->target and
                        target->query scores
                      - 'max' returns the maximum between query->target and
                        target->query scores
                      - 'both' will return foward and reverse scores as
                        multi-index DataFrame

    mode :          'raw' | 'legacy'
                    NBLAST v2 ("raw", default) or v1 ("legacy"). Unnormalized
                    legacy scores are dissimilarities (0 = identical).
    normalized :    bool, optional
                    Whether to return normalized NBLAST scores.
    use_alpha :     bool, optional
                    Emphasizes neurons' straight parts (backbone) over parts
                    that have lots of branches.
    smat :          str | pd.DataFrame | Callable
                    Score matrix for "raw" mode. If 'auto' (default), will use
                    the default score matrix (see ``config.default_smat``).
                    Other strings are names of registered score matrices or
                    paths to CSV files. If ``Callable`` given, it passes
                    distance and dot products as first and second argument
                    respectively. If ``smat=None`` the scores will be
                    generated as the product of the distances and the
                    dotproduct of the vectors of nearest-neighbor pairs.
    sigma :         float
                    Distance decay for "legacy" mode. Defaults to 3.
    limit_dist :    float | "auto" | None
                    Sets the max distance for the nearest neighbor search
                    (`distance_upper_bound`). Typically this should be the
                    highest distance considered by the scoring function. If
                    "auto", will extract that value from the scoring matrix.
                    While this can give a ~2X speed up, it will introduce slight
                    inaccuracies because we won't have a vector component for
                    points without a nearest neighbour within the distance
                    limits.
    max_items :     int | None
                    Raise ``TooManyItems`` before doing any work if there are
                    more queries or targets than this. Defaults to
                    ``config.max_items``. Set to ``None`` to disable.
    precision :     int [16, 32, 64] | str [e.g. "float64"] | np.dtype
                    Precision for scores. Defaults to 64 bit (double) floats.
                    This is useful to reduce the memory footprint for very large
                    matrices. In real-world scenarios 32 bit (single)- and
                    depending on the purpose even 16 bit (half) - are typically
                    sufficient.
    n_cores :       int, optional
                    Max number of threads to use for nblasting. Default is
                    ``os.cpu_count() // 2``.
    progress :      bool
                    Whether to show progress bars.

    Returns
    -------
    scores :        pandas.DataFrame
                    Matrix with NBLAST scores. Rows are query neurons, columns
                    are targets. The order is the same as in ``query``/``target``
                    and the labels are based on the neurons' ``.id`` property.

    References
    ----------
    Costa M, Manton JD, Ostrovsky AD, Prohaska S, Jefferis GS. NBLAST: Rapid,
    Sensitive Comparison of Neuronal Structure and Construction of Neuron
    Family Databases. Neuron. 2016 Jul 20;91(2):293-311.
    doi: 10.1016/j.neuron.2016.06.012.

    See Also
    --------
    :func:`dotblast.nblast_allbyall`
                A more efficient way than ``nblast(query=x, target=x)``.
    :func:`dotblast.nblast_pair`
                NBLAST a single pair of neurons.

    """
    utils.eval_param(scores, name='scores', allowed_values=ALLOWED_SCORES)

    if isinstance(target, type(None)):
        target = query

    query_dps = to_dotprops_list(query)
    target_dps = to_dotprops_list(target)

    # Run NBLAST preflight checks
    nblast_preflight(query_dps, target_dps, n_cores,
                     max_items=max_items,
                     req_unique_ids=True,
                     req_microns=isinstance(smat, str) and smat == 'auto')

    nb = NBlaster(mode=mode,
                  use_alpha=use_alpha,
                  normalized=normalized,
                  smat=smat,
                  sigma=sigma,
                  limit_dist=limit_dist,
                  dtype=precision,
                  progress=progress)

    return nb.multi_query_target(query_dps, target_dps,
                                 scores=scores,
                                 n_cores=n_cores)


def nblast_allbyall(x: Sequence[Dotprops],
                    scores: Union[Literal['forward'],
                                  Literal['mean'],
                                  Literal['min'],
                                  Literal['max'],
                                  Literal['both']] = 'forward',
                    mode: Union[Literal['raw'], Literal['legacy'], ScoreMode] = 'raw',
                    normalized: bool = True,
                    use_alpha: bool = False,
                    smat: Optional[Union[str, pd.DataFrame, Callable]] = 'auto',
                    sigma: float = 3,
                    limit_dist: Optional[Union[Literal['auto'], int, float]] = None,
                    max_items: Optional[int] = 'config',
                    precision: Union[int, str, np.dtype] = 64,
                    n_cores: int = DEFAULT_N_CORES,
                    progress: bool = True) -> pd.DataFrame:
    """All-by-all NBLAST of inputs neurons.

    A more efficient way than running ``nblast(query=x, target=x)``: forward
    scores are calculated only once and symmetric scores (e.g. "mean") are
    derived by combining the score matrix with its transpose. Hence
    ``scores.loc[a, b] == scores.loc[b, a]`` holds exactly.

    Parameters
    ----------
    x :             list of Dotprops
                    Neuron(s) to NBLAST against each other. Neurons should
                    be in microns as NBLAST is optimized for that and have
                    similar sampling resolutions.
    scores :        'forward' | 'mean' | 'min' | 'max' | 'both'
                    See :func:`dotblast.nblast`.
    mode :          'raw' | 'legacy'
                    NBLAST v2 ("raw", default) or v1 ("legacy").
    normalized :    bool, optional
                    Whether to return normalized NBLAST scores.
    use_alpha :     bool, optional
                    Emphasizes neurons' straight parts (backbone) over parts
                    that have lots of branches.
    smat :          str | pd.DataFrame | Callable, optional
                    Score matrix/function for "raw" mode. See
                    :func:`dotblast.nblast`.
    sigma :         float
                    Distance decay for "legacy" mode.
    limit_dist :    float | "auto" | None
                    Sets the max distance for the nearest neighbor search.
    max_items :     int | None
                    Raise ``TooManyItems`` if there are more neurons than this.
                    Defaults to ``config.max_items``.
    precision :     int [16, 32, 64] | str [e.g. "float64"] | np.dtype
                    Precision for scores. Defaults to 64 bit (double) floats.
    n_cores :       int, optional
                    Max number of threads to use for nblasting.
    progress :      bool
                    Whether to show progress bars.

    Returns
    -------
    scores :        pandas.DataFrame
                    Matrix with NBLAST scores. Rows are query neurons, columns
                    are targets. The order is the same as in ``x``
                    and the labels are based on the neurons' ``.id`` property.

    See Also
    --------
    :func:`dotblast.nblast`
                For generic query -> target nblasts.

    """
    utils.eval_param(scores, name='scores', allowed_values=ALLOWED_SCORES)

    dps = to_dotprops_list(x)

    # Run NBLAST preflight checks
    # Note that we are passing the same dotprops twice
    nblast_preflight(dps, dps, n_cores,
                     max_items=max_items,
                     req_unique_ids=True,
                     req_microns=isinstance(smat, str) and smat == 'auto')

    nb = NBlaster(mode=mode,
                  use_alpha=use_alpha,
                  normalized=normalized,
                  smat=smat,
                  sigma=sigma,
                  limit_dist=limit_dist,
                  dtype=precision,
                  progress=progress)

    return nb.all_by_all(dps, scores=scores, n_cores=n_cores)


def to_dotprops_list(x) -> List[Dotprops]:
    """Turn single Dotprops or iterable thereof into list."""
    if isinstance(x, Dotprops):
        return [x]

    if not utils.is_iterable(x):
        raise TypeError(f'Expected Dotprops or list thereof, got "{type(x)}"')

    x = list(x)
    for n in x:
        if not isinstance(n, Dotprops):
            raise TypeError(f'Expected Dotprops, got "{type(n)}"')
    return x


def check_microns(x: Sequence[Dotprops]) -> Optional[bool]:
    """Check if neuron data is in microns.

    Returns either [True, None (=unclear), False]
    """
    microns = [config.ureg.Unit('microns'),
               config.ureg.Unit('um'),
               config.ureg.Unit('micrometer'),
               config.ureg.Unit('dimensionless')]

    # Converting the unit string to pint units is the time consuming step.
    # Here we will first reduce to unique units:
    unit_str = np.unique([str(n._unit_str) if n._unit_str else '' for n in x])

    any_not_microns = False
    all_units = True
    for u in unit_str:
        # If not a unit (i.e. `None`)
        if not u:
            all_units = False
            continue

        # Convert to proper unit
        u = config.ureg(u).to_compact().units

        if u not in microns:
            any_not_microns = True

    if any_not_microns:
        return False
    elif all_units:
        return True
    return None


def nblast_preflight(query: Sequence[Dotprops],
                     target: Sequence[Dotprops],
                     n_cores: int,
                     max_items: Optional[int] = 'config',
                     req_unique_ids: bool = False,
                     req_points: bool = True,
                     req_microns: bool = True):
    """Run preflight checks for NBLAST.

    All of these run before any actual work is done.
    """
    if max_items == 'config':
        max_items = config.max_items
    utils.eval_max_items(len(query), max_items, what='queries')
    utils.eval_max_items(len(target), max_items, what='targets')

    if req_points:
        for dps, what in ((query, 'query'), (target, 'target')):
            no_points = [n.id for n in dps if len(n) == 0]
            if no_points:
                raise EmptyPointSet(f'Some {what} dotprops appear to have no '
                                    f'points: {no_points}')

    if req_unique_ids:
        # At the moment, neurons need to have a unique ID for things to work
        for dps, what in ((query, 'Queries'), (target, 'Targets')):
            ids = [n.id for n in dps]
            if len(set(ids)) != len(ids):
                dupl = pd.Series(ids).value_counts()
                raise ValueError(f'{what} have non-unique IDs: '
                                 f'{dupl[dupl > 1].index.tolist()}')

    # Check if query or targets are in microns
    # Note this test can return `None` if it can't be determined
    if req_microns:
        if check_microns(query) is False:
            logger.warning('NBLAST is optimized for data in microns and it looks '
                           'like your queries are not in microns.')
        if check_microns(target) is False:
            logger.warning('NBLAST is optimized for data in microns and it looks '
                           'like your targets are not in microns.')

    if not isinstance(n_cores, numbers.Number) or n_cores < 1:
        raise ValueError('`n_cores` must be an integer > 0')

    if n_cores > (os.cpu_count() or 1):
        logger.warning('`n_cores` should not larger than the number of '
                       'available cores')
