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

"""Nearest-neighbour matching of query points against a target."""

from typing import NamedTuple, Optional

import numpy as np

from .. import config
from ..core import Dotprops
from ..utils.exceptions import EmptyPointSet

__all__ = ['MatchRecords', 'match_points']

logger = config.get_logger(__name__)


class MatchRecords(NamedTuple):
    """One row per query point, in query order."""

    #: Distance to the nearest target point.
    dist: np.ndarray
    #: Absolute dot product of the unit tangent vectors, scaled by
    #: ``sqrt(alpha_q * alpha_t)`` if alpha-weighted.
    dot: np.ndarray
    #: Index of the nearest target point.
    target_ix: np.ndarray

    def __len__(self):
        return len(self.dist)


def match_points(query: Dotprops,
                 target: Dotprops,
                 use_alpha: bool = False,
                 limit_dist: Optional[float] = None) -> MatchRecords:
    """Match each query point to its nearest point in the target.

    Parameters
    ----------
    query :         Dotprops
    target :        Dotprops
    use_alpha :     bool
                    If True, dot products are scaled by the geometric mean of
                    the alpha values of the matched points.
    limit_dist :    float, optional
                    Stop the nearest neighbour search at this distance. Query
                    points without a hit get ``dist=limit_dist``, ``dot=0``
                    and ``target_ix=-1``.

    Returns
    -------
    MatchRecords

    Examples
    --------
    >>> import numpy as np
    >>> from dotblast import Dotprops
    >>> from dotblast.nbl import match_points
    >>> q = Dotprops([[0, 0, 0], [5, 0, 0]], [[1, 0, 0], [0, 1, 0]])
    >>> t = Dotprops([[1, 0, 0]], [[2, 0, 0]])
    >>> m = match_points(q, t)
    >>> m.dist
    array([1., 4.])
    >>> m.dot
    array([1., 0.])

    """
    for x in (query, target):
        if not isinstance(x, Dotprops):
            raise TypeError(f'Expected Dotprops, got "{type(x)}"')
        if not len(x):
            raise EmptyPointSet(f'Dotprops {x.id} has no points')

    data = query.dist_dots(target,
                           alpha=use_alpha,
                           distance_upper_bound=limit_dist,
                           return_ix=True)
    if use_alpha:
        dist, dots, alpha, ix = data
        dots *= np.sqrt(alpha)
    else:
        dist, dots, ix = data

    return MatchRecords(dist, dots, ix)
