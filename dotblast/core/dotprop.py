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

import copy
import numbers
import pint
import warnings

import numpy as np

from typing import Union, Optional, Tuple

from scipy.spatial import cKDTree as KDTree

from .. import utils, config
from ..utils.exceptions import DimensionMismatch
from .base import BaseNeuron

__all__ = ['Dotprops']

# Set up logging
logger = config.get_logger(__name__)


class Dotprops(BaseNeuron):
    """Neuron represented as points + local vectors.

    Dotprops consist of points with x/y/z coordinates, a tangent vector and an
    (optional) alpha value describing the immediate neighbourhood (see also
    references). Tangent vectors do not need to be consistently signed nor of
    unit length: they are normalized before scoring.

    Construction of dotprops from skeletons or image data is not part of this
    package - bring your own points and vectors.

    References
    ----------
    Masse N.Y., Cachero S., Ostrovsky A., and Jefferis G.S.X.E. (2012). A mutual
    information approach to automate identification of neuronal clusters in
    Drosophila brain images. Frontiers in Neuroinformatics 6 (00021).
    doi: 10.3389/fninf.2012.00021

    Parameters
    ----------
    points :        numpy array
                    (N, 3) array of x/y/z coordinates.
    vect :          numpy array
                    (N, 3) array of tangent vectors.
    alpha :         numpy array, optional
                    (N, ) array of alpha values. Required for alpha-weighted
                    NBLAST.
    units :         str | pint.Units | pint.Quantity
                    Units for coordinates. Defaults to ``None`` (dimensionless).
                    Strings must be parsable by pint: e.g. "nm", "um",
                    "micrometer" or "8 nanometers".
    **metadata
                    Any additional data to attach to neuron, e.g. ``id`` or
                    ``name``.

    Examples
    --------
    >>> import numpy as np
    >>> from dotblast import Dotprops
    >>> pts = np.array([[0, 0, 0], [1, 0, 0], [2, 0, 0]])
    >>> vec = np.array([[1, 0, 0], [1, 0, 0], [1, 0, 0]])
    >>> dp = Dotprops(pts, vec, id='line')
    >>> len(dp)
    3

    """

    points: np.ndarray
    alpha: Optional[np.ndarray]
    vect: np.ndarray

    #: Core data used to calculate hash
    CORE_DATA = ['points', 'vect', 'alpha']

    def __init__(self,
                 points: np.ndarray,
                 vect: np.ndarray,
                 alpha: Optional[np.ndarray] = None,
                 units: Union[pint.Unit, str] = None,
                 **metadata
                 ):
        """Initialize Dotprops Neuron."""
        super().__init__()

        self.points = points
        self.vect = vect
        self.alpha = alpha

        for k, v in metadata.items():
            try:
                setattr(self, k, v)
            except AttributeError:
                raise AttributeError(f"Unable to set neuron's `{k}` attribute.")

        self.units = units

    def __truediv__(self, other, copy=True):
        """Implement division for coordinates."""
        if isinstance(other, numbers.Number) or utils.is_iterable(other):
            n = self.copy() if copy else self
            n.points = np.divide(n.points, other)

            # Convert units
            # Note: .to_compact() throws a RuntimeWarning and returns unchanged
            # values when `units` is a iterable
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                n.units = (n.units * other).to_compact()

            return n
        return NotImplemented

    def __mul__(self, other, copy=True):
        """Implement multiplication for coordinates."""
        if isinstance(other, numbers.Number) or utils.is_iterable(other):
            n = self.copy() if copy else self
            n.points = np.multiply(n.points, other)

            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                n.units = (n.units / other).to_compact()

            return n
        return NotImplemented

    def __len__(self):
        return len(self.points)

    @property
    def n_points(self) -> int:
        """Number of points."""
        return len(self.points)

    @property
    def points(self):
        """Center of tangent vectors."""
        return self._points

    @points.setter
    def points(self, value):
        if isinstance(value, type(None)):
            value = np.zeros((0, 3))
        value = np.asarray(value, dtype=np.float64)
        if value.ndim != 2 or value.shape[1] != 3:
            raise DimensionMismatch(f'points must be (N, 3) array, got {value.shape}')
        self._points = value
        # Also reset KDtree
        self._tree = None

    @property
    def vect(self):
        """Tangent vectors."""
        return self._vect

    @vect.setter
    def vect(self, value):
        if isinstance(value, type(None)):
            raise ValueError('Dotprops require tangent vectors')
        value = np.asarray(value, dtype=np.float64)
        if value.shape != self.points.shape:
            raise DimensionMismatch(f'vectors must be {self.points.shape} array '
                                    f'to match points, got {value.shape}')
        self._vect = value
        self._unit_vect = None

    @property
    def unit_vect(self):
        """Tangent vectors normalized to unit length.

        Zero-length vectors stay zero.
        """
        if getattr(self, '_unit_vect', None) is None:
            norm = np.linalg.norm(self.vect, axis=1, keepdims=True)
            with np.errstate(divide='ignore', invalid='ignore'):
                self._unit_vect = np.where(norm > 0, self.vect / norm, 0)
        return self._unit_vect

    @property
    def alpha(self):
        """Alpha value for tangent vectors (optional)."""
        return self._alpha

    @alpha.setter
    def alpha(self, value):
        if not isinstance(value, type(None)):
            value = np.asarray(value, dtype=np.float64)
            if value.shape != (self.points.shape[0], ):
                raise DimensionMismatch(f'alpha must be ({self.points.shape[0]}, ) '
                                        f'array, got {value.shape}')
        self._alpha = value

    @property
    def kdtree(self):
        """KDTree for points.

        Built on first access and kept until ``points`` change.
        """
        if getattr(self, '_tree', None) is None:
            self._tree = KDTree(self.points)
        return self._tree

    @property
    def type(self) -> str:
        """Neuron type."""
        return 'dotblast.Dotprops'

    def nearest(self,
                points: np.ndarray,
                distance_upper_bound: Optional[float] = None
                ) -> Tuple[np.ndarray, np.ndarray]:
        """Find the closest of this neuron's points for each of given points.

        Ties are broken by picking the lowest index.

        Parameters
        ----------
        points :                (M, 3) array
        distance_upper_bound :  float, optional
                                Stop the search at this distance. Points
                                without a hit get an infinite distance and
                                an index of ``len(self)``.

        Returns
        -------
        dist :          (M, ) array
        ix :            (M, ) array

        """
        diub = distance_upper_bound if distance_upper_bound else np.inf
        tree = self.kdtree

        if len(self) == 1:
            return tree.query(points, k=1, distance_upper_bound=diub)

        dists, ix = tree.query(points, k=2, distance_upper_bound=diub)
        dist, nn = dists[:, 0], ix[:, 0]

        # The KDTree does not make guarantees about which of several equidistant
        # points it returns
        tied = (dists[:, 0] == dists[:, 1]) & np.isfinite(dists[:, 0])
        for i in np.nonzero(tied)[0]:
            cand = np.asarray(tree.query_ball_point(points[i], r=dist[i]), dtype=int)
            cand = np.union1d(cand, ix[i])
            cand_dist = np.linalg.norm(self.points[cand] - points[i], axis=1)
            nn[i] = cand[cand_dist == cand_dist.min()].min()

        return dist, nn

    def dist_dots(self,
                  other: 'Dotprops',
                  alpha: bool = False,
                  distance_upper_bound: Optional[float] = None,
                  return_ix: bool = False,
                  ) -> Tuple[np.ndarray, ...]:
        """Query this Dotprops against another.

        This is the nearest-neighbor matching underlying
        :func:`dotblast.nbl.match_points` and hence ``dotblast.nblast``.

        Parameters
        ----------
        other :                 Dotprops
        alpha :                 bool
                                If True, will also return the product of the
                                alpha values of matched points.
        distance_upper_bound :  non-negative float, optional
                                If provided, we will stop the nearest neighbor
                                search at this distance which can vastly speed
                                up the query. For points with no hit within this
                                distance, `dist` will be set to
                                `distance_upper_bound`, and `dotprods` and
                                `alpha_prod` will be set to 0.
        return_ix :             bool
                                If True, will also return the index of the
                                matched point in ``other`` (-1 for points
                                without a hit).

        Returns
        -------
        dist :          np.ndarray
                        For each point in ``self``, the distance to the closest
                        point in ``other``.
        dotprods :      np.ndarray
                        Absolute dot product of the unit tangent vectors of each
                        pair of closest points between ``self`` and ``other``.
        alpha_prod :    np.ndarray
                        Product of the alpha values of each pair of closest
                        points. Only returned if ``alpha=True``.
        ix :            np.ndarray
                        Only returned if ``return_ix=True``.

        """
        if not isinstance(other, Dotprops):
            raise TypeError(f'Expected Dotprops, got "{type(other)}"')

        if self.points.shape[1] != other.points.shape[1]:
            raise DimensionMismatch(f'Unable to match {self.points.shape[1]}D '
                                    f'against {other.points.shape[1]}D points')

        if alpha and (self.alpha is None or other.alpha is None):
            raise ValueError('Alpha-weighting requires both Dotprops to have '
                             '`alpha` values.')

        fast_dists, fast_idxs = other.nearest(self.points,
                                              distance_upper_bound=distance_upper_bound)

        # Points without a hit within the upper bound have infinite distances
        no_nn = ~np.isfinite(fast_dists)
        if no_nn.any():
            fast_dists[no_nn] = distance_upper_bound
            # Temporarily give those points a match
            fast_idxs[no_nn] = 0

        fast_dotprods = np.abs((self.unit_vect * other.unit_vect[fast_idxs]).sum(axis=1))
        fast_dotprods[no_nn] = 0

        out = [fast_dists, fast_dotprods]

        if alpha:
            fast_alpha = self.alpha * other.alpha[fast_idxs]
            fast_alpha[no_nn] = 0
            out.append(fast_alpha)

        if return_ix:
            out.append(np.where(no_nn, -1, fast_idxs))

        return tuple(out)

    def copy(self) -> 'Dotprops':
        """Return a copy of the dotprops.

        Returns
        -------
        Dotprops

        """
        # Don't copy the KDtree - construction is super fast anyway
        no_copy = ['_tree']
        x = self.__class__(points=np.zeros((0, 3)), vect=np.zeros((0, 3)))
        # Populate with this neuron's data
        x.__dict__.update({k: copy.copy(v) for k, v in self.__dict__.items() if k not in no_copy})
        x._tree = None

        return x
