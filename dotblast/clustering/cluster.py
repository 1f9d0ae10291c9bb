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

"""Clustering of neurons by their NBLAST distances."""

import numpy as np
import pandas as pd
import scipy.cluster.hierarchy
import scipy.spatial

from abc import ABC, abstractmethod
from typing import Union, Optional, List, Sequence
from typing_extensions import Literal

from .. import utils, config
from ..nbl.utils import scores_to_dist, sub_dist_mat, check_distances

# Set up logging
logger = config.get_logger(__name__)

__all__ = sorted(['ClustResults', 'HierarchicalClusters', 'DensityClusters',
                  'nhclust', 'ndclust', 'cut', 'members'])

MatrixKind = Union[Literal['distance'], Literal['similarity'], Literal['raw']]


class ClustResults(ABC):
    """Base class for clustering results.

    Wraps a square, symmetric, non-negative distance matrix. Subclasses
    implement :meth:`cut` which assigns each neuron to a group.

    Parameters
    ----------
    dist_mat :  pandas.DataFrame
                Distance matrix (0=similar). Rows and columns must have the
                same IDs.

    """

    def __init__(self, dist_mat: pd.DataFrame):
        self.dist_mat = validate_dist_mat(dist_mat)

    def __len__(self):
        return len(self.dist_mat)

    def __repr__(self):
        return f'<{self.__class__.__name__} n={len(self)}>'

    @property
    def ids(self) -> List:
        """IDs of clustered neurons in the order of the distance matrix."""
        return self.dist_mat.index.tolist()

    @property
    def condensed_dist_mat(self) -> np.ndarray:
        """Condensed (i.e. vector-form) distance matrix."""
        return scipy.spatial.distance.squareform(self.dist_mat.values,
                                                 checks=False)

    @abstractmethod
    def cut(self,
            k: Optional[int] = None,
            h: Optional[float] = None) -> pd.Series:
        """Assign neurons to groups.

        Returns
        -------
        pandas.Series
                    Maps neuron ID -> group.

        """
        pass

    def members(self,
                groups: Optional[Union[int, Sequence[int]]] = None,
                k: Optional[int] = None,
                h: Optional[float] = None) -> List:
        """Get IDs of neurons in given group(s).

        Parameters
        ----------
        groups :    int | list of int, optional
                    Group(s) to return members for. If None will return all
                    neurons.
        k,h :       int | float, optional
                    Passed to :meth:`cut`.

        Returns
        -------
        list
                    IDs in the order of the distance matrix.

        """
        assignment = self.cut(k=k, h=h)

        if groups is not None:
            groups = utils.make_iterable(groups)
            assignment = assignment[assignment.isin(groups)]

        return assignment.index.tolist()


class HierarchicalClusters(ClustResults):
    """Hierarchical clustering.

    Thin wrapper around ``scipy.cluster.hierarchy``.

    Parameters
    ----------
    dist_mat :  pandas.DataFrame
                Distance matrix.
    method :    str
                Linkage method (see ``scipy.cluster.hierarchy.linkage``).
                Defaults to Ward's.

    Attributes
    ----------
    linkage :   np.ndarray
                Linkage matrix.
    leaves :    list
                IDs in dendrogram order.

    """

    def __init__(self, dist_mat: pd.DataFrame, method: str = 'ward'):
        super().__init__(dist_mat)
        self.cluster(method=method)

    def cluster(self, method: str = 'ward') -> None:
        """Cluster distance matrix.

        Parameters
        ----------
        method :    str, optional
                    Clustering method (see scipy.cluster.hierarchy.linkage
                    for reference)

        """
        # Use condensed distance matrix - otherwise clustering thinks we are
        # passing observations instead of final scores
        self.linkage = scipy.cluster.hierarchy.linkage(self.condensed_dist_mat,
                                                       method=method)

        # Save method in case we want to look it up later
        self.cluster_method = method

        logger.info(f'Clustering done using method "{method}"')

    @property
    def leaves(self) -> List:
        """IDs in dendrogram order."""
        ids = self.ids
        return [ids[i] for i in scipy.cluster.hierarchy.leaves_list(self.linkage)]

    @property
    def cophenet(self) -> float:
        """Cophenetic correlation coefficient of the clustering.

        This (very very briefly) compares (correlates) the actual pairwise
        distances of all your samples to those implied by the hierarchical
        clustering. The closer the value is to 1, the better the clustering
        preserves the original distances.

        """
        c, _ = scipy.cluster.hierarchy.cophenet(self.linkage,
                                                self.condensed_dist_mat)
        return c

    @property
    def agg_coeff(self) -> float:
        """Agglomerative coefficient.

        This measures the clustering structure of the linkage matrix. Because
        it grows with the number of observations, this measure should not be
        used to compare datasets of very different sizes.

        For each observation i, denote by m(i) its dissimilarity to the first
        cluster it is merged with, divided by the dissimilarity of the merger
        in the final step of the algorithm. The agglomerative coefficient is
        the average of all 1 - m(i).

        """
        Z = self.linkage
        n = len(self)

        # Distance at which each original observation is first merged
        first_merge = np.empty(n)
        for obs1, obs2, dist, _ in Z:
            for obs in (obs1, obs2):
                if obs < n:
                    first_merge[int(obs)] = dist

        return np.mean(1 - first_merge / Z[-1, 2])

    def cut(self,
            k: Optional[int] = None,
            h: Optional[float] = None) -> pd.Series:
        """Cut dendrogram into groups.

        Exactly one of ``k`` or ``h`` must be given. Groups are numbered
        starting at 1 in the order in which they appear in the dendrogram.

        Parameters
        ----------
        k :         int, optional
                    Number of groups.
        h :         float, optional
                    Height at which to cut the dendrogram.

        Returns
        -------
        pandas.Series
                    Maps neuron ID -> group in the order of the distance
                    matrix.

        """
        if (k is None) == (h is None):
            raise ValueError('Must provide either `k` or `h` (but not both).')

        if k is not None:
            if not 1 <= k <= len(self):
                raise ValueError(f'`k` must be between 1 and {len(self)}, got {k}')
            if scipy.cluster.hierarchy.is_monotonic(self.linkage):
                cl = scipy.cluster.hierarchy.cut_tree(self.linkage, n_clusters=k).ravel()
            else:
                # `cut_tree` miscounts groups for linkages with inversions
                # (e.g. "centroid" or "median")
                cl = scipy.cluster.hierarchy.fcluster(self.linkage, k, criterion='maxclust')
                if len(np.unique(cl)) != k:
                    raise ValueError(f'Unable to cut into exactly {k} groups: '
                                     f'the "{self.cluster_method}" linkage is '
                                     'not monotonic. Try a different `k` or '
                                     'cut by height `h`.')
        else:
            # Merges at exactly height `h` are joined
            cl = scipy.cluster.hierarchy.fcluster(self.linkage, h, criterion='distance')

        # Renumber groups in dendrogram order
        new_ids = {}
        for ix in scipy.cluster.hierarchy.leaves_list(self.linkage):
            if cl[ix] not in new_ids:
                new_ids[cl[ix]] = len(new_ids) + 1

        return pd.Series([new_ids[c] for c in cl], index=self.dist_mat.index,
                         name='group')


class DensityClusters(ClustResults):
    """Density-based clustering (DBSCAN).

    Thin wrapper around ``sklearn.cluster.DBSCAN``.

    Parameters
    ----------
    dist_mat :      pandas.DataFrame
                    Distance matrix.
    eps :           float
                    Max distance between two neurons for one to be considered
                    as in the neighborhood of the other.
    min_samples :   int
                    Number of neurons in a neighborhood for a neuron to be
                    considered a core point (includes the neuron itself).
    **kwargs
                    Passed to ``sklearn.cluster.DBSCAN``.

    """

    def __init__(self, dist_mat: pd.DataFrame, eps: float = 0.5,
                 min_samples: int = 5, **kwargs):
        super().__init__(dist_mat)

        try:
            from sklearn.cluster import DBSCAN
        except ImportError:
            raise ImportError('Density clustering requires scikit-learn:\n '
                              ' pip3 install scikit-learn -U')

        self.eps = eps
        self.min_samples = min_samples

        db = DBSCAN(eps=eps, min_samples=min_samples, metric='precomputed',
                    **kwargs)
        # DBSCAN labels noise as -1 and clusters from 0
        self.labels = db.fit(self.dist_mat.values).labels_ + 1

        logger.info(f'Clustering done: found {self.labels.max()} clusters and '
                    f'{(self.labels == 0).sum()} noise points')

    def cut(self,
            k: Optional[int] = None,
            h: Optional[float] = None) -> pd.Series:
        """Get groups.

        ``k`` and ``h`` are ignored: density clusters are fixed at
        construction. Group 0 are noise points, clusters start at 1.

        Returns
        -------
        pandas.Series
                    Maps neuron ID -> group in the order of the distance
                    matrix.

        """
        return pd.Series(self.labels, index=self.dist_mat.index, name='group')


def validate_dist_mat(dist: pd.DataFrame) -> pd.DataFrame:
    """Check that ``dist`` is a well-formed distance matrix.

    Must be square with the same IDs on both axes, symmetric and
    non-negative. Returns a copy with columns ordered like rows.
    """
    if not isinstance(dist, pd.DataFrame):
        raise TypeError(f'Expected pandas DataFrame, got "{type(dist)}"')

    if dist.shape[0] != dist.shape[1]:
        raise ValueError(f'Distance matrix must be square, got shape {dist.shape}')

    if not dist.index.is_unique or set(dist.index) != set(dist.columns):
        raise ValueError('Distance matrix must have the same unique IDs as rows '
                         'and columns')

    dist = dist.loc[:, dist.index].astype(np.float64)

    check_distances(dist)

    if not np.allclose(dist.values, dist.values.T):
        raise ValueError('Distance matrix must be symmetric. Use '
                         '`dotblast.scores_to_dist` to symmetrize.')

    return dist


def _to_dist_mat(x: pd.DataFrame,
                 kind: MatrixKind,
                 ids: Optional[Sequence] = None,
                 max_items: Optional[int] = 'config') -> pd.DataFrame:
    """Turn input into distance matrix."""
    utils.eval_param(kind, name='kind',
                     allowed_values=('distance', 'similarity', 'raw'))

    if max_items == 'config':
        max_items = config.max_items

    if kind == 'raw':
        return sub_dist_mat(x, ids=ids, max_items=max_items)

    if ids is not None:
        ids = list(utils.make_iterable(ids))
        x = x.loc[ids, ids]

    utils.eval_max_items(len(x), max_items, what='neurons')

    if kind == 'similarity':
        return scores_to_dist(x, kind='similarity')

    return x


def nhclust(x: pd.DataFrame,
            method: str = 'ward',
            ids: Optional[Sequence] = None,
            kind: MatrixKind = 'distance',
            max_items: Optional[int] = 'config') -> HierarchicalClusters:
    """Hierarchically cluster neurons.

    Parameters
    ----------
    x :         pandas.DataFrame
                Square matrix with the same IDs as rows and columns. See
                ``kind``.
    method :    str
                Linkage method (see ``scipy.cluster.hierarchy.linkage``).
                Defaults to Ward's.
    ids :       list, optional
                Subset of IDs to cluster.
    kind :      "distance" | "similarity" | "raw"
                What ``x`` represents:
                 - "distance" is a distance matrix, e.g. from
                   :func:`dotblast.scores_to_dist`
                 - "similarity" are (normalized) scores which will be turned
                   into distances via :func:`dotblast.scores_to_dist`
                 - "raw" are non-normalized NBLAST scores including
                   self-scores which will be turned into distances via
                   :func:`dotblast.sub_dist_mat`
    max_items : int | None
                Raise ``TooManyItems`` if there are more neurons than this.
                Defaults to ``config.max_items``.

    Returns
    -------
    HierarchicalClusters

    Examples
    --------
    >>> import pandas as pd
    >>> from dotblast import nhclust, cut, members
    >>> dist = pd.DataFrame([[0, 1, 9], [1, 0, 9], [9, 9, 0]],
    ...                     index=list('abc'), columns=list('abc'))
    >>> hc = nhclust(dist, method='average')
    >>> sorted(cut(hc, k=2).value_counts())
    [1, 2]
    >>> members(hc, groups=cut(hc, k=2)["a"], k=2)
    ['a', 'b']

    """
    dist = _to_dist_mat(x, kind=kind, ids=ids, max_items=max_items)
    return HierarchicalClusters(dist, method=method)


def ndclust(x: pd.DataFrame,
            eps: float = 0.5,
            min_samples: int = 5,
            ids: Optional[Sequence] = None,
            kind: MatrixKind = 'distance',
            max_items: Optional[int] = 'config',
            **kwargs) -> DensityClusters:
    """Cluster neurons using density-based clustering (DBSCAN).

    Requires scikit-learn.

    Parameters
    ----------
    x :             pandas.DataFrame
                    Square matrix with the same IDs as rows and columns. See
                    :func:`dotblast.nhclust` for ``kind``.
    eps :           float
                    Max distance between two neurons for one to be considered
                    as in the neighborhood of the other.
    min_samples :   int
                    Number of neurons in a neighborhood for a neuron to be
                    considered a core point.
    ids :           list, optional
                    Subset of IDs to cluster.
    kind :          "distance" | "similarity" | "raw"
                    What ``x`` represents.
    max_items :     int | None
                    Raise ``TooManyItems`` if there are more neurons than this.
    **kwargs
                    Passed to ``sklearn.cluster.DBSCAN``.

    Returns
    -------
    DensityClusters

    """
    dist = _to_dist_mat(x, kind=kind, ids=ids, max_items=max_items)
    return DensityClusters(dist, eps=eps, min_samples=min_samples, **kwargs)


def cut(tree: ClustResults,
        k: Optional[int] = None,
        h: Optional[float] = None) -> pd.Series:
    """Assign neurons to groups.

    Parameters
    ----------
    tree :      ClustResults
                E.g. from :func:`dotblast.nhclust`.
    k,h :       int | float
                Number of groups or height at which to cut. Ignored for
                density clusters.

    Returns
    -------
    pandas.Series
                Maps neuron ID -> group.

    """
    if not isinstance(tree, ClustResults):
        raise TypeError(f'Expected ClustResults, got "{type(tree)}"')
    return tree.cut(k=k, h=h)


def members(tree: ClustResults,
            groups: Optional[Union[int, Sequence[int]]] = None,
            k: Optional[int] = None,
            h: Optional[float] = None) -> List:
    """Get IDs of neurons in given group(s).

    Parameters
    ----------
    tree :      ClustResults
                E.g. from :func:`dotblast.nhclust`.
    groups :    int | list of int, optional
                Group(s) to return members for.
    k,h :       int | float
                Number of groups or height at which to cut. Ignored for
                density clusters.

    Returns
    -------
    list
                IDs in the order of the distance matrix.

    """
    if not isinstance(tree, ClustResults):
        raise TypeError(f'Expected ClustResults, got "{type(tree)}"')
    return tree.members(groups=groups, k=k, h=h)
