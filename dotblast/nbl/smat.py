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

"""Score matrices: lookup tables converting (distance, dot) into a score."""

from __future__ import annotations

import math
import operator
import os
import threading

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Generic, List, Sequence, Tuple, TypeVar, Union

import numpy as np
import pandas as pd

from .. import config
from ..utils.exceptions import InvalidTable

__all__ = ['Digitizer', 'Lookup2d', 'register_smat', 'get_smat', 'smat_fcwb',
           'parse_score_fn']

logger = config.get_logger(__name__)

T = TypeVar("T")

# Registered score matrices: name -> Lookup2d
_SMATS: Dict[str, 'Lookup2d'] = {}
_SMATS_LOCK = threading.Lock()


def nblast_v1_scoring(dist, dp, sigma_scoring: float = 3):
    """Per-point NBLAST v1 term following Jefferis et al. (2007).

    ``dnorm(dist, sigma) / dnorm(0, sigma)`` is the same as
    ``exp(-dist^2 / (2 * sigma^2))`` so the normal density never has to be
    evaluated.

    Parameters
    ----------
    dist :          float | array thereof
                    Distance between two points.
    dp :            float | array thereof
                    Absolute dot product between points (possibly scaled by
                    alpha).
    sigma_scoring : float
                    Sigma of the exponential decrease. Defaults to 3.

    Returns
    -------
    terms :         float or array thereof
                    ``sqrt(exp(-dist^2 / (2 * sigma^2)) * dp)``.

    """
    return np.sqrt(np.abs(dp) * np.exp(-(np.asarray(dist) ** 2) / (2 * sigma_scoring ** 2)))


def is_monotonically_increasing(lst):
    for prev_idx, item in enumerate(lst[1:]):
        if item <= lst[prev_idx]:
            return False
    return True


def parse_boundary(item: str):
    item = str(item).strip()
    explicit_interval = item[0] + item[-1]
    if explicit_interval == "[)":
        right = False
    elif explicit_interval == "(]":
        right = True
    else:
        raise InvalidTable(
            f"Enclosing characters '{explicit_interval}' do not match a half-open interval"
        )
    try:
        return tuple(float(i) for i in item[1:-1].split(",")), right
    except ValueError:
        raise InvalidTable(f'Unable to parse interval "{item}"')


class LookupAxis(ABC, Generic[T]):
    """Class converting some data into a linear index."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of bins represented by this instance."""
        pass

    @abstractmethod
    def __call__(self, value: Union[T, Sequence[T]]) -> Union[int, Sequence[int]]:
        """Convert some data into a linear index.

        Parameters
        ----------
        value : Union[T, Sequence[T]]
            Value to convert into an index

        Returns
        -------
        Union[int, Sequence[int]]
            If a scalar was given, return a scalar; otherwise, a numpy array of ints.
        """
        pass


class Digitizer(LookupAxis[float]):
    def __init__(
        self,
        boundaries: Sequence[float],
        clip: Tuple[bool, bool] = (True, True),
        right=False,
    ):
        """Class converting continuous values into discrete indices.

        Parameters
        ----------
        boundaries : Sequence[float]
            N boundaries specifying N-1 bins.
            Must be strictly increasing.
        clip : Tuple[bool, bool], optional
            Whether to set the bottom and top boundaries to -infinity and
            infinity respectively, effectively clipping incoming values: by
            default (True, True).
            False means "add a new bin for out-of-range values".
        right : bool, optional
            Whether bins should include their right (rather than left) boundary,
            by default False.

        Raises
        ------
        InvalidTable
            Fewer than 2 boundaries or boundaries not strictly increasing.
        """
        self.right = right

        boundaries = [float(b) for b in boundaries]
        if len(boundaries) < 2:
            raise InvalidTable(f"Need at least 2 boundaries, got {len(boundaries)}")

        if not is_monotonically_increasing(boundaries):
            raise InvalidTable("Boundaries are not strictly increasing: "
                               f"{boundaries}")

        self._min = -math.inf
        if clip[0]:
            self._min = boundaries[0]
            boundaries[0] = -math.inf
        elif boundaries[0] != -math.inf:
            boundaries.insert(0, -math.inf)

        self._max = math.inf
        if clip[1]:
            self._max = boundaries[-1]
            boundaries[-1] = math.inf
        elif boundaries[-1] != math.inf:
            boundaries.append(math.inf)

        self.boundaries = np.asarray(boundaries)
        self.boundaries.flags.writeable = False

    def __len__(self):
        return len(self.boundaries) - 1

    def __call__(self, value: float):
        # searchsorted is marginally faster than digitize as it skips monotonicity checks
        return (
            np.searchsorted(
                self.boundaries, value, side="left" if self.right else "right"
            )
            - 1
        )

    def __repr__(self):
        return f'<Digitizer bins={self.to_strings()}>'

    def to_strings(self, round=None) -> List[str]:
        """Turn boundaries into list of labels.

        Parameters
        ----------
        round :     int, optional
                    Use to round bounds to the Nth decimal.
        """
        if self.right:
            lb = "("
            rb = "]"
        else:
            lb = "["
            rb = ")"

        b = self.boundaries.copy()
        b[0] = self._min
        b[-1] = self._max

        if round:
            b = [np.round(x, round) for x in b]

        return [
            f"{lb}{lower},{upper}{rb}"
            for lower, upper in zip(b[:-1], b[1:])
        ]

    @classmethod
    def from_strings(cls, interval_strs: Sequence[str]):
        """Set digitizer boundaries based on a sequence of interval expressions.

        e.g. ``["[0,1)", "[1,5)", "[5,10)"]``

        The lowermost and uppermost boundaries are converted to -infinity and
        infinity respectively.

        Parameters
        ----------
        interval_strs : Sequence[str]
            Strings representing intervals, which must abut and have open/closed
            boundaries specified by brackets.

        Returns
        -------
        Digitizer
        """
        bounds: List[float] = []
        last_upper = None
        last_right = None
        for item in interval_strs:
            (lower, upper), right = parse_boundary(item)
            bounds.append(float(lower))

            if last_right is not None:
                if right != last_right:
                    raise InvalidTable("Inconsistent half-open interval")
            else:
                last_right = right

            if last_upper is not None:
                if lower != last_upper:
                    raise InvalidTable("Half-open intervals do not abut")

            last_upper = upper

        if last_upper is None:
            raise InvalidTable("No intervals given")

        bounds.append(float(last_upper))
        return cls(bounds, right=last_right)

    @classmethod
    def from_linear(cls, lower: float, upper: float, nbins: int, right=False):
        """Choose digitizer boundaries spaced linearly between two values.

        Input values will be clipped to fit within the given interval.

        Parameters
        ----------
        lower : float
            Lowest value
        upper : float
            Highest value
        nbins : int
            Number of bins
        right : bool, optional
            Whether bins should include their right (rather than left) boundary,
            by default False

        Returns
        -------
        Digitizer
        """
        arr = np.linspace(lower, upper, nbins + 1, endpoint=True)
        return cls(arr, right=right)

    @classmethod
    def from_geom(cls, lowest_upper: float, highest_lower: float, nbins: int, right=False):
        """Choose digitizer boundaries in a geometric sequence.

        Additional bins will be added above and below the given values.

        Parameters
        ----------
        lowest_upper : float
            Upper bound of the lowest bin. The lower bound of the lowest bin is
            often 0, which cannot be represented in a nontrivial geometric
            sequence.
        highest_lower : float
            Lower bound of the highest bin.
        nbins : int
            Number of bins
        right : bool, optional
            Whether bins should include their right (rather than left) boundary,
            by default False

        Returns
        -------
        Digitizer
        """
        arr = np.geomspace(lowest_upper, highest_lower, nbins - 1, True)
        return cls(arr, clip=(False, False), right=right)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Digitizer):
            return NotImplemented
        return self.right == other.right and np.allclose(
            self.boundaries, other.boundaries
        )


class LookupNd:
    def __init__(self, axes: List[LookupAxis], cells: np.ndarray):
        cells = np.array(cells, dtype=np.float64)
        if [len(b) for b in axes] != list(cells.shape):
            raise InvalidTable("Boundaries and cells have inconsistent bin counts: "
                               f"{[len(b) for b in axes]} vs {list(cells.shape)}")
        self.axes = axes
        self.cells = cells
        self.cells.flags.writeable = False

    def __call__(self, *args):
        if len(args) != len(self.axes):
            raise TypeError(
                f"Lookup takes {len(self.axes)} arguments but {len(args)} were given"
            )

        idxs = tuple(d(arg) for d, arg in zip(self.axes, args))
        out = self.cells[idxs]
        return out


class Lookup2d(LookupNd):
    """Convenience class inheriting from LookupNd for the common 2D float case.
    Provides IO with pandas DataFrames.
    """

    def __init__(self, axis0: Digitizer, axis1: Digitizer, cells: np.ndarray):
        """2D lookup table to convert NBLAST matches to scores.

        Commonly read from a ``pandas.DataFrame`` or a CSV file.

        Parameters
        ----------
        axis0 : Digitizer
            How to convert distances into an index for the first axis.
        axis1 : Digitizer
            How to convert dot products into an index for the second axis.
        cells : np.ndarray
            Values to look up in the table.
        """
        super().__init__([axis0, axis1], cells)

    def __repr__(self):
        return f'<Lookup2d shape={self.cells.shape}>'

    def to_dataframe(self) -> pd.DataFrame:
        """Convert the lookup table into a ``pandas.DataFrame``.

        From there, it can be shared, saved, and so on.

        The index and column labels describe the intervals represented by that axis.

        Returns
        -------
        pd.DataFrame
        """
        return pd.DataFrame(
            self.cells.copy(),
            self.axes[0].to_strings(),
            self.axes[1].to_strings(),
        )

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame):
        """Parse score matrix from a dataframe with string index and column labels.

        Expects the index and column labels to specify an interval
        like ``"[lower,upper)"``. Will replace the lowermost and uppermost
        bound with -inf and inf if they are not already.
        """
        return cls(
            Digitizer.from_strings(df.index),
            Digitizer.from_strings(df.columns),
            df.to_numpy(),
        )

    @classmethod
    def from_csv(cls, fpath: Union[str, os.PathLike]):
        """Read score matrix from a CSV file with interval labels."""
        return cls.from_dataframe(pd.read_csv(fpath, index_col=0))


def register_smat(name: str, smat: Union[Lookup2d, pd.DataFrame]):
    """Register a score matrix under given name.

    Registered score matrices can then be used via e.g.
    ``nblast(q, t, smat=name)``.

    Parameters
    ----------
    name :      str
    smat :      Lookup2d | pandas.DataFrame
                DataFrames are parsed via ``Lookup2d.from_dataframe``.

    """
    if isinstance(smat, pd.DataFrame):
        smat = Lookup2d.from_dataframe(smat)

    if not isinstance(smat, Lookup2d):
        raise TypeError(f'Expected Lookup2d or DataFrame, got "{type(smat)}"')

    with _SMATS_LOCK:
        if name in _SMATS and _SMATS[name] is not smat:
            logger.warning(f'Replacing previously registered score matrix "{name}"')
        _SMATS[name] = smat


def get_smat(name: str) -> Lookup2d:
    """Get a score matrix by name.

    Names that have not been registered yet are loaded (once) from
    ``config.smat_dir / f"smat_{name}.csv"``.

    Raises
    ------
    FileNotFoundError
        If the score matrix is neither registered nor found on disk.

    """
    with _SMATS_LOCK:
        if name in _SMATS:
            return _SMATS[name]

        fpath = Path(config.smat_dir) / f"smat_{name}.csv"
        if not fpath.is_file():
            raise FileNotFoundError(f'Score matrix "{name}" is not registered and '
                                    f'"{fpath}" does not exist. Set the '
                                    'DOTBLAST_SMAT_DIR environment variable or '
                                    'use `register_smat`.')

        logger.debug(f'Loading score matrix "{name}" from {fpath}')
        smat = _SMATS[name] = Lookup2d.from_csv(fpath)

    return smat


def smat_fcwb(alpha=False) -> Lookup2d:
    """Get the default score matrix.

    Which one is used is set by ``config.default_smat`` and
    ``config.default_smat_alpha`` (both FCWB matrices by default).
    """
    return get_smat(config.default_smat_alpha if alpha else config.default_smat)


def check_score_fn(fn: Callable, nargs=2, scalar=True, array=True):
    """Checks functionally that the callable can be used as a score function.

    Parameters
    ----------
    nargs : optional int, default 2
        How many positional arguments the score function should have.
    scalar : optional bool, default True
        Check that the function can be used on ``nargs`` scalars.
    array : optional bool, default True
        Check that the function can be used on ``nargs`` 1D ``numpy.ndarray``s.

    Raises
    ------
    ValueError
        If the score function is not appropriate.
    """
    if scalar:
        scalars = [0.5] * nargs
        if not isinstance(fn(*scalars), float):
            raise ValueError("smat does not take 2 floats and return a float")

    if array:
        test_arr = np.array([0.5] * 3)
        arrs = [test_arr] * nargs
        try:
            out = fn(*arrs)
        except Exception as e:
            raise ValueError(f"Failed to use smat with numpy arrays: {e}")

        if np.shape(out) != test_arr.shape:
            raise ValueError(
                f"smat produced inconsistent shape: input {test_arr.shape}; output {np.shape(out)}"
            )


def parse_score_fn(smat, alpha=False):
    """Interpret ``smat`` as a score function.

    NBLAST score functions take 2 floats or N-length numpy arrays of floats
    (distance and dot product, the latter possibly scaled by the geometric
    mean of the alpha values) and return a float or N-length numpy array of
    floats.

    Parameters
    ----------
    smat : None | "auto" | str | os.PathLike | pandas.DataFrame | Callable[[float, float], float]
        If ``None``, use ``operator.mul``.
        If ``"auto"``, use ``dotblast.nbl.smat.smat_fcwb(alpha)``.
        If a dataframe, use ``dotblast.nbl.smat.Lookup2d.from_dataframe(smat)``.
        If a string, use the registered score matrix of that name. Strings
        pointing to an existing file and paths are loaded from CSV.
        Also checks the signature of the callable.
    alpha : optional bool, default False
        If ``smat`` is ``"auto"``, choose whether to use the matrices
        with or without alpha.

    Returns
    -------
    Callable

    Raises
    ------
    ValueError
        If score function cannot be interpreted.
    FileNotFoundError
        If a named score matrix can not be found.
    """
    if smat is None:
        smat = operator.mul
    elif isinstance(smat, str) and smat == "auto":
        smat = smat_fcwb(alpha)
    elif isinstance(smat, str) and not os.path.isfile(smat):
        smat = get_smat(smat)

    if isinstance(smat, (str, os.PathLike)):
        smat = Lookup2d.from_csv(smat)

    if isinstance(smat, pd.DataFrame):
        smat = Lookup2d.from_dataframe(smat)

    if not callable(smat):
        raise ValueError(
            "smat should be a callable, a path, a pandas.DataFrame, or 'auto'"
        )

    check_score_fn(smat)

    return smat
