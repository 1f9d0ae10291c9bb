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

"""Helpers to normalise "one or many" arguments."""

import numpy as np
import pandas as pd

from collections.abc import Iterable
from typing import Any, Optional


def is_iterable(x: Any) -> bool:
    """Test if input is a collection of items.

    Strings and DataFrames count as single items.

    Examples
    --------
    >>> from dotblast.utils import is_iterable
    >>> is_iterable(['a'])
    True
    >>> is_iterable('a')
    False

    """
    return isinstance(x, Iterable) and not isinstance(x, (str, pd.DataFrame))


def make_iterable(x, force_type: Optional[type] = None) -> np.ndarray:
    """Turn input into a 1D numpy array of items.

    Scalars (incl. strings) become single-item arrays. For dicts and sets
    the keys/members are used.

    Examples
    --------
    >>> from dotblast.utils import make_iterable
    >>> make_iterable('n1')
    array(['n1'], dtype='<U2')
    >>> make_iterable({'a': 1})
    array(['a'], dtype='<U1')

    """
    if isinstance(x, (dict, set)):
        x = list(x)
    elif not is_iterable(x):
        x = [x]

    return np.asarray(x, dtype=force_type)
