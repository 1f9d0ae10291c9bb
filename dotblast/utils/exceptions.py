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

"""Exceptions raised by dotblast.

All of these are deterministic functions of the input data: none of them are
worth retrying.
"""


class DotblastError(Exception):
    """Base class for all dotblast errors."""


class InvalidTable(DotblastError, ValueError):
    """Malformed score matrix: bad boundaries or cells of the wrong shape."""


class EmptyPointSet(DotblastError, ValueError):
    """Dotprops without any points."""


class DimensionMismatch(DotblastError, ValueError):
    """Points, vectors or alpha values with inconsistent shapes."""


class TooManyItems(DotblastError, ValueError):
    """More neurons than allowed by ``max_items``."""


class NegativeDistance(DotblastError, ValueError):
    """Distance matrix with negative (or missing) entries."""
