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

from .iterables import make_iterable, is_iterable
from .misc import set_loggers, set_pbars
from .eval import eval_param, eval_max_items
from .exceptions import (DotblastError, InvalidTable, EmptyPointSet,
                         DimensionMismatch, TooManyItems, NegativeDistance)

__all__ = ['set_loggers', 'set_pbars', 'InvalidTable', 'EmptyPointSet',
           'DimensionMismatch', 'TooManyItems', 'NegativeDistance']
