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

import hashlib
import numbers
import pint
import uuid
import warnings

import numpy as np

from typing import Union, Optional, Any

from .. import config

try:
    import xxhash
except ImportError:
    xxhash = None

__all__ = ['BaseNeuron']

# Set up logging
logger = config.get_logger(__name__)

# Creating a first Quantity makes pint emit its numpy warning now rather than
# in the middle of a computation
with warnings.catch_warnings():
    warnings.simplefilter("ignore")
    pint.Quantity([])


class BaseNeuron:
    """Identity, metadata and units shared by all neuron types.

    Subclasses list the attributes that define their geometry in
    ``CORE_DATA``: those feed into :attr:`core_md5`, which is used to tell
    whether cached results for a neuron are still valid.
    """

    name: Optional[str]
    id: Union[int, str, uuid.UUID]

    #: Coordinate units. NBLAST score matrices are typically trained on
    #: data in microns
    units: Union[pint.Unit, pint.Quantity]

    #: Attributes that make up the fingerprint
    CORE_DATA = []

    def __init__(self, **kwargs):
        # Random ID unless one is given
        self.id = uuid.uuid4()
        self.name = None

        for k, v in kwargs.items():
            setattr(self, k, v)

    def __hash__(self):
        # Identity-based: neurons are mutable
        return id(self)

    def __repr__(self):
        return f'<{self.type} id={self.id!r} name={self.name!r} n_points={len(self)}>'

    def __len__(self):
        return 0

    @property
    def type(self) -> str:
        """Neuron type."""
        return 'dotblast.BaseNeuron'

    @property
    def id(self) -> Any:
        """Hashable identifier. Scores are labelled by it."""
        return getattr(self, '_id', None)

    @id.setter
    def id(self, value):
        try:
            hash(value)
        except TypeError:
            raise ValueError(f'id must be hashable, got "{type(value)}"')
        self._id = value

    @property
    def core_md5(self) -> Optional[str]:
        """Fingerprint of the ``CORE_DATA`` arrays.

        Uses xxhash if installed and md5 otherwise. ``None`` if there is no
        core data at all.
        """
        digests = []
        for prop in self.CORE_DATA:
            data = getattr(self, prop, None)
            if data is None:
                continue

            data = np.ascontiguousarray(data)
            if xxhash:
                digests.append(xxhash.xxh128(data).hexdigest())
            else:
                digests.append(hashlib.md5(data).hexdigest())

        return ''.join(digests) if digests else None

    @property
    def units(self) -> pint.Quantity:
        """Units of the coordinate space."""
        # Only the string is stored so that neurons pickle cleanly
        return config.ureg(getattr(self, '_unit_str', None))

    @units.setter
    def units(self, units: Union[pint.Unit, pint.Quantity, str, None]):
        if units is None:
            unit_str = None
        elif isinstance(units, str):
            # "microns" turns into odd units like "millimicrons" on division
            unit_str = units.replace('microns', 'um').replace('micron', 'um')
        elif isinstance(units, (pint.Unit, pint.Quantity)):
            unit_str = str(units)
        elif isinstance(units, numbers.Number):
            unit_str = str(config.ureg(f'{units} dimensionless'))
        else:
            raise TypeError(f'Expected str or pint Unit/Quantity, got "{type(units)}"')

        # Fail early on strings pint can't parse
        if unit_str:
            config.ureg(unit_str)

        self._unit_str = unit_str
