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

"""Module containing a Python implementation of NBLAST."""

from .smat import (Digitizer, Lookup2d, register_smat, get_smat, smat_fcwb,
                   parse_score_fn)
from .matching import MatchRecords, match_points
from .nblast_funcs import (ScoreMode, NBlaster, nblast, nblast_pair,
                           nblast_allbyall)
from .utils import (scores_to_dist, sub_score_mat, sub_dist_mat,
                    extract_matches, update_scores, compress_scores)

__all__ = ['nblast', 'nblast_pair', 'nblast_allbyall', 'NBlaster', 'ScoreMode',
           'scores_to_dist', 'sub_score_mat', 'sub_dist_mat']
