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

"""Module containing base classes for BLASTING."""

import numpy as np
import pandas as pd

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from .. import config
from ..core import BaseNeuron

FLOAT_DTYPES = {16: np.float16, 32: np.float32, 64: np.float64, None: None,
                'single': np.float32, 'double': np.float64}

logger = config.get_logger(__name__)


class Blaster(ABC):
    """Base class for blasting.

    Subclasses implement how a single query is scored against a single target
    (:meth:`score_pair`), what a self-self comparison scores
    (:meth:`calc_self_hit`) and how raw scores are normalized
    (:meth:`normalize`). This class takes care of memoizing self hits, of
    running queries against targets in parallel threads and of turning the
    results into DataFrames.

    Parameters
    ----------
    normalized :    bool
                    Whether to normalize scores by the query's self hit.
    dtype :         int | str | numpy.dtype
                    Data type used for scores.
    progress :      bool
                    Whether to show progress bars.

    """

    def __init__(self, normalized=True, dtype=np.float64, progress=True):
        """Initialize class."""
        self.normalized = normalized
        self.dtype = dtype
        self.progress = progress
        self.desc = "Blasting"
        # Maps neuron ID -> (core_md5, self hit)
        self._self_hits = {}

    @abstractmethod
    def score_pair(self, query, target) -> float:
        """Non-normalized score for query against target."""
        pass

    @abstractmethod
    def calc_self_hit(self, neuron) -> float:
        """Non-normalized value for self hit."""
        pass

    @abstractmethod
    def normalize(self, score, self_hit) -> float:
        """Normalize raw score against the query's self hit."""
        pass

    @property
    def dtype(self):
        """Data type used for scores."""
        return self._dtype

    @dtype.setter
    def dtype(self, dtype):
        try:
            self._dtype = np.dtype(FLOAT_DTYPES.get(dtype, dtype))
        except TypeError:
            raise ValueError(
                f'Unknown precision/dtype {dtype}. Expected on of the following: 16, 32 or 64 (default)'
            )

    def self_hit(self, neuron: BaseNeuron) -> float:
        """Get (memoized) non-normalized self hit for given neuron.

        Self hits are cached by neuron ID and recalculated if the neuron's
        core data has changed in the meantime.
        """
        md5 = neuron.core_md5
        cached = self._self_hits.get(neuron.id)
        if cached is not None:
            if cached[0] == md5:
                logger.debug(f'Using cached self hit for {neuron.id}')
                return cached[1]
            logger.debug(f'Data for {neuron.id} has changed: invalidating cached '
                         'self hit')

        hit = self.calc_self_hit(neuron)
        self._self_hits[neuron.id] = (md5, hit)
        return hit

    def clear_cache(self):
        """Clear memoized self hits."""
        self._self_hits.clear()

    def single_query_target(self, query, target, scores='forward',
                            query_hit: Optional[float] = None,
                            target_hit: Optional[float] = None):
        """Query single neuron against single target.

        Parameters
        ----------
        query,target :      neurons
        scores :            "forward" | "mean" | "min" | "max" | "both"
                            Which scores to return.
        query_hit,target_hit : float, optional
                            Precomputed self hits. Only relevant if normalized.

        """
        scr = self._forward(query, target, query_hit)

        # For the mean score we also have to produce the reverse score
        if scores in ('mean', 'min', 'max', 'both'):
            reverse = self._forward(target, query, target_hit)
            if scores == 'mean':
                scr = (scr + reverse) / 2
            elif scores == 'min':
                scr = min(scr, reverse)
            elif scores == 'max':
                scr = max(scr, reverse)
            elif scores == 'both':
                # If both scores are requested
                scr = [scr, reverse]

        return scr

    def _forward(self, query, target, query_hit=None):
        # Take a short-cut if this is a self-self comparison
        if query is target:
            if self.normalized:
                return 1.0
            return query_hit if query_hit is not None else self.self_hit(query)

        scr = self.score_pair(query, target)

        # Normalize against best hit
        if self.normalized:
            if query_hit is None:
                query_hit = self.self_hit(query)
            scr = self.normalize(scr, query_hit)

        return scr

    def prepare(self, neurons: Sequence[BaseNeuron]):
        """Build all per-neuron data (e.g. spatial indices) up-front.

        Called before any worker starts so that workers only ever read.
        """
        pass

    def multi_query_target(self,
                           queries: Sequence[BaseNeuron],
                           targets: Sequence[BaseNeuron],
                           scores: str = 'forward',
                           n_cores: int = 1) -> pd.DataFrame:
        """BLAST multiple queries against multiple targets.

        Query rows are split across ``n_cores`` threads. Each thread writes
        only its own rows of the score matrix, hence the results do not
        depend on the number of threads.

        Parameters
        ----------
        queries,targets :   list of neurons
                            Neurons to BLAST.
        scores :            "forward" | "mean" | "min" | "max" | "both"
                            Which scores to return.
        n_cores :           int
                            Number of threads to use.

        """
        reverse = scores != 'forward'

        # Targets (and for reverse scores also queries) are indexed before
        # any work is dispatched
        self.prepare(targets)
        if reverse:
            self.prepare(queries)

        # Self hits are memoized before dispatch too
        q_hits = [self.self_hit(q) for q in queries]
        if reverse:
            t_hits = [self.self_hit(t) for t in targets]
        else:
            t_hits = [None] * len(targets)

        shape = (len(queries), len(targets)) if scores != 'both' else (len(queries), len(targets), 2)
        res = np.empty(shape, dtype=self.dtype)

        with config.tqdm(desc=self.desc,
                         total=len(queries),
                         leave=config.pbar_leave,
                         disable=not self.progress or config.pbar_hide) as pbar:
            def run_rows(rows):
                for i in rows:
                    for k, t in enumerate(targets):
                        res[i, k] = self.single_query_target(queries[i], t,
                                                             scores=scores,
                                                             query_hit=q_hits[i],
                                                             target_hit=t_hits[k])
                    pbar.update()

            n_cores = max(1, min(int(n_cores), len(queries)))
            if n_cores == 1:
                run_rows(range(len(queries)))
            else:
                # More chunks than workers makes for smoother progress bars
                chunks = np.array_split(np.arange(len(queries)),
                                        min(len(queries), n_cores * 4))
                with ThreadPoolExecutor(max_workers=n_cores) as pool:
                    # Consume the iterator to re-raise exceptions from workers
                    list(pool.map(run_rows, chunks))

        q_ids = [q.id for q in queries]
        t_ids = [t.id for t in targets]

        # Generate results
        if res.ndim == 2:
            res = pd.DataFrame(res, index=q_ids, columns=t_ids)
            res.index.name = 'query'
            res.columns.name = 'target'
        else:
            # For scores='both' we will create a DataFrame with multi-index
            res = self._both_frame(res[:, :, 0], res[:, :, 1], q_ids, t_ids)

        return res

    def all_by_all(self,
                   neurons: Sequence[BaseNeuron],
                   scores: str = 'forward',
                   n_cores: int = 1) -> pd.DataFrame:
        """BLAST all-by-all neurons."""
        res = self.multi_query_target(neurons, neurons,
                                      scores='forward',
                                      n_cores=n_cores)

        # For all-by-all BLAST we can get the mean score by
        # transposing the scores
        if scores == 'mean':
            res.loc[:, :] = (res.values + res.values.T) / 2
        elif scores == 'min':
            res.loc[:, :] = np.dstack((res, res.T)).min(axis=2)
        elif scores == 'max':
            res.loc[:, :] = np.dstack((res, res.T)).max(axis=2)
        elif scores == 'both':
            res = self._both_frame(res.values, res.values.T,
                                   res.index, res.columns)

        return res

    @staticmethod
    def _both_frame(fw, rev, q_ids, t_ids):
        ix = pd.MultiIndex.from_product([list(q_ids), ['forward', 'reverse']],
                                        names=["query", "score"])
        res = pd.DataFrame(np.hstack((fw, rev)).reshape(len(q_ids) * 2,
                                                        len(t_ids)),
                           index=ix,
                           columns=list(t_ids))
        res.columns.name = 'target'
        return res
