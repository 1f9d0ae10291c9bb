import numpy as np
import pandas as pd
import pytest

import dotblast
from dotblast import config
from dotblast.nbl import smat as smat_module
from dotblast.nbl.smat import Digitizer, Lookup2d

SEED = 1991

# Distance bins: [0, .75), [.75, 1.5), [1.5, 3), [3, 6), [6, 12) (clipped)
DIST_BOUNDS = [0, 0.75, 1.5, 3, 6, 12]
# Cells: rows are distance bins, columns are dot bins [0, .25, .5, .75, 1]
CELLS = np.array([
    [-1.0, 1.0, 3.0, 5.0],
    [-1.5, 0.0, 1.5, 3.0],
    [-2.0, -1.0, 0.0, 1.0],
    [-2.5, -2.0, -1.5, -1.0],
    [-3.0, -3.0, -3.0, -3.0],
])


def curve_dotprops(seed, n=40, jitter=None, alpha=True, origin=None, **kwargs):
    """Make dotprops along a random, gently curved line.

    Without `origin` the line starts somewhere in a 40x40x40 box.
    """
    rng = np.random.default_rng(seed)
    direction = rng.normal(size=3)
    direction /= np.linalg.norm(direction)
    perp = np.cross(direction, [0, 0, 1])
    perp /= np.linalg.norm(perp)

    t = np.linspace(0, 40, n)
    start = rng.uniform(-20, 20, 3)
    if origin is not None:
        start = np.asarray(origin, dtype=float)
    points = (start
              + t[:, None] * direction
              + 3 * np.sin(t / 5)[:, None] * perp)
    vect = np.gradient(points, axis=0)

    if jitter:
        points = points + np.random.default_rng(seed + 1).normal(0, jitter, points.shape)

    a = rng.uniform(0.3, 1, n) if alpha else None

    return dotblast.Dotprops(points, vect, alpha=a, **kwargs)


@pytest.fixture
def smat():
    """Synthetic score matrix."""
    return Lookup2d(Digitizer(DIST_BOUNDS), Digitizer.from_linear(0, 1, 4), CELLS)


@pytest.fixture(autouse=True)
def default_smat(monkeypatch, smat):
    """Use the synthetic score matrix as default and isolate the registry."""
    monkeypatch.setattr(smat_module, '_SMATS', {})
    smat_module.register_smat('test', smat)
    monkeypatch.setattr(config, 'default_smat', 'test')
    monkeypatch.setattr(config, 'default_smat_alpha', 'test')
    monkeypatch.setattr(config, 'pbar_hide', True)
    return smat


@pytest.fixture
def dotprops():
    """Five neurons: the second one is a jittered copy of the first.

    All start close to each other and then fan out, so matches spread across
    the distance bins of the score matrix.
    """
    dps = [curve_dotprops(SEED, origin=(0, 0, 0), id='n1'),
           curve_dotprops(SEED, origin=(0, 0, 0), jitter=.3, id='n2'),
           curve_dotprops(SEED + 10, n=25, origin=(2, 0, 0), id='n3'),
           curve_dotprops(SEED + 20, origin=(0, 3, 0), id='n4'),
           curve_dotprops(SEED + 30, n=50, origin=(0, 0, 4), id='n5')]
    # Use the same alpha for the jittered copy
    dps[1].alpha = dps[0].alpha
    return dps


@pytest.fixture
def make_dotprops():
    return curve_dotprops


@pytest.fixture
def score_matrix():
    """Non-normalized, asymmetric score matrix with self-scores."""
    ids = ['a', 'b', 'c', 'd']
    values = np.array([
        [10.0, 8.0, 1.0, 0.5],
        [7.0, 9.0, 1.5, 1.0],
        [2.0, 1.0, 12.0, 10.0],
        [1.0, 1.0, 9.0, 11.0],
    ])
    return pd.DataFrame(values, index=ids, columns=ids)
