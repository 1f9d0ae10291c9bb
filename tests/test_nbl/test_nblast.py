import logging

import numpy as np
import pandas as pd
import pytest

import dotblast
from dotblast import Dotprops, NBlaster, ScoreMode, nblast, nblast_allbyall, nblast_pair
from dotblast.nbl import match_points
from dotblast.nbl.smat import Digitizer, Lookup2d
from dotblast.utils.exceptions import EmptyPointSet, TooManyItems


def test_score_mode():
    assert NBlaster(mode='raw').mode == ScoreMode.RAW
    assert NBlaster(mode=ScoreMode.LEGACY).mode == ScoreMode.LEGACY

    with pytest.raises(ValueError):
        NBlaster(mode='v3')

    with pytest.raises(ValueError):
        NBlaster(mode='legacy', sigma=0)


def test_raw_self_hit(dotprops, smat):
    dp = dotprops[0]
    nb = NBlaster(normalized=False)
    assert nb.calc_self_hit(dp) == pytest.approx(smat(0, 1) * len(dp))
    assert nblast_pair(dp, dp) == nb.calc_self_hit(dp)
    assert nblast_pair(dp, dp, normalized=True) == 1


def test_raw_self_hit_alpha(dotprops, smat):
    dp = dotprops[0]
    nb = NBlaster(normalized=False, use_alpha=True)
    expected = smat(np.zeros(len(dp)), dp.alpha).sum()
    assert nb.calc_self_hit(dp) == pytest.approx(expected)


def test_raw_score(dotprops, smat):
    q, t = dotprops[0], dotprops[2]
    m = match_points(q, t)
    # Matches spread across several cells of the table
    assert len(np.unique(smat(m.dist, m.dot))) > 2
    expected = smat(m.dist, m.dot).sum()

    assert nblast_pair(q, t) == pytest.approx(expected)
    assert nblast_pair(q, t, normalized=True) == pytest.approx(expected / (smat(0, 1) * len(q)))

    # Asymmetric
    assert nblast_pair(q, t) != nblast_pair(t, q)


def test_raw_score_alpha(dotprops, smat):
    q, t = dotprops[0], dotprops[2]
    m = match_points(q, t, use_alpha=True)
    expected = smat(m.dist, m.dot).sum()
    assert nblast_pair(q, t, use_alpha=True) == pytest.approx(expected)


def test_custom_smat(dotprops):
    q, t = dotprops[0], dotprops[2]
    m = match_points(q, t)
    assert nblast_pair(q, t, smat=None) == pytest.approx((m.dist * m.dot).sum())


def test_legacy_score(dotprops):
    q, t = dotprops[0], dotprops[2]
    m = match_points(q, t)
    expected = 1 - np.mean(np.sqrt(np.exp(-m.dist ** 2 / (2 * 3 ** 2)) * m.dot))
    assert nblast_pair(q, t, mode='legacy') == pytest.approx(expected)

    # Different sigma
    expected = 1 - np.mean(np.sqrt(np.exp(-m.dist ** 2 / (2 * 10 ** 2)) * m.dot))
    assert nblast_pair(q, t, mode='legacy', sigma=10) == pytest.approx(expected)


def test_legacy_self(dotprops):
    dp = dotprops[0]
    # Legacy scores are distances
    assert nblast_pair(dp, dp, mode='legacy') == 0
    assert nblast_pair(dp, dp.copy(), mode='legacy') == pytest.approx(0)

    # With alpha, self-self is 1 - mean(sqrt(alpha))
    expected = 1 - np.mean(np.sqrt(dp.alpha))
    assert nblast_pair(dp, dp, mode='legacy', use_alpha=True) == pytest.approx(expected)
    assert nblast_pair(dp, dp.copy(), mode='legacy', use_alpha=True) == pytest.approx(expected)

    # Normalized scores are similarities
    assert nblast_pair(dp, dp, mode='legacy', normalized=True) == 1
    assert nblast_pair(dp, dp.copy(), mode='legacy',
                       normalized=True, use_alpha=True) == pytest.approx(1)


def test_legacy_normalized(dotprops):
    q, t = dotprops[0], dotprops[2]
    raw = nblast_pair(q, t, mode='legacy', use_alpha=True)
    self_hit = 1 - np.mean(np.sqrt(q.alpha))
    norm = nblast_pair(q, t, mode='legacy', use_alpha=True, normalized=True)
    assert norm == pytest.approx((1 - raw) / (1 - self_hit))


def test_pair_errors(dotprops):
    dp = dotprops[0]
    empty = Dotprops(np.zeros((0, 3)), np.zeros((0, 3)))

    with pytest.raises(EmptyPointSet):
        nblast_pair(dp, empty)
    with pytest.raises(EmptyPointSet):
        nblast_pair(empty, dp)
    with pytest.raises(TypeError):
        nblast_pair(dp, dp.points)
    with pytest.raises(ValueError):
        nblast_pair(dp, Dotprops(dp.points, dp.vect), use_alpha=True)


def test_self_hit_cache(dotprops):
    dp = dotprops[0]
    nb = NBlaster(use_alpha=True, normalized=True)

    hit = nb.self_hit(dp)
    assert dp.id in nb._self_hits
    assert nb.self_hit(dp) == hit

    # Changing the data invalidates the cached value
    dp.alpha = dp.alpha / 2
    new_hit = nb.self_hit(dp)
    assert new_hit != hit
    assert new_hit == nb.calc_self_hit(dp)

    nb.clear_cache()
    assert not nb._self_hits


def test_limit_dist(dotprops):
    nb = NBlaster(limit_dist='auto')
    # Last boundary is open: second to last + 5%
    assert nb.distance_upper_bound == pytest.approx(6 * 1.05)

    q, t = dotprops[0], dotprops[2]
    m = match_points(q, t, limit_dist=2)
    expected = 1 - np.mean(np.sqrt(np.exp(-m.dist ** 2 / (2 * 3 ** 2)) * m.dot))
    assert nblast_pair(q, t, mode='legacy', limit_dist=2) == pytest.approx(expected)

    with pytest.raises(ValueError):
        NBlaster(limit_dist=-1)


def test_nblast_frame(dotprops):
    scores = nblast(dotprops[:2], dotprops, n_cores=1)
    assert isinstance(scores, pd.DataFrame)
    assert scores.shape == (2, 5)
    assert scores.index.name == 'query'
    assert scores.columns.name == 'target'
    assert scores.index.tolist() == ['n1', 'n2']
    assert scores.columns.tolist() == ['n1', 'n2', 'n3', 'n4', 'n5']


@pytest.mark.parametrize("mode", ['raw', 'legacy'])
@pytest.mark.parametrize("normalized", [True, False])
@pytest.mark.parametrize("use_alpha", [True, False])
def test_batch_matches_pair(dotprops, mode, normalized, use_alpha):
    scores = nblast(dotprops, dotprops[::-1], mode=mode, normalized=normalized,
                    use_alpha=use_alpha, n_cores=2)
    for q in dotprops[:2]:
        for t in dotprops[-2:]:
            assert scores.loc[q.id, t.id] == nblast_pair(q, t, mode=mode,
                                                         normalized=normalized,
                                                         use_alpha=use_alpha)


def test_deterministic(dotprops):
    s1 = nblast(dotprops, dotprops, n_cores=1)
    s2 = nblast(dotprops, dotprops, n_cores=1)
    s3 = nblast(dotprops, dotprops, n_cores=3)
    assert np.array_equal(s1.values, s2.values)
    assert np.array_equal(s1.values, s3.values)


def test_end_to_end_legacy(dotprops):
    # Normalized legacy: self is 1, others between 0 and 1
    scores = nblast(dotprops[0], dotprops, mode='legacy', normalized=True, n_cores=1)
    row = scores.loc['n1']
    assert row['n1'] == 1
    others = row.drop('n1')
    assert np.all((others >= 0) & (others <= 1))
    # Jittered duplicate is the best hit
    assert others.idxmax() == 'n2'

    # Non-normalized legacy: self is exactly 0
    scores = nblast(dotprops[0], dotprops, mode='legacy', normalized=False, n_cores=1)
    assert scores.loc['n1', 'n1'] == 0
    assert np.all(scores.loc['n1'].drop('n1') > 0)


def test_end_to_end_raw(dotprops, smat):
    scores = nblast(dotprops[0], dotprops, normalized=False, n_cores=1)
    row = scores.loc['n1']
    assert row['n1'] == smat(0, 1) * len(dotprops[0])
    assert row['n1'] > 0
    assert row['n2'] <= row['n1']
    assert np.all(row[['n3', 'n4', 'n5']] < row['n1'])
    # Partial overlaps score differently
    assert row[['n3', 'n4', 'n5']].nunique() == 3
    assert row.drop('n1').idxmax() == 'n2'


def test_scores_options(dotprops):
    fw = nblast(dotprops, dotprops, scores='forward', n_cores=1)
    mean = nblast(dotprops, dotprops, scores='mean', n_cores=1)
    mn = nblast(dotprops, dotprops, scores='min', n_cores=1)
    mx = nblast(dotprops, dotprops, scores='max', n_cores=1)
    both = nblast(dotprops, dotprops, scores='both', n_cores=1)

    assert np.allclose(mean.values, (fw.values + fw.values.T) / 2)
    assert np.allclose(mn.values, np.minimum(fw.values, fw.values.T))
    assert np.allclose(mx.values, np.maximum(fw.values, fw.values.T))

    assert both.shape == (10, 5)
    assert both.index.names == ['query', 'score']
    assert np.allclose(both.xs('forward', level='score').values, fw.values)
    assert np.allclose(both.xs('reverse', level='score').values, fw.values.T)


@pytest.mark.parametrize("scores", ['forward', 'mean', 'min', 'max'])
def test_allbyall(dotprops, scores):
    aba = nblast_allbyall(dotprops, scores=scores, n_cores=2)
    full = nblast(dotprops, dotprops, scores=scores, n_cores=1)
    assert aba.index.tolist() == full.index.tolist()
    assert np.allclose(aba.values, full.values)

    if scores != 'forward':
        # Exactly symmetric
        assert np.array_equal(aba.values, aba.values.T)


def test_allbyall_both(dotprops):
    both = nblast_allbyall(dotprops, scores='both', n_cores=1)
    fw = nblast_allbyall(dotprops, scores='forward', n_cores=1)
    assert both.shape == (10, 5)
    assert np.allclose(both.xs('forward', level='score').values, fw.values)


@pytest.mark.parametrize("precision,dtype", [(32, np.float32), (64, np.float64),
                                             ('float16', np.float16)])
def test_precision(dotprops, precision, dtype):
    scores = nblast(dotprops[:2], dotprops[:2], precision=precision, n_cores=1)
    assert scores.values.dtype == dtype


def test_max_items(dotprops, monkeypatch):
    with pytest.raises(TooManyItems):
        nblast(dotprops, dotprops[:2], max_items=4)
    with pytest.raises(TooManyItems):
        nblast_allbyall(dotprops, max_items=4)

    # Raised before anything else
    with pytest.raises(TooManyItems):
        nblast(dotprops, dotprops, max_items=4, smat='not_a_registered_smat')

    monkeypatch.setattr(dotblast.config, 'max_items', 2)
    with pytest.raises(TooManyItems):
        nblast(dotprops, dotprops[:2])

    assert nblast(dotprops, dotprops[:2], max_items=None, n_cores=1).shape == (5, 2)


def test_preflight(dotprops):
    empty = Dotprops(np.zeros((0, 3)), np.zeros((0, 3)))
    with pytest.raises(EmptyPointSet):
        nblast(dotprops, [empty])

    dupl = dotprops[1].copy()
    dupl.id = 'n1'
    with pytest.raises(ValueError, match='non-unique'):
        nblast(dotprops[:1] + [dupl])

    with pytest.raises(ValueError):
        nblast(dotprops, n_cores=0)

    with pytest.raises(ValueError):
        nblast(dotprops, scores='median')

    with pytest.raises(TypeError):
        nblast(dotprops, [dotprops[0].points])


def test_units_warning(make_dotprops, caplog):
    dps = [make_dotprops(1, id=1, units='nm'), make_dotprops(2, id=2, units='nm')]
    with caplog.at_level(logging.WARNING):
        nblast(dps, dps, n_cores=1)
    assert 'not in microns' in caplog.text

    caplog.clear()
    dps = [make_dotprops(1, id=1, units='um'), make_dotprops(2, id=2, units='um')]
    with caplog.at_level(logging.WARNING):
        nblast(dps, dps, n_cores=1)
    assert 'not in microns' not in caplog.text


def test_self_hit_matches_copy(dotprops):
    # Cell values that are not exactly representable
    cells = np.arange(1, 21).reshape(5, 4) / 10
    table = Lookup2d(Digitizer([0, 0.75, 1.5, 3, 6, 12]),
                     Digitizer.from_linear(0, 1, 4), cells)

    dp = dotprops[0]
    nb = NBlaster(smat=table, normalized=False)
    # Self hit and scoring against an identical copy sum the same terms
    assert nb.calc_self_hit(dp) == nb.score_pair(dp, dp.copy())
    assert nb.score(dp, dp) == nb.score(dp, dp.copy())


def test_normalize_zero_self_hit(dotprops):
    # distance * dot is 0 for a perfect match
    with pytest.raises(ValueError, match='normalize'):
        nblast(dotprops[:2], smat=None, n_cores=1)
    with pytest.raises(ValueError, match='normalize'):
        nblast_pair(dotprops[0], dotprops[1], smat=None, normalized=True)

    scores = nblast(dotprops[:2], smat=None, normalized=False, n_cores=1)
    assert np.isfinite(scores.values).all()
    assert scores.loc['n1', 'n1'] == 0


def test_score_pair_uses_matches(dotprops, smat):
    q, t = dotprops[0], dotprops[3]
    nb = NBlaster(normalized=False, use_alpha=True, limit_dist=2)
    m = match_points(q, t, use_alpha=True, limit_dist=2)
    assert nb.score_pair(q, t) == smat(m.dist, m.dot).sum()
