"""Unit tests for non-maximum suppression."""
import itertools

import numpy as np
import pytest

from acfdet.config.options import NmsOptions, NmsType, OverlapDenominator
from acfdet.core.entities import Detection
from acfdet.core.exceptions import ConfigError
from acfdet.services.suppression_service import suppress, pairwise_overlaps
from acfdet.utils.geometry import overlap


def _random_candidates(rng, n=60):
    xy = rng.uniform(0, 200, size=(n, 2))
    wh = rng.uniform(20, 60, size=(n, 2))
    scores = rng.uniform(-1, 2, size=n)
    return [Detection(bbox=tuple(float(v) for v in np.r_[p, s]), score=float(sc))
            for p, s, sc in zip(xy, wh, scores)]


class TestSuppressNone:

    def test_identity(self, rng):
        """Test that 'none' returns the input unchanged."""
        candidates = _random_candidates(rng)
        result = suppress(candidates, NmsOptions(type=NmsType.NONE))

        assert result == candidates


class TestSuppressMax:
    """Test suite for greedy pairwise suppression."""

    def test_two_box_example(self, two_boxes):
        """Test that only the 0.9 box of the overlapping pair survives."""
        options = NmsOptions(type=NmsType.MAX, overlap=0.5, ovr_dnm=OverlapDenominator.UNION)

        result = suppress(two_boxes, options)

        assert result == [two_boxes[0]]

    def test_pairwise_overlap_bounded(self, rng):
        options = NmsOptions(type=NmsType.MAX, overlap=0.3, ovr_dnm=OverlapDenominator.UNION)
        result = suppress(_random_candidates(rng), options)

        for a, b in itertools.combinations(result, 2):
            assert overlap(a.bbox, b.bbox, OverlapDenominator.UNION) <= 0.3

    def test_min_denominator(self):
        big = Detection(bbox=(0, 0, 100, 100), score=1.0)
        small = Detection(bbox=(10, 10, 20, 20), score=0.5)

        union = suppress([big, small], NmsOptions(type=NmsType.MAX, overlap=0.5, ovr_dnm=OverlapDenominator.UNION))
        minimum = suppress([big, small], NmsOptions(type=NmsType.MAX, overlap=0.5, ovr_dnm=OverlapDenominator.MIN))

        assert len(union) == 2
        assert minimum == [big]

    def test_idempotent(self, rng):
        options = NmsOptions(type=NmsType.MAX, overlap=0.4)
        once = suppress(_random_candidates(rng), options)

        assert suppress(once, options) == once

    def test_output_sorted_by_score(self, rng):
        result = suppress(_random_candidates(rng), NmsOptions(type=NmsType.MAX, overlap=0.4))
        scores = [d.score for d in result]

        assert scores == sorted(scores, reverse=True)

    def test_ties_broken_by_input_order(self):
        first = Detection(bbox=(0, 0, 10, 10), score=1.0, class_id=1)
        second = Detection(bbox=(0, 0, 10, 10), score=1.0, class_id=2)

        assert suppress([first, second], NmsOptions(type=NmsType.MAX)) == [first]
        assert suppress([second, first], NmsOptions(type=NmsType.MAX)) == [second]

    def test_threshold_discards_weak(self, two_boxes):
        result = suppress(two_boxes, NmsOptions(type=NmsType.MAX, thr=0.9, overlap=0.99))
        assert result == []

    def test_empty_input(self):
        assert suppress([], NmsOptions(type=NmsType.MAX)) == []


class TestSuppressMaxg:
    """Test suite for suppression against the union of accepted boxes."""

    def test_union_suppresses_straddling_box(self):
        """Test a box covered by two accepted boxes that it overlaps only partly each."""
        left = Detection(bbox=(0, 0, 10, 10), score=1.0)
        right = Detection(bbox=(10, 0, 10, 10), score=0.9)
        middle = Detection(bbox=(5, 0, 10, 10), score=0.8)
        options = dict(overlap=0.6, ovr_dnm=OverlapDenominator.MIN)

        pairwise = suppress([left, right, middle], NmsOptions(type=NmsType.MAX, **options))
        grouped = suppress([left, right, middle], NmsOptions(type=NmsType.MAXG, **options))

        assert middle in pairwise
        assert grouped == [left, right]

    def test_two_box_example(self, two_boxes):
        options = NmsOptions(type=NmsType.MAXG, overlap=0.5, ovr_dnm=OverlapDenominator.UNION)
        assert suppress(two_boxes, options) == [two_boxes[0]]

    def test_idempotent(self, rng):
        options = NmsOptions(type=NmsType.MAXG, overlap=0.5)
        once = suppress(_random_candidates(rng), options)

        assert suppress(once, options) == once


class TestSuppressMeanShift:
    """Test suite for mean-shift mode finding."""

    def test_cluster_collapses_to_one_mode(self):
        cluster = [
            Detection(bbox=(10, 10, 50, 50), score=1.0),
            Detection(bbox=(11, 10, 50, 50), score=0.9),
            Detection(bbox=(10, 11, 50, 50), score=0.8),
        ]
        far = Detection(bbox=(200, 200, 50, 50), score=0.7)

        result = suppress(cluster + [far], NmsOptions(type=NmsType.MS))

        assert len(result) == 2
        x, y, w, h = result[0].bbox
        assert 9.5 < x < 11.5 and 9.5 < y < 11.5
        assert w == pytest.approx(50, rel=1e-3)
        assert result[1].bbox == pytest.approx(far.bbox, abs=1e-3)

    def test_separated_modes_are_fixed_points(self):
        """Test that modes outside each other's bandwidth stay put on a second pass."""
        candidates = [
            Detection(bbox=(10, 10, 50, 50), score=1.0),
            Detection(bbox=(25, 10, 50, 50), score=0.8),
        ]
        options = NmsOptions(type=NmsType.MS)

        once = suppress(candidates, options)
        twice = suppress(once, options)

        assert [d.bbox for d in once] == [pytest.approx(c.bbox) for c in candidates]
        assert [d.score for d in once] == pytest.approx([1.0, 0.8])
        assert len(twice) == len(once)
        for a, b in zip(once, twice):
            assert b.bbox == pytest.approx(a.bbox)
            assert b.score == pytest.approx(a.score)

    def test_idempotent(self, rng):
        options = NmsOptions(type=NmsType.MS)
        once = suppress(_random_candidates(rng), options)
        twice = suppress(once, options)

        assert len(twice) == len(once)
        for a, b in zip(once, twice):
            assert b.bbox == pytest.approx(a.bbox, abs=1e-6)
            assert b.score == pytest.approx(a.score)

    def test_nonpositive_scores_dropped(self):
        result = suppress([Detection(bbox=(0, 0, 10, 10), score=-0.5)], NmsOptions(type=NmsType.MS))
        assert result == []


class TestSuppressCover:

    def test_cover_selects_representatives(self):
        a = Detection(bbox=(0, 0, 50, 50), score=0.9)
        b = Detection(bbox=(2, 2, 50, 50), score=0.7)
        c = Detection(bbox=(200, 200, 50, 50), score=0.5)

        result = suppress([b, c, a], NmsOptions(type=NmsType.COVER, overlap=0.5))

        assert result == [a, c]

    def test_idempotent(self, rng):
        """Test that no selected box covers another, so a second pass keeps all."""
        options = NmsOptions(type=NmsType.COVER, overlap=0.3)
        once = suppress(_random_candidates(rng), options)

        assert suppress(once, options) == once
        assert np.all(np.triu(pairwise_overlaps(once), 1) <= 0.3)


class TestSuppressOptions:
    """Test suite for maxn splitting, per-type separation and resizing."""

    def test_maxn_split_bounds_overlap(self, rng):
        options = NmsOptions(type=NmsType.MAX, overlap=0.3, maxn=8)
        result = suppress(_random_candidates(rng, n=100), options)

        assert len(result) > 0
        assert np.all(np.triu(pairwise_overlaps(result), 1) <= 0.3)

    def test_maxn_without_pressure_matches_plain(self, rng):
        candidates = _random_candidates(rng)
        plain = suppress(candidates, NmsOptions(type=NmsType.MAX, overlap=0.4))
        split = suppress(candidates, NmsOptions(type=NmsType.MAX, overlap=0.4, maxn=1000))

        assert plain == split

    def test_separate_by_class(self):
        a = Detection(bbox=(0, 0, 10, 10), score=1.0, class_id=0)
        b = Detection(bbox=(0, 0, 10, 10), score=0.5, class_id=1)

        assert suppress([a, b], NmsOptions(type=NmsType.MAX)) == [a]
        assert suppress([a, b], NmsOptions(type=NmsType.MAX, separate=True)) == [a, b]

    def test_resize(self):
        det = Detection(bbox=(0, 0, 100, 100), score=1.0, class_id=3)
        result = suppress([det], NmsOptions(type=NmsType.MAX, resize=(0.5, 0.5, 0)))

        assert result[0].bbox == pytest.approx((25, 25, 50, 50))
        assert result[0].class_id == 3

    def test_invalid_options(self):
        with pytest.raises(ConfigError):
            suppress([], NmsOptions(type=NmsType.MAX, overlap=-1.0))
