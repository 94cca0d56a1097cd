"""
Tests for the smoothing and scoring stages.
"""

import numpy as np
import pytest

from streamkws.scoring import OrderValidator, PosteriorSmoother, SlidingMaxScorer, WakeupDecider


def smoothed_table(values):
    """Smoothed table with column 0 unused and one column per keyword."""
    values = np.asarray(values, dtype=np.float64)
    if values.ndim == 1:
        values = values[:, None]
    return np.concatenate([np.zeros((values.shape[0], 1)), values], axis=1)


class TestPosteriorSmoother:

    def test_trailing_mean(self):
        posteriors = np.array([[0.8, 0.2], [0.6, 0.4], [0.4, 0.6]], dtype=np.float32)
        smoother = PosteriorSmoother(((1,),), window=2)
        block = smoother.smooth(posteriors, 0, 3)
        assert block.shape == (3, 2)
        assert block[:, 0].tolist() == [0.0, 0.0, 0.0]
        assert block[:, 1] == pytest.approx([0.2, 0.3, 0.5])

    def test_keyword_group_sums_class_posteriors(self):
        posteriors = np.array([[0.5, 0.25, 0.25], [0.0, 0.5, 0.5]], dtype=np.float32)
        smoother = PosteriorSmoother(((1, 2), (2,)), window=1)
        block = smoother.smooth(posteriors, 0, 2)
        assert block[:, 1] == pytest.approx([0.5, 1.0])
        assert block[:, 2] == pytest.approx([0.25, 0.5])

    def test_window_clamps_at_first_frame(self):
        posteriors = np.array([[0.0, 1.0], [1.0, 0.0]], dtype=np.float32)
        smoother = PosteriorSmoother(((1,),), window=10)
        block = smoother.smooth(posteriors, 0, 2)
        assert block[:, 1] == pytest.approx([1.0, 0.5])

    def test_partial_range_matches_full_range(self):
        rng = np.random.default_rng(0)
        posteriors = rng.random((30, 4)).astype(np.float32)
        smoother = PosteriorSmoother(((1,), (2, 3)), window=5)
        full = smoother.smooth(posteriors, 0, 30)
        tail = smoother.smooth(posteriors, 17, 30)
        np.testing.assert_array_equal(full[17:], tail)

    def test_causality(self):
        """Changing later rows never changes earlier smoothed values."""
        rng = np.random.default_rng(1)
        posteriors = rng.random((20, 3)).astype(np.float32)
        smoother = PosteriorSmoother(((1,), (2,)), window=4)
        before = smoother.smooth(posteriors, 0, 20)

        changed = posteriors.copy()
        changed[12:] = rng.random((8, 3))
        after = smoother.smooth(changed, 0, 20)

        np.testing.assert_array_equal(before[:12], after[:12])
        assert not np.array_equal(before[12:], after[12:])


class TestSlidingMaxScorer:

    def test_max_and_peak_frame(self):
        smoothed = smoothed_table([0.1, 0.5, 0.3, 0.2, 0.1])
        maxima, peaks = SlidingMaxScorer(window=3).score(smoothed, 0, 5)
        assert maxima[:, 0] == pytest.approx([0.1, 0.5, 0.5, 0.5, 0.3])
        assert peaks[:, 0].tolist() == [0, 1, 1, 1, 2]

    def test_earliest_frame_wins_ties(self):
        smoothed = smoothed_table([0.4, 0.4, 0.4])
        _, peaks = SlidingMaxScorer(window=2).score(smoothed, 0, 3)
        assert peaks[:, 0].tolist() == [0, 0, 1]

    def test_all_zero_window_reports_first_frame(self):
        smoothed = smoothed_table([0.0, 0.0, 0.0, 0.0])
        maxima, peaks = SlidingMaxScorer(window=2).score(smoothed, 0, 4)
        assert maxima[:, 0].tolist() == [0.0, 0.0, 0.0, 0.0]
        assert peaks[:, 0].tolist() == [0, 0, 1, 2]

    def test_keywords_scored_independently(self):
        smoothed = smoothed_table([[0.9, 0.1], [0.2, 0.8], [0.1, 0.3]])
        maxima, peaks = SlidingMaxScorer(window=3).score(smoothed, 2, 3)
        assert maxima[0] == pytest.approx([0.9, 0.8])
        assert peaks[0].tolist() == [0, 1]


class TestOrderValidator:

    def test_gaps(self):
        assert OrderValidator(10).gaps([3, 5, 9]).tolist() == [2, 4]

    @pytest.mark.parametrize("peaks, expected", [
        ([3, 5, 9], True),
        ([3, 3], False),      # zero gap
        ([5, 3], False),      # out of order
        ([0, 10], False),     # gap equal to the interval is rejected
        ([0, 9], True),
    ])
    def test_is_ordered(self, peaks, expected):
        assert OrderValidator(10).is_ordered(peaks) is expected

    def test_single_keyword_is_always_ordered(self):
        assert OrderValidator(1).is_ordered([42]) is True


class TestWakeupDecider:

    def test_geometric_mean(self):
        assert WakeupDecider.combine([0.25, 1.0]) == pytest.approx(0.5)
        assert WakeupDecider.combine([0.7]) == pytest.approx(0.7)

    def test_one_weak_keyword_suppresses_score(self):
        assert WakeupDecider.combine([1.0, 1.0, 0.0]) == 0.0

    def test_latches_wakeup(self):
        decider = WakeupDecider(0.5)
        assert decider.update(0, 0.6, True) is True
        assert decider.update(1, 0.0, False) is True
        decider.reset()
        assert decider.woken_up is False

    def test_requires_order(self):
        decider = WakeupDecider(0.5)
        assert decider.update(0, 0.9, False) is False

    def test_threshold_is_inclusive(self):
        decider = WakeupDecider(0.5)
        assert decider.update(0, 0.5, True) is True

    def test_tracks_best_score_regardless_of_threshold(self):
        decider = WakeupDecider(0.9)
        decider.update(0, 0.2, False)
        decider.update(1, 0.4, False)
        decider.update(2, 0.4, True)
        decider.update(3, 0.1, True)
        assert decider.best_score == pytest.approx(0.4)
        assert decider.best_score_frame == 1
        assert decider.woken_up is False
