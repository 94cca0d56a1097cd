"""
Posterior smoothing and confidence scoring.

The scoring stages run over the new rows of the session tables:

1. PosteriorSmoother: causal trailing mean of each keyword's posterior mass
2. SlidingMaxScorer: peak smoothed value per keyword over a trailing window,
   together with the frame where it occurred
3. OrderValidator: keyword peaks must occur in order, within a bounded gap
4. WakeupDecider: geometric mean of the peaks against the wakeup threshold

Tables are indexed by absolute frame number within the session. A frame's
values depend only on rows at or before it.
"""

from typing import Sequence, Tuple

import numpy as np

from .config import Keywords


class PosteriorSmoother:
    """
    Trailing moving average of per-keyword posterior mass.

    A keyword's mass at a frame is the sum of the posteriors of its class ids.
    The smoothed value at frame ``j`` is the mean mass over frames
    ``max(0, j - window + 1) .. j``.
    """

    def __init__(self, keywords: Keywords, window: int):
        if window < 1:
            raise ValueError("Smoothing window must be at least 1")
        self.keywords = keywords
        self.window = window
        self._class_ids = [list(group) for group in keywords]

    @property
    def num_cols(self) -> int:
        # Column 0 is unused so keyword k lives in column k
        return len(self.keywords) + 1

    def keyword_mass(self, posteriors: np.ndarray) -> np.ndarray:
        """Per-frame posterior mass of each keyword, shaped (frames, K)."""
        return np.stack(
            [posteriors[:, ids].sum(axis=1) for ids in self._class_ids], axis=1
        ).astype(np.float64)

    def smooth(self, posteriors: np.ndarray, start: int, stop: int) -> np.ndarray:
        """
        Smooth frames ``[start, stop)``.

        Args:
            posteriors: Posterior table, at least ``stop`` rows
            start: First frame to smooth
            stop: One past the last frame to smooth

        Returns:
            Array shaped (stop - start, K + 1); column 0 is zero.
        """
        base = max(0, start - self.window + 1)
        mass = self.keyword_mass(posteriors[base:stop])

        block = np.zeros((stop - start, self.num_cols), dtype=np.float64)
        for j in range(start, stop):
            lo = max(0, j - self.window + 1)
            window = mass[lo - base : j - base + 1]
            block[j - start, 1:] = window.sum(axis=0) / (j - lo + 1)
        return block


class SlidingMaxScorer:
    """
    Per-keyword maximum of the smoothed posteriors over a trailing window.

    When several frames share the maximum the earliest one is reported, so an
    all-zero window reports its first frame.
    """

    def __init__(self, window: int):
        if window < 1:
            raise ValueError("Scoring window must be at least 1")
        self.window = window

    def score(self, smoothed: np.ndarray, start: int, stop: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Score frames ``[start, stop)``.

        Args:
            smoothed: Smoothed table (frames, K + 1), at least ``stop`` rows
            start: First frame to score
            stop: One past the last frame to score

        Returns:
            Tuple of (maxima, peak_frames), each shaped (stop - start, K)
        """
        num_keywords = smoothed.shape[1] - 1
        columns = np.arange(num_keywords)
        maxima = np.zeros((stop - start, num_keywords), dtype=np.float64)
        peaks = np.zeros((stop - start, num_keywords), dtype=np.int64)

        for j in range(start, stop):
            lo = max(0, j - self.window + 1)
            window = smoothed[lo : j + 1, 1:]
            idx = window.argmax(axis=0)
            maxima[j - start] = window[idx, columns]
            peaks[j - start] = idx + lo
        return maxima, peaks


class OrderValidator:
    """
    Checks that keyword peaks occur in order within ``word_interval`` frames.

    Every gap between the peak frames of consecutive keyword segments must
    satisfy ``0 < gap < word_interval``.
    """

    def __init__(self, word_interval: int):
        self.word_interval = word_interval

    def gaps(self, peak_frames: Sequence[int]) -> np.ndarray:
        return np.diff(np.asarray(peak_frames, dtype=np.int64))

    def is_ordered(self, peak_frames: Sequence[int]) -> bool:
        gaps = self.gaps(peak_frames)
        return bool(np.all((gaps > 0) & (gaps < self.word_interval)))


class WakeupDecider:
    """
    Combines keyword peaks into one score and latches the wakeup flag.

    The combined score is the geometric mean of the keyword peaks, so one weak
    keyword holds the whole score down. Once woken up the flag stays set until
    ``reset()``. The best combined score of the session is tracked whether or
    not it crossed the threshold.
    """

    def __init__(self, wakeup_threshold: float):
        self.wakeup_threshold = wakeup_threshold
        self.reset()

    def reset(self) -> None:
        self.woken_up = False
        self.best_score = 0.0
        self.best_score_frame = 0

    @staticmethod
    def combine(maxima: Sequence[float]) -> float:
        maxima = np.asarray(maxima, dtype=np.float64)
        return float(np.prod(maxima) ** (1.0 / maxima.size))

    def update(self, frame: int, combined: float, ordered: bool) -> bool:
        if combined > self.best_score:
            self.best_score = combined
            self.best_score_frame = frame
        if combined >= self.wakeup_threshold and ordered:
            self.woken_up = True
        return self.woken_up
