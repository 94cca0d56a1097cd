"""
Streaming keyword spotter.

The spotter detects an ordered sequence of keyword segments in a continuous
audio stream. Audio arrives in chunks of any size; each chunk is turned into
frame posteriors by a feature pipeline and a classifier, and the new frames are
scored immediately so the wakeup decision lags the audio by at most one chunk.

Example:
    >>> spotter = KeywordSpotter.from_config_file("kws.conf")
    >>> spotter.feed(first_chunk, ChunkState.START)
    >>> for chunk in chunks:
    ...     spotter.feed(chunk)
    ...     if spotter.is_woken_up():
    ...         break
    >>> spotter.feed(last_chunk, ChunkState.END)
    >>> spotter.reset()  # before the next, independent stream
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .buffers import FRAME_BUFFER_INC_STEP, GrowableFrameBuffer
from .classifier import Classifier, SplicedSoftmaxClassifier
from .config import ConfigurationError, KeywordSpotterConfig
from .feeder import StreamFeeder
from .features import FeaturePipeline, MfccFeaturePipeline
from .scoring import OrderValidator, PosteriorSmoother, SlidingMaxScorer, WakeupDecider


logger = logging.getLogger(__name__)


class ChunkState(Enum):
    """Position of a chunk within its audio stream."""
    START = "start"
    CONTINUE = "continue"
    END = "end"


class SessionState(Enum):
    """Lifecycle of one audio stream between resets."""
    STARTED = "started"
    STREAMING = "streaming"
    ENDED = "ended"


@dataclass(frozen=True)
class BestScoreReport:
    """
    Scores at the frame with the best combined score of a session.

    Used for offline analysis and threshold tuning; not part of the
    detection decision.
    """

    frame: int
    combined: float
    keyword_scores: Tuple[float, ...]
    first_peak_frame: int
    gaps: Tuple[int, ...]

    def format(self) -> str:
        fields = [str(self.frame), f"{self.combined:.6g}"]
        fields += [f"{score:.6g}" for score in self.keyword_scores]
        fields.append(str(self.first_peak_frame))
        fields += [str(gap) for gap in self.gaps]
        return "\t".join(fields)


class KeywordSpotter:
    """
    Frame-synchronous keyword spotter for one audio stream at a time.

    Tables (rows are frames of the current session):
        posteriors: classifier output, one column per class
        smoothed: column k holds keyword k's trailing-mean posterior mass
        confidence: column 0 the combined score, column 1 the frame index,
                    columns 2k and 2k+1 keyword k's peak value and peak frame

    The instance is not thread safe; each stream needs its own spotter.
    """

    def __init__(
        self,
        config: KeywordSpotterConfig,
        feature_pipeline: FeaturePipeline,
        classifier: Classifier,
        verbose: bool = False,
        inc_step: int = FRAME_BUFFER_INC_STEP,
    ):
        """
        Initialize the spotter and start an empty session.

        Args:
            config: Keyword spotter configuration
            feature_pipeline: Streaming feature extractor
            classifier: Frame classifier producing class posteriors
            verbose: Log per-chunk details at DEBUG level
            inc_step: Rows added per table reallocation

        Raises:
            ConfigurationError: If a keyword class id is outside the
                                classifier output dimension.
        """
        if config.max_class_id >= classifier.output_dim:
            raise ConfigurationError(
                f"Keyword class id {config.max_class_id} is outside the classifier "
                f"output dimension {classifier.output_dim}"
            )

        self.config = config
        self.verbose = verbose
        self.num_keywords = config.num_keywords

        self._feeder = StreamFeeder(
            feature_pipeline, classifier, config.features.sample_rate, inc_step=inc_step
        )
        self._smoother = PosteriorSmoother(config.keywords, config.smooth_window)
        self._max_scorer = SlidingMaxScorer(config.sliding_window)
        self._validator = OrderValidator(config.word_interval)
        self._decider = WakeupDecider(config.wakeup_threshold)

        cols = self.num_keywords + 1
        self._smoothed = GrowableFrameBuffer(cols, dtype=np.float64, inc_step=inc_step)
        self._confidence = GrowableFrameBuffer(2 * cols, dtype=np.float64, inc_step=inc_step)

        self.score_offset = 0
        self.session_state = SessionState.STARTED

        self.reset()
        self._log(f"Initialized keyword spotter for {self.num_keywords} keyword segments")

    @classmethod
    def from_config_file(cls, path: str, verbose: bool = False) -> "KeywordSpotter":
        """
        Build a spotter with the MFCC pipeline and the configured classifier model.

        Raises:
            ConfigurationError: If the configuration names no model, or the
                                model expects a different feature dimension.
        """
        config = KeywordSpotterConfig.from_file(path)
        if not config.model_path:
            raise ConfigurationError(f"{path}: --model is required")
        classifier = SplicedSoftmaxClassifier.load(config.model_path)
        if classifier.feature_dim != config.features.num_ceps:
            raise ConfigurationError(
                f"Model expects {classifier.feature_dim}-dim features but --num-ceps is {config.features.num_ceps}"
            )
        return cls(config, MfccFeaturePipeline(config.features), classifier, verbose=verbose)

    def _log(self, message: str, level: int = logging.DEBUG) -> None:
        if self.verbose:
            logger.log(level, message)

    # Session cursors and tables

    @property
    def frames_ready(self) -> int:
        return self._feeder.frames_ready

    @property
    def frame_offset(self) -> int:
        return self._feeder.frame_offset

    @property
    def posteriors(self) -> np.ndarray:
        return self._feeder.posteriors.view

    @property
    def smoothed(self) -> np.ndarray:
        return self._smoothed.view

    @property
    def confidence(self) -> np.ndarray:
        return self._confidence.view

    @property
    def best_score(self) -> float:
        return self._decider.best_score

    @property
    def best_score_frame(self) -> int:
        return self._decider.best_score_frame

    def reset(self) -> None:
        """Start a new session: clear history, tables, cursors and the wakeup flag."""
        self._feeder.reset()
        self._smoothed.reset()
        self._confidence.reset()
        self._decider.reset()
        self.score_offset = 0
        self.session_state = SessionState.STARTED

    def feed(self, samples: Optional[np.ndarray], chunk_state: ChunkState = ChunkState.CONTINUE) -> int:
        """
        Feed a chunk of audio and score the frames it completes.

        Args:
            samples: Mono float samples at the configured sample rate (may be
                     empty), or None to only query without feeding
            chunk_state: Position of the chunk in the stream

        Returns:
            Number of new frames scored by this call (0 for a query)

        Raises:
            RuntimeError: If audio is fed after the stream ended, or a START
                          chunk arrives mid-session, without reset().
        """
        if samples is None:
            return 0

        if self.session_state is SessionState.ENDED:
            raise RuntimeError("Stream already ended; call reset() before feeding a new stream")
        if chunk_state is ChunkState.START and self.session_state is SessionState.STREAMING:
            raise RuntimeError("Stream already started; call reset() before starting a new stream")

        end_of_input = chunk_state is ChunkState.END
        self.session_state = SessionState.ENDED if end_of_input else SessionState.STREAMING

        new_frames = self._feeder.feed(samples, end_of_input=end_of_input)
        self._log(f"Fed {np.size(samples)} samples ({chunk_state.value}): {new_frames} new frames")

        scored = self.frame_offset - self.score_offset
        self.score_new_frames()
        return max(scored, 0)

    def is_woken_up(self) -> bool:
        """Score any pending frames and return the wakeup flag."""
        return self.score_new_frames()

    def score_new_frames(self) -> bool:
        """
        Score every classified frame not yet scored.

        Smooths the new posterior rows, takes each keyword's peak over the
        sliding window, combines the peaks, checks keyword order and updates the
        wakeup flag. With no pending frames nothing changes.

        Returns:
            The wakeup flag
        """
        start = self.score_offset
        stop = self.frame_offset
        new_rows = stop - start
        if new_rows <= 0:
            return self._decider.woken_up

        posteriors = self.posteriors
        smoothed = self._smoother.smooth(posteriors, start, stop)
        self._smoothed.append(smoothed)

        maxima, peaks = self._max_scorer.score(self.smoothed, start, stop)

        confidence = np.zeros((new_rows, self._confidence.num_cols), dtype=np.float64)
        for row in range(new_rows):
            frame = start + row
            combined = self._decider.combine(maxima[row])
            ordered = self._validator.is_ordered(peaks[row])

            confidence[row, 0] = combined
            confidence[row, 1] = frame
            confidence[row, 2::2] = maxima[row]
            confidence[row, 3::2] = peaks[row]

            was_woken = self._decider.woken_up
            if self._decider.update(frame, combined, ordered) and not was_woken:
                self._log(f"Woke up at frame {frame} with score {combined:.4f}", logging.INFO)

        self._confidence.append(confidence)
        self.score_offset = stop

        if self.session_state is SessionState.ENDED:
            report = self.best_score_report()
            logger.info(f"Best score: {report.format()}")

        return self._decider.woken_up

    def best_score_report(self) -> Optional[BestScoreReport]:
        """
        Scores at the best frame of the session so far.

        Returns:
            BestScoreReport, or None if no frame has been scored yet
        """
        if self.score_offset == 0:
            return None

        row = self.confidence[self.best_score_frame]
        peaks = row[3::2].astype(np.int64)
        return BestScoreReport(
            frame=self.best_score_frame,
            combined=float(row[0]),
            keyword_scores=tuple(float(v) for v in row[2::2]),
            first_peak_frame=int(peaks[0]),
            gaps=tuple(int(g) for g in self._validator.gaps(peaks)),
        )
