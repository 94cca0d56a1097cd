"""
Streaming acoustic feature extraction.

A feature pipeline accepts waveform samples as they arrive and exposes the
number of complete frames together with a feature vector per frame. Frame
indices are stable: once a frame is ready its features never change.
"""

import logging
from abc import ABC, abstractmethod

import librosa
import numpy as np

from .buffers import GrowableFrameBuffer
from .config import FeatureOptions


logger = logging.getLogger(__name__)


class FeaturePipeline(ABC):
    """Interface the stream feeder drives."""

    @property
    @abstractmethod
    def dim(self) -> int:
        """Length of each feature vector."""
        ...

    @abstractmethod
    def accept_waveform(self, sample_rate: int, samples: np.ndarray) -> None:
        ...

    @abstractmethod
    def input_finished(self) -> None:
        """Signal that no more audio follows."""
        ...

    @abstractmethod
    def num_frames_ready(self) -> int:
        ...

    @abstractmethod
    def get_frame(self, index: int) -> np.ndarray:
        ...

    @abstractmethod
    def reset(self) -> None:
        ...


class MfccFeaturePipeline(FeaturePipeline):
    """
    Incremental MFCC features computed with librosa.

    Frames snip the edges: frame ``i`` covers samples
    ``[i * frame_shift, i * frame_shift + frame_length)``, and a frame becomes
    ready as soon as all of its samples have arrived. Every frame is computed
    on its own from exactly its ``frame_length`` samples, and log-mel energies
    are not clipped relative to a batch maximum, so features are identical
    however the audio was chunked. Samples are dropped once every frame that
    covers them has been computed.
    """

    def __init__(self, options: FeatureOptions = None):
        """
        Initialize the pipeline.

        Args:
            options: Feature settings (default: FeatureOptions())
        """
        self.options = options or FeatureOptions()
        self._mel_basis = librosa.filters.mel(
            sr=self.options.sample_rate,
            n_fft=self.options.frame_length,
            n_mels=self.options.num_mel_bins,
        )
        self._features = GrowableFrameBuffer(self.options.num_ceps, dtype=np.float32)
        self.reset()

    @property
    def dim(self) -> int:
        return self.options.num_ceps

    @property
    def sample_rate(self) -> int:
        return self.options.sample_rate

    @property
    def num_samples(self) -> int:
        """Samples accepted since the last reset."""
        return self._pending_start + len(self._pending)

    def accept_waveform(self, sample_rate: int, samples: np.ndarray) -> None:
        """
        Append waveform samples.

        Args:
            sample_rate: Rate of the samples in Hz; must match the pipeline rate
            samples: Mono float samples

        Raises:
            ValueError: If the sample rate does not match.
            RuntimeError: If input_finished() was already called.
        """
        if sample_rate != self.options.sample_rate:
            raise ValueError(
                f"Sample rate {sample_rate} does not match pipeline rate {self.options.sample_rate}"
            )
        if self._finished:
            raise RuntimeError("Cannot accept waveform after input_finished()")

        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if samples.size:
            self._pending = np.concatenate([self._pending, samples])

    def input_finished(self) -> None:
        # Edges are snipped, so a trailing partial frame is dropped
        self._finished = True

    def num_frames_ready(self) -> int:
        num_samples = self.num_samples
        if num_samples < self.options.frame_length:
            return 0
        return 1 + (num_samples - self.options.frame_length) // self.options.frame_shift

    def get_frame(self, index: int) -> np.ndarray:
        """
        Return the feature vector of a ready frame.

        Raises:
            IndexError: If the frame is not ready yet.
        """
        ready = self.num_frames_ready()
        if not 0 <= index < ready:
            raise IndexError(f"Frame {index} is not ready ({ready} frames available)")
        if index >= len(self._features):
            self._compute(len(self._features), ready)
        return self._features.view[index].copy()

    def _frame_features(self, frame: np.ndarray) -> np.ndarray:
        opts = self.options
        # A single window: stft returns one column
        spectrum = librosa.stft(
            frame,
            n_fft=opts.frame_length,
            hop_length=opts.frame_shift,
            center=False,
        )
        mel = self._mel_basis @ (np.abs(spectrum) ** 2)
        log_mel = librosa.power_to_db(mel, top_db=None)
        mfcc = librosa.feature.mfcc(S=log_mel, n_mfcc=opts.num_ceps)
        return mfcc[:, 0]

    def _compute(self, start: int, stop: int) -> None:
        """Compute features for frames [start, stop), cache them and drop spent samples."""
        opts = self.options
        rows = np.empty((stop - start, opts.num_ceps), dtype=np.float32)
        for n, index in enumerate(range(start, stop)):
            first = index * opts.frame_shift - self._pending_start
            rows[n] = self._frame_features(self._pending[first : first + opts.frame_length])
        self._features.append(rows)

        spent = min(stop * opts.frame_shift - self._pending_start, len(self._pending))
        self._pending = self._pending[spent:].copy()
        self._pending_start += spent
        logger.debug(f"Computed MFCC frames {start}..{stop - 1}")

    def reset(self) -> None:
        self._pending = np.zeros(0, dtype=np.float32)
        self._pending_start = 0
        self._features.reset()
        self._finished = False
