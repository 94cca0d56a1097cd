"""
Frame classifiers mapping feature frames to per-class posteriors.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import softmax


logger = logging.getLogger(__name__)


class Classifier(ABC):
    """Interface the stream feeder drives."""

    @property
    @abstractmethod
    def input_dim(self) -> int:
        ...

    @property
    @abstractmethod
    def output_dim(self) -> int:
        ...

    @abstractmethod
    def forward(self, batch: np.ndarray) -> np.ndarray:
        """Map feature frames (frames, dim) to posteriors (frames, output_dim)."""
        ...

    @abstractmethod
    def reset_history(self) -> None:
        """Forget context carried over from earlier batches."""
        ...


class SplicedSoftmaxClassifier(Classifier):
    """
    Feed-forward frame classifier over causally spliced input frames.

    Each output frame ``t`` sees the feature frames ``t - left_context .. t``
    concatenated oldest first. The network is a stack of affine layers with
    ReLU between them and a softmax output. The last ``left_context`` frames of
    the previous batch are kept as history so splicing spans batch boundaries;
    at the start of a session the first frame is repeated as padding.

    Example:
        >>> clf = SplicedSoftmaxClassifier.load("kws_model.npz")
        >>> posteriors = clf.forward(features)  # (frames, classes)
    """

    def __init__(
        self,
        layers: Sequence[Tuple[np.ndarray, np.ndarray]],
        left_context: int = 0,
    ):
        """
        Initialize the classifier.

        Args:
            layers: (weights, bias) pairs, weights shaped (in_dim, out_dim)
            left_context: Number of previous frames spliced onto each frame

        Raises:
            ValueError: If there are no layers, left_context is negative, or
                        layer shapes do not chain.
        """
        if not layers:
            raise ValueError("At least one layer is required")
        if left_context < 0:
            raise ValueError("left_context must be non-negative")

        self.layers: List[Tuple[np.ndarray, np.ndarray]] = []
        prev_dim = None
        for i, (weights, bias) in enumerate(layers):
            weights = np.asarray(weights, dtype=np.float32)
            bias = np.asarray(bias, dtype=np.float32).reshape(-1)
            if weights.ndim != 2 or bias.shape[0] != weights.shape[1]:
                raise ValueError(f"Layer {i}: weights {weights.shape} and bias {bias.shape} do not match")
            if prev_dim is not None and weights.shape[0] != prev_dim:
                raise ValueError(f"Layer {i}: input dim {weights.shape[0]} != previous output dim {prev_dim}")
            prev_dim = weights.shape[1]
            self.layers.append((weights, bias))

        self.left_context = left_context
        if self.layers[0][0].shape[0] % (left_context + 1) != 0:
            raise ValueError("First layer input dim must be a multiple of left_context + 1")
        self._history: Optional[np.ndarray] = None

    @property
    def feature_dim(self) -> int:
        return self.input_dim // (self.left_context + 1)

    @property
    def input_dim(self) -> int:
        return self.layers[0][0].shape[0]

    @property
    def output_dim(self) -> int:
        return self.layers[-1][0].shape[1]

    def _splice(self, batch: np.ndarray) -> np.ndarray:
        context = self.left_context
        if context == 0:
            return batch

        if self._history is None:
            history = np.repeat(batch[:1], context, axis=0)
        else:
            history = self._history
        frames = np.concatenate([history, batch], axis=0)
        self._history = frames[-context:].copy()

        num_rows = batch.shape[0]
        return np.concatenate(
            [frames[offset : offset + num_rows] for offset in range(context + 1)],
            axis=1,
        )

    def forward(self, batch: np.ndarray) -> np.ndarray:
        """
        Compute posteriors for a batch of feature frames.

        Args:
            batch: Feature frames shaped (frames, feature_dim)

        Returns:
            Posteriors shaped (frames, output_dim); each row sums to one.

        Raises:
            ValueError: If the feature dimension does not match.
        """
        batch = np.asarray(batch, dtype=np.float32)
        if batch.ndim != 2 or batch.shape[1] != self.feature_dim:
            raise ValueError(f"Expected feature frames of dim {self.feature_dim}, got shape {batch.shape}")
        if batch.shape[0] == 0:
            return np.zeros((0, self.output_dim), dtype=np.float32)

        spliced = np.ascontiguousarray(self._splice(batch))
        return np.stack([self._forward_frame(x) for x in spliced])

    def _forward_frame(self, x: np.ndarray) -> np.ndarray:
        # One frame at a time, so a frame's output does not depend on batch size
        last = len(self.layers) - 1
        for i, (weights, bias) in enumerate(self.layers):
            x = x @ weights + bias
            if i < last:
                x = np.maximum(x, 0.0)
        return softmax(x).astype(np.float32)

    def reset_history(self) -> None:
        self._history = None

    @classmethod
    def load(cls, path: str) -> "SplicedSoftmaxClassifier":
        """
        Load a classifier from a ``.npz`` archive holding ``W0, b0, W1, b1, ...``
        and an optional scalar ``left_context``.

        Raises:
            FileNotFoundError: If the archive does not exist.
            ValueError: If the archive holds no layers.
        """
        with np.load(path) as archive:
            layers = []
            i = 0
            while f"W{i}" in archive.files:
                layers.append((archive[f"W{i}"], archive[f"b{i}"]))
                i += 1
            left_context = int(archive["left_context"]) if "left_context" in archive.files else 0

        if not layers:
            raise ValueError(f"No layers found in model archive {path}")
        logger.info(f"Loaded classifier from {path}: {len(layers)} layers, left_context={left_context}")
        return cls(layers, left_context=left_context)

    def save(self, path: str) -> None:
        arrays = {"left_context": np.array(self.left_context)}
        for i, (weights, bias) in enumerate(self.layers):
            arrays[f"W{i}"] = weights
            arrays[f"b{i}"] = bias
        np.savez(path, **arrays)
