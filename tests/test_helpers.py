"""
Test helpers for streamkws tests.

The scripted pipeline treats every ``num_classes`` consecutive samples as one
frame, and the passthrough classifier returns its input unchanged, so feeding
a flattened posterior table through the spotter reproduces that table exactly
as the session posteriors.
"""

import numpy as np

from streamkws.classifier import Classifier
from streamkws.config import FeatureOptions, KeywordSpotterConfig
from streamkws.features import FeaturePipeline
from streamkws.spotter import KeywordSpotter


SAMPLE_RATE = 16000


class ScriptedPipeline(FeaturePipeline):
    """Frames are consecutive groups of ``num_classes`` samples."""

    def __init__(self, num_classes: int, sample_rate: int = SAMPLE_RATE):
        self.num_classes = num_classes
        self.sample_rate = sample_rate
        self.samples = np.zeros(0, dtype=np.float32)
        self.finished = False
        self.reset_calls = 0

    @property
    def dim(self) -> int:
        return self.num_classes

    def accept_waveform(self, sample_rate, samples):
        if sample_rate != self.sample_rate:
            raise ValueError("sample rate mismatch")
        self.samples = np.concatenate([self.samples, np.asarray(samples, dtype=np.float32)])

    def input_finished(self):
        self.finished = True

    def num_frames_ready(self):
        return len(self.samples) // self.num_classes

    def get_frame(self, index):
        c = self.num_classes
        return self.samples[index * c : (index + 1) * c].copy()

    def reset(self):
        self.samples = np.zeros(0, dtype=np.float32)
        self.finished = False
        self.reset_calls += 1


class PassthroughClassifier(Classifier):
    """Returns the feature frames unchanged as posteriors."""

    def __init__(self, num_classes: int):
        self.num_classes = num_classes
        self.reset_calls = 0
        self.forward_calls = 0

    @property
    def input_dim(self):
        return self.num_classes

    @property
    def output_dim(self):
        return self.num_classes

    def forward(self, batch):
        self.forward_calls += 1
        return np.array(batch, dtype=np.float32)

    def reset_history(self):
        self.reset_calls += 1


def make_config(keywords, **kwargs) -> KeywordSpotterConfig:
    kwargs.setdefault("features", FeatureOptions(sample_rate=SAMPLE_RATE))
    return KeywordSpotterConfig(keywords=keywords, **kwargs)


def make_spotter(keywords, num_classes, classifier=None, **kwargs) -> KeywordSpotter:
    """Build a spotter over the scripted pipeline."""
    inc_step = kwargs.pop("inc_step", 1024)
    config = make_config(keywords, **kwargs)
    return KeywordSpotter(
        config,
        ScriptedPipeline(num_classes),
        classifier or PassthroughClassifier(num_classes),
        inc_step=inc_step,
    )


def as_samples(posteriors) -> np.ndarray:
    """Flatten a (frames, classes) posterior table into a sample stream."""
    return np.asarray(posteriors, dtype=np.float32).reshape(-1)


def keyword_posteriors(*columns) -> np.ndarray:
    """
    Build a posterior table from per-keyword columns.

    Column 0 is a filler class holding the remaining mass; keyword k is
    class k.
    """
    keywords = np.stack([np.asarray(c, dtype=np.float32) for c in columns], axis=1)
    filler = np.clip(1.0 - keywords.sum(axis=1, keepdims=True), 0.0, None)
    return np.concatenate([filler, keywords], axis=1)
