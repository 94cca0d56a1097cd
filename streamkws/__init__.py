"""
streamkws - Streaming keyword spotting on frame posteriors.

Example usage:
    from streamkws import ChunkState, KeywordSpotter

    spotter = KeywordSpotter.from_config_file("kws.conf")
    spotter.feed(first_chunk, ChunkState.START)
    for chunk in chunks:
        spotter.feed(chunk)
        if spotter.is_woken_up():
            print("Wake word detected")
            break
"""

from .buffers import FRAME_BUFFER_INC_STEP, GrowableFrameBuffer
from .classifier import Classifier, SplicedSoftmaxClassifier
from .config import ConfigurationError, FeatureOptions, KeywordSpotterConfig, parse_keyword_ids
from .features import FeaturePipeline, MfccFeaturePipeline
from .spotter import BestScoreReport, ChunkState, KeywordSpotter, SessionState

__all__ = [
    "BestScoreReport",
    "ChunkState",
    "Classifier",
    "ConfigurationError",
    "FeatureOptions",
    "FeaturePipeline",
    "FRAME_BUFFER_INC_STEP",
    "GrowableFrameBuffer",
    "KeywordSpotter",
    "KeywordSpotterConfig",
    "MfccFeaturePipeline",
    "SessionState",
    "SplicedSoftmaxClassifier",
    "parse_keyword_ids",
]
__version__ = "0.1.0"
