"""
Drives the feature pipeline and classifier for each incoming audio chunk.
"""

import logging
from typing import Optional

import numpy as np

from .buffers import FRAME_BUFFER_INC_STEP, GrowableFrameBuffer
from .classifier import Classifier
from .features import FeaturePipeline


logger = logging.getLogger(__name__)


class StreamFeeder:
    """
    Turns audio chunks into rows of the session posterior table.

    Cursors:
        sample_offset: samples already forwarded to the feature pipeline
        frames_ready: frames the pipeline reported ready on the last call
        frame_offset: frames already classified into the posterior table

    ``frame_offset <= frames_ready`` always holds. Failures in the pipeline or
    the classifier propagate to the caller; the session is then unusable until
    ``reset()``.
    """

    def __init__(
        self,
        pipeline: FeaturePipeline,
        classifier: Classifier,
        sample_rate: int,
        inc_step: int = FRAME_BUFFER_INC_STEP,
    ):
        self.pipeline = pipeline
        self.classifier = classifier
        self.sample_rate = sample_rate
        self.samples = GrowableFrameBuffer(None, dtype=np.float32, inc_step=inc_step)
        self.posteriors = GrowableFrameBuffer(classifier.output_dim, dtype=np.float32, inc_step=inc_step)
        self.sample_offset = 0
        self.frames_ready = 0
        self.frame_offset = 0

    def reset(self) -> None:
        self.pipeline.reset()
        self.classifier.reset_history()
        self.samples.reset()
        self.posteriors.reset()
        self.sample_offset = 0
        self.frames_ready = 0
        self.frame_offset = 0

    def feed(self, samples: Optional[np.ndarray], end_of_input: bool = False) -> int:
        """
        Forward a chunk of audio and classify every newly ready frame.

        Args:
            samples: Mono samples (may be empty), or None to only query
            end_of_input: Signal the pipeline that no more audio follows

        Returns:
            Number of posterior rows appended by this call

        Raises:
            ValueError: If the classifier output does not match the batch.
        """
        if samples is None:
            return 0

        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if samples.size:
            self.samples.append(samples)

        pending = self.samples.view[self.sample_offset :]
        self.pipeline.accept_waveform(self.sample_rate, pending)
        self.sample_offset = len(self.samples)

        if end_of_input:
            self.pipeline.input_finished()

        self.frames_ready = self.pipeline.num_frames_ready()
        if self.frames_ready == self.frame_offset:
            return 0

        batch = np.stack(
            [self.pipeline.get_frame(i) for i in range(self.frame_offset, self.frames_ready)]
        )
        output = np.asarray(self.classifier.forward(batch))

        if output.ndim != 2 or output.shape[0] != batch.shape[0]:
            raise ValueError(
                f"Classifier returned {output.shape} for a batch of {batch.shape[0]} frames"
            )
        if output.shape[1] != self.classifier.output_dim:
            raise ValueError(
                f"Classifier returned {output.shape[1]} classes, expected {self.classifier.output_dim}"
            )

        self.posteriors.append(output)
        new_rows = self.frames_ready - self.frame_offset
        self.frame_offset = self.frames_ready
        return new_rows
