"""
Tests for the growable frame buffer.
"""

import math

import numpy as np
import pytest

from streamkws.buffers import FRAME_BUFFER_INC_STEP, GrowableFrameBuffer


class TestGrowableFrameBuffer:

    def test_initial_state(self):
        buf = GrowableFrameBuffer(3)
        assert len(buf) == 0
        assert buf.capacity == FRAME_BUFFER_INC_STEP
        assert buf.view.shape == (0, 3)
        assert buf.reallocations == 0

    def test_append_within_capacity_does_not_reallocate(self):
        buf = GrowableFrameBuffer(2, inc_step=4)
        start = buf.append(np.ones((3, 2)))
        assert start == 0
        assert buf.capacity == 4
        assert buf.reallocations == 0

    def test_growth_uses_inc_step_for_small_requests(self):
        buf = GrowableFrameBuffer(2, inc_step=4)
        buf.append(np.ones((3, 2)))
        buf.append(np.full((3, 2), 2.0))
        assert buf.capacity == 8
        assert buf.reallocations == 1

    def test_growth_uses_request_size_for_large_requests(self):
        buf = GrowableFrameBuffer(2, inc_step=4)
        buf.append(np.ones((10, 2)))
        assert buf.capacity == 14
        assert len(buf) == 10

    def test_growth_preserves_valid_prefix(self):
        buf = GrowableFrameBuffer(2, inc_step=2)
        rows = np.arange(14, dtype=np.float32).reshape(7, 2)
        for row in rows:
            buf.append(row[None, :])
        np.testing.assert_array_equal(buf.view, rows)

    def test_one_frame_at_a_time_reallocation_count(self):
        """Reallocations grow with N / inc_step, not with N."""
        step = 8
        n = 100
        buf = GrowableFrameBuffer(3, inc_step=step)
        for i in range(n):
            buf.append(np.full((1, 3), i))
        assert len(buf) == n
        assert buf.capacity >= n
        assert buf.reallocations == math.ceil(n / step) - 1

    def test_reserve_is_noop_when_it_fits(self):
        buf = GrowableFrameBuffer(1, inc_step=4)
        assert buf.reserve(0) is False
        assert buf.reserve(4) is False
        assert buf.reserve(5) is True
        assert buf.capacity == 9

    def test_one_dimensional_buffer(self):
        buf = GrowableFrameBuffer(None, inc_step=4)
        buf.append(np.arange(3))
        buf.append(np.arange(3, 6))
        np.testing.assert_array_equal(buf.view, np.arange(6))
        assert buf.view.ndim == 1

    def test_row_shape_mismatch(self):
        buf = GrowableFrameBuffer(3)
        with pytest.raises(ValueError):
            buf.append(np.ones((2, 4)))

    def test_reset_returns_to_initial_capacity(self):
        buf = GrowableFrameBuffer(2, inc_step=4)
        buf.append(np.ones((20, 2)))
        buf.reset()
        assert len(buf) == 0
        assert buf.capacity == 4
        assert buf.reallocations == 0

    def test_invalid_inc_step(self):
        with pytest.raises(ValueError):
            GrowableFrameBuffer(2, inc_step=0)
