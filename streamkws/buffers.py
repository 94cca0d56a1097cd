"""
Growable numeric buffers for streaming tables.

Per-frame tables (posteriors, smoothed posteriors, confidence scores) and the
session sample buffer grow as audio arrives. They grow in fixed steps so the
number of reallocations stays bounded by the stream length divided by the step.
"""

import logging
from typing import Optional, Tuple

import numpy as np


logger = logging.getLogger(__name__)

# Rows added per reallocation when a request fits in one step
FRAME_BUFFER_INC_STEP = 1024


class GrowableFrameBuffer:
    """
    Append-only 2-D (or 1-D) numpy buffer with amortized growth.

    The buffer owns a contiguous array of ``capacity`` rows, of which the first
    ``num_rows`` are valid. When a reservation does not fit, the array is
    reallocated with ``max(new_rows, inc_step)`` extra rows and the valid prefix
    is copied over. There is no shrink path; ``reset()`` returns the buffer to
    its initial capacity.
    """

    def __init__(
        self,
        num_cols: Optional[int] = None,
        dtype=np.float32,
        inc_step: int = FRAME_BUFFER_INC_STEP,
    ) -> None:
        """
        Initialize the buffer.

        Args:
            num_cols: Number of columns per row, or None for a 1-D buffer
                      (one scalar per row, used for audio samples).
            dtype: numpy dtype of the stored values.
            inc_step: Minimum number of rows added per reallocation.

        Raises:
            ValueError: If inc_step is not positive or num_cols is negative.
        """
        if inc_step <= 0:
            raise ValueError("inc_step must be positive")
        if num_cols is not None and num_cols < 0:
            raise ValueError("num_cols must be non-negative")

        self.num_cols = num_cols
        self.dtype = np.dtype(dtype)
        self.inc_step = inc_step
        self.num_rows = 0
        self.reallocations = 0
        self._data = self._allocate(inc_step)

    @property
    def row_shape(self) -> Tuple[int, ...]:
        return () if self.num_cols is None else (self.num_cols,)

    @property
    def capacity(self) -> int:
        return self._data.shape[0]

    @property
    def view(self) -> np.ndarray:
        """The valid rows. Writes through to the buffer."""
        return self._data[: self.num_rows]

    def __len__(self) -> int:
        return self.num_rows

    def _allocate(self, rows: int) -> np.ndarray:
        return np.zeros((rows,) + self.row_shape, dtype=self.dtype)

    def reserve(self, new_rows: int) -> bool:
        """
        Make room for ``new_rows`` rows past the valid prefix.

        Args:
            new_rows: Number of rows about to be appended.

        Returns:
            True if the storage was reallocated, False if it already fit.
        """
        if new_rows <= 0 or self.capacity >= self.num_rows + new_rows:
            return False

        step = max(new_rows, self.inc_step)
        grown = self._allocate(self.capacity + step)
        if self.num_rows > 0:
            grown[: self.num_rows] = self._data[: self.num_rows]
        self._data = grown
        self.reallocations += 1
        logger.debug(
            f"Grew buffer to {self.capacity} rows "
            f"({self.reallocations} reallocations)"
        )
        return True

    def append(self, rows: np.ndarray) -> int:
        """
        Append rows after the valid prefix.

        Args:
            rows: Array of shape (n,) + row_shape.

        Returns:
            Index of the first appended row.

        Raises:
            ValueError: If the row shape does not match the buffer.
        """
        rows = np.asarray(rows, dtype=self.dtype)
        if rows.shape[1:] != self.row_shape:
            raise ValueError(
                f"Row shape {rows.shape[1:]} does not match buffer row shape {self.row_shape}"
            )

        start = self.num_rows
        count = rows.shape[0]
        self.reserve(count)
        self._data[start : start + count] = rows
        self.num_rows += count
        return start

    def reset(self) -> None:
        """Drop all rows and return to the initial capacity."""
        self._data = self._allocate(self.inc_step)
        self.num_rows = 0
        self.reallocations = 0
