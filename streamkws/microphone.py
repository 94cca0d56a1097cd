"""
Live microphone input for the keyword spotter.
"""

import logging
import queue
import re
import time
from typing import Iterator, Optional, Union

import numpy as np
import sounddevice as sd


logger = logging.getLogger(__name__)


def list_input_devices() -> list:
    """
    List audio input devices.

    Returns:
        List of dictionaries with 'index', 'name' and 'default_samplerate'
    """
    devices = []
    for i, device in enumerate(sd.query_devices()):
        if device['max_input_channels'] > 0:
            devices.append({
                'index': i,
                'name': device['name'],
                'default_samplerate': device['default_samplerate'],
            })
    return devices


def select_input_device(device_spec: Optional[Union[int, str]] = None) -> Optional[int]:
    """
    Resolve an input device specification to a device index.

    Args:
        device_spec: Device selection specification:
            - None: Use the system default input device
            - int (or a string of digits): Device index
            - str: Case-insensitive name pattern; exact match first,
                   then substring, then regular expression

    Returns:
        Device index, or None for the system default

    Raises:
        ValueError: If no input device matches the specification.
    """
    if device_spec is None:
        return None

    devices = list_input_devices()
    if isinstance(device_spec, str) and device_spec.strip().isdigit():
        device_spec = int(device_spec)

    if isinstance(device_spec, int):
        if any(d['index'] == device_spec for d in devices):
            return device_spec
        raise ValueError(f"Device index {device_spec} is not a valid input device")

    pattern = device_spec.lower()
    for device in devices:
        if device['name'].lower() == pattern:
            return device['index']
    for device in devices:
        if pattern in device['name'].lower():
            return device['index']
    try:
        regex = re.compile(device_spec, re.IGNORECASE)
    except re.error:
        regex = None
    if regex is not None:
        for device in devices:
            if regex.search(device['name']):
                return device['index']

    raise ValueError(f"No input device found matching pattern: {device_spec}")


class MicrophoneStream:
    """
    Queue of mono float32 blocks captured from an input device.

    The sounddevice callback only copies each block into the queue; consumers
    pull blocks with ``chunks()`` on their own thread.

    Example:
        >>> with MicrophoneStream(sample_rate=16000, block_size=1600) as mic:
        ...     for chunk in mic.chunks(timeout=10):
        ...         spotter.feed(chunk)
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 1600,
        device: Optional[Union[int, str]] = None,
    ):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = select_input_device(device)
        self.overflows = 0
        self._queue: "queue.Queue[np.ndarray]" = queue.Queue()
        self._stream = sd.InputStream(
            samplerate=sample_rate,
            blocksize=block_size,
            channels=1,
            dtype='float32',
            device=self.device,
            callback=self._on_audio,
        )

    def _on_audio(self, indata, frames, time_info, status) -> None:
        if status:
            self.overflows += 1
            logger.warning(f"Audio input status: {status}")
        self._queue.put(np.array(indata, dtype=np.float32).reshape(-1))

    def start(self) -> None:
        self._stream.start()

    def stop(self) -> None:
        self._stream.stop()

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> "MicrophoneStream":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
        self.close()

    def chunks(self, timeout: Optional[float] = None) -> Iterator[np.ndarray]:
        """
        Yield captured blocks until the timeout elapses.

        Args:
            timeout: Seconds to keep yielding, or None for no limit
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return
            try:
                yield self._queue.get(timeout=remaining if remaining is not None else 0.5)
            except queue.Empty:
                continue
