#!/usr/bin/env python3
"""
Command line keyword spotting.

Usage:
    streamkws detect kws.conf recording.wav [more.wav ...] [--chunk-ms 100]
    streamkws listen kws.conf [--device "USB"] [--timeout 30]
"""

import argparse
import logging
import sys
from typing import Iterator, List, Optional, Tuple

import librosa
import numpy as np
import soundfile as sf

from .spotter import ChunkState, KeywordSpotter


DEFAULT_CHUNK_MS = 100


def load_audio(path: str, target_sr: int) -> np.ndarray:
    """
    Load audio as mono float32 at the target sample rate.

    Args:
        path: Path to the audio file
        target_sr: Target sample rate

    Returns:
        Audio samples as a 1-D numpy array
    """
    audio, sr = sf.read(path, dtype='float32', always_2d=True)
    audio = audio.mean(axis=1)
    if sr != target_sr:
        audio = librosa.resample(audio, orig_sr=sr, target_sr=target_sr)
    return audio.astype(np.float32)


def iter_chunks(audio: np.ndarray, chunk_size: int) -> Iterator[Tuple[np.ndarray, ChunkState]]:
    """Split audio into chunks tagged START, CONTINUE ... END."""
    if len(audio) <= chunk_size:
        yield audio, ChunkState.END
        return

    offsets = list(range(0, len(audio), chunk_size))
    for n, offset in enumerate(offsets):
        if n == len(offsets) - 1:
            state = ChunkState.END
        elif n == 0:
            state = ChunkState.START
        else:
            state = ChunkState.CONTINUE
        yield audio[offset : offset + chunk_size], state


def detect_file(spotter: KeywordSpotter, path: str, chunk_ms: int) -> Tuple[bool, float, int]:
    """
    Stream one audio file through the spotter as an independent session.

    Returns:
        Tuple of (woken_up, best_score, best_score_frame)
    """
    sample_rate = spotter.config.features.sample_rate
    audio = load_audio(path, sample_rate)
    chunk_size = max(1, sample_rate * chunk_ms // 1000)

    spotter.reset()
    for chunk, state in iter_chunks(audio, chunk_size):
        spotter.feed(chunk, state)
    return spotter.is_woken_up(), spotter.best_score, spotter.best_score_frame


def cmd_detect(args) -> int:
    spotter = KeywordSpotter.from_config_file(args.config, verbose=args.verbose)
    for path in args.wav:
        woken_up, score, frame = detect_file(spotter, path, args.chunk_ms)
        print(f"{path}\t{'WAKEUP' if woken_up else 'NONE'}\t{score:.4f}\t{frame}")
    return 0


def cmd_listen(args) -> int:
    # Imported here so file detection works without PortAudio
    from .microphone import MicrophoneStream

    spotter = KeywordSpotter.from_config_file(args.config, verbose=args.verbose)
    sample_rate = spotter.config.features.sample_rate
    block_size = max(1, sample_rate * args.chunk_ms // 1000)

    print("Listening for the wake word... Press Ctrl+C to exit.")
    state = ChunkState.START
    try:
        with MicrophoneStream(sample_rate=sample_rate, block_size=block_size, device=args.device) as mic:
            for chunk in mic.chunks(timeout=args.timeout):
                spotter.feed(chunk, state)
                state = ChunkState.CONTINUE
                if spotter.is_woken_up():
                    print(f"Wake word detected (score {spotter.best_score:.4f})")
                    return 0
    except KeyboardInterrupt:
        print("\nStopped by user.")

    spotter.feed(np.zeros(0, dtype=np.float32), ChunkState.END)
    print(f"No wake word detected (best score {spotter.best_score:.4f})")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="streamkws", description="Streaming keyword spotting")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Run keyword spotting on audio files")
    detect.add_argument("config", help="Keyword spotter option file")
    detect.add_argument("wav", nargs="+", help="Audio files, each an independent stream")
    detect.add_argument("--chunk-ms", type=int, default=DEFAULT_CHUNK_MS,
                        help=f"Chunk size in milliseconds (default: {DEFAULT_CHUNK_MS})")
    detect.set_defaults(func=cmd_detect)

    listen = subparsers.add_parser("listen", help="Listen on a microphone until the wake word is heard")
    listen.add_argument("config", help="Keyword spotter option file")
    listen.add_argument("--device", default=None, help="Input device index or name pattern")
    listen.add_argument("--timeout", type=float, default=None, help="Give up after this many seconds")
    listen.add_argument("--chunk-ms", type=int, default=DEFAULT_CHUNK_MS,
                        help=f"Chunk size in milliseconds (default: {DEFAULT_CHUNK_MS})")
    listen.set_defaults(func=cmd_listen)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.chunk_ms <= 0:
        parser.error("--chunk-ms must be positive")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
