#!/usr/bin/env python3
"""
Example: Tuning the wakeup threshold from recorded audio.

Runs every recording through the spotter, collects the best combined score of
each session, and reports the threshold range that separates recordings that
contain the wake phrase from those that do not.

Usage:
    python tune_threshold.py kws.conf --positive yes1.wav yes2.wav --negative no1.wav no2.wav
"""

import argparse
import sys

from streamkws import KeywordSpotter
from streamkws.cli import DEFAULT_CHUNK_MS, detect_file


def best_scores(spotter, paths, chunk_ms):
    scores = []
    for path in paths:
        _, score, frame = detect_file(spotter, path, chunk_ms)
        report = spotter.best_score_report()
        print(f"  {path}: best {score:.4f} at frame {frame}"
              + (f" ({report.format()})" if report else ""))
        scores.append(score)
    return scores


def main():
    parser = argparse.ArgumentParser(description="Find a wakeup threshold from labelled recordings")
    parser.add_argument("config", help="Keyword spotter option file")
    parser.add_argument("--positive", nargs="+", required=True, help="Recordings containing the wake phrase")
    parser.add_argument("--negative", nargs="+", required=True, help="Recordings without the wake phrase")
    parser.add_argument("--chunk-ms", type=int, default=DEFAULT_CHUNK_MS)
    args = parser.parse_args()

    spotter = KeywordSpotter.from_config_file(args.config)

    print("Positive recordings:")
    positive = best_scores(spotter, args.positive, args.chunk_ms)
    print("Negative recordings:")
    negative = best_scores(spotter, args.negative, args.chunk_ms)

    lowest_positive = min(positive)
    highest_negative = max(negative)
    print()
    if lowest_positive > highest_negative:
        suggested = (lowest_positive + highest_negative) / 2
        print(f"Any threshold in ({highest_negative:.4f}, {lowest_positive:.4f}] separates the sets.")
        print(f"Suggested: --wakeup-threshold={suggested:.4f}")
        return 0

    print(f"Scores overlap: lowest positive {lowest_positive:.4f}, highest negative {highest_negative:.4f}.")
    print("Best scores ignore keyword order; check the gap columns above or retune the windows.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
