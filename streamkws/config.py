"""
Configuration for the streaming keyword spotter.

A configuration is built once, validated, and never mutated afterwards. It can
be created directly, from a mapping of option names, or from an option file
with one ``--name=value`` per line::

    # keyword spotter
    --keywords-id=3:4|7|9:10
    --smooth-window=30
    --sliding-window=100
    --word-interval=50
    --wakeup-threshold=0.5
    --model=kws_model.npz
    --feature-config=mfcc.conf
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SMOOTH_WINDOW = 30
DEFAULT_SLIDING_WINDOW = 100
DEFAULT_WORD_INTERVAL = 50
DEFAULT_WAKEUP_THRESHOLD = 0.5

# Defaults match the MFCC settings used for 16 kHz speech:
# 512-sample FFT window (~32ms) and 160-sample hop (~10ms)
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_NUM_CEPS = 20
DEFAULT_FRAME_LENGTH = 512
DEFAULT_FRAME_SHIFT = 160
DEFAULT_NUM_MEL_BINS = 40

KEYWORD_GROUP_DELIMITER = "|"
KEYWORD_ID_DELIMITER = ":"

# "#" at line start or after whitespace begins a comment
COMMENT_PATTERN = re.compile(r"(^|\s)#.*$", re.DOTALL)

Keywords = Tuple[Tuple[int, ...], ...]


class ConfigurationError(ValueError):
    """Raised when a keyword spotter configuration is malformed or inconsistent."""


def parse_keyword_ids(text: str) -> Keywords:
    """
    Parse a keyword id string into ordered groups of class ids.

    Groups are separated by ``|`` and ids within a group by ``:``, so
    ``"3:4|7"`` describes two keyword segments, the first matching classes
    3 or 4 and the second matching class 7.

    Args:
        text: Keyword id string

    Returns:
        Tuple of keyword segments, each a tuple of class ids

    Raises:
        ConfigurationError: If the string is empty or contains an empty group
                            or a token that is not a non-negative integer.
    """
    if text is None or not text.strip():
        raise ConfigurationError("Keyword id string is empty")

    keywords = []
    for group in text.split(KEYWORD_GROUP_DELIMITER):
        ids = []
        for token in group.split(KEYWORD_ID_DELIMITER):
            token = token.strip()
            try:
                class_id = int(token)
            except ValueError:
                raise ConfigurationError(f"Invalid keywords id string {text!r}: bad id {token!r}") from None
            if class_id < 0:
                raise ConfigurationError(f"Invalid keywords id string {text!r}: negative id {class_id}")
            ids.append(class_id)
        keywords.append(tuple(ids))
    return tuple(keywords)


def format_keyword_ids(keywords: Keywords) -> str:
    """Inverse of parse_keyword_ids()."""
    return KEYWORD_GROUP_DELIMITER.join(
        KEYWORD_ID_DELIMITER.join(str(i) for i in group) for group in keywords
    )


def read_options_file(path: str) -> Dict[str, str]:
    """
    Read an option file of ``--name=value`` lines.

    Blank lines and comments are skipped. A ``#`` starts a comment at the
    beginning of a line or after whitespace, so values may contain ``#``. Later occurrences of an option
    override earlier ones.

    Args:
        path: Path to the option file

    Returns:
        Dictionary mapping option names (without the leading dashes) to raw values

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If a line is not of the form ``--name=value``.
    """
    options: Dict[str, str] = {}
    with open(path, "r", encoding="utf-8") as f:
        for lineno, raw in enumerate(f, start=1):
            line = COMMENT_PATTERN.sub("", raw).strip()
            if not line:
                continue
            if not line.startswith("--") or "=" not in line:
                raise ConfigurationError(f"{path}:{lineno}: expected --name=value, got {line!r}")
            name, value = line[2:].split("=", 1)
            options[name.strip()] = value.strip()
    return options


def _convert(name: str, value: str, kind: Callable):
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for --{name}: {value!r}") from None


def _resolve_path(path: str, base_dir: Optional[str]) -> str:
    if base_dir and not os.path.isabs(path):
        return os.path.join(base_dir, path)
    return path


@dataclass(frozen=True)
class FeatureOptions:
    """MFCC feature extraction settings."""

    sample_rate: int = DEFAULT_SAMPLE_RATE
    num_ceps: int = DEFAULT_NUM_CEPS
    frame_length: int = DEFAULT_FRAME_LENGTH
    frame_shift: int = DEFAULT_FRAME_SHIFT
    num_mel_bins: int = DEFAULT_NUM_MEL_BINS

    OPTION_TYPES = {
        "sample-rate": ("sample_rate", int),
        "num-ceps": ("num_ceps", int),
        "frame-length": ("frame_length", int),
        "frame-shift": ("frame_shift", int),
        "num-mel-bins": ("num_mel_bins", int),
    }

    def __post_init__(self):
        for name in ("sample_rate", "num_ceps", "frame_length", "frame_shift", "num_mel_bins"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.num_ceps > self.num_mel_bins:
            raise ConfigurationError("num_ceps must be <= num_mel_bins")

    @classmethod
    def from_options(cls, options: Mapping[str, str]) -> "FeatureOptions":
        kwargs = {}
        for name, value in options.items():
            if name not in cls.OPTION_TYPES:
                raise ConfigurationError(f"Unknown feature option --{name}")
            attr, kind = cls.OPTION_TYPES[name]
            kwargs[attr] = _convert(name, value, kind)
        return cls(**kwargs)


@dataclass(frozen=True)
class KeywordSpotterConfig:
    """
    Immutable keyword spotter configuration.

    Attributes:
        keywords: Ordered keyword segments, each a tuple of classifier output
                  class ids whose posteriors are summed.
        smooth_window: Trailing frame count for posterior smoothing.
        sliding_window: Trailing frame count over which each keyword's peak
                        smoothed posterior is taken.
        word_interval: Exclusive upper bound on the frame gap between the peaks
                       of consecutive keyword segments.
        wakeup_threshold: Minimum combined score for a wakeup.
        features: Feature extraction settings.
        model_path: Path to the classifier model archive, if any.
    """

    keywords: Keywords
    smooth_window: int = DEFAULT_SMOOTH_WINDOW
    sliding_window: int = DEFAULT_SLIDING_WINDOW
    word_interval: int = DEFAULT_WORD_INTERVAL
    wakeup_threshold: float = DEFAULT_WAKEUP_THRESHOLD
    features: FeatureOptions = field(default_factory=FeatureOptions)
    model_path: Optional[str] = None

    OPTION_TYPES = {
        "keywords-id": ("keywords", parse_keyword_ids),
        "smooth-window": ("smooth_window", int),
        "sliding-window": ("sliding_window", int),
        "word-interval": ("word_interval", int),
        "wakeup-threshold": ("wakeup_threshold", float),
        "model": ("model_path", str),
    }

    def __post_init__(self):
        if isinstance(self.keywords, str):
            object.__setattr__(self, "keywords", parse_keyword_ids(self.keywords))
        else:
            object.__setattr__(self, "keywords", tuple(tuple(int(i) for i in g) for g in self.keywords))

        if len(self.keywords) == 0:
            raise ConfigurationError("At least one keyword segment is required")
        for group in self.keywords:
            if len(group) == 0:
                raise ConfigurationError("Keyword segments must not be empty")
            if any(i < 0 for i in group):
                raise ConfigurationError("Keyword class ids must be non-negative")
        if self.smooth_window < 1:
            raise ConfigurationError("smooth_window must be at least 1")
        if self.sliding_window < 1:
            raise ConfigurationError("sliding_window must be at least 1")
        if self.word_interval < 1:
            raise ConfigurationError("word_interval must be at least 1")
        if not 0.0 <= self.wakeup_threshold <= 1.0:
            raise ConfigurationError("wakeup_threshold must be between 0 and 1")

    @property
    def num_keywords(self) -> int:
        return len(self.keywords)

    @property
    def max_class_id(self) -> int:
        return max(max(group) for group in self.keywords)

    @classmethod
    def from_options(
        cls, options: Mapping[str, str], base_dir: Optional[str] = None
    ) -> "KeywordSpotterConfig":
        """
        Build a configuration from raw option values.

        Feature options may appear inline or in a separate file named by
        ``feature-config``; inline values override the file.

        Args:
            options: Mapping of option name (without dashes) to string value
            base_dir: Directory that relative paths are resolved against

        Raises:
            ConfigurationError: On unknown options or unparsable values.
        """
        kwargs = {}
        feature_options: Dict[str, str] = {}

        for name, value in options.items():
            if name == "feature-config":
                feature_path = _resolve_path(value, base_dir)
                feature_options = {**read_options_file(feature_path), **feature_options}
            elif name in FeatureOptions.OPTION_TYPES:
                feature_options[name] = value
            elif name in cls.OPTION_TYPES:
                attr, kind = cls.OPTION_TYPES[name]
                kwargs[attr] = _convert(name, value, kind)
            else:
                raise ConfigurationError(f"Unknown option --{name}")

        if "keywords" not in kwargs:
            raise ConfigurationError("--keywords-id is required")
        if kwargs.get("model_path"):
            kwargs["model_path"] = _resolve_path(kwargs["model_path"], base_dir)

        return cls(features=FeatureOptions.from_options(feature_options), **kwargs)

    @classmethod
    def from_file(cls, path: str) -> "KeywordSpotterConfig":
        """Load a configuration from an option file."""
        options = read_options_file(path)
        config = cls.from_options(options, base_dir=os.path.dirname(os.path.abspath(path)))
        logger.debug(f"Loaded keyword spotter config from {path}: {config}")
        return config
