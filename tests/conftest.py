"""
Pytest configuration for streamkws tests.

Most tests drive the spotter with scripted posteriors and need no audio
hardware. Tests marked with @pytest.mark.requires_portaudio are skipped when
the PortAudio library behind sounddevice is not installed (common in CI).
"""

import os

import pytest


# Detect if PortAudio/sounddevice is available
PORTAUDIO_AVAILABLE = False
try:
    import sounddevice  # noqa: F401
    PORTAUDIO_AVAILABLE = True
except OSError:
    # PortAudio library not found
    pass

IN_CI_ENVIRONMENT = any([
    os.environ.get('GITHUB_ACTIONS') == 'true',
    os.environ.get('CI') == 'true',
])


def pytest_configure(config):
    """Register custom markers for audio-dependent tests."""
    config.addinivalue_line(
        "markers", "requires_portaudio: mark test as requiring PortAudio library"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests that need PortAudio when it is not available."""
    if not PORTAUDIO_AVAILABLE:
        skip_portaudio = pytest.mark.skip(reason="PortAudio library not available")
        for item in items:
            if "requires_portaudio" in item.keywords:
                item.add_marker(skip_portaudio)


@pytest.fixture
def portaudio_available():
    """Fixture to check if PortAudio is available."""
    return PORTAUDIO_AVAILABLE


@pytest.fixture
def in_ci_environment():
    """Fixture to check if running in CI environment."""
    return IN_CI_ENVIRONMENT
