"""
Pytest configuration for bandpulse tests.

Automatically adds project root to sys.path so that 'from bandpulse...' imports work.
Defines markers and shared fixtures.
"""
import sys
import numpy as np
import pytest
from pathlib import Path
from typing import Tuple

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "invariant: Architectural invariant tests")
    config.addinivalue_line("markers", "integration: Dispatcher / worker pool tests")
    config.addinivalue_line("markers", "slow: Slow tests (process pool start-up)")


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return project root path."""
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings."""
    from bandpulse.core.config import reset_settings

    for var in (
        "BANDPULSE_WORKERS",
        "BANDPULSE_WORKER_BACKEND",
        "BANDPULSE_ANALYZE_PROGRESS_INTERVAL",
        "BANDPULSE_WAVEFORM_PROGRESS_INTERVAL",
        "BANDPULSE_DEFAULT_ENGINE",
        "BANDPULSE_SAMPLE_RATE",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def sample_rate() -> int:
    return 44100


@pytest.fixture
def sine_256() -> np.ndarray:
    """256-sample sine, 4 full cycles."""
    n = np.arange(256)
    return np.sin(2 * np.pi * 4 * n / 256).astype(np.float32)


@pytest.fixture
def step_signal() -> Tuple[np.ndarray, int]:
    """Silence for 1024 samples, then DC 1.0 up to 4096 samples."""
    sr = 44100
    y = np.zeros(4096, dtype=np.float32)
    y[1024:] = 1.0
    return y, sr


@pytest.fixture
def two_tone() -> Tuple[np.ndarray, int]:
    """1 second: 1 kHz tone plus a quieter 100 Hz tone."""
    sr = 44100
    t = np.arange(sr) / sr
    y = 0.5 * np.sin(2 * np.pi * 1000 * t) + 0.25 * np.sin(2 * np.pi * 100 * t)
    return y.astype(np.float32), sr


@pytest.fixture
def synthetic_audio_with_beats() -> Tuple[np.ndarray, int]:
    """Synthetic audio with decaying 100 Hz kicks every 0.5 s (4 seconds)."""
    np.random.seed(42)
    sr = 22050
    duration = 4.0
    beat_duration = 0.5

    y = np.zeros(int(sr * duration), dtype=np.float32)
    decay_samples = int(0.1 * sr)
    for i in range(int(duration / beat_duration)):
        start = int(i * beat_duration * sr)
        end = min(start + decay_samples, len(y))
        k = np.arange(end - start)
        y[start:end] += np.exp(-k / (0.02 * sr)) * np.sin(2 * np.pi * 100 * k / sr)

    y += 0.01 * np.random.randn(len(y)).astype(np.float32)
    return y.astype(np.float32), sr


@pytest.fixture
def random_fft_sequence() -> np.ndarray:
    """Deterministic (200 frames x 512 bins) magnitude sequence."""
    rng = np.random.default_rng(7)
    return rng.random((200, 512)).astype(np.float32) * 0.1
