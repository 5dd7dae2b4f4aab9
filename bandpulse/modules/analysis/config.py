"""
Analysis module configuration.

Band definitions, feature-extraction options and onset-detection
parameters shared by tasks and requests.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from bandpulse.core.errors import ConfigurationError


@dataclass(frozen=True)
class BandDefinition:
    """A named target frequency with filtering and display parameters."""
    name: str
    freq: float
    q: float = 1.0
    color: str = "#ffffff"

    def __post_init__(self):
        if self.freq <= 0:
            raise ConfigurationError(
                "Band frequency must be positive",
                data={"band": self.name, "freq": self.freq},
            )
        if self.q <= 0:
            raise ConfigurationError(
                "Band quality factor must be positive",
                data={"band": self.name, "q": self.q},
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BandDefinition':
        return cls(
            name=str(data["name"]),
            freq=float(data["freq"]),
            q=float(data.get("q", 1.0)),
            color=str(data.get("color", "#ffffff")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


BandLike = Union[BandDefinition, Mapping[str, Any]]


def coerce_bands(bands: Sequence[BandLike]) -> List[BandDefinition]:
    """Accept BandDefinition instances or plain dicts, order preserved."""
    return [b if isinstance(b, BandDefinition) else BandDefinition.from_dict(b) for b in bands]


DEFAULT_BANDS: List[BandDefinition] = [
    BandDefinition("Sub Bass", 60.0, 1.0, "#2b8cbe"),
    BandDefinition("Bass", 120.0, 1.0, "#41ab5d"),
    BandDefinition("Low Mid", 400.0, 1.0, "#fdae6b"),
    BandDefinition("Mid", 1000.0, 1.0, "#d94801"),
    BandDefinition("High", 4000.0, 1.0, "#756bb1"),
    BandDefinition("Presence", 8000.0, 1.0, "#f03b20"),
]


IMPULSE_MODES = ("second-derivative", "first-derivative", "z-score", "spectral-flux")


@dataclass
class BandFeatureConfig:
    """
    Options for per-band series extraction.

    Defaults give the plain forward difference on raw magnitudes, so
    impulse strength is exactly |second derivative|.

    Impulse modes:
        second-derivative: |d2|
        first-derivative:  |d1|
        z-score:           (d1 - mean) / std over the whole series
        spectral-flux:     positive frame-to-frame rise, kept only where it
                           beats median + k * MAD of its neighbourhood and
                           lies flux_min_separation frames after the last kept rise
    """
    derivative_mode: str = "forward"
    derivative_window: int = 1
    # Trailing moving-average length applied to magnitudes before differencing
    smoothing: int = 1
    # Differentiate log10(magnitude) instead of magnitude
    log_domain: bool = False
    impulse_mode: str = "second-derivative"
    # Frames whose raw magnitude is <= this get zero strength (derivative modes); None keeps all
    magnitude_floor: Optional[float] = None
    flux_window: int = 21
    flux_k: float = 2.0
    flux_min_separation: int = 3

    def __post_init__(self):
        if self.impulse_mode not in IMPULSE_MODES:
            raise ConfigurationError(
                f"Unknown impulse mode '{self.impulse_mode}'",
                data={"mode": self.impulse_mode, "supported": list(IMPULSE_MODES)},
            )
        if self.flux_window < 1 or self.flux_min_separation < 0:
            raise ConfigurationError(
                "flux_window must be >= 1 and flux_min_separation >= 0",
                data={"flux_window": self.flux_window, "flux_min_separation": self.flux_min_separation},
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OnsetParams:
    """Parameters shared by all onset detection engines."""
    hop_size: int = 512
    fft_size: int = 1024
    # aubio onset method (default, energy, hfc, complex, phase, specdiff, kl, mkl, specflux)
    method: str = "default"
    # Frames quieter than this (dBFS of mean |x|) never trigger
    min_db: float = -60.0
    # Minimum level change (dB) between triggering frames
    min_db_delta: float = 3.0
    flux_threshold: float = 0.05
    derivative_threshold: float = 0.1
    zscore_threshold: float = 2.0
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.hop_size <= 0 or self.fft_size <= 0:
            raise ConfigurationError(
                "Onset hop_size and fft_size must be positive",
                data={"hop_size": self.hop_size, "fft_size": self.fft_size},
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> 'OnsetParams':
        data = dict(data or {})
        # camelCase keys are accepted too
        aliases = {"hopSize": "hop_size", "fftSize": "fft_size", "bufferSize": "fft_size",
                   "minDb": "min_db", "minDbDelta": "min_db_delta"}
        for src, dst in aliases.items():
            if src in data:
                data.setdefault(dst, data.pop(src))
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(**kwargs, extra=extra)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
