"""
Detection Engines - Pluggable onset/transient detectors.

Every engine takes channel-0 PCM, a sample rate and OnsetParams and
returns a DetectionResult (events, detection function, frame times).

Engines:
    aubio              # aubio.onset, optional dependency
    librosa            # onset strength envelope + peak picking
    spectral-flux      # mean |x| per hop frame, positive rise > flux_threshold
    first-derivative   # frame-mean first difference
    second-derivative  # frame-mean second difference
    z-score            # frame-mean z-score

The frame-based engines gate events on level: a frame only triggers when
its level (dB of the frame statistic) is above min_db and differs from
the previous frame by more than min_db_delta.
"""

import librosa
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from bandpulse.common.logging import get_logger
from bandpulse.core.errors import ConfigurationError
from bandpulse.modules.analysis.config import OnsetParams

logger = get_logger(__name__)

# Floor added before log10 so silent frames map to about -240 dB
DB_EPSILON = 1e-12


@dataclass
class DetectionEvent:
    """A detected onset: time in seconds and optional strength."""
    time: float
    strength: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'time': self.time}
        if self.strength is not None:
            data['strength'] = self.strength
        return data


@dataclass
class DetectionResult:
    """Engine output; events are in computation order."""
    events: List[DetectionEvent] = field(default_factory=list)
    detection_function: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    times: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))

    @property
    def event_times(self) -> np.ndarray:
        return np.array([e.time for e in self.events], dtype=np.float64)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'events': [e.to_dict() for e in self.events],
            'detection_function': np.asarray(self.detection_function).tolist(),
            'times': np.asarray(self.times).tolist(),
        }


def to_db(level: np.ndarray) -> np.ndarray:
    return 20.0 * np.log10(np.abs(level) + DB_EPSILON)


def level_gate(db: np.ndarray, params: OnsetParams) -> np.ndarray:
    """
    Boolean mask of frames passing the level gates.

    Frame 0 has no predecessor, so only its absolute level is checked.
    """
    delta = np.zeros_like(db)
    delta[1:] = np.diff(db)
    passes_delta = np.abs(delta) > params.min_db_delta
    if len(passes_delta):
        passes_delta[0] = True
    return (db > params.min_db) & passes_delta


def hop_frames(pcm: np.ndarray, hop_size: int) -> np.ndarray:
    """Non-overlapping hop-sized frames; the trailing partial frame is dropped."""
    n_frames = len(pcm) // hop_size
    return pcm[:n_frames * hop_size].reshape(n_frames, hop_size)


class DetectionEngine(ABC):
    """
    Base class for onset detection engines.

    Engines are stateless; everything per-call lives in detect().
    """

    name: str = ""

    @abstractmethod
    def detect(self, pcm: np.ndarray, sample_rate: int, params: OnsetParams) -> DetectionResult:
        """
        Run detection over a mono buffer.

        Args:
            pcm: Channel-0 float32 PCM
            sample_rate: Sample rate in Hz
            params: Shared onset parameters

        Returns:
            DetectionResult
        """
        pass


class FrameEngine(DetectionEngine):
    """Engines computed from one statistic per hop frame."""

    def frame_times(self, n_frames: int, sample_rate: int, hop_size: int) -> np.ndarray:
        return np.arange(n_frames, dtype=np.float64) * hop_size / sample_rate

    def detect(self, pcm: np.ndarray, sample_rate: int, params: OnsetParams) -> DetectionResult:
        frames = hop_frames(np.asarray(pcm, dtype=np.float64), params.hop_size)
        if len(frames) == 0:
            return DetectionResult()
        times = self.frame_times(len(frames), sample_rate, params.hop_size)
        function, strengths, triggered = self.evaluate(frames, params)
        events = [
            DetectionEvent(time=float(times[i]), strength=float(strengths[i]))
            for i in np.flatnonzero(triggered)
        ]
        return DetectionResult(events=events, detection_function=function, times=times)

    @abstractmethod
    def evaluate(self, frames: np.ndarray, params: OnsetParams):
        """Return (detection_function, strengths, triggered_mask)."""
        pass


class SpectralFluxEngine(FrameEngine):
    """
    Positive rise of mean |x| between consecutive hop frames.

    Time-domain proxy for spectral flux; the detection function is the
    per-frame mean magnitude itself.
    """

    name = "spectral-flux"

    def evaluate(self, frames: np.ndarray, params: OnsetParams):
        mag = np.mean(np.abs(frames), axis=1)
        flux = np.zeros_like(mag)
        flux[1:] = np.diff(mag)
        triggered = (flux > params.flux_threshold) & level_gate(to_db(mag), params)
        triggered[0] = False
        return mag, flux, triggered


class FirstDerivativeEngine(FrameEngine):
    """First difference of frame means; previous mean starts at 0."""

    name = "first-derivative"

    def evaluate(self, frames: np.ndarray, params: OnsetParams):
        avg = np.mean(frames, axis=1)
        diff = np.diff(avg, prepend=0.0)
        triggered = (np.abs(diff) > params.derivative_threshold) & level_gate(to_db(avg), params)
        triggered[:1] = False
        return diff, diff, triggered


class SecondDerivativeEngine(FrameEngine):
    """Second difference of frame means; earlier values start at 0."""

    name = "second-derivative"

    def evaluate(self, frames: np.ndarray, params: OnsetParams):
        avg = np.mean(frames, axis=1)
        diff = np.diff(avg, prepend=0.0)
        second = np.diff(diff, prepend=0.0)
        triggered = (np.abs(second) > params.derivative_threshold) & level_gate(to_db(avg), params)
        triggered[:2] = False
        return second, second, triggered


class ZScoreEngine(FrameEngine):
    """Z-score of frame means over the whole buffer."""

    name = "z-score"

    def evaluate(self, frames: np.ndarray, params: OnsetParams):
        avg = np.mean(frames, axis=1)
        std = np.std(avg)
        z = (avg - np.mean(avg)) / std if std > 0 else np.zeros_like(avg)
        triggered = (np.abs(z) > params.zscore_threshold) & level_gate(to_db(avg), params)
        return z, z, triggered


class AubioEngine(DetectionEngine):
    """
    aubio onset detector fed hop-sized frames.

    Onsets reported by aubio are kept only when the frame's mean |x| level
    passes min_db and moved more than min_db_delta since the previous onset.
    Requires the optional `aubio` package.
    """

    name = "aubio"

    def _load(self):
        try:
            import aubio
            return aubio
        except ImportError as e:
            raise ConfigurationError(
                "The aubio engine requires the 'aubio' package (pip install bandpulse[onsets])",
                data={"engine": self.name},
                cause=e,
            )

    def detect(self, pcm: np.ndarray, sample_rate: int, params: OnsetParams) -> DetectionResult:
        aubio = self._load()
        frames = hop_frames(np.asarray(pcm, dtype=np.float32), params.hop_size)
        if len(frames) == 0:
            return DetectionResult()

        onset = aubio.onset(params.method, params.fft_size, params.hop_size, int(sample_rate))
        if "threshold" in params.extra:
            onset.set_threshold(float(params.extra["threshold"]))
        if "silence" in params.extra:
            onset.set_silence(float(params.extra["silence"]))

        events = []
        prev_db = None
        for frame in frames:
            frame = np.ascontiguousarray(frame, dtype=aubio.float_type)
            if not onset(frame)[0]:
                continue
            db = float(to_db(np.mean(np.abs(frame))))
            if db > params.min_db and (prev_db is None or abs(db - prev_db) > params.min_db_delta):
                events.append(DetectionEvent(time=float(onset.get_last_s())))
            prev_db = db

        return DetectionResult(events=events)


class LibrosaEngine(DetectionEngine):
    """
    librosa onset strength envelope with librosa peak picking.

    Strength of each event is the envelope value at its frame.
    """

    name = "librosa"

    def detect(self, pcm: np.ndarray, sample_rate: int, params: OnsetParams) -> DetectionResult:
        y = np.asarray(pcm, dtype=np.float32)
        if len(y) < params.hop_size:
            return DetectionResult()

        n_fft = min(params.fft_size, len(y))
        envelope = librosa.onset.onset_strength(
            y=y, sr=sample_rate, hop_length=params.hop_size, n_fft=n_fft
        )
        onset_frames = librosa.onset.onset_detect(
            onset_envelope=envelope,
            sr=sample_rate,
            hop_length=params.hop_size,
            backtrack=bool(params.extra.get("backtrack", False)),
            units="frames",
        )
        times = librosa.frames_to_time(np.arange(len(envelope)), sr=sample_rate, hop_length=params.hop_size)
        events = [
            DetectionEvent(time=float(times[f]), strength=float(envelope[f]))
            for f in onset_frames
        ]
        return DetectionResult(
            events=events,
            detection_function=envelope.astype(np.float64),
            times=np.asarray(times, dtype=np.float64),
        )


ENGINES: Dict[str, DetectionEngine] = {
    engine.name: engine
    for engine in (
        AubioEngine(),
        LibrosaEngine(),
        SpectralFluxEngine(),
        FirstDerivativeEngine(),
        SecondDerivativeEngine(),
        ZScoreEngine(),
    )
}


def get_engine(name: str) -> DetectionEngine:
    """Look up an engine by name; unknown names raise ConfigurationError."""
    engine = ENGINES.get(name)
    if engine is None:
        raise ConfigurationError(
            f"Unknown engine: {name}",
            data={"engine": name, "available": sorted(ENGINES)},
        )
    return engine


def register_engine(engine: DetectionEngine) -> None:
    """Add or replace an engine in the registry."""
    if not engine.name:
        raise ConfigurationError("Detection engine must have a name")
    ENGINES[engine.name] = engine
    logger.debug("Detection engine registered", data={"engine": engine.name})
