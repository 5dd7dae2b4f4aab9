"""
Layer 2: TASKS - Job-level computations

Tasks combine primitives into one job's work.
Each task:
- Takes a JobContext (PCM or FFT sequence, sample rate, job id)
- Returns a TaskResult subclass
- Reports progress through the context callback
- Is stateless across calls and safe to run in any worker unit

Usage:
    from bandpulse.modules.analysis.tasks import SpectralAnalysisTask, create_job_context

    context = create_job_context(pcm, sample_rate=44100, job_id="abc")
    result = SpectralAnalysisTask(window_size=1024, hop_size=512).execute_timed(context)
"""

from .base import (
    JobContext,
    TaskResult,
    BaseTask,
    create_job_context,
    ProgressCallback,
)

from .spectral_analysis import (
    SpectralAnalysisResult,
    SpectralAnalysisTask,
)

from .band_features import (
    SliderBounds,
    BandFeatureSeries,
    BandFeatureResult,
    BandFeatureTask,
    compute_bin_index,
    compute_slider_bounds,
    resolve_threshold,
    find_impulses,
    positive_flux,
    adaptive_flux_impulses,
    visible_slice,
)

from .band_filter import (
    FilteredBand,
    BandFilterResult,
    BandFilterTask,
)

from .detection_engines import (
    DetectionEvent,
    DetectionResult,
    DetectionEngine,
    FrameEngine,
    AubioEngine,
    LibrosaEngine,
    SpectralFluxEngine,
    FirstDerivativeEngine,
    SecondDerivativeEngine,
    ZScoreEngine,
    ENGINES,
    get_engine,
    register_engine,
)

from .onset_detection import (
    OnsetDetectionResult,
    OnsetDetectionTask,
)

from .waveform import (
    WaveformResult,
    WaveformTask,
)

__all__ = [
    # Base
    'JobContext',
    'TaskResult',
    'BaseTask',
    'create_job_context',
    'ProgressCallback',
    # Spectral analysis
    'SpectralAnalysisResult',
    'SpectralAnalysisTask',
    # Band features
    'SliderBounds',
    'BandFeatureSeries',
    'BandFeatureResult',
    'BandFeatureTask',
    'compute_bin_index',
    'compute_slider_bounds',
    'resolve_threshold',
    'find_impulses',
    'positive_flux',
    'adaptive_flux_impulses',
    'visible_slice',
    # Band filter
    'FilteredBand',
    'BandFilterResult',
    'BandFilterTask',
    # Onset detection
    'DetectionEvent',
    'DetectionResult',
    'DetectionEngine',
    'FrameEngine',
    'AubioEngine',
    'LibrosaEngine',
    'SpectralFluxEngine',
    'FirstDerivativeEngine',
    'SecondDerivativeEngine',
    'ZScoreEngine',
    'ENGINES',
    'get_engine',
    'register_engine',
    'OnsetDetectionResult',
    'OnsetDetectionTask',
    # Waveform
    'WaveformResult',
    'WaveformTask',
]
