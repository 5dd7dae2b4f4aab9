"""
Layer 1: PRIMITIVES - Pure numeric building blocks.

No librosa, no I/O, no logging side effects beyond error construction.
Tasks combine these into job-level computations.

Usage:
    from bandpulse.common.primitives import ChunkSequence, compute_fft_sequence

    chunks = ChunkSequence(pcm, window_size=1024, hop_size=512)
    fft_sequence = compute_fft_sequence(pcm, 1024, 512)
"""

from .chunking import (
    PCMInput,
    ChunkSequence,
    as_pcm,
    to_mono,
    first_channel,
    chunk_pcm,
    count_chunks,
    validate_window,
)

from .spectrum import (
    ProgressCallback,
    SpectrumContext,
    SUPPORTED_WINDOWS,
    FIRST_CHUNK_PREVIEW_BINS,
    compute_fft_sequence,
    require_chunks,
    normalize_log_magnitude,
    downsample_2d,
    is_power_of_two,
)

from .filtering import (
    DERIVATIVE_MODES,
    biquad_bandpass_coefficients,
    biquad_bandpass,
    moving_average,
    moving_median,
    moving_mad,
    nth_derivative,
    normalize_zscore,
)

from .envelope import (
    segment_edges,
    downsample_minmax,
    interleave_pairs,
)

__all__ = [
    # Chunking
    'PCMInput',
    'ChunkSequence',
    'as_pcm',
    'to_mono',
    'first_channel',
    'chunk_pcm',
    'count_chunks',
    'validate_window',
    # Spectrum
    'ProgressCallback',
    'SpectrumContext',
    'SUPPORTED_WINDOWS',
    'FIRST_CHUNK_PREVIEW_BINS',
    'compute_fft_sequence',
    'require_chunks',
    'normalize_log_magnitude',
    'downsample_2d',
    'is_power_of_two',
    # Filtering
    'DERIVATIVE_MODES',
    'biquad_bandpass_coefficients',
    'biquad_bandpass',
    'moving_average',
    'moving_median',
    'moving_mad',
    'nth_derivative',
    'normalize_zscore',
    # Envelope
    'segment_edges',
    'downsample_minmax',
    'interleave_pairs',
]
