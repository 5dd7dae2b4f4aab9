"""
Analysis module - band, onset and waveform analysis of PCM buffers.

config: band definitions and parameter presets
tasks: job-level computations built on bandpulse.common.primitives
"""
