"""Functional tests for modules/analysis/tasks.

Every task runs through execute_timed() on a JobContext, the same way the
worker unit runs it.
"""

import pytest
import numpy as np


def _context(pcm=None, sr=44100, **kwargs):
    from bandpulse.modules.analysis.tasks import create_job_context
    return create_job_context(pcm, sample_rate=sr, job_id="test-job", **kwargs)


# =============================================================================
# JOB CONTEXT / BASE TASK
# =============================================================================

@pytest.mark.unit
class TestJobContext:

    def test_pcm_is_private_read_only_copy(self):
        source = np.ones(16, dtype=np.float32)
        ctx = _context(source)
        source[:] = 5.0

        assert np.all(ctx.pcm == 1.0)
        assert not ctx.pcm.flags.writeable

    def test_bytes_input(self):
        ctx = _context(np.arange(4, dtype="<f4").tobytes())

        np.testing.assert_array_equal(ctx.pcm, [0, 1, 2, 3])
        assert ctx.n_samples == 4

    def test_duration(self):
        ctx = _context(np.zeros(22050, dtype=np.float32), sr=44100)

        assert ctx.duration_sec == pytest.approx(0.5)

    def test_report_progress_without_callback(self):
        _context(np.zeros(4, dtype=np.float32)).report_progress(1, 2)


# =============================================================================
# SPECTRAL ANALYSIS
# =============================================================================

@pytest.mark.unit
class TestSpectralAnalysisTask:

    def test_summary(self, sine_256):
        """256-sample sine, window 64 / hop 64.

        ЧТО ПРОВЕРЯЕМ:
            summary.num_chunks == 4, 32 bins per spectrum, 8-bin preview
        """
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        result = SpectralAnalysisTask(64, 64).execute_timed(_context(sine_256, sr=256))

        assert result.success
        assert result.job_id == "test-job"
        assert result.summary["num_chunks"] == 4
        assert result.summary["window_size"] == 64
        assert result.summary["hop_size"] == 64
        assert result.fft_sequence.shape == (4, 32)
        assert len(result.summary["first_chunk_preview"]) == 8
        assert result.summary["first_chunk_preview"][1] == pytest.approx(0.5, abs=1e-5)
        assert result.summary["chunk_duration_ms"] == pytest.approx(250.0)
        assert result.summary["total_duration_ms"] == pytest.approx(1000.0)
        assert result.display_sequence is None

    def test_durations_zero_without_sample_rate(self, sine_256):
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        result = SpectralAnalysisTask(64, 64).execute_timed(_context(sine_256, sr=None))

        assert result.summary["chunk_duration_ms"] == 0.0
        assert result.summary["total_duration_ms"] == 0.0

    def test_short_buffer_is_empty_not_error(self):
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        result = SpectralAnalysisTask(1024, 512).execute_timed(_context(np.zeros(100, dtype=np.float32)))

        assert result.success
        assert result.empty
        assert result.summary["num_chunks"] == 0
        assert result.summary["first_chunk_preview"] == []
        assert result.fft_sequence.shape == (0, 512)

    def test_display_sequences(self, two_tone):
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        pcm, sr = two_tone
        result = SpectralAnalysisTask(1024, 128, max_frames=50, max_bins=64).execute_timed(_context(pcm, sr))

        assert result.fft_sequence.shape[0] > 50
        assert result.display_sequence.shape == (50, 64)
        norm = result.normalized_display_sequence
        assert norm.shape == (50, 64)
        assert norm.min() >= 0.0 and norm.max() <= 1.0

    def test_normalized_display_averages_log_magnitudes(self):
        """Each display cell is the mean of log-normalized frames, not the log of the mean."""
        from bandpulse.common.primitives import downsample_2d, normalize_log_magnitude
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        rng = np.random.default_rng(11)
        pcm = (rng.standard_normal(44100) * 0.3).astype(np.float32)
        result = SpectralAnalysisTask(1024, 512, max_frames=20, max_bins=16).execute_timed(_context(pcm, 44100))

        expected = downsample_2d(normalize_log_magnitude(result.fft_sequence), 20, 16)
        np.testing.assert_allclose(result.normalized_display_sequence, expected, rtol=0, atol=1e-6)
        log_of_mean = normalize_log_magnitude(result.display_sequence)
        assert np.abs(result.normalized_display_sequence - log_of_mean).max() > 1e-3

    def test_progress_reported(self):
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        calls = []
        ctx = _context(np.zeros(64 * 12, dtype=np.float32),
                       progress_callback=lambda d, t: calls.append((d, t)))
        SpectralAnalysisTask(64, 64, progress_interval=5).execute_timed(ctx)

        assert calls == [(5, 12), (10, 12), (12, 12)]

    def test_non_power_of_two_rejected(self):
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask
        from bandpulse.core.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            SpectralAnalysisTask(1000, 500).execute_timed(_context(np.zeros(4000, dtype=np.float32)))

    def test_to_dict_json_friendly(self, sine_256):
        import json
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask

        result = SpectralAnalysisTask(64, 64).execute_timed(_context(sine_256))
        data = result.to_dict()

        json.dumps(data)
        assert len(data["fft_sequence"]) == 4


# =============================================================================
# BAND FEATURES
# =============================================================================

@pytest.mark.unit
class TestBandFeatureTask:

    BANDS = [
        {"name": "Low", "freq": 100.0},
        {"name": "Mid", "freq": 1000.0, "q": 2.0, "color": "#ff0000"},
    ]

    def _run(self, fft_sequence, sr=44100, hop=512, **kwargs):
        from bandpulse.modules.analysis.tasks import BandFeatureTask, create_job_context

        task = BandFeatureTask(kwargs.pop("bands", self.BANDS), hop, **kwargs)
        return task.execute_timed(create_job_context(sample_rate=sr, fft_sequence=fft_sequence))

    def test_bin_index(self):
        from bandpulse.modules.analysis.tasks import compute_bin_index

        # 512 bins at 44100 Hz: bin width 43.07 Hz
        assert compute_bin_index(1000.0, 512, 44100) == 23
        assert compute_bin_index(0.1, 512, 44100) == 0
        assert compute_bin_index(30000.0, 512, 44100) == 511
        assert compute_bin_index(1000.0, 0, 44100) == 0

    def test_series_lengths_match_fft_sequence(self, random_fft_sequence):
        result = self._run(random_fft_sequence)

        assert result.num_frames == 200
        for series in result.bands:
            assert len(series.magnitudes) == 200
            assert len(series.derivatives) == 200
            assert len(series.second_derivatives) == 200
            assert len(series.impulse_strengths) == 200
            assert len(series.times) == 200

    def test_magnitudes_are_bin_column(self, random_fft_sequence):
        result = self._run(random_fft_sequence)
        mid = result.get_band("Mid")

        assert mid.bin_index == 23
        np.testing.assert_array_equal(mid.magnitudes, random_fft_sequence[:, 23])

    def test_impulse_strength_is_abs_second_derivative(self, random_fft_sequence):
        result = self._run(random_fft_sequence)

        for series in result.bands:
            np.testing.assert_array_equal(series.impulse_strengths, np.abs(series.second_derivatives))
            assert np.all(series.impulse_strengths >= 0)
            assert series.derivatives[0] == 0.0

    def test_out_of_range_threshold_clamped_to_midpoint(self, random_fft_sequence):
        result = self._run(random_fft_sequence, thresholds={"Low": 50.0, "Mid": -3.0})

        for series in result.bands:
            assert series.threshold == pytest.approx((series.slider.min + series.slider.max) / 2)

    def test_in_range_threshold_kept(self, random_fft_sequence):
        result = self._run(random_fft_sequence, thresholds={"Low": 0.05})

        assert result.get_band("Low").threshold == 0.05
        expected = np.flatnonzero(result.get_band("Low").impulse_strengths > 0.05)
        np.testing.assert_array_equal(result.get_band("Low").impulse_indices, expected)

    def test_slider_bounds_small_values(self, random_fft_sequence):
        """Small impulses: slider spans [0, 1] with step 0.01."""
        result = self._run(random_fft_sequence)
        slider = result.get_band("Low").slider

        assert slider.min == 0.0
        assert slider.max == 1.0
        assert slider.step == pytest.approx(0.01)

    def test_slider_bounds_large_values(self):
        from bandpulse.modules.analysis.tasks import compute_slider_bounds

        bounds = compute_slider_bounds(np.array([0.0, 2.0, 5.0]))

        assert (bounds.min, bounds.max) == (0.0, 5.0)
        assert bounds.step == pytest.approx(0.05)

    def test_slider_step_floor(self):
        from bandpulse.modules.analysis.tasks import SliderBounds, resolve_threshold

        bounds = SliderBounds(0.0, 1.0, 0.01)

        assert resolve_threshold(None, bounds) == 0.5
        assert resolve_threshold(float("nan"), bounds) == 0.5
        assert resolve_threshold(1.0, bounds) == 1.0

    def test_visible_range_limits_bounds(self):
        """Bounds come from the visible frames only."""
        fft = np.zeros((100, 64), dtype=np.float32)
        fft[80, 1] = 10.0  # spike outside the visible range
        bands = [{"name": "B", "freq": 345.0}]  # bin width 344.5 Hz at 64 bins

        full = self._run(fft, bands=bands)
        visible = self._run(fft, bands=bands, time_range=(0.0, 50 * 512 / 44100))

        assert full.get_band("B").bin_index == 1
        assert full.get_band("B").slider.max == pytest.approx(20.0)
        assert visible.get_band("B").slider.max == 1.0
        # Impulses are still searched over the full series
        assert 80 in visible.get_band("B").impulse_indices

    def test_empty_fft_sequence(self):
        result = self._run(np.zeros((0, 512), dtype=np.float32))

        assert result.success
        assert result.empty
        assert len(result.bands) == 2
        for series in result.bands:
            assert len(series.magnitudes) == 0
            assert series.threshold == 0.5
            assert len(series.impulse_indices) == 0

    def test_idempotent(self, random_fft_sequence):
        """Identical inputs give bit-identical outputs."""
        a = self._run(random_fft_sequence, thresholds={"Low": 0.02})
        b = self._run(random_fft_sequence, thresholds={"Low": 0.02})

        for sa, sb in zip(a.bands, b.bands):
            assert sa.magnitudes.tobytes() == sb.magnitudes.tobytes()
            assert sa.derivatives.tobytes() == sb.derivatives.tobytes()
            assert sa.second_derivatives.tobytes() == sb.second_derivatives.tobytes()
            assert sa.impulse_strengths.tobytes() == sb.impulse_strengths.tobytes()
            assert sa.slider == sb.slider
            assert sa.threshold == sb.threshold

    def test_band_order_preserved(self, random_fft_sequence):
        result = self._run(random_fft_sequence)

        assert [s.name for s in result.bands] == ["Low", "Mid"]
        assert [s.band_index for s in result.bands] == [0, 1]
        assert result.bands[1].band.color == "#ff0000"
        assert result.to_dict()["bands"][1]["band_index"] == 1

    def test_first_derivative_mode(self, random_fft_sequence):
        from bandpulse.modules.analysis.config import BandFeatureConfig

        result = self._run(random_fft_sequence, config=BandFeatureConfig(impulse_mode="first-derivative"))

        for series in result.bands:
            np.testing.assert_array_equal(series.impulse_strengths, np.abs(series.derivatives))

    def test_z_score_mode(self, random_fft_sequence):
        from bandpulse.common.primitives import normalize_zscore
        from bandpulse.modules.analysis.config import BandFeatureConfig

        result = self._run(random_fft_sequence, config=BandFeatureConfig(impulse_mode="z-score"))

        for series in result.bands:
            np.testing.assert_allclose(series.impulse_strengths, normalize_zscore(series.derivatives))
            assert abs(series.impulse_strengths.mean()) < 1e-9

    def test_magnitude_floor_masks_silent_frames(self, random_fft_sequence):
        from bandpulse.modules.analysis.config import BandFeatureConfig

        fft = random_fft_sequence.copy()
        fft[50:60, :] = 0.0
        plain = self._run(fft).bands[0]
        masked = self._run(fft, config=BandFeatureConfig(magnitude_floor=1e-6)).bands[0]

        assert np.all(masked.impulse_strengths[50:60] == 0.0)
        assert plain.impulse_strengths[50] > 0.0
        audible = masked.magnitudes > 1e-6
        np.testing.assert_array_equal(masked.impulse_strengths[audible], plain.impulse_strengths[audible])
        np.testing.assert_array_equal(masked.second_derivatives, plain.second_derivatives)

    def test_spectral_flux_mode_adaptive_threshold(self):
        from bandpulse.modules.analysis.config import BandFeatureConfig

        fft = np.full((100, 64), 0.1, dtype=np.float32)
        # Rises at 20, 22 and 60; 22 is too close to 20
        fft[[20, 22, 60], :] = 1.0
        result = self._run(fft, bands=[{"name": "x", "freq": 1000.0}],
                           config=BandFeatureConfig(impulse_mode="spectral-flux"))
        series = result.bands[0]

        assert list(np.flatnonzero(series.impulse_strengths)) == [20, 60]
        assert series.impulse_strengths[20] == pytest.approx(0.9, abs=1e-6)
        assert list(series.impulse_indices) == [20, 60]

    def test_spectral_flux_min_separation(self):
        from bandpulse.modules.analysis.tasks import adaptive_flux_impulses, positive_flux

        np.testing.assert_allclose(positive_flux(np.array([1.0, 3.0, 2.0, 5.0])), [0.0, 2.0, 0.0, 3.0])

        flux = np.zeros(30)
        flux[[5, 6, 7, 12]] = 1.0
        kept = adaptive_flux_impulses(flux, window=21, k=2.0, min_separation=3)

        assert list(np.flatnonzero(kept)) == [5, 12]
        assert list(np.flatnonzero(adaptive_flux_impulses(flux, min_separation=1))) == [5, 6, 7, 12]

    def test_unknown_impulse_mode(self):
        from bandpulse.core.errors import ConfigurationError
        from bandpulse.modules.analysis.config import BandFeatureConfig

        with pytest.raises(ConfigurationError):
            BandFeatureConfig(impulse_mode="peak")

    def test_centered_mode_and_smoothing(self, random_fft_sequence):
        from bandpulse.modules.analysis.config import BandFeatureConfig

        config = BandFeatureConfig(derivative_mode="centered", smoothing=4, log_domain=True)
        result = self._run(random_fft_sequence, config=config)

        for series in result.bands:
            assert len(series.impulse_strengths) == 200
            np.testing.assert_array_equal(series.impulse_strengths, np.abs(series.second_derivatives))

    def test_missing_sample_rate(self, random_fft_sequence):
        from bandpulse.core.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            self._run(random_fft_sequence, sr=0)

    def test_to_dict(self, random_fft_sequence):
        import json

        data = self._run(random_fft_sequence).to_dict()

        json.dumps(data)
        assert data["bands"][0]["name"] == "Low"
        assert set(data["bands"][0]["slider"]) == {"min", "max", "step"}


# =============================================================================
# BAND FILTER
# =============================================================================

@pytest.mark.unit
class TestBandFilterTask:

    def test_each_band_filtered_with_progress(self, two_tone):
        from bandpulse.modules.analysis.tasks import BandFilterTask
        from bandpulse.modules.analysis.config import DEFAULT_BANDS

        pcm, sr = two_tone
        calls = []
        result = BandFilterTask(DEFAULT_BANDS).execute_timed(
            _context(pcm, sr, progress_callback=lambda d, t: calls.append((d, t)))
        )

        assert [b.name for b in result.bands] == [b.name for b in DEFAULT_BANDS]
        assert calls == [(i + 1, len(DEFAULT_BANDS)) for i in range(len(DEFAULT_BANDS))]
        for band in result.bands:
            assert band.pcm.shape == pcm.shape
            assert band.pcm.dtype == np.float32

    def test_band_selects_its_tone(self, two_tone):
        from bandpulse.modules.analysis.tasks import BandFilterTask

        pcm, sr = two_tone
        result = BandFilterTask([
            {"name": "low", "freq": 100.0, "q": 4.0},
            {"name": "high", "freq": 1000.0, "q": 4.0},
        ]).execute_timed(_context(pcm, sr))

        low, high = result.bands
        tail = slice(sr // 4, None)
        # 100 Hz tone has amplitude 0.25, 1 kHz tone 0.5
        assert np.max(np.abs(low.pcm[tail])) == pytest.approx(0.25, rel=0.15)
        assert np.max(np.abs(high.pcm[tail])) == pytest.approx(0.5, rel=0.15)

    def test_band_order_independent(self, two_tone):
        """Filter state is local to each band."""
        from bandpulse.modules.analysis.tasks import BandFilterTask

        pcm, sr = two_tone
        a = {"name": "a", "freq": 300.0}
        b = {"name": "b", "freq": 3000.0}
        first = BandFilterTask([a, b]).execute_timed(_context(pcm, sr))
        second = BandFilterTask([b, a]).execute_timed(_context(pcm, sr))

        np.testing.assert_array_equal(first.bands[0].pcm, second.bands[1].pcm)

    def test_band_above_nyquist_rejected(self):
        from bandpulse.modules.analysis.tasks import BandFilterTask
        from bandpulse.core.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            BandFilterTask([{"name": "ultra", "freq": 30000.0}]).execute_timed(
                _context(np.zeros(100, dtype=np.float32), 44100)
            )

    def test_empty_pcm(self):
        from bandpulse.modules.analysis.tasks import BandFilterTask

        result = BandFilterTask([{"name": "x", "freq": 100.0}]).execute_timed(
            _context(np.zeros(0, dtype=np.float32))
        )

        assert result.empty
        assert len(result.bands[0].pcm) == 0


# =============================================================================
# ONSET DETECTION
# =============================================================================

@pytest.mark.unit
class TestDetectionEngines:

    def test_spectral_flux_step(self, step_signal):
        """0 -> 1 step at sample 1024, hop 512.

        ЧТО ПРОВЕРЯЕМ:
            Exactly one event at 1024 / sr with strength > 0.05
        """
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm, sr = step_signal
        result = get_engine("spectral-flux").detect(pcm, sr, OnsetParams(hop_size=512))

        assert len(result.events) == 1
        assert result.events[0].time == pytest.approx(1024 / sr)
        assert result.events[0].strength > 0.05
        assert len(result.detection_function) == 8
        np.testing.assert_allclose(result.times, np.arange(8) * 512 / sr)

    def test_spectral_flux_silence(self):
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        result = get_engine("spectral-flux").detect(np.zeros(8192, dtype=np.float32), 44100, OnsetParams())

        assert result.events == []

    def test_spectral_flux_quiet_rise_gated(self):
        """A rise below min_db never triggers."""
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm = np.zeros(4096, dtype=np.float32)
        pcm[2048:] = 0.06
        gated = get_engine("spectral-flux").detect(pcm, 44100, OnsetParams(min_db=-20.0))
        open_ = get_engine("spectral-flux").detect(pcm, 44100, OnsetParams(min_db=-60.0))

        assert gated.events == []
        assert len(open_.events) == 1

    def test_first_derivative_step(self, step_signal):
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm, sr = step_signal
        result = get_engine("first-derivative").detect(pcm, sr, OnsetParams(hop_size=512))

        assert [e.time for e in result.events] == [pytest.approx(1024 / sr)]
        assert result.events[0].strength == pytest.approx(1.0)

    def test_second_derivative_step(self, step_signal):
        """Step gives +1 then -1 second difference; the -1 frame has no level change."""
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm, sr = step_signal
        result = get_engine("second-derivative").detect(pcm, sr, OnsetParams(hop_size=512))

        np.testing.assert_allclose(result.detection_function[:4], [0.0, 0.0, 1.0, -1.0])
        assert [e.time for e in result.events] == [pytest.approx(1024 / sr)]

    def test_z_score_spike(self):
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm = np.zeros(512 * 20, dtype=np.float32)
        pcm[512 * 10:512 * 11] = 0.8
        result = get_engine("z-score").detect(pcm, 44100, OnsetParams(hop_size=512))

        assert [e.time for e in result.events] == [pytest.approx(10 * 512 / 44100)]
        assert result.events[0].strength > 2.0

    def test_librosa_engine_finds_beats(self, synthetic_audio_with_beats):
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm, sr = synthetic_audio_with_beats
        result = get_engine("librosa").detect(pcm, sr, OnsetParams(hop_size=512))

        assert len(result.events) >= 3
        assert len(result.times) == len(result.detection_function)
        assert all(e.strength is not None for e in result.events)

    def test_aubio_engine(self, synthetic_audio_with_beats):
        pytest.importorskip("aubio")
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.modules.analysis.config import OnsetParams

        pcm, sr = synthetic_audio_with_beats
        result = get_engine("aubio").detect(pcm, sr, OnsetParams(hop_size=256, fft_size=512))

        times = [e.time for e in result.events]
        assert times == sorted(times)
        assert len(times) >= 1

    def test_unknown_engine(self):
        from bandpulse.modules.analysis.tasks import get_engine
        from bandpulse.core.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            get_engine("magic")

    def test_registry_names(self):
        from bandpulse.modules.analysis.tasks import ENGINES

        assert set(ENGINES) == {
            "aubio", "librosa", "spectral-flux", "first-derivative", "second-derivative", "z-score",
        }

    def test_register_custom_engine(self):
        from bandpulse.modules.analysis.tasks import (
            ENGINES, DetectionEngine, DetectionEvent, DetectionResult, get_engine, register_engine,
        )

        class FirstSample(DetectionEngine):
            name = "first-sample"

            def detect(self, pcm, sample_rate, params):
                return DetectionResult(events=[DetectionEvent(time=0.0)])

        register_engine(FirstSample())
        try:
            assert get_engine("first-sample").detect(np.zeros(4), 1, None).events[0].time == 0.0
        finally:
            ENGINES.pop("first-sample", None)


@pytest.mark.unit
class TestOnsetDetectionTask:

    def test_default_engine_step(self, step_signal):
        from bandpulse.modules.analysis.tasks import OnsetDetectionTask

        pcm, sr = step_signal
        result = OnsetDetectionTask(params={"hopSize": 512}).execute_timed(_context(pcm, sr))

        assert result.success
        assert result.engine == "spectral-flux"
        assert result.event_times == [pytest.approx(1024 / sr)]

    def test_unknown_engine_is_error_result(self, step_signal):
        from bandpulse.modules.analysis.tasks import OnsetDetectionTask

        pcm, sr = step_signal
        result = OnsetDetectionTask(engine="magic").execute_timed(_context(pcm, sr))

        assert not result.success
        assert result.error_type == "ConfigurationError"
        assert "magic" in result.error
        assert result.events == []

    def test_uses_channel_zero(self, step_signal):
        from bandpulse.modules.analysis.tasks import OnsetDetectionTask

        pcm, sr = step_signal
        stereo = np.stack([pcm, np.zeros_like(pcm)])
        result = OnsetDetectionTask().execute_timed(_context(stereo, sr))

        assert len(result.events) == 1

    def test_empty_pcm(self):
        from bandpulse.modules.analysis.tasks import OnsetDetectionTask

        result = OnsetDetectionTask().execute_timed(_context(np.zeros(0, dtype=np.float32)))

        assert result.success
        assert result.empty
        assert result.events == []


# =============================================================================
# WAVEFORM
# =============================================================================

@pytest.mark.unit
class TestWaveformTask:

    def test_zeros(self):
        from bandpulse.modules.analysis.tasks import WaveformTask

        result = WaveformTask(10).execute_timed(_context(np.zeros(1000, dtype=np.float32), 1000))

        assert result.num_points == 10
        assert np.all(result.waveform == 0.0)
        assert result.duration == pytest.approx(1.0)
        assert result.sample_rate == 1000
        assert result.interleaved.shape == (20,)

    def test_invariants(self, two_tone):
        from bandpulse.modules.analysis.tasks import WaveformTask

        pcm, sr = two_tone
        result = WaveformTask(800).execute_timed(_context(pcm, sr))

        assert result.waveform.shape == (800, 2)
        assert np.all(result.waveform[:, 0] <= result.waveform[:, 1])
        assert np.all(np.abs(result.waveform) <= 1.0)

    def test_invalid_points(self):
        from bandpulse.modules.analysis.tasks import WaveformTask
        from bandpulse.core.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            WaveformTask(0)
