#!/usr/bin/env python3
"""
bandpulse - command line entry point.

Decodes an audio file, runs one analysis job through the dispatcher and
prints a JSON summary to stdout. Logs go to stderr.

Usage:
    bandpulse analyze track.mp3 --window-size 1024 --hop-size 512
    bandpulse bands track.mp3 --band Kick:60 --band Snare:200:2 --threshold Kick=0.02
    bandpulse filter track.mp3 --output-dir out/
    bandpulse onsets track.mp3 --engine spectral-flux
    bandpulse waveform track.mp3 --points 800 --full
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

from bandpulse import __version__
from bandpulse.common.logging import get_logger, setup_logging
from bandpulse.core.adapters import load_audio, write_audio
from bandpulse.core.config import get_settings
from bandpulse.core.errors import BandPulseError
from bandpulse.modules.analysis.config import (
    DEFAULT_BANDS, IMPULSE_MODES, BandDefinition, BandFeatureConfig, OnsetParams,
)
from bandpulse.modules.analysis.tasks import ENGINES
from bandpulse.common.primitives import DERIVATIVE_MODES, SUPPORTED_WINDOWS
from bandpulse.services import (
    AnalyzeRequest,
    BandDataRequest,
    BandFilterRequest,
    JobDispatcher,
    JobRequest,
    OnsetRequest,
    ProgressMessage,
    WaveformRequest,
)

logger = get_logger(__name__)


def parse_band(value: str) -> BandDefinition:
    """NAME:FREQ[:Q[:COLOR]]"""
    parts = value.split(":")
    if len(parts) < 2:
        raise argparse.ArgumentTypeError(f"Band must be NAME:FREQ[:Q[:COLOR]], got '{value}'")
    try:
        freq = float(parts[1])
        q = float(parts[2]) if len(parts) > 2 and parts[2] else 1.0
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid band frequency or Q in '{value}'")
    color = parts[3] if len(parts) > 3 else "#ffffff"
    try:
        return BandDefinition(parts[0], freq, q, color)
    except BandPulseError as e:
        raise argparse.ArgumentTypeError(e.message)


def parse_threshold(value: str) -> tuple:
    """NAME=VALUE"""
    name, sep, raw = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Threshold must be NAME=VALUE, got '{value}'")
    try:
        return name, float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid threshold value in '{value}'")


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="bandpulse", description="Band and onset analysis of audio files")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--workers", type=int, default=None, help="Worker units (default: BANDPULSE_WORKERS)")
    parser.add_argument("--backend", choices=["process", "thread"], default=None,
                        help="Worker backend (default: BANDPULSE_WORKER_BACKEND)")
    parser.add_argument("--sr", type=int, default=settings.sample_rate,
                        help="Decode sample rate, 0 = native (default: %(default)s)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--no-progress", action="store_true", help="Hide progress bars")
    parser.add_argument("--full", action="store_true", help="Print full arrays instead of a summary")

    sub = parser.add_subparsers(dest="command", required=True)

    def _audio(p):
        p.add_argument("audio", type=str, help="Audio file")

    def _window(p):
        p.add_argument("--window-size", type=int, default=1024)
        p.add_argument("--hop-size", type=int, default=512)
        p.add_argument("--window", choices=SUPPORTED_WINDOWS, default="rectangular")

    def _bands(p):
        p.add_argument("--band", dest="bands", type=parse_band, action="append",
                       help="NAME:FREQ[:Q[:COLOR]] (repeatable; default: built-in bands)")

    p = sub.add_parser("analyze", help="FFT sequence summary")
    _audio(p)
    _window(p)
    p.add_argument("--max-frames", type=int, default=None)
    p.add_argument("--max-bins", type=int, default=None)

    p = sub.add_parser("bands", help="Per-band magnitude, derivatives and impulses")
    _audio(p)
    _window(p)
    _bands(p)
    p.add_argument("--threshold", dest="thresholds", type=parse_threshold, action="append",
                   help="NAME=VALUE (repeatable)")
    p.add_argument("--start", type=float, default=None, help="Visible range start (s)")
    p.add_argument("--end", type=float, default=None, help="Visible range end (s)")
    p.add_argument("--derivative-mode", choices=DERIVATIVE_MODES, default="forward")
    p.add_argument("--derivative-window", type=int, default=1)
    p.add_argument("--smoothing", type=int, default=1)
    p.add_argument("--log-domain", action="store_true")
    p.add_argument("--impulse-mode", choices=IMPULSE_MODES, default="second-derivative")
    p.add_argument("--magnitude-floor", type=float, default=None,
                   help="Zero impulse strength where magnitude <= this (e.g. 1e-6)")

    p = sub.add_parser("filter", help="Bandpass filter bank, one WAV per band")
    _audio(p)
    _bands(p)
    p.add_argument("--output-dir", "-o", type=str, default="bands")

    p = sub.add_parser("onsets", help="Onset detection")
    _audio(p)
    p.add_argument("--engine", choices=sorted(ENGINES), default=settings.default_engine)
    p.add_argument("--hop-size", type=int, default=512)
    p.add_argument("--fft-size", type=int, default=1024)
    p.add_argument("--method", default="default", help="aubio onset method")
    p.add_argument("--min-db", type=float, default=-60.0)
    p.add_argument("--min-db-delta", type=float, default=3.0)

    p = sub.add_parser("waveform", help="Min/max waveform envelope")
    _audio(p)
    p.add_argument("--points", type=int, default=800)

    return parser


class ProgressBar:
    """tqdm bar fed by dispatcher progress messages."""

    def __init__(self, desc: str, disable: bool = False):
        self.bar = tqdm(desc=desc, total=0, unit="step", disable=disable, file=sys.stderr, leave=False)

    def __call__(self, message: ProgressMessage) -> None:
        if self.bar.total != message.total:
            self.bar.total = message.total
        self.bar.n = message.processed
        self.bar.refresh()

    def close(self) -> None:
        self.bar.close()


def run_job(dispatcher: JobDispatcher, request: JobRequest, desc: str, quiet: bool):
    bar = ProgressBar(desc, disable=quiet)
    try:
        return dispatcher.run(request, on_progress=bar)
    finally:
        bar.close()


def _band_summary(series) -> Dict[str, Any]:
    return {
        "name": series.name,
        "band_index": series.band_index,
        "freq": series.band.freq,
        "bin_index": series.bin_index,
        "slider": series.slider.to_dict(),
        "threshold": series.threshold,
        "impulse_count": int(len(series.impulse_indices)),
        "impulse_times": [round(float(t), 4) for t in series.impulse_times],
    }


def command_analyze(args, dispatcher, pcm, sr) -> Dict[str, Any]:
    result = run_job(dispatcher, AnalyzeRequest(
        pcm, args.window_size, args.hop_size, sample_rate=sr,
        max_frames=args.max_frames, max_bins=args.max_bins, window=args.window,
    ), "analyze", args.no_progress)
    if args.full:
        return result.to_dict()
    return {"summary": result.summary, "processing_time_sec": result.processing_time_sec}


def command_bands(args, dispatcher, pcm, sr) -> Dict[str, Any]:
    analysis = run_job(dispatcher, AnalyzeRequest(
        pcm, args.window_size, args.hop_size, sample_rate=sr, window=args.window,
    ), "analyze", args.no_progress)

    time_range = None
    if args.start is not None or args.end is not None:
        time_range = (args.start or 0.0, args.end if args.end is not None else len(pcm) / sr)

    result = run_job(dispatcher, BandDataRequest(
        fft_sequence=analysis.fft_sequence,
        bands=args.bands or DEFAULT_BANDS,
        sample_rate=sr,
        hop_size=args.hop_size,
        thresholds=dict(args.thresholds or []),
        time_range=time_range,
        config=BandFeatureConfig(
            derivative_mode=args.derivative_mode,
            derivative_window=args.derivative_window,
            smoothing=args.smoothing,
            log_domain=args.log_domain,
            impulse_mode=args.impulse_mode,
            magnitude_floor=args.magnitude_floor,
        ),
    ), "bands", args.no_progress)
    if args.full:
        return result.to_dict()
    return {"num_frames": result.num_frames, "bands": [_band_summary(s) for s in result.bands]}


def command_filter(args, dispatcher, pcm, sr) -> Dict[str, Any]:
    result = run_job(dispatcher, BandFilterRequest(pcm, sr, args.bands or DEFAULT_BANDS), "filter", args.no_progress)
    out_dir = Path(args.output_dir)
    stem = Path(args.audio).stem
    written: List[str] = []
    for band in result.bands:
        safe_name = band.name.lower().replace(" ", "_")
        written.append(str(write_audio(out_dir / f"{stem}_{safe_name}.wav", band.pcm, sr)))
    return {"sample_rate": sr, "files": written}


def command_onsets(args, dispatcher, pcm, sr) -> Dict[str, Any]:
    params = OnsetParams(
        hop_size=args.hop_size,
        fft_size=args.fft_size,
        method=args.method,
        min_db=args.min_db,
        min_db_delta=args.min_db_delta,
    )
    result = run_job(dispatcher, OnsetRequest(pcm, sr, params, engine=args.engine), "onsets", args.no_progress)
    if args.full:
        return result.to_dict()
    return {
        "engine": result.engine,
        "error": result.error,
        "event_count": len(result.events),
        "events": [e.to_dict() for e in result.events],
    }


def command_waveform(args, dispatcher, pcm, sr) -> Dict[str, Any]:
    result = run_job(dispatcher, WaveformRequest(pcm, sr, args.points), "waveform", args.no_progress)
    if args.full:
        return result.to_dict()
    return {
        "num_points": result.num_points,
        "duration": result.duration,
        "sample_rate": result.sample_rate,
        "peak": float(abs(result.waveform).max()) if result.num_points else 0.0,
    }


COMMANDS = {
    "analyze": command_analyze,
    "bands": command_bands,
    "filter": command_filter,
    "onsets": command_onsets,
    "waveform": command_waveform,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()

    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, component="cli")

    try:
        pcm, sr = load_audio(args.audio, sr=args.sr)
        logger.info("Audio loaded", data={"path": args.audio, "sample_rate": sr, "n_samples": len(pcm)})

        with JobDispatcher(workers=args.workers, backend=args.backend) as dispatcher:
            output = COMMANDS[args.command](args, dispatcher, pcm, sr)
    except BandPulseError as e:
        print(json.dumps({"error": e.to_dict()}, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
