"""
Architectural Invariant Tests.

Tests that MUST pass to ensure system integrity.
These verify critical rules that cannot be violated.
"""

import ast
import pickle
import numpy as np
import pytest
from pathlib import Path
from typing import Set, List, Tuple

PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_ROOT = PROJECT_ROOT / "bandpulse"
PRIMITIVES_DIR = PACKAGE_ROOT / "common" / "primitives"


# =============================================================================
# Helper Functions
# =============================================================================

def get_imports_from_file(file_path: Path) -> Tuple[Set[str], List[Tuple[str, str]]]:
    """Parse file and return all imports."""
    with open(file_path, 'r', encoding='utf-8') as f:
        tree = ast.parse(f.read())

    imports = set()
    from_imports = []

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.add(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                imports.add(node.module)
                for alias in node.names:
                    from_imports.append((node.module, alias.name))

    return imports, from_imports


def primitive_files() -> List[Path]:
    return sorted(p for p in PRIMITIVES_DIR.glob("*.py") if p.name != "__init__.py")


# =============================================================================
# Invariant 1: Primitives are pure numpy/scipy
# =============================================================================

@pytest.mark.invariant
class TestInvariantPurePrimitives:
    """Primitives never decode audio or reach into upper layers."""

    FORBIDDEN_ROOTS = {"librosa", "soundfile", "aubio", "tqdm"}

    @pytest.mark.parametrize("primitive_file", primitive_files(), ids=lambda p: p.name)
    def test_no_audio_libraries_in_primitives(self, primitive_file: Path):
        imports, _ = get_imports_from_file(primitive_file)
        roots = {name.split('.')[0] for name in imports}

        assert not roots & self.FORBIDDEN_ROOTS, f"{primitive_file.name} imports {roots & self.FORBIDDEN_ROOTS}"

    @pytest.mark.parametrize("primitive_file", primitive_files(), ids=lambda p: p.name)
    def test_primitives_no_upper_layer_imports(self, primitive_file: Path):
        imports, _ = get_imports_from_file(primitive_file)

        for name in imports:
            assert not name.startswith("bandpulse.modules"), f"{primitive_file.name} imports {name}"
            assert not name.startswith("bandpulse.services"), f"{primitive_file.name} imports {name}"

    def test_tasks_do_not_import_services(self):
        tasks_dir = PACKAGE_ROOT / "modules" / "analysis" / "tasks"
        for path in tasks_dir.glob("*.py"):
            imports, _ = get_imports_from_file(path)
            assert not any(name.startswith("bandpulse.services") for name in imports), path.name


# =============================================================================
# Invariant 2: No shared mutable FFT state
# =============================================================================

@pytest.mark.invariant
class TestInvariantNoSharedState:

    def test_spectrum_module_has_no_context_singleton(self):
        from bandpulse.common.primitives import spectrum

        for name, value in vars(spectrum).items():
            assert not isinstance(value, spectrum.SpectrumContext), f"module-level SpectrumContext '{name}'"

    def test_concurrent_tasks_match_sequential(self, two_tone):
        """Tasks run in parallel threads give the same bits as run alone."""
        from concurrent.futures import ThreadPoolExecutor
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask, create_job_context

        pcm, sr = two_tone
        sizes = [(256, 128), (512, 256), (1024, 512), (2048, 1024)]

        def run(size):
            task = SpectralAnalysisTask(*size)
            return task.execute_timed(create_job_context(pcm, sample_rate=sr)).fft_sequence

        sequential = [run(s) for s in sizes]
        with ThreadPoolExecutor(max_workers=4) as pool:
            concurrent = list(pool.map(run, sizes))

        for a, b in zip(sequential, concurrent):
            assert a.tobytes() == b.tobytes()


# =============================================================================
# Invariant 3: Job data is private and read-only
# =============================================================================

@pytest.mark.invariant
class TestInvariantJobOwnership:

    def test_job_context_pcm_read_only(self):
        from bandpulse.modules.analysis.tasks import create_job_context

        ctx = create_job_context(np.zeros(16, dtype=np.float32), sample_rate=16)

        with pytest.raises(ValueError):
            ctx.pcm[0] = 1.0

    def test_fft_sequence_float32_contiguous(self, two_tone):
        from bandpulse.modules.analysis.tasks import SpectralAnalysisTask, create_job_context

        pcm, sr = two_tone
        fft = SpectralAnalysisTask(1024, 512).execute_timed(create_job_context(pcm, sample_rate=sr)).fft_sequence

        assert fft.dtype == np.float32
        assert fft.flags.c_contiguous
        assert fft.shape[1] == 512


# =============================================================================
# Invariant 4: Everything that crosses the worker boundary pickles
# =============================================================================

@pytest.mark.invariant
class TestInvariantPicklable:

    def test_requests(self, two_tone, random_fft_sequence):
        from bandpulse.services import (
            AnalyzeRequest, BandDataRequest, BandFilterRequest, OnsetRequest, WaveformRequest,
        )
        from bandpulse.modules.analysis.config import DEFAULT_BANDS

        pcm, sr = two_tone
        requests = [
            AnalyzeRequest(pcm, 1024, 512, sample_rate=sr),
            BandDataRequest(random_fft_sequence, DEFAULT_BANDS, sr, 512),
            BandFilterRequest(pcm, sr, DEFAULT_BANDS),
            OnsetRequest(pcm, sr),
            WaveformRequest(pcm, sr, 100),
        ]
        for request in requests:
            pickle.loads(pickle.dumps(request.detach()))

    def test_results_and_messages(self, two_tone):
        from bandpulse.modules.analysis.tasks import (
            SpectralAnalysisTask, OnsetDetectionTask, WaveformTask, create_job_context,
        )
        from bandpulse.services import ResultMessage, ErrorMessage
        from bandpulse.core.errors import ConfigurationError

        pcm, sr = two_tone
        ctx = create_job_context(pcm, sample_rate=sr, job_id="pickle-job")
        for task in (SpectralAnalysisTask(1024, 512), OnsetDetectionTask(), WaveformTask(50)):
            message = ResultMessage(job_id="pickle-job", result=task.execute_timed(ctx))
            clone = pickle.loads(pickle.dumps(message))
            assert clone.result.job_id == "pickle-job"

        error = ErrorMessage(job_id="pickle-job", error=ConfigurationError("x").to_dict())
        assert pickle.loads(pickle.dumps(error)).error["error"] == "ConfigurationError"

    def test_every_message_carries_job_id(self):
        import dataclasses
        from bandpulse.services import StartedMessage, ProgressMessage, ResultMessage, ErrorMessage

        for cls in (StartedMessage, ProgressMessage, ResultMessage, ErrorMessage):
            names = [f.name for f in dataclasses.fields(cls)]
            assert names[0] == "job_id"


# =============================================================================
# Invariant 5: Request kinds are unique
# =============================================================================

@pytest.mark.invariant
class TestInvariantRequestKinds:

    def test_kinds_unique(self):
        from bandpulse.services import REQUEST_KINDS

        assert len(REQUEST_KINDS) == len(set(REQUEST_KINDS)) == 5
