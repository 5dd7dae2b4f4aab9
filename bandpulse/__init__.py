"""
BandPulse - Audio analysis core for band visualization and impulse triggering.

Clean Architecture structure:
- core/      - Application core (config, errors, adapters)
- common/    - Shared utilities (logging, monitoring, primitives)
- modules/   - Business modules (analysis tasks)
- services/  - Job dispatcher and worker pool
"""

__version__ = "0.1.0"
