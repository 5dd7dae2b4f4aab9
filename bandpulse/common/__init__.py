"""
Common - Shared utilities and pure functions.

- logging/     - Structured logging configuration
- monitoring/  - Per-job resource metrics
- primitives/  - Pure math functions (numpy/scipy only)
"""
