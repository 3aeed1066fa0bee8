"""
release-train-planner — package root

File: src/release_train/__init__.py
Last updated: 2026-10-18

Purpose
- Agile Release Train planning for SAFe Program Increments: dependency validation,
  capacity-aware iteration allocation, working-software gates, value-delivery
  timing and ART readiness scoring.

Import boundary
- No side effects at import time (no config loading, no logging init).
- Public planning API lives in ``release_train.planning``; domain records in
  ``release_train.domain``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
