"""Arcas installer engine (declarative, phase-ordered).

Core design goals:
- Load-once, validated configuration
- Architecture-aware effective components
- Deterministic command ordering
- Safe dry runs
- Complete per-command results and log, even on failure
"""

__all__ = []
