"""
Sentinel Monitor Package

Per-unit polling of cgroup process lists against a trusted baseline.
"""

from .monitor import UnitMonitor

__all__ = ["UnitMonitor"]
