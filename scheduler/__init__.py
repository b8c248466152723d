"""Background tasks for booking lifecycle."""

from .lifecycle import LifecycleScheduler, SweepResult, run_lifecycle_sweep

__all__ = ["LifecycleScheduler", "SweepResult", "run_lifecycle_sweep"]
