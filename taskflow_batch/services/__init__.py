"""Sweep execution and the in-process scheduler."""

from taskflow_batch.services.executor import SweepExecutor

__all__ = ["SweepExecutor"]
