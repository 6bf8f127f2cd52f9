"""Orchestration of the detection pipeline and per-source monitoring timers."""

from .monitor_registry import MonitorRegistry, interval_for
from .orchestrator import PipelineOrchestrator, PipelineRun

__all__ = [
    "MonitorRegistry",
    "PipelineOrchestrator",
    "PipelineRun",
    "interval_for",
]
