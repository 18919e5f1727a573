"""
Core - pipeline coordination and background tasks.

This module provides:
    - SniperPipeline: stream -> gate -> single-flight executor -> orchestrator
    - PipelineConfig: gate threshold, stream and shutdown settings
    - BackgroundTasksManager: periodic statistics flush
    - BackgroundTaskConfig: background task intervals
"""

from .pipeline import (
    PipelineConfig,
    SniperPipeline,
)

from .background_tasks import (
    BackgroundTaskConfig,
    BackgroundTasksManager,
)

__all__ = [
    "PipelineConfig",
    "SniperPipeline",
    "BackgroundTaskConfig",
    "BackgroundTasksManager",
]
