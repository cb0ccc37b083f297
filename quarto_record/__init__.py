"""
Quarto Record

Captures a screenshot of a live ``quarto preview`` for every commit of a
project's history, or for every profile of a profile group.
"""

from .config import Settings, load_settings
from .orchestrator import RunOrchestrator, build_orchestrator
from .preview import PreviewController, QuartoLogDetector, ReadinessDetector
from .models import PreviewHandle, PreviewRequest, RunItem, RunOptions, ScreenRegion

__all__ = [
    'PreviewController',
    'PreviewHandle',
    'PreviewRequest',
    'QuartoLogDetector',
    'ReadinessDetector',
    'RunItem',
    'RunOptions',
    'RunOrchestrator',
    'ScreenRegion',
    'Settings',
    'build_orchestrator',
    'load_settings',
]
