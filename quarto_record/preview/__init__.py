from .controller import PreviewController
from .process_table import ProcessTable
from .readiness import Fatal, QuartoLogDetector, ReadinessDetector, Ready

__all__ = [
    'PreviewController',
    'ProcessTable',
    'QuartoLogDetector',
    'ReadinessDetector',
    'Ready',
    'Fatal',
]
