class QuartoRecordError(Exception):
    """Base class for every condition that aborts a run."""


class FatalArgumentError(QuartoRecordError):
    """Raised for invalid command line input, before any side effect."""


class ConfigError(QuartoRecordError):
    """Raised when a settings file cannot be read or validated."""


class PrerequisiteError(QuartoRecordError):
    """Raised when a required external tool is not available."""


class SequenceError(QuartoRecordError):
    """Raised when the list of run items cannot be produced."""


class WorkspaceError(QuartoRecordError):
    """Raised when the workspace cannot be switched to an item."""


class PreviewError(QuartoRecordError):
    """Raised when a preview server cannot be brought up."""


class PreviewAlreadyRunningError(PreviewError):
    """Raised when a second preview is started while one is still live."""


class ReadinessTimeoutError(PreviewError):
    """Raised when the preview does not become ready before the deadline."""


class StreamEndedPrematurelyError(PreviewError):
    """Raised when the preview closes its log stream before it is ready."""


class ScreenRegionError(QuartoRecordError):
    """Raised when the capture region cannot be determined."""


class CaptureFailedError(QuartoRecordError):
    """Raised when the capture tool fails or produces no usable image."""


class CopyFailedError(QuartoRecordError):
    """Raised when an auxiliary file cannot be copied into the output."""


class SlidesError(QuartoRecordError):
    """Raised when the slides document cannot be generated."""
