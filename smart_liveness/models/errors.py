class LivenessError(Exception):
    """Base class for all verification session errors."""


class ConfigError(LivenessError):
    pass


class CaptureError(LivenessError):
    """The capture trigger failed to produce an image."""


class ClassificationError(LivenessError):
    """The classifier rejected or failed on an image."""


class SessionCancelledError(LivenessError):
    """The run was aborted by the caller."""


class SessionBusyError(LivenessError):
    """A run is already in progress on this controller."""


class InvalidFrameError(LivenessError, ValueError):
    """A frame result or frame list violates the aggregation contract."""
