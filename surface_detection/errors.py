"""
Exception hierarchy for the surface detection service.

Startup problems (bad configuration, stages that refuse to initialize) are
fatal. Stage problems are caught by the pipeline controller and reported
through the response flags. Unsupported actions are request-level failures.
"""

from typing import Optional


class SurfaceDetectionError(Exception):
    """Base exception for all surface detection service errors"""

    def __init__(self, message: str, module: Optional[str] = None):
        self.message = message
        self.module = module
        super().__init__(self.message)

    def __str__(self):
        if self.module:
            return f"{self.message} | Module: {self.module}"
        return self.message


class ConfigurationError(SurfaceDetectionError):
    """Raised when configuration is missing or malformed"""
    pass


class StartupError(SurfaceDetectionError):
    """Raised when a stage fails to initialize"""
    pass


class StageError(SurfaceDetectionError):
    """Raised when a stage call fails"""
    pass


class StageTimeoutError(StageError):
    """Raised when a stage call exceeds the caller's timeout"""
    pass


class UnsupportedActionError(SurfaceDetectionError, ValueError):
    """Raised when a request names an action the service does not know"""
    pass
