"""
Exception hierarchy for the localizer.

Pipeline-fatal errors derive from PipelineError and are turned into the
job's `error` state by the coordinator. The remaining errors describe
caller mistakes and are mapped to HTTP status codes by the API layer.
"""


class LocalizerError(Exception):
    """Base class for all localizer errors"""


class ValidationError(LocalizerError):
    """Job submission is missing required fields or carries unknown values"""


class JobNotFoundError(LocalizerError):
    """No job with the given id exists"""


class PermissionDeniedError(LocalizerError):
    """Caller identity does not match the job's author"""


class InvalidJobStateError(LocalizerError):
    """Operation is not allowed in the job's current status"""


class InvalidTransitionError(LocalizerError):
    """Requested status change is not in the transition table"""


class JobConflictError(LocalizerError):
    """Stored job version differs from the version being written"""


class PipelineError(LocalizerError):
    """Unrecoverable failure inside a pipeline stage"""


class NoTextFoundError(PipelineError):
    """Analysis produced no usable text segments"""


class TranslationTransportError(PipelineError):
    """The translation request itself failed"""


class EncodeError(PipelineError):
    """The video tool exited with a non-zero status"""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr
