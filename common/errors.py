from pathlib import Path


class JobValidationError(Exception):
    """The inbound job could not be turned into a JobDescriptor. Client-correctable."""


class EncodingError(Exception):
    """The encoding engine reported a failed transform."""


class PipelineStepError(Exception):
    """A downstream step failed. The collaborator's exception is kept as __cause__."""

    step = "pipeline"

    def __init__(self, object_key: str, reason: str):
        super().__init__(f"{self.step} failed for {object_key}: {reason}")
        self.object_key = object_key
        self.reason = reason


class FetchError(PipelineStepError):
    step = "fetch"


class TransformError(PipelineStepError):
    step = "transform"


class PublishError(PipelineStepError):
    step = "publish"


class CleanupWarning(Warning):
    """A local file could not be removed. Logged, never raised to the pipeline caller."""

    def __init__(self, path: Path, error: OSError):
        super().__init__(f"Failed to delete file at {path}: {error}")
        self.path = path
        self.error = error
