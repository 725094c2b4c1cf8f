from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

PROCESSED_PREFIX = "processed-"


class JobDescriptor(BaseModel):
    """Which raw object one pipeline run must process. Built from the decoded `name` field."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    object_key: StrictStr = Field(..., alias="name", min_length=1)

    @field_validator("object_key")
    @classmethod
    def _must_be_plain_filename(cls, value: str) -> str:
        # The key becomes a filename inside the staging directories.
        if value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
            raise ValueError(f"object key is not a plain filename: {value!r}")
        return value


class EncodingProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    scale: str = "-1:360"  # width auto, height fixed

    @property
    def video_filter(self) -> str:
        return f"scale={self.scale}"


class OutcomeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    BAD_REQUEST = "BAD_REQUEST"
    PROCESSING_FAILURE = "PROCESSING_FAILURE"


HTTP_STATUS = {
    OutcomeStatus.SUCCESS: 200,
    OutcomeStatus.BAD_REQUEST: 400,
    OutcomeStatus.PROCESSING_FAILURE: 500,
}


class PipelineOutcome(BaseModel):
    """Terminal result of one pipeline run; reported once, never retried internally."""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    message: str
    object_key: Optional[str] = None
    # fetch / transform / publish; kept for logs, not part of the HTTP reply
    failed_step: Optional[str] = None

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.status]

    @classmethod
    def success(cls, object_key: str) -> "PipelineOutcome":
        return cls(
            status=OutcomeStatus.SUCCESS,
            message="Processing finished successfully",
            object_key=object_key,
        )

    @classmethod
    def bad_request(cls, reason: str) -> "PipelineOutcome":
        return cls(status=OutcomeStatus.BAD_REQUEST, message=f"Bad Request: {reason}")

    @classmethod
    def processing_failure(cls, object_key: str, reason: str, failed_step: Optional[str] = None) -> "PipelineOutcome":
        return cls(
            status=OutcomeStatus.PROCESSING_FAILURE,
            message=f"Processing failed: {reason}",
            object_key=object_key,
            failed_step=failed_step,
        )
