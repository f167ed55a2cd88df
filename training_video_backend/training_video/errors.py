"""
Error taxonomy for the video generation pipeline.

Every failure that crosses a component boundary is a VideoGenerationError
tagged with an ErrorKind. The retry helper only looks at `retryable`.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    OPENAI_ERROR = "OPENAI_ERROR"
    DID_ERROR = "DID_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    CREDIT_INSUFFICIENT = "CREDIT_INSUFFICIENT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


NEVER_RETRYABLE = {ErrorKind.CREDIT_INSUFFICIENT, ErrorKind.VALIDATION_ERROR}

# Friendly texts surfaced to end users instead of raw exception details
ERROR_MESSAGES = {
    ErrorKind.OPENAI_ERROR: "Audio generation failed. Please wait a moment and try again.",
    ErrorKind.DID_ERROR: "The avatar video could not be generated.",
    ErrorKind.CREDIT_INSUFFICIENT: "Not enough credits. Upgrade your plan or add credits.",
    ErrorKind.VALIDATION_ERROR: "There is a problem with the script. Please review it and try again.",
    ErrorKind.NETWORK_ERROR: "A network error occurred. Check your connection and try again.",
    ErrorKind.UNKNOWN_ERROR: "An unexpected error occurred. Please wait a moment and try again.",
}


class VideoGenerationError(Exception):
    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN_ERROR,
        cause: Optional[BaseException] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.cause = cause
        if kind in NEVER_RETRYABLE:
            self.retryable = False
        elif retryable is None:
            self.retryable = True
        else:
            self.retryable = retryable

    @property
    def user_message(self) -> str:
        if self.kind == ErrorKind.VALIDATION_ERROR:
            return self.message
        return ERROR_MESSAGES[self.kind]

    def __repr__(self):
        return f"{type(self).__name__}({self.kind.value}, {self.message!r}, retryable={self.retryable})"


class AvatarJobFailedError(VideoGenerationError):
    """The remote avatar job itself ended in `error` or `rejected`."""

    def __init__(self, talk_id: str, status: str, detail: Optional[str] = None):
        message = f"D-ID video generation failed: {status}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, ErrorKind.DID_ERROR, retryable=False)
        self.talk_id = talk_id
        self.status = status
        self.detail = detail


class RecordNotFoundError(LookupError):
    """A script or video job id is unknown to the store."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class InvalidTransitionError(ValueError):
    def __init__(self, kind: str, record_id: str, old, new):
        super().__init__(f"{kind} {record_id}: cannot move from {old.value} to {new.value}")
        self.record_id = record_id


def classify(exc: BaseException) -> VideoGenerationError:
    if isinstance(exc, VideoGenerationError):
        return exc
    return VideoGenerationError(str(exc) or type(exc).__name__, ErrorKind.UNKNOWN_ERROR, cause=exc)
