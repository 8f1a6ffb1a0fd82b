from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import BatchOutcome


class ErrorKind(str, Enum):
    DECODE = "DecodeError"
    SCORING_TRANSIENT = "ScoringError/transient"
    SCORING_PERMANENT = "ScoringError/permanent"
    PROTOCOL = "ProtocolError"
    STORE = "StoreError"
    NOTIFICATION = "NotificationError"
    UNEXPECTED = "UnexpectedError"


class PipelineError(Exception):
    kind: ErrorKind = ErrorKind.UNEXPECTED


class DecodeError(PipelineError):
    """One malformed telemetry message. Returned as a value by the decoder, never fatal."""

    kind = ErrorKind.DECODE

    def __init__(self, index: int, reason: str):
        super().__init__(f"message {index}: {reason}")
        self.index = index
        self.reason = reason


class ScoringError(PipelineError):
    def __init__(self, message: str, transient: bool, status_code: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return ErrorKind.SCORING_TRANSIENT if self.transient else ErrorKind.SCORING_PERMANENT


class ProtocolError(ScoringError):
    """Scoring response arrays are not index-aligned."""

    def __init__(self, message: str):
        super().__init__(message, transient=False)

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return ErrorKind.PROTOCOL


class StoreError(PipelineError):
    kind = ErrorKind.STORE


class NotificationError(PipelineError):
    kind = ErrorKind.NOTIFICATION


class BatchEnvelopeError(PipelineError):
    """The batch itself cannot be split into messages; nothing was processed."""


class BatchFailedError(PipelineError):
    def __init__(self, outcome: "BatchOutcome"):
        super().__init__(
            f"{len(outcome.failures)} failure(s) in batch, "
            f"{outcome.succeeded_groups}/{outcome.total_groups} groups succeeded"
        )
        self.outcome = outcome
