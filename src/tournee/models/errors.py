"""Error taxonomy for the carrier and optimization integrations."""

from __future__ import annotations

from enum import Enum


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    TOKEN_NOT_FOUND = "token_not_found"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"


class FetchErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_FOUND = "not_found"


class OptimizeErrorKind(str, Enum):
    TIMEOUT = "timeout"
    ALL_DROPPED = "all_dropped"
    PROVIDER_REJECTED = "provider_rejected"
    NETWORK = "network"


class IntegrationError(Exception):
    """Base class for failures talking to a third-party service."""

    def __init__(self, kind: Enum, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def code(self) -> str:
        return self.kind.value.upper()

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class AuthError(IntegrationError):
    kind: AuthErrorKind

    def __init__(self, kind: AuthErrorKind, message: str) -> None:
        super().__init__(kind, message)


class FetchError(IntegrationError):
    kind: FetchErrorKind

    def __init__(self, kind: FetchErrorKind, message: str) -> None:
        super().__init__(kind, message)


class OptimizeError(IntegrationError):
    kind: OptimizeErrorKind

    def __init__(self, kind: OptimizeErrorKind, message: str) -> None:
        super().__init__(kind, message)


class PipelineStage(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING_MANIFEST = "fetching_manifest"
    ENRICHING_DETAILS = "enriching_details"
    OPTIMIZING = "optimizing"
    DONE = "done"


class PipelineError(Exception):
    """Terminal pipeline failure, tagged with the stage it happened in.

    ``cause`` is the underlying integration error, or ``None`` when the overall
    deadline expired (``timed_out`` is then True).
    """

    def __init__(
        self,
        stage: PipelineStage,
        cause: IntegrationError | None = None,
        *,
        timed_out: bool = False,
        message: str | None = None,
    ) -> None:
        self.stage = stage
        self.cause = cause
        self.timed_out = timed_out
        self.message = message or (str(cause) if cause else f"deadline exceeded while {stage.value}")
        super().__init__(self.message)

    @property
    def code(self) -> str:
        if self.timed_out:
            return "PIPELINE_TIMEOUT"
        if self.cause is not None:
            return self.cause.code
        return "PIPELINE_FAILED"
