"""Exception hierarchy for the publishing pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import AgentRole, Phase


class PublisherError(Exception):
    """Base class for all publishing errors."""


class StateError(PublisherError):
    """An illegal phase transition or a mutation the current phase does not allow."""

    def __init__(self, source: Phase, target: Phase | None = None, message: str | None = None):
        self.source = source
        self.target = target
        if message is None:
            if target is None:
                message = f"operation not allowed in phase {source.value}"
            else:
                message = f"illegal transition {source.value} -> {target.value}"
        super().__init__(message)


class MalformedResponseError(PublisherError):
    """Agent output could not be recovered into structured data."""

    def __init__(self, message: str, raw: str | None = None):
        self.raw = raw
        super().__init__(message)


class ProviderTimeoutError(PublisherError, TimeoutError):
    """A text-generation call exceeded the per-phase timeout."""


class InvocationCancelled(PublisherError):
    """Cancellation was requested while a provider call was in flight."""


class RetryExhaustedError(PublisherError):
    """Every attempt failed with a transient error."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")


class AgentError(PublisherError):
    """An agent invocation failed for good (retries exhausted or fatal mapping failure)."""

    def __init__(self, role: AgentRole, message: str, cause: BaseException | None = None):
        self.role = role
        self.cause = cause
        super().__init__(f"[{role.display_name}] {message}")


class PipelineError(PublisherError):
    """The pipeline stopped; ``phase`` is the last committed phase of the document."""

    def __init__(self, message: str, phase: Phase, cause: BaseException | None = None):
        self.phase = phase
        self.cause = cause
        super().__init__(message)


class PipelineCancelled(PipelineError):
    """The caller cancelled the run."""
