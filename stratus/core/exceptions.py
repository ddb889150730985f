"""Custom exception hierarchy for Stratus.

All stratus-specific exceptions inherit from StratusError, enabling
callers to catch every stratus failure with a single except clause.

The hierarchy doubles as the retry classification: RateLimitError and
TransientNetworkError are worth another attempt, everything else is
terminal. Callers at the API layer are expected to map ValidationError and
AuthenticationError to client errors, TimeoutError and
TransientNetworkError to retryable server errors.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stratus.types import InstanceInfo


class StratusError(Exception):
    """Base exception for all Stratus errors."""


class ConfigurationError(StratusError):
    """Raised for invalid configuration or missing required settings."""


class ValidationError(StratusError):
    """Raised when an InstanceConfig is malformed. Never retried."""


class ProviderError(StratusError):
    """Raised when a provider API call fails.

    Attributes:
        status: HTTP status code, or None when no response was received.
        body: Response body (or transport error message) for diagnosis.
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message)


class AuthenticationError(ProviderError):
    """Credentials were rejected (401/403). Never retried."""


class NotFoundError(ProviderError):
    """The requested resource does not exist (404)."""


class RateLimitError(ProviderError):
    """The provider throttled the request (429)."""


class TransientNetworkError(ProviderError):
    """Server-side failure (5xx) or no response at all."""


class TimeoutError(StratusError):  # noqa: A001
    """Raised when polling exhausts its attempts without success.

    Attributes:
        description: What was being waited on.
        attempts: Number of evaluations performed.
        last_state: Last observed state, for diagnosis.
    """

    def __init__(self, description: str, attempts: int, last_state: object = None) -> None:
        self.description = description
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(
            f"Timeout waiting for {description} after {attempts} attempts "
            f"(last state: {last_state!r})"
        )


class PartialBatchFailure(StratusError):
    """Raised when a multi-instance create left every instance short of Ready.

    When at least one instance became ready the provider returns that subset
    instead of raising; the failure record is only logged.

    Attributes:
        instances: Instances that reached Ready.
        failures: Instance name mapped to the error that dropped it.
    """

    def __init__(
        self,
        instances: Sequence[InstanceInfo],
        failures: Mapping[str, BaseException],
    ) -> None:
        self.instances = tuple(instances)
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(
            f"{len(self.failures)} instance(s) did not become ready: {names}"
        )


class InvalidTransitionError(StratusError):
    """Raised when an instance lifecycle state change is not allowed."""


class ProvisioningError(StratusError):
    """Raised when created instances cannot be handed to the provisioner."""


def is_retryable(exc: BaseException) -> bool:
    """Return True when the failure is worth another identical attempt."""
    return isinstance(exc, (RateLimitError, TransientNetworkError))


def error_for_status(status: int, body: str, *, context: str = "") -> ProviderError:
    """Map an HTTP error status to the matching ProviderError subclass."""
    prefix = f"{context}: " if context else ""
    message = f"{prefix}HTTP {status}: {body[:500]}"
    match status:
        case 401 | 403:
            return AuthenticationError(message, status=status, body=body)
        case 404:
            return NotFoundError(message, status=status, body=body)
        case 429:
            return RateLimitError(message, status=status, body=body)
        case 500 | 502 | 503 | 504:
            return TransientNetworkError(message, status=status, body=body)
        case _:
            return ProviderError(message, status=status, body=body)


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "InvalidTransitionError",
    "NotFoundError",
    "PartialBatchFailure",
    "ProviderError",
    "ProvisioningError",
    "RateLimitError",
    "StratusError",
    "TimeoutError",
    "TransientNetworkError",
    "ValidationError",
    "error_for_status",
    "is_retryable",
]
