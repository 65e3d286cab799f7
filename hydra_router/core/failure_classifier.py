"""
Failure classification and retry strategy per error kind
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import aiohttp

from ..models.enums import ErrorKind


@dataclass(frozen=True)
class FailureStrategy:
    """Strategy for handling a specific failure kind"""

    retryable: bool                     # Retry the same candidate (bounded by maxRetries)?
    escalate_to_fallback: bool          # Move to the next candidate once retries are spent?
    severity: str                       # "low" | "medium" | "high" | "critical"
    description: str


class FailureClassifier:
    """Maps transport outcomes to ``ErrorKind`` and kinds to handling strategy"""

    STRATEGIES = {
        ErrorKind.RATE_LIMITED: FailureStrategy(
            retryable=True,
            escalate_to_fallback=True,
            severity="medium",
            description="Backend rejected the call for quota reasons"
        ),

        ErrorKind.OVERLOADED: FailureStrategy(
            retryable=True,
            escalate_to_fallback=True,
            severity="medium",
            description="Backend is temporarily over capacity"
        ),

        ErrorKind.SERVER_ERROR: FailureStrategy(
            retryable=True,
            escalate_to_fallback=True,
            severity="high",
            description="Provider service error, temporary outage likely"
        ),

        ErrorKind.NETWORK_ERROR: FailureStrategy(
            retryable=True,
            escalate_to_fallback=True,
            severity="medium",
            description="Timeout or transport failure, may be transient"
        ),

        ErrorKind.AUTH_FAILED: FailureStrategy(
            retryable=False,
            escalate_to_fallback=True,
            severity="critical",
            description="Authentication failure, requires configuration fix"
        ),

        ErrorKind.VALIDATION_ERROR: FailureStrategy(
            retryable=False,
            escalate_to_fallback=True,
            severity="low",
            description="Backend rejected the request payload"
        ),
    }

    _TERMINAL = FailureStrategy(
        retryable=False,
        escalate_to_fallback=False,
        severity="high",
        description="Terminal condition, not produced by a provider call"
    )

    @classmethod
    def classify_status(cls, status_code: int) -> Optional[ErrorKind]:
        """
        Classify an HTTP status code returned by a backend

        Args:
            status_code: HTTP status code

        Returns:
            ErrorKind, or None for a successful status
        """
        if status_code < 400:
            return None
        if status_code == 429:
            return ErrorKind.RATE_LIMITED
        if status_code in (503, 529):
            return ErrorKind.OVERLOADED
        if status_code >= 500:
            return ErrorKind.SERVER_ERROR
        if status_code in (401, 403):
            return ErrorKind.AUTH_FAILED
        return ErrorKind.VALIDATION_ERROR

    @classmethod
    def classify_exception(cls, exc: BaseException) -> ErrorKind:
        """Classify a transport-level exception by its type"""
        if isinstance(exc, (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError)):
            return ErrorKind.NETWORK_ERROR
        return ErrorKind.SERVER_ERROR

    @classmethod
    def get_strategy(cls, kind: ErrorKind) -> FailureStrategy:
        return cls.STRATEGIES.get(kind, cls._TERMINAL)

    @classmethod
    def is_retryable(cls, kind: ErrorKind) -> bool:
        """Check if the same candidate may be retried after this failure"""
        return cls.get_strategy(kind).retryable

    @classmethod
    def get_failure_severity(cls, kind: ErrorKind) -> str:
        return cls.get_strategy(kind).severity
