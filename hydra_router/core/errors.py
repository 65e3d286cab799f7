"""
Exception hierarchy for hydra_router
"""

from typing import List, Optional

from ..models.enums import ErrorKind


class OrchestrationError(Exception):
    """Base class for errors raised by the orchestration engine"""

    kind: ErrorKind = ErrorKind.SERVER_ERROR


class ConfigInvalid(OrchestrationError):
    """The configuration document failed validation.

    Carries every violation found, not only the first one.
    """

    kind = ErrorKind.CONFIG_INVALID

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        summary = "; ".join(self.violations) if self.violations else "unknown violation"
        super().__init__(f"Invalid configuration ({len(self.violations)} violation(s)): {summary}")


class NoCandidateAvailable(OrchestrationError):
    """No (provider, model) pair survived filtering for a task profile"""

    kind = ErrorKind.NO_CANDIDATE_AVAILABLE


class ProviderError(OrchestrationError):
    """A provider call failed; ``kind`` is assigned at the adapter boundary"""

    def __init__(self, kind: ErrorKind, message: str, status_code: Optional[int] = None):
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)
