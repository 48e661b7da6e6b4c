"""Exception hierarchy for the verification oracle.

Every failure the oracle can observe maps onto one of these classes so
callers decide by type, not by string matching:

- ConfigurationError: missing credentials or invalid settings, fatal at startup
- TransientCollaboratorError: network or LLM endpoint unreachable
- MalformedResponseError: structured output that could not be parsed
- CollaboratorRejectedError: the collaborator refused a request (4xx)
- JobError: a failure scoped to one charity identifier
- ChainSubmissionError: a job whose transactions could not be confirmed
- TransactionError: one transaction that failed or reverted
"""

from __future__ import annotations

from typing import Optional


class OracleError(Exception):
    """Base class for all oracle errors."""


class ConfigurationError(OracleError):
    """Raised when required configuration is missing or invalid."""


class TransientCollaboratorError(OracleError):
    """Raised when an external collaborator cannot be reached."""


class MalformedResponseError(OracleError):
    """Raised when a collaborator response cannot be parsed."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class CollaboratorRejectedError(OracleError):
    """Raised when a collaborator refuses a request, e.g. an unfetchable image url."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class JobError(OracleError):
    """Failure isolated to a single charity identifier."""

    def __init__(self, charity_id: int, message: str):
        super().__init__(f"charity {charity_id}: {message}")
        self.charity_id = charity_id


class ScoringError(JobError):
    """Raised when a stage whose result is required could not run."""


class ChainSubmissionError(JobError):
    """Raised when a score or decision transaction could not be confirmed."""

    def __init__(self, charity_id: int, message: str, attempts: int = 1):
        super().__init__(charity_id, message)
        self.attempts = attempts


class TransactionError(OracleError):
    """Raised by the chain gateway when a transaction fails or reverts."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, reverted: bool = False):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.reverted = reverted
