"""
Custom exceptions for Scan Reconciler.

Scanning problems (unknown code, over-scan) are not exceptions: the engine
reports them as scan statuses and the station keeps going. Exceptions are
reserved for form submissions, configuration and the backend boundary, where
the operator has to see a message and act on it.

Exception hierarchy:
    ReconcilerError (base)
    ├── NetworkError (backend unreachable or returned garbage)
    ├── ValidationError (malformed incident or manual-entry input)
    ├── AuthorizationError (incident authorization gate rejected)
    ├── SubmissionError (finalize call failed, safe to retry)
    └── ConfigurationError (config.ini missing a required value)
"""

from typing import Any, Dict, Optional


class ReconcilerError(Exception):
    """
    Base exception for all Scan Reconciler errors.

    Catch this to handle any application error with a single except clause.
    It deliberately does not inherit from ValueError / IOError so application
    errors stay separate from system errors.
    """
    pass


class NetworkError(ReconcilerError):
    """
    Raised when the warehouse backend cannot be reached or answers with
    something that is not the expected JSON envelope.

    Example usage:
        raise NetworkError(f"Backend at {base_url} did not respond after 5 attempts")
    """
    pass


class ValidationError(ReconcilerError):
    """
    Raised when operator input fails validation.

    Only the offending form submission is blocked; nothing is recorded and
    the ledger is untouched. Typical causes:
    - Incident without an article code
    - Quantity that is not a positive integer
    - "Changed" incident without the expected article
    - Manual line that duplicates an existing code
    """
    pass


class AuthorizationError(ReconcilerError):
    """
    Raised when the authorization secret for an invoiced "extra" incident
    does not match. The incident flow stays at the authorization step.
    """
    pass


class SubmissionError(ReconcilerError):
    """
    Raised when the finalize call fails.

    The reconciled payload travels with the error so the caller can retry
    without re-deriving it, and nothing in the ledger has been rolled back.

    Attributes:
        attempts (int): Number of HTTP attempts made before giving up
        payload (Dict): The payload that was being submitted
    """

    def __init__(self, message: str, attempts: int = 0, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.attempts = attempts
        self.payload = payload or {}

    def get_display_message(self) -> str:
        """Message for the operator, with the retry hint."""
        return (
            f"The document could not be finalized: {self}\n\n"
            f"Scanned quantities are kept. Press retry to submit again."
        )


class ConfigurationError(ReconcilerError):
    """Raised when config.ini lacks a value needed by the requested operation."""
    pass
