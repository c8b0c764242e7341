"""
Error taxonomy for the proof verification service.

Local and diagnostic failures (malformed circuit artifacts, local verifier
mismatches) are absorbed and logged by the components that produce them.
Network-facing failures surface to callers as a structured
VerificationResult; only document lookup failures and request-shape errors
leave the service as HTTP errors.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from verifier.app.schemas.verification import EncodingAttempt


class ErrorCode(str, Enum):
    """
    Stable, machine-readable failure codes carried on VerificationResult.
    """

    MALFORMED_MATERIAL = "MalformedMaterial"
    SESSION_NOT_INITIALIZED = "SessionNotInitialized"
    ALL_ENCODINGS_EXHAUSTED = "AllEncodingsExhausted"
    NETWORK_TRANSACTION_ERROR = "NetworkTransactionError"
    SUBMISSION_TIMED_OUT = "SubmissionTimedOut"
    CANCELLED = "Cancelled"
    INTERNAL_ERROR = "InternalError"


class VerifierError(RuntimeError):
    """Base class for all verification service errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR


class MalformedMaterial(VerifierError):
    """Proof or verification key bytes could not be canonicalized."""

    code = ErrorCode.MALFORMED_MATERIAL


class SessionNotInitialized(VerifierError):
    """The verification network session is not in the READY state."""

    code = ErrorCode.SESSION_NOT_INITIALIZED


class SessionConfigurationError(VerifierError):
    """
    Unrecoverable session misconfiguration (e.g. missing API key).

    Never retried; the session is left permanently disabled.
    """

    code = ErrorCode.SESSION_NOT_INITIALIZED


class LocalVerificationInconclusive(VerifierError):
    """Non-fatal: the local verifier could not produce a verdict."""


class EncodingAttemptFailed(VerifierError):
    """A single public-input encoding candidate was rejected."""

    code = ErrorCode.NETWORK_TRANSACTION_ERROR


class NetworkTransactionError(EncodingAttemptFailed):
    """The network emitted an error event for a submitted transaction."""

    def __init__(self, message: str, *, job_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class AllEncodingsExhausted(VerifierError):
    """Every public-input encoding candidate was rejected by the network."""

    code = ErrorCode.ALL_ENCODINGS_EXHAUSTED

    def __init__(
        self,
        *,
        attempts: List["EncodingAttempt"],
        last_error: Optional[str],
    ) -> None:
        self.attempts = list(attempts)
        self.last_error = last_error
        super().__init__(
            f"All {len(self.attempts)} public input encodings exhausted. "
            f"Last error: {last_error or 'unknown'}"
        )


class SubmissionTimedOut(VerifierError):
    """No terminal network event arrived within the configured bound."""

    code = ErrorCode.SUBMISSION_TIMED_OUT


class SubmissionCancelled(VerifierError):
    """The caller cancelled the wait for a terminal network event."""

    code = ErrorCode.CANCELLED


class DocumentNotFound(VerifierError):
    """The external document store has no record for the given ID."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Document with ID {document_id} not found")
