"""
Request, result, and diagnostic schemas for proof verification.

VerificationResult is the single terminal envelope handed back to callers.
Its diagnostic trail is carried on the model for observability and tests,
but is excluded from the wire representation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from verifier.app.errors import ErrorCode


# ----------------------------------------------------------------------
# Circuit types (closed enumeration)
# ----------------------------------------------------------------------
class CircuitType(str, Enum):
    CARGO_VALIDATION = "cargo_validation"
    DATE_VALIDATION = "date_validation"
    TAX_VALIDATION = "tax_validation"


Scalar = Union[int, str]

# Byte material arrives either as a dense array or as an index->byte
# mapping (JSON serialization of a typed array loses array identity).
ByteMaterialInput = Union[List[StrictInt], Dict[str, StrictInt]]

PublicInputsInput = Union[Scalar, List[Scalar]]


# ----------------------------------------------------------------------
# Diagnostic trail (non-authoritative)
# ----------------------------------------------------------------------
class LocalCheckStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    INCONCLUSIVE = "inconclusive"


class LocalCheckOutcome(BaseModel):
    """
    Result of the optional local proof check.

    Diagnostic only. MUST NOT gate network submission.
    """

    status: LocalCheckStatus
    detail: str = ""
    public_inputs: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class InputCountAdjustment(BaseModel):
    declared: int
    actual: int

    model_config = ConfigDict(frozen=True, extra="forbid")


class EncodingAttempt(BaseModel):
    """
    One public-input encoding candidate tried against the network.
    """

    encoding: str
    succeeded: bool
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class VerificationTrail(BaseModel):
    local_check: Optional[LocalCheckOutcome] = None
    input_count_adjustment: Optional[InputCountAdjustment] = None
    attempts: List[EncodingAttempt] = Field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------------------------------------------------
# Terminal result
# ----------------------------------------------------------------------
class VerificationResult(BaseModel):
    """
    Terminal, immutable outcome of one verification request.
    """

    verified: bool
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    message: str
    error: Optional[ErrorCode] = None

    trail: VerificationTrail = Field(
        default_factory=VerificationTrail,
        exclude=True,
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )


# ----------------------------------------------------------------------
# HTTP boundary
# ----------------------------------------------------------------------
class VerifyProofRequest(BaseModel):
    """
    Proof verification request as submitted by the frontend.
    """

    document_id: str = Field(..., alias="documentId", min_length=1)
    proof: ByteMaterialInput = Field(
        ...,
        description="The proof data as bytes (array or index->byte object)",
    )
    vk: ByteMaterialInput = Field(
        ...,
        description="The verification key as bytes (array or index->byte object)",
    )
    public_inputs: PublicInputsInput = Field(..., alias="publicInputs")
    circuit_type: CircuitType = Field(..., alias="circuitType")
    number_of_public_inputs: int = Field(
        1,
        alias="numberOfPublicInputs",
        ge=0,
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )


class VerifyProofResponse(BaseModel):
    document_id: str = Field(..., alias="documentId")
    document: Dict[str, Any]
    verification: VerificationResult

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )
