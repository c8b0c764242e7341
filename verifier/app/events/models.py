from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event Types (Finite)
# ----------------------------------------------------------------------
class VerificationEventType(str, Enum):
    """
    Progression events emitted during one verification request.
    """

    # ------------------------------------------------------------------
    # Global lifecycle
    # ------------------------------------------------------------------
    VERIFICATION_STARTED = "verification_started"
    VERIFICATION_COMPLETED = "verification_completed"
    VERIFICATION_FAILED = "verification_failed"

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------
    MATERIAL_CANONICALIZED = "material_canonicalized"
    LOCAL_CHECK_COMPLETED = "local_check_completed"
    INPUT_COUNT_ADJUSTED = "input_count_adjusted"

    # ------------------------------------------------------------------
    # Network negotiation
    # ------------------------------------------------------------------
    ENCODING_ATTEMPT_STARTED = "encoding_attempt_started"
    ENCODING_ATTEMPT_FAILED = "encoding_attempt_failed"
    ENCODING_ATTEMPT_SUCCEEDED = "encoding_attempt_succeeded"


TERMINAL_EVENT_TYPES = frozenset(
    {
        VerificationEventType.VERIFICATION_COMPLETED,
        VerificationEventType.VERIFICATION_FAILED,
    }
)


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class VerificationEvent(BaseModel):
    """
    An immutable observation of progress within one verification.

    Events are strictly observational and never authoritative: the
    VerificationResult is the only verdict.
    """

    event_id: UUID = Field(default_factory=uuid4)
    verification_id: str = Field(..., description="Request-scoped identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: VerificationEventType

    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def to_sse_payload(self) -> str:
        data = json.dumps(
            self.model_dump(mode="json"),
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return f"event: {self.event_type.value}\ndata: {data}\n\n"
