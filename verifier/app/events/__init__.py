"""
Progress events for a single proof verification.

The orchestrator reports each step it takes (canonicalization, local check,
every encoding attempt and the terminal result) through an emitter. The
SSE route hands in a queue-backed emitter; every other caller gets the
no-op one.
"""

from .emitter import NullEventEmitter, VerificationEventEmitter
from .memory_emitter import MemoryQueueEventEmitter
from .models import VerificationEvent, VerificationEventType

__all__ = [
    "MemoryQueueEventEmitter",
    "NullEventEmitter",
    "VerificationEvent",
    "VerificationEventEmitter",
    "VerificationEventType",
]
