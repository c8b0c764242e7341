from __future__ import annotations

from typing import Protocol

from verifier.app.events.models import VerificationEvent


class VerificationEventEmitter(Protocol):
    """
    Sink for verification progress events.

    The orchestrator awaits emit() between steps, so an implementation
    must return promptly and must never raise: a slow or broken listener
    cannot be allowed to delay or fail a paid network submission.
    """

    async def emit(self, event: VerificationEvent) -> None:
        ...


class NullEventEmitter:
    """Discards events. Default for the plain JSON endpoint."""

    async def emit(self, event: VerificationEvent) -> None:
        return None
