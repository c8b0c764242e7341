"""
Public input format negotiation.

Tries each candidate public-input encoding in order until the network
accepts one. Every attempt is a full submission driven by its own
SubmissionStateMachine.

IMPORTANT:
- Attempts are strictly sequential.
- The first success stops the loop.
- Only rejections of a candidate move on to the next one. Session,
  timeout and cancellation failures end negotiation immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Callable,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

import anyio

from verifier.app.errors import AllEncodingsExhausted, EncodingAttemptFailed
from verifier.app.events import (
    NullEventEmitter,
    VerificationEvent,
    VerificationEventEmitter,
    VerificationEventType,
)
from verifier.app.network.protocol import ProofSubmission
from verifier.app.network.session import VerificationSession
from verifier.app.schemas.verification import EncodingAttempt, Scalar
from verifier.app.services.public_inputs import (
    PUBLIC_INPUT_ENCODINGS,
    PublicInputEncoding,
)
from verifier.app.services.submission import (
    SubmissionReceipt,
    SubmissionStateMachine,
)

logger = logging.getLogger("verifier.negotiation")

C = TypeVar("C")
T = TypeVar("T")


# ----------------------------------------------------------------------
# Generic first-success combinator
# ----------------------------------------------------------------------

async def first_success(
    candidates: Sequence[C],
    attempt: Callable[[C], Awaitable[T]],
    *,
    name: Callable[[C], str] = str,
    retry_on: Tuple[Type[BaseException], ...] = (EncodingAttemptFailed,),
    attempts: Optional[List[EncodingAttempt]] = None,
) -> Tuple[C, T, List[EncodingAttempt]]:
    """
    Run ``attempt`` over ``candidates`` in order and return the first success.

    Errors listed in ``retry_on`` are recorded and the next candidate is
    tried. Anything else propagates unchanged. When ``attempts`` is given it
    is appended to in place, so callers still see the partial trail if a
    fatal error escapes.

    Raises:
        AllEncodingsExhausted: every candidate failed with a retryable error.
    """
    trail: List[EncodingAttempt] = attempts if attempts is not None else []
    last_error: Optional[str] = None

    for candidate in candidates:
        label = name(candidate)
        try:
            value = await attempt(candidate)
        except retry_on as exc:
            last_error = str(exc)
            trail.append(
                EncodingAttempt(encoding=label, succeeded=False, error=last_error)
            )
            continue

        trail.append(EncodingAttempt(encoding=label, succeeded=True))
        return candidate, value, trail

    raise AllEncodingsExhausted(attempts=trail, last_error=last_error)


# ----------------------------------------------------------------------
# Negotiator bound to the submission state machine
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class NegotiationResult:
    encoding: str
    receipt: SubmissionReceipt
    attempts: List[EncodingAttempt] = field(default_factory=list)


class FormatNegotiator:
    """
    Drives one submission per candidate encoding until one finalizes.
    """

    def __init__(
        self,
        session: VerificationSession,
        *,
        timeout_seconds: float,
        encodings: Sequence[PublicInputEncoding] = PUBLIC_INPUT_ENCODINGS,
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._encodings = tuple(encodings)

    @property
    def encodings(self) -> Tuple[PublicInputEncoding, ...]:
        return self._encodings

    async def negotiate(
        self,
        *,
        vk_hex: str,
        proof_hex: str,
        public_inputs: Sequence[Scalar],
        number_of_public_inputs: int,
        proof_type: str,
        verification_id: str,
        cancel_token: Optional[anyio.Event] = None,
        emitter: Optional[VerificationEventEmitter] = None,
        attempts: Optional[List[EncodingAttempt]] = None,
    ) -> NegotiationResult:
        emitter = emitter or NullEventEmitter()
        total = len(self._encodings)

        async def _attempt(encoding: PublicInputEncoding) -> SubmissionReceipt:
            index = self._encodings.index(encoding) + 1
            public_signals = encoding.encode(public_inputs)

            logger.info(
                "encoding_attempt_started",
                extra={
                    "verification_id": verification_id,
                    "encoding": encoding.name,
                    "attempt": index,
                    "total": total,
                },
            )
            await emitter.emit(
                VerificationEvent(
                    verification_id=verification_id,
                    event_type=VerificationEventType.ENCODING_ATTEMPT_STARTED,
                    details={
                        "encoding": encoding.name,
                        "attempt": index,
                        "total": total,
                    },
                )
            )

            machine = SubmissionStateMachine(
                self._session,
                timeout_seconds=self._timeout_seconds,
            )
            try:
                receipt = await machine.run(
                    ProofSubmission(
                        vk_hex=vk_hex,
                        proof_hex=proof_hex,
                        public_signals=public_signals,
                        number_of_public_inputs=number_of_public_inputs,
                        proof_type=proof_type,
                    ),
                    cancel_token=cancel_token,
                )
            except EncodingAttemptFailed as exc:
                logger.warning(
                    "encoding_attempt_failed",
                    extra={
                        "verification_id": verification_id,
                        "encoding": encoding.name,
                        "attempt": index,
                        "error": str(exc),
                    },
                )
                await emitter.emit(
                    VerificationEvent(
                        verification_id=verification_id,
                        event_type=VerificationEventType.ENCODING_ATTEMPT_FAILED,
                        details={
                            "encoding": encoding.name,
                            "attempt": index,
                            "error": str(exc),
                        },
                    )
                )
                raise

            await emitter.emit(
                VerificationEvent(
                    verification_id=verification_id,
                    event_type=VerificationEventType.ENCODING_ATTEMPT_SUCCEEDED,
                    details={
                        "encoding": encoding.name,
                        "attempt": index,
                        "tx_hash": receipt.tx_hash,
                    },
                )
            )
            return receipt

        encoding, receipt, trail = await first_success(
            self._encodings,
            _attempt,
            name=lambda candidate: candidate.name,
            retry_on=(EncodingAttemptFailed,),
            attempts=attempts,
        )

        logger.info(
            "encoding_negotiated",
            extra={
                "verification_id": verification_id,
                "encoding": encoding.name,
                "attempts": len(trail),
            },
        )

        return NegotiationResult(
            encoding=encoding.name,
            receipt=receipt,
            attempts=list(trail),
        )
