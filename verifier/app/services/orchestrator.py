"""
Top-level proof verification orchestrator.

IMPORTANT:
The orchestrator is the single entry point for a verification and it
ALWAYS answers with a VerificationResult. It never raises to its caller.

Execution order:
    1. Session readiness (lazy start; disabled sessions fail fast)
    2. Byte canonicalization of proof and verification key
    3. Best-effort local check (diagnostic, never gates submission)
    4. Public input count reconciliation
    5. Hex encoding for the wire
    6. Public input format negotiation (one submission per candidate)
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional
from uuid import uuid4

import anyio

from verifier.app.core.config import Settings
from verifier.app.errors import (
    AllEncodingsExhausted,
    ErrorCode,
    MalformedMaterial,
    SessionNotInitialized,
    SubmissionCancelled,
    SubmissionTimedOut,
)
from verifier.app.events import (
    NullEventEmitter,
    VerificationEvent,
    VerificationEventEmitter,
    VerificationEventType,
)
from verifier.app.network.session import SessionState, VerificationSession
from verifier.app.schemas.verification import (
    CircuitType,
    EncodingAttempt,
    InputCountAdjustment,
    LocalCheckOutcome,
    VerificationResult,
    VerificationTrail,
)
from verifier.app.services.byte_codec import (
    ByteMaterial,
    build_proof_material,
    convert_proof,
    convert_verification_key,
    preview_hex,
)
from verifier.app.services.circuits import CircuitRegistry
from verifier.app.services.local_verifier import LocalVerifier
from verifier.app.services.negotiation import FormatNegotiator
from verifier.app.services.public_inputs import (
    normalize_public_inputs,
    reconcile_input_count,
)

logger = logging.getLogger("verifier.orchestrator")

SUCCESS_MESSAGE = "Proof verified successfully on zkVerify!"
SESSION_NOT_INITIALIZED_MESSAGE = "zkVerify session not initialized"


class VerificationOrchestrator:
    """
    Composes the codec, local check, negotiator and session into one call.
    """

    def __init__(
        self,
        *,
        session: VerificationSession,
        registry: CircuitRegistry,
        local_verifier: LocalVerifier,
        negotiator: FormatNegotiator,
        proof_type: str = "ultraplonk",
    ) -> None:
        self._session = session
        self._registry = registry
        self._local_verifier = local_verifier
        self._negotiator = negotiator
        self._proof_type = proof_type

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session: VerificationSession,
    ) -> "VerificationOrchestrator":
        return cls(
            session=session,
            registry=CircuitRegistry(settings.circuits_dir),
            local_verifier=LocalVerifier(
                binary=settings.local_verifier_binary,
                scheme=settings.local_verifier_scheme,
                enabled=settings.enable_local_verification,
            ),
            negotiator=FormatNegotiator(
                session,
                timeout_seconds=settings.submission_timeout_seconds,
            ),
            proof_type=settings.proof_type,
        )

    @property
    def session(self) -> VerificationSession:
        return self._session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def verify(
        self,
        *,
        document_id: str,
        proof: ByteMaterial,
        vk: ByteMaterial,
        circuit_type: CircuitType,
        public_inputs: Any,
        declared_input_count: int = 1,
        cancel_token: Optional[anyio.Event] = None,
        emitter: Optional[VerificationEventEmitter] = None,
        verification_id: Optional[str] = None,
    ) -> VerificationResult:
        """
        Verify one proof against the verification network.

        The emitter is strictly observational:
        - failures must not affect execution
        - events must not influence control flow
        """
        emitter = emitter or NullEventEmitter()
        verification_id = verification_id or uuid4().hex

        circuit_name = getattr(circuit_type, "value", str(circuit_type))
        log_extra = {
            "verification_id": verification_id,
            "document_id": document_id,
            "circuit_type": circuit_name,
        }

        await emitter.emit(
            VerificationEvent(
                verification_id=verification_id,
                event_type=VerificationEventType.VERIFICATION_STARTED,
                details={
                    "document_id": document_id,
                    "circuit_type": circuit_name,
                },
            )
        )

        local_check: Optional[LocalCheckOutcome] = None
        adjustment: Optional[InputCountAdjustment] = None
        attempts: List[EncodingAttempt] = []

        def _result(
            *,
            verified: bool,
            message: str,
            tx_hash: Optional[str] = None,
            error: Optional[ErrorCode] = None,
        ) -> VerificationResult:
            return VerificationResult(
                verified=verified,
                tx_hash=tx_hash,
                message=message,
                error=error,
                trail=VerificationTrail(
                    local_check=local_check,
                    input_count_adjustment=adjustment,
                    attempts=list(attempts),
                ),
            )

        try:
            # ----------------------------------------------------------
            # 1. Session readiness
            # ----------------------------------------------------------
            state = await self._session.ensure_started()
            if state is not SessionState.READY:
                raise SessionNotInitialized(
                    f"{SESSION_NOT_INITIALIZED_MESSAGE} (state={state.value})"
                )

            # ----------------------------------------------------------
            # 2. Byte canonicalization
            # ----------------------------------------------------------
            material = build_proof_material(proof, vk)

            logger.debug(
                "material_canonicalized",
                extra={
                    **log_extra,
                    "proof_length": len(material.proof_bytes),
                    "vk_length": len(material.verification_key_bytes),
                    "proof_preview": preview_hex(material.proof_bytes),
                },
            )
            await emitter.emit(
                VerificationEvent(
                    verification_id=verification_id,
                    event_type=VerificationEventType.MATERIAL_CANONICALIZED,
                    details={
                        "proof_length": len(material.proof_bytes),
                        "vk_length": len(material.verification_key_bytes),
                    },
                )
            )

            # ----------------------------------------------------------
            # 3. Best-effort local check (diagnostic only)
            # ----------------------------------------------------------
            inputs = normalize_public_inputs(public_inputs)

            descriptor = await self._registry.describe(
                circuit_type, declared_input_count
            )
            local_check = await self._local_verifier.check(
                descriptor, material, inputs
            )
            await emitter.emit(
                VerificationEvent(
                    verification_id=verification_id,
                    event_type=VerificationEventType.LOCAL_CHECK_COMPLETED,
                    details={
                        "status": local_check.status.value,
                        "detail": local_check.detail,
                    },
                )
            )

            # ----------------------------------------------------------
            # 4. Input count reconciliation
            # ----------------------------------------------------------
            count, adjustment = reconcile_input_count(
                inputs, declared_input_count
            )
            if adjustment is not None:
                await emitter.emit(
                    VerificationEvent(
                        verification_id=verification_id,
                        event_type=VerificationEventType.INPUT_COUNT_ADJUSTED,
                        details=adjustment.model_dump(),
                    )
                )

            # ----------------------------------------------------------
            # 5. Wire encoding
            # ----------------------------------------------------------
            proof_hex = convert_proof(material.proof_bytes, count)
            vk_hex = convert_verification_key(material.verification_key_bytes)

            # ----------------------------------------------------------
            # 6. Format negotiation
            # ----------------------------------------------------------
            negotiated = await self._negotiator.negotiate(
                vk_hex=vk_hex,
                proof_hex=proof_hex,
                public_inputs=inputs,
                number_of_public_inputs=count,
                proof_type=self._proof_type,
                verification_id=verification_id,
                cancel_token=cancel_token,
                emitter=emitter,
                attempts=attempts,
            )

            result = _result(
                verified=True,
                tx_hash=negotiated.receipt.tx_hash,
                message=SUCCESS_MESSAGE,
            )
            logger.info(
                "proof_verified",
                extra={
                    **log_extra,
                    "tx_hash": result.tx_hash,
                    "encoding": negotiated.encoding,
                    "attempts": len(attempts),
                },
            )

        except SessionNotInitialized as exc:
            logger.warning(
                "verification_session_unavailable",
                extra={**log_extra, "error": str(exc)},
            )
            result = _result(
                verified=False,
                message=SESSION_NOT_INITIALIZED_MESSAGE,
                error=exc.code,
            )

        except MalformedMaterial as exc:
            logger.warning(
                "proof_material_malformed",
                extra={**log_extra, "error": str(exc)},
            )
            result = _result(
                verified=False,
                message=f"Proof/VK conversion failed: {exc}",
                error=exc.code,
            )

        except AllEncodingsExhausted as exc:
            logger.error(
                "public_input_encodings_exhausted",
                extra={
                    **log_extra,
                    "attempts": len(exc.attempts),
                    "last_error": exc.last_error,
                },
            )
            result = _result(
                verified=False,
                message=f"Proof verification failed: {exc}",
                error=exc.code,
            )

        except (SubmissionTimedOut, SubmissionCancelled) as exc:
            result = _result(
                verified=False,
                message=f"Proof verification failed: {exc}",
                error=exc.code,
            )

        except Exception as exc:
            logger.exception(
                "verification_internal_error",
                extra=log_extra,
            )
            result = _result(
                verified=False,
                message=f"Proof verification failed: {exc}",
                error=ErrorCode.INTERNAL_ERROR,
            )

        await emitter.emit(
            VerificationEvent(
                verification_id=verification_id,
                event_type=(
                    VerificationEventType.VERIFICATION_COMPLETED
                    if result.verified
                    else VerificationEventType.VERIFICATION_FAILED
                ),
                details={
                    "verification": result.model_dump(
                        mode="json", by_alias=True
                    ),
                },
            )
        )

        return result
