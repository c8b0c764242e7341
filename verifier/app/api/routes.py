import asyncio
import logging
import uuid
from typing import Annotated, Optional, Set

from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Request,
    status,
)
from fastapi.responses import StreamingResponse

from verifier.app.errors import DocumentNotFound
from verifier.app.events import (
    MemoryQueueEventEmitter,
    VerificationEvent,
    VerificationEventType,
)
from verifier.app.schemas.verification import (
    VerifyProofRequest,
    VerifyProofResponse,
)
from verifier.app.services.documents import DocumentService, DocumentStoreError

logger = logging.getLogger("verifier.api")

router = APIRouter(prefix="/document", tags=["Proof Verification"])

# Strong references to in-flight streaming verifications
_background_tasks: Set["asyncio.Task[None]"] = set()

# =============================================================================
# Dependency providers
# =============================================================================

def get_correlation_id(
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """Extract or generate a correlation ID for end-to-end traceability."""
    if x_correlation_id and len(x_correlation_id) > 128:
        return str(uuid.uuid4())
    return x_correlation_id or str(uuid.uuid4())


def get_document_service(request: Request) -> DocumentService:
    service: Optional[DocumentService] = getattr(
        request.app.state, "document_service", None
    )
    if service is None:
        raise RuntimeError("document service not initialized")
    return service


def _store_unavailable(
    exc: DocumentStoreError, correlation_id: str
) -> HTTPException:
    logger.error(
        "document_store_unavailable",
        extra={"error": str(exc), "trace_id": correlation_id},
    )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Document store unavailable",
        headers={"X-Correlation-ID": correlation_id},
    )


def _not_found(exc: DocumentNotFound, correlation_id: str) -> HTTPException:
    logger.info(
        "document_not_found",
        extra={
            "document_id": exc.document_id,
            "trace_id": correlation_id,
        },
    )
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(exc),
        headers={"X-Correlation-ID": correlation_id},
    )


# =============================================================================
# POST /document/verify-proof
# =============================================================================

@router.post(
    "/verify-proof",
    summary="Verify a zero-knowledge proof for a stored document",
    response_model=VerifyProofResponse,
    response_model_by_alias=True,
    responses={
        200: {"description": "Verification result (verified may be false)"},
        404: {"description": "Document not found"},
        502: {"description": "Document store unavailable"},
        422: {"description": "Invalid request body"},
    },
)
async def verify_proof(
    body: VerifyProofRequest,
    service: Annotated[
        DocumentService,
        Depends(get_document_service),
    ],
    correlation_id: Annotated[
        str,
        Depends(get_correlation_id),
    ],
) -> VerifyProofResponse:
    """
    Verify a proof against the verification network.

    Network-side failures come back as `verification.verified = false`
    with a diagnostic message. Only document lookup failures are HTTP
    errors.
    """
    logger.info(
        "verify_proof_requested",
        extra={
            "document_id": body.document_id,
            "circuit_type": body.circuit_type.value,
            "trace_id": correlation_id,
        },
    )

    try:
        return await service.verify_document_proof(
            body,
            verification_id=correlation_id,
        )
    except DocumentNotFound as exc:
        raise _not_found(exc, correlation_id) from exc
    except DocumentStoreError as exc:
        raise _store_unavailable(exc, correlation_id) from exc


# =============================================================================
# POST /document/verify-proof/stream
# =============================================================================

@router.post(
    "/verify-proof/stream",
    summary="Verify a proof while streaming progress events (SSE)",
    responses={
        404: {"description": "Document not found"},
        502: {"description": "Document store unavailable"},
        422: {"description": "Invalid request body"},
    },
)
async def verify_proof_stream(
    body: VerifyProofRequest,
    service: Annotated[
        DocumentService,
        Depends(get_document_service),
    ],
    correlation_id: Annotated[
        str,
        Depends(get_correlation_id),
    ],
) -> StreamingResponse:
    """
    Verify a proof while streaming progress as server-sent events.

    This endpoint is observational only:
    - Client disconnects do NOT cancel the verification
    - Events do NOT influence execution
    - The final event carries the VerificationResult
    """
    try:
        await service.get_document(body.document_id)
    except DocumentNotFound as exc:
        raise _not_found(exc, correlation_id) from exc
    except DocumentStoreError as exc:
        raise _store_unavailable(exc, correlation_id) from exc

    emitter = MemoryQueueEventEmitter()

    # --------------------------------------------------------------
    # Background verification
    # --------------------------------------------------------------
    async def run_verification_task() -> None:
        try:
            await service.verify_document_proof(
                body,
                emitter=emitter,
                verification_id=correlation_id,
            )
        except DocumentNotFound as exc:
            # Removed between the existence check and the run
            await emitter.emit(
                VerificationEvent(
                    verification_id=correlation_id,
                    event_type=VerificationEventType.VERIFICATION_FAILED,
                    details={"error": str(exc)},
                )
            )
        except Exception:
            logger.exception(
                "streamed_verification_failed",
                extra={"trace_id": correlation_id},
            )
            await emitter.emit(
                VerificationEvent(
                    verification_id=correlation_id,
                    event_type=VerificationEventType.VERIFICATION_FAILED,
                    details={"error": "internal error"},
                )
            )

    task = asyncio.create_task(run_verification_task())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    # --------------------------------------------------------------
    # SSE event stream
    # --------------------------------------------------------------
    async def event_stream():
        try:
            async for event in emitter.stream():
                yield event.to_sse_payload()
        except asyncio.CancelledError:
            # Client disconnected; verification continues
            logger.info(
                "verification_stream_disconnected",
                extra={"trace_id": correlation_id},
            )
            raise

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Correlation-ID": correlation_id,
        },
    )
