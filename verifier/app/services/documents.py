"""
Document-scoped proof verification.

Documents live in an external persistence service. This module only checks
that a document exists before any verification work starts and bundles
the stored record with the verification result.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol
from urllib.parse import quote

import anyio
import httpx

from verifier.app.errors import DocumentNotFound
from verifier.app.events import VerificationEventEmitter
from verifier.app.schemas.verification import (
    VerifyProofRequest,
    VerifyProofResponse,
)
from verifier.app.services.orchestrator import VerificationOrchestrator

logger = logging.getLogger("verifier.documents")

Document = Dict[str, Any]


class DocumentStoreError(RuntimeError):
    """Raised when the document store cannot be reached or misbehaves."""


class DocumentRepository(Protocol):
    async def get(self, document_id: str) -> Optional[Document]:
        ...


class HttpDocumentRepository:
    """
    Read-only adapter for the document persistence service.

    Contract:
    - GET {base_url}/documents/{document_id}
    - 200 -> JSON object
    - 404 -> None
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        base_url: str,
        correlation_id: Optional[str] = None,
    ) -> None:
        self.client = http_client
        self.base_url = str(base_url).rstrip("/")
        self.correlation_id = correlation_id

    async def get(self, document_id: str) -> Optional[Document]:
        headers = {}
        if self.correlation_id:
            headers["X-Correlation-ID"] = self.correlation_id

        try:
            response = await self.client.get(
                f"{self.base_url}/documents/{quote(document_id, safe='')}",
                headers=headers,
                timeout=10.0,
            )
        except httpx.RequestError as exc:
            raise DocumentStoreError(
                f"Failed to call document store: {type(exc).__name__}"
            ) from exc

        if response.status_code == 404:
            return None

        if response.is_error:
            raise DocumentStoreError(
                "Document store error "
                f"(status={response.status_code}): {response.text[:500]}"
            )

        body = response.json()
        if not isinstance(body, dict):
            raise DocumentStoreError(
                "Document store returned a non-object document"
            )
        return body


class InMemoryDocumentRepository:
    """Dictionary-backed repository for tests and local runs."""

    def __init__(self, documents: Optional[Mapping[str, Document]] = None) -> None:
        self._documents: Dict[str, Document] = dict(documents or {})

    def add(self, document_id: str, document: Document) -> None:
        self._documents[document_id] = document

    async def get(self, document_id: str) -> Optional[Document]:
        document = self._documents.get(document_id)
        return dict(document) if document is not None else None


class DocumentService:
    def __init__(
        self,
        *,
        repository: DocumentRepository,
        orchestrator: VerificationOrchestrator,
    ) -> None:
        self._repository = repository
        self._orchestrator = orchestrator

    async def get_document(self, document_id: str) -> Document:
        document = await self._repository.get(document_id)
        if document is None:
            logger.info(
                "document_not_found",
                extra={"document_id": document_id},
            )
            raise DocumentNotFound(document_id)
        return document

    async def verify_document_proof(
        self,
        request: VerifyProofRequest,
        *,
        cancel_token: Optional[anyio.Event] = None,
        emitter: Optional[VerificationEventEmitter] = None,
        verification_id: Optional[str] = None,
    ) -> VerifyProofResponse:
        """
        Verify a proof on behalf of a stored document.

        Raises:
            DocumentNotFound: before any verification or network activity.
        """
        document = await self.get_document(request.document_id)

        verification = await self._orchestrator.verify(
            document_id=request.document_id,
            proof=request.proof,
            vk=request.vk,
            circuit_type=request.circuit_type,
            public_inputs=request.public_inputs,
            declared_input_count=request.number_of_public_inputs,
            cancel_token=cancel_token,
            emitter=emitter,
            verification_id=verification_id,
        )

        return VerifyProofResponse(
            document_id=request.document_id,
            document=document,
            verification=verification,
        )
