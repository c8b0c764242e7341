import logging
from typing import Annotated, Any, Dict, Optional

import httpx
from pydantic import SecretStr
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    wait_fixed,
)

from verifier.app.errors import (
    EncodingAttemptFailed,
    NetworkTransactionError,
    SessionConfigurationError,
)
from verifier.app.network.events import (
    NetworkEvent,
    NetworkEventKind,
    TransactionEvents,
)
from verifier.app.network.protocol import AccountInfo, ProofSubmission

logger = logging.getLogger("verifier.relayer")

# Relayer job statuses, lowercased
PENDING_STATUSES = frozenset(
    {"queued", "valid", "submitted", "includedinblock", "aggregationpending"}
)
FINALIZED_STATUSES = frozenset({"finalized", "aggregated"})
FAILED_STATUSES = frozenset({"failed"})

# Status endpoint answers worth polling through
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


class JobPending(RuntimeError):
    """
    Internal sentinel exception for non-terminal relayer job states.

    Raised when the relayer reports a status such as:
    - Queued
    - Valid
    - Submitted
    - IncludedInBlock

    This exception is explicitly retryable.
    """


class JobStatusUnavailable(RuntimeError):
    """
    Transient failure reading a job's status.

    Raised for 5xx, 408, 425 and 429 answers and for unreadable bodies from the
    status endpoint. The job itself may still settle, so polling continues
    until the submission state machine's timeout bounds it.
    """


class RelayerClient:
    """
    Async client for the zkVerify relayer REST API.

    The relayer accepts a proof submission, returns a job ID, and exposes
    the on-chain lifecycle of that job through a status endpoint which is
    polled and translated into network events.
    """

    def __init__(
        self,
        *,
        http_client: Annotated[
            httpx.AsyncClient,
            "Persistent HTTP client",
        ],
        base_url: str,
        api_key: Optional[SecretStr],
        probe_path: str = "/health",
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self.client = http_client
        self.base_url = str(base_url).rstrip("/")
        self._api_key = api_key
        self.probe_path = "/" + probe_path.lstrip("/")
        self.poll_interval_seconds = poll_interval_seconds

    # ------------------------------------------------------------------
    # VerificationNetwork
    # ------------------------------------------------------------------

    async def connect(self) -> AccountInfo:
        """
        Validate configuration and probe relayer reachability.

        Raises SessionConfigurationError (never retried) when no API key
        is configured.
        """
        self._require_api_key()

        response = await self.client.get(
            f"{self.base_url}{self.probe_path}",
            timeout=10.0,
        )
        response.raise_for_status()

        details: Dict[str, Any] = {}
        try:
            body = response.json()
            if isinstance(body, dict):
                details = body
        except ValueError:
            pass

        return AccountInfo(endpoint=self.base_url, details=details)

    async def submit(self, submission: ProofSubmission) -> "RelayerTransaction":
        payload = {
            "proofType": submission.proof_type,
            "vkRegistered": False,
            "proofOptions": {
                "numberOfPublicInputs": submission.number_of_public_inputs,
            },
            "proofData": {
                "vk": submission.vk_hex,
                "proof": submission.proof_hex,
                "publicSignals": submission.public_signals,
            },
        }

        try:
            response = await self.client.post(
                self._submit_url(),
                json=payload,
                timeout=60.0,
            )
        except httpx.RequestError as exc:
            raise NetworkTransactionError(
                f"relayer unreachable: {type(exc).__name__}"
            ) from exc

        if response.is_error:
            logger.warning(
                "relayer_submission_rejected",
                extra={
                    "status_code": response.status_code,
                    "response_body": response.text[:1000],
                },
            )
            raise EncodingAttemptFailed(
                f"relayer rejected submission "
                f"({response.status_code}): {self._error_text(response)}"
            )

        body = response.json()
        job_id = body.get("jobId")
        if not job_id:
            raise NetworkTransactionError(
                "relayer response missing jobId"
            )

        if str(body.get("optimisticVerify", "")).lower() == "failed":
            raise EncodingAttemptFailed(
                "relayer optimistic verification failed"
            )

        logger.info("relayer_job_created", extra={"job_id": job_id})

        return RelayerTransaction(client=self, job_id=str(job_id))

    async def close(self) -> None:
        # The HTTP client is owned by the application lifespan.
        return

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_api_key(self) -> str:
        if self._api_key is None or not self._api_key.get_secret_value():
            raise SessionConfigurationError(
                "VERIFIER_RELAYER_API_KEY is not configured"
            )
        return self._api_key.get_secret_value()

    def _submit_url(self) -> str:
        return f"{self.base_url}/submit-proof/{self._require_api_key()}"

    def _status_url(self, job_id: str) -> str:
        return (
            f"{self.base_url}/job-status/"
            f"{self._require_api_key()}/{job_id}"
        )

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(body, dict):
            for key in ("message", "error", "details"):
                if body.get(key):
                    return str(body[key])
        return str(body)[:500]

    async def job_status(self, job_id: str) -> Dict[str, Any]:
        response = await self.client.get(
            self._status_url(job_id),
            timeout=30.0,
        )
        if response.status_code in TRANSIENT_STATUS_CODES or (
            response.is_server_error
        ):
            logger.warning(
                "relayer_job_status_unavailable",
                extra={"job_id": job_id, "status_code": response.status_code},
            )
            raise JobStatusUnavailable(
                f"job_status_unavailable:{response.status_code}"
            )
        response.raise_for_status()

        try:
            body = response.json()
        except ValueError as exc:
            logger.warning(
                "relayer_job_status_unreadable",
                extra={"job_id": job_id},
            )
            raise JobStatusUnavailable("job_status_unreadable") from exc
        if not isinstance(body, dict):
            raise JobStatusUnavailable("job_status_unreadable")
        return body


class RelayerTransaction:
    """
    A relayer job, followed by polling its status endpoint.
    """

    def __init__(self, *, client: RelayerClient, job_id: str) -> None:
        self._client = client
        self.job_id = job_id
        self._included_emitted = False

    async def follow(self, events: TransactionEvents) -> None:
        # No stop condition: the submission state machine bounds the wait.
        async for attempt in AsyncRetrying(
            wait=wait_fixed(self._client.poll_interval_seconds),
            retry=retry_if_exception_type(
                (httpx.TransportError, JobPending, JobStatusUnavailable)
            ),
            reraise=True,
        ):
            with attempt:
                await self._poll_once(events)

    async def _poll_once(self, events: TransactionEvents) -> None:
        result = await self._client.job_status(self.job_id)
        status = str(result.get("status", "")).lower()

        tx_hash = result.get("txHash")
        block_hash = result.get("blockHash")

        # includedInBlock is always observed before a terminal event
        if not self._included_emitted and (
            status == "includedinblock"
            or (status in FINALIZED_STATUSES and block_hash)
        ):
            self._included_emitted = True
            events.emit(
                NetworkEvent(
                    kind=NetworkEventKind.INCLUDED_IN_BLOCK,
                    job_id=self.job_id,
                    tx_hash=tx_hash,
                    block_hash=block_hash,
                )
            )

        if status in FINALIZED_STATUSES:
            events.emit(
                NetworkEvent(
                    kind=NetworkEventKind.FINALIZED,
                    job_id=self.job_id,
                    tx_hash=tx_hash,
                    block_hash=block_hash,
                )
            )
            return

        if status in FAILED_STATUSES:
            events.emit(
                NetworkEvent(
                    kind=NetworkEventKind.ERROR,
                    job_id=self.job_id,
                    tx_hash=tx_hash,
                    error=str(
                        result.get("error")
                        or result.get("statusDetails")
                        or "relayer job failed"
                    ),
                )
            )
            return

        if status not in PENDING_STATUSES:
            logger.warning(
                "relayer_unknown_job_status",
                extra={"job_id": self.job_id, "status": status},
            )

        raise JobPending(f"job_pending:{status}")
