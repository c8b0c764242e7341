"""
Process-wide verification network session.

The session is constructed once by the application lifespan and injected
into every consumer. Initialization is idempotent-once and bounded: after
the retry budget is exhausted the session stays DISABLED for the life of
the process, and every submission fails fast.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import anyio
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from verifier.app.errors import (
    SessionConfigurationError,
    SessionNotInitialized,
)
from verifier.app.network.protocol import (
    AccountInfo,
    PendingTransaction,
    ProofSubmission,
    VerificationNetwork,
)

logger = logging.getLogger("verifier.session")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISABLED = "disabled"


class VerificationSession:
    """
    Authenticated connection to the external verification network.

    Only the session's own connection management mutates it; callers
    read its state and submit through it.
    """

    def __init__(
        self,
        network: VerificationNetwork,
        *,
        max_attempts: int = 3,
        retry_wait_seconds: float = 2.0,
    ) -> None:
        self._network = network
        self._max_attempts = max_attempts
        self._retry_wait_seconds = retry_wait_seconds
        self._state = SessionState.UNINITIALIZED
        self._account: Optional[AccountInfo] = None
        self._lock = anyio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def account(self) -> Optional[AccountInfo]:
        return self._account

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> SessionState:
        """
        Initialize the session once.

        Never raises: failures leave the session DISABLED.
        """
        async with self._lock:
            if self._state is not SessionState.UNINITIALIZED:
                return self._state

            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self._max_attempts),
                    wait=wait_fixed(self._retry_wait_seconds),
                    retry=retry_if_not_exception_type(
                        SessionConfigurationError
                    ),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        account = await self._network.connect()

            except SessionConfigurationError as exc:
                self._state = SessionState.DISABLED
                logger.warning(
                    "verification_session_disabled",
                    extra={"reason": str(exc)},
                )
                return self._state

            except Exception as exc:
                self._state = SessionState.DISABLED
                logger.error(
                    "verification_session_init_failed",
                    extra={
                        "attempts": self._max_attempts,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                return self._state

            self._account = account
            self._state = SessionState.READY
            logger.info(
                "verification_session_ready",
                extra={
                    "endpoint": account.endpoint,
                    "details": account.details,
                },
            )
            return self._state

    async def ensure_started(self) -> SessionState:
        if self._state is SessionState.UNINITIALIZED:
            return await self.start()
        return self._state

    async def close(self) -> None:
        try:
            await self._network.close()
        finally:
            if self._state is SessionState.READY:
                self._state = SessionState.DISABLED

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, submission: ProofSubmission) -> PendingTransaction:
        if not self.is_ready:
            raise SessionNotInitialized(
                f"zkVerify session not initialized (state={self._state.value})"
            )
        return await self._network.submit(submission)
