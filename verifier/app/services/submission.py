"""
Submission state machine for a single proof submission.

    IDLE -> SUBMITTED -> [INCLUDED_IN_BLOCK] -> FINALIZED
                     |-> ERRORED | TIMED_OUT | CANCELLED

Exactly one terminal outcome is resolved per submission. Resolution goes
through a OneShotOutcome: the first write wins, every later write is
rejected, and all network listeners are retired at that moment. Late
events can therefore never change the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

import anyio

from verifier.app.errors import (
    NetworkTransactionError,
    SessionNotInitialized,
    SubmissionCancelled,
    SubmissionTimedOut,
)
from verifier.app.network.events import (
    NetworkEvent,
    NetworkEventKind,
    TransactionEvents,
)
from verifier.app.network.protocol import PendingTransaction, ProofSubmission
from verifier.app.network.session import VerificationSession

logger = logging.getLogger("verifier.submission")

T = TypeVar("T")


class SubmissionState(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    INCLUDED_IN_BLOCK = "included_in_block"
    FINALIZED = "finalized"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {
        SubmissionState.FINALIZED,
        SubmissionState.ERRORED,
        SubmissionState.TIMED_OUT,
        SubmissionState.CANCELLED,
    }
)


@dataclass(frozen=True)
class SubmissionReceipt:
    job_id: str
    tx_hash: Optional[str]
    block_hash: Optional[str] = None


class OneShotOutcome(Generic[T]):
    """
    Single-assignment slot. The first resolve() wins.
    """

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._value: Optional[T] = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def resolve(self, value: T) -> bool:
        if self._event.is_set():
            return False
        self._value = value
        self._event.set()
        return True

    async def wait(self) -> T:
        await self._event.wait()
        return self._value  # type: ignore[return-value]


class _Cancelled:
    pass


_CANCELLED = _Cancelled()

Terminal = Union[NetworkEvent, _Cancelled]


class SubmissionStateMachine:
    """
    Drives one submission to exactly one terminal outcome.

    Instances are single-use.
    """

    def __init__(
        self,
        session: VerificationSession,
        *,
        timeout_seconds: float,
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._state = SubmissionState.IDLE
        self._outcome: OneShotOutcome[Terminal] = OneShotOutcome()
        self._events = TransactionEvents()
        self.inclusion: Optional[NetworkEvent] = None

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def events(self) -> TransactionEvents:
        return self._events

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        submission: ProofSubmission,
        *,
        cancel_token: Optional[anyio.Event] = None,
    ) -> SubmissionReceipt:
        """
        Submit once and wait for the terminal event.

        Raises:
            SessionNotInitialized: session not READY; no I/O attempted.
            EncodingAttemptFailed: the network refused the submission.
            NetworkTransactionError: the network emitted an error event.
            SubmissionTimedOut: no terminal event within the bound.
            SubmissionCancelled: cancel_token fired first.
        """
        if self._state is not SubmissionState.IDLE:
            raise RuntimeError("SubmissionStateMachine instances are single-use")

        if not self._session.is_ready:
            raise SessionNotInitialized(
                "zkVerify session not initialized "
                f"(state={self._session.state.value})"
            )

        transaction = await self._session.submit(submission)
        self._state = SubmissionState.SUBMITTED

        logger.info(
            "proof_submitted",
            extra={
                "job_id": transaction.job_id,
                "number_of_public_inputs": submission.number_of_public_inputs,
            },
        )

        self._events.once(NetworkEventKind.INCLUDED_IN_BLOCK, self._on_included)
        self._events.once(NetworkEventKind.FINALIZED, self._settle)
        self._events.once(NetworkEventKind.ERROR, self._settle)

        try:
            with anyio.fail_after(self._timeout_seconds):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(self._follow, transaction)
                    if cancel_token is not None:
                        tg.start_soon(self._watch_cancel, cancel_token)

                    terminal = await self._outcome.wait()
                    tg.cancel_scope.cancel()

        except TimeoutError:
            self._retire()
            self._state = SubmissionState.TIMED_OUT
            logger.error(
                "submission_timed_out",
                extra={
                    "job_id": transaction.job_id,
                    "timeout_seconds": self._timeout_seconds,
                },
            )
            raise SubmissionTimedOut(
                f"no terminal event for job {transaction.job_id} "
                f"within {self._timeout_seconds}s"
            ) from None

        return self._conclude(terminal, transaction)

    # ------------------------------------------------------------------
    # Listeners (one-shot)
    # ------------------------------------------------------------------

    def _on_included(self, event: NetworkEvent) -> None:
        if self._outcome.done or self.settled:
            return
        self.inclusion = event
        self._state = SubmissionState.INCLUDED_IN_BLOCK
        logger.info(
            "transaction_included_in_block",
            extra={
                "job_id": event.job_id,
                "block_hash": event.block_hash,
            },
        )

    def _settle(self, terminal: Terminal) -> None:
        if self._outcome.resolve(terminal):
            self._retire()
        else:
            logger.debug("late_terminal_event_ignored")

    def _retire(self) -> None:
        self._events.remove_all_listeners()

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _follow(self, transaction: PendingTransaction) -> None:
        try:
            await transaction.follow(self._events)
        except Exception as exc:
            logger.warning(
                "transaction_follow_failed",
                extra={
                    "job_id": transaction.job_id,
                    "error_type": type(exc).__name__,
                },
            )
            self._events.emit(
                NetworkEvent(
                    kind=NetworkEventKind.ERROR,
                    job_id=transaction.job_id,
                    error=f"event stream failed: {exc}",
                )
            )
            return

        if not self._outcome.done:
            self._events.emit(
                NetworkEvent(
                    kind=NetworkEventKind.ERROR,
                    job_id=transaction.job_id,
                    error="event stream ended without a terminal event",
                )
            )

    async def _watch_cancel(self, cancel_token: anyio.Event) -> None:
        await cancel_token.wait()
        self._settle(_CANCELLED)

    # ------------------------------------------------------------------
    # Terminal mapping
    # ------------------------------------------------------------------

    def _conclude(
        self,
        terminal: Terminal,
        transaction: PendingTransaction,
    ) -> SubmissionReceipt:
        if isinstance(terminal, _Cancelled):
            self._state = SubmissionState.CANCELLED
            logger.warning(
                "submission_wait_cancelled",
                extra={"job_id": transaction.job_id},
            )
            raise SubmissionCancelled(
                f"wait for job {transaction.job_id} cancelled; "
                "the submitted transaction was not retracted"
            )

        if terminal.kind is NetworkEventKind.FINALIZED:
            self._state = SubmissionState.FINALIZED
            logger.info(
                "proof_finalized",
                extra={
                    "job_id": transaction.job_id,
                    "tx_hash": terminal.tx_hash,
                },
            )
            return SubmissionReceipt(
                job_id=transaction.job_id,
                tx_hash=terminal.tx_hash,
                block_hash=terminal.block_hash,
            )

        self._state = SubmissionState.ERRORED
        logger.warning(
            "transaction_error",
            extra={"job_id": transaction.job_id, "error": terminal.error},
        )
        raise NetworkTransactionError(
            terminal.error or "zkVerify transaction failed",
            job_id=transaction.job_id,
        )
