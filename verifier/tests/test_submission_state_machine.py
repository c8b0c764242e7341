import anyio
import pytest

from verifier.app.errors import (
    EncodingAttemptFailed,
    NetworkTransactionError,
    SessionNotInitialized,
    SubmissionCancelled,
    SubmissionTimedOut,
)
from verifier.app.network.events import NetworkEvent, NetworkEventKind
from verifier.app.network.protocol import ProofSubmission
from verifier.app.network.session import VerificationSession
from verifier.app.services.submission import (
    OneShotOutcome,
    SubmissionState,
    SubmissionStateMachine,
)
from verifier.tests.fakes import (
    FakeNetwork,
    ScriptedTransaction,
    error_events,
    finalized_events,
)

pytestmark = pytest.mark.anyio

SUBMISSION = ProofSubmission(
    vk_hex="0x01",
    proof_hex="0x02",
    public_signals=["42"],
    number_of_public_inputs=1,
)


async def _ready_session(network: FakeNetwork) -> VerificationSession:
    session = VerificationSession(network, retry_wait_seconds=0)
    await session.start()
    return session


def _single(transaction: ScriptedTransaction):
    return lambda index, submission: transaction


async def test_finalized_event_resolves_with_receipt():
    network = FakeNetwork()
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )

    receipt = await machine.run(SUBMISSION)

    assert receipt.tx_hash == "0xabc123"
    assert receipt.job_id == "job-1"
    assert receipt.block_hash == "0xblock"
    assert machine.state is SubmissionState.FINALIZED
    assert machine.inclusion is not None
    assert machine.settled
    assert network.submit_calls == 1


async def test_error_event_raises_network_transaction_error():
    network = FakeNetwork(
        plan=_single(ScriptedTransaction("job-e", error_events("job-e", "bad")))
    )
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )

    with pytest.raises(NetworkTransactionError) as excinfo:
        await machine.run(SUBMISSION)

    assert "bad" in str(excinfo.value)
    assert excinfo.value.job_id == "job-e"
    assert machine.state is SubmissionState.ERRORED


async def test_events_after_resolution_are_ignored():
    """
    Once finalized, a later error event has no listener and no effect.
    """
    network = FakeNetwork()
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )

    await machine.run(SUBMISSION)

    late = NetworkEvent(kind=NetworkEventKind.ERROR, job_id="job-1", error="late")
    assert machine.events.listener_count() == 0
    assert machine.events.emit(late) is False
    assert machine.state is SubmissionState.FINALIZED


async def test_included_in_block_alone_does_not_resolve():
    job_id = "job-i"
    included, finalized = finalized_events(job_id)
    network = FakeNetwork(
        plan=_single(ScriptedTransaction(job_id, [included], hang=True))
    )
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=0.2
    )

    with pytest.raises(SubmissionTimedOut):
        await machine.run(SUBMISSION)

    assert machine.inclusion == included
    assert machine.state is SubmissionState.TIMED_OUT


async def test_timeout_retires_listeners():
    network = FakeNetwork(
        plan=_single(ScriptedTransaction("job-t", [], hang=True))
    )
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=0.05
    )

    with pytest.raises(SubmissionTimedOut):
        await machine.run(SUBMISSION)

    assert machine.state is SubmissionState.TIMED_OUT
    assert machine.events.listener_count() == 0
    assert machine.settled


async def test_cancel_token_resolves_as_cancelled():
    network = FakeNetwork(
        plan=_single(ScriptedTransaction("job-c", [], hang=True))
    )
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )
    cancel_token = anyio.Event()
    cancel_token.set()

    with pytest.raises(SubmissionCancelled):
        await machine.run(SUBMISSION, cancel_token=cancel_token)

    assert machine.state is SubmissionState.CANCELLED
    # The transaction was submitted and is not retracted
    assert network.submit_calls == 1


async def test_stream_ending_without_terminal_event_is_an_error():
    network = FakeNetwork(plan=_single(ScriptedTransaction("job-s", [])))
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )

    with pytest.raises(NetworkTransactionError) as excinfo:
        await machine.run(SUBMISSION)

    assert "without a terminal event" in str(excinfo.value)


async def test_follow_failure_becomes_error_event():
    network = FakeNetwork(
        plan=_single(
            ScriptedTransaction("job-f", [], fail_with=RuntimeError("socket closed"))
        )
    )
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )

    with pytest.raises(NetworkTransactionError) as excinfo:
        await machine.run(SUBMISSION)

    assert "socket closed" in str(excinfo.value)


async def test_submission_rejection_propagates():
    network = FakeNetwork(
        plan=lambda index, submission: EncodingAttemptFailed("rejected (400)")
    )
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )

    with pytest.raises(EncodingAttemptFailed):
        await machine.run(SUBMISSION)

    assert machine.state is SubmissionState.IDLE
    assert not machine.settled


async def test_session_not_ready_makes_no_network_calls():
    network = FakeNetwork()
    session = VerificationSession(network)
    machine = SubmissionStateMachine(session, timeout_seconds=5)

    with pytest.raises(SessionNotInitialized):
        await machine.run(SUBMISSION)

    assert network.connect_calls == 0
    assert network.submit_calls == 0


async def test_machine_is_single_use():
    network = FakeNetwork()
    machine = SubmissionStateMachine(
        await _ready_session(network), timeout_seconds=5
    )
    await machine.run(SUBMISSION)

    with pytest.raises(RuntimeError):
        await machine.run(SUBMISSION)

    assert network.submit_calls == 1


async def test_one_shot_outcome_first_write_wins():
    outcome = OneShotOutcome()

    assert outcome.resolve("first") is True
    assert outcome.resolve("second") is False
    assert outcome.done is True
    assert await outcome.wait() == "first"
