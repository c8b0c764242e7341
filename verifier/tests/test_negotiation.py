import anyio
import pytest

from verifier.app.errors import (
    AllEncodingsExhausted,
    EncodingAttemptFailed,
    SessionNotInitialized,
    SubmissionCancelled,
)
from verifier.app.network.session import VerificationSession
from verifier.app.services.negotiation import FormatNegotiator, first_success
from verifier.app.services.public_inputs import encoding_names
from verifier.tests.fakes import (
    FakeNetwork,
    ListEmitter,
    ScriptedTransaction,
    accept_from,
)

pytestmark = pytest.mark.anyio


# ----------------------------------------------------------------------
# first_success combinator
# ----------------------------------------------------------------------

async def test_first_success_stops_at_first_success():
    calls = []

    async def attempt(candidate):
        calls.append(candidate)
        if candidate < 3:
            raise EncodingAttemptFailed(f"no {candidate}")
        return candidate * 10

    candidate, value, attempts = await first_success([1, 2, 3, 4], attempt)

    assert (candidate, value) == (3, 30)
    assert calls == [1, 2, 3]
    assert [a.succeeded for a in attempts] == [False, False, True]
    assert attempts[0].error == "no 1"


async def test_first_success_exhaustion_carries_last_error():
    async def attempt(candidate):
        raise EncodingAttemptFailed(f"no {candidate}")

    with pytest.raises(AllEncodingsExhausted) as excinfo:
        await first_success(["a", "b"], attempt)

    assert excinfo.value.last_error == "no b"
    assert len(excinfo.value.attempts) == 2
    assert str(excinfo.value).startswith("All 2 public input encodings exhausted")


async def test_first_success_fatal_error_stops_immediately():
    calls = []
    trail = []

    async def attempt(candidate):
        calls.append(candidate)
        if candidate == 1:
            raise EncodingAttemptFailed("retryable")
        raise SessionNotInitialized("gone")

    with pytest.raises(SessionNotInitialized):
        await first_success([1, 2, 3], attempt, attempts=trail)

    assert calls == [1, 2]
    assert [a.encoding for a in trail] == ["1"]


# ----------------------------------------------------------------------
# FormatNegotiator
# ----------------------------------------------------------------------

async def _negotiator(network: FakeNetwork, timeout: float = 5) -> FormatNegotiator:
    session = VerificationSession(network, retry_wait_seconds=0)
    await session.start()
    return FormatNegotiator(session, timeout_seconds=timeout)


async def _negotiate(negotiator: FormatNegotiator, **overrides):
    arguments = dict(
        vk_hex="0x01",
        proof_hex="0x02",
        public_inputs=("42",),
        number_of_public_inputs=1,
        proof_type="ultraplonk",
        verification_id="v-1",
    )
    arguments.update(overrides)
    return await negotiator.negotiate(**arguments)


async def test_first_candidate_accepted_makes_one_submission():
    network = FakeNetwork(plan=accept_from(1))

    result = await _negotiate(await _negotiator(network))

    assert result.encoding == "decimal_string"
    assert result.receipt.tx_hash == "0xabc123"
    assert network.submit_calls == 1
    assert network.submissions[0].public_signals == ["42"]


async def test_candidates_are_tried_in_order():
    network = FakeNetwork(plan=accept_from(6))
    emitter = ListEmitter()

    result = await _negotiate(await _negotiator(network), emitter=emitter)

    assert result.encoding == "bigint_string"
    assert [a.encoding for a in result.attempts] == encoding_names()
    assert [a.succeeded for a in result.attempts] == [False] * 5 + [True]
    assert network.submit_calls == 6

    signals = [s.public_signals for s in network.submissions]
    assert signals[0] == ["42"]
    assert signals[1] == [42]
    assert signals[2] == ["0x" + format(42, "064x")]
    assert signals[3] == [format(42, "064x")]

    assert emitter.types.count("encoding_attempt_failed") == 5
    assert emitter.types[-1] == "encoding_attempt_succeeded"


async def test_all_rejected_raises_exhausted():
    network = FakeNetwork(plan=accept_from(None))

    with pytest.raises(AllEncodingsExhausted) as excinfo:
        await _negotiate(await _negotiator(network))

    assert network.submit_calls == 6
    assert excinfo.value.last_error == "rejected encoding #6"


async def test_cancellation_is_not_retried():
    network = FakeNetwork(
        plan=lambda index, submission: ScriptedTransaction(
            f"job-{index}", [], hang=True
        )
    )
    cancel_token = anyio.Event()
    cancel_token.set()

    with pytest.raises(SubmissionCancelled):
        await _negotiate(await _negotiator(network), cancel_token=cancel_token)

    assert network.submit_calls == 1
