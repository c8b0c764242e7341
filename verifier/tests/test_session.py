import httpx
import pytest

from verifier.app.errors import SessionNotInitialized
from verifier.app.network.protocol import ProofSubmission
from verifier.app.network.relayer import RelayerClient
from verifier.app.network.session import SessionState, VerificationSession
from verifier.tests.fakes import FakeNetwork

pytestmark = pytest.mark.anyio


async def test_successful_start_is_ready():
    network = FakeNetwork()
    session = VerificationSession(network, retry_wait_seconds=0)

    assert session.state is SessionState.UNINITIALIZED
    assert await session.start() is SessionState.READY
    assert session.account.endpoint == "fake://zkverify"


async def test_start_is_idempotent():
    network = FakeNetwork()
    session = VerificationSession(network, retry_wait_seconds=0)

    await session.start()
    await session.start()
    await session.ensure_started()

    assert network.connect_calls == 1


async def test_transient_failures_are_retried():
    network = FakeNetwork(connect_errors=[ConnectionError("down")] * 2)
    session = VerificationSession(network, max_attempts=3, retry_wait_seconds=0)

    assert await session.start() is SessionState.READY
    assert network.connect_calls == 3


async def test_exhausted_retry_budget_disables_session():
    network = FakeNetwork(connect_errors=[ConnectionError("down")] * 5)
    session = VerificationSession(network, max_attempts=2, retry_wait_seconds=0)

    assert await session.start() is SessionState.DISABLED
    assert network.connect_calls == 2

    # Disabled is permanent
    assert await session.start() is SessionState.DISABLED
    assert network.connect_calls == 2


async def test_missing_api_key_disables_without_retry():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        relayer = RelayerClient(
            http_client=client,
            base_url="https://relayer.test/api/v1",
            api_key=None,
        )
        session = VerificationSession(relayer, max_attempts=3, retry_wait_seconds=0)

        assert await session.start() is SessionState.DISABLED

    assert requests == []


async def test_submit_requires_ready_session():
    network = FakeNetwork()
    session = VerificationSession(network)

    with pytest.raises(SessionNotInitialized) as excinfo:
        await session.submit(
            ProofSubmission(
                vk_hex="0x01",
                proof_hex="0x02",
                public_signals=["1"],
                number_of_public_inputs=1,
            )
        )

    assert "zkVerify session not initialized" in str(excinfo.value)
    assert network.submit_calls == 0


async def test_close_disables_ready_session():
    network = FakeNetwork()
    session = VerificationSession(network, retry_wait_seconds=0)
    await session.start()

    await session.close()

    assert session.state is SessionState.DISABLED
    assert network.close_calls == 1
