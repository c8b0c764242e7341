import json

import pytest

from verifier.app.events import (
    MemoryQueueEventEmitter,
    NullEventEmitter,
    VerificationEvent,
    VerificationEventType,
)
from verifier.app.network.events import (
    NetworkEvent,
    NetworkEventKind,
    TransactionEvents,
)

pytestmark = pytest.mark.anyio


def test_transaction_listeners_fire_once():
    seen = []
    events = TransactionEvents()
    events.once(NetworkEventKind.FINALIZED, seen.append)

    event = NetworkEvent(kind=NetworkEventKind.FINALIZED, tx_hash="0x1")

    assert events.emit(event) is True
    assert events.emit(event) is False
    assert seen == [event]


def test_retired_listeners_ignore_events():
    seen = []
    events = TransactionEvents()
    events.once(NetworkEventKind.ERROR, seen.append)
    events.once(NetworkEventKind.FINALIZED, seen.append)

    assert events.listener_count() == 2
    events.remove_all_listeners()

    assert events.emit(NetworkEvent(kind=NetworkEventKind.ERROR)) is False
    assert events.listener_count() == 0
    assert seen == []


def test_terminal_network_events():
    assert NetworkEvent(kind=NetworkEventKind.FINALIZED).is_terminal
    assert NetworkEvent(kind=NetworkEventKind.ERROR).is_terminal
    assert not NetworkEvent(kind=NetworkEventKind.INCLUDED_IN_BLOCK).is_terminal


def test_sse_payload_format():
    event = VerificationEvent(
        verification_id="v-1",
        event_type=VerificationEventType.ENCODING_ATTEMPT_STARTED,
        details={"encoding": "decimal_string"},
    )

    payload = event.to_sse_payload()

    assert payload.startswith("event: encoding_attempt_started\ndata: ")
    assert payload.endswith("\n\n")
    data = json.loads(payload.split("data: ", 1)[1])
    assert data["verification_id"] == "v-1"
    assert data["details"] == {"encoding": "decimal_string"}


async def test_memory_emitter_stream_ends_on_terminal_event():
    emitter = MemoryQueueEventEmitter()

    for event_type in (
        VerificationEventType.VERIFICATION_STARTED,
        VerificationEventType.VERIFICATION_COMPLETED,
        VerificationEventType.LOCAL_CHECK_COMPLETED,
    ):
        await emitter.emit(
            VerificationEvent(verification_id="v-1", event_type=event_type)
        )

    streamed = [event.event_type async for event in emitter.stream()]

    assert streamed == [
        VerificationEventType.VERIFICATION_STARTED,
        VerificationEventType.VERIFICATION_COMPLETED,
    ]


async def test_null_emitter_accepts_events():
    await NullEventEmitter().emit(
        VerificationEvent(
            verification_id="v-1",
            event_type=VerificationEventType.VERIFICATION_STARTED,
        )
    )
