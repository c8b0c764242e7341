"""
Interfaces between the verification session and a concrete network client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Union

from verifier.app.network.events import TransactionEvents

PublicSignal = Union[int, str]


@dataclass(frozen=True)
class AccountInfo:
    endpoint: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProofSubmission:
    """
    Hex-encoded payload for a single network submission.
    """

    vk_hex: str
    proof_hex: str
    public_signals: List[PublicSignal]
    number_of_public_inputs: int
    proof_type: str = "ultraplonk"


class PendingTransaction(Protocol):
    """
    A submitted transaction whose lifecycle has not been observed yet.
    """

    job_id: str

    async def follow(self, events: TransactionEvents) -> None:
        """
        Observe the transaction and emit lifecycle events into ``events``
        until a terminal event has been emitted.
        """
        ...


class VerificationNetwork(Protocol):
    async def connect(self) -> AccountInfo:
        ...

    async def submit(self, submission: ProofSubmission) -> PendingTransaction:
        ...

    async def close(self) -> None:
        ...
