"""
Transaction lifecycle events emitted by the verification network.

TransactionEvents is a minimal one-shot dispatcher: every listener fires
at most once and is removed before it is invoked. Once the owner retires
all listeners, further emissions are no-ops.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger("verifier.network.events")


class NetworkEventKind(str, Enum):
    INCLUDED_IN_BLOCK = "includedInBlock"
    FINALIZED = "finalized"
    ERROR = "error"


TERMINAL_EVENT_KINDS = frozenset(
    {NetworkEventKind.FINALIZED, NetworkEventKind.ERROR}
)


class NetworkEvent(BaseModel):
    kind: NetworkEventKind
    job_id: Optional[str] = None
    tx_hash: Optional[str] = None
    block_hash: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_EVENT_KINDS


Listener = Callable[[NetworkEvent], None]


class TransactionEvents:
    """
    One-shot listener registry for a single submitted transaction.
    """

    def __init__(self) -> None:
        self._listeners: Dict[NetworkEventKind, List[Listener]] = {}

    def once(self, kind: NetworkEventKind, listener: Listener) -> None:
        self._listeners.setdefault(NetworkEventKind(kind), []).append(listener)

    def emit(self, event: NetworkEvent) -> bool:
        """
        Deliver an event to its listeners.

        Returns False when nobody was listening (including after
        retirement).
        """
        listeners = self._listeners.pop(event.kind, [])
        if not listeners:
            logger.debug(
                "network_event_ignored",
                extra={"kind": event.kind.value, "job_id": event.job_id},
            )
            return False

        for listener in listeners:
            listener(event)
        return True

    def listener_count(self, kind: Optional[NetworkEventKind] = None) -> int:
        if kind is not None:
            return len(self._listeners.get(kind, []))
        return sum(len(v) for v in self._listeners.values())

    def remove_all_listeners(self) -> None:
        self._listeners.clear()
