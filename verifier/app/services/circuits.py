"""
Circuit artifact registry.

Resolves a circuit type to its compiled artifact on local disk:

    <circuits_dir>/<circuit_type>/target/<circuit_type>.json

The artifact is only ever used for the optional local proof check.
Absence or corruption of an artifact is NOT an error: it disables local
verification for the request and nothing else.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import anyio

from verifier.app.schemas.verification import CircuitType

logger = logging.getLogger("verifier.circuits")


@dataclass(frozen=True)
class CircuitArtifact:
    circuit_type: CircuitType
    path: Path
    bytecode: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def has_bytecode(self) -> bool:
        return bool(self.bytecode)


@dataclass(frozen=True)
class CircuitDescriptor:
    circuit_type: CircuitType
    number_of_public_inputs: int = 1
    artifact: Optional[CircuitArtifact] = None


class CircuitRegistry:
    """
    Read-only view over locally compiled circuit artifacts.

    Nothing is cached here; each verification call resolves its circuit
    afresh.
    """

    def __init__(self, circuits_dir: Path) -> None:
        self.circuits_dir = Path(circuits_dir)

    def artifact_path(self, circuit_type: CircuitType) -> Path:
        name = CircuitType(circuit_type).value
        return self.circuits_dir / name / "target" / f"{name}.json"

    async def load(self, circuit_type: CircuitType) -> Optional[CircuitArtifact]:
        path = self.artifact_path(circuit_type)

        try:
            text = await anyio.to_thread.run_sync(
                path.read_text, "utf-8"
            )
        except FileNotFoundError:
            logger.warning(
                "circuit_artifact_missing",
                extra={"circuit_type": str(circuit_type), "path": str(path)},
            )
            return None
        except OSError as exc:
            logger.warning(
                "circuit_artifact_unreadable",
                extra={
                    "circuit_type": str(circuit_type),
                    "path": str(path),
                    "error_type": type(exc).__name__,
                },
            )
            return None

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(
                "circuit_artifact_malformed",
                extra={
                    "circuit_type": str(circuit_type),
                    "path": str(path),
                    "error": str(exc),
                },
            )
            return None

        if not isinstance(raw, dict):
            logger.warning(
                "circuit_artifact_malformed",
                extra={
                    "circuit_type": str(circuit_type),
                    "path": str(path),
                    "error": "artifact root is not a JSON object",
                },
            )
            return None

        bytecode = raw.get("bytecode")
        if not isinstance(bytecode, str):
            bytecode = None

        logger.info(
            "circuit_artifact_loaded",
            extra={
                "circuit_type": str(circuit_type),
                "path": str(path),
                "has_bytecode": bytecode is not None,
            },
        )

        return CircuitArtifact(
            circuit_type=CircuitType(circuit_type),
            path=path,
            bytecode=bytecode,
            raw=raw,
        )

    async def describe(
        self,
        circuit_type: CircuitType,
        number_of_public_inputs: int = 1,
    ) -> CircuitDescriptor:
        return CircuitDescriptor(
            circuit_type=CircuitType(circuit_type),
            number_of_public_inputs=number_of_public_inputs,
            artifact=await self.load(circuit_type),
        )
