"""
Optional local proof check.

Runs the Barretenberg CLI against the canonical proof bytes to help
diagnose formatting mismatches before paying for a network submission.

IMPORTANT:
- Best-effort and non-authoritative.
- The outcome is logged and recorded, never used to gate submission.
- Only the verification network's verdict is authoritative.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

import anyio

from verifier.app.errors import LocalVerificationInconclusive
from verifier.app.schemas.verification import (
    LocalCheckOutcome,
    LocalCheckStatus,
)
from verifier.app.services.byte_codec import FIELD_ELEMENT_SIZE, ProofMaterial
from verifier.app.services.circuits import CircuitDescriptor
from verifier.app.services.public_inputs import (
    coerce_to_strings,
    to_field_element,
)

logger = logging.getLogger("verifier.local_verifier")

ProcessRunner = Callable[
    [Sequence[str]],
    Awaitable["subprocess.CompletedProcess[bytes]"],
]


async def _run_process(command: Sequence[str]) -> "subprocess.CompletedProcess[bytes]":
    return await anyio.run_process(list(command), check=False)


def _public_inputs_blob(public_inputs: Sequence[str]) -> bytes:
    return b"".join(
        to_field_element(value).to_bytes(FIELD_ELEMENT_SIZE, "big")
        for value in public_inputs
    )


class LocalVerifier:
    """
    Diagnostic wrapper around ``bb verify``.
    """

    def __init__(
        self,
        *,
        binary: str = "bb",
        scheme: str = "ultra_honk",
        enabled: bool = True,
        runner: Optional[ProcessRunner] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.binary = binary
        self.scheme = scheme
        self.enabled = enabled
        self._runner = runner or _run_process
        self._which = which

    async def check(
        self,
        descriptor: CircuitDescriptor,
        material: ProofMaterial,
        public_inputs: Sequence[Any],
    ) -> LocalCheckOutcome:
        """
        Run the local check and return a diagnostic outcome.

        Never raises.
        """
        inputs_as_strings = coerce_to_strings(public_inputs)

        skip_reason = self._skip_reason(descriptor)
        if skip_reason is not None:
            logger.info(
                "local_verification_skipped",
                extra={
                    "circuit_type": descriptor.circuit_type.value,
                    "reason": skip_reason,
                },
            )
            return LocalCheckOutcome(
                status=LocalCheckStatus.SKIPPED,
                detail=skip_reason,
                public_inputs=inputs_as_strings,
            )

        try:
            completed = await self._verify(material, inputs_as_strings)
        except Exception as exc:
            inconclusive = LocalVerificationInconclusive(
                f"local verifier did not run: {type(exc).__name__}: {exc}"
            )
            logger.warning(
                "local_verification_inconclusive",
                extra={
                    "circuit_type": descriptor.circuit_type.value,
                    "error": str(inconclusive),
                },
            )
            return LocalCheckOutcome(
                status=LocalCheckStatus.INCONCLUSIVE,
                detail=str(inconclusive),
                public_inputs=inputs_as_strings,
            )

        if completed.returncode == 0:
            logger.info(
                "local_verification_passed",
                extra={"circuit_type": descriptor.circuit_type.value},
            )
            return LocalCheckOutcome(
                status=LocalCheckStatus.PASSED,
                detail="local verification passed",
                public_inputs=inputs_as_strings,
            )

        stderr = (completed.stderr or b"").decode("utf-8", errors="replace")
        logger.warning(
            "local_verification_failed_continuing",
            extra={
                "circuit_type": descriptor.circuit_type.value,
                "returncode": completed.returncode,
                "stderr_tail": stderr[-500:],
            },
        )
        return LocalCheckOutcome(
            status=LocalCheckStatus.FAILED,
            detail=(
                f"{self.binary} exited with status {completed.returncode}"
            ),
            public_inputs=inputs_as_strings,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _skip_reason(self, descriptor: CircuitDescriptor) -> Optional[str]:
        if not self.enabled:
            return "local verification disabled"
        if descriptor.artifact is None:
            return "circuit artifact not available"
        if not descriptor.artifact.has_bytecode:
            return "circuit artifact has no bytecode"
        if self._which(self.binary) is None:
            return f"{self.binary} not found on PATH"
        return None

    async def _verify(
        self,
        material: ProofMaterial,
        public_inputs: Sequence[str],
    ) -> "subprocess.CompletedProcess[bytes]":
        with tempfile.TemporaryDirectory() as tmp:
            tmpdir = Path(tmp)

            proof_path = tmpdir / "proof"
            vk_path = tmpdir / "vk"
            inputs_path = tmpdir / "public_inputs"

            proof_path.write_bytes(material.proof_bytes)
            vk_path.write_bytes(material.verification_key_bytes)
            inputs_path.write_bytes(_public_inputs_blob(public_inputs))

            command = [
                self.binary,
                "verify",
                "--scheme",
                self.scheme,
                "-k",
                str(vk_path),
                "-p",
                str(proof_path),
                "-i",
                str(inputs_path),
            ]

            return await self._runner(command)
