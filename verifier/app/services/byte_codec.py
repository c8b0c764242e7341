"""
Canonical byte handling for proof and verification key material.

Callers deliver the same bytes in two shapes: a dense array of byte-sized
integers, or an object keyed by stringified indices (what a typed array
becomes after a round trip through JSON). Both canonicalize to identical
``bytes``.

IMPORTANT:
- This module converts shapes and encodings only.
- No proof semantics or verification happen here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

from verifier.app.errors import MalformedMaterial

# UltraPlonk proof body size in bytes, excluding public inputs.
ULTRAPLONK_PROOF_SIZE = 2144

FIELD_ELEMENT_SIZE = 32

ByteMaterial = Union[bytes, bytearray, Sequence[int], Mapping[str, int]]


@dataclass(frozen=True)
class ProofMaterial:
    """Canonical proof and verification key bytes for one request."""

    proof_bytes: bytes
    verification_key_bytes: bytes


# ----------------------------------------------------------------------
# Canonicalization
# ----------------------------------------------------------------------

def _check_byte(value: Any, *, field: str, index: int) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedMaterial(
            f"{field}[{index}] is not an integer: {value!r}"
        )
    if not 0 <= value <= 255:
        raise MalformedMaterial(
            f"{field}[{index}] is outside the byte range [0, 255]: {value}"
        )
    return value


def _from_index_mapping(material: Mapping[Any, Any], *, field: str) -> bytes:
    indexed = {}
    for key, value in material.items():
        key_text = str(key)
        if not key_text.isdigit():
            raise MalformedMaterial(
                f"{field} has a non-numeric index: {key_text!r}"
            )
        index = int(key_text)
        if index in indexed:
            raise MalformedMaterial(f"{field} repeats index {index}")
        indexed[index] = value

    if sorted(indexed) != list(range(len(indexed))):
        raise MalformedMaterial(
            f"{field} indices are not contiguous from 0 "
            f"({len(indexed)} entries)"
        )

    return bytes(
        _check_byte(indexed[i], field=field, index=i)
        for i in range(len(indexed))
    )


def canonicalize_material(material: ByteMaterial, *, field: str) -> bytes:
    """
    Normalize proof or key material into a canonical byte sequence.

    Raises:
        MalformedMaterial: a value is outside [0, 255], an index is not a
            decimal number, or indices are not contiguous from zero.
    """
    if isinstance(material, (bytes, bytearray)):
        return bytes(material)

    if isinstance(material, Mapping):
        return _from_index_mapping(material, field=field)

    if isinstance(material, Sequence) and not isinstance(material, str):
        return bytes(
            _check_byte(value, field=field, index=i)
            for i, value in enumerate(material)
        )

    raise MalformedMaterial(
        f"{field} must be a byte array or an index->byte object, "
        f"got {type(material).__name__}"
    )


def build_proof_material(
    proof: ByteMaterial,
    vk: ByteMaterial,
) -> ProofMaterial:
    return ProofMaterial(
        proof_bytes=canonicalize_material(proof, field="proof"),
        verification_key_bytes=canonicalize_material(vk, field="vk"),
    )


# ----------------------------------------------------------------------
# Wire encoding
# ----------------------------------------------------------------------

def to_hex(data: bytes, *, prefix: bool = True) -> str:
    encoded = bytes(data).hex()
    return f"0x{encoded}" if prefix else encoded


def preview_hex(data: bytes, length: int = 32) -> str:
    """First ``length`` bytes as hex, for debug logging."""
    return bytes(data[:length]).hex()


def convert_proof(proof_bytes: bytes, number_of_public_inputs: int) -> str:
    """
    Encode a proof for network submission.

    Provers may emit the proof with its public inputs prepended as
    32-byte field elements. The network expects the bare proof body, so
    those leading words are stripped when the length matches that layout.
    The public-input count therefore changes the encoded bytes, not just
    the formatting.
    """
    if number_of_public_inputs < 0:
        raise MalformedMaterial(
            f"numberOfPublicInputs must be >= 0, got {number_of_public_inputs}"
        )

    embedded = number_of_public_inputs * FIELD_ELEMENT_SIZE
    if embedded and len(proof_bytes) == ULTRAPLONK_PROOF_SIZE + embedded:
        proof_bytes = proof_bytes[embedded:]

    return to_hex(proof_bytes)


def convert_verification_key(vk_bytes: bytes) -> str:
    if not vk_bytes:
        raise MalformedMaterial("verification key is empty")
    return to_hex(vk_bytes)
