"""
Public input handling: count reconciliation and candidate wire encodings.

The verification network does not publish a stable encoding for public
input scalars, and the accepted encoding has been observed to vary.
PUBLIC_INPUT_ENCODINGS lists the candidates in the order they are tried.

IMPORTANT:
- The candidate order is empirically established priority.
- Reordering changes which encoding the network sees first, and every
  attempt is a paid network round trip.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from verifier.app.schemas.verification import InputCountAdjustment, Scalar

logger = logging.getLogger("verifier.public_inputs")

PublicSignal = Union[int, str]

# BN254 scalar field modulus (Fr)
BN254_FR_MODULUS = int(
    "21888242871839275222246405745257275088548364400416034343698204186575808495617"
)

_WORD_MODULUS = 1 << 256

_DECIMAL_RE = re.compile(r"^[+-]?\d+$")
_HEX_RE = re.compile(r"^0[xX][0-9a-fA-F]+$")


# ----------------------------------------------------------------------
# Normalization and reconciliation
# ----------------------------------------------------------------------

def normalize_public_inputs(public_inputs: Any) -> Tuple[Scalar, ...]:
    """A scalar becomes a one-element sequence; sequences keep their order."""
    if isinstance(public_inputs, (list, tuple)):
        return tuple(public_inputs)
    return (public_inputs,)


def reconcile_input_count(
    public_inputs: Any,
    declared: int,
) -> Tuple[int, Optional[InputCountAdjustment]]:
    """
    Reconcile the declared public input count with the supplied inputs.

    The actual count always wins. A mismatch is logged and returned as an
    InputCountAdjustment so it can be recorded on the result trail.
    """
    if isinstance(public_inputs, (list, tuple)):
        actual = len(public_inputs)
    else:
        actual = 1

    if actual == declared:
        return declared, None

    logger.warning(
        "public_input_count_mismatch",
        extra={"declared": declared, "actual": actual},
    )
    return actual, InputCountAdjustment(declared=declared, actual=actual)


# ----------------------------------------------------------------------
# Scalar coercion
# ----------------------------------------------------------------------

def parse_integer(value: Any) -> Optional[int]:
    """Parse a scalar as an integer, or return None when it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if _DECIMAL_RE.match(text):
            return int(text, 10)
        if _HEX_RE.match(text):
            return int(text, 16)
    return None


def coerce_integer(value: Any, *, warn: bool = False) -> int:
    parsed = parse_integer(value)
    if parsed is None:
        if warn:
            logger.warning(
                "public_input_not_numeric",
                extra={"value": repr(value)},
            )
        return 0
    return parsed


def to_word_hex(value: Any) -> str:
    return format(coerce_integer(value) % _WORD_MODULUS, "064x")


def to_field_element(value: Any) -> int:
    return coerce_integer(value) % BN254_FR_MODULUS


def coerce_to_strings(public_inputs: Sequence[Any]) -> List[str]:
    return [str(value) for value in public_inputs]


# ----------------------------------------------------------------------
# Candidate encodings
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class PublicInputEncoding:
    name: str
    encode_value: Callable[[Any], PublicSignal]

    def encode(self, public_inputs: Sequence[Any]) -> List[PublicSignal]:
        return [self.encode_value(value) for value in public_inputs]


PUBLIC_INPUT_ENCODINGS: Tuple[PublicInputEncoding, ...] = (
    PublicInputEncoding("decimal_string", str),
    PublicInputEncoding(
        "integer",
        lambda value: coerce_integer(value, warn=True),
    ),
    PublicInputEncoding(
        "hex_prefixed",
        lambda value: f"0x{to_word_hex(value)}",
    ),
    PublicInputEncoding("hex_unprefixed", to_word_hex),
    # Same value as decimal_string for canonical inputs; kept as its own
    # candidate so attempts stay distinguishable in the trail.
    PublicInputEncoding(
        "field_element_string",
        lambda value: str(to_field_element(value)),
    ),
    PublicInputEncoding(
        "bigint_string",
        lambda value: str(coerce_integer(value)),
    ),
)


def encoding_names() -> List[str]:
    return [encoding.name for encoding in PUBLIC_INPUT_ENCODINGS]
