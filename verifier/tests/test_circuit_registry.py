import json

import pytest

from verifier.app.schemas.verification import CircuitType
from verifier.app.services.circuits import CircuitRegistry

pytestmark = pytest.mark.anyio


def _write_artifact(root, circuit_type: CircuitType, text: str):
    name = circuit_type.value
    path = root / name / "target" / f"{name}.json"
    path.parent.mkdir(parents=True)
    path.write_text(text, encoding="utf-8")
    return path


async def test_artifact_path_layout(tmp_path):
    registry = CircuitRegistry(tmp_path)

    assert registry.artifact_path(CircuitType.DATE_VALIDATION) == (
        tmp_path / "date_validation" / "target" / "date_validation.json"
    )


async def test_loads_artifact_with_bytecode(tmp_path):
    path = _write_artifact(
        tmp_path,
        CircuitType.CARGO_VALIDATION,
        json.dumps({"bytecode": "H4sIAAAA", "noir_version": "0.36.0"}),
    )

    artifact = await CircuitRegistry(tmp_path).load(CircuitType.CARGO_VALIDATION)

    assert artifact is not None
    assert artifact.path == path
    assert artifact.has_bytecode is True
    assert artifact.raw["noir_version"] == "0.36.0"


async def test_artifact_without_bytecode(tmp_path):
    _write_artifact(tmp_path, CircuitType.TAX_VALIDATION, json.dumps({"abi": {}}))

    artifact = await CircuitRegistry(tmp_path).load(CircuitType.TAX_VALIDATION)

    assert artifact is not None
    assert artifact.has_bytecode is False


async def test_missing_artifact_is_tolerated(tmp_path):
    assert await CircuitRegistry(tmp_path).load(CircuitType.TAX_VALIDATION) is None


@pytest.mark.parametrize("text", ["{not json", "[1, 2, 3]", ""])
async def test_malformed_artifact_is_tolerated(tmp_path, text):
    _write_artifact(tmp_path, CircuitType.DATE_VALIDATION, text)

    assert await CircuitRegistry(tmp_path).load(CircuitType.DATE_VALIDATION) is None


async def test_describe_resolves_afresh(tmp_path):
    registry = CircuitRegistry(tmp_path)

    before = await registry.describe(CircuitType.CARGO_VALIDATION, 2)
    _write_artifact(
        tmp_path,
        CircuitType.CARGO_VALIDATION,
        json.dumps({"bytecode": "abc"}),
    )
    after = await registry.describe(CircuitType.CARGO_VALIDATION, 2)

    assert before.artifact is None
    assert before.number_of_public_inputs == 2
    assert after.artifact is not None
