"""IntentAnalysis wire shape against intent_analysis.schema.json."""

from __future__ import annotations

import jsonschema
import pytest

from askit_voice.contracts import load_schema, validate_or_raise
from askit_voice.models import IntentAnalysis, fallback_analysis

SCHEMA = "intent_analysis.schema.json"


def test_schema_ships_with_package() -> None:
    schema = load_schema(SCHEMA)
    assert set(schema["required"]) == {"intent", "entities", "simplifiedQuery", "language"}


def test_full_analysis_satisfies_contract() -> None:
    analysis = IntentAnalysis(
        intent="tax_services",
        entities={"service": "income_tax", "action": "pay"},
        simplifiedQuery="Pay income tax",
        language="hi",
        response="Aap income tax portal par bhugtan kar sakte hain.",
    )
    payload = analysis.to_contract()
    validate_or_raise(payload, SCHEMA)
    assert payload["simplifiedQuery"] == "Pay income tax"
    assert "simplified_query" not in payload


def test_fallback_satisfies_contract() -> None:
    payload = fallback_analysis("kuch bhi").to_contract()
    validate_or_raise(payload, SCHEMA)
    assert "response" not in payload


@pytest.mark.parametrize(
    "payload",
    [
        {"intent": "water_bill", "entities": {}, "simplifiedQuery": "x", "language": "en"},
        {"intent": "general_query", "entities": [], "simplifiedQuery": "x", "language": "en"},
        {"intent": "general_query", "entities": {}, "simplifiedQuery": "", "language": "en"},
        {"intent": "general_query", "entities": {}, "simplifiedQuery": "x"},
    ],
)
def test_contract_rejects_malformed_payloads(payload: dict) -> None:
    with pytest.raises(jsonschema.ValidationError):
        validate_or_raise(payload, SCHEMA)
