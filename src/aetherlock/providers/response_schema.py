"""Assessment response schema — shape check for a provider's raw JSON.

Every provider reply is validated here before normalization. A reply that
fails this check is a malformed response: the provider counts as unavailable
and the pipeline moves on to the next one.

The schema is deliberately loose on score values. Out-of-range or
non-numeric scores are repaired by normalization rather than rejected.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

_SCORE = {"type": ["number", "string", "null"]}

ASSESSMENT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "passed": {"type": "boolean"},
        "confidence": _SCORE,
        "feedback": {"type": ["string", "null"]},
        "qualityScore": _SCORE,
        "completenessScore": _SCORE,
        "accuracyScore": _SCORE,
        "suggestions": {"type": ["array", "null"]},
        "analysisDetails": {
            "type": ["object", "null"],
            "properties": {
                "qualityScore": _SCORE,
                "completenessScore": _SCORE,
                "accuracyScore": _SCORE,
                "suggestions": {"type": ["array", "null"]},
            },
        },
    },
    "anyOf": [
        {"required": ["confidence"]},
        {"required": ["passed"]},
    ],
}

_validator = Draft7Validator(ASSESSMENT_SCHEMA)


def validate_assessment(payload: Any) -> list[str]:
    """Return human-readable schema violations (empty when the payload is valid)."""
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    messages = []
    for err in errors:
        path = ".".join(str(p) for p in err.path)
        messages.append(f"{path}: {err.message}" if path else err.message)
    return messages
