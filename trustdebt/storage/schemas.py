"""
JSON Schemas of the stage artifacts.

Every artifact is an envelope (run id, stage, label, production time,
config digest) around a stage-specific payload. Documents are checked
against these schemas before they are written and again when read back.
"""

from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from trustdebt.errors import SchemaValidationError


STAGE_LABELS = ("keywords", "taxonomy", "orthogonality", "balance", "matrix", "grade")

_COUNT = {"type": "integer", "minimum": 0}
_NUMBER = {"type": "number"}
_NON_NEGATIVE = {"type": "number", "minimum": 0}
_CODE = {"type": "string", "pattern": "^[A-Z]+$"}

KEYWORD_TABLE = {
    "type": "object",
    "required": ["records", "occurrences"],
    "properties": {
        "records": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["token", "intent_count", "reality_count", "category_id"],
                "properties": {
                    "token": {"type": "string", "minLength": 1},
                    "intent_count": _COUNT,
                    "reality_count": _COUNT,
                    "category_id": {"anyOf": [_CODE, {"type": "null"}]},
                },
            },
        },
        "occurrences": {
            "type": "object",
            "propertyNames": {"pattern": "^(intent|reality):"},
            "additionalProperties": {"type": "object", "additionalProperties": _COUNT},
        },
    },
}

CATEGORY = {
    "type": "object",
    "required": ["id", "name", "description", "parent_id", "depth", "keywords", "units", "position"],
    "properties": {
        "id": _CODE,
        "name": {"type": "string"},
        "description": {"type": "string"},
        "parent_id": {"anyOf": [_CODE, {"type": "null"}]},
        "depth": _COUNT,
        "keywords": {"type": "array", "items": {"type": "string"}},
        "units": _COUNT,
        "position": _COUNT,
    },
}

TAXONOMY = {
    "type": "object",
    "required": ["categories"],
    "properties": {"categories": {"type": "array", "minItems": 1, "items": CATEGORY}},
}

PROFILES = {
    "type": "object",
    "propertyNames": {"pattern": "^[A-Z]+$"},
    "additionalProperties": {
        "type": "object",
        "required": ["category_id", "intent_sources", "reality_sources", "keyword_counts"],
        "properties": {
            "category_id": _CODE,
            "intent_sources": {"type": "object", "additionalProperties": _COUNT},
            "reality_sources": {"type": "object", "additionalProperties": _COUNT},
            "keyword_counts": {
                "type": "object",
                "additionalProperties": {
                    "type": "array", "items": _COUNT, "minItems": 2, "maxItems": 2,
                },
            },
        },
    },
}

CELL = {
    "type": "object",
    "required": ["row_id", "col_id", "intent_value", "reality_value", "contribution"],
    "properties": {
        "row_id": _CODE,
        "col_id": _CODE,
        "intent_value": _NON_NEGATIVE,
        "reality_value": _NON_NEGATIVE,
        "contribution": _NON_NEGATIVE,
    },
}

HOTSPOTS = {
    "type": "array",
    "items": {
        "allOf": [CELL],
        "required": ["direction"],
        "properties": {"direction": {"enum": ["reality_exceeds_intent", "intent_exceeds_reality", "aligned"]}},
    },
}

PAYLOADS: dict[str, dict[str, Any]] = {
    "keywords": {
        "type": "object",
        "required": ["table", "intent_sources", "reality_sources"],
        "properties": {
            "table": KEYWORD_TABLE,
            "intent_sources": _COUNT,
            "reality_sources": _COUNT,
        },
    },
    "taxonomy": {
        "type": "object",
        "required": ["taxonomy", "table", "dropped"],
        "properties": {
            "taxonomy": TAXONOMY,
            "table": KEYWORD_TABLE,
            "dropped": {"type": "array", "items": {"type": "string"}},
        },
    },
    "orthogonality": {
        "type": "object",
        "required": ["taxonomy", "correlations", "repairs", "passes", "profiles"],
        "properties": {
            "taxonomy": TAXONOMY,
            "correlations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["pair", "value", "violating", "near_miss"],
                    "properties": {
                        "pair": {"type": "array", "items": _CODE, "minItems": 2, "maxItems": 2},
                        "value": _NUMBER,
                        "violating": {"const": False},
                        "near_miss": {"type": "boolean"},
                    },
                },
            },
            "repairs": {"type": "array", "items": {"type": "object"}},
            "passes": _COUNT,
            "profiles": PROFILES,
        },
    },
    "balance": {
        "type": "object",
        "required": ["taxonomy", "groups", "category_count", "profiles"],
        "properties": {
            "taxonomy": TAXONOMY,
            "groups": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["parent_id", "members", "cv_before", "cv_after", "bound", "iterations"],
                },
            },
            "category_count": {"type": "integer", "minimum": 1},
            "profiles": PROFILES,
        },
    },
    "matrix": {
        "type": "object",
        "required": ["categories", "category_count", "cells", "summary"],
        "properties": {
            "categories": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["id", "name", "units", "position"],
                    "properties": {"id": _CODE, "name": {"type": "string"}, "units": _COUNT, "position": _COUNT},
                },
            },
            "category_count": {"type": "integer", "minimum": 1},
            "cells": {"type": "array", "items": CELL},
            "summary": {
                "type": "object",
                "required": ["total_drift", "diagonal_drift", "upper_drift", "lower_drift",
                             "asymmetry_ratio", "hotspots"],
                "properties": {
                    "total_drift": _NON_NEGATIVE,
                    "diagonal_drift": _NON_NEGATIVE,
                    "upper_drift": _NON_NEGATIVE,
                    "lower_drift": _NON_NEGATIVE,
                    "asymmetry_ratio": {"anyOf": [_NON_NEGATIVE, {"type": "null"}]},
                    "reality_excess_drift": _NON_NEGATIVE,
                    "intent_excess_drift": _NON_NEGATIVE,
                    "hotspots": HOTSPOTS,
                },
            },
        },
    },
    "grade": {
        "type": "object",
        "required": ["total_drift", "discount", "calibrated_score", "grade", "bounds",
                     "calibration", "category_count", "breakdown", "hotspots"],
        "properties": {
            "total_drift": _NON_NEGATIVE,
            "discount": {"type": "number", "minimum": 0, "exclusiveMaximum": 1},
            "calibrated_score": _NON_NEGATIVE,
            "grade": {"enum": ["A", "B", "C", "D"]},
            "bounds": {"type": "array", "items": _NON_NEGATIVE, "minItems": 3, "maxItems": 3},
            "calibration": {"type": "string"},
            "category_count": {"type": "integer", "minimum": 1},
            "breakdown": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["category_id", "name", "row_drift", "column_drift",
                                 "diagonal_drift", "calibrated", "grade"],
                    "properties": {"category_id": _CODE, "grade": {"enum": ["A", "B", "C", "D"]}},
                },
            },
            "hotspots": HOTSPOTS,
        },
    },
}

ENVELOPE = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["run_id", "stage_index", "label", "produced_at", "config_digest", "payload"],
    "properties": {
        "run_id": {"type": "string", "pattern": "^[A-Za-z0-9._-]+$"},
        "stage_index": {"type": "integer", "minimum": 0, "maximum": len(STAGE_LABELS) - 1},
        "label": {"enum": list(STAGE_LABELS)},
        "produced_at": {"type": "string", "minLength": 1},
        "config_digest": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "payload": {"type": "object"},
    },
}

_ENVELOPE_VALIDATOR = Draft202012Validator(ENVELOPE)
_PAYLOAD_VALIDATORS = {label: Draft202012Validator(schema) for label, schema in PAYLOADS.items()}


def _fail(error, where: str) -> SchemaValidationError:
    location = "/".join(str(part) for part in error.absolute_path) or "<root>"
    return SchemaValidationError(
        f"{where}: {error.message} (at {location})",
        detail={"path": location, "validator": error.validator},
    )


def validate_document(document: Any) -> None:
    """
    Validate an artifact document against the envelope and its payload schema.

    Raises:
        SchemaValidationError: On the most relevant violation found
    """
    error = best_match(_ENVELOPE_VALIDATOR.iter_errors(document))
    if error is not None:
        raise _fail(error, "Artifact envelope")

    index, label = document["stage_index"], document["label"]
    if STAGE_LABELS[index] != label:
        raise SchemaValidationError(
            f"Stage {index} must be labelled {STAGE_LABELS[index]!r}, got {label!r}",
            detail={"stage_index": index, "label": label},
        )
    error = best_match(_PAYLOAD_VALIDATORS[label].iter_errors(document["payload"]))
    if error is not None:
        raise _fail(error, f"Stage {index} ({label}) payload")
