"""JSON schema definition for reporter output."""
from __future__ import annotations

SCHEMA_VERSION = "1.0.0"

JSON_SCHEMA_V1 = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "reftest report",
    "type": "object",
    "required": ["schema_version", "generated_at", "summary", "cases", "skipped"],
    "properties": {
        "schema_version": {"type": "string"},
        "generated_at": {"type": "string", "format": "date-time"},
        "summary": {
            "type": "object",
            "required": [
                "total",
                "passed",
                "failed",
                "errors",
                "skipped",
                "duration_s",
                "tolerance",
                "noise_threshold",
                "viewport",
            ],
            "properties": {
                "total": {"type": "integer"},
                "passed": {"type": "integer"},
                "failed": {"type": "integer"},
                "errors": {"type": "integer"},
                "skipped": {"type": "integer"},
                "duration_s": {"type": "number"},
                "tolerance": {"type": "number"},
                "noise_threshold": {"type": "integer"},
                "viewport": {"type": "string"},
            },
        },
        "cases": {
            "type": "array",
            "items": {
                "type": "object",
                "required": [
                    "id",
                    "test",
                    "reference",
                    "relation",
                    "verdict",
                    "mismatch_ratio",
                    "duration_ms",
                ],
                "properties": {
                    "id": {"type": "string"},
                    "test": {"type": "string"},
                    "reference": {"type": "string"},
                    "relation": {"enum": ["match", "mismatch"]},
                    "verdict": {"enum": ["passed", "failed", "error"]},
                    "mismatch_ratio": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
                    "mismatched": {"type": "integer"},
                    "total": {"type": "integer"},
                    "tolerance": {"type": "number"},
                    "noise_threshold": {"type": "integer"},
                    "diff_path": {"type": ["string", "null"]},
                    "error": {"type": "string"},
                    "error_kind": {"enum": ["render", "dimension", "timeout", "internal"]},
                    "duration_ms": {"type": "number"},
                    "assertion": {"type": "string"},
                    "flags": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "skipped": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["path", "reason"],
                "properties": {
                    "path": {"type": "string"},
                    "reason": {"type": "string"},
                    "detail": {"type": "string"},
                },
            },
        },
    },
}
