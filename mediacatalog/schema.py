"""Config schema validation."""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator


def _section_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "enabled": {"type": "boolean"},
            "sources": {"type": "array", "items": {"type": "string"}},
        },
    }


def config_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": True,
        "properties": {
            "destination": {"type": "string", "minLength": 1},
            "trackers": {"type": "array", "items": {"type": "string"}},
            "parallel_jobs": {"type": "integer", "minimum": 1},
            "sections": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "films": _section_schema(),
                    "series": _section_schema(),
                    "music": _section_schema(),
                },
            },
            "metadata": {
                "type": "object",
                "additionalProperties": True,
                "properties": {
                    "tmdb": {"type": "object", "additionalProperties": True},
                    "itunes": {"type": "object", "additionalProperties": True},
                },
            },
            "cache": {"type": "object", "additionalProperties": True},
            "tracker_fingerprint": {"type": "object", "additionalProperties": True},
            "overrides": {"type": "object", "additionalProperties": True},
            "archiver": {
                "type": "object",
                "additionalProperties": True,
                "properties": {
                    "command": {"type": "string"},
                    "private": {"type": "boolean"},
                },
            },
            "probe": {"type": "object", "additionalProperties": True},
            "presentation": {
                "type": "object",
                "additionalProperties": True,
                "properties": {
                    "enabled": {"type": "boolean"},
                    "images": {"type": "object", "additionalProperties": {"type": "string"}},
                },
            },
            "logging": {"type": "object", "additionalProperties": True},
            "report": {"type": "object", "additionalProperties": True},
        },
    }


def validate_config_schema(config: dict[str, Any]) -> list[str]:
    validator = Draft7Validator(config_schema())
    errors = []
    for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
        path = ".".join(str(part) for part in error.path)
        prefix = f"{path}: " if path else ""
        errors.append(prefix + error.message)
    return errors
