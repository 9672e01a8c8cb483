"""Metadata provider registry and validation helpers."""

from __future__ import annotations

from typing import Any, Iterable

from .units import Section


def builtin_provider_registry() -> dict[str, dict[str, Any]]:
    return {
        "tmdb": {
            "type": "metadata",
            "name": "tmdb",
            "sections": ["films", "series"],
            "auth": {"scheme": "api_key", "key_path": "metadata.tmdb.api_key"},
            "required_keys": ["metadata.tmdb.api_key"],
            "optional_keys": ["metadata.tmdb.language", "metadata.tmdb.fallback_language"],
            "status_url": "https://api.themoviedb.org/3/configuration",
            "capabilities": {"search": True, "details": True},
        },
        "itunes": {
            "type": "metadata",
            "name": "itunes",
            "sections": ["music"],
            "auth": {"scheme": "none"},
            "required_keys": [],
            "optional_keys": ["metadata.itunes.country"],
            "status_url": "https://itunes.apple.com/search",
            "capabilities": {"search": True, "details": True},
        },
    }


def required_providers(sections: Iterable[Section]) -> list[str]:
    wanted = {s.value for s in sections}
    out: list[str] = []
    for name, entry in builtin_provider_registry().items():
        if wanted.intersection(entry.get("sections") or []):
            out.append(name)
    return out


def provider_required_keys(name: str) -> list[str]:
    entry = builtin_provider_registry().get(name) or {}
    return list(entry.get("required_keys") or [])


def provider_status_url(name: str) -> str | None:
    entry = builtin_provider_registry().get(name) or {}
    return entry.get("status_url")
