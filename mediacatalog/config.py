"""Config loading, environment overrides and defaults."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .paths import cache_dir, config_path, ensure_dir, fingerprint_path, overrides_path, secrets_path
from .registry import provider_required_keys, required_providers
from .schema import validate_config_schema
from .units import Section
from .util import deep_merge, resolve_env_values

SECTION_ORDER = [Section.FILMS, Section.SERIES, Section.MUSIC]
_PREZ_IMAGES = ("info", "synopsis", "movie", "serie", "download", "link")


def default_config() -> dict[str, Any]:
    return {
        "destination": "/data/torrent",
        "trackers": [],
        "parallel_jobs": 1,
        "sections": {
            "films": {"enabled": False, "sources": ["/films"]},
            "series": {"enabled": False, "sources": ["/series"]},
            "music": {"enabled": False, "sources": ["/musiques"]},
        },
        "metadata": {
            "tmdb": {
                "api_key": "${ENV:TMDB_API_KEY}",
                "language": "fr-FR",
                "fallback_language": "en-US",
                "timeout": 15,
                "retries": 1,
                "retry_backoff_seconds": 0.5,
            },
            "itunes": {
                "timeout": 15,
                "retries": 1,
                "retry_backoff_seconds": 0.5,
            },
        },
        "cache": {"dir": None},
        "tracker_fingerprint": {"path": None},
        "overrides": {"path": None},
        "archiver": {"command": "mkbrr", "private": True},
        "probe": {"command": "mediainfo"},
        "presentation": {
            "enabled": True,
            "images": {name: "" for name in _PREZ_IMAGES},
        },
        "logging": {"path": None},
        "report": {"enabled": False},
    }


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"true", "1"}


def _env_list(value: str) -> list[str]:
    items: list[str] = []
    for item in value.split(","):
        item = item.strip().rstrip("/")
        if item and item not in items:
            items.append(item)
    return items


def _env_int(value: str, default: Any) -> Any:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    out: dict[str, Any] = {}
    if env.get("TRACKERS"):
        out["trackers"] = _env_list(env["TRACKERS"])
    if env.get("DEST_DIR"):
        out["destination"] = env["DEST_DIR"]
    if env.get("TMDB_API_KEY"):
        out.setdefault("metadata", {})["tmdb"] = {"api_key": env["TMDB_API_KEY"]}
    if env.get("PARALLEL_JOBS"):
        jobs = _env_int(env["PARALLEL_JOBS"], None)
        if jobs is not None:
            out["parallel_jobs"] = jobs
    presentation: dict[str, Any] = {}
    if env.get("ENABLE_PREZ"):
        presentation["enabled"] = _env_bool(env["ENABLE_PREZ"])
    images = {name: env[f"PREZ_IMG_{name.upper()}"] for name in _PREZ_IMAGES if env.get(f"PREZ_IMG_{name.upper()}")}
    if images:
        presentation["images"] = images
    if presentation:
        out["presentation"] = presentation
    sections: dict[str, Any] = {}
    for name, flag, dirs in (
        ("films", "ENABLE_FILMS", "FILMS_DIRS"),
        ("series", "ENABLE_SERIES", "SERIES_DIRS"),
        ("music", "ENABLE_MUSIQUES", "MUSIQUES_DIRS"),
    ):
        section: dict[str, Any] = {}
        if env.get(flag):
            section["enabled"] = _env_bool(env[flag])
        if env.get(dirs):
            sources = _env_list(env[dirs])
            if sources:
                section["sources"] = sources
        if section:
            sections[name] = section
    if sections:
        out["sections"] = sections
    return out


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    cfg_path = path or config_path()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found at {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as handle:
        config = yaml.safe_load(handle) or {}
    secrets = {}
    secrets_file = secrets_path()
    if secrets_file.exists():
        with secrets_file.open("r", encoding="utf-8") as handle:
            secrets = yaml.safe_load(handle) or {}
    merged = deep_merge(default_config(), deep_merge(config, secrets))
    merged = deep_merge(merged, env_overrides(environ))
    return normalize_config(resolve_env_values(merged))


def normalize_config(config: dict[str, Any]) -> dict[str, Any]:
    config["parallel_jobs"] = max(1, _env_int(config.get("parallel_jobs"), 1) or 1)
    trackers: list[str] = []
    for item in config.get("trackers") or []:
        item = str(item).strip()
        if item and item not in trackers:
            trackers.append(item)
    config["trackers"] = trackers
    for section in (config.get("sections") or {}).values():
        if isinstance(section, dict):
            sources = [str(s).rstrip("/") or "/" for s in section.get("sources") or [] if s]
            section["sources"] = list(dict.fromkeys(sources))
    return config


def save_default_config(path: Path | None = None, overwrite: bool = False) -> Path:
    cfg_path = path or config_path()
    ensure_dir(cfg_path.parent)
    if cfg_path.exists() and not overwrite:
        return cfg_path
    with cfg_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(default_config(), handle, sort_keys=False)
    return cfg_path


def save_default_secrets(path: Path | None = None, overwrite: bool = False) -> Path:
    cfg_path = path or secrets_path()
    ensure_dir(cfg_path.parent)
    if cfg_path.exists() and not overwrite:
        return cfg_path
    with cfg_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump({}, handle, sort_keys=False)
    return cfg_path


def resolve_config_path(path_str: str | None) -> Path:
    if path_str:
        return Path(path_str).expanduser()
    return config_path()


def ensure_config_exists(path_str: str | None = None) -> Path:
    cfg_path = resolve_config_path(path_str)
    if not cfg_path.exists():
        cfg_path = save_default_config(cfg_path, overwrite=False)
    return cfg_path


def enabled_sections(config: dict[str, Any]) -> list[Section]:
    sections = config.get("sections", {}) or {}
    return [s for s in SECTION_ORDER if (sections.get(s.value) or {}).get("enabled")]


def section_sources(config: dict[str, Any], section: Section) -> list[str]:
    return list(((config.get("sections", {}) or {}).get(section.value) or {}).get("sources") or [])


def destination(config: dict[str, Any]) -> Path:
    return Path(str(config.get("destination") or "/data/torrent")).expanduser()


def section_root(config: dict[str, Any], section: Section) -> Path:
    return destination(config) / section.value


def cache_root(config: dict[str, Any]) -> Path:
    custom = (config.get("cache", {}) or {}).get("dir")
    return Path(custom).expanduser() if custom else cache_dir()


def fingerprint_file(config: dict[str, Any]) -> Path:
    custom = (config.get("tracker_fingerprint", {}) or {}).get("path")
    return Path(custom).expanduser() if custom else fingerprint_path()


def overrides_file(config: dict[str, Any]) -> Path:
    custom = (config.get("overrides", {}) or {}).get("path")
    return Path(custom).expanduser() if custom else overrides_path()


def _get_path(obj: Any, path: str) -> Any:
    current = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def validate_config(config: dict[str, Any]) -> tuple[list[str], list[str]]:
    errors = validate_config_schema(config)
    warnings: list[str] = []

    if not config.get("trackers"):
        errors.append("trackers: at least one announce endpoint is required")

    active = enabled_sections(config)
    if not active:
        errors.append("sections: no media section is enabled")

    for provider in required_providers(active):
        for key in provider_required_keys(provider):
            value = _get_path(config, key)
            if not value or value == "CHANGE_ME":
                errors.append(f"{key} is required when {provider} lookups are active")

    for section in active:
        for src in section_sources(config, section):
            if not Path(src).is_dir():
                warnings.append(f"{section.value}: source directory not found: {src}")
    return errors, warnings
