"""Utility helpers."""

from __future__ import annotations

import json
import os
import random
import re
import sys
import time
from pathlib import Path
from typing import Any

import requests

from .paths import ensure_dir


def write_json(obj: Any) -> None:
    json.dump(obj, sys.stdout, indent=2, ensure_ascii=True, sort_keys=False)
    sys.stdout.write("\n")


def deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


_ENV_PATTERN = re.compile(r"\$\{ENV:([A-Z0-9_]+)\}")


def resolve_env_values(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value.keys()) == {"_env"}:
            name = str(value.get("_env", ""))
            return os.environ.get(name, "")
        return {k: resolve_env_values(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_values(v) for v in value]
    if isinstance(value, str):
        def _replace(match: re.Match[str]) -> str:
            name = match.group(1)
            return os.environ.get(name, "")

        return _ENV_PATTERN.sub(_replace, value)
    return value


_SECRET_KEYS = ("api_key", "apikey", "token", "secret", "password")
_SECRET_QUERY = re.compile(r"(?i)(api_key|apikey|token)=([^&\s]+)")


def redact_payload(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for key, val in value.items():
            if isinstance(key, str) and any(part in key.lower() for part in _SECRET_KEYS):
                out[key] = "***" if val else val
            else:
                out[key] = redact_payload(val)
        return out
    if isinstance(value, list):
        return [redact_payload(v) for v in value]
    if isinstance(value, str):
        return _SECRET_QUERY.sub(lambda m: f"{m.group(1)}=***", value)
    return value


def classify_exception(exc: BaseException) -> tuple[str, str]:
    if isinstance(exc, requests.Timeout):
        return "TIMEOUT", "Remote service did not answer in time; it will be retried on the next run."
    if isinstance(exc, requests.RequestException):
        return "NETWORK_ERROR", "Check connectivity and API credentials."
    if isinstance(exc, json.JSONDecodeError):
        return "PARSE_ERROR", "A tool or service returned malformed JSON."
    if isinstance(exc, FileNotFoundError):
        return "NOT_FOUND", "A source file or external tool is missing."
    if isinstance(exc, PermissionError):
        return "PERMISSION_DENIED", "Check filesystem permissions on sources and destination."
    if isinstance(exc, OSError):
        return "IO_ERROR", "Check disk space and filesystem health."
    return "UNEXPECTED", "Rerun with a log path configured and inspect the log."


def request_with_retry(
    method: str,
    url: str,
    *,
    retries: int = 0,
    backoff_seconds: float = 0.5,
    max_backoff_seconds: float = 8.0,
    jitter: float = 0.1,
    retry_statuses: list[int] | None = None,
    **kwargs: Any,
) -> requests.Response:
    if retry_statuses is None:
        retry_statuses = [429, 502, 503, 504]
    attempt = 0
    while True:
        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException:
            if attempt >= retries:
                raise
            delay = min(max_backoff_seconds, backoff_seconds * (2 ** attempt))
            delay = delay + (random.random() * jitter)
            time.sleep(delay)
            attempt += 1
            continue
        if response.status_code in retry_statuses and attempt < retries:
            delay = min(max_backoff_seconds, backoff_seconds * (2 ** attempt))
            delay = delay + (random.random() * jitter)
            time.sleep(delay)
            attempt += 1
            continue
        return response


def cache_path(base: Path, namespace: str, key: str) -> Path:
    return Path(base) / namespace / f"{key}.json"


def read_cache(path: Path, ttl_seconds: float | None = None) -> Any | None:
    """Return the cached value, or None on a miss.

    An entry that cannot be decoded is deleted so the next write recreates it.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict) or "value" not in data:
            raise ValueError("cache entry has no value")
    except (OSError, ValueError):
        try:
            path.unlink()
        except OSError:
            pass
        return None
    timestamp = data.get("timestamp")
    if ttl_seconds is not None and timestamp:
        if time.time() - float(timestamp) > float(ttl_seconds):
            return None
    return data.get("value")


def write_cache(path: Path, value: Any) -> None:
    ensure_dir(path.parent)
    payload = {"timestamp": time.time(), "value": value}
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=True, sort_keys=True), encoding="utf-8")


def format_size(num_bytes: int) -> str:
    if num_bytes >= 1e9:
        return f"{num_bytes / 1e9:.2f} GB"
    if num_bytes >= 1e6:
        return f"{num_bytes / 1e6:.2f} MB"
    return f"{num_bytes / 1e3:.2f} KB"


def format_duration(seconds: float) -> str:
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {secs}s"


def total_size(paths: list[str]) -> int:
    total = 0
    for path in paths:
        try:
            total += os.stat(path).st_size
        except OSError:
            continue
    return total
