"""Per-item metadata id overrides.

An override pins the TMDb id of one film or series item, replacing the title
search. All overrides live in a single JSON document keyed by
``<section>/<item name>``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .paths import ensure_dir
from .units import Section


def _key(section: Section, name: str) -> str:
    return f"{section.value}/{name}"


def supports_override(section: Section) -> bool:
    return section.tmdb_kind is not None


class OverrideStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ValueError(f"overrides file is not valid JSON: {self.path}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"overrides file must hold an object: {self.path}")
        return {k: v for k, v in data.items() if isinstance(v, dict) and v.get("id")}

    def _save(self, data: dict[str, dict[str, Any]]) -> None:
        ensure_dir(self.path.parent)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, section: Section, name: str) -> dict[str, Any] | None:
        return self.load().get(_key(section, name))

    def set(self, section: Section, name: str, item_id: int) -> dict[str, Any]:
        if not supports_override(section):
            raise ValueError(f"overrides are only supported for films and series, not {section.value}")
        if item_id <= 0:
            raise ValueError(f"invalid id: {item_id}")
        data = self.load()
        entry = {"id": item_id, "kind": section.tmdb_kind}
        data[_key(section, name)] = entry
        self._save(data)
        return entry

    def clear(self, section: Section, name: str) -> bool:
        data = self.load()
        if data.pop(_key(section, name), None) is None:
            return False
        self._save(data)
        return True


def override_id(overrides: dict[str, dict[str, Any]], section: Section, name: str) -> int | None:
    if not supports_override(section):
        return None
    entry = overrides.get(_key(section, name)) or {}
    return entry.get("id")
