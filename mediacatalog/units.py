"""Work units, fingerprints and per-unit results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Domain(str, Enum):
    VIDEO_FILE = "video-file"
    VIDEO_FOLDER = "video-folder"
    AUDIO_ENTRY = "audio-entry"


class Section(str, Enum):
    FILMS = "films"
    SERIES = "series"
    MUSIC = "music"

    @property
    def tmdb_kind(self) -> str | None:
        return {"films": "movie", "series": "tv"}.get(self.value)


class UnitState(str, Enum):
    NEW = "new"
    UNCHANGED = "unchanged"
    STALE = "stale"
    MIGRATED_LEDGER = "migrated-ledger"


class UnitStatus(str, Enum):
    PROCESSED = "processed"
    REPROCESSED = "reprocessed"
    SKIPPED = "skipped"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass(frozen=True)
class FileFingerprint:
    path: str
    size: int
    mtime_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "size": self.size, "mtimeMs": self.mtime_ms}


@dataclass
class Unit:
    domain: Domain
    section: Section
    source_paths: list[str]
    canonical_key: str
    output_dir: str
    archive_source: str
    reference_file: str
    source_descriptor: str | None = None
    ledger_kind: str = "file"

    def __post_init__(self) -> None:
        if not self.source_paths:
            raise ValueError(f"unit {self.canonical_key} has no source files")

    @property
    def label(self) -> str:
        return f"{self.section.value}/{self.canonical_key}"


@dataclass
class UnitResult:
    unit: Unit | None
    status: UnitStatus
    state: UnitState | None = None
    lookup: str | None = None
    provider: str | None = None
    steps: list[str] = field(default_factory=list)
    error: dict[str, Any] | None = None
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "unit": self.label or (self.unit.label if self.unit else None),
            "status": self.status.value,
        }
        if self.state is not None:
            out["state"] = self.state.value
        if self.lookup:
            out["lookup"] = self.lookup
            out["provider"] = self.provider
        if self.steps:
            out["steps"] = list(self.steps)
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class SweepStats:
    scanned: int = 0
    rewritten: int = 0
    failed: int = 0
    changed: bool = False


@dataclass
class RunStats:
    processed: int = 0
    reprocessed: int = 0
    skipped: int = 0
    deferred: int = 0
    failed: int = 0
    found: dict[str, int] = field(default_factory=dict)
    missing: dict[str, int] = field(default_factory=dict)
    sweep: SweepStats = field(default_factory=SweepStats)
    elapsed_s: float = 0.0

    def add(self, result: UnitResult) -> None:
        if result.status == UnitStatus.SKIPPED:
            self.skipped += 1
        elif result.status == UnitStatus.DEFERRED:
            self.deferred += 1
        elif result.status == UnitStatus.FAILED:
            self.failed += 1
        else:
            self.processed += 1
            if result.status == UnitStatus.REPROCESSED:
                self.reprocessed += 1
        if result.provider and result.lookup == "found":
            self.found[result.provider] = self.found.get(result.provider, 0) + 1
        elif result.provider and result.lookup == "missing":
            self.missing[result.provider] = self.missing.get(result.provider, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "reprocessed": self.reprocessed,
            "skipped": self.skipped,
            "deferred": self.deferred,
            "failed": self.failed,
            "lookup_found": dict(self.found),
            "lookup_missing": dict(self.missing),
            "trackers": {
                "changed": self.sweep.changed,
                "scanned": self.sweep.scanned,
                "rewritten": self.sweep.rewritten,
                "failed": self.sweep.failed,
            },
            "elapsed_s": round(self.elapsed_s, 3),
        }
