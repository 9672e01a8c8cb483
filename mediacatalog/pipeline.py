"""Per-unit state machine and the two-phase catalog run."""

from __future__ import annotations

import asyncio
import json
import shutil
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .artifacts import ArtifactSet, ArtifactStore
from .config import (
    cache_root,
    destination,
    enabled_sections,
    fingerprint_file,
    overrides_file,
    section_root,
    section_sources,
)
from .ledger import ChangeLedger
from .overrides import OverrideStore, override_id
from .paths import ensure_dir, state_dir
from .report import write_report
from .scheduler import Outcome, Scheduler
from .steps.archiver import Archiver
from .steps.command import StepError
from .steps.guess import TitleGuesser
from .steps.metadata import ItunesSearch, TmdbSearch
from .steps.probe import Probe, render_technical_note
from .steps.release_note import render_release_note
from .trackers import TrackerFingerprint, compute
from .units import Domain, RunStats, Section, Unit, UnitResult, UnitState, UnitStatus
from .util import classify_exception, redact_payload, total_size
from .walker import discover

Progress = Callable[[str, str, dict[str, Any]], None]


def append_log(config: dict[str, Any], entry: dict[str, Any]) -> None:
    log_cfg = config.get("logging", {}) or {}
    path = log_cfg.get("path")
    if not path:
        return
    try:
        log_path = ensure_dir(Path(path).expanduser().parent) / Path(path).name
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(redact_payload(entry), ensure_ascii=True) + "\n")
    except OSError:
        return


async def _is_file(path: Path) -> bool:
    return await asyncio.to_thread(path.is_file)


async def _write_text(path: Path, text: str) -> None:
    await asyncio.to_thread(path.write_text, text, encoding="utf-8")


def error_info(exc: BaseException) -> dict[str, Any]:
    code, hint = classify_exception(exc)
    if isinstance(exc, StepError):
        code = exc.code
        hint = exc.hint or hint
    return {
        "type": exc.__class__.__name__,
        "code": code,
        "hint": hint,
        "message": str(redact_payload(str(exc))),
    }


@dataclass
class Collaborators:
    archiver: Any
    probe: Any
    guesser: Any
    searchers: dict[Section, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "Collaborators":
        root = cache_root(config)
        return cls(
            archiver=Archiver(config),
            probe=Probe(config),
            guesser=TitleGuesser(),
            searchers={
                Section.FILMS: TmdbSearch(config, Section.FILMS.tmdb_kind, root),
                Section.SERIES: TmdbSearch(config, Section.SERIES.tmdb_kind, root),
                Section.MUSIC: ItunesSearch(config, root),
            },
        )


class DomainVariant:
    domain: Domain

    def technical_note(self, unit: Unit, media_text: str) -> str:
        return render_technical_note(unit.canonical_key, media_text, unit.reference_file)

    async def lookup(
        self, unit: Unit, searcher: Any, key: str, guess: dict[str, Any], pinned_id: int | None = None
    ) -> dict[str, Any] | None:
        if pinned_id:
            return await searcher.lookup_id(key, pinned_id)
        return await searcher.lookup(key, guess.get("title") or unit.canonical_key, guess.get("year"))

    def is_series(self, unit: Unit) -> bool:
        return unit.section == Section.SERIES


class VideoFileVariant(DomainVariant):
    domain = Domain.VIDEO_FILE

    def technical_note(self, unit: Unit, media_text: str) -> str:
        # single files keep their original name in the banner
        return render_technical_note(Path(unit.reference_file).stem, media_text, unit.reference_file)


class VideoFolderVariant(DomainVariant):
    domain = Domain.VIDEO_FOLDER

    def technical_note(self, unit: Unit, media_text: str) -> str:
        return render_technical_note(
            unit.canonical_key,
            media_text,
            unit.reference_file,
            files_count=len(unit.source_paths),
            total_size=total_size(unit.source_paths),
        )


class AudioEntryVariant(DomainVariant):
    domain = Domain.AUDIO_ENTRY

    async def lookup(
        self, unit: Unit, searcher: Any, key: str, guess: dict[str, Any], pinned_id: int | None = None
    ) -> dict[str, Any] | None:
        return await searcher.lookup(
            key,
            guess.get("title") or unit.canonical_key,
            guess.get("year"),
            artist=guess.get("artist") or "",
        )

    def is_series(self, unit: Unit) -> bool:
        return False


VARIANTS: dict[Domain, DomainVariant] = {
    Domain.VIDEO_FILE: VideoFileVariant(),
    Domain.VIDEO_FOLDER: VideoFolderVariant(),
    Domain.AUDIO_ENTRY: AudioEntryVariant(),
}


class UnitPipeline:
    def __init__(
        self,
        config: dict[str, Any],
        collaborators: Collaborators,
        *,
        store: ArtifactStore | None = None,
        ledger: ChangeLedger | None = None,
        run_id: str | None = None,
        progress: Progress | None = None,
        overrides: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.config = config
        self.collaborators = collaborators
        presentation = (config.get("presentation", {}) or {})
        self.store = store or ArtifactStore(presentation_enabled=bool(presentation.get("enabled", True)))
        self.ledger = ledger or ChangeLedger()
        self.endpoints = list(config.get("trackers") or [])
        self.images = presentation.get("images") or {}
        self.run_id = run_id
        self.progress = progress
        self.overrides = overrides or {}

    def _log(self, unit: Unit, step: str, phase: str, **extra: Any) -> None:
        entry = {"run_id": self.run_id, "unit": unit.label, "step": step, "phase": phase, "ts": time.time()}
        entry.update(extra)
        append_log(self.config, entry)
        if self.progress:
            self.progress(step, phase, {"unit": unit.label, **extra})

    def assess(self, unit: Unit) -> tuple[UnitState, ArtifactSet]:
        missing = self.store.missing_artifacts(unit)
        if not missing.is_empty():
            return UnitState.NEW, missing
        if not self.ledger.exists(unit):
            return UnitState.MIGRATED_LEDGER, missing
        if self.ledger.has_changed(unit):
            return UnitState.STALE, missing
        return UnitState.UNCHANGED, missing

    async def run(self, unit: Unit) -> UnitResult:
        state, missing = await asyncio.to_thread(self.assess, unit)
        result = UnitResult(unit=unit, status=UnitStatus.PROCESSED, state=state)
        if state == UnitState.UNCHANGED:
            result.status = UnitStatus.SKIPPED
            self._log(unit, "unit", "end", status="skipped", state=state.value)
            return result
        if state == UnitState.MIGRATED_LEDGER:
            await asyncio.to_thread(self.ledger.record, unit)
            result.status = UnitStatus.SKIPPED
            self._log(unit, "unit", "end", status="skipped", state=state.value)
            return result
        if state == UnitState.STALE:
            await asyncio.to_thread(self.store.invalidate, unit)
            result.status = UnitStatus.REPROCESSED
        self._log(unit, "unit", "start", state=state.value, missing=missing.names())
        await self._build(unit, result)
        self._log(unit, "unit", "end", status=result.status.value, state=state.value)
        return result

    async def _build(self, unit: Unit, result: UnitResult) -> None:
        variant = VARIANTS[unit.domain]
        paths = self.store.paths(unit)
        await asyncio.to_thread(ensure_dir, Path(unit.output_dir))

        if unit.source_descriptor and not await _is_file(paths.source_descriptor):
            await asyncio.to_thread(shutil.copyfile, unit.source_descriptor, paths.source_descriptor)
            result.steps.append("source_descriptor")

        if not await _is_file(paths.technical):
            started = time.monotonic()
            self._log(unit, "technical_note", "start")
            media_text = await self.collaborators.probe.inspect(unit.reference_file)
            note = await asyncio.to_thread(variant.technical_note, unit, media_text)
            await _write_text(paths.technical, note)
            result.steps.append("technical_note")
            self._log(unit, "technical_note", "end", status="ok", duration_s=time.monotonic() - started)

        if not await _is_file(paths.archive):
            started = time.monotonic()
            self._log(unit, "archive", "start")
            await self.collaborators.archiver.create(unit.archive_source, self.endpoints, str(paths.archive))
            result.steps.append("archive")
            self._log(unit, "archive", "end", status="ok", duration_s=time.monotonic() - started)

        searcher = self.collaborators.searchers.get(unit.section)
        guess: dict[str, Any] | None = None
        record: dict[str, Any] | None = None
        release_missing = self.store.presentation_enabled and not await _is_file(paths.release)
        if searcher is not None:
            guess = await self.collaborators.guesser.guess(unit.reference_file)
            pinned_id = override_id(self.overrides, unit.section, unit.canonical_key)
            key = searcher.cache_key(unit.canonical_key, guess)
            if pinned_id:
                key = f"{key}_id{pinned_id}"
            needs_lookup = not await _is_file(paths.identifier) or not await asyncio.to_thread(
                searcher.has_cache, key
            )
            if needs_lookup or release_missing:
                started = time.monotonic()
                self._log(unit, "identifier", "start", **({"pinned_id": pinned_id} if pinned_id else {}))
                extra: dict[str, Any] = {}
                try:
                    record = await variant.lookup(unit, searcher, key, guess, pinned_id)
                except (StepError, OSError, ValueError) as exc:
                    extra["error"] = error_info(exc)
                if needs_lookup:
                    await _write_text(paths.identifier, searcher.identifier_text(record))
                    result.lookup = "found" if record else "missing"
                    result.provider = searcher.provider
                    result.steps.append("identifier")
                self._log(
                    unit,
                    "identifier",
                    "end",
                    status="ok" if record else "not_found",
                    duration_s=time.monotonic() - started,
                    **extra,
                )

        if release_missing:
            started = time.monotonic()
            self._log(unit, "release_note", "start")
            try:
                payload_size = await self.collaborators.archiver.inspect(str(paths.archive))
            except (StepError, OSError):
                payload_size = await asyncio.to_thread(total_size, unit.source_paths)
            technical_text = await asyncio.to_thread(paths.technical.read_text, encoding="utf-8")
            note = render_release_note(
                unit.canonical_key,
                provider=getattr(searcher, "provider", ""),
                record=record,
                guess=guess,
                payload_size=payload_size,
                files_count=len(unit.source_paths),
                technical_text=technical_text,
                images=self.images,
                series=variant.is_series(unit),
            )
            await _write_text(paths.release, note)
            result.steps.append("release_note")
            self._log(unit, "release_note", "end", status="ok", duration_s=time.monotonic() - started)

        await asyncio.to_thread(self.ledger.record, unit)


def _failed_result(unit: Unit, exc: BaseException) -> UnitResult:
    return UnitResult(unit=unit, status=UnitStatus.FAILED, error=error_info(exc))


def _selected_sections(config: dict[str, Any], sections: list[str] | None) -> list[Section]:
    active = enabled_sections(config)
    if sections:
        wanted = {Section(s) for s in sections}
        active = [s for s in active if s in wanted]
    return active


def discover_units(config: dict[str, Any], sections: list[str] | None = None) -> tuple[list[Unit], list[str], list[str]]:
    units: list[Unit] = []
    deferred: list[str] = []
    warnings: list[str] = []
    for section in _selected_sections(config, sections):
        found = discover(section, section_sources(config, section), section_root(config, section))
        units.extend(found.units)
        deferred.extend(found.deferred)
        warnings.extend(found.warnings)
    return units, deferred, warnings


def assess_units(config: dict[str, Any], sections: list[str] | None = None) -> dict[str, Any]:
    units, deferred, warnings = discover_units(config, sections)
    overrides = OverrideStore(overrides_file(config)).load()
    pipeline = UnitPipeline(config, Collaborators(archiver=None, probe=None, guesser=None))
    items = []
    for unit in units:
        state, missing = pipeline.assess(unit)
        item = {
            "unit": unit.label,
            "domain": unit.domain.value,
            "state": state.value,
            "files": len(unit.source_paths),
            "missing": missing.names(),
        }
        pinned_id = override_id(overrides, unit.section, unit.canonical_key)
        if pinned_id:
            item["pinned_id"] = pinned_id
        items.append(item)
    return {"units": items, "deferred": deferred, "warnings": warnings}


async def run_catalog(
    config: dict[str, Any],
    collaborators: Collaborators,
    *,
    sections: list[str] | None = None,
    parallelism: int | None = None,
    progress: Progress | None = None,
) -> dict[str, Any]:
    run_id = uuid.uuid4().hex
    started = time.monotonic()
    stats = RunStats()
    jobs = parallelism if parallelism is not None else config.get("parallel_jobs", 1)
    scheduler = Scheduler(jobs)
    endpoints = list(config.get("trackers") or [])
    overrides = OverrideStore(overrides_file(config)).load()

    def _sweep_event(event: dict[str, Any]) -> None:
        append_log(config, {"run_id": run_id, "ts": time.time(), **event})
        if progress:
            progress("modify_trackers", "end", event)

    # phase 1: nothing else may write archive descriptors until the sweep is over
    gate = TrackerFingerprint(fingerprint_file(config))
    stats.sweep = await gate.check_and_maybe_update_all(
        compute(endpoints),
        endpoints=endpoints,
        destination=destination(config),
        archiver=collaborators.archiver,
        scheduler=scheduler,
        on_event=_sweep_event,
    )

    # phase 2
    units, deferred, warnings = discover_units(config, sections)
    results: list[UnitResult] = [
        UnitResult(unit=None, status=UnitStatus.DEFERRED, label=label) for label in deferred
    ]
    pipeline = UnitPipeline(config, collaborators, run_id=run_id, progress=progress, overrides=overrides)

    def _job(unit: Unit):
        return lambda: pipeline.run(unit)

    def _done(outcome: Outcome[UnitResult]) -> None:
        unit = units[outcome.index]
        if outcome.ok and outcome.value is not None:
            results.append(outcome.value)
            return
        failed = _failed_result(unit, outcome.error or RuntimeError("unit produced no result"))
        append_log(
            config,
            {"run_id": run_id, "unit": unit.label, "step": "unit", "phase": "end", "status": "error",
             "ts": time.time(), "error": failed.error},
        )
        if progress:
            progress("unit", "error", {"unit": unit.label, "error": failed.error})
        results.append(failed)

    await scheduler.run([_job(u) for u in units], on_done=_done)

    for result in results:
        stats.add(result)
    stats.elapsed_s = time.monotonic() - started
    output: dict[str, Any] = {
        "run_id": run_id,
        "summary": stats.to_dict(),
        "results": [r.to_dict() for r in results],
        "warnings": warnings,
    }
    report_path = write_report(output, str(state_dir()), config)
    if report_path:
        output["report"] = {"path": report_path}
    return output
