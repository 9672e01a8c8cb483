"""Source discovery: turns library directories into work units."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .identity import entry_unit_key, file_unit_key, folder_unit_key
from .units import Domain, Section, Unit

VIDEO_EXT = {"mkv", "mp4", "avi", "mov", "flv", "wmv", "m4v"}
AUDIO_EXT = {"mp3", "flac", "aac", "wav"}
PARTIAL_EXT = {"part", "tmp", "crdownload"}


@dataclass
class Discovery:
    units: list[Unit] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _ext(path: str | Path) -> str:
    return Path(path).suffix[1:].lower()


def is_video_file(path: str | Path) -> bool:
    return _ext(path) in VIDEO_EXT


def is_audio_file(path: str | Path) -> bool:
    return _ext(path) in AUDIO_EXT


def _files_under(root: Path, extensions: set[str]) -> list[str]:
    found: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if _ext(name) in extensions:
                found.append(os.path.abspath(os.path.join(dirpath, name)))
    return sorted(found)


def has_partial_files(root: Path) -> bool:
    return bool(_files_under(root, PARTIAL_EXT))


def find_source_nfo(directory: str | Path) -> str | None:
    try:
        entries = sorted(os.listdir(directory))
    except OSError:
        return None
    for entry in entries:
        if entry.lower().endswith(".nfo"):
            return os.path.join(str(directory), entry)
    return None


def _top_level(sources: list[str], discovery: Discovery, section: Section) -> list[Path]:
    entries: list[Path] = []
    for src in sources:
        base = Path(src)
        if not base.is_dir():
            discovery.warnings.append(f"{section.value}: source directory not found: {src}")
            continue
        entries.extend(sorted(base.iterdir()))
    return entries


def _file_unit(path: str, section: Section, dest_root: Path, sources: list[str]) -> Unit:
    key = file_unit_key(path)
    file_dir = os.path.dirname(os.path.abspath(path))
    in_subfolder = bool(sources) and not any(os.path.abspath(s) == file_dir for s in sources)
    return Unit(
        domain=Domain.VIDEO_FILE,
        section=section,
        source_paths=[path],
        canonical_key=key,
        output_dir=str(dest_root / key),
        archive_source=path,
        reference_file=path,
        source_descriptor=find_source_nfo(file_dir) if in_subfolder else None,
        ledger_kind="file",
    )


def _folder_unit(folder: Path, videos: list[str], section: Section, dest_root: Path) -> Unit:
    key = folder_unit_key(str(folder), videos)
    return Unit(
        domain=Domain.VIDEO_FOLDER,
        section=section,
        source_paths=videos,
        canonical_key=key,
        output_dir=str(dest_root / key),
        archive_source=str(folder.resolve()),
        reference_file=videos[0],
        source_descriptor=find_source_nfo(folder),
        ledger_kind="folder",
    )


def _audio_unit(entry: Path, files: list[str], section: Section, dest_root: Path) -> Unit:
    key = entry_unit_key(str(entry))
    return Unit(
        domain=Domain.AUDIO_ENTRY,
        section=section,
        source_paths=files,
        canonical_key=key,
        output_dir=str(dest_root / key),
        archive_source=str(entry.resolve()),
        reference_file=files[0],
        ledger_kind="folder" if entry.is_dir() else "file",
    )


def _walk_films(sources: list[str], dest_root: Path, discovery: Discovery) -> None:
    seen: set[str] = set()
    for src in sources:
        base = Path(src)
        if not base.is_dir():
            discovery.warnings.append(f"films: source directory not found: {src}")
            continue
        for path in _files_under(base, VIDEO_EXT):
            if path in seen:
                continue
            seen.add(path)
            discovery.units.append(_file_unit(path, Section.FILMS, dest_root, sources))


def _walk_series(sources: list[str], dest_root: Path, discovery: Discovery) -> None:
    for entry in _top_level(sources, discovery, Section.SERIES):
        if entry.is_file() and is_video_file(entry):
            discovery.units.append(_file_unit(os.path.abspath(entry), Section.SERIES, dest_root, sources))
        elif entry.is_dir():
            videos = _files_under(entry, VIDEO_EXT)
            if videos:
                discovery.units.append(_folder_unit(entry, videos, Section.SERIES, dest_root))


def _walk_music(sources: list[str], dest_root: Path, discovery: Discovery) -> None:
    for entry in _top_level(sources, discovery, Section.MUSIC):
        if entry.is_file():
            if is_audio_file(entry):
                discovery.units.append(_audio_unit(entry, [os.path.abspath(entry)], Section.MUSIC, dest_root))
            continue
        if not entry.is_dir():
            continue
        if has_partial_files(entry):
            discovery.deferred.append(f"music/{entry_unit_key(str(entry))}")
            continue
        files = _files_under(entry, AUDIO_EXT)
        if not files:
            discovery.warnings.append(f"music: no audio file found in {entry}")
            continue
        discovery.units.append(_audio_unit(entry, files, Section.MUSIC, dest_root))


_WALKERS = {
    Section.FILMS: _walk_films,
    Section.SERIES: _walk_series,
    Section.MUSIC: _walk_music,
}


def discover(section: Section, sources: list[str], dest_root: Path) -> Discovery:
    """Enumerate a section's units, one per output directory."""
    discovery = Discovery()
    _WALKERS[section](sources, Path(dest_root), discovery)
    unique: list[Unit] = []
    owners: dict[str, Unit] = {}
    for unit in discovery.units:
        owner = owners.get(unit.canonical_key)
        if owner is not None:
            discovery.warnings.append(
                f"{section.value}: {unit.archive_source} maps to {unit.canonical_key} "
                f"already used by {owner.archive_source}; skipped"
            )
            continue
        owners[unit.canonical_key] = unit
        unique.append(unit)
    discovery.units = unique
    return discovery
