"""Expected output files of a unit and existence checks over them."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, fields
from pathlib import Path

from .ledger import LEDGER_SUFFIX
from .units import Unit

ARCHIVE_SUFFIX = ".torrent"
TECHNICAL_SUFFIX = ".nfo"
IDENTIFIER_SUFFIX = ".txt"
RELEASE_SUFFIX = ".prez.txt"
SOURCE_DESCRIPTOR_SUFFIX = ".source.nfo"

ALL_SUFFIXES = (
    ARCHIVE_SUFFIX,
    TECHNICAL_SUFFIX,
    IDENTIFIER_SUFFIX,
    RELEASE_SUFFIX,
    SOURCE_DESCRIPTOR_SUFFIX,
    LEDGER_SUFFIX,
)


@dataclass(frozen=True)
class ArtifactPaths:
    archive: Path
    technical: Path
    identifier: Path
    release: Path
    source_descriptor: Path

    @classmethod
    def for_unit(cls, unit: Unit) -> "ArtifactPaths":
        base = Path(unit.output_dir)
        key = unit.canonical_key
        return cls(
            archive=base / f"{key}{ARCHIVE_SUFFIX}",
            technical=base / f"{key}{TECHNICAL_SUFFIX}",
            identifier=base / f"{key}{IDENTIFIER_SUFFIX}",
            release=base / f"{key}{RELEASE_SUFFIX}",
            source_descriptor=base / f"{key}{SOURCE_DESCRIPTOR_SUFFIX}",
        )


@dataclass
class ArtifactSet:
    """Artifacts that are expected but absent."""

    archive: bool = False
    technical: bool = False
    identifier: bool = False
    release: bool = False
    source_descriptor: bool = False

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def names(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]


class ArtifactStore:
    def __init__(self, *, presentation_enabled: bool = True) -> None:
        self.presentation_enabled = presentation_enabled

    def paths(self, unit: Unit) -> ArtifactPaths:
        return ArtifactPaths.for_unit(unit)

    def missing_artifacts(self, unit: Unit) -> ArtifactSet:
        paths = self.paths(unit)
        return ArtifactSet(
            archive=not paths.archive.is_file(),
            technical=not paths.technical.is_file(),
            identifier=not paths.identifier.is_file(),
            release=self.presentation_enabled and not paths.release.is_file(),
            source_descriptor=bool(unit.source_descriptor) and not paths.source_descriptor.is_file(),
        )

    def invalidate(self, unit: Unit) -> None:
        paths = self.paths(unit)
        for path in (paths.archive, paths.technical, paths.release):
            try:
                path.unlink()
            except OSError:
                pass


def validate_item_name(name: str) -> None:
    if name in {"", ".", ".."} or "/" in name or "\\" in name:
        raise ValueError(f"invalid item name: {name!r}")


def delete_artifacts(section_root: Path, name: str) -> list[str]:
    """Remove every artifact of the named item, ledger included.

    Returns the removed file names. The output directory is removed when it
    ends up empty.
    """
    validate_item_name(name)
    out_dir = Path(section_root) / name
    if not out_dir.is_dir():
        return []
    removed: list[str] = []
    for suffix in ALL_SUFFIXES:
        path = out_dir / f"{name}{suffix}"
        if path.is_file():
            path.unlink()
            removed.append(path.name)
    if not any(out_dir.iterdir()):
        shutil.rmtree(out_dir)
    return removed


def delete_metadata_artifacts(section_root: Path, name: str) -> list[str]:
    """Remove the identifier and release note of the named item.

    The archive, technical note and ledger stay, so the next run only redoes
    the lookup.
    """
    validate_item_name(name)
    out_dir = Path(section_root) / name
    removed: list[str] = []
    for suffix in (IDENTIFIER_SUFFIX, RELEASE_SUFFIX):
        path = out_dir / f"{name}{suffix}"
        if path.is_file():
            path.unlink()
            removed.append(path.name)
    return removed


def find_archives(root: Path) -> list[str]:
    found: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.endswith(ARCHIVE_SUFFIX):
                found.append(os.path.join(dirpath, name))
    return sorted(found)
