"""Canonical keys for work units.

A key names the unit's output directory, so two units of the same section
must never share one. Single files use their stem, folders use their name,
and a folder holding several episodes of one season collapses to the season.
"""

from __future__ import annotations

import re
from pathlib import Path

SEPARATOR = "."

_EPISODE_RE = re.compile(r"[Ss](\d{1,2})[Ee](\d{1,3})")
_EPISODE_MARKER_RE = re.compile(r"([Ss]\d{1,2})[Ee]\d{1,3}(?:[-Ee]*\d{1,3})*")


def safe_name(name: str) -> str:
    return name.replace(" ", SEPARATOR)


def extract_episode_numbers(filenames: list[str]) -> tuple[set[str], set[int]]:
    episodes: set[str] = set()
    seasons: set[int] = set()
    for name in filenames:
        base = Path(name).name
        for match in _EPISODE_RE.finditer(base):
            seasons.add(int(match.group(1)))
            episodes.add(f"S{match.group(1)}E{match.group(2)}")
    return episodes, seasons


def to_season_name(folder_name: str) -> str:
    return _EPISODE_MARKER_RE.sub(r"\1", folder_name, count=1)


def is_season_pack(filenames: list[str]) -> bool:
    episodes, seasons = extract_episode_numbers(filenames)
    return len(filenames) > 1 and len(episodes) > 1 and len(seasons) == 1


def file_unit_key(path: str) -> str:
    return safe_name(Path(path).stem)


def folder_unit_key(folder: str, filenames: list[str]) -> str:
    raw = safe_name(Path(folder).name)
    if is_season_pack(filenames):
        return to_season_name(raw)
    return raw


def entry_unit_key(entry: str) -> str:
    return safe_name(Path(entry).name)
