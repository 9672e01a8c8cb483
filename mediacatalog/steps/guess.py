"""Title/artist/year guessing from file names."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from guessit import guessit


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def guess_sync(path: str) -> dict[str, Any]:
    stem = Path(path).stem
    try:
        found = guessit(Path(path).name)
    except Exception:
        return {"title": stem, "artist": "", "year": None}
    title = _first(found.get("title")) or stem
    artist = _first(found.get("artist")) or ""
    year = _first(found.get("year"))
    return {"title": str(title), "artist": str(artist), "year": int(year) if year else None}


class TitleGuesser:
    async def guess(self, path: str) -> dict[str, Any]:
        return await asyncio.to_thread(guess_sync, path)
