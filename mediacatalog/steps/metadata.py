"""Metadata lookups (TMDb for video, iTunes for music) behind an on-disk cache.

Every lookup tries the preferred language first and the fallback language
second, both for the search and for the detail fetch. Only positive results
are cached; a corrupted cache entry is removed and counts as a miss.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import Any

import requests

from ..identity import safe_name
from ..util import cache_path, read_cache, request_with_retry, write_cache

TMDB_URL = "https://api.themoviedb.org/3"
ITUNES_URL = "https://itunes.apple.com"

_CLEAN_RE = re.compile(r"[^a-zA-Z0-9 ]")


def clean_title(title: Any) -> str:
    return _CLEAN_RE.sub("", str(title or "")).strip()


class _HttpSearch:
    provider = ""

    def __init__(self, cfg: dict[str, Any], cache_root: Path) -> None:
        self.cache_root = Path(cache_root)
        self.timeout = float(cfg.get("timeout") or 15)
        self.retries = int(cfg.get("retries") or 0)
        self.backoff = float(cfg.get("retry_backoff_seconds") or 0.5)
        self.language = str(cfg.get("language") or "")
        self.fallback_language = str(cfg.get("fallback_language") or "")

    def _get_json_sync(self, url: str, params: dict[str, Any]) -> Any | None:
        try:
            response = request_with_retry(
                "GET",
                url,
                params=params,
                timeout=self.timeout,
                retries=self.retries,
                backoff_seconds=self.backoff,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, json.JSONDecodeError):
            return None

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any | None:
        return await asyncio.to_thread(self._get_json_sync, url, params)

    def _languages(self, language: str | None) -> list[str]:
        langs = [language or self.language, self.fallback_language]
        out: list[str] = []
        for lang in langs:
            if lang not in out:
                out.append(lang)
        return out

    def cache_file(self, key: str) -> Path:
        return cache_path(self.cache_root, self.provider, key)

    def has_cache(self, key: str) -> bool:
        return self.cache_file(key).is_file()

    async def search(self, title: str, year: int | None, language: str) -> Any | None:
        raise NotImplementedError

    async def fetch_details(self, candidate_id: Any, language: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def fetch_record(self, candidate_id: Any) -> dict[str, Any] | None:
        for lang in self._languages(None):
            details = await self.fetch_details(candidate_id, lang)
            if details:
                return details
        return None

    async def lookup(self, key: str, title: str, year: int | None = None) -> dict[str, Any] | None:
        cached = await asyncio.to_thread(read_cache, self.cache_file(key))
        if isinstance(cached, dict):
            return cached
        candidate_id = None
        for lang in self._languages(None):
            candidate_id = await self.search(title, year, lang)
            if candidate_id:
                break
        if not candidate_id:
            return None
        return await self._fetch_and_cache(key, candidate_id)

    async def lookup_id(self, key: str, candidate_id: Any) -> dict[str, Any] | None:
        """Resolve a known id, skipping the title search."""
        cached = await asyncio.to_thread(read_cache, self.cache_file(key))
        if isinstance(cached, dict):
            return cached
        return await self._fetch_and_cache(key, candidate_id)

    async def _fetch_and_cache(self, key: str, candidate_id: Any) -> dict[str, Any] | None:
        details = await self.fetch_record(candidate_id)
        if not details:
            return None
        await asyncio.to_thread(write_cache, self.cache_file(key), details)
        return details


class TmdbSearch(_HttpSearch):
    provider = "tmdb"

    def __init__(self, config: dict[str, Any], kind: str, cache_root: Path) -> None:
        cfg = ((config.get("metadata") or {}).get("tmdb") or {})
        super().__init__(cfg, cache_root)
        self.kind = kind
        self.api_key = str(cfg.get("api_key") or "")
        self.language = self.language or "fr-FR"
        self.fallback_language = self.fallback_language or "en-US"
        self.base_url = str(cfg.get("url") or TMDB_URL).rstrip("/")

    def cache_key(self, canonical_key: str, guess: dict[str, Any] | None = None) -> str:
        return f"{self.kind}_{safe_name(canonical_key).lower()}"

    async def search(self, title: str, year: int | None, language: str) -> Any | None:
        params: dict[str, Any] = {"api_key": self.api_key, "query": clean_title(title), "language": language}
        payload = await self._get_json(f"{self.base_url}/search/{self.kind}", params)
        results = (payload or {}).get("results") if isinstance(payload, dict) else None
        if not results:
            return None
        return results[0].get("id")

    async def fetch_details(self, candidate_id: Any, language: str) -> dict[str, Any] | None:
        params = {"api_key": self.api_key, "language": language}
        payload = await self._get_json(f"{self.base_url}/{self.kind}/{candidate_id}", params)
        return payload if isinstance(payload, dict) and payload.get("id") else None

    def identifier_text(self, record: dict[str, Any] | None) -> str:
        if record and record.get("id"):
            return f"ID TMDB : {record['id']}"
        return "TMDB not found"


class ItunesSearch(_HttpSearch):
    provider = "itunes"

    def __init__(self, config: dict[str, Any], cache_root: Path) -> None:
        cfg = ((config.get("metadata") or {}).get("itunes") or {})
        super().__init__(cfg, cache_root)
        self.country = str(cfg.get("country") or "")
        self.base_url = str(cfg.get("url") or ITUNES_URL).rstrip("/")

    def cache_key(self, canonical_key: str, guess: dict[str, Any] | None = None) -> str:
        guess = guess or {}
        return safe_name(f"{guess.get('artist') or ''}_{guess.get('title') or canonical_key}").lower()

    def _params(self, language: str) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if language:
            params["lang"] = language
        if self.country:
            params["country"] = self.country
        return params

    async def search(self, title: str, year: int | None, language: str) -> Any | None:
        params = {"term": title, "media": "music", "limit": 1, **self._params(language)}
        payload = await self._get_json(f"{self.base_url}/search", params)
        results = (payload or {}).get("results") if isinstance(payload, dict) else None
        if not results:
            return None
        first = results[0]
        return first.get("collectionId") or first.get("trackId")

    async def fetch_details(self, candidate_id: Any, language: str) -> dict[str, Any] | None:
        params = {"id": candidate_id, **self._params(language)}
        payload = await self._get_json(f"{self.base_url}/lookup", params)
        results = (payload or {}).get("results") if isinstance(payload, dict) else None
        if not results:
            return None
        return results[0]

    async def lookup(self, key: str, title: str, year: int | None = None, artist: str = "") -> dict[str, Any] | None:
        term = f"{artist} {title}".strip() if artist else title
        return await super().lookup(key, term, year)

    def identifier_text(self, record: dict[str, Any] | None) -> str:
        if record and (record.get("collectionId") or record.get("trackId")):
            return f"iTunes ID : {record.get('collectionId') or record.get('trackId')}"
        return "iTunes not found"
