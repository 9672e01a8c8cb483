import asyncio
import tempfile
from pathlib import Path
from unittest import TestCase, mock

import requests

from mediacatalog.steps.metadata import ItunesSearch, TmdbSearch, clean_title
from mediacatalog.util import read_cache, write_cache


def _config() -> dict:
    return {"metadata": {"tmdb": {"api_key": "k", "language": "fr-FR", "fallback_language": "en-US"}}}


class TmdbSearchTests(TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.cache_root = Path(self._tmp.name)
        self.search = TmdbSearch(_config(), "movie", self.cache_root)
        self.calls: list[tuple[str, str]] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _install(self, responses: dict[tuple[str, str], dict]) -> None:
        async def fake_get_json(url: str, params: dict):
            endpoint = url.rsplit("/", 2)[-2] if "/search/" in url else "details"
            key = (endpoint, params.get("language"))
            self.calls.append(key)
            return responses.get(key)

        self.search._get_json = fake_get_json

    def test_language_fallback_for_search_and_details(self) -> None:
        self._install(
            {
                ("search", "fr-FR"): {"results": []},
                ("search", "en-US"): {"results": [{"id": 42}]},
                ("details", "fr-FR"): {},
                ("details", "en-US"): {"id": 42, "title": "Heat"},
            }
        )
        key = self.search.cache_key("Heat.1995.1080p")
        record = asyncio.run(self.search.lookup(key, "Heat", 1995))
        self.assertEqual(record, {"id": 42, "title": "Heat"})
        self.assertEqual(
            self.calls,
            [("search", "fr-FR"), ("search", "en-US"), ("details", "fr-FR"), ("details", "en-US")],
        )
        self.assertTrue(self.search.has_cache(key))
        self.assertEqual(self.search.identifier_text(record), "ID TMDB : 42")

    def test_cached_record_skips_network(self) -> None:
        key = self.search.cache_key("Heat.1995")
        write_cache(self.search.cache_file(key), {"id": 7})
        self._install({})
        record = asyncio.run(self.search.lookup(key, "Heat"))
        self.assertEqual(record, {"id": 7})
        self.assertEqual(self.calls, [])

    def test_negative_result_is_not_cached(self) -> None:
        self._install({})
        key = self.search.cache_key("Unknown.Thing")
        self.assertIsNone(asyncio.run(self.search.lookup(key, "Unknown Thing")))
        self.assertFalse(self.search.has_cache(key))
        self.assertEqual(self.search.identifier_text(None), "TMDB not found")

    def test_corrupt_cache_entry_is_deleted(self) -> None:
        key = self.search.cache_key("Broken")
        path = self.search.cache_file(key)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        self._install({})
        self.assertIsNone(asyncio.run(self.search.lookup(key, "Broken")))
        self.assertFalse(path.exists())

    def test_cache_check_creates_nothing(self) -> None:
        self.assertFalse(self.search.has_cache("movie_anything"))
        self.assertEqual(list(self.cache_root.iterdir()), [])

    def test_lookup_id_skips_search(self) -> None:
        self._install({("details", "fr-FR"): {"id": 603, "title": "The Matrix"}})
        record = asyncio.run(self.search.lookup_id("movie_pinned_id603", 603))
        self.assertEqual(record, {"id": 603, "title": "The Matrix"})
        self.assertEqual(self.calls, [("details", "fr-FR")])
        self.assertTrue(self.search.has_cache("movie_pinned_id603"))

        self.calls.clear()
        asyncio.run(self.search.lookup_id("movie_pinned_id603", 603))
        self.assertEqual(self.calls, [])

    def test_cache_key_uses_kind_and_key(self) -> None:
        self.assertEqual(self.search.cache_key("Some Movie.2020"), "movie_some.movie.2020")

    def test_network_errors_become_misses(self) -> None:
        with mock.patch(
            "mediacatalog.steps.metadata.request_with_retry",
            side_effect=requests.ConnectionError("down"),
        ):
            self.assertIsNone(self.search._get_json_sync("https://api.example/search/movie", {}))


class ItunesSearchTests(TestCase):
    def test_lookup_uses_artist_and_title(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            search = ItunesSearch({}, Path(tmp))
            seen: list[dict] = []

            async def fake_get_json(url: str, params: dict):
                seen.append(params)
                if url.endswith("/search"):
                    return {"results": [{"collectionId": 99}]}
                return {"results": [{"collectionId": 99, "collectionName": "Album"}]}

            search._get_json = fake_get_json
            guess = {"artist": "Some Artist", "title": "Album"}
            key = search.cache_key("Some.Artist.-.Album", guess)
            self.assertEqual(key, "some.artist_album")
            record = asyncio.run(search.lookup(key, "Album", None, artist="Some Artist"))
        self.assertEqual(record["collectionName"], "Album")
        self.assertEqual(seen[0]["term"], "Some Artist Album")
        self.assertEqual(seen[1]["id"], 99)
        self.assertEqual(search.identifier_text(record), "iTunes ID : 99")
        self.assertEqual(search.identifier_text(None), "iTunes not found")


class CacheHelperTests(TestCase):
    def test_clean_title(self) -> None:
        self.assertEqual(clean_title("Amélie: le film!"), "Amlie le film")

    def test_ttl_expiry(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "entry.json"
            write_cache(path, {"id": 1})
            self.assertEqual(read_cache(path), {"id": 1})
            with mock.patch("mediacatalog.util.time.time", return_value=10**12):
                self.assertIsNone(read_cache(path, ttl_seconds=60))
