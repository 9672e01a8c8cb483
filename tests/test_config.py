import os
import tempfile
from pathlib import Path
from unittest import TestCase, mock

import yaml

from mediacatalog.config import (
    default_config,
    enabled_sections,
    env_overrides,
    load_config,
    save_default_config,
    section_root,
    validate_config,
)
from mediacatalog.units import Section


class ConfigTests(TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.cfg_path = self.root / "config.yaml"
        self.env = mock.patch.dict(
            os.environ,
            {"MEDIACATALOG_SECRETS": str(self.root / "secrets.yaml"), "MY_TMDB": "from-env"},
        )
        self.env.start()

    def tearDown(self) -> None:
        self.env.stop()
        self._tmp.cleanup()

    def _write(self, data: dict) -> None:
        self.cfg_path.write_text(yaml.safe_dump(data), encoding="utf-8")

    def test_file_values_merge_over_defaults(self) -> None:
        self._write(
            {
                "trackers": ["https://a.example/announce", " https://a.example/announce "],
                "parallel_jobs": 3,
                "sections": {"films": {"enabled": True, "sources": ["/media/films/", "/media/films"]}},
                "metadata": {"tmdb": {"api_key": "${ENV:MY_TMDB}"}},
            }
        )
        config = load_config(self.cfg_path, environ={})
        self.assertEqual(config["trackers"], ["https://a.example/announce"])
        self.assertEqual(config["parallel_jobs"], 3)
        self.assertEqual(config["sections"]["films"]["sources"], ["/media/films"])
        self.assertEqual(config["metadata"]["tmdb"]["api_key"], "from-env")
        self.assertEqual(config["metadata"]["tmdb"]["language"], "fr-FR")
        self.assertEqual(enabled_sections(config), [Section.FILMS])

    def test_secrets_file_is_merged(self) -> None:
        self._write({"trackers": ["https://a.example"]})
        (self.root / "secrets.yaml").write_text(
            yaml.safe_dump({"metadata": {"tmdb": {"api_key": "from-secrets"}}}), encoding="utf-8"
        )
        config = load_config(self.cfg_path, environ={})
        self.assertEqual(config["metadata"]["tmdb"]["api_key"], "from-secrets")

    def test_environment_overrides_file(self) -> None:
        self._write({"trackers": ["https://file.example"], "parallel_jobs": 3})
        environ = {
            "TRACKERS": "https://b.example, https://a.example,https://b.example",
            "ENABLE_SERIES": "1",
            "SERIES_DIRS": "/x/,/y",
            "PARALLEL_JOBS": "many",
            "ENABLE_PREZ": "false",
            "PREZ_IMG_LINK": "https://img.example/link.png",
            "DEST_DIR": str(self.root / "out"),
        }
        config = load_config(self.cfg_path, environ=environ)
        self.assertEqual(config["trackers"], ["https://b.example", "https://a.example"])
        self.assertTrue(config["sections"]["series"]["enabled"])
        self.assertEqual(config["sections"]["series"]["sources"], ["/x", "/y"])
        self.assertEqual(config["parallel_jobs"], 3)
        self.assertFalse(config["presentation"]["enabled"])
        self.assertEqual(config["presentation"]["images"]["link"], "https://img.example/link.png")
        self.assertEqual(config["presentation"]["images"]["info"], "")
        self.assertEqual(section_root(config, Section.SERIES), self.root / "out" / "series")

    def test_env_overrides_ignore_empty_values(self) -> None:
        self.assertEqual(env_overrides({"TRACKERS": "", "ENABLE_FILMS": ""}), {})

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_config(self.root / "nope.yaml", environ={})

    def test_save_default_config_round_trip(self) -> None:
        path = save_default_config(self.cfg_path)
        config = load_config(path, environ={})
        self.assertEqual(config["archiver"]["command"], "mkbrr")
        self.assertEqual(config["parallel_jobs"], 1)


class ValidateConfigTests(TestCase):
    def test_empty_setup_is_rejected(self) -> None:
        errors, _warnings = validate_config(default_config())
        self.assertTrue(any(e.startswith("trackers") for e in errors))
        self.assertTrue(any(e.startswith("sections") for e in errors))

    def test_tmdb_key_required_for_video_sections(self) -> None:
        config = default_config()
        config["trackers"] = ["https://a.example"]
        config["sections"]["films"] = {"enabled": True, "sources": []}
        config["metadata"]["tmdb"]["api_key"] = ""
        errors, _warnings = validate_config(config)
        self.assertEqual(errors, ["metadata.tmdb.api_key is required when tmdb lookups are active"])

    def test_music_only_needs_no_key(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = default_config()
            config["trackers"] = ["https://a.example"]
            config["sections"]["music"] = {"enabled": True, "sources": [tmp, str(Path(tmp) / "gone")]}
            config["metadata"]["tmdb"]["api_key"] = ""
            errors, warnings = validate_config(config)
        self.assertEqual(errors, [])
        self.assertEqual(len(warnings), 1)

    def test_schema_errors_are_reported(self) -> None:
        config = default_config()
        config["trackers"] = ["https://a.example"]
        config["sections"]["films"] = {"enabled": "yes"}
        config["parallel_jobs"] = 0
        errors, _warnings = validate_config(config)
        self.assertTrue(any(e.startswith("parallel_jobs:") for e in errors))
        self.assertTrue(any(e.startswith("sections.films.enabled:") for e in errors))
