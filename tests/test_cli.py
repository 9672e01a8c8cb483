import io
import json
import os
import tempfile
from pathlib import Path
from unittest import TestCase, mock

import yaml

from mediacatalog.cli import build_parser


class CliTests(TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.cfg_path = self.root / "config.yaml"
        self.env = mock.patch.dict(
            os.environ,
            {
                "MEDIACATALOG_SECRETS": str(self.root / "secrets.yaml"),
                "XDG_STATE_HOME": str(self.root / "state"),
                "XDG_CACHE_HOME": str(self.root / "cache"),
            },
        )
        self.env.start()
        for name in ("TRACKERS", "DEST_DIR", "ENABLE_FILMS", "ENABLE_SERIES", "ENABLE_MUSIQUES", "PARALLEL_JOBS"):
            os.environ.pop(name, None)

    def tearDown(self) -> None:
        self.env.stop()
        self._tmp.cleanup()

    def _invoke(self, argv: list[str]) -> tuple[int, str, str]:
        args = build_parser().parse_args(argv)
        out, err = io.StringIO(), io.StringIO()
        with mock.patch("sys.stdout", out), mock.patch("sys.stderr", err):
            code = args.func(args)
        return code, out.getvalue(), err.getvalue()

    def test_parser_sections_and_jobs(self) -> None:
        args = build_parser().parse_args(["run", "--jobs", "3", "--section", "films", "--section", "music"])
        self.assertEqual(args.jobs, 3)
        self.assertEqual(args.section, ["films", "music"])

    def test_run_refuses_invalid_config(self) -> None:
        self.cfg_path.write_text(yaml.safe_dump({"trackers": []}), encoding="utf-8")
        code, _out, err = self._invoke(["run", "--config", str(self.cfg_path)])
        self.assertEqual(code, 2)
        self.assertIn("error: trackers", err)

    def test_init_and_list_sections(self) -> None:
        code, out, _err = self._invoke(["init", "--config", str(self.cfg_path)])
        self.assertEqual(code, 0)
        self.assertTrue(self.cfg_path.exists())
        code, out, _err = self._invoke(["list", "sections", "--config", str(self.cfg_path)])
        self.assertEqual(code, 0)
        self.assertIn("films: disabled", out)

    def test_list_steps(self) -> None:
        code, out, _err = self._invoke(["list", "steps", "--config", str(self.cfg_path)])
        self.assertEqual(code, 0)
        self.assertIn("archive:", out)
        self.assertIn("identifier:", out)

    def test_delete_item(self) -> None:
        dest = self.root / "dest"
        item = dest / "films" / "Movie.2020"
        item.mkdir(parents=True)
        (item / "Movie.2020.torrent").write_text("x", encoding="utf-8")
        (item / "Movie.2020.srcinfo").write_text("{}", encoding="utf-8")
        self.cfg_path.write_text(yaml.safe_dump({"destination": str(dest)}), encoding="utf-8")
        code, out, _err = self._invoke(["delete", "films", "Movie.2020", "--config", str(self.cfg_path)])
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(sorted(payload["removed"]), ["Movie.2020.srcinfo", "Movie.2020.torrent"])
        self.assertFalse(item.exists())

    def test_delete_rejects_traversal(self) -> None:
        self.cfg_path.write_text(yaml.safe_dump({}), encoding="utf-8")
        code, _out, err = self._invoke(["delete", "films", "..", "--config", str(self.cfg_path)])
        self.assertEqual(code, 1)
        self.assertIn("invalid item name", err)

    def test_status_on_empty_library(self) -> None:
        films = self.root / "films"
        films.mkdir()
        (films / "Movie.2020.mkv").write_text("x", encoding="utf-8")
        self.cfg_path.write_text(
            yaml.safe_dump(
                {
                    "destination": str(self.root / "dest"),
                    "sections": {"films": {"enabled": True, "sources": [str(films)]}},
                }
            ),
            encoding="utf-8",
        )
        code, out, _err = self._invoke(["status", "--config", str(self.cfg_path), "--quiet"])
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["units"][0]["state"], "new")
        self.assertEqual(payload["units"][0]["unit"], "films/Movie.2020")

    def _pinned_item(self) -> Path:
        dest = self.root / "dest"
        item = dest / "films" / "Mr..Robot.2015"
        item.mkdir(parents=True)
        for suffix in (".torrent", ".nfo", ".txt", ".prez.txt", ".srcinfo"):
            (item / f"Mr..Robot.2015{suffix}").write_text("x", encoding="utf-8")
        self.cfg_path.write_text(
            yaml.safe_dump({"destination": str(dest), "metadata": {"tmdb": {"api_key": "k"}}}),
            encoding="utf-8",
        )
        return item

    def test_override_set_and_clear(self) -> None:
        item = self._pinned_item()
        record = {"id": 1399, "title": "Mr. Robot"}
        with mock.patch("mediacatalog.cli.TmdbSearch.fetch_record", new=mock.AsyncMock(return_value=record)) as fetch:
            code, out, _err = self._invoke(
                ["override", "set", "films", "Mr..Robot.2015", "1399", "--config", str(self.cfg_path)]
            )
        self.assertEqual(code, 0)
        fetch.assert_awaited_once_with(1399)
        payload = json.loads(out)
        self.assertEqual(payload["override"], {"id": 1399, "kind": "movie"})
        self.assertEqual(payload["title"], "Mr. Robot")
        self.assertEqual(payload["removed"], ["Mr..Robot.2015.txt", "Mr..Robot.2015.prez.txt"])
        self.assertEqual(
            sorted(p.name for p in item.iterdir()),
            ["Mr..Robot.2015.nfo", "Mr..Robot.2015.srcinfo", "Mr..Robot.2015.torrent"],
        )
        stored = json.loads((self.root / "state" / "mediacatalog" / "overrides.json").read_text(encoding="utf-8"))
        self.assertEqual(stored, {"films/Mr..Robot.2015": {"id": 1399, "kind": "movie"}})

        code, out, _err = self._invoke(["override", "clear", "films", "Mr..Robot.2015", "--config", str(self.cfg_path)])
        self.assertEqual(code, 0)
        self.assertTrue(json.loads(out)["cleared"])
        stored = json.loads((self.root / "state" / "mediacatalog" / "overrides.json").read_text(encoding="utf-8"))
        self.assertEqual(stored, {})

    def test_override_unknown_id_changes_nothing(self) -> None:
        item = self._pinned_item()
        with mock.patch("mediacatalog.cli.TmdbSearch.fetch_record", new=mock.AsyncMock(return_value=None)):
            code, _out, err = self._invoke(
                ["override", "set", "films", "Mr..Robot.2015", "42", "--config", str(self.cfg_path)]
            )
        self.assertEqual(code, 1)
        self.assertIn("not found", err)
        self.assertTrue((item / "Mr..Robot.2015.txt").exists())
        self.assertFalse((self.root / "state" / "mediacatalog" / "overrides.json").exists())

    def test_override_set_requires_id(self) -> None:
        self._pinned_item()
        code, _out, err = self._invoke(["override", "set", "films", "Mr..Robot.2015", "--config", str(self.cfg_path)])
        self.assertEqual(code, 1)
        self.assertIn("positive TMDb id", err)

    def test_override_not_offered_for_music(self) -> None:
        with mock.patch("sys.stderr", io.StringIO()), self.assertRaises(SystemExit):
            build_parser().parse_args(["override", "set", "music", "Album", "5"])
