"""CLI entrypoint for mediacatalog."""

from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
from pathlib import Path
from typing import Any

import requests

from .artifacts import delete_artifacts, delete_metadata_artifacts, validate_item_name
from .config import (
    SECTION_ORDER,
    cache_root,
    enabled_sections,
    ensure_config_exists,
    load_config,
    overrides_file,
    save_default_config,
    save_default_secrets,
    section_root,
    section_sources,
    validate_config,
)
from .overrides import OverrideStore
from .paths import ensure_dir, state_dir
from .pipeline import Collaborators, assess_units, run_catalog
from .registry import provider_status_url, required_providers
from .report import render_summary_lines
from .step_metadata import STEP_METADATA, get_step_metadata
from .steps.metadata import TmdbSearch
from .units import Section
from .util import classify_exception, redact_payload, write_json

EXIT_CONFIG_ERROR = 2
_SECTION_CHOICES = [s.value for s in SECTION_ORDER]


def _safe_error_message(exc: Exception) -> str:
    return str(redact_payload(str(exc)))


def _load(args: argparse.Namespace) -> dict[str, Any]:
    return load_config(ensure_config_exists(args.config))


def _report_config_problems(errors: list[str], warnings: list[str]) -> None:
    for warning in warnings:
        sys.stderr.write(f"warning: {warning}\n")
    for error in errors:
        sys.stderr.write(f"error: {error}\n")


def _progress_printer(args: argparse.Namespace):
    if getattr(args, "quiet", False):
        return None

    def _progress(step: str, phase: str, payload: dict[str, Any]) -> None:
        unit = payload.get("unit") or payload.get("path") or ""
        if phase == "start":
            message = get_step_metadata(step).get("progress")
            if message:
                sys.stderr.write(f"[{unit}] {message}\n")
            return
        if phase == "error":
            error = payload.get("error") or {}
            sys.stderr.write(f"[{unit}] failed: {error.get('message')}\n")
            return
        if phase != "end":
            return
        if step == "modify_trackers" and payload.get("status") == "error":
            sys.stderr.write(f"Announce update failed for {unit}\n")
        if step == "identifier" and payload.get("status") == "not_found":
            sys.stderr.write(f"[{unit}] no metadata match\n")
        if step == "unit" and payload.get("status") in {"processed", "reprocessed"}:
            sys.stderr.write(f"[{unit}] {payload.get('status')}\n")

    return _progress


def _print_summary(output: dict[str, Any], args: argparse.Namespace) -> None:
    if getattr(args, "quiet", False):
        return
    for warning in output.get("warnings") or []:
        sys.stderr.write(f"warning: {warning}\n")
    for line in render_summary_lines(output.get("summary") or {}):
        sys.stderr.write(line + "\n")
    report = output.get("report") or {}
    if report.get("path"):
        sys.stderr.write(f"Report: {report['path']}\n")


def _run(config: dict[str, Any], args: argparse.Namespace, sections: list[str] | None) -> int:
    ensure_dir(state_dir())
    try:
        output = asyncio.run(
            run_catalog(
                config,
                Collaborators.from_config(config),
                sections=sections,
                parallelism=getattr(args, "jobs", None),
                progress=_progress_printer(args),
            )
        )
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_CONFIG_ERROR
    _print_summary(output, args)
    write_json(output)
    return 1 if output["summary"].get("failed") else 0


def cmd_init(args: argparse.Namespace) -> int:
    cfg_path = save_default_config(path=Path(args.config).expanduser() if args.config else None, overwrite=args.force)
    save_default_secrets(overwrite=False)
    sys.stdout.write(f"Initialized config at {cfg_path}\n")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    config = _load(args)
    if args.jobs is not None and args.jobs < 1:
        sys.stderr.write("error: --jobs must be at least 1\n")
        return EXIT_CONFIG_ERROR
    errors, warnings = validate_config(config)
    if errors:
        _report_config_problems(errors, warnings)
        return EXIT_CONFIG_ERROR
    return _run(config, args, args.section)


def cmd_status(args: argparse.Namespace) -> int:
    config = _load(args)
    try:
        status = assess_units(config, args.section)
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_CONFIG_ERROR
    if not getattr(args, "quiet", False):
        counts: dict[str, int] = {}
        for item in status["units"]:
            counts[item["state"]] = counts.get(item["state"], 0) + 1
        for state, count in sorted(counts.items()):
            sys.stderr.write(f"{state}: {count}\n")
        if status["deferred"]:
            sys.stderr.write(f"deferred: {len(status['deferred'])}\n")
    write_json(status)
    return 0


def _delete(config: dict[str, Any], section: str, name: str) -> list[str]:
    return delete_artifacts(section_root(config, Section(section)), name)


def cmd_delete(args: argparse.Namespace) -> int:
    config = _load(args)
    try:
        removed = _delete(config, args.section, args.name)
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1
    except OSError as exc:
        code, hint = classify_exception(exc)
        write_json({"error": {"code": code, "hint": hint, "message": _safe_error_message(exc)}})
        return 1
    if not removed and not getattr(args, "quiet", False):
        sys.stderr.write(f"nothing to delete for {args.section}/{args.name}\n")
    write_json({"section": args.section, "name": args.name, "removed": removed})
    return 0


def cmd_regenerate(args: argparse.Namespace) -> int:
    config = _load(args)
    errors, warnings = validate_config(config)
    if errors:
        _report_config_problems(errors, warnings)
        return EXIT_CONFIG_ERROR
    try:
        removed = _delete(config, args.section, args.name)
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1
    if not getattr(args, "quiet", False):
        sys.stderr.write(f"Removed {len(removed)} artifact(s) for {args.section}/{args.name}\n")
    return _run(config, args, None)


def _pin_record(config: dict[str, Any], section: Section, item_id: int) -> dict[str, Any] | None:
    searcher = TmdbSearch(config, section.tmdb_kind or "movie", cache_root(config))
    return asyncio.run(searcher.fetch_record(item_id))


def cmd_override(args: argparse.Namespace) -> int:
    config = _load(args)
    section = Section(args.section)
    store = OverrideStore(overrides_file(config))
    output: dict[str, Any] = {"section": args.section, "name": args.name}
    try:
        validate_item_name(args.name)
        if args.action == "set":
            if args.id is None or args.id <= 0:
                raise ValueError("a positive TMDb id is required")
            if not ((config.get("metadata", {}) or {}).get("tmdb") or {}).get("api_key"):
                raise ValueError("metadata.tmdb.api_key is required to pin an id")
            record = _pin_record(config, section, args.id)
            if not record:
                raise ValueError(f"TMDb id {args.id} not found for type {section.tmdb_kind}")
            output["override"] = store.set(section, args.name, args.id)
            output["title"] = record.get("title") or record.get("name") or ""
        else:
            output["cleared"] = store.clear(section, args.name)
        output["removed"] = delete_metadata_artifacts(section_root(config, section), args.name)
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1
    except OSError as exc:
        code, hint = classify_exception(exc)
        write_json({"error": {"code": code, "hint": hint, "message": _safe_error_message(exc)}})
        return 1
    if not getattr(args, "quiet", False):
        sys.stderr.write(f"Run `mediacatalog run` to re-identify {args.section}/{args.name}\n")
    write_json(output)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    config = _load(args)
    if args.kind == "sections":
        active = set(enabled_sections(config))
        for section in SECTION_ORDER:
            flag = "enabled" if section in active else "disabled"
            sources = ", ".join(section_sources(config, section))
            sys.stdout.write(f"{section.value}: {flag} sources={sources} output={section_root(config, section)}\n")
        return 0
    if args.kind == "steps":
        for name, meta in STEP_METADATA.items():
            sys.stdout.write(f"{name}: {meta.get('description')}\n")
        return 0
    sys.stderr.write("unknown list kind\n")
    return 1


def cmd_validate(args: argparse.Namespace) -> int:
    config = _load(args)
    errors, warnings = validate_config(config)
    _report_config_problems(errors, warnings)
    return 1 if errors else 0


def _check_service(
    name: str, url: str, params: dict[str, str] | None, timeout: float = 5.0
) -> tuple[bool, str]:
    try:
        response = requests.get(url, params=params, timeout=timeout)
        if response.status_code in {401, 403}:
            return False, f"{name} auth failed ({response.status_code})"
        response.raise_for_status()
        return True, f"{name} ok"
    except requests.RequestException as exc:
        return False, f"{name} error: {_safe_error_message(exc)}"


def cmd_doctor(args: argparse.Namespace) -> int:
    config = _load(args)
    errors, warnings = validate_config(config)
    _report_config_problems(errors, warnings)
    failed = bool(errors)

    for label, cfg_key, default in (("archiver", "archiver", "mkbrr"), ("probe", "probe", "mediainfo")):
        command = (config.get(cfg_key, {}) or {}).get("command") or default
        if shutil.which(command):
            sys.stderr.write(f"{label} ok ({command})\n")
        else:
            sys.stderr.write(f"{label} missing: {command} not found on PATH\n")
            failed = True

    for provider in required_providers(enabled_sections(config)):
        url = provider_status_url(provider)
        if not url:
            continue
        params: dict[str, str] | None = None
        if provider == "tmdb":
            api_key = ((config.get("metadata", {}) or {}).get("tmdb") or {}).get("api_key")
            if not api_key:
                continue
            params = {"api_key": api_key}
        ok, msg = _check_service(provider, url, params)
        sys.stderr.write(msg + "\n")
        failed = failed or not ok

    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    epilog = (
        "Examples:\n"
        "  mediacatalog init\n"
        "  mediacatalog run --jobs 4\n"
        "  mediacatalog run --section films --section series\n"
        "  mediacatalog status --section music\n"
        "  mediacatalog delete films Some.Movie.2020.1080p\n"
        "  mediacatalog regenerate series Show.S01\n"
        "  mediacatalog override set films Some.Movie.2020.1080p 603\n"
        "  mediacatalog doctor\n"
        "\n"
        "Notes:\n"
        "  - Environment variables (TRACKERS, TMDB_API_KEY, ENABLE_FILMS, ...) override the config file.\n"
        "  - Exit code 1 means at least one unit failed; 2 means the config is invalid.\n"
    )
    parser = argparse.ArgumentParser(
        prog="mediacatalog",
        description="Incremental media artifact catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to config file (or set MEDIACATALOG_CONFIG)")
    common.add_argument("--quiet", action="store_true", help="Suppress progress output")

    section_group = argparse.ArgumentParser(add_help=False)
    section_group.add_argument(
        "--section",
        action="append",
        choices=_SECTION_CHOICES,
        help="Restrict to this section (repeatable; default: every enabled section)",
    )

    item_group = argparse.ArgumentParser(add_help=False)
    item_group.add_argument("section", choices=_SECTION_CHOICES, help="Section the item belongs to")
    item_group.add_argument("name", help="Item name (its output directory name)")

    init_cmd = sub.add_parser("init", parents=[common], help="Initialize default config")
    init_cmd.add_argument("--force", action="store_true", help="Overwrite config if it exists")
    init_cmd.set_defaults(func=cmd_init)

    run_cmd = sub.add_parser(
        "run",
        parents=[common, section_group],
        help="Update announce endpoints, then catalog every unit",
        description=(
            "Run the catalog.\n"
            "\n"
            "Phase 1 rewrites existing archives when the announce list changed.\n"
            "Phase 2 builds the missing artifacts of every discovered unit.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_cmd.add_argument("--jobs", type=int, help="Parallelism (default: config parallel_jobs)")
    run_cmd.set_defaults(func=cmd_run)

    status_cmd = sub.add_parser("status", parents=[common, section_group], help="Show unit states without working")
    status_cmd.set_defaults(func=cmd_status)

    delete_cmd = sub.add_parser("delete", parents=[common, item_group], help="Delete every artifact of an item")
    delete_cmd.set_defaults(func=cmd_delete)

    regen_cmd = sub.add_parser("regenerate", parents=[common, item_group], help="Delete an item's artifacts and rerun")
    regen_cmd.set_defaults(func=cmd_regenerate, jobs=None)

    override_cmd = sub.add_parser(
        "override",
        parents=[common],
        help="Pin or unpin the TMDb id of a film or series item",
        description=(
            "Pin the TMDb id of an item, or clear the pin.\n"
            "\n"
            "Both actions remove the item's identifier and release note so the\n"
            "next run identifies it again. Archives and technical notes are kept.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    override_cmd.add_argument("action", choices=["set", "clear"])
    override_cmd.add_argument("section", choices=[s.value for s in SECTION_ORDER if s.tmdb_kind])
    override_cmd.add_argument("name", help="Item name (its output directory name)")
    override_cmd.add_argument("id", nargs="?", type=int, help="TMDb id (required for set)")
    override_cmd.set_defaults(func=cmd_override)

    list_cmd = sub.add_parser("list", parents=[common], help="List sections or steps")
    list_cmd.add_argument("kind", choices=["sections", "steps"])
    list_cmd.set_defaults(func=cmd_list)

    validate_cmd = sub.add_parser("validate", parents=[common], help="Validate config")
    validate_cmd.set_defaults(func=cmd_validate)

    doctor_cmd = sub.add_parser("doctor", parents=[common], help="Check configuration, tools and connectivity")
    doctor_cmd.set_defaults(func=cmd_doctor)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
