"""Generate human-readable run reports."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .util import format_duration, redact_payload


def render_summary_lines(summary: dict[str, Any]) -> list[str]:
    lines = []
    trackers = summary.get("trackers") or {}
    if trackers.get("changed"):
        lines.append("Announce update")
        lines.append(f"  scanned   : {trackers.get('scanned', 0)}")
        lines.append(f"  rewritten : {trackers.get('rewritten', 0)}")
        lines.append(f"  failed    : {trackers.get('failed', 0)}")
    lines.append(f"Processed        : {summary.get('processed', 0)}")
    lines.append(f"Reprocessed      : {summary.get('reprocessed', 0)}")
    lines.append(f"Already complete : {summary.get('skipped', 0)}")
    if summary.get("deferred"):
        lines.append(f"Deferred         : {summary.get('deferred')}")
    lines.append(f"Failed           : {summary.get('failed', 0)}")
    for provider, count in sorted((summary.get("lookup_found") or {}).items()):
        lines.append(f"{provider} found     : {count}")
    for provider, count in sorted((summary.get("lookup_missing") or {}).items()):
        lines.append(f"{provider} missing   : {count}")
    lines.append(f"Elapsed          : {format_duration(summary.get('elapsed_s') or 0)}")
    return lines


def render_report(data: dict[str, Any]) -> str:
    run_id = data.get("run_id") or "unknown"
    summary = data.get("summary", {}) or {}
    results = data.get("results", []) or []
    warnings = data.get("warnings", []) or []
    lines = []
    lines.append(f"# Catalog Run Report ({run_id})")
    lines.append("")
    lines.append(f"Generated: {datetime.now(timezone.utc).isoformat()}")
    lines.append("")
    lines.append("## Summary")
    lines.extend(f"- {line}" for line in render_summary_lines(summary))
    lines.append("")
    changed = [r for r in results if r.get("status") not in {"skipped"}]
    if changed:
        lines.append("## Units")
        for result in changed:
            line = f"- {result.get('unit')}: {result.get('status')}"
            if result.get("steps"):
                line += f" ({', '.join(result['steps'])})"
            error = result.get("error")
            if isinstance(error, dict):
                line += f" [{error.get('code')}] {error.get('message')}"
            lines.append(line)
        lines.append("")
    if warnings:
        lines.append("## Warnings")
        for warn in warnings:
            lines.append(f"- {warn}")
        lines.append("")
    return "\n".join(lines)


def write_report(data: dict[str, Any], state_path: str, config: dict[str, Any]) -> str | None:
    report_cfg = config.get("report", {}) or {}
    if not report_cfg.get("enabled"):
        return None
    run_id = data.get("run_id") or "unknown"
    out_dir = Path(state_path) / "reports"
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{run_id}.md"
    content = render_report(redact_payload(data))
    path.write_text(content, encoding="utf-8")
    return str(path)
