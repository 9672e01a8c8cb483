"""Technical note generation from mediainfo output."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..util import format_size
from .command import StepError, run_command

BANNER = "=" * 60
FOOTER = "Generated by mediacatalog"

_COMPLETE_NAME_RE = re.compile(r"^(\s*Complete name\s*:\s*).*$", re.MULTILINE)


class Probe:
    def __init__(self, config: dict[str, Any]) -> None:
        cfg = config.get("probe", {}) or {}
        self.command = str(cfg.get("command") or "mediainfo")
        self.timeout = cfg.get("timeout")

    async def inspect(self, path: str) -> str:
        try:
            return await run_command([self.command, path], step="probe", timeout=self.timeout)
        except StepError:
            return ""


def render_technical_note(
    release_name: str,
    media_text: str,
    reference_file: str,
    *,
    files_count: int | None = None,
    total_size: int | None = None,
    now: datetime | None = None,
) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S")
    base = Path(reference_file).name
    body = _COMPLETE_NAME_RE.sub(lambda m: m.group(1) + base, media_text, count=1)
    lines = [
        BANNER,
        f"Release Name : {release_name}",
        f"Added On    : {stamp}",
    ]
    if files_count is not None:
        lines.append(f"Files       : {files_count}")
    if total_size is not None:
        lines.append(f"Total Size  : {format_size(total_size)}")
    lines.extend([BANNER, "", body.strip(), "", BANNER, FOOTER, BANNER])
    return "\n".join(lines)
