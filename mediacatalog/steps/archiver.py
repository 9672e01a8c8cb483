"""Archive descriptor (.torrent) creation and rewriting through mkbrr."""

from __future__ import annotations

import re
from typing import Any

from .command import StepError, run_command

_SIZE_RE = re.compile(r"(?im)^\s*(?:total\s+)?size\s*:\s*([\d.,]+)\s*([KMGT]i?B|B|bytes)?")
_UNITS = {
    None: 1,
    "B": 1,
    "BYTES": 1,
    "KB": 10**3,
    "MB": 10**6,
    "GB": 10**9,
    "TB": 10**12,
    "KIB": 2**10,
    "MIB": 2**20,
    "GIB": 2**30,
    "TIB": 2**40,
}


def parse_size(text: str) -> int | None:
    match = _SIZE_RE.search(text)
    if not match:
        return None
    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    unit = match.group(2).upper() if match.group(2) else None
    return int(value * _UNITS.get(unit, 1))


class Archiver:
    def __init__(self, config: dict[str, Any]) -> None:
        cfg = config.get("archiver", {}) or {}
        self.command = str(cfg.get("command") or "mkbrr")
        self.private = bool(cfg.get("private", True))
        self.timeout = cfg.get("timeout")

    def _tracker_args(self, endpoints: list[str]) -> list[str]:
        args: list[str] = []
        for endpoint in endpoints:
            args.extend(["--tracker", endpoint])
        return args

    async def create(self, path: str, endpoints: list[str], output: str) -> str:
        cmd = [self.command, "create", path, "--output", output]
        if self.private:
            cmd.append("--private")
        cmd.extend(self._tracker_args(endpoints))
        await run_command(cmd, step="archive", timeout=self.timeout)
        return output

    async def modify(self, descriptor: str, endpoints: list[str]) -> str:
        # mkbrr appends the .torrent extension to --output itself
        stem = descriptor[: -len(".torrent")] if descriptor.endswith(".torrent") else descriptor
        cmd = [self.command, "modify", descriptor, *self._tracker_args(endpoints), "--output", stem]
        await run_command(cmd, step="modify_trackers", timeout=self.timeout)
        return stem + ".torrent"

    async def inspect(self, descriptor: str) -> int:
        output = await run_command([self.command, "inspect", descriptor], step="inspect", timeout=self.timeout)
        size = parse_size(output)
        if size is None:
            raise StepError(
                f"step inspect: no payload size in output for {descriptor}",
                code="PARSE_ERROR",
                hint="Check the mkbrr version.",
            )
        return size
