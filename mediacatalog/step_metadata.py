"""Step metadata for the artifact sub-steps of a unit."""

from __future__ import annotations

from typing import Any


STEP_METADATA: dict[str, dict[str, Any]] = {
    "modify_trackers": {
        "artifact": "archive",
        "external": "archiver",
        "progress": "Rewriting announce endpoints",
        "description": "Rewrite announce endpoints of an existing archive descriptor.",
    },
    "source_descriptor": {
        "artifact": "source_descriptor",
        "external": None,
        "progress": "Copying source descriptor",
        "description": "Copy the .nfo shipped with the source next to the artifacts.",
    },
    "technical_note": {
        "artifact": "technical",
        "external": "probe",
        "progress": "Probing media",
        "description": "Write the banner-wrapped mediainfo report.",
    },
    "archive": {
        "artifact": "archive",
        "external": "archiver",
        "progress": "Creating archive descriptor",
        "description": "Create the private .torrent with every announce endpoint.",
    },
    "identifier": {
        "artifact": "identifier",
        "external": "metadata",
        "progress": "Looking up metadata",
        "description": "Look up TMDb/iTunes identifiers (cached) and write the identifier note.",
    },
    "release_note": {
        "artifact": "release",
        "external": "archiver",
        "progress": "Rendering release note",
        "description": "Render the BBCode presentation (when presentation is enabled).",
    },
}


def get_step_metadata(step_name: str) -> dict[str, Any]:
    return STEP_METADATA.get(step_name, {})
