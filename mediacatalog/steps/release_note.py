"""BBCode presentation (release note) rendering."""

from __future__ import annotations

from typing import Any

from ..util import format_size

DEFAULT_IMAGES = {
    "info": "",
    "synopsis": "",
    "movie": "",
    "serie": "",
    "download": "",
    "link": "",
}

TMDB_POSTER_URL = "https://image.tmdb.org/t/p/w500"


def _section(image: str | None, title: str) -> list[str]:
    lines = []
    if image:
        lines.append(f"[img]{image}[/img]")
    lines.append(f"[b][size=18]{title}[/size][/b]")
    return lines


def _video_fields(record: dict[str, Any]) -> dict[str, Any]:
    title = record.get("title") or record.get("name") or ""
    date = record.get("release_date") or record.get("first_air_date") or ""
    genres = ", ".join(g.get("name", "") for g in record.get("genres") or [] if isinstance(g, dict))
    poster = record.get("poster_path")
    return {
        "title": title,
        "year": date[:4] if date else "",
        "overview": record.get("overview") or "",
        "genres": genres,
        "poster": f"{TMDB_POSTER_URL}{poster}" if poster else "",
        "rating": record.get("vote_average"),
        "link": f"https://www.themoviedb.org/{'tv' if record.get('first_air_date') else 'movie'}/{record.get('id')}"
        if record.get("id")
        else "",
    }


def _music_fields(record: dict[str, Any]) -> dict[str, Any]:
    date = record.get("releaseDate") or ""
    return {
        "title": record.get("collectionName") or record.get("trackName") or "",
        "artist": record.get("artistName") or "",
        "year": date[:4] if date else "",
        "genres": record.get("primaryGenreName") or "",
        "poster": record.get("artworkUrl100") or "",
        "tracks": record.get("trackCount"),
        "link": record.get("collectionViewUrl") or record.get("trackViewUrl") or "",
        "overview": "",
    }


def render_release_note(
    release_name: str,
    *,
    provider: str,
    record: dict[str, Any] | None,
    guess: dict[str, Any] | None,
    payload_size: int,
    files_count: int,
    technical_text: str,
    images: dict[str, str] | None = None,
    series: bool = False,
) -> str:
    imgs = dict(DEFAULT_IMAGES)
    imgs.update({k: v for k, v in (images or {}).items() if v})
    guess = guess or {}
    if record:
        info = _music_fields(record) if provider == "itunes" else _video_fields(record)
    else:
        info = {"title": guess.get("title") or release_name, "year": guess.get("year") or "", "overview": ""}
        if guess.get("artist"):
            info["artist"] = guess["artist"]

    heading = info.get("title") or release_name
    if info.get("year"):
        heading = f"{heading} ({info['year']})"
    lines = ["[center]", f"[b][size=24]{heading}[/size][/b]", ""]
    if info.get("poster"):
        lines.extend([f"[img]{info['poster']}[/img]", ""])

    lines.extend(_section(imgs.get("info"), "Informations"))
    if info.get("artist"):
        lines.append(f"[b]Artist :[/b] {info['artist']}")
    if info.get("genres"):
        lines.append(f"[b]Genres :[/b] {info['genres']}")
    if info.get("rating"):
        lines.append(f"[b]Rating :[/b] {info['rating']}/10")
    if info.get("tracks"):
        lines.append(f"[b]Tracks :[/b] {info['tracks']}")
    if info.get("link"):
        label = f"[img]{imgs['link']}[/img]" if imgs.get("link") else info["link"]
        lines.append(f"[url={info['link']}]{label}[/url]")
    lines.append("")

    if info.get("overview"):
        lines.extend(_section(imgs.get("synopsis"), "Synopsis"))
        lines.extend([info["overview"], ""])

    kind_image = imgs.get("serie") if series else imgs.get("movie")
    if provider != "itunes":
        lines.extend(_section(kind_image, "Technical"))
    else:
        lines.append("[b][size=18]Technical[/size][/b]")
    lines.extend(["[/center]", "[code]", technical_text.strip(), "[/code]", "[center]", ""])

    lines.extend(_section(imgs.get("download"), "Release"))
    lines.append(f"[b]Release :[/b] {release_name}")
    lines.append(f"[b]Files :[/b] {files_count}")
    lines.append(f"[b]Total size :[/b] {format_size(payload_size)}")
    lines.append("[/center]")
    return "\n".join(lines)
