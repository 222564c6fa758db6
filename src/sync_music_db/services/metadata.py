"""Tag extraction adapter backed by mutagen.

`read_track_tags` is the only entry point the sync engine depends on. It never
raises: any parse failure degrades to an empty `TrackTags` so the row is still
written with its path and mtime.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path

from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.mp3 import MP3, BitrateMode

logger = logging.getLogger(__name__)

_CONTAINERS = {
    "MP3": "MPEG",
    "EasyMP3": "MPEG",
    "FLAC": "FLAC",
    "OggVorbis": "Ogg",
    "OggOpus": "Ogg",
    "OggFLAC": "Ogg",
    "OggSpeex": "Ogg",
    "OggTheora": "Ogg",
    "MP4": "MPEG-4",
    "EasyMP4": "MPEG-4",
    "ASF": "ASF",
    "WAVE": "WAVE",
    "AIFF": "AIFF",
    "MonkeysAudio": "Monkey's Audio",
    "WavPack": "WavPack",
    "Musepack": "Musepack",
    "AAC": "ADTS",
    "AC3": "AC-3",
    "DSF": "DSF",
    "DSDIFF": "DSDIFF",
}

_CODECS = {
    "FLAC": "FLAC",
    "OggVorbis": "Vorbis I",
    "OggOpus": "Opus",
    "OggFLAC": "FLAC",
    "OggSpeex": "Speex",
    "WAVE": "PCM",
    "AIFF": "PCM",
    "MonkeysAudio": "Monkey's Audio",
    "WavPack": "WavPack",
    "Musepack": "Musepack",
    "AAC": "AAC",
    "AC3": "AC-3",
    "DSF": "DSD",
    "DSDIFF": "DSD",
}


@dataclass(frozen=True)
class TrackTags:
    """Descriptive fields for one audio file; every field is optional."""

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    duration: int | None = None
    track_no: int | None = None
    tags: tuple[str, ...] = ()
    is_vbr: bool = False
    bitrate: int | None = None
    codec: str | None = None
    container: str | None = None


EMPTY_TAGS = TrackTags()


def read_track_tags(path: Path) -> TrackTags:
    """Extract tags and stream info for `path`, or `EMPTY_TAGS` on failure."""
    try:
        tags = _read_with_mutagen(path)
    except Exception as exc:
        logger.debug("Tag extraction failed for %s: %s", path, exc)
        return EMPTY_TAGS
    return tags if tags is not None else EMPTY_TAGS


def _read_with_mutagen(path: Path) -> TrackTags | None:
    try:
        audio = MutagenFile(path, easy=True)
    except MutagenError as exc:
        logger.debug("mutagen could not parse %s: %s", path, exc)
        return None
    if audio is None:
        return None
    tags = audio.tags or {}
    info = audio.info
    kind = type(audio).__name__
    genres = tags.get("genre") if hasattr(tags, "get") else None
    return TrackTags(
        title=_first_tag(tags, "title"),
        artist=_first_tag(tags, "artist"),
        album=_first_tag(tags, "album"),
        year=_parse_year(_first_tag(tags, "date") or _first_tag(tags, "year")),
        duration=_floor_positive(getattr(info, "length", None)),
        track_no=_parse_track_no(_first_tag(tags, "tracknumber")),
        tags=_clean_list(genres),
        is_vbr=isinstance(audio, MP3)
        and getattr(info, "bitrate_mode", None) == BitrateMode.VBR,
        bitrate=_floor_positive(getattr(info, "bitrate", None), scale=1000),
        codec=_codec_name(kind, info),
        container=_CONTAINERS.get(kind, path.suffix.lstrip(".").upper() or None),
    )


def _codec_name(kind: str, info: object) -> str | None:
    if kind in ("MP3", "EasyMP3"):
        version = getattr(info, "version", None)
        layer = getattr(info, "layer", None)
        if isinstance(version, (int, float)) and isinstance(layer, int):
            return f"MPEG {version:g} Layer {layer}"
        return "MPEG"
    if kind in ("MP4", "EasyMP4"):
        return _clean_text(getattr(info, "codec_description", None)) or _clean_text(
            getattr(info, "codec", None)
        )
    if kind == "ASF":
        return _clean_text(getattr(info, "codec_name", None))
    return _CODECS.get(kind)


def _first_tag(tags: object, key: str) -> str | None:
    if not hasattr(tags, "get"):
        return None
    try:
        value = tags.get(key)  # type: ignore[attr-defined]
    except (KeyError, ValueError):
        return None
    if isinstance(value, list):
        value = value[0] if value else None
    return _clean_text(value)


def _clean_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_list(values: object) -> tuple[str, ...]:
    if not isinstance(values, list):
        return ()
    cleaned = (_clean_text(value) for value in values)
    return tuple(value for value in cleaned if value)


def _parse_year(value: str | None) -> int | None:
    if not value:
        return None
    match = re.search(r"\b(\d{4})\b", value)
    if match:
        return int(match.group(1))
    return None


def _parse_track_no(value: str | None) -> int | None:
    # "3/12" -> 3
    if not value:
        return None
    match = re.match(r"\s*(\d+)", value)
    if match:
        return int(match.group(1))
    return None


def _floor_positive(value: object, *, scale: int = 1) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    normalized = float(value)
    if not math.isfinite(normalized) or normalized <= 0:
        return None
    return math.floor(normalized / scale)
