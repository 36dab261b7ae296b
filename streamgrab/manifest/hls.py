"""
Parses HLS (M3U8) master and media playlists.

Parsing is lenient: unknown tags are ignored and malformed input yields an
empty result rather than an exception, leaving the caller to report that no
representations or segments were found.
"""

import logging
import re
from dataclasses import replace
from typing import Optional

from streamgrab.models.stream import KeyInfo, Representation, Segment
from streamgrab.utils.formatting import representation_label
from streamgrab.utils.path import resolve_url

log = logging.getLogger(__name__)

STREAM_INF_TAG = "#EXT-X-STREAM-INF:"
EXTINF_TAG = "#EXTINF:"
KEY_TAG = "#EXT-X-KEY:"
MAP_TAG = "#EXT-X-MAP:"
MEDIA_SEQUENCE_TAG = "#EXT-X-MEDIA-SEQUENCE:"

_ATTRIBUTE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')
_VIDEO_CODECS = ("avc", "hvc", "hev", "vp8", "vp9", "vp09", "av01", "mp4v")
_AUDIO_CODECS = ("mp4a", "ac-3", "ec-3", "opus", "mp3", "flac")


def parse_attributes(attribute_list: str) -> dict[str, str]:
    """
    Parses an HLS attribute list (`KEY=VALUE,KEY="quoted, value"`) into a dict.
    Quotes are stripped from quoted values.
    """
    attributes = {}
    for match in _ATTRIBUTE.finditer(attribute_list):
        key, value = match.group(1), match.group(2).strip()
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        attributes[key] = value
    return attributes


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines()]


def is_master_playlist(text: str) -> bool:
    """True if the playlist lists variant streams rather than segments."""
    return any(line.startswith(STREAM_INF_TAG) for line in _lines(text))


def _classify_codecs(
    codecs: Optional[str], resolution: Optional[str]
) -> tuple[bool, bool]:
    """Returns (is_video, is_audio) for a variant."""
    if not codecs:
        # Variants without CODECS are muxed audio/video in practice
        return True, True
    lowered = codecs.lower()
    has_video = bool(resolution) or any(c in lowered for c in _VIDEO_CODECS)
    has_audio = any(c in lowered for c in _AUDIO_CODECS)
    return has_video, has_audio


def parse_master_playlist(text: str, base_url: str) -> list[Representation]:
    """
    Extracts the variant streams of a master playlist, sorted by descending
    bandwidth. Returns an empty list for media (leaf) playlists.
    """
    lines = _lines(text)
    representations = []

    for i, line in enumerate(lines):
        if not line.startswith(STREAM_INF_TAG):
            continue

        # The next non-comment line is the variant URI
        uri = next(
            (
                candidate
                for candidate in lines[i + 1 :]
                if candidate and not candidate.startswith("#")
            ),
            None,
        )
        if not uri:
            log.debug(f"Skipping variant without URI at line {i + 1}.")
            continue

        attrs = parse_attributes(line[len(STREAM_INF_TAG) :])
        try:
            bandwidth = int(attrs.get("BANDWIDTH", "0"))
        except ValueError:
            bandwidth = 0
        resolution = attrs.get("RESOLUTION") or None
        codecs = attrs.get("CODECS") or None
        is_video, is_audio = _classify_codecs(codecs, resolution)
        url = resolve_url(base_url, uri)

        rep = Representation(
            id=attrs.get("NAME") or url,
            bandwidth=bandwidth,
            url=url,
            resolution=resolution,
            codecs=codecs,
            is_video=is_video,
            is_audio=is_audio,
        )
        label = attrs.get("NAME") or representation_label(
            rep.height, bandwidth, is_audio_only=is_audio and not is_video
        )
        representations.append(replace(rep, label=label))

    # sorted() is stable, so equal bandwidths keep playlist order
    return sorted(representations, key=lambda r: r.bandwidth, reverse=True)


def _parse_extinf(line: str) -> Optional[float]:
    value = line[len(EXTINF_TAG) :].split(",", 1)[0].strip()
    try:
        return float(value)
    except ValueError:
        return None


def _media_sequence(lines: list[str]) -> int:
    for line in lines:
        if line.startswith(MEDIA_SEQUENCE_TAG):
            try:
                return int(line[len(MEDIA_SEQUENCE_TAG) :].strip())
            except ValueError:
                return 0
    return 0


def parse_media_playlist(text: str, base_url: str) -> list[Segment]:
    """
    Lists the segments of a media playlist in file order, each paired with the
    duration of the `#EXTINF` tag preceding it.
    """
    lines = _lines(text)
    sequence = _media_sequence(lines)
    segments = []
    current_duration: Optional[float] = None

    for line in lines:
        if not line:
            continue
        if line.startswith(EXTINF_TAG):
            current_duration = _parse_extinf(line)
        elif not line.startswith("#"):
            segments.append(
                Segment(
                    url=resolve_url(base_url, line),
                    sequence_index=sequence + len(segments),
                    duration=current_duration,
                )
            )
            current_duration = None

    return segments


def parse_iv(value: Optional[str]) -> Optional[bytes]:
    """Decodes an `IV=0x...` attribute into 16 bytes, or None if absent/invalid."""
    if not value:
        return None
    hex_digits = value[2:] if value.lower().startswith("0x") else value
    try:
        iv = bytes.fromhex(hex_digits.rjust(32, "0"))
    except ValueError:
        log.debug(f"Ignoring malformed IV attribute: {value}")
        return None
    return iv if len(iv) == 16 else None


def parse_key_directive(text: str, base_url: str) -> Optional[KeyInfo]:
    """
    Returns the first AES-128 `#EXT-X-KEY` directive of a media playlist.
    Only one key per playlist is honoured; key rotation is not supported.
    """
    for line in _lines(text):
        if not line.startswith(KEY_TAG):
            continue
        attrs = parse_attributes(line[len(KEY_TAG) :])
        method = attrs.get("METHOD", "").upper()
        if method != "AES-128":
            if method not in ("", "NONE"):
                log.warning(
                    f"[yellow]Unsupported HLS encryption method '{method}'; "
                    "segments will be saved as-is.[/yellow]"
                )
            continue
        uri = attrs.get("URI")
        if not uri:
            continue
        return KeyInfo(
            key_uri=resolve_url(base_url, uri),
            method="AES-128",
            explicit_iv=parse_iv(attrs.get("IV")),
        )
    return None


def parse_init_section(text: str, base_url: str) -> Optional[str]:
    """Returns the `#EXT-X-MAP` initialization segment URL, if any."""
    for line in _lines(text):
        if line.startswith(MAP_TAG):
            uri = parse_attributes(line[len(MAP_TAG) :]).get("URI")
            if uri:
                return resolve_url(base_url, uri)
    return None
