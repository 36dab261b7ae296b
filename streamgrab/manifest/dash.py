"""
Parses DASH (MPD) manifests and expands SegmentTemplates into segment lists.
"""

import logging
import math
import re
from typing import Optional

from isodate import ISO8601Error, parse_duration
from lxml import etree

from streamgrab.exceptions import ManifestParseError
from streamgrab.models.stream import Representation, Segment, SegmentTemplate
from streamgrab.utils.formatting import representation_label
from streamgrab.utils.path import resolve_url

log = logging.getLogger(__name__)

# Assumed segment length when a template declares no duration
DEFAULT_SEGMENT_SECONDS = 2.0

_TEMPLATE_IDENTIFIER = re.compile(
    r"\$(RepresentationID|Number|Bandwidth|Time)(%0(\d+)d)?\$"
)


def _local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def _children(element: etree._Element, name: str) -> list[etree._Element]:
    """Direct children with the given local name, regardless of namespace."""
    return [
        child
        for child in element
        if isinstance(child.tag, str) and _local_name(child) == name
    ]


def _child(element: etree._Element, name: str) -> Optional[etree._Element]:
    found = _children(element, name)
    return found[0] if found else None


def _int_attr(
    element: Optional[etree._Element], name: str, default: int
) -> Optional[int]:
    if element is None:
        return None
    value = element.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return default


def _seconds(value: Optional[str]) -> Optional[float]:
    """Converts an ISO-8601 duration (`PT1H2M3.5S`) to seconds."""
    if not value:
        return None
    try:
        return parse_duration(value).total_seconds()
    except (ISO8601Error, ValueError):
        log.debug(f"Ignoring unparsable duration: {value}")
        return None


def _resolve_base(element: etree._Element, current_base: str) -> str:
    """Applies an element's `BaseURL` (if any) on top of the inherited base."""
    base_element = _child(element, "BaseURL")
    if base_element is None or not (base_element.text or "").strip():
        return current_base
    return resolve_url(current_base, base_element.text.strip())


def _has_base(element: etree._Element) -> bool:
    base_element = _child(element, "BaseURL")
    return base_element is not None and bool((base_element.text or "").strip())


def _merge_template(
    adaptation_template: Optional[etree._Element],
    representation_template: Optional[etree._Element],
) -> Optional[SegmentTemplate]:
    """
    Builds a SegmentTemplate where representation-level attributes override
    adaptation-set-level ones. Missing numbers default to 1 (startNumber,
    timescale) or 0 (duration).
    """
    if adaptation_template is None and representation_template is None:
        return None

    def pick(name: str) -> Optional[str]:
        for element in (representation_template, adaptation_template):
            if element is not None and element.get(name) is not None:
                return element.get(name)
        return None

    def pick_int(name: str, default: int) -> int:
        for element in (representation_template, adaptation_template):
            value = _int_attr(element, name, default)
            if value is not None:
                return value
        return default

    return SegmentTemplate(
        media=pick("media"),
        initialization=pick("initialization"),
        start_number=pick_int("startNumber", 1),
        timescale=pick_int("timescale", 1) or 1,
        duration=pick_int("duration", 0),
    )


def _media_kind(adaptation: etree._Element, rep: etree._Element) -> tuple[bool, bool]:
    mime_type = rep.get("mimeType") or adaptation.get("mimeType") or ""
    content_type = rep.get("contentType") or adaptation.get("contentType") or ""
    is_video = mime_type.startswith("video") or content_type == "video"
    is_audio = mime_type.startswith("audio") or content_type == "audio"
    return is_video, is_audio


def parse_manifest(xml_text: str | bytes, base_url: str) -> list[Representation]:
    """
    Walks Period -> AdaptationSet -> Representation and returns every
    representation, sorted by descending bandwidth.

    Raises:
        ManifestParseError: If the document is not well-formed XML or is not an MPD.
    """
    if isinstance(xml_text, str):
        xml_text = xml_text.encode("utf-8")
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        root = etree.fromstring(xml_text, parser=parser)
    except etree.XMLSyntaxError as e:
        raise ManifestParseError(f"Malformed DASH manifest: {e}") from e

    if root is None or _local_name(root) != "MPD":
        raise ManifestParseError("Document is not a DASH MPD manifest.")

    mpd_duration = _seconds(root.get("mediaPresentationDuration"))
    mpd_base = _resolve_base(root, base_url)
    representations = []

    for period in _children(root, "Period"):
        period_base = _resolve_base(period, mpd_base)
        period_duration = _seconds(period.get("duration")) or mpd_duration

        for adaptation in _children(period, "AdaptationSet"):
            adaptation_base = _resolve_base(adaptation, period_base)
            adaptation_template = _child(adaptation, "SegmentTemplate")

            for rep in _children(adaptation, "Representation"):
                representations.append(
                    _build_representation(
                        rep,
                        adaptation,
                        adaptation_template,
                        adaptation_base,
                        explicit_base=_has_base(rep)
                        or _has_base(adaptation)
                        or _has_base(period)
                        or _has_base(root),
                        manifest_url=base_url,
                        presentation_duration=period_duration,
                    )
                )

    log.debug(f"Parsed {len(representations)} DASH representations.")
    return sorted(representations, key=lambda r: r.bandwidth, reverse=True)


def _build_representation(
    rep: etree._Element,
    adaptation: etree._Element,
    adaptation_template: Optional[etree._Element],
    adaptation_base: str,
    explicit_base: bool,
    manifest_url: str,
    presentation_duration: Optional[float],
) -> Representation:
    bandwidth = _int_attr(rep, "bandwidth", 0) or 0
    width = _int_attr(rep, "width", 0) or _int_attr(adaptation, "width", 0) or 0
    height = _int_attr(rep, "height", 0) or _int_attr(adaptation, "height", 0) or 0
    codecs = rep.get("codecs") or adaptation.get("codecs") or None
    is_video, is_audio = _media_kind(adaptation, rep)
    rep_base = _resolve_base(rep, adaptation_base)

    if is_audio and not is_video:
        label = representation_label(0, bandwidth, codecs, is_audio_only=True)
    else:
        label = representation_label(height, bandwidth, codecs)

    return Representation(
        id=rep.get("id") or "",
        bandwidth=bandwidth,
        url=rep_base if explicit_base else manifest_url,
        segment_template=_merge_template(
            adaptation_template, _child(rep, "SegmentTemplate")
        ),
        resolution=f"{width}x{height}" if width and height else None,
        codecs=codecs,
        is_audio=is_audio,
        is_video=is_video,
        label=label,
        mime_type=rep.get("mimeType") or adaptation.get("mimeType") or None,
        presentation_duration=presentation_duration,
    )


def substitute_template(
    pattern: str, representation: Representation, number: Optional[int] = None
) -> str:
    """
    Expands `$RepresentationID$`, `$Bandwidth$`, `$Number$` (with optional
    `%0Nd` width) and `$$` in a SegmentTemplate attribute.
    """

    def replacer(match: re.Match) -> str:
        identifier, width = match.group(1), match.group(3)
        if identifier == "RepresentationID":
            return representation.id
        if identifier == "Bandwidth":
            value = representation.bandwidth
        elif identifier == "Number" and number is not None:
            value = number
        else:
            return match.group(0)
        return str(value).zfill(int(width)) if width else str(value)

    return _TEMPLATE_IDENTIFIER.sub(replacer, pattern).replace("$$", "$")


def _uses_time_addressing(pattern: str) -> bool:
    return any(
        match.group(1) == "Time" for match in _TEMPLATE_IDENTIFIER.finditer(pattern)
    )


def estimate_segment_count(
    template: SegmentTemplate,
    presentation_duration: Optional[float],
    max_track_duration: float,
) -> int:
    """
    Exact count when the manifest declares its duration, otherwise a ceiling
    derived from the assumed maximum track duration.
    """
    segment_seconds = template.segment_seconds
    if presentation_duration and segment_seconds > 0:
        return max(1, math.ceil(presentation_duration / segment_seconds))
    return math.ceil(max_track_duration / (segment_seconds or DEFAULT_SEGMENT_SECONDS))


def expand_segment_template(
    representation: Representation, max_track_duration: float = 7200
) -> tuple[Optional[str], list[Segment]]:
    """
    Generates the initialization URL and the media segment list of a
    template-addressed representation. URLs are resolved against the
    representation's base URL.
    """
    template = representation.segment_template
    if template is None or not template.media:
        return None, []

    if _uses_time_addressing(template.media):
        log.warning(
            "[yellow]SegmentTimeline ($Time$) templates are not supported.[/yellow]"
        )
        return None, []

    base = representation.url or ""
    init_url = None
    if template.initialization:
        init_url = resolve_url(
            base, substitute_template(template.initialization, representation)
        )

    count = estimate_segment_count(
        template, representation.presentation_duration, max_track_duration
    )
    duration = template.segment_seconds or None
    segments = [
        Segment(
            url=resolve_url(
                base, substitute_template(template.media, representation, number)
            ),
            sequence_index=number,
            duration=duration,
        )
        for number in range(template.start_number, template.start_number + count)
    ]
    return init_url, segments
