"""Caption document parsing into timestamped segments."""

import html
import logging
import xml.etree.ElementTree as ET

from tubescript.errors import NoTranscriptContentError, ParseError
from tubescript.models import UNKNOWN_START, TranscriptSegment

logger = logging.getLogger(__name__)

# Cue element names seen across caption formats, most common first
CUE_TAGS = ("text", "transcript", "p")


def decode_html_entities(text: str) -> str:
    """Decode HTML entities left in cue text after XML parsing.

    Caption documents often double-encode, so ``&amp;#39;`` survives
    the XML parser as ``&#39;`` and needs a second pass.
    """
    return html.unescape(text)


def parse_caption_xml(document: str) -> list[TranscriptSegment]:
    """Parse a caption document into ordered segments.

    Tries each of CUE_TAGS until one yields segments, then falls back
    to every leaf element in the document.

    Raises:
        ParseError: If the document is not well-formed markup.
        NoTranscriptContentError: If no text could be recovered.
    """
    if not document or not document.strip():
        raise NoTranscriptContentError(
            "Transcript URL returned empty response. The video may not have captions available."
        )

    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        logger.debug("Unparseable caption document: %s", document[:1000])
        raise ParseError(
            "Failed to parse transcript XML. The transcript format may have changed."
        ) from e

    for tag in CUE_TAGS:
        elements = [el for el in root.iter() if _local_name(el.tag) == tag]
        segments = _segments_from(elements)
        if segments:
            logger.debug("Parsed %d segments from <%s> cues", len(segments), tag)
            return segments

    leaves = [el for el in root.iter() if len(el) == 0]
    segments = _segments_from(leaves)
    if segments:
        logger.debug("Parsed %d segments from leaf elements", len(segments))
        return segments

    logger.debug("Caption document without text: %s", document[:500])
    raise NoTranscriptContentError(
        "No transcript content found. The video may not have captions, or the format is unsupported."
    )


def _segments_from(elements: list[ET.Element]) -> list[TranscriptSegment]:
    segments = []
    for el in elements:
        text = _cue_text(el)
        if text:
            segments.append(TranscriptSegment(text=text, start=_cue_start(el)))
    return segments


def _cue_text(el: ET.Element) -> str:
    text = "".join(el.itertext())
    if not text.strip() and len(el):
        text = "".join(el[0].itertext())
    return decode_html_entities(text).strip()


def _cue_start(el: ET.Element) -> float:
    start = el.get("start")
    if start is not None:
        try:
            return float(start)
        except ValueError:
            return UNKNOWN_START

    # format 3 documents carry milliseconds in "t"
    millis = el.get("t")
    if millis is not None:
        try:
            return float(millis) / 1000.0
        except ValueError:
            return UNKNOWN_START
    return UNKNOWN_START


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""  # comments and processing instructions
    return tag.rsplit("}", 1)[-1]
