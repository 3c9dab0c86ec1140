"""Extract summary and transcript sections from free-form model replies.

Models do not always follow the requested two-section format, so the
reply is run through an ordered list of strategies, each a pure
function returning ParsedSections or None. Whatever fires, the result
is re-rendered into the canonical layout, so a requested summary always
comes back as a populated "## Summary" section followed by a populated
"## Transcript" section.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from tubescript.models import LLMResponse

logger = logging.getLogger(__name__)

SUMMARY_HEADER = "## Summary"
TRANSCRIPT_HEADER = "## Transcript"
SUMMARY_PLACEHOLDER = "Summary could not be generated."
TRANSCRIPT_PLACEHOLDER = "Transcript not available in model response."

_FIRST_PARAGRAPH_LIMIT = 500
_SUMMARY_CHAR_LIMIT = 300

_STRICT = re.compile(r"##\s+Summary[ \t]*\n\n(.*?)(?=\n##\s+Transcript\b|\Z)", re.S)
_RELAXED = re.compile(r"##\s+Summary[ \t]*\n(.*?)(?=\n##\s+Transcript\b|\Z)", re.S)
_LOOSE = re.compile(
    r"^(?:#{1,6}[ \t]*)?\**Summary\b\**[ \t]*[:\-–]?\**[ \t]*\n?"
    r"(.*?)(?=\n(?:#{1,6}[ \t]*)?\**Transcript\b|\Z)",
    re.I | re.S | re.M,
)
_TRANSCRIPT_LABEL = re.compile(
    r"^(?:#{1,6}[ \t]*)?\**Transcript\b\**[ \t]*[:\-–]?\**[ \t]*", re.I | re.M
)
_SUMMARY_HEADING = re.compile(r"^#{1,6}[ \t]*Summary\b[^\n]*", re.I | re.M)
_TRANSCRIPT_HEADING = re.compile(r"^#{1,6}[ \t]*Transcript\b[^\n]*", re.I | re.M)
_FENCE = re.compile(r"\A```[\w-]*[ \t]*\n(.*?)\n?```\Z", re.S)
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")


@dataclass(frozen=True)
class ParsedSections:
    summary: str
    transcript: str


Strategy = Callable[[str], ParsedSections | None]


def _sections_after(text: str, match: re.Match) -> ParsedSections | None:
    summary = match.group(1).strip()
    if not summary:
        return None
    label = _TRANSCRIPT_LABEL.search(text, match.end())
    transcript = text[label.end():] if label else text[match.end():]
    transcript = transcript.strip()
    if not transcript:
        return None
    return ParsedSections(summary, transcript)


def strict_headings(text: str) -> ParsedSections | None:
    """``## Summary`` + blank line, up to ``## Transcript``."""
    match = _STRICT.search(text)
    return _sections_after(text, match) if match else None


def relaxed_headings(text: str) -> ParsedSections | None:
    """``## Summary`` + single newline, up to ``## Transcript``."""
    match = _RELAXED.search(text)
    return _sections_after(text, match) if match else None


def loose_label(text: str) -> ParsedSections | None:
    """A line starting with "Summary", with or without ``#`` and ``:``/``-``."""
    match = _LOOSE.search(text)
    return _sections_after(text, match) if match else None


def split_on_headings(text: str) -> ParsedSections | None:
    """Both headings present in any order and case: cut at their positions."""
    summary_heading = _SUMMARY_HEADING.search(text)
    transcript_heading = _TRANSCRIPT_HEADING.search(text)
    if not summary_heading or not transcript_heading:
        return None

    if summary_heading.start() < transcript_heading.start():
        summary = text[summary_heading.end():transcript_heading.start()]
        transcript = text[transcript_heading.end():]
    else:
        transcript = text[transcript_heading.end():summary_heading.start()]
        summary = text[summary_heading.end():]

    summary, transcript = summary.strip(), transcript.strip()
    if not summary or not transcript:
        return None
    return ParsedSections(summary, transcript)


def first_paragraph(text: str) -> ParsedSections | None:
    """No usable headings: the opening paragraph becomes the summary."""
    body = _TRANSCRIPT_HEADING.sub("", _SUMMARY_HEADING.sub("", text)).strip()
    if not body:
        return None

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(body) if p.strip()]
    summary = paragraphs[0]
    if len(summary) > _FIRST_PARAGRAPH_LIMIT:
        summary = summary.splitlines()[0].strip()
    if len(summary) > _FIRST_PARAGRAPH_LIMIT:
        summary = summary[:_SUMMARY_CHAR_LIMIT].rstrip()

    remainder = body[body.find(summary) + len(summary):].strip()
    return ParsedSections(summary, remainder or body)


STRATEGIES: list[Strategy] = [
    strict_headings,
    relaxed_headings,
    loose_label,
    split_on_headings,
    first_paragraph,
]


def render_sections(summary: str, transcript: str) -> str:
    return f"{SUMMARY_HEADER}\n\n{summary}\n\n{TRANSCRIPT_HEADER}\n\n{transcript}"


def parse_llm_response(raw: str, want_summary: bool) -> LLMResponse:
    """Turn a model reply into an LLMResponse.

    Without a summary request the trimmed reply is the transcript. With
    one, the first strategy that succeeds wins and the output always
    carries both sections, falling back to placeholders.
    """
    text = (raw or "").strip()
    if not want_summary:
        return LLMResponse(transcript=text, summary=None)

    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    sections = None
    for strategy in STRATEGIES:
        sections = strategy(text)
        if sections is not None:
            logger.debug("Model reply parsed with %s", strategy.__name__)
            break

    if strategy is not strict_headings:
        logger.warning("LLM response did not follow the expected Summary/Transcript format")

    summary = sections.summary if sections and sections.summary else SUMMARY_PLACEHOLDER
    transcript = sections.transcript if sections and sections.transcript else TRANSCRIPT_PLACEHOLDER
    if summary == SUMMARY_PLACEHOLDER:
        logger.warning("Summary was requested but not found in the LLM response")

    return LLMResponse(transcript=render_sections(summary, transcript), summary=summary)
