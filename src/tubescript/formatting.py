"""Render transcript segments into text, optionally with timestamp links."""

import re

from tubescript.ingestion.youtube import watch_url
from tubescript.models import FormattingOptions, TranscriptSegment

_SENTENCE_BREAK = re.compile(r"([.!?])\s+([A-Z])")
_SENTENCE_END = re.compile(r"[.!?][\"')\]]*$")
_SENTENCE_SPLIT = re.compile(r"(?:(?<=[.!?])|(?<=[.!?][\"')\]]))\s+")


def format_clock(seconds: float) -> str:
    """Format seconds as ``M:SS`` below one hour, ``H:MM:SS`` from one hour up."""
    total = int(max(seconds, 0))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def timestamp_url(
    seconds: float,
    video_id: str,
    video_url: str | None = None,
    local_video_directory: str = "",
    extension: str = "mp4",
) -> str:
    """Link target for a timestamp: the watch URL, or a local file if a directory is set."""
    offset = int(max(seconds, 0))
    directory = (local_video_directory or "").strip()
    if directory:
        directory = directory.replace("\\", "/").strip("/")
        return f"file:///{directory}/{video_id}.{extension}?t={offset}"

    url = video_url or watch_url(video_id)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}t={offset}s"


def format_timestamp(
    seconds: float,
    video_id: str,
    video_url: str | None = None,
    local_video_directory: str = "",
    extension: str = "mp4",
) -> str:
    """Markdown link like ``[5:30](https://www.youtube.com/watch?v=...&t=330s)``."""
    url = timestamp_url(seconds, video_id, video_url, local_video_directory, extension)
    return f"[{format_clock(seconds)}]({url})"


def format_plain(segments: list[TranscriptSegment]) -> str:
    """Join segments and break paragraphs after sentence ends."""
    text = " ".join(s.text for s in segments if s.text)
    return _SENTENCE_BREAK.sub(r"\1\n\n\2", text)


def format_transcript(
    segments: list[TranscriptSegment],
    video_id: str,
    options: FormattingOptions | None = None,
    video_url: str | None = None,
) -> str:
    """Render segments according to ``options``.

    With timestamps off the result is plain paragraphed text. With a
    frequency of 0 every sentence gets its own timestamped line;
    otherwise a new line starts once at least ``timestamp_frequency``
    seconds have passed since the last emitted timestamp.
    """
    options = options or FormattingOptions()
    if not options.include_timestamps:
        return format_plain(segments)

    def stamp(seconds: float) -> str:
        return format_timestamp(
            seconds,
            video_id,
            video_url,
            options.local_video_directory,
            options.local_video_extension,
        )

    if options.timestamp_frequency == 0:
        lines = _lines_per_sentence(segments, stamp)
    else:
        lines = _lines_per_interval(segments, stamp, options.timestamp_frequency)
    return "\n\n".join(lines)


def _lines_per_sentence(segments, stamp) -> list[str]:
    lines: list[str] = []
    current: list[str] = []
    for seg in segments:
        # A cue may hold several sentences; each one inherits the cue's start
        for sentence in _SENTENCE_SPLIT.split(seg.text):
            if not sentence:
                continue
            if not current and seg.has_timing:
                current.append(stamp(seg.start))
            current.append(sentence)
            if _SENTENCE_END.search(sentence):
                lines.append(" ".join(current))
                current = []
    if current:
        lines.append(" ".join(current))
    return lines


def _lines_per_interval(segments, stamp, frequency: int) -> list[str]:
    lines: list[str] = []
    current: list[str] = []
    last_emitted: float | None = None
    for seg in segments:
        due = seg.has_timing and (last_emitted is None or seg.start - last_emitted >= frequency)
        if due:
            if current:
                lines.append(" ".join(current))
            current = [stamp(seg.start)]
            last_emitted = seg.start
        current.append(seg.text)
    if current:
        lines.append(" ".join(current))
    return lines
