"""Domain models for tubescript."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

UNKNOWN_START = -1.0


class CaptionTrack(BaseModel):
    """One language variant of a video's captions."""

    model_config = ConfigDict(frozen=True)

    language_code: str
    source_url: str
    name: str = ""  # human label from the platform, e.g. "English (auto-generated)"


class CaptionSource(BaseModel):
    """Everything the platform handshake returns for one video."""

    video_id: str
    title: str
    channel_name: str | None = None
    tracks: list[CaptionTrack] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)  # raw videoDetails


class TranscriptSegment(BaseModel):
    """A single caption cue after parsing."""

    model_config = ConfigDict(frozen=True)

    text: str
    start: float = UNKNOWN_START  # seconds, -1 when the cue carried no timing

    @computed_field
    @property
    def has_timing(self) -> bool:
        return self.start >= 0


class TranscriptResult(BaseModel):
    """Final output of one pipeline run."""

    transcript: str
    title: str
    summary: str | None = None
    channel_name: str | None = None
    metadata: dict[str, Any] | None = None
    video_id: str | None = None
    language_code: str | None = None

    @computed_field
    @property
    def url(self) -> str | None:
        """Canonical watch URL derived from video_id."""
        if self.video_id is None:
            return None
        return f"https://www.youtube.com/watch?v={self.video_id}"


class ProviderKind(str, Enum):
    """Variant tag used to pick a provider adapter."""

    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"
    CUSTOM = "custom"


class LLMProviderConfig(BaseModel):
    """Caller-supplied provider settings. Read-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    kind: ProviderKind = ProviderKind.CUSTOM
    endpoint: str = ""  # built-in kinds fall back to their public endpoint
    api_key: str = ""
    model: str = ""
    timeout_minutes: float = 1.0
    extra_headers: dict[str, str] = Field(default_factory=dict)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class LLMResponse(BaseModel):
    """Transcript and optional summary after LLM post-processing."""

    transcript: str
    summary: str | None = None


class RetryDecision(str, Enum):
    """Answer of the decision collaborator on a recoverable failure."""

    RETRY = "retry"
    DECLINE_USE_RAW = "decline_use_raw"
    CANCEL = "cancel"


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"


class RetryContext(BaseModel):
    """What the decision collaborator is told about a failure."""

    provider_name: str
    reason: FailureReason
    error_message: str
    retry_after: str | None = None


class FormattingOptions(BaseModel):
    """How segments are rendered into text."""

    model_config = ConfigDict(frozen=True)

    include_timestamps: bool = True
    timestamp_frequency: int = Field(default=0, ge=0)  # 0 = one timestamp per sentence
    local_video_directory: str = ""  # empty = link to the watch URL
    local_video_extension: str = "mp4"
    include_timestamps_in_llm: bool = False


class PromptOptions(BaseModel):
    """Knobs for building the LLM prompt."""

    model_config = ConfigDict(frozen=True)

    base_prompt: str | None = None  # None = DEFAULT_PROMPT
    preserve_timestamps: bool = False
    force_language: bool = False
