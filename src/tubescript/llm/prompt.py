"""Prompt construction for transcript cleanup and summarization."""

DEFAULT_PROMPT = """Please process the following YouTube video transcript. Your task is to:

1. Create an accurate and complete transcription with complete sentences
2. Remove all self-promotion, calls to action, and promotional content (e.g., "like and subscribe", "check out my channel", "visit my website", etc.)
3. Maintain the original meaning and context
4. Ensure proper grammar and sentence structure
5. Keep the content focused on the actual video content

Return only the cleaned transcript without any additional commentary or explanation."""

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
    "hi": "Hindi",
    "nl": "Dutch",
    "pl": "Polish",
    "tr": "Turkish",
    "no": "Norwegian",
    "sv": "Swedish",
    "da": "Danish",
    "fi": "Finnish",
    "cs": "Czech",
    "hu": "Hungarian",
    "ro": "Romanian",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
    "th": "Thai",
    "id": "Indonesian",
    "ms": "Malay",
    "he": "Hebrew",
    "el": "Greek",
    "bg": "Bulgarian",
    "hr": "Croatian",
    "sk": "Slovak",
    "sl": "Slovenian",
}


def language_name(code: str) -> str:
    """English name for a language code; unknown codes come back upper-cased."""
    return LANGUAGE_NAMES.get(code.lower(), code.upper())


def processing_status(provider_name: str) -> str:
    return f"Processing transcript with {provider_name} (this may take a moment or two)..."


def build_prompt(
    base_prompt: str | None,
    transcript: str,
    want_summary: bool,
    preserve_timestamps: bool = False,
    language_code: str | None = None,
) -> str:
    """Assemble the single user message sent to every provider.

    ``language_code`` adds the language lock; pass None to leave the
    reply language up to the model.
    """
    prompt = base_prompt or DEFAULT_PROMPT

    if want_summary:
        prompt += (
            "\n\nIMPORTANT: You must provide a concise summary (2-3 sentences) of the video content, "
            "focusing on the main topics, key points, and overall message."
            "\n\nYou MUST format your response EXACTLY as follows:\n"
            "\n## Summary\n\n[Your 2-3 sentence summary here]\n\n## Transcript\n\n[Your processed transcript here]\n"
            '\nDo NOT include any other text before or after these sections. Start directly with "## Summary".'
        )
    else:
        prompt += (
            "\n\nPlease format your response as follows:\n"
            '- Start with a "## Transcript" markdown header followed by the processed transcript\n'
        )

    if preserve_timestamps:
        prompt += (
            "\n\nIMPORTANT: The transcript contains timestamp links in the format [MM:SS](url). "
            "You MUST preserve these timestamp links exactly as they appear in the original transcript. "
            "Do not remove, modify, or reformat them."
        )

    if language_code and language_code.strip():
        code = language_code.strip()
        name = language_name(code)
        prompt += (
            f"\n\nCRITICAL LANGUAGE REQUIREMENT: The transcript you are processing is in {name} "
            f"(language code: {code.upper()}). You MUST output your processed transcript and summary "
            f"(if requested) in the SAME LANGUAGE ({name}). Do not translate or convert the content to "
            "any other language. Maintain the original language throughout your entire response."
        )

    prompt += f"\nTranscript:\n{transcript}"
    return prompt
