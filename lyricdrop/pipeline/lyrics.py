"""
Lyrics text helpers: the Gemini formatting prompt, and parsing and rendering
of the timestamped lines Gemini returns for karaoke-style playback.
"""

import re
from typing import List, Optional, Sequence

from .models import LyricLine

# [MM:SS], [MM:SS.mmm] or [HH:MM:SS], followed by the line text
TIMESTAMP_PATTERN = re.compile(r"^\[(\d{2,}):(\d{2})(?::(\d{2}))?(?:\.(\d{1,3}))?\]\s*(.*)")


def build_format_prompt(transcript: str, language: str = "en") -> str:
    """Build the prompt that turns a raw transcript into formatted song lyrics."""
    return f"""You are formatting the transcription of a song into lyrics.
The song is in language "{language}". Split the text into lines and stanzas the way
lyrics are printed, fix obvious transcription mistakes, and keep the original wording
otherwise. Do not translate. Return only the lyrics, with no commentary.

Transcription:
{transcript.strip()}"""


def parse_timed_lyrics(text: str) -> List[LyricLine]:
    """
    Parse timestamped lyric lines.

    Lines without a leading timestamp are skipped.

    Args:
        text: Lyrics with one "[MM:SS.mmm] text" entry per line

    Returns:
        LyricLine list in input order
    """
    lines = []
    for raw in text.splitlines():
        match = TIMESTAMP_PATTERN.match(raw.strip())
        if not match:
            continue

        first, second, third, millis, content = match.groups()
        if third is not None:
            hours, minutes, seconds = int(first), int(second), int(third)
        else:
            hours, minutes, seconds = 0, int(first), int(second)
        fraction = int(millis.ljust(3, "0")) / 1000 if millis else 0.0

        lines.append(LyricLine(time=hours * 3600 + minutes * 60 + seconds + fraction, text=content))
    return lines


def lyric_index_at(lines: Sequence[LyricLine], seconds: float) -> int:
    """Index of the last line starting at or before `seconds`, or -1 if none has started."""
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].time <= seconds:
            return index
    return -1


def format_timestamp(seconds: float) -> str:
    """Render seconds as [MM:SS.mmm], or [HH:MM:SS.mmm] past the hour."""
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3600 * 1000)
    minutes, millis = divmod(millis, 60 * 1000)
    secs, millis = divmod(millis, 1000)
    if hours:
        return f"[{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}]"
    return f"[{minutes:02d}:{secs:02d}.{millis:03d}]"


def render_timed_lyrics(lines: Sequence[LyricLine], at: Optional[float] = None) -> str:
    """
    Render parsed lyric lines one per line, with normalized timestamps.

    Args:
        lines: Parsed lyric lines
        at: Playback position in seconds; the line being sung is marked with ">"
    """
    current = lyric_index_at(lines, at) if at is not None else -1
    rendered = []
    for index, line in enumerate(lines):
        marker = "> " if index == current else "  "
        rendered.append(f"{marker}{format_timestamp(line.time)} {line.text}".rstrip())
    return "\n".join(rendered)
