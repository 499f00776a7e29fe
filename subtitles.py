import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

# SRT uses "00:00:11,512", WebVTT "00:00:11.512" or "00:11.512"
TIMESTAMP = r'(?:(\d+):)?(\d{2}):(\d{2})[,.](\d{3})'
CUE_TIMING_PATTERN = re.compile(TIMESTAMP + r'\s*-->\s*' + TIMESTAMP)


@dataclass
class CaptionTiming:
    first_timestamp_seconds: float
    last_timestamp_seconds: float
    cue_count: int
    line_count: int
    sample_text: str = ""

    @property
    def duration(self) -> str:
        return format_duration(self.last_timestamp_seconds)


def _seconds(hours: Optional[str], minutes: str, seconds: str, millis: str) -> float:
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def format_duration(seconds: float) -> str:
    """Format seconds as "2h 17m 23s", dropping zero leading units ("17m 3s", "42s")"""
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def format_timestamp(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


def analyze_text(content: str) -> Optional[CaptionTiming]:
    """Cue statistics for caption text, or None when it carries no cue timings"""
    lines = [line.strip() for line in content.splitlines() if line.strip()]

    timings = []
    text_lines: List[str] = []
    for line in lines:
        match = CUE_TIMING_PATTERN.search(line)
        if match:
            groups = match.groups()
            timings.append((_seconds(*groups[:4]), _seconds(*groups[4:])))
        elif not line.isdigit() and not line.startswith(("WEBVTT", "NOTE", "X-TIMESTAMP-MAP")):
            text_lines.append(line)

    if not timings:
        return None

    return CaptionTiming(
        first_timestamp_seconds=timings[0][0],
        last_timestamp_seconds=timings[-1][1],
        cue_count=len(timings),
        line_count=len(lines),
        sample_text=" | ".join(text_lines[-3:]),
    )


def analyze_captions(path: Path) -> Optional[CaptionTiming]:
    """Parse an SRT/WebVTT file; None if it has no timing markers"""
    content = Path(path).read_text(encoding="utf-8", errors="replace")
    return analyze_text(content)
