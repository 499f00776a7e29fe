"""Error kinds raised by the caption pipeline.

Every error carries a ``kind`` (stable name surfaced in reports) and a
``retryable`` flag so batch runners can decide between skipping a meeting
and trying it again later.
"""

from typing import List, Optional, Tuple


class CaptionPipelineError(Exception):
    kind = "pipeline_error"
    retryable = False


class NetworkError(CaptionPipelineError):
    """HTTP failure fetching a manifest or page"""
    kind = "network_error"
    retryable = True

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        detail = f"HTTP {status}" if status is not None else (reason or "request failed")
        super().__init__(f"Failed {url}: {detail}")


class NoTracksFound(CaptionPipelineError):
    kind = "no_tracks_found"

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"No subtitle tracks declared in {url}")


class NoVariantsFound(CaptionPipelineError):
    kind = "no_variants_found"

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"No playable variant or segments in {url}")


class SegmentFetchError(CaptionPipelineError):
    kind = "segment_fetch_error"
    retryable = True

    def __init__(self, index: int, status: Optional[int] = None, reason: str = ""):
        self.index = index
        self.status = status
        detail = f"HTTP {status}" if status is not None else (reason or "stream error")
        super().__init__(f"Segment {index} failed: {detail}")


class AssemblyError(CaptionPipelineError):
    kind = "assembly_error"


class AllStrategiesExhausted(CaptionPipelineError):
    kind = "all_strategies_exhausted"

    def __init__(self, attempts: List[Tuple[str, str]]):
        # (strategy name, failure reason) in the order they were tried
        self.attempts = list(attempts)
        tried = "; ".join(f"{name}: {reason}" for name, reason in self.attempts) or "no strategies configured"
        super().__init__(f"All caption extraction methods failed ({tried})")


class EmptySelection(CaptionPipelineError):
    kind = "empty_selection"

    def __init__(self, message: str = "Sampling policy selected no segments"):
        super().__init__(message)
