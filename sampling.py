"""
Segment selection policies.

A full board meeting is 6,000-8,000 segments (~4 GB). The named levels
trade coverage for download size: stride controls how densely the meeting
is sampled, the cap limits how many segments are actually downloaded.
Stride is always applied first, then the cap.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from errors import EmptySelection
from hls import Manifest


@dataclass(frozen=True)
class All:
    def select(self, indices: Sequence[int]) -> List[int]:
        return list(indices)


@dataclass(frozen=True)
class Stride:
    n: int

    def __post_init__(self):
        if self.n < 1:
            raise ValueError(f"Stride must be >= 1, got {self.n}")

    def select(self, indices: Sequence[int]) -> List[int]:
        return list(indices[::self.n])


@dataclass(frozen=True)
class Cap:
    max_count: int

    def __post_init__(self):
        if self.max_count < 1:
            raise ValueError(f"Cap must be >= 1, got {self.max_count}")

    def select(self, indices: Sequence[int]) -> List[int]:
        return list(indices[:self.max_count])


SamplingPolicy = Union[All, Stride, Cap]


def sample(manifest: Manifest, policy: SamplingPolicy) -> List[int]:
    """Ascending segment indices chosen by ``policy``; index 0 is always included"""
    selected = policy.select(range(len(manifest)))
    if not selected:
        raise EmptySelection(f"{policy!r} selected no segments from {len(manifest)}")
    return selected


@dataclass(frozen=True)
class SamplingLevel:
    name: str
    description: str
    stride: int
    max_segments: int  # 0 = no limit
    min_caption_bytes: int
    skip_failed_segments: bool = True

    @property
    def policies(self) -> List[SamplingPolicy]:
        policies: List[SamplingPolicy] = [Stride(self.stride) if self.stride > 1 else All()]
        if self.max_segments:
            policies.append(Cap(self.max_segments))
        return policies


LEVELS: Dict[str, SamplingLevel] = {
    "fast": SamplingLevel(
        name="fast",
        description="Sample every 50th segment, at most 200 (~80MB per meeting)",
        stride=50,
        max_segments=200,
        min_caption_bytes=1_000,
    ),
    "balanced": SamplingLevel(
        name="balanced",
        description="Sample every 20th segment, at most 500 (~200MB per meeting)",
        stride=20,
        max_segments=500,
        min_caption_bytes=5_000,
    ),
    "thorough": SamplingLevel(
        name="thorough",
        description="Sample every 10th segment, at most 1000 (~400MB per meeting)",
        stride=10,
        max_segments=1000,
        min_caption_bytes=10_000,
    ),
    "complete": SamplingLevel(
        name="complete",
        description="All segments (~4GB and ~45 minutes per meeting)",
        stride=1,
        max_segments=0,
        min_caption_bytes=50_000,
        skip_failed_segments=False,
    ),
}


def custom_level(
        base: SamplingLevel,
        stride: Optional[int] = None,
        cap: Optional[int] = None,
        min_bytes: Optional[int] = None
) -> SamplingLevel:
    """Copy of ``base`` with explicit stride/cap/threshold overrides (cap 0 removes the limit)"""
    if stride is not None and stride < 1:
        raise ValueError(f"Stride must be >= 1, got {stride}")
    if cap is not None and cap < 0:
        raise ValueError(f"Cap must be >= 0, got {cap}")
    return SamplingLevel(
        name=base.name if stride is None and cap is None else "custom",
        description=base.description,
        stride=base.stride if stride is None else stride,
        max_segments=base.max_segments if cap is None else cap,
        min_caption_bytes=base.min_caption_bytes if min_bytes is None else min_bytes,
        skip_failed_segments=base.skip_failed_segments,
    )


def sample_for_level(manifest: Manifest, level: SamplingLevel) -> List[int]:
    """Apply the level's stride, then its cap, to the manifest's indices"""
    selected: List[int] = list(range(len(manifest)))
    for policy in level.policies:
        selected = policy.select(selected)
    if not selected:
        raise EmptySelection(f"Level '{level.name}' selected no segments from {len(manifest)}")
    return selected
