"""
Caption extraction.

Swagit recordings carry CEA-608 closed captions inside the H.264 video
stream rather than a separate subtitle track, so the first choice is
ffmpeg's lavfi ``movie=...[out+subcc]`` source which exposes them as a
subtitle stream. The remaining strategies cover recordings that do ship a
real subtitle stream. Strategies run in order and the first output above
the size threshold wins.

External binaries are reached through ``ExternalTool`` so the ordering and
threshold logic can be exercised with a fake tool.
"""

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from console import Console
from errors import AllStrategiesExhausted
from subtitles import analyze_captions


@dataclass
class ToolResult:
    returncode: int
    stderr: str = ""
    timed_out: bool = False
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class ExternalTool:
    """Something that runs a command line and reports how it went"""

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> ToolResult:
        raise NotImplementedError


class SubprocessTool(ExternalTool):
    def __init__(self, executable: str):
        self.executable = executable

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> ToolResult:
        cmd = [self.executable, *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired:
            return ToolResult(returncode=-1, stderr=f"timed out after {timeout}s", timed_out=True)
        except FileNotFoundError:
            return ToolResult(returncode=127, stderr=f"{self.executable} not found")
        return ToolResult(result.returncode, result.stderr or "", stdout=result.stdout or "")


@dataclass
class CaptionArtifact:
    path: Path
    byte_size: int
    last_timestamp_seconds: Optional[float] = None
    strategy: str = ""


# invoke(input_ref, output_path, timeout) -> path of the produced file, or None on failure
StrategyFn = Callable[[str, Path, Optional[float]], Optional[Path]]


@dataclass
class ExtractionStrategy:
    name: str
    invoke: StrategyFn
    last_error: str = field(default="", compare=False)


def partial_path(output_path: Path) -> Path:
    """captions.srt -> .captions.partial.srt in the same directory"""
    return output_path.with_name(f".{output_path.stem}.partial{output_path.suffix}")


def escape_filter_path(path: str) -> str:
    """Escape a path or URL for use as a lavfi movie= argument"""
    return path.replace("\\", "\\\\\\\\").replace("'", "\\\\\\'").replace(":", "\\\\:")


def ffmpeg_strategy(name: str, tool: ExternalTool, build_args: Callable[[str, Path], List[str]]) -> ExtractionStrategy:
    strategy = ExtractionStrategy(name, invoke=lambda *_: None)

    def invoke(input_ref: str, output_path: Path, timeout: Optional[float]) -> Optional[Path]:
        result = tool.run(build_args(input_ref, output_path), timeout=timeout)
        if not result.ok:
            strategy.last_error = summarize_result(result)
            return None
        return output_path

    strategy.invoke = invoke
    return strategy


def ytdlp_strategy(name: str, tool: ExternalTool, languages: str = "en.*") -> ExtractionStrategy:
    """Let yt-dlp pull the caption track itself and convert it to SRT"""
    strategy = ExtractionStrategy(name, invoke=lambda *_: None)

    def invoke(input_ref: str, output_path: Path, timeout: Optional[float]) -> Optional[Path]:
        stem = output_path.with_suffix("")
        for stale in output_path.parent.glob(f"{stem.name}.*.srt"):
            stale.unlink()
        result = tool.run([
            "--write-subs",
            "--write-auto-subs",
            "--sub-langs", languages,
            "--convert-subs", "srt",
            "--skip-download",
            "-o", str(stem),
            input_ref
        ], timeout=timeout)
        if not result.ok:
            strategy.last_error = summarize_result(result)
            return None

        # yt-dlp names the file <stem>.<lang>.srt
        produced = sorted(output_path.parent.glob(f"{stem.name}.*.srt"))
        if not produced:
            strategy.last_error = "no subtitle file written"
            return None
        os.replace(produced[0], output_path)
        for extra in produced[1:]:
            extra.unlink()
        return output_path

    strategy.invoke = invoke
    return strategy


def summarize_result(result: ToolResult) -> str:
    if result.timed_out:
        return result.stderr or "timed out"
    tail = result.stderr.strip().splitlines()[-1:] if result.stderr else []
    return f"exit {result.returncode}" + (f": {tail[0]}" if tail else "")


def media_strategies(ffmpeg: ExternalTool) -> List[ExtractionStrategy]:
    """Strategies for a locally assembled MPEG-TS file"""
    return [
        ffmpeg_strategy(
            "closed-caption demux to SRT", ffmpeg,
            lambda src, out: ["-y", "-f", "lavfi", "-i", f"movie={escape_filter_path(src)}[out+subcc]",
                              "-map", "0:1", "-c:s", "srt", str(out)]
        ),
        ffmpeg_strategy(
            "subtitle-stream remux", ffmpeg,
            lambda src, out: ["-y", "-i", src, "-map", "0:s:0", "-c:s", "srt", str(out)]
        ),
        ffmpeg_strategy(
            "generic subtitle transcode", ffmpeg,
            lambda src, out: ["-y", "-i", src, "-c:s", "srt", str(out)]
        ),
    ]


def stream_strategies(ffmpeg: ExternalTool, ytdlp: Optional[ExternalTool] = None) -> List[ExtractionStrategy]:
    """Strategies that read the HLS manifest URL directly, without downloading segments"""
    strategies = [
        ffmpeg_strategy(
            "stream subtitle-stream remux", ffmpeg,
            lambda url, out: ["-y", "-i", url, "-map", "0:s:0", "-c:s", "srt", str(out)]
        ),
        ffmpeg_strategy(
            "stream closed-caption demux", ffmpeg,
            lambda url, out: ["-y", "-f", "lavfi", "-i", f"movie={escape_filter_path(url)}[out+subcc]",
                              "-map", "0:1", "-c:s", "srt", str(out)]
        ),
        ffmpeg_strategy(
            "stream subtitle transcode", ffmpeg,
            lambda url, out: ["-y", "-i", url, "-vn", "-an", "-c:s", "srt", str(out)]
        ),
    ]
    if ytdlp is not None:
        strategies.append(ytdlp_strategy("yt-dlp subtitle download", ytdlp))
    return strategies


class CaptionExtractor:
    def __init__(
            self,
            strategies: Sequence[ExtractionStrategy],
            min_bytes: int,
            timeout: Optional[float] = None,
            console: Optional[Console] = None
    ):
        self.strategies = list(strategies)
        self.min_bytes = min_bytes
        self.timeout = timeout
        self.console = console or Console(verbose=False)

    def extract(self, input_ref: str, output_path: Path) -> CaptionArtifact:
        """Run strategies in order and return the first valid caption file.

        Strategies write to a partial file beside ``output_path``; it replaces
        ``output_path`` only once it passes the size check, so a failed run
        never leaves a partial file and never removes an earlier result.
        """
        attempts: List[Tuple[str, str]] = []
        work_path = partial_path(output_path)

        for i, strategy in enumerate(self.strategies, 1):
            self.console.progress(f"Trying extraction method {i} ({strategy.name})...")
            work_path.unlink(missing_ok=True)
            strategy.last_error = ""

            try:
                produced = strategy.invoke(input_ref, work_path, self.timeout)
            except OSError as e:
                produced = None
                strategy.last_error = str(e)

            if produced is None:
                work_path.unlink(missing_ok=True)
                reason = strategy.last_error or "invocation failed"
                self.console.log(f"Method {i} ({strategy.name}) failed: {reason}", "WARNING")
                attempts.append((strategy.name, reason))
                continue

            produced = Path(produced)
            if not produced.exists():
                attempts.append((strategy.name, "no output file"))
                self.console.log(f"Method {i} ({strategy.name}) produced no output", "WARNING")
                continue

            size = produced.stat().st_size
            if size <= self.min_bytes:
                attempts.append((strategy.name, f"output too small ({size} bytes)"))
                self.console.log(
                    f"Method {i} ({strategy.name}) produced only {size} bytes "
                    f"(need > {self.min_bytes})", "WARNING"
                )
                produced.unlink()
                continue

            os.replace(produced, output_path)
            timing = analyze_captions(output_path)
            self.console.progress(f"Extracted {size / 1024:.0f}KB with {strategy.name}")
            return CaptionArtifact(
                path=output_path,
                byte_size=size,
                last_timestamp_seconds=timing.last_timestamp_seconds if timing else None,
                strategy=strategy.name,
            )

        raise AllStrategiesExhausted(attempts)
