"""
Segment download and byte-level assembly.

Each pipeline run gets its own scratch directory. Segments are written there
as ``segment_00042.ts`` so lexicographic order equals index order, then
concatenated into one MPEG-TS file that ffmpeg can read as a single stream.
"""

import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import requests

from console import Console
from errors import AssemblyError, SegmentFetchError
from hls import Manifest, new_session


@dataclass
class FetchedSegment:
    index: int
    local_path: Path
    byte_size: int


@dataclass
class AssembledMedia:
    path: Path
    byte_size: int
    segment_count: int


class ScratchDirectory:
    """Exclusive scratch directory for one run, removed on exit whatever the outcome"""

    def __init__(self, root: Optional[Path] = None, prefix: str = "captions_"):
        self.root = Path(root) if root else None
        self.prefix = prefix
        self.path: Optional[Path] = None

    def __enter__(self) -> Path:
        if self.root:
            self.root.mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.root))
        return self.path

    def __exit__(self, exc_type, exc, tb):
        if self.path is not None:
            shutil.rmtree(self.path, ignore_errors=True)
        return False


def segment_filename(index: int) -> str:
    return f"segment_{index:05d}.ts"


class SegmentFetcher:
    def __init__(
            self,
            session: Optional[requests.Session] = None,
            timeout: int = 60,
            chunk_size: int = 64 * 1024,
            console: Optional[Console] = None,
            progress_every: int = 10
    ):
        self.session = session or new_session()
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.console = console or Console(verbose=False)
        self.progress_every = progress_every

    def fetch_one(self, index: int, uri: str, dest: Path) -> FetchedSegment:
        """Stream one segment to ``dest``; overwrites any earlier attempt"""
        try:
            response = self.session.get(uri, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise SegmentFetchError(index, reason=str(e)) from e

        try:
            if not response.ok:
                raise SegmentFetchError(index, response.status_code)
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
        except requests.RequestException as e:
            raise SegmentFetchError(index, reason=str(e)) from e
        finally:
            response.close()

        return FetchedSegment(index, dest, dest.stat().st_size)

    def fetch(
            self,
            manifest: Manifest,
            indices: Sequence[int],
            scratch_dir: Path,
            skip_failures: bool = False
    ) -> List[FetchedSegment]:
        """Fetch the selected segments in ascending order.

        With ``skip_failures`` a failed segment is logged and left out;
        otherwise the first failure aborts the batch.
        """
        ordered = sorted(set(indices))
        fetched: List[FetchedSegment] = []
        first_error: Optional[SegmentFetchError] = None

        self.console.progress(f"Downloading {len(ordered)} of {len(manifest)} segments...")
        for count, index in enumerate(ordered):
            ref = manifest[index]
            dest = scratch_dir / segment_filename(index)
            try:
                fetched.append(self.fetch_one(index, ref.uri, dest))
            except SegmentFetchError as e:
                if not skip_failures:
                    raise
                first_error = first_error or e
                dest.unlink(missing_ok=True)
                self.console.log(f"Skipping segment {index}: {e}", "WARNING")

            if count % self.progress_every == 0:
                self.console.progress(f"Progress: {count}/{len(ordered)} segments")

        if not fetched and first_error is not None:
            raise first_error

        total_mb = sum(seg.byte_size for seg in fetched) / (1024 * 1024)
        self.console.progress(f"Downloaded {len(fetched)} segments ({total_mb:.1f} MB)")
        return fetched

    def fetch_text_track(self, manifest: Manifest, dest: Path) -> Path:
        """Concatenate the WebVTT segments of a subtitle track into one file"""
        cues = []
        for ref in manifest.segments:
            try:
                response = self.session.get(ref.uri, timeout=self.timeout)
            except requests.RequestException as e:
                raise SegmentFetchError(ref.index, reason=str(e)) from e
            if not response.ok:
                raise SegmentFetchError(ref.index, response.status_code)
            cues.append(strip_webvtt_header(response.text))

        dest.write_text("WEBVTT\n\n" + "\n".join(cue for cue in cues if cue), encoding="utf-8")
        return dest


def strip_webvtt_header(text: str) -> str:
    """Drop the WEBVTT header block of a segment so segments can be joined"""
    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    if not text.startswith("WEBVTT"):
        return text.strip() + "\n" if text.strip() else ""
    _, _, body = text.partition("\n\n")
    return body.strip() + "\n" if body.strip() else ""


class ConcatenatedAssembler:
    def __init__(self, timeout: Optional[float] = None, console: Optional[Console] = None):
        self.timeout = timeout
        self.console = console or Console(verbose=False)

    def assemble(self, sources: Iterable, output_path: Path, delete_sources: bool = False) -> AssembledMedia:
        """Concatenate ordered byte sources (anything with ``index`` and ``local_path``).

        Sources must arrive in strictly ascending index order; a missing or
        empty source stops assembly before anything is handed to extraction.
        """
        sources = list(sources)
        if not sources:
            raise AssemblyError("No segments to assemble")

        previous = None
        for source in sources:
            if previous is not None and source.index <= previous:
                raise AssemblyError(f"Segment {source.index} out of order after {previous}")
            previous = source.index
            path = Path(source.local_path)
            if not path.exists():
                raise AssemblyError(f"Segment {source.index} missing: {path}")
            if path.stat().st_size == 0:
                raise AssemblyError(f"Segment {source.index} is empty: {path}")

        self.console.progress(f"Concatenating {len(sources)} segments...")
        started = time.monotonic()
        expected = 0
        with open(output_path, 'wb') as out:
            for source in sources:
                path = Path(source.local_path)
                expected += path.stat().st_size
                with open(path, 'rb') as f:
                    shutil.copyfileobj(f, out)
                if delete_sources:
                    path.unlink()
                if self.timeout is not None and time.monotonic() - started > self.timeout:
                    raise AssemblyError(f"Concatenation exceeded {self.timeout}s")

        byte_size = output_path.stat().st_size
        if byte_size != expected:
            raise AssemblyError(f"Assembled {byte_size} bytes, expected {expected}")

        self.console.progress(f"Assembled {byte_size / (1024 * 1024):.1f} MB from {len(sources)} segments")
        return AssembledMedia(output_path, byte_size, len(sources))
