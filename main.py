#!/usr/bin/env python3
"""
MCPS Meeting Caption Pipeline
Finds board meeting recordings on Swagit, samples their HLS video segments
and extracts the embedded closed captions to SRT.

Usage:
    python main.py                                   # Newest 10 meetings, balanced sampling
    python main.py 346546 346547                     # Specific meetings
    python main.py --max 25 --level fast             # Faster, sparser sampling
    python main.py --manifest URL --meeting-id 346546
    python main.py --source youtube --max 5          # Meetings from the MCPS YouTube channel

Requirements:
    pip install requests beautifulsoup4 lxml python-dotenv pdfplumber pytesseract pdf2image

    System: ffmpeg must be installed (yt-dlp optional)
"""

import os
import sys
import json
import time
import shutil
import argparse
from dataclasses import dataclass
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from dotenv import load_dotenv

from agendas import download_agenda
from captions import (
    CaptionArtifact,
    CaptionExtractor,
    ExternalTool,
    SubprocessTool,
    media_strategies,
    stream_strategies,
    ytdlp_strategy,
)
from console import Console
from errors import AllStrategiesExhausted, CaptionPipelineError
from hls import Manifest, ManifestResolver, new_session
from meetings import (
    DEFAULT_BASE_URL,
    DEFAULT_VIEW_ID,
    MeetingRecord,
    SwagitScraper,
    meeting_dir_name,
    sanitize_filename,
    write_metadata,
)
from progress_store import JsonProgressStore, ProgressStore
from sampling import LEVELS, SamplingLevel, custom_level, sample_for_level
from segments import ConcatenatedAssembler, ScratchDirectory, SegmentFetcher
from subtitles import analyze_captions, format_duration
from youtube import CHANNEL_URL, YouTubeChannel, is_youtube_url

# Load environment variables from .env file
load_dotenv()


@dataclass
class MeetingResult:
    meeting_id: str
    success: bool
    skipped: bool = False
    title: Optional[str] = None
    artifact: Optional[CaptionArtifact] = None
    error_kind: Optional[str] = None
    message: str = ""

    def status_line(self) -> str:
        if self.skipped:
            return f"SKIPPED {self.meeting_id}: {self.message or 'already completed'}"
        if not self.success:
            return f"FAILED  {self.meeting_id}: {self.error_kind} - {self.message}"
        size_kb = self.artifact.byte_size / 1024
        if self.artifact.last_timestamp_seconds is not None:
            duration = format_duration(self.artifact.last_timestamp_seconds)
        else:
            duration = "no cue timings"
        return f"OK      {self.meeting_id}: {size_kb:.0f}KB, {duration} ({self.artifact.strategy})"


class MeetingCaptionPipeline:
    def __init__(
            self,
            output_dir: str = "./mcps_captions",
            level: Union[str, SamplingLevel] = "balanced",
            verbose: bool = True,
            force_reprocess: bool = False,
            direct_stream: bool = True,
            fetch_agendas: bool = True,
            scratch_dir: Optional[str] = None,
            stream_timeout: int = 600,
            demux_timeout: int = 900,
            concat_timeout: int = 1800,
            request_delay: float = 1.0,
            session: Optional[requests.Session] = None,
            ffmpeg: Optional[ExternalTool] = None,
            ytdlp: Optional[ExternalTool] = None,
            scraper: Optional[SwagitScraper] = None,
            progress_store: Optional[ProgressStore] = None,
            source: str = "swagit"
    ):
        self.output_dir = Path(output_dir)
        self.level = LEVELS[level] if isinstance(level, str) else level
        self.force_reprocess = force_reprocess
        self.direct_stream = direct_stream
        self.fetch_agendas = fetch_agendas
        self.stream_timeout = stream_timeout
        self.demux_timeout = demux_timeout
        self.request_delay = request_delay

        self.console = Console(verbose)
        self.session = session or new_session()

        # Scratch space for segments; each run gets its own subdirectory
        scratch = scratch_dir or os.getenv("CAPTION_SCRATCH_DIR")
        self.scratch_dir = Path(scratch) if scratch else None

        self.ffmpeg = ffmpeg or SubprocessTool(os.getenv("FFMPEG_BINARY", "ffmpeg"))
        self.ytdlp = ytdlp if ytdlp is not None else SubprocessTool(os.getenv("YTDLP_BINARY", "yt-dlp"))

        self.resolver = ManifestResolver(self.session)
        self.fetcher = SegmentFetcher(self.session, console=self.console)
        self.assembler = ConcatenatedAssembler(timeout=concat_timeout, console=self.console)
        if scraper is not None:
            self.scraper = scraper
        elif source == "youtube":
            self.scraper = YouTubeChannel(
                self.ytdlp,
                channel_url=os.getenv("YOUTUBE_CHANNEL_URL", CHANNEL_URL),
                console=self.console
            )
        else:
            self.scraper = SwagitScraper(
                base_url=os.getenv("SWAGIT_BASE_URL", DEFAULT_BASE_URL),
                view_id=os.getenv("SWAGIT_VIEW_ID", DEFAULT_VIEW_ID),
                session=self.session,
                console=self.console
            )

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.progress_store = progress_store or JsonProgressStore(self.output_dir / ".progress.json")

    def log(self, msg: str, level: str = "INFO"):
        self.console.log(msg, level)

    def progress(self, msg: str):
        self.console.progress(msg)

    @property
    def min_caption_bytes(self) -> int:
        return self.level.min_caption_bytes

    def existing_captions(self, meeting_dir: Path) -> Optional[Path]:
        """A caption file from an earlier run that is already above the size threshold"""
        for name in ("captions.srt", "captions.vtt"):
            path = meeting_dir / name
            if path.exists() and path.stat().st_size > self.min_caption_bytes:
                return path
        return None

    def extract_from_stream(self, manifest_url: str, output_path: Path) -> CaptionArtifact:
        """Try the manifest URL directly with ffmpeg/yt-dlp, no segment download"""
        self.progress("Attempting direct stream extraction...")
        extractor = CaptionExtractor(
            stream_strategies(self.ffmpeg, self.ytdlp),
            min_bytes=self.min_caption_bytes,
            timeout=self.stream_timeout,
            console=self.console
        )
        return extractor.extract(manifest_url, output_path)

    def extract_from_youtube(self, video_url: str, output_path: Path) -> CaptionArtifact:
        """YouTube videos have no HLS manifest to sample; yt-dlp fetches the en.* captions"""
        self.progress("Downloading YouTube captions...")
        extractor = CaptionExtractor(
            [ytdlp_strategy("yt-dlp YouTube captions", self.ytdlp)],
            min_bytes=self.min_caption_bytes,
            timeout=self.stream_timeout,
            console=self.console
        )
        return extractor.extract(video_url, output_path)

    def extract_from_tracks(self, tracks: Dict[str, Manifest], meeting_dir: Path) -> CaptionArtifact:
        """Join native WebVTT subtitle tracks; captions.vtt is the English (or first) track"""
        self.progress(f"Found {len(tracks)} WebVTT subtitle track(s): {', '.join(tracks)}")
        written = {}
        for name, track in tracks.items():
            # Track names come from the manifest's NAME/LANGUAGE attributes
            track_path = meeting_dir / f"{sanitize_filename(name, max_length=40)}.vtt"
            written[name] = self.fetcher.fetch_text_track(track, track_path)
            self.progress(f"Wrote {written[name].name}")

        preferred = next((name for name in written if name.startswith("en")), next(iter(written)))
        source = written[preferred]
        size = source.stat().st_size
        if size <= self.min_caption_bytes:
            raise AllStrategiesExhausted([(f"webvtt track '{preferred}'", f"output too small ({size} bytes)")])

        output_path = meeting_dir / "captions.vtt"
        if source != output_path:
            shutil.copyfile(source, output_path)

        timing = analyze_captions(output_path)
        return CaptionArtifact(
            path=output_path,
            byte_size=size,
            last_timestamp_seconds=timing.last_timestamp_seconds if timing else None,
            strategy=f"webvtt track '{preferred}'"
        )

    def extract_from_segments(self, manifest: Manifest, output_path: Path) -> Tuple[CaptionArtifact, Dict[str, Any]]:
        """Sample, download and concatenate segments, then demux captions from the result"""
        # Raises EmptySelection before any segment is requested
        indices = sample_for_level(manifest, self.level)
        self.progress(
            f"Sampling {len(indices)} of {len(manifest)} segments "
            f"(every {self.level.stride}, cap {self.level.max_segments or 'none'})"
        )

        with ScratchDirectory(self.scratch_dir) as scratch:
            segments = self.fetcher.fetch(
                manifest, indices, scratch,
                skip_failures=self.level.skip_failed_segments
            )
            media = self.assembler.assemble(segments, scratch / "assembled.ts", delete_sources=True)

            extractor = CaptionExtractor(
                media_strategies(self.ffmpeg),
                min_bytes=self.min_caption_bytes,
                timeout=self.demux_timeout,
                console=self.console
            )
            artifact = extractor.extract(str(media.path), output_path)

        details = {
            "segmentsTotal": len(manifest),
            "segmentsSelected": len(indices),
            "segmentsFetched": len(segments),
            "assembledBytes": media.byte_size,
        }
        return artifact, details

    def extract_captions(self, manifest_url: str, meeting_dir: Path) -> Tuple[CaptionArtifact, Dict[str, Any]]:
        """Run the caption strategies for one manifest; raises CaptionPipelineError"""
        output_path = meeting_dir / "captions.srt"

        if is_youtube_url(manifest_url):
            return self.extract_from_youtube(manifest_url, output_path), {"source": "youtube"}

        if self.direct_stream:
            try:
                artifact = self.extract_from_stream(manifest_url, output_path)
                return artifact, {"source": "stream"}
            except AllStrategiesExhausted as e:
                self.log(f"Direct stream extraction failed, falling back to segments: {e}", "WARNING")

        resolved = self.resolver.resolve(manifest_url)
        if isinstance(resolved, dict):
            return self.extract_from_tracks(resolved, meeting_dir), {"source": "subtitle-track"}

        artifact, details = self.extract_from_segments(resolved, output_path)
        details["source"] = "segments"
        return artifact, details

    def write_sidecar(self, meeting_id: str, artifact: CaptionArtifact, details: Dict[str, Any], meeting_dir: Path):
        sidecar = {
            "meetingId": meeting_id,
            "sampleRateUsed": self.level.stride,
            "byteSize": artifact.byte_size,
            "lastTimestampSeconds": artifact.last_timestamp_seconds,
            "duration": format_duration(artifact.last_timestamp_seconds)
            if artifact.last_timestamp_seconds is not None else None,
            "captionFile": artifact.path.name,
            "strategy": artifact.strategy,
            "level": self.level.name,
            "minCaptionBytes": self.min_caption_bytes,
            "extractedAt": datetime.now().isoformat(),
        }
        sidecar.update(details)
        with open(meeting_dir / "captions.json", 'w') as f:
            json.dump(sidecar, f, indent=2)

    def process_meeting(self, meeting_id: str, manifest_url: str, meeting_dir: Path) -> MeetingResult:
        """Produce captions for one manifest; failures come back as a result, not an exception"""
        existing = self.existing_captions(meeting_dir)
        if existing and not self.force_reprocess:
            size = existing.stat().st_size
            self.progress(f"Captions already exist ({size / 1024:.0f}KB) - skipping")
            timing = analyze_captions(existing)
            artifact = CaptionArtifact(
                path=existing,
                byte_size=size,
                last_timestamp_seconds=timing.last_timestamp_seconds if timing else None,
                strategy="existing"
            )
            return MeetingResult(meeting_id, success=True, artifact=artifact)

        meeting_dir.mkdir(parents=True, exist_ok=True)
        start_time = datetime.now()

        try:
            artifact, details = self.extract_captions(manifest_url, meeting_dir)
        except CaptionPipelineError as e:
            self.log(f"Meeting {meeting_id} failed: {e}", "ERROR")
            return MeetingResult(meeting_id, success=False, error_kind=e.kind, message=str(e))

        details["processingTimeSeconds"] = (datetime.now() - start_time).total_seconds()
        self.write_sidecar(meeting_id, artifact, details, meeting_dir)
        return MeetingResult(meeting_id, success=True, artifact=artifact)

    def process_record(self, record: MeetingRecord) -> MeetingResult:
        meeting_dir = self.output_dir / meeting_dir_name(record)
        meeting_dir.mkdir(parents=True, exist_ok=True)

        self.progress(f"{record.date or 'Unknown date'} - {record.title}")
        if record.committee:
            self.progress(record.committee)

        write_metadata(record, meeting_dir / "metadata.json", level=self.level.name)

        if self.fetch_agendas and record.agenda_url:
            download_agenda(record, meeting_dir, self.session, self.console, force=self.force_reprocess)

        result = self.process_meeting(record.meeting_id, record.manifest_url, meeting_dir)
        result.title = record.title
        return result

    def process_meetings(self, meeting_ids: List[str], stop_on_failure: bool = False) -> Dict[str, List[MeetingResult]]:
        """Process meetings in order, recording failures without stopping the batch"""
        results: Dict[str, List[MeetingResult]] = {
            "processed": [],
            "skipped": [],
            "failed": []
        }

        completed = self.progress_store.load()
        self.log(f"Previously completed: {len(completed)} meetings")

        total = len(meeting_ids)
        for idx, meeting_id in enumerate(meeting_ids, 1):
            meeting_id = str(meeting_id)

            if meeting_id in completed and not self.force_reprocess:
                self.log(f"[{idx}/{total}] Skipping {meeting_id} (already completed)")
                results["skipped"].append(MeetingResult(meeting_id, success=True, skipped=True))
                continue

            self.log(f"[{idx}/{total}] Processing meeting {meeting_id}...")

            try:
                record = self.scraper.get_meeting(meeting_id)
                if record is None:
                    result = MeetingResult(
                        meeting_id, success=False,
                        error_kind="metadata_unavailable",
                        message="no HLS stream on meeting page"
                    )
                else:
                    result = self.process_record(record)
            except CaptionPipelineError as e:
                result = MeetingResult(meeting_id, success=False, error_kind=e.kind, message=str(e))
            except Exception as e:
                self.log(f"Unexpected error processing meeting {meeting_id}: {e}", "ERROR")
                result = MeetingResult(meeting_id, success=False, error_kind="unexpected_error", message=str(e))

            self.progress(result.status_line())

            if result.success:
                completed.add(meeting_id)
                self.progress_store.save(completed)
                results["processed"].append(result)
            else:
                results["failed"].append(result)
                if stop_on_failure:
                    self.log(f"Stopping due to failure on meeting {meeting_id}")
                    break

            if idx < total and self.request_delay:
                time.sleep(self.request_delay)

        self.write_report(results)
        return results

    def write_report(self, results: Dict[str, List[MeetingResult]]) -> Optional[Path]:
        """List meetings without usable captions, and why, in no_captions_report.txt"""
        report_path = self.output_dir / "no_captions_report.txt"
        if not results["failed"]:
            return None

        lines = [
            "Meetings without extracted captions",
            f"Generated: {datetime.now().isoformat()}",
            f"Sampling level: {self.level.name}",
            "",
        ]
        for result in results["failed"]:
            label = f"{result.meeting_id} ({result.title})" if result.title else result.meeting_id
            lines.append(f"{label}: {result.error_kind}")
            lines.append(f"  {result.message}")
        lines.extend([
            "",
            "network_error and segment_fetch_error are usually transient; rerun to retry.",
            "no_tracks_found / no_variants_found mean the source cannot be processed.",
            "all_strategies_exhausted usually means the recording carries no embedded captions.",
        ])

        report_path.write_text("\n".join(lines) + "\n", encoding='utf-8')
        self.log(f"Report saved to {report_path}")
        return report_path


def print_levels():
    for name, level in LEVELS.items():
        cap = level.max_segments or "none"
        print(f"{name:<10} stride {level.stride:<3} cap {cap:<5} min {level.min_caption_bytes} bytes")
        print(f"           {level.description}")


def main():
    parser = argparse.ArgumentParser(
        description="MCPS Meeting Caption Pipeline - Sample HLS recordings and extract closed captions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # Newest 10 meetings from the view page
  %(prog)s 346546                            # Single meeting
  %(prog)s 346546 346547 346548              # Several meetings
  %(prog)s --max 25 --level fast             # 25 meetings, sparse sampling
  %(prog)s --level complete                  # Every segment (~4GB per meeting)
  %(prog)s --stride 5 --cap 2000             # Explicit sampling
  %(prog)s --manifest URL --meeting-id 42    # Bypass scraping
  %(prog)s --source youtube --max 5          # Captions of 5 meetings from YouTube
  %(prog)s --list-levels                     # Show sampling levels
        """
    )

    parser.add_argument(
        "meeting_ids",
        nargs="*",
        help="Swagit meeting (video) ID(s) to process"
    )

    parser.add_argument(
        "--source",
        choices=["swagit", "youtube"],
        default=os.getenv("CAPTION_SOURCE", "swagit"),
        help="Where to list meetings from (default: swagit)"
    )

    parser.add_argument(
        "--manifest",
        help="Process this HLS manifest URL directly instead of scraping"
    )

    parser.add_argument(
        "--meeting-id",
        help="Meeting ID to file --manifest output under (default: manual)"
    )

    parser.add_argument(
        "--max",
        type=int,
        default=10,
        help="Maximum meetings to take from the view page (default: 10)"
    )

    parser.add_argument(
        "--level",
        choices=sorted(LEVELS),
        default=os.getenv("CAPTION_LEVEL", "balanced"),
        help="Sampling level (default: balanced)"
    )

    parser.add_argument(
        "--stride",
        type=int,
        help="Override the level's stride (take every Nth segment)"
    )

    parser.add_argument(
        "--cap",
        type=int,
        help="Override the level's segment cap (0 = no cap)"
    )

    parser.add_argument(
        "--min-bytes",
        type=int,
        help="Override the level's minimum caption file size"
    )

    parser.add_argument(
        "--output-dir",
        default="./mcps_captions",
        help="Output directory (default: ./mcps_captions)"
    )

    parser.add_argument(
        "--scratch-dir",
        help="Where per-run segment scratch directories are created (default: system temp)"
    )

    parser.add_argument(
        "--no-direct-stream",
        action="store_true",
        help="Skip extracting straight from the HLS URL and always download segments"
    )

    parser.add_argument(
        "--no-agenda",
        action="store_true",
        help="Don't download agenda PDFs"
    )

    parser.add_argument(
        "--force",
        action="store_true",
        help="Reprocess meetings that already have captions"
    )

    parser.add_argument(
        "--stop-on-failure",
        action="store_true",
        help="Stop the batch at the first failed meeting"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce output verbosity"
    )

    parser.add_argument(
        "--list-levels",
        action="store_true",
        help="Show the sampling levels and exit"
    )

    args = parser.parse_args()

    if args.list_levels:
        print_levels()
        sys.exit(0)

    try:
        level = LEVELS[args.level]
        if args.stride is not None or args.cap is not None or args.min_bytes is not None:
            level = custom_level(level, stride=args.stride, cap=args.cap, min_bytes=args.min_bytes)

        pipeline = MeetingCaptionPipeline(
            output_dir=args.output_dir,
            level=level,
            verbose=not args.quiet,
            force_reprocess=args.force,
            direct_stream=not args.no_direct_stream,
            fetch_agendas=not args.no_agenda,
            scratch_dir=args.scratch_dir,
            source=args.source
        )
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Mode: {level.name} - {level.description}")

    if args.manifest:
        meeting_id = args.meeting_id or "manual"
        record = MeetingRecord(meeting_id=meeting_id, title=f"Meeting {meeting_id}", manifest_url=args.manifest)
        result = pipeline.process_record(record)
        print(result.status_line())
        sys.exit(0 if result.success else 1)

    if args.meeting_ids:
        meeting_ids = args.meeting_ids
    else:
        try:
            meeting_ids = pipeline.scraper.list_meeting_ids(limit=args.max)
        except CaptionPipelineError as e:
            print(f"Error fetching meeting list: {e}")
            sys.exit(1)
        if not meeting_ids:
            print("No meetings found")
            sys.exit(1)

    results = pipeline.process_meetings(meeting_ids, stop_on_failure=args.stop_on_failure)

    # Print summary
    print(f"\n{'=' * 60}")
    print("PROCESSING SUMMARY")
    print(f"{'=' * 60}")
    print(f"Processed: {len(results['processed'])} meetings")
    for result in results['processed']:
        print(f"  {result.status_line()}")
    print(f"Skipped: {len(results['skipped'])} meetings (already completed)")
    print(f"Failed: {len(results['failed'])} meetings")
    for result in results['failed']:
        print(f"  {result.status_line()}")
    print(f"\nOutput directory: {pipeline.output_dir}")


if __name__ == "__main__":
    main()
