#!/usr/bin/env python3
"""Report caption coverage for every meeting directory without downloading anything."""

import json
import sys
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, List

from subtitles import analyze_captions, format_duration, format_timestamp


def analyze_meeting_dir(meeting_dir: Path) -> Dict[str, Any]:
    """Size, cue count and time range of the meeting's caption file, if it has one."""
    caption_files = sorted(meeting_dir.glob("captions*.srt")) + sorted(meeting_dir.glob("captions*.vtt"))
    analysis: Dict[str, Any] = {
        "directory": meeting_dir.name,
        "hasCaptions": bool(caption_files),
    }
    if not caption_files:
        return analysis

    caption_path = caption_files[0]
    analysis["file"] = caption_path.name
    analysis["fileSize"] = caption_path.stat().st_size

    timing = analyze_captions(caption_path)
    if timing:
        analysis.update({
            "cueCount": timing.cue_count,
            "lineCount": timing.line_count,
            "firstTimestamp": format_timestamp(timing.first_timestamp_seconds),
            "lastTimestamp": format_timestamp(timing.last_timestamp_seconds),
            "lastTimestampSeconds": timing.last_timestamp_seconds,
            "duration": format_duration(timing.last_timestamp_seconds),
            "sampleText": timing.sample_text,
        })
    return analysis


def analyze_output_dir(output_dir: Path) -> List[Dict[str, Any]]:
    meeting_dirs = sorted(
        entry for entry in output_dir.iterdir()
        if entry.is_dir() and not entry.name.startswith('.')
    )
    return [analyze_meeting_dir(meeting_dir) for meeting_dir in meeting_dirs]


def main():
    output_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("mcps_captions")
    if not output_dir.exists():
        print(f"Error: {output_dir} not found")
        sys.exit(1)

    analyses = analyze_output_dir(output_dir)
    with_captions = [a for a in analyses if a["hasCaptions"]]

    print(f"Total meetings analyzed: {len(analyses)}")
    print(f"Meetings with captions: {len(with_captions)}")
    print(f"Meetings without captions: {len(analyses) - len(with_captions)}\n")

    for analysis in analyses:
        print(analysis["directory"])
        if not analysis["hasCaptions"]:
            print("   No captions found\n")
            continue
        print(f"   Size: {analysis['fileSize'] / 1024:.0f}KB ({analysis.get('lineCount', 0)} lines)")
        if "duration" in analysis:
            print(f"   Cues: {analysis['cueCount']}")
            print(f"   Duration: {analysis['duration']}")
            print(f"   Time range: {analysis['firstTimestamp']} to {analysis['lastTimestamp']}")
        else:
            print("   No cue timings in file")
        if analysis.get("sampleText"):
            print(f"   End content: \"{analysis['sampleText'][:100]}...\"")
        print()

    report_path = output_dir / "caption_analysis.json"
    report_path.write_text(json.dumps({
        "generated": datetime.now().isoformat(),
        "meetings": analyses
    }, indent=2))
    print(f"Full analysis saved to: {report_path}")


if __name__ == "__main__":
    main()
