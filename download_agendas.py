#!/usr/bin/env python3
"""
Download agendas for meeting directories that don't have them yet.
Reads meeting records from each directory's metadata.json. Does NOT touch
video segments or captions.

Usage:
    python download_agendas.py                  # All meetings missing an agenda
    python download_agendas.py --max 20         # Limit to 20 meetings
    python download_agendas.py --force          # Re-download even if files exist
"""

import json
import argparse
from pathlib import Path
from datetime import datetime

from dotenv import load_dotenv

from agendas import download_agenda
from console import Console
from hls import new_session
from meetings import MeetingRecord

load_dotenv()


def find_meetings_missing_agendas(output_dir: Path, force: bool = False):
    """Meeting directories with an agenda link in metadata.json but no agenda.pdf."""
    results = []
    for meta_path in sorted(output_dir.glob("*/metadata.json")):
        meeting_dir = meta_path.parent
        with open(meta_path) as f:
            meta = json.load(f)

        if not meta.get("agenda_url"):
            continue
        if (meeting_dir / "agenda.pdf").exists() and not force:
            continue

        fields = {key: meta.get(key) for key in MeetingRecord.__dataclass_fields__}
        results.append({
            "record": MeetingRecord(**fields),
            "meeting_dir": meeting_dir,
            "metadata": meta,
        })

    return results


def main():
    parser = argparse.ArgumentParser(description="Download agendas for processed meetings")
    parser.add_argument("--max", type=int, default=0, help="Max meetings to process (0 = all)")
    parser.add_argument("--force", action="store_true", help="Re-download even if files exist")
    parser.add_argument("--output-dir", default="./mcps_captions", help="Output directory")
    parser.add_argument("--quiet", action="store_true", help="Reduce output")
    args = parser.parse_args()

    output_dir = Path(args.output_dir)
    meetings = find_meetings_missing_agendas(output_dir, args.force)

    if not meetings:
        print("All meetings with an agenda link already have the agenda.")
        return

    if args.max:
        meetings = meetings[:args.max]

    print(f"Found {len(meetings)} meetings needing agendas")

    console = Console(verbose=not args.quiet)
    session = new_session()
    downloaded = 0
    errors = 0

    for i, item in enumerate(meetings, 1):
        record = item["record"]
        meeting_dir = item["meeting_dir"]
        print(f"\n[{i}/{len(meetings)}] Meeting {record.meeting_id}: {record.title}")

        try:
            result = download_agenda(record, meeting_dir, session, console, force=args.force)
        except OSError as e:
            print(f"  ERROR downloading agenda: {e}")
            errors += 1
            continue

        if result["pdf_file"]:
            downloaded += 1
            meta = item["metadata"]
            files = meta.get("files", {})
            files["agenda_pdf"] = result["pdf_file"]
            if result["txt_file"]:
                files["agenda_txt"] = result["txt_file"]
            meta["files"] = files
            meta["docs_updated_at"] = datetime.now().isoformat()
            with open(meeting_dir / "metadata.json", "w") as f:
                json.dump(meta, f, indent=2)

    print(f"\n{'='*50}")
    print(f"Done! Agendas downloaded: {downloaded}")
    if errors:
        print(f"Errors: {errors}")


if __name__ == "__main__":
    main()
