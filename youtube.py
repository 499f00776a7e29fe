"""
MCPS YouTube channel as a meeting source.

Board meetings are also published on the district's YouTube channel. They
carry YouTube captions (uploaded or automatic) instead of embedded CEA-608,
so these meetings go straight to yt-dlp's subtitle download.
"""

import json
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from captions import ExternalTool, summarize_result
from console import Console
from errors import NetworkError
from meetings import MeetingRecord, classify_committee
from subtitles import format_timestamp

CHANNEL_URL = "https://www.youtube.com/@MCPS-MD/videos"

MEETING_PATTERNS = [
    re.compile(r'board\s+of\s+education', re.IGNORECASE),
    re.compile(r'board\s+meeting', re.IGNORECASE),
    re.compile(r'special\s+session', re.IGNORECASE),
    re.compile(r'business\s+meeting', re.IGNORECASE),
    re.compile(r'work\s+session', re.IGNORECASE),
    re.compile(r'public\s+comments', re.IGNORECASE),
    re.compile(r'closed\s+session', re.IGNORECASE),
]

YOUTUBE_URL_PATTERN = re.compile(r'^https?://(?:www\.|m\.)?(?:youtube\.com|youtu\.be)/')


@dataclass
class YouTubeVideo:
    video_id: str
    title: str
    upload_date: str = ""
    duration: float = 0
    description: str = ""

    @property
    def watch_url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"

    def to_record(self) -> MeetingRecord:
        meeting_date = None
        # yt-dlp reports upload_date as YYYYMMDD
        if re.fullmatch(r'\d{8}', self.upload_date or ""):
            meeting_date = f"{self.upload_date[:4]}-{self.upload_date[4:6]}-{self.upload_date[6:]}"
        return MeetingRecord(
            meeting_id=self.video_id,
            title=self.title,
            manifest_url=self.watch_url,
            date=meeting_date,
            committee=classify_committee(self.title),
            duration=format_timestamp(self.duration) if self.duration else None,
            video_url=self.watch_url,
        )


def is_youtube_url(url: str) -> bool:
    return bool(YOUTUBE_URL_PATTERN.match(url or ""))


def is_board_meeting(title: str) -> bool:
    return any(pattern.search(title or "") for pattern in MEETING_PATTERNS)


def parse_flat_playlist(output: str) -> List[YouTubeVideo]:
    """One JSON object per line from ``yt-dlp --dump-json --flat-playlist``"""
    videos = []
    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if not entry.get("id"):
            continue
        videos.append(YouTubeVideo(
            video_id=entry["id"],
            title=entry.get("title") or "",
            upload_date=entry.get("upload_date") or "",
            duration=entry.get("duration") or 0,
            description=entry.get("description") or "",
        ))
    return videos


class YouTubeChannel:
    """Lists board meetings on a YouTube channel; same interface as SwagitScraper"""

    def __init__(
            self,
            ytdlp: ExternalTool,
            channel_url: str = CHANNEL_URL,
            console: Optional[Console] = None,
            timeout: int = 300
    ):
        self.ytdlp = ytdlp
        self.channel_url = channel_url
        self.console = console or Console(verbose=False)
        self.timeout = timeout
        self.videos: Dict[str, YouTubeVideo] = {}

    def list_videos(self, limit: Optional[int] = None) -> List[YouTubeVideo]:
        # Most uploads are not meetings, so list more than we need before filtering
        fetch_limit = limit * 5 if limit else 500
        self.console.log(f"Fetching video list from {self.channel_url}")
        result = self.ytdlp.run([
            "--dump-json",
            "--flat-playlist",
            "--playlist-end", str(fetch_limit),
            self.channel_url
        ], timeout=self.timeout)
        if not result.ok:
            raise NetworkError(self.channel_url, reason=summarize_result(result))

        videos = parse_flat_playlist(result.stdout)
        meetings = [video for video in videos if is_board_meeting(video.title)]
        self.console.log(f"Found {len(videos)} videos, {len(meetings)} are board meetings")

        if limit:
            meetings = meetings[:limit]
        for video in meetings:
            self.videos[video.video_id] = video
        return meetings

    def list_meeting_ids(self, limit: Optional[int] = None) -> List[str]:
        return [video.video_id for video in self.list_videos(limit)]

    def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        video = self.videos.get(meeting_id) or YouTubeVideo(meeting_id, f"YouTube video {meeting_id}")
        return video.to_record()
