"""
Swagit meeting listing and metadata scraping.

The view page (``/views/<view_id>``) links every archived meeting as
``/videos/<id>``. Each meeting page embeds the HLS URL in its player setup
(``file: "https://.../playlist.m3u8"``) and links the agenda when one was
published.
"""

import json
import re
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from console import Console
from errors import NetworkError
from hls import new_session

DEFAULT_BASE_URL = "https://mcpsmd.new.swagit.com"
DEFAULT_VIEW_ID = "25"

MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4,
    'may': 5, 'june': 6, 'july': 7, 'august': 8,
    'september': 9, 'october': 10, 'november': 11, 'december': 12,
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7,
    'aug': 8, 'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12
}

COMMITTEES = [
    ("fiscal", "Fiscal Management Committee"),
    ("strategic", "Strategic Planning Committee"),
    ("special pop", "Committee on Special Populations"),
    ("policy", "Policy Management Committee"),
    ("closed session", "Closed Session"),
]

PLAYER_M3U8_PATTERN = re.compile(r'file:\s*["\']([^"\']*\.m3u8[^"\']*)')
ANY_M3U8_PATTERN = re.compile(r'https?://[^\'"\s>]+\.m3u8[^\'"\s>]*')


@dataclass
class MeetingRecord:
    meeting_id: str
    title: str
    manifest_url: str
    date: Optional[str] = None
    committee: Optional[str] = None
    duration: Optional[str] = None
    agenda_url: Optional[str] = None
    minutes_url: Optional[str] = None
    video_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_date(text: str) -> Optional[str]:
    """Find the first recognizable date in text and return it as YYYY-MM-DD"""
    if not text:
        return None

    iso = re.search(r'(\d{4})-(\d{2})-(\d{2})', text)
    if iso:
        try:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3))).isoformat()
        except ValueError:
            pass

    named = re.search(r'([A-Za-z]{3,9})\.?\s+(\d{1,2}),?\s+(\d{4})', text)
    if named and named.group(1).lower() in MONTHS:
        try:
            return date(int(named.group(3)), MONTHS[named.group(1).lower()], int(named.group(2))).isoformat()
        except ValueError:
            pass

    numeric = re.search(r'(\d{1,2})/(\d{1,2})/(\d{4})', text)
    if numeric:
        try:
            return date(int(numeric.group(3)), int(numeric.group(1)), int(numeric.group(2))).isoformat()
        except ValueError:
            pass

    return None


def classify_committee(title: str) -> str:
    lower_title = title.lower()
    for needle, committee in COMMITTEES:
        if needle in lower_title:
            return committee
    return "Board of Education"


def sanitize_filename(title: str, max_length: int = 50) -> str:
    """Lower-case a title and squash everything but letters and digits to underscores"""
    sanitized = re.sub(r'[^a-z0-9]+', '_', title.lower()).strip('_')
    return sanitized[:max_length] or "meeting"


def meeting_dir_name(record: MeetingRecord) -> str:
    prefix = re.sub(r'[/,\s]+', '-', record.date) if record.date else "unknown-date"
    return f"{prefix}_{sanitize_filename(record.title)}_{record.meeting_id}"


def parse_meeting_page(meeting_id: str, html: str, base_url: str = DEFAULT_BASE_URL) -> Optional[MeetingRecord]:
    """Build a MeetingRecord from a meeting page, or None if it has no HLS stream"""
    match = PLAYER_M3U8_PATTERN.search(html) or ANY_M3U8_PATTERN.search(html)
    if not match:
        return None
    manifest_url = match.group(1) if match.groups() else match.group(0)

    soup = BeautifulSoup(html, 'lxml')

    title = None
    for script in soup.find_all('script', type='application/ld+json'):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        if isinstance(data, dict) and data.get("name"):
            title = data["name"].strip()
            break
    if not title and soup.title and soup.title.string:
        title = re.sub(r'\s*-\s*Montgomery.*$', '', soup.title.string).strip()
    title = title or f"Meeting {meeting_id}"

    meeting_date = None
    time_tag = soup.find(attrs={"datetime": True})
    if time_tag:
        meeting_date = parse_date(time_tag["datetime"])
    if not meeting_date:
        meeting_date = parse_date(title) or parse_date(soup.get_text(" ", strip=True))

    links = {"agenda": None, "minutes": None}
    for link in soup.find_all('a', href=True):
        text = link.get_text(strip=True).lower()
        for kind in links:
            if links[kind] is None and text == kind:
                links[kind] = urljoin(base_url, link['href'])

    duration = None
    duration_match = re.search(r'>\s*(\d{1,2}:\d{2}:\d{2})\s*<', html)
    if duration_match:
        duration = duration_match.group(1)

    return MeetingRecord(
        meeting_id=str(meeting_id),
        title=title,
        manifest_url=urljoin(base_url, manifest_url),
        date=meeting_date,
        committee=classify_committee(title),
        duration=duration,
        agenda_url=links["agenda"],
        minutes_url=links["minutes"],
        video_url=f"{base_url}/videos/{meeting_id}",
    )


class SwagitScraper:
    def __init__(
            self,
            base_url: str = DEFAULT_BASE_URL,
            view_id: str = DEFAULT_VIEW_ID,
            session: Optional[requests.Session] = None,
            console: Optional[Console] = None,
            timeout: int = 30
    ):
        self.base_url = base_url.rstrip('/')
        self.view_id = view_id
        self.session = session or new_session()
        self.console = console or Console(verbose=False)
        self.timeout = timeout

    def view_url(self) -> str:
        return f"{self.base_url}/views/{self.view_id}"

    def _get(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(url, reason=str(e)) from e
        if not response.ok:
            raise NetworkError(url, response.status_code)
        return response.text

    def list_meeting_ids(self, limit: Optional[int] = None) -> List[str]:
        """Meeting ids linked from the view page, newest first as listed"""
        url = self.view_url()
        self.console.log(f"Fetching meeting list from {url}")
        soup = BeautifulSoup(self._get(url), 'lxml')

        meeting_ids: List[str] = []
        for link in soup.find_all('a', href=True):
            match = re.search(r'/videos/(\d+)', link['href'])
            if match and match.group(1) not in meeting_ids:
                meeting_ids.append(match.group(1))

        self.console.log(f"Found {len(meeting_ids)} meetings")
        return meeting_ids[:limit] if limit else meeting_ids

    def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        record = parse_meeting_page(meeting_id, self._get(f"{self.base_url}/videos/{meeting_id}"), self.base_url)
        if record is None:
            self.console.log(f"Could not find HLS stream for meeting {meeting_id}", "WARNING")
        return record


def write_metadata(record: MeetingRecord, path, **extra) -> None:
    metadata = record.to_dict()
    metadata.update(extra)
    metadata["scrapedAt"] = datetime.now().isoformat()
    with open(path, 'w') as f:
        json.dump(metadata, f, indent=2)
