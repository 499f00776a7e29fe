"""
HLS manifest fetching and parsing.

A master playlist either declares subtitle tracks (``#EXT-X-MEDIA`` with
``TYPE=SUBTITLES``) or one or more variants (``#EXT-X-STREAM-INF``) whose
URIs point at nested playlists. Swagit serves a ``playlist.m3u8`` whose only
variant is a ``chunklist.m3u8``; both levels are followed here until a media
playlist with ``#EXTINF`` segments is reached.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
from urllib.parse import urljoin

import requests

from errors import NetworkError, NoTracksFound, NoVariantsFound

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

ATTRIBUTE_PATTERN = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')

# playlist.m3u8 -> chunklist.m3u8 is the deepest nesting seen in practice
MAX_PLAYLIST_DEPTH = 4


@dataclass
class SegmentRef:
    index: int
    uri: str
    approx_duration_seconds: float = 0.0


@dataclass
class Manifest:
    """Ordered segments of one media playlist; ``url`` is the playlist they came from"""
    url: str
    segments: List[SegmentRef] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.segments)

    def __getitem__(self, index: int) -> SegmentRef:
        return self.segments[index]

    @property
    def total_duration_seconds(self) -> float:
        return sum(seg.approx_duration_seconds for seg in self.segments)


def new_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def parse_attributes(line: str) -> Dict[str, str]:
    """Parse the attribute list after the first ':' of a tag line"""
    _, _, attrs = line.partition(":")
    return {key: value.strip('"') for key, value in ATTRIBUTE_PATTERN.findall(attrs)}


def _lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def is_master_playlist(text: str) -> bool:
    return any(line.startswith("#EXT-X-STREAM-INF") for line in _lines(text))


def parse_media_playlist(text: str, base_url: str) -> Manifest:
    """Collect segment URIs in playlist order, resolved against ``base_url``"""
    segments: List[SegmentRef] = []
    duration = 0.0
    for line in _lines(text):
        if line.startswith("#EXTINF:"):
            value = line[len("#EXTINF:"):].split(",", 1)[0]
            try:
                duration = float(value)
            except ValueError:
                duration = 0.0
        elif line.startswith("#"):
            continue
        else:
            segments.append(SegmentRef(len(segments), urljoin(base_url, line), duration))
            duration = 0.0
    return Manifest(base_url, segments)


def parse_variant_uris(text: str, base_url: str) -> List[str]:
    """URIs following each #EXT-X-STREAM-INF tag, in document order"""
    lines = _lines(text)
    uris = []
    i = 0
    while i < len(lines):
        if lines[i].startswith("#EXT-X-STREAM-INF"):
            j = i + 1
            while j < len(lines) and lines[j].startswith("#"):
                j += 1
            if j < len(lines):
                uris.append(urljoin(base_url, lines[j]))
            i = j
        i += 1
    return uris


def parse_subtitle_tracks(text: str, base_url: str) -> Dict[str, str]:
    """Map track name to playlist URL for every SUBTITLES media entry with a URI"""
    tracks: Dict[str, str] = {}
    for line in _lines(text):
        if not line.startswith("#EXT-X-MEDIA:"):
            continue
        attrs = parse_attributes(line)
        if attrs.get("TYPE") != "SUBTITLES" or not attrs.get("URI"):
            continue
        name = (attrs.get("LANGUAGE") or attrs.get("NAME") or "unknown").lower()
        # Same language in several groups: keep the first, suffix the rest
        key = name
        suffix = 2
        while key in tracks:
            key = f"{name}-{suffix}"
            suffix += 1
        tracks[key] = urljoin(base_url, attrs["URI"])
    return tracks


class ManifestResolver:
    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30):
        self.session = session or new_session()
        self.timeout = timeout

    def fetch_text(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(url, reason=str(e)) from e
        if not response.ok:
            raise NetworkError(url, response.status_code)
        return response.text

    def resolve_subtitle_tracks(self, url: str) -> Dict[str, Manifest]:
        """Return ``{track name: Manifest}`` for the WebVTT tracks of a master playlist"""
        tracks = parse_subtitle_tracks(self.fetch_text(url), url)
        if not tracks:
            raise NoTracksFound(url)
        return self._track_manifests(tracks)

    def _track_manifests(self, tracks: Dict[str, str]) -> Dict[str, Manifest]:
        return {
            name: parse_media_playlist(self.fetch_text(track_url), track_url)
            for name, track_url in tracks.items()
        }

    def resolve_variant(self, url: str, text: Optional[str] = None) -> Manifest:
        """Follow the first variant (and any nested child playlists) down to segments"""
        current_url = url
        current = text if text is not None else self.fetch_text(url)

        for _ in range(MAX_PLAYLIST_DEPTH):
            if not is_master_playlist(current):
                break
            variants = parse_variant_uris(current, current_url)
            if not variants:
                raise NoVariantsFound(current_url)
            current_url = variants[0]
            current = self.fetch_text(current_url)
        else:
            raise NoVariantsFound(url)

        if not any(line.startswith("#EXTINF") for line in _lines(current)):
            if not any(line.startswith("#EXTM3U") for line in _lines(current)):
                raise NoVariantsFound(current_url)
        return parse_media_playlist(current, current_url)

    def resolve(self, url: str) -> Union[Dict[str, Manifest], Manifest]:
        """Subtitle tracks when the master declares any, otherwise the video segments"""
        text = self.fetch_text(url)
        tracks = parse_subtitle_tracks(text, url)
        if tracks:
            return self._track_manifests(tracks)
        return self.resolve_variant(url, text=text)
