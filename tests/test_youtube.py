"""Unit tests for the YouTube channel meeting source."""

import json

import pytest

from captions import ToolResult
from conftest import FakeTool
from errors import NetworkError
from youtube import (
    YouTubeChannel,
    YouTubeVideo,
    is_board_meeting,
    is_youtube_url,
    parse_flat_playlist,
)

CHANNEL = "https://www.youtube.com/@example/videos"


def playlist_output(*entries):
    return "\n".join(json.dumps(entry) for entry in entries) + "\n"


VIDEOS = playlist_output(
    {"id": "aaa", "title": "Board of Education Business Meeting", "upload_date": "20240613", "duration": 13267},
    {"id": "bbb", "title": "Spring Concert Highlights"},
    {"id": "ccc", "title": "Fiscal Management Committee Work Session"},
    {"id": "ddd", "title": "Board of Education Special Session"},
)


def lists(output):
    return FakeTool(lambda args: ToolResult(0, stdout=output))


class TestParseFlatPlaylist:
    def test_one_video_per_line(self):
        videos = parse_flat_playlist(VIDEOS)

        assert [v.video_id for v in videos] == ["aaa", "bbb", "ccc", "ddd"]
        assert videos[0].upload_date == "20240613"
        assert videos[1].duration == 0

    def test_bad_lines_and_entries_without_id_are_skipped(self):
        output = "WARNING: something\n\n" + playlist_output({"title": "no id"}, {"id": "x1", "title": None})

        videos = parse_flat_playlist(output)

        assert [(v.video_id, v.title) for v in videos] == [("x1", "")]


class TestYouTubeVideo:
    def test_record_from_video(self):
        record = YouTubeVideo("aaa", "Fiscal Management Committee Work Session", "20240613", 3725).to_record()

        assert record.meeting_id == "aaa"
        assert record.manifest_url == "https://www.youtube.com/watch?v=aaa"
        assert record.video_url == record.manifest_url
        assert record.date == "2024-06-13"
        assert record.committee == "Fiscal Management Committee"
        assert record.duration == "01:02:05"

    def test_missing_upload_date(self):
        record = YouTubeVideo("aaa", "Board Meeting").to_record()

        assert record.date is None
        assert record.duration is None


@pytest.mark.parametrize("title,expected", [
    ("Board of Education Business Meeting", True),
    ("BOARD MEETING - June 2024", True),
    ("Closed Session Summary", True),
    ("Spring Concert Highlights", False),
    ("", False),
])
def test_is_board_meeting(title, expected):
    assert is_board_meeting(title) is expected


@pytest.mark.parametrize("url,expected", [
    ("https://www.youtube.com/watch?v=aaa", True),
    ("https://youtu.be/aaa", True),
    ("https://m.youtube.com/watch?v=aaa", True),
    ("https://mcpsmd.new.swagit.com/videos/346546", False),
    ("https://cdn.example.com/vod/playlist.m3u8", False),
])
def test_is_youtube_url(url, expected):
    assert is_youtube_url(url) is expected


class TestYouTubeChannel:
    def test_lists_board_meetings_only(self):
        ytdlp = lists(VIDEOS)
        channel = YouTubeChannel(ytdlp, channel_url=CHANNEL)

        ids = channel.list_meeting_ids()

        assert ids == ["aaa", "ccc", "ddd"]
        assert ytdlp.calls[0] == ["--dump-json", "--flat-playlist", "--playlist-end", "500", CHANNEL]
        assert ytdlp.timeouts == [300]

    def test_limit_widens_fetch_then_truncates(self):
        ytdlp = lists(VIDEOS)
        channel = YouTubeChannel(ytdlp, channel_url=CHANNEL)

        ids = channel.list_meeting_ids(limit=2)

        assert ids == ["aaa", "ccc"]
        args = ytdlp.calls[0]
        assert args[args.index("--playlist-end") + 1] == "10"

    def test_failed_listing_raises_network_error(self):
        ytdlp = FakeTool(lambda args: ToolResult(1, "ERROR: Unable to download webpage"))
        channel = YouTubeChannel(ytdlp, channel_url=CHANNEL)

        with pytest.raises(NetworkError) as exc_info:
            channel.list_videos()

        assert exc_info.value.url == CHANNEL
        assert "Unable to download webpage" in str(exc_info.value)
        assert exc_info.value.retryable

    def test_get_meeting_uses_listed_video(self):
        channel = YouTubeChannel(lists(VIDEOS), channel_url=CHANNEL)
        channel.list_videos()

        record = channel.get_meeting("aaa")

        assert record.title == "Board of Education Business Meeting"
        assert record.date == "2024-06-13"

    def test_get_meeting_for_unlisted_id(self):
        ytdlp = lists(VIDEOS)
        channel = YouTubeChannel(ytdlp, channel_url=CHANNEL)

        record = channel.get_meeting("zzz")

        assert record.manifest_url == "https://www.youtube.com/watch?v=zzz"
        assert record.title == "YouTube video zzz"
        assert ytdlp.calls == []
