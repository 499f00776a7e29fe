"""Pytest configuration and shared fakes for the caption pipeline tests."""

import os
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union
from unittest.mock import Mock

import pytest

# Add the project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from captions import ExternalTool, ToolResult
from hls import Manifest, SegmentRef


def make_response(status: int = 200, text: str = "", body: bytes = b"", headers: Optional[dict] = None) -> Mock:
    """A stand-in for requests.Response with the attributes the pipeline reads."""
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.text = text
    response.content = body or text.encode()
    response.headers = headers or {}
    payload = body or text.encode()
    response.iter_content = Mock(
        side_effect=lambda chunk_size=1: (payload[i:i + chunk_size] for i in range(0, len(payload), chunk_size))
    )
    response.close = Mock()
    return response


class FakeSession:
    """Serves canned responses by URL and records every request."""

    def __init__(self, routes: Optional[Dict[str, Union[Mock, Callable]]] = None):
        self.routes = dict(routes or {})
        self.calls: List[str] = []
        self.headers = {}

    def get(self, url, **kwargs):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return make_response(404)
        return route() if callable(route) and not isinstance(route, Mock) else route


class FakeTool(ExternalTool):
    """Records invocations; ``behaviour`` decides the result and may write the output file."""

    def __init__(self, behaviour: Callable[[List[str]], ToolResult] = None):
        self.behaviour = behaviour or (lambda args: ToolResult(1, "no captions"))
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> ToolResult:
        self.calls.append(list(args))
        self.timeouts.append(timeout)
        return self.behaviour(list(args))


def make_srt(cue_count: int, start_seconds: int = 0) -> str:
    cues = []
    for i in range(cue_count):
        start = start_seconds + i * 3
        end = start + 2
        cues.append(
            f"{i + 1}\n"
            f"{start // 3600:02d}:{(start % 3600) // 60:02d}:{start % 60:02d},000 --> "
            f"{end // 3600:02d}:{(end % 3600) // 60:02d}:{end % 60:02d},500\n"
            f"Caption line number {i + 1}\n"
        )
    return "\n".join(cues)


def writes_captions(content: str) -> Callable[[List[str]], ToolResult]:
    """Tool behaviour that writes ``content`` to the output path (the last argument)."""

    def behaviour(args: List[str]) -> ToolResult:
        Path(args[-1]).write_text(content, encoding="utf-8")
        return ToolResult(0)

    return behaviour


def make_manifest(count: int, base: str = "https://cdn.example.com/vod/") -> Manifest:
    return Manifest(
        f"{base}chunklist.m3u8",
        [SegmentRef(i, f"{base}media_{i}.ts", 2.0) for i in range(count)]
    )


@pytest.fixture
def srt_text():
    return make_srt(200)


@pytest.fixture
def scratch_root(tmp_path):
    return tmp_path / "scratch"
