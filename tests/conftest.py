"""
Pytest configuration and shared fixtures.
"""
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests

from download_attachments import Config


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response."""

    def __init__(
        self,
        status_code: int = 200,
        chunks: Optional[List[bytes]] = None,
        headers: Optional[Dict[str, str]] = None,
        fail_after: Optional[int] = None,
    ):
        self.status_code = status_code
        self.chunks = chunks if chunks is not None else [b"data"]
        self.headers = headers or {}
        self.fail_after = fail_after
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise requests.exceptions.ChunkedEncodingError("Connection broken")
            yield chunk

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class FakeSession:
    """
    Routes URLs to canned responses.

    A route value may be a FakeResponse, an exception instance to raise, or
    a callable taking the URL and returning either of those.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None, default: Any = None):
        self.routes = routes or {}
        self.default = default
        self.calls: List[str] = []

    def get(self, url, stream=False, timeout=None):
        self.calls.append(url)
        target = self.routes.get(url, self.default)
        if callable(target) and not isinstance(target, FakeResponse):
            target = target(url)
        if target is None:
            target = FakeResponse(status_code=404, chunks=[])
        if isinstance(target, BaseException):
            raise target
        return target

    def close(self):
        pass


@pytest.fixture
def workspace(tmp_path):
    """Workspace with a data/ folder for the input and a downloads/ target."""
    (tmp_path / "data").mkdir()
    return tmp_path


@pytest.fixture
def output_dir(workspace):
    out = workspace / "downloads"
    out.mkdir()
    return out


@pytest.fixture
def cfg(workspace, output_dir):
    """Config with pacing, progress bar and overview report turned off."""
    return Config(
        input_path=str(workspace / "data" / "messages.json"),
        output_folder=str(output_dir),
        delay_sec=0,
        show_progress=False,
        create_overview=False,
    )


@pytest.fixture
def write_messages(workspace) -> Callable[..., Path]:
    """Write raw JSON text (or an object) to data/messages.json."""
    def _write(content, name: str = "messages.json") -> Path:
        path = workspace / "data" / name
        if not isinstance(content, str):
            content = json.dumps(content)
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def ok_session():
    """Session answering every URL with a small successful body."""
    return FakeSession(default=lambda url: FakeResponse(chunks=[b"payload-", url.encode()]))
