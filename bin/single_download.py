#!/usr/bin/env python3
"""
Single Attachment Download Module

Download functions for fetching one attachment URL to disk.
Handles URL validation, file naming and streaming writes.

This module is used by download_attachments.py and provides:
- derive_filename(): Deterministic <id>_<ordinal><ext> naming
- extract_extension(): URL extension extraction
- create_session(): HTTP session without automatic retries
- download_single(): Core streaming download function
"""

import os
import posixpath
import re
from typing import Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter

from attachment_errors import TransferError, UrlError


DEFAULT_USER_AGENT = "discord-attachment-downloader/1.0"
DEFAULT_TIMEOUT_SEC = 30
DEFAULT_CHUNK_SIZE = 8192

_UNSAFE_CHARS = re.compile(r"[\x00-\x1f/\\]")


def sanitize_identifier(identifier: str) -> str:
    """Replace path separators and control characters so the ID is one path segment."""
    return _UNSAFE_CHARS.sub("_", str(identifier).strip())


def extract_extension(url: str) -> str:
    """
    Extract file extension from the path component of a URL.

    Query parameters and fragments are ignored, so
    ``https://cdn.example/a/b/photo.png?ex=1`` gives ``.png``.

    Args:
        url: Attachment URL

    Returns:
        Extension including the dot, or "" if the last path segment has none
    """
    path = urlsplit(str(url)).path
    return posixpath.splitext(posixpath.basename(path))[1]


def derive_filename(identifier: str, ordinal: int, url: str) -> str:
    """
    Build the output filename for one attachment.

    The name only depends on its inputs, so rerunning on the same export
    yields the same names and existing files can be skipped.

    Args:
        identifier: Message ID (opaque string)
        ordinal: 1-based position of the URL in the message's attachment list
        url: Attachment URL

    Returns:
        Filename of the form ``<identifier>_<ordinal><ext>``

    Raises:
        UrlError: If the URL is not an absolute URL with a scheme and host
        ValueError: If ordinal is less than 1
    """
    if ordinal < 1:
        raise ValueError(f"Ordinal must be >= 1, got {ordinal}")

    try:
        parts = urlsplit(url)
        _ = parts.port  # raises on a malformed netloc
    except ValueError as e:
        raise UrlError(url, str(e)) from e

    if not parts.scheme:
        raise UrlError(url, "missing scheme")
    if not parts.hostname:
        raise UrlError(url, "missing host")

    return f"{sanitize_identifier(identifier)}_{ordinal}{extract_extension(url)}"


def create_session(user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    """Create an HTTP session that never retries on its own."""
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": user_agent})
    return session


def _expected_length(resp) -> Optional[int]:
    # Decoded bodies differ in size from the advertised length
    if resp.headers.get("Content-Encoding", "identity").lower() != "identity":
        return None
    try:
        return int(resp.headers["Content-Length"])
    except (KeyError, ValueError):
        return None


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def download_single(
    session: requests.Session,
    url: str,
    dest_path: str,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Download one URL to dest_path, streaming the body in chunks.

    The file at dest_path only survives a complete, successful transfer. Any
    failure after the file was opened removes it before the error is raised,
    so a later run will not take a partial file for a finished one.

    Args:
        session: requests Session
        url: URL to download
        dest_path: Destination file path
        timeout: Connect/read timeout in seconds
        chunk_size: Bytes per streamed chunk

    Returns:
        Number of bytes written

    Raises:
        TransferError: On a non-2xx status, a transport fault, a truncated
            body, or a local write error
    """
    try:
        resp = session.get(url, stream=True, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise TransferError(url, cause=e, reason="Timeout") from e
    except requests.RequestException as e:
        raise TransferError(url, cause=e, reason=f"Connection error: {e}") from e

    with resp:
        if not 200 <= resp.status_code < 300:
            raise TransferError(url, status_code=resp.status_code)

        expected = _expected_length(resp)
        written = 0
        try:
            with open(dest_path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=chunk_size):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
            if expected is not None and written < expected:
                raise TransferError(
                    url,
                    status_code=resp.status_code,
                    reason=f"Truncated body: got {written} of {expected} bytes",
                )
        except TransferError:
            _discard(dest_path)
            raise
        except requests.RequestException as e:
            _discard(dest_path)
            raise TransferError(url, cause=e, reason=f"Connection error: {e}") from e
        except OSError as e:
            _discard(dest_path)
            raise TransferError(url, cause=e, reason=f"Save error: {e}") from e
        except BaseException:
            _discard(dest_path)
            raise

    return written
