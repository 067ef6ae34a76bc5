"""
Error types shared by the attachment downloader modules.

Setup and parse errors abort a run. URL and transfer errors are local to one
attachment and are turned into outcomes by the batch runner.
"""

from http import HTTPStatus
from typing import Optional


class AttachmentDownloadError(Exception):
    """Base class for all downloader errors."""


class FatalSetupError(AttachmentDownloadError):
    """Input file missing/unreadable or output folder not creatable."""


class ParseError(AttachmentDownloadError):
    """Input data is not a valid sequence of message records."""


class UrlError(AttachmentDownloadError):
    """A single attachment URL could not be parsed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class TransferError(AttachmentDownloadError):
    """
    A single download failed.

    Carries the HTTP status code for bad responses, or the underlying
    exception for transport and write faults.
    """

    def __init__(
        self,
        url: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        reason: Optional[str] = None,
    ):
        if reason is None:
            if status_code is not None:
                try:
                    phrase = HTTPStatus(status_code).phrase
                except ValueError:
                    phrase = "Unknown"
                reason = f"HTTP {status_code}: {phrase}"
            elif cause is not None:
                reason = str(cause) or type(cause).__name__
            else:
                reason = "Download failed"
        super().__init__(reason)
        self.url = url
        self.status_code = status_code
        self.cause = cause
        self.reason = reason
