"""
client/capture.py -- Token capture sources for the scan workflow.

QR decoding is not done here. A capture source is anything that can be
started with a callback and stopped again; a camera integration wraps its
decoding library in the same two methods. ManualCapture covers typed or
pasted input and is what the CLI and the tests use.

Captured text may be a bare token or the full credential URL
({public_base_url}/verify/{token}); extract_token() accepts both.
"""

from collections.abc import Callable
from typing import Optional
from urllib.parse import unquote, urlsplit

TokenCallback = Callable[[str], None]

_VERIFY_SEGMENT = "/verify/"


def extract_token(raw: str) -> str:
    """Return the token from a bare token or a credential URL. "" if nothing usable."""
    text = raw.strip()
    if not text:
        return ""
    path = urlsplit(text).path if "://" in text else text.split("?", 1)[0].split("#", 1)[0]
    if _VERIFY_SEGMENT in path:
        path = path.rsplit(_VERIFY_SEGMENT, 1)[1]
    return unquote(path.strip("/"))


class CaptureSource:
    """Interface for anything that produces raw scanned text."""

    def start(self, on_token: TokenCallback) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class ManualCapture(CaptureSource):
    """Capture source fed by explicit submit() calls (keyboard entry, paste, tests)."""

    def __init__(self) -> None:
        self._on_token: Optional[TokenCallback] = None

    @property
    def active(self) -> bool:
        return self._on_token is not None

    def start(self, on_token: TokenCallback) -> None:
        self._on_token = on_token

    def stop(self) -> None:
        self._on_token = None

    def submit(self, raw: str) -> None:
        """Deliver raw text to the workflow. Ignored when the source is stopped."""
        if self._on_token is not None:
            self._on_token(raw)
