"""
Outbound HTTP helpers shared by the providers.
"""

import logging
import threading
from typing import Optional

import httpx

from ticker_logos.core.errors import Cancelled, DownloadError, DownloadTooLarge

log = logging.getLogger(__name__)

MAX_DOWNLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB
REQUEST_TIMEOUT = 30.0
USER_AGENT = "ticker-logos/1.0"


def make_client(timeout: float = REQUEST_TIMEOUT) -> httpx.Client:
    return httpx.Client(
        follow_redirects=True,
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT},
    )


def download(
    client: httpx.Client,
    url: str,
    max_bytes: int = MAX_DOWNLOAD_BYTES,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """Download ``url`` into memory, refusing bodies larger than ``max_bytes``.

    Raises:
        DownloadTooLarge: If Content-Length or the streamed body exceeds max_bytes
        DownloadError: On transport errors or any non-200 status
        Cancelled: If the cancel event fires while streaming
    """
    try:
        with client.stream("GET", url) as resp:
            if resp.status_code != 200:
                raise DownloadError(f"HTTP {resp.status_code} for {url}")

            length = resp.headers.get("content-length")
            if length and length.isdigit() and int(length) > max_bytes:
                raise DownloadTooLarge(f"Content-Length {length} exceeds limit {max_bytes} for {url}")

            chunks = []
            received = 0
            for chunk in resp.iter_bytes():
                if cancel is not None and cancel.is_set():
                    raise Cancelled(f"download cancelled: {url}")
                received += len(chunk)
                if received > max_bytes:
                    raise DownloadTooLarge(f"downloaded > {max_bytes} bytes from {url}")
                chunks.append(chunk)
    except httpx.HTTPError as e:
        raise DownloadError(f"downloading {url}: {e}") from e

    log.debug("http.download url=%s bytes=%d", url, received)
    return b"".join(chunks)
