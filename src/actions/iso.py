"""ISO helpers: URL probing and lookup by index or name."""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

import requests

from actions.types import IsoFile

logger = logging.getLogger(__name__)


@dataclass
class UrlProbe:
    """What a HEAD request learned about a download URL."""
    filename: Optional[str] = None
    total: int = 0


def probe_iso_url(url: str, timeout: int = 10) -> UrlProbe:
    """Follow redirects to learn the final filename and size of a download.

    Failures are logged and yield an empty probe; the hypervisor performs the
    actual download and reports its own errors.
    """
    try:
        resp = requests.head(url, allow_redirects=True, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.debug(f"HEAD {url} failed: {e}")
        return UrlProbe()

    if resp.status_code >= 400:
        logger.debug(f"HEAD {url} returned {resp.status_code}")
        return UrlProbe()

    filename = None
    disposition = resp.headers.get('Content-Disposition', '')
    if match := re.search(r'filename="?([^";]+)"?', disposition):
        filename = match.group(1)
    else:
        path = unquote(urlparse(resp.url or url).path)
        tail = path.rstrip('/').rsplit('/', 1)[-1]
        if tail.endswith('.iso'):
            filename = tail

    try:
        total = int(resp.headers.get('Content-Length', 0))
    except ValueError:
        total = 0

    return UrlProbe(filename=filename, total=total)


def sort_isos(isos: list[IsoFile]) -> list[IsoFile]:
    """Alphabetical order shared by `iso list` and `iso delete`."""
    return sorted(isos, key=lambda iso: iso.filename.lower())


def find_iso(isos: list[IsoFile], ref: str) -> Optional[IsoFile]:
    """Find an ISO by 1-based list index, filename (case-insensitive) or volid."""
    ordered = sort_isos(isos)
    if ref.isdigit():
        index = int(ref)
        if 0 < index <= len(ordered):
            return ordered[index - 1]
    for iso in ordered:
        if iso.volid == ref or iso.filename == ref or iso.filename.lower() == ref.lower():
            return iso
    return None
