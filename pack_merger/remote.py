from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from .sources import InvalidInputError, RemoteFetchError

ZIP_SIGNATURE = b"PK"


@dataclass
class FetchedResource:
    url: str
    content: bytes
    content_type: Optional[str] = None


Fetcher = Callable[[str], FetchedResource]


def fetch_url(
    url: str,
    *,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> FetchedResource:
    """Blocking GET of ``url``. The caller owns large-body concerns."""
    client = session or requests.Session()
    logging.info("Fetching %s", url)
    try:
        response = client.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise RemoteFetchError(url, str(exc)) from exc
    finally:
        if session is None:
            client.close()
    if not response.ok:
        raise RemoteFetchError(url, f"HTTP {response.status_code} {response.reason or ''}".strip())
    return FetchedResource(
        url=url,
        content=response.content,
        content_type=response.headers.get("Content-Type"),
    )


def make_fetcher(timeout: Optional[float] = None) -> Fetcher:
    def _fetch(url: str) -> FetchedResource:
        return fetch_url(url, timeout=timeout)

    return _fetch


def ensure_archive_bytes(resource: FetchedResource) -> bytes:
    if not resource.content.startswith(ZIP_SIGNATURE):
        observed = resource.content_type or "unknown content type"
        raise InvalidInputError(
            f"{resource.url} did not return a zip archive (Content-Type: {observed})"
        )
    return resource.content
