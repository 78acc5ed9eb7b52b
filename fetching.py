import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import urljoin, urlparse

import httpx
from httpx import AsyncClient, Timeout

from settings import HTTP_TIMEOUT_S

log = logging.getLogger("uvicorn.error")

# A page lives either at an http(s) URL or at a file on disk
Location = Union[str, Path]


class FetchError(Exception):
    """Network failure, non-2xx status, unreadable file or malformed document."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def is_url(location: Optional[Location]) -> bool:
    if not isinstance(location, str):
        return False
    return urlparse(location).scheme in ("http", "https")


def resolve_resource(location: Location, relative: str) -> Location:
    """Resolve ``relative`` against the page location the way a browser
    resolves ``./config/...`` against the current document."""
    if is_url(location):
        return urljoin(location, relative)
    return Path(location).parent / relative


async def http_get_json(url: str, *, client: Optional[AsyncClient] = None, timeout: float = HTTP_TIMEOUT_S) -> Any:
    own_client = client is None
    if own_client:
        client = AsyncClient(timeout=Timeout(timeout))
    try:
        try:
            # Redirects are not followed; a 3xx fails the status check below
            resp = await client.get(url, follow_redirects=False)
        except httpx.HTTPError as e:
            raise FetchError(f"Request to {url} failed: {e}") from e
        if not resp.is_success:
            raise FetchError(f"Failed to load {url}: {resp.status_code}", status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise FetchError(f"Malformed JSON at {url}: {e}") from e
    finally:
        if own_client:
            await client.aclose()


def read_json_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FetchError(f"Failed to read {path}: {e}") from e
    try:
        return json.loads(text)
    except ValueError as e:
        raise FetchError(f"Malformed JSON in {path}: {e}") from e


async def fetch_document(location: Location, relative: str, *, client: Optional[AsyncClient] = None) -> Dict[str, Any]:
    """Fetch one JSON object relative to the page. Anything that is not a
    JSON object is rejected so callers only ever see a mapping."""
    if location is None:
        raise FetchError(f"Cannot resolve {relative}: page has no location")
    target = resolve_resource(location, relative)
    if isinstance(target, Path):
        doc = read_json_file(target)
    else:
        doc = await http_get_json(target, client=client)
    if not isinstance(doc, dict):
        raise FetchError(f"Expected a JSON object at {target}, got {type(doc).__name__}")
    log.info("fetched %s", target)
    return doc
