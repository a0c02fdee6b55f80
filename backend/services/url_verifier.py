"""Post-upload reachability check for stored file URLs.

A HEAD request per URL, run concurrently, each bounded by
URL_CHECK_TIMEOUT_SECONDS (default 10). A URL that times out, errors, or
answers with a non-2xx/3xx status counts as unreachable. Results are advisory:
unreachable files are left out of email attachments but stay on the record.
"""
import asyncio
import logging
from typing import Dict, Iterable, Optional

import httpx

from utils.env_config import env_int

logger = logging.getLogger(__name__)

DEFAULT_URL_CHECK_TIMEOUT_SECONDS = 10


async def check_url(client: httpx.AsyncClient, url: str, timeout_seconds: float) -> bool:
    try:
        resp = await asyncio.wait_for(client.head(url), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("URL check timed out after %ss: %s", timeout_seconds, url)
        return False
    except httpx.HTTPError as e:
        logger.warning("URL check failed for %s: %s", url, e)
        return False
    if resp.status_code >= 400:
        logger.warning("URL check got HTTP %s for %s", resp.status_code, url)
        return False
    return True


async def verify_urls(
    urls: Iterable[str],
    timeout_seconds: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, bool]:
    """Map each URL to whether it answered a metadata-only request in time."""
    unique = list(dict.fromkeys(u for u in urls if u))
    if not unique:
        return {}
    timeout = timeout_seconds or env_int("URL_CHECK_TIMEOUT_SECONDS", DEFAULT_URL_CHECK_TIMEOUT_SECONDS)

    owns_client = client is None
    http = client or httpx.AsyncClient(follow_redirects=True)
    try:
        results = await asyncio.gather(*(check_url(http, url, timeout) for url in unique))
    finally:
        if owns_client:
            await http.aclose()
    return dict(zip(unique, results))
