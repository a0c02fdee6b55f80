"""
Canonical public base URLs.

get_public_api_url() is the base for stored-file links (menus, FAQs, documents)
that end up in the submission record and in admin emails. get_site_url() is the
marketing site used for links in customer emails.
"""
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_SITE_URL = "https://ai-chatflows.com"


def _normalize(raw: str) -> str:
    raw = (raw or "").strip().rstrip("/")
    if raw.startswith("http://") and "localhost" not in raw and "127.0.0.1" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    return raw


def get_public_api_url() -> str:
    """
    Return the normalized public API base URL (no trailing slash).
    Reads PUBLIC_API_URL, then RENDER_EXTERNAL_URL. Falls back to localhost for
    local development with a warning; startup config checks require the variable
    in deployed environments.
    """
    raw = (os.getenv("PUBLIC_API_URL") or "").strip() or (os.getenv("RENDER_EXTERNAL_URL") or "").strip()
    raw = _normalize(raw)
    if not raw:
        logger.warning("PUBLIC_API_URL not set; file links will point at localhost")
        return "http://localhost:8001"
    return raw


def get_site_url() -> str:
    return _normalize(os.getenv("SITE_URL") or "") or DEFAULT_SITE_URL
