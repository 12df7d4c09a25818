# app/services/link_preview.py
import ipaddress
import logging
import re
import socket
from html import unescape
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests

from app.config.settings import settings

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+")
TITLE_PATTERN = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
META_PATTERN = re.compile(r"<meta\s+[^>]*>", re.IGNORECASE)
ATTR_PATTERN = re.compile(r'([a-zA-Z:_-]+)\s*=\s*("([^"]*)"|\'([^\']*)\')')

MAX_BYTES = 512 * 1024
MAX_REDIRECTS = 3


def extract_first_url(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = URL_PATTERN.search(text)
    if not match:
        return None
    return match.group(0).rstrip(".,;:!?)")


def _meta_tags(html: str) -> dict:
    tags = {}
    for tag in META_PATTERN.findall(html):
        attrs = {m[0].lower(): (m[2] or m[3]) for m in ATTR_PATTERN.findall(tag)}
        key = attrs.get("property") or attrs.get("name")
        if key and "content" in attrs:
            tags.setdefault(key.lower(), unescape(attrs["content"]).strip())
    return tags


def parse_preview(html: str) -> dict:
    """Title, description and image from OpenGraph tags, falling back to <title>"""
    meta = _meta_tags(html)
    title = meta.get("og:title") or meta.get("twitter:title")
    if not title:
        match = TITLE_PATTERN.search(html)
        title = unescape(match.group(1)).strip() if match else None
    return {
        "title": title[:500] if title else None,
        "description": meta.get("og:description") or meta.get("description") or meta.get("twitter:description"),
        "image": meta.get("og:image") or meta.get("twitter:image"),
    }


def is_public_url(url: str) -> bool:
    """True when every address the host resolves to is publicly routable"""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    try:
        infos = socket.getaddrinfo(parsed.hostname, parsed.port or None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError, ValueError):
        return False
    for info in infos:
        address = ipaddress.ip_address(info[4][0].split("%")[0])
        if not address.is_global or address.is_multicast:
            return False
    return bool(infos)


def fetch_link_preview(url: str) -> Optional[dict]:
    """Fetch a page and build its preview; None on any failure"""
    target = url
    try:
        for _ in range(MAX_REDIRECTS + 1):
            if not is_public_url(target):
                logger.warning(f"Link preview refused for non-public address: {target}")
                return None
            with requests.get(
                target,
                timeout=settings.LINK_PREVIEW_TIMEOUT,
                headers={"User-Agent": "ProjectPlannerBot/1.0 (+link preview)"},
                stream=True,
                allow_redirects=False,
            ) as response:
                if response.is_redirect:
                    target = urljoin(target, response.headers.get("Location", ""))
                    continue
                response.raise_for_status()
                if "html" not in response.headers.get("Content-Type", "text/html"):
                    return None
                content = response.raw.read(MAX_BYTES, decode_content=True)
                html = content.decode(response.encoding or "utf-8", errors="replace")
                break
        else:
            logger.warning(f"Link preview gave up after {MAX_REDIRECTS} redirects: {url}")
            return None
    except requests.RequestException as e:
        logger.warning(f"Link preview fetch failed for {url}: {e}")
        return None

    preview = parse_preview(html)
    if not any(preview.values()):
        return None
    preview["url"] = url
    return preview
