"""
Omnivore API - File Name, Title and Slug Derivation
===================================================

What:  Turns an upload URL into a display title, a storage-safe file name,
       and a page slug.

Examples:
    file:///Users/me/My%20Paper.pdf
        derive_title     → "My Paper"
        derive_file_name → "MyPaper.pdf"
    https://example.com/docs/%E2%9C%93.pdf
        derive_file_name → "content.pdf"   (nothing survives the filter)
"""

import logging
import posixpath
import re
import time
import unicodedata
from typing import Optional
from urllib.parse import unquote, urlsplit

from omnivore_api.exceptions import InvalidUrlError
from omnivore_api.models.page import PageType
from omnivore_api.utils.urls import normalize_url

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "content.pdf"
EPUB_CONTENT_TYPE = "application/epub+zip"
SLUG_MAX_LENGTH = 64

_DISALLOWED_FILE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def decode_uri(value: str) -> str:
    """
    Strict percent-decoding.

    Raises:
        ValueError: a '%' not followed by two hex digits, or bytes that are
            not valid UTF-8.
    """
    if _MALFORMED_ESCAPE.search(value):
        raise ValueError(f"Malformed percent-encoding in {value!r}")
    return unquote(value, errors="strict")


def _basename(path: str, suffix: str = "") -> str:
    # Trailing separators are ignored, so "/docs/" has basename "docs".
    base = posixpath.basename(path.rstrip("/"))
    if suffix and base.endswith(suffix) and base != suffix:
        base = base[: -len(suffix)]
    return base


def sanitize_file_name(name: str) -> str:
    """Remove every character outside [A-Za-z0-9-_.]."""
    return _DISALLOWED_FILE_NAME_CHARS.sub("", name)


def derive_title(url: str) -> str:
    """
    Human title for an uploaded file: basename without ".pdf", decoded.

    Falls back to the raw URL when the URL or its escapes cannot be decoded.
    """
    try:
        path = urlsplit(normalize_url(url)).path
        return decode_uri(_basename(path, ".pdf"))
    except (ValueError, InvalidUrlError) as e:
        logger.error("Could not derive title from %s: %s", url, e)
    return url


def derive_file_name(url: str) -> str:
    """
    Storage-safe file name for an upload URL. Never empty.

    Raises:
        InvalidUrlError: the URL cannot be parsed.
        ValueError: the basename has malformed percent-encoding.
    """
    path = urlsplit(normalize_url(url)).path
    file_name = sanitize_file_name(decode_uri(_basename(path)))
    return file_name or DEFAULT_FILE_NAME


def slugify(text: str) -> str:
    """Lowercase ASCII words joined by hyphens."""
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return _NON_SLUG_CHARS.sub("-", folded.lower()).strip("-")


def generate_slug(text: str, now_ms: Optional[int] = None) -> str:
    """
    Slug truncated to 64 characters plus "-<epoch millis in hex>".

    Two calls in the same millisecond for the same text collide.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{slugify(text)[:SLUG_MAX_LENGTH]}-{now_ms:x}"


def page_type_for_content_type(content_type: str) -> PageType:
    if content_type == EPUB_CONTENT_TYPE:
        return PageType.BOOK
    return PageType.FILE
