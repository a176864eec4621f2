"""
Omnivore API - URL Classification and Normalization
===================================================

What:  Decides whether an input URL points at a device-local file or a
       fetchable remote resource, normalizes URLs, and validates remote ones.
Who:   UploadService (classify, validate), filenames (normalize).

Local-file references use the `file:` pseudo-scheme; the mobile apps send
them for documents picked from the device. Every other well-formed scheme is
treated as remote. Only remote URLs go through validate_url(): a file:// URL
has no host to check.
"""

import enum
import ipaddress
import logging
import re
from typing import Iterable, Pattern, Sequence, Union
from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit, urlunsplit

from omnivore_api.exceptions import InvalidUrlError, ValidationError

logger = logging.getLogger(__name__)

LOCAL_FILE_SCHEME = "file"
FETCHABLE_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
# Characters no URL parser accepts in a host name.
_FORBIDDEN_HOST_CHARS = re.compile(r"[\s<>|^\\%#?@\[\]\"{}`]")

TWEET_URL_REGEX = re.compile(r"twitter\.com/(?:#!/)?(\w+)/status(?:es)?/(\d+)(?:/.*)?")
TRACKING_PARAMS: Sequence[Pattern[str]] = (re.compile(r"^utm_\w+", re.IGNORECASE),)

QueryParamMatcher = Union[str, Pattern[str]]


class UrlKind(str, enum.Enum):
    LOCAL_FILE = "LOCAL_FILE"
    REMOTE = "REMOTE"


def parse_url(url: str) -> SplitResult:
    """
    Split a URL, rejecting anything a browser URL parser would reject.

    Raises:
        InvalidUrlError: empty input, missing/invalid scheme, bad port, or an
            http(s) URL without a host.
    """
    if not url or not url.strip():
        raise InvalidUrlError(url, "URL is empty")

    try:
        parts = urlsplit(url.strip())
        # .port parses lazily and raises ValueError for out-of-range values
        parts.port
    except ValueError as e:
        raise InvalidUrlError(url, str(e)) from e

    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        raise InvalidUrlError(url, "URL has no scheme")

    if parts.scheme.lower() in FETCHABLE_SCHEMES and not parts.hostname:
        raise InvalidUrlError(url, "URL has no host")

    if parts.hostname:
        _check_host(url, parts.hostname)

    return parts


def _check_host(url: str, host: str) -> None:
    # IPv6 literals come back from urlsplit without their brackets.
    if ":" in host:
        try:
            ipaddress.IPv6Address(host)
        except ValueError as e:
            raise InvalidUrlError(url, "invalid IPv6 host") from e
        return

    if _FORBIDDEN_HOST_CHARS.search(host):
        raise InvalidUrlError(url, "host contains forbidden characters")

    try:
        host.encode("idna")
    except UnicodeError as e:
        raise InvalidUrlError(url, "host is not a valid domain name") from e


def classify_url(url: str) -> UrlKind:
    """Return LOCAL_FILE for file: URLs and REMOTE for every other valid URL."""
    parts = parse_url(url)
    if parts.scheme.lower() == LOCAL_FILE_SCHEME:
        return UrlKind.LOCAL_FILE
    return UrlKind.REMOTE


def is_local_file_url(url: str) -> bool:
    return classify_url(url) == UrlKind.LOCAL_FILE


def _param_matches(name: str, matchers: Iterable[QueryParamMatcher]) -> bool:
    for matcher in matchers:
        if isinstance(matcher, str):
            if name == matcher:
                return True
        elif matcher.search(name):
            return True
    return False


def normalize_url(
    url: str,
    strip_hash: bool = True,
    strip_www: bool = False,
    remove_trailing_slash: bool = False,
    remove_query_parameters: Iterable[QueryParamMatcher] = (),
) -> str:
    """
    Canonical form of a URL.

    - scheme and host lowercased, default ports dropped
    - fragment removed when strip_hash
    - leading "www." removed only when strip_www
    - trailing slash kept unless remove_trailing_slash
    - query parameters sorted by name, matching ones removed

    Raises:
        InvalidUrlError: the URL cannot be parsed.
    """
    parts = parse_url(url)
    scheme = parts.scheme.lower()

    netloc = parts.netloc
    if parts.hostname:
        host = parts.hostname.lower()
        if strip_www and host.startswith("www."):
            host = host[4:]
        if ":" in host:
            host = f"[{host}]"
        port = parts.port
        if port is not None and DEFAULT_PORTS.get(scheme) != port:
            host = f"{host}:{port}"
        userinfo = netloc.rpartition("@")[0]
        netloc = f"{userinfo}@{host}" if userinfo else host

    path = parts.path
    if remove_trailing_slash and len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/")

    query = parts.query
    if query:
        matchers = list(remove_query_parameters)
        pairs = [
            (name, value)
            for name, value in parse_qsl(query, keep_blank_values=True)
            if not _param_matches(name, matchers)
        ]
        query = urlencode(sorted(pairs, key=lambda pair: pair[0]))

    fragment = "" if strip_hash else parts.fragment
    return urlunsplit((scheme, netloc, path, query, fragment))


def clean_url(url: str) -> str:
    """Normalize and drop tracking parameters (utm_*, and s/t on tweet links)."""
    matchers: list = list(TRACKING_PARAMS)
    if TWEET_URL_REGEX.search(url):
        matchers.extend(["s", "t"])
    return normalize_url(
        url,
        strip_hash=True,
        strip_www=False,
        remove_trailing_slash=False,
        remove_query_parameters=matchers,
    )


def _is_private_host(host: str) -> bool:
    if host in {"localhost", "0.0.0.0"} or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
    )


def validate_url(url: str) -> str:
    """
    Well-formedness check for URLs the backend may fetch.

    Accepts http/https URLs whose host is public. Returns the URL unchanged.

    Raises:
        ValidationError: wrong scheme, localhost, or a private address.
    """
    parts = parse_url(url)
    if parts.scheme.lower() not in FETCHABLE_SCHEMES:
        raise ValidationError(
            message="URL must use http or https",
            field="url",
            context={"scheme": parts.scheme},
        )
    host = (parts.hostname or "").lower()
    if _is_private_host(host):
        raise ValidationError(
            message="URL must not point at a local or private address",
            field="url",
            context={"host": host},
        )
    return url


def validate_remote_url(url: str) -> str:
    """Normalize, then validate. Returns the normalized URL."""
    normalized = normalize_url(url, strip_hash=True, strip_www=False)
    return validate_url(normalized)


def is_url(value: str) -> bool:
    try:
        validate_url(value)
        return True
    except ValidationError:
        logger.info("not an url: %s", value)
        return False
