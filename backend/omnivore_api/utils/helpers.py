"""Small shared helpers: id validation, stable hashing, date sanity checks."""

import hashlib
import logging
import re
from datetime import datetime
from typing import Optional, Union

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

# Largest positive value of a PostgreSQL bigint.
_BIGINT_MASK = (1 << 63) - 1


def validate_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value or ""))


def string_to_hash(value: str, convert_to_uuid: bool = False) -> str:
    """
    MD5 hex digest of a string, optionally laid out as a UUID.

    >>> string_to_hash("test", convert_to_uuid=True)
    '098f6bcd-4621-d373-cade-4e832627b4f6'
    """
    digest = hashlib.md5(value.encode("utf-8")).hexdigest()
    if not convert_to_uuid:
        return digest
    return f"{digest[:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:]}"


def advisory_lock_key(*parts: str) -> int:
    """Stable signed-bigint key for pg_advisory_xact_lock from a tuple of strings."""
    digest = string_to_hash("\x1f".join(parts))
    return int(digest[:16], 16) & _BIGINT_MASK


def validated_date(value: Union[datetime, str, None]) -> Optional[datetime]:
    """
    Parse an ISO date (or pass a datetime through), discarding garbage.

    Returns None for empty input and unparseable strings.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        logger.error("error validating date %r: %s", value, e)
        return None
