import re
from typing import Iterable, List, Optional, Tuple

from gemini_files.errors import InputError

FILE_PREFIX = "files/"

_TOKEN_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_URI_RE = re.compile(r"^https://[^/]+/.*?(files/[A-Za-z0-9._-]+)/?$")


def normalize_file_id(raw: str) -> Optional[str]:
    """
    'files/abc' -> 'files/abc', 'abc' -> 'files/abc', anything else -> None.
    """
    value = raw.strip()
    if value.startswith(FILE_PREFIX) and len(value) > len(FILE_PREFIX):
        return value
    if _TOKEN_RE.match(value):
        return FILE_PREFIX + value
    return None


def normalize_file_ids(raws: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Returns (unique normalized ids in first-seen order, rejected raw values).
    """
    seen = set()
    normalized: List[str] = []
    rejected: List[str] = []
    for raw in raws:
        file_id = normalize_file_id(raw)
        if file_id is None:
            rejected.append(raw)
            continue
        if file_id not in seen:
            seen.add(file_id)
            normalized.append(file_id)
    return normalized, rejected


def normalize_query_target(raw: str) -> str:
    """Accepts an id, a bare token, or a full https locator ending in files/<token>."""
    value = raw.strip()
    if value.startswith("https://"):
        match = _URI_RE.match(value)
        if not match:
            raise InputError(f"Cannot extract a file id from URI: {raw}")
        return match.group(1)
    file_id = normalize_file_id(value)
    if file_id is None:
        raise InputError(f"Invalid file identifier: {raw}")
    return file_id
