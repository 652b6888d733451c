import logging
import time
from dataclasses import dataclass
from typing import Callable, Generator, Iterable, List, Optional

from gemini_files.api import GeminiClient
from gemini_files.config import DEFAULT_PAGE_PAUSE, DEFAULT_PAGE_SIZE
from gemini_files.errors import MalformedResponseError
from gemini_files.models import RemoteObject, Snapshot

logger = logging.getLogger(__name__)

Sleep = Callable[[float], None]


def iter_file_pages(
    client: GeminiClient,
    page_size: int = DEFAULT_PAGE_SIZE,
    pause: float = DEFAULT_PAGE_PAUSE,
    sleep: Sleep = time.sleep,
) -> Generator[List[RemoteObject], None, None]:
    """
    Page through the File API and yield each page's files in the order the store sent them.
    Stops at the first response without a nextPageToken.
    """
    page_token: Optional[str] = None
    while True:
        page = client.list_files(page_size=page_size, page_token=page_token)
        items = page.get("files") or []
        if not isinstance(items, list):
            raise MalformedResponseError(f"list files: 'files' is not a list: {items!r}")
        yield [RemoteObject.from_api(item) for item in items]

        page_token = page.get("nextPageToken") or None
        if not page_token:
            break
        sleep(pause)


def fetch_snapshot(
    client: GeminiClient,
    page_size: int = DEFAULT_PAGE_SIZE,
    pause: float = DEFAULT_PAGE_PAUSE,
    sleep: Sleep = time.sleep,
) -> Snapshot:
    """
    Assemble every page into one Snapshot. Any failure aborts the whole fetch;
    a partial snapshot is never returned.
    """
    logger.info("Fetching file list from API...")
    snapshot: Snapshot = []
    pages = 0
    for page in iter_file_pages(client, page_size=page_size, pause=pause, sleep=sleep):
        pages += 1
        snapshot.extend(page)
    logger.info("File list fetched: %d files across %d page(s).", len(snapshot), pages)
    return snapshot


@dataclass(frozen=True)
class Selection:
    files: Snapshot
    missing: List[str]


def select_files(snapshot: Snapshot, requested: Iterable[str]) -> Selection:
    """
    Filter `snapshot` to the requested (already normalized) ids. Snapshot order is kept.
    """
    wanted = list(dict.fromkeys(requested))
    wanted_set = set(wanted)
    files = [f for f in snapshot if f.id in wanted_set]
    found = {f.id for f in files}
    missing = [file_id for file_id in wanted if file_id not in found]
    return Selection(files=files, missing=missing)


def list_remote_files(
    client: GeminiClient,
    requested: Optional[Iterable[str]] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    pause: float = DEFAULT_PAGE_PAUSE,
    sleep: Sleep = time.sleep,
) -> Selection:
    """
    Fresh listing. With `requested` ids, only those files are returned and any id
    not in the store is reported in `missing` (a warning, not a failure).
    """
    snapshot = fetch_snapshot(client, page_size=page_size, pause=pause, sleep=sleep)
    if requested is None:
        return Selection(files=snapshot, missing=[])

    selection = select_files(snapshot, requested)
    for file_id in selection.missing:
        logger.warning("Requested file id not found: %s", file_id)
    logger.info("Found %d matching files.", len(selection.files))
    return selection
