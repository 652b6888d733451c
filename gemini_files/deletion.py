import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from gemini_files.api import GeminiClient, describe_api_error
from gemini_files.batch import for_each
from gemini_files.config import DEFAULT_DELETE_DELAY, DEFAULT_PAGE_PAUSE, DEFAULT_PAGE_SIZE, DEFAULT_WORKERS
from gemini_files.errors import ApiError, GeminiFilesError
from gemini_files.models import DeletionPlan, Snapshot
from gemini_files.snapshot import fetch_snapshot

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


@dataclass
class DeletionResult:
    plan: DeletionPlan
    confirmed: bool = False
    deleted: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    warnings: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def plan_deletion(snapshot: Snapshot, requested: Optional[Iterable[str]] = None) -> DeletionPlan:
    """
    Resolve a delete request against a snapshot. `requested=None` targets everything.
    Requested ids the snapshot does not contain become `unresolved_ids`.
    """
    if requested is None:
        return DeletionPlan(
            requested_ids=None,
            resolved_ids=tuple(f.id for f in snapshot),
            unresolved_ids=(),
        )

    wanted = list(dict.fromkeys(requested))
    available = {f.id for f in snapshot}
    resolved = tuple(file_id for file_id in wanted if file_id in available)
    unresolved = tuple(file_id for file_id in wanted if file_id not in available)
    return DeletionPlan(requested_ids=frozenset(wanted), resolved_ids=resolved, unresolved_ids=unresolved)


def delete_one(client: GeminiClient, name: str) -> Optional[str]:
    """
    Delete one file. Returns a warning when the store answered with something
    other than an empty body; raises GeminiFilesError on failure.
    """
    body = client.delete_file(name).strip()
    if body in ("", "{}"):
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        detail = describe_api_error(payload) or str(payload["error"])
        raise ApiError(f"delete {name}: {detail}")
    return f"delete OK but response: {body[:500]}"


def execute_plan(
    client: GeminiClient,
    plan: DeletionPlan,
    delay: float = DEFAULT_DELETE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    workers: int = DEFAULT_WORKERS,
) -> DeletionResult:
    """
    Delete every resolved id, pausing `delay` seconds after each call.
    Each failure is recorded and the remaining ids are still attempted.
    """
    result = DeletionResult(plan=plan, confirmed=True)
    total = len(plan.resolved_ids)

    def _delete(item: Tuple[int, str]) -> Tuple[str, Optional[str], Optional[str]]:
        index, name = item
        logger.info("Deleting %s (%d/%d)...", name, index, total)
        try:
            warning = delete_one(client, name)
        except GeminiFilesError as exc:
            return name, None, str(exc)
        finally:
            sleep(delay)
        return name, warning, None

    outcomes = for_each(list(enumerate(plan.resolved_ids, start=1)), _delete, workers=workers)
    for name, warning, error in outcomes:
        if error is not None:
            logger.error("Error deleting %s: %s", name, error)
            result.errors[name] = error
            continue
        if warning is not None:
            logger.warning("%s: %s", name, warning)
            result.warnings[name] = warning
        result.deleted.append(name)
    return result


def reconcile_deletion(
    client: GeminiClient,
    requested: Optional[Iterable[str]],
    confirm: Confirm,
    page_size: int = DEFAULT_PAGE_SIZE,
    page_pause: float = DEFAULT_PAGE_PAUSE,
    delay: float = DEFAULT_DELETE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    workers: int = DEFAULT_WORKERS,
) -> DeletionResult:
    """
    Fetch a fresh snapshot, resolve the request against it, ask `confirm`, then delete.
    Nothing to delete and a declined confirmation are both successful no-ops.
    """
    snapshot = fetch_snapshot(client, page_size=page_size, pause=page_pause, sleep=sleep)
    plan = plan_deletion(snapshot, requested)

    for file_id in plan.unresolved_ids:
        logger.warning("Requested file id not found: %s", file_id)
    if not plan.resolved_ids:
        if plan.targets_all:
            logger.info("No files found to delete.")
        else:
            logger.warning("No valid files specified or found.")
        return DeletionResult(plan=plan)

    logger.info("Files to be deleted:")
    for file_id in plan.resolved_ids:
        logger.info(" - %s", file_id)
    if not confirm(f"Targeting {len(plan.resolved_ids)} file(s) for deletion. Proceed?"):
        logger.warning("Deletion aborted.")
        return DeletionResult(plan=plan)

    return execute_plan(client, plan, delay=delay, sleep=sleep, workers=workers)
