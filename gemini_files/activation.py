"""
Activation poller.

Uploaded files start out PROCESSING and move to ACTIVE or FAILED on the store's
schedule. Every file still pending is checked once per round; rounds are separated
by a fixed, ordered delay schedule. The first round runs immediately.

    pending -> active    store reports ACTIVE
    pending -> failed    store reports FAILED
    pending -> error     the status check itself failed
    pending -> timeout   still pending after the last round
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Sequence

from gemini_files.api import GeminiClient, raise_for_api_error
from gemini_files.batch import for_each
from gemini_files.config import DEFAULT_VERIFY_DELAYS, DEFAULT_WORKERS
from gemini_files.errors import GeminiFilesError, MalformedResponseError
from gemini_files.models import VerificationEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivationReport:
    entries: Dict[str, VerificationEntry]
    rounds: int
    waited: float

    @property
    def active_ids(self) -> List[str]:
        return [e.id for e in self.entries.values() if e.status == "active"]

    @property
    def unsuccessful(self) -> List[VerificationEntry]:
        return [e for e in self.entries.values() if e.status != "active"]

    @property
    def ok(self) -> bool:
        return not self.unsuccessful


def poll_schedule(delays: Iterable[float]) -> Iterator[float]:
    """Wait before each round: zero for the first, then each configured delay in turn."""
    yield 0.0
    for delay in delays:
        yield float(delay)


def check_file_state(client: GeminiClient, name: str) -> str:
    """
    Current remote state of `name`. Raises GeminiFilesError when the state cannot be determined.
    """
    metadata = client.get_file(name)
    raise_for_api_error(metadata, f"get {name}")
    state = metadata.get("state")
    if not state:
        raise MalformedResponseError(f"get {name}: state field missing in metadata")
    return str(state)


def _observe(client: GeminiClient, entry: VerificationEntry) -> VerificationEntry:
    entry.attempts += 1
    try:
        state = check_file_state(client, entry.id)
    except GeminiFilesError as exc:
        entry.status = "error"
        entry.detail = str(exc)
        logger.debug("  Check #%d for %s... error: %s", entry.attempts, entry.id, exc)
        return entry

    entry.last_remote_state = state
    if state == "ACTIVE":
        entry.status = "active"
    elif state == "FAILED":
        entry.status = "failed"
    logger.debug("  Check #%d for %s... %s", entry.attempts, entry.id, state)
    return entry


def await_activation(
    client: GeminiClient,
    names: Sequence[str],
    delays: Iterable[float] = DEFAULT_VERIFY_DELAYS,
    sleep: Callable[[float], None] = time.sleep,
    workers: int = DEFAULT_WORKERS,
) -> ActivationReport:
    """
    Poll every file in `names` until it is terminal or the schedule runs out.
    Each round finishes all of its checks before the next delay starts.
    """
    entries = {name: VerificationEntry(id=name) for name in dict.fromkeys(names)}
    if not entries:
        return ActivationReport(entries=entries, rounds=0, waited=0.0)

    logger.info("Starting verification for %d files", len(entries))
    pending = list(entries)
    rounds = 0
    waited = 0.0
    for delay in poll_schedule(delays):
        if not pending:
            break
        if delay > 0:
            logger.info("Waiting %ss before check #%d for %d pending...", delay, rounds + 1, len(pending))
            sleep(delay)
            waited += delay
        rounds += 1
        for_each([entries[name] for name in pending], lambda entry: _observe(client, entry), workers=workers)
        pending = [name for name in pending if not entries[name].terminal]

    for name in pending:
        entries[name].status = "timeout"

    logger.info("Verification complete after %d round(s)", rounds)
    return ActivationReport(entries=entries, rounds=rounds, waited=waited)
