import logging
import mimetypes
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from gemini_files.activation import ActivationReport, await_activation
from gemini_files.api import GeminiClient, describe_api_error
from gemini_files.batch import for_each
from gemini_files.config import DEFAULT_MIME_TYPE, DEFAULT_VERIFY_DELAYS, DEFAULT_WORKERS
from gemini_files.errors import GeminiFilesError
from gemini_files.models import UploadOutcome

logger = logging.getLogger(__name__)

MimeDetector = Callable[[Path], Optional[str]]


@dataclass(frozen=True)
class UploadReport:
    outcomes: List[UploadOutcome]
    activation: ActivationReport

    @property
    def initiated_ids(self) -> List[str]:
        return [o.id for o in self.outcomes if o.ok]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes) and self.activation.ok


def detect_mime_type(path: Path) -> Optional[str]:
    """
    Best-effort MIME detection: `file --mime-type` when available, else the
    extension table. None when neither gives an answer.
    """
    if shutil.which("file"):
        try:
            proc = subprocess.run(
                ["file", "--brief", "--mime-type", str(path)],
                capture_output=True,
                text=True,
                timeout=30,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("'file' failed for %s: %s", path, exc)
        else:
            detected = proc.stdout.strip()
            if proc.returncode == 0 and "/" in detected:
                return detected
            logger.debug("'file' gave odd output for %s: %r", path, detected)

    guessed, _ = mimetypes.guess_type(str(path))
    return guessed


def initiate_upload(
    client: GeminiClient,
    path: Path,
    detector: MimeDetector = detect_mime_type,
    default_mime_type: str = DEFAULT_MIME_TYPE,
) -> UploadOutcome:
    """
    One initiation call for one local file. Never raises for per-file problems;
    they end up in the outcome's `error`.
    """
    if not path.is_file():
        logger.error("File not found: %s", path)
        return UploadOutcome(local_path=path, error="not found")

    display_name = path.name
    mime_type = detector(path) or default_mime_type
    logger.info("Uploading %s (display: %s, type: %s)", path, display_name, mime_type)

    try:
        response = client.upload_file(path, display_name=display_name, mime_type=mime_type)
    except (GeminiFilesError, OSError) as exc:
        logger.error("Upload failed for %s: %s", path, exc)
        return UploadOutcome(local_path=path, error=str(exc))

    file_info = response.get("file")
    name = file_info.get("name") if isinstance(file_info, dict) else None
    if not name:
        detail = describe_api_error(response) or f"unexpected response: {response}"
        logger.error("Upload accepted for %s but the API returned no file name: %s", path, detail)
        return UploadOutcome(local_path=path, error=detail)

    logger.info("  OK (%s)", name)
    return UploadOutcome(local_path=path, id=str(name))


def upload_files(
    client: GeminiClient,
    paths: Sequence[Path],
    detector: MimeDetector = detect_mime_type,
    default_mime_type: str = DEFAULT_MIME_TYPE,
    delays: Iterable[float] = DEFAULT_VERIFY_DELAYS,
    sleep: Callable[[float], None] = time.sleep,
    workers: int = DEFAULT_WORKERS,
) -> UploadReport:
    """
    Initiate every upload independently, then poll the initiated ones until
    they are ACTIVE or give up. A bad path never aborts the batch.
    """
    outcomes = for_each(
        list(paths),
        lambda p: initiate_upload(client, p, detector=detector, default_mime_type=default_mime_type),
        workers=workers,
    )
    initiated = [o.id for o in outcomes if o.ok]
    activation = await_activation(client, initiated, delays=delays, sleep=sleep, workers=workers)
    return UploadReport(outcomes=outcomes, activation=activation)
