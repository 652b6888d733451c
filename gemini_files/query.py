import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from gemini_files.api import GeminiClient, raise_for_api_error
from gemini_files.config import SAMPLING_PARAMS
from gemini_files.errors import InputError, MalformedResponseError, QueryError, SafetyBlockError
from gemini_files.models import QueryRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryResult:
    output: str
    warnings: Tuple[str, ...] = ()


def read_query_file(path: Path) -> str:
    if not path.is_file():
        raise InputError(f"Query file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raise InputError(f"Query file is not valid UTF-8 text: {path}") from None
    except OSError as e:
        raise InputError(f"Cannot read query file {path}: {e.strerror or e}") from None
    if not text.strip():
        raise InputError(f"Query file empty: {path}")
    return text


def resolve_target(client: GeminiClient, target_id: str) -> Tuple[str, str]:
    """
    Current (mimeType, uri) of the target file. Both must be present.
    """
    metadata = client.get_file(target_id)
    raise_for_api_error(metadata, f"get {target_id}")
    mime_type = metadata.get("mimeType")
    uri = metadata.get("uri")
    if not mime_type or not uri:
        raise MalformedResponseError(f"get {target_id}: missing mimeType/uri in metadata: {metadata}")
    return str(mime_type), str(uri)


def build_generate_payload(request: QueryRequest, mime_type: str, file_uri: str) -> Dict[str, Any]:
    return {
        "contents": [
            {
                "parts": [
                    {"text": request.prompt_text},
                    {"fileData": {"mimeType": mime_type, "fileUri": file_uri}},
                ]
            }
        ],
        "generationConfig": dict(SAMPLING_PARAMS, maxOutputTokens=request.max_output_tokens),
    }


def classify_response(payload: Dict[str, Any]) -> Tuple[str, List[str]]:
    """
    Turn a generateContent response into (text, warnings) or raise.
    Checks run in order: store error, blocked prompt, no candidates,
    SAFETY finish, any other non-STOP finish.
    """
    raise_for_api_error(payload, "generateContent")

    feedback = payload.get("promptFeedback")
    block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
    if block_reason:
        raise SafetyBlockError(f"Query blocked. Reason: {block_reason}")

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise QueryError("Query returned no candidates.")

    candidate = candidates[0] if isinstance(candidates[0], dict) else {}
    finish_reason = candidate.get("finishReason")
    if finish_reason == "SAFETY":
        raise SafetyBlockError("Query response flagged for safety.")
    if finish_reason and finish_reason != "STOP":
        raise QueryError(f"Generation stopped early. Finish reason: {finish_reason}")

    text = _candidate_text(candidate)
    warnings: List[str] = []
    if not text:
        warnings.append("Query OK but no text content found.")
    return text, warnings


def run_query(client: GeminiClient, request: QueryRequest) -> QueryResult:
    """
    Resolve the target, send one generateContent call (no retry) and classify it.
    Raw mode returns the body untouched and skips the semantic checks.
    """
    mime_type, uri = resolve_target(client, request.target_id)
    logger.info("Found MIME: %s, URI: %s", mime_type, uri)

    payload = build_generate_payload(request, mime_type, uri)
    logger.info("Sending query to model %s...", request.model_name)
    body = client.generate_content(request.model_name, payload)

    if not body.strip():
        raise MalformedResponseError("generateContent: empty response body")
    if request.output_mode == "raw":
        return QueryResult(output=body)

    try:
        parsed = json.loads(body)
    except ValueError:
        raise MalformedResponseError(f"generateContent: response is not valid JSON: {body[:500]!r}") from None
    if not isinstance(parsed, dict):
        raise MalformedResponseError("generateContent: expected a JSON object")

    text, warnings = classify_response(parsed)
    for warning in warnings:
        logger.warning(warning)
    return QueryResult(output=text, warnings=tuple(warnings))


def _candidate_text(candidate: Dict[str, Any]) -> str:
    content = candidate.get("content")
    parts: Optional[List[Any]] = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    return "".join(texts)
