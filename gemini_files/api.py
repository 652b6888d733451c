import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from gemini_files.config import Settings
from gemini_files.errors import ApiError, ConfigError, MalformedResponseError, TransportError

logger = logging.getLogger(__name__)

# (connect, total) seconds per operation.
LIST_TIMEOUT = httpx.Timeout(60.0, connect=15.0)
METADATA_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
DELETE_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
UPLOAD_TIMEOUT = httpx.Timeout(600.0, connect=15.0)
GENERATE_TIMEOUT = httpx.Timeout(600.0, connect=15.0)


class GeminiClient:
    """
    Blocking client for the Gemini File API and generateContent.
    Every call returns the parsed body or raises a GeminiFilesError subclass.
    """

    def __init__(self, api_key: str, settings: Settings, http: Optional[httpx.Client] = None) -> None:
        if not api_key:
            raise ConfigError("API key is empty.")
        self._api_key = api_key
        self._settings = settings
        self._http = http or httpx.Client()

    def __enter__(self) -> "GeminiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # --------------------------- File API ---------------------------

    def list_files(self, page_size: int, page_token: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        resp = self._request("GET", f"{self._settings.api_root}/files", "list files", LIST_TIMEOUT, params=params)
        return _json_object(resp, "list files")

    def get_file(self, name: str) -> Dict[str, Any]:
        resp = self._request("GET", f"{self._settings.api_root}/{name}", f"get {name}", METADATA_TIMEOUT)
        return _json_object(resp, f"get {name}")

    def delete_file(self, name: str) -> str:
        """Returns the raw response body; the store normally answers with '{}'."""
        resp = self._request("DELETE", f"{self._settings.api_root}/{name}", f"delete {name}", DELETE_TIMEOUT)
        return resp.text

    def upload_file(self, path: Path, display_name: str, mime_type: str) -> Dict[str, Any]:
        metadata = json.dumps({"file": {"displayName": display_name}})
        with path.open("rb") as fh:
            resp = self._request(
                "POST",
                f"{self._settings.upload_root}/files",
                f"upload {path}",
                UPLOAD_TIMEOUT,
                headers={"X-Goog-Upload-Protocol": "multipart"},
                files={
                    "metadata": (None, metadata, "application/json"),
                    "file": (display_name, fh, mime_type),
                },
            )
        return _json_object(resp, f"upload {path}")

    # --------------------------- Generation ---------------------------

    def generate_content(self, model: str, payload: Dict[str, Any]) -> str:
        """Returns the unparsed response body."""
        resp = self._request(
            "POST",
            f"{self._settings.api_root}/models/{model}:generateContent",
            f"generateContent ({model})",
            GENERATE_TIMEOUT,
            json=payload,
        )
        return resp.text

    # --------------------------- Internals ---------------------------

    def _request(self, method: str, url: str, operation: str, timeout: httpx.Timeout, **kwargs) -> httpx.Response:
        params = dict(kwargs.pop("params", None) or {})
        params["key"] = self._api_key
        logger.debug("%s %s", method, url)
        try:
            resp = self._http.request(method, url, params=params, timeout=timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{operation}: timed out ({type(exc).__name__})") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{operation}: {type(exc).__name__}: {exc}") from exc

        if resp.is_error:
            payload = _try_json(resp.text)
            detail = describe_api_error(payload) if payload else None
            message = f"{operation} failed (HTTP {resp.status_code})"
            if detail:
                message += f": {detail}"
            elif resp.text.strip():
                message += f": {resp.text.strip()[:500]}"
            raise TransportError(message, status=resp.status_code, payload=payload)
        return resp


def raise_for_api_error(payload: Dict[str, Any], operation: str) -> None:
    """Raise ApiError if a well-formed response carries an `error` payload."""
    error = payload.get("error")
    if not error:
        return
    if isinstance(error, dict):
        raise ApiError(
            f"{operation}: {describe_api_error(payload)}",
            code=error.get("code"),
            status=error.get("status"),
        )
    raise ApiError(f"{operation}: {error}")


def describe_api_error(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """'<code> <status>: <message>' from a store error payload, or None."""
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code", "?")
    status = error.get("status", "?")
    message = error.get("message", "?")
    if (code, status, message) == ("?", "?", "?"):
        return None
    return f"{code} {status}: {message}"


def _try_json(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _json_object(resp: httpx.Response, operation: str) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        raise MalformedResponseError(f"{operation}: response is not valid JSON: {resp.text[:500]!r}") from None
    if not isinstance(data, dict):
        raise MalformedResponseError(f"{operation}: expected a JSON object, got {type(data).__name__}")
    return data
