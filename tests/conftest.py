from __future__ import annotations

import json
import re
from typing import Dict, List, Tuple

import httpx
import pytest

from gemini_files.api import GeminiClient
from gemini_files.config import Settings

API_KEY = "test-key"


class FakeFileStore:
    """In-memory stand-in for the File API + generateContent, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.files: Dict[str, dict] = {}
        # name -> states returned by successive GETs; the last one repeats.
        self.state_scripts: Dict[str, List[str]] = {}
        # (method, path) -> (status, body) overriding the normal answer.
        self.overrides: Dict[Tuple[str, str], Tuple[int, str]] = {}
        self.generate_body: str = "{}"
        self.requests: List[httpx.Request] = []
        self.generate_payloads: List[dict] = []
        self.delete_bodies: Dict[str, str] = {}
        self._uploads = 0

    # --------------------------- setup helpers ---------------------------

    def add(self, name: str, state: str = "ACTIVE", **extra) -> dict:
        token = name.split("/", 1)[1]
        item = {
            "name": name,
            "displayName": extra.pop("displayName", f"{token}.pdf"),
            "mimeType": extra.pop("mimeType", "application/pdf"),
            "uri": f"https://generativelanguage.googleapis.com/v1beta/{name}",
            "state": state,
        }
        item.update(extra)
        self.files[name] = item
        return item

    def script_states(self, name: str, *states: str) -> None:
        self.state_scripts[name] = list(states)

    def fail(self, method: str, path: str, status: int, body: str = "") -> None:
        self.overrides[(method, path)] = (status, body)

    def http_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handle))

    def calls(self, method: str, path_prefix: str = "") -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.startswith(path_prefix)]

    @property
    def list_calls(self) -> List[httpx.Request]:
        return [r for r in self.calls("GET", "/v1beta/files") if r.url.path == "/v1beta/files"]

    # --------------------------- routing ---------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        override = self.overrides.get((request.method, path))
        if override is not None:
            status, body = override
            return httpx.Response(status, text=body)

        if request.method == "GET" and path == "/v1beta/files":
            return self._list(request)
        if request.method == "GET" and path.startswith("/v1beta/files/"):
            return self._get(path[len("/v1beta/"):])
        if request.method == "DELETE" and path.startswith("/v1beta/files/"):
            return self._delete(path[len("/v1beta/"):])
        if request.method == "POST" and path == "/upload/v1beta/files":
            return self._upload(request)
        if request.method == "POST" and path.endswith(":generateContent"):
            self.generate_payloads.append(json.loads(request.content))
            return httpx.Response(200, text=self.generate_body)
        return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND", "message": path}})

    def _list(self, request: httpx.Request) -> httpx.Response:
        page_size = int(request.url.params.get("pageSize", "100"))
        offset = int(request.url.params.get("pageToken") or 0)
        items = list(self.files.values())
        page = items[offset:offset + page_size]
        body: dict = {"files": page} if page else {}
        if offset + page_size < len(items):
            body["nextPageToken"] = str(offset + page_size)
        return httpx.Response(200, json=body)

    def _get(self, name: str) -> httpx.Response:
        if name not in self.files:
            return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND", "message": f"{name} not found"}})
        item = dict(self.files[name])
        script = self.state_scripts.get(name)
        if script:
            item["state"] = script.pop(0) if len(script) > 1 else script[0]
        return httpx.Response(200, json=item)

    def _delete(self, name: str) -> httpx.Response:
        if name not in self.files:
            return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND", "message": f"{name} not found"}})
        del self.files[name]
        return httpx.Response(200, text=self.delete_bodies.get(name, "{}"))

    def _upload(self, request: httpx.Request) -> httpx.Response:
        self._uploads += 1
        match = re.search(rb'"displayName": "([^"]*)"', request.content)
        display_name = match.group(1).decode() if match else ""
        name = f"files/upload-{self._uploads}"
        item = self.add(name, state="PROCESSING", displayName=display_name)
        return httpx.Response(200, json={"file": item})


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


@pytest.fixture
def store() -> FakeFileStore:
    return FakeFileStore()


@pytest.fixture
def client(store: FakeFileStore):
    c = GeminiClient(API_KEY, Settings(), http=store.http_client())
    yield c
    c.close()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()

