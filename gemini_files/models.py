from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from gemini_files.errors import MalformedResponseError

RemoteState = Literal["PROCESSING", "ACTIVE", "FAILED"]
VerificationStatus = Literal["pending", "active", "failed", "error", "timeout"]
OutputMode = Literal["text", "raw"]


@dataclass(frozen=True)
class RemoteObject:
    """A simplified view of a File API row. `raw` keeps every field the store sent."""
    id: str
    display_name: str
    mime_type: str
    uri: str
    state: str
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, item: Any) -> "RemoteObject":
        if not isinstance(item, dict) or not item.get("name"):
            raise MalformedResponseError(f"File entry without a name: {item!r}")
        return cls(
            id=str(item["name"]),
            display_name=str(item.get("displayName") or ""),
            mime_type=str(item.get("mimeType") or ""),
            uri=str(item.get("uri") or ""),
            state=str(item.get("state") or ""),
            raw=dict(item),
        )

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw) if self.raw else {
            "name": self.id,
            "displayName": self.display_name,
            "mimeType": self.mime_type,
            "uri": self.uri,
            "state": self.state,
        }


# Pages concatenated in arrival order.
Snapshot = List[RemoteObject]


@dataclass
class VerificationEntry:
    """Polling record for one object; only the activation poller mutates it."""
    id: str
    status: VerificationStatus = "pending"
    last_remote_state: str = ""
    attempts: int = 0
    detail: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.status != "pending"


@dataclass(frozen=True)
class UploadOutcome:
    local_path: Path
    id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.id is not None and self.error is None


@dataclass(frozen=True)
class DeletionPlan:
    """`requested_ids` of None means every file in the snapshot."""
    requested_ids: Optional[FrozenSet[str]]
    resolved_ids: Tuple[str, ...]
    unresolved_ids: Tuple[str, ...]

    @property
    def targets_all(self) -> bool:
        return self.requested_ids is None


@dataclass(frozen=True)
class QueryRequest:
    target_id: str
    prompt_text: str
    model_name: str
    max_output_tokens: int
    output_mode: OutputMode = "text"
