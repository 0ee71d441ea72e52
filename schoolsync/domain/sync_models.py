from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from schoolsync.domain.time_utils import now_ms

SYNC_QUEUE_KEY = "sync_queue"
OFFLINE_DATA_KEY = "offline_data"
LAST_SYNC_KEY = "last_sync"

SYNCED_STATUS = "synced"

_ID_ALPHABET = string.digits + string.ascii_lowercase


class OperationType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def generate_operation_id(epoch_ms: int | None = None) -> str:
    stamp = now_ms() if epoch_ms is None else epoch_ms
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{stamp}_{suffix}"


@dataclass
class QueuedOperation:
    """Mutación local pendiente de confirmarse en el almacén remoto.

    Se serializa con las mismas claves camelCase que usa el cliente web
    (`documentId`, `retryCount`...) para que una cola guardada sea legible
    por ambos lados.
    """

    type: OperationType
    collection: str
    document_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    enqueued_at: int = 0
    retry_count: int = 0

    def __post_init__(self) -> None:
        self.type = OperationType(self.type)
        if not self.enqueued_at:
            self.enqueued_at = now_ms()
        if not self.id:
            self.id = generate_operation_id(self.enqueued_at)

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.document_id}"

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "collection": self.collection,
            "documentId": self.document_id,
            "data": self.payload,
            "timestamp": self.enqueued_at,
            "retryCount": self.retry_count,
        }

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "QueuedOperation":
        if not isinstance(raw, dict):
            raise TypeError(f"Entrada de cola no es un objeto: {type(raw).__name__}")
        data = raw.get("data")
        return cls(
            id=str(raw["id"]),
            type=OperationType(raw["type"]),
            collection=str(raw["collection"]),
            document_id=str(raw["documentId"]),
            payload=dict(data) if isinstance(data, dict) else {},
            enqueued_at=int(raw.get("timestamp") or 0),
            retry_count=int(raw.get("retryCount") or 0),
        )


ExhaustedCallback = Callable[[QueuedOperation, Optional[BaseException]], None]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    on_exhausted: ExhaustedCallback | None = None

    def is_exhausted(self, operation: QueuedOperation) -> bool:
        return operation.retry_count > self.max_retries


@dataclass(frozen=True)
class SyncStatus:
    is_online: bool
    queue_length: int
    last_sync: str | None
    sync_in_progress: bool

    @property
    def pending_count(self) -> int:
        return self.queue_length

    def to_json(self) -> dict[str, Any]:
        return {
            "isOnline": self.is_online,
            "queueLength": self.queue_length,
            "lastSync": self.last_sync,
            "syncInProgress": self.sync_in_progress,
        }


@dataclass(frozen=True)
class FlushResult:
    attempted: int = 0
    committed: bool = False
    applied: int = 0
    dropped: int = 0
    remaining: int = 0
    skipped_reason: str | None = None
    error: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def to_json(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "committed": self.committed,
            "applied": self.applied,
            "dropped": self.dropped,
            "remaining": self.remaining,
            "skipped_reason": self.skipped_reason,
            "error": self.error,
        }


@dataclass(frozen=True)
class FullSyncResult:
    """Flush de la cola seguido de un pull de cada colección."""

    flush: FlushResult
    pulled: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed and self.flush.error is None

    def to_json(self) -> dict[str, Any]:
        return {"flush": self.flush.to_json(), "pulled": dict(self.pulled), "failed": dict(self.failed)}


@dataclass(frozen=True)
class HealthCheckItem:
    key: str
    status: str
    message: str
    action_id: str
    category: str


@dataclass(frozen=True)
class HealthReport:
    generated_at: str
    checks: tuple[HealthCheckItem, ...]

    @property
    def ok(self) -> bool:
        return all(item.status != "ERROR" for item in self.checks)
