from __future__ import annotations

from typing import Any, Callable, Protocol

from schoolsync.domain.models import FirebaseConfig

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
NetworkCallback = Callable[[bool], None]
Unsubscribe = Callable[[], None]


class KeyValueStorePort(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def set_many(self, values: dict[str, str]) -> None:
        """Escribe varias claves de forma atómica."""
        ...

    def delete(self, key: str) -> None:
        ...


class RemoteBatchPort(Protocol):
    def set(self, collection: str, document_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        ...

    def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        ...

    def delete(self, collection: str, document_id: str) -> None:
        ...

    def commit(self) -> None:
        ...


class RemoteStorePort(Protocol):
    def batch(self) -> RemoteBatchPort:
        ...

    def set_document(self, collection: str, document_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        ...

    def update_document(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        ...

    def delete_document(self, collection: str, document_id: str) -> None:
        ...

    def fetch_collection(
        self,
        collection: str,
        *,
        field: str | None = None,
        value: Any = None,
    ) -> list[dict[str, Any]]:
        ...

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        field: str | None = None,
        value: Any = None,
        order_by: str | None = None,
    ) -> Unsubscribe:
        ...

    def enable_network(self) -> None:
        ...

    def disable_network(self) -> None:
        ...


class NetworkMonitorPort(Protocol):
    def is_online(self) -> bool:
        ...

    def set_online(self, online: bool) -> bool:
        ...

    def subscribe(self, callback: NetworkCallback) -> Unsubscribe:
        ...

    def refresh(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class IntervalTimerPort(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class FirebaseConfigStorePort(Protocol):
    def load(self) -> FirebaseConfig | None:
        ...

    def save(self, config: FirebaseConfig) -> FirebaseConfig:
        ...


class FirebaseSetupProbe(Protocol):
    def check(self) -> dict[str, tuple[bool, str, str]]:
        ...


class RemoteConnectivityProbe(Protocol):
    def check(self) -> tuple[bool, float | None, str]:
        ...


class LocalDbProbe(Protocol):
    def check(self) -> dict[str, tuple[bool, str, str]]:
        ...
