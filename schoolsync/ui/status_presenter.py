from __future__ import annotations

from dataclasses import dataclass

from schoolsync.domain.sync_models import FlushResult, SyncStatus
from schoolsync.domain.time_utils import parse_iso


@dataclass(frozen=True)
class SyncStatusView:
    """Decisión inmutable para pintar el estado de sincronización sin depender de Qt."""

    badge_text: str
    badge_variant: str
    detail: str
    last_sync_text: str
    sync_enabled: bool
    sync_tooltip: str


def _format_last_sync(last_sync: str | None) -> str:
    moment = parse_iso(last_sync)
    if moment is None:
        return "Nunca sincronizado"
    return f"Última sincronización: {moment.astimezone().strftime('%d/%m/%Y %H:%M')}"


def build_status_view(status: SyncStatus) -> SyncStatusView:
    last_sync_text = _format_last_sync(status.last_sync)
    pending = status.queue_length
    if status.sync_in_progress:
        return SyncStatusView(
            badge_text="Sincronizando",
            badge_variant="neutral",
            detail=f"Enviando {pending} operaciones pendientes…",
            last_sync_text=last_sync_text,
            sync_enabled=False,
            sync_tooltip="Ya hay una sincronización en curso.",
        )
    if not status.is_online:
        detail = "Sin conexión. Los cambios se guardan en local."
        if pending:
            detail = f"Sin conexión. {pending} cambios esperando conexión."
        return SyncStatusView(
            badge_text="Sin conexión",
            badge_variant="warning",
            detail=detail,
            last_sync_text=last_sync_text,
            sync_enabled=False,
            sync_tooltip="Se sincronizará automáticamente al recuperar la conexión.",
        )
    if pending:
        return SyncStatusView(
            badge_text="Pendiente",
            badge_variant="warning",
            detail=f"{pending} cambios pendientes de sincronizar.",
            last_sync_text=last_sync_text,
            sync_enabled=True,
            sync_tooltip="Enviar ahora los cambios pendientes.",
        )
    return SyncStatusView(
        badge_text="Sincronizado",
        badge_variant="success",
        detail="Todos los cambios están en Firestore.",
        last_sync_text=last_sync_text,
        sync_enabled=True,
        sync_tooltip="No hay cambios pendientes.",
    )


def describe_flush_result(result: FlushResult) -> tuple[str, str]:
    """Devuelve (severidad, mensaje) para el aviso tras un flush manual."""
    if result.skipped_reason == "offline":
        return "warning", "Sin conexión: la cola se enviará al reconectar."
    if result.skipped_reason == "in_progress":
        return "info", "Ya hay una sincronización en curso."
    if result.skipped_reason == "empty":
        return "info", "No hay cambios pendientes."
    if result.skipped_reason == "not_configured":
        return "error", "Firebase no está configurado."
    if not result.committed:
        return "error", f"No se pudo sincronizar; se reintentará. {result.error or ''}".strip()
    message = f"{result.applied} cambios sincronizados."
    if result.dropped:
        message += f" {result.dropped} descartados tras agotar reintentos."
    return ("warning" if result.dropped else "success"), message
