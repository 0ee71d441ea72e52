from __future__ import annotations

from datetime import datetime

from schoolsync.domain.ports import FirebaseSetupProbe, LocalDbProbe, RemoteConnectivityProbe
from schoolsync.domain.sync_models import HealthCheckItem, HealthReport


class HealthCheckService:
    def __init__(
        self,
        config_probe: FirebaseSetupProbe,
        connectivity_probe: RemoteConnectivityProbe,
        local_db_probe: LocalDbProbe,
    ) -> None:
        self._config_probe = config_probe
        self._connectivity_probe = connectivity_probe
        self._local_db_probe = local_db_probe

    def run(self) -> HealthReport:
        checks: list[HealthCheckItem] = []
        checks.extend(self._build_checks("Configuración", self._config_probe.check()))

        reachable, latency_ms, latency_message = self._connectivity_probe.check()
        checks.append(
            HealthCheckItem(
                key="firestore_reachable",
                status="OK" if reachable else "WARN",
                message="Firestore alcanzable." if reachable else "Sin conexión: las escrituras quedan en cola local.",
                action_id="open_network_help",
                category="Conectividad",
            )
        )
        checks.append(
            HealthCheckItem(
                key="firestore_latency",
                status="OK" if latency_ms is not None and latency_ms < 1500 else "WARN",
                message=latency_message,
                action_id="open_sync_settings",
                category="Conectividad",
            )
        )

        checks.extend(self._build_checks("Integridad local", self._local_db_probe.check()))
        return HealthReport(generated_at=datetime.now().isoformat(), checks=tuple(checks))

    @staticmethod
    def _build_checks(category: str, checks: dict[str, tuple[bool, str, str]]) -> list[HealthCheckItem]:
        return [
            HealthCheckItem(
                key=key,
                status="OK" if ok else "ERROR",
                message=message,
                action_id=action_id,
                category=category,
            )
            for key, (ok, message, action_id) in checks.items()
        ]
