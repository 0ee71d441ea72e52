from __future__ import annotations

import argparse
import faulthandler
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable, TextIO

from schoolsync.bootstrap.container import AppContainer, build_container
from schoolsync.bootstrap.exception_handler import install_exception_hook, report_incident
from schoolsync.bootstrap.logging import configure_logging
from schoolsync.bootstrap.settings import resolve_log_dir
from schoolsync.core.errors import AppError, ValidationError
from schoolsync.domain.grading import grade_scores
from schoolsync.domain.models import RECORD_TYPES

logger = logging.getLogger(__name__)

ContainerFactory = Callable[[], AppContainer]


def _write_json(stream: TextIO, payload: Any) -> None:
    stream.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schoolsync", description="Sincronización offline-first con Firestore")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Muestra el estado de la cola de sincronización")
    status.add_argument("--check-network", action="store_true", help="Comprueba la conexión antes de informar")
    subparsers.add_parser("sync", help="Fuerza un flush inmediato de la cola")
    pull = subparsers.add_parser("pull", help="Trae de Firestore una colección, o todas tras vaciar la cola")
    pull.add_argument("collection", nargs="?", choices=sorted(RECORD_TYPES), default=None)
    subparsers.add_parser("health", help="Ejecuta las comprobaciones de salud")
    subparsers.add_parser("watch", help="Mantiene el coordinador en marcha hasta Ctrl+C")
    subparsers.add_parser("ui", help="Abre la ventana de estado de sincronización")

    grade = subparsers.add_parser("grade", help="Calcula total, grado y observación de unas notas")
    grade.add_argument("--first-ca", type=float, default=None)
    grade.add_argument("--second-ca", type=float, default=None)
    grade.add_argument("--exam", type=float, default=None)
    return parser


def _cmd_grade(args: argparse.Namespace, stdout: TextIO, stderr: TextIO) -> int:
    try:
        result = grade_scores(args.first_ca, args.second_ca, args.exam)
    except ValidationError as exc:
        stderr.write(f"{exc}\n")
        return 1
    _write_json(
        stdout,
        {"total": result.total, "grade": result.grade, "remark": result.remark, "status": result.status},
    )
    return 0


def _cmd_status(container: AppContainer, args: argparse.Namespace, stdout: TextIO) -> int:
    container.sync_queue.load()
    if args.check_network:
        container.network.refresh()
    _write_json(stdout, container.coordinator.get_sync_status().to_json())
    return 0


def _connect(container: AppContainer) -> None:
    container.sync_queue.load()
    if container.network.refresh():
        container.mirror.enable_network()


def _cmd_sync(container: AppContainer, stdout: TextIO) -> int:
    _connect(container)
    result = container.coordinator.force_sync()
    _write_json(stdout, result.to_json())
    return 0


def _cmd_pull(container: AppContainer, args: argparse.Namespace, stdout: TextIO) -> int:
    _connect(container)
    if args.collection is not None:
        documents = container.mirror.pull(args.collection)
        _write_json(stdout, {"collection": args.collection, "count": len(documents)})
        return 0
    result = container.coordinator.full_sync()
    _write_json(stdout, result.to_json())
    return 0 if result.ok else 1


def _cmd_health(container: AppContainer, stdout: TextIO) -> int:
    report = container.health_check_service.run()
    _write_json(
        stdout,
        {
            "generated_at": report.generated_at,
            "ok": report.ok,
            "checks": [
                {"key": item.key, "status": item.status, "message": item.message, "category": item.category}
                for item in report.checks
            ],
        },
    )
    return 0 if report.ok else 1


def _cmd_watch(container: AppContainer, stop_event: threading.Event) -> int:
    coordinator = container.coordinator
    coordinator.start()
    try:
        while not stop_event.wait(1.0):
            continue
    except KeyboardInterrupt:
        logger.info("Interrupción recibida; deteniendo el coordinador")
    finally:
        coordinator.destroy()
    return 0


def _dispatch(args: argparse.Namespace, container: AppContainer, stdout: TextIO, stop_event: threading.Event) -> int:
    if args.command == "status":
        return _cmd_status(container, args, stdout)
    if args.command == "sync":
        return _cmd_sync(container, stdout)
    if args.command == "pull":
        return _cmd_pull(container, args, stdout)
    if args.command == "health":
        return _cmd_health(container, stdout)
    if args.command == "watch":
        return _cmd_watch(container, stop_event)

    from schoolsync.entrypoints.ui_main import run_ui

    return run_ui(container)


def run(
    argv: list[str] | None = None,
    *,
    container_factory: ContainerFactory = build_container,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    stop_event: threading.Event | None = None,
) -> int:
    """Ejecuta un comando; los AppError salen como JSON por stderr con código 1."""
    args = build_parser().parse_args(argv)
    out = stdout or sys.stdout
    err = stderr or sys.stderr

    if args.command == "grade":
        return _cmd_grade(args, out, err)

    try:
        container = container_factory()
        return _dispatch(args, container, out, stop_event or threading.Event())
    except AppError as exc:
        logger.warning("Comando %s fallido: %s", args.command, exc)
        _write_json(err, exc.to_payload())
        return 1


def guarded_run(argv: list[str] | None = None, **kwargs: Any) -> int:
    """Como `run`, pero un error inesperado acaba en crash.log y código 2."""
    try:
        return run(argv, **kwargs)
    except Exception as exc:  # noqa: BLE001
        report_incident(exc, kwargs.get("stderr"))
        return 2


def main(argv: list[str] | None = None) -> int:
    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook()
    faulthandler.enable()

    logger.info("Log dir: %s", log_dir)
    logger.info("Python: %s", sys.version)
    logger.info("CWD: %s", Path.cwd())
    return guarded_run(argv)
