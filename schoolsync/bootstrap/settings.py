from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

APP_DIR_NAME = "SchoolSync"


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get("SCHOOLSYNC_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / APP_DIR_NAME / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def resolve_data_dir() -> Path:
    env_dir = os.environ.get("SCHOOLSYNC_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    appdata = os.environ.get("LOCALAPPDATA")
    base_dir = Path(appdata) if appdata else Path.home() / ".local" / "share"
    return base_dir / APP_DIR_NAME


def _env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class SyncSettings:
    flush_interval_seconds: float = 30.0
    batch_limit: int = 500
    max_retries: int = 3
    probe_interval_seconds: float = 5.0
    probe_host: str = "firestore.googleapis.com"
    probe_port: int = 443

    @classmethod
    def from_env(cls) -> "SyncSettings":
        defaults = cls()
        return cls(
            flush_interval_seconds=_env_float("SCHOOLSYNC_FLUSH_INTERVAL_SECONDS", defaults.flush_interval_seconds),
            batch_limit=_env_int("SCHOOLSYNC_BATCH_LIMIT", defaults.batch_limit),
            max_retries=_env_int("SCHOOLSYNC_MAX_RETRIES", defaults.max_retries),
            probe_interval_seconds=_env_float("SCHOOLSYNC_PROBE_INTERVAL_SECONDS", defaults.probe_interval_seconds),
            probe_host=os.getenv("SCHOOLSYNC_PROBE_HOST", defaults.probe_host),
            probe_port=_env_int("SCHOOLSYNC_PROBE_PORT", defaults.probe_port),
        )
