from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name)
    return Path(raw).expanduser() if raw else default


@dataclass(frozen=True)
class Settings:
    """Static settings for the local assistant service.

    Everything is read from the environment once at import time.
    """

    data_dir: Path = _env_path("RDPILOT_DATA_DIR", Path.home() / ".rdpilot")
    profiles_dir: Path = data_dir / "profiles"
    log_path: Path = data_dir / "rdpilot.log"
    log_level: str = os.environ.get("RDPILOT_LOG_LEVEL", "INFO")
    log_max_bytes: int = int(os.environ.get("RDPILOT_LOG_MAX_BYTES", str(1_000_000)))
    log_backup_count: int = int(os.environ.get("RDPILOT_LOG_BACKUP_COUNT", "3"))
    log_to_file: bool = _env_bool("RDPILOT_LOG_TO_FILE", True)
    host: str = os.environ.get("RDPILOT_HOST", "127.0.0.1")
    port: int = int(os.environ.get("RDPILOT_PORT", "8020"))

    # Simulated transport: there is no RDP wire protocol here, a connect
    # attempt just waits this long and succeeds.
    simulated_connect_delay: float = float(
        os.environ.get("RDPILOT_SIMULATED_CONNECT_DELAY", "2.0")
    )
    chain_step_delay: float = float(os.environ.get("RDPILOT_CHAIN_STEP_DELAY", "0.1"))

    # Profiles are kept in memory only unless this is enabled.
    persist_profiles: bool = _env_bool("RDPILOT_PERSIST_PROFILES", True)


settings = Settings()
