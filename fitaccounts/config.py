"""
Settings for the FitFindr account core.

Values come from the process environment, then `.env`, then the defaults
below.  Components receive an ``AppConfig`` through their constructors;
``get_config`` serves the entry point and the logger.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


StoreBackendName = Literal["local", "remote", "hybrid", "demo"]


class AppConfig(BaseSettings):
    """Backend choice, remote credentials, lockout, session and sync settings."""

    # --- Record store selection ---
    STORE_BACKEND: StoreBackendName = "hybrid"

    # --- Remote JSON-document API ---
    REMOTE_API_BASE: str = "https://api.jsonbin.io/v3/b"
    REMOTE_BIN_ID: str = ""
    REMOTE_API_KEY: SecretStr = SecretStr("")
    REMOTE_KEY_HEADER: str = "X-Master-Key"
    REMOTE_TIMEOUT_S: float = 10.0

    # --- Local on-device store ---
    LOCAL_DB_PATH: Path = Path("fitfindr_local.db")

    # --- Demo "cloud" (localStorage stand-in) ---
    DEMO_STORE_PATH: Path = Path("fitfindr_demo_cloud.json")
    SEED_DEMO_ACCOUNT: bool = True

    # --- Credentials ---
    # Single deployment-wide salt.  Identical passwords produce identical
    # digests across users; see DESIGN.md open question (b).
    PASSWORD_SALT: SecretStr = SecretStr("FitFindrSalt2023")

    # --- Lockout policy ---
    MAX_FAILED_ATTEMPTS: int = Field(default=5, ge=1)
    LOCKOUT_MINUTES: int = Field(default=15, ge=1)

    # --- Sessions ---
    SESSION_TTL_HOURS: int = Field(default=24, ge=1)

    # --- Client state cache ---
    CLIENT_STATE_SECRET: SecretStr = SecretStr("")
    CLIENT_STATE_KDF_ITERATIONS: int = Field(default=200_000, ge=1)

    # --- Sync worker ---
    SYNC_INTERVAL_S: float = 30.0
    SYNC_MAX_INTERVAL_S: float = 300.0

    # --- Logging ---
    LOG_FILE: str = "fitaccounts.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_remote_unconfigured(self) -> "AppConfig":
        """Warn at load time when a remote-backed store has no credentials."""
        _log = logging.getLogger("fitaccounts.config")

        if self.STORE_BACKEND in ("remote", "hybrid") and not self.remote_configured:
            _log.warning(
                "REMOTE_BIN_ID or REMOTE_API_KEY is empty; remote store is "
                "disabled. Hybrid mode will operate on the local store only."
            )

        return self

    @property
    def remote_configured(self) -> bool:
        """``True`` when both the document id and the API key are set."""
        return bool(self.REMOTE_BIN_ID and self.REMOTE_API_KEY.get_secret_value())


_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Process-wide ``AppConfig``, built on first use."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
