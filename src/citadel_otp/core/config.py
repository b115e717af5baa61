# Core - Configuration
#
# Settings come from environment variables, optionally seeded from a
# .env file in the working directory. CLI flags override both.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "CITADEL_OTP_"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


@dataclass
class Settings:
    """Runtime settings for the vault backend."""

    data_dir: Path = field(default_factory=lambda: Path(_env("DATA_DIR", "data")))
    audit_log_dir: Path = field(default_factory=lambda: Path(_env("AUDIT_DIR", "audit_logs")))
    host: str = field(default_factory=lambda: _env("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(_env("PORT", "8000")))

    @property
    def vault_db_path(self) -> Path:
        """SQLite file for the durable vault tier."""
        return self.data_dir / "vault.db"

    @property
    def preferences_db_path(self) -> Path:
        return self.data_dir / "user_preferences.db"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load .env (if present, without overriding real env vars) and build Settings."""
    load_dotenv(dotenv_path=env_file, override=False)
    return Settings()
