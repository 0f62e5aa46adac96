from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET_KEY = "default_secret_key_32_characters!"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _csv(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [s.strip() for s in raw.split(",") if s.strip()]


@dataclass
class Config:
    # Passphrase the token cipher key is derived from; changing it orphans stored tokens
    secret_key: str = DEFAULT_SECRET_KEY

    data_dir: str = "data"
    db_file: str = "db.json"

    host: str = "localhost"
    port: int = 3000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Passed through to notion_client.Client(timeout_ms=...)
    notion_timeout_ms: int = 60000
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / self.db_file

    @property
    def uses_default_secret(self) -> bool:
        return self.secret_key == DEFAULT_SECRET_KEY


def load_config() -> Config:
    cfg = Config(
        secret_key=os.getenv("SECRET_KEY") or DEFAULT_SECRET_KEY,
        data_dir=os.getenv("DATA_DIR", "data"),
        db_file=os.getenv("DB_FILE", "db.json"),
        host=os.getenv("HOST", "localhost"),
        port=_env_int("PORT", 3000),
        cors_origins=_csv("CORS_ORIGINS", "*"),
        notion_timeout_ms=_env_int("NOTION_TIMEOUT_MS", 60000),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
    return cfg


def validate_config(cfg: Config) -> list[str]:
    """Return human readable warnings; an empty list means nothing to report."""
    warnings: list[str] = []
    if cfg.uses_default_secret:
        warnings.append("SECRET_KEY not set; using the built-in default passphrase")
    if cfg.port <= 0:
        warnings.append(f"PORT={cfg.port} is not a valid port")
    return warnings
