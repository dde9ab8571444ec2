"""FileBed application configuration.

Loads settings from two YAML files:
  * filebed.settings.yaml: non-secret configuration
  * filebed.secrets.yaml: secrets (never committed)

Both paths can be overridden with the FILEBED_SETTINGS / FILEBED_SECRETS
environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("filebed.settings.yaml")
SECRETS_FILE  = Path("filebed.secrets.yaml")

MIB = 1024 * 1024


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class BlobSecrets(BaseModel):
    access_key_id:     Optional[str] = None
    secret_access_key: Optional[str] = None


class TelegramSecrets(BaseModel):
    bot_token: Optional[str] = None
    chat_id:   Optional[str] = None


class Secrets(BaseModel):
    blob:     BlobSecrets     = Field(default_factory=BlobSecrets)
    telegram: TelegramSecrets = Field(default_factory=TelegramSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 8000
    debug:           bool = False
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class UploadSettings(BaseModel):
    """Chunked-upload policy and staging storage."""
    chunk_size:           int = 5 * MIB
    max_file_size:        int = 100 * MIB
    direct_max_file_size: int = 20 * MIB
    staging_ttl_seconds:  int = 3600
    staging_db_path:      str = "staging.duckdb"

    @field_validator(
        "chunk_size", "max_file_size", "direct_max_file_size", "staging_ttl_seconds"
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class CatalogSettings(BaseModel):
    db_path: str = "catalog.duckdb"


class BlobSettings(BaseModel):
    """S3-compatible object store (Cloudflare R2, AWS S3, MinIO)."""
    enabled:         bool          = False
    bucket:          str           = ""
    endpoint_url:    Optional[str] = None
    region:          str           = "auto"
    timeout_seconds: float         = 30.0


class RelaySettings(BaseModel):
    """Telegram Bot API used as file storage."""
    enabled:         bool  = True
    api_base:        str   = "https://api.telegram.org"
    timeout_seconds: float = 60.0

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be positive")
        return value


class FileBedConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    upload:  UploadSettings  = Field(default_factory=UploadSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    blob:    BlobSettings    = Field(default_factory=BlobSettings)
    relay:   RelaySettings   = Field(default_factory=RelaySettings)
    secrets: Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> FileBedConfig:
    """Load and merge settings + secrets into a single *FileBedConfig* object."""
    settings_path = settings_path or Path(os.environ.get("FILEBED_SETTINGS", SETTINGS_FILE))
    secrets_path  = secrets_path or Path(os.environ.get("FILEBED_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in FileBedConfig
    settings_data["secrets"] = secrets_data

    config = FileBedConfig(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, blob.enabled=%s, relay.enabled=%s, staging_ttl=%ss)",
        config.server.host,
        config.server.port,
        config.blob.enabled,
        config.relay.enabled,
        config.upload.staging_ttl_seconds,
    )
    return config


_config: Optional[FileBedConfig] = None


def get_config() -> FileBedConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[FileBedConfig]) -> None:
    """Set (or clear) the process-wide configuration."""
    global _config
    _config = config
