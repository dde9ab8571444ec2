"""Builds the backend registry from configuration."""
import logging
from typing import Dict

from filebed.config import FileBedConfig
from filebed.uploads.schemas import StorageBackend

from .base import StorageAdapter
from .blob import BlobStoreAdapter
from .relay import TelegramRelayAdapter

logger = logging.getLogger(__name__)


def build_adapters(config: FileBedConfig) -> Dict[StorageBackend, StorageAdapter]:
    """Instantiate one adapter per enabled backend.

    A backend that is disabled (or, for the object store, has no bucket) is
    left out of the registry; sessions targeting it fail at completion with
    BackendUnavailable.
    """
    adapters: Dict[StorageBackend, StorageAdapter] = {}

    blob_cfg = config.blob
    if blob_cfg.enabled and blob_cfg.bucket:
        adapters[StorageBackend.BLOB] = BlobStoreAdapter(
            bucket=blob_cfg.bucket,
            endpoint_url=blob_cfg.endpoint_url,
            region_name=blob_cfg.region,
            aws_access_key_id=config.secrets.blob.access_key_id,
            aws_secret_access_key=config.secrets.blob.secret_access_key,
            timeout_seconds=blob_cfg.timeout_seconds,
        )
    elif blob_cfg.enabled:
        logger.warning("Object store enabled but no bucket configured; blob backend disabled.")

    relay_cfg = config.relay
    if relay_cfg.enabled:
        adapters[StorageBackend.RELAY] = TelegramRelayAdapter(
            bot_token=config.secrets.telegram.bot_token,
            chat_id=config.secrets.telegram.chat_id,
            api_base=relay_cfg.api_base,
            timeout_seconds=relay_cfg.timeout_seconds,
        )

    logger.info("Storage backends ready: %s", sorted(b.value for b in adapters))
    return adapters
