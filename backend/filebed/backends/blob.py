"""S3-compatible object store adapter (Cloudflare R2 by default).

Objects are written under a fresh key built from the current time plus a
random suffix, e.g. ``r2_1718000000000_k3x9qa.png``. The catalog key is the
object key prefixed with ``r2:`` so listing and deletion can tell blob-backed
records apart from relay-backed ones.

No retry is performed: botocore's own retries are disabled and every failure
is reported to the caller, who may re-invoke completion.
"""
import logging
import secrets
import string
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from filebed.uploads.exceptions import BackendUnavailable, BackendUploadFailed

from .base import AssembledFile, CommitResult, StorageAdapter

logger = logging.getLogger(__name__)

BLOB_KEY_PREFIX = "r2:"

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH   = 6

_UNAVAILABLE_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    NoCredentialsError,
)


def generate_object_key(extension: str, now_ms: Optional[int] = None) -> str:
    """Build a collision-resistant object key: ``r2_<ms>_<suffix>.<ext>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"r2_{now_ms}_{suffix}.{extension}"


class BlobStoreAdapter(StorageAdapter):
    """Commits files to an S3-compatible bucket.

    Args:
        bucket:                Target bucket name.
        endpoint_url:          S3 endpoint (the R2 account endpoint). ``None``
                               → AWS default endpoint for ``region_name``.
        region_name:           Region; R2 uses ``auto``.
        aws_access_key_id:     Access key. ``None`` → default credential chain.
        aws_secret_access_key: Secret key.
        timeout_seconds:       Connect and read timeout per request.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region_name: str = "auto",
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._region = region_name
        self._access_key = aws_access_key_id
        self._secret_key = aws_secret_access_key
        self._timeout = timeout_seconds
        self._client: Optional[Any] = None

    @property
    def name(self) -> str:
        return "blob"

    @property
    def bucket(self) -> str:
        return self._bucket

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _get_client(self) -> Any:
        """Return a cached boto3 s3 client."""
        if self._client is None:
            kwargs: dict = {
                "region_name": self._region,
                "config": Config(
                    connect_timeout=self._timeout,
                    read_timeout=self._timeout,
                    retries={"total_max_attempts": 1, "mode": "standard"},
                ),
            }
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            if self._access_key and self._secret_key:
                kwargs["aws_access_key_id"]     = self._access_key
                kwargs["aws_secret_access_key"] = self._secret_key

            self._client = boto3.client("s3", **kwargs)

        return self._client

    @staticmethod
    def _translate(exc: Exception, action: str) -> Exception:
        if isinstance(exc, _UNAVAILABLE_ERRORS):
            return BackendUnavailable(f"Object store unreachable during {action}: {exc}")
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            return BackendUploadFailed(f"Object store rejected {action} ({code})")
        return BackendUploadFailed(f"Object store {action} failed: {exc}")

    # -----------------------------------------------------------------------
    # StorageAdapter implementation
    # -----------------------------------------------------------------------

    def commit(self, file: AssembledFile) -> CommitResult:
        object_key = generate_object_key(file.extension)
        try:
            self._get_client().put_object(
                Bucket=self._bucket,
                Key=object_key,
                Body=file.data,
                ContentType=file.effective_content_type,
                Metadata={
                    "fileName": quote(file.name),
                    "uploadTime": str(int(time.time() * 1000)),
                },
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("[blob] put_object failed for %s: %s", object_key, exc)
            raise self._translate(exc, "upload") from exc

        logger.info(
            "[blob] Stored %s (%d bytes) in bucket %s", object_key, file.size, self._bucket
        )
        return CommitResult(backend_ref=f"{BLOB_KEY_PREFIX}{object_key}", blob_key=object_key)

    def delete(self, record: Dict[str, Any]) -> bool:
        object_key = record.get("r2Key") or record["key"].removeprefix(BLOB_KEY_PREFIX)
        try:
            self._get_client().delete_object(Bucket=self._bucket, Key=object_key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("[blob] delete_object failed for %s: %s", object_key, exc)
            raise self._translate(exc, "delete") from exc
        logger.info("[blob] Deleted %s from bucket %s", object_key, self._bucket)
        return True
