"""Telegram Bot API relay adapter.

Files are sent to a chat as messages; the Telegram ``file_id`` of the
attached media becomes the durable reference and the message id is kept so
the file can be deleted later.

Routing by declared content type
--------------------------------
::

    image/*  -> sendPhoto    (field "photo")
    audio/*  -> sendAudio    (field "audio")
    video/*  -> sendVideo    (field "video")
    other    -> sendDocument (field "document")

Telegram validates photos more strictly than documents (dimensions, size,
format), so a rejected ``sendPhoto`` is retried exactly once as
``sendDocument``. Transport failures are not retried.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from filebed.uploads.exceptions import BackendUnavailable, BackendUploadFailed

from .base import AssembledFile, CommitResult, StorageAdapter

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.telegram.org"


@dataclass(frozen=True)
class RelayRoute:
    method: str
    field: str


DOCUMENT_ROUTE = RelayRoute("sendDocument", "document")

_PREFIX_ROUTES = (
    ("image/", RelayRoute("sendPhoto", "photo")),
    ("audio/", RelayRoute("sendAudio", "audio")),
    ("video/", RelayRoute("sendVideo", "video")),
)

# Primary method -> the single fallback tried when the API rejects it.
_FALLBACK_ROUTES = {
    "sendPhoto": DOCUMENT_ROUTE,
}

# Media descriptors checked (in order) when the response carries no photo.
_MEDIA_KEYS = ("document", "video", "audio", "animation", "voice", "video_note", "sticker")


def route_for(content_type: Optional[str]) -> RelayRoute:
    """Pick the Bot API method for a declared content type."""
    ct = (content_type or "").lower()
    for prefix, route in _PREFIX_ROUTES:
        if ct.startswith(prefix):
            return route
    return DOCUMENT_ROUTE


def extract_file_id(payload: Dict[str, Any]) -> Optional[str]:
    """Return the file id of the richest media descriptor in a Bot API response.

    For photos Telegram returns several resolutions; the variant with the
    largest ``file_size`` wins.
    """
    if not payload.get("ok") or not payload.get("result"):
        return None
    result = payload["result"]
    if not isinstance(result, dict):
        return None

    photos = result.get("photo")
    if photos:
        best = max(photos, key=lambda p: p.get("file_size") or 0)
        return best.get("file_id")

    for key in _MEDIA_KEYS:
        media = result.get(key)
        if media and media.get("file_id"):
            return media["file_id"]
    return None


@dataclass
class _Attempt:
    route: RelayRoute
    ok: bool
    payload: Dict[str, Any] = field(default_factory=dict)
    description: str = ""


class TelegramRelayAdapter(StorageAdapter):
    """Commits files by posting them to a Telegram chat.

    Args:
        bot_token:       Bot API token.
        chat_id:         Target chat (channel) id.
        api_base:        Bot API base URL.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        api_base: str = DEFAULT_API_BASE,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "relay"

    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def _url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._bot_token}/{method}"

    def _send(self, route: RelayRoute, file: AssembledFile) -> _Attempt:
        try:
            resp = httpx.post(
                self._url(route.method),
                data={"chat_id": self._chat_id},
                files={route.field: (file.name, file.data, file.effective_content_type)},
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.error("[relay] %s transport error: %s", route.method, exc)
            raise BackendUnavailable(f"Telegram API unreachable: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        ok = bool(resp.is_success and payload.get("ok"))
        description = payload.get("description") or f"HTTP {resp.status_code}"
        if not ok:
            logger.warning("[relay] %s rejected: %s", route.method, description)
        return _Attempt(route=route, ok=ok, payload=payload, description=description)

    # -----------------------------------------------------------------------
    # StorageAdapter implementation
    # -----------------------------------------------------------------------

    def commit(self, file: AssembledFile) -> CommitResult:
        if not self.configured:
            raise BackendUnavailable("Telegram bot token or chat id is not configured")

        primary = route_for(file.content_type)
        attempt = self._send(primary, file)

        fallback = _FALLBACK_ROUTES.get(primary.method)
        if not attempt.ok and fallback is not None:
            logger.info("[relay] Retrying %s as %s", file.name, fallback.method)
            attempt = self._send(fallback, file)

        if not attempt.ok:
            raise BackendUploadFailed(f"Telegram upload failed: {attempt.description}")

        file_id = extract_file_id(attempt.payload)
        if not file_id:
            raise BackendUploadFailed("Telegram response carried no file id")

        message_id = attempt.payload["result"].get("message_id")
        logger.info(
            "[relay] Stored %s (%d bytes) via %s message_id=%s",
            file.name,
            file.size,
            attempt.route.method,
            message_id,
        )
        return CommitResult(
            backend_ref=f"{file_id}.{file.extension}",
            relay_message_id=message_id,
        )

    def delete(self, record: Dict[str, Any]) -> bool:
        """Delete the chat message holding the file.

        Returns False when the record has no message id or Telegram refuses.
        """
        message_id = record.get("telegramMessageId")
        if not message_id or not self.configured:
            return False
        try:
            resp = httpx.post(
                self._url("deleteMessage"),
                json={"chat_id": self._chat_id, "message_id": message_id},
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.error("[relay] deleteMessage transport error: %s", exc)
            raise BackendUnavailable(f"Telegram API unreachable: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        deleted = bool(resp.is_success and payload.get("ok"))
        if not deleted:
            logger.warning(
                "[relay] deleteMessage %s refused: %s", message_id, payload.get("description")
            )
        return deleted
