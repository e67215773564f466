"""Decode provider push notifications and decide what they trigger."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from loguru import logger

from outreachmail.application.connection import MailboxConnection
from outreachmail.application.use_cases.sync_history import HistorySyncEngine
from outreachmail.domain.errors import MalformedPush


@dataclass(frozen=True)
class PushNotification:
    mailbox_address: str
    history_id: str
    delivery_id: Optional[str] = None


class PushOutcome(str, Enum):
    SEEDED = "seeded"
    SYNC_REQUESTED = "sync_requested"
    IGNORED = "ignored"


def _b64decode(data: str) -> bytes:
    # Pub/Sub sends standard base64; tolerate the URL-safe alphabet and missing padding
    normalized = data.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True)


def decode_push_envelope(envelope: Any) -> PushNotification:
    """Extract ``{mailboxAddress, historyId}`` from a push envelope.

    Envelope shape::

        {"message": {"data": "<base64 JSON>", "messageId": "..."}, "subscription": "..."}

    Raises:
        MalformedPush: if any layer of the envelope is missing or invalid
    """
    if not isinstance(envelope, Mapping):
        raise MalformedPush("Envelope is not a JSON object")

    message = envelope.get("message")
    if not isinstance(message, Mapping) or not isinstance(message.get("data"), str):
        raise MalformedPush("Envelope has no message.data")

    try:
        payload = json.loads(_b64decode(message["data"]).decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        raise MalformedPush(f"message.data is not base64-encoded JSON: {e}") from e

    if not isinstance(payload, Mapping):
        raise MalformedPush("Decoded payload is not a JSON object")

    address = payload.get("emailAddress") or payload.get("mailboxAddress")
    history_id = payload.get("historyId")
    if not isinstance(address, str) or not address:
        raise MalformedPush("Payload has no mailbox address")
    if isinstance(history_id, bool) or not isinstance(history_id, (str, int)) or history_id == "":
        raise MalformedPush("Payload has no historyId")

    return PushNotification(
        mailbox_address=address,
        history_id=str(history_id),
        delivery_id=message.get("messageId") or message.get("message_id"),
    )


class PushIngress:
    """Turn a decoded push into a seed or a sync request.

    Never runs the sync itself: the caller acknowledges the push at once and
    dispatches ``engine.trigger`` as a detached task.
    """

    def __init__(self, engine: HistorySyncEngine, connection: MailboxConnection, scope: str) -> None:
        self.engine = engine
        self.connection = connection
        self.scope = scope

    def accept(self, envelope: Any) -> PushOutcome:
        notification = decode_push_envelope(envelope)
        # The message carries untrusted push data; it must not go through str.format
        logger.bind(delivery_id=notification.delivery_id, scope=self.scope).info(
            f"Push for {notification.mailbox_address} with historyId {notification.history_id}"
        )

        connected = self.connection.mailbox_address(self.scope)
        if connected and connected.lower() != notification.mailbox_address.lower():
            logger.warning(
                f"Push for {notification.mailbox_address} does not match connected mailbox {connected}; ignoring"
            )
            return PushOutcome.IGNORED

        if self.connection.is_disconnected(self.scope):
            logger.info(f"Scope {self.scope} is disconnected; push ignored")
            return PushOutcome.IGNORED

        if self.connection.get_cursor(self.scope) is None:
            # Nothing to diff against yet
            self.engine.seed(self.scope, notification.history_id)
            return PushOutcome.SEEDED

        return PushOutcome.SYNC_REQUESTED
