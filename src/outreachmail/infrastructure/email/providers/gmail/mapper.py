from __future__ import annotations
from typing import Any, Iterable

from outreachmail.domain.entities.change_feed import ChangeFeedItem
from outreachmail.domain.models import ChangeType

# Order in which a single history record's event arrays are emitted
_EVENT_KEYS = (
    ("messagesAdded", ChangeType.MESSAGE_ADDED),
    ("labelsAdded", ChangeType.LABELS_ADDED),
    ("labelsRemoved", ChangeType.LABELS_REMOVED),
    ("messagesDeleted", ChangeType.MESSAGE_DELETED),
)


def history_to_items(records: Iterable[dict[str, Any]]) -> list[ChangeFeedItem]:
    """Flatten Gmail history records into change feed items, keeping provider order."""
    items: list[ChangeFeedItem] = []
    for record in records:
        for key, change_type in _EVENT_KEYS:
            for event in record.get(key) or []:
                msg = event.get("message") or {}
                message_id = msg.get("id")
                if not message_id:
                    continue
                items.append(
                    ChangeFeedItem(
                        change_type=change_type,
                        message_id=message_id,
                        labels=frozenset(msg.get("labelIds") or []),
                        thread_id=msg.get("threadId"),
                    )
                )
    return items


def header_value(payload: dict[str, Any], name: str) -> str | None:
    for header in payload.get("headers") or []:
        if str(header.get("name", "")).lower() == name.lower():
            return header.get("value")
    return None
