"""Gmail REST API implementation of the mailbox client port."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import httpx
from loguru import logger

from outreachmail.application.ports.mailbox_client import (
    HistoryPage,
    MailboxClient,
    RawMessage,
    SentMessage,
    Session,
)
from outreachmail.application.use_cases.resolve_correlation import strip_message_id
from outreachmail.domain.errors import (
    AuthExpired,
    CursorInvalid,
    DecodeFailure,
    MailboxError,
    MessageNotFound,
    TransientError,
)
from outreachmail.infrastructure.email.providers.gmail.auth import (
    GmailOAuthCredentials,
    GmailTokenRefresher,
)
from outreachmail.infrastructure.email.providers.gmail.mapper import header_value, history_to_items

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
HISTORY_PAGE_SIZE = 500
RATE_LIMIT_REASONS = frozenset(
    {"rateLimitExceeded", "userRateLimitExceeded", "dailyLimitExceeded", "quotaExceeded"}
)


def _error_reasons(response: httpx.Response) -> set[str]:
    """Collect `error.errors[].reason` from a Google API error body."""
    try:
        error = response.json().get("error") or {}
    except (ValueError, AttributeError):
        return set()
    if not isinstance(error, dict):
        return set()
    return {str(e.get("reason")) for e in error.get("errors") or [] if isinstance(e, dict) and e.get("reason")}


class GmailMailboxClient(MailboxClient):
    """Gmail mailbox adapter over ``httpx.AsyncClient``.

    Every call takes an explicit ``Session``; the client holds no
    authentication state of its own.
    """

    def __init__(
        self,
        oauth: GmailOAuthCredentials | None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.http = http_client or httpx.AsyncClient(timeout=timeout)
        self.auth = GmailTokenRefresher(oauth, self.http)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        session: Session,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        not_found: type[MailboxError] = MessageNotFound,
        bad_request: type[MailboxError] = MailboxError,
    ) -> dict:
        try:
            response = await self.http.request(
                method,
                f"{GMAIL_API_URL}{path}",
                headers={"Authorization": f"Bearer {session.access_token}"},
                params=params,
                json=json,
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"Gmail API timeout on {method} {path}") from e
        except httpx.TransportError as e:
            raise TransientError(f"Gmail API transport error on {method} {path}: {e!s}") from e

        status = response.status_code
        if status < 300:
            return response.json() if response.content else {}

        error_text = response.text[:200]
        if status == 401:
            raise AuthExpired(f"Gmail API rejected the session: {error_text}")
        if status == 403:
            # Gmail reports rate limits and quota exhaustion as 403
            if _error_reasons(response) & RATE_LIMIT_REASONS:
                raise TransientError(f"Gmail API rate limited: {error_text}")
            raise AuthExpired(f"Gmail API denied access: {error_text}")
        if status == 404:
            raise not_found(f"Gmail API 404 on {path}: {error_text}")
        if status == 400:
            raise bad_request(f"Gmail API HTTP 400 on {path}: {error_text}")
        if status == 429 or status >= 500:
            raise TransientError(f"Gmail API HTTP {status}: {error_text}")

        logger.error(f"Gmail API error {status} on {method} {path}: {error_text}")
        raise MailboxError(f"Gmail API HTTP {status}: {error_text}")

    async def refresh_session(self, refresh_token: str) -> Session:
        return await self.auth.refresh(refresh_token)

    async def fetch_history(self, session: Session, cursor: str) -> HistoryPage:
        """Fetch every history page since ``cursor``.

        A 404 means Gmail has pruned history that old; a 400 means it rejects
        the cursor outright. Both surface as ``CursorInvalid``.
        """
        records: list[dict] = []
        new_cursor = cursor
        page_token: Optional[str] = None

        while True:
            params: dict[str, Any] = {"startHistoryId": cursor, "maxResults": HISTORY_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            payload = await self._request(
                "GET",
                "/history",
                session,
                params=params,
                not_found=CursorInvalid,
                bad_request=CursorInvalid,
            )

            records.extend(payload.get("history") or [])
            if payload.get("historyId"):
                new_cursor = str(payload["historyId"])

            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        return HistoryPage(items=history_to_items(records), new_cursor=new_cursor)

    async def fetch_message(self, session: Session, message_id: str) -> RawMessage:
        payload = await self._request(
            "GET", f"/messages/{message_id}", session, params={"format": "raw"}
        )
        raw = payload.get("raw") or ""
        try:
            rfc822_bytes = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)) if raw else b""
        except binascii.Error as e:
            raise DecodeFailure(f"Message {message_id} has a corrupt raw body: {e}") from e

        internal_date = None
        if payload.get("internalDate"):
            internal_date = datetime.fromtimestamp(int(payload["internalDate"]) / 1000, tz=timezone.utc)

        return RawMessage(
            id=payload.get("id", message_id),
            thread_id=payload.get("threadId"),
            label_ids=frozenset(payload.get("labelIds") or []),
            rfc822_bytes=rfc822_bytes,
            internal_date=internal_date,
        )

    async def send(self, session: Session, raw: str, thread_id: Optional[str] = None) -> SentMessage:
        body: dict[str, Any] = {"raw": raw}
        if thread_id:
            body["threadId"] = thread_id

        data = await self._request("POST", "/messages/send", session, json=body)
        message_id = data["id"]
        logger.info(f"Gmail accepted message {message_id} (thread {data.get('threadId')})")

        return SentMessage(
            provider_message_id=message_id,
            provider_thread_id=data.get("threadId"),
            rfc_message_id=await self._rfc_message_id(session, message_id),
        )

    async def _rfc_message_id(self, session: Session, message_id: str) -> Optional[str]:
        # The send already succeeded; a failed lookup must not lose the record
        try:
            meta = await self._request(
                "GET",
                f"/messages/{message_id}",
                session,
                params={"format": "metadata", "metadataHeaders": "Message-ID"},
            )
        except MailboxError as e:
            logger.warning(f"Could not read Message-ID of sent message {message_id}: {e}")
            return None
        value = header_value(meta.get("payload") or {}, "Message-ID")
        return strip_message_id(value) if value else None

    async def remove_label(self, session: Session, message_id: str, label: str) -> None:
        await self._request(
            "POST",
            f"/messages/{message_id}/modify",
            session,
            json={"removeLabelIds": [label]},
        )
        logger.debug(f"Removed label {label} from {message_id}")

    async def watch(self, session: Session, topic: str, label_ids: Sequence[str]) -> dict:
        data = await self._request(
            "POST",
            "/watch",
            session,
            json={"topicName": topic, "labelIds": list(label_ids)},
        )
        logger.info(f"Gmail watch registered on {topic}: historyId={data.get('historyId')}")
        return data
