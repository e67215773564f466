"""
API routes for the outreach mailbox service.

Connection management, outbound sends and the reply inbox.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from outreachmail.domain import InboundReply, OutboundMessage
from outreachmail.domain.errors import AuthExpired, MailboxError, NotConnected, SendError
from outreachmail.infrastructure.container import Services, get_services

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str


class ConnectRequest(BaseModel):
    """Refresh token obtained by the OAuth consent flow."""

    refresh_token: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3, description="Address of the connected mailbox")


class ConnectionStatusResponse(BaseModel):
    scope: str
    connected: bool
    email: Optional[str] = None
    disconnected: bool
    has_cursor: bool
    state: str


class SendRequest(BaseModel):
    """Send a message to a contact, creating or updating the contact first."""

    contact_public_id: str = Field(..., min_length=1)
    contact_name: str = Field(..., min_length=1)
    contact_email: str = Field(..., min_length=3)
    subject: str = ""
    body: str
    thread_id: Optional[str] = Field(None, description="Provider thread to reply into")
    in_reply_to: Optional[str] = Field(None, description="Message-ID being answered")
    sent_by: Optional[str] = None


class OutboundResponse(BaseModel):
    id: str
    contact_id: str
    provider_message_id: str
    provider_thread_id: Optional[str] = None
    rfc_message_id: Optional[str] = None
    sent_at: datetime

    @classmethod
    def from_entity(cls, msg: OutboundMessage) -> "OutboundResponse":
        return cls(
            id=msg.id,
            contact_id=msg.contact_id,
            provider_message_id=msg.provider_message_id,
            provider_thread_id=msg.provider_thread_id,
            rfc_message_id=msg.rfc_message_id,
            sent_at=msg.sent_at,
        )


class ReplyResponse(BaseModel):
    id: str
    provider_message_id: str
    provider_thread_id: Optional[str] = None
    sender: str
    subject: str
    content: str
    received_at: datetime
    contact_id: Optional[str] = None
    outbound_message_id: Optional[str] = None

    @classmethod
    def from_entity(cls, reply: InboundReply) -> "ReplyResponse":
        return cls(
            id=reply.id,
            provider_message_id=reply.provider_message_id,
            provider_thread_id=reply.provider_thread_id,
            sender=reply.sender,
            subject=reply.subject,
            content=reply.content,
            received_at=reply.received_at,
            contact_id=reply.contact_id,
            outbound_message_id=reply.outbound_message_id,
        )


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=services.settings.app_version,
    )


def _status(services: Services) -> ConnectionStatusResponse:
    scope = services.scope
    status = services.connection.status(scope)
    return ConnectionStatusResponse(
        scope=scope,
        connected=status.connected,
        email=status.email,
        disconnected=status.disconnected,
        has_cursor=status.has_cursor,
        state=services.engine.state(scope).value,
    )


@router.get("/auth/google/status", response_model=ConnectionStatusResponse, tags=["auth"])
async def connection_status(services: Services = Depends(get_services)) -> ConnectionStatusResponse:
    return _status(services)


@router.post("/auth/google/connect", response_model=ConnectionStatusResponse, tags=["auth"])
async def connect_mailbox(
    request: ConnectRequest,
    services: Services = Depends(get_services),
) -> ConnectionStatusResponse:
    """
    Store the mailbox credential for the configured scope.

    Any previous cursor is dropped; the next push notification seeds a new one.
    """
    services.sessions.invalidate(services.scope)
    services.connection.connect(services.scope, request.refresh_token, request.email)
    return _status(services)


@router.post("/auth/google/disconnect", tags=["auth"])
async def disconnect_mailbox(services: Services = Depends(get_services)) -> dict:
    services.sessions.invalidate(services.scope)
    removed = services.connection.disconnect(services.scope)
    return {"status": "disconnected", "removed": removed}


@router.post("/auth/google/watch", tags=["auth"])
async def register_watch(services: Services = Depends(get_services)) -> dict:
    """(Re)register the Gmail push subscription for the connected mailbox."""
    topic = services.settings.google_pubsub_topic
    if not topic:
        raise HTTPException(status_code=400, detail="GOOGLE_PUB_SUB_TOPIC is not configured")

    try:
        session = await services.sessions.get(services.scope)
        data = await services.client.watch(session, topic, [services.settings.inbound_label])
    except NotConnected as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AuthExpired as e:
        services.sessions.invalidate(services.scope)
        services.connection.mark_disconnected(services.scope)
        raise HTTPException(status_code=409, detail=f"Mailbox authorization expired: {e}")
    except MailboxError as e:
        logger.error(f"Watch registration failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return {"status": "watching", "history_id": data.get("historyId"), "expiration": data.get("expiration")}


@router.post("/messages/send", response_model=OutboundResponse, tags=["messages"])
async def send_message(
    request: SendRequest,
    services: Services = Depends(get_services),
) -> OutboundResponse:
    contact = services.store.upsert_contact(
        request.contact_public_id, request.contact_name, request.contact_email
    )
    try:
        outbound = await services.dispatcher.send(
            contact,
            request.subject,
            request.body,
            thread_id=request.thread_id,
            sent_by=request.sent_by,
            in_reply_to=request.in_reply_to,
        )
    except SendError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (NotConnected, AuthExpired) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MailboxError as e:
        logger.error(f"Send to {contact.email} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return OutboundResponse.from_entity(outbound)


@router.get("/replies", response_model=list[ReplyResponse], tags=["messages"])
async def list_replies(
    contact_id: Optional[str] = Query(default=None),
    unattributed: bool = Query(default=False, description="Only replies with no contact"),
    limit: int = Query(default=100, ge=1, le=500),
    services: Services = Depends(get_services),
) -> list[ReplyResponse]:
    replies = services.store.list_inbound_replies(
        contact_id=contact_id, unattributed_only=unattributed, limit=limit
    )
    return [ReplyResponse.from_entity(r) for r in replies]
