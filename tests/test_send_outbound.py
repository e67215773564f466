"""Tests for outbound composition and dispatch."""

import base64
from email.header import decode_header, make_header

import pytest
from conftest import SCOPE

from outreachmail.application.use_cases.send_outbound import (
    OutboundDispatcher,
    compose_message,
    encode_raw,
)
from outreachmail.domain import Contact
from outreachmail.domain.errors import AuthExpired, SendError


@pytest.fixture
def dispatcher(sessions, client, store, connected):
    return OutboundDispatcher(sessions, client, store, connected, SCOPE)


def _decode(raw: str) -> str:
    return base64.urlsafe_b64decode(raw).decode("utf-8")


class TestComposeMessage:
    def test_headers_blank_line_body(self):
        message = compose_message("jane@example.com", "Hello", "line one\nline two")

        head, body = message.split("\r\n\r\n", 1)
        assert "To: jane@example.com" in head.split("\r\n")
        subject = next(line for line in head.split("\r\n") if line.startswith("Subject: "))
        assert str(make_header(decode_header(subject[len("Subject: "):]))) == "Hello"
        assert "Content-Type: text/html; charset=utf-8" in head
        assert "MIME-Version: 1.0" in head
        assert body == "line one<br>line two"

    def test_non_ascii_subject_is_encoded(self):
        message = compose_message("jane@example.com", "Café ☕", "hi")

        assert "Subject: =?utf-8?" in message

    def test_in_reply_to_headers(self):
        message = compose_message("jane@example.com", "Re: Hello", "hi", in_reply_to="abc@mail.gmail.com")

        assert "In-Reply-To: <abc@mail.gmail.com>" in message
        assert "References: <abc@mail.gmail.com>" in message

    def test_encode_raw_is_urlsafe(self):
        assert _decode(encode_raw("To: a\r\n\r\nbody")) == "To: a\r\n\r\nbody"


class TestOutboundDispatcher:
    async def test_send_persists_outbound(self, dispatcher, store, client):
        contact = store.upsert_contact("c-1", "Jane", "jane@example.com")

        outbound = await dispatcher.send(contact, "Hello", "Hi Jane", sent_by="agent-7")

        assert outbound.provider_message_id == "gm-1"
        assert outbound.rfc_message_id == "msg-1@mail.gmail.com"
        assert outbound.sent_by == "agent-7"
        assert store.find_outbound_by_provider_id("gm-1") == outbound
        raw, thread_id = client.sent[0]
        assert thread_id is None
        assert "To: jane@example.com" in _decode(raw)

    async def test_thread_id_is_passed_through(self, dispatcher, store, client):
        contact = store.upsert_contact("c-1", "Jane", "jane@example.com")

        outbound = await dispatcher.send(contact, "Re: Hello", "Following up", thread_id="thread-9")

        assert client.sent[0][1] == "thread-9"
        assert outbound.provider_thread_id == "thread-9"

    async def test_contact_without_email(self, dispatcher, client):
        contact = Contact(id="x", public_id="c-x", name="No Email", email=None)

        with pytest.raises(SendError):
            await dispatcher.send(contact, "Hello", "hi")
        assert client.sent == []

    async def test_auth_expired_marks_disconnected(self, dispatcher, store, client, connected):
        contact = store.upsert_contact("c-1", "Jane", "jane@example.com")
        client.send_error = AuthExpired("revoked")

        with pytest.raises(AuthExpired):
            await dispatcher.send(contact, "Hello", "hi")

        assert connected.is_disconnected(SCOPE)
        assert store.find_outbound_by_provider_id("gm-1") is None

    async def test_reply_to_sent_message_is_attributed(self, dispatcher, store, client, engine, connected):
        from conftest import added, raw_message

        from outreachmail.application.ports.mailbox_client import HistoryPage

        contact = store.upsert_contact("c-1", "Jane", "jane@example.com")
        outbound = await dispatcher.send(contact, "Hello", "Hi Jane")
        engine.seed(SCOPE, "1")
        client.messages["r1"] = raw_message(
            "r1", sender="Someone Else <other@example.com>", in_reply_to=f"<{outbound.rfc_message_id}>"
        )
        client.pages = [HistoryPage(items=[added("r1")], new_cursor="2")]

        await engine.run_sync(SCOPE)

        reply = store.get_inbound_reply("r1")
        assert reply.contact_id == contact.id
        assert reply.outbound_message_id == outbound.id
