"""Tests for push envelope decoding and ingress decisions."""

import base64
import json

import pytest
from conftest import MAILBOX, SCOPE

from outreachmail.application.use_cases.ingest_push import (
    PushIngress,
    PushOutcome,
    decode_push_envelope,
)
from outreachmail.domain.errors import MalformedPush


def envelope(payload, urlsafe=False, strip_padding=False) -> dict:
    data = json.dumps(payload).encode()
    encoded = (base64.urlsafe_b64encode if urlsafe else base64.b64encode)(data).decode()
    if strip_padding:
        encoded = encoded.rstrip("=")
    return {"message": {"data": encoded, "messageId": "pubsub-1"}, "subscription": "projects/p/subscriptions/s"}


class TestDecodePushEnvelope:
    def test_gmail_payload(self):
        push = decode_push_envelope(envelope({"emailAddress": MAILBOX, "historyId": 12345}))

        assert push.mailbox_address == MAILBOX
        assert push.history_id == "12345"
        assert push.delivery_id == "pubsub-1"

    def test_mailbox_address_key_and_string_history_id(self):
        push = decode_push_envelope(envelope({"mailboxAddress": MAILBOX, "historyId": "H105"}))

        assert push.history_id == "H105"

    def test_urlsafe_unpadded_data(self):
        payload = {"emailAddress": "a+b?@example.com", "historyId": "7"}

        push = decode_push_envelope(envelope(payload, urlsafe=True, strip_padding=True))

        assert push.mailbox_address == "a+b?@example.com"

    @pytest.mark.parametrize(
        "bad",
        [
            None,
            [],
            {},
            {"message": {}},
            {"message": {"data": 42}},
            {"message": {"data": "!!!not base64!!!"}},
            {"message": {"data": base64.b64encode(b"not json").decode()}},
            {"message": {"data": base64.b64encode(b"[1, 2]").decode()}},
            envelope({"historyId": "1"}),
            envelope({"emailAddress": MAILBOX}),
            envelope({"emailAddress": MAILBOX, "historyId": ""}),
            envelope({"emailAddress": MAILBOX, "historyId": True}),
        ],
    )
    def test_malformed(self, bad):
        with pytest.raises(MalformedPush):
            decode_push_envelope(bad)


class TestPushIngress:
    def test_first_push_seeds_cursor(self, engine, connected, client):
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": MAILBOX, "historyId": "H100"}))

        assert outcome == PushOutcome.SEEDED
        assert connected.get_cursor(SCOPE) == "H100"
        assert client.history_calls == []

    def test_push_with_cursor_requests_sync(self, engine, connected):
        engine.seed(SCOPE, "H100")
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": MAILBOX, "historyId": "H105"}))

        assert outcome == PushOutcome.SYNC_REQUESTED
        assert connected.get_cursor(SCOPE) == "H100"

    def test_address_match_is_case_insensitive(self, engine, connected):
        engine.seed(SCOPE, "H100")
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": MAILBOX.upper(), "historyId": "H105"}))

        assert outcome == PushOutcome.SYNC_REQUESTED

    def test_other_mailbox_is_ignored(self, engine, connected):
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": "someone@else.com", "historyId": "1"}))

        assert outcome == PushOutcome.IGNORED
        assert connected.get_cursor(SCOPE) is None

    def test_disconnected_scope_is_ignored(self, engine, connected):
        connected.mark_disconnected(SCOPE)
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": MAILBOX, "historyId": "1"}))

        assert outcome == PushOutcome.IGNORED

    async def test_push_after_cursor_reset_reseeds_from_push(self, engine, connected, client):
        from outreachmail.domain.errors import CursorInvalid

        engine.seed(SCOPE, "H1")
        client.pages = [CursorInvalid("too old")]
        await engine.run_sync(SCOPE)
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": MAILBOX, "historyId": "H900"}))

        assert outcome == PushOutcome.SEEDED
        assert connected.get_cursor(SCOPE) == "H900"
        assert client.history_calls == ["H1"]

    def test_braces_in_mailbox_address_are_handled(self, engine, connected):
        ingress = PushIngress(engine, connected, SCOPE)

        outcome = ingress.accept(envelope({"emailAddress": "a{b}@example.com", "historyId": 5}))

        assert outcome == PushOutcome.IGNORED
