"""Tests for reply attribution."""

from datetime import datetime, timezone

from outreachmail.application.use_cases.resolve_correlation import (
    CorrelationResolver,
    strip_message_id,
)
from outreachmail.domain import Channel, DecodedMessage


def decoded(sender_address=None, in_reply_to_id=None, sender="Someone <x@example.com>"):
    return DecodedMessage(
        plain_text="hi",
        sender=sender,
        sender_address=sender_address,
        in_reply_to_id=in_reply_to_id,
        subject="Re: hi",
        received_at=datetime(2024, 2, 5, tzinfo=timezone.utc),
    )


def send_to(store, contact, provider_id="M1", rfc_id=None):
    return store.add_outbound_message(
        contact_id=contact.id,
        provider_message_id=provider_id,
        provider_thread_id="T1",
        channel=Channel.EMAIL,
        sent_at=datetime.now(timezone.utc),
        sent_by="agent",
        rfc_message_id=rfc_id,
    )


def test_in_reply_to_anchor_beats_sender_email(store):
    alice = store.upsert_contact("c-alice", "Alice", "alice@example.com")
    bob = store.upsert_contact("c-bob", "Bob", "bob@example.com")
    outbound = send_to(store, alice, "M1")

    result = CorrelationResolver(store).resolve(
        decoded(sender_address="bob@example.com", in_reply_to_id="M1")
    )

    assert result.contact == alice
    assert result.outbound.id == outbound.id
    assert result.matched_by == "in_reply_to"
    assert result.contact != bob


def test_in_reply_to_matches_rfc_message_id(store):
    alice = store.upsert_contact("c-alice", "Alice", "alice@example.com")
    send_to(store, alice, "gm-1", rfc_id="CAF123@mail.gmail.com")

    result = CorrelationResolver(store).resolve(decoded(in_reply_to_id="<CAF123@mail.gmail.com>"))

    assert result.contact == alice
    assert result.outbound.provider_message_id == "gm-1"


def test_falls_back_to_sender_address(store):
    carol = store.upsert_contact("c-carol", "Carol", "carol@example.com")

    result = CorrelationResolver(store).resolve(
        decoded(sender_address="carol@example.com", in_reply_to_id="unknown-id")
    )

    assert result.contact == carol
    assert result.outbound is None
    assert result.matched_by == "sender_address"


def test_sender_match_is_case_sensitive(store):
    store.upsert_contact("c-carol", "Carol", "carol@example.com")

    result = CorrelationResolver(store).resolve(decoded(sender_address="Carol@Example.com"))

    assert not result.attributed


def test_unattributed_when_nothing_matches(store):
    result = CorrelationResolver(store).resolve(decoded(sender_address="nobody@example.com"))

    assert result.contact is None
    assert result.outbound is None
    assert not result.attributed


def test_strip_message_id():
    assert strip_message_id("<abc@x.com>") == "abc@x.com"
    assert strip_message_id("  <abc@x.com> <def@y.com>") == "abc@x.com"
    assert strip_message_id("") == ""
