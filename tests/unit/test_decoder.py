"""Unit tests for the stream event decode boundary."""

import json

import pytest

from betsync.services.betting import BetStatus
from betsync.services.stream import (
    AccountCreated,
    AccountDeleted,
    AccountReference,
    BatchCompleted,
    BatchCreated,
    BatchReference,
    BetStatusUpdated,
    EventDecoder,
    MalformedEventError,
    Ping,
    ServerSentEvent,
)


def sse(event: str, payload) -> ServerSentEvent:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return ServerSentEvent(event=event, data=data)


decoder = EventDecoder()


def test_account_created_flat_object() -> None:
    event = decoder.decode(
        sse("account_created", {"id": 7, "name": "Alpha", "hostname": "a.local",
                                "created_at": "2025-06-01T10:00:00Z"})
    )

    assert isinstance(event, AccountCreated)
    assert event.account.id == "7"
    assert event.account.hostname == "a.local"
    assert event.account.created_at is not None


def test_account_created_prefixed_fields() -> None:
    event = decoder.decode(
        sse("account_created", {"account_id": 7, "account_name": "Alpha",
                                "account_hostname": "a.local"})
    )

    assert isinstance(event, AccountCreated)
    assert (event.account.id, event.account.name) == ("7", "Alpha")


def test_account_created_broker_event_is_a_reference() -> None:
    event = decoder.decode(
        sse("account_created", {"id": 55, "pk": None, "account_id": 7, "event": "account_created"})
    )

    assert event == AccountReference(account_id="7")


@pytest.mark.parametrize("payload", [{"id": 3}, {"pk": 3}, 3, "3"])
def test_account_deleted_accepts_id_or_pk(payload) -> None:
    assert decoder.decode(sse("account_deleted", payload)) == AccountDeleted(account_id="3")


def test_batch_created_whole_document() -> None:
    event = decoder.decode(
        sse("batch_created", {
            "id": 10, "account_id": 1, "completed": False, "meta": {"league": "EPL"},
            "bets": [{"pid": 501, "id": 1, "selection": "Home", "stake": 5, "cost": 2.1,
                      "status": "pending"}],
        })
    )

    assert isinstance(event, BatchCreated)
    assert event.batch.account_id == "1"
    assert event.batch.bets[0].pid == "501"
    assert event.batch.bets[0].batch_id == "10"


@pytest.mark.parametrize(
    "payload, expected",
    [
        (10, BatchReference(batch_id="10")),
        ({"batch_id": 10, "account_id": 1}, BatchReference(batch_id="10", account_id="1")),
        ({"id": 10}, BatchReference(batch_id="10")),
    ],
)
def test_batch_created_bare_id_is_a_reference(payload, expected) -> None:
    assert decoder.decode(sse("batch_created", payload)) == expected


@pytest.mark.parametrize(
    "payload",
    [{"id": 10, "account_id": 1}, {"batch_id": 10, "account_id": 1}, {"pk": 10, "account_id": 1}],
)
def test_batch_completed_shapes(payload) -> None:
    assert decoder.decode(sse("batch_completed", payload)) == BatchCompleted(
        batch_id="10", account_id="1"
    )


def test_bet_status_flat_and_envelope_agree() -> None:
    flat = decoder.decode(
        sse("bet_status_updated", {"batch_id": 10, "pid": "p1", "status": "successful"})
    )
    envelope = decoder.decode(
        sse("bet_status_updated", {"bet": {"pid": "p1", "batch_id": 10, "status": "successful",
                                           "selection": "Home", "stake": 1, "cost": 1}})
    )

    assert flat == envelope == BetStatusUpdated(
        batch_id="10", bet_id="p1", status=BetStatus.SUCCESSFUL
    )


def test_ping_needs_no_json() -> None:
    assert decoder.decode(sse("ping", "keep-alive")) == Ping(data="keep-alive")


@pytest.mark.parametrize(
    "message",
    [
        sse("account_created", "{not json"),
        sse("account_created", {"id": 5}),
        sse("bet_status_updated", {"batch_id": 10, "pid": "p1", "status": "won"}),
        sse("batch_completed", {"account_id": 1}),
        sse("something_else", {}),
    ],
)
def test_undecodable_payloads_are_malformed(message) -> None:
    with pytest.raises(MalformedEventError) as exc_info:
        decoder.decode(message)
    assert exc_info.value.event_name == message.event


def test_accepted_shapes_pin_the_wire_contract() -> None:
    strict = EventDecoder({"account_deleted": ["pk"]})

    assert strict.decode(sse("account_deleted", {"pk": 3})) == AccountDeleted(account_id="3")
    with pytest.raises(MalformedEventError):
        strict.decode(sse("account_deleted", {"id": 3}))
    # Events not mentioned keep every shape.
    assert isinstance(strict.decode(sse("batch_created", 10)), BatchReference)


def test_unknown_shape_name_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown payload shapes"):
        EventDecoder({"batch_created": ["document", "legacy"]})
