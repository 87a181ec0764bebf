"""Decode boundary for stream events.

The same event name has been published with several payload shapes over the
server's history. Each shape gets a named parser; a parser returns ``None``
when the payload is not of its shape. The accepted shapes per event are
configurable so a deployment can pin the wire contract it actually speaks.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from betsync.services.betting.models import Account, Batch

from .exceptions import MalformedEventError
from .models import (
    AccountCreated,
    AccountDeleted,
    AccountReference,
    BatchCompleted,
    BatchCreated,
    BatchReference,
    BetStatusUpdated,
    Ping,
    ServerSentEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

ShapeParser = Callable[[Any], StreamEvent | None]


def _is_scalar_id(payload: Any) -> bool:
    return isinstance(payload, (int, str)) and not isinstance(payload, bool) and payload != ""


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


# account_created


def _account_flat(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or "name" not in payload:
        return None
    if _first_present(payload, "id", "pk") is None:
        return None
    return AccountCreated(account=Account.from_api(payload))


def _account_prefixed(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or "account_name" not in payload:
        return None
    return AccountCreated(
        account=Account(
            id=payload["account_id"],
            name=payload["account_name"],
            hostname=payload.get("account_hostname", ""),
        )
    )


def _account_broker(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or payload.get("account_id") is None:
        return None
    return AccountReference(account_id=payload["account_id"])


# account_deleted


def _deleted_by_id(payload: Any) -> StreamEvent | None:
    if _is_scalar_id(payload):
        return AccountDeleted(account_id=payload)
    if isinstance(payload, dict) and payload.get("id") is not None:
        return AccountDeleted(account_id=payload["id"])
    return None


def _deleted_by_pk(payload: Any) -> StreamEvent | None:
    if isinstance(payload, dict) and payload.get("pk") is not None:
        return AccountDeleted(account_id=payload["pk"])
    return None


# batch_created


def _batch_document(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or payload.get("account_id") is None:
        return None
    if _first_present(payload, "id", "pk") is None:
        return None
    if not any(key in payload for key in ("bets", "meta", "completed")):
        return None
    return BatchCreated(batch=Batch.from_api(payload))


def _batch_reference(payload: Any) -> StreamEvent | None:
    if _is_scalar_id(payload):
        return BatchReference(batch_id=payload)
    if not isinstance(payload, dict):
        return None
    batch_id = _first_present(payload, "batch_id", "id", "pk")
    if batch_id is None:
        return None
    return BatchReference(batch_id=batch_id, account_id=payload.get("account_id"))


# batch_completed


def _completed_by_id(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or payload.get("id") is None:
        return None
    return BatchCompleted(batch_id=payload["id"], account_id=payload.get("account_id"))


def _completed_reference(payload: Any) -> StreamEvent | None:
    if _is_scalar_id(payload):
        return BatchCompleted(batch_id=payload)
    if not isinstance(payload, dict):
        return None
    batch_id = _first_present(payload, "batch_id", "pk")
    if batch_id is None:
        return None
    return BatchCompleted(batch_id=batch_id, account_id=payload.get("account_id"))


# bet_status_updated


def _bet_flat(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or "status" not in payload:
        return None
    bet_id = _first_present(payload, "pid", "bet_id")
    if bet_id is None or payload.get("batch_id") is None:
        return None
    return BetStatusUpdated(
        batch_id=payload["batch_id"], bet_id=bet_id, status=payload["status"]
    )


def _bet_envelope(payload: Any) -> StreamEvent | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("bet"), dict):
        return None
    bet = dict(payload["bet"])
    bet.setdefault("batch_id", payload.get("batch_id"))
    return _bet_flat(bet)


SHAPES: dict[str, dict[str, ShapeParser]] = {
    "account_created": {
        "account": _account_flat,
        "prefixed": _account_prefixed,
        "broker": _account_broker,
    },
    "account_deleted": {
        "id": _deleted_by_id,
        "pk": _deleted_by_pk,
    },
    "batch_created": {
        "document": _batch_document,
        "reference": _batch_reference,
    },
    "batch_completed": {
        "id": _completed_by_id,
        "reference": _completed_reference,
    },
    "bet_status_updated": {
        "bet": _bet_flat,
        "envelope": _bet_envelope,
    },
}


class EventDecoder:
    """Maps raw SSE messages to canonical stream events."""

    def __init__(self, accepted_shapes: dict[str, list[str]] | None = None):
        self._parsers: dict[str, list[tuple[str, ShapeParser]]] = {}
        for event_name, shapes in SHAPES.items():
            names = list(shapes)
            if accepted_shapes is not None and event_name in accepted_shapes:
                names = accepted_shapes[event_name]
                unknown = [n for n in names if n not in shapes]
                if unknown:
                    raise ValueError(
                        f"Unknown payload shapes for {event_name}: {unknown}. "
                        f"Known: {list(shapes)}"
                    )
            self._parsers[event_name] = [(n, shapes[n]) for n in names]

    @property
    def event_names(self) -> list[str]:
        return [*self._parsers, Ping.name]

    def decode(self, message: ServerSentEvent) -> StreamEvent:
        name = message.event
        if name == Ping.name:
            return Ping(data=message.data)

        parsers = self._parsers.get(name)
        if parsers is None:
            raise MalformedEventError(f"Unknown event type: {name}", event_name=name)

        try:
            payload = json.loads(message.data)
        except json.JSONDecodeError as e:
            raise MalformedEventError(
                f"Invalid JSON in {name} event: {e}", event_name=name
            ) from e

        last_error: Exception | None = None
        for shape_name, parser in parsers:
            try:
                event = parser(payload)
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                last_error = e
                continue
            if event is not None:
                logger.debug(f"Decoded {name} using '{shape_name}' shape")
                return event

        detail = f": {last_error}" if last_error else ""
        raise MalformedEventError(
            f"No accepted shape matched {name} payload{detail}", event_name=name
        )
