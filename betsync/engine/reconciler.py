"""Reconciler: the single writer of the entity store.

Every change to local state, whether it comes from a snapshot load, a stream
event or a mutation response, goes through here. Focus (focused account and
selected batch) is read at the moment an event is applied, never captured
when a request was issued.

Snapshot loads take a ``LoadTicket``. A ticket stops being current when focus
moves or a newer load of the same kind starts, and a response carrying a
stale ticket is discarded. While a load is in flight the events touching the
same slice are journaled and replayed on top of the snapshot once it lands.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count
from typing import Literal

from betsync.services.betting.models import Account, Batch
from betsync.services.stream.models import (
    AccountCreated,
    AccountDeleted,
    BatchCancelled,
    BatchCompleted,
    BatchCreated,
    BetStatusUpdated,
    Ping,
    StreamEvent,
)

from .store import EntityStore

logger = logging.getLogger(__name__)

LoadKind = Literal["accounts", "batches"]

_ACCOUNT_EVENTS = (AccountCreated, AccountDeleted)
_BATCH_EVENTS = (BatchCreated, BatchCompleted, BatchCancelled, BetStatusUpdated)


@dataclass
class Focus:
    account_id: str | None = None
    batch_id: str | None = None


@dataclass(frozen=True)
class LoadTicket:
    kind: LoadKind
    seq: int
    account_id: str | None = None


@dataclass
class ReconcileResult:
    changed: bool = False
    focus_changed: bool = False
    # Account whose batch snapshot should be (re)loaded after this change.
    reload_account_id: str | None = None

    def merge(self, other: ReconcileResult) -> ReconcileResult:
        self.changed = self.changed or other.changed
        self.focus_changed = self.focus_changed or other.focus_changed
        if other.focus_changed:
            self.reload_account_id = other.reload_account_id
        return self


@dataclass
class _PendingLoad:
    ticket: LoadTicket
    journal: list[StreamEvent] = field(default_factory=list)


class Reconciler:
    def __init__(
        self,
        store: EntityStore | None = None,
        focus_new_accounts: bool = False,
        follow_new_batches: bool = True,
    ):
        self.store = store or EntityStore()
        self.focus_new_accounts = focus_new_accounts
        self.follow_new_batches = follow_new_batches
        self._focus = Focus()
        self._seq = count(1)
        self._pending: dict[LoadKind, _PendingLoad] = {}
        self._handlers: dict[type, Callable[[StreamEvent], ReconcileResult]] = {
            AccountCreated: self._account_created,
            AccountDeleted: self._account_deleted,
            BatchCreated: self._batch_created,
            BatchCompleted: self._batch_removed,
            BatchCancelled: self._batch_removed,
            BetStatusUpdated: self._bet_status_updated,
            Ping: self._ping,
        }

    # Focus

    @property
    def focus(self) -> Focus:
        return Focus(self._focus.account_id, self._focus.batch_id)

    @property
    def focused_account_id(self) -> str | None:
        return self._focus.account_id

    @property
    def selected_batch_id(self) -> str | None:
        return self._focus.batch_id

    @property
    def focused_account(self) -> Account | None:
        if self._focus.account_id is None:
            return None
        return self.store.get_account(self._focus.account_id)

    @property
    def active_batches(self) -> list[Batch]:
        if self._focus.account_id is None:
            return []
        return self.store.batches_for(self._focus.account_id)

    @property
    def selected_batch(self) -> Batch | None:
        if self._focus.batch_id is None:
            return None
        batch = self.store.get_batch(self._focus.batch_id)
        if batch is None or batch.account_id != self._focus.account_id:
            return None
        return batch

    def focus_account(self, account_id: str | None) -> ReconcileResult:
        if account_id is not None and not self.store.has_account(account_id):
            raise ValueError(f"Unknown account: {account_id}")
        return self._set_focus(account_id)

    def select_batch(self, batch_id: str | None) -> bool:
        if batch_id is not None and batch_id not in {b.id for b in self.active_batches}:
            raise ValueError(f"Batch {batch_id} is not in the active list")
        if self._focus.batch_id == batch_id:
            return False
        self._focus.batch_id = batch_id
        return True

    def _set_focus(self, account_id: str | None) -> ReconcileResult:
        if self._focus.account_id == account_id:
            return ReconcileResult()

        logger.info(f"Focus moved from account {self._focus.account_id} to {account_id}")
        self._focus = Focus(account_id=account_id)
        self.store.retain_batches_for(account_id)
        pending = self._pending.pop("batches", None)
        if pending is not None:
            logger.debug(f"Abandoned batch load for account {pending.ticket.account_id}")
        return ReconcileResult(changed=True, focus_changed=True, reload_account_id=account_id)

    def _fallback_selection(self, removed_index: int) -> None:
        remaining = self.active_batches
        if not remaining:
            self._focus.batch_id = None
        else:
            self._focus.batch_id = remaining[min(removed_index, len(remaining) - 1)].id

    # Events

    def apply(self, event: StreamEvent) -> ReconcileResult:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"No reconcile rule for {type(event).__name__}")

        result = handler(event)
        self._journal(event)
        return result

    def _journal(self, event: StreamEvent) -> None:
        if isinstance(event, _ACCOUNT_EVENTS):
            pending = self._pending.get("accounts")
        elif isinstance(event, _BATCH_EVENTS):
            pending = self._pending.get("batches")
        else:
            return
        if pending is not None:
            pending.journal.append(event)

    def _replay(self, journal: list[StreamEvent]) -> ReconcileResult:
        result = ReconcileResult()
        for event in journal:
            # Focus effects of account events already happened on first
            # application; only the store effect is re-applied.
            if isinstance(event, AccountCreated):
                result.changed = self.store.upsert_account(event.account) or result.changed
            elif isinstance(event, AccountDeleted):
                result.changed = self.store.remove_account(event.account_id) or result.changed
            else:
                result.merge(self._handlers[type(event)](event))
        if journal:
            logger.debug(f"Replayed {len(journal)} events over snapshot")
        return result

    def _account_created(self, event: AccountCreated) -> ReconcileResult:
        account = event.account
        result = ReconcileResult(changed=self.store.upsert_account(account))
        if self.focus_new_accounts or self._focus.account_id is None:
            result.merge(self._set_focus(account.id))
        return result

    def _account_deleted(self, event: AccountDeleted) -> ReconcileResult:
        result = ReconcileResult(changed=self.store.remove_account(event.account_id))
        if self._focus.account_id == event.account_id:
            remaining = self.store.account_ids
            result.merge(self._set_focus(remaining[0] if remaining else None))
        return result

    def _batch_created(self, event: BatchCreated) -> ReconcileResult:
        batch = event.batch
        if batch.completed:
            return self._remove_batch(batch.id, batch.account_id)

        result = ReconcileResult()
        if batch.account_id != self._focus.account_id:
            if self._focus.account_id is not None and not self.follow_new_batches:
                logger.debug(f"Ignoring batch {batch.id} for unfocused account {batch.account_id}")
                return result
            if not self.store.has_account(batch.account_id):
                logger.info(f"Ignoring batch {batch.id} for unknown account {batch.account_id}")
                return result
            logger.info(f"New batch {batch.id} arrived for account {batch.account_id}; following it")
            result.merge(self._set_focus(batch.account_id))

        result.changed = self.store.upsert_batch(batch) or result.changed
        if self._focus.batch_id is None:
            self._focus.batch_id = batch.id
            result.changed = True
        return result

    def _batch_removed(self, event: BatchCompleted | BatchCancelled) -> ReconcileResult:
        return self._remove_batch(event.batch_id, event.account_id)

    def _remove_batch(self, batch_id: str, account_id: str | None) -> ReconcileResult:
        batch = self.store.get_batch(batch_id)
        if batch is None:
            return ReconcileResult()
        if account_id is not None and batch.account_id != account_id:
            logger.warning(
                f"Batch {batch_id} belongs to account {batch.account_id}, "
                f"not {account_id}; ignoring removal"
            )
            return ReconcileResult()

        was_selected = self._focus.batch_id == batch_id
        index = [b.id for b in self.active_batches].index(batch_id) if was_selected else 0
        self.store.remove_batch(batch_id)
        if was_selected:
            self._fallback_selection(index)
        return ReconcileResult(changed=True)

    def _bet_status_updated(self, event: BetStatusUpdated) -> ReconcileResult:
        if self.store.get_batch(event.batch_id) is None:
            logger.debug(f"Dropping status for bet {event.bet_id}: batch {event.batch_id} not loaded")
            return ReconcileResult()
        return ReconcileResult(
            changed=self.store.patch_bet_status(event.batch_id, event.bet_id, event.status)
        )

    def _ping(self, event: Ping) -> ReconcileResult:
        return ReconcileResult()

    # Snapshots

    def begin_accounts_load(self) -> LoadTicket:
        return self._begin("accounts", None)

    def begin_batches_load(self, account_id: str) -> LoadTicket:
        return self._begin("batches", account_id)

    def _begin(self, kind: LoadKind, account_id: str | None) -> LoadTicket:
        ticket = LoadTicket(kind=kind, seq=next(self._seq), account_id=account_id)
        self._pending[kind] = _PendingLoad(ticket)
        return ticket

    def is_current(self, ticket: LoadTicket) -> bool:
        pending = self._pending.get(ticket.kind)
        if pending is None or pending.ticket != ticket:
            return False
        return ticket.kind == "accounts" or ticket.account_id == self._focus.account_id

    def abandon_load(self, ticket: LoadTicket) -> None:
        pending = self._pending.get(ticket.kind)
        if pending is not None and pending.ticket == ticket:
            del self._pending[ticket.kind]

    def apply_accounts_snapshot(
        self, ticket: LoadTicket, accounts: list[Account]
    ) -> ReconcileResult | None:
        if not self.is_current(ticket):
            logger.info("Discarding stale accounts snapshot")
            return None

        journal = self._pending.pop("accounts").journal
        result = ReconcileResult(changed=self.store.replace_accounts(accounts))
        result.merge(self._replay(journal))

        focused = self._focus.account_id
        if focused is None or not self.store.has_account(focused):
            remaining = self.store.account_ids
            result.merge(self._set_focus(remaining[0] if remaining else None))
        return result

    def apply_batches_snapshot(
        self, ticket: LoadTicket, account: Account, batches: list[Batch]
    ) -> ReconcileResult | None:
        # Focus is re-read here: the ticket only counts if it still names the focus.
        if not self.is_current(ticket):
            logger.info(f"Discarding stale batch snapshot for account {ticket.account_id}")
            return None

        journal = self._pending.pop("batches").journal
        active = [b for b in batches if not b.completed]
        result = ReconcileResult(changed=self.store.upsert_account(account))
        result.changed = (
            self.store.replace_batch_list(ticket.account_id, active) or result.changed
        )
        result.merge(self._replay(journal))

        if self.selected_batch is None:
            current = self.active_batches
            new_selection = current[0].id if current else None
            if new_selection != self._focus.batch_id:
                self._focus.batch_id = new_selection
                result.changed = True
        return result
