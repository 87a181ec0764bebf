"""Turns id-only creation events into full events by fetching the entity."""

import logging

from pydantic import ValidationError

from betsync.services.betting import BettingAPIError, BettingClient
from betsync.services.stream.models import (
    AccountCreated,
    AccountReference,
    BatchCreated,
    BatchReference,
    StreamEvent,
)

from .reconciler import Reconciler

logger = logging.getLogger(__name__)


class ReferenceResolver:
    def __init__(self, client: BettingClient, reconciler: Reconciler):
        self.client = client
        self.reconciler = reconciler

    async def resolve(self, event: StreamEvent) -> StreamEvent | None:
        """Return a concrete event, or ``None`` if the reference cannot be resolved."""
        if isinstance(event, AccountReference):
            return await self._resolve_account(event)
        if isinstance(event, BatchReference):
            return await self._resolve_batch(event)
        return event

    async def _resolve_account(self, event: AccountReference) -> StreamEvent | None:
        if self.reconciler.store.has_account(event.account_id):
            return None
        try:
            account = await self.client.get_account(event.account_id)
        except (BettingAPIError, ValidationError) as e:
            logger.warning(f"Could not fetch announced account {event.account_id}: {e}")
            return None
        return AccountCreated(account=account)

    async def _resolve_batch(self, event: BatchReference) -> StreamEvent | None:
        if self.reconciler.store.get_batch(event.batch_id) is not None:
            return None
        # Bare ids carry no owner; assume the account in focus right now.
        account_id = event.account_id or self.reconciler.focused_account_id
        if account_id is None:
            logger.debug(f"Dropping batch reference {event.batch_id}: no account to fetch from")
            return None
        try:
            batch = await self.client.get_batch(account_id, event.batch_id)
        except (BettingAPIError, ValidationError) as e:
            logger.warning(f"Could not fetch announced batch {event.batch_id}: {e}")
            return None
        return BatchCreated(batch=batch)
