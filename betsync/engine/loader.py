"""Snapshot loader: on-demand REST fetches merged through the reconciler."""

import asyncio
import logging

from pydantic import ValidationError

from betsync.services.betting import Account, Batch, BettingAPIError, BettingClient

from .exceptions import SnapshotLoadError
from .reconciler import ReconcileResult, Reconciler

logger = logging.getLogger(__name__)


class SnapshotLoader:
    def __init__(self, client: BettingClient, reconciler: Reconciler):
        self.client = client
        self.reconciler = reconciler

    async def load_accounts(self) -> ReconcileResult | None:
        """Replace the accounts collection from a fresh listing.

        Returns ``None`` when the response was superseded before it arrived.
        """
        ticket = self.reconciler.begin_accounts_load()
        try:
            accounts = await self.client.get_accounts()
        except (BettingAPIError, ValidationError) as e:
            self.reconciler.abandon_load(ticket)
            logger.error(f"Failed to load accounts: {e}")
            raise SnapshotLoadError(f"Failed to load accounts: {e}", errors=[e]) from e

        logger.info(f"Loaded {len(accounts)} accounts")
        return self.reconciler.apply_accounts_snapshot(ticket, accounts)

    async def load_account_detail(self, account_id: str) -> Account:
        return await self.client.get_account(account_id)

    async def load_active_batches(self, account_id: str) -> list[Batch]:
        batches = await self.client.get_account_batches(account_id)
        return [b for b in batches if not b.completed]

    async def load_focus(self, account_id: str) -> ReconcileResult | None:
        """Fetch account detail and active batches together and merge them.

        Either both land or neither does. Returns ``None`` when focus moved
        away from ``account_id`` (or a newer load started) while in flight.
        """
        ticket = self.reconciler.begin_batches_load(account_id)
        try:
            results = await asyncio.gather(
                self.load_account_detail(account_id),
                self.load_active_batches(account_id),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            self.reconciler.abandon_load(ticket)
            raise

        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            self.reconciler.abandon_load(ticket)
            detail = "; ".join(str(e) for e in errors)
            logger.error(f"Failed to load account {account_id}: {detail}")
            raise SnapshotLoadError(
                f"Failed to load account {account_id}: {detail}", errors=errors
            )

        account, batches = results
        logger.info(f"Loaded {len(batches)} active batches for account {account_id}")
        return self.reconciler.apply_batches_snapshot(ticket, account, batches)
