"""Mutation gateway: REST mutations applied back through the reconciler.

The server's response is turned into the same canonical event the stream
would deliver for the change, so a bet status changes in exactly one way no
matter whether the response or the stream reports it first. The matching
stream event that arrives later is then a no-op.
"""

import logging
from typing import Any

from betsync.services.betting import BetStatus, BettingAPIError, BettingClient, NewBet
from betsync.services.stream.models import (
    AccountCreated,
    AccountDeleted,
    BatchCancelled,
    BatchCompleted,
    BatchCreated,
    BetStatusUpdated,
)

from .exceptions import MutationError
from .reconciler import ReconcileResult, Reconciler

logger = logging.getLogger(__name__)


def _mutation_error(operation: str, e: BettingAPIError) -> MutationError:
    logger.error(f"{operation} failed: {e}")
    return MutationError(f"{operation} failed: {e}", operation, e.status_code)


class MutationGateway:
    def __init__(self, client: BettingClient, reconciler: Reconciler):
        self.client = client
        self.reconciler = reconciler

    async def set_bet_status(
        self,
        account_id: str,
        batch_id: str,
        bet_id: str,
        status: BetStatus | str,
    ) -> ReconcileResult:
        status = BetStatus(status)
        try:
            bet = await self.client.update_bet_status(account_id, batch_id, bet_id, status)
        except BettingAPIError as e:
            raise _mutation_error("set_bet_status", e) from e
        return self.reconciler.apply(
            BetStatusUpdated(batch_id=bet.batch_id, bet_id=bet.pid, status=bet.status)
        )

    async def submit_batch(self, account_id: str, batch_id: str) -> ReconcileResult:
        try:
            await self.client.submit_batch(account_id, batch_id)
        except BettingAPIError as e:
            raise _mutation_error("submit_batch", e) from e
        return self.reconciler.apply(BatchCompleted(batch_id=batch_id, account_id=account_id))

    async def cancel_batch(self, account_id: str, batch_id: str) -> ReconcileResult:
        try:
            await self.client.cancel_batch(account_id, batch_id)
        except BettingAPIError as e:
            raise _mutation_error("cancel_batch", e) from e
        return self.reconciler.apply(BatchCancelled(batch_id=batch_id, account_id=account_id))

    async def create_batch(
        self,
        account_id: str,
        meta: dict[str, Any],
        bets: list[NewBet],
    ) -> ReconcileResult:
        try:
            batch = await self.client.create_batch(account_id, meta, bets)
        except BettingAPIError as e:
            raise _mutation_error("create_batch", e) from e
        return self.reconciler.apply(BatchCreated(batch=batch))

    async def create_account(self, name: str, hostname: str) -> ReconcileResult:
        try:
            account = await self.client.create_account(name, hostname)
        except BettingAPIError as e:
            raise _mutation_error("create_account", e) from e
        return self.reconciler.apply(AccountCreated(account=account))

    async def delete_account(self, account_id: str) -> ReconcileResult:
        try:
            await self.client.delete_account(account_id)
        except BettingAPIError as e:
            raise _mutation_error("delete_account", e) from e
        return self.reconciler.apply(AccountDeleted(account_id=account_id))
