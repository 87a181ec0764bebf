"""In-memory entity store for accounts, active batches and their bets.

Mutations are synchronous and idempotent: each returns ``True`` only when the
stored state actually changed. Removing or patching something that is not
present is a silent no-op, since local absence just means "already
consistent" with the server.
"""

import logging

from betsync.services.betting.models import Account, Batch, Bet, BetStatus

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        # account_id -> batch_id -> Batch, both in arrival order
        self._batches: dict[str, dict[str, Batch]] = {}
        self._batch_owner: dict[str, str] = {}

    # Reads

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts.values())

    @property
    def account_ids(self) -> list[str]:
        return list(self._accounts)

    def get_account(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)

    def has_account(self, account_id: str) -> bool:
        return account_id in self._accounts

    def batches_for(self, account_id: str) -> list[Batch]:
        return list(self._batches.get(account_id, {}).values())

    def get_batch(self, batch_id: str) -> Batch | None:
        owner = self._batch_owner.get(batch_id)
        if owner is None:
            return None
        return self._batches[owner][batch_id]

    def bets_for(self, batch_id: str) -> list[Bet]:
        batch = self.get_batch(batch_id)
        return list(batch.bets) if batch else []

    def __len__(self) -> int:
        return len(self._batch_owner)

    # Accounts

    def upsert_account(self, account: Account) -> bool:
        if self._accounts.get(account.id) == account:
            return False
        self._accounts[account.id] = account
        return True

    def remove_account(self, account_id: str) -> bool:
        removed = self._accounts.pop(account_id, None) is not None
        dropped = self._drop_batches_of(account_id)
        return removed or dropped

    def replace_accounts(self, accounts: list[Account]) -> bool:
        replacement: dict[str, Account] = {}
        for account in accounts:
            replacement.setdefault(account.id, account)

        changed = list(replacement.items()) != list(self._accounts.items())
        for account_id in [a for a in self._batches if a not in replacement]:
            changed = self._drop_batches_of(account_id) or changed
        self._accounts = replacement
        return changed

    # Batches

    def replace_batch_list(self, account_id: str, batches: list[Batch]) -> bool:
        replacement: dict[str, Batch] = {}
        for batch in batches:
            if batch.account_id != account_id:
                logger.warning(
                    f"Ignoring batch {batch.id} of account {batch.account_id} "
                    f"in batch list for account {account_id}"
                )
                continue
            replacement.setdefault(batch.id, batch)

        current = self._batches.get(account_id, {})
        if list(replacement.items()) == list(current.items()):
            return False

        self._drop_batches_of(account_id)
        for batch_id in replacement:
            # A batch id moving between accounts keeps only the new owner.
            previous = self._batch_owner.get(batch_id)
            if previous is not None and previous != account_id:
                del self._batches[previous][batch_id]
            self._batch_owner[batch_id] = account_id
        self._batches[account_id] = replacement
        return True

    def upsert_batch(self, batch: Batch) -> bool:
        """Insert a batch unless its id is already stored.

        A stored batch wins over a redelivered creation payload because its
        bet statuses may have been patched since.
        """
        if batch.id in self._batch_owner:
            return False
        self._batches.setdefault(batch.account_id, {})[batch.id] = batch
        self._batch_owner[batch.id] = batch.account_id
        return True

    def remove_batch(self, batch_id: str) -> bool:
        owner = self._batch_owner.pop(batch_id, None)
        if owner is None:
            return False
        del self._batches[owner][batch_id]
        if not self._batches[owner]:
            del self._batches[owner]
        return True

    def retain_batches_for(self, account_id: str | None) -> bool:
        """Drop every batch not owned by ``account_id``."""
        changed = False
        for owner in [a for a in self._batches if a != account_id]:
            changed = self._drop_batches_of(owner) or changed
        return changed

    def patch_bet_status(self, batch_id: str, bet_id: str, status: BetStatus) -> bool:
        batch = self.get_batch(batch_id)
        if batch is None:
            return False
        bet = batch.get_bet(bet_id)
        if bet is None or bet.status == status:
            return False

        bets = tuple(b.with_status(status) if b.pid == bet_id else b for b in batch.bets)
        self._batches[batch.account_id][batch_id] = batch.model_copy(update={"bets": bets})
        return True

    def clear(self) -> None:
        self._accounts.clear()
        self._batches.clear()
        self._batch_owner.clear()

    def _drop_batches_of(self, account_id: str) -> bool:
        batches = self._batches.pop(account_id, None)
        if not batches:
            return False
        for batch_id in batches:
            self._batch_owner.pop(batch_id, None)
        return True
