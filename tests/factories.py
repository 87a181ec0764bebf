"""Builders and an in-memory REST fake shared by the test suite."""

import asyncio
from typing import Any

from betsync.engine import Reconciler
from betsync.services.betting import (
    Account,
    Batch,
    Bet,
    BetStatus,
    BettingNotFoundError,
    BettingServerError,
    NewBet,
)


def make_account(account_id: str | int, name: str = "", hostname: str = "host.local") -> Account:
    return Account(id=account_id, name=name or f"Account {account_id}", hostname=hostname)


def make_bet(
    pid: str,
    batch_id: str | int,
    status: str = "pending",
    selection: str = "Home",
    stake: float = 10.0,
    cost: float = 2.5,
) -> Bet:
    return Bet(
        pid=pid,
        id="1",
        batch_id=batch_id,
        selection=selection,
        stake=stake,
        cost=cost,
        status=status,
    )


def make_batch(
    batch_id: str | int,
    account_id: str | int,
    bets: list[Bet] | None = None,
    completed: bool = False,
) -> Batch:
    return Batch(
        id=batch_id,
        account_id=account_id,
        meta={"source": "test"},
        completed=completed,
        bets=tuple(bets or ()),
    )


def load_accounts(reconciler: Reconciler, accounts: list[Account]) -> None:
    ticket = reconciler.begin_accounts_load()
    reconciler.apply_accounts_snapshot(ticket, accounts)


def load_batches(reconciler: Reconciler, account: Account, batches: list[Batch]) -> None:
    ticket = reconciler.begin_batches_load(account.id)
    reconciler.apply_batches_snapshot(ticket, account, batches)


def store_state(reconciler: Reconciler) -> tuple[Any, ...]:
    store = reconciler.store
    batches = {a.id: store.batches_for(a.id) for a in store.accounts}
    return (store.accounts, batches, len(store), reconciler.focus)


class FakeBettingClient:
    """Stands in for BettingClient with server state held in memory."""

    def __init__(
        self,
        accounts: list[Account] | None = None,
        batches: dict[str, list[Batch]] | None = None,
    ):
        self.accounts = list(accounts or [])
        self.batches = {k: list(v) for k, v in (batches or {}).items()}
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeBettingClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.closed = True

    def _check(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    def _find_account(self, account_id: str) -> Account:
        for account in self.accounts:
            if account.id == account_id:
                return account
        raise BettingNotFoundError(f"Resource not found: accounts/{account_id}", 404)

    async def get_accounts(self) -> list[Account]:
        self.calls.append(("get_accounts",))
        self._check("get_accounts")
        return list(self.accounts)

    async def get_account(self, account_id: str) -> Account:
        self.calls.append(("get_account", account_id))
        self._check("get_account")
        return self._find_account(account_id)

    async def get_account_batches(self, account_id: str) -> list[Batch]:
        self.calls.append(("get_account_batches", account_id))
        if account_id in self.gates:
            await self.gates[account_id].wait()
        self._check("get_account_batches")
        return list(self.batches.get(account_id, []))

    async def get_batch(self, account_id: str, batch_id: str) -> Batch:
        self.calls.append(("get_batch", account_id, batch_id))
        for batch in self.batches.get(account_id, []):
            if batch.id == batch_id:
                return batch
        raise BettingNotFoundError(f"Resource not found: batches/{batch_id}", 404)

    async def update_bet_status(
        self, account_id: str, batch_id: str, bet_id: str, status: BetStatus
    ) -> Bet:
        self.calls.append(("update_bet_status", account_id, batch_id, bet_id, status))
        self._check("update_bet_status")
        return make_bet(bet_id, batch_id, status=status.value)

    async def submit_batch(self, account_id: str, batch_id: str) -> None:
        self.calls.append(("submit_batch", account_id, batch_id))
        self._check("submit_batch")
        self.batches[account_id] = [b for b in self.batches.get(account_id, []) if b.id != batch_id]

    async def cancel_batch(self, account_id: str, batch_id: str) -> None:
        self.calls.append(("cancel_batch", account_id, batch_id))
        self._check("cancel_batch")
        self.batches[account_id] = [b for b in self.batches.get(account_id, []) if b.id != batch_id]

    async def create_batch(self, account_id: str, meta: dict[str, Any], bets: list[NewBet]) -> Batch:
        self.calls.append(("create_batch", account_id))
        self._check("create_batch")
        batch_id = f"{account_id}-{len(self.batches.get(account_id, [])) + 100}"
        batch = Batch(
            id=batch_id,
            account_id=account_id,
            meta=meta,
            bets=tuple(
                Bet(pid=f"{batch_id}-{b.id}", id=b.id, batch_id=batch_id, selection=b.selection,
                    stake=b.stake, cost=b.cost)
                for b in bets
            ),
        )
        self.batches.setdefault(account_id, []).append(batch)
        return batch

    async def create_account(self, name: str, hostname: str) -> Account:
        self.calls.append(("create_account", name))
        self._check("create_account")
        account = make_account(str(len(self.accounts) + 100), name, hostname)
        self.accounts.append(account)
        return account

    async def delete_account(self, account_id: str) -> None:
        self.calls.append(("delete_account", account_id))
        self._check("delete_account")
        self.accounts = [a for a in self.accounts if a.id != account_id]


def server_error(message: str = "boom") -> BettingServerError:
    return BettingServerError(message, status_code=500)
