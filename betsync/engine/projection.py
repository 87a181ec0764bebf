"""Read-only view handed to the UI layer."""

from pydantic import BaseModel, ConfigDict

from betsync.services.betting.models import Account, Batch, Bet
from betsync.services.stream.models import ConnectionState

from .reconciler import Reconciler


class Projection(BaseModel):
    model_config = ConfigDict(frozen=True)

    accounts: tuple[Account, ...] = ()
    focused_account: Account | None = None
    active_batches: tuple[Batch, ...] = ()
    selected_batch: Batch | None = None
    bets: tuple[Bet, ...] = ()
    load_error: str | None = None
    connection_state: ConnectionState = ConnectionState.CONNECTING

    @property
    def focused_account_id(self) -> str | None:
        return self.focused_account.id if self.focused_account else None

    @property
    def selected_batch_id(self) -> str | None:
        return self.selected_batch.id if self.selected_batch else None

    @property
    def active_batch_ids(self) -> list[str]:
        return [b.id for b in self.active_batches]


def build_projection(
    reconciler: Reconciler,
    load_error: str | None = None,
    connection_state: ConnectionState = ConnectionState.CONNECTING,
) -> Projection:
    selected = reconciler.selected_batch
    return Projection(
        accounts=tuple(reconciler.store.accounts),
        focused_account=reconciler.focused_account,
        active_batches=tuple(reconciler.active_batches),
        selected_batch=selected,
        bets=selected.bets if selected else (),
        load_error=load_error,
        connection_state=connection_state,
    )
