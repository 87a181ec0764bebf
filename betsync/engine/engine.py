"""Betting engine: owns the store, stream and REST client for one session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from betsync.config import Settings, get_settings
from betsync.services.betting import BetStatus, BettingClient, NewBet
from betsync.services.stream import ConnectionState, EventStreamClient, StreamEvent

from .exceptions import SnapshotLoadError
from .gateway import MutationGateway
from .loader import SnapshotLoader
from .projection import Projection, build_projection
from .reconciler import ReconcileResult, Reconciler
from .resolver import ReferenceResolver

logger = logging.getLogger(__name__)

Listener = Callable[[Projection], None]


class BettingEngine:
    """Keeps a local, reconciled view of accounts, batches and bets.

    Lifecycle is explicit: ``start()`` opens the REST client, subscribes to
    the event stream and loads the initial snapshot; ``teardown()`` closes
    everything. Also usable as ``async with BettingEngine(...) as engine``.

    All state changes go through one ``Reconciler``. Stream events are
    applied strictly in delivery order by a single consumer task; focus
    reloads they trigger run as separate tasks so the stream keeps flowing.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: BettingClient | None = None,
        stream: EventStreamClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or BettingClient(self.settings.api)
        self.stream = stream or EventStreamClient(self.settings.stream)
        if self.stream.on_state_change is None:
            self.stream.on_state_change = self._on_connection_state

        self.reconciler = Reconciler(
            focus_new_accounts=self.settings.engine.focus_new_accounts,
            follow_new_batches=self.settings.engine.follow_new_batches,
        )
        self.loader = SnapshotLoader(self.client, self.reconciler)
        self.gateway = MutationGateway(self.client, self.reconciler)
        self.resolver = ReferenceResolver(self.client, self.reconciler)

        self._listeners: list[Listener] = []
        self._load_error: str | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._focus_load: asyncio.Task[bool] | None = None
        self._started = False

    async def __aenter__(self) -> BettingEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        await self.teardown()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def load_error(self) -> str | None:
        return self._load_error

    @property
    def connection_state(self) -> ConnectionState:
        return self.stream.state

    # Lifecycle

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("BettingEngine already started")

        await self.client.__aenter__()
        self.stream.start()
        self._consumer = asyncio.create_task(
            self._consume_events(), name="betsync-reconciler"
        )
        self._started = True
        logger.info("✓ Betting engine started")

        if self.settings.engine.load_on_start:
            try:
                await self.refresh()
            except BaseException:
                # __aexit__ does not run when __aenter__ raises.
                await self.teardown()
                raise

    async def teardown(self) -> None:
        if not self._started:
            return
        self._started = False

        await self.stream.close()
        tasks = [t for t in (self._consumer, self._focus_load) if t and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer = None
        self._focus_load = None

        await self.client.__aexit__(None, None, None)
        logger.info("✓ Betting engine stopped")

    # Projection

    def projection(self) -> Projection:
        return build_projection(self.reconciler, self._load_error, self.stream.state)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a fresh projection after every change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        if not self._listeners:
            return
        projection = self.projection()
        for listener in list(self._listeners):
            try:
                listener(projection)
            except Exception:
                logger.exception("Projection listener failed")

    def _on_connection_state(self, state: ConnectionState) -> None:
        logger.info(f"Event stream {state.value}")
        self._notify()

    # Snapshots

    async def refresh(self) -> bool:
        """Reload accounts, then the focused account's working set."""
        try:
            result = await self.loader.load_accounts()
        except SnapshotLoadError as e:
            self._record_load_error(e)
            return False

        if result is None:
            return False
        if result.changed:
            self._notify()

        account_id = self.reconciler.focused_account_id
        if account_id is None:
            self._load_error = None
            return True
        return await self._await_focus_load(self._schedule_focus_load(account_id))

    async def select_account(self, account_id: str) -> bool:
        """Focus ``account_id`` and load its active batches."""
        self.reconciler.focus_account(account_id)
        self._notify()
        return await self._await_focus_load(self._schedule_focus_load(account_id))

    def select_batch(self, batch_id: str | None) -> None:
        if self.reconciler.select_batch(batch_id):
            self._notify()

    def _schedule_focus_load(self, account_id: str) -> asyncio.Task[bool]:
        if self._focus_load is not None and not self._focus_load.done():
            self._focus_load.cancel()
        self._focus_load = asyncio.create_task(
            self._load_focus(account_id), name=f"betsync-load-{account_id}"
        )
        return self._focus_load

    async def _await_focus_load(self, task: asyncio.Task[bool]) -> bool:
        # wait() rather than await: a load superseded by a newer focus is
        # cancelled, which is a normal outcome for this caller.
        await asyncio.wait({task})
        if task.cancelled():
            return False
        return task.result()

    async def _load_focus(self, account_id: str) -> bool:
        try:
            result = await self.loader.load_focus(account_id)
        except SnapshotLoadError as e:
            self._record_load_error(e)
            return False

        if result is None:
            return False
        self._load_error = None
        self._notify()
        return True

    def _record_load_error(self, error: SnapshotLoadError) -> None:
        self._load_error = str(error)
        self._notify()

    # Stream

    async def _consume_events(self) -> None:
        while True:
            event = await self.stream.events.get()
            try:
                await self._handle_event(event)
            except Exception:
                logger.exception(f"Failed to apply {event.name} event")
            finally:
                self.stream.events.task_done()

    async def _handle_event(self, event: StreamEvent) -> None:
        resolved = await self.resolver.resolve(event)
        if resolved is None:
            return
        self._after(self.reconciler.apply(resolved))

    def _after(self, result: ReconcileResult) -> None:
        if result.focus_changed and result.reload_account_id is not None:
            self._schedule_focus_load(result.reload_account_id)
        if result.changed:
            self._notify()

    async def drain(self) -> None:
        """Wait until every delivered event and any reload it triggered is applied."""
        await self.stream.events.join()
        if self._focus_load is not None:
            await asyncio.wait({self._focus_load})

    # Mutations

    async def set_bet_status(
        self,
        account_id: str,
        batch_id: str,
        bet_id: str,
        status: BetStatus | str,
    ) -> None:
        self._after(
            await self.gateway.set_bet_status(account_id, batch_id, bet_id, status)
        )

    async def submit_batch(self, account_id: str, batch_id: str) -> None:
        self._after(await self.gateway.submit_batch(account_id, batch_id))

    async def cancel_batch(self, account_id: str, batch_id: str) -> None:
        self._after(await self.gateway.cancel_batch(account_id, batch_id))

    async def create_batch(
        self,
        account_id: str,
        meta: dict[str, Any],
        bets: list[NewBet],
    ) -> None:
        self._after(await self.gateway.create_batch(account_id, meta, bets))

    async def create_account(self, name: str, hostname: str) -> None:
        self._after(await self.gateway.create_account(name, hostname))

    async def delete_account(self, account_id: str) -> None:
        self._after(await self.gateway.delete_account(account_id))
