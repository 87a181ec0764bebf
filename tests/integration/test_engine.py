"""
Integration Tests: Betting Engine

Runs the full engine (loader, consumer task, gateway, resolver) against the
in-memory REST fake. Stream events are injected straight into the engine's
event queue; the SSE transport itself is refused so the stream closes at once.
"""

import asyncio

import httpx
import pytest

from betsync.config import EngineConfig, Settings
from betsync.engine import BettingEngine, MutationError
from betsync.services.stream import (
    AccountDeleted,
    BatchCompleted,
    BatchReference,
    BetStatusUpdated,
    ConnectionState,
    EventStreamClient,
    StreamConfig,
)

from tests.factories import FakeBettingClient, make_account, make_batch, make_bet, server_error


def fake_client() -> FakeBettingClient:
    return FakeBettingClient(
        accounts=[make_account(1, "A"), make_account(2, "B")],
        batches={
            "1": [make_batch(10, 1, [make_bet("p1", 10), make_bet("p2", 10)])],
            "2": [make_batch(20, 2), make_batch(21, 2, completed=True)],
        },
    )


def make_engine(tmp_path, client: FakeBettingClient, **engine_flags) -> BettingEngine:
    stream_config = StreamConfig(url="http://test/sse", max_reconnect_attempts=0)
    settings = Settings(
        data_dir=tmp_path,
        stream=stream_config,
        engine=EngineConfig(**engine_flags),
    )
    stream = EventStreamClient(
        stream_config,
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    return BettingEngine(settings, client=client, stream=stream)


def test_start_loads_accounts_and_focus(tmp_path) -> None:
    engine = make_engine(tmp_path, fake_client())

    async def run():
        async with engine:
            return engine.projection()

    view = asyncio.run(run())

    assert [a.id for a in view.accounts] == ["1", "2"]
    assert view.focused_account_id == "1"
    assert view.active_batch_ids == ["10"]
    assert view.selected_batch_id == "10"
    assert [b.pid for b in view.bets] == ["p1", "p2"]
    assert view.load_error is None


def test_deleting_focused_account_loads_next(tmp_path) -> None:
    client = fake_client()
    engine = make_engine(tmp_path, client)

    async def run():
        async with engine:
            client.accounts = client.accounts[1:]
            await engine.stream.events.put(AccountDeleted(account_id="1"))
            await engine.drain()
            return engine.projection()

    view = asyncio.run(run())

    assert [a.id for a in view.accounts] == ["2"]
    assert view.focused_account_id == "2"
    assert view.active_batch_ids == ["20"]
    assert view.selected_batch_id == "20"
    assert ("get_account_batches", "2") in client.calls


def test_stream_events_update_projection_in_order(tmp_path) -> None:
    client = fake_client()
    engine = make_engine(tmp_path, client)
    seen = []

    async def run():
        async with engine:
            engine.add_listener(seen.append)
            client.batches["1"].append(make_batch(11, 1))
            for event in (
                BetStatusUpdated(batch_id="10", bet_id="p1", status="successful"),
                BatchReference(batch_id="11", account_id="1"),
                BatchCompleted(batch_id="10", account_id="1"),
            ):
                await engine.stream.events.put(event)
            await engine.drain()
            return engine.projection()

    view = asyncio.run(run())

    assert view.active_batch_ids == ["11"]
    assert view.selected_batch_id == "11"
    assert ("get_batch", "1", "11") in client.calls
    # One notification per applied change, the last matching the final view.
    assert len(seen) >= 3
    assert seen[-1].selected_batch_id == "11"


def test_mutations_through_engine(tmp_path) -> None:
    client = fake_client()
    engine = make_engine(tmp_path, client)

    async def run():
        async with engine:
            await engine.set_bet_status("1", "10", "p2", "failed")
            status_view = engine.projection()
            await engine.submit_batch("1", "10")
            return status_view, engine.projection()

    status_view, final_view = asyncio.run(run())

    assert [b.status.value for b in status_view.bets] == ["pending", "failed"]
    assert final_view.active_batch_ids == []
    assert final_view.selected_batch_id is None


def test_failed_mutation_propagates(tmp_path) -> None:
    client = fake_client()
    client.failures["submit_batch"] = server_error()
    engine = make_engine(tmp_path, client)

    async def run():
        async with engine:
            with pytest.raises(MutationError):
                await engine.submit_batch("1", "10")
            return engine.projection()

    view = asyncio.run(run())

    assert view.active_batch_ids == ["10"]


def test_load_error_is_reported_and_cleared(tmp_path) -> None:
    client = fake_client()
    engine = make_engine(tmp_path, client)

    async def run():
        async with engine:
            client.failures["get_account_batches"] = server_error("batches unavailable")
            loaded = await engine.select_account("2")
            failed_view = engine.projection()

            del client.failures["get_account_batches"]
            reloaded = await engine.refresh()
            return loaded, failed_view, reloaded, engine.projection()

    loaded, failed_view, reloaded, final_view = asyncio.run(run())

    assert loaded is False
    assert failed_view.focused_account_id == "2"
    assert "batches unavailable" in failed_view.load_error
    assert reloaded is True
    assert final_view.load_error is None
    assert final_view.active_batch_ids == ["20"]


def test_teardown_closes_stream(tmp_path) -> None:
    engine = make_engine(tmp_path, fake_client())

    async def run():
        await engine.start()
        with pytest.raises(RuntimeError):
            await engine.start()
        await engine.teardown()

    asyncio.run(run())

    assert not engine.started
    assert engine.connection_state == ConnectionState.CLOSED
    assert engine.projection().connection_state == ConnectionState.CLOSED


def test_failed_start_releases_stream_and_client(tmp_path) -> None:
    client = fake_client()
    client.failures["get_accounts"] = RuntimeError("unexpected accounts body")
    engine = make_engine(tmp_path, client)

    async def run():
        with pytest.raises(RuntimeError, match="unexpected accounts body"):
            await engine.start()
        return engine._consumer

    consumer = asyncio.run(run())

    assert not engine.started
    assert consumer is None
    assert engine.connection_state == ConnectionState.CLOSED
    assert client.closed
