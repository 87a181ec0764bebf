"""Unit tests for the in-memory entity store."""

from betsync.engine import EntityStore
from betsync.services.betting import BetStatus

from tests.factories import make_account, make_batch, make_bet


def test_upsert_account_is_idempotent() -> None:
    store = EntityStore()
    account = make_account(1, "A")

    assert store.upsert_account(account) is True
    assert store.upsert_account(account) is False
    assert store.accounts == [account]


def test_upsert_account_updates_in_place() -> None:
    store = EntityStore()
    store.replace_accounts([make_account(1, "A"), make_account(2, "B")])

    store.upsert_account(make_account(1, "Renamed"))

    assert [a.name for a in store.accounts] == ["Renamed", "B"]


def test_replace_accounts_drops_batches_of_vanished_accounts() -> None:
    store = EntityStore()
    store.replace_accounts([make_account(1), make_account(2)])
    store.upsert_batch(make_batch(10, 1))
    store.upsert_batch(make_batch(20, 2))

    assert store.replace_accounts([make_account(2)]) is True

    assert store.account_ids == ["2"]
    assert store.get_batch("10") is None
    assert store.get_batch("20") is not None


def test_replace_accounts_deduplicates_by_id() -> None:
    store = EntityStore()
    store.replace_accounts([make_account(1, "first"), make_account(1, "second")])

    assert [a.name for a in store.accounts] == ["first"]


def test_remove_account_drops_its_batches() -> None:
    store = EntityStore()
    store.upsert_account(make_account(1))
    store.upsert_batch(make_batch(10, 1))

    assert store.remove_account("1") is True
    assert store.batches_for("1") == []
    assert len(store) == 0
    assert store.remove_account("1") is False


def test_upsert_batch_keeps_existing_entry() -> None:
    store = EntityStore()
    store.upsert_batch(make_batch(10, 1, [make_bet("p1", 10)]))
    store.patch_bet_status("10", "p1", BetStatus.SUCCESSFUL)

    # Redelivered creation payload still says pending.
    assert store.upsert_batch(make_batch(10, 1, [make_bet("p1", 10)])) is False
    assert store.bets_for("10")[0].status == BetStatus.SUCCESSFUL


def test_replace_batch_list_ignores_other_accounts() -> None:
    store = EntityStore()

    store.replace_batch_list("1", [make_batch(10, 1), make_batch(11, 2), make_batch(10, 1)])

    assert [b.id for b in store.batches_for("1")] == ["10"]
    assert store.get_batch("11") is None


def test_replace_batch_list_unchanged_input_reports_no_change() -> None:
    store = EntityStore()
    batches = [make_batch(10, 1), make_batch(11, 1)]

    assert store.replace_batch_list("1", batches) is True
    assert store.replace_batch_list("1", batches) is False
    assert store.replace_batch_list("1", batches[1:]) is True
    assert store.get_batch("10") is None


def test_patch_bet_status_changes_only_status() -> None:
    store = EntityStore()
    store.upsert_batch(make_batch(10, 1, [make_bet("p1", 10), make_bet("p2", 10)]))
    before = store.bets_for("10")

    assert store.patch_bet_status("10", "p1", BetStatus.FAILED) is True
    assert store.patch_bet_status("10", "p1", BetStatus.FAILED) is False

    after = store.bets_for("10")
    assert after[0] == before[0].model_copy(update={"status": BetStatus.FAILED})
    assert after[1] == before[1]


def test_missing_targets_are_silent_noops() -> None:
    store = EntityStore()
    store.upsert_batch(make_batch(10, 1, [make_bet("p1", 10)]))

    assert store.remove_batch("99") is False
    assert store.patch_bet_status("99", "p1", BetStatus.FAILED) is False
    assert store.patch_bet_status("10", "nope", BetStatus.FAILED) is False
    assert store.bets_for("99") == []


def test_retain_batches_for_keeps_only_one_account() -> None:
    store = EntityStore()
    store.upsert_batch(make_batch(10, 1))
    store.upsert_batch(make_batch(20, 2))

    assert store.retain_batches_for("2") is True
    assert store.get_batch("10") is None
    assert [b.id for b in store.batches_for("2")] == ["20"]
    assert store.retain_batches_for("2") is False
