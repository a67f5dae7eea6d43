import asyncio
from dataclasses import replace
from datetime import date
from decimal import Decimal

from ledger.reconciliation import ReconciliationEngine, desired_type
from models.transaction import STARTING_BALANCE_CATEGORY, STARTING_BALANCE_DATE
from tests.helpers import make_transaction


def synthetic_entries(services, run, account_id=None):
    entries = run(services.transactions.find_all())
    return [
        e
        for e in entries
        if e.is_starting_balance and (account_id is None or e.account_id == account_id)
    ]


def add_raw_entry(services, run, type, account_id, amount, category=STARTING_BALANCE_CATEGORY):
    fields = make_transaction(
        type, account_id, amount, STARTING_BALANCE_DATE, category=category
    ).to_fields()
    return run(services.records.create(type.capitalize(), fields))


class TestDesiredType:
    def test_sign_selects_variant(self):
        assert desired_type(Decimal("1")) == "income"
        assert desired_type(Decimal("-1")) == "expense"
        assert desired_type(Decimal("0")) is None


class TestReconciliationEngine:
    """Tests for ReconciliationEngine."""

    def test_creates_one_entry_per_non_zero_balance(self, services, run):
        """Test the starting balance invariant across several accounts."""
        cash = run(services.accounts.create("Cash", Decimal("100"), reconcile=False))
        card = run(services.accounts.create("Card", Decimal("-70"), reconcile=False))
        empty = run(services.accounts.create("Empty", reconcile=False))

        result = run(services.reconciliation.reconcile([cash, card, empty]))

        assert result.ok
        assert len(result.created) == 2
        assert result.applied == {
            cash.id: Decimal("100"),
            card.id: Decimal("-70"),
            empty.id: Decimal("0"),
        }

        [cash_entry] = synthetic_entries(services, run, cash.id)
        assert cash_entry.type == "income"
        assert cash_entry.amount == Decimal("100")
        assert cash_entry.date == STARTING_BALANCE_DATE
        assert cash_entry.category == STARTING_BALANCE_CATEGORY
        assert cash_entry.cleared and cash_entry.projected

        [card_entry] = synthetic_entries(services, run, card.id)
        assert card_entry.type == "expense"
        assert card_entry.amount == Decimal("70")

        assert synthetic_entries(services, run, empty.id) == []

    def test_second_run_writes_nothing(self, services, run):
        """Test reconciliation is idempotent."""
        cash = run(services.accounts.create("Cash", Decimal("100"), reconcile=False))
        card = run(services.accounts.create("Card", Decimal("-5"), reconcile=False))
        run(services.reconciliation.reconcile([cash, card]))

        second = run(services.reconciliation.reconcile([cash, card]))

        assert second.writes == 0
        assert second.unchanged == [cash.id, card.id]

    def test_fresh_engine_is_also_idempotent(self, services, run):
        """Test the applied cache is not needed to skip writes."""
        cash = run(services.accounts.create("Cash", Decimal("100"), reconcile=False))
        run(services.reconciliation.reconcile([cash]))

        second = run(ReconciliationEngine(services.records).reconcile([cash]))

        assert second.writes == 0

    def test_removes_duplicates(self, services, run):
        """Test duplicate synthetic entries are collapsed to the oldest one."""
        cash = run(services.accounts.create("Cash", Decimal("100"), reconcile=False))
        first = add_raw_entry(services, run, "income", cash.id, "100")
        add_raw_entry(services, run, "income", cash.id, "100")
        add_raw_entry(services, run, "income", cash.id, "100")

        result = run(services.reconciliation.reconcile([cash]))

        assert len(result.deleted) == 2
        assert [e.id for e in synthetic_entries(services, run, cash.id)] == [first["id"]]

    def test_replaces_wrong_variant(self, services, run):
        """Test a sign flip swaps income for expense."""
        cash = run(services.accounts.create("Cash", Decimal("-30"), reconcile=False))
        stale = add_raw_entry(services, run, "income", cash.id, "30")

        result = run(services.reconciliation.reconcile([cash]))

        assert result.deleted == [stale["id"]]
        [entry] = synthetic_entries(services, run, cash.id)
        assert entry.type == "expense"
        assert entry.amount == Decimal("30")

    def test_updates_stale_amount_in_place(self, services, run):
        """Test an entry with the wrong amount or label is corrected, keeping its ID."""
        cash = run(services.accounts.create("Cash", Decimal("250"), reconcile=False))
        legacy = add_raw_entry(services, run, "income", cash.id, "200", category="starting balance")

        result = run(services.reconciliation.reconcile([cash]))

        assert result.updated == [legacy["id"]]
        [entry] = synthetic_entries(services, run, cash.id)
        assert entry.id == legacy["id"]
        assert entry.amount == Decimal("250")
        assert entry.category == STARTING_BALANCE_CATEGORY
        assert entry.cleared and entry.projected

    def test_zero_balance_deletes_all(self, services, run):
        """Test a zero starting balance removes every synthetic entry."""
        cash = run(services.accounts.create("Cash", reconcile=False))
        add_raw_entry(services, run, "income", cash.id, "10")
        add_raw_entry(services, run, "expense", cash.id, "10")

        run(services.reconciliation.reconcile([cash]))

        assert synthetic_entries(services, run, cash.id) == []

    def test_regular_entries_are_untouched(self, services, run):
        """Test only entries with the reserved label are managed."""
        cash = run(services.accounts.create("Cash", Decimal("10"), reconcile=False))
        regular = run(
            services.transactions.create(
                make_transaction("income", cash.id, "10", date(1970, 1, 1), category="Salary")
            )
        )

        run(services.reconciliation.reconcile([cash]))

        assert run(services.transactions.find("income", regular.id)) == regular

    def test_one_failing_account_does_not_stop_the_pass(self, services, run):
        """Test per-account failures are reported and the rest continue."""
        bad = run(services.accounts.create("Bad", Decimal("1"), reconcile=False))
        good = run(services.accounts.create("Good", Decimal("2"), reconcile=False))
        original = services.records.create

        async def failing_create(entity_type, fields):
            if fields.get("account_id") == bad.id:
                raise RuntimeError("write rejected")
            return await original(entity_type, fields)

        services.records.create = failing_create

        result = run(services.reconciliation.reconcile([bad, good]))

        assert result.errors == {bad.id: "write rejected"}
        assert not result.ok
        assert bad.id not in services.reconciliation.applied
        assert len(synthetic_entries(services, run, good.id)) == 1

    def test_concurrent_calls_coalesce_into_one_follow_up(self, services, run):
        """Test overlapping calls never duplicate entries and the latest snapshot wins."""
        cash = run(services.accounts.create("Cash", Decimal("100"), reconcile=False))
        engine = services.reconciliation

        async def scenario():
            first = asyncio.ensure_future(engine.reconcile([cash]))
            await asyncio.sleep(0)
            assert engine.running
            second = asyncio.ensure_future(
                engine.reconcile([replace(cash, starting_balance=Decimal("50"))])
            )
            third = asyncio.ensure_future(
                engine.reconcile([replace(cash, starting_balance=Decimal("-70"))])
            )
            return await asyncio.gather(first, second, third)

        first, second, third = run(scenario())

        assert first.applied == {cash.id: Decimal("100")}
        assert second is third
        assert second.applied == {cash.id: Decimal("-70")}
        [entry] = synthetic_entries(services, run, cash.id)
        assert entry.type == "expense"
        assert entry.amount == Decimal("70")
        assert not engine.running

    def test_queued_calls_for_different_accounts_are_merged(self, services, run):
        """Test every queued caller's accounts are covered by the follow-up pass."""
        cash = run(services.accounts.create("Cash", Decimal("5"), reconcile=False))
        card = run(services.accounts.create("Card", Decimal("-7"), reconcile=False))
        engine = services.reconciliation

        async def scenario():
            return await asyncio.gather(
                engine.reconcile([cash]),
                engine.reconcile([card]),
                engine.reconcile([cash]),
            )

        first, second, third = run(scenario())

        assert first.applied == {cash.id: Decimal("5")}
        assert second is third
        assert second.applied == {card.id: Decimal("-7"), cash.id: Decimal("5")}
        [expense] = synthetic_entries(services, run, card.id)
        assert expense.type == "expense"
        assert expense.amount == Decimal("7")
        assert len(synthetic_entries(services, run, cash.id)) == 1

    def test_parallel_identical_calls_create_no_duplicates(self, services, run):
        """Test many simultaneous callers still leave exactly one entry."""
        cash = run(services.accounts.create("Cash", Decimal("100"), reconcile=False))

        async def scenario():
            await asyncio.gather(
                *(services.reconciliation.reconcile([cash]) for _ in range(5))
            )

        run(scenario())

        assert len(synthetic_entries(services, run, cash.id)) == 1
