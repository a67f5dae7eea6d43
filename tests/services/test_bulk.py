from datetime import date
from decimal import Decimal

import pytest

from errors import ValidationError
from ledger.deletes import DeferredDeleteCoordinator
from models.transaction import STARTING_BALANCE_CATEGORY
from services.bulk import BulkActionService, BulkFilter, TextMatch, append_text
from tests.helpers import make_transaction, make_transfer


@pytest.fixture
def sample_entries(services, run):
    """Four entries over two accounts, next to a transfer and a starting balance."""
    cash = run(services.accounts.create("Cash", Decimal("100")))
    bank = run(services.accounts.create("Bank"))
    run(services.transactions.create_transfer(make_transfer(cash.id, bank.id, "5")))
    entries = [
        run(services.transactions.create(make_transaction(
            "expense", cash.id, "10", date(2024, 1, 5), category="Food", notes="lunch",
        ))),
        run(services.transactions.create(make_transaction(
            "expense", cash.id, "50", date(2024, 2, 5), category="Fuel", cleared=True,
        ))),
        run(services.transactions.create(make_transaction(
            "income", bank.id, "900", date(2024, 1, 31), category="Salary", notes="Jan ",
        ))),
        run(services.transactions.create(make_transaction(
            "expense", bank.id, "20", date(2024, 3, 1), category="Food", subcategory="Takeaway",
        ))),
    ]
    return entries


def ids(entries):
    return sorted(e.id for e in entries)


class TestBulkFilter:
    """Tests for BulkFilter selection."""

    def test_empty_filter_skips_transfers_and_starting_balances(self, services, run, sample_entries):
        selected = run(services.bulk.select(BulkFilter()))

        assert ids(selected) == ids(sample_entries)

    def test_type_date_and_amount(self, services, run, sample_entries):
        selected = run(services.bulk.select(BulkFilter(
            type="expense",
            date_from=date(2024, 1, 1),
            date_to=date(2024, 2, 28),
            amount_min=Decimal("10"),
            amount_max=Decimal("50"),
        )))

        assert ids(selected) == ids(sample_entries[:2])

    def test_flags(self, services, run, sample_entries):
        assert ids(run(services.bulk.select(BulkFilter(cleared=True)))) == [sample_entries[1].id]
        assert len(run(services.bulk.select(BulkFilter(cleared=False)))) == 3

    def test_text_matching(self, services, run, sample_entries):
        """Test text filters ignore case and honour the match operator."""
        contains = BulkFilter(text={"category": TextMatch("OO")})
        starts = BulkFilter(text={"category": TextMatch("f", "starts")})
        ends = BulkFilter(text={"subcategory": TextMatch("AWAY", "ends")})

        assert ids(run(services.bulk.select(contains))) == ids([sample_entries[0], sample_entries[3]])
        assert ids(run(services.bulk.select(starts))) == ids([sample_entries[0], sample_entries[1], sample_entries[3]])
        assert ids(run(services.bulk.select(ends))) == [sample_entries[3].id]

    def test_starting_balance_label_never_selected(self, services, run, sample_entries):
        selected = run(services.bulk.select(
            BulkFilter(text={"category": TextMatch(STARTING_BALANCE_CATEGORY)})
        ))

        assert selected == []


class TestAppendText:
    @pytest.mark.parametrize(
        "existing, expected",
        [(None, "x"), ("", "x"), ("a", "a x"), ("a ", "a x")],
    )
    def test_separator(self, existing, expected):
        assert append_text(existing, "x") == expected


class TestBulkActionService:
    """Tests for BulkActionService."""

    def test_append_custom_text(self, services, run, sample_entries):
        result = run(services.bulk.set_text(sample_entries, "notes", mode="append", text="2024"))

        assert (result.success_count, result.fail_count) == (4, 0)
        notes = {e.id: e.notes for e in run(services.transactions.find_all()) if e.type != "transfer"}
        assert notes[sample_entries[0].id] == "lunch 2024"
        assert notes[sample_entries[1].id] == "2024"
        assert notes[sample_entries[2].id] == "Jan 2024"

    def test_replace_from_other_field(self, services, run, sample_entries):
        run(services.bulk.set_text(
            sample_entries[:2], "subcategory", mode="replace", source_field="category"
        ))

        first = run(services.transactions.find("expense", sample_entries[0].id))
        second = run(services.transactions.find("expense", sample_entries[1].id))
        assert first.subcategory == "Food"
        assert second.subcategory == "Fuel"

    def test_set_flag_reports_progress(self, services, run, sample_entries):
        seen = []

        result = run(services.bulk.set_flag(sample_entries, "projected", True, progress=seen.append))

        assert result.success_count == 4
        assert seen == [25, 50, 75, 100]
        assert all(
            run(services.transactions.find(e.type, e.id)).projected for e in sample_entries
        )

    def test_failures_are_counted_and_the_rest_continue(self, services, run, sample_entries):
        """Test a missing entry fails on its own."""
        run(services.transactions.delete("expense", sample_entries[1].id))

        result = run(services.bulk.set_flag(sample_entries, "important", True))

        assert (result.success_count, result.fail_count) == (3, 1)
        assert run(services.transactions.find("income", sample_entries[2].id)).important

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"target_field": "amount", "text": "1"},
            {"target_field": "notes", "mode": "prepend", "text": "1"},
            {"target_field": "notes", "source_field": "account_id"},
        ],
    )
    def test_unsupported_text_edits_rejected(self, services, run, sample_entries, kwargs):
        with pytest.raises(ValidationError):
            run(services.bulk.set_text(sample_entries, **kwargs))

    def test_unsupported_flag_rejected(self, services, run, sample_entries):
        with pytest.raises(ValidationError):
            run(services.bulk.set_flag(sample_entries, "amount", True))

    def test_delete_is_undoable(self, services, run, sample_entries):
        """Test a bulk delete hides entries at once and undo brings them all back."""
        bulk = BulkActionService(
            services.transactions,
            DeferredDeleteCoordinator(services.records, services.cache, grace_seconds=60),
        )
        expenses = [e for e in sample_entries if e.type == "expense"]

        result = run(bulk.delete(expenses))

        assert (result.success_count, result.fail_count) == (3, 0)
        visible = [e for e in services.cache.get("expense") if not e.is_starting_balance]
        assert visible == []
        assert len(run(services.records.list("Expense"))) == 3

        assert bulk.undo_delete(expenses) == 3

        restored = [e for e in services.cache.get("expense") if not e.is_starting_balance]
        assert ids(restored) == ids(expenses)
        assert bulk.deletes.pending_keys() == []

    def test_delete_commits_on_flush(self, services, run, sample_entries):
        result = run(services.bulk.delete(sample_entries))
        run(services.deletes.flush())

        assert result.success_count == 4
        assert run(services.bulk.select(BulkFilter())) == []
        remaining = run(services.transactions.find_all())
        assert {e.type for e in remaining} == {"income", "transfer"}
        assert all(e.is_starting_balance for e in remaining if e.type == "income")
