from datetime import date
from decimal import Decimal

import pytest

from errors import ValidationError
from models.recurring import RecurringRule, recurring_dates


def make_rule(account_id, /, **kwargs):
    fields = dict(
        id=None,
        type="expense",
        account_id=account_id,
        amount=Decimal("800"),
        category="Housing",
        subcategory="Rent",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 3, 31),
    )
    fields.update(kwargs)
    return RecurringRule(**fields)


class TestRecurringDates:
    """Tests for recurring_dates."""

    def test_monthly(self):
        assert recurring_dates(date(2024, 1, 15), date(2024, 4, 15), "monthly") == [
            date(2024, 1, 15),
            date(2024, 2, 15),
            date(2024, 3, 15),
            date(2024, 4, 15),
        ]

    def test_weekly_with_interval(self):
        assert recurring_dates(date(2024, 1, 1), date(2024, 1, 31), "weekly", 2) == [
            date(2024, 1, 1),
            date(2024, 1, 15),
            date(2024, 1, 29),
        ]

    def test_yearly(self):
        assert recurring_dates(date(2020, 2, 29), date(2023, 3, 1), "yearly") == [
            date(2020, 2, 29),
            date(2021, 2, 28),
            date(2022, 2, 28),
            date(2023, 2, 28),
        ]

    def test_month_end_does_not_drift(self):
        """Test a rule on the 31st returns to the 31st after short months."""
        assert recurring_dates(date(2024, 1, 31), date(2024, 3, 31), "monthly") == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_interval_below_one_counts_as_one(self):
        assert len(recurring_dates(date(2024, 1, 1), date(2024, 3, 1), "monthly", 0)) == 3

    def test_single_day_range(self):
        assert recurring_dates(date(2024, 5, 1), date(2024, 5, 1), "weekly") == [
            date(2024, 5, 1)
        ]

    def test_reversed_range_is_empty(self):
        assert recurring_dates(date(2024, 5, 2), date(2024, 5, 1), "monthly") == []


class TestRecurringService:
    """Tests for RecurringService."""

    def test_create_generates_tagged_entries(self, services, run):
        """Test one entry per occurrence, each pointing at the rule."""
        account = run(services.accounts.create("Cash"))

        rule, entries = run(services.recurring.create(make_rule(account.id, notes="Flat")))

        assert rule.id is not None
        assert [e.date for e in entries] == [
            date(2024, 1, 1),
            date(2024, 2, 1),
            date(2024, 3, 1),
        ]
        for entry in entries:
            assert entry.type == "expense"
            assert entry.amount == Decimal("800")
            assert entry.category == "Housing"
            assert entry.subcategory == "Rent"
            assert entry.notes == "Flat"
            assert entry.recurring_rule_id == rule.id
        assert run(services.recurring.entries_for(rule.id)) == entries
        assert run(services.recurring.find(rule.id)) == rule

    def test_category_takes_existing_spelling(self, services, run):
        """Test the category label is matched case-insensitively."""
        account = run(services.accounts.create("Cash"))
        run(services.categories.create("income", "Salary"))

        rule, entries = run(
            services.recurring.create(
                make_rule(account.id, type="income", category="  salary ", subcategory="ACME")
            )
        )

        assert rule.category == "Salary"
        assert {e.category for e in entries} == {"Salary"}
        assert all(e.type == "income" for e in entries)

    def test_progress_reports_each_entry(self, services, run):
        account = run(services.accounts.create("Cash"))
        seen = []

        run(services.recurring.create(make_rule(account.id), progress=seen.append))

        assert seen == [33, 67, 100]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"category": " "},
            {"subcategory": ""},
            {"amount": Decimal("-5")},
            {"start_date": date(2024, 4, 1)},
            {"frequency": "daily"},
            {"type": "transfer"},
            {"account_id": "missing"},
        ],
    )
    def test_invalid_rules_write_nothing(self, services, run, overrides):
        """Test a rejected rule stores neither the rule nor any entry."""
        account = run(services.accounts.create("Cash"))

        with pytest.raises(ValidationError):
            run(services.recurring.create(make_rule(account.id, **overrides)))

        assert run(services.recurring.find_all()) == []
        assert run(services.transactions.find_all()) == []

    def test_delete_keeps_generated_entries(self, services, run):
        account = run(services.accounts.create("Cash"))
        rule, entries = run(services.recurring.create(make_rule(account.id)))

        assert run(services.recurring.delete(rule.id)) is True
        assert run(services.recurring.delete(rule.id)) is False

        assert run(services.recurring.find_all()) == []
        assert len(run(services.transactions.find_all())) == len(entries)

    def test_duplicate_is_not_linked_to_rule(self, services, run):
        account = run(services.accounts.create("Cash"))
        rule, entries = run(services.recurring.create(make_rule(account.id)))

        copy = run(services.transactions.duplicate(entries[0], on_date=date(2024, 6, 1)))

        assert copy.recurring_rule_id is None
        assert len(run(services.recurring.entries_for(rule.id))) == 3
