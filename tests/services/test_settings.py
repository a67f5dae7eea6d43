import asyncio

import pytest

from errors import ValidationError
from models.settings import UserSettings
from services.settings import SettingsStore


class TestSettingsStore:
    """Tests for SettingsStore."""

    def test_load_defaults_when_nothing_stored(self, services, run):
        """Test that load falls back to default settings."""
        settings = run(services.settings.load())

        assert settings == UserSettings()
        assert run(services.records.list("UserSettings")) == []

    def test_load_existing_record(self, services, run):
        """Test that load reads the stored settings record."""
        run(services.records.create("UserSettings", {"main_currency": "USD", "number_format": "de-DE"}))

        settings = run(services.settings.load())

        assert settings.main_currency == "USD"
        assert settings.number_format == "de-DE"
        assert settings.fx_provider == "frankfurter"

    def test_set_is_visible_immediately(self, services, run):
        """Test read-your-writes before anything is persisted."""
        run(services.settings.load())

        services.settings.set(main_currency="GBP")

        assert services.settings.get().main_currency == "GBP"

    def test_set_rejects_unknown_setting(self, services, run):
        """Test that unknown keys raise ValidationError."""
        with pytest.raises(ValidationError):
            services.settings.set(theme="dark")

    def test_writes_persist_in_order(self, services, run):
        """Test the stored record ends at the last set after a burst of writes."""
        run(services.settings.load())

        for currency in ("USD", "GBP", "CHF", "JPY"):
            services.settings.set(main_currency=currency)
        services.settings.set(accounts_order=["b", "a"])
        run(services.settings.flush())

        records = run(services.records.list("UserSettings"))
        assert len(records) == 1
        assert records[0]["main_currency"] == "JPY"
        assert records[0]["accounts_order"] == ["b", "a"]

    def test_writes_are_serialized(self, services, run):
        """Test each persisted snapshot is written after the previous one finished."""
        store = SettingsStore(services.records)
        written = []
        active = []
        original = services.records.update

        async def tracking_update(entity_type, record_id, patch):
            assert not active
            active.append(patch["number_format"])
            await asyncio.sleep(0)
            result = await original(entity_type, record_id, patch)
            written.append(active.pop())
            return result

        services.records.update = tracking_update

        async def scenario():
            await store.load()
            for fmt in ("en-US", "de-DE", "fr-FR", "en-GB"):
                store.set(number_format=fmt)
            await store.flush()
            await store.close()

        run(scenario())

        # The first snapshot creates the record, the rest update it in order
        assert written == ["de-DE", "fr-FR", "en-GB"]
        assert run(services.records.list("UserSettings"))[0]["number_format"] == "en-GB"

    def test_failed_write_keeps_cache_and_recovers(self, services, run):
        """Test a persistence failure is swallowed and the next write catches up."""
        run(services.settings.load())
        services.settings.set(main_currency="USD")
        run(services.settings.flush())

        original = services.records.update
        calls = []

        async def failing_once(entity_type, record_id, patch):
            calls.append(patch)
            if len(calls) == 1:
                raise RuntimeError("disk full")
            return await original(entity_type, record_id, patch)

        services.records.update = failing_once

        services.settings.set(number_format="de-DE")
        run(services.settings.flush())
        assert services.settings.get().number_format == "de-DE"
        assert run(services.records.list("UserSettings"))[0]["number_format"] == "en-US"

        services.settings.set(fx_provider="ecb")
        run(services.settings.flush())

        stored = run(services.records.list("UserSettings"))[0]
        assert stored["number_format"] == "de-DE"
        assert stored["fx_provider"] == "ecb"
        assert stored["main_currency"] == "USD"

    def test_set_before_load_wins_over_stored_values(self, services, run):
        """Test settings changed before load are not overwritten by it."""
        run(services.records.create("UserSettings", {"main_currency": "USD"}))
        store = SettingsStore(services.records)

        store.set(main_currency="CHF")
        run(store.load())
        run(store.flush())

        assert store.get().main_currency == "CHF"
        records = run(services.records.list("UserSettings"))
        assert len(records) == 1
        assert records[0]["main_currency"] == "CHF"
