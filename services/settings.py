"""Settings store: in-memory cache plus a serialized persistence queue."""

import asyncio
from typing import Optional

from errors import ValidationError
from logger import get_logger
from models.settings import UserSettings

logger = get_logger("settings")

SETTINGS_ENTITY = "UserSettings"


class SettingsStore:
    """Cache-first access to the singleton UserSettings record.

    get() always answers from memory. set() updates memory at once
    (read-your-writes) and queues a snapshot for persistence. A single
    writer task drains the queue strictly in order, each write awaiting the
    end of the previous one, so the stored record always ends at the last
    set(). Persistence failures are logged and swallowed; the cache stays
    authoritative and the next successful write, which carries the full
    settings, brings the store back in sync.
    """

    def __init__(self, records):
        """Initialize the settings store.

        Args:
            records: RecordStore backing the singleton settings record.
        """
        self.records = records
        self._cache: Optional[UserSettings] = None
        self._record_id: Optional[str] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    async def load(self) -> UserSettings:
        """Seed the cache from the store and start the writer.

        Falls back to defaults when no settings record exists yet. Settings
        set() before load() are kept over the stored values.
        """
        if self._cache is None:
            existing = await self.records.list(SETTINGS_ENTITY)
            if existing:
                self._record_id = existing[0]["id"]
                if self._cache is None:
                    self._cache = UserSettings.from_record(existing[0])
            elif self._cache is None:
                self._cache = UserSettings()
        self._start_writer()
        return self._cache

    def get(self) -> UserSettings:
        """Latest known settings (defaults if nothing was loaded or set)."""
        if self._cache is None:
            return UserSettings()
        return self._cache

    def set(self, **patch) -> UserSettings:
        """Update settings and queue the write.

        Args:
            **patch: UserSettings fields to change.

        Returns:
            The updated settings, already visible to get().

        Raises:
            ValidationError: If patch names an unknown setting.
        """
        unknown = sorted(set(patch) - set(UserSettings.field_names()))
        if unknown:
            raise ValidationError(f"Unknown setting(s): {', '.join(unknown)}")

        self._cache = self.get().merged(patch)
        self._queue.put_nowait(self._cache.to_fields())
        return self._cache

    async def flush(self) -> None:
        """Wait until every queued write has been attempted."""
        self._start_writer()
        await self._queue.join()

    async def close(self) -> None:
        """Flush queued writes and stop the writer task."""
        await self.flush()
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    def _start_writer(self) -> None:
        if self._writer is None or self._writer.done():
            self._writer = asyncio.ensure_future(self._write_loop())

    async def _write_loop(self) -> None:
        while True:
            fields = await self._queue.get()
            try:
                await self._persist(fields)
            except Exception:
                logger.exception("Failed to persist settings; keeping cached values")
            finally:
                self._queue.task_done()

    async def _persist(self, fields: dict) -> None:
        if self._record_id is None:
            # The writer is the only task creating the record, so a record
            # found here was written by another session
            existing = await self.records.list(SETTINGS_ENTITY)
            if existing:
                self._record_id = existing[0]["id"]
            else:
                record = await self.records.create(SETTINGS_ENTITY, fields)
                self._record_id = record["id"]
                logger.debug(f"Created settings record {self._record_id}")
                return

        await self.records.update(SETTINGS_ENTITY, self._record_id, fields)
        logger.debug("Persisted settings")
