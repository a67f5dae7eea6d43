"""Base services container for dependency injection."""

from config import Config
from db.manager import DatabaseManager


class Services:
    """Container for all application services.

    This class wires one record store, one reconciliation engine, one
    settings store and one cached view with its delete coordinator per
    process and hands them to the services that need them, which also
    makes it easy to inject a test database.

    The cache and delete coordinator back undoable deletes: the CLI
    `transactions delete` and `transactions bulk --action delete` commands
    go through them, and an embedding front-end can keep the cached view
    filled to get optimistic deletes with undo.

    Args:
        config: Application configuration object.
        db_manager: Optional database manager for testing. If provided, config is ignored.
    """

    def __init__(self, config: Config, db_manager=None):
        """Initialize services with configuration.

        Args:
            config: Config object containing application configuration.
            db_manager: Optional database manager for dependency injection (testing).
                       If None, creates DatabaseManager from config.
        """
        self.config = config
        self.db_manager = db_manager or DatabaseManager(config)

        # Lazy import to avoid circular dependencies
        from ledger.deletes import CollectionCache, DeferredDeleteCoordinator
        from ledger.reconciliation import ReconciliationEngine
        from services.accounts import AccountService
        from services.bulk import BulkActionService
        from services.categories import CategoryService
        from services.data_imports import DataImportService
        from services.records import RecordStore
        from services.recurring import RecurringService
        from services.settings import SettingsStore
        from services.transactions import TransactionService

        self.records = RecordStore(self.db_manager)
        self.reconciliation = ReconciliationEngine(self.records)
        self.accounts = AccountService(self.records, self.reconciliation)
        self.categories = CategoryService(self.records)
        self.transactions = TransactionService(self.records)
        self.settings = SettingsStore(self.records)
        self.cache = CollectionCache()
        self.deletes = DeferredDeleteCoordinator(
            self.records, self.cache, config.undo_grace_seconds
        )
        self.data_imports = DataImportService(
            self.accounts, self.categories, self.transactions, self.reconciliation
        )
        self.recurring = RecurringService(self.records, self.transactions, self.categories)
        self.bulk = BulkActionService(self.transactions, self.deletes)

    async def close(self) -> None:
        """Commit pending deletes and queued settings writes."""
        await self.deletes.flush()
        await self.settings.close()
