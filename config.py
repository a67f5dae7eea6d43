"""Configuration management for Ledgerline.

Reads configuration from ~/.config/ledgerline.toml and creates default config if needed.
"""

from pathlib import Path
from dataclasses import dataclass
import tomllib
import tomli_w


@dataclass
class Config:
    """Application configuration."""

    base_dir: Path
    db_data_dir: Path
    db_filename: str
    log_level: str
    log_dir: Path
    default_currency: str = "EUR"
    undo_grace_seconds: float = 8.0

    @property
    def db_path(self) -> Path:
        """Get the full database path (data_dir/filename)."""
        return self.db_data_dir / self.db_filename

    @classmethod
    def default(cls) -> "Config":
        """Create a Config with default values."""
        base_dir = Path.home() / "data" / "ledgerline"
        return cls(
            base_dir=base_dir,
            db_data_dir=base_dir / "db",
            db_filename="ledgerline.db",
            log_level="INFO",
            log_dir=base_dir / "logs",
        )


def get_config_path() -> Path:
    """Get the path to the config file."""
    return Path.home() / ".config" / "ledgerline.toml"


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory.

    This is always relative to the code location, not configurable.
    """
    return Path(__file__).parent / "db" / "migrations"


def load_config() -> Config:
    """Load configuration from file, creating default if it doesn't exist.

    Returns:
        Config object with loaded or default values.
    """
    config_path = get_config_path()

    if not config_path.exists():
        config = Config.default()
        _write_config(config)
        return config

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Missing keys fall back to the defaults
    defaults = Config.default()
    base_dir = Path(data.get("base_dir", defaults.base_dir))

    db_config = data.get("database", {})
    log_config = data.get("logging", {})
    ledger_config = data.get("ledger", {})

    return Config(
        base_dir=base_dir,
        db_data_dir=Path(db_config.get("data_dir", base_dir / "db")),
        db_filename=db_config.get("filename", defaults.db_filename),
        log_level=log_config.get("level", defaults.log_level),
        log_dir=Path(log_config.get("log_dir", base_dir / "logs")),
        default_currency=ledger_config.get(
            "default_currency", defaults.default_currency
        ),
        undo_grace_seconds=float(
            ledger_config.get("undo_grace_seconds", defaults.undo_grace_seconds)
        ),
    )


def _write_config(config: Config) -> None:
    """Write config to the config file.

    Args:
        config: Config object to write.
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "base_dir": str(config.base_dir),
        "database": {
            "data_dir": str(config.db_data_dir),
            "filename": config.db_filename,
        },
        "logging": {
            "level": config.log_level,
            "log_dir": str(config.log_dir),
        },
        "ledger": {
            "default_currency": config.default_currency,
            "undo_grace_seconds": config.undo_grace_seconds,
        },
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
