"""UserSettings model: the singleton preferences record."""

from dataclasses import dataclass, field, fields, replace
from typing import List, Optional


@dataclass(frozen=True)
class UserSettings:
    """User preferences persisted as a single record.

    Attributes:
        number_format: Locale used to format amounts, e.g. "en-US" or "de-DE".
        main_currency: Currency net worth is reported in.
        fx_provider: Identifier of the exchange-rate provider.
        accounts_order: Account identifiers in display order.
    """

    number_format: str = "en-US"
    main_currency: str = "EUR"
    fx_provider: str = "frankfurter"
    accounts_order: List[str] = field(default_factory=list)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_record(cls, record: Optional[dict]) -> "UserSettings":
        if not record:
            return cls()
        known = {k: v for k, v in record.items() if k in cls.field_names()}
        if "accounts_order" in known:
            known["accounts_order"] = list(known["accounts_order"] or [])
        return cls(**known)

    def merged(self, patch: dict) -> "UserSettings":
        """Return a copy with patch applied."""
        if "accounts_order" in patch:
            patch = {**patch, "accounts_order": list(patch["accounts_order"])}
        return replace(self, **patch)

    def to_fields(self) -> dict:
        return {
            "number_format": self.number_format,
            "main_currency": self.main_currency,
            "fx_provider": self.fx_provider,
            "accounts_order": list(self.accounts_order),
        }
