"""Category service for income and expense categories."""

from dataclasses import replace
from typing import List, Optional, Tuple

from errors import (
    CategoryInUseError,
    CategoryMergeRequired,
    RecordNotFoundError,
    ValidationError,
)
from logger import get_logger
from models.category import CATEGORY_ENTITIES, CATEGORY_KINDS, Category
from models.common import palette_color
from models.transaction import ENTRY_ENTITIES, STARTING_BALANCE_LABELS

logger = get_logger("categories")


def capitalize_first(name: str) -> str:
    name = (name or "").strip()
    return name[:1].upper() + name[1:]


class CategoryService:
    """Service for managing categories.

    Transactions reference categories by name, so renames, merges and
    deletes repoint the matching transactions one by one.
    """

    def __init__(self, records):
        """Initialize the category service.

        Args:
            records: RecordStore instance.
        """
        self.records = records

    async def find_all(self, kind: str, include_reserved: bool = False) -> List[Category]:
        """Get all categories of a kind.

        Args:
            kind: "expense" or "income".
            include_reserved: Also return categories named like the
                starting balance label.

        Returns:
            List of Category objects, ordered by display order.
        """
        records = await self.records.list(_entity(kind))
        categories = [Category.from_record(kind, r) for r in records]
        if not include_reserved:
            categories = [
                c for c in categories if c.name.lower() not in STARTING_BALANCE_LABELS
            ]
        return sorted(categories, key=lambda c: c.order)

    async def find(self, kind: str, category_id: str) -> Optional[Category]:
        record = await self.records.get(_entity(kind), category_id)
        return Category.from_record(kind, record) if record else None

    async def find_by_name(self, kind: str, name: str) -> Optional[Category]:
        """Get a category by name, compared case-insensitively."""
        wanted = (name or "").strip().lower()
        for category in await self.find_all(kind, include_reserved=True):
            if category.name.lower() == wanted:
                return category
        return None

    async def create(self, kind: str, name: str, color: Optional[str] = None) -> Category:
        """Create a category, capitalizing its first letter.

        Raises:
            ValidationError: If the name is blank, reserved, or already used
                by a category of the same kind.
        """
        name = capitalize_first(name)
        self._validate_name(name)
        if await self.find_by_name(kind, name) is not None:
            raise ValidationError(f"Category '{name}' already exists", field="name")
        return await self._insert(kind, name, color)

    async def ensure(self, kind: str, name: str) -> Tuple[Category, bool]:
        """Find a category by name or create it with the name as given.

        Returns:
            (category, created) where created tells whether it is new.
        """
        existing = await self.find_by_name(kind, name)
        if existing is not None:
            return existing, False
        return await self._insert(kind, name.strip(), None), True

    async def rename(
        self,
        kind: str,
        category_id: str,
        new_name: str,
        color: Optional[str] = None,
    ) -> Tuple[Category, int]:
        """Rename (and optionally recolor) a category.

        Returns:
            (updated category, number of transactions repointed).

        Raises:
            RecordNotFoundError: If the category does not exist.
            ValidationError: If the new name is blank or reserved.
            CategoryMergeRequired: If another category already has the name;
                the caller should confirm and call merge().
        """
        current = await self._get(kind, category_id)
        new_name = capitalize_first(new_name)
        self._validate_name(new_name)

        existing = await self.find_by_name(kind, new_name)
        if existing is not None and existing.id != category_id:
            raise CategoryMergeRequired(current, existing)

        name_changed = current.name.lower() != new_name.lower()
        updated = replace(
            current,
            name=new_name if name_changed else current.name,
            color=color or current.color,
        )
        await self.records.update(_entity(kind), category_id, updated.to_fields())

        moved = 0
        if name_changed:
            moved = await self._repoint(kind, current.name, updated.name)
            logger.info(
                f"Renamed {kind} category '{current.name}' to '{updated.name}', "
                f"{moved} transaction(s) updated"
            )
        return updated, moved

    async def merge(self, kind: str, source_id: str, target_id: str) -> int:
        """Move every transaction of source to target, then delete source.

        Returns:
            Number of transactions moved.
        """
        if source_id == target_id:
            raise ValidationError("Cannot merge a category into itself", field="target")
        source = await self._get(kind, source_id)
        target = await self._get(kind, target_id)
        moved = await self._repoint(kind, source.name, target.name)
        await self.records.delete(_entity(kind), source.id)
        logger.info(
            f"Merged {kind} category '{source.name}' into '{target.name}', "
            f"{moved} transaction(s) moved"
        )
        return moved

    async def delete(self, kind: str, category_id: str) -> None:
        """Delete a category no transaction uses.

        Raises:
            RecordNotFoundError: If the category does not exist.
            CategoryInUseError: If transactions still use it.
        """
        category = await self._get(kind, category_id)
        in_use = await self._transactions_named(kind, category.name)
        if in_use:
            raise CategoryInUseError(category.name, len(in_use))
        await self.records.delete(_entity(kind), category.id)
        logger.info(f"Deleted {kind} category '{category.name}'")

    async def move_and_delete(self, kind: str, category_id: str, target_name: str) -> int:
        """Move a category's transactions to target_name, then delete it.

        Categories whose names differ from it only by case are deleted too.

        Returns:
            Number of transactions moved.
        """
        category = await self._get(kind, category_id)
        moved = await self._repoint(kind, category.name, target_name)

        name_lower = category.name.lower()
        for duplicate in await self.find_all(kind, include_reserved=True):
            if duplicate.name.lower() == name_lower:
                await self.records.delete(_entity(kind), duplicate.id)
        return moved

    async def remove_unused(self, kind: str) -> List[str]:
        """Delete categories no transaction uses.

        Returns:
            Names of the removed categories.
        """
        used = {r.get("category") for r in await self.records.list(ENTRY_ENTITIES[kind])}
        removed = []
        for category in await self.find_all(kind):
            if category.name not in used:
                await self.records.delete(_entity(kind), category.id)
                removed.append(category.name)
        return removed

    async def _insert(self, kind: str, name: str, color: Optional[str]) -> Category:
        count = len(await self.records.list(_entity(kind)))
        category = Category(
            id=None,
            kind=kind,
            name=name,
            color=color or palette_color(count),
            order=count,
        )
        record = await self.records.create(_entity(kind), category.to_fields())
        return Category.from_record(kind, record)

    async def _get(self, kind: str, category_id: str) -> Category:
        category = await self.find(kind, category_id)
        if category is None:
            raise RecordNotFoundError(_entity(kind), category_id)
        return category

    async def _transactions_named(self, kind: str, name: str) -> List[dict]:
        records = await self.records.list(ENTRY_ENTITIES[kind])
        return [r for r in records if r.get("category") == name]

    async def _repoint(self, kind: str, old_name: str, new_name: str) -> int:
        entity = ENTRY_ENTITIES[kind]
        moved = 0
        for record in await self._transactions_named(kind, old_name):
            await self.records.update(entity, record["id"], {"category": new_name})
            moved += 1
        return moved

    @staticmethod
    def _validate_name(name: str) -> None:
        if not name:
            raise ValidationError("Please enter a category name", field="name")
        if name.lower() in STARTING_BALANCE_LABELS:
            raise ValidationError("This category name is reserved.", field="name")


def _entity(kind: str) -> str:
    if kind not in CATEGORY_KINDS:
        raise ValidationError(f"Invalid category kind '{kind}'", field="kind")
    return CATEGORY_ENTITIES[kind]
