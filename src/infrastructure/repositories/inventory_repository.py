# src/infrastructure/repositories/inventory_repository.py

import logging

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.pricing import ItemType
from src.infrastructure.db.models import Equipment, Package

logger = logging.getLogger(__name__)

CatalogItem = Equipment | Package

_MODELS: dict[ItemType, type[Equipment] | type[Package]] = {
    ItemType.EQUIPMENT: Equipment,
    ItemType.PACKAGE: Package,
}


class InventoryRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(self, item_type: ItemType, item_id: str) -> CatalogItem | None:
        return self.db.get(_MODELS[item_type], item_id)

    def list_items(self, item_type: ItemType) -> list[CatalogItem]:
        model = _MODELS[item_type]
        stmt = select(model).order_by(model.created_at, model.name)
        return list(self.db.execute(stmt).scalars().all())

    def add(self, item: CatalogItem) -> CatalogItem:
        self.db.add(item)
        self.db.flush()
        return item

    def delete(self, item: CatalogItem) -> None:
        self.db.delete(item)
        self.db.flush()

    def reserve(
        self,
        item_type: ItemType,
        item_id: str,
        quantity: int,
    ) -> bool:
        """
        UPDATE ... SET available_quantity = available_quantity - n
        WHERE available_quantity >= n

        Check and decrement happen in one statement, so two concurrent
        reservations can never both pass the check. Returns False when the
        row is missing or holds fewer than `quantity` units.
        """
        model = _MODELS[item_type]
        stmt = (
            update(model)
            .where(model.id == item_id)
            .where(model.available_quantity >= quantity)
            .values(available_quantity=model.available_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        reserved = result.rowcount == 1
        if reserved:
            self._refresh(model, item_id)
        return reserved

    def release(
        self,
        item_type: ItemType,
        item_id: str,
        quantity: int,
    ) -> None:
        """Unconditional increment; a deleted catalog item is skipped."""
        model = _MODELS[item_type]
        stmt = (
            update(model)
            .where(model.id == item_id)
            .values(available_quantity=model.available_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            logger.warning(
                "Release skipped, %s %s no longer exists (quantity=%s)",
                item_type.value,
                item_id,
                quantity,
            )
            return
        self._refresh(model, item_id)
        logger.info("Restored %s units of %s %s", quantity, item_type.value, item_id)

    def reload(self, item_type: ItemType, item_id: str) -> CatalogItem | None:
        """Fresh read that overwrites any stale instance in the session."""
        return self._refresh(_MODELS[item_type], item_id)

    def _refresh(self, model, item_id: str) -> CatalogItem | None:
        # Bulk UPDATE bypasses the identity map; reload any cached instance.
        return self.db.get(model, item_id, populate_existing=True)
