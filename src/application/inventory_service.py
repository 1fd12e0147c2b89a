import logging

from sqlalchemy.orm import Session

from src import config
from src.domain.exceptions import NotFoundError
from src.domain.pricing import ItemType
from src.infrastructure.db.models import Equipment, Package
from src.infrastructure.repositories.inventory_repository import CatalogItem, InventoryRepository

logger = logging.getLogger(__name__)

PACKAGE_LIST_FIELDS = ("main_items", "tables_chairs", "catering_equipment", "extras")


def split_lines(value) -> list[str]:
    """Accept a list or newline-separated text; drop blank entries."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split("\n")
    return [entry.strip() for entry in value if entry and entry.strip()]


class InventoryService:
    """Staff-side catalog management for equipment and packages."""

    def __init__(self, db: Session):
        self.db = db
        self.inventory_repository = InventoryRepository(db)

    def list_items(self, item_type: ItemType) -> list[CatalogItem]:
        return self.inventory_repository.list_items(item_type)

    def get_item(self, item_type: ItemType, item_id: str) -> CatalogItem:
        item = self.inventory_repository.get(item_type, item_id)
        if not item:
            raise NotFoundError(f"{item_type.value.capitalize()} not found")
        return item

    def create_equipment(self, data: dict) -> Equipment:
        equipment = Equipment(
            name=data["name"],
            category=data["category"],
            description=data.get("description") or "",
            price_per_day=data["price_per_day"],
            available_quantity=data["available_quantity"],
            featured=data.get("featured", False),
            available=data.get("available", True),
            image=data.get("image") or config.PLACEHOLDER_IMAGE,
        )
        self.inventory_repository.add(equipment)
        logger.info("Equipment %s added (%s)", equipment.id, equipment.name)
        return equipment

    def create_package(self, data: dict) -> Package:
        package = Package(
            name=data["name"],
            description=data.get("description") or "",
            price=data["price"],
            pax=data.get("pax") or 0,
            category=data.get("category") or "General",
            available_quantity=data.get("available_quantity") or 1,
            image=data.get("image") or config.PLACEHOLDER_IMAGE,
            **{name: split_lines(data.get(name)) for name in PACKAGE_LIST_FIELDS},
        )
        self.inventory_repository.add(package)
        logger.info("Package %s added (%s)", package.id, package.name)
        return package

    def update_item(self, item_type: ItemType, item_id: str, changes: dict) -> CatalogItem:
        """
        Apply a partial update. Editing a price or name here never changes
        existing bookings; they hold their own snapshot.
        """
        item = self.get_item(item_type, item_id)
        for name, value in changes.items():
            if item_type == ItemType.PACKAGE and name in PACKAGE_LIST_FIELDS:
                value = split_lines(value)
            setattr(item, name, value)
        self.db.flush()
        logger.info("%s %s updated: %s", item_type.value, item_id, sorted(changes))
        return item

    def delete_item(self, item_type: ItemType, item_id: str) -> None:
        item = self.get_item(item_type, item_id)
        self.inventory_repository.delete(item)
        logger.info("%s %s deleted", item_type.value, item_id)
