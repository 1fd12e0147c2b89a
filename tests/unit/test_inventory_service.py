# tests/unit/test_inventory_service.py

from decimal import Decimal

import pytest

from src import config
from src.application.inventory_service import InventoryService, split_lines
from src.domain.exceptions import NotFoundError
from src.domain.pricing import ItemType
from src.infrastructure.repositories.inventory_repository import InventoryRepository


def test_split_lines_accepts_text_or_list():
    assert split_lines("Tent\n\n  Stage  \n") == ["Tent", "Stage"]
    assert split_lines(["Tent", " ", "Stage"]) == ["Tent", "Stage"]
    assert split_lines(None) == []


def test_create_package_applies_defaults(catalog):
    package = InventoryService(catalog).create_package(
        {
            "name": "Debut Set",
            "price": Decimal("12000"),
            "main_items": "Stage\nLights",
        }
    )

    assert package.category == "General"
    assert package.available_quantity == 1
    assert package.image == config.PLACEHOLDER_IMAGE
    assert package.main_items == ["Stage", "Lights"]
    assert package.extras == []


def test_create_and_update_equipment(catalog):
    service = InventoryService(catalog)
    tent = service.create_equipment(
        {
            "name": "Party Tent",
            "category": "Tents",
            "price_per_day": Decimal("1500"),
            "available_quantity": 4,
        }
    )

    service.update_item(ItemType.EQUIPMENT, tent.id, {"price_per_day": Decimal("1750")})

    assert service.get_item(ItemType.EQUIPMENT, tent.id).price_per_day == Decimal("1750")
    assert tent.id in [item.id for item in service.list_items(ItemType.EQUIPMENT)]


def test_update_package_lists_from_text(catalog):
    service = InventoryService(catalog)

    package = service.update_item(
        ItemType.PACKAGE,
        "pkg-party",
        {"extras": "Balloons\nCake table"},
    )

    assert package.extras == ["Balloons", "Cake table"]


def test_delete_item(catalog):
    service = InventoryService(catalog)
    service.delete_item(ItemType.EQUIPMENT, "eq-speaker")

    with pytest.raises(NotFoundError, match="Equipment not found"):
        service.get_item(ItemType.EQUIPMENT, "eq-speaker")


def test_missing_package(catalog):
    with pytest.raises(NotFoundError, match="Package not found"):
        InventoryService(catalog).delete_item(ItemType.PACKAGE, "pkg-missing")


# ---------------------
# RESERVATION PRIMITIVES
# ---------------------

def test_reserve_is_all_or_nothing(catalog):
    repository = InventoryRepository(catalog)

    assert repository.reserve(ItemType.EQUIPMENT, "eq-speaker", 3) is True
    assert repository.reserve(ItemType.EQUIPMENT, "eq-speaker", 1) is False
    assert repository.get(ItemType.EQUIPMENT, "eq-speaker").available_quantity == 0


def test_reserve_unknown_item_fails(catalog):
    assert InventoryRepository(catalog).reserve(ItemType.PACKAGE, "pkg-missing", 1) is False


def test_release_is_unconditional(catalog):
    repository = InventoryRepository(catalog)

    repository.release(ItemType.PACKAGE, "pkg-party", 4)

    assert repository.get(ItemType.PACKAGE, "pkg-party").available_quantity == 6


def test_release_of_deleted_item_is_ignored(catalog, caplog):
    InventoryRepository(catalog).release(ItemType.EQUIPMENT, "eq-gone", 2)

    assert "no longer exists" in caplog.text
