from decimal import Decimal

from sqlalchemy import select

from src import config

from src.infrastructure.db.models import Base, Equipment, Package, User
from src.infrastructure.db.session import engine, get_db_session


def seed_users(db) -> None:
    users = [
        {
            "name": "Maria Santos",
            "email": "maria.santos@example.com",
            "phone": "09171234567",
            "address": "12 Mabini St, Quezon City",
        },
        {
            "name": "Jose Reyes",
            "email": "jose.reyes@example.com",
            "phone": "09281234567",
            "address": "45 Rizal Ave, Pasig",
        },
    ]

    for item in users:
        existing = db.execute(
            select(User).where(User.email == item["email"])
        ).scalar_one_or_none()
        if existing:
            existing.name = item["name"]
            existing.phone = item["phone"]
            existing.address = item["address"]
            continue

        db.add(User(email_verified=True, **item))


def seed_equipment(db) -> None:
    equipment = [
        {
            "name": "Monobloc Chair",
            "category": "Chairs",
            "description": "White plastic chair, stackable.",
            "price_per_day": Decimal("15.00"),
            "available_quantity": 300,
            "featured": True,
        },
        {
            "name": "Round Table (8 seater)",
            "category": "Tables",
            "description": "60-inch round banquet table.",
            "price_per_day": Decimal("150.00"),
            "available_quantity": 40,
            "featured": True,
        },
        {
            "name": "Chafing Dish",
            "category": "Catering",
            "description": "Stainless steel, 8-quart, with fuel holder.",
            "price_per_day": Decimal("250.00"),
            "available_quantity": 25,
        },
        {
            "name": "Videoke Machine",
            "category": "Sound",
            "description": "Includes two wireless microphones.",
            "price_per_day": Decimal("1200.00"),
            "available_quantity": 3,
        },
    ]

    for item in equipment:
        existing = db.execute(
            select(Equipment).where(Equipment.name == item["name"])
        ).scalar_one_or_none()
        if existing:
            existing.price_per_day = item["price_per_day"]
            existing.available_quantity = item["available_quantity"]
            continue

        db.add(Equipment(image=config.PLACEHOLDER_IMAGE, **item))


def seed_packages(db) -> None:
    packages = [
        {
            "name": "Birthday Party Set",
            "description": "Everything for a 50-guest celebration.",
            "price": Decimal("4500.00"),
            "pax": 50,
            "category": "Party",
            "available_quantity": 5,
            "main_items": ["Party tent 5x10m"],
            "tables_chairs": ["6 round tables", "50 monobloc chairs"],
            "catering_equipment": ["4 chafing dishes", "Drink dispenser"],
            "extras": ["Table cloths", "Chair covers"],
        },
        {
            "name": "Wedding Reception Set",
            "description": "Banquet setup for 150 guests.",
            "price": Decimal("18000.00"),
            "pax": 150,
            "category": "Wedding",
            "available_quantity": 2,
            "main_items": ["Stage platform", "Backdrop frame"],
            "tables_chairs": ["19 round tables", "150 Tiffany chairs"],
            "catering_equipment": ["10 chafing dishes", "Buffet tables"],
            "extras": ["Sound system", "Ceiling drapes"],
        },
    ]

    for item in packages:
        existing = db.execute(
            select(Package).where(Package.name == item["name"])
        ).scalar_one_or_none()
        if existing:
            for key, value in item.items():
                setattr(existing, key, value)
            continue

        db.add(Package(image=config.PLACEHOLDER_IMAGE, **item))


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_users(db)
        seed_equipment(db)
        seed_packages(db)
    print("Seed complete: 2 customers, 4 equipment items, 2 packages added.")


if __name__ == "__main__":
    main()
