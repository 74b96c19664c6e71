"""Demo data for a fresh database: an admin account and the category tree."""
import logging

import settings
from catalog import lineage
from database import create_document
from schemas import Category as CategorySchema, Commission, User as UserSchema
from security import hash_password
from utils import slugify

logger = logging.getLogger(__name__)

DEMO_CATEGORIES = [
    {"name": "Electronics", "description": "Electronic devices and gadgets", "is_featured": True, "rate": 8,
     "children": [
         ("Smartphones", "Mobile phones and accessories", 5),
         ("Laptops", "Laptops and notebooks", 4),
         ("Audio & Video", "Headphones, speakers and cameras", 6),
     ]},
    {"name": "Fashion", "description": "Clothing, shoes, and accessories", "is_featured": True, "rate": 12,
     "children": [
         ("Men's Clothing", "Shirts, trousers and more for men", 12),
         ("Women's Clothing", "Dresses, tops and more for women", 12),
         ("Footwear", "Shoes, sandals and sneakers", 10),
     ]},
    {"name": "Home & Garden", "description": "Home improvement and garden supplies", "is_featured": True, "rate": 10,
     "children": [
         ("Kitchen", "Cookware and kitchen tools", 10),
         ("Furniture", "Furniture for every room", 8),
     ]},
    {"name": "Sports & Fitness", "description": "Sports equipment and fitness gear", "is_featured": False, "rate": 9,
     "children": []},
    {"name": "Books & Media", "description": "Books, movies, music, and games", "is_featured": False, "rate": 15,
     "children": []},
    {"name": "Beauty & Health", "description": "Beauty products and health supplements", "is_featured": True, "rate": 11,
     "children": []},
]


def ensure_admin(db):
    """Return the first admin, creating one from ADMIN_EMAIL/ADMIN_PASSWORD when none exists."""
    admin = db["user"].find_one({"role": "admin"})
    if admin or not settings.ADMIN_PASSWORD:
        return admin
    admin = UserSchema(
        name="Admin",
        email=settings.ADMIN_EMAIL,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        role="admin",
        is_email_verified=True,
    )
    create_document(db, "user", admin)
    logger.info("Seeded admin user %s", settings.ADMIN_EMAIL)
    return db["user"].find_one({"email": settings.ADMIN_EMAIL})


def _ensure_category(db, name, description, rate, order, parent=None, is_featured=False, creator=None):
    slug = slugify(name)
    existing = db["category"].find_one({"slug": slug})
    if existing:
        return existing, False
    ancestors, level = lineage(parent)
    category = CategorySchema(
        name=name,
        slug=slug,
        description=description,
        parent=parent["_id"] if parent else None,
        ancestors=ancestors,
        level=level,
        order=order,
        is_featured=is_featured,
        commission=Commission(rate=rate),
        created_by=creator,
        updated_by=creator,
    )
    create_document(db, "category", category)
    return db["category"].find_one({"slug": slug}), True


def seed(db) -> dict:
    admin = ensure_admin(db)
    creator = admin["_id"] if admin else None
    created = 0
    for order, entry in enumerate(DEMO_CATEGORIES, start=1):
        root, new = _ensure_category(
            db, entry["name"], entry["description"], entry["rate"], order,
            is_featured=entry["is_featured"], creator=creator,
        )
        created += new
        for child_order, (name, description, rate) in enumerate(entry["children"], start=1):
            _, new = _ensure_category(db, name, description, rate, child_order, parent=root, creator=creator)
            created += new
    logger.info("Seed complete: %d categories created", created)
    return {
        "seeded": created > 0,
        "categories_created": created,
        "categories": db["category"].count_documents({}),
        "admin": admin is not None,
    }
