"""
Catalog rules shared by the product, category, cart and order routes:
SKU generation, image normalisation, inventory views and the category tree.
"""
import logging
import random
import re
import string
import time
from typing import List, Optional

from bson.objectid import ObjectId

from utils import serialize_doc

logger = logging.getLogger(__name__)

SKU_MAX_ATTEMPTS = 50
SKU_MAX_LENGTH = 50
PLACEHOLDER_IMAGE = "/placeholder-product.jpg"


class StockError(Exception):
    pass


class CategoryMoveError(Exception):
    pass


# ----------------------- SKU -----------------------
def _base36(number: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out or "0"


def _random_token(length: int) -> str:
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


def sku_base(name: str) -> str:
    words = re.sub(r"[^a-zA-Z0-9\s]", "", name or "").split()
    return "".join(words[:2]).upper()[:8]


def sku_candidate(base: str, attempt: int, seller_id=None) -> str:
    timestamp = str(int(time.time() * 1000))
    rand = f"{random.randint(0, 99999):05d}"
    if attempt < 10:
        suffix = f"-{attempt}" if attempt > 0 else ""
        sku = f"{base}-{timestamp[-6:]}{rand}{suffix}"
    elif attempt < 20:
        seller = str(seller_id)[-4:].upper() if seller_id else "0000"
        sku = f"{base}-{seller}-{timestamp[-4:]}{rand[-3:]}"
    elif attempt < 30:
        sku = f"{base}-{_random_token(8)}-{rand[-3:]}"
    else:
        sku = f"PROD-{_random_token(4)}{_base36(int(timestamp))}-{rand[-3:]}"
    return sku[:SKU_MAX_LENGTH]


def fallback_sku() -> str:
    return f"PROD-{_base36(int(time.time() * 1000))}-{str(ObjectId()).upper()[-8:]}"


def sku_taken(db, sku: str, exclude_id: Optional[ObjectId] = None) -> bool:
    filt = {"sku": sku.upper()}
    if exclude_id is not None:
        filt["_id"] = {"$ne": exclude_id}
    return db["product"].find_one(filt, {"_id": 1}) is not None


def generate_sku(db, name: str, seller_id=None, exclude_id: Optional[ObjectId] = None) -> str:
    """Try up to SKU_MAX_ATTEMPTS randomized candidates, then fall back to an ObjectId-derived SKU."""
    base = sku_base(name)
    for attempt in range(SKU_MAX_ATTEMPTS):
        candidate = sku_candidate(base, attempt, seller_id)
        if not sku_taken(db, candidate, exclude_id):
            return candidate
    logger.warning("SKU generation exhausted %d attempts for %r, using fallback", SKU_MAX_ATTEMPTS, name)
    return fallback_sku()


# ----------------------- Products -----------------------
def normalize_images(images, product_name: str) -> List[dict]:
    normalized = []
    for index, img in enumerate(images or []):
        if isinstance(img, str):
            img = {"url": img}
        normalized.append(
            {
                "url": img.get("url"),
                "alt": img.get("alt") or f"{product_name} - Image {index + 1}",
                "is_primary": bool(img.get("is_primary")),
                "order": img.get("order") if img.get("order") is not None else index,
            }
        )
    seen_primary = False
    for img in normalized:
        if img["is_primary"] and not seen_primary:
            seen_primary = True
        else:
            img["is_primary"] = False
    if normalized and not seen_primary:
        normalized[0]["is_primary"] = True
    return normalized


def primary_image(product: dict) -> str:
    images = product.get("images") or []
    for img in images:
        if img.get("is_primary"):
            return img.get("url") or PLACEHOLDER_IMAGE
    return images[0].get("url") if images else PLACEHOLDER_IMAGE


def unit_price(product: dict) -> float:
    return product.get("discounted_price") or product.get("price", 0)


def total_inventory(product: dict) -> int:
    return sum(s.get("stock", 0) for s in product.get("sizes") or [])


def discount_percentage(product: dict) -> int:
    price = product.get("price") or 0
    discounted = product.get("discounted_price")
    if not discounted or not price or discounted >= price:
        return 0
    return round((price - discounted) / price * 100)


def product_view(product: dict) -> dict:
    data = serialize_doc(product)
    inventory = total_inventory(product)
    data["total_inventory"] = inventory
    data["in_stock"] = inventory > 0
    data["low_stock"] = 0 < inventory <= product.get("low_stock_threshold", 10)
    data["discount_percentage"] = discount_percentage(product)
    return data


def available_stock(product: dict, size: Optional[str] = None) -> int:
    if size:
        for entry in product.get("sizes") or []:
            if entry.get("size") == size:
                return entry.get("stock", 0)
        return 0
    return total_inventory(product)


def take_stock(sizes: List[dict], quantity: int, size: Optional[str] = None) -> List[dict]:
    """Return a copy of `sizes` with `quantity` removed; raises StockError when short."""
    sizes = [dict(s) for s in sizes or []]
    if size:
        entry = next((s for s in sizes if s.get("size") == size), None)
        if entry is None or entry.get("stock", 0) < quantity:
            raise StockError(f"Insufficient stock for size {size}")
        entry["stock"] -= quantity
        return sizes
    if sum(s.get("stock", 0) for s in sizes) < quantity:
        raise StockError("Insufficient stock")
    remaining = quantity
    for entry in sizes:
        taken = min(entry.get("stock", 0), remaining)
        entry["stock"] -= taken
        remaining -= taken
        if not remaining:
            break
    return sizes


def return_stock(sizes: List[dict], quantity: int, size: Optional[str] = None) -> List[dict]:
    sizes = [dict(s) for s in sizes or []]
    if not sizes:
        return sizes
    entry = next((s for s in sizes if s.get("size") == size), None) if size else None
    (entry or sizes[0])["stock"] = (entry or sizes[0]).get("stock", 0) + quantity
    return sizes


# ----------------------- Categories -----------------------
def lineage(parent: Optional[dict]):
    """Ancestors and level for a node placed directly under `parent`."""
    if not parent:
        return [], 0
    ancestors = list(parent.get("ancestors") or []) + [parent["_id"]]
    return ancestors, len(ancestors)


def move_category(db, category: dict, new_parent: Optional[dict]) -> int:
    """Re-parent `category` and recompute ancestors/level for its whole subtree.

    Returns the number of category documents updated.
    """
    if new_parent is not None:
        if new_parent["_id"] == category["_id"] or category["_id"] in (new_parent.get("ancestors") or []):
            raise CategoryMoveError("Category cannot be moved under itself or one of its descendants")
    ancestors, level = lineage(new_parent)
    db["category"].update_one(
        {"_id": category["_id"]},
        {"$set": {"parent": new_parent["_id"] if new_parent else None, "ancestors": ancestors, "level": level}},
    )
    updated = 1
    queue = [(category["_id"], ancestors + [category["_id"]])]
    while queue:
        parent_id, chain = queue.pop(0)
        for child in db["category"].find({"parent": parent_id}, {"_id": 1}):
            db["category"].update_one({"_id": child["_id"]}, {"$set": {"ancestors": chain, "level": len(chain)}})
            updated += 1
            queue.append((child["_id"], chain + [child["_id"]]))
    return updated


def build_tree(categories: List[dict]) -> List[dict]:
    nodes = {}
    for cat in categories:
        node = serialize_doc(cat)
        node["children"] = []
        nodes[cat["_id"]] = node
    roots = []
    for cat in categories:
        parent = cat.get("parent")
        if parent is None:
            roots.append(nodes[cat["_id"]])
        elif parent in nodes:
            nodes[parent]["children"].append(nodes[cat["_id"]])
    return roots


def breadcrumb(db, category: dict) -> List[dict]:
    ids = list(category.get("ancestors") or [])
    if not ids:
        return []
    found = {c["_id"]: c for c in db["category"].find({"_id": {"$in": ids}}, {"name": 1, "slug": 1})}
    return [
        {"id": str(i), "name": found[i].get("name"), "slug": found[i].get("slug")}
        for i in ids
        if i in found
    ]
