"""
The shopping cart kept in the HTTP session.

The cart is a list of line dicts stored under session["cart"]. A line is
identified by its product id together with its variants (size, color, ...).
Concurrent requests on the same session are last-write-wins.
"""
import json
from typing import List, Optional

CART_KEY = "cart"
OWNER_KEY = "cart_owner"


class CartLineNotFound(Exception):
    pass


def _variant_key(variants: Optional[dict]) -> str:
    return json.dumps(variants or {}, sort_keys=True)


def same_line(line: dict, product_id: str, variants: Optional[dict]) -> bool:
    return line.get("product_id") == product_id and _variant_key(line.get("variants")) == _variant_key(variants)


def load(session: dict, owner_id: str) -> List[dict]:
    """Return the session cart, starting fresh when the session belongs to someone else."""
    if session.get(OWNER_KEY) != owner_id:
        session[OWNER_KEY] = owner_id
        session[CART_KEY] = []
    return list(session.get(CART_KEY) or [])


def save(session: dict, cart: List[dict]):
    session[CART_KEY] = cart


def find_line(cart: List[dict], product_id: str, variants: Optional[dict]) -> Optional[dict]:
    for line in cart:
        if same_line(line, product_id, variants):
            return line
    return None


def quantity_in_cart(cart: List[dict], product_id: str, variants: Optional[dict] = None) -> int:
    line = find_line(cart, product_id, variants)
    return line["quantity"] if line else 0


def add_item(cart: List[dict], item: dict) -> List[dict]:
    """Merge `item` into the cart, adding quantities when the line already exists."""
    cart = [dict(line) for line in cart]
    existing = find_line(cart, item["product_id"], item.get("variants"))
    if existing is not None:
        existing["quantity"] += item["quantity"]
        return cart
    line = dict(item)
    line["variants"] = item.get("variants") or {}
    cart.append(line)
    return cart


def update_quantity(cart: List[dict], product_id: str, variants: Optional[dict], quantity: int) -> List[dict]:
    if find_line(cart, product_id, variants) is None:
        raise CartLineNotFound(product_id)
    if quantity <= 0:
        return remove_item(cart, product_id, variants)
    cart = [dict(line) for line in cart]
    find_line(cart, product_id, variants)["quantity"] = quantity
    return cart


def remove_item(cart: List[dict], product_id: str, variants: Optional[dict]) -> List[dict]:
    remaining = [line for line in cart if not same_line(line, product_id, variants)]
    if len(remaining) == len(cart):
        raise CartLineNotFound(product_id)
    return remaining


def cart_count(cart: List[dict]) -> int:
    return sum(line.get("quantity", 0) for line in cart)


def cart_total(cart: List[dict]) -> float:
    return sum(line.get("price", 0) * line.get("quantity", 0) for line in cart)


def summary(cart: List[dict]) -> dict:
    return {"cart": cart, "cart_total": cart_total(cart), "cart_count": cart_count(cart)}
