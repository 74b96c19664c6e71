from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from database import get_db
from schemas import Address
from security import get_current_user, public_user
from utils import now, ok, serialize_doc

router = APIRouter(prefix="/users", tags=["users"])

ACTIVE_ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped")


class ProfileUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = None
    avatar: Optional[str] = None
    preferences: Optional[dict] = None


class AddressBody(BaseModel):
    type: Literal["home", "work", "other"] = "home"
    is_default: bool = False
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    country: str = "India"
    postal_code: str = Field(..., min_length=3)
    landmark: Optional[str] = None


class AddressUpdateBody(BaseModel):
    type: Optional[Literal["home", "work", "other"]] = None
    is_default: Optional[bool] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    landmark: Optional[str] = None


def _save_addresses(db, user: dict, addresses: list):
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": now()}})


def _single_default(addresses: list, default_id: Optional[str] = None) -> list:
    """Keep exactly one default address (when there are any)."""
    if default_id is None:
        default_id = next((a["id"] for a in addresses if a.get("is_default")), None)
    if default_id is None and addresses:
        default_id = addresses[0]["id"]
    for a in addresses:
        a["is_default"] = a["id"] == default_id
    return addresses


# ----------------------- Profile -----------------------
@router.get("/profile")
def get_profile(user=Depends(get_current_user)):
    return ok({"user": public_user(user)})


@router.put("/profile")
def update_profile(body: ProfileUpdateBody, user=Depends(get_current_user), db=Depends(get_db)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now()
    db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return ok({"user": public_user(db["user"].find_one({"_id": user["_id"]}))}, "Profile updated successfully")


# ----------------------- Addresses -----------------------
@router.get("/addresses")
def list_addresses(user=Depends(get_current_user)):
    return ok({"addresses": user.get("addresses") or []})


@router.post("/addresses", status_code=201)
def add_address(body: AddressBody, user=Depends(get_current_user), db=Depends(get_db)):
    addresses = list(user.get("addresses") or [])
    address = Address(**body.model_dump()).model_dump()
    addresses.append(address)
    addresses = _single_default(addresses, address["id"] if address["is_default"] else None)
    _save_addresses(db, user, addresses)
    return ok({"address": address, "addresses": addresses}, "Address added successfully")


@router.put("/addresses/{address_id}")
def update_address(address_id: str, body: AddressUpdateBody, user=Depends(get_current_user), db=Depends(get_db)):
    addresses = list(user.get("addresses") or [])
    address = next((a for a in addresses if a["id"] == address_id), None)
    if address is None:
        raise HTTPException(status_code=404, detail="Address not found")
    address.update(body.model_dump(exclude_none=True))
    addresses = _single_default(addresses, address_id if body.is_default else None)
    _save_addresses(db, user, addresses)
    return ok({"address": address, "addresses": addresses}, "Address updated successfully")


@router.delete("/addresses/{address_id}")
def delete_address(address_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    addresses = list(user.get("addresses") or [])
    remaining = [a for a in addresses if a["id"] != address_id]
    if len(remaining) == len(addresses):
        raise HTTPException(status_code=404, detail="Address not found")
    remaining = _single_default(remaining)
    _save_addresses(db, user, remaining)
    return ok({"addresses": remaining}, "Address deleted successfully")


# ----------------------- Dashboard -----------------------
@router.get("/dashboard/stats")
def dashboard_stats(user=Depends(get_current_user), db=Depends(get_db)):
    orders = list(db["order"].find({"customer": user["_id"]}).sort("created_at", -1))
    by_status = {}
    for order in orders:
        by_status[order["status"]] = by_status.get(order["status"], 0) + 1
    return ok({
        "total_orders": len(orders),
        "active_orders": sum(1 for o in orders if o["status"] in ACTIVE_ORDER_STATUSES),
        "completed_orders": by_status.get("delivered", 0),
        "orders_by_status": by_status,
        "total_spent": sum(o.get("total", 0) for o in orders if o.get("payment_status") == "paid"),
        "reviews_given": db["review"].count_documents({"user": user["_id"]}),
        "recent_orders": serialize_doc(orders[:5]),
    })
