import logging
from typing import List, Literal, Optional, Union

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from catalog import generate_sku, normalize_images, product_view, sku_taken
from database import create_document, get_db
from schemas import PRODUCT_STATUSES, Product as ProductSchema, SizeStock
from security import is_admin, require_seller
from utils import Page, now, oid, ok, page_params, paginate, populate, regex

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])

RELATED_LIMIT = 8


# ----------------------- Models -----------------------
class ProductImageBody(BaseModel):
    url: str = Field(..., min_length=1)
    alt: Optional[str] = None
    is_primary: bool = False
    order: Optional[int] = None


ImageInput = Union[str, ProductImageBody]


class ProductCreateBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    short_description: Optional[str] = Field(None, max_length=500)
    category: str
    brand: Optional[str] = None
    price: float = Field(..., ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    images: List[ImageInput] = []
    sizes: List[SizeStock] = []
    colors: List[str] = []
    status: Optional[str] = None
    sku: Optional[str] = Field(None, max_length=50)
    low_stock_threshold: int = Field(10, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    featured: bool = False


class ProductUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    short_description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    images: Optional[List[ImageInput]] = None
    sizes: Optional[List[SizeStock]] = None
    colors: Optional[List[str]] = None
    status: Optional[str] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)


class ProductStatusBody(BaseModel):
    status: str = Field(..., min_length=1)


def _image_dicts(images) -> list:
    return [img if isinstance(img, str) else img.model_dump(exclude_none=True) for img in images or []]


def _check_status(status: Optional[str]):
    if status and status not in PRODUCT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(PRODUCT_STATUSES)}",
        )


def _require_category(db, category_id: str) -> ObjectId:
    category = db["category"].find_one({"_id": oid(category_id, "category id")}, {"_id": 1})
    if not category:
        raise HTTPException(status_code=400, detail="Category not found")
    return category["_id"]


def _owned_product(db, product_id: str, user: dict) -> dict:
    product = db["product"].find_one({"_id": oid(product_id, "product id")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if product.get("seller") != user["_id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail="You can only manage your own products")
    return product


def _views(db, products: list) -> list:
    populate(db, products, "category", "category", ("name", "slug"))
    populate(db, products, "seller", "user", ("name",))
    return [product_view(p) for p in products]


# ----------------------- Public -----------------------
@router.get("")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    seller: Optional[str] = None,
    featured: Optional[bool] = None,
    sort: Literal["created_at", "price", "name", "views", "sales", "average_rating"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    page: Page = Depends(page_params),
    db=Depends(get_db),
):
    filt = {"status": "active", "is_approved": True}
    if category:
        filt["category"] = oid(category, "category id")
    if seller:
        filt["seller"] = oid(seller, "seller id")
    if featured is not None:
        filt["featured"] = featured
    if min_price is not None or max_price is not None:
        price = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        filt["price"] = price
    if search:
        filt["$or"] = [{"name": regex(search)}, {"description": regex(search)}, {"brand": regex(search)}]

    docs, total = paginate(db["product"], filt, page, [(sort, -1 if order == "desc" else 1)])
    return ok(page.result(_views(db, docs), total))


# ----------------------- Seller -----------------------
@router.get("/seller")
def seller_products(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: Page = Depends(page_params),
    user=Depends(require_seller),
    db=Depends(get_db),
):
    filt = {"seller": user["_id"]}
    if status:
        filt["status"] = status
    if search:
        filt["$or"] = [{"name": regex(search)}, {"sku": regex(search)}]
    docs, total = paginate(db["product"], filt, page, [("created_at", -1)])

    status_counts = {}
    for row in db["product"].find({"seller": user["_id"]}, {"status": 1}):
        status_counts[row.get("status")] = status_counts.get(row.get("status"), 0) + 1

    data = page.result(_views(db, docs), total)
    data["status_counts"] = status_counts
    return ok(data)


@router.post("", status_code=201)
def create_product(body: ProductCreateBody, user=Depends(require_seller), db=Depends(get_db)):
    _check_status(body.status)
    category_id = _require_category(db, body.category)
    if not body.images:
        raise HTTPException(status_code=400, detail="At least one product image is required")

    if body.sku:
        sku = body.sku.strip().upper()
        if sku_taken(db, sku):
            raise HTTPException(status_code=400, detail="SKU already exists")
    else:
        sku = generate_sku(db, body.name, user["_id"])

    product = ProductSchema(
        **body.model_dump(exclude={"category", "images", "status", "sku", "sizes"}),
        category=category_id,
        seller=user["_id"],
        images=normalize_images(_image_dicts(body.images), body.name),
        sizes=body.sizes,
        status=body.status or "draft",
        sku=sku,
        created_by=user["_id"],
        updated_by=user["_id"],
    )
    doc = product.model_dump()
    if doc["is_approved"]:
        doc["approved_at"] = now()
    product_id = create_document(db, "product", doc)
    logger.info("Seller %s created product %s (%s)", user["_id"], product_id, sku)
    created = db["product"].find_one({"_id": ObjectId(product_id)})
    return ok({"product": product_view(created)}, "Product created successfully")


@router.get("/check-sku/{sku}")
def check_sku(sku: str, product_id: Optional[str] = None, user=Depends(require_seller), db=Depends(get_db)):
    exclude = oid(product_id, "product id") if product_id else None
    normalized = sku.strip().upper()
    return ok({"available": not sku_taken(db, normalized, exclude), "sku": normalized})


# ----------------------- Single product -----------------------
@router.get("/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    _id = oid(product_id, "product id")
    product = db["product"].find_one({"_id": _id})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    db["product"].update_one({"_id": _id}, {"$inc": {"views": 1}})
    product["views"] = product.get("views", 0) + 1
    return ok({"product": _views(db, [product])[0]})


@router.put("/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(require_seller), db=Depends(get_db)):
    product = _owned_product(db, product_id, user)
    _check_status(body.status)
    update = body.model_dump(exclude_none=True, exclude={"images", "category", "sizes"})
    if body.category is not None:
        update["category"] = _require_category(db, body.category)
    if body.images is not None:
        if not body.images:
            raise HTTPException(status_code=400, detail="At least one product image is required")
        update["images"] = normalize_images(_image_dicts(body.images), body.name or product["name"])
    if body.sizes is not None:
        update["sizes"] = [s.model_dump() for s in body.sizes]
    update["updated_by"] = user["_id"]
    update["updated_at"] = now()
    db["product"].update_one({"_id": product["_id"]}, {"$set": update})
    updated = db["product"].find_one({"_id": product["_id"]})
    return ok({"product": product_view(updated)}, "Product updated successfully")


@router.delete("/{product_id}")
def delete_product(product_id: str, user=Depends(require_seller), db=Depends(get_db)):
    product = _owned_product(db, product_id, user)
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$set": {"status": "archived", "updated_by": user["_id"], "updated_at": now()}},
    )
    return ok(message="Product archived successfully")


@router.put("/{product_id}/status")
def update_product_status(product_id: str, body: ProductStatusBody, user=Depends(require_seller), db=Depends(get_db)):
    product = _owned_product(db, product_id, user)
    _check_status(body.status)
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$set": {"status": body.status, "updated_by": user["_id"], "updated_at": now()}},
    )
    return ok({"id": str(product["_id"]), "status": body.status}, "Product status updated successfully")


@router.get("/{product_id}/related")
def related_products(product_id: str, db=Depends(get_db)):
    product = db["product"].find_one({"_id": oid(product_id, "product id")}, {"category": 1})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    docs = list(
        db["product"]
        .find({
            "category": product.get("category"),
            "_id": {"$ne": product["_id"]},
            "status": "active",
            "is_approved": True,
        })
        .sort("created_at", -1)
        .limit(RELATED_LIMIT)
    )
    return ok({"products": _views(db, docs)})
