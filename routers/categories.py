import logging
from typing import Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from catalog import CategoryMoveError, breadcrumb, build_tree, lineage, move_category
from database import create_document, get_db
from schemas import Category as CategorySchema, Commission
from security import get_current_user, is_admin, require_admin, require_seller
from utils import now, oid, ok, serialize_doc, slugify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["categories"])

CATEGORY_SORT = [("order", 1), ("name", 1)]


class CategoryCreateBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent: Optional[str] = None
    order: int = 0
    is_featured: bool = False
    image: Optional[str] = None
    commission: Optional[Commission] = None


class CategoryUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent: Optional[str] = None
    order: Optional[int] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None
    image: Optional[str] = None
    commission: Optional[Commission] = None


def _get_category(db, category_id: str) -> dict:
    category = db["category"].find_one({"_id": oid(category_id, "category id")})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def _slug_taken(db, slug: str, exclude_id: Optional[ObjectId] = None) -> bool:
    filt = {"slug": slug}
    if exclude_id is not None:
        filt["_id"] = {"$ne": exclude_id}
    return db["category"].find_one(filt, {"_id": 1}) is not None


# ----------------------- Read -----------------------
@router.get("")
def list_categories(
    level: Optional[int] = None,
    parent: Optional[str] = None,
    featured: Optional[bool] = None,
    db=Depends(get_db),
):
    filt = {"is_active": True}
    if level is not None:
        filt["level"] = level
    if parent is not None:
        filt["parent"] = None if parent in ("null", "") else oid(parent, "parent id")
    if featured is not None:
        filt["is_featured"] = featured
    categories = list(db["category"].find(filt).sort(CATEGORY_SORT))
    return ok({"categories": serialize_doc(categories)})


@router.get("/tree")
def category_tree(db=Depends(get_db)):
    categories = list(db["category"].find({"is_active": True}).sort(CATEGORY_SORT))
    return ok({"categories": build_tree(categories)})


@router.get("/main")
def main_categories(user=Depends(require_seller), db=Depends(get_db)):
    roots = list(db["category"].find({"level": 0, "is_active": True}).sort(CATEGORY_SORT))
    data = []
    for root in roots:
        item = serialize_doc(root)
        item["subcategory_count"] = db["category"].count_documents({"parent": root["_id"], "is_active": True})
        data.append(item)
    return ok({"categories": data})


@router.get("/slug/{slug}")
def category_by_slug(slug: str, db=Depends(get_db)):
    category = db["category"].find_one({"slug": slug, "is_active": True})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    data = serialize_doc(category)
    data["ancestors"] = breadcrumb(db, category)
    return ok({"category": data})


@router.get("/{category_id}")
def get_category(category_id: str, db=Depends(get_db)):
    category = _get_category(db, category_id)
    data = serialize_doc(category)
    if category.get("parent"):
        parent = db["category"].find_one({"_id": category["parent"]}, {"name": 1, "slug": 1})
        data["parent"] = serialize_doc(parent)
    data["ancestors"] = breadcrumb(db, category)
    return ok({"category": data})


# ----------------------- Write -----------------------
@router.post("", status_code=201)
def create_category(body: CategoryCreateBody, user=Depends(get_current_user), db=Depends(get_db)):
    admin = is_admin(user)
    if not admin and user.get("role") != "seller":
        raise HTTPException(status_code=403, detail="Access denied. Only admins and sellers can create categories.")
    if not admin and not body.parent:
        raise HTTPException(
            status_code=403,
            detail="Sellers can only create subcategories. Please select a main category.",
        )

    parent = None
    if body.parent:
        parent = db["category"].find_one({"_id": oid(body.parent, "parent id")})
        if not parent:
            raise HTTPException(status_code=400, detail="Parent category not found")
        if not admin and parent.get("level", 0) != 0:
            raise HTTPException(status_code=403, detail="Sellers can only create subcategories under main categories.")

    slug = slugify(body.name)
    if _slug_taken(db, slug):
        raise HTTPException(status_code=400, detail="Category with this name already exists")

    ancestors, level = lineage(parent)
    category = CategorySchema(
        name=body.name.strip(),
        slug=slug,
        description=body.description,
        parent=parent["_id"] if parent else None,
        ancestors=ancestors,
        level=level,
        order=body.order,
        is_featured=body.is_featured if admin else False,
        image=body.image,
        commission=body.commission if admin and body.commission else Commission(),
        created_by=user["_id"],
        updated_by=user["_id"],
    )
    category_id = create_document(db, "category", category)
    logger.info("Category %s (%s) created by %s", slug, category_id, user["_id"])
    created = db["category"].find_one({"_id": ObjectId(category_id)})
    return ok({"category": serialize_doc(created)}, "Category created successfully")


@router.put("/{category_id}")
def update_category(category_id: str, body: CategoryUpdateBody, user=Depends(get_current_user), db=Depends(get_db)):
    category = _get_category(db, category_id)
    admin = is_admin(user)
    if not admin and category.get("created_by") != user["_id"]:
        raise HTTPException(status_code=403, detail="Access denied. You can only edit categories you created.")

    update = {}
    for field in ("description", "order", "image"):
        value = getattr(body, field)
        if value is not None:
            update[field] = value
    if body.name is not None and body.name.strip() != category["name"]:
        slug = slugify(body.name)
        if _slug_taken(db, slug, category["_id"]):
            raise HTTPException(status_code=400, detail="Category with this name already exists")
        update["name"] = body.name.strip()
        update["slug"] = slug
    if admin:
        if body.is_featured is not None:
            update["is_featured"] = body.is_featured
        if body.is_active is not None:
            update["is_active"] = body.is_active
        if body.commission is not None:
            update["commission"] = body.commission.model_dump()

    if "parent" in body.model_fields_set:
        new_parent = None
        if body.parent:
            new_parent = db["category"].find_one({"_id": oid(body.parent, "parent id")})
            if not new_parent:
                raise HTTPException(status_code=400, detail="Parent category not found")
        if (new_parent or {}).get("_id") != category.get("parent"):
            try:
                moved = move_category(db, category, new_parent)
            except CategoryMoveError as exc:
                raise HTTPException(status_code=400, detail=str(exc))
            logger.info("Moved category %s, %d documents relinked", category["_id"], moved)

    update["updated_by"] = user["_id"]
    update["updated_at"] = now()
    db["category"].update_one({"_id": category["_id"]}, {"$set": update})
    updated = db["category"].find_one({"_id": category["_id"]})
    return ok({"category": serialize_doc(updated)}, "Category updated successfully")


@router.delete("/{category_id}")
def delete_category(category_id: str, user=Depends(require_admin), db=Depends(get_db)):
    category = _get_category(db, category_id)
    if db["category"].count_documents({"parent": category["_id"]}):
        raise HTTPException(status_code=400, detail="Cannot delete category with subcategories")
    if db["product"].count_documents({"category": category["_id"]}):
        raise HTTPException(status_code=400, detail="Cannot delete category with products")
    db["category"].delete_one({"_id": category["_id"]})
    return ok(message="Category deleted successfully")
