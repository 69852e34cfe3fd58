import logging
import math
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from auth import get_current_user, require_admin
from database import create_document, get_db, now, update_document
from errors import ConflictError, NotFoundError, ValidationError
from schemas import Product as ProductSchema
from utils import oid, paginate, serialize, sort_spec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["Catalog"])


class ProductCreate(BaseModel):
    name: str
    description: str
    price: float
    category: str
    image: Optional[str] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    count_in_stock: int = 0


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    image: Optional[str] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    count_in_stock: Optional[int] = None


class ReviewCreate(BaseModel):
    rating: int = Field(..., description="1 to 5")
    comment: str


def get_product_or_404(product_id: str) -> dict:
    product = get_db()["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFoundError("Product")
    return product


def _check_bounds(price: Optional[float], count_in_stock: Optional[int]):
    if price is not None and not math.isfinite(price):
        raise ValidationError("Price must be a finite number")
    if price is not None and price < 0:
        raise ValidationError("Price cannot be negative")
    if count_in_stock is not None and count_in_stock < 0:
        raise ValidationError("Stock count cannot be negative")


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


def build_filter(keyword: Optional[str], category: Optional[str],
                 min_price: Optional[float], max_price: Optional[float]) -> dict:
    """AND of: keyword over name/description/category, category, price range."""
    filt = {}
    if keyword:
        filt["$or"] = [
            {"name": _contains(keyword)},
            {"description": _contains(keyword)},
            {"category": _contains(keyword)},
        ]
    if category:
        filt["category"] = _contains(category)
    price = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        filt["price"] = price
    return filt


# Public catalog

@router.get("")
def list_products(
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
):
    filt = build_filter(keyword, category, min_price, max_price)
    result = paginate(get_db()["product"], filt, page, page_size, sort_spec(sort_by, sort_order))
    return {
        "success": True,
        "products": [serialize(p) for p in result["items"]],
        "page": result["page"],
        "pages": result["pages"],
        "count": result["count"],
        "page_size": page_size,
    }


@router.get("/top")
def top_products(limit: int = Query(3, ge=1, le=50)):
    products = get_db()["product"].find({}).sort("rating", -1).limit(limit)
    return {"success": True, "products": [serialize(p) for p in products]}


@router.get("/categories")
def product_categories():
    categories = sorted(c for c in get_db()["product"].distinct("category") if c)
    return {"success": True, "categories": categories}


@router.get("/{product_id}")
def get_product(product_id: str):
    return {"success": True, "product": serialize(get_product_or_404(product_id))}


# Reviews

@router.post("/{product_id}/reviews", status_code=201)
def create_review(product_id: str, payload: ReviewCreate, user: dict = Depends(get_current_user)):
    comment = payload.comment.strip()
    if not comment:
        raise ValidationError("Please provide rating and comment")
    if payload.rating < 1 or payload.rating > 5:
        raise ValidationError("Rating must be between 1 and 5")

    product = get_product_or_404(product_id)
    user_id = str(user["_id"])
    reviews = product.get("reviews", [])
    if any(r.get("user_id") == user_id for r in reviews):
        raise ConflictError("Product already reviewed by this user")

    review = {
        "user_id": user_id,
        "name": user["name"],
        "rating": payload.rating,
        "comment": comment,
        "created_at": now(),
    }
    reviews = reviews + [review]
    rating = sum(r["rating"] for r in reviews) / len(reviews)
    update_document(
        "product",
        {"_id": product["_id"]},
        {"$push": {"reviews": review}, "$set": {"num_reviews": len(reviews), "rating": rating}},
    )
    return {"success": True, "message": "Review added successfully"}


# Admin catalog management

@router.post("", status_code=201)
def create_product(payload: ProductCreate, admin: dict = Depends(require_admin)):
    if not (payload.name.strip() and payload.description.strip() and payload.category.strip()):
        raise ValidationError("Please provide all required fields: name, description, price, category")
    _check_bounds(payload.price, payload.count_in_stock)

    product = ProductSchema(
        user_id=str(admin["_id"]),
        name=payload.name.strip(),
        description=payload.description.strip(),
        price=payload.price,
        image=payload.image or "/images/sample.jpg",
        category=payload.category.strip(),
        subcategory=payload.subcategory.strip() if payload.subcategory else None,
        brand=payload.brand.strip() if payload.brand else None,
        count_in_stock=payload.count_in_stock,
    )
    product_id = create_document("product", product)
    logger.info("Product %s created by %s", product_id, admin["email"])
    return {
        "success": True,
        "message": "Product created successfully",
        "product": serialize(get_product_or_404(product_id)),
    }


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin: dict = Depends(require_admin)):
    product = get_product_or_404(product_id)
    _check_bounds(payload.price, payload.count_in_stock)

    changes = {}
    for field in ("name", "description", "category", "subcategory", "brand"):
        value = getattr(payload, field)
        if value and value.strip():
            changes[field] = value.strip()
    if payload.image:
        changes["image"] = payload.image
    if payload.price is not None:
        changes["price"] = payload.price
    if payload.count_in_stock is not None:
        changes["count_in_stock"] = payload.count_in_stock

    if changes:
        update_document("product", {"_id": product["_id"]}, {"$set": changes})
    return {
        "success": True,
        "message": "Product updated successfully",
        "product": serialize(get_product_or_404(product_id)),
    }


@router.delete("/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(require_admin)):
    product = get_product_or_404(product_id)
    get_db()["product"].delete_one({"_id": product["_id"]})
    logger.info("Product %s deleted by %s", product_id, admin["email"])
    return {"success": True, "message": "Product deleted successfully"}
