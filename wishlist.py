import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo import ReturnDocument

from auth import get_current_user
from database import get_db, now, update_document
from errors import ConflictError, NotFoundError
from products import get_product_or_404
from schemas import WishlistItem
from utils import oid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wishlist", tags=["Wishlist"])


class AddToWishlistRequest(BaseModel):
    product_id: str


def _get_or_create(user_id: str) -> dict:
    """Return the user's wishlist, creating an empty one on first access."""
    return get_db()["wishlist"].find_one_and_update(
        {"user_id": user_id},
        {"$setOnInsert": {"items": [], "created_at": now(), "updated_at": now()}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def _find(user_id: str) -> dict:
    wishlist = get_db()["wishlist"].find_one({"user_id": user_id})
    if not wishlist:
        raise NotFoundError("Wishlist")
    return wishlist


@router.get("")
def get_wishlist(user: dict = Depends(get_current_user)):
    wishlist = _get_or_create(str(user["_id"]))
    return {"success": True, "wishlist": wishlist.get("items", [])}


@router.post("", status_code=201)
def add_to_wishlist(payload: AddToWishlistRequest, user: dict = Depends(get_current_user)):
    product_id = str(oid(payload.product_id))
    product = get_product_or_404(product_id)
    user_id = str(user["_id"])
    wishlist = _get_or_create(user_id)
    if any(item["product_id"] == product_id for item in wishlist.get("items", [])):
        raise ConflictError("Product already in wishlist")

    item = WishlistItem(
        product_id=product_id,
        name=product["name"],
        image=product.get("image") or "/images/sample.jpg",
        price=product["price"],
        count_in_stock=product.get("count_in_stock", 0),
        added_at=now(),
    )
    result = update_document(
        "wishlist",
        {"_id": wishlist["_id"], "items.product_id": {"$ne": product_id}},
        {"$push": {"items": item.model_dump()}},
    )
    if result.matched_count == 0:
        raise ConflictError("Product already in wishlist")
    return {
        "success": True,
        "message": "Product added to wishlist",
        "wishlist": _find(user_id)["items"],
    }


@router.delete("/{product_id}")
def remove_from_wishlist(product_id: str, user: dict = Depends(get_current_user)):
    product_id = str(oid(product_id))
    wishlist = _find(str(user["_id"]))
    update_document("wishlist", {"_id": wishlist["_id"]}, {"$pull": {"items": {"product_id": product_id}}})
    return {
        "success": True,
        "message": "Product removed from wishlist",
        "wishlist": _find(str(user["_id"]))["items"],
    }


@router.delete("")
def clear_wishlist(user: dict = Depends(get_current_user)):
    wishlist = _find(str(user["_id"]))
    update_document("wishlist", {"_id": wishlist["_id"]}, {"$set": {"items": []}})
    logger.info("Wishlist cleared for %s", user["email"])
    return {"success": True, "message": "Wishlist cleared", "wishlist": []}
