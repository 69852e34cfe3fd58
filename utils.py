import math
from typing import Optional

from bson.objectid import ObjectId
from bson.errors import InvalidId

from errors import ValidationError

SORT_FIELDS = {"created_at", "updated_at", "name", "price", "rating", "num_reviews",
               "num_purchases", "count_in_stock", "total_price", "paid_at", "delivered_at"}


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def serialize(doc):
    if not doc:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def public_user(doc):
    user = serialize(doc)
    if user:
        user.pop("password_hash", None)
    return user


def sort_spec(sort_by: str, sort_order: Optional[str]):
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"Cannot sort by '{sort_by}'")
    return [(sort_by, 1 if sort_order == "asc" else -1)]


def paginate(collection, filter_dict: dict, page: int, page_size: int, sort) -> dict:
    """Run a paged find and return the items with page/pages/count."""
    count = collection.count_documents(filter_dict)
    cursor = collection.find(filter_dict).sort(sort).skip(page_size * (page - 1)).limit(page_size)
    return {
        "items": list(cursor),
        "page": page,
        "pages": math.ceil(count / page_size),
        "count": count,
    }
