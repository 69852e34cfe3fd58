"""
Orders and their lifecycle.

    created (unpaid, undelivered) -> paid -> paid + delivered

Stock is reserved when an order is created and given back when an unpaid
order is deleted. Each product update is a single ``$inc``; the sequence of
updates across products is not transactional, so a failure midway leaves the
earlier products changed, and concurrent orders can oversell a product that
both saw in stock.
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

import settings
from auth import get_current_user, is_admin, require_admin
from database import create_document, get_db, now, update_document
from errors import AuthorizationError, NotFoundError, ValidationError
from schemas import Order as OrderSchema, OrderItem, PaymentMethod, PaymentResult
from utils import oid, paginate, serialize, sort_spec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])

STATUS_FILTERS = {
    "paid": {"is_paid": True},
    "unpaid": {"is_paid": False},
    "delivered": {"is_delivered": True},
    "pending": {"is_delivered": False},
}


class LineItemRequest(BaseModel):
    product_id: str
    qty: int = Field(..., ge=1)


class AddressRequest(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CreateOrderRequest(BaseModel):
    order_items: List[LineItemRequest] = Field(default_factory=list)
    shipping_address: Optional[AddressRequest] = None
    payment_method: Optional[PaymentMethod] = None
    items_price: float = Field(0, ge=0)
    tax_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)


class Payer(BaseModel):
    email_address: Optional[str] = None


class PaymentCallback(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    payer: Optional[Payer] = None


class StatusUpdate(BaseModel):
    action: Optional[Literal["mark_paid", "mark_delivered"]] = None
    payment_id: Optional[str] = None


def _find_order(order_id: str) -> dict:
    order = get_db()["order"].find_one({"_id": oid(order_id)})
    if not order:
        raise NotFoundError("Order")
    return order


def _with_user(order: dict) -> dict:
    """Serialize an order with the owner's name and email attached."""
    out = serialize(order)
    try:
        owner = get_db()["user"].find_one({"_id": oid(order["user_id"])}, {"name": 1, "email": 1})
    except ValidationError:
        owner = None
    out["user"] = {"id": order["user_id"], "name": owner["name"], "email": owner["email"]} if owner else None
    return out


def _complete_address(address: Optional[AddressRequest]) -> bool:
    if address is None:
        return False
    return all((getattr(address, f) or "").strip() for f in ("address", "city", "postal_code", "country"))


def _reserve_line_items(items: List[LineItemRequest]) -> List[OrderItem]:
    """Check every line against the catalog and snapshot it; nothing is written."""
    lines = [(str(oid(item.product_id)), item.qty) for item in items]
    requested = {}
    for product_id, qty in lines:
        requested[product_id] = requested.get(product_id, 0) + qty

    products = {}
    for product_id, qty in requested.items():
        product = get_db()["product"].find_one({"_id": oid(product_id)})
        if not product:
            raise NotFoundError(f"Product {product_id}")
        if product.get("count_in_stock", 0) < qty:
            raise ValidationError(f"Insufficient stock for product: {product['name']}")
        products[product_id] = product

    return [
        OrderItem(
            product_id=product_id,
            name=products[product_id]["name"],
            image=products[product_id].get("image") or "/images/sample.jpg",
            price=products[product_id]["price"],
            qty=qty,
        )
        for product_id, qty in lines
    ]


# Customer

@router.post("", status_code=201)
def create_order(payload: CreateOrderRequest, user: dict = Depends(get_current_user)):
    if not payload.order_items:
        raise ValidationError("No order items provided")
    if not _complete_address(payload.shipping_address):
        raise ValidationError("Please provide complete shipping address")
    if not payload.payment_method:
        raise ValidationError("Please select a payment method")

    line_items = _reserve_line_items(payload.order_items)
    address = payload.shipping_address
    order = OrderSchema(
        user_id=str(user["_id"]),
        order_items=line_items,
        shipping_address={
            "address": address.address.strip(),
            "city": address.city.strip(),
            "postal_code": address.postal_code.strip(),
            "country": address.country.strip(),
        },
        payment_method=payload.payment_method,
        items_price=payload.items_price,
        tax_price=payload.tax_price,
        shipping_price=payload.shipping_price,
        total_price=payload.total_price,
    )
    order_id = create_document("order", order)

    for item in line_items:
        update_document(
            "product",
            {"_id": oid(item.product_id)},
            {"$inc": {"count_in_stock": -item.qty, "num_purchases": item.qty}},
        )
    logger.info("Order %s created by %s with %d line items", order_id, user["email"], len(line_items))

    return {
        "success": True,
        "message": "Order created successfully",
        "order": _with_user(_find_order(order_id)),
    }


@router.get("/myorders")
def my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    user: dict = Depends(get_current_user),
):
    result = paginate(get_db()["order"], {"user_id": str(user["_id"])}, page, page_size,
                      sort_spec(sort_by, sort_order))
    return {
        "success": True,
        "orders": [serialize(o) for o in result["items"]],
        "page": result["page"],
        "pages": result["pages"],
        "count": result["count"],
    }


@router.get("/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user)):
    order = _find_order(order_id)
    if order["user_id"] != str(user["_id"]) and not is_admin(user):
        raise AuthorizationError("Not authorized to view this order")
    return {"success": True, "order": _with_user(order)}


@router.put("/{order_id}/pay")
def pay_order(order_id: str, payload: PaymentCallback, user: dict = Depends(get_current_user)):
    order = _find_order(order_id)
    if order["user_id"] != str(user["_id"]):
        raise AuthorizationError("Not authorized to update this order")
    if order.get("is_paid"):
        raise ValidationError("Order is already paid")

    result = PaymentResult(
        id=payload.id,
        status=payload.status,
        update_time=payload.update_time,
        email_address=payload.payer.email_address if payload.payer else None,
    )
    update_document("order", {"_id": order["_id"]}, {"$set": {
        "is_paid": True,
        "paid_at": now(),
        "payment_result": result.model_dump(),
    }})
    logger.info("Order %s paid (payment id %s)", order_id, payload.id)
    return {
        "success": True,
        "message": "Order paid successfully",
        "order": _with_user(_find_order(order_id)),
    }


@router.delete("/{order_id}")
def delete_order(order_id: str, user: dict = Depends(get_current_user)):
    order = _find_order(order_id)
    if order["user_id"] != str(user["_id"]) and not is_admin(user):
        raise AuthorizationError("Not authorized to delete this order")
    if order.get("is_paid"):
        raise ValidationError("Cannot delete order that has been paid")
    if order.get("is_delivered"):
        raise ValidationError("Cannot delete order that has been delivered")

    for item in order.get("order_items", []):
        result = update_document(
            "product",
            {"_id": oid(item["product_id"])},
            {"$inc": {"count_in_stock": item["qty"]}},
        )
        if result.matched_count == 0:
            logger.warning("Order %s: product %s no longer exists, stock not restored",
                           order_id, item["product_id"])

    get_db()["order"].delete_one({"_id": order["_id"]})
    logger.info("Order %s deleted by %s", order_id, user["email"])
    return {"success": True, "message": "Order deleted successfully"}


# Admin

@router.get("")
def list_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    admin: dict = Depends(require_admin),
):
    filt = STATUS_FILTERS.get(status, {}) if status else {}
    result = paginate(get_db()["order"], filt, page, page_size, sort_spec(sort_by, sort_order))
    return {
        "success": True,
        "orders": [_with_user(o) for o in result["items"]],
        "page": result["page"],
        "pages": result["pages"],
        "count": result["count"],
    }


@router.put("/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate, admin: dict = Depends(require_admin)):
    if not payload.action:
        raise ValidationError("Please specify an action (mark_paid, mark_delivered)")
    order = _find_order(order_id)

    if payload.action == "mark_paid":
        if order.get("is_paid"):
            raise ValidationError("Order is already paid")
        owner = get_db()["user"].find_one({"_id": oid(order["user_id"])}, {"email": 1})
        result = PaymentResult(
            id=payload.payment_id or "admin_payment",
            status="completed",
            update_time=now().isoformat(),
            email_address=owner["email"] if owner else settings.PAYMENT_FALLBACK_EMAIL,
        )
        changes = {"is_paid": True, "paid_at": now(), "payment_result": result.model_dump()}
        message = "Order marked as paid successfully"
    else:
        if not order.get("is_paid"):
            raise ValidationError("Order must be paid before marking as delivered")
        if order.get("is_delivered"):
            raise ValidationError("Order is already delivered")
        changes = {"is_delivered": True, "delivered_at": now()}
        message = "Order marked as delivered successfully"

    update_document("order", {"_id": order["_id"]}, {"$set": changes})
    logger.info("Order %s: %s by %s", order_id, payload.action, admin["email"])
    return {"success": True, "message": message, "order": _with_user(_find_order(order_id))}
