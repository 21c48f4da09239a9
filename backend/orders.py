"""
Checkout: turns a submitted cart into a priced, persisted order.
"""
import logging
import os
from collections import OrderedDict
from typing import Dict

from dotenv import load_dotenv
from sqlalchemy.orm import Session

import models
import pricing
from schemas import OrderCreate, OrderItemResponse, OrderResponse

load_dotenv()

logger = logging.getLogger("KasirOrders")

# "advisory": stock is informational only, "decrement": sold quantities are
# taken out of stock in the order transaction
STOCK_POLICY = os.getenv("STOCK_POLICY", "advisory").lower()
STOCK_POLICIES = ("advisory", "decrement")

if STOCK_POLICY not in STOCK_POLICIES:
    raise RuntimeError(f"STOCK_POLICY must be one of {STOCK_POLICIES}, got {STOCK_POLICY!r}")

STATUS_TRANSITIONS = {
    models.OrderStatus.PENDING: {models.OrderStatus.COMPLETED, models.OrderStatus.CANCELLED},
    models.OrderStatus.COMPLETED: {models.OrderStatus.CANCELLED},
    models.OrderStatus.CANCELLED: set(),
}


class OrderError(ValueError):
    """The submitted order cannot be accepted as is."""


class InsufficientStockError(OrderError):
    pass


class InvalidTransitionError(OrderError):
    pass


def _load_products(db: Session, product_ids, lock: bool) -> Dict[int, models.Product]:
    query = db.query(models.Product).filter(models.Product.id.in_(product_ids))
    if lock:
        query = query.with_for_update()
    return {product.id: product for product in query.all()}


def assemble_order(db: Session, user: models.User, order_in: OrderCreate,
                   stock_policy: str = None) -> models.Order:
    """Validate, price and persist an order with its items in one transaction.

    Unit prices come from the catalog; prices sent by the client are
    ignored. Nothing is written unless every line resolves.
    """
    stock_policy = STOCK_POLICY if stock_policy is None else stock_policy
    if not order_in.items:
        raise OrderError("items are required")

    requested = OrderedDict()
    for item in order_in.items:
        if item.quantity <= 0:
            raise OrderError("Invalid quantity")
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    try:
        products = _load_products(db, list(requested), lock=stock_policy == "decrement")

        for product_id in requested:
            product = products.get(product_id)
            if product is None:
                raise OrderError(f"Invalid productId: {product_id}")
            if not product.is_active:
                raise OrderError(f"Product {product.name} is not available")

        if stock_policy == "decrement":
            for product_id, quantity in requested.items():
                product = products[product_id]
                if product.stock < quantity:
                    raise InsufficientStockError(
                        f"Insufficient stock for {product.name}: {product.stock} left, {quantity} requested"
                    )
            for product_id, quantity in requested.items():
                products[product_id].stock -= quantity

        totals = pricing.compute_totals(
            [(products[item.product_id].price, item.quantity) for item in order_in.items],
            order_in.dining_mode,
        )

        db_order = models.Order(
            user_id=user.id,
            status=models.OrderStatus.COMPLETED.value,
            subtotal=totals.subtotal,
            tax=totals.tax,
            packaging=totals.packaging,
            total=totals.total,
            dining_mode=models.DiningMode(order_in.dining_mode).value,
            customer_name=order_in.customer_name,
            payment_method=order_in.payment_method.value if order_in.payment_method else None,
            order_notes=order_in.order_notes,
            table_no=order_in.table_no,
        )
        for item in order_in.items:
            product = products[item.product_id]
            db_order.items.append(models.OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=item.quantity,
                price=product.price,
            ))

        db.add(db_order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(db_order)
    logger.info(f"Order created: {db_order.id} total: {db_order.total}")
    return db_order


def restock(db: Session, order: models.Order) -> None:
    """Put the quantities of a sold order back into stock. Does not commit."""
    products = _load_products(db, [item.product_id for item in order.items], lock=True)
    for item in order.items:
        product = products.get(item.product_id)
        if product is not None:
            product.stock += item.quantity


def change_status(db: Session, order: models.Order, new_status, stock_policy: str = None) -> models.Order:
    stock_policy = STOCK_POLICY if stock_policy is None else stock_policy
    current = models.OrderStatus(order.status)
    new_status = models.OrderStatus(new_status)
    if new_status == current:
        return order
    if new_status not in STATUS_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot change order status from {current.value} to {new_status.value}")

    try:
        if stock_policy == "decrement" and new_status == models.OrderStatus.CANCELLED:
            restock(db, order)
        order.status = new_status.value
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    logger.info(f"Order {order.id} status changed {current.value} -> {new_status.value}")
    return order


def delete_order(db: Session, order: models.Order, stock_policy: str = None) -> None:
    """Delete an order with its items, returning stock it still holds."""
    stock_policy = STOCK_POLICY if stock_policy is None else stock_policy
    # Cancelled orders were restocked when they were cancelled
    holds_stock = order.status != models.OrderStatus.CANCELLED.value
    try:
        if stock_policy == "decrement" and holds_stock:
            restock(db, order)
        db.delete(order)
        db.commit()
    except Exception:
        db.rollback()
        raise


def order_response(order: models.Order) -> OrderResponse:
    items = [
        OrderItemResponse(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            price=item.price,
            line_total=item.price * item.quantity,
        )
        for item in order.items
    ]

    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        username=order.user.username if order.user else "Unknown",
        status=order.status,
        subtotal=order.subtotal,
        tax=order.tax,
        packaging=order.packaging,
        total=order.total,
        dining_mode=order.dining_mode,
        customer_name=order.customer_name,
        payment_method=order.payment_method,
        order_notes=order.order_notes,
        table_no=order.table_no,
        created_at=order.created_at,
        items=items,
    )
