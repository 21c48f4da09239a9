"""
In-memory cart used while a cashier is building an order.

Nothing here touches the database. Prices are snapshotted when a product is
first added; the server re-prices everything at checkout anyway.
"""
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional

import pricing
from models import DiningMode


@dataclass
class CartLine:
    product_id: int
    name: str
    price: int
    quantity: int

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


class Cart:
    def __init__(self):
        self._lines = OrderedDict()

    def __len__(self):
        return len(self._lines)

    def __contains__(self, product_id):
        return product_id in self._lines

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self._lines.values())

    def add(self, product, quantity: int = 1) -> CartLine:
        """Add ``quantity`` of a product (anything with id, name and price)."""
        if quantity <= 0:
            raise ValueError("Quantity must be a positive integer")
        line = self._lines.get(product.id)
        if line:
            line.quantity += quantity
        else:
            line = CartLine(product_id=product.id, name=product.name, price=product.price, quantity=quantity)
            self._lines[product.id] = line
        return line

    def set_quantity(self, product_id: int, quantity: int) -> Optional[CartLine]:
        if product_id not in self._lines:
            raise KeyError(product_id)
        if quantity <= 0:
            self.remove(product_id)
            return None
        line = self._lines[product_id]
        line.quantity = quantity
        return line

    def remove(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def preview(self, dining_mode=DiningMode.DINE_IN) -> pricing.OrderTotals:
        return pricing.compute_totals(
            [(line.price, line.quantity) for line in self._lines.values()],
            dining_mode,
        )

    def to_order_request(self, dining_mode=DiningMode.DINE_IN, customer_name=None,
                         payment_method=None, order_notes=None, table_no=None) -> dict:
        """Checkout payload in the shape ``POST /orders`` expects."""
        if not self._lines:
            raise ValueError("Cart is empty")
        if DiningMode(dining_mode) == DiningMode.DINE_IN and table_no in (None, ""):
            raise ValueError("Table number is required for dine-in orders")
        payload = {
            "items": [
                {"productId": line.product_id, "quantity": line.quantity, "price": line.price}
                for line in self._lines.values()
            ],
            "diningMode": DiningMode(dining_mode).value,
        }
        optional = {
            "customerName": customer_name,
            "paymentMethod": payment_method,
            "orderNotes": order_notes,
            "tableNo": table_no,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload
