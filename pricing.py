"""
Cart and order arithmetic plus the order status workflow.

Everything here is pure: callers load documents, pass plain values in and
persist what comes back.
"""
from typing import Dict, Iterable, List, Optional

PROCESSING = "Processing"
SHIPPED = "Shipped"
DELIVERED = "Delivered"
CANCELLED = "Cancelled"
RETURNED = "Returned"

ORDER_STATUSES = (PROCESSING, SHIPPED, DELIVERED, CANCELLED, RETURNED)

# Delivered, Cancelled and Returned accept nothing further
TRANSITIONS: Dict[str, tuple] = {
    PROCESSING: (SHIPPED, DELIVERED, CANCELLED, RETURNED),
    SHIPPED: (DELIVERED, CANCELLED, RETURNED),
    DELIVERED: (),
    CANCELLED: (),
    RETURNED: (),
}


class InvalidTransition(ValueError):
    pass


def money(value: float) -> float:
    return round(float(value), 2)


def derive_price(original_price: float, discount: float) -> float:
    """Selling price from the list price and a percentage discount."""
    return money(original_price * (1 - discount / 100))


def line_total(price: float, quantity: int) -> float:
    return price * quantity


def cart_totals(items: Iterable[dict]) -> dict:
    total_items = 0
    total_price = 0.0
    for item in items:
        total_items += int(item["quantity"])
        total_price += line_total(float(item["price"]), int(item["quantity"]))
    return {"totalItems": total_items, "totalPrice": money(total_price)}


def find_line(items: List[dict], product: str, size: Optional[str], color: Optional[str]) -> Optional[dict]:
    for item in items:
        if item["product"] == product and item.get("size") == size and item.get("color") == color:
            return item
    return None


def order_prices(items_price: float, tax_rate: float, shipping_fee: float, free_shipping_threshold: float) -> dict:
    """
    Freeze the price breakdown of a new order.

    tax_rate is a percentage. Shipping is free only when the items price is
    strictly above the threshold.
    """
    items_price = money(items_price)
    tax_price = money(items_price * tax_rate / 100)
    shipping_price = 0.0 if items_price > free_shipping_threshold else money(shipping_fee)
    return {
        "itemsPrice": items_price,
        "taxPrice": tax_price,
        "shippingPrice": shipping_price,
        "totalPrice": money(items_price + tax_price + shipping_price),
    }


def check_transition(current: str, new: str) -> None:
    if new not in ORDER_STATUSES:
        raise InvalidTransition(f"Invalid order status: {new}")
    if current == DELIVERED:
        raise InvalidTransition("You have already delivered this order")
    if new not in TRANSITIONS.get(current, ()):
        raise InvalidTransition(f"Cannot change order status from {current} to {new}")


def decrement_stock(product: dict, quantity: int, size: Optional[str] = None) -> Optional[dict]:
    """
    Stock fields after shipping `quantity` units, or None when there is not
    enough stock to take them (the shipment then leaves the product alone).
    """
    stock = int(product.get("stock", 0))
    if stock < quantity:
        return None
    update = {"stock": stock - quantity}
    sizes = product.get("sizes") or []
    if size and any(s.get("size") == size for s in sizes):
        new_sizes = []
        for s in sizes:
            s = dict(s)
            if s.get("size") == size:
                if int(s.get("stock", 0)) < quantity:
                    return None
                s["stock"] = int(s["stock"]) - quantity
            new_sizes.append(s)
        update["sizes"] = new_sizes
    return update
