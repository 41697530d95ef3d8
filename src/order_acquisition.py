"""
Order Acquisition - turns a lookup result into the session's active order.

Used only while the station is LOCATING. A scanned code may match no
pending order, exactly one, or several (the same SKU ordered by different
buyers); several matches are offered to the operator and never
auto-selected. Selecting from the disambiguation list and selecting from
the full pending-orders list both end in begin_session().
"""
from dataclasses import replace
from typing import List, Sequence, Tuple

from exceptions import ValidationError
from logger import get_logger
from models import Order
from session_state import Phase, SessionState

logger = get_logger(__name__)

# Lookup outcomes
NO_MATCH = "NONE"
ONE_MATCH = "ONE"
MANY_MATCHES = "MANY"


def classify(orders: Sequence[Order]) -> Tuple[str, List[Order]]:
    """
    Classify an order lookup result.

    Returns:
        (outcome, orders) where outcome is NO_MATCH, ONE_MATCH or MANY_MATCHES
    """
    orders = list(orders)
    if not orders:
        return NO_MATCH, orders
    if len(orders) == 1:
        return ONE_MATCH, orders
    return MANY_MATCHES, orders


def enrich_order(order: Order, inventory=None) -> Order:
    """
    Fill missing item display fields from the inventory.

    Inventory images replace the order's own copy when the inventory has
    any; name, marketplace URL and seller are only filled when the order
    item lacks them. Quantities, SKUs and barcodes are never touched.

    Args:
        order: Order as returned by the order collaborator
        inventory: Object with find_by_sku(sku) -> InventoryItem | None

    Returns:
        A new Order with enriched items (the input is left unchanged)
    """
    if inventory is None:
        return order

    items = []
    for item in order.items:
        inventory_item = inventory.find_by_sku(item.sku)
        if inventory_item is None:
            items.append(item)
            continue
        items.append(replace(
            item,
            image_urls=list(inventory_item.image_urls) if inventory_item.image_urls else list(item.image_urls),
            ebay_url=item.ebay_url or inventory_item.ebay_url,
            ebay_seller_name=item.ebay_seller_name or inventory_item.ebay_seller_name,
            item_name=item.item_name or inventory_item.name,
        ))
    return order.with_items(items)


def begin_session(order: Order) -> SessionState:
    """
    Start a session for the selected order.

    An order needing a single unit skips item verification and goes
    straight to label capture; otherwise every SKU starts at zero.

    Raises:
        ValidationError: If the order has no items to verify
    """
    if not order.items:
        raise ValidationError(f"Order {order.order_number} has no items")

    total_required = order.total_required
    phase = Phase.CAPTURING_LABEL if total_required == 1 else Phase.VERIFYING_ITEMS

    logger.info(
        f"Order {order.order_number} acquired: {len(order.items)} SKU(s), "
        f"{total_required} unit(s), phase {phase}"
    )
    return SessionState(
        phase=phase,
        active_order=order,
        scanned_counts={item.sku: 0 for item in order.items},
    )
