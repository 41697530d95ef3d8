"""
Code Resolver - maps a scanned string to the order item it represents.

A product can be identified two ways at the bench:
- Its SKU label (internal code printed when the item was stocked in)
- Its manufacturer barcode (EAN/UPC), which the inventory knows the SKU for

Resolution never mutates anything; "not in this order" is an ordinary
answer that the state machine reports to the operator.
"""
from typing import Optional

from logger import get_logger
from models import Order, OrderItem

logger = get_logger(__name__)


def resolve(code: str, active_order: Optional[Order], inventory=None) -> Optional[OrderItem]:
    """
    Resolve a scanned code to an item of the active order.

    Step 1: exact match of code against the order's SKUs.
    Step 2: reverse lookup of code as a physical barcode in the inventory;
            the owning SKU is then looked up among the order's items.

    Args:
        code: Raw scanned string
        active_order: Order being verified (None resolves nothing)
        inventory: Object with find_by_barcode(code) -> InventoryItem | None
                   (an InventoryCatalog); None skips step 2

    Returns:
        The matching OrderItem, or None if the code does not belong to this order
    """
    if active_order is None or not code:
        return None

    item = active_order.find_item(code)
    if item is not None:
        logger.debug(f"Code {code} matched SKU directly")
        return item

    if inventory is None:
        return None

    inventory_item = inventory.find_by_barcode(code)
    if inventory_item is None:
        logger.debug(f"Code {code} unknown to inventory")
        return None

    item = active_order.find_item(inventory_item.sku)
    if item is None:
        logger.debug(f"Code {code} belongs to SKU {inventory_item.sku}, not in order {active_order.order_number}")
        return None

    logger.debug(f"Code {code} resolved via inventory to SKU {item.sku}")
    return item
