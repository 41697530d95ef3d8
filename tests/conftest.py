"""
Pytest configuration file for Dispatch Station tests.

This file sets up the Python path so tests can import the flat modules
under 'src', and provides the order and inventory fixtures shared by the
state machine, service and station tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Run Qt headless when no display is available
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

# Add src directory to sys.path (for src modules)
src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from inventory_catalog import InventoryCatalog  # noqa: E402
from models import InventoryItem, Order, OrderItem, OrderStatus  # noqa: E402


def make_order(order_id: str = "ord-1", order_number: str = None, items=None,
               status: str = OrderStatus.PENDING, **kwargs) -> Order:
    """
    Helper to build an Order for tests.

    Args:
        order_id: Order id
        order_number: Display number (defaults to "#<order_id>")
        items: List of (sku, quantity) or (sku, quantity, barcode) tuples

    Returns:
        Order: PENDING order with the given items
    """
    if items is None:
        items = [("SKU-A", 2, "111"), ("SKU-B", 1)]
    order_items = []
    for entry in items:
        sku, quantity = entry[0], entry[1]
        barcode = entry[2] if len(entry) > 2 else None
        order_items.append(OrderItem(sku=sku, quantity=quantity, barcode=barcode))
    return Order(
        id=order_id,
        order_number=order_number or f"#{order_id}",
        status=status,
        items=order_items,
        **kwargs
    )


@pytest.fixture
def multi_item_order():
    """SKU-A x2 (barcode 111) and SKU-B x1 (no barcode): 3 units."""
    return make_order()


@pytest.fixture
def single_unit_order():
    return make_order("ord-2", items=[("SKU-C", 1, "333")])


@pytest.fixture
def inventory():
    """Catalog knowing the physical barcodes of SKU-A and SKU-C."""
    return InventoryCatalog([
        InventoryItem(sku="SKU-A", barcode="111", name="Lens cap 52mm",
                      image_urls=["https://img/a.jpg"], ebay_url="https://ebay/a"),
        InventoryItem(sku="SKU-B", name="Strap"),
        InventoryItem(sku="SKU-C", barcode="333", name="Tripod"),
        InventoryItem(sku="SKU-X", barcode="999", name="Not ordered"),
    ])
