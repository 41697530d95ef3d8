"""
Order, inventory and dispatch-history data structures.

The order server speaks camelCase JSON and stores an order's item list as a
JSON-encoded string, so the from_dict() constructors here accept both the
wire form and the snake_case form used by local order files:

    {"id": "ord-17", "orderNumber": "12-09871-55120", "status": "PENDING",
     "items": "[{\"sku\": \"LENS-50\", \"barcode\": \"4960999\", \"quantity\": 2}]"}
"""
import json
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from exceptions import ValidationError
from logger import get_logger

logger = get_logger(__name__)


class OrderStatus:
    """Order status values used by the order server."""
    PENDING = "PENDING"
    PACKED = "PACKED"
    DISPATCHED = "DISPATCHED"


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first non-empty value among keys (camelCase or snake_case)."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return default


def _parse_json_list(value: Any, what: str) -> List[Any]:
    """Accept a list or a JSON-encoded list; None/empty means no entries."""
    if value in (None, ''):
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {what}: {e}")
    if not isinstance(value, list):
        raise ValidationError(f"Expected a list for {what}, got {type(value).__name__}")
    return value


def _parse_image_urls(value: Any) -> List[str]:
    """
    Parse an image URL field.

    The server sends a JSON array; spreadsheet exports often hold a single
    URL or a comma-separated list instead. A value that cannot be read is
    dropped with a warning, it never rejects the row it belongs to.
    """
    if value in (None, ''):
        return []
    if isinstance(value, list):
        return [str(url).strip() for url in value if str(url).strip()]
    if not isinstance(value, str):
        logger.warning(f"Ignoring image URLs of type {type(value).__name__}")
        return []

    text = value.strip()
    if text.startswith('['):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed image URL list: {e}")
            return []
        return _parse_image_urls(parsed) if isinstance(parsed, list) else []
    return [url.strip() for url in text.split(',') if url.strip()]


def _require_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(f"Expected an object for {what}, got {type(data).__name__}")
    return data


def _parse_quantity(value: Any, sku: str) -> int:
    """
    Parse an item quantity.

    Exports hand quantities over as int, float or string ("2", "2.0").
    Anything unparseable or below 1 counts as a single unit.
    """
    try:
        quantity = int(float(value))
    except (ValueError, TypeError):
        logger.warning(f"Invalid quantity {value!r} for SKU {sku}, using 1")
        return 1
    if quantity < 1:
        logger.warning(f"Non-positive quantity {quantity} for SKU {sku}, using 1")
        return 1
    return quantity


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Unparseable timestamp: {value!r}")
        return None


@dataclass
class OrderItem:
    """
    One required line of an order.

    Attributes:
        sku: Stock keeping unit, unique within an order
        quantity: Units required (>= 1); fixed once the order is acquired
        barcode: Physical barcode; None when the unit type has none
        item_name, image_urls, ebay_url, ebay_seller_name: display only
    """
    sku: str
    quantity: int = 1
    barcode: Optional[str] = None
    item_name: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    ebay_url: Optional[str] = None
    ebay_seller_name: Optional[str] = None

    @property
    def has_barcode(self) -> bool:
        return bool(self.barcode)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderItem':
        data = _require_mapping(data, "order item")
        sku = _pick(data, 'sku', 'SKU')
        if sku is None:
            raise ValidationError(f"Order item without SKU: {data}")
        sku = str(sku).strip()

        barcode = _pick(data, 'barcode')
        return cls(
            sku=sku,
            quantity=_parse_quantity(_pick(data, 'quantity', 'Quantity', default=1), sku),
            barcode=str(barcode).strip() if barcode is not None else None,
            item_name=_pick(data, 'itemName', 'item_name', 'product_name', 'name'),
            image_urls=_parse_image_urls(_pick(data, 'imageUrls', 'image_urls')),
            ebay_url=_pick(data, 'ebayUrl', 'ebay_url'),
            ebay_seller_name=_pick(data, 'ebaySellerName', 'ebay_seller_name'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire (camelCase) form, omitting empty display fields."""
        data = {'sku': self.sku, 'quantity': self.quantity}
        if self.barcode:
            data['barcode'] = self.barcode
        if self.item_name:
            data['itemName'] = self.item_name
        if self.image_urls:
            data['imageUrls'] = list(self.image_urls)
        if self.ebay_url:
            data['ebayUrl'] = self.ebay_url
        if self.ebay_seller_name:
            data['ebaySellerName'] = self.ebay_seller_name
        return data


@dataclass
class Order:
    """
    One shipment to fulfill.

    status becomes DISPATCHED only through a successful dispatch commit on
    the order server; the station never sets it itself.
    """
    id: str
    order_number: str
    status: str = OrderStatus.PENDING
    items: List[OrderItem] = field(default_factory=list)
    shipping_label: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    dispatched_by: Optional[str] = None
    customer_name: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def total_required(self) -> int:
        """Total units across all items."""
        return sum(item.quantity for item in self.items)

    @property
    def skus(self) -> List[str]:
        return [item.sku for item in self.items]

    def find_item(self, sku: str) -> Optional[OrderItem]:
        for item in self.items:
            if item.sku == sku:
                return item
        return None

    def with_items(self, items: List[OrderItem]) -> 'Order':
        return replace(self, items=list(items))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        """
        Build an Order from a server or local-file payload.

        Raises:
            ValidationError: If the id is missing or items are malformed
        """
        data = _require_mapping(data, "order")
        order_id = _pick(data, 'id', 'order_id')
        if order_id is None:
            raise ValidationError(f"Order without id: {data}")
        order_id = str(order_id)

        raw_items = _parse_json_list(data.get('items'), f"items of order {order_id}")

        # SKUs must be unique within an order; exports occasionally split one
        # SKU over two rows, which is the same requirement summed
        items: List[OrderItem] = []
        by_sku: Dict[str, int] = {}
        for raw_item in raw_items:
            item = OrderItem.from_dict(raw_item)
            if item.sku in by_sku:
                logger.warning(f"Order {order_id}: duplicate SKU {item.sku}, merging quantities")
                existing = items[by_sku[item.sku]]
                items[by_sku[item.sku]] = replace(existing, quantity=existing.quantity + item.quantity)
                continue
            by_sku[item.sku] = len(items)
            items.append(item)

        return cls(
            id=order_id,
            order_number=str(_pick(data, 'orderNumber', 'order_number', default=order_id)),
            status=str(_pick(data, 'status', default=OrderStatus.PENDING)),
            items=items,
            shipping_label=_pick(data, 'shippingLabel', 'shipping_label'),
            dispatched_at=_parse_datetime(_pick(data, 'dispatchedAt', 'dispatched_at')),
            dispatched_by=_pick(data, 'dispatchedBy', 'dispatched_by'),
            customer_name=_pick(data, 'customerName', 'customer_name'),
            address=_pick(data, 'address', 'shippingAddress', 'shipping_address'),
            created_at=_parse_datetime(_pick(data, 'createdAt', 'created_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire (camelCase) form with items as a plain list."""
        return {
            'id': self.id,
            'orderNumber': self.order_number,
            'status': self.status,
            'items': [item.to_dict() for item in self.items],
            'shippingLabel': self.shipping_label,
            'dispatchedAt': self.dispatched_at.isoformat() if self.dispatched_at else None,
            'dispatchedBy': self.dispatched_by,
            'customerName': self.customer_name,
            'address': self.address,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class InventoryItem:
    """Catalog row used for barcode -> SKU lookup and display enrichment."""
    sku: str
    barcode: Optional[str] = None
    name: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    ebay_url: Optional[str] = None
    ebay_seller_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InventoryItem':
        data = _require_mapping(data, "inventory row")
        sku = _pick(data, 'sku', 'SKU')
        if sku is None:
            raise ValidationError(f"Inventory row without SKU: {data}")
        barcode = _pick(data, 'barcode', 'Barcode')
        return cls(
            sku=str(sku).strip(),
            barcode=str(barcode).strip() if barcode is not None else None,
            name=_pick(data, 'name', 'title', 'itemName', 'Name'),
            image_urls=_parse_image_urls(_pick(data, 'imageUrls', 'images', 'image_urls')),
            ebay_url=_pick(data, 'ebayUrl', 'ebay_url'),
            ebay_seller_name=_pick(data, 'ebaySellerName', 'ebay_seller_name'),
        )


@dataclass
class DispatchRecord:
    """
    Local, append-only confirmation entry written after a successful commit.

    Not authoritative: the server's Order is. The record exists so the
    operator can see what this station dispatched during the shift.

    Attributes:
        order: Order snapshot as returned by the commit
        dispatched_at: Local time the commit succeeded
        operator_id: Operator who confirmed the dispatch
        scanned_codes: Codes consumed while verifying the order
        station_id: Station that performed the dispatch
    """
    order: Order
    dispatched_at: datetime
    operator_id: Optional[str] = None
    scanned_codes: List[str] = field(default_factory=list)
    station_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['order'] = self.order.to_dict()
        data['dispatched_at'] = self.dispatched_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DispatchRecord':
        dispatched_at = _parse_datetime(data.get('dispatched_at'))
        if dispatched_at is None:
            raise ValidationError(f"Dispatch record without timestamp: {data}")
        return cls(
            order=Order.from_dict(data['order']),
            dispatched_at=dispatched_at,
            operator_id=data.get('operator_id'),
            scanned_codes=list(data.get('scanned_codes', [])),
            station_id=data.get('station_id'),
        )
