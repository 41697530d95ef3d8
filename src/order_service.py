"""
Order Service - the order collaborator used by the dispatch station.

The station never owns order data. It asks the order service for pending
orders, saves the shipping label against an order and finally commits the
dispatch, which is where the server re-validates the scan and updates
inventory.

Two implementations:
- HttpOrderService: the warehouse order server's REST API
- JsonOrderService: a JSON order file, for offline stations and tests;
  applies the same checks the server does before accepting a commit
"""
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx

from exceptions import NetworkError, OrderNotFoundError, OrderServiceError, ValidationError
from json_files import atomic_write_json, read_json
from logger import get_logger
from models import Order, OrderStatus

logger = get_logger(__name__)


class OrderService:
    """
    Contract of the order collaborator.

    Every method raises NetworkError when the service cannot be reached
    and OrderServiceError (or OrderNotFoundError) when it refuses the
    request; the message is meant to be shown to the operator verbatim.
    """

    def find_orders_by_code(self, code: str) -> List[Order]:
        """Pending orders having an item whose SKU or barcode equals code."""
        raise NotImplementedError

    def list_pending_orders(self) -> List[Order]:
        raise NotImplementedError

    def save_shipping_label(self, order_id: str, label: str) -> Order:
        raise NotImplementedError

    def commit_dispatch(self, order_id: str, scanned_codes: Sequence[str], operator_id: str) -> Order:
        """Finalize the dispatch; the service re-validates quantities."""
        raise NotImplementedError

    def delete_pending_orders(self) -> int:
        """Admin operation: remove every pending order, returning how many."""
        raise NotImplementedError


def _parse_orders(payload: Any) -> List[Order]:
    if not isinstance(payload, list):
        raise ValidationError(f"Expected a list of orders, got {type(payload).__name__}")
    return [Order.from_dict(raw) for raw in payload]


class HttpOrderService(OrderService):
    """
    REST client for the warehouse order server.

    Endpoints:
        POST   /api/orders/scan                  {code, status}    -> {order} | {multiple, orders}
        GET    /api/orders?status=PENDING                          -> [order]
        PATCH  /api/orders/{id}/shipping-label   {label}           -> order
        PATCH  /api/orders/{id}/dispatch         {barcodes, userId} -> order
        DELETE /api/orders/bulk?status=PENDING                     -> {deleted}
        GET    /api/inventory                                      -> [inventory item]

    Error responses carry {"error": "..."}.

    Attributes:
        base_url (str): Server root, e.g. "http://192.168.1.20:5000"
        timeout (float): Per-request timeout in seconds
    """

    def __init__(self, base_url: str, timeout: float = 10.0,
                 headers: Optional[Dict[str, str]] = None,
                 client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout, headers=headers)
        logger.info(f"HttpOrderService initialized for {self.base_url}")

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Perform a request and return the decoded JSON body.

        Raises:
            NetworkError: On timeouts and transport failures
            OrderNotFoundError: On 404
            OrderServiceError: On any other error status, protocol failure or undecodable body
        """
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise NetworkError(f"Order server did not answer within {self.timeout}s")
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise NetworkError(f"Cannot reach order server at {self.base_url}: {e}")
        except httpx.HTTPError as e:
            # TooManyRedirects, DecodingError
            logger.error(f"{method} {path} failed: {e}")
            raise OrderServiceError(f"Invalid response from order server: {e}")

        if response.is_error:
            message = self._error_message(response)
            logger.warning(f"{method} {path} -> {response.status_code}: {message}")
            if response.status_code == 404:
                raise OrderNotFoundError(message, status_code=404)
            raise OrderServiceError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise OrderServiceError(f"Invalid response from order server: {e}", status_code=response.status_code)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get('error') or body.get('message')
            if message:
                return str(message)
        return response.text or f"Order server error {response.status_code}"

    def find_orders_by_code(self, code: str) -> List[Order]:
        try:
            data = self._request('POST', '/api/orders/scan', json={'code': code, 'status': OrderStatus.PENDING})
        except OrderNotFoundError:
            return []

        if isinstance(data, dict) and data.get('multiple'):
            return _parse_orders(data.get('orders', []))
        if isinstance(data, dict) and 'order' in data:
            return [Order.from_dict(data['order'])] if data['order'] else []
        if isinstance(data, list):
            return _parse_orders(data)
        return [Order.from_dict(data)]

    def list_pending_orders(self) -> List[Order]:
        return _parse_orders(self._request('GET', '/api/orders', params={'status': OrderStatus.PENDING}))

    def save_shipping_label(self, order_id: str, label: str) -> Order:
        return Order.from_dict(self._request('PATCH', f'/api/orders/{order_id}/shipping-label', json={'label': label}))

    def commit_dispatch(self, order_id: str, scanned_codes: Sequence[str], operator_id: str) -> Order:
        payload = {'barcodes': list(scanned_codes), 'userId': operator_id}
        return Order.from_dict(self._request('PATCH', f'/api/orders/{order_id}/dispatch', json=payload))

    def delete_pending_orders(self) -> int:
        data = self._request('DELETE', '/api/orders/bulk', params={'status': OrderStatus.PENDING})
        return int(data.get('deleted', 0)) if isinstance(data, dict) else 0

    def fetch_inventory(self) -> List[Dict[str, Any]]:
        """Raw inventory records for InventoryCatalog.from_records()."""
        data = self._request('GET', '/api/inventory')
        if not isinstance(data, list):
            raise ValidationError("Inventory response is not a list")
        return data


class JsonOrderService(OrderService):
    """
    Order service backed by a JSON order file.

    Accepts either {"orders": [...]} or a bare list. The file is re-read
    before every operation, so two stations sharing it see each other's
    dispatches, and a commit for an order another station already
    dispatched is refused.

    Attributes:
        orders_path (Path): JSON order file
    """

    def __init__(self, orders_path: Path):
        self.orders_path = Path(orders_path)
        if not self.orders_path.exists():
            raise ValidationError(f"Orders file not found: {self.orders_path}")
        logger.info(f"JsonOrderService initialized with {self.orders_path}")

    def _load(self) -> List[Order]:
        try:
            data = read_json(self.orders_path)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot read orders file: {e}")
            raise NetworkError(f"Cannot read orders file {self.orders_path}: {e}")

        raw_orders = data.get('orders', []) if isinstance(data, dict) else data
        return _parse_orders(raw_orders)

    def _save(self, orders: List[Order]):
        data = {
            'timestamp': datetime.now().isoformat(),
            'orders': [order.to_dict() for order in orders],
        }
        try:
            atomic_write_json(self.orders_path, data, prefix='.tmp_orders_')
        except Exception as e:
            logger.error(f"Failed to save orders file: {e}", exc_info=True)
            raise NetworkError(f"Cannot write orders file {self.orders_path}: {e}")

    def _get_pending(self, orders: List[Order], order_id: str) -> Order:
        for order in orders:
            if order.id == order_id:
                if order.status != OrderStatus.PENDING:
                    raise OrderServiceError(f"Order {order.order_number} is already {order.status}", status_code=409)
                return order
        raise OrderNotFoundError(f"Order {order_id} not found", status_code=404)

    def find_orders_by_code(self, code: str) -> List[Order]:
        return [
            order for order in self.list_pending_orders()
            if any(item.sku == code or (item.barcode and item.barcode == code) for item in order.items)
        ]

    def list_pending_orders(self) -> List[Order]:
        return [order for order in self._load() if order.status == OrderStatus.PENDING]

    def save_shipping_label(self, order_id: str, label: str) -> Order:
        if not label:
            raise OrderServiceError("Shipping label is empty", status_code=400)

        orders = self._load()
        order = self._get_pending(orders, order_id)
        order.shipping_label = label
        self._save(orders)
        logger.info(f"Shipping label {label} saved for order {order.order_number}")
        return order

    def commit_dispatch(self, order_id: str, scanned_codes: Sequence[str], operator_id: str) -> Order:
        """
        Mark the order DISPATCHED after re-checking the scan.

        Refused when the label is missing, or when the number of codes does
        not match the units required. A single-unit order is dispatched
        without item scans, so it may come with no codes at all.
        """
        orders = self._load()
        order = self._get_pending(orders, order_id)

        if not order.shipping_label:
            raise OrderServiceError(f"Order {order.order_number} has no shipping label", status_code=409)

        codes = list(scanned_codes)
        total_required = order.total_required
        if codes or total_required != 1:
            if len(codes) != total_required:
                raise OrderServiceError(
                    f"Order {order.order_number}: {len(codes)} item(s) scanned, {total_required} required",
                    status_code=422,
                )

        order.status = OrderStatus.DISPATCHED
        order.dispatched_at = datetime.now()
        order.dispatched_by = operator_id
        self._save(orders)
        logger.info(f"Order {order.order_number} dispatched by {operator_id}")
        return order

    def delete_pending_orders(self) -> int:
        orders = self._load()
        remaining = [order for order in orders if order.status != OrderStatus.PENDING]
        deleted = len(orders) - len(remaining)
        self._save(remaining)
        logger.warning(f"Deleted {deleted} pending order(s)")
        return deleted
