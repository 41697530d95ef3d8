"""Tests for order, inventory and dispatch record parsing."""
import json
from datetime import datetime

import pytest

from exceptions import ValidationError
from models import DispatchRecord, InventoryItem, Order, OrderItem, OrderStatus


class TestOrderItem:
    def test_from_wire_dict(self):
        item = OrderItem.from_dict({
            'sku': ' LENS-50 ', 'quantity': '2', 'barcode': 4960999,
            'itemName': 'Lens 50mm', 'imageUrls': '["https://img/1.jpg"]',
        })
        assert item.sku == "LENS-50"
        assert item.quantity == 2
        assert item.barcode == "4960999"
        assert item.item_name == "Lens 50mm"
        assert item.image_urls == ["https://img/1.jpg"]
        assert item.has_barcode

    @pytest.mark.parametrize("raw", [None, "abc", 0, -3])
    def test_invalid_quantity_counts_as_one(self, raw):
        assert OrderItem.from_dict({'sku': 'A', 'quantity': raw}).quantity == 1

    def test_float_quantity_truncated(self):
        assert OrderItem.from_dict({'sku': 'A', 'quantity': '3.0'}).quantity == 3

    def test_missing_sku_rejected(self):
        with pytest.raises(ValidationError):
            OrderItem.from_dict({'quantity': 1})

    def test_item_without_barcode(self):
        item = OrderItem.from_dict({'sku': 'A'})
        assert item.barcode is None
        assert not item.has_barcode
        assert 'barcode' not in item.to_dict()


class TestOrder:
    def test_items_as_json_string(self):
        order = Order.from_dict({
            'id': 17,
            'orderNumber': '12-09871-55120',
            'status': 'PENDING',
            'items': json.dumps([{'sku': 'A', 'quantity': 2}, {'sku': 'B', 'quantity': 1}]),
        })
        assert order.id == "17"
        assert order.order_number == "12-09871-55120"
        assert order.skus == ["A", "B"]
        assert order.total_required == 3

    def test_snake_case_local_file_form(self):
        order = Order.from_dict({
            'order_id': 'ord-1', 'order_number': '1001',
            'items': [{'sku': 'A'}], 'shipping_label': 'LBL-1',
            'dispatched_at': '2026-03-02T09:15:02Z',
        })
        assert order.id == "ord-1"
        assert order.shipping_label == "LBL-1"
        assert order.dispatched_at.year == 2026

    def test_order_number_defaults_to_id(self):
        assert Order.from_dict({'id': 'ord-1', 'items': []}).order_number == "ord-1"

    def test_duplicate_skus_merged(self):
        order = Order.from_dict({'id': 'o', 'items': [
            {'sku': 'A', 'quantity': 1}, {'sku': 'B'}, {'sku': 'A', 'quantity': 2},
        ]})
        assert order.skus == ["A", "B"]
        assert order.find_item("A").quantity == 3

    def test_missing_id_rejected(self):
        with pytest.raises(ValidationError):
            Order.from_dict({'items': []})

    def test_malformed_items_rejected(self):
        with pytest.raises(ValidationError, match="Invalid JSON"):
            Order.from_dict({'id': 'o', 'items': '[{"sku": '})

    def test_items_not_a_list_rejected(self):
        with pytest.raises(ValidationError):
            Order.from_dict({'id': 'o', 'items': {'sku': 'A'}})

    def test_non_object_items_rejected(self):
        with pytest.raises(ValidationError, match="order item"):
            Order.from_dict({'id': 'o1', 'items': '[1]'})

    def test_non_object_order_rejected(self):
        with pytest.raises(ValidationError, match="Expected an object for order"):
            Order.from_dict(["o1"])

    def test_to_dict_round_trip(self):
        order = Order(id='o', order_number='1', items=[OrderItem('A', 2, '111')],
                      status=OrderStatus.DISPATCHED, dispatched_at=datetime(2026, 3, 2, 9, 15))
        again = Order.from_dict(order.to_dict())
        assert again == order

    def test_with_items_leaves_original(self):
        order = Order(id='o', order_number='1', items=[OrderItem('A')])
        other = order.with_items([OrderItem('B')])
        assert order.skus == ["A"]
        assert other.skus == ["B"]


class TestInventoryItem:
    def test_aliases(self):
        item = InventoryItem.from_dict({'SKU': 'A', 'Barcode': '111', 'title': 'Cap', 'images': ['x']})
        assert (item.sku, item.barcode, item.name, item.image_urls) == ('A', '111', 'Cap', ['x'])

    def test_missing_sku_rejected(self):
        with pytest.raises(ValidationError):
            InventoryItem.from_dict({'barcode': '111'})

    @pytest.mark.parametrize("raw, expected", [
        ('https://img/a.jpg', ['https://img/a.jpg']),
        ('https://img/a.jpg, https://img/b.jpg', ['https://img/a.jpg', 'https://img/b.jpg']),
        ('["https://img/a.jpg"]', ['https://img/a.jpg']),
        ('[broken', []),
        (3.5, []),
    ])
    def test_image_urls_never_reject_the_row(self, raw, expected):
        item = InventoryItem.from_dict({'sku': 'A', 'barcode': '4960999', 'imageUrls': raw})
        assert item.barcode == '4960999'
        assert item.image_urls == expected


class TestDispatchRecord:
    def test_round_trip(self):
        record = DispatchRecord(
            order=Order(id='o', order_number='1', items=[OrderItem('A')]),
            dispatched_at=datetime(2026, 3, 2, 9, 15, 2),
            operator_id='u-4',
            scanned_codes=['111'],
            station_id='STATION-1',
        )
        data = record.to_dict()
        assert data['dispatched_at'] == '2026-03-02T09:15:02'
        assert data['order']['orderNumber'] == '1'
        assert DispatchRecord.from_dict(data) == record

    def test_missing_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            DispatchRecord.from_dict({'order': {'id': 'o', 'items': []}})
