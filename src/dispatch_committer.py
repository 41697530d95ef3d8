"""
Dispatch Committer - the persistence boundary of the dispatch workflow.

Two independently failable calls, always in this order for an order:
1. Save the shipping label (must succeed before the order can be confirmed)
2. Commit the dispatch (the server re-validates and updates inventory)

Collaborator failures are converted into failure events carrying the
server's message verbatim; nothing raised by the order service escapes
this class. After a successful commit the committer appends a Dispatch
Record to the local history and emits pending_orders_invalidated so any
view showing pending orders refreshes itself.
"""
from datetime import datetime
from typing import Optional, Sequence

from PySide6.QtCore import QObject, Signal

from dispatch_history import DispatchHistory
from dispatch_logic import (
    DispatchCommitted,
    DispatchFailed,
    LabelSaveFailed,
    LabelSaved,
)
from exceptions import DispatchStationError
from logger import get_logger
from models import DispatchRecord, Order
from order_service import OrderService

logger = get_logger(__name__)


class DispatchCommitter(QObject):
    """
    Runs the label-save and dispatch-commit calls for a station.

    Attributes:
        pending_orders_invalidated (Signal): Emitted after a successful
            commit; pending-order views must be refetched
        dispatch_recorded (Signal): Emitted with DispatchRecord.to_dict()
            after the record is appended to history
        order_service (OrderService): Order collaborator
        history (DispatchHistory): Local dispatch history
        station_id (str | None): Written into every Dispatch Record
    """
    pending_orders_invalidated = Signal()
    dispatch_recorded = Signal(dict)

    def __init__(self, order_service: OrderService, history: DispatchHistory,
                 station_id: Optional[str] = None):
        super().__init__()
        self.order_service = order_service
        self.history = history
        self.station_id = station_id

    def save_shipping_label(self, order_id: str, label: str):
        """
        Persist the scanned label against the order.

        Returns:
            LabelSaved on success, LabelSaveFailed otherwise
        """
        try:
            order = self.order_service.save_shipping_label(order_id, label)
        except DispatchStationError as e:
            logger.error(f"Label save failed for order {order_id}: {e}")
            return LabelSaveFailed(order_id, str(e))
        except Exception as e:
            logger.error(f"Unexpected error saving label for order {order_id}: {e}", exc_info=True)
            return LabelSaveFailed(order_id, f"Unexpected error while saving the label: {e}")

        logger.info(f"Label {label} saved for order {order_id}")
        return LabelSaved(order_id, label, order)

    def commit_dispatch(self, order_id: str, scanned_codes: Sequence[str], operator_id: str):
        """
        Finalize the dispatch on the order server.

        Returns:
            DispatchCommitted on success, DispatchFailed otherwise
        """
        try:
            order = self.order_service.commit_dispatch(order_id, list(scanned_codes), operator_id)
        except DispatchStationError as e:
            logger.error(f"Dispatch commit failed for order {order_id}: {e}")
            return DispatchFailed(order_id, str(e))
        except Exception as e:
            logger.error(f"Unexpected error committing order {order_id}: {e}", exc_info=True)
            return DispatchFailed(order_id, f"Unexpected error while dispatching: {e}")

        logger.info(f"Order {order_id} committed as dispatched by {operator_id}")
        return DispatchCommitted(order_id, operator_id, order)

    def record_dispatch(self, order: Order, scanned_codes: Sequence[str],
                        operator_id: Optional[str]) -> DispatchRecord:
        """Append the Dispatch Record for a committed order."""
        record = DispatchRecord(
            order=order,
            dispatched_at=order.dispatched_at or datetime.now(),
            operator_id=operator_id,
            scanned_codes=list(scanned_codes),
            station_id=self.station_id,
        )
        self.history.append(record)
        self.dispatch_recorded.emit(record.to_dict())
        return record

    def invalidate_pending_orders(self):
        logger.debug("Pending order views invalidated")
        self.pending_orders_invalidated.emit()
