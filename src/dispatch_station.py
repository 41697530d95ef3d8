"""
Dispatch Station - drives one scanning station through the dispatch workflow.

The station owns the current SessionState and is the only place where
the pure state machine meets the outside world:

    operator action ──> event ──> transition() ──> effects
                                        ^              │
                                        └── response ──┘  (order lookup, label save, commit)

Each action is processed to completion, including any server round trips,
before the next one is accepted, so scans can never interleave. Views
subscribe to the Qt signals; every action also returns the Notice effects
it produced, for callers without an event loop (console runner, tests).
"""
import logging
from typing import Any, List, Optional

from PySide6.QtCore import QObject, Signal

from dispatch_committer import DispatchCommitter
from dispatch_history import DispatchHistory
from dispatch_logic import (
    Cancel,
    CodeScanned,
    CommitDispatch,
    ConfirmRequested,
    InvalidatePendingOrders,
    LookupOrders,
    ManualConfirm,
    Notice,
    OfferOrderChoice,
    OrderChosen,
    OrderLookupFailed,
    OrdersFound,
    RecordDispatch,
    SaveShippingLabel,
    scanner_prompt,
    transition,
)
from exceptions import DispatchStationError, ValidationError
from inventory_catalog import InventoryCatalog
from logger import get_logger, set_operator_context, set_order_context, set_station_context
from models import DispatchRecord, Order
from order_service import HttpOrderService, JsonOrderService, OrderService
from session_state import SessionState
from station_config import BACKEND_LOCAL, StationConfig

logger = get_logger(__name__)


class DispatchStation(QObject):
    """
    Controller of a single scanning station.

    Attributes:
        notice (Signal): (level, status, message) for every operator message
        phase_changed (Signal): New phase name
        order_choice_offered (Signal): List of order dicts to choose from
        order_dispatched (Signal): DispatchRecord.to_dict() after a commit
        pending_orders_invalidated (Signal): Pending-order views are stale
        order_service (OrderService): Order collaborator
        committer (DispatchCommitter): Label save / commit boundary
        inventory (InventoryCatalog | None): Inventory snapshot
        operator_id (str | None): Operator confirming dispatches
    """
    notice = Signal(str, str, str)
    phase_changed = Signal(str)
    order_choice_offered = Signal(list)
    order_dispatched = Signal(dict)
    pending_orders_invalidated = Signal()

    def __init__(self, order_service: OrderService, committer: DispatchCommitter,
                 inventory: Optional[InventoryCatalog] = None,
                 operator_id: Optional[str] = None, station_id: Optional[str] = None):
        super().__init__()
        self.order_service = order_service
        self.committer = committer
        self.inventory = inventory
        self.station_id = station_id
        self.operator_id = None
        self._state = SessionState.initial()

        self.committer.pending_orders_invalidated.connect(self.pending_orders_invalidated.emit)

        set_station_context(station_id)
        self.set_operator(operator_id)
        logger.info(f"DispatchStation {station_id} ready")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> str:
        return self._state.phase

    @property
    def active_order(self) -> Optional[Order]:
        return self._state.active_order

    @property
    def candidates(self) -> List[Order]:
        """Orders awaiting the operator's choice after an ambiguous scan."""
        return list(self._state.candidates)

    @property
    def prompt(self) -> str:
        return scanner_prompt(self._state)

    def progress(self) -> float:
        """Share of required units scanned for the active order, 0-100."""
        total = self._state.total_required
        if total == 0:
            return 0.0
        return self._state.total_scanned / total * 100

    def set_operator(self, operator_id: Optional[str]):
        self.operator_id = operator_id or None
        set_operator_context(self.operator_id)

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def handle_scan(self, code: str) -> List[Notice]:
        """
        Process one code from the scanner.

        Surrounding whitespace (scanner suffixes) is stripped; empty scans
        are ignored.
        """
        code = (code or '').strip()
        if not code:
            return []
        logger.debug(f"Scan received in {self._state.phase}: {code}")
        return self._dispatch(CodeScanned(code))

    def confirm_item_manually(self, sku: str) -> List[Notice]:
        """Confirm one unit of an item that has no physical barcode."""
        return self._dispatch(ManualConfirm((sku or '').strip()))

    def choose_order(self, order: Order) -> List[Notice]:
        """Acquire an order picked from the disambiguation or pending list."""
        return self._dispatch(OrderChosen(order))

    def choose_candidate(self, index: int) -> List[Notice]:
        """Acquire the index-th order of the current disambiguation list."""
        candidates = self._state.candidates
        if not 0 <= index < len(candidates):
            return self._emit_notices([Notice('error', "INVALID_CHOICE", f"No order #{index + 1} to choose")])
        return self.choose_order(candidates[index])

    def confirm_dispatch(self, operator_id: Optional[str] = None) -> List[Notice]:
        """Commit the dispatch of the active order (CONFIRMING only)."""
        return self._dispatch(ConfirmRequested(operator_id or self.operator_id))

    def cancel(self) -> List[Notice]:
        """Abandon the active order without persisting anything."""
        return self._dispatch(Cancel())

    def pending_orders(self) -> List[Order]:
        """
        All orders awaiting fulfillment, for direct selection.

        A failed fetch is reported as a notice and yields an empty list.
        """
        try:
            return self.order_service.list_pending_orders()
        except DispatchStationError as e:
            logger.error(f"Failed to list pending orders: {e}")
            self._emit_notices([Notice('error', "PENDING_ORDERS_FAILED", str(e))])
            return []
        except Exception as e:
            logger.error(f"Unexpected error listing pending orders: {e}", exc_info=True)
            self._emit_notices([Notice('error', "PENDING_ORDERS_FAILED", f"Cannot list pending orders: {e}")])
            return []

    def delete_pending_orders(self) -> Optional[int]:
        """
        Admin operation: delete every pending order.

        Only available while no order is active. Returns the number deleted,
        or None when refused or failed.
        """
        if not self._state.is_idle:
            self._emit_notices([Notice('error', "ORDER_ALREADY_ACTIVE", "Finish or cancel the current order first")])
            return None
        try:
            deleted = self.order_service.delete_pending_orders()
        except DispatchStationError as e:
            logger.error(f"Bulk delete of pending orders failed: {e}")
            self._emit_notices([Notice('error', "DELETE_FAILED", str(e))])
            return None
        except Exception as e:
            logger.error(f"Unexpected error deleting pending orders: {e}", exc_info=True)
            self._emit_notices([Notice('error', "DELETE_FAILED", f"Bulk delete failed: {e}")])
            return None

        self._emit_notices([Notice('success', "ORDERS_DELETED", f"Deleted {deleted} order(s)", {'deleted': deleted})])
        self.committer.invalidate_pending_orders()
        return deleted

    def history(self, limit: Optional[int] = None) -> List[DispatchRecord]:
        return self.committer.history.records(limit)

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def _dispatch(self, event: Any) -> List[Notice]:
        """Run event and every response it triggers through the state machine."""
        notices: List[Notice] = []
        queue = [event]

        while queue:
            current = queue.pop(0)
            previous = self._state
            self._state, effects = transition(previous, current, self.inventory)
            self._after_transition(previous, self._state)

            for effect in effects:
                if isinstance(effect, Notice):
                    notices.append(effect)
                    continue
                response = self._run_effect(effect)
                if response is not None:
                    queue.append(response)

        return self._emit_notices(notices)

    def _after_transition(self, previous: SessionState, current: SessionState):
        if logger.isEnabledFor(logging.DEBUG):
            current.check_invariants()
        if previous.active_order is not current.active_order:
            set_order_context(current.active_order.id if current.active_order else None)
        if previous.phase != current.phase:
            logger.info(f"Phase {previous.phase} -> {current.phase}")
            self.phase_changed.emit(current.phase)

    def _run_effect(self, effect: Any) -> Optional[Any]:
        """Execute one effect; returns the response event, if the effect has one."""
        if isinstance(effect, LookupOrders):
            try:
                orders = self.order_service.find_orders_by_code(effect.code)
            except DispatchStationError as e:
                logger.error(f"Order lookup for {effect.code} failed: {e}")
                return OrderLookupFailed(effect.code, str(e))
            except Exception as e:
                logger.error(f"Unexpected error looking up {effect.code}: {e}", exc_info=True)
                return OrderLookupFailed(effect.code, f"Order lookup failed: {e}")
            return OrdersFound(effect.code, tuple(orders))

        if isinstance(effect, OfferOrderChoice):
            self.order_choice_offered.emit([order.to_dict() for order in effect.orders])
            return None

        if isinstance(effect, SaveShippingLabel):
            return self.committer.save_shipping_label(effect.order_id, effect.label)

        if isinstance(effect, CommitDispatch):
            return self.committer.commit_dispatch(effect.order_id, effect.scanned_codes, effect.operator_id)

        if isinstance(effect, RecordDispatch):
            record = self.committer.record_dispatch(effect.order, effect.scanned_codes, effect.operator_id)
            self.order_dispatched.emit(record.to_dict())
            return None

        if isinstance(effect, InvalidatePendingOrders):
            self.committer.invalidate_pending_orders()
            return None

        raise TypeError(f"Unknown dispatch effect: {effect!r}")

    def _emit_notices(self, notices: List[Notice]) -> List[Notice]:
        for item in notices:
            self.notice.emit(item.level, item.status, item.message)
        return notices


def build_station(config: StationConfig) -> DispatchStation:
    """
    Wire a DispatchStation from configuration.

    The inventory is taken from InventoryFile when configured, otherwise
    fetched from the order server (http backend). An inventory that cannot
    be loaded leaves the station working with SKU matches only.

    Raises:
        ValidationError: If the configuration is invalid
    """
    config.validate()

    if config.backend == BACKEND_LOCAL:
        order_service = JsonOrderService(config.orders_file)
    else:
        order_service = HttpOrderService(config.api_base_url, timeout=config.connection_timeout)

    inventory = None
    try:
        if config.inventory_file:
            inventory = InventoryCatalog.from_file(str(config.inventory_file))
        elif isinstance(order_service, HttpOrderService):
            inventory = InventoryCatalog.from_records(order_service.fetch_inventory())
    except (DispatchStationError, ValidationError) as e:
        logger.error(f"Inventory unavailable, barcode lookup disabled: {e}")

    history = DispatchHistory(config.history_path, station_id=config.station_id)
    committer = DispatchCommitter(order_service, history, station_id=config.station_id)
    return DispatchStation(
        order_service,
        committer,
        inventory=inventory,
        operator_id=config.operator_id,
        station_id=config.station_id,
    )
