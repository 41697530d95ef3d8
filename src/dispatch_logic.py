"""
Dispatch Logic - the phase state machine of a dispatch station.

The operator moves every order through four phases:

    LOCATING ──scan──> VERIFYING_ITEMS ──all items──> CAPTURING_LABEL ──label saved──> CONFIRMING
        │                                                  ^                              │
        └──────────── single-unit order ───────────────────┘                   commit ok: back to LOCATING

and can cancel back to LOCATING from any phase without persisting anything.

The machine is a pure reducer:

    new_state, effects = transition(state, event, inventory)

Events describe what happened (a code was scanned, the server answered);
effects describe what the station must do next (look up orders, save the
label, commit the dispatch, show a message). Nothing here talks to the
network, so every rule can be exercised without a server or a UI.

Status strings on Notice effects ("SKU_OK", "QUANTITY_EXCEEDED", ...) are
stable identifiers so views can colour and sound them.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from code_resolver import resolve
from exceptions import ValidationError
from logger import get_logger
from models import Order, OrderStatus
from order_acquisition import MANY_MATCHES, NO_MATCH, begin_session, classify, enrich_order
from session_state import InFlight, Phase, SessionState

logger = get_logger(__name__)


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class CodeScanned:
    """A barcode or QR code arrived from the scanner."""
    code: str


@dataclass(frozen=True)
class ManualConfirm:
    """Operator confirmed one unit of an item that has no physical barcode."""
    sku: str


@dataclass(frozen=True)
class OrdersFound:
    """Order lookup for code returned these pending orders."""
    code: str
    orders: Tuple[Order, ...]


@dataclass(frozen=True)
class OrderLookupFailed:
    code: str
    message: str


@dataclass(frozen=True)
class OrderChosen:
    """Operator picked an order from the disambiguation or pending list."""
    order: Order


@dataclass(frozen=True)
class LabelSaved:
    order_id: str
    label: str
    order: Optional[Order] = None


@dataclass(frozen=True)
class LabelSaveFailed:
    order_id: str
    message: str


@dataclass(frozen=True)
class ConfirmRequested:
    """Operator pressed confirm in the CONFIRMING phase."""
    operator_id: Optional[str]


@dataclass(frozen=True)
class DispatchCommitted:
    order_id: str
    operator_id: Optional[str]
    order: Optional[Order] = None


@dataclass(frozen=True)
class DispatchFailed:
    order_id: str
    message: str


@dataclass(frozen=True)
class Cancel:
    pass


# ============================================================================
# Effects
# ============================================================================

@dataclass(frozen=True)
class Notice:
    """
    Operator-facing message.

    Attributes:
        level: "info", "success", "warning" or "error"
        status: Machine-readable status string (e.g. "QUANTITY_EXCEEDED")
        message: Human-readable text
        details: Extra data for the view (sku, current/required counts, ...)
    """
    level: str
    status: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LookupOrders:
    code: str


@dataclass(frozen=True)
class OfferOrderChoice:
    orders: Tuple[Order, ...]


@dataclass(frozen=True)
class SaveShippingLabel:
    order_id: str
    label: str


@dataclass(frozen=True)
class CommitDispatch:
    order_id: str
    scanned_codes: Tuple[str, ...]
    operator_id: str


@dataclass(frozen=True)
class RecordDispatch:
    """Append a Dispatch Record to the local history."""
    order: Order
    scanned_codes: Tuple[str, ...]
    operator_id: Optional[str]


@dataclass(frozen=True)
class InvalidatePendingOrders:
    """Cached pending/active order views are stale and must be refreshed."""
    pass


# ============================================================================
# Operator prompts
# ============================================================================

SCANNER_PROMPTS = {
    Phase.LOCATING: "Scan a product barcode or SKU to find its order",
    Phase.VERIFYING_ITEMS: "Scan the next item",
    Phase.CAPTURING_LABEL: "Scan the barcode or QR code on the shipping label",
    Phase.CONFIRMING: "Confirm or cancel the dispatch",
}


def scanner_prompt(state: SessionState) -> str:
    """Text telling the operator what the scanner expects in the current phase."""
    return SCANNER_PROMPTS.get(state.phase, "Barcode / QR code")


# ============================================================================
# Reducer
# ============================================================================

Transition = Tuple[SessionState, List[Any]]


def transition(state: SessionState, event: Any, inventory=None) -> Transition:
    """
    Apply one event to the session.

    Args:
        state: Current session snapshot
        event: One of the event dataclasses above
        inventory: Read-only catalog with find_by_barcode / find_by_sku
                   (InventoryCatalog); used for code resolution and
                   display enrichment

    Returns:
        (new_state, effects). Rejected events return the unchanged state
        and a single error Notice.

    Raises:
        TypeError: If event is not a known event type
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown dispatch event: {event!r}")
    return handler(state, event, inventory)


def _reject(state: SessionState, status: str, message: str, **details) -> Transition:
    logger.warning(f"Rejected ({status}): {message}")
    return state, [Notice('error', status, message, details)]


def _busy(state: SessionState) -> Transition:
    return _reject(state, "BUSY", f"Waiting for the server ({state.in_flight})", in_flight=state.in_flight)


def _is_current(state: SessionState, order_id: str, call: str) -> bool:
    """True when a response belongs to the call the session is waiting for."""
    return (state.in_flight == call and state.active_order is not None
            and state.active_order.id == order_id)


# ---------------------------------------------------------------------------
# Scans
# ---------------------------------------------------------------------------

def _on_code_scanned(state: SessionState, event: CodeScanned, inventory) -> Transition:
    code = event.code
    if not code:
        return state, []

    if state.in_flight is not None:
        return _busy(state)

    if state.phase == Phase.LOCATING:
        # A fresh scan replaces any open disambiguation list
        logger.info(f"Looking up pending orders for code {code}")
        return replace(state, candidates=(), in_flight=InFlight.LOOKUP), [LookupOrders(code)]

    if state.phase == Phase.VERIFYING_ITEMS:
        return _verify_scan(state, code, inventory)

    if state.phase == Phase.CAPTURING_LABEL:
        # Any code is a valid label; it is kept only once the server has it
        logger.info(f"Saving shipping label {code} for order {state.active_order.order_number}")
        return replace(state, in_flight=InFlight.LABEL_SAVE), [SaveShippingLabel(state.active_order.id, code)]

    return _reject(state, "SCAN_NOT_ACCEPTED", "Scanning is closed: confirm or cancel the dispatch")


def _verify_scan(state: SessionState, code: str, inventory) -> Transition:
    """
    Verification rule for a code scanned while VERIFYING_ITEMS.

    1. Duplicate: a code is consumed at most once per session
    2. Not in order: the code must resolve to an item of this order
    3. Quantity: the item must still need units
    4. Accept: count the unit and consume the code
    5. Completion: all items at quantity moves on to label capture
    """
    if state.has_code(code):
        return _reject(state, "ALREADY_SCANNED", f"Code {code} was already scanned for this order", code=code)

    item = resolve(code, state.active_order, inventory)
    if item is None:
        return _reject(state, "ITEM_NOT_IN_ORDER", f"Item {code} is not part of this order", code=code)

    current = state.count_for(item.sku)
    if current >= item.quantity:
        return _reject(
            state, "QUANTITY_EXCEEDED",
            f"SKU {item.sku}: already scanned {current} of {item.quantity}",
            sku=item.sku, current=current, required=item.quantity,
        )

    return _after_accept(state.with_entry(code, item.sku), item.sku, item.quantity, manual=False)


def _on_manual_confirm(state: SessionState, event: ManualConfirm, inventory) -> Transition:
    """
    Confirm one unit of a SKU without scanning it.

    The SKU itself is recorded as the consumed code. There is deliberately
    no duplicate check here: repeated confirmations of the same SKU are
    bounded by the quantity check alone.
    """
    if state.in_flight is not None:
        return _busy(state)

    if state.phase != Phase.VERIFYING_ITEMS:
        return _reject(state, "MANUAL_CONFIRM_NOT_ACCEPTED", "Items can only be confirmed while verifying an order")

    item = state.active_order.find_item(event.sku)
    if item is None:
        return _reject(state, "ITEM_NOT_IN_ORDER", f"SKU {event.sku} is not part of this order", code=event.sku)

    current = state.count_for(item.sku)
    if current >= item.quantity:
        return _reject(
            state, "QUANTITY_EXCEEDED",
            f"SKU {item.sku}: already confirmed {current} of {item.quantity}",
            sku=item.sku, current=current, required=item.quantity,
        )

    return _after_accept(state.with_entry(item.sku, item.sku, manual=True), item.sku, item.quantity, manual=True)


def _after_accept(state: SessionState, sku: str, required: int, manual: bool) -> Transition:
    count = state.count_for(sku)
    verb = "confirmed" if manual else "scanned"
    logger.info(f"Item {verb}: {sku} {count}/{required}")

    if state.all_items_complete():
        logger.info(f"All items {verb} for order {state.active_order.order_number}")
        return replace(state, phase=Phase.CAPTURING_LABEL), [Notice(
            'success', "ALL_ITEMS_SCANNED", f"All items {verb}. Scan the shipping label",
            {'sku': sku, 'current': count, 'required': required},
        )]

    return state, [Notice(
        'success', "SKU_OK", f"{sku}: {count} / {required}. Remaining: {state.remaining} item(s)",
        {'sku': sku, 'current': count, 'required': required, 'remaining': state.remaining},
    )]


# ---------------------------------------------------------------------------
# Order acquisition
# ---------------------------------------------------------------------------

def _on_orders_found(state: SessionState, event: OrdersFound, inventory) -> Transition:
    if state.in_flight != InFlight.LOOKUP or state.active_order is not None:
        logger.debug(f"Discarding late lookup result for {event.code}")
        return state, []

    state = replace(state, in_flight=None)
    outcome, orders = classify(event.orders)

    if outcome == NO_MATCH:
        return _reject(state, "ORDER_NOT_FOUND", f"No pending order contains {event.code}", code=event.code)

    if outcome == MANY_MATCHES:
        candidates = tuple(enrich_order(order, inventory) for order in orders)
        logger.info(f"Code {event.code} matches {len(candidates)} orders, awaiting choice")
        return replace(state, candidates=candidates), [
            OfferOrderChoice(candidates),
            Notice('warning', "ORDER_CHOICE",
                   f"{len(candidates)} orders contain {event.code}. Choose one",
                   {'code': event.code, 'order_numbers': [o.order_number for o in candidates]}),
        ]

    return _acquire(state, orders[0], inventory)


def _on_lookup_failed(state: SessionState, event: OrderLookupFailed, inventory) -> Transition:
    if state.in_flight != InFlight.LOOKUP:
        return state, []
    return _reject(replace(state, in_flight=None), "LOOKUP_FAILED", event.message, code=event.code)


def _on_order_chosen(state: SessionState, event: OrderChosen, inventory) -> Transition:
    if state.in_flight is not None:
        return _busy(state)

    if state.phase != Phase.LOCATING or state.active_order is not None:
        return _reject(state, "ORDER_ALREADY_ACTIVE", "Finish or cancel the current order first")

    if event.order.status != OrderStatus.PENDING:
        return _reject(
            state, "ORDER_NOT_PENDING",
            f"Order {event.order.order_number} is {event.order.status}",
            order_number=event.order.order_number,
        )

    return _acquire(state, event.order, inventory)


def _acquire(state: SessionState, order: Order, inventory) -> Transition:
    try:
        new_state = begin_session(enrich_order(order, inventory))
    except ValidationError as e:
        return _reject(replace(state, candidates=()), "INVALID_ORDER", str(e), order_number=order.order_number)

    total = new_state.total_required
    if new_state.phase == Phase.CAPTURING_LABEL:
        message = f"Order #{order.order_number} (1 item). Scan the shipping label"
    else:
        message = f"Order #{order.order_number} ({total} items). Scan all items"

    return new_state, [Notice(
        'info', "ORDER_LOADED", message,
        {'order_id': order.id, 'order_number': order.order_number, 'total_required': total},
    )]


# ---------------------------------------------------------------------------
# Label and commit
# ---------------------------------------------------------------------------

def _on_label_saved(state: SessionState, event: LabelSaved, inventory) -> Transition:
    if not _is_current(state, event.order_id, InFlight.LABEL_SAVE):
        logger.debug(f"Discarding late label confirmation for order {event.order_id}")
        return state, []

    order = replace(state.active_order, shipping_label=event.label)
    return replace(
        state,
        phase=Phase.CONFIRMING,
        active_order=order,
        shipping_label=event.label,
        in_flight=None,
    ), [Notice('info', "LABEL_SAVED", f"Label {event.label} saved. Confirm the dispatch",
               {'label': event.label})]


def _on_label_save_failed(state: SessionState, event: LabelSaveFailed, inventory) -> Transition:
    if not _is_current(state, event.order_id, InFlight.LABEL_SAVE):
        return state, []
    return _reject(replace(state, in_flight=None), "LABEL_SAVE_FAILED", event.message)


def _on_confirm_requested(state: SessionState, event: ConfirmRequested, inventory) -> Transition:
    if state.in_flight is not None:
        return _busy(state)

    if state.phase != Phase.CONFIRMING:
        return _reject(state, "CONFIRM_NOT_ACCEPTED", "Nothing to confirm: the shipping label is not saved yet")

    if not event.operator_id:
        return _reject(state, "NO_OPERATOR", "No operator is signed in at this station")

    logger.info(f"Committing dispatch of order {state.active_order.order_number} "
                f"with {len(state.entries)} code(s)")
    return replace(state, in_flight=InFlight.COMMIT), [
        CommitDispatch(state.active_order.id, state.scanned_codes, event.operator_id)
    ]


def _on_dispatch_committed(state: SessionState, event: DispatchCommitted, inventory) -> Transition:
    if not _is_current(state, event.order_id, InFlight.COMMIT):
        logger.debug(f"Discarding late dispatch confirmation for order {event.order_id}")
        return state, []

    order = event.order or state.active_order
    return SessionState.initial(), [
        RecordDispatch(order, state.scanned_codes, event.operator_id),
        InvalidatePendingOrders(),
        Notice('success', "ORDER_DISPATCHED", f"Order #{order.order_number} dispatched",
               {'order_id': order.id, 'order_number': order.order_number}),
    ]


def _on_dispatch_failed(state: SessionState, event: DispatchFailed, inventory) -> Transition:
    if not _is_current(state, event.order_id, InFlight.COMMIT):
        return state, []
    return _reject(replace(state, in_flight=None), "DISPATCH_FAILED", event.message)


def _on_cancel(state: SessionState, event: Cancel, inventory) -> Transition:
    """
    Discard the session without persisting anything.

    Refused while a label save or dispatch commit is outstanding; the
    operator cancels after the server has answered.
    """
    if state.in_flight in (InFlight.LABEL_SAVE, InFlight.COMMIT):
        return _reject(state, "CANCEL_REFUSED", "Cannot cancel while the server is saving this order",
                       in_flight=state.in_flight)

    if state.is_idle:
        return state, []

    if state.active_order is not None:
        logger.info(f"Order {state.active_order.order_number} cancelled at {state.phase}")
        message = "Cancelled: order not dispatched"
    else:
        message = "Cancelled"
    return SessionState.initial(), [Notice('info', "CANCELLED", message)]


_HANDLERS = {
    CodeScanned: _on_code_scanned,
    ManualConfirm: _on_manual_confirm,
    OrdersFound: _on_orders_found,
    OrderLookupFailed: _on_lookup_failed,
    OrderChosen: _on_order_chosen,
    LabelSaved: _on_label_saved,
    LabelSaveFailed: _on_label_save_failed,
    ConfirmRequested: _on_confirm_requested,
    DispatchCommitted: _on_dispatch_committed,
    DispatchFailed: _on_dispatch_failed,
    Cancel: _on_cancel,
}
